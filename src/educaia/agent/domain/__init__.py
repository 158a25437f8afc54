"""Domain layer - entities, errors and port interfaces."""

from .entities import (
    AgentDescriptor,
    AgentStrategy,
    ChatEvent,
    ChatEventType,
    Conversation,
    ErrorType,
    FeedbackRecord,
    FeedbackStats,
    FeedbackType,
    Message,
    MessagePart,
    MessageRole,
    ModelSettings,
    PartType,
    ProviderEvent,
    ProviderEventType,
    ResponseMode,
    StreamRequest,
    TokenUsage,
    ToolCall,
    ToolCallStatus,
    ToolContext,
    ToolDefinition,
    UserContext,
)
from .errors import (
    AgentNotFoundError,
    ApprovalError,
    AuthContextError,
    ConfigurationError,
    ConversationBusyError,
    EducaIAError,
    NotFoundError,
    PersistenceError,
    ProviderError,
    ToolArgumentError,
    ToolExecutionError,
)

__all__ = [
    "AgentDescriptor",
    "AgentStrategy",
    "ChatEvent",
    "ChatEventType",
    "Conversation",
    "ErrorType",
    "FeedbackRecord",
    "FeedbackStats",
    "FeedbackType",
    "Message",
    "MessagePart",
    "MessageRole",
    "ModelSettings",
    "PartType",
    "ProviderEvent",
    "ProviderEventType",
    "ResponseMode",
    "StreamRequest",
    "TokenUsage",
    "ToolCall",
    "ToolCallStatus",
    "ToolContext",
    "ToolDefinition",
    "UserContext",
    "AgentNotFoundError",
    "ApprovalError",
    "AuthContextError",
    "ConfigurationError",
    "ConversationBusyError",
    "EducaIAError",
    "NotFoundError",
    "PersistenceError",
    "ProviderError",
    "ToolArgumentError",
    "ToolExecutionError",
]
