"""
EducaIA Conversational Agent Module.

This module turns a user's chat message into a streamed answer for the
SmartGesTI Ensino school-management platform, calling internal tools
mid-generation when the model asks for them.

Architecture:
- Domain: Core entities, error taxonomy and port interfaces
- Providers: LLM provider implementations (OpenAI, Anthropic, Google, Ollama)
- Tools: Knowledge search, agent catalog, safe queries, navigation, user data
- Definitions: Agent descriptors, registry and factory
- Memory: Tenant-scoped conversation and feedback stores
- Orchestrator: Streaming state machine with tool approvals
- API: FastAPI router streaming Server-Sent Events

Key Features:
- Multi-provider LLM support with retries and idle timeouts
- Fast and detailed response modes
- Human approval for sensitive tools (database queries)
- Tenant-isolated conversations and feedback
"""

# Domain entities
from .domain.entities import (
    AgentDescriptor,
    ChatEvent,
    ChatEventType,
    Conversation,
    ErrorType,
    Message,
    MessagePart,
    MessageRole,
    ResponseMode,
    StreamRequest,
    ToolCall,
    ToolDefinition,
    UserContext,
)

# Definitions
from .definitions import AgentConfig, AgentFactory, AgentRegistry, educa_ia_config

# Orchestrator
from .orchestrator import (
    AgentOrchestrator,
    ApprovalManager,
    ConversationManager,
    OrchestratorConfig,
)

# Memory
from .memory import (
    ConversationStore,
    FeedbackStore,
    InMemoryConversationStore,
    InMemoryFeedbackStore,
)

# Tools
from .tools import BaseTool, ToolRegistry

# Providers
from .providers import (
    AnthropicProvider,
    GoogleProvider,
    ModelProviderFactory,
    OllamaProvider,
    OpenAIProvider,
)

__all__ = [
    # Domain
    "AgentDescriptor",
    "ChatEvent",
    "ChatEventType",
    "Conversation",
    "ErrorType",
    "Message",
    "MessagePart",
    "MessageRole",
    "ResponseMode",
    "StreamRequest",
    "ToolCall",
    "ToolDefinition",
    "UserContext",
    # Definitions
    "AgentConfig",
    "AgentFactory",
    "AgentRegistry",
    "educa_ia_config",
    # Orchestrator
    "AgentOrchestrator",
    "ApprovalManager",
    "ConversationManager",
    "OrchestratorConfig",
    # Memory
    "ConversationStore",
    "FeedbackStore",
    "InMemoryConversationStore",
    "InMemoryFeedbackStore",
    # Tools
    "BaseTool",
    "ToolRegistry",
    # Providers
    "AnthropicProvider",
    "GoogleProvider",
    "ModelProviderFactory",
    "OllamaProvider",
    "OpenAIProvider",
]
