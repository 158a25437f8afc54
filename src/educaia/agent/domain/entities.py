"""
Domain entities for the EducaIA agent.

These are pure domain objects with no infrastructure dependencies.
They define the core data structures used throughout the agent module.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, Optional

from .errors import AuthContextError

if TYPE_CHECKING:
    from .ports import ITool


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ============================================
# User Context
# ============================================


class ResponseMode(str, Enum):
    """How much effort the assistant spends on an answer."""

    FAST = "fast"
    DETAILED = "detailed"


@dataclass(frozen=True)
class UserContext:
    """User context for tenant isolation and audit tracking.

    Attributes:
        tenant_id: Tenant identifier for multi-tenancy isolation
        user_id: User identifier within the tenant
        school_id: School the user is currently working in
        school_slug: URL slug of that school (used for navigation routes)
        school_name: Display name of the school
        user_name: Display name of the user
        user_role: Role label (admin, teacher, student, ...)
        session_id: Optional session identifier for tracking
        request_id: Optional request ID for distributed tracing
    """

    tenant_id: str
    user_id: str
    school_id: Optional[str] = None
    school_slug: Optional[str] = None
    school_name: Optional[str] = None
    user_name: Optional[str] = None
    user_role: Optional[str] = None
    session_id: Optional[str] = None
    request_id: Optional[str] = None

    def __post_init__(self):
        if not self.tenant_id:
            raise AuthContextError("tenant_id is required")
        if not self.user_id:
            raise AuthContextError("user_id is required")


@dataclass(frozen=True)
class ToolContext:
    """Request-scoped context handed to every tool invocation.

    Tools must only read data within this scope.
    """

    tenant_id: str
    user_id: str
    school_id: Optional[str] = None
    school_slug: Optional[str] = None
    response_mode: ResponseMode = ResponseMode.FAST
    conversation_id: Optional[uuid.UUID] = None

    @classmethod
    def from_user_context(
        cls,
        context: UserContext,
        response_mode: ResponseMode = ResponseMode.FAST,
        conversation_id: Optional[uuid.UUID] = None,
    ) -> ToolContext:
        return cls(
            tenant_id=context.tenant_id,
            user_id=context.user_id,
            school_id=context.school_id,
            school_slug=context.school_slug,
            response_mode=response_mode,
            conversation_id=conversation_id,
        )


# ============================================
# Message Types
# ============================================


class MessageRole(str, Enum):
    """Role of a message in a conversation."""

    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"
    TOOL = "tool"


class PartType(str, Enum):
    """Kind of content carried by a message part."""

    TEXT = "text"
    REASONING = "reasoning"
    TOOL_CALL = "tool-call"
    TOOL_RESULT = "tool-result"


@dataclass
class MessagePart:
    """One ordered piece of a message.

    Attributes:
        type: Part kind
        text: Text content (TEXT, REASONING)
        tool_call_id: Correlation id (TOOL_CALL, TOOL_RESULT)
        tool_name: Tool name (TOOL_CALL, TOOL_RESULT)
        args: Structured tool arguments (TOOL_CALL)
        result: Structured tool outcome (TOOL_RESULT)
        is_error: True if the result is an error or rejection marker
    """

    type: PartType
    text: Optional[str] = None
    tool_call_id: Optional[str] = None
    tool_name: Optional[str] = None
    args: Optional[dict[str, Any]] = None
    result: Optional[Any] = None
    is_error: bool = False

    @classmethod
    def text_part(cls, text: str) -> MessagePart:
        return cls(type=PartType.TEXT, text=text)

    @classmethod
    def reasoning_part(cls, text: str) -> MessagePart:
        return cls(type=PartType.REASONING, text=text)

    @classmethod
    def tool_call_part(
        cls, tool_call_id: str, tool_name: str, args: dict[str, Any]
    ) -> MessagePart:
        return cls(
            type=PartType.TOOL_CALL,
            tool_call_id=tool_call_id,
            tool_name=tool_name,
            args=args,
        )

    @classmethod
    def tool_result_part(
        cls,
        tool_call_id: str,
        tool_name: str,
        result: Any,
        is_error: bool = False,
    ) -> MessagePart:
        return cls(
            type=PartType.TOOL_RESULT,
            tool_call_id=tool_call_id,
            tool_name=tool_name,
            result=result,
            is_error=is_error,
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize for JSON storage and API responses."""
        data: dict[str, Any] = {"type": self.type.value}
        if self.type in (PartType.TEXT, PartType.REASONING):
            data["text"] = self.text or ""
            return data
        data["toolCallId"] = self.tool_call_id
        data["toolName"] = self.tool_name
        if self.type == PartType.TOOL_CALL:
            data["args"] = self.args or {}
        else:
            data["result"] = self.result
            data["isError"] = self.is_error
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MessagePart:
        return cls(
            type=PartType(data["type"]),
            text=data.get("text"),
            tool_call_id=data.get("toolCallId"),
            tool_name=data.get("toolName"),
            args=data.get("args"),
            result=data.get("result"),
            is_error=data.get("isError", False),
        )


@dataclass
class Message:
    """A single message in a conversation.

    Attributes:
        role: Message role (user, assistant, system, tool)
        parts: Ordered content parts
        id: Unique message identifier
        conversation_id: Parent conversation ID
        model_used: LLM model used to generate this message
        tokens_used: Token count for this message
        created_at: Creation timestamp
    """

    role: MessageRole
    parts: list[MessagePart] = field(default_factory=list)
    id: Optional[uuid.UUID] = None
    conversation_id: Optional[uuid.UUID] = None
    model_used: Optional[str] = None
    tokens_used: Optional[int] = None
    created_at: Optional[datetime] = None

    def __post_init__(self):
        if self.id is None:
            self.id = uuid.uuid4()
        if self.created_at is None:
            self.created_at = utcnow()

    @classmethod
    def from_text(cls, role: MessageRole, text: str, **kwargs: Any) -> Message:
        """Create a message with a single text part."""
        return cls(role=role, parts=[MessagePart.text_part(text)], **kwargs)

    @property
    def text(self) -> str:
        """Concatenated text of all TEXT parts."""
        return "".join(p.text or "" for p in self.parts if p.type == PartType.TEXT)

    @property
    def tool_call_ids(self) -> list[str]:
        return [
            p.tool_call_id for p in self.parts
            if p.type == PartType.TOOL_CALL and p.tool_call_id
        ]


def check_tool_result_references(
    history: list[Message], message: Message
) -> None:
    """Verify every tool-result part points at a known tool call.

    The referenced call must appear in an earlier message or earlier in
    the same message.

    Raises:
        ValueError: On a dangling tool-result reference
    """
    known: set[str] = set()
    for previous in history:
        known.update(previous.tool_call_ids)

    for part in message.parts:
        if part.type == PartType.TOOL_CALL and part.tool_call_id:
            known.add(part.tool_call_id)
        elif part.type == PartType.TOOL_RESULT and part.tool_call_id not in known:
            raise ValueError(
                f"tool-result references unknown tool call {part.tool_call_id}"
            )


# ============================================
# Conversation
# ============================================


@dataclass
class Conversation:
    """A chat conversation containing multiple messages.

    Attributes:
        tenant_id: Tenant for isolation
        user_id: User who owns this conversation
        id: Unique conversation identifier
        school_id: School the conversation started in
        title: Conversation title (first user question)
        messages: Ordered messages in this conversation
        message_count: Total message count
        metadata: Additional metadata
        created_at: Creation timestamp
        updated_at: Last update timestamp
        deleted_at: Tombstone timestamp (None while live)
    """

    tenant_id: str
    user_id: str
    id: Optional[uuid.UUID] = None
    school_id: Optional[str] = None
    title: Optional[str] = None
    messages: list[Message] = field(default_factory=list)
    message_count: int = 0
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None

    def __post_init__(self):
        if self.id is None:
            self.id = uuid.uuid4()
        if self.created_at is None:
            self.created_at = utcnow()
        if self.updated_at is None:
            self.updated_at = self.created_at

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def add_message(self, message: Message) -> None:
        """Add a message to this conversation."""
        check_tool_result_references(self.messages, message)
        message.conversation_id = self.id
        self.messages.append(message)
        self.message_count += 1
        self.updated_at = utcnow()


# ============================================
# Tool System
# ============================================


@dataclass
class ToolDefinition:
    """Definition of an available tool.

    Attributes:
        name: Tool name (e.g., 'retrieveKnowledge')
        description: Description shown to the model
        parameters: JSON Schema for parameters
        requires_approval: True if a human must approve each call
        timeout_seconds: Maximum execution time
    """

    name: str
    description: str
    parameters: dict[str, Any]
    requires_approval: bool = False
    timeout_seconds: float = 30

    def to_openai_format(self) -> dict[str, Any]:
        """Convert to OpenAI function calling format."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }

    def to_anthropic_format(self) -> dict[str, Any]:
        """Convert to Anthropic tool use format."""
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": self.parameters,
        }


class ToolCallStatus(str, Enum):
    """Lifecycle of a single tool invocation."""

    REQUESTED = "requested"
    APPROVED = "approved"
    REJECTED = "rejected"
    EXECUTING = "executing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class ToolCall:
    """A tool call requested by the LLM.

    Attributes:
        id: Unique tool call identifier (for correlation)
        name: Tool name being called
        arguments: Arguments passed to the tool
        status: Current lifecycle status
        result: Result from tool execution (set after execution)
        error: Error message if execution failed or was rejected
        executed_at: When the tool finished executing
    """

    name: str
    arguments: dict[str, Any]
    id: str = field(default_factory=lambda: f"call_{uuid.uuid4().hex}")
    status: ToolCallStatus = ToolCallStatus.REQUESTED
    result: Optional[Any] = None
    error: Optional[str] = None
    executed_at: Optional[datetime] = None

    @property
    def is_finished(self) -> bool:
        return self.status in (
            ToolCallStatus.SUCCEEDED,
            ToolCallStatus.FAILED,
            ToolCallStatus.REJECTED,
        )

    def result_payload(self) -> Any:
        """Outcome as fed back to the model and streamed to the client."""
        if self.status == ToolCallStatus.REJECTED:
            return {"rejected": True, "reason": self.error or "rejected"}
        if self.status == ToolCallStatus.FAILED:
            return {"error": self.error or "tool failed"}
        return self.result


# ============================================
# Provider Events
# ============================================


@dataclass
class TokenUsage:
    """Token accounting for one or more provider calls."""

    prompt_tokens: int = 0
    completion_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens

    def __add__(self, other: TokenUsage) -> TokenUsage:
        return TokenUsage(
            prompt_tokens=self.prompt_tokens + other.prompt_tokens,
            completion_tokens=self.completion_tokens + other.completion_tokens,
        )

    def to_dict(self) -> dict[str, int]:
        return {
            "promptTokens": self.prompt_tokens,
            "completionTokens": self.completion_tokens,
            "totalTokens": self.total_tokens,
        }


class ProviderEventType(str, Enum):
    """Events yielded by an LLM provider stream."""

    TEXT_DELTA = "text_delta"
    REASONING_DELTA = "reasoning_delta"
    TOOL_CALL_REQUEST = "tool_call_request"
    USAGE = "usage"
    FINISH = "finish"


@dataclass
class ProviderEvent:
    """One item from a provider stream."""

    type: ProviderEventType
    text: Optional[str] = None
    tool_call: Optional[ToolCall] = None
    usage: Optional[TokenUsage] = None
    finish_reason: Optional[str] = None

    @classmethod
    def text_delta(cls, text: str) -> ProviderEvent:
        return cls(type=ProviderEventType.TEXT_DELTA, text=text)

    @classmethod
    def reasoning_delta(cls, text: str) -> ProviderEvent:
        return cls(type=ProviderEventType.REASONING_DELTA, text=text)

    @classmethod
    def tool_call_request(
        cls, tool_call_id: str, name: str, arguments: dict[str, Any]
    ) -> ProviderEvent:
        return cls(
            type=ProviderEventType.TOOL_CALL_REQUEST,
            tool_call=ToolCall(id=tool_call_id, name=name, arguments=arguments),
        )

    @classmethod
    def usage_event(cls, prompt_tokens: int, completion_tokens: int) -> ProviderEvent:
        return cls(
            type=ProviderEventType.USAGE,
            usage=TokenUsage(prompt_tokens, completion_tokens),
        )

    @classmethod
    def finish(cls, reason: Optional[str] = None) -> ProviderEvent:
        return cls(type=ProviderEventType.FINISH, finish_reason=reason)


# ============================================
# Streaming Events
# ============================================


class ChatEventType(str, Enum):
    """Types of streaming chat events."""

    TOKEN = "token"  # Partial text token
    REASONING = "reasoning"  # Reasoning delta (only when requested)
    TOOL_CALL = "tool_call"  # Tool invocation requested
    TOOL_RESULT = "tool_result"  # Tool outcome, error or rejection
    USAGE = "usage"  # Token accounting
    DONE = "done"  # Terminal: answer complete
    ERROR = "error"  # Terminal: stream failed


TERMINAL_EVENT_TYPES = frozenset({ChatEventType.DONE, ChatEventType.ERROR})


class ErrorType(str, Enum):
    """Types of errors in streaming."""

    RECOVERABLE = "recoverable"  # Can retry
    FATAL = "fatal"  # Must abort
    TIMEOUT = "timeout"  # Tool/LLM timeout
    RATE_LIMIT = "rate_limit"  # Rate limited, back off


@dataclass
class ChatEvent:
    """A streaming chat event.

    Attributes:
        type: Event type
        sequence: Sequence number for ordering within one stream
        data: Type-specific payload
        timestamp: Creation time
        correlation_id: Request correlation ID for tracing
        event_id: Unique event ID for idempotency
    """

    type: ChatEventType
    sequence: int
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=utcnow)
    correlation_id: Optional[str] = None
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))

    @property
    def is_terminal(self) -> bool:
        return self.type in TERMINAL_EVENT_TYPES

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result = {
            "type": self.type.value,
            "data": self.data,
            "timestamp": self.timestamp.isoformat(),
            "sequence": self.sequence,
            "eventId": self.event_id,
        }
        if self.correlation_id is not None:
            result["correlationId"] = self.correlation_id
        return result


# ============================================
# Agents
# ============================================


class AgentStrategy(str, Enum):
    """Execution strategy of an agent."""

    SIMPLE = "simple"


@dataclass(frozen=True)
class ModelSettings:
    """Sampling settings for a provider call."""

    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    reasoning_effort: Optional[str] = None

    def merged(self, **overrides: Any) -> ModelSettings:
        """Return a copy with every non-None override applied."""
        values = {k: v for k, v in overrides.items() if v is not None}
        return replace(self, **values) if values else self


@dataclass(frozen=True)
class AgentDescriptor:
    """Immutable configuration of a named agent.

    Built by AgentFactory and owned by AgentRegistry afterwards.
    """

    name: str
    instructions: str
    model: Optional[str] = None
    provider: Optional[str] = None
    tools: tuple[ITool, ...] = ()
    strategy: AgentStrategy = AgentStrategy.SIMPLE
    category: Optional[str] = None
    tags: frozenset[str] = frozenset()
    model_settings: ModelSettings = ModelSettings()
    description: Optional[str] = None
    max_tool_rounds: Optional[int] = None

    @property
    def tool_names(self) -> list[str]:
        return [tool.name for tool in self.tools]

    def get_tool(self, name: str) -> Optional[ITool]:
        for tool in self.tools:
            if tool.name == name:
                return tool
        return None

    def tool_definitions(self) -> list[ToolDefinition]:
        return [tool.definition() for tool in self.tools]


# ============================================
# Requests
# ============================================


@dataclass
class StreamRequest:
    """A validated request to stream one answer.

    Attributes:
        messages: Incoming messages; the last user message is the new turn
        agent_name: Registered agent to run
        conversation_id: Existing conversation (None starts a new one)
        model: Model override
        provider: Provider override
        response_mode: fast or detailed
        send_reasoning: Forward reasoning deltas to the client
        temperature: Temperature override
        max_tokens: Max tokens override
    """

    messages: list[Message]
    agent_name: str = "educa-ia"
    conversation_id: Optional[uuid.UUID] = None
    model: Optional[str] = None
    provider: Optional[str] = None
    response_mode: ResponseMode = ResponseMode.FAST
    send_reasoning: bool = False
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None

    @property
    def last_user_message(self) -> Optional[Message]:
        for message in reversed(self.messages):
            if message.role == MessageRole.USER:
                return message
        return None


# ============================================
# Feedback
# ============================================


class FeedbackType(str, Enum):
    LIKE = "like"
    DISLIKE = "dislike"


@dataclass
class FeedbackRecord:
    """A like/dislike signal on an assistant message.

    Records are never updated; every submission is a new row.
    """

    message_id: str
    question: str
    answer: str
    feedback_type: FeedbackType
    tenant_id: str
    user_id: Optional[str] = None
    comment: Optional[str] = None
    context_used: Optional[str] = None
    sources: list[dict[str, Any]] = field(default_factory=list)
    conversation_history: list[dict[str, Any]] = field(default_factory=list)
    model_used: Optional[str] = None
    id: Optional[uuid.UUID] = None
    created_at: Optional[datetime] = None

    def __post_init__(self):
        if self.id is None:
            self.id = uuid.uuid4()
        if self.created_at is None:
            self.created_at = utcnow()


@dataclass
class FeedbackStats:
    """Aggregated feedback for a tenant."""

    likes: int = 0
    dislikes: int = 0
    recent: list[FeedbackRecord] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.likes + self.dislikes
