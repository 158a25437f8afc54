"""
Pydantic schemas for the EducaIA API.

Defines request/response models. Field names are snake_case in Python
and camelCase on the wire, matching the web client.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator

from ..domain.entities import (
    Conversation,
    FeedbackRecord,
    FeedbackStats,
    FeedbackType,
    Message,
    MessagePart,
    MessageRole,
    ResponseMode,
    StreamRequest,
)


# =============================================================================
# Constants
# =============================================================================

MAX_MESSAGE_LENGTH = 10000
MAX_MESSAGES = 100


class CamelModel(BaseModel):
    """Accepts both camelCase aliases and field names."""

    model_config = ConfigDict(populate_by_name=True)


# =============================================================================
# Stream Schemas
# =============================================================================


class IncomingMessage(CamelModel):
    """A chat message sent by the client, as plain content or parts."""

    role: Literal["user", "assistant", "system"]
    content: Optional[str] = Field(default=None, max_length=MAX_MESSAGE_LENGTH)
    parts: Optional[list[dict[str, Any]]] = None

    @model_validator(mode="after")
    def _content_or_parts(self) -> IncomingMessage:
        if self.content is None and not self.parts:
            raise ValueError("message needs content or parts")
        return self

    def to_domain(self) -> Message:
        if self.parts:
            parts = [MessagePart.from_dict(p) for p in self.parts]
        else:
            parts = [MessagePart.text_part(self.content or "")]
        return Message(role=MessageRole(self.role), parts=parts)


class StreamRequestBody(CamelModel):
    """Request to stream one answer."""

    messages: list[IncomingMessage] = Field(..., min_length=1, max_length=MAX_MESSAGES)
    agent: str = "educa-ia"
    model: Optional[str] = None
    provider: Optional[str] = None
    response_mode: ResponseMode = Field(default=ResponseMode.FAST, alias="responseMode")
    send_reasoning: bool = Field(default=False, alias="sendReasoning")
    conversation_id: Optional[UUID] = Field(default=None, alias="conversationId")
    temperature: Optional[float] = Field(default=None, ge=0, le=2)
    max_tokens: Optional[int] = Field(default=None, ge=1, alias="maxTokens")

    model_config = ConfigDict(
        populate_by_name=True,
        protected_namespaces=(),
        json_schema_extra={
            "example": {
                "messages": [{"role": "user", "content": "Como cadastro um aluno?"}],
                "responseMode": "fast",
                "conversationId": None,
            }
        },
    )

    def to_domain(self) -> StreamRequest:
        try:
            messages = [m.to_domain() for m in self.messages]
        except (KeyError, ValueError) as e:
            raise ValueError(f"Invalid message part: {e}") from e
        return StreamRequest(
            messages=messages,
            agent_name=self.agent,
            conversation_id=self.conversation_id,
            model=self.model,
            provider=self.provider,
            response_mode=self.response_mode,
            send_reasoning=self.send_reasoning,
            temperature=self.temperature,
            max_tokens=self.max_tokens,
        )


# =============================================================================
# Approval Schemas
# =============================================================================


class ApprovalRequest(CamelModel):
    """Approve or reject a pending sensitive tool call."""

    tool_call_id: str = Field(..., min_length=1, alias="toolCallId")
    approved: bool
    conversation_id: Optional[UUID] = Field(default=None, alias="conversationId")
    reason: Optional[str] = Field(default=None, max_length=500)


class ApprovalResponse(BaseModel):
    tool_call_id: str = Field(serialization_alias="toolCallId")
    status: Literal["approved", "rejected", "already_decided"]


# =============================================================================
# Feedback Schemas
# =============================================================================


class FeedbackRequest(CamelModel):
    """Like/dislike on an assistant answer."""

    message_id: str = Field(..., min_length=1, alias="messageId")
    question: str = Field(..., min_length=1, max_length=MAX_MESSAGE_LENGTH)
    answer: str = Field(..., min_length=1)
    feedback_type: FeedbackType = Field(..., alias="feedbackType")
    comment: Optional[str] = Field(default=None, max_length=2000)
    context_used: Optional[str] = Field(default=None, alias="contextUsed")
    sources: list[dict[str, Any]] = Field(default_factory=list)
    conversation_history: list[dict[str, Any]] = Field(
        default_factory=list, alias="conversationHistory"
    )
    model_used: Optional[str] = Field(default=None, alias="modelUsed")

    model_config = ConfigDict(populate_by_name=True, protected_namespaces=())

    def to_record(self, tenant_id: str, user_id: Optional[str]) -> FeedbackRecord:
        return FeedbackRecord(
            message_id=self.message_id,
            question=self.question,
            answer=self.answer,
            feedback_type=self.feedback_type,
            tenant_id=tenant_id,
            user_id=user_id,
            comment=self.comment,
            context_used=self.context_used,
            sources=self.sources,
            conversation_history=self.conversation_history,
            model_used=self.model_used,
        )


class FeedbackResponse(BaseModel):
    success: bool = True
    id: UUID


class FeedbackItem(BaseModel):
    id: UUID
    feedback_type: str = Field(serialization_alias="feedbackType")
    question: str
    comment: Optional[str] = None
    created_at: datetime = Field(serialization_alias="createdAt")

    @classmethod
    def from_record(cls, record: FeedbackRecord) -> FeedbackItem:
        return cls(
            id=record.id,
            feedback_type=record.feedback_type.value,
            question=record.question,
            comment=record.comment,
            created_at=record.created_at,
        )


class FeedbackStatsResponse(BaseModel):
    likes: int
    dislikes: int
    total: int
    recent: list[FeedbackItem]

    @classmethod
    def from_stats(cls, stats: FeedbackStats) -> FeedbackStatsResponse:
        return cls(
            likes=stats.likes,
            dislikes=stats.dislikes,
            total=stats.total,
            recent=[FeedbackItem.from_record(r) for r in stats.recent],
        )


# =============================================================================
# Conversation Schemas
# =============================================================================


class MessageResponse(BaseModel):
    """A stored message with all of its parts."""

    id: UUID
    role: str
    parts: list[dict[str, Any]]
    text: str
    model_used: Optional[str] = Field(default=None, serialization_alias="modelUsed")
    tokens_used: Optional[int] = Field(default=None, serialization_alias="tokensUsed")
    created_at: datetime = Field(serialization_alias="createdAt")

    model_config = ConfigDict(protected_namespaces=())

    @classmethod
    def from_message(cls, message: Message) -> MessageResponse:
        return cls(
            id=message.id,
            role=message.role.value,
            parts=[p.to_dict() for p in message.parts],
            text=message.text,
            model_used=message.model_used,
            tokens_used=message.tokens_used,
            created_at=message.created_at,
        )


class ConversationListItem(BaseModel):
    """Summary of a conversation for listing."""

    id: UUID
    title: Optional[str] = None
    message_count: int = Field(serialization_alias="messageCount")
    preview: Optional[str] = None
    created_at: datetime = Field(serialization_alias="createdAt")
    updated_at: datetime = Field(serialization_alias="updatedAt")

    @classmethod
    def from_conversation(cls, conversation: Conversation) -> ConversationListItem:
        return cls(
            id=conversation.id,
            title=conversation.title,
            message_count=conversation.message_count,
            preview=conversation.metadata.get("preview"),
            created_at=conversation.created_at,
            updated_at=conversation.updated_at,
        )


class ConversationListResponse(BaseModel):
    conversations: list[ConversationListItem]
    total: int
    limit: int


class ConversationResponse(BaseModel):
    """A conversation with its full message history."""

    id: UUID
    title: Optional[str] = None
    message_count: int = Field(serialization_alias="messageCount")
    messages: list[MessageResponse] = []
    created_at: datetime = Field(serialization_alias="createdAt")
    updated_at: datetime = Field(serialization_alias="updatedAt")


# =============================================================================
# Agent Schemas
# =============================================================================


class AgentItem(BaseModel):
    name: str
    description: Optional[str] = None
    category: Optional[str] = None
    tools: list[str]


class AgentListResponse(BaseModel):
    agents: list[AgentItem]
