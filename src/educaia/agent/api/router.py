"""
FastAPI Router for the EducaIA assistant.

Streams answers as Server-Sent Events and exposes the approval, feedback,
conversation and agent endpoints.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from typing import Optional, Union
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status
from fastapi.responses import StreamingResponse

from ..domain.entities import ChatEvent, UserContext
from ..domain.errors import (
    AgentNotFoundError,
    AuthContextError,
    ConfigurationError,
    ConversationBusyError,
    EducaIAError,
    NotFoundError,
)
from ..domain.ports import IEventSink, IFeedbackStore
from ..orchestrator import AgentOrchestrator
from .auth import get_user_context
from .schemas import (
    AgentItem,
    AgentListResponse,
    ApprovalRequest,
    ApprovalResponse,
    ConversationListItem,
    ConversationListResponse,
    ConversationResponse,
    FeedbackRequest,
    FeedbackResponse,
    FeedbackStatsResponse,
    MessageResponse,
    StreamRequestBody,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/educa-ia", tags=["educa-ia"])

KEEPALIVE_SECONDS = 15.0

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",  # Disable Nginx buffering
}


# =============================================================================
# Dependencies
# =============================================================================


class AgentDependencies:
    """Container for API dependencies.

    Injected at application startup.
    """

    orchestrator: Optional[AgentOrchestrator] = None
    feedback_store: Optional[IFeedbackStore] = None


_deps = AgentDependencies()


def create_agent_dependencies(
    orchestrator: Optional[AgentOrchestrator],
    feedback_store: Optional[IFeedbackStore],
) -> None:
    """Initialize API dependencies.

    Call this at application startup (and with None at shutdown).
    """
    _deps.orchestrator = orchestrator
    _deps.feedback_store = feedback_store


def get_orchestrator() -> AgentOrchestrator:
    if not _deps.orchestrator:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Assistant not initialized",
        )
    return _deps.orchestrator


def get_feedback_store() -> IFeedbackStore:
    if not _deps.feedback_store:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Feedback store not initialized",
        )
    return _deps.feedback_store


def to_http_error(error: Union[ValueError, EducaIAError]) -> HTTPException:
    """Map a pre-flight failure to an HTTP error with a client-safe detail."""
    if isinstance(error, ValueError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(error))
    if isinstance(error, AuthContextError):
        code = status.HTTP_401_UNAUTHORIZED
    elif isinstance(error, (AgentNotFoundError, NotFoundError)):
        code = status.HTTP_404_NOT_FOUND
    elif isinstance(error, ConversationBusyError):
        code = status.HTTP_409_CONFLICT
    elif isinstance(error, ConfigurationError):
        code = status.HTTP_503_SERVICE_UNAVAILABLE
    else:
        code = status.HTTP_500_INTERNAL_SERVER_ERROR
    return HTTPException(status_code=code, detail=error.public_message)


# =============================================================================
# SSE
# =============================================================================


def format_sse(event: ChatEvent) -> str:
    payload = json.dumps(event.to_dict(), ensure_ascii=False, default=str)
    return f"data: {payload}\n\n"


class QueueEventSink(IEventSink):
    """Buffers encoded SSE chunks between the stream task and the response."""

    def __init__(self):
        self._queue: asyncio.Queue[Optional[str]] = asyncio.Queue()

    async def emit(self, event: ChatEvent) -> None:
        await self._queue.put(format_sse(event))

    async def close(self) -> None:
        await self._queue.put(None)

    async def get(self) -> Optional[str]:
        """Next chunk, or None once the stream has ended."""
        return await self._queue.get()


# =============================================================================
# Streaming Endpoint
# =============================================================================


@router.post("/stream")
async def stream_answer(
    body: StreamRequestBody,
    request: Request,
    context: UserContext = Depends(get_user_context),
    orchestrator: AgentOrchestrator = Depends(get_orchestrator),
) -> StreamingResponse:
    """Stream one answer as Server-Sent Events.

    Pre-flight problems (bad input, unknown agent or conversation, busy
    conversation, unconfigured provider) are returned as regular JSON
    errors. Once streaming starts, every failure arrives as a single
    ``error`` event.
    """
    try:
        prepared = await orchestrator.start(body.to_domain(), context)
    except (ValueError, EducaIAError) as e:
        logger.warning(f"Stream rejected for user {context.user_id}: {e}")
        raise to_http_error(e)

    sink = QueueEventSink()
    conversation_id = prepared.conversation.id
    task = asyncio.create_task(
        orchestrator.run(prepared, sink),
        name=f"educa-ia-stream-{conversation_id}",
    )

    async def event_generator():
        try:
            while True:
                if await request.is_disconnected():
                    logger.info(f"Client disconnected from stream {conversation_id}")
                    break

                try:
                    chunk = await asyncio.wait_for(sink.get(), timeout=KEEPALIVE_SECONDS)
                except asyncio.TimeoutError:
                    yield ": keep-alive\n\n"
                    continue

                if chunk is None:
                    break
                yield chunk
        finally:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
            orchestrator.release(prepared)

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={**SSE_HEADERS, "X-Conversation-Id": str(conversation_id)},
    )


# =============================================================================
# Approvals
# =============================================================================


@router.post("/approvals", response_model=ApprovalResponse)
async def decide_approval(
    body: ApprovalRequest,
    context: UserContext = Depends(get_user_context),
    orchestrator: AgentOrchestrator = Depends(get_orchestrator),
) -> ApprovalResponse:
    """Approve or reject a tool call that is waiting for the user."""
    try:
        applied = orchestrator.approvals.resolve(
            body.tool_call_id,
            body.approved,
            context,
            conversation_id=body.conversation_id,
            reason=body.reason,
        )
    except NotFoundError as e:
        raise to_http_error(e)

    if not applied:
        decision = "already_decided"
    else:
        decision = "approved" if body.approved else "rejected"
    return ApprovalResponse(tool_call_id=body.tool_call_id, status=decision)


# =============================================================================
# Feedback
# =============================================================================


@router.post("/feedback", response_model=FeedbackResponse, status_code=status.HTTP_201_CREATED)
async def submit_feedback(
    body: FeedbackRequest,
    context: UserContext = Depends(get_user_context),
    feedback_store: IFeedbackStore = Depends(get_feedback_store),
) -> FeedbackResponse:
    """Record a like/dislike on an answer."""
    try:
        record = await feedback_store.save(body.to_record(context.tenant_id, context.user_id))
    except EducaIAError as e:
        logger.error(f"Failed to save feedback for message {body.message_id}: {e}")
        raise to_http_error(e)

    logger.info(
        f"Feedback {record.feedback_type.value} saved for message {record.message_id} "
        f"(tenant: {context.tenant_id})"
    )
    return FeedbackResponse(id=record.id)


@router.get("/feedback/stats", response_model=FeedbackStatsResponse)
async def feedback_stats(
    context: UserContext = Depends(get_user_context),
    feedback_store: IFeedbackStore = Depends(get_feedback_store),
) -> FeedbackStatsResponse:
    """Like/dislike counts and the latest commented feedback of the tenant."""
    try:
        stats = await feedback_store.get_stats(context.tenant_id)
    except EducaIAError as e:
        raise to_http_error(e)
    return FeedbackStatsResponse.from_stats(stats)


FINE_TUNING_SYSTEM_PROMPT = (
    "Você é o EducaIA, assistente do SmartGesTI Ensino. Use as informações "
    "do contexto para responder de forma precisa e útil."
)


def to_fine_tuning_line(example: dict) -> str:
    """One JSONL line in the OpenAI chat fine-tuning format."""
    system = FINE_TUNING_SYSTEM_PROMPT
    if example.get("context"):
        system = f"{system}\n\nCONTEXTO:\n{example['context']}"
    return json.dumps(
        {
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": example["question"]},
                {"role": "assistant", "content": example["answer"]},
            ]
        },
        ensure_ascii=False,
    )


@router.get("/feedback/export")
async def export_feedback(
    limit: int = Query(default=1000, ge=1, le=10000),
    context: UserContext = Depends(get_user_context),
    feedback_store: IFeedbackStore = Depends(get_feedback_store),
) -> Response:
    """Liked answers of the tenant as a JSONL fine-tuning file."""
    try:
        examples = await feedback_store.export_for_fine_tuning(context.tenant_id, limit)
    except EducaIAError as e:
        raise to_http_error(e)

    logger.info(f"Exported {len(examples)} fine-tuning examples (tenant: {context.tenant_id})")
    return Response(
        content="\n".join(to_fine_tuning_line(example) for example in examples),
        media_type="application/jsonl",
        headers={
            "Content-Disposition": 'attachment; filename="educaia-finetuning.jsonl"',
        },
    )


# =============================================================================
# Conversations
# =============================================================================


@router.get("/conversations", response_model=ConversationListResponse)
async def list_conversations(
    limit: int = Query(default=20, ge=1, le=100),
    context: UserContext = Depends(get_user_context),
    orchestrator: AgentOrchestrator = Depends(get_orchestrator),
) -> ConversationListResponse:
    """List the user's conversations, most recently updated first."""
    try:
        conversations = await orchestrator.conversations.list_conversations(context, limit)
    except EducaIAError as e:
        raise to_http_error(e)

    return ConversationListResponse(
        conversations=[ConversationListItem.from_conversation(c) for c in conversations],
        total=len(conversations),
        limit=limit,
    )


@router.get("/conversations/{conversation_id}", response_model=ConversationResponse)
async def get_conversation(
    conversation_id: UUID,
    context: UserContext = Depends(get_user_context),
    orchestrator: AgentOrchestrator = Depends(get_orchestrator),
) -> ConversationResponse:
    """Get a conversation with all of its messages."""
    store = orchestrator.conversations.store
    try:
        conversation = await store.get(conversation_id, context)
        messages = await store.get_history(conversation_id, context)
    except EducaIAError as e:
        raise to_http_error(e)

    return ConversationResponse(
        id=conversation.id,
        title=conversation.title,
        message_count=conversation.message_count,
        messages=[MessageResponse.from_message(m) for m in messages],
        created_at=conversation.created_at,
        updated_at=conversation.updated_at,
    )


@router.delete("/conversations/{conversation_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_conversation(
    conversation_id: UUID,
    context: UserContext = Depends(get_user_context),
    orchestrator: AgentOrchestrator = Depends(get_orchestrator),
) -> Response:
    """Delete a conversation (tombstoned, never hard-deleted)."""
    manager = orchestrator.conversations
    try:
        await manager.store.get(conversation_id, context)
        if manager.is_active(conversation_id):
            raise ConversationBusyError(conversation_id)
        await manager.delete(conversation_id, context)
    except EducaIAError as e:
        raise to_http_error(e)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# =============================================================================
# Agents
# =============================================================================


@router.get("/agents", response_model=AgentListResponse)
async def list_agents(
    context: UserContext = Depends(get_user_context),
    orchestrator: AgentOrchestrator = Depends(get_orchestrator),
) -> AgentListResponse:
    """Agents registered in this service."""
    return AgentListResponse(
        agents=[
            AgentItem(
                name=agent.name,
                description=agent.description,
                category=agent.category,
                tools=agent.tool_names,
            )
            for agent in orchestrator.agents.list()
        ]
    )
