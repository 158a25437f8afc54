"""
Conversation Store Implementation.

Handles conversation and message persistence with tenant isolation.
Messages keep their full part list (text, reasoning, tool calls and tool
results) as JSONB so history can be replayed to any provider.
"""

from __future__ import annotations

import asyncio
import copy
import logging
from typing import Any, Optional
from uuid import UUID

from ..domain.entities import (
    Conversation,
    Message,
    MessagePart,
    MessageRole,
    UserContext,
    check_tool_result_references,
    utcnow,
)
from ..domain.errors import NotFoundError, PersistenceError
from ..domain.ports import IConversationStore
from .pg import IAsyncDBPool, tenant_transaction

logger = logging.getLogger(__name__)

PREVIEW_LENGTH = 50
TITLE_LENGTH = 50
EMPTY_PREVIEW = "Nova conversa"


def preview_text(message: Optional[Message]) -> str:
    """Short preview of a message for conversation lists."""
    if message is None:
        return EMPTY_PREVIEW
    text = message.text
    if len(text) > PREVIEW_LENGTH:
        return text[:PREVIEW_LENGTH] + "..."
    return text


def make_title(text: str) -> str:
    """Conversation title from the first user question."""
    text = " ".join(text.split())
    if not text:
        return EMPTY_PREVIEW
    if len(text) > TITLE_LENGTH:
        return text[:TITLE_LENGTH] + "..."
    return text


def _not_found(conversation_id: UUID) -> NotFoundError:
    return NotFoundError(f"Conversation {conversation_id} not found or access denied")


def _validate_references(history: list[Message], message: Message) -> None:
    try:
        check_tool_result_references(history, message)
    except ValueError as e:
        raise PersistenceError(str(e)) from e


# ============================================
# PostgreSQL Store
# ============================================


class ConversationStore(IConversationStore):
    """PostgreSQL-based conversation store with tenant isolation.

    Uses RLS policies for tenant isolation. All queries also filter by
    tenant_id and user_id explicitly and skip tombstoned conversations.

    Usage:
        store = ConversationStore(db_pool)

        conv = await store.create(Conversation(
            tenant_id="tenant-123",
            user_id="user-456",
            title="Como cadastro uma turma?",
        ))

        await store.append(
            conv.id,
            Message.from_text(MessageRole.USER, "Como cadastro uma turma?"),
            context,
        )

        history = await store.get_history(conv.id, context)
    """

    def __init__(self, db_pool: IAsyncDBPool):
        """Initialize the conversation store.

        Args:
            db_pool: Async database connection pool
        """
        self.db = db_pool

    @staticmethod
    def _row_to_message(row: Any, conversation_id: UUID) -> Message:
        return Message(
            id=row["id"],
            conversation_id=conversation_id,
            role=MessageRole(row["role"]),
            parts=[MessagePart.from_dict(p) for p in row["parts"] or []],
            model_used=row["model_used"],
            tokens_used=row["tokens_used"],
            created_at=row["created_at"],
        )

    @staticmethod
    def _row_to_conversation(row: Any) -> Conversation:
        return Conversation(
            id=row["id"],
            tenant_id=row["tenant_id"],
            user_id=row["user_id"],
            school_id=row["school_id"],
            title=row["title"],
            message_count=row["message_count"],
            metadata=dict(row["metadata"] or {}),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    async def _assert_live(self, conn, conversation_id: UUID, context: UserContext) -> None:
        exists = await conn.fetchval(
            """
            SELECT 1 FROM assistant_conversations
            WHERE id = $1 AND tenant_id = $2 AND user_id = $3
              AND deleted_at IS NULL
            FOR UPDATE
            """,
            conversation_id,
            context.tenant_id,
            context.user_id,
        )
        if not exists:
            raise _not_found(conversation_id)

    async def _fetch_messages(self, conn, conversation_id: UUID) -> list[Message]:
        rows = await conn.fetch(
            """
            SELECT id, role, parts, model_used, tokens_used, created_at
            FROM assistant_messages
            WHERE conversation_id = $1
            ORDER BY created_at ASC, seq ASC
            """,
            conversation_id,
        )
        return [self._row_to_message(row, conversation_id) for row in rows]

    async def create(self, conversation: Conversation) -> Conversation:
        """Create a new conversation.

        Args:
            conversation: Conversation to create

        Returns:
            Created conversation with database timestamps
        """
        async with tenant_transaction(self.db, conversation.tenant_id) as conn:
            row = await conn.fetchrow(
                """
                INSERT INTO assistant_conversations (
                    id, tenant_id, user_id, school_id, title, metadata
                ) VALUES ($1, $2, $3, $4, $5, $6)
                RETURNING created_at, updated_at
                """,
                conversation.id,
                conversation.tenant_id,
                conversation.user_id,
                conversation.school_id,
                conversation.title,
                conversation.metadata,
            )
            conversation.created_at = row["created_at"]
            conversation.updated_at = row["updated_at"]

        logger.info(
            f"Created conversation {conversation.id} for user {conversation.user_id}"
        )
        return conversation

    async def get(self, conversation_id: UUID, context: UserContext) -> Conversation:
        """Get a conversation with all of its messages.

        Raises:
            NotFoundError: If missing, tombstoned or outside the caller's scope
        """
        async with tenant_transaction(self.db, context.tenant_id) as conn:
            row = await conn.fetchrow(
                """
                SELECT id, tenant_id, user_id, school_id, title,
                       message_count, metadata, created_at, updated_at
                FROM assistant_conversations
                WHERE id = $1 AND tenant_id = $2 AND user_id = $3
                  AND deleted_at IS NULL
                """,
                conversation_id,
                context.tenant_id,
                context.user_id,
            )
            if not row:
                raise _not_found(conversation_id)

            conversation = self._row_to_conversation(row)
            conversation.messages = await self._fetch_messages(conn, conversation_id)

        return conversation

    async def append(
        self, conversation_id: UUID, message: Message, context: UserContext
    ) -> Message:
        """Durably append a message and bump the conversation counters.

        Raises:
            NotFoundError: If the conversation is not live for this user
            PersistenceError: On storage failure or a dangling tool-result
        """
        message.conversation_id = conversation_id

        async with tenant_transaction(self.db, context.tenant_id) as conn:
            await self._assert_live(conn, conversation_id, context)

            if message.role == MessageRole.ASSISTANT:
                history = await self._fetch_messages(conn, conversation_id)
                _validate_references(history, message)

            row = await conn.fetchrow(
                """
                INSERT INTO assistant_messages (
                    id, conversation_id, tenant_id, role, parts,
                    model_used, tokens_used
                ) VALUES ($1, $2, $3, $4, $5, $6, $7)
                RETURNING created_at
                """,
                message.id,
                conversation_id,
                context.tenant_id,
                message.role.value,
                [p.to_dict() for p in message.parts],
                message.model_used,
                message.tokens_used,
            )
            message.created_at = row["created_at"]

            await conn.execute(
                """
                UPDATE assistant_conversations
                SET message_count = message_count + 1, updated_at = NOW()
                WHERE id = $1
                """,
                conversation_id,
            )

        logger.debug(
            f"Added {message.role.value} message to conversation {conversation_id}"
        )
        return message

    async def list(self, context: UserContext, limit: int = 20) -> list[Conversation]:
        """List live conversations, most recently updated first.

        Each conversation carries ``metadata["preview"]`` with the start
        of its last message.
        """
        async with tenant_transaction(self.db, context.tenant_id) as conn:
            rows = await conn.fetch(
                """
                SELECT c.id, c.tenant_id, c.user_id, c.school_id, c.title,
                       c.message_count, c.metadata, c.created_at, c.updated_at,
                       (SELECT m.parts FROM assistant_messages m
                        WHERE m.conversation_id = c.id
                        ORDER BY m.created_at DESC, m.seq DESC LIMIT 1) AS last_parts
                FROM assistant_conversations c
                WHERE c.tenant_id = $1 AND c.user_id = $2
                  AND c.deleted_at IS NULL
                ORDER BY c.updated_at DESC
                LIMIT $3
                """,
                context.tenant_id,
                context.user_id,
                limit,
            )

        conversations = []
        for row in rows:
            conv = self._row_to_conversation(row)
            last = None
            if row["last_parts"] is not None:
                last = Message(
                    role=MessageRole.ASSISTANT,
                    parts=[MessagePart.from_dict(p) for p in row["last_parts"]],
                )
            conv.metadata["preview"] = preview_text(last)
            conversations.append(conv)
        return conversations

    async def get_history(
        self, conversation_id: UUID, context: UserContext
    ) -> list[Message]:
        async with tenant_transaction(self.db, context.tenant_id) as conn:
            exists = await conn.fetchval(
                """
                SELECT 1 FROM assistant_conversations
                WHERE id = $1 AND tenant_id = $2 AND user_id = $3
                  AND deleted_at IS NULL
                """,
                conversation_id,
                context.tenant_id,
                context.user_id,
            )
            if not exists:
                raise _not_found(conversation_id)
            return await self._fetch_messages(conn, conversation_id)

    async def delete(self, conversation_id: UUID, context: UserContext) -> None:
        """Tombstone a conversation. Its messages are kept."""
        async with tenant_transaction(self.db, context.tenant_id) as conn:
            result = await conn.execute(
                """
                UPDATE assistant_conversations
                SET deleted_at = NOW()
                WHERE id = $1 AND tenant_id = $2 AND user_id = $3
                  AND deleted_at IS NULL
                """,
                conversation_id,
                context.tenant_id,
                context.user_id,
            )

        if result == "UPDATE 0":
            raise _not_found(conversation_id)
        logger.info(f"Deleted conversation {conversation_id}")


# ============================================
# In-Memory Store
# ============================================


class InMemoryConversationStore(IConversationStore):
    """Process-local conversation store.

    Used when no DATABASE_URL is configured and in tests. Returned objects
    are copies so callers cannot mutate stored state.
    """

    def __init__(self):
        self._conversations: dict[UUID, Conversation] = {}
        self._lock = asyncio.Lock()

    def _lookup(self, conversation_id: UUID, context: UserContext) -> Conversation:
        conv = self._conversations.get(conversation_id)
        if (
            conv is None
            or conv.is_deleted
            or conv.tenant_id != context.tenant_id
            or conv.user_id != context.user_id
        ):
            raise _not_found(conversation_id)
        return conv

    async def create(self, conversation: Conversation) -> Conversation:
        async with self._lock:
            if conversation.id in self._conversations:
                raise PersistenceError(f"Conversation {conversation.id} already exists")
            self._conversations[conversation.id] = copy.deepcopy(conversation)
        return conversation

    async def get(self, conversation_id: UUID, context: UserContext) -> Conversation:
        async with self._lock:
            return copy.deepcopy(self._lookup(conversation_id, context))

    async def append(
        self, conversation_id: UUID, message: Message, context: UserContext
    ) -> Message:
        async with self._lock:
            conv = self._lookup(conversation_id, context)
            _validate_references(conv.messages, message)
            message.conversation_id = conversation_id
            message.created_at = utcnow()
            conv.messages.append(copy.deepcopy(message))
            conv.message_count += 1
            conv.updated_at = message.created_at
        return message

    async def list(self, context: UserContext, limit: int = 20) -> list[Conversation]:
        async with self._lock:
            live = [
                c for c in self._conversations.values()
                if not c.is_deleted
                and c.tenant_id == context.tenant_id
                and c.user_id == context.user_id
            ]
            live.sort(key=lambda c: c.updated_at, reverse=True)

            result = []
            for conv in live[:limit]:
                summary = copy.deepcopy(conv)
                summary.metadata["preview"] = preview_text(
                    conv.messages[-1] if conv.messages else None
                )
                summary.messages = []
                result.append(summary)
        return result

    async def get_history(
        self, conversation_id: UUID, context: UserContext
    ) -> list[Message]:
        async with self._lock:
            return copy.deepcopy(self._lookup(conversation_id, context).messages)

    async def delete(self, conversation_id: UUID, context: UserContext) -> None:
        async with self._lock:
            self._lookup(conversation_id, context).deleted_at = utcnow()
        logger.info(f"Deleted conversation {conversation_id}")
