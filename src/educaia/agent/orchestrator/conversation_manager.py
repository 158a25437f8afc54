"""
Conversation Manager.

Handles conversation lifecycle for the orchestrator: creation, history
windows, message storage and the one-stream-per-conversation rule.
"""

from __future__ import annotations

import logging
from typing import Optional
from uuid import UUID

from ..domain.entities import Conversation, Message, UserContext
from ..domain.errors import ConversationBusyError
from ..domain.ports import IConversationStore
from ..memory.conversation import make_title

logger = logging.getLogger(__name__)


class ConversationManager:
    """Manages conversation lifecycle operations.

    Usage:
        manager = ConversationManager(conversation_store, max_history_messages=30)

        conversation = await manager.get_or_create(None, context, title="Olá")
        manager.acquire(conversation.id)
        try:
            await manager.add_message(conversation.id, user_message, context)
            history = await manager.get_history(conversation.id, context)
        finally:
            manager.release(conversation.id)
    """

    def __init__(
        self,
        conversation_store: IConversationStore,
        max_history_messages: int = 30,
    ):
        """Initialize the conversation manager.

        Args:
            conversation_store: Store for conversation persistence
            max_history_messages: Messages of history replayed to the model
        """
        self.store = conversation_store
        self.max_history_messages = max_history_messages
        self._active: set[UUID] = set()

    async def get_or_create(
        self,
        conversation_id: Optional[UUID],
        context: UserContext,
        title: Optional[str] = None,
    ) -> Conversation:
        """Load an existing conversation or start a new one.

        Raises:
            NotFoundError: If ``conversation_id`` is not a live conversation
                of this user
        """
        if conversation_id is not None:
            conversation = await self.store.get(conversation_id, context)
            logger.debug(
                f"Retrieved existing conversation {conversation_id} "
                f"for user {context.user_id}"
            )
            return conversation

        conversation = await self.store.create(
            Conversation(
                tenant_id=context.tenant_id,
                user_id=context.user_id,
                school_id=context.school_id,
                title=make_title(title or ""),
            )
        )
        logger.info(f"Created new conversation {conversation.id} for user {context.user_id}")
        return conversation

    def acquire(self, conversation_id: UUID) -> None:
        """Mark a conversation as streaming.

        Raises:
            ConversationBusyError: If another stream holds it
        """
        if conversation_id in self._active:
            raise ConversationBusyError(conversation_id)
        self._active.add(conversation_id)

    def release(self, conversation_id: UUID) -> None:
        self._active.discard(conversation_id)

    def is_active(self, conversation_id: UUID) -> bool:
        return conversation_id in self._active

    async def add_message(
        self,
        conversation_id: UUID,
        message: Message,
        context: UserContext,
    ) -> Message:
        stored = await self.store.append(conversation_id, message, context)
        logger.debug(f"Added {message.role.value} message to conversation {conversation_id}")
        return stored

    async def get_history(
        self,
        conversation_id: UUID,
        context: UserContext,
    ) -> list[Message]:
        """The most recent messages, oldest first."""
        messages = await self.store.get_history(conversation_id, context)
        return self.window(messages)

    def window(self, messages: list[Message]) -> list[Message]:
        if len(messages) <= self.max_history_messages:
            return messages
        return messages[-self.max_history_messages:]

    async def list_conversations(
        self, context: UserContext, limit: int = 20
    ) -> list[Conversation]:
        conversations = await self.store.list(context, limit)
        logger.debug(
            f"Listed {len(conversations)} conversations for user {context.user_id}"
        )
        return conversations

    async def delete(self, conversation_id: UUID, context: UserContext) -> None:
        await self.store.delete(conversation_id, context)
