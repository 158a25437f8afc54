"""Conversation and feedback persistence."""

from .conversation import ConversationStore, InMemoryConversationStore
from .feedback import FeedbackStore, InMemoryFeedbackStore
from .pg import IAsyncDBPool, create_pool, tenant_transaction

__all__ = [
    "ConversationStore",
    "InMemoryConversationStore",
    "FeedbackStore",
    "InMemoryFeedbackStore",
    "IAsyncDBPool",
    "create_pool",
    "tenant_transaction",
]
