"""
Port interfaces (abstract base classes) for the agent module.

These define the contracts that adapters must implement.
Following the Ports & Adapters (Hexagonal) architecture pattern.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, AsyncIterator, Optional
from uuid import UUID

if TYPE_CHECKING:
    from .entities import (
        ChatEvent,
        Conversation,
        FeedbackRecord,
        FeedbackStats,
        Message,
        ModelSettings,
        ProviderEvent,
        ToolContext,
        ToolDefinition,
        UserContext,
    )


# ============================================
# LLM Provider Interface
# ============================================


class ILLMProvider(ABC):
    """Interface for LLM providers (GPT, Claude, Ollama, etc.).

    Implementations handle the specifics of each LLM API while
    providing a consistent interface to the orchestrator.
    """

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the provider identifier (e.g., 'openai')."""
        pass

    @property
    @abstractmethod
    def model_name(self) -> str:
        """Return the model identifier (e.g., 'gpt-5-mini')."""
        pass

    @abstractmethod
    def chat(
        self,
        messages: list[Message],
        tools: Optional[list[ToolDefinition]] = None,
        system_prompt: Optional[str] = None,
        settings: Optional[ModelSettings] = None,
    ) -> AsyncIterator[ProviderEvent]:
        """Generate a response to the conversation.

        The returned iterator is lazy and single-use. Tool results are
        supplied by calling chat() again with the assistant message
        (tool-call and tool-result parts) appended to ``messages``.

        Args:
            messages: Conversation history
            tools: Available tools for the model to use
            system_prompt: System prompt to prepend
            settings: Temperature, max tokens and reasoning effort

        Yields:
            ProviderEvent objects, ending with FINISH

        Raises:
            ProviderError: On any vendor failure
        """
        pass

    @abstractmethod
    async def embed(self, text: str) -> tuple[list[float], str, int]:
        """Generate an embedding for the given text.

        Returns:
            Tuple of (embedding_vector, model_name, dimension)
        """
        pass

    async def close(self) -> None:
        """Release network resources."""


# ============================================
# Tool Interface
# ============================================


class ITool(ABC):
    """A capability the model may invoke.

    Tools are stateless; per-call state lives in the ToolCall record.
    """

    name: str
    description: str
    requires_approval: bool = False
    timeout_seconds: float = 30

    @abstractmethod
    def definition(self) -> ToolDefinition:
        """Schema exposed to the model."""
        pass

    @abstractmethod
    def validate(self, arguments: dict[str, Any]) -> Any:
        """Parse raw arguments into the tool's typed argument object.

        Raises:
            ToolArgumentError: If the arguments do not match the schema
        """
        pass

    @abstractmethod
    async def execute(self, args: Any, context: ToolContext) -> Any:
        """Run the tool.

        Raises:
            ToolExecutionError: On failure
        """
        pass


# ============================================
# Tool Backends
# ============================================


class IKnowledgeIndex(ABC):
    """Semantic search over a tenant's knowledge base."""

    @abstractmethod
    async def search(
        self,
        query: str,
        context: ToolContext,
        top_k: int,
        category: Optional[str] = None,
    ) -> list[dict[str, Any]]:
        """Return the most similar chunks, best first."""
        pass


class IAgentCatalog(ABC):
    """Read access to the tenant's configured AI agents."""

    @abstractmethod
    async def list_agents(
        self,
        context: ToolContext,
        category: Optional[str] = None,
        limit: int = 10,
    ) -> list[dict[str, Any]]:
        pass

    @abstractmethod
    async def get_agent(
        self, agent_id: str, context: ToolContext
    ) -> Optional[dict[str, Any]]:
        pass


class IQueryRunner(ABC):
    """Executes validated read-only SQL within a tenant scope."""

    @abstractmethod
    async def run(self, query: str, context: ToolContext) -> list[dict[str, Any]]:
        pass


class IPageIndex(ABC):
    """Catalogue of navigable pages (title, route pattern, menu path)."""

    @abstractmethod
    async def list_pages(
        self, context: ToolContext, category: Optional[str] = None
    ) -> list[dict[str, Any]]:
        pass


class IUserDirectory(ABC):
    """Lookups of the caller's own profile data."""

    @abstractmethod
    async def get_profile(self, context: ToolContext) -> Optional[dict[str, Any]]:
        pass

    @abstractmethod
    async def get_school(self, context: ToolContext) -> Optional[dict[str, Any]]:
        pass

    @abstractmethod
    async def get_preferences(self, context: ToolContext) -> dict[str, Any]:
        pass


# ============================================
# Conversation Store Interface
# ============================================


class IConversationStore(ABC):
    """Interface for conversation persistence.

    Every operation is scoped by (tenant_id, user_id). Conversations outside
    that scope, or tombstoned ones, raise NotFoundError.
    """

    @abstractmethod
    async def create(self, conversation: Conversation) -> Conversation:
        """Create a new conversation."""
        pass

    @abstractmethod
    async def get(self, conversation_id: UUID, context: UserContext) -> Conversation:
        """Get a conversation with all of its messages."""
        pass

    @abstractmethod
    async def append(
        self, conversation_id: UUID, message: Message, context: UserContext
    ) -> Message:
        """Durably append a message to a conversation."""
        pass

    @abstractmethod
    async def list(self, context: UserContext, limit: int = 20) -> list[Conversation]:
        """List live conversations, most recently updated first."""
        pass

    @abstractmethod
    async def get_history(
        self, conversation_id: UUID, context: UserContext
    ) -> list[Message]:
        """Messages in creation order with all parts intact."""
        pass

    @abstractmethod
    async def delete(self, conversation_id: UUID, context: UserContext) -> None:
        """Tombstone a conversation."""
        pass


# ============================================
# Feedback Store Interface
# ============================================


class IFeedbackStore(ABC):
    """Append-only storage of feedback records."""

    @abstractmethod
    async def save(self, record: FeedbackRecord) -> FeedbackRecord:
        pass

    @abstractmethod
    async def get_stats(self, tenant_id: str, recent_limit: int = 10) -> FeedbackStats:
        pass

    @abstractmethod
    async def export_for_fine_tuning(
        self, tenant_id: str, limit: int = 1000
    ) -> list[dict[str, Any]]:
        pass


# ============================================
# Event Sink Interface
# ============================================


class IEventSink(ABC):
    """Transport-side consumer of a chat event stream."""

    @abstractmethod
    async def emit(self, event: ChatEvent) -> None:
        pass

    @abstractmethod
    async def close(self) -> None:
        pass
