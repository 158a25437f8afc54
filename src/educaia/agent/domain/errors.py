"""
Error taxonomy for the EducaIA agent module.

Tool failures and transient provider failures are absorbed in-band by the
orchestrator. Everything else either never reaches a live stream
(configuration, auth context, lookups) or ends the stream with a single
terminal error event.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .entities import ErrorType


class EducaIAError(Exception):
    """Base exception for the agent module."""

    # Message shown to end users; the real cause only goes to the logs
    public_message = "Ocorreu um erro ao processar sua mensagem."


class ConfigurationError(EducaIAError):
    """Bad agent, tool or provider wiring."""

    public_message = "O assistente não está configurado corretamente."


class AuthContextError(EducaIAError):
    """Missing tenant or user context."""

    public_message = "Contexto de autenticação ausente."


class AgentNotFoundError(EducaIAError):
    """No agent registered under the requested name."""

    public_message = "Agente não encontrado."

    def __init__(self, name: str):
        super().__init__(f"Agent '{name}' is not registered")
        self.name = name


class NotFoundError(EducaIAError):
    """Record missing or outside the caller's tenant/user scope.

    Out-of-scope access deliberately looks identical to a missing record
    so that existence is never leaked across tenants.
    """

    public_message = "Registro não encontrado."


class ConversationBusyError(EducaIAError):
    """A stream is already active for the conversation."""

    public_message = "Já existe uma resposta em andamento nesta conversa."

    def __init__(self, conversation_id: object):
        super().__init__(f"Conversation {conversation_id} already has an active stream")
        self.conversation_id = conversation_id


class ToolExecutionError(EducaIAError):
    """A tool failed, timed out or rejected its input."""

    def __init__(self, message: str, tool_name: Optional[str] = None):
        super().__init__(message)
        self.tool_name = tool_name


class ToolArgumentError(ToolExecutionError):
    """Tool arguments did not match the tool's schema."""


class ProviderError(EducaIAError):
    """LLM provider failure.

    Attributes:
        error_type: Classification used for the retry decision
        original_error: Underlying vendor exception, if any
    """

    public_message = "O serviço de IA está indisponível no momento. Tente novamente."

    def __init__(
        self,
        message: str,
        error_type: Optional[ErrorType] = None,
        original_error: Optional[Exception] = None,
    ):
        from .entities import ErrorType

        super().__init__(message)
        self.error_type = error_type or ErrorType.RECOVERABLE
        self.original_error = original_error

    @property
    def is_transient(self) -> bool:
        """True if a retry may succeed."""
        from .entities import ErrorType

        return self.error_type in (
            ErrorType.RATE_LIMIT,
            ErrorType.TIMEOUT,
            ErrorType.RECOVERABLE,
        )


class PersistenceError(EducaIAError):
    """Conversation or feedback storage failure."""

    public_message = "Não foi possível salvar a conversa."


class ApprovalError(EducaIAError):
    """Approval decision could not be applied."""
