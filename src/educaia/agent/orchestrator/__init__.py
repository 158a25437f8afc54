"""Agent orchestration - the streaming answer loop and its helpers."""

from .agent import AgentOrchestrator, OrchestratorConfig, PreparedStream
from .approval_manager import ApprovalDecision, ApprovalManager, PendingApproval
from .conversation_manager import ConversationManager
from .event_streamer import EventStreamer
from .prompt_builder import PromptBuilder
from .tool_executor import ToolExecutor

__all__ = [
    "AgentOrchestrator",
    "OrchestratorConfig",
    "PreparedStream",
    "ApprovalDecision",
    "ApprovalManager",
    "PendingApproval",
    "ConversationManager",
    "EventStreamer",
    "PromptBuilder",
    "ToolExecutor",
]
