"""Agent API layer.

Provides the FastAPI router that streams EducaIA answers as Server-Sent Events.
"""

from .router import create_agent_dependencies, router
from .schemas import (
    ApprovalRequest,
    ConversationListResponse,
    ConversationResponse,
    FeedbackRequest,
    StreamRequestBody,
)

__all__ = [
    "router",
    "create_agent_dependencies",
    "ApprovalRequest",
    "ConversationListResponse",
    "ConversationResponse",
    "FeedbackRequest",
    "StreamRequestBody",
]
