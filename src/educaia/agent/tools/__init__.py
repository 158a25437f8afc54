"""Tools the EducaIA agent can call, and the registry that binds them."""

from .agents import GetAgentDetailsTool, ListAgentsTool
from .backends import (
    PostgresAgentCatalog,
    PostgresKnowledgeIndex,
    PostgresPageIndex,
    PostgresQueryRunner,
    PostgresUserDirectory,
)
from .base import BaseTool, ToolArgs
from .database import QueryDatabaseTool, check_select_only
from .knowledge import RetrieveKnowledgeTool
from .navigation import NavigateToPageTool
from .registry import ToolRegistry
from .user_data import GetUserDataTool

__all__ = [
    "BaseTool",
    "ToolArgs",
    "ToolRegistry",
    "RetrieveKnowledgeTool",
    "ListAgentsTool",
    "GetAgentDetailsTool",
    "QueryDatabaseTool",
    "check_select_only",
    "NavigateToPageTool",
    "GetUserDataTool",
    "PostgresKnowledgeIndex",
    "PostgresAgentCatalog",
    "PostgresQueryRunner",
    "PostgresPageIndex",
    "PostgresUserDirectory",
]
