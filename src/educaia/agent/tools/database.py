"""
Read-only database query tool.

Every call needs human approval; the orchestrator enforces that. The tool
itself only accepts a single SELECT statement.
"""

from __future__ import annotations

import logging
import re
from typing import Any

from pydantic import Field

from ..domain.entities import ToolContext
from ..domain.errors import ToolExecutionError
from ..domain.ports import IQueryRunner
from .base import BaseTool, ToolArgs

logger = logging.getLogger(__name__)

BLOCKED_KEYWORDS = (
    "DROP",
    "DELETE",
    "UPDATE",
    "INSERT",
    "ALTER",
    "CREATE",
    "TRUNCATE",
    "EXEC",
    "EXECUTE",
)

_BLOCKED_PATTERN = re.compile(r"\b(" + "|".join(BLOCKED_KEYWORDS) + r")\b", re.IGNORECASE)


class QueryDatabaseArgs(ToolArgs):
    query: str = Field(
        ...,
        min_length=1,
        description="Query SQL SELECT a ser executada. Não pode conter comandos perigosos.",
    )
    description: str = Field(
        ...,
        description="Descrição do que você está tentando descobrir com esta query",
    )


def check_select_only(query: str) -> str:
    """Return the normalized query or raise if it is not a lone SELECT.

    Raises:
        ToolExecutionError: On anything other than a single SELECT
    """
    normalized = query.strip().rstrip(";").strip()

    if not normalized.upper().startswith("SELECT"):
        raise ToolExecutionError("Por segurança, apenas queries SELECT são permitidas")

    if ";" in normalized:
        raise ToolExecutionError("Apenas uma query por vez é permitida")

    match = _BLOCKED_PATTERN.search(normalized)
    if match:
        raise ToolExecutionError(
            f"Query contém comando não permitido: {match.group(1).upper()}"
        )

    return normalized


class QueryDatabaseTool(BaseTool):
    name = "queryDatabase"
    description = (
        "Executa consultas SQL SELECT no banco de dados para buscar informações sobre "
        "dados do sistema. Apenas queries SELECT são permitidas por segurança. "
        "Requer aprovação do usuário."
    )
    args_model = QueryDatabaseArgs
    requires_approval = True
    timeout_seconds = 15
    error_message = "Erro ao executar a consulta"

    def __init__(self, runner: IQueryRunner):
        self.runner = runner

    async def execute(self, args: QueryDatabaseArgs, context: ToolContext) -> dict[str, Any]:
        query = check_select_only(args.query)

        logger.info(
            f"Executing approved database query for tenant {context.tenant_id}: "
            f"{args.description}"
        )
        rows = await self.runner.run(query, context)

        return {
            "success": True,
            "data": rows,
            "rowCount": len(rows),
            "description": args.description,
        }
