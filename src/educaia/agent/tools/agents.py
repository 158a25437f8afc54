"""Tools for browsing the tenant's configured AI agents."""

from __future__ import annotations

import logging
from typing import Any, Optional

from pydantic import Field

from ..domain.entities import ToolContext
from ..domain.errors import ToolExecutionError
from ..domain.ports import IAgentCatalog
from .base import BaseTool, ToolArgs

logger = logging.getLogger(__name__)

# Category value meaning "no filter"
ALL_CATEGORIES = "todos"


class ListAgentsArgs(ToolArgs):
    category: Optional[str] = Field(
        None, description='Categoria dos agentes (use "todos" para todas)'
    )
    limit: int = Field(10, ge=1, le=50, description="Quantidade máxima de agentes")


class GetAgentDetailsArgs(ToolArgs):
    agent_id: str = Field(
        ...,
        alias="agentId",
        min_length=1,
        description="ID ou nome do agente",
    )


def _workflow_labels(agent: dict[str, Any]) -> list[str]:
    nodes = (agent.get("workflow") or {}).get("nodes")
    if not isinstance(nodes, list):
        return []
    labels = [(node.get("data") or {}).get("label") or node.get("type") for node in nodes]
    return [label for label in labels if label]


def _summarize(agent: dict[str, Any]) -> dict[str, Any]:
    labels = _workflow_labels(agent)
    return {
        "id": agent.get("id"),
        "name": agent.get("name"),
        "description": agent.get("description"),
        "category": agent.get("category"),
        "useCase": agent.get("use_case"),
        "difficulty": agent.get("difficulty"),
        "estimatedTime": agent.get("estimated_time"),
        "tags": agent.get("tags") or [],
        "rating": agent.get("rating"),
        "usageCount": agent.get("usage_count") or 0,
        "visibility": agent.get("visibility"),
        "flowDescription": " → ".join(labels) if labels else (agent.get("flow") or ""),
    }


class ListAgentsTool(BaseTool):
    name = "listAgents"
    description = (
        "Lista os agentes de IA disponíveis na escola (públicos e colaborativos), "
        "ordenados pelos mais usados."
    )
    args_model = ListAgentsArgs
    error_message = "Erro ao buscar agentes"

    def __init__(self, catalog: IAgentCatalog):
        self.catalog = catalog

    async def execute(self, args: ListAgentsArgs, context: ToolContext) -> dict[str, Any]:
        category = None if args.category in (None, ALL_CATEGORIES) else args.category
        agents = await self.catalog.list_agents(context, category=category, limit=args.limit)

        logger.info(f"Found {len(agents)} public agents for tenant {context.tenant_id}")
        return {
            "success": True,
            "agents": [_summarize(a) for a in agents],
            "total": len(agents),
        }


class GetAgentDetailsTool(BaseTool):
    name = "getAgentDetails"
    description = (
        "Obtém os detalhes completos de um agente de IA (como ajuda, melhores usos "
        "e etapas do fluxo) pelo ID ou nome."
    )
    args_model = GetAgentDetailsArgs
    error_message = "Erro ao buscar agente"

    def __init__(self, catalog: IAgentCatalog):
        self.catalog = catalog

    async def execute(
        self, args: GetAgentDetailsArgs, context: ToolContext
    ) -> dict[str, Any]:
        agent = await self.catalog.get_agent(args.agent_id, context)
        if agent is None:
            raise ToolExecutionError(
                f'Agente "{args.agent_id}" não encontrado entre os agentes disponíveis.',
                tool_name=self.name,
            )

        details = _summarize(agent)
        details.pop("flowDescription")

        steps = []
        nodes = (agent.get("workflow") or {}).get("nodes")
        if isinstance(nodes, list):
            for idx, node in enumerate(nodes, start=1):
                data = node.get("data") or {}
                label = data.get("label") or node.get("type") or "Nó"
                desc = data.get("description")
                steps.append(f"{idx}. {label}: {desc}" if desc else f"{idx}. {label}")

        details.update({
            "howItHelps": agent.get("how_it_helps"),
            "bestUses": agent.get("best_uses"),
            "flowSteps": steps,
        })
        return {"success": True, "agent": details}
