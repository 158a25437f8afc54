"""Knowledge base search tool (RAG)."""

from __future__ import annotations

import logging
from typing import Any, Optional

from pydantic import Field

from ..domain.entities import ResponseMode, ToolContext
from ..domain.ports import IKnowledgeIndex
from .base import BaseTool, ToolArgs

logger = logging.getLogger(__name__)

# (top_k, max content chars) per response mode
MODE_LIMITS = {
    ResponseMode.FAST: (3, 300),
    ResponseMode.DETAILED: (6, 800),
}


class RetrieveKnowledgeArgs(ToolArgs):
    query: str = Field(
        ...,
        min_length=1,
        description="A pergunta ou termo de busca para encontrar informações na base de conhecimento",
    )
    top_k: Optional[int] = Field(
        None,
        alias="topK",
        ge=1,
        le=10,
        description="Número máximo de resultados a retornar",
    )
    category: Optional[str] = Field(
        None,
        description='Categoria específica para filtrar resultados (ex: "api", "ui", "config")',
    )


def truncate(text: str, limit: int) -> str:
    return text if len(text) <= limit else text[:limit] + "..."


class RetrieveKnowledgeTool(BaseTool):
    """Semantic search over the tenant's knowledge base.

    Fast mode returns the 3 best chunks trimmed to 300 characters;
    detailed mode returns 6 chunks trimmed to 800 characters.
    """

    name = "retrieveKnowledge"
    description = (
        "Busca QUALQUER informação na base de conhecimento do sistema. Use SEMPRE que o "
        "usuário perguntar sobre o sistema, suas funcionalidades, processos, configurações "
        "ou qualquer dúvida. Retorna os documentos mais relevantes via busca semântica."
    )
    args_model = RetrieveKnowledgeArgs
    timeout_seconds = 20
    error_message = "Erro ao buscar na base de conhecimento"

    def __init__(self, index: IKnowledgeIndex):
        self.index = index

    async def execute(
        self, args: RetrieveKnowledgeArgs, context: ToolContext
    ) -> dict[str, Any]:
        default_top_k, max_chars = MODE_LIMITS[context.response_mode]
        top_k = args.top_k or default_top_k

        logger.debug(
            f"RAG search: '{args.query}' (topK: {top_k}, mode: {context.response_mode.value}, "
            f"category: {args.category or 'all'})"
        )

        results = await self.index.search(
            args.query, context, top_k=top_k, category=args.category
        )
        results = results[:top_k]

        return {
            "query": args.query,
            "mode": context.response_mode.value,
            "results": [
                {
                    "id": r.get("id"),
                    "title": r.get("title"),
                    "category": r.get("category"),
                    "similarity": r.get("similarity"),
                    "sectionTitle": r.get("section_title"),
                    "menuPath": r.get("menu_path"),
                    "routePattern": r.get("route_pattern"),
                    "content": truncate(r.get("content") or "", max_chars),
                }
                for r in results
            ],
            "count": len(results),
        }
