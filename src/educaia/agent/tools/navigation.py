"""Page suggestion tool."""

from __future__ import annotations

import logging
from typing import Any, Optional

from pydantic import Field

from ..domain.entities import ToolContext
from ..domain.ports import IPageIndex
from .base import BaseTool, ToolArgs

logger = logging.getLogger(__name__)

MAX_SUGGESTIONS = 5


class NavigateToPageArgs(ToolArgs):
    query: str = Field(
        ...,
        min_length=1,
        description="O que o usuário está procurando (funcionalidade, página, recurso)",
    )
    category: Optional[str] = Field(
        None,
        description="Categoria opcional para filtrar (ia, dashboard, academico, administracao)",
    )


def score_page(page: dict[str, Any], query: str) -> int:
    """Word-match score of a page against a query.

    +2 for every query word longer than two characters found in the page's
    title, menu path or tags, +5 when the whole query appears.
    """
    query_lower = query.lower()
    search_text = " ".join([
        page.get("title") or "",
        page.get("menu_path") or "",
        " ".join(page.get("tags") or []),
    ]).lower()

    score = sum(2 for word in query_lower.split() if len(word) > 2 and word in search_text)
    if query_lower in search_text:
        score += 5
    return score


class NavigateToPageTool(BaseTool):
    name = "navigateToPage"
    description = (
        "Sugere páginas e menus do sistema SmartGesTI Ensino. Use quando o usuário "
        'perguntar "onde encontro...", "como acessar...", ou quando precisar direcionar '
        "para uma funcionalidade específica."
    )
    args_model = NavigateToPageArgs
    error_message = "Erro ao buscar páginas do sistema"
    timeout_seconds = 10

    def __init__(self, pages: IPageIndex):
        self.pages = pages

    async def execute(
        self, args: NavigateToPageArgs, context: ToolContext
    ) -> dict[str, Any]:
        pages = await self.pages.list_pages(context, category=args.category)
        if not pages:
            return {
                "found": False,
                "message": "Nenhuma página encontrada para essa busca.",
                "suggestions": [],
            }

        scored = [(score_page(page, args.query), page) for page in pages]
        ranked = sorted(
            (item for item in scored if item[0] > 0),
            key=lambda item: item[0],
            reverse=True,
        )[:MAX_SUGGESTIONS]

        if not ranked:
            return {
                "found": False,
                "message": (
                    "Não encontrei páginas específicas, mas posso ajudar a navegar no sistema."
                ),
                "suggestions": [],
            }

        suggestions = []
        for _, page in ranked:
            route = page.get("route_pattern")
            if route and context.school_slug:
                route = route.replace(":slug", context.school_slug)
            suggestions.append({
                "title": page.get("title"),
                "route": route,
                "routePattern": page.get("route_pattern"),
                "menuPath": page.get("menu_path"),
                "category": page.get("category"),
            })

        return {
            "found": True,
            "message": f"Encontrei {len(suggestions)} página(s) relacionada(s).",
            "suggestions": suggestions,
        }
