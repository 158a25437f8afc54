"""
PostgreSQL adapters for the tool data-source ports.

All reads run in a tenant-scoped transaction and filter by tenant_id
explicitly as well.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from ..domain.entities import ToolContext
from ..domain.ports import (
    IAgentCatalog,
    IKnowledgeIndex,
    ILLMProvider,
    IPageIndex,
    IQueryRunner,
    IUserDirectory,
)
from ..memory.pg import IAsyncDBPool, record_to_dict, tenant_transaction

logger = logging.getLogger(__name__)

DEFAULT_SIMILARITY_THRESHOLD = 0.5

_AGENT_COLUMNS = """
    id, name, description, category, use_case, difficulty, estimated_time,
    tags, rating, usage_count, visibility, flow, workflow, instructions,
    how_it_helps, best_uses, created_at
"""


def to_vector_literal(embedding: list[float]) -> str:
    """Format an embedding as a pgvector literal."""
    return "[" + ",".join(str(x) for x in embedding) + "]"


class PostgresKnowledgeIndex(IKnowledgeIndex):
    """pgvector search through the ``match_rag_chunks`` function.

    The query is embedded with the given provider before searching.
    """

    def __init__(
        self,
        db_pool: IAsyncDBPool,
        embedder: ILLMProvider,
        similarity_threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
    ):
        self.db = db_pool
        self.embedder = embedder
        self.similarity_threshold = similarity_threshold

    async def search(
        self,
        query: str,
        context: ToolContext,
        top_k: int,
        category: Optional[str] = None,
    ) -> list[dict[str, Any]]:
        embedding, _, _ = await self.embedder.embed(query)

        async with tenant_transaction(self.db, context.tenant_id) as conn:
            rows = await conn.fetch(
                """
                SELECT id, content, title, category, similarity,
                       section_title, route_pattern, menu_path
                FROM match_rag_chunks($1::vector, $2, $3, $4)
                """,
                to_vector_literal(embedding),
                self.similarity_threshold,
                top_k,
                category,
            )

        logger.info(f"Semantic search returned {len(rows)} results")
        return [record_to_dict(row) for row in rows]


class PostgresAgentCatalog(IAgentCatalog):
    """Active, non-private agents of the tenant (and school, when known)."""

    def __init__(self, db_pool: IAsyncDBPool):
        self.db = db_pool

    async def list_agents(
        self,
        context: ToolContext,
        category: Optional[str] = None,
        limit: int = 10,
    ) -> list[dict[str, Any]]:
        async with tenant_transaction(self.db, context.tenant_id) as conn:
            rows = await conn.fetch(
                f"""
                SELECT {_AGENT_COLUMNS}
                FROM agents
                WHERE tenant_id = $1
                  AND is_active = TRUE
                  AND visibility <> 'private'
                  AND ($2::text IS NULL OR school_id::text = $2 OR school_id IS NULL)
                  AND ($3::text IS NULL OR category = $3)
                ORDER BY usage_count DESC
                LIMIT $4
                """,
                context.tenant_id,
                context.school_id,
                category,
                limit,
            )
        return [record_to_dict(row) for row in rows]

    async def get_agent(
        self, agent_id: str, context: ToolContext
    ) -> Optional[dict[str, Any]]:
        async with tenant_transaction(self.db, context.tenant_id) as conn:
            row = await conn.fetchrow(
                f"""
                SELECT {_AGENT_COLUMNS}
                FROM agents
                WHERE tenant_id = $1
                  AND is_active = TRUE
                  AND visibility <> 'private'
                  AND ($2::text IS NULL OR school_id::text = $2 OR school_id IS NULL)
                  AND (id::text = $3 OR name ILIKE '%' || $3 || '%')
                ORDER BY (id::text = $3) DESC, usage_count DESC
                LIMIT 1
                """,
                context.tenant_id,
                context.school_id,
                agent_id,
            )
        return record_to_dict(row) if row else None


class PostgresQueryRunner(IQueryRunner):
    """Runs a validated SELECT through ``execute_safe_query``.

    The database function applies its own read-only checks and tenant
    scoping on top of the tool's validation.
    """

    def __init__(self, db_pool: IAsyncDBPool):
        self.db = db_pool

    async def run(self, query: str, context: ToolContext) -> list[dict[str, Any]]:
        async with tenant_transaction(self.db, context.tenant_id) as conn:
            result = await conn.fetchval(
                "SELECT execute_safe_query($1, $2)",
                query,
                context.tenant_id,
            )

        if result is None:
            return []
        if isinstance(result, dict):
            return [result]
        return list(result)


class PostgresPageIndex(IPageIndex):
    """Navigable pages from ``rag_documents`` rows with a route pattern."""

    def __init__(self, db_pool: IAsyncDBPool):
        self.db = db_pool

    async def list_pages(
        self, context: ToolContext, category: Optional[str] = None
    ) -> list[dict[str, Any]]:
        async with tenant_transaction(self.db, context.tenant_id) as conn:
            rows = await conn.fetch(
                """
                SELECT id, title, route_pattern, menu_path, category, tags
                FROM rag_documents
                WHERE route_pattern IS NOT NULL
                  AND ($1::text IS NULL OR category = $1)
                """,
                category,
            )
        return [record_to_dict(row) for row in rows]


class PostgresUserDirectory(IUserDirectory):
    """The caller's own user and school rows."""

    def __init__(self, db_pool: IAsyncDBPool):
        self.db = db_pool

    async def get_profile(self, context: ToolContext) -> Optional[dict[str, Any]]:
        async with tenant_transaction(self.db, context.tenant_id) as conn:
            row = await conn.fetchrow(
                """
                SELECT id, full_name, email, role, avatar_url, ai_summary, created_at
                FROM users
                WHERE id::text = $1
                """,
                context.user_id,
            )
        if not row:
            logger.warning(f"Profile not found for user {context.user_id}")
            return None

        user = record_to_dict(row)
        return {
            "id": user["id"],
            "name": user["full_name"],
            "email": user["email"],
            "role": user["role"],
            "avatarUrl": user["avatar_url"],
            "aiSummary": user["ai_summary"],
            "memberSince": user["created_at"],
        }

    async def get_school(self, context: ToolContext) -> Optional[dict[str, Any]]:
        if not context.school_id:
            return None
        async with tenant_transaction(self.db, context.tenant_id) as conn:
            row = await conn.fetchrow(
                """
                SELECT id, name, slug, address, phone, email, logo_url
                FROM schools
                WHERE id::text = $1
                """,
                context.school_id,
            )
        if not row:
            return None

        school = record_to_dict(row)
        school["logoUrl"] = school.pop("logo_url")
        return school

    async def get_preferences(self, context: ToolContext) -> dict[str, Any]:
        async with tenant_transaction(self.db, context.tenant_id) as conn:
            ai_context = await conn.fetchval(
                "SELECT ai_context FROM users WHERE id::text = $1",
                context.user_id,
            )
        return ai_context if isinstance(ai_context, dict) else {}
