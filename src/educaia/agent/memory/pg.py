"""
PostgreSQL helpers shared by the stores and tool backends.

Every query runs inside a transaction with ``app.tenant_id`` set so that
row level security policies apply.
"""

from __future__ import annotations

import json
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional, Protocol

import asyncpg

from ..domain.errors import PersistenceError

logger = logging.getLogger(__name__)


class IAsyncDBPool(Protocol):
    """Protocol for async database pool."""

    def acquire(self): ...
    async def execute(self, query: str, *args) -> str: ...
    async def fetch(self, query: str, *args) -> list[Any]: ...
    async def fetchrow(self, query: str, *args) -> Optional[Any]: ...
    async def fetchval(self, query: str, *args) -> Any: ...


async def init_connection(conn) -> None:
    """Decode json/jsonb columns to Python objects."""
    for type_name in ("json", "jsonb"):
        await conn.set_type_codec(
            type_name,
            encoder=lambda value: json.dumps(value, ensure_ascii=False, default=str),
            decoder=json.loads,
            schema="pg_catalog",
        )


async def create_pool(database_url: str, min_size: int = 2, max_size: int = 10):
    """Create the shared asyncpg pool."""
    return await asyncpg.create_pool(
        database_url,
        min_size=min_size,
        max_size=max_size,
        init=init_connection,
    )


@asynccontextmanager
async def tenant_transaction(db: IAsyncDBPool, tenant_id: str) -> AsyncIterator[Any]:
    """Acquire a connection and open a tenant-scoped transaction.

    Raises:
        PersistenceError: On any database or connection failure
    """
    try:
        async with db.acquire() as conn:
            async with conn.transaction():
                # SET LOCAL does not accept bind parameters
                await conn.execute(
                    "SELECT set_config('app.tenant_id', $1, true)", tenant_id
                )
                yield conn
    except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError) as e:
        logger.error(f"Database error for tenant {tenant_id}: {e}")
        raise PersistenceError(f"Database operation failed: {e}") from e


def record_to_dict(row: Any) -> dict[str, Any]:
    """Convert an asyncpg Record to a plain dict with JSON-friendly values."""
    result = {}
    for key, value in dict(row).items():
        if hasattr(value, "isoformat"):
            value = value.isoformat()
        elif value is not None and not isinstance(
            value, (str, int, float, bool, list, dict)
        ):
            value = str(value)
        result[key] = value
    return result
