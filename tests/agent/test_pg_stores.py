"""
Tests for the PostgreSQL stores and tool backends.

Tests cover:
- Tenant-scoped transactions and database error mapping
- Conversation store scoping, tombstones and reference checks
- Feedback store inserts, stats and export
- Tool data-source adapters

The asyncpg pool is mocked; the SQL itself is not executed.
"""

import uuid
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import asyncpg
import pytest

from educaia.agent.domain.entities import (
    Conversation,
    FeedbackRecord,
    FeedbackType,
    Message,
    MessagePart,
    MessageRole,
    ToolContext,
    UserContext,
)
from educaia.agent.domain.errors import NotFoundError, PersistenceError
from educaia.agent.memory import ConversationStore, FeedbackStore, tenant_transaction
from educaia.agent.memory.conversation import EMPTY_PREVIEW
from educaia.agent.tools.backends import (
    PostgresAgentCatalog,
    PostgresKnowledgeIndex,
    PostgresQueryRunner,
    PostgresUserDirectory,
)

NOW = datetime(2025, 3, 10, 14, 30, tzinfo=timezone.utc)
OWNER = UserContext(tenant_id="tenant-1", user_id="user-1")


# ============================================
# Helpers
# ============================================


class AsyncContextManager:
    """Helper class to create async context managers for mocking."""

    def __init__(self, return_value):
        self.return_value = return_value

    async def __aenter__(self):
        return self.return_value

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        return False


@pytest.fixture
def mock_db_pool():
    """Create a mock database pool."""
    pool = MagicMock()

    mock_conn = AsyncMock()
    mock_conn.execute = AsyncMock(return_value="SELECT 1")
    mock_conn.fetch = AsyncMock(return_value=[])
    mock_conn.fetchrow = AsyncMock(return_value=None)
    mock_conn.fetchval = AsyncMock(return_value=1)
    mock_conn.transaction = MagicMock(return_value=AsyncContextManager(None))

    pool.acquire = MagicMock(return_value=AsyncContextManager(mock_conn))
    pool._mock_conn = mock_conn
    return pool


def conversation_row(conversation_id, **overrides):
    row = {
        "id": conversation_id,
        "tenant_id": "tenant-1",
        "user_id": "user-1",
        "school_id": None,
        "title": "Como lanço notas?",
        "message_count": 2,
        "metadata": {},
        "created_at": NOW,
        "updated_at": NOW,
    }
    row.update(overrides)
    return row


def message_row(role, parts):
    return {
        "id": uuid.uuid4(),
        "role": role,
        "parts": parts,
        "model_used": None,
        "tokens_used": None,
        "created_at": NOW,
    }


def sql_of(mock_call) -> str:
    return " ".join(mock_call.args[0].split())


# ============================================
# Tenant transactions
# ============================================


class TestTenantTransaction:

    @pytest.mark.asyncio
    async def test_sets_tenant_setting(self, mock_db_pool):
        async with tenant_transaction(mock_db_pool, "tenant-1") as conn:
            assert conn is mock_db_pool._mock_conn

        conn.execute.assert_awaited_once_with(
            "SELECT set_config('app.tenant_id', $1, true)", "tenant-1"
        )
        conn.transaction.assert_called_once()

    @pytest.mark.asyncio
    async def test_driver_error_becomes_persistence_error(self, mock_db_pool):
        mock_db_pool._mock_conn.fetch.side_effect = asyncpg.InterfaceError("connection closed")

        with pytest.raises(PersistenceError):
            async with tenant_transaction(mock_db_pool, "tenant-1") as conn:
                await conn.fetch("SELECT 1")

    @pytest.mark.asyncio
    async def test_connection_failure_becomes_persistence_error(self, mock_db_pool):
        mock_db_pool.acquire.side_effect = OSError("connection refused")

        with pytest.raises(PersistenceError):
            async with tenant_transaction(mock_db_pool, "tenant-1"):
                pass

    @pytest.mark.asyncio
    async def test_domain_errors_pass_through(self, mock_db_pool):
        with pytest.raises(NotFoundError):
            async with tenant_transaction(mock_db_pool, "tenant-1"):
                raise NotFoundError("missing")


# ============================================
# Conversation store
# ============================================


class TestConversationStore:
    """Tests for the asyncpg conversation store."""

    @pytest.mark.asyncio
    async def test_create(self, mock_db_pool):
        conn = mock_db_pool._mock_conn
        conn.fetchrow.return_value = {"created_at": NOW, "updated_at": NOW}
        conversation = Conversation(tenant_id="tenant-1", user_id="user-1", title="Olá")

        created = await ConversationStore(mock_db_pool).create(conversation)

        assert created.created_at == NOW
        args = conn.fetchrow.await_args.args
        assert "INSERT INTO assistant_conversations" in sql_of(conn.fetchrow.await_args)
        assert args[1:4] == (conversation.id, "tenant-1", "user-1")

    @pytest.mark.asyncio
    async def test_get_scoped_to_owner(self, mock_db_pool):
        conn = mock_db_pool._mock_conn
        conversation_id = uuid.uuid4()
        conn.fetchrow.return_value = conversation_row(conversation_id)
        conn.fetch.return_value = [
            message_row("user", [{"type": "text", "text": "Como lanço notas?"}]),
            message_row("assistant", [{"type": "text", "text": "Acesse Diário."}]),
        ]

        conversation = await ConversationStore(mock_db_pool).get(conversation_id, OWNER)

        sql = sql_of(conn.fetchrow.await_args)
        assert "tenant_id = $2 AND user_id = $3" in sql
        assert "deleted_at IS NULL" in sql
        assert conn.fetchrow.await_args.args[1:] == (conversation_id, "tenant-1", "user-1")
        assert [m.role for m in conversation.messages] == [MessageRole.USER, MessageRole.ASSISTANT]
        assert conversation.messages[1].text == "Acesse Diário."

    @pytest.mark.asyncio
    async def test_get_missing(self, mock_db_pool):
        with pytest.raises(NotFoundError):
            await ConversationStore(mock_db_pool).get(uuid.uuid4(), OWNER)

    @pytest.mark.asyncio
    async def test_append_user_message(self, mock_db_pool):
        conn = mock_db_pool._mock_conn
        conn.fetchrow.return_value = {"created_at": NOW}
        conversation_id = uuid.uuid4()
        message = Message.from_text(MessageRole.USER, "Olá")

        stored = await ConversationStore(mock_db_pool).append(conversation_id, message, OWNER)

        assert stored.created_at == NOW
        assert stored.conversation_id == conversation_id
        insert_args = conn.fetchrow.await_args.args
        assert insert_args[2:5] == (conversation_id, "tenant-1", "user")
        assert insert_args[5] == [{"type": "text", "text": "Olá"}]
        assert "message_count = message_count + 1" in sql_of(conn.execute.await_args)

    @pytest.mark.asyncio
    async def test_append_to_missing_conversation(self, mock_db_pool):
        conn = mock_db_pool._mock_conn
        conn.fetchval.return_value = None

        with pytest.raises(NotFoundError):
            await ConversationStore(mock_db_pool).append(
                uuid.uuid4(), Message.from_text(MessageRole.USER, "Olá"), OWNER
            )

        conn.fetchrow.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_append_dangling_tool_result(self, mock_db_pool):
        conn = mock_db_pool._mock_conn
        message = Message(
            role=MessageRole.ASSISTANT,
            parts=[MessagePart.tool_result_part("c9", "echo", {"echo": "oi"})],
        )

        with pytest.raises(PersistenceError):
            await ConversationStore(mock_db_pool).append(uuid.uuid4(), message, OWNER)

        conn.fetchrow.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_append_result_of_earlier_call(self, mock_db_pool):
        conn = mock_db_pool._mock_conn
        conn.fetch.return_value = [
            message_row("assistant", [
                {"type": "tool-call", "toolCallId": "c1", "toolName": "echo", "args": {}},
            ]),
        ]
        conn.fetchrow.return_value = {"created_at": NOW}
        message = Message(
            role=MessageRole.ASSISTANT,
            parts=[MessagePart.tool_result_part("c1", "echo", {"echo": "oi"})],
        )

        await ConversationStore(mock_db_pool).append(uuid.uuid4(), message, OWNER)

        conn.fetchrow.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_list_adds_preview(self, mock_db_pool):
        conn = mock_db_pool._mock_conn
        conn.fetch.return_value = [
            {**conversation_row(uuid.uuid4()), "last_parts": [{"type": "text", "text": "Resposta"}]},
            {**conversation_row(uuid.uuid4()), "last_parts": None},
        ]

        conversations = await ConversationStore(mock_db_pool).list(OWNER, limit=5)

        assert [c.metadata["preview"] for c in conversations] == ["Resposta", EMPTY_PREVIEW]
        assert conn.fetch.await_args.args[1:] == ("tenant-1", "user-1", 5)
        assert "deleted_at IS NULL" in sql_of(conn.fetch.await_args)

    @pytest.mark.asyncio
    async def test_history_of_tombstoned_conversation(self, mock_db_pool):
        mock_db_pool._mock_conn.fetchval.return_value = None

        with pytest.raises(NotFoundError):
            await ConversationStore(mock_db_pool).get_history(uuid.uuid4(), OWNER)

    @pytest.mark.asyncio
    async def test_delete_is_tombstone(self, mock_db_pool):
        conn = mock_db_pool._mock_conn
        conn.execute.return_value = "UPDATE 1"
        conversation_id = uuid.uuid4()

        await ConversationStore(mock_db_pool).delete(conversation_id, OWNER)

        sql = sql_of(conn.execute.await_args)
        assert sql.startswith("UPDATE assistant_conversations SET deleted_at = NOW()")
        assert "DELETE" not in sql
        assert conn.execute.await_args.args[1:] == (conversation_id, "tenant-1", "user-1")

    @pytest.mark.asyncio
    async def test_delete_nothing_updated(self, mock_db_pool):
        mock_db_pool._mock_conn.execute.return_value = "UPDATE 0"

        with pytest.raises(NotFoundError):
            await ConversationStore(mock_db_pool).delete(uuid.uuid4(), OWNER)

    @pytest.mark.asyncio
    async def test_database_failure(self, mock_db_pool):
        mock_db_pool._mock_conn.fetchrow.side_effect = asyncpg.InterfaceError("pool closed")

        with pytest.raises(PersistenceError):
            await ConversationStore(mock_db_pool).get(uuid.uuid4(), OWNER)


# ============================================
# Feedback store
# ============================================


class TestFeedbackStore:

    @pytest.mark.asyncio
    async def test_save_defaults_model(self, mock_db_pool):
        conn = mock_db_pool._mock_conn
        conn.fetchrow.return_value = {"created_at": NOW}
        record = FeedbackRecord(
            message_id="msg-1",
            question="Como emitir boletim?",
            answer="Acesse Acadêmico > Boletins.",
            feedback_type=FeedbackType.DISLIKE,
            tenant_id="tenant-1",
        )

        saved = await FeedbackStore(mock_db_pool).save(record)

        args = conn.fetchrow.await_args.args
        assert args[2] == "tenant-1"
        assert args[7] == "dislike"
        assert args[-1] == "gpt-5-mini"
        assert saved.created_at == NOW

    @pytest.mark.asyncio
    async def test_stats(self, mock_db_pool):
        conn = mock_db_pool._mock_conn
        conn.fetchrow.return_value = {"likes": 3, "dislikes": None}
        conn.fetch.return_value = [{
            "id": uuid.uuid4(),
            "user_id": "user-1",
            "message_id": "msg-1",
            "question": "Como emitir boletim?",
            "answer": "Acesse Boletins.",
            "feedback_type": "dislike",
            "feedback_comment": "Faltou o caminho",
            "model_used": "gpt-5-mini",
            "created_at": NOW,
        }]

        stats = await FeedbackStore(mock_db_pool).get_stats("tenant-1")

        assert (stats.likes, stats.dislikes, stats.total) == (3, 0, 3)
        assert stats.recent[0].comment == "Faltou o caminho"
        assert stats.recent[0].feedback_type == FeedbackType.DISLIKE
        assert conn.fetch.await_args.args[1:] == ("tenant-1", 10)

    @pytest.mark.asyncio
    async def test_export_liked_pairs(self, mock_db_pool):
        conn = mock_db_pool._mock_conn
        conn.fetch.return_value = [
            {"question": "Q", "answer": "A", "context_used": "Manual de notas"},
        ]

        examples = await FeedbackStore(mock_db_pool).export_for_fine_tuning("tenant-1", limit=50)

        assert examples == [{"question": "Q", "answer": "A", "context": "Manual de notas"}]
        assert "feedback_type = 'like'" in sql_of(conn.fetch.await_args)
        assert conn.fetch.await_args.args[1:] == ("tenant-1", 50)


# ============================================
# Tool backends
# ============================================


class TestPostgresBackends:
    """Tests for the tool data-source adapters."""

    @pytest.mark.asyncio
    async def test_knowledge_search(self, mock_db_pool, tool_context):
        conn = mock_db_pool._mock_conn
        chunk_id = uuid.uuid4()
        conn.fetch.return_value = [{"id": chunk_id, "content": "Lançar notas", "similarity": 0.91}]
        embedder = MagicMock()
        embedder.embed = AsyncMock(return_value=([0.1, 0.2], "text-embedding-3-small", 2))

        results = await PostgresKnowledgeIndex(mock_db_pool, embedder).search(
            "notas", tool_context, top_k=3, category="academico"
        )

        embedder.embed.assert_awaited_once_with("notas")
        assert conn.fetch.await_args.args[1:] == ("[0.1,0.2]", 0.5, 3, "academico")
        assert results == [{"id": str(chunk_id), "content": "Lançar notas", "similarity": 0.91}]

    @pytest.mark.asyncio
    async def test_agent_catalog_scoped_to_tenant_and_school(self, mock_db_pool, tool_context):
        conn = mock_db_pool._mock_conn
        conn.fetchrow.return_value = {"id": "agent-1", "name": "Planejador", "created_at": NOW}

        agent = await PostgresAgentCatalog(mock_db_pool).get_agent("Planejador", tool_context)

        assert conn.fetchrow.await_args.args[1:] == ("tenant-1", "school-1", "Planejador")
        assert "visibility <> 'private'" in sql_of(conn.fetchrow.await_args)
        assert agent["created_at"] == NOW.isoformat()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("returned,expected", [
        (None, []),
        ({"total": 3}, [{"total": 3}]),
        ([{"a": 1}, {"a": 2}], [{"a": 1}, {"a": 2}]),
    ])
    async def test_query_runner_shapes(self, mock_db_pool, tool_context, returned, expected):
        conn = mock_db_pool._mock_conn
        conn.fetchval.return_value = returned

        rows = await PostgresQueryRunner(mock_db_pool).run("SELECT 1", tool_context)

        assert rows == expected
        conn.fetchval.assert_awaited_once_with(
            "SELECT execute_safe_query($1, $2)", "SELECT 1", "tenant-1"
        )

    @pytest.mark.asyncio
    async def test_user_profile(self, mock_db_pool, tool_context):
        mock_db_pool._mock_conn.fetchrow.return_value = {
            "id": "user-1",
            "full_name": "Maria Souza",
            "email": "maria@escola.com",
            "role": "teacher",
            "avatar_url": None,
            "ai_summary": None,
            "created_at": NOW,
        }

        profile = await PostgresUserDirectory(mock_db_pool).get_profile(tool_context)

        assert profile["name"] == "Maria Souza"
        assert profile["memberSince"] == NOW.isoformat()

    @pytest.mark.asyncio
    async def test_school_needs_school_id(self, mock_db_pool):
        context = ToolContext.from_user_context(OWNER)

        school = await PostgresUserDirectory(mock_db_pool).get_school(context)

        assert school is None
        mock_db_pool.acquire.assert_not_called()

    @pytest.mark.asyncio
    async def test_preferences_default_to_empty(self, mock_db_pool, tool_context):
        mock_db_pool._mock_conn.fetchval.return_value = None

        preferences = await PostgresUserDirectory(mock_db_pool).get_preferences(tool_context)

        assert preferences == {}
