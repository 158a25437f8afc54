"""
Tests for the EducaIA HTTP API.

Runs the router in-process through httpx's ASGI transport with the
scripted provider and in-memory stores. JWT validation is disabled so the
identity comes from the X-Tenant-Id / X-User-Id headers.
"""

import json
import uuid

import httpx
import pytest
from fastapi import FastAPI

from conftest import EchoTool, ScriptedProvider, text_round
from educaia.agent.api import create_agent_dependencies, router
from educaia.agent.api.auth import JWTConfig
from educaia.agent.domain.entities import ProviderEvent, ToolCall, UserContext
from educaia.agent.domain.errors import ProviderError
from educaia.agent.memory import InMemoryFeedbackStore

HEADERS = {"X-Tenant-Id": "tenant-1", "X-User-Id": "user-1", "X-Request-Id": "req-42"}
OTHER_USER = {"X-Tenant-Id": "tenant-1", "X-User-Id": "user-2"}

OWNER = UserContext(tenant_id="tenant-1", user_id="user-1")


def parse_sse(body: str) -> list[dict]:
    events = []
    for block in body.split("\n\n"):
        if block.startswith("data: "):
            events.append(json.loads(block[len("data: "):]))
    return events


def ask(text="Olá", **extra):
    return {"messages": [{"role": "user", "content": text}], **extra}


@pytest.fixture
def api(build_orchestrator, monkeypatch):
    """Factory returning (client, orchestrator) around a scripted provider."""
    monkeypatch.setattr(JWTConfig, "REQUIRE_AUTH", False)

    def _make(provider, tools=()):
        orchestrator = build_orchestrator(provider, tools=tools)
        create_agent_dependencies(orchestrator, InMemoryFeedbackStore())
        app = FastAPI()
        app.include_router(router)
        client = httpx.AsyncClient(
            transport=httpx.ASGITransport(app=app),
            base_url="http://testserver",
            headers=HEADERS,
        )
        return client, orchestrator

    yield _make
    create_agent_dependencies(None, None)


async def stream(client, payload, headers=None):
    response = await client.post("/api/educa-ia/stream", json=payload, headers=headers)
    return response, parse_sse(response.text) if response.status_code == 200 else []


# =============================================================================
# Streaming
# =============================================================================


class TestStreamEndpoint:
    """Tests for POST /stream."""

    @pytest.mark.asyncio
    async def test_streams_events(self, api):
        client, orchestrator = api(ScriptedProvider([text_round("Olá, ", "professora")]))

        response, events = await stream(client, ask())

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        assert response.headers["cache-control"] == "no-cache"
        assert [e["type"] for e in events] == ["token", "token", "usage", "done"]
        assert [e["sequence"] for e in events] == [1, 2, 3, 4]
        assert events[0]["correlationId"] == "req-42"

        done = events[-1]["data"]
        assert done["text"] == "Olá, professora"
        assert response.headers["x-conversation-id"] == done["conversationId"]
        assert not orchestrator.conversations.is_active(uuid.UUID(done["conversationId"]))

    @pytest.mark.asyncio
    async def test_tool_events(self, api):
        provider = ScriptedProvider([
            [
                ProviderEvent.tool_call_request("c1", "echo", {"text": "oi"}),
                ProviderEvent.finish("tool_calls"),
            ],
            text_round("Pronto"),
        ])
        client, _ = api(provider, tools=[EchoTool()])

        _, events = await stream(client, ask())

        assert [e["type"] for e in events][:2] == ["tool_call", "tool_result"]
        assert events[1]["data"]["result"] == {"echo": "oi"}

    @pytest.mark.asyncio
    async def test_continues_conversation(self, api):
        client, _ = api(ScriptedProvider([text_round("Um"), text_round("Dois")]))

        _, first = await stream(client, ask("Primeira"))
        conversation_id = first[-1]["data"]["conversationId"]
        _, second = await stream(client, ask("Segunda", conversationId=conversation_id))

        assert second[-1]["data"]["conversationId"] == conversation_id

    @pytest.mark.asyncio
    async def test_provider_failure_is_error_event(self, api):
        client, _ = api(ScriptedProvider([
            [ProviderEvent.text_delta("Par"), ProviderError("reset")],
        ]))

        response, events = await stream(client, ask())

        assert response.status_code == 200
        assert [e["type"] for e in events] == ["token", "error"]
        assert events[-1]["data"]["errorType"] == "recoverable"

    @pytest.mark.asyncio
    async def test_blank_message(self, api):
        client, _ = api(ScriptedProvider([]))

        response, _ = await stream(client, ask("   "))

        assert response.status_code == 400

    @pytest.mark.asyncio
    @pytest.mark.parametrize("payload", [
        {"messages": []},
        {"messages": [{"role": "user"}]},
        {"messages": [{"role": "robot", "content": "x"}]},
        {"messages": [{"role": "user", "content": "x" * 10001}]},
        ask(temperature=3),
    ])
    async def test_schema_errors(self, api, payload):
        client, _ = api(ScriptedProvider([]))

        response, _ = await stream(client, payload)

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_invalid_part(self, api):
        client, _ = api(ScriptedProvider([]))

        response, _ = await stream(client, {
            "messages": [{"role": "user", "parts": [{"type": "image", "url": "x"}]}],
        })

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_user_tool_result_rejected_without_writes(self, api):
        client, _ = api(ScriptedProvider([]))

        response, _ = await stream(client, {
            "messages": [{"role": "user", "parts": [
                {"type": "text", "text": "oi"},
                {"type": "tool-result", "toolCallId": "nope", "toolName": "echo", "result": {}},
            ]}],
        })

        assert response.status_code == 400
        listed = (await client.get("/api/educa-ia/conversations")).json()
        assert listed["total"] == 0

    @pytest.mark.asyncio
    async def test_unavailable_model(self, api):
        client, _ = api(ScriptedProvider([]))

        response, _ = await stream(client, ask(model="gpt-x-unreleased"))

        assert response.status_code == 503

    @pytest.mark.asyncio
    async def test_unknown_conversation(self, api):
        client, _ = api(ScriptedProvider([]))

        response, _ = await stream(client, ask(conversationId=str(uuid.uuid4())))

        assert response.status_code == 404
        assert response.json()["detail"] == "Registro não encontrado."

    @pytest.mark.asyncio
    async def test_unknown_agent(self, api):
        client, _ = api(ScriptedProvider([]))

        response, _ = await stream(client, ask(agent="ghost"))

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_unconfigured_provider(self, api):
        client, _ = api(ScriptedProvider([]))

        response, _ = await stream(client, ask(provider="anthropic"))

        assert response.status_code == 503

    @pytest.mark.asyncio
    async def test_busy_conversation(self, api):
        client, orchestrator = api(ScriptedProvider([text_round("Um")]))
        _, events = await stream(client, ask())
        conversation_id = events[-1]["data"]["conversationId"]

        orchestrator.conversations.acquire(uuid.UUID(conversation_id))
        response, _ = await stream(client, ask("De novo", conversationId=conversation_id))

        assert response.status_code == 409

    @pytest.mark.asyncio
    async def test_missing_identity(self, api):
        client, _ = api(ScriptedProvider([]))

        response, _ = await stream(client, ask(), headers={"X-User-Id": ""})

        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_not_initialized(self, api):
        client, _ = api(ScriptedProvider([]))
        create_agent_dependencies(None, None)

        response, _ = await stream(client, ask())

        assert response.status_code == 503


# =============================================================================
# Approvals
# =============================================================================


class TestApprovalEndpoint:

    @pytest.mark.asyncio
    async def test_decision_applied_once(self, api):
        client, orchestrator = api(ScriptedProvider([]))
        conversation_id = uuid.uuid4()
        orchestrator.approvals.register(
            ToolCall(id="c1", name="sensitive", arguments={}), OWNER, conversation_id
        )

        first = await client.post("/api/educa-ia/approvals", json={
            "toolCallId": "c1", "approved": False, "conversationId": str(conversation_id),
        })
        second = await client.post("/api/educa-ia/approvals", json={
            "toolCallId": "c1", "approved": True,
        })

        assert first.json() == {"toolCallId": "c1", "status": "rejected"}
        assert second.json()["status"] == "already_decided"

    @pytest.mark.asyncio
    async def test_unknown_call(self, api):
        client, _ = api(ScriptedProvider([]))

        response = await client.post("/api/educa-ia/approvals", json={
            "toolCallId": "ghost", "approved": True,
        })

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_other_user(self, api):
        client, orchestrator = api(ScriptedProvider([]))
        orchestrator.approvals.register(
            ToolCall(id="c1", name="sensitive", arguments={}), OWNER, uuid.uuid4()
        )

        response = await client.post(
            "/api/educa-ia/approvals",
            json={"toolCallId": "c1", "approved": True},
            headers=OTHER_USER,
        )

        assert response.status_code == 404


# =============================================================================
# Feedback
# =============================================================================


class TestFeedbackEndpoints:

    @pytest.mark.asyncio
    async def test_submit_and_stats(self, api):
        client, _ = api(ScriptedProvider([]))
        feedback = {
            "messageId": "msg-1",
            "question": "Como emitir boletim?",
            "answer": "Acesse Acadêmico > Boletins.",
            "feedbackType": "dislike",
            "comment": "Faltou o caminho completo",
            "sources": [{"title": "Boletins"}],
        }

        created = await client.post("/api/educa-ia/feedback", json=feedback)
        await client.post("/api/educa-ia/feedback", json={**feedback, "feedbackType": "like", "comment": None})
        stats = await client.get("/api/educa-ia/feedback/stats")

        assert created.status_code == 201
        assert created.json()["success"] is True
        body = stats.json()
        assert (body["likes"], body["dislikes"], body["total"]) == (1, 1, 2)
        assert body["recent"][0]["comment"] == "Faltou o caminho completo"
        assert body["recent"][0]["feedbackType"] == "dislike"

    @pytest.mark.asyncio
    async def test_invalid_type(self, api):
        client, _ = api(ScriptedProvider([]))

        response = await client.post("/api/educa-ia/feedback", json={
            "messageId": "m", "question": "q", "answer": "a", "feedbackType": "love",
        })

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_stats_scoped_to_tenant(self, api):
        client, _ = api(ScriptedProvider([]))
        await client.post("/api/educa-ia/feedback", json={
            "messageId": "m", "question": "q", "answer": "a", "feedbackType": "like",
        })

        stats = await client.get(
            "/api/educa-ia/feedback/stats",
            headers={"X-Tenant-Id": "tenant-2", "X-User-Id": "user-1"},
        )

        assert stats.json()["total"] == 0

    @pytest.mark.asyncio
    async def test_export_liked_answers(self, api):
        client, _ = api(ScriptedProvider([]))
        liked = {
            "messageId": "msg-1",
            "question": "Como emitir boletim?",
            "answer": "Acesse Acadêmico > Boletins.",
            "feedbackType": "like",
            "contextUsed": "Manual de boletins",
        }
        await client.post("/api/educa-ia/feedback", json=liked)
        await client.post("/api/educa-ia/feedback", json={**liked, "feedbackType": "dislike"})
        await client.post(
            "/api/educa-ia/feedback",
            json=liked,
            headers={"X-Tenant-Id": "tenant-2", "X-User-Id": "user-1"},
        )

        response = await client.get("/api/educa-ia/feedback/export")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("application/jsonl")
        assert "educaia-finetuning.jsonl" in response.headers["content-disposition"]
        lines = response.text.splitlines()
        assert len(lines) == 1
        messages = json.loads(lines[0])["messages"]
        assert [m["role"] for m in messages] == ["system", "user", "assistant"]
        assert messages[0]["content"].endswith("CONTEXTO:\nManual de boletins")
        assert messages[2]["content"] == "Acesse Acadêmico > Boletins."

    @pytest.mark.asyncio
    async def test_export_limit_validation(self, api):
        client, _ = api(ScriptedProvider([]))

        response = await client.get("/api/educa-ia/feedback/export", params={"limit": 0})

        assert response.status_code == 422


# =============================================================================
# Conversations and agents
# =============================================================================


class TestConversationEndpoints:

    @pytest.mark.asyncio
    async def test_list_get_delete(self, api):
        client, _ = api(ScriptedProvider([text_round("Resposta")]))
        _, events = await stream(client, ask("Como lanço notas?"))
        conversation_id = events[-1]["data"]["conversationId"]

        listed = (await client.get("/api/educa-ia/conversations")).json()
        assert listed["total"] == 1
        assert listed["limit"] == 20
        item = listed["conversations"][0]
        assert item["id"] == conversation_id
        assert item["title"] == "Como lanço notas?"
        assert item["messageCount"] == 2
        assert item["preview"] == "Resposta"

        detail = (await client.get(f"/api/educa-ia/conversations/{conversation_id}")).json()
        assert [m["role"] for m in detail["messages"]] == ["user", "assistant"]
        assert detail["messages"][1]["parts"] == [{"type": "text", "text": "Resposta"}]
        assert detail["messages"][1]["modelUsed"] == "gpt-5-mini"

        deleted = await client.delete(f"/api/educa-ia/conversations/{conversation_id}")
        assert deleted.status_code == 204
        missing = await client.get(f"/api/educa-ia/conversations/{conversation_id}")
        assert missing.status_code == 404

    @pytest.mark.asyncio
    async def test_other_user_sees_nothing(self, api):
        client, _ = api(ScriptedProvider([text_round("Resposta")]))
        _, events = await stream(client, ask())
        conversation_id = events[-1]["data"]["conversationId"]

        listed = await client.get("/api/educa-ia/conversations", headers=OTHER_USER)
        fetched = await client.get(
            f"/api/educa-ia/conversations/{conversation_id}", headers=OTHER_USER
        )
        deleted = await client.delete(
            f"/api/educa-ia/conversations/{conversation_id}", headers=OTHER_USER
        )

        assert listed.json()["total"] == 0
        assert fetched.status_code == 404
        assert deleted.status_code == 404

    @pytest.mark.asyncio
    async def test_delete_while_streaming(self, api):
        client, orchestrator = api(ScriptedProvider([text_round("Resposta")]))
        _, events = await stream(client, ask())
        conversation_id = events[-1]["data"]["conversationId"]
        orchestrator.conversations.acquire(uuid.UUID(conversation_id))

        response = await client.delete(f"/api/educa-ia/conversations/{conversation_id}")

        assert response.status_code == 409

    @pytest.mark.asyncio
    async def test_limit_validation(self, api):
        client, _ = api(ScriptedProvider([]))

        response = await client.get("/api/educa-ia/conversations", params={"limit": 0})

        assert response.status_code == 422


class TestAgentsEndpoint:

    @pytest.mark.asyncio
    async def test_lists_registered_agents(self, api):
        client, _ = api(ScriptedProvider([]), tools=[EchoTool()])

        response = await client.get("/api/educa-ia/agents")

        assert response.json() == {
            "agents": [
                {"name": "educa-ia", "description": None, "category": None, "tools": ["echo"]}
            ]
        }
