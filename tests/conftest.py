"""
Shared fixtures for the EducaIA tests.

Provides a scripted LLM provider, in-memory tool backends and a builder
for a fully wired orchestrator that needs no network or database.
"""

import asyncio
from typing import Any, Optional

import pytest

from educaia.agent.definitions import AgentConfig, AgentFactory, AgentRegistry
from educaia.agent.domain.entities import (
    Message,
    MessageRole,
    ProviderEvent,
    StreamRequest,
    ToolContext,
    UserContext,
)
from educaia.agent.domain.ports import (
    IAgentCatalog,
    IKnowledgeIndex,
    ILLMProvider,
    IPageIndex,
    IQueryRunner,
    IUserDirectory,
)
from educaia.agent.memory import InMemoryConversationStore
from educaia.agent.orchestrator import (
    AgentOrchestrator,
    ApprovalManager,
    ConversationManager,
    OrchestratorConfig,
)
from educaia.agent.providers import ModelProviderFactory
from educaia.agent.tools import BaseTool, ToolArgs, ToolRegistry
from educaia.config import Settings

# Marker inside a provider script: block until the stream is abandoned
HANG = "hang"


# =============================================================================
# Scripted provider
# =============================================================================


class ScriptedProvider(ILLMProvider):
    """Provider replaying one scripted round per chat() call.

    A round is a list of ProviderEvents. An Exception in the list is raised
    at that point, and HANG blocks forever. A round may also be a bare
    Exception, raised before anything is yielded.
    """

    def __init__(
        self,
        rounds: list,
        provider: str = "openai",
        model: str = "gpt-5-mini",
        reasoning: bool = False,
    ):
        self.rounds = list(rounds)
        self.calls: list[dict[str, Any]] = []
        self._provider = provider
        self._model = model
        self._reasoning = reasoning
        self.closed = False

    @property
    def provider_name(self) -> str:
        return self._provider

    @property
    def model_name(self) -> str:
        return self._model

    @property
    def supports_reasoning(self) -> bool:
        return self._reasoning

    async def chat(self, messages, tools=None, system_prompt=None, settings=None):
        self.calls.append({
            "messages": list(messages),
            "tools": tools,
            "system_prompt": system_prompt,
            "settings": settings,
        })
        if not self.rounds:
            raise AssertionError("Unexpected provider call")

        script = self.rounds.pop(0)
        if isinstance(script, Exception):
            raise script

        for item in script:
            if isinstance(item, Exception):
                raise item
            if item == HANG:
                await asyncio.sleep(3600)
            yield item

    async def embed(self, text: str) -> tuple[list[float], str, int]:
        return [0.1, 0.2, 0.3], "fake-embedding", 3

    async def close(self) -> None:
        self.closed = True


def text_round(*chunks: str, prompt_tokens: int = 10, completion_tokens: int = 5) -> list:
    """A provider round that only streams text."""
    return [
        *(ProviderEvent.text_delta(c) for c in chunks),
        ProviderEvent.usage_event(prompt_tokens, completion_tokens),
        ProviderEvent.finish("stop"),
    ]


def tool_round(*calls: tuple[str, str, dict]) -> list:
    """A provider round requesting tools: (call_id, name, args) tuples."""
    return [
        *(ProviderEvent.tool_call_request(cid, name, args) for cid, name, args in calls),
        ProviderEvent.usage_event(20, 3),
        ProviderEvent.finish("tool_calls"),
    ]


# =============================================================================
# Test tools
# =============================================================================


class EchoArgs(ToolArgs):
    text: str


class EchoTool(BaseTool):
    name = "echo"
    description = "Repete o texto"
    args_model = EchoArgs

    def __init__(self):
        self.calls: list[ToolContext] = []

    async def execute(self, args: EchoArgs, context: ToolContext) -> dict[str, Any]:
        self.calls.append(context)
        return {"echo": args.text}


class FailingTool(BaseTool):
    name = "failing"
    description = "Sempre falha"
    args_model = ToolArgs
    error_message = "Falhou"

    async def execute(self, args: ToolArgs, context: ToolContext) -> Any:
        raise RuntimeError("connection reset by peer")


class SensitiveTool(BaseTool):
    name = "sensitive"
    description = "Precisa de aprovação"
    args_model = ToolArgs
    requires_approval = True

    def __init__(self):
        self.executions = 0

    async def execute(self, args: ToolArgs, context: ToolContext) -> dict[str, Any]:
        self.executions += 1
        return {"done": True}


# =============================================================================
# Fake backends
# =============================================================================


class FakeKnowledgeIndex(IKnowledgeIndex):
    def __init__(self, results: list[dict[str, Any]]):
        self.results = results
        self.searches: list[dict[str, Any]] = []

    async def search(self, query, context, top_k, category=None):
        self.searches.append({"query": query, "top_k": top_k, "category": category})
        return list(self.results)


class FakeAgentCatalog(IAgentCatalog):
    def __init__(self, agents: list[dict[str, Any]]):
        self.agents = agents
        self.list_calls: list[dict[str, Any]] = []

    async def list_agents(self, context, category=None, limit=10):
        self.list_calls.append({"category": category, "limit": limit})
        agents = [a for a in self.agents if category is None or a.get("category") == category]
        return agents[:limit]

    async def get_agent(self, agent_id, context):
        for agent in self.agents:
            if agent["id"] == agent_id or agent["name"].lower() == agent_id.lower():
                return agent
        return None


class FakeQueryRunner(IQueryRunner):
    def __init__(self, rows: Optional[list[dict[str, Any]]] = None):
        self.rows = rows or []
        self.queries: list[str] = []

    async def run(self, query, context):
        self.queries.append(query)
        return list(self.rows)


class FakePageIndex(IPageIndex):
    def __init__(self, pages: list[dict[str, Any]]):
        self.pages = pages

    async def list_pages(self, context, category=None):
        return [p for p in self.pages if category is None or p.get("category") == category]


class FakeUserDirectory(IUserDirectory):
    async def get_profile(self, context):
        return {"id": context.user_id, "name": "Maria Souza", "role": "teacher"}

    async def get_school(self, context):
        return {"id": context.school_id, "name": "Escola Modelo"}

    async def get_preferences(self, context):
        return {"tone": "formal"}


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def user_context():
    return UserContext(
        tenant_id="tenant-1",
        user_id="user-1",
        school_id="school-1",
        school_slug="escola-modelo",
        school_name="Escola Modelo",
        user_name="Maria Souza",
        user_role="teacher",
        request_id="req-1",
    )


@pytest.fixture
def other_user_context():
    return UserContext(tenant_id="tenant-1", user_id="user-2")


@pytest.fixture
def tool_context(user_context):
    return ToolContext.from_user_context(user_context)


def user_request(text: str = "Olá", **kwargs: Any) -> StreamRequest:
    return StreamRequest(messages=[Message.from_text(MessageRole.USER, text)], **kwargs)


@pytest.fixture
def build_orchestrator():
    """Factory for an orchestrator around a scripted provider.

    Usage:
        orchestrator = build_orchestrator(provider, tools=[EchoTool()])
    """

    def _build(
        provider: ILLMProvider,
        tools: tuple = (),
        max_tool_rounds: Optional[int] = None,
        approval_timeout: float = 5,
        **config: Any,
    ) -> AgentOrchestrator:
        providers = ModelProviderFactory(Settings())
        providers.register(provider)

        agents = AgentRegistry()
        AgentFactory(ToolRegistry(tools), agents).create(
            AgentConfig(
                name="educa-ia",
                instructions="Você é o EducaIA.",
                tools=[t.name for t in tools],
                max_tool_rounds=max_tool_rounds,
            )
        )

        config.setdefault("retry_base_delay", 0)
        config.setdefault("provider_idle_timeout", 5)
        return AgentOrchestrator(
            agents=agents,
            providers=providers,
            conversations=ConversationManager(InMemoryConversationStore()),
            approvals=ApprovalManager(timeout_seconds=approval_timeout),
            config=OrchestratorConfig(**config),
        )

    return _build


async def collect(orchestrator: AgentOrchestrator, prepared) -> list:
    return [event async for event in orchestrator.stream(prepared)]


async def wait_until(predicate, timeout: float = 2.0) -> None:
    """Poll until predicate() is true."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("Condition not met in time")
        await asyncio.sleep(0.01)
