"""FastAPI application for the EducaIA assistant.

This is the main entry point for the EducaIA API server.
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from . import __version__
from .agent.api import create_agent_dependencies
from .agent.api import router as educa_ia_router
from .agent.definitions import AgentFactory, AgentRegistry, educa_ia_config
from .agent.definitions.educa_ia import EDUCA_IA_TOOLS
from .agent.domain.ports import IConversationStore, IFeedbackStore, ILLMProvider
from .agent.memory import (
    ConversationStore,
    FeedbackStore,
    InMemoryConversationStore,
    InMemoryFeedbackStore,
    create_pool,
)
from .agent.orchestrator import (
    AgentOrchestrator,
    ApprovalManager,
    ConversationManager,
    OrchestratorConfig,
)
from .agent.providers import ModelProviderFactory
from .agent.tools import (
    GetAgentDetailsTool,
    GetUserDataTool,
    ListAgentsTool,
    NavigateToPageTool,
    PostgresAgentCatalog,
    PostgresKnowledgeIndex,
    PostgresPageIndex,
    PostgresQueryRunner,
    PostgresUserDirectory,
    QueryDatabaseTool,
    RetrieveKnowledgeTool,
    ToolRegistry,
)
from .config import Settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Everything built at startup and torn down at shutdown."""

    settings: Settings
    providers: ModelProviderFactory
    orchestrator: AgentOrchestrator
    feedback_store: IFeedbackStore
    db_pool: Optional[Any] = None


def _select_embedder(providers: ModelProviderFactory) -> Optional[ILLMProvider]:
    """Provider used to embed knowledge queries (OpenAI first, then Ollama)."""
    available = providers.available_providers()
    for name in ("openai", "ollama"):
        if name in available:
            return providers.get(name)
    return None


def build_tool_registry(db_pool: Any, providers: ModelProviderFactory) -> ToolRegistry:
    """Register the database-backed tools."""
    tools = ToolRegistry()

    embedder = _select_embedder(providers)
    if embedder is not None:
        tools.register(RetrieveKnowledgeTool(PostgresKnowledgeIndex(db_pool, embedder)))
        logger.info(f"Knowledge search embeddings via {embedder.provider_name}")
    else:
        logger.warning("No embedding provider configured - retrieveKnowledge disabled")

    catalog = PostgresAgentCatalog(db_pool)
    tools.register(ListAgentsTool(catalog))
    tools.register(GetAgentDetailsTool(catalog))
    tools.register(QueryDatabaseTool(PostgresQueryRunner(db_pool)))
    tools.register(NavigateToPageTool(PostgresPageIndex(db_pool)))
    tools.register(GetUserDataTool(PostgresUserDirectory(db_pool)))
    return tools


async def build_services(settings: Settings) -> Services:
    """Wire providers, stores, tools, agents and the orchestrator."""
    providers = ModelProviderFactory(settings)
    if not providers.available_providers():
        logger.warning(
            "No LLM provider configured (OPENAI_API_KEY, ANTHROPIC_API_KEY or OLLAMA_BASE_URL)"
        )

    db_pool = None
    conversation_store: IConversationStore
    feedback_store: IFeedbackStore

    if settings.database_url:
        db_pool = await create_pool(settings.database_url)
        logger.info("Database pool initialized")
        conversation_store = ConversationStore(db_pool)
        feedback_store = FeedbackStore(db_pool)
        tools = build_tool_registry(db_pool, providers)
    else:
        logger.warning(
            "DATABASE_URL not configured - using in-memory stores and no tools"
        )
        conversation_store = InMemoryConversationStore()
        feedback_store = InMemoryFeedbackStore()
        tools = ToolRegistry()

    agents = AgentRegistry()
    factory = AgentFactory(tools, agents)
    factory.create(educa_ia_config(tools=[name for name in EDUCA_IA_TOOLS if name in tools]))

    orchestrator = AgentOrchestrator(
        agents=agents,
        providers=providers,
        conversations=ConversationManager(
            conversation_store, max_history_messages=settings.max_history_messages
        ),
        approvals=ApprovalManager(timeout_seconds=settings.approval_timeout_seconds),
        config=OrchestratorConfig.from_settings(settings),
    )

    return Services(
        settings=settings,
        providers=providers,
        orchestrator=orchestrator,
        feedback_store=feedback_store,
        db_pool=db_pool,
    )


async def close_services(services: Services) -> None:
    """Close provider clients, then the database pool."""
    await services.providers.close_all()
    logger.info("LLM providers closed")

    if services.db_pool is not None:
        await services.db_pool.close()
        logger.info("Database pool closed")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager.

    Handles startup and shutdown events:
    - Startup: Build providers, database pool, stores and the orchestrator
    - Shutdown: Close providers and the database pool
    """
    settings: Settings = app.state.settings
    logger.info("Starting EducaIA API...")

    try:
        services = await build_services(settings)
    except Exception as e:
        logger.error(f"Failed to initialize EducaIA services: {e}")
        raise

    app.state.services = services
    create_agent_dependencies(services.orchestrator, services.feedback_store)
    logger.info("EducaIA orchestrator initialized successfully")

    yield

    logger.info("Shutting down EducaIA API...")
    create_agent_dependencies(None, None)
    await close_services(services)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Create the FastAPI application."""
    settings = settings or Settings.from_env()

    logging.basicConfig(level=settings.log_level, format=LOG_FORMAT)

    app = FastAPI(
        title="EducaIA API",
        description="""
    Conversational assistant for SmartGesTI Ensino.

    ## Features

    - **Stream**: Answers streamed as Server-Sent Events
    - **Tools**: Knowledge search, agent catalog, navigation and safe queries
    - **Approvals**: Sensitive tool calls wait for the user's decision
    - **Feedback**: Like/dislike signals for answer quality
    """,
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=[
            "Content-Type",
            "Authorization",
            "Accept",
            "X-Tenant-Id",
            "X-User-Id",
            "X-School-Id",
            "X-School-Slug",
            "X-Request-Id",
        ],
        expose_headers=["X-Conversation-Id"],
    )

    app.include_router(educa_ia_router)

    @app.get("/health")
    async def health():
        """Global health check."""
        return {"status": "healthy"}

    return app


app = create_app()


# Entry point for running with uvicorn
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "educaia.app:app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", "8000")),
        reload=True,
    )
