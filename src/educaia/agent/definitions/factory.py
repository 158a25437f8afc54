"""
Agent Factory.

Turns a plain AgentConfig into a frozen AgentDescriptor with its tools
bound, and registers it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional

from ..domain.entities import AgentDescriptor, AgentStrategy, ModelSettings
from ..domain.errors import ConfigurationError
from ..tools.registry import ToolRegistry
from .registry import AgentRegistry

logger = logging.getLogger(__name__)


@dataclass
class AgentConfig:
    """Mutable agent configuration as written by hand or loaded from data.

    Attributes:
        name: Unique agent name
        instructions: System prompt
        tools: Tool names to bind
        model: Model identifier (None uses the provider default)
        provider: Provider name (None uses the configured default)
        strategy: Execution strategy
        category: Free-form category
        tags: Free-form tags
        temperature: Sampling temperature
        max_tokens: Maximum completion tokens
        reasoning_effort: Reasoning effort for capable models
        description: Human description shown in listings
        max_tool_rounds: Override of the global tool round bound
    """

    name: str
    instructions: str = ""
    tools: list[str] = field(default_factory=list)
    model: Optional[str] = None
    provider: Optional[str] = None
    strategy: AgentStrategy = AgentStrategy.SIMPLE
    category: Optional[str] = None
    tags: list[str] = field(default_factory=list)
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    reasoning_effort: Optional[str] = None
    description: Optional[str] = None
    max_tool_rounds: Optional[int] = None


class AgentFactory:
    """Builds and registers agent descriptors.

    Usage:
        factory = AgentFactory(tool_registry, agent_registry)
        descriptor = factory.create(AgentConfig(
            name="suporte",
            instructions="Você ajuda com dúvidas de suporte.",
            tools=["retrieveKnowledge"],
        ))
    """

    def __init__(self, tools: ToolRegistry, registry: AgentRegistry):
        self.tools = tools
        self.registry = registry

    def create(self, config: AgentConfig) -> AgentDescriptor:
        """Validate, freeze and register an agent.

        Raises:
            ConfigurationError: On a missing name, bad settings or an
                unknown tool name
        """
        name = (config.name or "").strip()
        if not name:
            raise ConfigurationError("Agent name is required")
        if config.max_tool_rounds is not None and config.max_tool_rounds < 1:
            raise ConfigurationError(
                f"Agent {name}: max_tool_rounds must be at least 1"
            )
        if config.temperature is not None and not 0 <= config.temperature <= 2:
            raise ConfigurationError(f"Agent {name}: temperature must be in [0, 2]")

        descriptor = AgentDescriptor(
            name=name,
            instructions=config.instructions,
            model=config.model,
            provider=config.provider,
            tools=self.tools.resolve(config.tools),
            strategy=AgentStrategy(config.strategy),
            category=config.category,
            tags=frozenset(config.tags),
            model_settings=ModelSettings(
                temperature=config.temperature,
                max_tokens=config.max_tokens,
                reasoning_effort=config.reasoning_effort,
            ),
            description=config.description,
            max_tool_rounds=config.max_tool_rounds,
        )

        self.registry.register(descriptor)
        logger.info(f"Created agent {name} with tools: {descriptor.tool_names}")
        return descriptor
