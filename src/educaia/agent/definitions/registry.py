"""
Agent Registry.

Lookup table of frozen agent descriptors by name. One instance is created
at application startup and injected wherever agents are resolved.
"""

from __future__ import annotations

import logging

from ..domain.entities import AgentDescriptor
from ..domain.errors import AgentNotFoundError

logger = logging.getLogger(__name__)


class AgentRegistry:
    """Registry of agent descriptors.

    Usage:
        registry = AgentRegistry()
        registry.register(descriptor)

        agent = registry.get("educa-ia")
    """

    def __init__(self):
        self._agents: dict[str, AgentDescriptor] = {}

    def register(self, descriptor: AgentDescriptor) -> None:
        existing = self._agents.get(descriptor.name)
        if existing is not None and existing != descriptor:
            logger.warning(f"Agent {descriptor.name} already registered, overwriting")
        self._agents[descriptor.name] = descriptor
        logger.debug(f"Registered agent: {descriptor.name}")

    def get(self, name: str) -> AgentDescriptor:
        """Look up an agent by name.

        Raises:
            AgentNotFoundError: If no agent is registered under ``name``
        """
        try:
            return self._agents[name]
        except KeyError:
            raise AgentNotFoundError(name) from None

    def has(self, name: str) -> bool:
        return name in self._agents

    def unregister(self, name: str) -> None:
        self._agents.pop(name, None)
        logger.debug(f"Unregistered agent: {name}")

    def list(self) -> list[AgentDescriptor]:
        return list(self._agents.values())

    def names(self) -> list[str]:
        return list(self._agents)
