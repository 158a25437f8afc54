"""
Tool Registry.

Process-local catalogue of tool instances by name. Agents bind tools by
name through this registry when they are created.
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional

from ..domain.entities import ToolDefinition
from ..domain.errors import ConfigurationError
from ..domain.ports import ITool

logger = logging.getLogger(__name__)


class ToolRegistry:
    """Registry of available agent tools.

    Usage:
        registry = ToolRegistry()
        registry.register(RetrieveKnowledgeTool(index))

        tools = registry.resolve(["retrieveKnowledge", "navigateToPage"])
    """

    def __init__(self, tools: Optional[Iterable[ITool]] = None):
        self._tools: dict[str, ITool] = {}
        for tool in tools or ():
            self.register(tool)

    def register(self, tool: ITool) -> None:
        if not tool.name:
            raise ConfigurationError(f"Tool {tool!r} has no name")
        if tool.name in self._tools:
            logger.warning(f"Tool {tool.name} already registered, overwriting")
        self._tools[tool.name] = tool
        logger.debug(f"Registered tool: {tool.name}")

    def get(self, name: str) -> Optional[ITool]:
        return self._tools.get(name)

    def resolve(self, names: Iterable[str]) -> tuple[ITool, ...]:
        """Look up tools by name, preserving order and dropping duplicates.

        Raises:
            ConfigurationError: If any name is not registered
        """
        resolved: list[ITool] = []
        seen: set[str] = set()
        for name in names:
            if name in seen:
                continue
            tool = self._tools.get(name)
            if tool is None:
                raise ConfigurationError(f"Unknown tool: {name}")
            resolved.append(tool)
            seen.add(name)
        return tuple(resolved)

    def names(self) -> list[str]:
        return list(self._tools)

    def definitions(self) -> list[ToolDefinition]:
        return [tool.definition() for tool in self._tools.values()]

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)
