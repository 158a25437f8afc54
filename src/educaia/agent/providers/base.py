"""
Base LLM Provider Implementation.

Provides common functionality for all LLM providers.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Optional, Union

from ..domain.entities import (
    Message,
    MessagePart,
    MessageRole,
    ModelSettings,
    PartType,
    ProviderEvent,
    ToolDefinition,
)
from ..domain.ports import ILLMProvider

logger = logging.getLogger(__name__)

# Model name fragments that accept a reasoning effort / thinking budget
MODELS_WITH_REASONING = (
    "gpt-5",
    "gpt-5-mini",
    "claude-3-7",
    "claude-4",
    "claude-sonnet-4",
    "claude-opus-4",
    "o1",
    "o3-mini",
    "gemini-2.5",
)


def supports_reasoning(model: str) -> bool:
    """Check if a model supports reasoning."""
    return any(fragment in model for fragment in MODELS_WITH_REASONING)


def serialize_tool_result(result: Any) -> str:
    """Render a tool result as the text a vendor API expects."""
    if isinstance(result, str):
        return result
    return json.dumps(result, ensure_ascii=False, default=str)


def parse_tool_arguments(raw: str) -> dict[str, Any]:
    """Parse streamed tool arguments, keeping unparseable input visible."""
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        return {"raw": raw}
    return parsed if isinstance(parsed, dict) else {"value": parsed}


@dataclass
class AssistantTurn:
    """Assistant text plus the tool calls it requested."""

    text: str
    tool_calls: list[MessagePart]


@dataclass
class ToolResultsTurn:
    """Results answering the preceding assistant turn."""

    results: list[MessagePart]


def split_turns(message: Message) -> list[Union[AssistantTurn, ToolResultsTurn]]:
    """Split a multi-round assistant message into vendor-style turns.

    One stored assistant message holds every round of an answer
    (text, tool-call, tool-result, text, ...). Vendor APIs want those
    rounds as alternating assistant and tool-result messages.
    """
    turns: list[Union[AssistantTurn, ToolResultsTurn]] = []
    text: list[str] = []
    calls: list[MessagePart] = []
    results: list[MessagePart] = []

    def flush() -> None:
        if text or calls:
            turns.append(AssistantTurn(text="".join(text), tool_calls=list(calls)))
        if results:
            turns.append(ToolResultsTurn(results=list(results)))
        text.clear()
        calls.clear()
        results.clear()

    for part in message.parts:
        if part.type == PartType.TEXT:
            if results:
                flush()
            text.append(part.text or "")
        elif part.type == PartType.TOOL_CALL:
            if results:
                flush()
            calls.append(part)
        elif part.type == PartType.TOOL_RESULT:
            results.append(part)
        # Reasoning parts are not replayed to the model

    flush()
    return turns


@dataclass
class LLMProviderConfig:
    """Configuration for LLM providers.

    Attributes:
        api_key: API key for the provider
        model: Model name to use
        embedding_model: Model for embeddings (if different)
        base_url: Optional custom base URL
        timeout: Request timeout in seconds
        max_retries: Retry attempts performed by the vendor SDK itself
        temperature: Default temperature
        max_tokens: Default max tokens
    """

    api_key: str
    model: str
    embedding_model: Optional[str] = None
    base_url: Optional[str] = None
    timeout: float = 60.0
    max_retries: int = 0
    temperature: float = 0.7
    max_tokens: int = 4096
    extra: dict[str, Any] = field(default_factory=dict)


class BaseLLMProvider(ILLMProvider, ABC):
    """Base class for LLM provider implementations.

    Subclasses translate domain messages into their vendor format and
    vendor exceptions into ProviderError.
    """

    name = "base"

    # Models a request may select
    MODELS: tuple[str, ...] = ()

    def __init__(self, config: LLMProviderConfig):
        """Initialize the provider.

        Args:
            config: Provider configuration
        """
        self.config = config

    @property
    def provider_name(self) -> str:
        return self.name

    @property
    def model_name(self) -> str:
        """Return the model name."""
        return self.config.model

    @property
    def supports_reasoning(self) -> bool:
        return supports_reasoning(self.config.model)

    def _resolve_settings(self, settings: Optional[ModelSettings]) -> ModelSettings:
        """Fill unset sampling values from the provider config."""
        settings = settings or ModelSettings()
        return ModelSettings(
            temperature=(
                settings.temperature
                if settings.temperature is not None
                else self.config.temperature
            ),
            max_tokens=settings.max_tokens or self.config.max_tokens,
            reasoning_effort=settings.reasoning_effort,
        )

    def _format_text_message(self, msg: Message) -> dict[str, Any]:
        return {"role": msg.role.value, "content": msg.text}

    def _is_plain(self, msg: Message) -> bool:
        return msg.role != MessageRole.ASSISTANT or not any(
            p.type in (PartType.TOOL_CALL, PartType.TOOL_RESULT) for p in msg.parts
        )

    def _format_tools_for_api(
        self, tools: list[ToolDefinition]
    ) -> list[dict[str, Any]]:
        """Convert tool definitions to API format."""
        return [tool.to_openai_format() for tool in tools]

    @abstractmethod
    def chat(
        self,
        messages: list[Message],
        tools: Optional[list[ToolDefinition]] = None,
        system_prompt: Optional[str] = None,
        settings: Optional[ModelSettings] = None,
    ) -> AsyncIterator[ProviderEvent]:
        """Generate a response. Must be implemented by subclasses."""
        pass

    @abstractmethod
    async def embed(self, text: str) -> tuple[list[float], str, int]:
        """Generate an embedding. Must be implemented by subclasses."""
        pass

    async def __aenter__(self):
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()
