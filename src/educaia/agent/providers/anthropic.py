"""
Anthropic Claude LLM Provider.

Implements the ILLMProvider interface for Anthropic's Claude models.
Supports streaming, tool calling, and extended thinking.
"""

from __future__ import annotations

import logging
from typing import Any, AsyncIterator, Optional

import anthropic
from anthropic import AsyncAnthropic

from ..domain.entities import (
    ErrorType,
    Message,
    MessageRole,
    ModelSettings,
    ProviderEvent,
    ToolDefinition,
)
from ..domain.errors import ProviderError
from .base import (
    AssistantTurn,
    BaseLLMProvider,
    LLMProviderConfig,
    parse_tool_arguments,
    serialize_tool_result,
    split_turns,
)

logger = logging.getLogger(__name__)


class AnthropicProvider(BaseLLMProvider):
    """Anthropic Claude provider implementation.

    Supports:
    - Claude 3.5 / 3.7 / 4 models
    - Streaming responses
    - Tool/function calling
    - Extended thinking (when a reasoning effort is requested)

    Usage:
        config = LLMProviderConfig(
            api_key="sk-ant-...",
            model="claude-sonnet-4-5-20250929",
        )
        provider = AnthropicProvider(config)

        async for event in provider.chat(messages, tools):
            print(event)
    """

    name = "anthropic"

    DEFAULT_MODEL = "claude-sonnet-4-5-20250929"
    MODELS = (
        "claude-sonnet-4-5-20250929",
        "claude-opus-4-1-20250805",
        "claude-3-7-sonnet-20250219",
        "claude-3-5-sonnet-20241022",
        "claude-3-5-haiku-20241022",
    )

    # Thinking budget per reasoning effort
    THINKING_BUDGETS = {
        "low": 2048,
        "medium": 8192,
        "high": 16384,
    }

    def __init__(self, config: LLMProviderConfig):
        """Initialize the Anthropic provider.

        Args:
            config: Provider configuration
        """
        super().__init__(config)

        self.client = AsyncAnthropic(
            api_key=config.api_key,
            base_url=config.base_url,
            timeout=config.timeout,
            max_retries=config.max_retries,
        )

    def _format_messages_for_api(
        self, messages: list[Message], system_prompt: Optional[str] = None
    ) -> tuple[Optional[str], list[dict[str, Any]]]:
        """Convert messages to Anthropic format.

        Anthropic uses a separate system parameter, not in messages.

        Returns:
            Tuple of (system_prompt, messages_list)
        """
        api_messages: list[dict[str, Any]] = []
        system = system_prompt

        for msg in messages:
            if msg.role == MessageRole.SYSTEM:
                system = f"{msg.text}\n\n{system}" if system else msg.text
            elif self._is_plain(msg):
                role = "assistant" if msg.role == MessageRole.ASSISTANT else "user"
                api_messages.append({"role": role, "content": msg.text})
            else:
                for turn in split_turns(msg):
                    if isinstance(turn, AssistantTurn):
                        content_blocks: list[dict[str, Any]] = []
                        if turn.text:
                            content_blocks.append({"type": "text", "text": turn.text})
                        for part in turn.tool_calls:
                            content_blocks.append({
                                "type": "tool_use",
                                "id": part.tool_call_id,
                                "name": part.tool_name,
                                "input": part.args or {},
                            })
                        api_messages.append({
                            "role": "assistant",
                            "content": content_blocks,
                        })
                    else:
                        api_messages.append({
                            "role": "user",
                            "content": [
                                {
                                    "type": "tool_result",
                                    "tool_use_id": part.tool_call_id,
                                    "content": serialize_tool_result(part.result),
                                    "is_error": part.is_error,
                                }
                                for part in turn.results
                            ],
                        })

        return system, api_messages

    def _format_tools_for_api(
        self, tools: list[ToolDefinition]
    ) -> list[dict[str, Any]]:
        """Convert tools to Anthropic format."""
        return [tool.to_anthropic_format() for tool in tools]

    def _build_request(
        self,
        messages: list[Message],
        tools: Optional[list[ToolDefinition]],
        system_prompt: Optional[str],
        settings: ModelSettings,
    ) -> dict[str, Any]:
        system, api_messages = self._format_messages_for_api(messages, system_prompt)

        kwargs: dict[str, Any] = {
            "model": self.config.model,
            "messages": api_messages,
        }

        budget = self.THINKING_BUDGETS.get(settings.reasoning_effort or "")
        if budget and self.supports_reasoning:
            kwargs["thinking"] = {"type": "enabled", "budget_tokens": budget}
            kwargs["temperature"] = 1  # Required for extended thinking
            # max_tokens must be greater than thinking budget
            kwargs["max_tokens"] = max(budget + 4096, settings.max_tokens or 0)
        else:
            kwargs["temperature"] = settings.temperature
            kwargs["max_tokens"] = settings.max_tokens or self.config.max_tokens

        if system:
            kwargs["system"] = system

        if tools:
            kwargs["tools"] = self._format_tools_for_api(tools)

        return kwargs

    async def chat(
        self,
        messages: list[Message],
        tools: Optional[list[ToolDefinition]] = None,
        system_prompt: Optional[str] = None,
        settings: Optional[ModelSettings] = None,
    ) -> AsyncIterator[ProviderEvent]:
        """Generate a streaming response using Claude.

        Args:
            messages: Conversation history
            tools: Available tools
            system_prompt: System prompt
            settings: Sampling settings

        Yields:
            ProviderEvent objects

        Raises:
            ProviderError: On API failures
        """
        kwargs = self._build_request(
            messages, tools, system_prompt, self._resolve_settings(settings)
        )

        try:
            async with self.client.messages.stream(**kwargs) as stream_response:
                current_tool_call_id: Optional[str] = None
                current_tool_name: Optional[str] = None
                accumulated_tool_input = ""
                input_tokens = 0
                output_tokens = 0
                stop_reason: Optional[str] = None

                async for event in stream_response:
                    if event.type == "message_start":
                        usage = getattr(event.message, "usage", None)
                        if usage is not None:
                            input_tokens = usage.input_tokens or 0

                    elif event.type == "content_block_start":
                        block = event.content_block
                        if block.type == "tool_use":
                            current_tool_call_id = block.id
                            current_tool_name = block.name
                            accumulated_tool_input = ""

                    elif event.type == "content_block_delta":
                        delta = event.delta
                        if delta.type == "text_delta":
                            yield ProviderEvent.text_delta(delta.text)
                        elif delta.type == "input_json_delta":
                            accumulated_tool_input += delta.partial_json
                        elif delta.type == "thinking_delta":
                            yield ProviderEvent.reasoning_delta(delta.thinking)

                    elif event.type == "content_block_stop":
                        if current_tool_call_id:
                            yield ProviderEvent.tool_call_request(
                                current_tool_call_id,
                                current_tool_name or "",
                                parse_tool_arguments(accumulated_tool_input),
                            )
                            current_tool_call_id = None
                            current_tool_name = None

                    elif event.type == "message_delta":
                        usage = getattr(event, "usage", None)
                        if usage is not None:
                            output_tokens = usage.output_tokens or 0
                        stop_reason = getattr(event.delta, "stop_reason", None)

                yield ProviderEvent.usage_event(input_tokens, output_tokens)
                yield ProviderEvent.finish(stop_reason)

        except anthropic.RateLimitError as e:
            logger.warning(f"Rate limited by Anthropic: {e}")
            raise ProviderError(
                f"Rate limited: {e}", ErrorType.RATE_LIMIT, original_error=e
            )
        except anthropic.APITimeoutError as e:
            logger.error(f"Anthropic API timeout: {e}")
            raise ProviderError(
                f"Request timed out: {e}", ErrorType.TIMEOUT, original_error=e
            )
        except anthropic.APIStatusError as e:
            logger.error(f"Anthropic API error: {e}")
            error_type = (
                ErrorType.RECOVERABLE if e.status_code >= 500 else ErrorType.FATAL
            )
            raise ProviderError(f"API error: {e}", error_type, original_error=e)
        except anthropic.APIError as e:
            logger.error(f"Anthropic API error: {e}")
            raise ProviderError(
                f"API error: {e}", ErrorType.RECOVERABLE, original_error=e
            )

    async def embed(self, text: str) -> tuple[list[float], str, int]:
        """Anthropic has no native embeddings endpoint.

        Raises:
            ProviderError: Always; configure OpenAI or Ollama for embeddings
        """
        raise ProviderError(
            "Anthropic doesn't provide native embeddings",
            error_type=ErrorType.FATAL,
        )

    async def close(self) -> None:
        """Close the client."""
        await self.client.close()
