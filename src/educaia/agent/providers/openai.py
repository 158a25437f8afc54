"""
OpenAI GPT LLM Provider.

Implements the ILLMProvider interface for OpenAI's GPT models.
Supports streaming, tool calling, reasoning effort and embeddings.
"""

from __future__ import annotations

import json
import logging
from typing import Any, AsyncIterator, Optional

import openai
from openai import AsyncOpenAI

from ..domain.entities import (
    ErrorType,
    Message,
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


class OpenAIProvider(BaseLLMProvider):
    """OpenAI GPT provider implementation.

    Supports:
    - GPT-4o, GPT-4.1, GPT-5 family
    - o-series reasoning models (reasoning_effort)
    - Streaming responses with usage accounting
    - Tool/function calling
    - Embeddings (text-embedding-3-small/large)

    Usage:
        config = LLMProviderConfig(
            api_key="sk-...",
            model="gpt-5-mini",
            embedding_model="text-embedding-3-small",
        )
        provider = OpenAIProvider(config)

        async for event in provider.chat(messages, tools):
            print(event)
    """

    name = "openai"

    DEFAULT_MODEL = "gpt-5-mini"
    DEFAULT_EMBEDDING_MODEL = "text-embedding-3-small"
    MODELS = (
        "gpt-5",
        "gpt-5-mini",
        "gpt-4.1-nano",
        "gpt-4o",
        "gpt-4o-mini",
        "gpt-4-turbo",
    )

    def __init__(self, config: LLMProviderConfig):
        """Initialize the OpenAI provider.

        Args:
            config: Provider configuration
        """
        super().__init__(config)

        self.embedding_model = (
            config.embedding_model or self.DEFAULT_EMBEDDING_MODEL
        )

        self.client = AsyncOpenAI(
            api_key=config.api_key,
            base_url=config.base_url,
            timeout=config.timeout,
            max_retries=config.max_retries,
        )

    def _format_messages_for_api(
        self, messages: list[Message], system_prompt: Optional[str] = None
    ) -> list[dict[str, Any]]:
        """Convert messages to OpenAI format.

        OpenAI includes system messages in the messages array.
        """
        api_messages = []

        if system_prompt:
            api_messages.append({
                "role": "system",
                "content": system_prompt,
            })

        for msg in messages:
            if self._is_plain(msg):
                api_messages.append(self._format_text_message(msg))
                continue

            for turn in split_turns(msg):
                if isinstance(turn, AssistantTurn):
                    api_msg: dict[str, Any] = {
                        "role": "assistant",
                        "content": turn.text or None,
                    }
                    if turn.tool_calls:
                        api_msg["tool_calls"] = [
                            {
                                "id": part.tool_call_id,
                                "type": "function",
                                "function": {
                                    "name": part.tool_name,
                                    "arguments": json.dumps(part.args or {}),
                                },
                            }
                            for part in turn.tool_calls
                        ]
                    api_messages.append(api_msg)
                else:
                    for part in turn.results:
                        api_messages.append({
                            "role": "tool",
                            "tool_call_id": part.tool_call_id,
                            "content": serialize_tool_result(part.result),
                        })

        return api_messages

    def _build_request(
        self,
        messages: list[Message],
        tools: Optional[list[ToolDefinition]],
        system_prompt: Optional[str],
        settings: ModelSettings,
    ) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "model": self.config.model,
            "messages": self._format_messages_for_api(messages, system_prompt),
            "stream": True,
            "stream_options": {"include_usage": True},
        }

        if settings.reasoning_effort and self.supports_reasoning:
            # Reasoning models reject custom temperature
            kwargs["reasoning_effort"] = settings.reasoning_effort
        elif settings.temperature is not None:
            kwargs["temperature"] = settings.temperature

        if settings.max_tokens:
            kwargs["max_completion_tokens"] = settings.max_tokens

        if tools:
            kwargs["tools"] = self._format_tools_for_api(tools)
            kwargs["tool_choice"] = "auto"

        return kwargs

    async def chat(
        self,
        messages: list[Message],
        tools: Optional[list[ToolDefinition]] = None,
        system_prompt: Optional[str] = None,
        settings: Optional[ModelSettings] = None,
    ) -> AsyncIterator[ProviderEvent]:
        """Generate a streaming response using GPT.

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
            stream_response = await self.client.chat.completions.create(**kwargs)

            # Track tool calls being assembled
            tool_calls_in_progress: dict[int, dict[str, Any]] = {}
            finish_reason: Optional[str] = None
            usage = None

            async for chunk in stream_response:
                if getattr(chunk, "usage", None):
                    usage = chunk.usage

                choice = chunk.choices[0] if chunk.choices else None
                if not choice:
                    continue

                delta = choice.delta

                if delta.content:
                    yield ProviderEvent.text_delta(delta.content)

                if delta.tool_calls:
                    for tc in delta.tool_calls:
                        idx = tc.index

                        if idx not in tool_calls_in_progress:
                            tool_calls_in_progress[idx] = {
                                "id": tc.id or f"call_{idx}",
                                "name": "",
                                "arguments": "",
                            }

                        if tc.function and tc.function.name:
                            tool_calls_in_progress[idx]["name"] = tc.function.name
                        if tc.function and tc.function.arguments:
                            tool_calls_in_progress[idx]["arguments"] += tc.function.arguments

                if choice.finish_reason:
                    finish_reason = choice.finish_reason
                    for idx in sorted(tool_calls_in_progress):
                        tc_data = tool_calls_in_progress[idx]
                        yield ProviderEvent.tool_call_request(
                            tc_data["id"],
                            tc_data["name"],
                            parse_tool_arguments(tc_data["arguments"]),
                        )
                    tool_calls_in_progress.clear()
                    # Keep reading: the usage chunk arrives after finish_reason

            if usage is not None:
                yield ProviderEvent.usage_event(
                    usage.prompt_tokens or 0, usage.completion_tokens or 0
                )
            yield ProviderEvent.finish(finish_reason)

        except openai.RateLimitError as e:
            logger.warning(f"Rate limited by OpenAI: {e}")
            raise ProviderError(
                f"Rate limited: {e}", ErrorType.RATE_LIMIT, original_error=e
            )
        except openai.APITimeoutError as e:
            logger.error(f"OpenAI API timeout: {e}")
            raise ProviderError(
                f"Request timed out: {e}", ErrorType.TIMEOUT, original_error=e
            )
        except openai.APIConnectionError as e:
            logger.error(f"OpenAI connection error: {e}")
            raise ProviderError(
                f"Connection error: {e}", ErrorType.RECOVERABLE, original_error=e
            )
        except openai.APIStatusError as e:
            logger.error(f"OpenAI API error: {e}")
            error_type = (
                ErrorType.RECOVERABLE if e.status_code >= 500 else ErrorType.FATAL
            )
            raise ProviderError(f"API error: {e}", error_type, original_error=e)
        except openai.APIError as e:
            logger.error(f"OpenAI API error: {e}")
            raise ProviderError(
                f"API error: {e}", ErrorType.RECOVERABLE, original_error=e
            )

    async def embed(self, text: str) -> tuple[list[float], str, int]:
        """Generate an embedding for text.

        Args:
            text: Text to embed

        Returns:
            Tuple of (embedding_vector, model_name, dimension)

        Raises:
            ProviderError: On API errors
        """
        try:
            response = await self.client.embeddings.create(
                model=self.embedding_model,
                input=text,
            )

            embedding = response.data[0].embedding
            return embedding, self.embedding_model, len(embedding)

        except openai.RateLimitError as e:
            logger.warning(f"Rate limited during embedding: {e}")
            raise ProviderError(
                f"Rate limited: {e}",
                error_type=ErrorType.RATE_LIMIT,
                original_error=e,
            )
        except openai.APIError as e:
            logger.error(f"OpenAI embedding error: {e}")
            raise ProviderError(
                f"Embedding failed: {e}",
                error_type=ErrorType.RECOVERABLE,
                original_error=e,
            )

    async def close(self) -> None:
        """Close the client."""
        await self.client.close()
