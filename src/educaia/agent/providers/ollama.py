"""
Ollama LLM Provider.

Implements the ILLMProvider interface for Ollama's local LLM API.
Supports streaming chat and embeddings with locally-hosted models.
"""

from __future__ import annotations

import json
import logging
import uuid
from typing import Any, AsyncIterator, Optional

import httpx

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
    serialize_tool_result,
    split_turns,
)

logger = logging.getLogger(__name__)


class OllamaProvider(BaseLLMProvider):
    """Ollama local LLM provider implementation.

    Usage:
        config = LLMProviderConfig(
            api_key="not-needed",  # Ollama doesn't require auth
            model="qwen3:4b",
            base_url="http://localhost:11434",
        )
        provider = OllamaProvider(config)

        async for event in provider.chat(messages, tools):
            print(event)
    """

    name = "ollama"

    DEFAULT_MODEL = "qwen3:4b"
    MODELS = ("qwen3:4b", "qwen3:8b", "llama3.1:8b")
    DEFAULT_BASE_URL = "http://localhost:11434"
    DEFAULT_EMBEDDING_MODEL = "nomic-embed-text"

    def __init__(self, config: LLMProviderConfig):
        """Initialize the Ollama provider.

        Args:
            config: Provider configuration
        """
        super().__init__(config)

        self.base_url = config.base_url or self.DEFAULT_BASE_URL
        self.embedding_model = (
            config.embedding_model or self.DEFAULT_EMBEDDING_MODEL
        )

        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=config.timeout,
        )

    def _format_messages_for_api(
        self, messages: list[Message], system_prompt: Optional[str] = None
    ) -> list[dict[str, Any]]:
        """Convert messages to Ollama format."""
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
                        "content": turn.text,
                    }
                    if turn.tool_calls:
                        # Ollama takes arguments as an object, not a JSON string
                        api_msg["tool_calls"] = [
                            {"function": {"name": p.tool_name, "arguments": p.args or {}}}
                            for p in turn.tool_calls
                        ]
                    api_messages.append(api_msg)
                else:
                    for part in turn.results:
                        api_messages.append({
                            "role": "tool",
                            "content": serialize_tool_result(part.result),
                        })

        return api_messages

    async def chat(
        self,
        messages: list[Message],
        tools: Optional[list[ToolDefinition]] = None,
        system_prompt: Optional[str] = None,
        settings: Optional[ModelSettings] = None,
    ) -> AsyncIterator[ProviderEvent]:
        """Generate a streaming response using Ollama.

        Args:
            messages: Conversation history
            tools: Available tools (optional, model-dependent)
            system_prompt: System prompt
            settings: Sampling settings

        Yields:
            ProviderEvent objects

        Raises:
            ProviderError: On HTTP or connection failures
        """
        settings = self._resolve_settings(settings)

        payload: dict[str, Any] = {
            "model": self.config.model,
            "messages": self._format_messages_for_api(messages, system_prompt),
            "stream": True,
            "options": {
                "temperature": settings.temperature,
            },
        }

        if settings.max_tokens:
            payload["options"]["num_predict"] = settings.max_tokens

        if tools:
            payload["tools"] = self._format_tools_for_api(tools)

        try:
            async with self.client.stream(
                "POST",
                "/api/chat",
                json=payload,
            ) as response:
                response.raise_for_status()

                # Process newline-delimited JSON stream
                async for line in response.aiter_lines():
                    if not line.strip():
                        continue

                    try:
                        chunk = json.loads(line)
                    except json.JSONDecodeError as e:
                        raise ProviderError(
                            f"Malformed Ollama stream chunk: {e}",
                            ErrorType.FATAL,
                            original_error=e,
                        )

                    message = chunk.get("message", {})
                    content = message.get("content", "")
                    if content:
                        yield ProviderEvent.text_delta(content)

                    thinking = message.get("thinking")
                    if thinking:
                        yield ProviderEvent.reasoning_delta(thinking)

                    for tool_call in message.get("tool_calls", []):
                        function = tool_call.get("function", {})
                        tool_name = function.get("name")
                        if not tool_name:
                            continue
                        tool_args = function.get("arguments", {})
                        if isinstance(tool_args, str):
                            try:
                                tool_args = json.loads(tool_args)
                            except json.JSONDecodeError:
                                tool_args = {"raw": tool_args}
                        tool_id = tool_call.get("id") or f"ollama_call_{uuid.uuid4().hex}"
                        yield ProviderEvent.tool_call_request(tool_id, tool_name, tool_args)

                    if chunk.get("done"):
                        yield ProviderEvent.usage_event(
                            chunk.get("prompt_eval_count", 0),
                            chunk.get("eval_count", 0),
                        )
                        yield ProviderEvent.finish(chunk.get("done_reason"))
                        return

            raise ProviderError(
                "Ollama stream ended without a done marker", ErrorType.RECOVERABLE
            )

        except httpx.HTTPStatusError as e:
            error_msg = f"Ollama API error: {e.response.status_code}"
            logger.error(error_msg)
            error_type = (
                ErrorType.RECOVERABLE if e.response.status_code >= 500 else ErrorType.FATAL
            )
            raise ProviderError(error_msg, error_type, original_error=e)

        except httpx.TimeoutException as e:
            error_msg = f"Ollama request timeout: {str(e)}"
            logger.error(error_msg)
            raise ProviderError(error_msg, ErrorType.TIMEOUT, original_error=e)

        except httpx.RequestError as e:
            error_msg = f"Ollama connection error: {str(e)}"
            logger.error(error_msg)
            raise ProviderError(error_msg, ErrorType.RECOVERABLE, original_error=e)

    async def embed(self, text: str) -> tuple[list[float], str, int]:
        """Generate an embedding using Ollama.

        Args:
            text: Text to embed

        Returns:
            Tuple of (embedding_vector, model_name, dimension)

        Raises:
            ProviderError: If embedding generation fails
        """
        try:
            response = await self.client.post(
                "/api/embeddings",
                json={
                    "model": self.embedding_model,
                    "prompt": text,
                },
            )
            response.raise_for_status()

        except httpx.HTTPStatusError as e:
            raise ProviderError(
                f"Ollama embedding API error: {e.response.status_code}",
                error_type=ErrorType.RECOVERABLE,
                original_error=e,
            )
        except httpx.TimeoutException as e:
            raise ProviderError(
                f"Ollama embedding timeout: {str(e)}",
                error_type=ErrorType.TIMEOUT,
                original_error=e,
            )
        except httpx.RequestError as e:
            raise ProviderError(
                f"Ollama connection error: {str(e)}",
                error_type=ErrorType.RECOVERABLE,
                original_error=e,
            )

        embedding = response.json().get("embedding", [])
        if not embedding:
            raise ProviderError(
                "No embedding returned from Ollama",
                error_type=ErrorType.RECOVERABLE,
            )

        return embedding, self.embedding_model, len(embedding)

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()
