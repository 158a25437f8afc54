"""
Google Gemini LLM Provider.

Implements the ILLMProvider interface for Gemini models via the
google-genai SDK. Supports streaming, function calling, thinking and
embeddings.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, AsyncIterator, Optional

from google import genai
from google.genai import errors as genai_errors

from ..domain.entities import (
    ErrorType,
    Message,
    MessageRole,
    ModelSettings,
    ProviderEvent,
    ToolDefinition,
)
from ..domain.errors import ProviderError
from .base import AssistantTurn, BaseLLMProvider, LLMProviderConfig, split_turns

logger = logging.getLogger(__name__)


class GoogleProvider(BaseLLMProvider):
    """Google Gemini provider implementation.

    Gemini does not always assign ids to function calls, so missing ids
    are generated here and echoed back in the matching function responses.

    Usage:
        config = LLMProviderConfig(api_key="AIza...", model="gemini-2.5-flash")
        provider = GoogleProvider(config)

        async for event in provider.chat(messages, tools):
            print(event)
    """

    name = "google"

    DEFAULT_MODEL = "gemini-2.5-flash"
    DEFAULT_EMBEDDING_MODEL = "text-embedding-004"
    MODELS = (
        "gemini-2.5-pro",
        "gemini-2.5-flash",
        "gemini-2.5-flash-lite",
        "gemini-1.5-pro",
        "gemini-1.5-flash",
    )

    # Thinking budget per reasoning effort
    THINKING_BUDGETS = {
        "low": 1024,
        "medium": 8192,
        "high": 24576,
    }

    def __init__(self, config: LLMProviderConfig):
        super().__init__(config)
        self.client = genai.Client(api_key=config.api_key)
        self.embedding_model = config.embedding_model or self.DEFAULT_EMBEDDING_MODEL

    def _format_messages_for_api(
        self, messages: list[Message], system_prompt: Optional[str] = None
    ) -> tuple[Optional[str], list[dict[str, Any]]]:
        """Convert messages to Gemini contents.

        System text goes to ``system_instruction``; assistant turns use the
        ``model`` role and tool results travel as ``function_response`` parts.

        Returns:
            Tuple of (system_instruction, contents)
        """
        contents: list[dict[str, Any]] = []
        system = system_prompt

        for msg in messages:
            if msg.role == MessageRole.SYSTEM:
                system = f"{msg.text}\n\n{system}" if system else msg.text
            elif self._is_plain(msg):
                role = "model" if msg.role == MessageRole.ASSISTANT else "user"
                contents.append({"role": role, "parts": [{"text": msg.text}]})
            else:
                for turn in split_turns(msg):
                    if isinstance(turn, AssistantTurn):
                        parts: list[dict[str, Any]] = []
                        if turn.text:
                            parts.append({"text": turn.text})
                        for part in turn.tool_calls:
                            parts.append({
                                "function_call": {
                                    "id": part.tool_call_id,
                                    "name": part.tool_name,
                                    "args": part.args or {},
                                }
                            })
                        contents.append({"role": "model", "parts": parts})
                    else:
                        contents.append({
                            "role": "user",
                            "parts": [
                                {
                                    "function_response": {
                                        "id": part.tool_call_id,
                                        "name": part.tool_name,
                                        "response": (
                                            {"error": part.result}
                                            if part.is_error
                                            else {"output": part.result}
                                        ),
                                    }
                                }
                                for part in turn.results
                            ],
                        })

        return system, contents

    def _format_tools_for_api(
        self, tools: list[ToolDefinition]
    ) -> list[dict[str, Any]]:
        """Convert tools to a single Gemini tool with function declarations."""
        return [{
            "function_declarations": [
                {
                    "name": tool.name,
                    "description": tool.description,
                    "parameters_json_schema": tool.parameters,
                }
                for tool in tools
            ]
        }]

    def _build_request(
        self,
        messages: list[Message],
        tools: Optional[list[ToolDefinition]],
        system_prompt: Optional[str],
        settings: ModelSettings,
    ) -> dict[str, Any]:
        system, contents = self._format_messages_for_api(messages, system_prompt)

        config: dict[str, Any] = {
            "temperature": settings.temperature,
            "max_output_tokens": settings.max_tokens or self.config.max_tokens,
        }
        if system:
            config["system_instruction"] = system
        if tools:
            config["tools"] = self._format_tools_for_api(tools)

        budget = self.THINKING_BUDGETS.get(settings.reasoning_effort or "")
        if budget and self.supports_reasoning:
            config["thinking_config"] = {"include_thoughts": True, "thinking_budget": budget}

        return {"model": self.config.model, "contents": contents, "config": config}

    def _to_provider_error(self, error: genai_errors.APIError) -> ProviderError:
        code = getattr(error, "code", None) or 0
        if code == 429:
            logger.warning(f"Rate limited by Gemini: {error}")
            return ProviderError(f"Rate limited: {error}", ErrorType.RATE_LIMIT, original_error=error)
        logger.error(f"Gemini API error: {error}")
        error_type = ErrorType.RECOVERABLE if code >= 500 else ErrorType.FATAL
        return ProviderError(f"API error: {error}", error_type, original_error=error)

    async def chat(
        self,
        messages: list[Message],
        tools: Optional[list[ToolDefinition]] = None,
        system_prompt: Optional[str] = None,
        settings: Optional[ModelSettings] = None,
    ) -> AsyncIterator[ProviderEvent]:
        """Generate a streaming response using Gemini.

        Raises:
            ProviderError: On API failures
        """
        request = self._build_request(
            messages, tools, system_prompt, self._resolve_settings(settings)
        )

        try:
            stream = await self.client.aio.models.generate_content_stream(**request)

            prompt_tokens = 0
            completion_tokens = 0
            finish_reason: Optional[str] = None

            async for chunk in stream:
                usage = getattr(chunk, "usage_metadata", None)
                if usage is not None:
                    prompt_tokens = usage.prompt_token_count or prompt_tokens
                    completion_tokens = (
                        (usage.candidates_token_count or 0)
                        + (getattr(usage, "thoughts_token_count", None) or 0)
                    ) or completion_tokens

                for candidate in chunk.candidates or []:
                    if candidate.finish_reason is not None:
                        reason = candidate.finish_reason
                        finish_reason = str(getattr(reason, "value", reason)).lower()

                    content = candidate.content
                    for part in (content.parts if content else None) or []:
                        function_call = getattr(part, "function_call", None)
                        if function_call is not None:
                            yield ProviderEvent.tool_call_request(
                                function_call.id or f"gemini_call_{uuid.uuid4().hex}",
                                function_call.name or "",
                                dict(function_call.args or {}),
                            )
                        elif part.text:
                            if getattr(part, "thought", False):
                                yield ProviderEvent.reasoning_delta(part.text)
                            else:
                                yield ProviderEvent.text_delta(part.text)

            yield ProviderEvent.usage_event(prompt_tokens, completion_tokens)
            yield ProviderEvent.finish(finish_reason)

        except genai_errors.APIError as e:
            raise self._to_provider_error(e)

    async def embed(self, text: str) -> tuple[list[float], str, int]:
        """Generate an embedding with the configured Gemini embedding model.

        Returns:
            Tuple of (embedding_vector, model_name, dimensions)
        """
        try:
            response = await self.client.aio.models.embed_content(
                model=self.embedding_model,
                contents=text,
            )
        except genai_errors.APIError as e:
            raise self._to_provider_error(e)

        vector = list(response.embeddings[0].values)
        return vector, self.embedding_model, len(vector)

    async def close(self) -> None:
        """Close the client."""
        await self.client.aio.aclose()
