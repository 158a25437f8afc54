"""
Model Provider Factory.

Builds and caches provider adapters by (provider, model) from settings.
"""

from __future__ import annotations

import logging
from typing import Optional

from ...config import Settings
from ..domain.errors import ConfigurationError
from ..domain.ports import ILLMProvider
from .anthropic import AnthropicProvider
from .base import BaseLLMProvider, LLMProviderConfig
from .google import GoogleProvider
from .ollama import OllamaProvider
from .openai import OpenAIProvider

logger = logging.getLogger(__name__)


class ModelProviderFactory:
    """Selects an LLM provider by name.

    Usage:
        factory = ModelProviderFactory(Settings.from_env())

        provider = factory.get("anthropic", "claude-sonnet-4-5-20250929")
        default = factory.get()  # AI_DEFAULT_PROVIDER / AI_DEFAULT_MODEL
    """

    PROVIDERS: dict[str, type[BaseLLMProvider]] = {
        "openai": OpenAIProvider,
        "anthropic": AnthropicProvider,
        "google": GoogleProvider,
        "ollama": OllamaProvider,
    }

    def __init__(self, settings: Settings):
        self.settings = settings
        self._cache: dict[tuple[str, str], ILLMProvider] = {}

    def available_providers(self) -> list[str]:
        """Providers with credentials configured."""
        return [
            name for name in self.PROVIDERS
            if self.settings.api_key_for(name)
        ]

    def allowed_models(self, provider: str) -> set[str]:
        """Models a request may select for a provider.

        The provider's known models, its default, AI_DEFAULT_MODEL for the
        default provider and anything listed in AI_EXTRA_MODELS.
        """
        provider_class = self.PROVIDERS.get(provider)
        if provider_class is None:
            return set()
        allowed = set(provider_class.MODELS) | {provider_class.DEFAULT_MODEL}
        allowed.update(self.settings.extra_models.get(provider, []))
        if provider == self.settings.default_provider:
            allowed.add(self.settings.default_model)
        return allowed

    def register(self, provider: ILLMProvider) -> None:
        """Pre-seed the cache with an already-built provider."""
        self._cache[(provider.provider_name, provider.model_name)] = provider

    def get(
        self,
        provider: Optional[str] = None,
        model: Optional[str] = None,
    ) -> ILLMProvider:
        """Return a cached or freshly-built provider.

        Args:
            provider: Provider name (defaults to AI_DEFAULT_PROVIDER)
            model: Model name (defaults to AI_DEFAULT_MODEL for the default
                provider, else the provider's own default)

        Raises:
            ConfigurationError: If the provider is unknown or not configured,
                or the model is not allowed for it
        """
        name = (provider or self.settings.default_provider).lower()
        provider_class = self.PROVIDERS.get(name)

        if model is None:
            if name == self.settings.default_provider:
                model = self.settings.default_model
            elif provider_class is not None:
                model = provider_class.DEFAULT_MODEL

        key = (name, model or "")
        if key in self._cache:
            return self._cache[key]

        if provider_class is None:
            raise ConfigurationError(f"Unknown provider: {name}")

        api_key = self.settings.api_key_for(name)
        if not api_key:
            raise ConfigurationError(f"Provider {name} is not configured")

        if model not in self.allowed_models(name):
            raise ConfigurationError(f"Model {model} is not available for provider {name}")

        config = LLMProviderConfig(
            api_key=api_key,
            model=model,
            embedding_model=self.settings.embedding_model if name == "openai" else None,
            base_url=self.settings.ollama_base_url if name == "ollama" else None,
            timeout=self.settings.provider_timeout,
        )
        instance = provider_class(config)
        self._cache[key] = instance
        logger.info(f"Initialized {name} provider with model: {model}")
        return instance

    async def close_all(self) -> None:
        for provider in self._cache.values():
            await provider.close()
        self._cache.clear()
