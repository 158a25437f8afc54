"""LLM provider implementations."""

from .base import BaseLLMProvider, LLMProviderConfig, supports_reasoning
from .anthropic import AnthropicProvider
from .google import GoogleProvider
from .openai import OpenAIProvider
from .ollama import OllamaProvider
from .factory import ModelProviderFactory

__all__ = [
    "BaseLLMProvider",
    "LLMProviderConfig",
    "supports_reasoning",
    "AnthropicProvider",
    "GoogleProvider",
    "OpenAIProvider",
    "OllamaProvider",
    "ModelProviderFactory",
]
