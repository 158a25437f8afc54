"""
Runtime configuration for the EducaIA service.

Values come from environment variables (a local .env file is loaded
first when present).

Environment Variables:
- AI_DEFAULT_PROVIDER: Provider used when a request names none (default: openai)
- AI_DEFAULT_MODEL: Model used when a request names none (default: gpt-5-mini)
- OPENAI_API_KEY / ANTHROPIC_API_KEY / GOOGLE_API_KEY: Vendor credentials
- OLLAMA_BASE_URL: Ollama server URL (enables the ollama provider)
- OPENAI_EMBEDDING_MODEL: Embedding model for knowledge search
- AI_EXTRA_MODELS: Extra selectable models as provider:model pairs, comma-separated
  (e.g. "ollama:qwen3:14b,openai:gpt-4.1")
- AI_MAX_RETRIES: Provider retry budget for transient failures (default: 3)
- AI_TIMEOUT: Provider request timeout in seconds (default: 60)
- AGENT_PROVIDER_IDLE_TIMEOUT: Max seconds between two provider events (default: 60)
- AGENT_MAX_TOOL_ROUNDS: Tool rounds per answer before forcing a reply (default: 5)
- AGENT_APPROVAL_TIMEOUT: Seconds a sensitive tool call waits for approval (default: 300)
- AGENT_MAX_HISTORY_MESSAGES: History window sent to the model (default: 30)
- DATABASE_URL: PostgreSQL DSN; in-memory stores are used when unset
- CORS_ORIGINS: Comma-separated allowed origins
- LOG_LEVEL: Root log level (default: INFO)
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv

load_dotenv()


def _env_int(name: str, default: int) -> int:
    return int(os.getenv(name, str(default)))


def _env_float(name: str, default: float) -> float:
    return float(os.getenv(name, str(default)))


def _parse_models(raw: str) -> dict[str, list[str]]:
    """Parse "provider:model" pairs; the model part may itself contain colons."""
    models: dict[str, list[str]] = {}
    for entry in raw.split(","):
        provider, _, model = entry.strip().partition(":")
        if provider and model:
            models.setdefault(provider.lower(), []).append(model)
    return models


@dataclass
class Settings:
    """Service settings.

    Usage:
        settings = Settings.from_env()
        factory = ModelProviderFactory(settings)
    """

    default_provider: str = "openai"
    default_model: str = "gpt-5-mini"
    openai_api_key: Optional[str] = None
    anthropic_api_key: Optional[str] = None
    google_api_key: Optional[str] = None
    ollama_base_url: Optional[str] = None
    embedding_model: str = "text-embedding-3-small"
    extra_models: dict[str, list[str]] = field(default_factory=dict)
    provider_max_retries: int = 3
    provider_timeout: float = 60.0
    provider_idle_timeout: float = 60.0
    max_tool_rounds: int = 5
    approval_timeout_seconds: float = 300.0
    max_history_messages: int = 30
    database_url: Optional[str] = None
    cors_origins: list[str] = field(
        default_factory=lambda: ["http://localhost:3000", "http://localhost:5173"]
    )
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> Settings:
        """Build settings from the process environment."""
        return cls(
            default_provider=os.getenv("AI_DEFAULT_PROVIDER", "openai").lower(),
            default_model=os.getenv("AI_DEFAULT_MODEL", "gpt-5-mini"),
            openai_api_key=os.getenv("OPENAI_API_KEY"),
            anthropic_api_key=os.getenv("ANTHROPIC_API_KEY"),
            google_api_key=os.getenv("GOOGLE_API_KEY"),
            ollama_base_url=os.getenv("OLLAMA_BASE_URL"),
            embedding_model=os.getenv("OPENAI_EMBEDDING_MODEL", "text-embedding-3-small"),
            extra_models=_parse_models(os.getenv("AI_EXTRA_MODELS", "")),
            provider_max_retries=_env_int("AI_MAX_RETRIES", 3),
            provider_timeout=_env_float("AI_TIMEOUT", 60.0),
            provider_idle_timeout=_env_float("AGENT_PROVIDER_IDLE_TIMEOUT", 60.0),
            max_tool_rounds=_env_int("AGENT_MAX_TOOL_ROUNDS", 5),
            approval_timeout_seconds=_env_float("AGENT_APPROVAL_TIMEOUT", 300.0),
            max_history_messages=_env_int("AGENT_MAX_HISTORY_MESSAGES", 30),
            database_url=os.getenv("DATABASE_URL"),
            cors_origins=os.getenv(
                "CORS_ORIGINS", "http://localhost:3000,http://localhost:5173"
            ).split(","),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )

    def api_key_for(self, provider: str) -> Optional[str]:
        """Return the credential configured for a provider, if any."""
        if provider == "openai":
            return self.openai_api_key
        if provider == "anthropic":
            return self.anthropic_api_key
        if provider == "google":
            return self.google_api_key
        if provider == "ollama":
            # Ollama needs no key, only a reachable server
            return "not-needed" if self.ollama_base_url else None
        return None
