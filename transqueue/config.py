"""
Application configuration.

Loads settings from environment variables with sensible defaults.
"""

from __future__ import annotations

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    # ==========================================================================
    # Environment
    # ==========================================================================

    environment: str = "development"
    debug: bool = True
    log_level: str = "INFO"

    # ==========================================================================
    # API Server
    # ==========================================================================

    api_host: str = "0.0.0.0"
    api_port: int = 8080
    api_key: str = ""
    cors_origins: str = "*"

    # ==========================================================================
    # Storage & Queue
    # ==========================================================================

    # "memory" for local development, "redis" for anything shared
    storage_backend: str = "memory"
    redis_url: str = "redis://localhost:6379/0"
    request_ttl_hours: int = 24
    queue_name: str = "translation_tasks"

    # ==========================================================================
    # Worker
    # ==========================================================================

    worker_concurrency: int = 4
    queue_poll_seconds: float = 1.0
    recover_on_startup: bool = True

    # ==========================================================================
    # Translation / LLM
    # ==========================================================================

    source_language: str = "en"

    # Which provider to use
    llm_provider: str = "openai"

    # Gemini (accepts either GOOGLE_API_KEY or GEMINI_API_KEY)
    google_api_key: str = ""
    gemini_api_key: str = ""
    gemini_model: str = "gemini-2.0-flash"

    openai_api_key: str = ""
    openai_model: str = "gpt-4"
    anthropic_api_key: str = ""
    anthropic_model: str = "claude-3-opus-20240229"

    llm_temperature: float = 0.3
    llm_max_tokens: int = 1000
    provider_max_attempts: int = 3

    # ==========================================================================
    # Optional Services
    # ==========================================================================

    sentry_dsn: str = ""

    # ==========================================================================
    # Helpers
    # ==========================================================================

    @property
    def cors_origins_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def request_ttl_seconds(self) -> int:
        return self.request_ttl_hours * 3600

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
