from datetime import UTC, datetime
from pathlib import Path

from pydantic_settings import BaseSettings


def utcnow() -> datetime:
    """Return the current UTC time as a naive datetime.

    Replaces the deprecated ``datetime.utcnow()`` while keeping datetimes
    naive so they stay compatible with SQLite (which doesn't store tz info).
    """
    return datetime.now(UTC).replace(tzinfo=None)


class Settings(BaseSettings):
    app_name: str = "cardforge"
    database_url: str = f"sqlite+aiosqlite:///{Path(__file__).resolve().parent.parent / 'data' / 'cardforge.db'}"
    debug: bool = False
    environment: str = "production"  # development shows exception detail in 500 responses
    cors_origins: list[str] = ["http://localhost:5173", "http://localhost:3000"]

    # LLM provider: openrouter, openai or anthropic
    llm_provider: str = "openrouter"
    openrouter_api_key: str = ""
    openrouter_base_url: str = "https://openrouter.ai/api/v1/"
    openrouter_referer: str = "https://cardforge.app"
    openai_api_key: str = ""
    openai_base_url: str = "https://api.openai.com/v1/"
    anthropic_api_key: str = ""
    llm_timeout_seconds: float = 30.0
    llm_max_tokens: int = 4096
    default_model: str = "openai/gpt-4o-mini"

    # Orchestrator retry policy for an unavailable provider
    generation_max_attempts: int = 2
    generation_retry_backoff: float = 1.0

    # Input bounds
    source_text_min_length: int = 1000
    source_text_max_length: int = 10000
    model_max_length: int = 100
    front_max_length: int = 200
    back_max_length: int = 500
    max_batch_size: int = 50
    default_page_size: int = 20
    max_page_size: int = 100

    # Access tokens
    jwt_secret_key: str = "change-me-in-production-at-least-32-bytes"
    jwt_issuer: str = "cardforge"
    jwt_audience: str = "cardforge-api"
    jwt_expiration_minutes: int = 1440

    model_config = {"env_prefix": "CARDFORGE_", "env_file": ".env"}

    @property
    def is_development(self) -> bool:
        return self.environment.lower() in ("development", "dev", "local")


settings = Settings()
