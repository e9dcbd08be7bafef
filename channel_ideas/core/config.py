from __future__ import annotations

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    ENVIRONMENT: str = "local"
    LOG_LEVEL: str = "INFO"

    OPENAI_API_KEY: str | None = None
    YOUTUBE_API_KEY: str | None = None
    NEWS_API_KEY: str | None = None

    # === LLM Configuration ===
    OPENAI_MODEL: str = "gpt-4o-mini"
    TOPIC_TEMPERATURE: float = 0.3
    IDEA_TEMPERATURE: float = 0.8
    AGENT_TIMEOUT: float = Field(default=30.0, description="Timeout for LLM calls in seconds")

    # === Upstream HTTP Timeouts (seconds) ===
    YOUTUBE_TIMEOUT: float = 15.0
    NEWS_TIMEOUT: float = 10.0
    REDDIT_TIMEOUT: float = 10.0

    # Reddit rejects default library user agents from most cloud hosts.
    REDDIT_USER_AGENT: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    )

    PIPELINE_TIMEOUT_SECONDS: float = Field(
        default=180.0,
        description="Hard deadline for one analysis run; the stream ends with an error frame.",
    )

    CORS_ORIGINS: list[str] = ["http://localhost:3000"]

    # Used by the stream consumer in channel_ideas.client
    API_BASE_URL: str = "http://localhost:8000"

    @field_validator(
        "AGENT_TIMEOUT",
        "YOUTUBE_TIMEOUT",
        "NEWS_TIMEOUT",
        "REDDIT_TIMEOUT",
        "PIPELINE_TIMEOUT_SECONDS",
    )
    @classmethod
    def validate_timeouts(cls, v: float) -> float:
        """Validate timeout values (seconds)."""
        if v <= 0:
            raise ValueError("Timeouts must be > 0 seconds")
        if v > 3600:
            raise ValueError("Timeouts must be <= 3600 seconds (1 hour max)")
        return v

    @field_validator("TOPIC_TEMPERATURE", "IDEA_TEMPERATURE")
    @classmethod
    def validate_temperature(cls, v: float) -> float:
        """Validate sampling temperature (OpenAI accepts 0.0-2.0)."""
        if not 0.0 <= v <= 2.0:
            raise ValueError("Temperature must be between 0.0 and 2.0")
        return v


settings = Settings()
