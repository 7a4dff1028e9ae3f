from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="allow",
    )

    PORT: int = 8000
    APP_NAME: str = "Reelstream"
    APP_ENV: Literal["development", "production", "test"] = "production"

    REDIS_URL: str = "redis://redis:6379/0"
    # Maximum number of connections Redis client will open per process
    REDIS_MAX_CONNECTIONS: int = 20
    REDIS_KEY_PREFIX: str = "reel:"

    # Feed
    FEED_DEFAULT_LIMIT: int = 20
    FEED_MAX_LIMIT: int = 100
    HOME_CAROUSEL_SIZE: int = 10
    HOME_CAROUSEL_CACHE_TTL_SECONDS: int = 60
    TRENDING_REFRESH_INTERVAL_SECONDS: int = 3600  # 1 hour
    AUTO_UPDATE_TRENDING: bool = True

    # Streaming connections
    STREAM_CLEANUP_INTERVAL_SECONDS: int = 300  # 5 minutes
    STREAM_MAX_AGE_SECONDS: int = 1800  # 30 minutes
    STREAM_CHUNK_MIN_CHARS: int = 50
    STREAM_CHUNK_MAX_DELAY_MS: int = 300

    # AI
    AI_PROVIDER: Literal["openrouter", "gemini"] = "openrouter"
    OPENROUTER_API_KEY: str | None = None
    OPENROUTER_BASE_URL: str = "https://openrouter.ai/api/v1"
    OPENROUTER_TIMEOUT_SECONDS: float = 120.0
    SITE_URL: str = "http://localhost:8000"
    SITE_NAME: str = "Reelstream"
    DEFAULT_TEXT_MODEL: str = "openai/gpt-oss-20b"
    DEFAULT_VISION_MODEL: str = "google/gemma-3-27b-it"
    DEFAULT_GEMINI_MODEL: str = "gemma-3-27b-it"
    GEMINI_API_KEY: str | None = None


settings = Settings()
