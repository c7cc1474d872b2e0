"""Client configuration via Pydantic BaseSettings."""

from __future__ import annotations

from enum import Enum
from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_API_URL = "https://api.cimamplify.com"


class Environment(str, Enum):
    development = "development"
    staging = "staging"
    production = "production"


class Settings(BaseSettings):
    """Client settings loaded from environment variables and .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="DEALDESK_",
    )

    # Remote deal service
    API_URL: str = DEFAULT_API_URL
    HTTP_TIMEOUT: float = 5.0  # httpx default

    # Environment
    ENVIRONMENT: Environment = Environment.development

    # Logging
    LOG_LEVEL: str = "INFO"

    # Client-resident session cache
    SESSION_FILE: Path = Path.home() / ".dealdesk" / "session.json"
    SESSION_QUOTA_BYTES: int = 0  # 0 disables the quota

    def resolved_api_url(self, override: str | None = None) -> str:
        """Return the base URL, preferring a stored override.

        An override persisted under the ``apiUrl`` key wins over API_URL,
        which in turn falls back to the public service URL when blank.
        """
        url = (override or "").strip() or self.API_URL.strip() or DEFAULT_API_URL
        return url.rstrip("/")


@lru_cache
def get_settings() -> Settings:
    """Singleton settings instance."""
    return Settings()
