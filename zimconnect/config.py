"""
ZimConnect — Application Configuration

Loads all configuration from environment variables (and an optional .env file)
using Pydantic Settings.  A cached ``get_settings()`` helper is provided so that
FastAPI dependency-injection (and any other call-site) always receives the same
validated instance without re-parsing the environment on every request.
"""

from __future__ import annotations

from functools import lru_cache
from typing import List

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Central configuration for the ZimConnect service."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------ #
    # Database – Cloud SQL via Unix socket, private IP, or local URL
    # ------------------------------------------------------------------ #
    DATABASE_URL: str
    DB_USER: str = "zimconnect_user"
    DB_PASSWORD: str = ""
    DB_NAME: str = "zimconnect"

    # ------------------------------------------------------------------ #
    # Realtime change feed
    # ------------------------------------------------------------------ #
    REALTIME_BACKEND: str = "memory"  # memory / redis
    REDIS_URL: str = ""
    REALTIME_CHANNEL_PREFIX: str = "zimconnect:changes"

    # ------------------------------------------------------------------ #
    # Discovery
    # ------------------------------------------------------------------ #
    DISCOVERY_RESULT_CAP: int = 50
    SEARCH_RESULT_CAP: int = 5
    DEFAULT_GENDER_PREFERENCE: str = "everyone"
    DEFAULT_AGE_MIN: int = 22
    DEFAULT_AGE_MAX: int = 35

    # ------------------------------------------------------------------ #
    # Messaging & notifications
    # ------------------------------------------------------------------ #
    MESSAGE_MAX_LENGTH: int = 2000
    NOTIFICATION_LIST_LIMIT: int = 20

    # ------------------------------------------------------------------ #
    # Runtime environment
    # ------------------------------------------------------------------ #
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    # ------------------------------------------------------------------ #
    # Google Cloud Platform
    # ------------------------------------------------------------------ #
    GCP_PROJECT_ID: str = ""
    GCS_BUCKET_NAME: str = ""
    GCS_PHOTO_PREFIX: str = "profile-photos/"
    CLOUD_SQL_INSTANCE_CONNECTION: str = ""
    CLOUD_SQL_USE_UNIX_SOCKET: bool = True

    # ------------------------------------------------------------------ #
    # CORS
    # ------------------------------------------------------------------ #
    ALLOWED_ORIGINS: str = "*"

    # ------------------------------------------------------------------ #
    # Derived helpers
    # ------------------------------------------------------------------ #
    @property
    def allowed_origins_list(self) -> List[str]:
        """Return ALLOWED_ORIGINS as a list split on commas."""
        return [o.strip() for o in self.ALLOWED_ORIGINS.split(",")]

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    @property
    def default_age_range(self) -> tuple[int, int]:
        return (self.DEFAULT_AGE_MIN, self.DEFAULT_AGE_MAX)

    @field_validator("REALTIME_BACKEND")
    @classmethod
    def _backend_must_be_known(cls, v: str) -> str:
        if v not in ("memory", "redis"):
            raise ValueError(f"REALTIME_BACKEND must be 'memory' or 'redis', got {v!r}")
        return v

    @field_validator("DEFAULT_AGE_MIN", "DEFAULT_AGE_MAX")
    @classmethod
    def _age_must_be_adult(cls, v: int) -> int:
        if v < 18:
            raise ValueError(f"Age bounds must be at least 18, got {v}")
        return v


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached, validated ``Settings`` instance.

    Using ``@lru_cache`` guarantees the .env file is read and validated
    exactly once per process lifetime.  Import this function anywhere you
    need access to configuration::

        from zimconnect.config import get_settings
        settings = get_settings()
    """
    return Settings()  # type: ignore[call-arg]
