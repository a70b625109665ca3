"""Configuration: environment-driven settings via pydantic-settings.

Invariants:
    - Every setting can be overridden with an RTDB_-prefixed environment variable
    - get_settings() is cached (lru_cache): single instance per process
    - database_url never ends with a slash
"""

from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """rtdb-bridge settings from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env", env_prefix="RTDB_", case_sensitive=False, extra="ignore",
    )

    # Database
    database_url: str = "https://localhost.firebaseio.com"

    @field_validator("database_url", mode="before")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        if isinstance(v, str):
            return v.strip().rstrip("/")
        return v

    request_timeout_seconds: float = 30.0

    # Connection tracking
    # Mirrors the server-side grace period of the admin backend.
    disconnect_timeout_seconds: float = 30.0
    liveness_check_interval_seconds: float = 5.0
    liveness_check_timeout_seconds: float = 5.0
    liveness_check_path: str = "__liveness"

    # Observability
    log_level: str = "INFO"
    log_format: str = "json"


@lru_cache
def get_settings() -> Settings:
    return Settings()
