"""
Application settings using Pydantic.

Provides environment-based configuration loading with STRATUM_ prefix.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="STRATUM_",
        extra="ignore",
    )

    # State store
    state_backend: Literal["json", "sql", "memory"] = "json"
    state_dir: Path = Path(".stratum/state")
    database_url: str = "sqlite+aiosqlite:///.stratum/state.db"
    retain_deleted: bool = False

    # Execution
    max_workers: int = Field(default=4, ge=1)
    max_attempts: int = Field(default=5, ge=1)
    backoff_multiplier: float = 1.0
    backoff_min: float = 1.0
    backoff_max: float = 30.0

    # Verification
    verify_timeout: float = 30.0
    network_probes: bool = False

    # Backends
    local_backend_dir: Path = Path(".stratum/local")
    http_backend_url: str | None = None
    http_backend_token: str | None = None
    http_timeout: float = 30.0
    command_timeout: float = 600.0

    # Logging
    log_level: str = "WARNING"
    log_json: bool = True


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
