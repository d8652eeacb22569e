"""Environment-based settings using pydantic-settings.

Usage:
    from comicshelf.env_settings import get_env_settings

    env = get_env_settings()
    print(env.catalog.db_path)

Environment Variables:
    Catalog:
        COMICSHELF_DB_PATH - SQLite catalog path (default: <data dir>/library.db)
        COMICSHELF_BUSY_TIMEOUT - Seconds to wait on a locked database (default: 30)

    Application:
        COMICSHELF_ENV - Environment name (default: "production")
        LOG_LEVEL - Logging level (default: "INFO")
        COMICSHELF_LOG_FILE - Optional log file path

Matching thresholds are not configurable; they live as constants next to the
code that applies them.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from comicshelf.paths import default_db_path

logger = logging.getLogger(__name__)


class CatalogEnvSettings(BaseSettings):
    """Catalog database settings.

    Reads from COMICSHELF_DB_PATH, COMICSHELF_BUSY_TIMEOUT env vars.
    """

    model_config = SettingsConfigDict(
        env_prefix="COMICSHELF_",
        extra="ignore",
    )

    db_path: Path = Field(default_factory=default_db_path, description="SQLite catalog path")
    busy_timeout: float = Field(
        default=30.0,
        description="Seconds a connection waits for a competing writer",
    )

    @field_validator("busy_timeout")
    @classmethod
    def validate_busy_timeout(cls, v: float) -> float:
        """Reject non-positive timeouts."""
        if v <= 0:
            raise ValueError(f"COMICSHELF_BUSY_TIMEOUT must be positive, got: {v}")
        return v

    @field_validator("db_path", mode="before")
    @classmethod
    def expand_db_path(cls, v: str | Path) -> Path:
        """Expand ~ in the configured path."""
        return Path(v).expanduser()


class AppEnvSettings(BaseSettings):
    """Application-level settings from environment variables.

    Reads from COMICSHELF_ENV, LOG_LEVEL, COMICSHELF_LOG_FILE env vars.
    """

    model_config = SettingsConfigDict(
        extra="ignore",
    )

    env: str = Field(
        default="production",
        validation_alias="COMICSHELF_ENV",
        description="Environment name (development/production)",
    )
    log_level: str = Field(
        default="INFO",
        validation_alias="LOG_LEVEL",
        description="Logging level",
    )
    log_file: Path | None = Field(
        default=None,
        validation_alias="COMICSHELF_LOG_FILE",
        description="Optional log file",
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate and normalize log level."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper = v.upper()
        if upper not in valid_levels:
            raise ValueError(f"LOG_LEVEL must be one of {valid_levels}, got: {v}")
        return upper


class EnvSettings(BaseSettings):
    """Combined environment settings.

    Use get_env_settings() to get a cached instance.
    """

    model_config = SettingsConfigDict(
        extra="ignore",
    )

    catalog: CatalogEnvSettings = Field(default_factory=CatalogEnvSettings)
    app: AppEnvSettings = Field(default_factory=AppEnvSettings)


@lru_cache(maxsize=1)
def get_env_settings() -> EnvSettings:
    """Get cached environment settings.

    Returns:
        EnvSettings instance populated from the environment on first call.
    """
    return EnvSettings()


def clear_env_settings_cache() -> None:
    """Clear the cached environment settings (used by tests)."""
    get_env_settings.cache_clear()


def load_env_settings_from_file(env_file: Path) -> EnvSettings:
    """Load environment settings from a specific .env file.

    Args:
        env_file: Path to .env file to load.

    Returns:
        EnvSettings instance with configuration from the file.
    """
    from dotenv import load_dotenv

    load_dotenv(env_file, override=True)

    clear_env_settings_cache()
    return get_env_settings()
