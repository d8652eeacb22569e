"""Tests for pydantic-settings based environment configuration."""

from __future__ import annotations

import os
from pathlib import Path
from unittest import mock

import pytest

from comicshelf.env_settings import (
    AppEnvSettings,
    CatalogEnvSettings,
    EnvSettings,
    clear_env_settings_cache,
    get_env_settings,
    load_env_settings_from_file,
)


class TestCatalogEnvSettings:
    """Tests for catalog environment settings."""

    def test_default_values(self, tmp_path: Path) -> None:
        """Test defaults place the catalog in the data directory."""
        with mock.patch.dict(os.environ, {"COMICSHELF_DATA_DIR": str(tmp_path)}, clear=True):
            settings = CatalogEnvSettings()
            assert settings.db_path == tmp_path / "library.db"
            assert settings.busy_timeout == 30.0

    def test_loads_from_env(self, tmp_path: Path) -> None:
        """Test loading from environment variables."""
        env = {
            "COMICSHELF_DB_PATH": str(tmp_path / "catalog.db"),
            "COMICSHELF_BUSY_TIMEOUT": "5",
        }
        with mock.patch.dict(os.environ, env, clear=True):
            settings = CatalogEnvSettings()
            assert settings.db_path == tmp_path / "catalog.db"
            assert settings.busy_timeout == 5.0

    def test_expands_home(self) -> None:
        """Test ~ is expanded in the database path."""
        env = {"COMICSHELF_DB_PATH": "~/comics.db", "HOME": "/home/reader"}
        with mock.patch.dict(os.environ, env, clear=True):
            settings = CatalogEnvSettings()
            assert settings.db_path == Path("/home/reader/comics.db")

    def test_validates_busy_timeout(self) -> None:
        """Test non-positive timeouts are rejected."""
        env = {"COMICSHELF_BUSY_TIMEOUT": "0"}
        with (
            mock.patch.dict(os.environ, env, clear=True),
            pytest.raises(ValueError, match="COMICSHELF_BUSY_TIMEOUT must be positive"),
        ):
            CatalogEnvSettings()


class TestAppEnvSettings:
    """Tests for application environment settings."""

    def test_default_values(self) -> None:
        """Test default values when no env vars set."""
        with mock.patch.dict(os.environ, {}, clear=True):
            settings = AppEnvSettings()
            assert settings.env == "production"
            assert settings.log_level == "INFO"
            assert settings.log_file is None

    def test_loads_from_env(self, tmp_path: Path) -> None:
        """Test loading from environment variables."""
        env = {
            "COMICSHELF_ENV": "development",
            "LOG_LEVEL": "debug",
            "COMICSHELF_LOG_FILE": str(tmp_path / "comicshelf.log"),
        }
        with mock.patch.dict(os.environ, env, clear=True):
            settings = AppEnvSettings()
            assert settings.env == "development"
            assert settings.log_level == "DEBUG"  # Normalized to uppercase
            assert settings.log_file == tmp_path / "comicshelf.log"

    def test_validates_log_level(self) -> None:
        """Test log level validation."""
        env = {"LOG_LEVEL": "VERBOSE"}  # Invalid level
        with (
            mock.patch.dict(os.environ, env, clear=True),
            pytest.raises(ValueError, match="LOG_LEVEL must be one of"),
        ):
            AppEnvSettings()


class TestEnvSettings:
    """Tests for combined environment settings."""

    def test_aggregates_all_settings(self, tmp_path: Path) -> None:
        """Test that EnvSettings aggregates all nested settings."""
        env = {
            "COMICSHELF_DB_PATH": str(tmp_path / "catalog.db"),
            "COMICSHELF_ENV": "development",
        }
        with mock.patch.dict(os.environ, env, clear=True):
            settings = EnvSettings()
            assert settings.catalog.db_path == tmp_path / "catalog.db"
            assert settings.app.env == "development"


class TestGetEnvSettings:
    """Tests for get_env_settings caching."""

    def test_returns_cached_instance(self) -> None:
        """Test that get_env_settings returns cached instance."""
        with mock.patch.dict(os.environ, {}, clear=True):
            settings1 = get_env_settings()
            settings2 = get_env_settings()
            assert settings1 is settings2

    def test_clear_cache_allows_reload(self) -> None:
        """Test that clearing cache allows fresh reload."""
        with mock.patch.dict(os.environ, {"COMICSHELF_BUSY_TIMEOUT": "1"}, clear=True):
            clear_env_settings_cache()
            assert get_env_settings().catalog.busy_timeout == 1.0

        with mock.patch.dict(os.environ, {"COMICSHELF_BUSY_TIMEOUT": "2"}, clear=True):
            clear_env_settings_cache()
            assert get_env_settings().catalog.busy_timeout == 2.0


class TestLoadEnvSettingsFromFile:
    """Tests for loading from .env files."""

    def test_loads_from_env_file(self, tmp_path: Path) -> None:
        """Test loading environment settings from a .env file."""
        env_file = tmp_path / ".env"
        env_file.write_text(f"COMICSHELF_DB_PATH={tmp_path / 'from-file.db'}\nLOG_LEVEL=warning\n")

        with mock.patch.dict(os.environ, {}, clear=True):
            settings = load_env_settings_from_file(env_file)
            assert settings.catalog.db_path == tmp_path / "from-file.db"
            assert settings.app.log_level == "WARNING"
