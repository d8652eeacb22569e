"""Cross-platform path handling using platformdirs.

Provides XDG-compliant paths with environment variable overrides.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Literal

from platformdirs import user_data_dir, user_log_dir

logger = logging.getLogger(__name__)

APP_NAME = "comicshelf"
APPAUTHOR: Literal[False] = False  # Avoid "CompanyName/AppName" nesting on Windows

DEFAULT_DB_FILENAME = "library.db"


def _env_override(env_var: str) -> Path | None:
    """Return the path named by an environment variable, if set."""
    v = os.environ.get(env_var)
    return Path(v).expanduser() if v else None


def data_dir(*, ensure: bool = True) -> Path:
    """Get application data directory.

    Linux: ~/.local/share/comicshelf
    macOS: ~/Library/Application Support/comicshelf

    Override with COMICSHELF_DATA_DIR env var.

    Args:
        ensure: Create directory if it doesn't exist

    Returns:
        Path to data directory
    """
    d = _env_override("COMICSHELF_DATA_DIR") or Path(user_data_dir(APP_NAME, APPAUTHOR))
    if ensure:
        d.mkdir(parents=True, exist_ok=True)
    return d


def log_dir(*, ensure: bool = True) -> Path:
    """Get application log directory (override with COMICSHELF_LOG_DIR)."""
    d = _env_override("COMICSHELF_LOG_DIR") or Path(user_log_dir(APP_NAME, APPAUTHOR))
    if ensure:
        d.mkdir(parents=True, exist_ok=True)
    return d


def default_db_path() -> Path:
    """Default location of the library catalog database."""
    return data_dir(ensure=False) / DEFAULT_DB_FILENAME
