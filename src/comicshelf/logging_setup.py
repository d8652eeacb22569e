"""Logging configuration for comicshelf.

All package modules log through ``logging.getLogger(__name__)``, so handlers
are attached once to the ``comicshelf`` logger. Console output shares the
themed stderr console used by the CLI; the optional log file always records
DEBUG so link and merge decisions can be audited after the fact.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import TYPE_CHECKING

from rich.logging import RichHandler

if TYPE_CHECKING:
    from comicshelf.env_settings import AppEnvSettings

LOGGER_NAME = "comicshelf"

FILE_FORMAT = "%(asctime)s | %(levelname)-5s | [%(name)s] %(message)s"
FILE_DATEFMT = "%Y-%m-%d %H:%M:%S"

_console_handler: logging.Handler | None = None


def _make_console_handler(rich_console: bool) -> logging.Handler:
    if not rich_console:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
        return handler

    from comicshelf.console import err_console

    # Series names routinely contain "[...]", which Rich would read as markup
    return RichHandler(
        console=err_console,
        show_time=True,
        show_path=False,
        rich_tracebacks=True,
        markup=False,
    )


def _make_file_handler(log_file: Path | str) -> logging.Handler:
    log_path = Path(log_file).expanduser()
    log_path.parent.mkdir(parents=True, exist_ok=True)

    handler = logging.FileHandler(log_path, encoding="utf-8")
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt=FILE_DATEFMT))
    return handler


def setup_logging(
    log_level: str = "INFO",
    log_file: Path | str | None = None,
    rich_console: bool = True,
    quiet_console: bool = False,
) -> logging.Logger:
    """
    Configure the comicshelf package logger.

    Calling it again replaces the previous handlers.

    Args:
        log_level: Logging level name, case-insensitive; unknown names mean INFO
        log_file: Optional file receiving DEBUG and above
        rich_console: Use Rich for console output instead of a plain stream
        quiet_console: Only show WARNING+ on the console

    Returns:
        The "comicshelf" package logger
    """
    global _console_handler
    level = getattr(logging, log_level.upper(), logging.INFO)

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    console_handler = _make_console_handler(rich_console)
    console_handler.setLevel(max(level, logging.WARNING) if quiet_console else level)
    logger.addHandler(console_handler)
    _console_handler = console_handler

    if log_file:
        logger.addHandler(_make_file_handler(log_file))

    logger.debug("Logging configured (level=%s, file=%s)", logging.getLevelName(level), log_file)
    return logger


def setup_logging_from_settings(
    settings: AppEnvSettings,
    *,
    verbose: bool = False,
    quiet: bool = False,
) -> logging.Logger:
    """Configure logging from environment settings and CLI flags.

    ``verbose`` forces DEBUG and wins over ``quiet``.
    """
    return setup_logging(
        log_level="DEBUG" if verbose else settings.log_level,
        log_file=settings.log_file,
        rich_console=True,
        quiet_console=quiet and not verbose,
    )


def set_console_quiet(quiet: bool = True) -> None:
    """
    Toggle quiet mode for console logging.

    Quiet shows only WARNING and above on the console; turning it off
    restores the package logger's level. The log file is unaffected.
    """
    if _console_handler is None:
        return
    level = logging.getLogger(LOGGER_NAME).level or logging.INFO
    _console_handler.setLevel(max(level, logging.WARNING) if quiet else level)
