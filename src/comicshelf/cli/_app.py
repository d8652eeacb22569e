"""App configuration, callbacks, and shared options for the CLI.

This module contains the Typer application factories and the main callback
that configures logging and installs the RuntimeContext.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Annotated

import typer

from comicshelf.cli._context import RuntimeContext
from comicshelf.console import console

logger = logging.getLogger(__name__)

# =============================================================================
# Help Panel Names
# =============================================================================

SERIES_COMMANDS = "Series"
MAINTENANCE_COMMANDS = "Maintenance"


# =============================================================================
# Shared Options
# =============================================================================

JsonOption = Annotated[
    bool,
    typer.Option("--json", "-j", help="Output as JSON."),
]


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        from comicshelf import __version__

        console.print(f"comicshelf {__version__}")
        raise typer.Exit()


# =============================================================================
# App Factory
# =============================================================================

MAIN_EPILOG = """
[bold cyan]Typical Workflow:[/]
  [dim]1.[/] comicshelf link --library-root ~/Comics   [dim]# Link scanned files to series[/]
  [dim]2.[/] comicshelf pending                        [dim]# Review ambiguous files[/]
  [dim]3.[/] comicshelf duplicates                     [dim]# Find duplicate series[/]
  [dim]4.[/] comicshelf merge preview TARGET SOURCE    [dim]# Inspect a merge[/]
  [dim]5.[/] comicshelf merge run TARGET SOURCE        [dim]# Execute it[/]

[dim]The catalog location comes from COMICSHELF_DB_PATH or --db.[/]
"""


def make_app() -> typer.Typer:
    """Create and configure the main Typer application."""
    return typer.Typer(
        name="comicshelf",
        help="Comic library series resolution, duplicate detection and merging",
        epilog=MAIN_EPILOG,
        rich_markup_mode="rich",
        pretty_exceptions_enable=True,
        pretty_exceptions_show_locals=False,
        no_args_is_help=True,
        add_completion=False,
        context_settings={"help_option_names": ["-h", "--help"]},
    )


MERGE_EPILOG = """
[bold cyan]Common Tasks:[/]
  comicshelf merge preview TARGET SOURCE...   [dim]# Show what would change[/]
  comicshelf merge run TARGET SOURCE...       [dim]# Merge (asks first)[/]

[dim]A merge moves files, collections and reading progress, then deletes the sources.[/]
"""


def make_merge_app() -> typer.Typer:
    """Create the merge sub-app."""
    return typer.Typer(
        name="merge",
        help="Preview and execute series merges",
        epilog=MERGE_EPILOG,
        rich_markup_mode="rich",
        no_args_is_help=True,
    )


# =============================================================================
# Logging Setup Helper
# =============================================================================


def configure_logging(verbose: bool, quiet: bool) -> None:
    """Configure logging from env settings and CLI flags."""
    from comicshelf.env_settings import get_env_settings
    from comicshelf.logging_setup import setup_logging_from_settings

    setup_logging_from_settings(get_env_settings().app, verbose=verbose, quiet=quiet)


# =============================================================================
# Main Callback Factory
# =============================================================================


def create_main_callback(app: typer.Typer) -> None:
    """Register the main callback on the app."""

    @app.callback(invoke_without_command=True)
    def main_callback(
        ctx: typer.Context,
        version: Annotated[
            bool,
            typer.Option(
                "--version",
                "-V",
                callback=version_callback,
                is_eager=True,
                help="Show version and exit.",
            ),
        ] = False,
        verbose: Annotated[
            bool,
            typer.Option("--verbose", "-v", help="Enable verbose (DEBUG) logging."),
        ] = False,
        quiet: Annotated[
            bool,
            typer.Option("--quiet", "-q", help="Only show warnings and errors on the console."),
        ] = False,
        db: Annotated[
            Path | None,
            typer.Option(
                "--db",
                help="Catalog database path (overrides COMICSHELF_DB_PATH).",
                exists=False,
            ),
        ] = None,
    ) -> None:
        """Series identity resolution for comic libraries.

        Links scanned comic files to series, finds duplicate series and
        merges them.
        """
        from comicshelf.env_settings import get_env_settings

        configure_logging(verbose, quiet)

        catalog_settings = get_env_settings().catalog
        runtime = RuntimeContext(
            db_path=db.expanduser() if db else catalog_settings.db_path,
            busy_timeout=catalog_settings.busy_timeout,
            verbose=verbose,
        )
        ctx.obj = runtime
        ctx.call_on_close(runtime.close)
