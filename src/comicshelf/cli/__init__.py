"""comicshelf CLI built with Typer and Rich.

The CLI is organized into:
- Series commands (link, pending)
- Maintenance commands (duplicates, stats)
- Merge sub-app (merge preview, merge run)
"""

from __future__ import annotations

import sys

from comicshelf.cli._app import (
    MAINTENANCE_COMMANDS,
    SERIES_COMMANDS,
    create_main_callback,
    make_app,
    make_merge_app,
)
from comicshelf.cli._context import RuntimeContext, get_runtime_context

# Create main app and sub-apps
app = make_app()
merge_app = make_merge_app()

app.add_typer(merge_app, name="merge", rich_help_panel=MAINTENANCE_COMMANDS)

create_main_callback(app)


# =============================================================================
# Register Commands
# =============================================================================

from comicshelf.cli.merge import register_merge_commands  # noqa: E402
from comicshelf.cli.series import register_series_commands  # noqa: E402

register_series_commands(app)
register_merge_commands(merge_app)


# =============================================================================
# Entry Point
# =============================================================================


def main() -> int:
    """Main entry point for the CLI."""
    try:
        app()
        return 0
    except SystemExit as e:
        return e.code if isinstance(e.code, int) else 0


__all__ = [
    "app",
    "merge_app",
    "main",
    "RuntimeContext",
    "get_runtime_context",
    "SERIES_COMMANDS",
    "MAINTENANCE_COMMANDS",
]

if __name__ == "__main__":
    sys.exit(main())
