"""Runtime context for CLI commands.

Initialized once in the main callback and available to all commands via
ctx.obj. The catalog connection is opened lazily on first use so that
``--help`` and ``--version`` never touch the database.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from comicshelf.series.catalog import SeriesCatalog

logger = logging.getLogger(__name__)


@dataclass
class RuntimeContext:
    """Typed runtime context available to all commands via ctx.obj.

    Example:
        @app.command()
        def my_command(ctx: typer.Context) -> None:
            runtime = get_runtime_context(ctx.obj)
            catalog = runtime.catalog  # Lazy-loaded
            ...
    """

    db_path: Path
    busy_timeout: float = 30.0
    verbose: bool = False

    _catalog: SeriesCatalog | None = field(default=None, repr=False)

    @property
    def catalog(self) -> SeriesCatalog:
        """Get or open the series catalog (lazy-loaded)."""
        if self._catalog is None:
            from comicshelf.series.catalog import SeriesCatalog

            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._catalog = SeriesCatalog(self.db_path, busy_timeout=self.busy_timeout)
            logger.debug("Catalog opened at %s", self.db_path)
        return self._catalog

    def close(self) -> None:
        """Close the catalog connection if it was opened."""
        if self._catalog is not None:
            self._catalog.close()
            self._catalog = None
            logger.debug("Catalog closed")

    def __enter__(self) -> RuntimeContext:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()


def get_runtime_context(ctx_obj: object) -> RuntimeContext:
    """Extract RuntimeContext from a typer context object.

    Raises:
        TypeError: If the main callback did not install a RuntimeContext
    """
    if isinstance(ctx_obj, RuntimeContext):
        return ctx_obj
    raise TypeError(
        f"Expected RuntimeContext, got {type(ctx_obj).__name__}. "
        "Ensure the main callback initializes ctx.obj properly."
    )
