"""Series commands.

Commands: link, pending, duplicates, stats
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Annotated

import typer

from comicshelf.cli._app import MAINTENANCE_COMMANDS, SERIES_COMMANDS, JsonOption
from comicshelf.cli._context import get_runtime_context
from comicshelf.console import console


def register_series_commands(app: typer.Typer) -> None:
    """Register series commands on the main app."""

    @app.command(rich_help_panel=SERIES_COMMANDS)
    def link(
        ctx: typer.Context,
        library_root: Annotated[
            Path | None,
            typer.Option(
                "--library-root",
                "-r",
                help="Library root to load series.json folder definitions from.",
                exists=True,
                file_okay=False,
                resolve_path=True,
            ),
        ] = None,
        trust_metadata: Annotated[
            bool,
            typer.Option(
                "--trust-metadata",
                help="Create series from file metadata instead of asking about fuzzy matches.",
            ),
        ] = False,
        no_cache: Annotated[
            bool,
            typer.Option("--no-cache", help="Query the catalog for every file."),
        ] = False,
        json_output: JsonOption = False,
    ) -> None:
        """Auto-link every unlinked file to a series.

        Confident matches are linked, new series are created for unknown
        names, and close fuzzy matches are left for [cyan]comicshelf pending[/].

        [bold]Examples:[/]
          comicshelf link                          [dim]# Use file metadata[/]
          comicshelf link --library-root ~/Comics  [dim]# Honour series.json files[/]
          comicshelf link --trust-metadata         [dim]# Never ask[/]
        """
        from comicshelf.console import print_auto_link_summary
        from comicshelf.scan.cache import ScanSeriesCache
        from comicshelf.scan.folder_registry import FolderSeriesRegistry
        from comicshelf.series.linker import SeriesLinker

        runtime = get_runtime_context(ctx.obj)
        catalog = runtime.catalog

        registry = FolderSeriesRegistry.build_from_directory(library_root) if library_root else None
        scan_cache = None
        if not no_cache:
            scan_cache = ScanSeriesCache()
            scan_cache.load(catalog)

        summary = SeriesLinker(catalog).auto_link_all_files(
            trust_metadata=trust_metadata,
            folder_registry=registry,
            scan_cache=scan_cache,
        )

        if json_output:
            console.print_json(
                json.dumps(
                    {
                        "linked": summary.linked,
                        "created": summary.created,
                        "needs_confirmation": summary.needs_confirmation,
                        "errors": summary.errors,
                    }
                )
            )
        else:
            print_auto_link_summary(summary)
        raise typer.Exit(1 if summary.errors else 0)

    @app.command(rich_help_panel=SERIES_COMMANDS)
    def pending(
        ctx: typer.Context,
        limit: Annotated[
            int,
            typer.Option("--limit", "-n", min=1, help="Maximum unlinked files to examine."),
        ] = 100,
        json_output: JsonOption = False,
    ) -> None:
        """List unlinked files whose best series suggestions are too close to call."""
        from comicshelf.console import print_pending_files
        from comicshelf.series.linker import SeriesLinker

        runtime = get_runtime_context(ctx.obj)
        files = SeriesLinker(runtime.catalog).files_needing_confirmation(limit=limit)

        if json_output:
            console.print_json(
                json.dumps(
                    [
                        {
                            "file_id": p.file.id,
                            "path": p.file.relative_path,
                            "suggestions": [s.to_dict() for s in p.suggestions],
                        }
                        for p in files
                    ]
                )
            )
        else:
            print_pending_files(files)

    @app.command(rich_help_panel=MAINTENANCE_COMMANDS)
    def duplicates(
        ctx: typer.Context,
        limit: Annotated[
            int,
            typer.Option("--limit", "-n", min=1, help="Maximum groups to show."),
        ] = 50,
        json_output: JsonOption = False,
    ) -> None:
        """Find groups of series that look like the same real-world series.

        [bold]Confidence:[/]
          [red]HIGH[/]    same normalized name or same external ID
          [yellow]MEDIUM[/]  similar names, or same publisher with related names

        Follow up with [cyan]comicshelf merge preview[/].
        """
        from comicshelf.console import print_duplicate_groups
        from comicshelf.series.duplicates import DuplicateDetector

        runtime = get_runtime_context(ctx.obj)
        groups = DuplicateDetector(runtime.catalog).find_duplicate_groups()

        if json_output:
            console.print_json(json.dumps([g.to_dict() for g in groups[:limit]]))
        else:
            print_duplicate_groups(groups, limit=limit)

    @app.command(rich_help_panel=MAINTENANCE_COMMANDS)
    def stats(ctx: typer.Context) -> None:
        """Show catalog statistics."""
        from comicshelf.console import print_catalog_stats

        runtime = get_runtime_context(ctx.obj)
        print_catalog_stats(runtime.catalog.get_stats())
