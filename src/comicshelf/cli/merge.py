"""Merge commands.

Commands: merge preview, merge run
"""

from __future__ import annotations

import json
from typing import Annotated

import typer

from comicshelf.cli._app import JsonOption
from comicshelf.cli._context import get_runtime_context
from comicshelf.console import console, print_error
from comicshelf.exceptions import ComicshelfError

TargetArg = Annotated[str, typer.Argument(metavar="TARGET", help="Series ID to keep.")]
SourcesArg = Annotated[
    list[str],
    typer.Argument(metavar="SOURCE...", help="Series IDs to fold into the target."),
]


def register_merge_commands(merge_app: typer.Typer) -> None:
    """Register merge commands on the merge sub-app."""

    @merge_app.command("preview")
    def merge_preview(
        ctx: typer.Context,
        target: TargetArg,
        sources: SourcesArg,
        json_output: JsonOption = False,
    ) -> None:
        """Show what merging SOURCE series into TARGET would do.

        [bold]Example:[/]
          comicshelf merge preview 3f2a... 91bc... 07de...
        """
        from comicshelf.console import print_merge_preview
        from comicshelf.series.merge import SeriesMerger

        runtime = get_runtime_context(ctx.obj)
        try:
            preview = SeriesMerger(runtime.catalog).preview_merge(sources, target)
        except ComicshelfError as e:
            print_error(str(e))
            raise typer.Exit(1) from e

        if json_output:
            console.print_json(json.dumps(preview.to_dict()))
        else:
            print_merge_preview(preview)

    @merge_app.command("run")
    def merge_run(
        ctx: typer.Context,
        target: TargetArg,
        sources: SourcesArg,
        yes: Annotated[
            bool,
            typer.Option("--yes", "-y", help="Do not ask for confirmation."),
        ] = False,
        json_output: JsonOption = False,
    ) -> None:
        """Merge SOURCE series into TARGET.

        Files, collection memberships and reading progress move to the
        target; source names become aliases; the sources are deleted.
        Nothing changes if any step fails.
        """
        from comicshelf.console import confirm, print_merge_preview, print_merge_result
        from comicshelf.series.merge import SeriesMerger

        runtime = get_runtime_context(ctx.obj)
        merger = SeriesMerger(runtime.catalog)

        try:
            if not yes:
                print_merge_preview(merger.preview_merge(sources, target))
                if not confirm("Merge these series?"):
                    console.print("[dim]Cancelled[/]")
                    raise typer.Exit(1)
            result = merger.merge_series(sources, target)
        except ComicshelfError as e:
            print_error(str(e))
            raise typer.Exit(1) from e

        if json_output:
            console.print_json(json.dumps(result.to_dict()))
        else:
            print_merge_result(result)
