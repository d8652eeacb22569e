"""Rich console output for the comicshelf CLI.

Console instances, theme, message helpers and the tables used by the
duplicate, merge and link commands.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from rich.console import Console
from rich.table import Table
from rich.theme import Theme

if TYPE_CHECKING:
    from comicshelf.series.catalog import CatalogStats
    from comicshelf.series.duplicates import DuplicateGroup
    from comicshelf.series.linker import AutoLinkSummary, PendingFile
    from comicshelf.series.merge import MergePreview, MergeResult

# =============================================================================
# Theme Configuration
# =============================================================================

COMICSHELF_THEME = Theme(
    {
        "info": "cyan",
        "success": "green",
        "warning": "yellow",
        "error": "red bold",
        "title": "bold white",
        "dim": "dim",
        "series": "magenta",
        "publisher": "cyan",
        "hint": "dim italic",
    }
)

# Primary console for normal output
console = Console(theme=COMICSHELF_THEME, stderr=False)

# Error console for stderr output
err_console = Console(theme=COMICSHELF_THEME, stderr=True)

_CONFIDENCE_STYLE = {"high": "red", "medium": "yellow", "low": "dim"}


# =============================================================================
# Messages
# =============================================================================


def print_success(message: str) -> None:
    """Print a success message with checkmark."""
    console.print(f"  [success]✓[/] {message}")


def print_error(message: str) -> None:
    """Print an error message to stderr."""
    err_console.print(f"  [error]✗[/] {message}")


def print_warning(message: str) -> None:
    console.print(f"  [warning]![/] {message}")


def print_info(message: str) -> None:
    console.print(f"  [info]→[/] {message}")


def confirm(message: str, default: bool = False) -> bool:
    """Ask for user confirmation.

    Returns:
        True if user confirmed, False otherwise (including Ctrl-C / EOF)
    """
    suffix = " [Y/n]" if default else " [y/N]"
    try:
        response = console.input(f"[warning]?[/] {message}{suffix} ")
        if not response:
            return default
        return response.lower() in ("y", "yes")
    except (KeyboardInterrupt, EOFError):
        console.print()
        return False


# =============================================================================
# Tables
# =============================================================================


def _year_range(start: int | None, end: int | None) -> str:
    if start and end and end != start:
        return f"{start}-{end}"
    return str(start) if start else ""


def print_duplicate_groups(groups: list[DuplicateGroup], limit: int = 50) -> None:
    """Print one table per duplicate group.

    Args:
        groups: Groups from DuplicateDetector.find_duplicate_groups()
        limit: Maximum groups to show
    """
    if not groups:
        console.print("[success]✓ No duplicate series found[/]")
        return

    for group in groups[:limit]:
        style = _CONFIDENCE_STYLE.get(group.confidence.value, "white")
        reasons = ", ".join(r.value for r in group.reasons)
        table = Table(
            title=f"[{style}]{group.confidence.value.upper()}[/] {group.id} [dim]({reasons})[/]",
            title_justify="left",
            show_header=True,
            header_style="bold",
        )
        table.add_column("ID", style="dim", no_wrap=True)
        table.add_column("Name", style="series", overflow="fold", ratio=2)
        table.add_column("Publisher", style="publisher", ratio=1)
        table.add_column("Years", width=11)
        table.add_column("Issues", justify="right", width=6)
        table.add_column("Matched by", style="dim", ratio=1)

        for member in group.members:
            table.add_row(
                member.id,
                member.name,
                member.publisher or "",
                _year_range(member.start_year, member.end_year),
                str(member.owned_issue_count),
                ", ".join(r.value for r in group.member_reasons.get(member.id, [])),
            )
        console.print(table)

    if len(groups) > limit:
        console.print(f"\n[dim]Showing {limit} of {len(groups)} groups[/]")


def print_merge_preview(preview: MergePreview) -> None:
    """Print what a merge would do."""
    target = preview.target
    console.print(
        f"[title]Merge into:[/] [series]{target.name}[/] "
        f"[dim]({target.id}, {target.owned_issue_count} issues)[/]"
    )

    table = Table(show_header=True, header_style="bold")
    table.add_column("Source ID", style="dim", no_wrap=True)
    table.add_column("Name", style="series", overflow="fold")
    table.add_column("Publisher", style="publisher")
    table.add_column("Issues", justify="right", width=6)
    for source in preview.sources:
        table.add_row(source.id, source.name, source.publisher or "", str(source.owned_issue_count))
    console.print(table)

    if preview.resulting_aliases:
        console.print(f"[dim]Aliases after merge:[/] {', '.join(preview.resulting_aliases)}")
    console.print(f"[dim]Issues after merge:[/] {preview.total_issues_after_merge}")
    for warning in preview.warnings:
        print_warning(warning)


def print_merge_result(result: MergeResult) -> None:
    print_success(
        f"Merged {len(result.merged_source_ids)} series into {result.target_series_id} "
        f"({result.issues_moved} issues moved)"
    )
    if result.aliases_added:
        print_info(f"Aliases added: {', '.join(result.aliases_added)}")


def print_auto_link_summary(summary: AutoLinkSummary) -> None:
    table = Table(title="Auto-link", show_header=False, title_justify="left")
    table.add_column("Result", style="bold")
    table.add_column("Files", justify="right")
    table.add_row("Linked", f"[success]{summary.linked}[/]")
    table.add_row("Series created", str(summary.created))
    table.add_row("Needs confirmation", f"[warning]{summary.needs_confirmation}[/]")
    table.add_row("Errors", f"[error]{summary.errors}[/]" if summary.errors else "0")
    console.print(table)


def print_pending_files(pending: list[PendingFile]) -> None:
    """Print files awaiting a human series choice, with their suggestions."""
    if not pending:
        console.print("[success]✓ No files need confirmation[/]")
        return

    table = Table(
        title=f"[warning]Files needing confirmation ({len(pending)})[/]",
        show_header=True,
        header_style="bold",
    )
    table.add_column("File", style="cyan", overflow="fold", ratio=2)
    table.add_column("Suggestion", style="series", overflow="fold", ratio=2)
    table.add_column("Conf.", justify="right", width=6)
    table.add_column("Reason", style="dim", overflow="fold", ratio=2)

    for item in pending:
        for i, suggestion in enumerate(item.suggestions):
            table.add_row(
                item.file.relative_path if i == 0 else "",
                suggestion.series.name,
                f"{suggestion.confidence:.2f}",
                suggestion.reason,
            )
    console.print(table)


def print_catalog_stats(stats: CatalogStats) -> None:
    table = Table(title="Catalog", show_header=False, title_justify="left")
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")
    table.add_row("Active series", str(stats.active_series))
    table.add_row("Soft-deleted series", str(stats.soft_deleted_series))
    table.add_row("Files", str(stats.total_files))
    table.add_row("Linked files", str(stats.linked_files))
    table.add_row("Unlinked files", str(stats.unlinked_files))
    table.add_row("Schema version", str(stats.schema_version))
    console.print(table)
