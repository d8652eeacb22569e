"""Per-user series reading progress aggregation."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from comicshelf.models import ComicFile, ReadingProgress, SeriesProgress

if TYPE_CHECKING:
    from comicshelf.series.catalog import SeriesCatalog

logger = logging.getLogger(__name__)


def _next_to_read(
    files: list[ComicFile],
    progress: dict[str, ReadingProgress],
    last_read_file_id: str | None,
) -> str | None:
    """Pick the file a user should continue with.

    Priority: the most recently touched in-progress file, then the first
    unread file after the last one read, then the first unread file.
    """
    in_progress = [
        progress[f.id]
        for f in files
        if f.id in progress and progress[f.id].current_page > 0 and not progress[f.id].completed
    ]
    if in_progress:
        in_progress.sort(key=lambda p: p.last_read_at.timestamp() if p.last_read_at else 0.0, reverse=True)
        return in_progress[0].file_id

    def is_unread(comic: ComicFile) -> bool:
        entry = progress.get(comic.id)
        return entry is None or not entry.completed

    if last_read_file_id is not None:
        ids = [f.id for f in files]
        if last_read_file_id in ids:
            for comic in files[ids.index(last_read_file_id) + 1 :]:
                if is_unread(comic):
                    return comic.id

    for comic in files:
        if is_unread(comic):
            return comic.id
    return None


def compute_series_progress(catalog: SeriesCatalog, series_id: str, user_id: str) -> SeriesProgress:
    """Aggregate one user's per-file progress over a series (no writes)."""
    files = catalog.list_files_for_series(series_id)
    progress = catalog.reading_progress_for_series(series_id, user_id)

    total_read = sum(1 for p in progress.values() if p.completed)
    total_in_progress = sum(1 for p in progress.values() if p.current_page > 0 and not p.completed)

    last: ReadingProgress | None = None
    for entry in progress.values():
        if entry.last_read_at is None:
            continue
        if last is None or last.last_read_at is None or entry.last_read_at > last.last_read_at:
            last = entry

    last_id = last.file_id if last else None
    return SeriesProgress(
        user_id=user_id,
        series_id=series_id,
        total_owned=len(files),
        total_read=total_read,
        total_in_progress=total_in_progress,
        last_read_file_id=last_id,
        last_read_at=last.last_read_at if last else None,
        next_unread_file_id=_next_to_read(files, progress, last_id),
    )


def update_series_progress(
    catalog: SeriesCatalog,
    series_id: str,
    user_id: str | None = None,
) -> list[SeriesProgress]:
    """Recompute and store aggregate progress for a series.

    Args:
        catalog: Series catalog
        series_id: Series to recompute
        user_id: Single user to recompute; None for every user with progress

    Returns:
        The stored SeriesProgress records
    """
    users = [user_id] if user_id else catalog.progress_user_ids(series_id)
    results: list[SeriesProgress] = []
    with catalog.transaction():
        for uid in users:
            aggregate = compute_series_progress(catalog, series_id, uid)
            catalog.upsert_series_progress(aggregate)
            results.append(aggregate)
    if results:
        logger.debug("Updated series progress for %s (%d users)", series_id, len(results))
    return results
