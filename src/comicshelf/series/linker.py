"""Auto-link decision policy: attach comic files to series.

Given the best MatchResult for a file:

    confidence      trust_metadata=False           trust_metadata=True
    >= 0.9          link to match                  link to match
    [0.7, 0.9)      needs confirmation             create series with the file's
                    (ranked suggestions)           own name, warn about the match
    < 0.7           create series, link            create series, link

A confident folder-definition match (>= 0.8) links before the table applies.

Creation never raises on an identity race: SeriesCatalog.create_series()
returns ConflictRetryWith and the linker re-reads the winner's row.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import PurePosixPath
from typing import TYPE_CHECKING, Any

from comicshelf.exceptions import ComicFileNotFoundError, ComicshelfError
from comicshelf.models import ComicFile, Series, SeriesDraft
from comicshelf.series.catalog import Created
from comicshelf.series.matcher import (
    FUZZY_THRESHOLD,
    MatchType,
    SeriesMatcher,
    Suggestion,
    folder_name_from_path,
)
from comicshelf.series.progress import update_series_progress
from comicshelf.utils.normalization import parse_series_folder_name, series_name_from_filename

if TYPE_CHECKING:
    from comicshelf.scan.cache import ScanSeriesCache, SeriesMatchIndex
    from comicshelf.scan.folder_registry import FolderSeriesRegistry
    from comicshelf.series.catalog import SeriesCatalog

logger = logging.getLogger(__name__)

AUTO_LINK_THRESHOLD = 0.9
CONFIRM_THRESHOLD = FUZZY_THRESHOLD
# A runner-up within this fraction of the top suggestion makes a file ambiguous
AMBIGUITY_RATIO = 0.8
MAX_WARNING_ALTERNATES = 2
PENDING_LIMIT = 100

MATCH_TYPE_CREATED = "created"


@dataclass
class LinkResult:
    """Outcome of auto-linking one file."""

    success: bool
    series_id: str | None = None
    match_type: str | None = None  # MatchType value or "created"
    needs_confirmation: bool = False
    suggestions: list[Suggestion] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    created_series: Series | None = None  # For scan-cache refresh
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "series_id": self.series_id,
            "match_type": self.match_type,
            "needs_confirmation": self.needs_confirmation,
            "suggestions": [s.to_dict() for s in self.suggestions],
            "warnings": list(self.warnings),
            "created_series_id": self.created_series.id if self.created_series else None,
            "error": self.error,
        }


@dataclass
class AutoLinkSummary:
    """Counts from auto_link_all_files()."""

    linked: int = 0
    created: int = 0
    needs_confirmation: int = 0
    errors: int = 0


@dataclass
class PendingFile:
    """An unlinked file whose suggestions are too close to call."""

    file: ComicFile
    suggestions: list[Suggestion]


class NameSource(str, Enum):
    """Where a file's series name came from."""

    METADATA = "metadata"
    FOLDER = "folder"
    FILENAME = "filename"
    EXISTING = "existing"  # File was already linked
    NONE = "none"


@dataclass
class FallbackLinkResult:
    """Outcome of link_file_with_folder_fallback()."""

    linked: bool
    series_id: str | None = None
    series_created: bool = False
    source: NameSource = NameSource.NONE
    series_name: str | None = None


def _primary_folder(comic: ComicFile) -> str | None:
    """Absolute folder of the file, or None for files at the library root."""
    if PurePosixPath(comic.relative_path).parent == PurePosixPath("."):
        return None
    return comic.folder_path


@dataclass
class _SeriesHint:
    name: str
    source: NameSource
    year: int | None = None
    publisher: str | None = None


class SeriesLinker:
    """Apply the auto-link policy against a catalog."""

    def __init__(self, catalog: SeriesCatalog, matcher: SeriesMatcher | None = None) -> None:
        self.catalog = catalog
        self.matcher = matcher or SeriesMatcher(catalog)

    # === Manual linking ===

    def link_file_to_series(self, file_id: str, series_id: str) -> Series:
        """Link a file to a series, restoring the series first if soft-deleted.

        Raises:
            ComicFileNotFoundError: Unknown file
            SeriesNotFoundError: Unknown series
        """
        with self.catalog.transaction():
            comic = self.catalog.require_file(file_id)
            series = self.catalog.require_series(series_id)
            if not series.is_active:
                series = self.catalog.restore_series(series_id)
                logger.info("Restored soft-deleted series %r for file %s", series.name, comic.filename)
            self.catalog.set_file_series(file_id, series_id)
            update_series_progress(self.catalog, series_id)
            if comic.series_id and comic.series_id != series_id:
                update_series_progress(self.catalog, comic.series_id)
        return series

    def unlink_file_from_series(self, file_id: str) -> str | None:
        """Detach a file from its series.

        Returns:
            The previous series ID, if the file was linked
        """
        with self.catalog.transaction():
            comic = self.catalog.require_file(file_id)
            self.catalog.set_file_series(file_id, None)
            if comic.series_id:
                update_series_progress(self.catalog, comic.series_id)
        return comic.series_id

    def bulk_relink_files(self, file_ids: Iterable[str], series_id: str) -> int:
        """Move many files to one series in a single transaction.

        Returns:
            Number of files relinked

        Raises:
            SeriesNotFoundError: Unknown target series
            ComicFileNotFoundError: Any unknown file (nothing is relinked)
        """
        file_ids = list(file_ids)
        with self.catalog.transaction():
            series = self.catalog.require_series(series_id)
            if not series.is_active:
                self.catalog.restore_series(series_id)
            previous: set[str] = set()
            for file_id in file_ids:
                comic = self.catalog.require_file(file_id)
                if comic.series_id and comic.series_id != series_id:
                    previous.add(comic.series_id)
                self.catalog.set_file_series(file_id, series_id)
            update_series_progress(self.catalog, series_id)
            for old_id in sorted(previous):
                update_series_progress(self.catalog, old_id)
        logger.info("Relinked %d files to %r", len(file_ids), series.name)
        return len(file_ids)

    # === Auto-link policy ===

    def auto_link_file(
        self,
        file_id: str,
        *,
        trust_metadata: bool = False,
        folder_registry: FolderSeriesRegistry | None = None,
        scan_cache: SeriesMatchIndex | None = None,
    ) -> LinkResult:
        """Link a file to the series its metadata describes.

        Args:
            file_id: File to link
            trust_metadata: Prefer creating a series with the file's exact
                name over asking about a sub-0.9 fuzzy match
            folder_registry: Folder series.json definitions for this scan
            scan_cache: Session index for this scan (refresh it from
                LinkResult.created_series)

        Returns:
            LinkResult; needs_confirmation=True is a normal outcome

        Raises:
            ComicFileNotFoundError: Unknown file
        """
        comic = self.catalog.require_file(file_id)
        meta = comic.metadata
        series_name = meta.series_name or folder_name_from_path(comic.relative_path)
        if not series_name:
            return LinkResult(success=False, error="No series name found")

        if folder_registry is not None:
            resolution = self.matcher.resolve_folder_match(comic.folder_path, series_name, folder_registry)
            if resolution is not None and resolution.match.series is not None:
                series = resolution.match.series
                self.link_file_to_series(file_id, series.id)
                return LinkResult(
                    success=True,
                    series_id=series.id,
                    match_type=MATCH_TYPE_CREATED if resolution.series_created else MatchType.FOLDER.value,
                    created_series=series if resolution.series_created else None,
                )

        match = self.matcher.find_matching_series(
            series_name, meta.year, meta.publisher, scan_cache=scan_cache
        )

        if match.series is not None and match.confidence >= AUTO_LINK_THRESHOLD:
            self.link_file_to_series(file_id, match.series.id)
            return LinkResult(success=True, series_id=match.series.id, match_type=match.type.value)

        if match.series is not None and match.confidence >= CONFIRM_THRESHOLD:
            if not trust_metadata:
                logger.debug(
                    "File %s needs confirmation: %r ~ %r (%.2f)",
                    comic.filename,
                    series_name,
                    match.series.name,
                    match.confidence,
                )
                return LinkResult(
                    success=False,
                    needs_confirmation=True,
                    suggestions=self.matcher.suggest_series_for_file(file_id),
                )

            warnings = [
                f'Similar series "{match.series.name}" exists '
                f"({round(match.confidence * 100)}% match). "
                f'Created new series "{series_name}" instead.'
            ]
            warnings.extend(f'Also similar: "{alt.name}"' for alt in match.alternates[:MAX_WARNING_ALTERNATES])
            return self._create_and_link(comic, series_name, warnings=warnings)

        return self._create_and_link(comic, series_name)

    def _draft_for(self, comic: ComicFile, name: str) -> SeriesDraft:
        meta = comic.metadata
        return SeriesDraft(
            name=name,
            publisher=meta.publisher,
            start_year=meta.year,
            external_ids=list(meta.external_ids),
            primary_folder=_primary_folder(comic),
            genres=list(meta.genres),
            tags=list(meta.tags),
            language=meta.language,
            age_rating=meta.age_rating,
        )

    def _create_and_link(
        self,
        comic: ComicFile,
        name: str,
        *,
        warnings: list[str] | None = None,
    ) -> LinkResult:
        """Create (or restore) a series for the file and link it.

        On an identity conflict the winner is re-read from the catalog,
        never from a scan cache, and the file links there instead.
        """
        draft = self._draft_for(comic, name)
        outcome = self.catalog.create_series(draft)

        if isinstance(outcome, Created):
            series = outcome.series
            self.link_file_to_series(comic.id, series.id)
            return LinkResult(
                success=True,
                series_id=series.id,
                match_type=MATCH_TYPE_CREATED,
                warnings=warnings or [],
                created_series=series,
            )

        # Lost the race (or the identity already existed): link to the existing row
        existing = self.catalog.get_series_by_identity(draft.name, draft.publisher)
        if existing is None:
            existing = self.catalog.require_series(outcome.existing_id)
        self.link_file_to_series(comic.id, existing.id)
        logger.debug("Identity %r already taken; linked %s to %s", name, comic.filename, existing.id)
        return LinkResult(
            success=True,
            series_id=existing.id,
            match_type=MatchType.EXACT.value,
            warnings=warnings or [],
        )

    # === Folder-fallback linking ===

    def _series_hint(self, comic: ComicFile) -> _SeriesHint | None:
        meta = comic.metadata
        if meta.series_name:
            return _SeriesHint(meta.series_name, NameSource.METADATA, meta.year, meta.publisher)

        folder_name = folder_name_from_path(comic.relative_path)
        if folder_name:
            parsed = parse_series_folder_name(folder_name)
            return _SeriesHint(parsed.series_name or folder_name, NameSource.FOLDER, parsed.start_year)

        name = series_name_from_filename(comic.filename)
        if not name:
            return None
        return _SeriesHint(name, NameSource.FILENAME, meta.year, meta.publisher)

    def link_file_with_folder_fallback(self, file_id: str) -> FallbackLinkResult:
        """Link a file using metadata, then its folder name, then its filename.

        Links to an existing series only at >= 0.9 confidence; otherwise
        creates one. Already-linked files are left alone.

        Raises:
            ComicFileNotFoundError: Unknown file
        """
        comic = self.catalog.require_file(file_id)
        if comic.series_id:
            return FallbackLinkResult(linked=True, series_id=comic.series_id, source=NameSource.EXISTING)

        hint = self._series_hint(comic)
        if hint is None:
            return FallbackLinkResult(linked=False)

        match = self.matcher.find_matching_series(hint.name, hint.year, hint.publisher)
        if match.series is not None and match.confidence >= AUTO_LINK_THRESHOLD:
            self.link_file_to_series(file_id, match.series.id)
            return FallbackLinkResult(
                linked=True,
                series_id=match.series.id,
                source=hint.source,
                series_name=match.series.name,
            )

        draft = SeriesDraft(
            name=hint.name,
            publisher=hint.publisher,
            start_year=hint.year,
            primary_folder=_primary_folder(comic),
        )
        outcome = self.catalog.create_series(draft)
        if isinstance(outcome, Created):
            series, created = outcome.series, True
        else:
            series = self.catalog.get_series_by_identity(draft.name, draft.publisher) or (
                self.catalog.require_series(outcome.existing_id)
            )
            created = False
        self.link_file_to_series(file_id, series.id)
        return FallbackLinkResult(
            linked=True,
            series_id=series.id,
            series_created=created,
            source=hint.source,
            series_name=series.name,
        )

    # === Batch operations ===

    def auto_link_all_files(
        self,
        *,
        trust_metadata: bool = False,
        folder_registry: FolderSeriesRegistry | None = None,
        scan_cache: ScanSeriesCache | None = None,
    ) -> AutoLinkSummary:
        """Auto-link every unlinked file.

        Series created along the way are added to ``scan_cache`` so later
        files in the same batch can match them.

        Storage errors propagate; per-file domain errors are counted.
        """
        summary = AutoLinkSummary()
        for comic in self.catalog.list_unlinked_files():
            try:
                result = self.auto_link_file(
                    comic.id,
                    trust_metadata=trust_metadata,
                    folder_registry=folder_registry,
                    scan_cache=scan_cache,
                )
            except ComicshelfError as e:
                logger.warning("Failed to auto-link %s: %s", comic.filename, e)
                summary.errors += 1
                continue

            if result.success:
                summary.linked += 1
                if result.created_series is not None:
                    summary.created += 1
                    if scan_cache is not None:
                        scan_cache.add_series(result.created_series)
            elif result.needs_confirmation:
                summary.needs_confirmation += 1
            else:
                logger.warning("Could not link %s: %s", comic.filename, result.error)
                summary.errors += 1

        logger.info(
            "Auto-link complete: %d linked (%d created), %d need confirmation, %d errors",
            summary.linked,
            summary.created,
            summary.needs_confirmation,
            summary.errors,
        )
        return summary

    def files_needing_confirmation(self, *, limit: int = PENDING_LIMIT) -> list[PendingFile]:
        """Unlinked files whose top suggestions are close to each other."""
        pending: list[PendingFile] = []
        for comic in self.catalog.list_unlinked_files()[:limit]:
            try:
                suggestions = self.matcher.suggest_series_for_file(comic.id)
            except ComicFileNotFoundError:
                # Removed by the scanner since the listing
                continue
            if len(suggestions) < 2:
                continue
            top = suggestions[0].confidence
            if any(s.confidence > top * AMBIGUITY_RATIO for s in suggestions[1:]):
                pending.append(PendingFile(file=comic, suggestions=suggestions))
        return pending
