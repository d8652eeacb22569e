"""Series match resolution.

Given what a file says about its series (name, year, publisher), find the
catalog series it belongs to and classify how confident that is:

1. Exact identity (name + publisher, case-insensitive)    -> EXACT, 1.0
2. Same name + start year, any publisher                  -> PARTIAL, 0.9
3. Best quick_similarity over names and aliases, boosted
   for equal year (+0.10) and publisher (+0.05)           -> FUZZY, score
   (best below 0.7                                        -> NONE)

A folder registry (series.json definitions) is consulted separately through
resolve_folder_match() and outranks everything above. A scan cache replaces
steps 1-3 entirely for the duration of a bulk scan.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import PurePosixPath
from typing import TYPE_CHECKING, Any

from comicshelf.models import Series
from comicshelf.scan.cache import CacheConfidence, MatchCriteria, SeriesMatchIndex
from comicshelf.series.catalog import Created
from comicshelf.utils.fuzzy import best_name_similarity
from comicshelf.utils.normalization import publishers_equal

if TYPE_CHECKING:
    from comicshelf.scan.folder_registry import FolderSeriesRegistry
    from comicshelf.series.catalog import SeriesCatalog

logger = logging.getLogger(__name__)

# Confidence thresholds
EXACT_CONFIDENCE = 1.0
PARTIAL_CONFIDENCE = 0.9
FUZZY_THRESHOLD = 0.7
YEAR_BOOST = 0.1
PUBLISHER_BOOST = 0.05
FOLDER_MATCH_THRESHOLD = 0.8

# Suggestion weights relative to the underlying match confidence
ALTERNATE_SUGGESTION_WEIGHT = 0.8
FOLDER_NAME_SUGGESTION_WEIGHT = 0.7


class MatchType(str, Enum):
    """How a series match was found."""

    EXACT = "exact"
    PARTIAL = "partial"
    FUZZY = "fuzzy"
    FOLDER = "folder"
    NONE = "none"


# Scan-cache tier -> (match type, confidence)
CACHE_TIER_MAPPING: dict[CacheConfidence, tuple[MatchType, float]] = {
    CacheConfidence.EXACT: (MatchType.EXACT, 1.0),
    CacheConfidence.HIGH: (MatchType.PARTIAL, 0.95),
    CacheConfidence.MEDIUM: (MatchType.FUZZY, 0.85),
    CacheConfidence.LOW: (MatchType.FUZZY, 0.75),
}


@dataclass
class MatchResult:
    """Classified outcome of series resolution."""

    type: MatchType
    series: Series | None = None
    confidence: float = 0.0
    alternates: list[Series] = field(default_factory=list)

    @classmethod
    def none(cls) -> MatchResult:
        return cls(type=MatchType.NONE)

    @property
    def found(self) -> bool:
        return self.series is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "series_id": self.series.id if self.series else None,
            "series_name": self.series.name if self.series else None,
            "confidence": round(self.confidence, 4),
            "alternates": [{"id": s.id, "name": s.name} for s in self.alternates],
        }


@dataclass
class FolderResolution:
    """Series chosen from a folder definition."""

    match: MatchResult
    series_created: bool  # New row or restored tombstone


@dataclass
class Suggestion:
    """A ranked candidate series offered for human confirmation."""

    series: Series
    confidence: float
    reason: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "series_id": self.series.id,
            "series_name": self.series.name,
            "publisher": self.series.publisher,
            "confidence": round(self.confidence, 4),
            "reason": self.reason,
        }


def folder_name_from_path(relative_path: str) -> str | None:
    """Parent folder name of a library-relative path, if it has one."""
    parts = PurePosixPath(relative_path).parts
    if len(parts) > 1:
        return parts[-2]
    return None


class SeriesMatcher:
    """Resolve file metadata to catalog series."""

    def __init__(self, catalog: SeriesCatalog) -> None:
        self.catalog = catalog

    def find_matching_series(
        self,
        name: str,
        year: int | None = None,
        publisher: str | None = None,
        *,
        scan_cache: SeriesMatchIndex | None = None,
    ) -> MatchResult:
        """Find the best existing series for a name/year/publisher.

        Args:
            name: Series name from the file
            year: Year from the file (not part of identity)
            publisher: Publisher from the file
            scan_cache: Session index to use instead of the catalog

        Returns:
            MatchResult; type NONE when nothing reached the fuzzy threshold
        """
        if scan_cache is not None:
            return self._match_from_cache(scan_cache, name, year, publisher)

        exact = self.catalog.get_series_by_identity(name, publisher)
        if exact is not None:
            return MatchResult(type=MatchType.EXACT, series=exact, confidence=EXACT_CONFIDENCE)

        if year:
            partial = self.catalog.find_series_by_name_and_year(name, year)
            if partial is not None:
                return MatchResult(type=MatchType.PARTIAL, series=partial, confidence=PARTIAL_CONFIDENCE)

        return self._fuzzy_match(name, year, publisher)

    def _fuzzy_match(self, name: str, year: int | None, publisher: str | None) -> MatchResult:
        scored: list[tuple[float, Series]] = []
        for candidate in self.catalog.list_series():
            score = best_name_similarity(name, candidate.all_names)
            if year and candidate.start_year == year:
                score += YEAR_BOOST
            if publisher and publishers_equal(candidate.publisher, publisher):
                score += PUBLISHER_BOOST
            scored.append((min(1.0, score), candidate))

        if not scored:
            return MatchResult.none()

        # Catalog order breaks ties, so repeated resolution is stable
        best_score, best = max(scored, key=lambda item: item[0])
        if best_score < FUZZY_THRESHOLD:
            return MatchResult.none()

        alternates = sorted(
            (item for item in scored if item[1] is not best and item[0] > FUZZY_THRESHOLD),
            key=lambda item: item[0],
            reverse=True,
        )
        logger.debug(
            "Fuzzy match %r -> %r (%.2f), %d alternates", name, best.name, best_score, len(alternates)
        )
        return MatchResult(
            type=MatchType.FUZZY,
            series=best,
            confidence=best_score,
            alternates=[s for _, s in alternates],
        )

    def _match_from_cache(
        self,
        scan_cache: SeriesMatchIndex,
        name: str,
        year: int | None,
        publisher: str | None,
    ) -> MatchResult:
        result = scan_cache.find_match(
            MatchCriteria(series_name=name, publisher=publisher, start_year=year)
        )
        if result.match is None or result.confidence is CacheConfidence.NONE:
            return MatchResult.none()

        series = self.catalog.get_series(result.match.id)
        if series is None:
            logger.warning("Scan cache returned unknown series %s; treating as miss", result.match.id)
            return MatchResult.none()

        match_type, confidence = CACHE_TIER_MAPPING[result.confidence]
        return MatchResult(type=match_type, series=series, confidence=confidence)

    # === Folder-scoped resolution ===

    def resolve_folder_match(
        self,
        folder_path: str,
        name: str,
        registry: FolderSeriesRegistry,
    ) -> FolderResolution | None:
        """Resolve a file through its folder's series.json definitions.

        When the folder defines a series matching ``name`` with confidence
        >= 0.8, find or create that series (restoring a tombstone with the
        same identity) and fill its still-empty, unlocked fields from the
        definition.

        Returns:
            FolderResolution, or None when the folder has no confident match
        """
        folder_match = registry.find_in_folder(folder_path, name)
        if folder_match.entry is None or folder_match.confidence < FOLDER_MATCH_THRESHOLD:
            return None

        definition = folder_match.entry.definition
        draft = definition.to_draft(folder_path=folder_path)

        with self.catalog.transaction():
            outcome = self.catalog.create_series(draft)
            if isinstance(outcome, Created):
                series = outcome.series
                created = True
                logger.info("Created series %r from folder definition in %s", series.name, folder_path)
            else:
                filled = self.catalog.fill_empty_fields(outcome.existing_id, draft.field_values())
                existing = self.catalog.require_series(outcome.existing_id)
                for ext in draft.external_ids:
                    if existing.external_id(ext.kind) is None:
                        self.catalog.set_external_id(existing.id, ext.kind, ext.value)
                        filled.append(ext.kind)
                if filled:
                    logger.debug("Merged definition into %r: %s", existing.name, ", ".join(filled))
                series = self.catalog.require_series(outcome.existing_id)
                created = False

        logger.debug(
            "Folder-scoped match %r -> %r (%s, %.2f)",
            name,
            series.name,
            folder_match.match_type.value,
            folder_match.confidence,
        )
        return FolderResolution(
            match=MatchResult(type=MatchType.FOLDER, series=series, confidence=folder_match.confidence),
            series_created=created,
        )

    # === Suggestions ===

    def suggest_series_for_file(self, file_id: str) -> list[Suggestion]:
        """Ranked series suggestions for a file.

        Combines the metadata series name match (its alternates at 0.8x the
        match confidence) and a match on the parent folder name (0.7x),
        without repeating a series.

        Raises:
            ComicFileNotFoundError: Unknown file
        """
        comic = self.catalog.require_file(file_id)
        meta = comic.metadata
        suggestions: list[Suggestion] = []

        if meta.series_name:
            match = self.find_matching_series(meta.series_name, meta.year, meta.publisher)
            if match.series is not None:
                suggestions.append(
                    Suggestion(
                        series=match.series,
                        confidence=match.confidence,
                        reason=f'Matched from metadata series: "{meta.series_name}"',
                    )
                )
                for alt in match.alternates:
                    suggestions.append(
                        Suggestion(
                            series=alt,
                            confidence=match.confidence * ALTERNATE_SUGGESTION_WEIGHT,
                            reason="Alternative match",
                        )
                    )

        folder_name = folder_name_from_path(comic.relative_path)
        if folder_name and folder_name != meta.series_name:
            folder_match = self.find_matching_series(folder_name)
            seen = {s.series.id for s in suggestions}
            if folder_match.series is not None and folder_match.series.id not in seen:
                suggestions.append(
                    Suggestion(
                        series=folder_match.series,
                        confidence=folder_match.confidence * FOLDER_NAME_SUGGESTION_WEIGHT,
                        reason=f'Matched from folder name: "{folder_name}"',
                    )
                )

        suggestions.sort(key=lambda s: s.confidence, reverse=True)
        return suggestions
