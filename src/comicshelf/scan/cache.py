"""Session-scoped in-memory series index for bulk scans.

A ScanSeriesCache is built once at the start of a scan, passed explicitly to
the matcher/linker, and refreshed by the scan orchestrator whenever a worker
creates a series (add_series) so later files see it. It is never a
module-level singleton.

Scoring against each cached series:
    name match (required, or alias)   50 (alias: 40)
    publisher equal                   30
    publisher only on cached side     15
    publisher differs / only on input -> no match
    start year within 1               15
    volume equal                       5

Tiers: >= 95 exact, >= 80 high, >= 50 medium, >= 40 low.
"""

from __future__ import annotations

import logging
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Protocol

from comicshelf.utils.normalization import dedupe_names, normalize_publisher, normalize_series_name

if TYPE_CHECKING:
    from comicshelf.models import Series
    from comicshelf.series.catalog import SeriesCatalog

logger = logging.getLogger(__name__)

DEFAULT_MAX_SIZE = 10_000

SCORE_NAME = 50
SCORE_ALIAS = 40
SCORE_PUBLISHER = 30
SCORE_PUBLISHER_INHERITED = 15
SCORE_YEAR = 15
SCORE_VOLUME = 5


class CacheConfidence(str, Enum):
    """Confidence tier of a scan-cache match."""

    EXACT = "exact"  # name + publisher + year (+ volume)
    HIGH = "high"  # name + publisher
    MEDIUM = "medium"  # name, no conflicting publisher
    LOW = "low"  # alias only
    NONE = "none"

    @classmethod
    def from_score(cls, score: int) -> CacheConfidence:
        if score >= 95:
            return cls.EXACT
        if score >= 80:
            return cls.HIGH
        if score >= 50:
            return cls.MEDIUM
        if score >= 40:
            return cls.LOW
        return cls.NONE


@dataclass
class MatchCriteria:
    """What a file says about its series."""

    series_name: str
    publisher: str | None = None
    start_year: int | None = None
    volume: int | None = None


@dataclass
class CacheEntry:
    """A cached series with pre-normalized keys."""

    id: str
    name: str
    normalized_name: str
    publisher: str | None
    normalized_publisher: str | None
    start_year: int | None
    volume: int | None
    aliases: list[str] = field(default_factory=list)
    normalized_aliases: list[str] = field(default_factory=list)

    @classmethod
    def from_series(cls, series: Series) -> CacheEntry:
        aliases = list(series.aliases)
        return cls(
            id=series.id,
            name=series.name,
            normalized_name=normalize_series_name(series.name),
            publisher=series.publisher,
            normalized_publisher=normalize_publisher(series.publisher),
            start_year=series.start_year,
            volume=series.volume,
            aliases=aliases,
            normalized_aliases=[normalize_series_name(a) for a in aliases],
        )


@dataclass
class CacheMatch:
    """Result of ScanSeriesCache.find_match()."""

    match: CacheEntry | None
    confidence: CacheConfidence
    matched_on: list[str]
    score: int


class SeriesMatchIndex(Protocol):
    """Anything the matcher can delegate scan-time lookups to."""

    def find_match(self, criteria: MatchCriteria) -> CacheMatch: ...


def score_entry(criteria: MatchCriteria, cached: CacheEntry) -> tuple[int, list[str]]:
    """Score one cached series against the criteria.

    Returns:
        (score, matched_on); (0, []) when the entry cannot match
    """
    matched_on: list[str] = []
    score = 0

    normalized_input = normalize_series_name(criteria.series_name)
    input_publisher = normalize_publisher(criteria.publisher)

    if normalized_input == cached.normalized_name:
        matched_on.append("name")
        score += SCORE_NAME
    elif normalized_input in cached.normalized_aliases:
        matched_on.append("alias")
        score += SCORE_ALIAS
    else:
        return 0, []

    if input_publisher and cached.normalized_publisher:
        if input_publisher != cached.normalized_publisher:
            return 0, []
        matched_on.append("publisher")
        score += SCORE_PUBLISHER
    elif input_publisher:
        # Input names a publisher the cached series lacks: treat as a different series
        return 0, []
    elif cached.normalized_publisher:
        matched_on.append("publisher-inherited")
        score += SCORE_PUBLISHER_INHERITED

    if criteria.start_year and cached.start_year and abs(criteria.start_year - cached.start_year) <= 1:
        matched_on.append("year")
        score += SCORE_YEAR

    if criteria.volume and cached.volume and criteria.volume == cached.volume:
        matched_on.append("volume")
        score += SCORE_VOLUME

    return score, matched_on


class ScanSeriesCache:
    """LRU-bounded index of active series for one scan session."""

    def __init__(self, max_size: int = DEFAULT_MAX_SIZE) -> None:
        if max_size <= 0:
            raise ValueError("max_size must be positive")
        self.max_size = max_size
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._hits = 0
        self._misses = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, series_id: object) -> bool:
        return series_id in self._entries

    def load(self, catalog: SeriesCatalog) -> None:
        """(Re)build the cache from all active series in the catalog."""
        start = time.monotonic()
        self.clear()
        for series in catalog.list_series():
            self.add_series(series)
        logger.info(
            "Scan series cache initialized with %d series in %.0fms",
            len(self._entries),
            (time.monotonic() - start) * 1000,
        )

    def find_match(self, criteria: MatchCriteria) -> CacheMatch:
        """Find the best-scoring cached series for the criteria."""
        best: CacheEntry | None = None
        best_score = 0
        best_matched_on: list[str] = []

        for entry in self._entries.values():
            score, matched_on = score_entry(criteria, entry)
            if score > best_score:
                best, best_score, best_matched_on = entry, score, matched_on

        confidence = CacheConfidence.from_score(best_score)
        if best is None or confidence is CacheConfidence.NONE:
            self._misses += 1
            return CacheMatch(match=None, confidence=CacheConfidence.NONE, matched_on=[], score=best_score)

        self._hits += 1
        self._entries.move_to_end(best.id)
        return CacheMatch(match=best, confidence=confidence, matched_on=best_matched_on, score=best_score)

    def add_series(self, series: Series) -> None:
        """Add (or refresh) a series, evicting the least recently used entry when full."""
        if series.id in self._entries:
            self._entries.pop(series.id)
        elif len(self._entries) >= self.max_size:
            evicted_id, evicted = self._entries.popitem(last=False)
            logger.debug("Evicted LRU series from scan cache: %s (%s)", evicted.name, evicted_id)
        self._entries[series.id] = CacheEntry.from_series(series)
        logger.debug("Added series to scan cache: %s (%s)", series.name, series.id)

    def add_alias(self, series_id: str, alias: str) -> None:
        """Record a new alias for a cached series."""
        entry = self._entries.get(series_id)
        if entry is None:
            return
        if dedupe_names([alias], exclude=entry.aliases):
            entry.aliases.append(alias)
            entry.normalized_aliases.append(normalize_series_name(alias))
        self._entries.move_to_end(series_id)

    def get(self, series_id: str) -> CacheEntry | None:
        entry = self._entries.get(series_id)
        if entry is not None:
            self._entries.move_to_end(series_id)
        return entry

    def remove(self, series_id: str) -> None:
        self._entries.pop(series_id, None)

    def clear(self) -> None:
        self._entries.clear()
        self._hits = 0
        self._misses = 0

    def stats(self) -> dict[str, float]:
        """Size and hit-rate figures for scan summaries."""
        lookups = self._hits + self._misses
        return {
            "total_series": len(self._entries),
            "max_size": self.max_size,
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": self._hits / lookups if lookups else 0.0,
        }
