"""Series catalog, matching, linking, duplicate detection and merging."""

from __future__ import annotations

from comicshelf.series.catalog import ConflictRetryWith, Created, SeriesCatalog
from comicshelf.series.duplicates import DuplicateDetector, DuplicateGroup
from comicshelf.series.linker import LinkResult, SeriesLinker
from comicshelf.series.matcher import MatchResult, MatchType, SeriesMatcher
from comicshelf.series.merge import MergePreview, MergeResult, SeriesMerger

__all__ = [
    "SeriesCatalog",
    "Created",
    "ConflictRetryWith",
    "SeriesMatcher",
    "MatchResult",
    "MatchType",
    "SeriesLinker",
    "LinkResult",
    "DuplicateDetector",
    "DuplicateGroup",
    "SeriesMerger",
    "MergePreview",
    "MergeResult",
]
