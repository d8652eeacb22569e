"""Scan-session helpers: series match cache and folder series registry."""

from __future__ import annotations

from comicshelf.scan.cache import CacheConfidence, CacheMatch, MatchCriteria, ScanSeriesCache
from comicshelf.scan.folder_registry import FolderMatch, FolderMatchType, FolderSeriesRegistry

__all__ = [
    "CacheConfidence",
    "CacheMatch",
    "MatchCriteria",
    "ScanSeriesCache",
    "FolderMatch",
    "FolderMatchType",
    "FolderSeriesRegistry",
]
