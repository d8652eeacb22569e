"""Folder-scoped series definitions from series.json files.

Built once per scan and passed explicitly to the matcher/linker. A definition
found in a file's own folder outranks catalog-wide fuzzy matching.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from comicshelf.schemas.series_json import (
    SERIES_JSON_FILENAME,
    SeriesDefinition,
    load_series_json,
    parse_series_json,
)
from comicshelf.utils.fuzzy import quick_similarity
from comicshelf.utils.normalization import normalize_series_name

logger = logging.getLogger(__name__)

# Minimum similarity for a fuzzy folder match
FOLDER_FUZZY_THRESHOLD = 0.8


class FolderMatchType(str, Enum):
    """How a folder match was found."""

    EXACT_NAME = "exact-name"
    EXACT_ALIAS = "exact-alias"
    FUZZY_NAME = "fuzzy-name"
    FUZZY_ALIAS = "fuzzy-alias"
    NONE = "none"


@dataclass
class FolderSeriesEntry:
    """One series definition registered for a folder."""

    folder_path: str
    definition: SeriesDefinition
    normalized_name: str
    normalized_aliases: list[str]

    @classmethod
    def from_definition(cls, folder_path: str, definition: SeriesDefinition) -> FolderSeriesEntry:
        return cls(
            folder_path=folder_path,
            definition=definition,
            normalized_name=normalize_series_name(definition.name),
            normalized_aliases=[
                n for n in (normalize_series_name(a) for a in definition.aliases) if n
            ],
        )


@dataclass
class FolderMatch:
    """Result of a folder-scoped lookup."""

    entry: FolderSeriesEntry | None
    confidence: float
    match_type: FolderMatchType
    alternates: list[FolderSeriesEntry] = field(default_factory=list)

    @classmethod
    def none(cls) -> FolderMatch:
        return cls(entry=None, confidence=0.0, match_type=FolderMatchType.NONE)


def _folder_key(folder: str | Path) -> str:
    return str(Path(folder))


class FolderSeriesRegistry:
    """In-memory registry of folder -> series definitions for one scan session."""

    def __init__(self) -> None:
        self._registry: dict[str, list[FolderSeriesEntry]] = {}

    @classmethod
    def build_from_map(
        cls,
        series_json_map: Mapping[str | Path, Mapping[str, Any] | list[SeriesDefinition]],
    ) -> FolderSeriesRegistry:
        """Build a registry from folder -> series.json content.

        Args:
            series_json_map: Folder path -> decoded series.json object (v1 or
                v2) or an already-parsed list of definitions

        Returns:
            Populated registry
        """
        registry = cls()
        for folder, content in series_json_map.items():
            definitions = content if isinstance(content, list) else parse_series_json(dict(content))
            registry.register(folder, definitions)
        return registry

    @classmethod
    def build_from_directory(cls, root: Path) -> FolderSeriesRegistry:
        """Build a registry from every series.json below a library root."""
        registry = cls()
        for path in sorted(root.rglob(SERIES_JSON_FILENAME)):
            registry.register(path.parent, load_series_json(path))
        logger.info(
            "Loaded folder registry from %s: %d folders, %d series",
            root,
            len(registry._registry),
            registry.total_series_count,
        )
        return registry

    def register(self, folder: str | Path, definitions: list[SeriesDefinition]) -> None:
        """Register the definitions of one folder (replacing earlier ones)."""
        if not definitions:
            return
        key = _folder_key(folder)
        self._registry[key] = [FolderSeriesEntry.from_definition(key, d) for d in definitions]
        logger.debug(
            "Registered %d series for folder %s: %s",
            len(definitions),
            key,
            ", ".join(d.name for d in definitions),
        )

    def find_in_folder(self, folder: str | Path, series_name: str) -> FolderMatch:
        """Find the definition in a folder that matches a file's series name.

        Priority: exact name, exact alias (both 1.0), then the best fuzzy
        name/alias score >= 0.8. Other entries above the threshold are
        returned as alternates.

        Args:
            folder: Folder containing the file
            series_name: Series name from the file's metadata

        Returns:
            FolderMatch (entry None when nothing matched)
        """
        entries = self._registry.get(_folder_key(folder))
        if not entries:
            return FolderMatch.none()

        normalized = normalize_series_name(series_name)

        for entry in entries:
            if entry.normalized_name == normalized:
                return FolderMatch(entry=entry, confidence=1.0, match_type=FolderMatchType.EXACT_NAME)

        for entry in entries:
            if normalized in entry.normalized_aliases:
                logger.debug(
                    "Matched %r via alias of %r in %s", series_name, entry.definition.name, folder
                )
                return FolderMatch(entry=entry, confidence=1.0, match_type=FolderMatchType.EXACT_ALIAS)

        best: FolderSeriesEntry | None = None
        best_score = 0.0
        best_type = FolderMatchType.FUZZY_NAME
        alternates: list[FolderSeriesEntry] = []

        for entry in entries:
            name_score = quick_similarity(normalized, entry.normalized_name)
            alias_score = max(
                (quick_similarity(normalized, alias) for alias in entry.normalized_aliases),
                default=0.0,
            )
            score = max(name_score, alias_score)
            if score < FOLDER_FUZZY_THRESHOLD:
                continue
            if score > best_score:
                if best is not None:
                    alternates.append(best)
                best = entry
                best_score = score
                best_type = (
                    FolderMatchType.FUZZY_NAME if name_score >= alias_score else FolderMatchType.FUZZY_ALIAS
                )
            else:
                alternates.append(entry)

        if best is None:
            return FolderMatch.none()

        if alternates:
            logger.warning(
                "Ambiguous folder match for %r in %s: %r (%.2f), alternates: %s",
                series_name,
                folder,
                best.definition.name,
                best_score,
                ", ".join(a.definition.name for a in alternates),
            )
        return FolderMatch(entry=best, confidence=best_score, match_type=best_type, alternates=alternates)

    def entries_for_folder(self, folder: str | Path) -> list[FolderSeriesEntry]:
        return list(self._registry.get(_folder_key(folder), []))

    def has_folder(self, folder: str | Path) -> bool:
        return _folder_key(folder) in self._registry

    @property
    def folders(self) -> list[str]:
        return list(self._registry)

    @property
    def total_series_count(self) -> int:
        return sum(len(entries) for entries in self._registry.values())

    def stats(self) -> dict[str, int]:
        """Folder, series and multi-series-folder counts."""
        return {
            "folders": len(self._registry),
            "series": self.total_series_count,
            "multi_series_folders": sum(1 for e in self._registry.values() if len(e) > 1),
        }
