"""Series merge: preview and atomic execution.

Merging folds one or more source series into a target:

- every file owned by a source moves to the target
- collection memberships move, unless the target is already in that collection
- per-user series progress moves, unless the user already has target progress
- reader settings carry over when the target has none
- source names and aliases become target aliases
- source rows are deleted, then target progress is recomputed

Execution is a single transaction. Callers must not run a merge concurrently
with a scan that may link files to any of the source series.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from comicshelf.exceptions import MergeValidationError, SeriesNotFoundError
from comicshelf.models import Series, SeriesSummary
from comicshelf.series.progress import update_series_progress
from comicshelf.utils.normalization import dedupe_names, identity_key

if TYPE_CHECKING:
    from comicshelf.series.catalog import SeriesCatalog

logger = logging.getLogger(__name__)


@dataclass
class MergePreview:
    """What merge_series() would do (nothing is written)."""

    target: SeriesSummary
    sources: list[SeriesSummary]
    resulting_aliases: list[str]
    total_issues_after_merge: int
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "target": self.target.to_dict(),
            "sources": [s.to_dict() for s in self.sources],
            "resulting_aliases": list(self.resulting_aliases),
            "total_issues_after_merge": self.total_issues_after_merge,
            "warnings": list(self.warnings),
        }


@dataclass
class MergeResult:
    """Outcome of a completed merge."""

    target_series_id: str
    merged_source_ids: list[str]
    issues_moved: int
    aliases_added: list[str]
    collection_items_moved: int = 0
    collection_items_dropped: int = 0
    progress_records_moved: int = 0
    progress_records_dropped: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "target_series_id": self.target_series_id,
            "merged_source_ids": list(self.merged_source_ids),
            "issues_moved": self.issues_moved,
            "aliases_added": list(self.aliases_added),
            "collection_items_moved": self.collection_items_moved,
            "collection_items_dropped": self.collection_items_dropped,
            "progress_records_moved": self.progress_records_moved,
            "progress_records_dropped": self.progress_records_dropped,
        }


def _publisher_mismatch(source: Series, target: Series) -> bool:
    return bool(
        source.publisher
        and target.publisher
        and identity_key(source.publisher) != identity_key(target.publisher)
    )


def _source_ids(source_ids: list[str], target_id: str) -> list[str]:
    """Distinct source IDs in order, without the target itself."""
    seen: set[str] = set()
    result: list[str] = []
    for sid in source_ids:
        if sid != target_id and sid not in seen:
            seen.add(sid)
            result.append(sid)
    return result


class SeriesMerger:
    """Preview and execute series merges."""

    def __init__(self, catalog: SeriesCatalog) -> None:
        self.catalog = catalog

    def _require_target(self, target_id: str) -> Series:
        target = self.catalog.get_series(target_id)
        if target is None:
            raise MergeValidationError(f"Target series {target_id} not found", target_id=target_id)
        return target

    def preview_merge(self, source_ids: list[str], target_id: str) -> MergePreview:
        """Describe a merge without changing anything.

        Missing sources are reported as warnings rather than failing the
        preview.

        Raises:
            MergeValidationError: Target does not exist
        """
        target = self._require_target(target_id)
        owned = self.catalog.count_files_by_series()

        sources: list[SeriesSummary] = []
        warnings: list[str] = []
        for sid in _source_ids(source_ids, target_id):
            source = self.catalog.get_series(sid)
            if source is None:
                warnings.append(f"Source series {sid} not found")
                continue
            sources.append(SeriesSummary.from_series(source, owned.get(sid, 0)))
            if _publisher_mismatch(source, target):
                warnings.append(
                    f'"{source.name}" has different publisher ({source.publisher}) '
                    f"than target ({target.publisher})"
                )

        new_names = dedupe_names((s.name for s in sources), exclude=target.all_names)
        target_count = owned.get(target_id, 0)
        return MergePreview(
            target=SeriesSummary.from_series(target, target_count),
            sources=sources,
            resulting_aliases=[*target.aliases, *new_names],
            total_issues_after_merge=target_count + sum(s.owned_issue_count for s in sources),
            warnings=warnings,
        )

    def merge_series(self, source_ids: list[str], target_id: str) -> MergeResult:
        """Merge source series into the target in one transaction.

        All inputs are validated before anything is written; any failure
        during execution rolls the whole merge back.

        Raises:
            MergeValidationError: Target missing, or no sources besides the target
            SeriesNotFoundError: A source does not exist
        """
        target = self._require_target(target_id)
        sources_to_merge = _source_ids(source_ids, target_id)
        if not sources_to_merge:
            raise MergeValidationError("No source series to merge", target_id=target_id)

        sources: list[Series] = []
        for sid in sources_to_merge:
            source = self.catalog.get_series(sid)
            if source is None:
                raise SeriesNotFoundError(sid)
            sources.append(source)

        result = MergeResult(
            target_series_id=target_id,
            merged_source_ids=[],
            issues_moved=0,
            aliases_added=[],
        )

        with self.catalog.transaction():
            if not target.is_active:
                target = self.catalog.restore_series(target_id)
            aliases = list(target.aliases)

            for source in sources:
                result.issues_moved += self.catalog.move_files(source.id, target_id)
                self._move_collection_items(source.id, target_id, result)
                self._move_series_progress(source.id, target_id, result)

                if self.catalog.get_reader_settings(target_id) is None:
                    settings = self.catalog.get_reader_settings(source.id)
                    if settings is not None:
                        self.catalog.set_reader_settings(target_id, settings)

                added = dedupe_names([source.name, *source.aliases], exclude=[target.name, *aliases])
                aliases.extend(added)
                result.aliases_added.extend(added)

                # Reader settings and remaining dependents cascade with the row
                self.catalog.delete_series(source.id)
                result.merged_source_ids.append(source.id)

            if result.aliases_added:
                self.catalog.update_series_fields(target_id, {"aliases": aliases})
            update_series_progress(self.catalog, target_id)

        logger.info(
            "Merged %d series into %r: %d issues moved, %d aliases added",
            len(result.merged_source_ids),
            target.name,
            result.issues_moved,
            len(result.aliases_added),
        )
        return result

    def _move_collection_items(self, source_id: str, target_id: str, result: MergeResult) -> None:
        target_collections = {i.collection_id for i in self.catalog.list_collection_items(target_id)}
        for item in self.catalog.list_collection_items(source_id):
            if item.collection_id in target_collections:
                self.catalog.delete_collection_item(item.collection_id, source_id)
                result.collection_items_dropped += 1
            else:
                self.catalog.reassign_collection_item(item.collection_id, source_id, target_id)
                target_collections.add(item.collection_id)
                result.collection_items_moved += 1

    def _move_series_progress(self, source_id: str, target_id: str, result: MergeResult) -> None:
        target_users = {p.user_id for p in self.catalog.list_series_progress(target_id)}
        for progress in self.catalog.list_series_progress(source_id):
            if progress.user_id in target_users:
                self.catalog.delete_series_progress(progress.user_id, source_id)
                result.progress_records_dropped += 1
            else:
                self.catalog.reassign_series_progress(progress.user_id, source_id, target_id)
                target_users.add(progress.user_id)
                result.progress_records_moved += 1
