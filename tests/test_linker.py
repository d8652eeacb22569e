"""Tests for the auto-link policy and manual linking."""

from __future__ import annotations

import threading
from pathlib import Path

import pytest

from comicshelf.exceptions import ComicFileNotFoundError, SeriesNotFoundError
from comicshelf.models import Series, SeriesDraft
from comicshelf.scan.cache import ScanSeriesCache
from comicshelf.scan.folder_registry import FolderSeriesRegistry
from comicshelf.series.catalog import CreateOutcome, Created, SeriesCatalog
from comicshelf.series.linker import LinkResult, NameSource, SeriesLinker
from tests.conftest import add_issues, make_file, make_series


@pytest.fixture
def linker(catalog: SeriesCatalog) -> SeriesLinker:
    return SeriesLinker(catalog)


# =============================================================================
# Decision table
# =============================================================================


class TestAutoLinkDecisions:
    """Test auto_link_file outcomes by confidence band."""

    def test_confident_match_links(self, catalog: SeriesCatalog, linker: SeriesLinker) -> None:
        """An exact identity match links to the existing series."""
        batman = make_series(catalog, "Batman", "DC Comics")
        comic = make_file(catalog, "Batman/Batman 001.cbz", series_name="Batman", publisher="DC Comics")

        result = linker.auto_link_file(comic.id)
        assert result.success
        assert result.series_id == batman.id
        assert result.match_type == "exact"
        assert result.created_series is None
        assert catalog.require_file(comic.id).series_id == batman.id

    def test_medium_match_needs_confirmation(self, catalog: SeriesCatalog, linker: SeriesLinker) -> None:
        """A fuzzy match below 0.9 is left for the user."""
        saga = make_series(catalog, "Saga", "Image", start_year=2012)
        comic = make_file(catalog, "Saga Deluxe 001.cbz", series_name="Saga Deluxe", year=2012, publisher="Image")

        result = linker.auto_link_file(comic.id)
        assert not result.success
        assert result.needs_confirmation
        assert result.suggestions
        assert result.suggestions[0].series.id == saga.id
        assert catalog.require_file(comic.id).series_id is None
        assert len(catalog.list_series()) == 1

    def test_medium_match_trusted_creates_with_warning(
        self, catalog: SeriesCatalog, linker: SeriesLinker
    ) -> None:
        """Trusting metadata creates the named series and warns about the near match."""
        saga = make_series(catalog, "Saga", "Image", start_year=2012)
        comic = make_file(catalog, "Saga Deluxe 001.cbz", series_name="Saga Deluxe", year=2012, publisher="Image")

        result = linker.auto_link_file(comic.id, trust_metadata=True)
        assert result.success
        assert result.match_type == "created"
        assert result.series_id != saga.id
        assert result.created_series is not None
        assert result.created_series.name == "Saga Deluxe"
        assert len(result.warnings) == 1
        assert '"Saga"' in result.warnings[0]
        assert "88% match" in result.warnings[0]

    def test_low_match_creates(self, catalog: SeriesCatalog, linker: SeriesLinker) -> None:
        """Nothing similar means a new series from the file's metadata."""
        make_series(catalog, "Batman", "DC Comics")
        comic = make_file(catalog, "Superman/Superman 001.cbz", series_name="Superman", year=2018, publisher="DC Comics")

        result = linker.auto_link_file(comic.id)
        assert result.success
        assert result.match_type == "created"
        created = catalog.require_series(result.series_id or "")
        assert created.name == "Superman"
        assert created.publisher == "DC Comics"
        assert created.start_year == 2018
        assert created.primary_folder == "/library/Superman"
        assert result.warnings == []

    def test_folder_name_used_without_metadata(self, catalog: SeriesCatalog, linker: SeriesLinker) -> None:
        """Files without a series name fall back to their folder."""
        batman = make_series(catalog, "Batman")
        comic = make_file(catalog, "Batman/Batman 001.cbz")

        result = linker.auto_link_file(comic.id)
        assert result.series_id == batman.id

    def test_no_series_name(self, catalog: SeriesCatalog, linker: SeriesLinker) -> None:
        """A root-level file without metadata cannot be linked."""
        comic = make_file(catalog, "Oneshot.cbz")

        result = linker.auto_link_file(comic.id)
        assert result == LinkResult(success=False, error="No series name found")

    def test_unknown_file(self, linker: SeriesLinker) -> None:
        """Unknown files raise."""
        with pytest.raises(ComicFileNotFoundError):
            linker.auto_link_file("missing")

    def test_tombstone_restored_on_create(self, catalog: SeriesCatalog, linker: SeriesLinker) -> None:
        """Re-creating a soft-deleted identity restores the old row."""
        old = make_series(catalog, "Batman", "DC Comics")
        catalog.soft_delete_series(old.id)
        comic = make_file(catalog, "Batman/Batman 001.cbz", series_name="Batman", publisher="DC Comics")

        result = linker.auto_link_file(comic.id)
        assert result.success
        assert result.series_id == old.id
        assert result.match_type == "created"
        assert catalog.require_series(old.id).is_active

    def test_partial_match_restores_tombstone(self, catalog: SeriesCatalog, linker: SeriesLinker) -> None:
        """A name and year hit on a soft-deleted series revives it instead of duplicating it."""
        saga = make_series(catalog, "Saga", "Image", start_year=2012)
        collection = catalog.create_collection("alice", "Favourites")
        catalog.add_to_collection(collection, saga.id)
        catalog.soft_delete_series(saga.id)
        comic = make_file(catalog, "Saga/Saga 055.cbz", series_name="Saga", year=2012, publisher="Image Comics")

        result = linker.auto_link_file(comic.id)
        assert result.success
        assert result.series_id == saga.id
        assert result.match_type == "partial"
        assert catalog.require_series(saga.id).is_active
        assert catalog.list_collection_items(saga.id)[0].is_available is True
        assert len(catalog.list_series(include_deleted=True)) == 1

    def test_trusted_create_race_keeps_warnings(
        self, catalog: SeriesCatalog, linker: SeriesLinker, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Losing a creation race still reports the near-match warning."""
        make_series(catalog, "Saga", "Image", start_year=2012)
        comic = make_file(catalog, "Saga Deluxe 001.cbz", series_name="Saga Deluxe", year=2012, publisher="Image")
        real_create = catalog.create_series
        winner: list[Series] = []

        def create_after_other_worker(draft: SeriesDraft) -> CreateOutcome:
            outcome = real_create(SeriesDraft(name=draft.name, publisher=draft.publisher))
            assert isinstance(outcome, Created)
            winner.append(outcome.series)
            return real_create(draft)

        monkeypatch.setattr(catalog, "create_series", create_after_other_worker)

        result = linker.auto_link_file(comic.id, trust_metadata=True)
        assert result.success
        assert result.series_id == winner[0].id
        assert result.created_series is None
        assert len(result.warnings) == 1
        assert "88% match" in result.warnings[0]


class TestFolderRegistryLinking:
    """Test auto-linking with series.json definitions."""

    @pytest.fixture
    def registry(self) -> FolderSeriesRegistry:
        return FolderSeriesRegistry.build_from_map(
            {"/library/Batman": {"seriesName": "Batman", "publisher": "DC Comics", "startYear": 2016}}
        )

    def test_definition_creates_then_links(
        self, catalog: SeriesCatalog, linker: SeriesLinker, registry: FolderSeriesRegistry
    ) -> None:
        """First file creates the defined series; the next links by folder."""
        first = make_file(catalog, "Batman/Batman 001.cbz", series_name="Batman")
        second = make_file(catalog, "Batman/Batman 002.cbz", series_name="Batman")

        created = linker.auto_link_file(first.id, folder_registry=registry)
        linked = linker.auto_link_file(second.id, folder_registry=registry)

        assert created.match_type == "created"
        assert linked.match_type == "folder"
        assert linked.series_id == created.series_id
        series = catalog.require_series(created.series_id or "")
        assert series.publisher == "DC Comics"
        assert series.start_year == 2016

    def test_unrelated_file_ignores_definition(
        self, catalog: SeriesCatalog, linker: SeriesLinker, registry: FolderSeriesRegistry
    ) -> None:
        """A file naming another series follows the normal policy."""
        comic = make_file(catalog, "Batman/Superman 001.cbz", series_name="Superman")

        result = linker.auto_link_file(comic.id, folder_registry=registry)
        assert result.match_type == "created"
        assert catalog.require_series(result.series_id or "").name == "Superman"


class TestConcurrentCreation:
    """Test identity races between workers."""

    def test_parallel_workers_share_one_series(self, catalog: SeriesCatalog, db_path: Path) -> None:
        """Workers creating the same series at once end up on one row."""
        workers = 4
        files = [
            make_file(catalog, f"Invincible/Invincible {n:03d}.cbz", series_name="Invincible", publisher="Image")
            for n in range(1, workers + 1)
        ]
        barrier = threading.Barrier(workers)
        results: list[LinkResult] = []
        errors: list[BaseException] = []
        lock = threading.Lock()

        def work(file_id: str) -> None:
            try:
                with SeriesCatalog(db_path) as own:
                    barrier.wait()
                    result = SeriesLinker(own).auto_link_file(file_id)
                with lock:
                    results.append(result)
            except BaseException as e:  # noqa: BLE001
                with lock:
                    errors.append(e)

        threads = [threading.Thread(target=work, args=(f.id,)) for f in files]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert all(r.success for r in results)
        series = catalog.list_series()
        assert [s.name for s in series] == ["Invincible"]
        assert {catalog.require_file(f.id).series_id for f in files} == {series[0].id}


# =============================================================================
# Batch operations
# =============================================================================


class TestAutoLinkAll:
    """Test auto_link_all_files."""

    def test_summary_counts(self, catalog: SeriesCatalog, linker: SeriesLinker) -> None:
        """Every unlinked file is counted in exactly one bucket."""
        make_series(catalog, "Saga", "Image", start_year=2012)
        make_file(catalog, "Saga Deluxe 001.cbz", series_name="Saga Deluxe", year=2012, publisher="Image")
        make_file(catalog, "Saga/Saga 054.cbz", series_name="Saga", publisher="Image")
        make_file(catalog, "Oneshot.cbz")
        make_file(catalog, "Monstress/Monstress 001.cbz", series_name="Monstress", publisher="Image")

        summary = linker.auto_link_all_files()
        assert summary.linked == 2
        assert summary.created == 1
        assert summary.needs_confirmation == 1
        assert summary.errors == 1

    def test_created_series_added_to_cache(self, catalog: SeriesCatalog, linker: SeriesLinker) -> None:
        """Later files in the batch see series created earlier in it."""
        cache = ScanSeriesCache()
        cache.load(catalog)
        for n in (1, 2, 3):
            make_file(catalog, f"Invincible/Invincible {n:03d}.cbz", series_name="Invincible", publisher="Image")

        summary = linker.auto_link_all_files(scan_cache=cache)
        assert summary.linked == 3
        assert summary.created == 1
        assert len(cache) == 1
        assert len(catalog.list_series()) == 1
        assert catalog.list_unlinked_files() == []


class TestFilesNeedingConfirmation:
    """Test files_needing_confirmation."""

    def test_close_suggestions_are_pending(self, catalog: SeriesCatalog, linker: SeriesLinker) -> None:
        """A runner-up above 80% of the top suggestion makes the file ambiguous."""
        make_series(catalog, "Saga")
        make_series(catalog, "Paper Girls")
        comic = make_file(catalog, "Paper Girls/Saga Deluxe 001.cbz", series_name="Saga Deluxe")

        pending = linker.files_needing_confirmation()
        assert [p.file.id for p in pending] == [comic.id]
        assert len(pending[0].suggestions) == 2

    def test_runner_up_at_ratio_not_pending(self, catalog: SeriesCatalog, linker: SeriesLinker) -> None:
        """An alternate at exactly 80% of the top is not ambiguous."""
        make_series(catalog, "Justice League")
        make_series(catalog, "Justice League Dark")
        make_file(catalog, "jle 001.cbz", series_name="Justice League Europe")

        assert linker.files_needing_confirmation() == []

    def test_single_suggestion_not_pending(self, catalog: SeriesCatalog, linker: SeriesLinker) -> None:
        """One suggestion is never ambiguous."""
        make_series(catalog, "Batman")
        make_file(catalog, "The Batman 001.cbz", series_name="The Batman")

        assert linker.files_needing_confirmation() == []

    def test_limit(self, catalog: SeriesCatalog, linker: SeriesLinker) -> None:
        """Only the first files by path are examined."""
        make_series(catalog, "Saga")
        make_series(catalog, "Paper Girls")
        make_file(catalog, "Paper Girls/Saga Deluxe 001.cbz", series_name="Saga Deluxe")
        make_file(catalog, "Paper Girls/Saga Deluxe 002.cbz", series_name="Saga Deluxe")

        assert len(linker.files_needing_confirmation(limit=1)) == 1


# =============================================================================
# Manual linking
# =============================================================================


class TestManualLinking:
    """Test link, unlink and bulk relink."""

    def test_link_restores_soft_deleted(self, catalog: SeriesCatalog, linker: SeriesLinker) -> None:
        """Linking to a tombstone brings it back."""
        batman = make_series(catalog, "Batman")
        catalog.soft_delete_series(batman.id)
        comic = make_file(catalog, "Batman 001.cbz")

        series = linker.link_file_to_series(comic.id, batman.id)
        assert series.is_active
        assert catalog.require_file(comic.id).series_id == batman.id

    def test_link_unknown_series(self, catalog: SeriesCatalog, linker: SeriesLinker) -> None:
        """Linking to a missing series raises and leaves the file alone."""
        comic = make_file(catalog, "Batman 001.cbz")
        with pytest.raises(SeriesNotFoundError):
            linker.link_file_to_series(comic.id, "missing")
        assert catalog.require_file(comic.id).series_id is None

    def test_unlink(self, catalog: SeriesCatalog, linker: SeriesLinker) -> None:
        """Unlink returns the previous series."""
        batman = make_series(catalog, "Batman")
        (comic,) = add_issues(catalog, batman, 1)

        assert linker.unlink_file_from_series(comic.id) == batman.id
        assert catalog.require_file(comic.id).series_id is None
        assert linker.unlink_file_from_series(comic.id) is None

    def test_bulk_relink(self, catalog: SeriesCatalog, linker: SeriesLinker) -> None:
        """All files move to the target series."""
        old = make_series(catalog, "Batman Old")
        new = make_series(catalog, "Batman")
        files = add_issues(catalog, old, 3)

        assert linker.bulk_relink_files([f.id for f in files], new.id) == 3
        assert catalog.count_files_for_series(new.id) == 3
        assert catalog.count_files_for_series(old.id) == 0

    def test_bulk_relink_is_atomic(self, catalog: SeriesCatalog, linker: SeriesLinker) -> None:
        """One unknown file rolls back the whole relink."""
        old = make_series(catalog, "Batman Old")
        new = make_series(catalog, "Batman")
        files = add_issues(catalog, old, 2)

        with pytest.raises(ComicFileNotFoundError):
            linker.bulk_relink_files([files[0].id, "missing", files[1].id], new.id)
        assert catalog.count_files_for_series(old.id) == 2
        assert catalog.count_files_for_series(new.id) == 0


class TestFolderFallback:
    """Test link_file_with_folder_fallback."""

    def test_already_linked(self, catalog: SeriesCatalog, linker: SeriesLinker) -> None:
        """Linked files are left alone."""
        batman = make_series(catalog, "Batman")
        (comic,) = add_issues(catalog, batman, 1)

        result = linker.link_file_with_folder_fallback(comic.id)
        assert result.linked
        assert result.series_id == batman.id
        assert result.source is NameSource.EXISTING

    def test_metadata_match(self, catalog: SeriesCatalog, linker: SeriesLinker) -> None:
        """Metadata naming an existing series links to it."""
        batman = make_series(catalog, "Batman", "DC Comics")
        comic = make_file(catalog, "misc/bat.cbz", series_name="Batman", publisher="DC Comics")

        result = linker.link_file_with_folder_fallback(comic.id)
        assert result.series_id == batman.id
        assert result.source is NameSource.METADATA
        assert not result.series_created

    def test_folder_name_creates(self, catalog: SeriesCatalog, linker: SeriesLinker) -> None:
        """The folder name, minus its year, names a new series."""
        comic = make_file(catalog, "Saga (2012)/Saga 001.cbz")

        result = linker.link_file_with_folder_fallback(comic.id)
        assert result.linked
        assert result.series_created
        assert result.source is NameSource.FOLDER
        assert result.series_name == "Saga"
        series = catalog.require_series(result.series_id or "")
        assert series.start_year == 2012
        assert series.primary_folder == "/library/Saga (2012)"

    def test_filename_creates(self, catalog: SeriesCatalog, linker: SeriesLinker) -> None:
        """Root-level files fall back to their filename."""
        comic = make_file(catalog, "Invincible 001.cbz")

        result = linker.link_file_with_folder_fallback(comic.id)
        assert result.source is NameSource.FILENAME
        assert result.series_name == "Invincible"
        assert result.series_created
        series = catalog.require_series(result.series_id or "")
        assert series.primary_folder is None
