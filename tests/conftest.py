"""Shared pytest fixtures and helpers for comicshelf tests."""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest

from comicshelf.env_settings import clear_env_settings_cache
from comicshelf.models import ComicFile, ExternalId, FileMetadata, Series, SeriesDraft
from comicshelf.series.catalog import Created, SeriesCatalog

LIBRARY_ROOT = "/library"


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    """Path of a fresh catalog database."""
    return tmp_path / "library.db"


@pytest.fixture
def catalog(db_path: Path) -> Iterator[SeriesCatalog]:
    """A SeriesCatalog with its schema created."""
    cat = SeriesCatalog(db_path)
    cat._get_conn()
    yield cat
    cat.close()


@pytest.fixture(autouse=True)
def _reset_env_settings() -> Iterator[None]:
    """Never leak cached env settings between tests."""
    clear_env_settings_cache()
    yield
    clear_env_settings_cache()


def make_series(
    catalog: SeriesCatalog,
    name: str,
    publisher: str | None = None,
    *,
    start_year: int | None = None,
    aliases: list[str] | None = None,
    external_ids: dict[str, str] | None = None,
    **fields: object,
) -> Series:
    """Create a series and return it, failing the test on an identity clash."""
    draft = SeriesDraft(
        name=name,
        publisher=publisher,
        start_year=start_year,
        aliases=aliases or [],
        external_ids=[ExternalId(kind, value) for kind, value in (external_ids or {}).items()],
        **fields,  # type: ignore[arg-type]
    )
    outcome = catalog.create_series(draft)
    assert isinstance(outcome, Created), f"identity already taken: {name!r}/{publisher!r}"
    return outcome.series


def make_file(
    catalog: SeriesCatalog,
    relative_path: str,
    *,
    series_name: str | None = None,
    year: int | None = None,
    publisher: str | None = None,
    series_id: str | None = None,
    sort_key: float | None = None,
) -> ComicFile:
    """Register a comic file below LIBRARY_ROOT."""
    return catalog.add_file(
        f"{LIBRARY_ROOT}/{relative_path}",
        relative_path=relative_path,
        metadata=FileMetadata(series_name=series_name, year=year, publisher=publisher),
        series_id=series_id,
        sort_key=sort_key,
    )


def add_issues(catalog: SeriesCatalog, series: Series, count: int, *, folder: str | None = None) -> list[ComicFile]:
    """Attach ``count`` numbered issues to a series."""
    folder = folder or series.name
    return [
        make_file(
            catalog,
            f"{folder}/{series.name} {n:03d}.cbz",
            series_name=series.name,
            series_id=series.id,
            sort_key=float(n),
        )
        for n in range(1, count + 1)
    ]
