"""Data models for comicshelf."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from pathlib import PurePosixPath
from typing import Any


def utc_now() -> datetime:
    """Current time, timezone-aware UTC."""
    return datetime.now(UTC)


class SeriesState(str, Enum):
    """Lifecycle state of a series."""

    ACTIVE = "active"
    SOFT_DELETED = "soft_deleted"  # Tombstoned, restorable


@dataclass(frozen=True)
class Lifecycle:
    """
    Two-state series lifecycle.

    A deletion timestamp exists only in the SOFT_DELETED state, so a
    "deleted but active" series cannot be constructed.
    """

    state: SeriesState = SeriesState.ACTIVE
    deleted_at: datetime | None = None

    def __post_init__(self) -> None:
        if self.state is SeriesState.ACTIVE and self.deleted_at is not None:
            raise ValueError("Active series cannot carry a deletion timestamp")
        if self.state is SeriesState.SOFT_DELETED and self.deleted_at is None:
            raise ValueError("Soft-deleted series requires a deletion timestamp")

    @classmethod
    def active(cls) -> Lifecycle:
        return cls(SeriesState.ACTIVE, None)

    @classmethod
    def soft_deleted(cls, at: datetime | None = None) -> Lifecycle:
        return cls(SeriesState.SOFT_DELETED, at or utc_now())

    @property
    def is_active(self) -> bool:
        return self.state is SeriesState.ACTIVE


@dataclass(frozen=True)
class ExternalId:
    """Tagged reference to a cataloguing service, e.g. ("comicvine", "4050-12345")."""

    kind: str
    value: str


# Series fields that inbound metadata may fill and users may lock.
LOCKABLE_FIELDS = frozenset(
    {
        "name",
        "publisher",
        "start_year",
        "end_year",
        "aliases",
        "summary",
        "deck",
        "issue_count",
        "volume",
        "genres",
        "tags",
        "cover_url",
        "age_rating",
        "language",
        "primary_folder",
    }
)


@dataclass
class Series:
    """A canonical series record from the catalog."""

    id: str
    name: str
    publisher: str | None = None
    start_year: int | None = None
    end_year: int | None = None
    aliases: list[str] = field(default_factory=list)
    external_ids: list[ExternalId] = field(default_factory=list)
    locked_fields: set[str] = field(default_factory=set)
    lifecycle: Lifecycle = field(default_factory=Lifecycle.active)
    primary_folder: str | None = None

    # Descriptive fields (filled from folder definitions / metadata)
    summary: str | None = None
    deck: str | None = None
    issue_count: int | None = None
    volume: int | None = None
    genres: list[str] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)
    cover_url: str | None = None
    age_rating: str | None = None
    language: str | None = None

    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_active(self) -> bool:
        return self.lifecycle.is_active

    @property
    def all_names(self) -> list[str]:
        """Display name followed by every alias."""
        return [self.name, *self.aliases]

    def external_id(self, kind: str) -> str | None:
        """Value of the external identifier of the given kind, if any."""
        for ext in self.external_ids:
            if ext.kind == kind:
                return ext.value
        return None

    def is_locked(self, field_name: str) -> bool:
        return field_name in self.locked_fields


@dataclass
class SeriesDraft:
    """Input for creating a new series."""

    name: str
    publisher: str | None = None
    start_year: int | None = None
    end_year: int | None = None
    aliases: list[str] = field(default_factory=list)
    external_ids: list[ExternalId] = field(default_factory=list)
    primary_folder: str | None = None
    summary: str | None = None
    deck: str | None = None
    issue_count: int | None = None
    volume: int | None = None
    genres: list[str] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)
    cover_url: str | None = None
    age_rating: str | None = None
    language: str | None = None

    def field_values(self) -> dict[str, Any]:
        """Descriptive values keyed by series field name (identity excluded)."""
        return {
            "start_year": self.start_year,
            "end_year": self.end_year,
            "aliases": list(self.aliases),
            "primary_folder": self.primary_folder,
            "summary": self.summary,
            "deck": self.deck,
            "issue_count": self.issue_count,
            "volume": self.volume,
            "genres": list(self.genres),
            "tags": list(self.tags),
            "cover_url": self.cover_url,
            "age_rating": self.age_rating,
            "language": self.language,
        }


@dataclass
class FileMetadata:
    """
    Metadata extracted from a comic archive by the scanning pipeline.

    Only series_name/year/publisher/external_ids drive series resolution; the
    remaining fields are carried for display.
    """

    series_name: str | None = None
    year: int | None = None
    publisher: str | None = None
    external_ids: list[ExternalId] = field(default_factory=list)
    number: str | None = None
    title: str | None = None
    genres: list[str] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)
    language: str | None = None
    age_rating: str | None = None


@dataclass
class ComicFile:
    """A comic archive known to the catalog."""

    id: str
    path: str
    relative_path: str
    series_id: str | None = None
    metadata: FileMetadata = field(default_factory=FileMetadata)
    sort_key: float | None = None  # Issue ordering within the series

    @property
    def filename(self) -> str:
        return PurePosixPath(self.relative_path or self.path).name

    @property
    def folder_path(self) -> str:
        """Containing folder of the archive."""
        return str(PurePosixPath(self.path).parent)

    @property
    def folder_name(self) -> str:
        return PurePosixPath(self.path).parent.name


@dataclass
class CollectionItem:
    """Series membership in a user collection."""

    collection_id: str
    series_id: str
    is_available: bool = True
    position: int = 0


@dataclass
class ReadingProgress:
    """Per-user reading state of a single file."""

    user_id: str
    file_id: str
    current_page: int = 0
    total_pages: int = 0
    completed: bool = False
    last_read_at: datetime | None = None


@dataclass
class SeriesProgress:
    """Per-user aggregate reading state of a series."""

    user_id: str
    series_id: str
    total_owned: int = 0
    total_read: int = 0
    total_in_progress: int = 0
    last_read_file_id: str | None = None
    last_read_at: datetime | None = None
    next_unread_file_id: str | None = None


@dataclass
class SeriesSummary:
    """Series as shown in merge previews and duplicate groups."""

    id: str
    name: str
    publisher: str | None
    start_year: int | None
    end_year: int | None
    aliases: list[str]
    owned_issue_count: int
    external_ids: list[ExternalId] = field(default_factory=list)

    @classmethod
    def from_series(cls, series: Series, owned_issue_count: int) -> SeriesSummary:
        return cls(
            id=series.id,
            name=series.name,
            publisher=series.publisher,
            start_year=series.start_year,
            end_year=series.end_year,
            aliases=list(series.aliases),
            owned_issue_count=owned_issue_count,
            external_ids=list(series.external_ids),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "publisher": self.publisher,
            "start_year": self.start_year,
            "end_year": self.end_year,
            "aliases": list(self.aliases),
            "owned_issue_count": self.owned_issue_count,
            "external_ids": {ext.kind: ext.value for ext in self.external_ids},
        }
