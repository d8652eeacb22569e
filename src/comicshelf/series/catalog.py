"""SQLite catalog of series, comic files and per-user reading state.

The catalog is the storage contract the resolver, linker, duplicate detector
and merge engine are written against. It enforces the series identity
invariant with a partial unique index:

    (name_key, publisher_key) is unique among rows WHERE deleted_at IS NULL

so concurrent creators racing on the same identity cannot both win.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import uuid
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from dataclasses import asdict, dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

from comicshelf.exceptions import (
    ComicFileNotFoundError,
    IdentityConflictError,
    SeriesNotFoundError,
    ValidationError,
)
from comicshelf.models import (
    LOCKABLE_FIELDS,
    CollectionItem,
    ComicFile,
    ExternalId,
    FileMetadata,
    Lifecycle,
    ReadingProgress,
    Series,
    SeriesDraft,
    SeriesProgress,
    utc_now,
)
from comicshelf.utils.normalization import dedupe_names, identity_key

logger = logging.getLogger(__name__)

# Current schema version - increment when schema changes
SCHEMA_VERSION = 1

SCHEMA_SQL = """
-- Series: canonical series records
CREATE TABLE IF NOT EXISTS series (
    id              TEXT PRIMARY KEY,
    name            TEXT NOT NULL,
    name_key        TEXT NOT NULL,          -- casefolded name
    publisher       TEXT,
    publisher_key   TEXT NOT NULL DEFAULT '', -- casefolded publisher, '' when absent
    start_year      INTEGER,
    end_year        INTEGER,
    aliases         TEXT NOT NULL DEFAULT '[]',   -- JSON list
    locked_fields   TEXT NOT NULL DEFAULT '[]',   -- JSON list
    primary_folder  TEXT,
    summary         TEXT,
    deck            TEXT,
    issue_count     INTEGER,
    volume          INTEGER,
    genres          TEXT NOT NULL DEFAULT '[]',
    tags            TEXT NOT NULL DEFAULT '[]',
    cover_url       TEXT,
    age_rating      TEXT,
    language        TEXT,
    deleted_at      TEXT,                   -- NULL while active
    created_at      TEXT NOT NULL,
    updated_at      TEXT NOT NULL
);

CREATE UNIQUE INDEX IF NOT EXISTS idx_series_identity
    ON series(name_key, publisher_key) WHERE deleted_at IS NULL;
CREATE INDEX IF NOT EXISTS idx_series_name_key ON series(name_key);

-- External identifiers: one value per (series, kind)
CREATE TABLE IF NOT EXISTS series_external_ids (
    series_id   TEXT NOT NULL REFERENCES series(id) ON DELETE CASCADE,
    kind        TEXT NOT NULL,              -- "comicvine", "metron", ...
    value       TEXT NOT NULL,
    PRIMARY KEY (series_id, kind)
);

CREATE INDEX IF NOT EXISTS idx_external_ids_lookup ON series_external_ids(kind, value);

-- Comic files: owned by the scanner, linked to series here
CREATE TABLE IF NOT EXISTS comic_files (
    id              TEXT PRIMARY KEY,
    path            TEXT UNIQUE NOT NULL,
    relative_path   TEXT NOT NULL,
    series_id       TEXT REFERENCES series(id) ON DELETE SET NULL,
    metadata        TEXT NOT NULL DEFAULT '{}',   -- JSON FileMetadata
    sort_key        REAL,                   -- issue order within series
    added_at        TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_files_series ON comic_files(series_id);

-- Collections
CREATE TABLE IF NOT EXISTS collections (
    id          TEXT PRIMARY KEY,
    user_id     TEXT NOT NULL,
    name        TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS collection_items (
    collection_id   TEXT NOT NULL REFERENCES collections(id) ON DELETE CASCADE,
    series_id       TEXT NOT NULL REFERENCES series(id) ON DELETE CASCADE,
    is_available    INTEGER NOT NULL DEFAULT 1,
    position        INTEGER NOT NULL DEFAULT 0,
    PRIMARY KEY (collection_id, series_id)
);

CREATE INDEX IF NOT EXISTS idx_collection_items_series ON collection_items(series_id);

-- Reading progress: per user, per file
CREATE TABLE IF NOT EXISTS reading_progress (
    user_id         TEXT NOT NULL,
    file_id         TEXT NOT NULL REFERENCES comic_files(id) ON DELETE CASCADE,
    current_page    INTEGER NOT NULL DEFAULT 0,
    total_pages     INTEGER NOT NULL DEFAULT 0,
    completed       INTEGER NOT NULL DEFAULT 0,
    last_read_at    TEXT,
    PRIMARY KEY (user_id, file_id)
);

-- Series progress: per user, per series aggregate
CREATE TABLE IF NOT EXISTS series_progress (
    user_id             TEXT NOT NULL,
    series_id           TEXT NOT NULL REFERENCES series(id) ON DELETE CASCADE,
    total_owned         INTEGER NOT NULL DEFAULT 0,
    total_read          INTEGER NOT NULL DEFAULT 0,
    total_in_progress   INTEGER NOT NULL DEFAULT 0,
    last_read_file_id   TEXT,
    last_read_at        TEXT,
    next_unread_file_id TEXT,
    PRIMARY KEY (user_id, series_id)
);

-- Reader settings: per series
CREATE TABLE IF NOT EXISTS reader_settings (
    series_id   TEXT PRIMARY KEY REFERENCES series(id) ON DELETE CASCADE,
    settings    TEXT NOT NULL               -- JSON object
);

-- Catalog metadata
CREATE TABLE IF NOT EXISTS catalog_meta (
    key   TEXT PRIMARY KEY,
    value TEXT NOT NULL
);
"""

_SERIES_COLUMNS = """
    id, name, publisher, start_year, end_year, aliases, locked_fields,
    primary_folder, summary, deck, issue_count, volume, genres, tags,
    cover_url, age_rating, language, deleted_at, created_at, updated_at
"""

# Columns update_series_fields() may write, and how they are stored
_JSON_FIELDS = frozenset({"aliases", "genres", "tags"})
_UPDATABLE_FIELDS = LOCKABLE_FIELDS


# =============================================================================
# Results
# =============================================================================


@dataclass(frozen=True)
class Created:
    """Series creation succeeded (or a tombstone with the same identity was restored)."""

    series: Series
    restored: bool = False


@dataclass(frozen=True)
class ConflictRetryWith:
    """Another writer already holds this identity; link to existing_id instead."""

    existing_id: str


CreateOutcome = Created | ConflictRetryWith


@dataclass
class CatalogStats:
    """Statistics about the catalog."""

    active_series: int
    soft_deleted_series: int
    total_files: int
    linked_files: int
    unlinked_files: int
    schema_version: int


# =============================================================================
# Row conversion helpers
# =============================================================================


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _parse_dt(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        logger.warning("Unparseable timestamp in catalog: %r", value)
        return None


def _metadata_to_json(metadata: FileMetadata) -> str:
    data = asdict(metadata)
    data["external_ids"] = [{"kind": e.kind, "value": e.value} for e in metadata.external_ids]
    return json.dumps(data)


def _metadata_from_json(raw: str | None) -> FileMetadata:
    data: dict[str, Any] = json.loads(raw) if raw else {}
    ext = [ExternalId(kind=e["kind"], value=str(e["value"])) for e in data.pop("external_ids", [])]
    known = FileMetadata.__dataclass_fields__
    return FileMetadata(external_ids=ext, **{k: v for k, v in data.items() if k in known})


def _is_identity_violation(exc: sqlite3.IntegrityError) -> bool:
    return "series.name_key" in str(exc)


class SeriesCatalog:
    """SQLite-backed series catalog.

    Note:
        This class is NOT thread-safe. Each worker thread should open its own
        SeriesCatalog on the same database file; SQLite serializes writers
        and the identity index arbitrates creation races.
    """

    def __init__(self, db_path: Path, *, busy_timeout: float = 30.0) -> None:
        """Initialize catalog with database path.

        Args:
            db_path: Path to SQLite database file (created if not exists)
            busy_timeout: Seconds to wait for a competing writer
        """
        self.db_path = db_path
        self.busy_timeout = busy_timeout
        self._conn: sqlite3.Connection | None = None
        self._tx_depth = 0

    def _get_conn(self) -> sqlite3.Connection:
        """Get or create database connection."""
        if self._conn is None:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            # Autocommit mode; transaction() issues BEGIN IMMEDIATE explicitly
            conn = sqlite3.connect(self.db_path, timeout=self.busy_timeout, isolation_level=None)
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA foreign_keys=ON")
            self._conn = conn
            self._init_schema()
        return self._conn

    def _init_schema(self) -> None:
        """Initialize database schema if needed."""
        conn = self._conn
        if conn is None:
            return

        cursor = conn.execute("SELECT name FROM sqlite_master WHERE type='table' AND name='series'")
        if cursor.fetchone() is None:
            # executescript() would commit implicitly; run statements inside our transaction
            with self.transaction():
                self._create_schema(conn)
            logger.info("Created catalog schema version %d", SCHEMA_VERSION)

    @staticmethod
    def _create_schema(conn: sqlite3.Connection) -> None:
        for statement in SCHEMA_SQL.split(";"):
            if statement.strip():
                conn.execute(statement)
        conn.execute(
            "INSERT OR REPLACE INTO catalog_meta (key, value) VALUES (?, ?)",
            ("schema_version", str(SCHEMA_VERSION)),
        )

    def close(self) -> None:
        """Close database connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None
            self._tx_depth = 0

    def __enter__(self) -> SeriesCatalog:
        """Context manager entry."""
        return self

    def __exit__(self, *args: object) -> None:
        """Context manager exit."""
        self.close()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Run the enclosed block as one write transaction.

        Uses BEGIN IMMEDIATE so the write lock is taken up front (waiting up
        to busy_timeout). Nested use joins the outer transaction. Any
        exception rolls back everything and propagates.
        """
        conn = self._get_conn()
        if self._tx_depth:
            self._tx_depth += 1
            try:
                yield conn
            finally:
                self._tx_depth -= 1
            return

        conn.execute("BEGIN IMMEDIATE")
        self._tx_depth = 1
        try:
            yield conn
        except BaseException:
            self._tx_depth = 0
            conn.execute("ROLLBACK")
            raise
        self._tx_depth = 0
        conn.execute("COMMIT")

    # === Series lookups ===

    def _series_from_rows(self, rows: Iterable[sqlite3.Row]) -> list[Series]:
        rows = list(rows)
        if not rows:
            return []
        ext_map = self._external_ids_for([row["id"] for row in rows])
        return [self._row_to_series(row, ext_map.get(row["id"], [])) for row in rows]

    @staticmethod
    def _row_to_series(row: sqlite3.Row, external_ids: list[ExternalId]) -> Series:
        lifecycle = Lifecycle.active()
        if row["deleted_at"] is not None:
            # SQL treats any non-null deleted_at as deleted, parseable or not
            lifecycle = Lifecycle.soft_deleted(_parse_dt(row["deleted_at"]) or utc_now())
        return Series(
            id=row["id"],
            name=row["name"],
            publisher=row["publisher"],
            start_year=row["start_year"],
            end_year=row["end_year"],
            aliases=json.loads(row["aliases"]),
            external_ids=external_ids,
            locked_fields=set(json.loads(row["locked_fields"])),
            lifecycle=lifecycle,
            primary_folder=row["primary_folder"],
            summary=row["summary"],
            deck=row["deck"],
            issue_count=row["issue_count"],
            volume=row["volume"],
            genres=json.loads(row["genres"]),
            tags=json.loads(row["tags"]),
            cover_url=row["cover_url"],
            age_rating=row["age_rating"],
            language=row["language"],
            created_at=_parse_dt(row["created_at"]),
            updated_at=_parse_dt(row["updated_at"]),
        )

    def _external_ids_for(self, series_ids: list[str]) -> dict[str, list[ExternalId]]:
        conn = self._get_conn()
        result: dict[str, list[ExternalId]] = {}
        # Stay under SQLite's bound-parameter limit
        for start in range(0, len(series_ids), 500):
            chunk = series_ids[start : start + 500]
            placeholders = ",".join("?" * len(chunk))
            cursor = conn.execute(
                f"SELECT series_id, kind, value FROM series_external_ids "
                f"WHERE series_id IN ({placeholders}) ORDER BY kind",
                chunk,
            )
            for row in cursor:
                result.setdefault(row["series_id"], []).append(
                    ExternalId(kind=row["kind"], value=row["value"])
                )
        return result

    def get_series(self, series_id: str) -> Series | None:
        """Get a series by ID in any lifecycle state.

        Args:
            series_id: Series ID

        Returns:
            Series if found, None otherwise
        """
        conn = self._get_conn()
        cursor = conn.execute(f"SELECT {_SERIES_COLUMNS} FROM series WHERE id = ?", (series_id,))
        found = self._series_from_rows(cursor.fetchall())
        return found[0] if found else None

    def require_series(self, series_id: str) -> Series:
        """Get a series by ID or raise SeriesNotFoundError."""
        series = self.get_series(series_id)
        if series is None:
            raise SeriesNotFoundError(series_id)
        return series

    def get_series_by_identity(
        self,
        name: str,
        publisher: str | None = None,
        *,
        include_deleted: bool = False,
    ) -> Series | None:
        """Look up a series by its (name, publisher) identity, case-insensitively.

        Args:
            name: Series name
            publisher: Publisher, or None for "no publisher"
            include_deleted: Also consider soft-deleted rows (active preferred,
                then the most recently deleted tombstone)

        Returns:
            Series if found, None otherwise
        """
        conn = self._get_conn()
        sql = f"SELECT {_SERIES_COLUMNS} FROM series WHERE name_key = ? AND publisher_key = ?"
        if not include_deleted:
            sql += " AND deleted_at IS NULL"
        sql += " ORDER BY deleted_at IS NOT NULL, deleted_at DESC LIMIT 1"
        cursor = conn.execute(sql, (identity_key(name), identity_key(publisher)))
        found = self._series_from_rows(cursor.fetchall())
        return found[0] if found else None

    def find_series_by_name_and_year(self, name: str, year: int) -> Series | None:
        """Find a series by name (case-insensitive) and start year, any publisher.

        Active series win; otherwise the most recently deleted tombstone is
        returned so the caller can restore it.
        """
        conn = self._get_conn()
        cursor = conn.execute(
            f"""
            SELECT {_SERIES_COLUMNS} FROM series
            WHERE name_key = ? AND start_year = ?
            ORDER BY deleted_at IS NOT NULL, deleted_at DESC, created_at, id LIMIT 1
            """,
            (identity_key(name), year),
        )
        found = self._series_from_rows(cursor.fetchall())
        return found[0] if found else None

    def find_series_by_external_id(self, kind: str, value: str) -> list[Series]:
        """Active series carrying the given external identifier."""
        conn = self._get_conn()
        cursor = conn.execute(
            f"""
            SELECT {_SERIES_COLUMNS} FROM series
            WHERE deleted_at IS NULL AND id IN (
                SELECT series_id FROM series_external_ids WHERE kind = ? AND value = ?
            )
            ORDER BY name_key, id
            """,
            (kind, value),
        )
        return self._series_from_rows(cursor.fetchall())

    def list_series(self, *, include_deleted: bool = False) -> list[Series]:
        """List series ordered by name.

        Args:
            include_deleted: Include soft-deleted series

        Returns:
            List of Series
        """
        conn = self._get_conn()
        where = "" if include_deleted else "WHERE deleted_at IS NULL"
        cursor = conn.execute(f"SELECT {_SERIES_COLUMNS} FROM series {where} ORDER BY name_key, id")
        return self._series_from_rows(cursor.fetchall())

    # === Series creation ===

    def create_series(self, draft: SeriesDraft) -> CreateOutcome:
        """Create a series, or report which existing row holds its identity.

        Resolution inside one write transaction:
        1. An active series with the same identity exists -> ConflictRetryWith
        2. A soft-deleted series with the same identity exists -> restore it,
           fill its empty fields from the draft -> Created(restored=True)
        3. Otherwise insert -> Created

        A uniqueness violation on the identity index (a writer that slipped in
        despite the lock) is also reported as ConflictRetryWith. Any other
        storage error propagates.

        Args:
            draft: Series to create

        Returns:
            Created or ConflictRetryWith
        """
        name = draft.name.strip()
        if not name:
            raise ValidationError("Series name must not be empty")

        with self.transaction() as conn:
            existing = self.get_series_by_identity(name, draft.publisher)
            if existing is not None:
                logger.debug("Identity already taken: %r / %r -> %s", name, draft.publisher, existing.id)
                return ConflictRetryWith(existing.id)

            tombstone = self.get_series_by_identity(name, draft.publisher, include_deleted=True)
            if tombstone is not None:
                restored = self.restore_series(tombstone.id)
                self.fill_empty_fields(restored.id, draft.field_values())
                for ext in draft.external_ids:
                    if restored.external_id(ext.kind) is None:
                        self.set_external_id(restored.id, ext.kind, ext.value)
                logger.info("Restored soft-deleted series %r (%s)", name, restored.id)
                return Created(self.require_series(restored.id), restored=True)

            series_id = uuid.uuid4().hex
            now = utc_now().isoformat()
            try:
                conn.execute(
                    """
                    INSERT INTO series (
                        id, name, name_key, publisher, publisher_key, start_year, end_year,
                        aliases, primary_folder, summary, deck, issue_count, volume,
                        genres, tags, cover_url, age_rating, language, created_at, updated_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        series_id,
                        name,
                        identity_key(name),
                        draft.publisher,
                        identity_key(draft.publisher),
                        draft.start_year,
                        draft.end_year,
                        json.dumps(dedupe_names(draft.aliases, exclude=[name])),
                        draft.primary_folder,
                        draft.summary,
                        draft.deck,
                        draft.issue_count,
                        draft.volume,
                        json.dumps(list(draft.genres)),
                        json.dumps(list(draft.tags)),
                        draft.cover_url,
                        draft.age_rating,
                        draft.language,
                        now,
                        now,
                    ),
                )
            except sqlite3.IntegrityError as e:
                if not _is_identity_violation(e):
                    raise
                winner = self.get_series_by_identity(name, draft.publisher)
                if winner is None:
                    raise
                logger.info("Lost creation race for %r; using %s", name, winner.id)
                return ConflictRetryWith(winner.id)

            for ext in draft.external_ids:
                self.set_external_id(series_id, ext.kind, ext.value)

        logger.info("Created series %r (%s)", name, series_id)
        return Created(self.require_series(series_id))

    # === Series mutation ===

    def update_series_fields(
        self,
        series_id: str,
        fields: dict[str, Any],
        *,
        respect_locks: bool = False,
    ) -> Series:
        """Write series fields.

        Args:
            series_id: Series to update
            fields: Mapping of field name -> new value
            respect_locks: Silently skip locked fields instead of writing them

        Returns:
            Updated Series

        Raises:
            SeriesNotFoundError: Unknown series
            ValidationError: Unknown field name
            IdentityConflictError: New name/publisher collides with another active series
        """
        unknown = set(fields) - _UPDATABLE_FIELDS
        if unknown:
            raise ValidationError(f"Unknown series fields: {', '.join(sorted(unknown))}")

        with self.transaction() as conn:
            series = self.require_series(series_id)
            if respect_locks:
                fields = {k: v for k, v in fields.items() if k not in series.locked_fields}
            if not fields:
                return series

            assignments: list[str] = []
            params: list[Any] = []
            for key, value in fields.items():
                if key == "name":
                    if not value or not str(value).strip():
                        raise ValidationError("Series name must not be empty")
                    value = str(value).strip()
                if key == "aliases":
                    value = dedupe_names(value, exclude=[fields.get("name", series.name)])
                assignments.append(f"{key} = ?")
                params.append(json.dumps(list(value)) if key in _JSON_FIELDS else value)
                if key == "name":
                    assignments.append("name_key = ?")
                    params.append(identity_key(value))
                elif key == "publisher":
                    assignments.append("publisher_key = ?")
                    params.append(identity_key(value))
            assignments.append("updated_at = ?")
            params.append(utc_now().isoformat())
            params.append(series_id)

            try:
                conn.execute(f"UPDATE series SET {', '.join(assignments)} WHERE id = ?", params)
            except sqlite3.IntegrityError as e:
                if not _is_identity_violation(e):
                    raise
                name = fields.get("name", series.name)
                publisher = fields.get("publisher", series.publisher)
                existing = self.get_series_by_identity(name, publisher)
                raise IdentityConflictError(
                    f"Series {name!r} ({publisher or 'no publisher'}) already exists",
                    name=name,
                    publisher=publisher,
                    existing_id=existing.id if existing else None,
                ) from e

        logger.debug("Updated series %s fields: %s", series_id, ", ".join(fields))
        return self.require_series(series_id)

    def fill_empty_fields(self, series_id: str, values: dict[str, Any]) -> list[str]:
        """Fill only empty, unlocked fields of a series.

        A field counts as empty when it is None or an empty list/string.
        Already-populated or locked fields are never overwritten.

        Returns:
            Names of the fields that were written
        """
        with self.transaction():
            series = self.require_series(series_id)
            updates: dict[str, Any] = {}
            for key, value in values.items():
                if key not in _UPDATABLE_FIELDS or key in ("name", "publisher"):
                    continue
                if value is None or value == [] or value == "":
                    continue
                if series.is_locked(key):
                    continue
                current = getattr(series, key)
                if current is None or current == [] or current == "":
                    updates[key] = value
            if updates:
                self.update_series_fields(series_id, updates)
        return list(updates)

    def lock_field(self, series_id: str, field_name: str) -> Series:
        """Exempt a field from automatic overwrite."""
        return self._set_lock(series_id, field_name, locked=True)

    def unlock_field(self, series_id: str, field_name: str) -> Series:
        """Allow automatic updates of a previously locked field."""
        return self._set_lock(series_id, field_name, locked=False)

    def _set_lock(self, series_id: str, field_name: str, *, locked: bool) -> Series:
        if field_name not in LOCKABLE_FIELDS:
            raise ValidationError(f"Field {field_name!r} cannot be locked")
        with self.transaction() as conn:
            series = self.require_series(series_id)
            fields = set(series.locked_fields)
            if locked:
                fields.add(field_name)
            else:
                fields.discard(field_name)
            conn.execute(
                "UPDATE series SET locked_fields = ?, updated_at = ? WHERE id = ?",
                (json.dumps(sorted(fields)), utc_now().isoformat(), series_id),
            )
        return self.require_series(series_id)

    def add_aliases(self, series_id: str, names: Iterable[str]) -> list[str]:
        """Append aliases, skipping the series' own name and case-insensitive duplicates.

        Returns:
            The aliases actually added
        """
        with self.transaction():
            series = self.require_series(series_id)
            added = dedupe_names(names, exclude=series.all_names)
            if added:
                self.update_series_fields(series_id, {"aliases": [*series.aliases, *added]})
        return added

    def set_external_id(self, series_id: str, kind: str, value: str) -> None:
        """Set (or replace) the external identifier of one kind."""
        conn = self._get_conn()
        conn.execute(
            "INSERT OR REPLACE INTO series_external_ids (series_id, kind, value) VALUES (?, ?, ?)",
            (series_id, kind, value),
        )

    # === Lifecycle ===

    def restore_series(self, series_id: str) -> Series:
        """Reactivate a soft-deleted series and its collection memberships.

        Raises:
            SeriesNotFoundError: Unknown series
            IdentityConflictError: Another active series now holds the identity
        """
        with self.transaction() as conn:
            series = self.require_series(series_id)
            if series.is_active:
                return series
            try:
                conn.execute(
                    "UPDATE series SET deleted_at = NULL, updated_at = ? WHERE id = ?",
                    (utc_now().isoformat(), series_id),
                )
            except sqlite3.IntegrityError as e:
                if not _is_identity_violation(e):
                    raise
                existing = self.get_series_by_identity(series.name, series.publisher)
                raise IdentityConflictError(
                    f"Cannot restore {series.name!r}: identity held by another series",
                    name=series.name,
                    publisher=series.publisher,
                    existing_id=existing.id if existing else None,
                ) from e
            conn.execute(
                "UPDATE collection_items SET is_available = 1 WHERE series_id = ?",
                (series_id,),
            )
        logger.info("Restored series %r (%s)", series.name, series_id)
        return self.require_series(series_id)

    def soft_delete_series(self, series_id: str) -> Series:
        """Tombstone a series and hide its collection memberships."""
        with self.transaction() as conn:
            series = self.require_series(series_id)
            if not series.is_active:
                return series
            now = utc_now().isoformat()
            conn.execute(
                "UPDATE series SET deleted_at = ?, updated_at = ? WHERE id = ?",
                (now, now, series_id),
            )
            conn.execute(
                "UPDATE collection_items SET is_available = 0 WHERE series_id = ?",
                (series_id,),
            )
        logger.info("Soft-deleted series %r (%s)", series.name, series_id)
        return self.require_series(series_id)

    def soft_delete_if_empty(self, series_id: str) -> bool:
        """Soft-delete an active series that no longer owns any files.

        Returns:
            True if the series was soft-deleted
        """
        with self.transaction():
            series = self.get_series(series_id)
            if series is None or not series.is_active:
                return False
            if self.count_files_for_series(series_id) > 0:
                return False
            self.soft_delete_series(series_id)
        return True

    def delete_series(self, series_id: str) -> None:
        """Permanently remove a series row (dependent rows cascade)."""
        conn = self._get_conn()
        cursor = conn.execute("DELETE FROM series WHERE id = ?", (series_id,))
        if cursor.rowcount == 0:
            raise SeriesNotFoundError(series_id)

    # === Comic files ===

    @staticmethod
    def _row_to_file(row: sqlite3.Row) -> ComicFile:
        return ComicFile(
            id=row["id"],
            path=row["path"],
            relative_path=row["relative_path"],
            series_id=row["series_id"],
            metadata=_metadata_from_json(row["metadata"]),
            sort_key=row["sort_key"],
        )

    def add_file(
        self,
        path: str,
        *,
        relative_path: str | None = None,
        metadata: FileMetadata | None = None,
        series_id: str | None = None,
        sort_key: float | None = None,
        file_id: str | None = None,
    ) -> ComicFile:
        """Register a comic file (normally done by the scanner).

        Returns:
            The stored ComicFile
        """
        conn = self._get_conn()
        comic = ComicFile(
            id=file_id or uuid.uuid4().hex,
            path=path,
            relative_path=relative_path or path,
            series_id=series_id,
            metadata=metadata or FileMetadata(),
            sort_key=sort_key,
        )
        conn.execute(
            """
            INSERT INTO comic_files (id, path, relative_path, series_id, metadata, sort_key, added_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                comic.id,
                comic.path,
                comic.relative_path,
                comic.series_id,
                _metadata_to_json(comic.metadata),
                comic.sort_key,
                utc_now().isoformat(),
            ),
        )
        return comic

    def get_file(self, file_id: str) -> ComicFile | None:
        conn = self._get_conn()
        row = conn.execute("SELECT * FROM comic_files WHERE id = ?", (file_id,)).fetchone()
        return self._row_to_file(row) if row else None

    def require_file(self, file_id: str) -> ComicFile:
        """Get a file by ID or raise ComicFileNotFoundError."""
        comic = self.get_file(file_id)
        if comic is None:
            raise ComicFileNotFoundError(file_id)
        return comic

    def list_unlinked_files(self) -> list[ComicFile]:
        """Files not yet linked to any series, in path order."""
        conn = self._get_conn()
        cursor = conn.execute("SELECT * FROM comic_files WHERE series_id IS NULL ORDER BY path")
        return [self._row_to_file(row) for row in cursor]

    def list_files_for_series(self, series_id: str) -> list[ComicFile]:
        """Files of a series in reading order (sort key, then relative path)."""
        conn = self._get_conn()
        cursor = conn.execute(
            """
            SELECT * FROM comic_files WHERE series_id = ?
            ORDER BY sort_key IS NULL, sort_key, relative_path
            """,
            (series_id,),
        )
        return [self._row_to_file(row) for row in cursor]

    def count_files_for_series(self, series_id: str) -> int:
        conn = self._get_conn()
        return conn.execute(
            "SELECT COUNT(*) FROM comic_files WHERE series_id = ?", (series_id,)
        ).fetchone()[0]

    def count_files_by_series(self) -> dict[str, int]:
        """Owned-file counts for every series that owns at least one file."""
        conn = self._get_conn()
        cursor = conn.execute(
            "SELECT series_id, COUNT(*) AS n FROM comic_files "
            "WHERE series_id IS NOT NULL GROUP BY series_id"
        )
        return {row["series_id"]: row["n"] for row in cursor}

    def set_file_series(self, file_id: str, series_id: str | None) -> None:
        """Point a file at a series (or unlink it with None)."""
        conn = self._get_conn()
        cursor = conn.execute(
            "UPDATE comic_files SET series_id = ? WHERE id = ?", (series_id, file_id)
        )
        if cursor.rowcount == 0:
            raise ComicFileNotFoundError(file_id)

    def move_files(self, from_series_id: str, to_series_id: str) -> int:
        """Reassign every file of one series to another.

        Returns:
            Number of files moved
        """
        conn = self._get_conn()
        cursor = conn.execute(
            "UPDATE comic_files SET series_id = ? WHERE series_id = ?",
            (to_series_id, from_series_id),
        )
        return cursor.rowcount

    def delete_file(self, file_id: str) -> str | None:
        """Remove a file record.

        Returns:
            The series the file was linked to, if any
        """
        comic = self.require_file(file_id)
        self._get_conn().execute("DELETE FROM comic_files WHERE id = ?", (file_id,))
        return comic.series_id

    # === Collections ===

    def create_collection(self, user_id: str, name: str) -> str:
        collection_id = uuid.uuid4().hex
        self._get_conn().execute(
            "INSERT INTO collections (id, user_id, name) VALUES (?, ?, ?)",
            (collection_id, user_id, name),
        )
        return collection_id

    def add_to_collection(self, collection_id: str, series_id: str, *, position: int = 0) -> None:
        self._get_conn().execute(
            """
            INSERT OR IGNORE INTO collection_items (collection_id, series_id, position)
            VALUES (?, ?, ?)
            """,
            (collection_id, series_id, position),
        )

    def list_collection_items(self, series_id: str) -> list[CollectionItem]:
        conn = self._get_conn()
        cursor = conn.execute(
            """
            SELECT collection_id, series_id, is_available, position
            FROM collection_items WHERE series_id = ? ORDER BY collection_id
            """,
            (series_id,),
        )
        return [
            CollectionItem(
                collection_id=row["collection_id"],
                series_id=row["series_id"],
                is_available=bool(row["is_available"]),
                position=row["position"],
            )
            for row in cursor
        ]

    def reassign_collection_item(self, collection_id: str, from_series_id: str, to_series_id: str) -> None:
        self._get_conn().execute(
            "UPDATE collection_items SET series_id = ? WHERE collection_id = ? AND series_id = ?",
            (to_series_id, collection_id, from_series_id),
        )

    def delete_collection_item(self, collection_id: str, series_id: str) -> None:
        self._get_conn().execute(
            "DELETE FROM collection_items WHERE collection_id = ? AND series_id = ?",
            (collection_id, series_id),
        )

    # === Reading progress ===

    def set_reading_progress(self, progress: ReadingProgress) -> None:
        """Insert or replace per-file reading progress."""
        self._get_conn().execute(
            """
            INSERT OR REPLACE INTO reading_progress
                (user_id, file_id, current_page, total_pages, completed, last_read_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                progress.user_id,
                progress.file_id,
                progress.current_page,
                progress.total_pages,
                int(progress.completed),
                _iso(progress.last_read_at),
            ),
        )

    def reading_progress_for_series(self, series_id: str, user_id: str) -> dict[str, ReadingProgress]:
        """Per-file progress of one user across a series' files, keyed by file ID."""
        conn = self._get_conn()
        cursor = conn.execute(
            """
            SELECT rp.* FROM reading_progress rp
            JOIN comic_files f ON f.id = rp.file_id
            WHERE f.series_id = ? AND rp.user_id = ?
            """,
            (series_id, user_id),
        )
        return {
            row["file_id"]: ReadingProgress(
                user_id=row["user_id"],
                file_id=row["file_id"],
                current_page=row["current_page"],
                total_pages=row["total_pages"],
                completed=bool(row["completed"]),
                last_read_at=_parse_dt(row["last_read_at"]),
            )
            for row in cursor
        }

    def progress_user_ids(self, series_id: str) -> list[str]:
        """Users with aggregate progress on a series or per-file progress on its files."""
        conn = self._get_conn()
        cursor = conn.execute(
            """
            SELECT user_id FROM series_progress WHERE series_id = ?
            UNION
            SELECT rp.user_id FROM reading_progress rp
            JOIN comic_files f ON f.id = rp.file_id WHERE f.series_id = ?
            ORDER BY user_id
            """,
            (series_id, series_id),
        )
        return [row["user_id"] for row in cursor]

    @staticmethod
    def _row_to_series_progress(row: sqlite3.Row) -> SeriesProgress:
        return SeriesProgress(
            user_id=row["user_id"],
            series_id=row["series_id"],
            total_owned=row["total_owned"],
            total_read=row["total_read"],
            total_in_progress=row["total_in_progress"],
            last_read_file_id=row["last_read_file_id"],
            last_read_at=_parse_dt(row["last_read_at"]),
            next_unread_file_id=row["next_unread_file_id"],
        )

    def get_series_progress(self, user_id: str, series_id: str) -> SeriesProgress | None:
        conn = self._get_conn()
        row = conn.execute(
            "SELECT * FROM series_progress WHERE user_id = ? AND series_id = ?",
            (user_id, series_id),
        ).fetchone()
        return self._row_to_series_progress(row) if row else None

    def list_series_progress(self, series_id: str) -> list[SeriesProgress]:
        conn = self._get_conn()
        cursor = conn.execute(
            "SELECT * FROM series_progress WHERE series_id = ? ORDER BY user_id", (series_id,)
        )
        return [self._row_to_series_progress(row) for row in cursor]

    def upsert_series_progress(self, progress: SeriesProgress) -> None:
        self._get_conn().execute(
            """
            INSERT OR REPLACE INTO series_progress (
                user_id, series_id, total_owned, total_read, total_in_progress,
                last_read_file_id, last_read_at, next_unread_file_id
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                progress.user_id,
                progress.series_id,
                progress.total_owned,
                progress.total_read,
                progress.total_in_progress,
                progress.last_read_file_id,
                _iso(progress.last_read_at),
                progress.next_unread_file_id,
            ),
        )

    def reassign_series_progress(self, user_id: str, from_series_id: str, to_series_id: str) -> None:
        self._get_conn().execute(
            "UPDATE series_progress SET series_id = ? WHERE user_id = ? AND series_id = ?",
            (to_series_id, user_id, from_series_id),
        )

    def delete_series_progress(self, user_id: str, series_id: str) -> None:
        self._get_conn().execute(
            "DELETE FROM series_progress WHERE user_id = ? AND series_id = ?",
            (user_id, series_id),
        )

    # === Reader settings ===

    def get_reader_settings(self, series_id: str) -> dict[str, Any] | None:
        conn = self._get_conn()
        row = conn.execute(
            "SELECT settings FROM reader_settings WHERE series_id = ?", (series_id,)
        ).fetchone()
        return json.loads(row["settings"]) if row else None

    def set_reader_settings(self, series_id: str, settings: dict[str, Any]) -> None:
        self._get_conn().execute(
            "INSERT OR REPLACE INTO reader_settings (series_id, settings) VALUES (?, ?)",
            (series_id, json.dumps(settings)),
        )

    # === Reporting ===

    def get_stats(self) -> CatalogStats:
        """Get catalog statistics."""
        conn = self._get_conn()

        active = conn.execute("SELECT COUNT(*) FROM series WHERE deleted_at IS NULL").fetchone()[0]
        deleted = conn.execute(
            "SELECT COUNT(*) FROM series WHERE deleted_at IS NOT NULL"
        ).fetchone()[0]
        total_files = conn.execute("SELECT COUNT(*) FROM comic_files").fetchone()[0]
        linked = conn.execute(
            "SELECT COUNT(*) FROM comic_files WHERE series_id IS NOT NULL"
        ).fetchone()[0]
        schema_row = conn.execute(
            "SELECT value FROM catalog_meta WHERE key = 'schema_version'"
        ).fetchone()

        return CatalogStats(
            active_series=active,
            soft_deleted_series=deleted,
            total_files=total_files,
            linked_files=linked,
            unlinked_files=total_files - linked,
            schema_version=int(schema_row[0]) if schema_row else 0,
        )
