"""Pydantic schemas for folder-level series.json files.

A series.json in a library folder is the authoritative definition of the
series stored there. Two shapes exist:

- v2 (multi-series): ``{"schemaVersion": 2, "series": [{"name": ...}, ...]}``
- v1 (legacy, single series): ``{"seriesName": ..., "publisher": ..., ...}``

Uses extra="ignore" so ratings, reviews and other fields this package does
not consume are accepted without error.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError, field_validator

from comicshelf.models import ExternalId, SeriesDraft
from comicshelf.utils.normalization import dedupe_names

logger = logging.getLogger(__name__)

SERIES_JSON_FILENAME = "series.json"
SERIES_JSON_SCHEMA_VERSION = 2

# camelCase external-ID keys -> catalog external ID kinds
EXTERNAL_ID_KINDS = {
    "comic_vine_series_id": "comicvine",
    "metron_series_id": "metron",
    "anilist_id": "anilist",
    "mal_id": "mal",
    "gcd_id": "gcd",
}


class SeriesDefinition(BaseModel):
    """One series definition from a series.json file."""

    name: str
    aliases: list[str] = Field(default_factory=list)
    publisher: str | None = None
    start_year: int | None = Field(default=None, alias="startYear")
    end_year: int | None = Field(default=None, alias="endYear")
    issue_count: int | None = Field(default=None, alias="issueCount")
    deck: str | None = None
    summary: str | None = None
    cover_url: str | None = Field(default=None, alias="coverUrl")
    genres: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    volume: int | None = None
    age_rating: str | None = Field(default=None, alias="ageRating")
    language: str | None = Field(default=None, alias="languageISO")
    comic_vine_series_id: str | None = Field(default=None, alias="comicVineSeriesId")
    metron_series_id: str | None = Field(default=None, alias="metronSeriesId")
    anilist_id: str | None = Field(default=None, alias="anilistId")
    mal_id: str | None = Field(default=None, alias="malId")
    gcd_id: str | None = Field(default=None, alias="gcdId")

    model_config = {"extra": "ignore", "populate_by_name": True}

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("series name must not be empty")
        return v

    @field_validator(
        "comic_vine_series_id",
        "metron_series_id",
        "anilist_id",
        "mal_id",
        "gcd_id",
        mode="before",
    )
    @classmethod
    def coerce_id(cls, v: Any) -> str | None:
        """IDs appear as numbers in hand-written files."""
        if v is None or v == "":
            return None
        return str(v)

    @field_validator("aliases", mode="before")
    @classmethod
    def split_alias_string(cls, v: Any) -> Any:
        """Accept "A, B" as well as ["A", "B"]."""
        if isinstance(v, str):
            return [part.strip() for part in v.split(",") if part.strip()]
        return v

    def external_ids(self) -> list[ExternalId]:
        return [
            ExternalId(kind=kind, value=value)
            for attr, kind in EXTERNAL_ID_KINDS.items()
            if (value := getattr(self, attr))
        ]

    def to_draft(self, *, folder_path: str | None = None) -> SeriesDraft:
        """Build a SeriesDraft for creating the series in the catalog."""
        return SeriesDraft(
            name=self.name,
            publisher=self.publisher,
            start_year=self.start_year,
            end_year=self.end_year,
            aliases=dedupe_names(self.aliases, exclude=[self.name]),
            external_ids=self.external_ids(),
            primary_folder=folder_path,
            summary=self.summary,
            deck=self.deck,
            issue_count=self.issue_count,
            volume=self.volume,
            genres=list(self.genres),
            tags=list(self.tags),
            cover_url=self.cover_url,
            age_rating=self.age_rating,
            language=self.language,
        )


class SeriesJsonV1(SeriesDefinition):
    """Legacy single-series series.json (``seriesName`` instead of ``name``)."""

    name: str = Field(alias="seriesName")


class SeriesJsonV2(BaseModel):
    """Multi-series series.json."""

    schema_version: int = Field(default=SERIES_JSON_SCHEMA_VERSION, alias="schemaVersion")
    series: list[SeriesDefinition] = Field(default_factory=list)

    model_config = {"extra": "ignore", "populate_by_name": True}


def parse_series_json(data: dict[str, Any]) -> list[SeriesDefinition]:
    """Parse series.json content into its series definitions.

    Args:
        data: Decoded JSON object

    Returns:
        Definitions in file order (empty when the file defines no series)

    Raises:
        pydantic.ValidationError: Malformed definition
    """
    if isinstance(data.get("series"), list):
        return SeriesJsonV2.model_validate(data).series
    if data.get("seriesName"):
        v1 = SeriesJsonV1.model_validate(data)
        return [SeriesDefinition.model_validate(v1.model_dump())]
    return []


def load_series_json(path: Path) -> list[SeriesDefinition]:
    """Load and parse a series.json file.

    Args:
        path: series.json path, or the folder containing it

    Returns:
        Definitions; empty list if the file is missing, unreadable or invalid
    """
    if path.is_dir():
        path = path / SERIES_JSON_FILENAME
    if not path.exists():
        return []
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        logger.warning("Could not read %s: %s", path, e)
        return []
    if not isinstance(data, dict):
        logger.warning("Ignoring %s: top-level value is not an object", path)
        return []
    try:
        return parse_series_json(data)
    except ValidationError as e:
        logger.warning(
            "Ignoring invalid %s: %d error(s), first: %s",
            path,
            e.error_count(),
            e.errors()[0]["msg"],
        )
        return []
