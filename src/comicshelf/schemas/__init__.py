"""Pydantic schemas for validating external data sources."""

from __future__ import annotations

from comicshelf.schemas.series_json import (
    SERIES_JSON_FILENAME,
    SeriesDefinition,
    SeriesJsonV1,
    SeriesJsonV2,
    load_series_json,
    parse_series_json,
)

__all__ = [
    "SERIES_JSON_FILENAME",
    "SeriesDefinition",
    "SeriesJsonV1",
    "SeriesJsonV2",
    "parse_series_json",
    "load_series_json",
]
