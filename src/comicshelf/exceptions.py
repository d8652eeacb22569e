"""
comicshelf exception hierarchy.

Provides typed exceptions for series resolution, duplicate detection and merging.

Exception Hierarchy:
    ComicshelfError (base)
    ├── ConfigurationError - Settings/environment issues
    ├── NotFoundError - Referenced entity does not exist
    │   ├── SeriesNotFoundError - Unknown series ID
    │   └── ComicFileNotFoundError - Unknown comic file ID
    ├── IdentityConflictError - Series identity (name + publisher) already taken
    └── ValidationError - Invalid request
        └── MergeValidationError - Merge preview/execute rejected

Storage failures (sqlite3.Error) are deliberately not wrapped: they propagate
to the caller unchanged.
"""

from __future__ import annotations

from typing import Any


class ComicshelfError(Exception):
    """Base exception for all comicshelf errors."""

    def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
        """
        Initialize comicshelf exception.

        Args:
            message: Human-readable error message
            details: Optional structured error details for logging/debugging
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        return self.message


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigurationError(ComicshelfError):
    """Settings or environment error."""

    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        details = details or {}
        if field:
            details["field"] = field
        super().__init__(message, details=details)
        self.field = field


# =============================================================================
# Lookup Errors
# =============================================================================


class NotFoundError(ComicshelfError):
    """Referenced entity does not exist."""

    def __init__(
        self,
        message: str,
        *,
        entity: str | None = None,
        entity_id: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        details = details or {}
        if entity:
            details["entity"] = entity
        if entity_id:
            details["entity_id"] = entity_id
        super().__init__(message, details=details)
        self.entity = entity
        self.entity_id = entity_id


class SeriesNotFoundError(NotFoundError):
    """Unknown series ID."""

    def __init__(self, series_id: str, **kwargs: Any) -> None:
        kwargs.setdefault("entity", "series")
        super().__init__(f"Series {series_id} not found", entity_id=series_id, **kwargs)
        self.series_id = series_id


class ComicFileNotFoundError(NotFoundError):
    """Unknown comic file ID."""

    def __init__(self, file_id: str, **kwargs: Any) -> None:
        kwargs.setdefault("entity", "comic_file")
        super().__init__(f"File {file_id} not found", entity_id=file_id, **kwargs)
        self.file_id = file_id


# =============================================================================
# Identity Errors
# =============================================================================


class IdentityConflictError(ComicshelfError):
    """An active series already holds this (name, publisher) identity."""

    def __init__(
        self,
        message: str,
        *,
        name: str | None = None,
        publisher: str | None = None,
        existing_id: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        details = details or {}
        if name:
            details["name"] = name
        if publisher:
            details["publisher"] = publisher
        if existing_id:
            details["existing_id"] = existing_id
        super().__init__(message, details=details)
        self.name = name
        self.publisher = publisher
        self.existing_id = existing_id


# =============================================================================
# Validation Errors
# =============================================================================


class ValidationError(ComicshelfError):
    """Request validation failure."""

    def __init__(
        self,
        message: str,
        *,
        errors: list[str] | None = None,
        warnings: list[str] | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        details = details or {}
        if errors:
            details["errors"] = errors
        if warnings:
            details["warnings"] = warnings
        super().__init__(message, details=details)
        self.errors = errors or []
        self.warnings = warnings or []


class MergeValidationError(ValidationError):
    """Merge preview or execution rejected before any change was made."""

    def __init__(
        self,
        message: str,
        *,
        target_id: str | None = None,
        **kwargs: Any,
    ) -> None:
        details = kwargs.get("details") or {}
        if target_id:
            details["target_id"] = target_id
        kwargs["details"] = details
        super().__init__(message, **kwargs)
        self.target_id = target_id
