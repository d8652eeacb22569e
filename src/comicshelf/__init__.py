"""comicshelf - Series identity resolution and deduplication for comic libraries."""

from comicshelf.exceptions import (
    ComicFileNotFoundError,
    ComicshelfError,
    ConfigurationError,
    IdentityConflictError,
    MergeValidationError,
    NotFoundError,
    SeriesNotFoundError,
    ValidationError,
)

__version__ = "0.1.0"

__all__ = [
    "__version__",
    # Base exception
    "ComicshelfError",
    # Configuration
    "ConfigurationError",
    # Lookup
    "NotFoundError",
    "SeriesNotFoundError",
    "ComicFileNotFoundError",
    # Identity
    "IdentityConflictError",
    # Validation
    "ValidationError",
    "MergeValidationError",
]
