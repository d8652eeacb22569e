"""Utility modules for comicshelf."""

from comicshelf.utils.fuzzy import best_name_similarity, edit_similarity, quick_similarity
from comicshelf.utils.normalization import (
    FolderNameInfo,
    dedupe_names,
    format_aliases,
    identity_key,
    normalize_publisher,
    normalize_series_name,
    parse_aliases,
    parse_series_folder_name,
    publishers_equal,
    series_name_from_filename,
)

__all__ = [
    # Fuzzy matching
    "quick_similarity",
    "edit_similarity",
    "best_name_similarity",
    # Normalization
    "normalize_series_name",
    "normalize_publisher",
    "identity_key",
    "publishers_equal",
    "dedupe_names",
    "parse_aliases",
    "format_aliases",
    "FolderNameInfo",
    "parse_series_folder_name",
    "series_name_from_filename",
]
