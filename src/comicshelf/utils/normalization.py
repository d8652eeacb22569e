"""
Series name normalization utilities.

Two flavours of normalization are used throughout comicshelf:

- normalize_series_name(): aggressive comparison form used by the similarity
  scorers and duplicate detection ("The Amazing Spider-Man (2018)" and
  "Amazing Spider-Man" both become "amazing spiderman").
- identity_key(): conservative case-folded form used for the stored series
  identity (name + publisher). "The Batman" and "Batman" stay distinct.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass

_LEADING_THE = re.compile(r"^the\s+")
_TRAILING_PARENTHETICAL = re.compile(r"\s*\([^)]+\)\s*$")
_TRAILING_VOLUME = re.compile(r"\s*vol(?:ume)?\.?\s*\d+\s*$")
_WHITESPACE = re.compile(r"\s+")
# \w is Unicode-aware, so accented letters survive; underscore is not alphanumeric.
_NON_ALNUM = re.compile(r"[^\w\s]|_")

_PUBLISHER_SUFFIXES = (
    re.compile(r"\s*comics?\s*$"),
    re.compile(r"\s*publishing\s*$"),
    re.compile(r"\s*entertainment\s*$"),
    re.compile(r"\s*inc\.?\s*$"),
    re.compile(r"\s*llc\.?\s*$"),
)


def normalize_series_name(name: str | None) -> str:
    """
    Normalize a series name for comparison.

    Steps, in order:
    1. Lowercase and trim
    2. Strip a leading "the "
    3. Strip a trailing parenthetical, e.g. "(2018)" or "(Vol. 2)"
    4. Strip a trailing "volume N" / "vol. N" / "vol N"
    5. Collapse internal whitespace
    6. Drop characters that are neither alphanumeric nor whitespace

    Whitespace is collapsed once more after step 6 so that "Batman - Year One"
    and "Batman: Year One" compare equal.

    Args:
        name: Raw series name (None and "" normalize to "")

    Returns:
        Normalized comparison string
    """
    if not name:
        return ""

    result = name.lower().strip()
    result = _LEADING_THE.sub("", result)
    result = _TRAILING_PARENTHETICAL.sub("", result)
    result = _TRAILING_VOLUME.sub("", result)
    result = _WHITESPACE.sub(" ", result)
    result = _NON_ALNUM.sub("", result)
    return _WHITESPACE.sub(" ", result).strip()


def identity_key(value: str | None) -> str:
    """
    Case-insensitive key for the stored series identity.

    Used for both the name and the publisher half of the identity pair. A
    missing or blank publisher maps to "" so that "no publisher" is a single
    identity slot.

    >>> identity_key("  DC   Comics ")
    'dc comics'
    >>> identity_key(None)
    ''
    """
    if not value:
        return ""
    return _WHITESPACE.sub(" ", value.casefold()).strip()


def normalize_publisher(publisher: str | None) -> str | None:
    """
    Normalize a publisher name for scan-cache matching.

    Drops common corporate suffixes so "Marvel Comics" and "Marvel" agree.

    Returns:
        Normalized publisher, or None for missing/blank input
    """
    if not publisher or not publisher.strip():
        return None

    result = publisher.lower().strip()
    for pattern in _PUBLISHER_SUFFIXES:
        result = pattern.sub("", result)
    result = _NON_ALNUM.sub("", result)
    result = _WHITESPACE.sub(" ", result).strip()
    return result or None


def publishers_equal(a: str | None, b: str | None) -> bool:
    """Case-insensitive publisher equality; two missing publishers are equal."""
    return identity_key(a) == identity_key(b)


# =============================================================================
# Alias Lists
# =============================================================================


def dedupe_names(names: Iterable[str], *, exclude: Iterable[str] = ()) -> list[str]:
    """
    Drop blanks and case-insensitive duplicates, keeping first-seen order.

    Args:
        names: Candidate names
        exclude: Names that must not appear in the result (e.g. the series' own name)

    Returns:
        Ordered list of distinct names
    """
    seen = {identity_key(n) for n in exclude if n}
    result: list[str] = []
    for raw in names:
        if not raw:
            continue
        name = raw.strip()
        key = identity_key(name)
        if not key or key in seen:
            continue
        seen.add(key)
        result.append(name)
    return result


def parse_aliases(value: str | None) -> list[str]:
    """Parse a comma-separated alias string into an ordered distinct list."""
    if not value:
        return []
    return dedupe_names(value.split(","))


def format_aliases(aliases: Iterable[str]) -> str:
    """Render an alias list as the comma-separated form used in series.json."""
    return ", ".join(dedupe_names(aliases))


# =============================================================================
# Folder / File Names
# =============================================================================

_FOLDER_YEARS = re.compile(r"^(.+?)\s*\((\d{4})(?:-(\d{4}))?\)$")
_BY_AUTHOR = re.compile(r"^(.+?)\s+by\s+(.+)$", re.IGNORECASE)
_FILENAME_SERIES = re.compile(r"^(.+?)\s*(?:#?\d+|issue|vol)", re.IGNORECASE)
_EXTENSION = re.compile(r"\.[^.]+$")


@dataclass
class FolderNameInfo:
    """Series hints parsed from a folder name like "Saga by Vaughan (2012-2018)"."""

    series_name: str
    start_year: int | None = None
    end_year: int | None = None
    author_run: str | None = None


def parse_series_folder_name(folder_name: str) -> FolderNameInfo:
    """Split a series folder name into name, year range and "by Author" run."""
    name = folder_name.strip()
    start_year = end_year = None

    years = _FOLDER_YEARS.match(name)
    if years:
        name = years.group(1).strip()
        start_year = int(years.group(2))
        end_year = int(years.group(3)) if years.group(3) else None

    author_run = None
    by_author = _BY_AUTHOR.match(name)
    if by_author:
        name = by_author.group(1).strip()
        author_run = by_author.group(2).strip()

    return FolderNameInfo(series_name=name, start_year=start_year, end_year=end_year, author_run=author_run)


def series_name_from_filename(filename: str) -> str:
    """Best-effort series name from an archive filename ("Batman 001.cbz" -> "Batman")."""
    stem = _EXTENSION.sub("", filename)
    match = _FILENAME_SERIES.match(stem)
    return match.group(1).strip() if match else stem.strip()
