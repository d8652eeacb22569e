"""Series name similarity scorers.

Two scorers exist on purpose:

- quick_similarity(): cheap prefix/suffix/shared-word heuristic used for live
  per-file matching against the whole catalog.
- edit_similarity(): normalized Levenshtein distance (RapidFuzz) used by the
  offline duplicate detector, where pairwise O(n^2) comparison is acceptable.

Both normalize their inputs with normalize_series_name(), return a score in
[0, 1], are symmetric, and score identical inputs as 1.0.
"""

from __future__ import annotations

from collections.abc import Iterable

from rapidfuzz.distance import Levenshtein

from comicshelf.utils.normalization import normalize_series_name

# Shared words this short ("of", "x", "a") carry no signal.
MIN_SHARED_WORD_LENGTH = 3


def _common_prefix_length(a: str, b: str) -> int:
    limit = min(len(a), len(b))
    i = 0
    while i < limit and a[i] == b[i]:
        i += 1
    return i


def _common_suffix_length(a: str, b: str, prefix_length: int) -> int:
    # Suffix may not overlap the prefix already counted
    limit = min(len(a), len(b)) - prefix_length
    i = 0
    while i < limit and a[-1 - i] == b[-1 - i]:
        i += 1
    return i


def quick_similarity(a: str, b: str) -> float:
    """
    Heuristic similarity between two series names (0-1).

    Accumulates the common prefix length, the non-overlapping common suffix
    length and the length of every distinct whole word (3+ characters) the two
    names share, then divides by the longer normalized length.

    Examples:
        "The Amazing Spider-Man" vs "Amazing Spider-Man" -> 1.0
        "Batman" vs "Superman" -> low

    Args:
        a: First series name (raw)
        b: Second series name (raw)

    Returns:
        Similarity score from 0.0 to 1.0
    """
    norm_a = normalize_series_name(a)
    norm_b = normalize_series_name(b)

    if norm_a == norm_b:
        return 1.0

    max_len = max(len(norm_a), len(norm_b))

    prefix = _common_prefix_length(norm_a, norm_b)
    suffix = _common_suffix_length(norm_a, norm_b, prefix)
    matches = prefix + suffix

    shared_words = set(norm_a.split()) & set(norm_b.split())
    matches += sum(len(w) for w in shared_words if len(w) >= MIN_SHARED_WORD_LENGTH)

    return min(1.0, matches / max_len)


def edit_similarity(a: str, b: str) -> float:
    """
    Levenshtein-based similarity between two series names (0-1).

    Score is ``1 - distance / max(len(a), len(b))`` over the normalized names,
    and 1.0 when both normalize to the empty string.

    Args:
        a: First series name (raw)
        b: Second series name (raw)

    Returns:
        Similarity score from 0.0 to 1.0
    """
    norm_a = normalize_series_name(a)
    norm_b = normalize_series_name(b)

    if norm_a == norm_b:
        return 1.0

    max_len = max(len(norm_a), len(norm_b))
    distance = Levenshtein.distance(norm_a, norm_b)
    return 1.0 - distance / max_len


def best_name_similarity(query: str, names: Iterable[str]) -> float:
    """
    Highest quick_similarity between a query and any of several names.

    Used to score a series against its display name plus all of its aliases.
    """
    best = 0.0
    for name in names:
        if not name:
            continue
        score = quick_similarity(query, name)
        if score > best:
            best = score
            if best >= 1.0:
                break
    return best
