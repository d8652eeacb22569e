"""Offline detection of duplicate series.

Four passes over the active catalog, each able to start a group or fold its
finding into a group that already holds one of the members:

    same_name                    normalized names equal              HIGH
    same_external_id             same (kind, value) identifier       HIGH
    similar_name                 edit_similarity in [0.8, 1.0)       MEDIUM
    same_publisher_similar_name  shared publisher, similarity
                                 in [0.6, 0.8)                       MEDIUM

A group's confidence is the tier of its strongest reason; absorbing a member
through a weaker reason never lowers it, and the absorbed member keeps its
own (weaker) reason in member_reasons.

This is a batch job: O(n^2) pairwise comparisons, no partial results.
"""

from __future__ import annotations

import hashlib
import logging
from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from comicshelf.models import Series, SeriesSummary
from comicshelf.utils.fuzzy import edit_similarity
from comicshelf.utils.normalization import identity_key, normalize_series_name

if TYPE_CHECKING:
    from comicshelf.series.catalog import SeriesCatalog

logger = logging.getLogger(__name__)

SIMILAR_NAME_THRESHOLD = 0.8
SAME_PUBLISHER_THRESHOLD = 0.6


class DuplicateConfidence(str, Enum):
    """Confidence tier of a duplicate group."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        """Sort rank; lower is stronger."""
        return _CONFIDENCE_RANK[self]


_CONFIDENCE_RANK = {
    DuplicateConfidence.HIGH: 0,
    DuplicateConfidence.MEDIUM: 1,
    DuplicateConfidence.LOW: 2,
}


class DuplicateReason(str, Enum):
    """Signal that placed series in the same group."""

    SAME_NAME = "same_name"
    SAME_EXTERNAL_ID = "same_external_id"
    SIMILAR_NAME = "similar_name"
    SAME_PUBLISHER_SIMILAR_NAME = "same_publisher_similar_name"

    @property
    def confidence(self) -> DuplicateConfidence:
        return _REASON_CONFIDENCE[self]


_REASON_CONFIDENCE = {
    DuplicateReason.SAME_NAME: DuplicateConfidence.HIGH,
    DuplicateReason.SAME_EXTERNAL_ID: DuplicateConfidence.HIGH,
    DuplicateReason.SIMILAR_NAME: DuplicateConfidence.MEDIUM,
    DuplicateReason.SAME_PUBLISHER_SIMILAR_NAME: DuplicateConfidence.MEDIUM,
}


@dataclass
class DuplicateGroup:
    """Series believed to be the same real-world series."""

    id: str
    members: list[SeriesSummary]
    confidence: DuplicateConfidence
    reasons: list[DuplicateReason]
    primary_reason: DuplicateReason
    member_reasons: dict[str, list[DuplicateReason]] = field(default_factory=dict)

    @property
    def member_ids(self) -> list[str]:
        return [m.id for m in self.members]

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "confidence": self.confidence.value,
            "reasons": [r.value for r in self.reasons],
            "primary_reason": self.primary_reason.value,
            "members": [
                {**m.to_dict(), "reasons": [r.value for r in self.member_reasons.get(m.id, [])]}
                for m in self.members
            ],
        }


@dataclass(eq=False)
class _Draft:
    """Mutable group under construction."""

    member_ids: list[str]
    confidence: DuplicateConfidence
    reasons: list[DuplicateReason]
    primary_reason: DuplicateReason
    member_reasons: dict[str, list[DuplicateReason]]

    def add(self, member_ids: Iterable[str], reason: DuplicateReason) -> None:
        for series_id in member_ids:
            if series_id not in self.member_ids:
                self.member_ids.append(series_id)
            member = self.member_reasons.setdefault(series_id, [])
            if reason not in member:
                member.append(reason)
        if reason not in self.reasons:
            self.reasons.append(reason)
        if reason.confidence.rank < self.confidence.rank:
            self.confidence = reason.confidence

    def absorb(self, other: _Draft) -> None:
        for series_id in other.member_ids:
            for reason in other.member_reasons.get(series_id, []):
                self.add([series_id], reason)


def _pair_key(a: str, b: str) -> tuple[str, str]:
    return (a, b) if a <= b else (b, a)


def _group_id(member_ids: Iterable[str]) -> str:
    digest = hashlib.sha1("|".join(sorted(member_ids)).encode("utf-8")).hexdigest()
    return f"dup-{digest[:12]}"


class DuplicateDetector:
    """Cluster active series into candidate duplicate groups."""

    def __init__(self, catalog: SeriesCatalog) -> None:
        self.catalog = catalog

    def find_duplicate_groups(self, series: Iterable[Series] | None = None) -> list[DuplicateGroup]:
        """Run all detection passes.

        Args:
            series: Series to examine (default: every active catalog series)

        Returns:
            Groups sorted strongest confidence first
        """
        candidates = [s for s in (series if series is not None else self.catalog.list_series()) if s.is_active]
        by_id = {s.id: s for s in candidates}

        drafts: list[_Draft] = []
        membership: dict[str, _Draft] = {}
        compared: set[tuple[str, str]] = set()
        similarity: dict[tuple[str, str], float] = {}

        def record(member_ids: list[str], reason: DuplicateReason) -> None:
            owners: list[_Draft] = []
            for series_id in member_ids:
                owner = membership.get(series_id)
                if owner is not None and owner not in owners:
                    owners.append(owner)

            if not owners:
                target = _Draft(
                    member_ids=[],
                    confidence=reason.confidence,
                    reasons=[],
                    primary_reason=reason,
                    member_reasons={},
                )
                drafts.append(target)
            else:
                target = owners[0]
                for other in owners[1:]:
                    target.absorb(other)
                    drafts.remove(other)
            target.add(member_ids, reason)
            for series_id in target.member_ids:
                membership[series_id] = target

        def score(a: Series, b: Series) -> float:
            key = _pair_key(a.id, b.id)
            if key not in similarity:
                similarity[key] = edit_similarity(a.name, b.name)
            return similarity[key]

        def already_grouped(a: Series, b: Series) -> bool:
            owner = membership.get(a.id)
            return owner is not None and owner is membership.get(b.id)

        # Pass 1: same normalized name
        by_name: dict[str, list[str]] = defaultdict(list)
        for s in candidates:
            normalized = normalize_series_name(s.name)
            if normalized:
                by_name[normalized].append(s.id)
        for ids in by_name.values():
            if len(ids) > 1:
                for i, a in enumerate(ids):
                    for b in ids[i + 1 :]:
                        compared.add(_pair_key(a, b))
                record(ids, DuplicateReason.SAME_NAME)

        # Pass 2: same external identifier of the same kind
        by_external: dict[tuple[str, str], list[str]] = defaultdict(list)
        for s in candidates:
            for ext in s.external_ids:
                if ext.value:
                    by_external[(ext.kind, ext.value)].append(s.id)
        for ids in by_external.values():
            if len(ids) > 1:
                record(ids, DuplicateReason.SAME_EXTERNAL_ID)

        # Pass 3: similar names
        for i, a in enumerate(candidates):
            for b in candidates[i + 1 :]:
                key = _pair_key(a.id, b.id)
                if key in compared or already_grouped(a, b):
                    continue
                sim = score(a, b)
                if SIMILAR_NAME_THRESHOLD <= sim < 1.0:
                    compared.add(key)
                    record([a.id, b.id], DuplicateReason.SIMILAR_NAME)

        # Pass 4: same publisher + moderately similar names
        by_publisher: dict[str, list[Series]] = defaultdict(list)
        for s in candidates:
            if s.publisher and identity_key(s.publisher):
                by_publisher[identity_key(s.publisher)].append(s)
        for group in by_publisher.values():
            for i, a in enumerate(group):
                for b in group[i + 1 :]:
                    key = _pair_key(a.id, b.id)
                    if key in compared or already_grouped(a, b):
                        continue
                    sim = score(a, b)
                    if SAME_PUBLISHER_THRESHOLD <= sim < SIMILAR_NAME_THRESHOLD:
                        compared.add(key)
                        record([a.id, b.id], DuplicateReason.SAME_PUBLISHER_SIMILAR_NAME)

        owned = self.catalog.count_files_by_series()
        groups = [
            DuplicateGroup(
                id=_group_id(d.member_ids),
                members=[SeriesSummary.from_series(by_id[sid], owned.get(sid, 0)) for sid in d.member_ids],
                confidence=d.confidence,
                reasons=list(d.reasons),
                primary_reason=d.primary_reason,
                member_reasons={sid: list(d.member_reasons.get(sid, [])) for sid in d.member_ids},
            )
            for d in drafts
        ]
        groups.sort(key=lambda g: g.confidence.rank)

        logger.info(
            "Duplicate scan: %d series, %d groups (%d high)",
            len(candidates),
            len(groups),
            sum(1 for g in groups if g.confidence is DuplicateConfidence.HIGH),
        )
        return groups
