"""Tests for duplicate series detection."""

from __future__ import annotations

import pytest

from comicshelf.models import Series
from comicshelf.series.catalog import SeriesCatalog
from comicshelf.series.duplicates import DuplicateConfidence, DuplicateDetector, DuplicateReason
from tests.conftest import add_issues, make_series


@pytest.fixture
def detector(catalog: SeriesCatalog) -> DuplicateDetector:
    return DuplicateDetector(catalog)


# =============================================================================
# Individual passes
# =============================================================================


class TestDetectionPasses:
    """Each signal on its own."""

    def test_same_normalized_name(self, catalog: SeriesCatalog, detector: DuplicateDetector) -> None:
        """Names equal after normalization form a high-confidence group."""
        batman = make_series(catalog, "Batman", "DC Comics")
        the_batman = make_series(catalog, "The Batman", "DC Comics")

        (group,) = detector.find_duplicate_groups()
        assert set(group.member_ids) == {batman.id, the_batman.id}
        assert group.confidence is DuplicateConfidence.HIGH
        assert group.primary_reason is DuplicateReason.SAME_NAME

    def test_case_only_difference(self, detector: DuplicateDetector) -> None:
        """Series differing only in case are the same name."""
        series = [Series(id="a", name="Batman"), Series(id="b", name="BATMAN")]

        (group,) = detector.find_duplicate_groups(series)
        assert group.member_ids == ["a", "b"]
        assert group.reasons == [DuplicateReason.SAME_NAME]

    def test_same_external_id(self, catalog: SeriesCatalog, detector: DuplicateDetector) -> None:
        """A shared identifier of the same kind groups unrelated names."""
        batman = make_series(catalog, "Batman", external_ids={"comicvine": "796"})
        knight = make_series(catalog, "Dark Knight", external_ids={"comicvine": "796"})
        make_series(catalog, "Saga", external_ids={"metron": "796"})

        (group,) = detector.find_duplicate_groups()
        assert set(group.member_ids) == {batman.id, knight.id}
        assert group.primary_reason is DuplicateReason.SAME_EXTERNAL_ID
        assert group.confidence is DuplicateConfidence.HIGH

    def test_similar_name(self, catalog: SeriesCatalog, detector: DuplicateDetector) -> None:
        """A near-identical name is a medium-confidence group."""
        make_series(catalog, "Spider-Man")
        make_series(catalog, "Spider-Men")

        (group,) = detector.find_duplicate_groups()
        assert group.confidence is DuplicateConfidence.MEDIUM
        assert group.primary_reason is DuplicateReason.SIMILAR_NAME

    def test_same_publisher_similar_name(self, catalog: SeriesCatalog, detector: DuplicateDetector) -> None:
        """Moderate similarity counts only under a shared publisher."""
        make_series(catalog, "Batman", "DC Comics")
        make_series(catalog, "Batwoman", "DC Comics")

        (group,) = detector.find_duplicate_groups()
        assert group.confidence is DuplicateConfidence.MEDIUM
        assert group.primary_reason is DuplicateReason.SAME_PUBLISHER_SIMILAR_NAME

    def test_moderate_similarity_without_publisher(
        self, catalog: SeriesCatalog, detector: DuplicateDetector
    ) -> None:
        """Different publishers keep moderately similar names apart."""
        make_series(catalog, "Batman", "DC Comics")
        make_series(catalog, "Batwoman", "Marvel")

        assert detector.find_duplicate_groups() == []

    def test_soft_deleted_ignored(self, catalog: SeriesCatalog, detector: DuplicateDetector) -> None:
        """Tombstones are never reported."""
        make_series(catalog, "Batman")
        the_batman = make_series(catalog, "The Batman")
        catalog.soft_delete_series(the_batman.id)

        assert detector.find_duplicate_groups() == []

    def test_empty_catalog(self, detector: DuplicateDetector) -> None:
        """No series, no groups."""
        assert detector.find_duplicate_groups() == []


# =============================================================================
# Group construction
# =============================================================================


class TestGrouping:
    """Groups grow, merge and keep their strongest confidence."""

    def test_weaker_member_does_not_downgrade(self, catalog: SeriesCatalog, detector: DuplicateDetector) -> None:
        """A member joining by similarity leaves the group high with its own reason."""
        batman = make_series(catalog, "Batman")
        make_series(catalog, "The Batman")
        batmen = make_series(catalog, "Batmen")

        (group,) = detector.find_duplicate_groups()
        assert len(group.members) == 3
        assert group.confidence is DuplicateConfidence.HIGH
        assert group.primary_reason is DuplicateReason.SAME_NAME
        assert group.reasons == [DuplicateReason.SAME_NAME, DuplicateReason.SIMILAR_NAME]
        assert group.member_reasons[batmen.id] == [DuplicateReason.SIMILAR_NAME]
        assert DuplicateReason.SAME_NAME in group.member_reasons[batman.id]

    def test_groups_joined_by_shared_member(self, catalog: SeriesCatalog, detector: DuplicateDetector) -> None:
        """A similarity link between two groups merges them into one."""
        make_series(catalog, "Batman")
        make_series(catalog, "The Batman")
        make_series(catalog, "Batmen", external_ids={"comicvine": "42"})
        make_series(catalog, "Zzz Unrelated", external_ids={"comicvine": "42"})

        (group,) = detector.find_duplicate_groups()
        assert len(group.members) == 4
        assert group.confidence is DuplicateConfidence.HIGH
        assert set(group.reasons) == {
            DuplicateReason.SAME_NAME,
            DuplicateReason.SAME_EXTERNAL_ID,
            DuplicateReason.SIMILAR_NAME,
        }

    def test_sorted_strongest_first(self, catalog: SeriesCatalog, detector: DuplicateDetector) -> None:
        """High-confidence groups come before medium ones."""
        make_series(catalog, "Spider-Man")
        make_series(catalog, "Spider-Men")
        make_series(catalog, "Saga")
        make_series(catalog, "The Saga")

        groups = detector.find_duplicate_groups()
        assert [g.confidence for g in groups] == [DuplicateConfidence.HIGH, DuplicateConfidence.MEDIUM]

    def test_members_carry_issue_counts(self, catalog: SeriesCatalog, detector: DuplicateDetector) -> None:
        """Member summaries report owned issues."""
        batman = make_series(catalog, "Batman")
        the_batman = make_series(catalog, "The Batman")
        add_issues(catalog, batman, 3)

        (group,) = detector.find_duplicate_groups()
        counts = {m.id: m.owned_issue_count for m in group.members}
        assert counts == {batman.id: 3, the_batman.id: 0}

    def test_group_id_stable(self, catalog: SeriesCatalog, detector: DuplicateDetector) -> None:
        """Re-running on the same catalog yields the same group IDs."""
        make_series(catalog, "Batman")
        make_series(catalog, "The Batman")

        first = detector.find_duplicate_groups()
        second = detector.find_duplicate_groups()
        assert [g.id for g in first] == [g.id for g in second]
        assert first[0].id.startswith("dup-")

    def test_to_dict(self, catalog: SeriesCatalog, detector: DuplicateDetector) -> None:
        """Serialized groups include per-member reasons."""
        make_series(catalog, "Batman")
        make_series(catalog, "The Batman")

        data = detector.find_duplicate_groups()[0].to_dict()
        assert data["confidence"] == "high"
        assert data["primary_reason"] == "same_name"
        assert all(m["reasons"] == ["same_name"] for m in data["members"])
