"""Tests for console module - Rich UI output functions."""

from __future__ import annotations

from unittest.mock import patch

from comicshelf.console import (
    COMICSHELF_THEME,
    confirm,
    console,
    err_console,
    print_auto_link_summary,
    print_catalog_stats,
    print_duplicate_groups,
    print_error,
    print_info,
    print_merge_preview,
    print_merge_result,
    print_pending_files,
    print_success,
    print_warning,
)
from comicshelf.models import ComicFile, Series, SeriesSummary
from comicshelf.series.catalog import CatalogStats
from comicshelf.series.duplicates import DuplicateConfidence, DuplicateGroup, DuplicateReason
from comicshelf.series.linker import AutoLinkSummary, PendingFile
from comicshelf.series.matcher import Suggestion
from comicshelf.series.merge import MergePreview, MergeResult


def _summary(series_id: str, name: str, issues: int = 0, publisher: str | None = None) -> SeriesSummary:
    return SeriesSummary(
        id=series_id,
        name=name,
        publisher=publisher,
        start_year=2016,
        end_year=None,
        aliases=[],
        owned_issue_count=issues,
    )


# =============================================================================
# Test theme and console instances
# =============================================================================


class TestConsoleSetup:
    """Test console setup and theme."""

    def test_theme_has_required_styles(self):
        """Theme should have all required styles."""
        for style in ("info", "success", "warning", "error", "title", "dim", "series", "publisher"):
            assert style in COMICSHELF_THEME.styles

    def test_console_uses_stdout(self):
        """Main console should write to stdout."""
        assert console.stderr is False

    def test_err_console_uses_stderr(self):
        """Error console should write to stderr."""
        assert err_console.stderr is True


# =============================================================================
# Test message functions
# =============================================================================


class TestMessages:
    """Test the one-line message helpers."""

    def test_print_success(self):
        """print_success should print checkmark and message."""
        with patch.object(console, "print") as mock_print:
            print_success("Merged")
            call_args = str(mock_print.call_args)
            assert "✓" in call_args
            assert "Merged" in call_args

    def test_print_error_goes_to_stderr(self):
        """print_error should use the error console."""
        with patch.object(err_console, "print") as mock_err, patch.object(console, "print") as mock_out:
            print_error("Series abc not found")
            mock_err.assert_called_once()
            mock_out.assert_not_called()
            assert "Series abc not found" in str(mock_err.call_args)

    def test_print_warning_and_info(self):
        """Warning and info use their own markers."""
        with patch.object(console, "print") as mock_print:
            print_warning("careful")
            print_info("note")
            assert mock_print.call_count == 2
            assert "!" in str(mock_print.call_args_list[0])
            assert "→" in str(mock_print.call_args_list[1])


class TestConfirm:
    """Test confirm function."""

    def test_yes(self):
        """y and yes confirm."""
        with patch.object(console, "input", return_value="yes"):
            assert confirm("Merge?") is True

    def test_empty_uses_default(self):
        """An empty answer returns the default."""
        with patch.object(console, "input", return_value=""):
            assert confirm("Merge?") is False
            assert confirm("Merge?", default=True) is True

    def test_eof_declines(self):
        """EOF counts as no."""
        with patch.object(console, "input", side_effect=EOFError), patch.object(console, "print"):
            assert confirm("Merge?", default=True) is False


# =============================================================================
# Test tables
# =============================================================================


class TestDuplicateGroups:
    """Test print_duplicate_groups."""

    def test_no_groups(self):
        """An empty result prints a success line."""
        with console.capture() as capture:
            print_duplicate_groups([])
        assert "No duplicate series found" in capture.get()

    def test_group_table(self):
        """Each member row shows its name and issue count."""
        group = DuplicateGroup(
            id="dup-1",
            members=[_summary("s1", "Batman", 12), _summary("s2", "The Batman", 3)],
            confidence=DuplicateConfidence.HIGH,
            reasons=[DuplicateReason.SAME_NAME],
            primary_reason=DuplicateReason.SAME_NAME,
            member_reasons={"s1": [DuplicateReason.SAME_NAME], "s2": [DuplicateReason.SAME_NAME]},
        )
        with console.capture() as capture:
            print_duplicate_groups([group])
        output = capture.get()
        assert "HIGH" in output
        assert "The Batman" in output
        assert "12" in output

    def test_limit(self):
        """Groups beyond the limit are counted, not printed."""
        groups = [
            DuplicateGroup(
                id=f"dup-{i}",
                members=[_summary(f"a{i}", "Saga"), _summary(f"b{i}", "The Saga")],
                confidence=DuplicateConfidence.HIGH,
                reasons=[DuplicateReason.SAME_NAME],
                primary_reason=DuplicateReason.SAME_NAME,
            )
            for i in range(3)
        ]
        with console.capture() as capture:
            print_duplicate_groups(groups, limit=1)
        assert "Showing 1 of 3 groups" in capture.get()


class TestMergeOutput:
    """Test merge preview and result output."""

    def test_preview(self):
        """Preview shows the target, totals and warnings."""
        preview = MergePreview(
            target=_summary("t1", "Batman", 12, "DC Comics"),
            sources=[_summary("s1", "Batman Rebirth", 50, "Panini")],
            resulting_aliases=["Batman Rebirth"],
            total_issues_after_merge=62,
            warnings=['"Batman Rebirth" has different publisher (Panini) than target (DC Comics)'],
        )
        with console.capture() as capture:
            print_merge_preview(preview)
        output = capture.get()
        assert "Merge into:" in output
        assert "62" in output
        assert "different publisher" in output

    def test_result(self):
        """Result summarizes moved issues and new aliases."""
        result = MergeResult(
            target_series_id="t1",
            merged_source_ids=["s1", "s2"],
            issues_moved=7,
            aliases_added=["Bats"],
        )
        with console.capture() as capture:
            print_merge_result(result)
        output = capture.get()
        assert "Merged 2 series into t1" in output
        assert "Aliases added: Bats" in output


class TestLinkOutput:
    """Test auto-link and pending output."""

    def test_auto_link_summary(self):
        """All four counters are shown."""
        with console.capture() as capture:
            print_auto_link_summary(AutoLinkSummary(linked=5, created=2, needs_confirmation=1, errors=0))
        output = capture.get()
        assert "Linked" in output
        assert "Needs confirmation" in output

    def test_no_pending(self):
        """Nothing pending prints a success line."""
        with console.capture() as capture:
            print_pending_files([])
        assert "No files need confirmation" in capture.get()

    def test_pending_table(self):
        """Suggestions are listed under their file."""
        comic = ComicFile(id="f1", path="/library/Saga Deluxe 001.cbz", relative_path="Saga Deluxe 001.cbz")
        pending = [
            PendingFile(
                file=comic,
                suggestions=[
                    Suggestion(series=Series(id="s1", name="Saga"), confidence=0.73, reason="Alternative match"),
                    Suggestion(series=Series(id="s2", name="Monstress"), confidence=0.7, reason="Folder"),
                ],
            )
        ]
        with console.capture() as capture:
            print_pending_files(pending)
        output = capture.get()
        assert "0.73" in output
        assert "Monstress" in output

    def test_catalog_stats(self):
        """Stats table lists every counter."""
        stats = CatalogStats(
            active_series=3,
            soft_deleted_series=1,
            total_files=10,
            linked_files=8,
            unlinked_files=2,
            schema_version=1,
        )
        with console.capture() as capture:
            print_catalog_stats(stats)
        output = capture.get()
        assert "Soft-deleted series" in output
        assert "Schema version" in output
