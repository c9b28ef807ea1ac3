"""Tests for conflict ordering, BRD accuracy and resolution validation."""
import pytest
from tracelayer_core.conflict_policy import (
    EmptyResolutionError,
    brd_accuracy,
    conflict_stats,
    is_settled,
    sort_conflicts,
    validate_resolution,
)


class TestSortConflicts:
    """Unresolved first, then by severity, stable otherwise."""

    def test_unresolved_before_settled_then_severity(self):
        conflicts = [
            {"id": "a", "status": "resolved", "severity": "critical"},
            {"id": "b", "status": "detected", "severity": "minor"},
            {"id": "c", "status": "accepted", "severity": "major"},
            {"id": "d", "status": "reviewing", "severity": "critical"},
            {"id": "e", "status": "detected", "severity": "critical"},
        ]
        ordered = [c["id"] for c in sort_conflicts(conflicts)]
        assert ordered == ["e", "b", "d", "c", "a"]

    def test_sort_is_stable(self):
        conflicts = [
            {"id": "first", "status": "detected", "severity": "major"},
            {"id": "second", "status": "detected", "severity": "major"},
        ]
        assert [c["id"] for c in sort_conflicts(conflicts)] == ["first", "second"]

    def test_unknown_values_rank_as_detected_and_minor(self):
        conflicts = [
            {"id": "known", "status": "detected", "severity": "major"},
            {"id": "odd", "status": "bogus", "severity": "bogus"},
        ]
        assert [c["id"] for c in sort_conflicts(conflicts)] == ["known", "odd"]


class TestBrdAccuracy:
    """BRD accuracy as an integer percentage of settled conflicts."""

    def test_no_conflicts_is_fully_accurate(self):
        assert brd_accuracy(0, 0) == 100

    @pytest.mark.parametrize(
        "settled,total,expected",
        [(0, 3, 0), (1, 3, 33), (2, 3, 67), (3, 3, 100), (1, 8, 13), (1, 2, 50)],
    )
    def test_rounding(self, settled, total, expected):
        assert brd_accuracy(settled, total) == expected

    def test_invalid_counts(self):
        with pytest.raises(ValueError):
            brd_accuracy(4, 3)
        with pytest.raises(ValueError):
            brd_accuracy(-1, 3)


class TestConflictStats:
    def test_stats_counts_open_critical_only(self):
        conflicts = [
            {"status": "detected", "severity": "critical"},
            {"status": "resolved", "severity": "critical"},
            {"status": "accepted", "severity": "minor"},
            {"status": "reviewing", "severity": "major"},
        ]
        stats = conflict_stats(conflicts)
        assert stats == {"total": 4, "resolved": 2, "critical": 1, "accuracy": 50}

    def test_is_settled(self):
        assert is_settled("resolved")
        assert is_settled("accepted")
        assert not is_settled("reviewing")
        assert not is_settled("nonsense")


class TestValidateResolution:
    def test_blank_resolution_rejected(self):
        for value in (None, "", "   \n\t"):
            with pytest.raises(EmptyResolutionError):
                validate_resolution(value)

    def test_resolution_is_trimmed(self):
        assert validate_resolution("  Keep 2s target, run fraud checks async  ") == \
            "Keep 2s target, run fraud checks async"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
