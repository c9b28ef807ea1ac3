"""Tests for console text rendering."""
import pytest
from tracelayer_mcp.formatters import (
    SHARED_ERRORS,
    format_brd_section,
    format_conflict_list,
    format_run_history,
    format_shared_view,
    format_terminal,
    run_history_entry,
    stage_indicator,
)


def _states(status):
    return [s["state"] for s in stage_indicator(status)]


class TestStageIndicator:
    """done / current / pending per stage."""

    def test_mid_run(self):
        assert _states("extracting_stakeholders") == ["done"] * 3 + ["current"] + ["pending"] * 5

    def test_queued_and_none(self):
        assert _states("queued") == ["pending"] * 9
        assert _states(None) == ["pending"] * 9

    def test_completed(self):
        assert _states("completed") == ["done"] * 9

    def test_cancelled_shows_no_current_stage(self):
        assert "current" not in _states("cancelled")

    def test_labels(self):
        labels = [s["label"] for s in stage_indicator("ingesting")]
        assert labels[0] == "Ingestion"
        assert labels[-1] == "Documents"


class TestRunHistory:
    def _run(self, status, **extra):
        run = {
            "id": "r1",
            "status": status,
            "started_at": "2026-03-01T09:00:00",
            "completed_at": None,
            "requirements_found": 43,
        }
        run.update(extra)
        return run

    @pytest.mark.parametrize(
        "status,color",
        [("completed", "emerald"), ("failed", "red"), ("cancelled", "amber"), ("extracting_timeline", "blue")],
    )
    def test_colors(self, status, color):
        assert run_history_entry(self._run(status))["color"] == color

    def test_reqs_only_for_completed(self):
        assert run_history_entry(self._run("completed"))["reqs"] == 43
        assert run_history_entry(self._run("failed"))["reqs"] is None

    def test_duration(self):
        entry = run_history_entry(self._run("completed", completed_at="2026-03-01T09:02:05"))
        assert entry["duration"] == "2m 5s"

    def test_format_history(self):
        text = format_run_history([self._run("completed"), self._run("failed")])
        lines = text.splitlines()
        assert lines[0] == "Run history (2):"
        assert "43 reqs" in lines[1]
        assert "reqs" not in lines[2]
        assert format_run_history([]) == "No pipeline runs yet."


class TestTerminal:
    def test_waiting_when_empty(self):
        assert format_terminal([]) == "$ waiting for pipeline output..."

    def test_log_lines(self):
        logs = [
            {"timestamp": "2026-03-01T09:00:01", "level": "info", "agent": "orchestrator", "message": "Pipeline started"},
            {"timestamp": "2026-03-01T09:00:02", "level": "warning", "agent": "conflict_agent", "message": "MAJOR"},
        ]
        assert format_terminal(logs).splitlines() == [
            "09:00:01 [INFO] orchestrator: Pipeline started",
            "09:00:02 [WARN] conflict_agent: MAJOR",
        ]


class TestConflictList:
    def test_accuracy_header(self):
        conflicts = [
            {"id": "1", "conflict_id": "CON-001", "title": "A", "description": "", "severity": "minor",
             "status": "resolved", "resolution": "Done"},
            {"id": "2", "conflict_id": "CON-002", "title": "B", "description": "", "severity": "critical",
             "status": "detected"},
            {"id": "3", "conflict_id": "CON-003", "title": "C", "description": "", "severity": "major",
             "status": "detected"},
        ]
        text = format_conflict_list(conflicts)

        assert text.startswith("BRD accuracy: 33% (1 of 3 conflicts resolved)")
        assert text.index("CON-002") < text.index("CON-003") < text.index("CON-001")
        assert "Resolution: Done" in text

    def test_empty(self):
        assert format_conflict_list([]) == "BRD accuracy: 100% (0 of 0 conflicts resolved)\n\nNo conflicts detected."


class TestSharedView:
    def test_error_screens(self):
        assert format_shared_view({"error": "not_found"}) == SHARED_ERRORS["not_found"]
        assert format_shared_view({"error": "expired"}) == SHARED_ERRORS["expired"]

    def test_view_without_document(self):
        snapshot = {
            "error": None,
            "permission": "view",
            "has_password": True,
            "project": {"name": "Checkout Revamp", "description": ""},
            "brd_content": None,
            "version": 1,
            "requirements": [{}, {}],
        }
        text = format_shared_view(snapshot)

        assert text.startswith("# Checkout Revamp (BRD v1)")
        assert "password protected" in text
        assert "2 requirements, 0 stakeholders" in text
        assert text.endswith("No BRD has been generated for this project yet.")

    def test_sections(self):
        assert format_brd_section({"kind": "text", "title": "Executive Summary", "body": "Hi"}) == \
            "## Executive Summary\nHi"
        assert format_brd_section({"kind": "list", "title": "Objectives", "items": ["A", {"title": "B"}]}) == \
            "## Objectives\n- A\n- B"
        assert format_brd_section({"kind": "object", "title": "Scope", "fields": {"inScope": ["Web", "App"]}}) == \
            "## Scope\n- inScope: Web; App"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
