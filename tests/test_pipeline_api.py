"""Tests for the pipeline run tracker endpoints."""
from datetime import datetime, timedelta
from uuid import uuid4

import pytest
from tracelayer_core import api_keys, crud, models


def _start(client, project_id, **body):
    return client.post(f"/api/v1/pipeline/projects/{project_id}/start", json=body)


class TestStartPipeline:
    """Preconditions checked synchronously before the run is scheduled."""

    def test_start_without_key_is_rejected(self, client, project, scheduled_runs):
        response = _start(client, project.id)

        assert response.status_code == 400
        assert "No API key configured" in response.json()["detail"]
        assert scheduled_runs == []
        assert client.get(f"/api/v1/pipeline/projects/{project.id}/runs").json() == []

    def test_start_with_stored_key_schedules_run(self, client, db, project, scheduled_runs):
        api_keys.store_key(db, models.LLMProviderName.OPENAI, "sk-stored-key-1234")

        response = _start(client, project.id)

        assert response.status_code == 202
        handle = response.json()
        assert handle["status"] == "queued"
        assert handle["provider"] == "openai"
        assert handle["project_id"] == str(project.id)
        assert len(scheduled_runs) == 1
        assert str(scheduled_runs[0]["run_id"]) == handle["run_id"]
        assert scheduled_runs[0]["api_key"] == "sk-stored-key-1234"

    def test_request_key_with_preferred_provider(self, client, project, scheduled_runs):
        response = _start(client, project.id, provider="anthropic", api_key="  ak-request-key  ")

        assert response.status_code == 202
        assert response.json()["provider"] == "anthropic"
        assert scheduled_runs[0]["provider"] == models.LLMProviderName.ANTHROPIC
        assert scheduled_runs[0]["api_key"] == "ak-request-key"

    def test_second_start_conflicts_with_active_run(self, client, project, scheduled_runs):
        assert _start(client, project.id, api_key="sk-test").status_code == 202

        response = _start(client, project.id, api_key="sk-test")

        assert response.status_code == 409
        assert "already running" in response.json()["detail"]
        assert len(scheduled_runs) == 1

    @pytest.mark.parametrize("body", [{"provider": "custom", "api_key": "ck-request-key"}, {"provider": "custom"}])
    def test_custom_provider_is_rejected(self, client, project, scheduled_runs, body):
        response = _start(client, project.id, **body)

        assert response.status_code == 400
        assert "custom provider" in response.json()["detail"]
        assert scheduled_runs == []

    def test_stored_custom_key_alone_is_rejected(self, client, db, project, scheduled_runs):
        api_keys.store_key(db, models.LLMProviderName.CUSTOM, "ck-stored-key-1234")

        response = _start(client, project.id)

        assert response.status_code == 400
        assert "No API key configured" in response.json()["detail"]
        assert scheduled_runs == []

    def test_unknown_project(self, client):
        assert _start(client, uuid4(), api_key="sk-test").status_code == 404

    def test_regenerate_clears_extracted_data(self, client, db, project):
        db.add(models.Requirement(
            project_id=project.id,
            requirement_id="REQ-001",
            title="Support saved card payments",
            category=models.RequirementCategory.FUNCTIONAL,
            priority=models.RequirementPriority.HIGH,
        ))
        db.commit()

        assert _start(client, project.id, api_key="sk-test", regenerate=True).status_code == 202
        assert client.get(f"/api/v1/projects/{project.id}/requirements").json() == []


class TestRunState:
    def test_cancel_stops_active_run(self, client, project):
        run_id = _start(client, project.id, api_key="sk-test").json()["run_id"]

        response = client.post(f"/api/v1/pipeline/projects/{project.id}/cancel")

        assert response.json() == {"success": True, "cancelled_count": 1}
        run = client.get(f"/api/v1/pipeline/runs/{run_id}").json()
        assert run["status"] == "cancelled"
        assert run["completed_at"] is not None
        assert client.get(f"/api/v1/pipeline/projects/{project.id}/running").json()["is_running"] is False

    def test_cancel_without_active_run(self, client, project):
        response = client.post(f"/api/v1/pipeline/projects/{project.id}/cancel")
        assert response.json() == {"success": True, "cancelled_count": 0}

    def test_latest_run_null_when_never_run(self, client, project):
        response = client.get(f"/api/v1/pipeline/projects/{project.id}/latest-run")
        assert response.status_code == 200
        assert response.json() is None

    def test_running_reports_active_run(self, client, project):
        run_id = _start(client, project.id, api_key="sk-test").json()["run_id"]

        running = client.get(f"/api/v1/pipeline/projects/{project.id}/running").json()

        assert running["is_running"] is True
        assert running["run_id"] == run_id
        assert running["status"] == "queued"


class TestRunHistory:
    """History is newest first; clearing keeps the newest runs."""

    @pytest.fixture
    def runs(self, db, project):
        base = datetime(2026, 3, 1, 9, 0, 0)
        created = []
        for hours in range(3):
            run = crud.create_run(db, project.id, provider="openai", started_at=base + timedelta(hours=hours))
            crud.append_log(db, run, models.AgentName.ORCHESTRATOR, models.LogLevel.INFO, "Pipeline started")
            crud.transition_run(db, run, models.RunStatus.FAILED, error="boom")
            created.append(run)
        return created

    def test_history_newest_first(self, client, project, runs):
        history = client.get(f"/api/v1/pipeline/projects/{project.id}/runs").json()
        assert [r["id"] for r in history] == [str(r.id) for r in reversed(runs)]

    def test_clear_history_keeps_latest(self, client, project, runs):
        run_ids = [str(r.id) for r in runs]

        response = client.post(
            f"/api/v1/pipeline/projects/{project.id}/clear-history",
            json={"keep_latest": 1},
        )

        assert response.json() == {"deleted": 2}
        history = client.get(f"/api/v1/pipeline/projects/{project.id}/runs").json()
        assert [r["id"] for r in history] == [run_ids[-1]]
        assert client.get(f"/api/v1/pipeline/runs/{run_ids[0]}/logs").status_code == 404
        assert len(client.get(f"/api/v1/pipeline/projects/{project.id}/logs").json()) == 1

    def test_clear_history_keeps_active_runs(self, client, db, project):
        failed = crud.create_run(db, project.id, provider="openai", started_at=datetime(2026, 3, 1, 9, 0, 0))
        crud.transition_run(db, failed, models.RunStatus.FAILED, error="boom")
        queued = crud.create_run(db, project.id, provider="openai", started_at=datetime(2026, 3, 1, 10, 0, 0))
        queued_id = str(queued.id)

        response = client.post(
            f"/api/v1/pipeline/projects/{project.id}/clear-history",
            json={"keep_latest": 0},
        )

        assert response.json() == {"deleted": 1}
        history = client.get(f"/api/v1/pipeline/projects/{project.id}/runs").json()
        assert [r["id"] for r in history] == [queued_id]
        assert client.get(f"/api/v1/pipeline/projects/{project.id}/running").json()["is_running"] is True

    def test_clear_history_rejects_negative(self, client, project):
        response = client.post(
            f"/api/v1/pipeline/projects/{project.id}/clear-history",
            json={"keep_latest": -1},
        )
        assert response.status_code == 422


class TestLogs:
    def test_run_logs_in_insertion_order(self, client, db, project):
        run = crud.create_run(db, project.id, provider="openai")
        for message in ("Pipeline started", "Found 2 source(s) to process", "Classifying source relevance..."):
            crud.append_log(db, run, models.AgentName.INGESTION, models.LogLevel.PROCESSING, message)

        logs = client.get(f"/api/v1/pipeline/runs/{run.id}/logs").json()

        assert [entry["sequence"] for entry in logs] == [1, 2, 3]
        assert logs[0]["message"] == "Pipeline started"
        assert logs[0]["agent"] == "ingestion_agent"

    def test_project_logs_newest_first(self, client, db, project):
        run = crud.create_run(db, project.id, provider="openai")
        crud.append_log(db, run, models.AgentName.ORCHESTRATOR, models.LogLevel.INFO, "first")
        crud.append_log(db, run, models.AgentName.ORCHESTRATOR, models.LogLevel.SUCCESS, "second")

        logs = client.get(f"/api/v1/pipeline/projects/{project.id}/logs").json()

        assert [entry["message"] for entry in logs] == ["second", "first"]

    def test_unknown_run_logs(self, client, session_factory):
        assert client.get(f"/api/v1/pipeline/runs/{uuid4()}/logs").status_code == 404


class TestDiagnostics:
    def test_diagnostics_unknown_project(self, client, session_factory):
        assert client.get(f"/api/v1/pipeline/projects/{uuid4()}/diagnostics").status_code == 404

    def test_diagnostics_snapshot(self, client, db, project, add_source):
        add_source(project.id, "Kickoff call", "We need saved cards and fast checkout")
        run = crud.create_run(db, project.id, provider="openai")
        crud.append_log(db, run, models.AgentName.ORCHESTRATOR, models.LogLevel.ERROR, "Pipeline failed: boom")
        crud.transition_run(db, run, models.RunStatus.FAILED, error="boom")

        snapshot = client.get(f"/api/v1/pipeline/projects/{project.id}/diagnostics").json()

        assert snapshot["sources"]["total"] == 1
        assert snapshot["sources"]["total_words"] == 7
        assert snapshot["runs"]["total"] == 1
        assert snapshot["runs"]["failed"] == 1
        assert snapshot["runs"]["success_rate"] == 0
        assert snapshot["errors"]["count"] == 1
        assert snapshot["errors"]["recent_errors"][0]["message"] == "Pipeline failed: boom"
        assert snapshot["quality"]["histogram"] == [0, 0, 0, 0, 0]

    def test_recent_errors_newest_first(self, client, db, project):
        run = crud.create_run(db, project.id, provider="openai")
        for i in range(6):
            crud.append_log(db, run, models.AgentName.ORCHESTRATOR, models.LogLevel.ERROR, f"error {i}")
        crud.transition_run(db, run, models.RunStatus.FAILED, error="error 5")

        errors = client.get(f"/api/v1/pipeline/projects/{project.id}/diagnostics").json()["errors"]

        assert errors["count"] == 6
        assert [e["message"] for e in errors["recent_errors"]] == ["error 5", "error 4", "error 3", "error 2", "error 1"]


class TestPreflight:
    """Eight ordered checks shown before a run is started."""

    def test_fresh_project(self, client, project):
        result = client.get(f"/api/v1/pipeline/projects/{project.id}/preflight").json()

        assert [c["key"] for c in result["checks"]] == [
            "api_key", "sources", "integrations", "project_state",
            "data_quality", "pipeline_health", "documents", "error_check",
        ]
        statuses = {c["key"]: c["status"] for c in result["checks"]}
        assert statuses["api_key"] == "fail"
        assert statuses["sources"] == "fail"
        assert statuses["project_state"] == "pass"
        assert statuses["data_quality"] == "pass"
        assert result["passed"] == 4
        assert result["failed"] == 4

    def test_ready_project(self, client, db, project, add_source):
        api_keys.store_key(db, models.LLMProviderName.GEMINI, "g-key-abcdefghijkl")
        add_source(project.id, "Kickoff call", "We need saved cards")

        result = client.get(f"/api/v1/pipeline/projects/{project.id}/preflight").json()
        checks = {c["key"]: c for c in result["checks"]}

        assert checks["api_key"]["status"] == "pass"
        assert "gemini" in checks["api_key"]["message"]
        assert checks["sources"]["message"] == "1 source(s) uploaded"


class TestHelpers:
    def test_confidence_histogram(self):
        from tracelayer_core.diagnostics import confidence_histogram

        assert confidence_histogram([0.05, 0.5, 0.95, 1.0]) == [1, 0, 1, 0, 2]
        assert confidence_histogram([]) == [0, 0, 0, 0, 0]

    def test_success_rate(self):
        from tracelayer_core.diagnostics import success_rate

        assert success_rate(0, 0) == 0
        assert success_rate(2, 3) == 67
        assert success_rate(1, 8) == 13


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
