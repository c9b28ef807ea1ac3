"""Tests for conflict review endpoints."""
from uuid import uuid4

import pytest
from tracelayer_core import crud, models


@pytest.fixture
def conflicts(db, project):
    """Three conflicts of mixed severity, all detected."""
    specs = [
        ("CON-001", "Guest checkout vs mandatory accounts", models.ConflictSeverity.MINOR),
        ("CON-002", "Fraud checks vs latency target", models.ConflictSeverity.CRITICAL),
        ("CON-003", "Single currency vs EU launch", models.ConflictSeverity.MAJOR),
    ]
    return [
        crud.store_conflict(db, project.id, conflict_id, title, "", severity, [str(uuid4()), str(uuid4())])
        for conflict_id, title, severity in specs
    ]


def _list(client, project_id):
    return client.get(f"/api/v1/conflicts/projects/{project_id}").json()


class TestListConflicts:
    def test_unresolved_first_by_severity(self, client, project, conflicts):
        client.post(f"/api/v1/conflicts/{conflicts[1].id}/resolve", json={"resolution": "Run fraud checks async"})

        body = _list(client, project.id)

        assert [c["conflict_id"] for c in body["items"]] == ["CON-003", "CON-001", "CON-002"]

    def test_stats(self, client, project, conflicts):
        client.post(f"/api/v1/conflicts/{conflicts[0].id}/accept", json={"resolution": "Known trade-off"})

        stats = _list(client, project.id)["stats"]

        assert stats == {"total": 3, "resolved": 1, "critical": 1, "accuracy": 33}

    def test_no_conflicts_fully_accurate(self, client, project):
        body = _list(client, project.id)
        assert body["items"] == []
        assert body["stats"]["accuracy"] == 100

    def test_unknown_project(self, client, session_factory):
        assert client.get(f"/api/v1/conflicts/projects/{uuid4()}").status_code == 404


class TestSettleConflicts:
    """Resolving and accepting both require a non-blank resolution."""

    def test_resolve_records_resolution(self, client, conflicts):
        response = client.post(
            f"/api/v1/conflicts/{conflicts[1].id}/resolve",
            json={"resolution": "  Run fraud checks asynchronously  "},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "resolved"
        assert body["resolution"] == "Run fraud checks asynchronously"
        assert body["resolved_at"] is not None

    def test_accept_marks_accepted(self, client, conflicts):
        response = client.post(f"/api/v1/conflicts/{conflicts[0].id}/accept", json={"resolution": "Defer to v2"})
        assert response.json()["status"] == "accepted"

    @pytest.mark.parametrize("action", ["resolve", "accept"])
    def test_blank_resolution_rejected(self, client, conflicts, action):
        response = client.post(f"/api/v1/conflicts/{conflicts[0].id}/{action}", json={"resolution": "   "})

        assert response.status_code == 422
        assert client.get(f"/api/v1/conflicts/{conflicts[0].id}").json()["status"] == "detected"

    def test_missing_resolution_rejected(self, client, conflicts):
        assert client.post(f"/api/v1/conflicts/{conflicts[0].id}/resolve", json={}).status_code == 422

    def test_unknown_conflict(self, client, session_factory):
        response = client.post(f"/api/v1/conflicts/{uuid4()}/resolve", json={"resolution": "Done"})
        assert response.status_code == 404


class TestConflictStatus:
    def test_mark_reviewing(self, client, conflicts):
        response = client.put(f"/api/v1/conflicts/{conflicts[2].id}/status", json={"status": "reviewing"})

        assert response.status_code == 200
        assert response.json()["status"] == "reviewing"

    @pytest.mark.parametrize("status", ["resolved", "accepted", "detected"])
    def test_other_statuses_rejected(self, client, conflicts, status):
        response = client.put(f"/api/v1/conflicts/{conflicts[2].id}/status", json={"status": status})
        assert response.status_code == 400

    def test_settled_conflict_cannot_be_reviewed(self, client, conflicts):
        client.post(f"/api/v1/conflicts/{conflicts[2].id}/resolve", json={"resolution": "Ship EUR only"})

        response = client.put(f"/api/v1/conflicts/{conflicts[2].id}/status", json={"status": "reviewing"})

        assert response.status_code == 400
        assert "already resolved" in response.json()["detail"]


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
