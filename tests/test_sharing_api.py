"""Tests for share-link management and the public snapshot endpoints."""
from datetime import datetime, timedelta
from uuid import uuid4

import pytest
from tracelayer_core import crud, models


def _create_link(client, project_id, **body):
    response = client.post(f"/api/v1/sharing/projects/{project_id}/links", json=body)
    assert response.status_code == 201
    return response.json()


def _snapshot(client, token):
    return client.get(f"/api/v1/sharing/shared/{token}").json()


class TestShareLinks:
    def test_create_returns_id_and_token(self, client, project):
        created = _create_link(client, project.id)

        assert len(created["token"]) == 12
        links = client.get(f"/api/v1/sharing/projects/{project.id}/links").json()
        assert [link["id"] for link in links] == [created["id"]]
        assert links[0]["permission"] == "view"
        assert links[0]["has_password"] is False
        assert links[0]["expires_at"] is None
        assert links[0]["access_count"] == 0

    def test_create_with_options(self, client, project):
        _create_link(client, project.id, permission="comment", password="s3cret", expires_in_days=7)

        link = client.get(f"/api/v1/sharing/projects/{project.id}/links").json()[0]

        assert link["permission"] == "comment"
        assert link["has_password"] is True
        assert link["expires_at"] is not None

    def test_create_for_unknown_project(self, client, session_factory):
        response = client.post(f"/api/v1/sharing/projects/{uuid4()}/links", json={})
        assert response.status_code == 404

    def test_update_permission(self, client, project):
        created = _create_link(client, project.id)

        response = client.put(f"/api/v1/sharing/links/{created['id']}/permission", json={"permission": "edit"})

        assert response.json()["permission"] == "edit"
        assert _snapshot(client, created["token"])["permission"] == "edit"

    def test_delete_link(self, client, project):
        created = _create_link(client, project.id)

        assert client.delete(f"/api/v1/sharing/links/{created['id']}").status_code == 204
        assert client.get(f"/api/v1/sharing/projects/{project.id}/links").json() == []
        assert client.delete(f"/api/v1/sharing/links/{created['id']}").status_code == 404


class TestSharedSnapshot:
    """Token lookups return a snapshot or an error code, never an HTTP error."""

    def test_snapshot_without_document(self, client, project, add_source):
        add_source(project.id, "Kickoff call", "We need saved cards", models.SourceType.MEETING_TRANSCRIPT)
        token = _create_link(client, project.id)["token"]

        snapshot = _snapshot(client, token)

        assert snapshot["error"] is None
        assert snapshot["project"] == {"name": "Checkout Revamp", "description": "Rebuild the checkout flow"}
        assert snapshot["brd_content"] is None
        assert snapshot["version"] == 1
        assert snapshot["sources"][0]["type"] == "meeting_transcript"
        assert snapshot["sources"][0]["metadata"]["word_count"] == 4
        assert "content" not in snapshot["sources"][0]

    def test_snapshot_with_document(self, client, db, project):
        crud.store_document(db, project.id, models.DocumentType.BRD, {"executiveSummary": "v1"}, {})
        crud.store_document(
            db, project.id, models.DocumentType.BRD,
            {"executiveSummary": "Rebuild checkout", "businessObjectives": ["Faster checkout"]}, {},
        )
        token = _create_link(client, project.id)["token"]

        snapshot = _snapshot(client, token)

        assert snapshot["version"] == 2
        sections = snapshot["brd_content"]["sections"]
        assert [s["key"] for s in sections] == ["executiveSummary", "businessObjectives"]
        assert sections[0]["body"] == "Rebuild checkout"

    def test_unknown_token_not_found(self, client, session_factory):
        assert _snapshot(client, "doesnotexist")["error"] == "not_found"

    def test_revoked_link_not_found(self, client, project):
        created = _create_link(client, project.id)

        revoked = client.post(f"/api/v1/sharing/links/{created['id']}/revoke").json()

        assert revoked["is_active"] is False
        snapshot = _snapshot(client, created["token"])
        assert snapshot["error"] == "not_found"
        assert snapshot["project"] is None

    def test_expired_link(self, client, db, project):
        link = crud.create_shared_link(db, project.id, expires_in_days=1)
        link.expires_at = datetime.utcnow() - timedelta(minutes=1)
        db.commit()

        snapshot = _snapshot(client, link.token)

        assert snapshot["error"] == "expired"
        assert snapshot["requirements"] == []


class TestAccessCounting:
    def test_access_recorded(self, client, project):
        created = _create_link(client, project.id)

        for _ in range(2):
            assert client.post(f"/api/v1/sharing/shared/{created['token']}/access").json() == {"recorded": True}

        link = client.get(f"/api/v1/sharing/projects/{project.id}/links").json()[0]
        assert link["access_count"] == 2
        assert link["last_accessed_at"] is not None

    def test_viewing_snapshot_does_not_count(self, client, project):
        created = _create_link(client, project.id)
        _snapshot(client, created["token"])

        link = client.get(f"/api/v1/sharing/projects/{project.id}/links").json()[0]
        assert link["access_count"] == 0

    def test_unknown_token_ignored(self, client, session_factory):
        assert client.post("/api/v1/sharing/shared/doesnotexist/access").json() == {"recorded": False}


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
