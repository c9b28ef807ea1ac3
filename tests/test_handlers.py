"""Tests for MCP tool handlers against a mocked API."""
import asyncio
import json

import httpx
import pytest
from tracelayer_mcp import handlers
from tracelayer_mcp.settings import ClientSettings

PROJECT_ID = "5f2b6a1e-0000-4000-8000-000000000001"
BASE_URL = "http://api.test/api/v1"


class FakeApi:
    """Routes (method, path) to canned JSON and records every request."""

    def __init__(self, routes):
        self.routes = routes
        self.requests = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path[len("/api/v1"):]
        key = (request.method, path)
        if key not in self.routes:
            return httpx.Response(404, json={"detail": "Not Found"})
        status, body = self.routes[key]
        return httpx.Response(status, json=body)

    def calls(self, method=None):
        return [
            (r.method, r.url.path[len("/api/v1"):])
            for r in self.requests
            if method is None or r.method == method
        ]


def call(handler, arguments, routes, scope=None):
    """Run an async handler against a FakeApi; returns (text, new scope, api)."""
    api = FakeApi(routes)

    async def _run():
        async with httpx.AsyncClient(base_url=BASE_URL, transport=httpx.MockTransport(api.handler)) as client:
            return await handler(arguments, client, scope)

    content, new_scope = asyncio.run(_run())
    return content[0].text, new_scope, api


RUN_HANDLE = {"run_id": "run-1", "project_id": PROJECT_ID, "status": "queued", "provider": "openai"}


class TestStartPipeline:
    """Client-side guards before a run is requested."""

    def test_no_key_sends_no_start_request(self):
        routes = {("GET", "/api-keys/"): (200, [])}

        text, _, api = call(handlers.handle_start_pipeline, {"project_id": PROJECT_ID}, routes)

        assert text.startswith("No API key configured")
        assert api.calls("POST") == []

    def test_custom_only_key_sends_no_start_request(self):
        routes = {("GET", "/api-keys/"): (200, [{"provider": "custom"}])}

        text, _, api = call(handlers.handle_start_pipeline, {"project_id": PROJECT_ID}, routes)

        assert text.startswith("No API key configured")
        assert api.calls("POST") == []

    def test_custom_provider_sends_nothing(self):
        text, _, api = call(
            handlers.handle_start_pipeline,
            {"project_id": PROJECT_ID, "provider": "custom", "api_key": "sk-custom"},
            {},
        )

        assert text.startswith("The custom provider cannot run the pipeline")
        assert api.requests == []

    def test_missing_provider_key_notes_fallback(self):
        routes = {
            ("GET", "/api-keys/"): (200, [{"provider": "custom"}, {"provider": "anthropic"}]),
            ("GET", f"/projects/{PROJECT_ID}/sources"): (200, [{"id": "s1"}]),
            ("GET", "/integrations/"): (200, []),
            ("POST", f"/pipeline/projects/{PROJECT_ID}/start"): (202, RUN_HANDLE),
        }

        text, _, api = call(handlers.handle_start_pipeline, {"project_id": PROJECT_ID, "provider": "openai"}, routes)

        assert text.startswith("No openai key stored; the run will use the stored anthropic key.")
        assert api.calls("POST") == [("POST", f"/pipeline/projects/{PROJECT_ID}/start")]

    def test_warns_without_sources_but_still_starts(self):
        routes = {
            ("GET", "/api-keys/"): (200, [{"provider": "openai"}]),
            ("GET", f"/projects/{PROJECT_ID}/sources"): (200, []),
            ("GET", "/integrations/"): (200, []),
            ("POST", f"/pipeline/projects/{PROJECT_ID}/start"): (202, RUN_HANDLE),
        }

        text, _, api = call(handlers.handle_start_pipeline, {"project_id": PROJECT_ID}, routes)

        assert text.startswith("Warning: this project has no sources")
        assert "Pipeline started (run run-1, provider openai, status queued)." in text
        assert api.calls("POST") == [("POST", f"/pipeline/projects/{PROJECT_ID}/start")]
        integrations = [r for r in api.requests if r.url.path.endswith("/integrations/")][0]
        assert integrations.url.params["connected_only"] == "true"

    def test_supplied_key_skips_key_lookup(self):
        routes = {
            ("GET", f"/projects/{PROJECT_ID}/sources"): (200, [{"id": "s1"}]),
            ("GET", "/integrations/"): (200, []),
            ("POST", f"/pipeline/projects/{PROJECT_ID}/start"): (202, RUN_HANDLE),
        }

        text, _, api = call(
            handlers.handle_start_pipeline,
            {"project_id": PROJECT_ID, "api_key": "sk-inline", "provider": "openai"},
            routes,
        )

        assert not text.startswith("Warning")
        assert ("GET", "/api-keys/") not in api.calls()
        assert b"sk-inline" in api.requests[-1].content
        assert PROJECT_ID not in handlers._starting

    def test_conflict_raises(self):
        routes = {
            ("GET", f"/projects/{PROJECT_ID}/sources"): (200, [{"id": "s1"}]),
            ("GET", "/integrations/"): (200, []),
            ("POST", f"/pipeline/projects/{PROJECT_ID}/start"): (409, {"detail": "Pipeline is already running"}),
        }

        with pytest.raises(httpx.HTTPStatusError):
            call(handlers.handle_start_pipeline, {"project_id": PROJECT_ID, "api_key": "sk"}, routes)
        assert PROJECT_ID not in handlers._starting


class TestSharedView:
    SNAPSHOT = {
        "error": None,
        "permission": "view",
        "has_password": False,
        "project": {"name": "Checkout Revamp", "description": ""},
        "brd_content": {"sections": [{"kind": "text", "key": "executiveSummary", "title": "Executive Summary",
                                      "body": "Rebuild checkout"}]},
        "version": 2,
    }

    def test_records_access_once(self):
        routes = {
            ("GET", "/sharing/shared/tok123"): (200, self.SNAPSHOT),
            ("POST", "/sharing/shared/tok123/access"): (200, {"recorded": True}),
        }

        text, _, api = call(handlers.handle_open_shared_view, {"token": "tok123"}, routes)

        assert api.calls("POST") == [("POST", "/sharing/shared/tok123/access")]
        assert "# Checkout Revamp (BRD v2)" in text
        assert "## Executive Summary\nRebuild checkout" in text

    @pytest.mark.parametrize("error", ["not_found", "expired"])
    def test_error_records_nothing(self, error):
        routes = {("GET", "/sharing/shared/tok123"): (200, {"error": error})}

        text, _, api = call(handlers.handle_open_shared_view, {"token": "tok123"}, routes)

        assert api.calls("POST") == []
        assert text in (
            "Document not found. This shared link does not exist or has been revoked.",
            "Link expired. Ask the document owner for a new link.",
        )


class TestConflicts:
    CONFLICT = {
        "id": "c1", "conflict_id": "CON-001", "title": "Fraud vs latency", "description": "",
        "severity": "major", "status": "resolved", "requirement_ids": [], "resolution": "Async checks",
    }

    @pytest.mark.parametrize("handler", [handlers.handle_resolve_conflict, handlers.handle_accept_conflict])
    def test_blank_resolution_sends_nothing(self, handler):
        text, _, api = call(handler, {"conflict_id": "c1", "resolution": "  "}, {})

        assert text == "A resolution text is required. Nothing was changed."
        assert api.requests == []

    def test_resolve(self):
        routes = {("POST", "/conflicts/c1/resolve"): (200, self.CONFLICT)}

        text, _, api = call(handlers.handle_resolve_conflict, {"conflict_id": "c1", "resolution": " Async checks "}, routes)

        assert text.startswith("Conflict CON-001 marked resolved.")
        assert json.loads(api.requests[0].content) == {"resolution": "Async checks"}


class TestScope:
    def test_scope_defaults_fill_project_id(self):
        scope = {"project_id": PROJECT_ID, "name": "Checkout Revamp"}

        assert handlers.apply_project_scope_defaults({}, scope) == {"project_id": PROJECT_ID}
        assert handlers.apply_project_scope_defaults({"project_id": "other"}, scope) == {"project_id": "other"}
        assert handlers.apply_project_scope_defaults({"limit": 5}, None) == {"limit": 5}

    def test_select_project_returns_scope(self):
        routes = {("GET", f"/projects/{PROJECT_ID}"): (200, {"id": PROJECT_ID, "name": "Checkout Revamp"})}

        text, scope, _ = call(handlers.handle_select_project, {"project_id": PROJECT_ID}, routes)

        assert scope == {"project_id": PROJECT_ID, "name": "Checkout Revamp"}
        assert "Active project: Checkout Revamp" in text

    def test_missing_project_id(self):
        with pytest.raises(ValueError):
            call(handlers.handle_list_sources, {}, {})


class TestLogsAndBrd:
    def test_logs_oldest_first_with_limit(self):
        newest_first = [
            {"timestamp": "2026-03-01T09:00:03", "level": "success", "agent": "orchestrator", "message": "third"},
            {"timestamp": "2026-03-01T09:00:02", "level": "info", "agent": "orchestrator", "message": "second"},
            {"timestamp": "2026-03-01T09:00:01", "level": "info", "agent": "orchestrator", "message": "first"},
        ]
        routes = {("GET", f"/pipeline/projects/{PROJECT_ID}/logs"): (200, newest_first)}

        text, _, _ = call(handlers.handle_get_logs, {"project_id": PROJECT_ID, "limit": 2}, routes)

        assert [line.split(": ", 1)[1] for line in text.splitlines()] == ["second", "third"]

    def test_missing_brd(self):
        text, _, _ = call(handlers.handle_get_brd, {"project_id": PROJECT_ID}, {})
        assert text == "No BRD has been generated for this project yet."


class TestSearchAndSettings:
    REQUIREMENTS = [
        {"requirement_id": "REQ-001", "category": "functional", "priority": "high", "title": "Saved card payments",
         "description": "Stored cards", "confidence_score": 0.9},
        {"requirement_id": "REQ-002", "category": "performance", "priority": "medium", "title": "Fast checkout",
         "description": "Under two seconds", "confidence_score": 0.7},
    ]

    def _search(self, query, settings):
        api = FakeApi({("GET", f"/projects/{PROJECT_ID}/requirements"): (200, self.REQUIREMENTS)})

        async def _run():
            async with httpx.AsyncClient(base_url=BASE_URL, transport=httpx.MockTransport(api.handler)) as client:
                return await handlers.handle_search_requirements(
                    {"project_id": PROJECT_ID, "query": query}, client, settings
                )

        return asyncio.run(_run())[0].text

    def test_search_matches_and_records_query(self):
        settings = ClientSettings()

        text = self._search("SECONDS", settings)

        assert text.startswith("1 match(es) for 'SECONDS':")
        assert "REQ-002" in text
        assert settings.recent_searches == ["SECONDS"]

    def test_empty_query_lists_recent(self):
        settings = ClientSettings(recent_searches=["cards"])
        assert self._search("", settings) == "Enter a search query. Recent searches: cards"

    def test_update_settings(self):
        settings = ClientSettings(recent_searches=["cards"])

        text = handlers.handle_update_client_settings(
            {"theme": "light", "is_admin": True, "clear_recent_searches": True}, settings
        )[0].text

        assert settings.theme == "light"
        assert settings.is_admin is True
        assert settings.recent_searches == []
        assert "Admin view: on" in text


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
