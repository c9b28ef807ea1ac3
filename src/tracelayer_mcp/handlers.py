"""MCP tool handlers for the TraceLayer console.

All handlers follow a consistent pattern:
- Accept: arguments dict, httpx.AsyncClient, and optional current_scope
- Return: tuple of (list[TextContent], Optional[dict]) where second element is updated scope
- Use formatters for consistent output
- Log all operations for debugging

The scope holds the selected project ({project_id, name}); tools taking a
project_id default to it. Client preferences are handled separately through
ClientSettings.
"""
from typing import Optional
import logging

import httpx
from mcp.types import TextContent

from . import formatters
from .settings import ClientSettings

logger = logging.getLogger("tracelayer-mcp.handlers")

# Projects with a start request in flight
_starting: set[str] = set()

CUSTOM_PROVIDER = "custom"


def _text(text: str) -> list[TextContent]:
    return [TextContent(type="text", text=text)]


def apply_project_scope_defaults(arguments: dict, current_scope: Optional[dict]) -> dict:
    """Fill in project_id from the selected project when the tool call omits it."""
    arguments = dict(arguments or {})
    if not arguments.get("project_id") and current_scope and current_scope.get("project_id"):
        arguments["project_id"] = current_scope["project_id"]
    return arguments


def _project_id(arguments: dict) -> str:
    project_id = arguments.get("project_id")
    if not project_id:
        raise ValueError("project_id is required (or select a project first with select_project)")
    return project_id


# ============================================================================
# Project & Source Handlers
# ============================================================================

async def handle_list_projects(
    arguments: dict,
    client: httpx.AsyncClient,
    current_scope: Optional[dict] = None
) -> tuple[list[TextContent], Optional[dict]]:
    """List projects, newest first."""
    params = {k: v for k, v in arguments.items() if v is not None}
    response = await client.get("/projects/", params=params)
    response.raise_for_status()
    result = response.json()
    logger.info(f"Successfully listed {result['total']} projects")

    items_text = "\n\n".join(formatters.format_project(p) for p in result["items"])
    summary = f"Found {result['total']} projects (page {result['page']} of {result['total_pages']})\n\n{items_text}"
    return _text(summary), current_scope


async def handle_create_project(
    arguments: dict,
    client: httpx.AsyncClient,
    current_scope: Optional[dict] = None
) -> tuple[list[TextContent], Optional[dict]]:
    response = await client.post("/projects/", json=arguments)
    response.raise_for_status()
    result = response.json()
    logger.info(f"Successfully created project: {result['name']} (ID: {result['id']})")
    return _text(f"Created project\n\n{formatters.format_project(result)}"), current_scope


async def handle_get_project(
    arguments: dict,
    client: httpx.AsyncClient,
    current_scope: Optional[dict] = None
) -> tuple[list[TextContent], Optional[dict]]:
    project_id = _project_id(arguments)
    response = await client.get(f"/projects/{project_id}")
    response.raise_for_status()
    result = response.json()
    logger.info(f"Retrieved project {result['name']}")
    return _text(formatters.format_project(result)), current_scope


async def handle_select_project(
    arguments: dict,
    client: httpx.AsyncClient,
    current_scope: Optional[dict] = None
) -> tuple[list[TextContent], Optional[dict]]:
    """Select the project that later tool calls default to.

    Returns:
        Tuple of (response content, updated project scope)
    """
    project_id = arguments["project_id"]
    response = await client.get(f"/projects/{project_id}")
    response.raise_for_status()
    result = response.json()

    new_scope = {"project_id": result["id"], "name": result["name"]}
    logger.info(f"Set project scope to: {result['name']}")
    return _text(
        f"Active project: {result['name']}\nProject ID: {result['id']}\n\n"
        f"Pipeline, conflict and sharing tools now default to this project."
    ), new_scope


async def handle_add_source(
    arguments: dict,
    client: httpx.AsyncClient,
    current_scope: Optional[dict] = None
) -> tuple[list[TextContent], Optional[dict]]:
    """Upload a communication source (email, transcript, chat log, document)."""
    project_id = _project_id(arguments)
    payload = {k: v for k, v in arguments.items() if k != "project_id" and v is not None}
    response = await client.post(f"/projects/{project_id}/sources", json=payload)
    response.raise_for_status()
    result = response.json()
    logger.info(f"Added source {result['name']} to project {project_id}")
    return _text(f"Added source\n{formatters.format_source(result)}"), current_scope


async def handle_list_sources(
    arguments: dict,
    client: httpx.AsyncClient,
    current_scope: Optional[dict] = None
) -> tuple[list[TextContent], Optional[dict]]:
    project_id = _project_id(arguments)
    response = await client.get(f"/projects/{project_id}/sources")
    response.raise_for_status()
    sources = response.json()
    if not sources:
        return _text("No sources uploaded yet."), current_scope
    text = f"{len(sources)} source(s):\n" + "\n".join(formatters.format_source(s) for s in sources)
    return _text(text), current_scope


async def handle_list_requirements(
    arguments: dict,
    client: httpx.AsyncClient,
    current_scope: Optional[dict] = None
) -> tuple[list[TextContent], Optional[dict]]:
    project_id = _project_id(arguments)
    response = await client.get(f"/projects/{project_id}/requirements")
    response.raise_for_status()
    requirements = response.json()
    if not requirements:
        return _text("No requirements extracted yet."), current_scope
    text = f"{len(requirements)} requirement(s):\n" + "\n".join(formatters.format_requirement(r) for r in requirements)
    return _text(text), current_scope


async def handle_get_brd(
    arguments: dict,
    client: httpx.AsyncClient,
    current_scope: Optional[dict] = None
) -> tuple[list[TextContent], Optional[dict]]:
    """Latest generated BRD of the project, rendered section by section."""
    project_id = _project_id(arguments)
    response = await client.get(f"/projects/{project_id}/documents/latest")
    if response.status_code == 404:
        return _text("No BRD has been generated for this project yet."), current_scope
    response.raise_for_status()
    document = response.json()
    sections = [formatters.format_brd_section(s) for s in document["content"]["sections"]]
    header = f"BRD v{document['version']} ({document['status']}, generated {document['generated_at']})"
    return _text("\n\n".join([header, *sections])), current_scope


async def handle_search_requirements(
    arguments: dict,
    client: httpx.AsyncClient,
    settings: ClientSettings,
) -> list[TextContent]:
    """Search requirement titles and descriptions; the query is kept in recent searches."""
    project_id = _project_id(arguments)
    query = (arguments.get("query") or "").strip()
    if not query:
        recent = ", ".join(settings.recent_searches) or "none"
        return _text(f"Enter a search query. Recent searches: {recent}")

    settings.add_recent_search(query)
    response = await client.get(f"/projects/{project_id}/requirements")
    response.raise_for_status()
    needle = query.lower()
    matches = [
        r for r in response.json()
        if needle in r["title"].lower() or needle in (r.get("description") or "").lower()
    ]
    logger.info(f"Search '{query}' matched {len(matches)} requirement(s)")
    if not matches:
        return _text(f"No requirements match '{query}'.")
    return _text(f"{len(matches)} match(es) for '{query}':\n" + "\n".join(formatters.format_requirement(r) for r in matches))


# ============================================================================
# Pipeline Handlers
# ============================================================================

async def handle_start_pipeline(
    arguments: dict,
    client: httpx.AsyncClient,
    current_scope: Optional[dict] = None
) -> tuple[list[TextContent], Optional[dict]]:
    """Start an extraction run.

    Guards:
    - custom provider, or no usable stored key and none supplied: nothing is sent
    - no sources and no connected integrations: a warning is shown and the
      request is still sent
    """
    project_id = _project_id(arguments)
    if project_id in _starting:
        return _text("A start request for this project is already in flight."), current_scope

    provider = arguments.get("provider")
    if provider == CUSTOM_PROVIDER:
        return _text(
            "The custom provider cannot run the pipeline. Choose openai, anthropic or gemini."
        ), current_scope

    warnings = []
    api_key = arguments.get("api_key")
    if not api_key:
        keys_response = await client.get("/api-keys/")
        keys_response.raise_for_status()
        # Custom keys are never used for pipeline runs
        usable = [k["provider"] for k in keys_response.json() if k.get("provider") != CUSTOM_PROVIDER]
        if not usable:
            logger.info(f"Start skipped for project {project_id}: no API key configured")
            return _text(
                "No API key configured. Store a provider key with store_api_key before starting the pipeline."
            ), current_scope
        if provider and provider not in usable:
            warnings.append(f"No {provider} key stored; the run will use the stored {usable[0]} key.")

    sources_response = await client.get(f"/projects/{project_id}/sources")
    sources_response.raise_for_status()
    integrations_response = await client.get("/integrations/", params={"connected_only": True})
    integrations_response.raise_for_status()
    if not sources_response.json() and not integrations_response.json():
        warnings.append(
            "Warning: this project has no sources and no connected integrations. "
            "The run will fail at ingestion unless sources are added."
        )

    payload = {
        "provider": arguments.get("provider"),
        "api_key": api_key,
        "regenerate": bool(arguments.get("regenerate", False)),
    }
    _starting.add(project_id)
    try:
        response = await client.post(f"/pipeline/projects/{project_id}/start", json=payload)
        response.raise_for_status()
        result = response.json()
    except httpx.HTTPError as e:
        logger.error(f"Failed to start pipeline for project {project_id}: {e}")
        raise
    finally:
        _starting.discard(project_id)

    logger.info(f"Started run {result['run_id']} for project {project_id}")
    text = f"Pipeline started (run {result['run_id']}, provider {result.get('provider')}, status {result['status']})."
    return _text("\n\n".join([*warnings, text])), current_scope


async def handle_cancel_pipeline(
    arguments: dict,
    client: httpx.AsyncClient,
    current_scope: Optional[dict] = None
) -> tuple[list[TextContent], Optional[dict]]:
    project_id = _project_id(arguments)
    response = await client.post(f"/pipeline/projects/{project_id}/cancel")
    response.raise_for_status()
    result = response.json()
    logger.info(f"Cancelled {result['cancelled_count']} run(s) for project {project_id}")
    if result["cancelled_count"] == 0:
        return _text("No active run to cancel."), current_scope
    return _text(
        f"Cancelled {result['cancelled_count']} run(s). Data extracted so far is kept."
    ), current_scope


async def handle_pipeline_status(
    arguments: dict,
    client: httpx.AsyncClient,
    current_scope: Optional[dict] = None
) -> tuple[list[TextContent], Optional[dict]]:
    """Latest run with its stage indicator and terminal log view."""
    project_id = _project_id(arguments)
    response = await client.get(f"/pipeline/projects/{project_id}/latest-run")
    response.raise_for_status()
    run = response.json()
    logs = []
    if run:
        logs_response = await client.get(f"/pipeline/runs/{run['id']}/logs")
        logs_response.raise_for_status()
        logs = logs_response.json()
    return _text(formatters.format_pipeline_status(run, logs)), current_scope


async def handle_get_logs(
    arguments: dict,
    client: httpx.AsyncClient,
    current_scope: Optional[dict] = None
) -> tuple[list[TextContent], Optional[dict]]:
    """Recent project log entries (shown oldest to newest)."""
    project_id = _project_id(arguments)
    response = await client.get(f"/pipeline/projects/{project_id}/logs")
    response.raise_for_status()
    logs = list(reversed(response.json()))
    limit = arguments.get("limit")
    if limit:
        logs = logs[-int(limit):]
    return _text(formatters.format_terminal(logs)), current_scope


async def handle_run_history(
    arguments: dict,
    client: httpx.AsyncClient,
    current_scope: Optional[dict] = None
) -> tuple[list[TextContent], Optional[dict]]:
    project_id = _project_id(arguments)
    response = await client.get(f"/pipeline/projects/{project_id}/runs")
    response.raise_for_status()
    return _text(formatters.format_run_history(response.json())), current_scope


async def handle_clear_run_history(
    arguments: dict,
    client: httpx.AsyncClient,
    current_scope: Optional[dict] = None
) -> tuple[list[TextContent], Optional[dict]]:
    project_id = _project_id(arguments)
    keep_latest = int(arguments.get("keep_latest", 1))
    response = await client.post(
        f"/pipeline/projects/{project_id}/clear-history", json={"keep_latest": keep_latest}
    )
    response.raise_for_status()
    result = response.json()
    logger.info(f"Cleared {result['deleted']} run(s) for project {project_id}")
    return _text(f"Deleted {result['deleted']} run(s); kept the latest {keep_latest}."), current_scope


async def handle_diagnostics(
    arguments: dict,
    client: httpx.AsyncClient,
    current_scope: Optional[dict] = None
) -> tuple[list[TextContent], Optional[dict]]:
    project_id = _project_id(arguments)
    response = await client.get(f"/pipeline/projects/{project_id}/diagnostics")
    response.raise_for_status()
    return _text(formatters.format_diagnostics(response.json())), current_scope


async def handle_preflight(
    arguments: dict,
    client: httpx.AsyncClient,
    current_scope: Optional[dict] = None
) -> tuple[list[TextContent], Optional[dict]]:
    project_id = _project_id(arguments)
    response = await client.get(f"/pipeline/projects/{project_id}/preflight")
    response.raise_for_status()
    return _text(formatters.format_preflight(response.json())), current_scope


# ============================================================================
# Conflict Handlers
# ============================================================================

async def handle_list_conflicts(
    arguments: dict,
    client: httpx.AsyncClient,
    current_scope: Optional[dict] = None
) -> tuple[list[TextContent], Optional[dict]]:
    project_id = _project_id(arguments)
    response = await client.get(f"/conflicts/projects/{project_id}")
    response.raise_for_status()
    result = response.json()
    logger.info(f"Listed {len(result['items'])} conflicts for project {project_id}")
    return _text(formatters.format_conflict_list(result["items"])), current_scope


async def _settle_conflict(arguments: dict, client: httpx.AsyncClient, action: str) -> list[TextContent]:
    resolution = (arguments.get("resolution") or "").strip()
    if not resolution:
        return _text("A resolution text is required. Nothing was changed.")

    conflict_id = arguments["conflict_id"]
    response = await client.post(f"/conflicts/{conflict_id}/{action}", json={"resolution": resolution})
    response.raise_for_status()
    result = response.json()
    logger.info(f"Conflict {result['conflict_id']} marked {result['status']}")
    return _text(f"Conflict {result['conflict_id']} marked {result['status']}.\n\n{formatters.format_conflict(result)}")


async def handle_resolve_conflict(
    arguments: dict,
    client: httpx.AsyncClient,
    current_scope: Optional[dict] = None
) -> tuple[list[TextContent], Optional[dict]]:
    """Resolve a conflict. A blank resolution is rejected before any request."""
    return await _settle_conflict(arguments, client, "resolve"), current_scope


async def handle_accept_conflict(
    arguments: dict,
    client: httpx.AsyncClient,
    current_scope: Optional[dict] = None
) -> tuple[list[TextContent], Optional[dict]]:
    """Accept a conflict as a known trade-off. Requires a rationale."""
    return await _settle_conflict(arguments, client, "accept"), current_scope


async def handle_review_conflict(
    arguments: dict,
    client: httpx.AsyncClient,
    current_scope: Optional[dict] = None
) -> tuple[list[TextContent], Optional[dict]]:
    conflict_id = arguments["conflict_id"]
    response = await client.put(f"/conflicts/{conflict_id}/status", json={"status": "reviewing"})
    response.raise_for_status()
    result = response.json()
    return _text(f"Conflict {result['conflict_id']} is under review."), current_scope


# ============================================================================
# Sharing Handlers
# ============================================================================

async def handle_create_share_link(
    arguments: dict,
    client: httpx.AsyncClient,
    current_scope: Optional[dict] = None
) -> tuple[list[TextContent], Optional[dict]]:
    project_id = _project_id(arguments)
    payload = {k: v for k, v in arguments.items() if k != "project_id" and v is not None}
    response = await client.post(f"/sharing/projects/{project_id}/links", json=payload)
    response.raise_for_status()
    result = response.json()
    logger.info(f"Created share link {result['id']} for project {project_id}")
    return _text(f"Share link created. Token: {result['token']}"), current_scope


async def handle_list_share_links(
    arguments: dict,
    client: httpx.AsyncClient,
    current_scope: Optional[dict] = None
) -> tuple[list[TextContent], Optional[dict]]:
    project_id = _project_id(arguments)
    response = await client.get(f"/sharing/projects/{project_id}/links")
    response.raise_for_status()
    links = response.json()
    if not links:
        return _text("No share links."), current_scope
    return _text("\n".join(formatters.format_share_link(link) for link in links)), current_scope


async def handle_revoke_share_link(
    arguments: dict,
    client: httpx.AsyncClient,
    current_scope: Optional[dict] = None
) -> tuple[list[TextContent], Optional[dict]]:
    link_id = arguments["link_id"]
    response = await client.post(f"/sharing/links/{link_id}/revoke")
    response.raise_for_status()
    return _text(f"Revoked share link {response.json()['token']}."), current_scope


async def handle_open_shared_view(
    arguments: dict,
    client: httpx.AsyncClient,
    current_scope: Optional[dict] = None
) -> tuple[list[TextContent], Optional[dict]]:
    """Open a shared BRD by token.

    A successful load records exactly one access; error results record none.
    """
    token = arguments["token"]
    response = await client.get(f"/sharing/shared/{token}")
    response.raise_for_status()
    snapshot = response.json()

    if not snapshot.get("error"):
        access = await client.post(f"/sharing/shared/{token}/access")
        access.raise_for_status()
        logger.info("Recorded shared view access")
    else:
        logger.info(f"Shared view unavailable: {snapshot['error']}")

    return _text(formatters.format_shared_view(snapshot)), current_scope


# ============================================================================
# API Key Handlers
# ============================================================================

async def handle_store_api_key(
    arguments: dict,
    client: httpx.AsyncClient,
    current_scope: Optional[dict] = None
) -> tuple[list[TextContent], Optional[dict]]:
    response = await client.post("/api-keys/", json={"provider": arguments["provider"], "key": arguments["key"]})
    response.raise_for_status()
    result = response.json()
    logger.info(f"Stored {result['provider']} API key")
    return _text(f"Stored {result['provider']} key {result['key_preview']}. Previous {result['provider']} key deactivated."), current_scope


# ============================================================================
# Client Settings
# ============================================================================

def handle_get_client_settings(arguments: dict, settings: ClientSettings) -> list[TextContent]:
    recent = ", ".join(settings.recent_searches) or "none"
    return _text(
        f"Theme: {settings.theme}\n"
        f"Admin view: {'on' if settings.is_admin else 'off'}\n"
        f"Entered app: {'yes' if settings.entered_app else 'no'}\n"
        f"Recent searches: {recent}"
    )


def handle_update_client_settings(arguments: dict, settings: ClientSettings) -> list[TextContent]:
    """Update preferences in place; omitted fields are left unchanged."""
    if arguments.get("theme") is not None:
        settings.theme = arguments["theme"]
    if arguments.get("is_admin") is not None:
        settings.is_admin = bool(arguments["is_admin"])
    if arguments.get("entered_app") is not None:
        settings.entered_app = bool(arguments["entered_app"])
    if arguments.get("clear_recent_searches"):
        settings.clear_recent_searches()
    return handle_get_client_settings(arguments, settings)
