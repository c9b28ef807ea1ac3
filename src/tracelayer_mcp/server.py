"""TraceLayer MCP Server - Expose the requirements pipeline to AI assistants."""
import os
import sys
import asyncio
import logging
import traceback
from typing import Any, Optional

import httpx
from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import (
    Tool,
    TextContent,
    ImageContent,
    EmbeddedResource,
)

from . import tools
from . import handlers
from .settings import ClientSettings, default_settings_path


# Configure logging to stderr (stdout carries the MCP stream)
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    stream=sys.stderr,
    force=True
)
logger = logging.getLogger("tracelayer-mcp")

# API Configuration
API_BASE_URL = os.getenv("API_BASE_URL", "http://localhost:8000/api/v1")

logger.info(f"MCP Server starting with API_BASE_URL: {API_BASE_URL}")


# MCP Server instance
app = Server("tracelayer-mcp")

# Session state: the selected project, per stdio connection
_session_project_scope: Optional[dict] = None
_client_settings_path = default_settings_path()
_client_settings = ClientSettings.load(_client_settings_path)

# Map tool names to handler functions
HANDLER_MAP = {
    # Project handlers
    "list_projects": handlers.handle_list_projects,
    "get_project": handlers.handle_get_project,
    "create_project": handlers.handle_create_project,
    "select_project": handlers.handle_select_project,
    # Source handlers
    "add_source": handlers.handle_add_source,
    "list_sources": handlers.handle_list_sources,
    # Extracted data handlers
    "list_requirements": handlers.handle_list_requirements,
    "get_brd": handlers.handle_get_brd,
    # Pipeline handlers
    "start_pipeline": handlers.handle_start_pipeline,
    "cancel_pipeline": handlers.handle_cancel_pipeline,
    "pipeline_status": handlers.handle_pipeline_status,
    "get_logs": handlers.handle_get_logs,
    "run_history": handlers.handle_run_history,
    "clear_run_history": handlers.handle_clear_run_history,
    "get_diagnostics": handlers.handle_diagnostics,
    "run_preflight": handlers.handle_preflight,
    # Conflict handlers
    "list_conflicts": handlers.handle_list_conflicts,
    "resolve_conflict": handlers.handle_resolve_conflict,
    "accept_conflict": handlers.handle_accept_conflict,
    "review_conflict": handlers.handle_review_conflict,
    # Sharing handlers
    "create_share_link": handlers.handle_create_share_link,
    "list_share_links": handlers.handle_list_share_links,
    "revoke_share_link": handlers.handle_revoke_share_link,
    "open_shared_view": handlers.handle_open_shared_view,
    # API key handlers
    "store_api_key": handlers.handle_store_api_key,
}

# Handlers working on client preferences instead of the project scope
SETTINGS_HANDLERS = {
    "get_client_settings": handlers.handle_get_client_settings,
    "update_client_settings": handlers.handle_update_client_settings,
}


@app.list_tools()
async def list_tools() -> list[Tool]:
    """List available MCP tools."""
    return tools.get_tools()


@app.call_tool()
async def call_tool(name: str, arguments: Any) -> list[TextContent | ImageContent | EmbeddedResource]:
    """Handle MCP tool calls by delegating to handlers."""
    global _session_project_scope

    logger.info(f"Tool call: {name} with arguments: {arguments}")

    if name in SETTINGS_HANDLERS:
        content = SETTINGS_HANDLERS[name](arguments or {}, _client_settings)
        if name == "update_client_settings":
            _client_settings.save(_client_settings_path)
        return content

    # Apply project scope defaults to arguments
    arguments = handlers.apply_project_scope_defaults(arguments, _session_project_scope)

    async with httpx.AsyncClient(base_url=API_BASE_URL, timeout=30.0) as client:
        try:
            if name == "search_requirements":
                content = await handlers.handle_search_requirements(arguments, client, _client_settings)
                _client_settings.save(_client_settings_path)
                return content

            handler = HANDLER_MAP.get(name)
            if not handler:
                logger.warning(f"Unknown tool requested: {name}")
                return [TextContent(type="text", text=f"Unknown tool: {name}")]

            # Handlers return (content, scope_update); None or the same scope means no change
            content, scope_update = await handler(arguments, client, _session_project_scope)
            if scope_update is not None and scope_update is not _session_project_scope:
                _session_project_scope = scope_update
                logger.info(f"Updated project scope to: {scope_update.get('name')}")

            return content

        except httpx.HTTPStatusError as e:
            logger.error(f"HTTP error during {name} call:")
            logger.error(f"  Status: {e.response.status_code}")
            logger.error(f"  URL: {e.request.url}")
            try:
                response_body = e.response.json()
                logger.error(f"  Response body: {response_body}")
                error_detail = response_body.get("detail", str(e))
            except ValueError:
                response_text = e.response.text
                logger.error(f"  Response text: {response_text}")
                error_detail = response_text or str(e)
            return [TextContent(type="text", text=f"Error: {error_detail}")]

        except httpx.RequestError as e:
            # Network/connection errors
            logger.error(f"Request error during {name} call: {type(e).__name__}: {e}")
            return [TextContent(type="text", text=f"Error: Connection failed - {str(e)}")]

        except Exception as e:
            # Catch-all for unexpected errors
            logger.error(f"Unexpected error during {name} call:")
            logger.error(f"  Error type: {type(e).__name__}")
            logger.error(f"  Error message: {str(e)}")
            logger.error(f"  Arguments: {arguments}")
            logger.error(f"  Traceback:\n{traceback.format_exc()}")
            return [TextContent(type="text", text=f"Error: {type(e).__name__}: {str(e)}")]


async def main():
    """Run the MCP server over stdio."""
    async with stdio_server() as (read_stream, write_stream):
        await app.run(read_stream, write_stream, app.create_initialization_options())


def run():
    """Console script entry point."""
    asyncio.run(main())


if __name__ == "__main__":
    run()
