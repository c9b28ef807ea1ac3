"""MCP tool definitions for the TraceLayer console.

This module provides the definitive list of MCP tools exposed by the stdio server.
"""

from mcp.types import Tool

_PROJECT_ID = {
    "type": "string",
    "description": "UUID of the project (defaults to the project chosen with select_project)"
}


def get_tools() -> list[Tool]:
    """Get the list of all MCP tools for TraceLayer."""
    return [
        # ============================================================================
        # Project Tools
        # ============================================================================
        Tool(
            name="list_projects",
            description="List projects, newest first, with their extraction counts. "
                       "Common pattern: list_projects() → select_project(project_id=...) → add_source → start_pipeline.",
            inputSchema={
                "type": "object",
                "properties": {
                    "page": {
                        "type": "integer",
                        "description": "Page number (default: 1)"
                    },
                    "page_size": {
                        "type": "integer",
                        "description": "Items per page (default: 50, max: 100)"
                    }
                }
            }
        ),
        Tool(
            name="get_project",
            description="Get a project with its status, progress and counts. Errors: 404 (not found).",
            inputSchema={
                "type": "object",
                "properties": {"project_id": _PROJECT_ID}
            }
        ),
        Tool(
            name="create_project",
            description="Create a new project. A color is assigned from the palette when omitted.",
            inputSchema={
                "type": "object",
                "properties": {
                    "name": {
                        "type": "string",
                        "description": "Project name"
                    },
                    "description": {
                        "type": "string",
                        "description": "Short description of the initiative"
                    },
                    "output_format": {
                        "type": "string",
                        "enum": ["brd", "prd", "both"],
                        "description": "Document format to generate (default: brd)"
                    },
                    "color": {
                        "type": "string",
                        "description": "Display color (optional)"
                    }
                },
                "required": ["name"]
            }
        ),
        Tool(
            name="select_project",
            description="Set the active project. Later tool calls that take project_id default to it.",
            inputSchema={
                "type": "object",
                "properties": {
                    "project_id": {
                        "type": "string",
                        "description": "UUID of the project to select"
                    }
                },
                "required": ["project_id"]
            }
        ),
        # ============================================================================
        # Source Tools
        # ============================================================================
        Tool(
            name="add_source",
            description="Upload a communication source to a project. Word count is computed on upload.",
            inputSchema={
                "type": "object",
                "properties": {
                    "project_id": _PROJECT_ID,
                    "name": {
                        "type": "string",
                        "description": "Display name, e.g. 'Kickoff meeting transcript'"
                    },
                    "type": {
                        "type": "string",
                        "enum": ["email", "meeting_transcript", "chat_log", "document", "uploaded_file"],
                        "description": "Kind of source"
                    },
                    "content": {
                        "type": "string",
                        "description": "Full text of the source"
                    },
                    "metadata": {
                        "type": "object",
                        "description": "Optional author, date, channel, subject and participants"
                    }
                },
                "required": ["name", "type", "content"]
            }
        ),
        Tool(
            name="list_sources",
            description="List the sources of a project with their processing status.",
            inputSchema={
                "type": "object",
                "properties": {"project_id": _PROJECT_ID}
            }
        ),
        # ============================================================================
        # Extracted Data Tools
        # ============================================================================
        Tool(
            name="list_requirements",
            description="List extracted requirements (REQ-001, REQ-002, ...) with category, priority and confidence.",
            inputSchema={
                "type": "object",
                "properties": {"project_id": _PROJECT_ID}
            }
        ),
        Tool(
            name="search_requirements",
            description="Search requirement titles and descriptions. The query is added to recent searches.",
            inputSchema={
                "type": "object",
                "properties": {
                    "project_id": _PROJECT_ID,
                    "query": {
                        "type": "string",
                        "description": "Case-insensitive text to look for"
                    }
                },
                "required": ["query"]
            }
        ),
        Tool(
            name="get_brd",
            description="Show the latest generated Business Requirements Document of a project.",
            inputSchema={
                "type": "object",
                "properties": {"project_id": _PROJECT_ID}
            }
        ),
        # ============================================================================
        # Pipeline Tools
        # ============================================================================
        Tool(
            name="start_pipeline",
            description="Start the extraction pipeline. Does nothing when no API key is stored and none is given. "
                       "Warns (but still starts) when the project has no sources and no connected integrations. "
                       "Errors: 409 (a run is already active).",
            inputSchema={
                "type": "object",
                "properties": {
                    "project_id": _PROJECT_ID,
                    "provider": {
                        "type": "string",
                        "enum": ["openai", "anthropic", "gemini"],
                        "description": "LLM provider (defaults to the stored key's provider)"
                    },
                    "api_key": {
                        "type": "string",
                        "description": "Use this key instead of the stored one"
                    },
                    "regenerate": {
                        "type": "boolean",
                        "description": "Clear previously extracted data before running (default: false)"
                    }
                }
            }
        ),
        Tool(
            name="cancel_pipeline",
            description="Cancel the active run. Data extracted so far is kept.",
            inputSchema={
                "type": "object",
                "properties": {"project_id": _PROJECT_ID}
            }
        ),
        Tool(
            name="pipeline_status",
            description="Show the latest run with its stage indicator and log output.",
            inputSchema={
                "type": "object",
                "properties": {"project_id": _PROJECT_ID}
            }
        ),
        Tool(
            name="get_logs",
            description="Show recent agent log entries of a project in terminal style.",
            inputSchema={
                "type": "object",
                "properties": {
                    "project_id": _PROJECT_ID,
                    "limit": {
                        "type": "integer",
                        "description": "Only show the last N entries"
                    }
                }
            }
        ),
        Tool(
            name="run_history",
            description="List past runs: completed (emerald, with requirement count), failed (red), cancelled (amber).",
            inputSchema={
                "type": "object",
                "properties": {"project_id": _PROJECT_ID}
            }
        ),
        Tool(
            name="clear_run_history",
            description="Delete old runs and their logs, keeping the most recent ones.",
            inputSchema={
                "type": "object",
                "properties": {
                    "project_id": _PROJECT_ID,
                    "keep_latest": {
                        "type": "integer",
                        "description": "Number of most recent runs to keep (default: 1)"
                    }
                }
            }
        ),
        Tool(
            name="get_diagnostics",
            description="Source, extraction, quality, run and error statistics for a project.",
            inputSchema={
                "type": "object",
                "properties": {"project_id": _PROJECT_ID}
            }
        ),
        Tool(
            name="run_preflight",
            description="Check readiness before starting the pipeline (API key, sources, integrations, ...).",
            inputSchema={
                "type": "object",
                "properties": {"project_id": _PROJECT_ID}
            }
        ),
        # ============================================================================
        # Conflict Tools
        # ============================================================================
        Tool(
            name="list_conflicts",
            description="List conflicts, unresolved first then by severity, with the BRD accuracy percentage.",
            inputSchema={
                "type": "object",
                "properties": {"project_id": _PROJECT_ID}
            }
        ),
        Tool(
            name="resolve_conflict",
            description="Resolve a conflict. A non-empty resolution text is required.",
            inputSchema={
                "type": "object",
                "properties": {
                    "conflict_id": {
                        "type": "string",
                        "description": "UUID of the conflict"
                    },
                    "resolution": {
                        "type": "string",
                        "description": "How the conflict was resolved"
                    }
                },
                "required": ["conflict_id", "resolution"]
            }
        ),
        Tool(
            name="accept_conflict",
            description="Accept a conflict as a known trade-off. A non-empty rationale is required.",
            inputSchema={
                "type": "object",
                "properties": {
                    "conflict_id": {
                        "type": "string",
                        "description": "UUID of the conflict"
                    },
                    "resolution": {
                        "type": "string",
                        "description": "Why the trade-off is acceptable"
                    }
                },
                "required": ["conflict_id", "resolution"]
            }
        ),
        Tool(
            name="review_conflict",
            description="Mark an unresolved conflict as under review. Errors: 400 (already settled).",
            inputSchema={
                "type": "object",
                "properties": {
                    "conflict_id": {
                        "type": "string",
                        "description": "UUID of the conflict"
                    }
                },
                "required": ["conflict_id"]
            }
        ),
        # ============================================================================
        # Sharing Tools
        # ============================================================================
        Tool(
            name="create_share_link",
            description="Create a read-only share link for a project's BRD.",
            inputSchema={
                "type": "object",
                "properties": {
                    "project_id": _PROJECT_ID,
                    "permission": {
                        "type": "string",
                        "enum": ["view", "comment", "edit"],
                        "description": "Permission granted by the link (default: view)"
                    },
                    "password": {
                        "type": "string",
                        "description": "Optional password (stored, not enforced)"
                    },
                    "expires_in_days": {
                        "type": "number",
                        "description": "Days until the link expires (never when omitted)"
                    }
                }
            }
        ),
        Tool(
            name="list_share_links",
            description="List the share links of a project, newest first.",
            inputSchema={
                "type": "object",
                "properties": {"project_id": _PROJECT_ID}
            }
        ),
        Tool(
            name="revoke_share_link",
            description="Revoke a share link. Revoked tokens show 'not found' to viewers.",
            inputSchema={
                "type": "object",
                "properties": {
                    "link_id": {
                        "type": "string",
                        "description": "UUID of the share link"
                    }
                },
                "required": ["link_id"]
            }
        ),
        Tool(
            name="open_shared_view",
            description="Open a shared BRD by token, as an external viewer would. Records one access on success.",
            inputSchema={
                "type": "object",
                "properties": {
                    "token": {
                        "type": "string",
                        "description": "Share token"
                    }
                },
                "required": ["token"]
            }
        ),
        # ============================================================================
        # Settings Tools
        # ============================================================================
        Tool(
            name="store_api_key",
            description="Store an LLM provider key. The previous key for that provider is deactivated.",
            inputSchema={
                "type": "object",
                "properties": {
                    "provider": {
                        "type": "string",
                        "enum": ["openai", "anthropic", "gemini"],
                        "description": "Provider the key belongs to"
                    },
                    "key": {
                        "type": "string",
                        "description": "The API key"
                    }
                },
                "required": ["provider", "key"]
            }
        ),
        Tool(
            name="get_client_settings",
            description="Show console preferences: theme, admin view, recent searches.",
            inputSchema={
                "type": "object",
                "properties": {}
            }
        ),
        Tool(
            name="update_client_settings",
            description="Update console preferences. Omitted fields are left unchanged.",
            inputSchema={
                "type": "object",
                "properties": {
                    "theme": {
                        "type": "string",
                        "enum": ["dark", "light"],
                        "description": "Color theme"
                    },
                    "is_admin": {
                        "type": "boolean",
                        "description": "Show admin views"
                    },
                    "entered_app": {
                        "type": "boolean",
                        "description": "Whether the landing screen has been passed"
                    },
                    "clear_recent_searches": {
                        "type": "boolean",
                        "description": "Forget recent searches"
                    }
                }
            }
        ),
    ]
