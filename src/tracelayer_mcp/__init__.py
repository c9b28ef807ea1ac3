"""TraceLayer MCP Server - Model Context Protocol integration.

This package exposes the TraceLayer API to AI assistants: projects and
sources, the extraction pipeline, conflicts, sharing and client preferences.

Modules:
- server: stdio MCP server implementation
- formatters: Response formatting utilities
- tools: MCP tool definitions
- handlers: Tool implementation handlers
- settings: Client-side preferences
"""

__version__ = "1.0.0"

from . import formatters
from . import tools
from . import handlers
from . import settings

__all__ = ["formatters", "tools", "handlers", "settings", "__version__"]
