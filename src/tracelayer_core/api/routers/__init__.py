"""API routers for TraceLayer Core."""

from . import projects, pipeline, conflicts, sharing, api_keys, integrations

__all__ = ["projects", "pipeline", "conflicts", "sharing", "api_keys", "integrations"]
