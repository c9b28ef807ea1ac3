"""Client-side preferences of the TraceLayer console.

Preferences live in a ClientSettings object that the server loads once at
start-up and passes to the handlers that need it; there is no module-level
mutable state. The object is persisted as a small JSON file.
"""
import json
import logging
import os
from pathlib import Path
from typing import Literal, Optional

from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger("tracelayer-mcp.settings")

MAX_RECENT_SEARCHES = 10
DEFAULT_SETTINGS_PATH = Path.home() / ".tracelayer" / "client_settings.json"


def default_settings_path() -> Path:
    return Path(os.getenv("TRACELAYER_CLIENT_SETTINGS", str(DEFAULT_SETTINGS_PATH)))


class ClientSettings(BaseModel):
    """Theme, recent searches, entered-app flag and admin flag.

    The admin flag is a display preference only; the API has no notion of
    users or roles.
    """

    theme: Literal["dark", "light"] = "dark"
    recent_searches: list[str] = Field(default_factory=list)
    entered_app: bool = False
    is_admin: bool = False

    def add_recent_search(self, query: str) -> None:
        """Record a search, most recent first, without duplicates."""
        query = query.strip()
        if not query:
            return
        searches = [s for s in self.recent_searches if s.lower() != query.lower()]
        self.recent_searches = [query, *searches][:MAX_RECENT_SEARCHES]

    def clear_recent_searches(self) -> None:
        self.recent_searches = []

    @classmethod
    def load(cls, path: Optional[Path] = None) -> "ClientSettings":
        """Load settings from path; missing or unreadable files yield defaults."""
        path = Path(path) if path else default_settings_path()
        if not path.exists():
            return cls()
        try:
            return cls.model_validate(json.loads(path.read_text(encoding="utf-8")))
        except (OSError, ValueError, ValidationError) as e:
            logger.warning(f"Ignoring unreadable client settings at {path}: {e}")
            return cls()

    def save(self, path: Optional[Path] = None) -> Path:
        path = Path(path) if path else default_settings_path()
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.model_dump_json(indent=2), encoding="utf-8")
        return path
