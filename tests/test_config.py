"""Tests for service settings defaults and environment overrides."""
import pytest
from tracelayer_core.config import Settings


class TestDatabaseUrl:
    def test_default_names_installed_driver(self, monkeypatch):
        monkeypatch.delenv("TRACELAYER_DATABASE_URL", raising=False)

        settings = Settings(_env_file=None)

        assert settings.database_url.startswith("postgresql+psycopg2://")

    def test_environment_override(self, monkeypatch):
        monkeypatch.setenv("TRACELAYER_DATABASE_URL", "sqlite:///tracelayer.db")

        assert Settings(_env_file=None).database_url == "sqlite:///tracelayer.db"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
