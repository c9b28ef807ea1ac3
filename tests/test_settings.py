"""Tests for persisted console preferences."""
import pytest
from tracelayer_mcp.settings import MAX_RECENT_SEARCHES, ClientSettings


class TestRecentSearches:
    def test_most_recent_first_without_duplicates(self):
        settings = ClientSettings()
        for query in ("payments", "latency", "Payments"):
            settings.add_recent_search(query)

        assert settings.recent_searches == ["Payments", "latency"]

    def test_capped(self):
        settings = ClientSettings()
        for i in range(MAX_RECENT_SEARCHES + 5):
            settings.add_recent_search(f"query {i}")

        assert len(settings.recent_searches) == MAX_RECENT_SEARCHES
        assert settings.recent_searches[0] == f"query {MAX_RECENT_SEARCHES + 4}"

    def test_blank_ignored(self):
        settings = ClientSettings()
        settings.add_recent_search("   ")
        assert settings.recent_searches == []


class TestPersistence:
    def test_save_and_load(self, tmp_path):
        path = tmp_path / "nested" / "client_settings.json"
        settings = ClientSettings(theme="light", is_admin=True)
        settings.add_recent_search("checkout")

        settings.save(path)
        loaded = ClientSettings.load(path)

        assert loaded == settings

    def test_missing_file_gives_defaults(self, tmp_path):
        loaded = ClientSettings.load(tmp_path / "absent.json")
        assert loaded.theme == "dark"
        assert loaded.entered_app is False

    @pytest.mark.parametrize("content", ["{not json", '{"theme": "sepia"}'])
    def test_unreadable_file_gives_defaults(self, tmp_path, content):
        path = tmp_path / "client_settings.json"
        path.write_text(content, encoding="utf-8")

        assert ClientSettings.load(path) == ClientSettings()


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
