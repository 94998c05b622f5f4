"""Tests for chatsync.config settings loading."""
import pytest

from chatsync import config
from chatsync.config import AppSettings, get_config, load_settings, reset_config


@pytest.fixture(autouse=True)
def _fresh_config():
    reset_config()
    yield
    reset_config()


class TestLoadSettings:
    def test_missing_file_gives_defaults(self, tmp_path, caplog):
        settings = load_settings(tmp_path / "absent.yaml")

        assert settings == AppSettings()
        assert settings.api.base_url == "http://localhost:5000/api"
        assert settings.typing.timeout_seconds == 3.0
        assert settings.search.debounce_seconds == 0.5
        assert "Config file not found" in caplog.text

    def test_empty_file_gives_defaults(self, tmp_path):
        path = tmp_path / "chatsync.settings.yaml"
        path.write_text("")

        assert load_settings(path) == AppSettings()

    def test_sections_override_defaults(self, tmp_path):
        path = tmp_path / "chatsync.settings.yaml"
        path.write_text(
            "api:\n"
            "  base_url: https://chat.example.com/api/\n"
            "  timeout_seconds: 5\n"
            "connection:\n"
            "  url: wss://chat.example.com/ws\n"
            "typing:\n"
            "  timeout_seconds: 1.5\n"
            "logging:\n"
            "  level: debug\n"
        )

        settings = load_settings(path)

        assert settings.api.base_url == "https://chat.example.com/api"
        assert settings.api.timeout_seconds == 5.0
        assert settings.connection.url == "wss://chat.example.com/ws"
        assert settings.connection.reconnect_max_delay == 30.0
        assert settings.typing.timeout_seconds == 1.5
        assert settings.logging.level == "debug"


class TestGetConfig:
    def test_is_cached_until_reset(self, tmp_path, monkeypatch):
        path = tmp_path / "chatsync.settings.yaml"
        path.write_text("search:\n  debounce_seconds: 0.25\n")
        monkeypatch.setattr(config, "SETTINGS_FILE", path)

        first = get_config()
        path.write_text("search:\n  debounce_seconds: 1.0\n")

        assert get_config() is first
        reset_config()
        assert get_config().search.debounce_seconds == 1.0
