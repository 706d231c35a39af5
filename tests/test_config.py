"""Tests for Settings loading and structlog setup."""

from __future__ import annotations

import structlog

from ctxsync import config as config_module
from ctxsync.config import Settings
from ctxsync.logging_config import configure_logging


class TestSettings:
    def test_defaults(self, monkeypatch):
        monkeypatch.setattr(config_module, "_load_keys_json", lambda: {})
        s = Settings(_env_file=None)
        assert s.callback_host == "127.0.0.1"
        assert s.callback_timeout_s == 300.0
        assert not s.require_core_ids
        assert not s.serialize_sync_attempts

    def test_env_override_and_trailing_slash(self, monkeypatch):
        monkeypatch.setattr(config_module, "_load_keys_json", lambda: {})
        monkeypatch.setenv("CTXSYNC_WEB_BASE_URL", "https://staging.example.com/")
        monkeypatch.setenv("CTXSYNC_CALLBACK_TIMEOUT_S", "12.5")
        s = Settings(_env_file=None)
        assert s.web_base_url == "https://staging.example.com"
        assert s.callback_timeout_s == 12.5

    def test_keys_json_fallback(self, monkeypatch):
        monkeypatch.delenv("CTXSYNC_ACCESS_TOKEN", raising=False)
        monkeypatch.setattr(
            config_module, "_load_keys_json", lambda: {"ctxsync": {"access_token": "from-keys"}},
        )
        assert Settings(_env_file=None).access_token == "from-keys"

    def test_env_wins_over_keys_json(self, monkeypatch):
        monkeypatch.setenv("CTXSYNC_ACCESS_TOKEN", "from-env")
        monkeypatch.setattr(
            config_module, "_load_keys_json", lambda: {"ctxsync": {"access_token": "from-keys"}},
        )
        assert Settings(_env_file=None).access_token == "from-env"


def test_configure_logging_production_renders_json(capsys):
    configure_logging("INFO", "production")
    try:
        structlog.get_logger().info("sync_listener_bound", port=1234)
        structlog.get_logger().debug("hidden_event")
        out = capsys.readouterr().out
        assert '"event": "sync_listener_bound"' in out
        assert '"port": 1234' in out
        assert "hidden_event" not in out
    finally:
        structlog.reset_defaults()
