"""Tests for settings loading and log redaction."""
from __future__ import annotations

import pydantic
import pytest

from config import Settings, load_config
from logger import logger, redact, setup_logging


class TestSettings:

    def test_defaults(self):
        settings = Settings(_env_file=None)
        assert settings.db_path == "auth.db"
        assert settings.session_ttl_days == 7
        assert settings.cookie_secure is True
        assert settings.sweep_interval_seconds == 0.0

    def test_env_prefix(self, monkeypatch):
        monkeypatch.setenv("AUTH_DB_PATH", "/tmp/x.db")
        monkeypatch.setenv("AUTH_SESSION_TTL_DAYS", "3")
        monkeypatch.setenv("AUTH_COOKIE_SECURE", "false")
        monkeypatch.setenv("AUTH_LOG_LEVEL", "debug")
        settings = Settings(_env_file=None)
        assert settings.db_path == "/tmp/x.db"
        assert settings.session_ttl_days == 3
        assert settings.cookie_secure is False
        assert settings.log_level == "DEBUG"

    def test_rejects_zero_ttl(self):
        with pytest.raises(pydantic.ValidationError):
            Settings(_env_file=None, session_ttl_days=0)

    def test_load_config_is_cached(self):
        load_config.cache_clear()
        try:
            assert load_config() is load_config()
        finally:
            load_config.cache_clear()


class TestRedaction:

    def test_masks_session_token(self):
        token = "0123456789abcdef" * 4
        out = redact(f"login ok token {token}")
        assert token not in out
        assert "01234567" in out

    def test_masks_cookie_value(self):
        out = redact("Cookie: sessionToken=abc123; theme=dark")
        assert "abc123" not in out
        assert "theme=dark" in out

    def test_masks_password_field(self):
        out = redact("payload password=hunter22, email ok")
        assert "hunter22" not in out

    def test_masks_email_local_part(self):
        out = redact("register alice@example.com")
        assert "alice" not in out
        assert "@example.com" in out

    def test_sink_receives_redacted_message(self, tmp_path):
        log_file = tmp_path / "auth.log"
        setup_logging("INFO", str(log_file))
        logger.info("auth.login: ok for bob@example.com")
        logger.complete()
        setup_logging("WARNING")
        text = log_file.read_text(encoding="utf-8")
        assert "***@example.com" in text
        assert "bob@" not in text
