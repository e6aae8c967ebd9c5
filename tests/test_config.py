"""Tests for Settings loading and validation."""

import pytest
from pydantic import ValidationError

from switchboard.config import Settings
from tests.conftest import make_settings


class TestSettings:
    def test_defaults(self):
        settings = make_settings()
        assert settings.port == 3000
        assert settings.max_iterations == 10
        assert settings.seed_message == "Hello there! I'm an AI assistant. How can I help you today?"
        assert settings.reset_message == "Chat history cleared. How can I help you start fresh?"
        assert settings.remote_tools_url == ""
        assert settings.session_idle_timeout == 1800
        assert settings.json_response is False

    def test_env_prefix(self, monkeypatch):
        monkeypatch.setenv("SWITCHBOARD_PORT", "8080")
        monkeypatch.setenv("SWITCHBOARD_MAX_ITERATIONS", "4")
        settings = Settings(_env_file=None)
        assert settings.port == 8080
        assert settings.max_iterations == 4

    def test_credentials_read_unprefixed(self, monkeypatch):
        monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-env")
        monkeypatch.setenv("ANTHROPIC_AUTH_TOKEN", "tok-env")
        settings = Settings(_env_file=None)
        assert settings.anthropic_api_key == "sk-env"
        assert settings.anthropic_auth_token == "tok-env"

    def test_zero_iterations_rejected(self):
        with pytest.raises(ValidationError, match="max_iterations"):
            make_settings(max_iterations=0)

    def test_negative_tool_timeout_rejected(self):
        with pytest.raises(ValidationError, match="tool_timeout"):
            make_settings(tool_timeout=-1)

    def test_zero_tool_timeout_allowed(self):
        assert make_settings(tool_timeout=0).tool_timeout == 0

    def test_negative_idle_timeout_rejected(self):
        with pytest.raises(ValidationError, match="session_idle_timeout"):
            make_settings(session_idle_timeout=-5)
