"""
Tests for environment-driven settings.
"""

import os

import pytest

from mission_control.config import (
    DEFAULT_GATEWAY_URL,
    ConfigError,
    Settings,
    load_settings,
)

PREFIX = "MISSION_CONTROL_"


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in list(os.environ):
        if name.startswith(PREFIX):
            monkeypatch.delenv(name)


class TestLoadSettings:

    def test_defaults(self):
        settings = load_settings()
        assert settings == Settings()
        assert settings.gateway_url == DEFAULT_GATEWAY_URL
        assert settings.max_reconnect_attempts == 10
        assert settings.reconnect_base_delay == 1.0
        assert settings.reconnect_max_delay == 30.0
        assert settings.heartbeat_interval == 15.0
        assert settings.heartbeat_timeout == 5.0
        assert settings.api_url is None
        assert settings.autoconnect is True

    def test_overrides(self, monkeypatch):
        monkeypatch.setenv(PREFIX + "GATEWAY_URL", "ws://10.0.0.5:18789")
        monkeypatch.setenv(PREFIX + "API_URL", "http://localhost:3000/")
        monkeypatch.setenv(PREFIX + "MAX_RECONNECT_ATTEMPTS", "3")
        monkeypatch.setenv(PREFIX + "HEARTBEAT_TIMEOUT", "2.5")
        monkeypatch.setenv(PREFIX + "AUTOCONNECT", "no")
        monkeypatch.setenv(PREFIX + "LOG_LEVEL", "debug")

        settings = load_settings()

        assert settings.gateway_url == "ws://10.0.0.5:18789"
        assert settings.api_url == "http://localhost:3000"
        assert settings.max_reconnect_attempts == 3
        assert settings.heartbeat_timeout == 2.5
        assert settings.autoconnect is False
        assert settings.log_level == "DEBUG"

    def test_blank_values_fall_back_to_defaults(self, monkeypatch):
        monkeypatch.setenv(PREFIX + "GATEWAY_URL", "   ")
        monkeypatch.setenv(PREFIX + "API_URL", "")
        settings = load_settings()
        assert settings.gateway_url == DEFAULT_GATEWAY_URL
        assert settings.api_url is None

    @pytest.mark.parametrize("name,value", [
        ("MAX_RECONNECT_ATTEMPTS", "many"),
        ("MAX_RECONNECT_ATTEMPTS", "-1"),
        ("RECONNECT_BASE_DELAY", "soon"),
        ("HEARTBEAT_INTERVAL", "-5"),
        ("PORT", "0"),
    ])
    def test_invalid_numbers_raise(self, monkeypatch, name, value):
        monkeypatch.setenv(PREFIX + name, value)
        with pytest.raises(ConfigError, match=PREFIX + name):
            load_settings()
