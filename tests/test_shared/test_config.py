"""
Tests for environment-driven settings.
"""

import pytest
from pathlib import Path
from pydantic import ValidationError

from shared.config import Settings, get_settings, reset_settings


class TestSettings:

    def test_defaults(self):
        settings = Settings()

        assert settings.heartbeat_interval == 30
        assert settings.strict_transitions is True
        assert settings.fallback_delivery_fee == 20.00
        assert settings.reconnect_base_delay == 1.0
        assert settings.reconnect_max_delay == 30.0
        assert settings.max_reconnect_attempts == 10
        assert settings.poll_connected == 30
        assert settings.poll_disconnected == 5
        assert settings.data_dir.name == "data"

    def test_reads_environment(self, monkeypatch, tmp_path: Path):
        monkeypatch.setenv("ORDERS_DATA_DIR", str(tmp_path))
        monkeypatch.setenv("ORDERS_HEARTBEAT_INTERVAL", "5")
        monkeypatch.setenv("ORDERS_BASE_URL", "http://orders.local")

        settings = Settings()

        assert settings.data_dir == tmp_path
        assert settings.heartbeat_interval == 5
        assert settings.base_url == "http://orders.local"

    @pytest.mark.parametrize("value", ["0", "false", "No", "off"])
    def test_strict_transitions_can_be_switched_off(self, monkeypatch, value):
        monkeypatch.setenv("ORDERS_STRICT_TRANSITIONS", value)
        assert Settings().strict_transitions is False

    def test_rejects_non_positive_heartbeat(self):
        with pytest.raises(ValidationError):
            Settings(heartbeat_interval=0)


class TestSettingsCache:

    def test_get_settings_is_cached(self):
        assert get_settings() is get_settings()

    def test_reset_settings_rereads_environment(self, monkeypatch):
        get_settings()
        monkeypatch.setenv("ORDERS_POLL_DISCONNECTED", "2")

        assert reset_settings().poll_disconnected == 2
        assert get_settings().poll_disconnected == 2

    def test_reset_settings_with_explicit_value(self):
        custom = Settings(fallback_delivery_fee=25.0)
        assert reset_settings(custom) is custom
        assert get_settings().fallback_delivery_fee == 25.0
