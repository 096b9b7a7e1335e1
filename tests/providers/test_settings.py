"""
Tests for ProximitySettings.
"""

import os
from unittest.mock import patch

from proximity.providers.settings import ProximitySettings, get_settings, reset_settings


class TestProximitySettingsDefaults:
    """Test default values."""

    def test_routing_not_configured_without_key(self):
        """It should report routing as unconfigured without GOOGLE_MAPS_API_KEY."""
        with patch.dict(os.environ, {}, clear=True):
            settings = ProximitySettings(_env_file=None)
            assert settings.google_maps_api_key is None
            assert settings.routing_configured is False

    def test_default_limits(self):
        with patch.dict(os.environ, {}, clear=True):
            settings = ProximitySettings(_env_file=None)
            assert settings.rate_limit_fail_open is True
            assert settings.rate_limit_nearby_per_minute == 30
            assert settings.rate_limit_etas_per_minute == 20
            assert settings.rate_limit_travel_time_per_minute == 60
            assert settings.store_timeout_seconds == 8.0
            assert settings.routes_drive_traffic_aware is False


class TestProximitySettingsEnvironmentVariables:
    """Test environment variable overrides."""

    def test_key_from_env(self):
        with patch.dict(os.environ, {"GOOGLE_MAPS_API_KEY": "abc123"}, clear=True):
            settings = ProximitySettings(_env_file=None)
            assert settings.routing_configured is True

    def test_blank_key_is_not_configured(self):
        """It should treat a whitespace-only key as missing."""
        with patch.dict(os.environ, {"GOOGLE_MAPS_API_KEY": "   "}, clear=True):
            settings = ProximitySettings(_env_file=None)
            assert settings.routing_configured is False

    def test_fail_closed_from_env(self):
        with patch.dict(os.environ, {"RATE_LIMIT_FAIL_OPEN": "false"}, clear=True):
            settings = ProximitySettings(_env_file=None)
            assert settings.rate_limit_fail_open is False

    def test_traffic_aware_from_env(self):
        with patch.dict(os.environ, {"ROUTES_DRIVE_TRAFFIC_AWARE": "true"}, clear=True):
            settings = ProximitySettings(_env_file=None)
            assert settings.routes_drive_traffic_aware is True


class TestSettingsHelpers:
    """Test caching and serialization helpers."""

    def test_get_settings_is_cached(self, clean_env):
        assert get_settings() is get_settings()

    def test_reset_settings_reloads(self, clean_env):
        first = get_settings()
        reset_settings()
        assert get_settings() is not first

    def test_to_dict_masks_secrets(self):
        settings = ProximitySettings(
            _env_file=None,
            GOOGLE_MAPS_API_KEY="secret-key",
            AUTH_JWT_SECRET="jwt-secret",
        )
        data = settings.to_dict()
        assert data["google_maps_api_key"] == "***"
        assert data["auth_jwt_secret"] == "***"
        assert data["postgres_password"] == "***"
