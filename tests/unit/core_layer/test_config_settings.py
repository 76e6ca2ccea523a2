"""
Unit Tests for Configuration Settings

Tests the settings loading, validation, and grouped views.
"""

import pytest
from pydantic import ValidationError

from taskguard.core.config.settings import Settings, get_settings, reload_settings


@pytest.mark.unit
class TestSettingsDefaults:
    def test_rate_limit_defaults(self):
        settings = Settings()

        assert settings.rate_limit.RATE_LIMIT_MAX == 100
        assert settings.rate_limit.RATE_LIMIT_TTL == 60
        assert settings.rate_limit.window_ms == 60_000
        assert settings.rate_limit.TRUST_FORWARDED_FOR is False

    def test_circuit_breaker_defaults(self):
        breaker = Settings().circuit_breaker

        assert breaker.CIRCUIT_BREAKER_TIMEOUT == 3000
        assert breaker.CIRCUIT_BREAKER_ERROR_THRESHOLD == 50
        assert breaker.CIRCUIT_BREAKER_RESET_TIMEOUT == 30000
        assert breaker.CIRCUIT_BREAKER_VOLUME_THRESHOLD == 10
        assert breaker.CIRCUIT_BREAKER_ROLLING_WINDOW == 10000

    def test_token_lifetimes_are_parsed(self):
        auth = Settings().auth

        assert auth.access_ttl_seconds == 86400
        assert auth.refresh_ttl_seconds == 604800

    def test_cache_defaults(self):
        cache = Settings().cache

        assert cache.CACHE_DEFAULT_TTL == 300
        assert cache.CACHE_NAMESPACE == "app"


@pytest.mark.unit
class TestSettingsValidation:
    def test_log_level_is_normalized(self):
        assert Settings(LOG_LEVEL="debug").LOG_LEVEL == "DEBUG"

    def test_invalid_log_level_rejected(self):
        with pytest.raises(ValidationError):
            Settings(LOG_LEVEL="LOUD")

    def test_malformed_duration_rejected(self):
        with pytest.raises(ValidationError):
            Settings(JWT_REFRESH_EXPIRATION="a week")

    @pytest.mark.parametrize("threshold", [0, -5, 101])
    def test_error_threshold_out_of_range_rejected(self, threshold):
        with pytest.raises(ValidationError):
            Settings(CIRCUIT_BREAKER_ERROR_THRESHOLD=threshold)

    def test_non_positive_limit_rejected(self):
        with pytest.raises(ValidationError):
            Settings(RATE_LIMIT_MAX=0)

    def test_production_requires_real_secrets(self):
        with pytest.raises(ValidationError):
            Settings(ENVIRONMENT="production")

    def test_production_with_secrets_accepted(self):
        settings = Settings(
            ENVIRONMENT="production",
            JWT_SECRET="prod-access",
            JWT_REFRESH_SECRET="prod-refresh",
        )
        assert settings.app.ENVIRONMENT == "production"


@pytest.mark.unit
class TestSettingsEnvironment:
    def test_env_vars_override_defaults(self, monkeypatch):
        monkeypatch.setenv("RATE_LIMIT_MAX", "7")
        monkeypatch.setenv("JWT_REFRESH_EXPIRATION", "2h")

        settings = Settings()

        assert settings.rate_limit.RATE_LIMIT_MAX == 7
        assert settings.auth.refresh_ttl_seconds == 7200

    def test_get_settings_is_cached_until_reload(self, monkeypatch):
        first = get_settings()
        assert get_settings() is first

        monkeypatch.setenv("APP_NAME", "Reloaded")
        reloaded = reload_settings()
        try:
            assert reloaded is not first
            assert reloaded.APP_NAME == "Reloaded"
        finally:
            monkeypatch.delenv("APP_NAME")
            reload_settings()
