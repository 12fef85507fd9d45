"""
Unit tests for settings loading.
"""
import pytest

from tollgate.core.config import load_settings
from tollgate.errors import ConfigurationError
from tollgate.ratelimit import Tier

SECRET = "x" * 40


class TestSettings:
    """Test cases for Settings."""

    def test_missing_secret_is_fatal(self, monkeypatch):
        monkeypatch.delenv("JWT_SECRET", raising=False)
        with pytest.raises(ConfigurationError):
            load_settings()

    def test_short_secret_is_fatal(self):
        with pytest.raises(ConfigurationError):
            load_settings(JWT_SECRET="too-short")

    def test_defaults(self):
        settings = load_settings(JWT_SECRET=SECRET)
        assert settings.access_token_ttl_seconds == 15 * 60
        assert settings.refresh_token_ttl_seconds == 7 * 86400
        assert settings.LOCKOUT_THRESHOLD == 5

        policies = settings.tier_policies()
        assert policies[Tier.IP].burst_size == 10
        assert policies[Tier.USER].requests_per_minute == 120
        assert policies[Tier.AUTH].requests_per_hour == 20
        assert policies[Tier.API].burst_size == 15
        assert policies[Tier.AI].enabled

    def test_legacy_expiration_hours(self):
        settings = load_settings(JWT_SECRET=SECRET, JWT_EXPIRATION_HOURS=2)
        assert settings.access_token_ttl_seconds == 7200

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("JWT_SECRET", SECRET)
        monkeypatch.setenv("RATE_LIMIT_AUTH_BURST_SIZE", "7")
        monkeypatch.setenv("RATE_LIMIT_TRUSTED_PROXIES", "10.0.0.0/8, 192.168.1.1")
        settings = load_settings()
        assert settings.tier_policies()[Tier.AUTH].burst_size == 7
        assert settings.trusted_proxies == ["10.0.0.0/8", "192.168.1.1"]

    def test_instance_count_divides_memory_budgets(self):
        settings = load_settings(JWT_SECRET=SECRET, RATE_LIMIT_INSTANCE_COUNT=4)
        ip = settings.tier_policies()[Tier.IP]
        assert (ip.requests_per_minute, ip.requests_per_hour, ip.burst_size) == (15, 250, 3)
        auth = settings.tier_policies()[Tier.AUTH]
        assert auth.burst_size == 1

    def test_instance_count_ignored_for_shared_store(self):
        settings = load_settings(
            JWT_SECRET=SECRET, RATE_LIMIT_INSTANCE_COUNT=4, RATE_LIMIT_BACKEND="redis"
        )
        assert settings.tier_policies()[Tier.IP].burst_size == 10

    def test_unknown_backend(self):
        with pytest.raises(ConfigurationError):
            load_settings(JWT_SECRET=SECRET, RATE_LIMIT_BACKEND="memcached")
