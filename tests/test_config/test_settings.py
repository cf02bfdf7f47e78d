"""Tests for environment-driven settings."""

import pytest
from pydantic import ValidationError

from msgbot.config.settings import Settings, get_settings
from msgbot.delivery.config import DeliveryConfig
from msgbot.matching.config import MatchingConfig


class TestSettings:

    def test_defaults(self, test_settings):
        assert test_settings.environment == "development"
        assert test_settings.is_production is False
        assert test_settings.stats_key_prefix == "msgbot:sub_stats"

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("ENVIRONMENT", "production")
        monkeypatch.setenv("DEFAULT_TIMEZONE", "Asia/Shanghai")
        get_settings.cache_clear()
        settings = get_settings()
        assert settings.is_production is True
        assert settings.default_timezone == "Asia/Shanghai"

    def test_unknown_timezone_rejected(self):
        with pytest.raises(ValidationError, match="Unknown timezone"):
            Settings(default_timezone="Nowhere/Land")

    def test_get_settings_cached(self):
        assert get_settings() is get_settings()


class TestComponentConfigs:

    def test_delivery_defaults(self):
        config = DeliveryConfig()
        assert config.max_retries == 3
        assert config.retry_delay_seconds == 300.0
        assert config.timeout_seconds == 30.0

    def test_delivery_env_prefix(self, monkeypatch):
        monkeypatch.setenv("DELIVERY_MAX_RETRIES", "5")
        assert DeliveryConfig().max_retries == 5

    def test_delivery_max_retries_bounded(self):
        with pytest.raises(ValidationError):
            DeliveryConfig(max_retries=6)

    def test_matching_env_prefix(self, monkeypatch):
        monkeypatch.setenv("MATCHING_REALTIME_BYPASSES_WINDOW", "false")
        assert MatchingConfig().realtime_bypasses_window is False
