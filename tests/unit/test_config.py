"""Tests for configuration validation"""
import logging
import pytest
from unittest.mock import patch

from wellness_badges import config
from wellness_badges.exceptions import ConfigurationError


class TestConfigValidation:
    """validate_config rejects settings the engine can't run with"""

    def test_defaults_are_valid(self):
        config.validate_config()

    def test_default_reference_timezone_is_explicit(self, monkeypatch):
        monkeypatch.setattr(config, "BADGE_REFERENCE_TIMEZONE", "Europe/Berlin")

        assert config.get_reference_timezone().key == "Europe/Berlin"

    def test_unknown_timezone(self, monkeypatch):
        monkeypatch.setattr(config, "BADGE_REFERENCE_TIMEZONE", "Mars/Olympus_Mons")

        with pytest.raises(ConfigurationError) as exc_info:
            config.validate_config()

        assert exc_info.value.config_key == "BADGE_REFERENCE_TIMEZONE"

    def test_missing_database_url(self, monkeypatch):
        monkeypatch.setattr(config, "DATABASE_URL", "")

        with pytest.raises(ConfigurationError) as exc_info:
            config.validate_config()

        assert exc_info.value.config_key == "DATABASE_URL"

    @pytest.mark.parametrize("key, value", [
        ("BADGE_STREAK_LOOKBACK_DAYS", 0),
        ("BADGE_RULE_TIMEOUT_SECONDS", -1.0),
        ("BADGE_DEFAULT_LOCALE", "fr"),
    ])
    def test_invalid_badge_settings(self, monkeypatch, key, value):
        monkeypatch.setattr(config, key, value)

        with pytest.raises(ConfigurationError) as exc_info:
            config.validate_config()

        assert exc_info.value.config_key == key


def test_configure_logging(monkeypatch):
    monkeypatch.setattr(config, "LOG_LEVEL", "debug")

    with patch("wellness_badges.config.logging.basicConfig") as basic_config:
        config.configure_logging()

    assert basic_config.call_args.kwargs["level"] == logging.DEBUG
