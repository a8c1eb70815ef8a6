"""
Tests for settings loading and validation.
"""

import os
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from highrise_poller.config import (
    DEFAULT_ENDPOINT_SINGULARS,
    PollConfig,
    Settings,
    get_settings,
)
from highrise_poller.exceptions import ConfigurationError


class TestSettings:
    """Test Settings."""

    def test_defaults(self):
        with patch.dict(os.environ, {"HIGHRISE_ACCOUNT": "acme"}, clear=True):
            settings = Settings(_env_file=None)

        assert settings.auth_type == "Private"
        assert settings.endpoint_list == ["people", "companies"]
        assert settings.daily_call_budget == 500
        assert settings.base_url == "https://acme.highrisehq.com"
        assert settings.state_backend == "memory"

    def test_endpoints_from_env(self):
        with patch.dict(
            os.environ,
            {"HIGHRISE_ACCOUNT": "acme", "ENDPOINTS": "people, deals ,"},
            clear=True,
        ):
            settings = Settings(_env_file=None)

        assert settings.endpoint_list == ["people", "deals"]

    def test_api_url_override(self):
        settings = Settings(
            highrise_account="acme", highrise_api_url="http://localhost:8080/"
        )
        assert settings.base_url == "http://localhost:8080"

    def test_invalid_auth_type(self):
        with pytest.raises(ValueError, match="Invalid auth type: Basic"):
            Settings(highrise_account="acme", auth_type="Basic")

    def test_budget_must_be_positive(self):
        with pytest.raises(ValueError, match="daily_call_budget must be positive"):
            Settings(highrise_account="acme", daily_call_budget=0)

    def test_negative_seen_bound_rejected(self):
        with pytest.raises(ValueError, match="max_seen_ids cannot be negative"):
            Settings(highrise_account="acme", max_seen_ids=-1)

    def test_invalid_state_backend(self):
        with pytest.raises(ValueError, match="Invalid state backend: redis"):
            Settings(highrise_account="acme", state_backend="redis")

    def test_log_level_is_normalised(self):
        assert Settings(highrise_account="acme", log_level="debug").log_level == "DEBUG"

    def test_poll_config(self, mock_settings):
        mock_settings.strict_identity = True
        mock_settings.max_seen_ids = 1000

        config = mock_settings.poll_config

        assert config.daily_call_budget == 500
        assert config.strict_identity is True
        assert config.max_seen_ids == 1000
        assert config.endpoint_singulars == DEFAULT_ENDPOINT_SINGULARS

    def test_client_config(self, mock_settings):
        config = mock_settings.client_config

        assert config.base_url == "https://test-account.highrisehq.com"
        assert config.api_token == "test-token"
        assert config.timeout_seconds == 30.0


def test_get_settings_requires_account():
    import highrise_poller.config

    highrise_poller.config._settings_instance = None

    with patch.dict(os.environ, {}, clear=True):
        with patch.dict(Settings.model_config, {"env_file": None}):
            with pytest.raises(ConfigurationError, match="HIGHRISE_ACCOUNT") as exc:
                get_settings()

    assert exc.value.code == "CONFIGURATION_ERROR"
    assert exc.value.context == {"setting": "highrise_account"}

    highrise_poller.config._settings_instance = None


def test_get_settings_is_cached():
    import highrise_poller.config

    highrise_poller.config._settings_instance = None

    with patch.dict(os.environ, {"HIGHRISE_ACCOUNT": "acme"}, clear=True):
        assert get_settings() is get_settings()

    highrise_poller.config._settings_instance = None


class TestPollConfig:
    """Test PollConfig bounds."""

    def test_defaults(self):
        config = PollConfig()
        assert config.daily_call_budget == 500
        assert config.max_seen_ids == 0

    @pytest.mark.parametrize("budget", [0, -10])
    def test_budget_must_be_positive(self, budget):
        with pytest.raises(ValidationError):
            PollConfig(daily_call_budget=budget)

    def test_negative_seen_bound_rejected(self):
        with pytest.raises(ValidationError):
            PollConfig(max_seen_ids=-1)
