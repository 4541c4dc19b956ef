"""
Tests for configuration modules functionality.
"""
import logging
from pathlib import Path

import pytest

from cloudrecords.config.api import CircuitBreakerState, CloudKitAPIConfig
from cloudrecords.config.settings import Settings
from cloudrecords.core.models import DatabaseScope


class TestSettings:
    """Test Settings configuration class."""

    def test_defaults(self):
        settings = Settings()

        assert settings.backend == "memory"
        assert settings.environment == "development"
        assert settings.scope == DatabaseScope.PUBLIC
        assert settings.log_level == logging.INFO
        assert settings.api_token is None

    def test_from_empty_environment(self):
        assert Settings.from_env({}) == Settings()

    def test_from_env(self):
        settings = Settings.from_env(
            {
                "CLOUDRECORDS_BACKEND": "cloudkit",
                "CLOUDRECORDS_CONTAINER": "iCloud.com.example.app",
                "CLOUDRECORDS_ENVIRONMENT": "production",
                "CLOUDRECORDS_SCOPE": " Private ",
                "CLOUDRECORDS_API_TOKEN": "token",
                "CLOUDRECORDS_WEB_AUTH_TOKEN": "session",
                "CLOUDRECORDS_DATA_DIR": "/tmp/records",
                "CLOUDRECORDS_LOG_DIR": "/tmp/logs",
                "CLOUDRECORDS_LOG_LEVEL": "debug",
            }
        )

        assert settings.backend == "cloudkit"
        assert settings.container == "iCloud.com.example.app"
        assert settings.environment == "production"
        assert settings.scope == DatabaseScope.PRIVATE
        assert settings.api_token == "token"
        assert settings.web_auth_token == "session"
        assert settings.data_dir == Path("/tmp/records")
        assert settings.log_dir == Path("/tmp/logs")
        assert settings.log_level == logging.DEBUG

    def test_blank_values_are_ignored(self):
        settings = Settings.from_env({"CLOUDRECORDS_BACKEND": "  ", "CLOUDRECORDS_API_TOKEN": ""})

        assert settings.backend == "memory"
        assert settings.api_token is None

    def test_server_key_settings(self):
        settings = Settings.from_env(
            {"CLOUDRECORDS_KEY_ID": "abc", "CLOUDRECORDS_PRIVATE_KEY_PATH": "/keys/eckey.pem"}
        )

        assert settings.key_id == "abc"
        assert settings.private_key_path == Path("/keys/eckey.pem")

    @pytest.mark.parametrize(
        "environ,message",
        [
            ({"CLOUDRECORDS_BACKEND": "sqlite"}, "Unknown backend"),
            ({"CLOUDRECORDS_ENVIRONMENT": "staging"}, "Unknown environment"),
            ({"CLOUDRECORDS_SCOPE": "global"}, "Unknown database scope"),
            ({"CLOUDRECORDS_LOG_LEVEL": "loud"}, "Unknown log level"),
            ({"CLOUDRECORDS_KEY_ID": "abc"}, "must be configured together"),
        ],
    )
    def test_invalid_values(self, environ, message):
        with pytest.raises(ValueError, match=message):
            Settings.from_env(environ)

    def test_settings_are_immutable(self):
        settings = Settings()

        with pytest.raises(Exception):
            settings.backend = "cloudkit"

    def test_ensure_directories(self, tmp_path):
        settings = Settings(data_dir=tmp_path / "data", log_dir=tmp_path / "logs")

        settings.ensure_directories()

        assert (tmp_path / "data").is_dir()
        assert (tmp_path / "logs").is_dir()


class TestCloudKitAPIConfig:
    """Test CloudKit API configuration."""

    def test_database_path(self):
        path = CloudKitAPIConfig.get_database_path("iCloud.a.b", "production", "shared", "records/modify")

        assert path == "/database/1/iCloud.a.b/production/shared/records/modify"

    def test_url(self):
        assert CloudKitAPIConfig.get_url("/database/1/x") == "https://api.apple-cloudkit.com/database/1/x"

    @pytest.mark.default_retry_settings
    def test_retry_settings_are_sane(self):
        assert CloudKitAPIConfig.MAX_RETRIES == 5
        assert 0 < CloudKitAPIConfig.RETRY_BASE_DELAY <= CloudKitAPIConfig.RETRY_MAX_DELAY
        assert CloudKitAPIConfig.CIRCUIT_BREAKER_FAILURE_THRESHOLD >= 1

    def test_tests_run_with_fast_retries(self):
        assert CloudKitAPIConfig.MAX_RETRIES == 1
        assert CloudKitAPIConfig.RETRY_BASE_DELAY == 0
        assert CloudKitAPIConfig.RETRY_MAX_DELAY == 0

    def test_circuit_breaker_states(self):
        assert {state.value for state in CircuitBreakerState} == {"closed", "open", "half_open"}
