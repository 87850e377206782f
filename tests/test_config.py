"""Tests for PortalAccessConfig."""

from __future__ import annotations

import os
from unittest.mock import patch

import pytest
from portalaccess import ConfigurationError, LogLevel, PortalAccessConfig, load_config_from_env


class TestPortalAccessConfig:
    """Tests for PortalAccessConfig model."""

    def test_create_default_config(self) -> None:
        """Test creating a PortalAccessConfig with defaults."""
        config = PortalAccessConfig()
        assert config.log_level == LogLevel.INFO
        assert config.log_json is False
        assert config.base_url == "http://localhost:8080"
        assert config.api_token is None
        assert config.permissions_path == "/auth/me/permissions"
        assert config.grant_stale_seconds == 300
        assert config.grant_retain_seconds == 600
        assert config.default_page_size == 20

    def test_log_level_from_string(self) -> None:
        """Test creating config with log level as lowercase string."""
        config = PortalAccessConfig(log_level="debug")
        assert config.log_level == LogLevel.DEBUG

    def test_log_level_invalid(self) -> None:
        """Test creating config with invalid log level."""
        with pytest.raises(ValueError, match="Invalid log level"):
            PortalAccessConfig(log_level="LOUD")

    def test_base_url_trailing_slash_stripped(self) -> None:
        """Test base URL is normalized."""
        config = PortalAccessConfig(base_url="https://portal.example.com/")
        assert config.base_url == "https://portal.example.com"

    def test_base_url_invalid_scheme(self) -> None:
        """Test base URL must be http(s)."""
        with pytest.raises(ValueError, match="http:// or https://"):
            PortalAccessConfig(base_url="ftp://portal.example.com")

    def test_permissions_path_must_be_absolute(self) -> None:
        """Test permissions path validation."""
        with pytest.raises(ValueError, match="must start with"):
            PortalAccessConfig(permissions_path="auth/me/permissions")

    def test_retain_shorter_than_stale_rejected(self) -> None:
        """Test cache windows must be ordered."""
        with pytest.raises(ValueError, match="grant_retain_seconds"):
            PortalAccessConfig(grant_stale_seconds=600, grant_retain_seconds=300)

    def test_timeout_must_be_positive(self) -> None:
        """Test request timeout validation."""
        with pytest.raises(ValueError):
            PortalAccessConfig(request_timeout_seconds=0)

    def test_extra_fields_forbidden(self) -> None:
        """Test unknown settings are rejected."""
        with pytest.raises(ValueError):
            PortalAccessConfig(redis_url="redis://localhost")  # type: ignore[call-arg]


class TestLoadConfigFromEnv:
    """Tests for load_config_from_env."""

    def test_load_defaults(self) -> None:
        """Test loading with an empty environment."""
        with patch.dict(os.environ, {}, clear=True):
            config = load_config_from_env()
        assert config.base_url == "http://localhost:8080"
        assert config.log_level == LogLevel.INFO
        assert config.log_json is False

    def test_load_from_env(self) -> None:
        """Test loading every supported variable."""
        env = {
            "PORTAL_BASE_URL": "https://portal.example.com",
            "PORTAL_API_TOKEN": "tok-123",
            "PORTAL_REQUEST_TIMEOUT": "2.5",
            "LOG_LEVEL": "WARNING",
            "LOG_JSON": "yes",
            "GRANT_STALE_SECONDS": "60",
            "GRANT_RETAIN_SECONDS": "120",
            "DEFAULT_PAGE_SIZE": "50",
        }
        with patch.dict(os.environ, env, clear=True):
            config = load_config_from_env()
        assert config.base_url == "https://portal.example.com"
        assert config.api_token == "tok-123"
        assert config.request_timeout_seconds == 2.5
        assert config.log_level == LogLevel.WARNING
        assert config.log_json is True
        assert config.grant_stale_seconds == 60
        assert config.grant_retain_seconds == 120
        assert config.default_page_size == 50

    def test_invalid_env_raises_configuration_error(self) -> None:
        """Test validation failures are wrapped."""
        with patch.dict(os.environ, {"DEFAULT_PAGE_SIZE": "many"}, clear=True):
            with pytest.raises(ConfigurationError) as exc_info:
                load_config_from_env()
        assert exc_info.value.code == "CONFIGURATION_ERROR"
