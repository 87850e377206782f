"""Configuration contract for the portal access client.

This module provides the Pydantic-validated configuration model shared by
every component of the package (grant tree cache, query executor, logging).

All settings MUST come through ``PortalAccessConfig``. Reading
os.environ/os.getenv is only allowed in ``load_config_from_env()``.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from .exceptions import ConfigurationError


class LogLevel(str, Enum):
    """Standard log levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class PortalAccessConfig(BaseModel):
    """Settings for talking to the portal and caching what it returns.

    Time windows are in seconds. A cached value is served as-is while it is
    younger than the ``*_stale_seconds`` window, served while being
    revalidated until ``*_retain_seconds``, and discarded after that.
    """

    # Logging
    log_level: LogLevel = Field(
        default=LogLevel.INFO,
        description="Logging level",
    )
    log_json: bool = Field(
        default=False,
        description="Use JSON log format (default: plain text)",
    )

    # Transport
    base_url: str = Field(
        default="http://localhost:8080",
        description="Portal API base URL",
    )
    api_token: Optional[str] = Field(
        default=None,
        description="Bearer token sent with every request",
    )
    request_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Per-request timeout",
    )
    permissions_path: str = Field(
        default="/auth/me/permissions",
        description="Path of the caller's grant tree endpoint",
    )

    # Grant tree cache
    grant_stale_seconds: float = Field(
        default=300.0,
        ge=0,
        description="Grant tree is served without revalidation for this long (5 minutes)",
    )
    grant_retain_seconds: float = Field(
        default=600.0,
        ge=0,
        description="Stale grant tree may still be served while refreshing (10 minutes)",
    )

    # Query cache
    query_stale_seconds: float = Field(
        default=30.0,
        ge=0,
        description="Identical queries are served from cache for this long",
    )
    query_retain_seconds: float = Field(
        default=300.0,
        ge=0,
        description="Cached pages are dropped after this long",
    )
    default_page_size: int = Field(
        default=20,
        gt=0,
        description="Page size used when the caller does not pass one",
    )

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        """Validate base URL scheme."""
        if not v.startswith(("http://", "https://")):
            raise ValueError("Base URL must start with http:// or https://")
        return v.rstrip("/")

    @field_validator("permissions_path")
    @classmethod
    def validate_permissions_path(cls, v: str) -> str:
        if not v.startswith("/"):
            raise ValueError("Permissions path must start with '/'")
        return v

    @field_validator("log_level", mode="before")
    @classmethod
    def validate_log_level(cls, v: str | LogLevel) -> LogLevel:
        """Convert string to LogLevel enum."""
        if isinstance(v, LogLevel):
            return v
        if isinstance(v, str):
            try:
                return LogLevel[v.upper()]
            except KeyError:
                raise ValueError(f"Invalid log level: {v}. Must be one of {[e.value for e in LogLevel]}")
        raise ValueError(f"Log level must be string or LogLevel enum, got {type(v)}")

    @model_validator(mode="after")
    def validate_windows(self) -> "PortalAccessConfig":
        if self.grant_retain_seconds < self.grant_stale_seconds:
            raise ValueError("grant_retain_seconds must be >= grant_stale_seconds")
        if self.query_retain_seconds < self.query_stale_seconds:
            raise ValueError("query_retain_seconds must be >= query_stale_seconds")
        return self

    model_config = {
        "extra": "forbid",
    }


def _env_bool(raw: str) -> bool:
    return raw.lower() in ("true", "1", "yes", "on")


def load_config_from_env() -> PortalAccessConfig:
    """Load configuration from environment variables.

    This is the ONLY place where os.getenv is allowed.

    Environment variables:
    - PORTAL_BASE_URL: Portal API base URL
    - PORTAL_API_TOKEN: Bearer token
    - PORTAL_REQUEST_TIMEOUT: Request timeout in seconds
    - PORTAL_PERMISSIONS_PATH: Grant tree endpoint path
    - LOG_LEVEL: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    - LOG_JSON: Use JSON log format (true/false, default: false)
    - GRANT_STALE_SECONDS / GRANT_RETAIN_SECONDS: Grant tree cache windows
    - QUERY_STALE_SECONDS / QUERY_RETAIN_SECONDS: Query cache windows
    - DEFAULT_PAGE_SIZE: Default page size

    Returns:
        PortalAccessConfig instance with values from environment or defaults.

    Raises:
        ConfigurationError: If any value fails validation.
    """
    import os

    try:
        return PortalAccessConfig(
            base_url=os.getenv("PORTAL_BASE_URL", "http://localhost:8080"),
            api_token=os.getenv("PORTAL_API_TOKEN") or None,
            request_timeout_seconds=float(os.getenv("PORTAL_REQUEST_TIMEOUT", "10")),
            permissions_path=os.getenv("PORTAL_PERMISSIONS_PATH", "/auth/me/permissions"),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_json=_env_bool(os.getenv("LOG_JSON", "false")),
            grant_stale_seconds=float(os.getenv("GRANT_STALE_SECONDS", "300")),
            grant_retain_seconds=float(os.getenv("GRANT_RETAIN_SECONDS", "600")),
            query_stale_seconds=float(os.getenv("QUERY_STALE_SECONDS", "30")),
            query_retain_seconds=float(os.getenv("QUERY_RETAIN_SECONDS", "300")),
            default_page_size=int(os.getenv("DEFAULT_PAGE_SIZE", "20")),
        )
    except (ValidationError, ValueError) as e:
        raise ConfigurationError(f"Invalid portal access configuration: {e}") from e


__all__ = [
    "LogLevel",
    "PortalAccessConfig",
    "load_config_from_env",
]
