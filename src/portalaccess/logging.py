"""Logging utilities for portalaccess.

This module provides:
- Logging configuration from PortalAccessConfig
- Safe preview utilities for payloads (filter bodies, grant trees)
- Redaction of bearer tokens and entity tags
- A logger adapter that binds caller and resource context
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Optional

from .config import LogLevel, PortalAccessConfig


# Patterns for values that must never reach a log line in clear
SECRET_PATTERNS = [
    r'(?i)(?:password|passwd|pwd|secret|token|api[_-]?key)\s*[:=]\s*["\']?([^"\'\s,}]+)',
    r'(?i)(?:bearer|basic)\s+([a-zA-Z0-9._~+/=-]+)',
    r'(?i)(?:if-none-match|etag)\s*[:=]\s*["\']?(?:W/)?"?([^"\'\s,}]+)',
    r'[a-f0-9]{32,}',  # Long hex strings (entity tags, hashes, keys)
]

# LogRecord attributes that are not user-supplied extras
_RESERVED_ATTRS = frozenset(
    {
        "name", "msg", "args", "created", "filename", "funcName",
        "levelname", "levelno", "lineno", "module", "msecs",
        "message", "pathname", "process", "processName", "relativeCreated",
        "thread", "threadName", "exc_info", "exc_text", "stack_info",
        "taskName", "caller_id", "resource",
    }
)


def safe_preview(value: Any, limit: int = 240) -> str:
    """Create a single-line, length-bounded preview of a value for logging.

    Args:
        value: The value to preview (any type)
        limit: Maximum length of the preview (default: 240)

    Returns:
        A truncated string representation
    """
    if value is None:
        return ""

    if isinstance(value, str):
        s = value
    elif isinstance(value, (dict, list, tuple)):
        try:
            s = json.dumps(value, default=str, ensure_ascii=False)
        except (TypeError, ValueError):
            s = str(value)
    else:
        s = str(value)

    s = " ".join(s.split())

    if len(s) > limit:
        return s[: limit - 1] + "…"

    return s


def redact_secrets(text: str, replacement: str = "[REDACTED]") -> str:
    """Redact tokens, entity tags and similar secrets from text."""
    if not isinstance(text, str):
        return text

    result = text
    for pattern in SECRET_PATTERNS:
        result = re.sub(pattern, replacement, result, flags=re.IGNORECASE | re.DOTALL)

    return result


def safe_log_value(value: Any, limit: int = 240, redact: bool = True) -> str:
    """Preview and redact a value in one step.

    This is the function to use when logging request or response payloads.
    """
    preview = safe_preview(value, limit=limit)
    if redact:
        preview = redact_secrets(preview)
    return preview


class AccessLogFormatter(logging.Formatter):
    """Formatter emitting JSON or plain text with caller/resource context.

    Extra fields passed via ``extra=`` are previewed and redacted.
    """

    def __init__(
        self,
        json_format: bool = True,
        redact_secrets: bool = True,
        *args: Any,
        **kwargs: Any,
    ):
        super().__init__(*args, **kwargs)
        self.json_format = json_format
        self.redact_secrets = redact_secrets

    def format(self, record: logging.LogRecord) -> str:
        caller_id = getattr(record, "caller_id", None)
        resource = getattr(record, "resource", None)

        log_data: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if caller_id:
            log_data["caller_id"] = str(caller_id)
        if resource:
            log_data["resource"] = str(resource)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS:
                log_data[key] = safe_log_value(value, redact=self.redact_secrets)

        if self.redact_secrets:
            log_data["message"] = redact_secrets(log_data["message"])

        if self.json_format:
            return json.dumps(log_data, default=str, ensure_ascii=False)

        parts = [
            f"[{log_data['timestamp']}]",
            f"{log_data['level']}",
            f"{log_data['logger']}",
        ]
        if caller_id:
            parts.append(f"caller_id={log_data['caller_id']}")
        if resource:
            parts.append(f"resource={log_data['resource']}")
        parts.append(f": {log_data['message']}")
        text = " ".join(parts)
        if "exception" in log_data:
            text = f"{text}\n{log_data['exception']}"
        return text


class AccessLoggerAdapter(logging.LoggerAdapter):
    """Logger adapter that adds caller_id and resource to every record.

    Usage:
        logger = get_access_logger(__name__, resource="/api/users")
        logger.info("Loaded page %d", 2)
        logger.info("Loaded page", caller_id="user-7")  # per-call override
    """

    def __init__(
        self,
        logger: logging.Logger,
        caller_id: Optional[str] = None,
        resource: Optional[str] = None,
    ):
        super().__init__(logger, {})
        self.caller_id = caller_id
        self.resource = resource

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        caller_id = kwargs.pop("caller_id", self.caller_id)
        resource = kwargs.pop("resource", self.resource)

        extra = kwargs.get("extra", {})
        if caller_id:
            extra["caller_id"] = caller_id
        if resource:
            extra["resource"] = resource
        kwargs["extra"] = extra

        return msg, kwargs


def setup_logging(
    config: Optional[PortalAccessConfig] = None,
    json_format: Optional[bool] = None,
    redact_secrets: bool = True,
) -> None:
    """Configure the root logger from PortalAccessConfig.

    Args:
        config: Configuration (if None, loads from environment)
        json_format: Override ``config.log_json``
        redact_secrets: Whether to redact secrets (default: True)
    """
    if config is None:
        from .config import load_config_from_env

        config = load_config_from_env()

    level_map = {
        LogLevel.DEBUG: logging.DEBUG,
        LogLevel.INFO: logging.INFO,
        LogLevel.WARNING: logging.WARNING,
        LogLevel.ERROR: logging.ERROR,
        LogLevel.CRITICAL: logging.CRITICAL,
    }
    log_level = level_map.get(config.log_level, logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    # Remove existing handlers to avoid duplicates
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_handler.setFormatter(
        AccessLogFormatter(
            json_format=config.log_json if json_format is None else json_format,
            redact_secrets=redact_secrets,
        )
    )
    root_logger.addHandler(console_handler)


def get_access_logger(
    name: str,
    caller_id: Optional[str] = None,
    resource: Optional[str] = None,
) -> AccessLoggerAdapter:
    """Get a logger adapter bound to a caller and/or resource.

    Example:
        logger = get_access_logger(__name__, resource="/api/branches")
        logger.warning("Discarded superseded page")
    """
    return AccessLoggerAdapter(logging.getLogger(name), caller_id=caller_id, resource=resource)


__all__ = [
    "safe_preview",
    "redact_secrets",
    "safe_log_value",
    "AccessLogFormatter",
    "AccessLoggerAdapter",
    "setup_logging",
    "get_access_logger",
]
