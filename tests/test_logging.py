"""Tests for portalaccess.logging module."""

from __future__ import annotations

import json
import logging

import pytest

from portalaccess import (
    AccessLogFormatter,
    PortalAccessConfig,
    get_access_logger,
    redact_secrets,
    safe_log_value,
    safe_preview,
    setup_logging,
)


def _record(msg: str = "hello", **extra) -> logging.LogRecord:
    record = logging.LogRecord(
        name="portalaccess.test",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg=msg,
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestSafePreview:
    """Tests for safe_preview function."""

    def test_none_value(self) -> None:
        assert safe_preview(None) == ""

    def test_whitespace_normalized(self) -> None:
        assert safe_preview("page\n\t2  loaded") == "page 2 loaded"

    def test_truncation(self) -> None:
        result = safe_preview("a" * 300, limit=100)
        assert len(result) == 100
        assert result.endswith("…")

    def test_filter_body_as_json(self) -> None:
        """Test that criteria dicts are rendered as JSON."""
        body = {"criteria": [{"field": "status", "operator": "EQUAL", "value": "open"}]}
        result = safe_preview(body)
        assert '"operator": "EQUAL"' in result


class TestRedactSecrets:
    """Tests for redact_secrets function."""

    def test_bearer_token(self) -> None:
        result = redact_secrets("Authorization: Bearer abc123def456")
        assert "abc123def456" not in result
        assert "[REDACTED]" in result

    def test_api_token_assignment(self) -> None:
        result = redact_secrets("api_token=sk-1234567890")
        assert "sk-1234567890" not in result

    def test_etag_header(self) -> None:
        """Test entity tags are not logged in clear."""
        result = redact_secrets('If-None-Match: "v42-grants"')
        assert "v42-grants" not in result

    def test_plain_text_untouched(self) -> None:
        assert redact_secrets("Loaded 3 systems") == "Loaded 3 systems"

    def test_non_string_passthrough(self) -> None:
        assert redact_secrets(42) == 42  # type: ignore[arg-type]

    def test_safe_log_value_combines(self) -> None:
        result = safe_log_value("token: secret-value " + "x" * 300, limit=50)
        assert "secret-value" not in result
        assert len(result) <= 50


class TestAccessLogFormatter:
    """Tests for AccessLogFormatter."""

    def test_json_format_includes_context(self) -> None:
        formatter = AccessLogFormatter(json_format=True)
        output = formatter.format(_record(caller_id="user-7", resource="/api/branches"))
        data = json.loads(output)
        assert data["message"] == "hello"
        assert data["level"] == "INFO"
        assert data["caller_id"] == "user-7"
        assert data["resource"] == "/api/branches"

    def test_json_format_previews_extras(self) -> None:
        formatter = AccessLogFormatter(json_format=True)
        data = json.loads(formatter.format(_record(page=3)))
        assert data["page"] == "3"

    def test_plain_format(self) -> None:
        formatter = AccessLogFormatter(json_format=False)
        output = formatter.format(_record("Loaded page", resource="/api/users"))
        assert "INFO" in output
        assert "resource=/api/users" in output
        assert output.endswith(": Loaded page")

    def test_message_redacted(self) -> None:
        formatter = AccessLogFormatter(json_format=True)
        data = json.loads(formatter.format(_record("sent Bearer abc.def.ghi")))
        assert "abc.def.ghi" not in data["message"]

    def test_redaction_can_be_disabled(self) -> None:
        formatter = AccessLogFormatter(json_format=True, redact_secrets=False)
        data = json.loads(formatter.format(_record("sent Bearer abc.def.ghi")))
        assert "abc.def.ghi" in data["message"]


class TestAccessLoggerAdapter:
    """Tests for get_access_logger."""

    def test_binds_context(self) -> None:
        adapter = get_access_logger("portalaccess.test", caller_id="user-1", resource="/api/x")
        msg, kwargs = adapter.process("loaded", {})
        assert msg == "loaded"
        assert kwargs["extra"] == {"caller_id": "user-1", "resource": "/api/x"}

    def test_per_call_override(self) -> None:
        adapter = get_access_logger("portalaccess.test", resource="/api/x")
        _, kwargs = adapter.process("loaded", {"resource": "/api/y"})
        assert kwargs["extra"]["resource"] == "/api/y"
        assert "resource" not in {k for k in kwargs if k != "extra"}

    def test_no_context(self) -> None:
        adapter = get_access_logger("portalaccess.test")
        _, kwargs = adapter.process("loaded", {})
        assert kwargs["extra"] == {}


class TestSetupLogging:
    """Tests for setup_logging."""

    @pytest.fixture(autouse=True)
    def _restore_root(self):
        root = logging.getLogger()
        handlers, level = root.handlers[:], root.level
        yield
        root.handlers[:] = handlers
        root.setLevel(level)

    def test_configures_root_logger(self) -> None:
        setup_logging(PortalAccessConfig(log_level="DEBUG", log_json=True))
        root = logging.getLogger()
        assert root.level == logging.DEBUG
        assert len(root.handlers) == 1
        formatter = root.handlers[0].formatter
        assert isinstance(formatter, AccessLogFormatter)
        assert formatter.json_format is True

    def test_json_override(self) -> None:
        setup_logging(PortalAccessConfig(log_json=True), json_format=False)
        formatter = logging.getLogger().handlers[0].formatter
        assert formatter.json_format is False
