"""
Unit tests for todoist_mcp.core.observability, logging_config and context.

Tests secret redaction, audit records, tool instrumentation and the log
formatters.
"""

import io
import json
import logging

import pytest

from todoist_mcp.core.context import (
    generate_correlation_id,
    get_correlation_id,
    sync_request_context,
)
from todoist_mcp.core.logging_config import configure_logging
from todoist_mcp.core.observability import audit_log, mcp_tool, redact_sensitive_data

TOKEN = "0123456789abcdef0123456789abcdef01234567"


class ListHandler(logging.Handler):
    def __init__(self):
        super().__init__()
        self.records = []

    def emit(self, record):
        self.records.append(record)


@pytest.fixture
def audit_records():
    """Capture records from the audit logger."""
    audit_logger = logging.getLogger("todoist_mcp.core.observability.audit")
    handler = ListHandler()
    previous_level = audit_logger.level
    audit_logger.addHandler(handler)
    audit_logger.setLevel(logging.INFO)
    yield handler.records
    audit_logger.removeHandler(handler)
    audit_logger.setLevel(previous_level)


# =============================================================================
# Redaction
# =============================================================================


class TestRedaction:
    """Test redact_sensitive_data."""

    def test_bearer_header_text(self):
        redacted = redact_sensitive_data(f"Authorization: Bearer {TOKEN}")
        assert TOKEN not in redacted
        assert "[REDACTED:BEARER_TOKEN]" in redacted

    def test_bare_todoist_token(self):
        redacted = redact_sensitive_data(f"token was {TOKEN} at startup")
        assert redacted == "token was [REDACTED:TODOIST_TOKEN] at startup"

    def test_sensitive_keys(self):
        redacted = redact_sensitive_data(
            {"api_token": "anything", "nested": {"Authorization": "x"}, "task_id": "42"}
        )
        assert redacted == {
            "api_token": "[REDACTED:API_TOKEN]",
            "nested": {"Authorization": "[REDACTED:AUTHORIZATION]"},
            "task_id": "42",
        }

    def test_lists_and_non_strings(self):
        assert redact_sensitive_data([TOKEN, 3, None]) == [
            "[REDACTED:TODOIST_TOKEN]",
            3,
            None,
        ]


# =============================================================================
# Audit Log
# =============================================================================


class TestAuditLog:
    """Test audit_log and mcp_tool."""

    def test_audit_record_redacted(self, audit_records):
        audit_log("auth_failure", tool="get_task", reason=f"bad token {TOKEN}")

        assert len(audit_records) == 1
        entry = audit_records[0].audit
        assert entry["event_type"] == "auth_failure"
        assert TOKEN not in json.dumps(entry)

    def test_unknown_event_type(self, audit_records):
        audit_log("server_error", error="boom")
        entry = audit_records[0].audit
        assert entry["event_type"] == "tool_invocation"
        assert entry["details"]["original_event_type"] == "server_error"

    def test_mcp_tool_requires_async(self):
        with pytest.raises(TypeError):

            @mcp_tool(tool_name="sync_tool")
            def sync_tool():
                return {}

    @pytest.mark.asyncio
    async def test_mcp_tool_sets_correlation_id(self, audit_records):
        seen = []

        @mcp_tool(tool_name="get_task")
        async def handler():
            seen.append(get_correlation_id())
            return {"success": True}

        await handler()

        assert seen[0].startswith("tool_")
        assert get_correlation_id() == ""
        entry = audit_records[0].audit
        assert entry["details"]["tool"] == "get_task"
        assert entry["details"]["success"] is True
        assert entry["correlation_id"] == seen[0]

    @pytest.mark.asyncio
    async def test_mcp_tool_audits_error_envelope(self, audit_records):
        @mcp_tool(tool_name="get_task")
        async def handler():
            return {"success": False, "error": "task_id is required"}

        await handler()

        details = audit_records[0].audit["details"]
        assert details["success"] is False
        assert details["error"] == "task_id is required"


# =============================================================================
# Logging Configuration
# =============================================================================


class TestLoggingConfig:
    """Test configure_logging and the formatters."""

    def teardown_method(self):
        logging.getLogger("todoist_mcp").handlers.clear()

    def test_human_format_includes_correlation_id(self):
        stream = io.StringIO()
        configure_logging(level="INFO", stream=stream)

        with sync_request_context(correlation_id="req_abc123"):
            logging.getLogger("todoist_mcp.core.bulk").info("routed to batch")

        line = stream.getvalue().strip()
        assert "[INFO] [req_abc123] core.bulk: routed to batch" in line

    def test_structured_format(self):
        stream = io.StringIO()
        configure_logging(level="DEBUG", format="structured", stream=stream)

        logging.getLogger("todoist_mcp.core.rest_client").debug(
            "GET /tasks -> 200", extra={"status": 200}
        )

        entry = json.loads(stream.getvalue())
        assert entry["level"] == "DEBUG"
        assert entry["logger"] == "todoist_mcp.core.rest_client"
        assert entry["message"] == "GET /tasks -> 200"
        assert entry["extra"] == {"status": 200}

    def test_level_filters(self):
        stream = io.StringIO()
        configure_logging(level="WARNING", stream=stream)
        logging.getLogger("todoist_mcp.server").info("hidden")
        assert stream.getvalue() == ""

    def test_correlation_id_format(self):
        corr_id = generate_correlation_id(prefix="bulk")
        assert corr_id.startswith("bulk_")
        assert len(corr_id) == len("bulk_") + 12
