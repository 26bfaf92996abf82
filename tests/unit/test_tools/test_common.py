"""
Unit tests for todoist_mcp.tools.common module.

Tests the tool boundary: envelopes, deadline, error conversion and metadata.
"""

import asyncio

import pytest

from todoist_mcp.core.errors import InvalidArgumentError, NotFoundError
from todoist_mcp.core.responses import success_response
from todoist_mcp.tools.common import (
    compact,
    require_update,
    run_tool,
    tool_annotations,
    validate_color,
)
from tests.conftest import FakeTodoist, make_config, make_services


class TestRunTool:
    """Test run_tool."""

    @pytest.mark.asyncio
    async def test_success_envelope_with_meta(self, services, assert_response_contract):
        async def handler():
            return success_response(task={"id": "1"})

        result = await run_tool(services, "get_task", handler)

        response = assert_response_contract(result)
        assert response["data"] == {"task": {"id": "1"}}
        assert response["meta"]["rate_limit"]["limit"] == 450
        assert response["meta"]["telemetry"]["duration_ms"] >= 0

    @pytest.mark.asyncio
    async def test_taxonomy_error_becomes_envelope(self, services, assert_response_contract):
        async def handler():
            raise NotFoundError("resource not found: the requested item doesn't exist", status_code=404)

        response = assert_response_contract(await run_tool(services, "get_task", handler))

        assert response["success"] is False
        assert response["data"]["error_code"] == "NOT_FOUND"
        assert response["data"]["remediation"]

    @pytest.mark.asyncio
    async def test_unexpected_error_is_internal(self, services, assert_response_contract):
        async def handler():
            raise KeyError("boom")

        response = assert_response_contract(await run_tool(services, "get_task", handler))

        assert response["error"] == "get_task failed unexpectedly"
        assert response["data"]["error_code"] == "INTERNAL_ERROR"
        assert "boom" not in response["error"]

    @pytest.mark.asyncio
    async def test_deadline(self, assert_response_contract):
        services = make_services(FakeTodoist(), config=make_config(tool_timeout=0.01))

        async def handler():
            await asyncio.sleep(5)

        response = assert_response_contract(await run_tool(services, "get_task", handler))

        assert response["data"]["error_code"] == "TIMEOUT"
        assert response["error"] == "get_task timed out after 0.01s"


class TestHelpers:
    """Test the small request-building helpers."""

    def test_compact_drops_none(self):
        assert compact(a=1, b=None, c=False, d="") == {"a": 1, "c": False, "d": ""}

    def test_require_update(self):
        assert require_update({"name": "x"}, ["name"]) == {"name": "x"}
        with pytest.raises(InvalidArgumentError) as exc_info:
            require_update({}, ["name", "color"])
        assert exc_info.value.message == "at least one field to update must be provided"

    def test_validate_color(self):
        assert validate_color("berry_red") == "berry_red"
        assert validate_color(None) is None
        with pytest.raises(InvalidArgumentError, match="not a Todoist color"):
            validate_color("chartreuse")

    def test_annotations(self):
        read = tool_annotations("List", read_only=True)
        assert read.readOnlyHint is True
        assert read.idempotentHint is True
        assert read.openWorldHint is True

        delete = tool_annotations("Delete", destructive=True, idempotent=True)
        assert delete.readOnlyHint is False
        assert delete.destructiveHint is True
