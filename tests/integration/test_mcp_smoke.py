"""Smoke tests for MCP server tool registration and startup.

Verifies that the server registers the full Todoist tool surface and that
the startup probe gates the lifespan.
"""

from __future__ import annotations

import pytest

from todoist_mcp.core.errors import AuthenticationFailedError
from todoist_mcp.server import _build_lifespan, create_server
from tests.conftest import FakeTodoist, make_config, make_services


_TOOL_NAMES = {
    "search_tasks",
    "get_task",
    "create_task",
    "update_task",
    "complete_task",
    "uncomplete_task",
    "delete_task",
    "quick_add_task",
    "get_task_stats",
    "bulk_complete_tasks",
    "bulk_move_tasks",
    "bulk_create_tasks",
    "list_projects",
    "get_project",
    "create_project",
    "update_project",
    "delete_project",
    "list_sections",
    "create_section",
    "update_section",
    "delete_section",
    "list_labels",
    "create_label",
    "update_label",
    "delete_label",
    "get_comments",
    "add_comment",
    "update_comment",
    "delete_comment",
}


@pytest.fixture
def test_config():
    return make_config(server_name="todoist-mcp-test", log_level="WARNING")


@pytest.fixture
def mcp_server(test_config):
    return create_server(test_config, make_services(FakeTodoist(), config=test_config))


def test_server_creates_successfully(test_config):
    server = create_server(test_config, make_services(FakeTodoist(), config=test_config))
    assert server is not None


def test_server_name_matches_config(mcp_server, test_config):
    assert mcp_server.name == test_config.server_name


def test_tools_registered(mcp_server):
    tools = mcp_server._tool_manager._tools
    assert set(tools.keys()) == _TOOL_NAMES


def test_all_tools_callable(mcp_server):
    tools = mcp_server._tool_manager._tools
    for tool_name, tool in tools.items():
        assert callable(tool.fn), f"Tool {tool_name} should be callable"


def test_destructive_tools_annotated(mcp_server):
    tools = mcp_server._tool_manager._tools
    for tool_name in ("delete_task", "delete_project", "delete_section", "delete_label"):
        assert tools[tool_name].annotations.destructiveHint is True


class TestLifespan:
    """The startup probe runs inside the server lifespan."""

    @pytest.mark.asyncio
    async def test_probe_success(self):
        backend = FakeTodoist()
        backend.route("GET", "/projects", (200, {"results": [], "next_cursor": None}))
        config = make_config(verify_connection=True)
        services = make_services(backend, config=config)

        async with _build_lifespan(config, services)(None):
            pass

        assert len(backend.requests) == 1
        assert backend.requests[0].url.params["limit"] == "1"
        assert services.http_client.is_closed

    @pytest.mark.asyncio
    async def test_probe_failure_aborts_startup(self):
        backend = FakeTodoist()
        backend.route("GET", "/projects", (401, "Unauthorized"))
        config = make_config(verify_connection=True)
        services = make_services(backend, config=config)

        with pytest.raises(AuthenticationFailedError) as exc_info:
            async with _build_lifespan(config, services)(None):
                pass

        assert exc_info.value.message.startswith("connection test failed: authentication failed")
        assert services.http_client.is_closed

    @pytest.mark.asyncio
    async def test_probe_skipped(self):
        backend = FakeTodoist()
        config = make_config()
        services = make_services(backend, config=config)

        async with _build_lifespan(config, services)(None):
            pass

        assert backend.requests == []
