"""MCP tool registration surface."""

from mcp.server.fastmcp import FastMCP

from todoist_mcp.core.services import TodoistServices
from todoist_mcp.tools.bulk import register_bulk_tools
from todoist_mcp.tools.comments import register_comment_tools
from todoist_mcp.tools.labels import register_label_tools
from todoist_mcp.tools.projects import register_project_tools
from todoist_mcp.tools.sections import register_section_tools
from todoist_mcp.tools.tasks import register_task_tools


def register_all_tools(mcp: FastMCP, services: TodoistServices) -> None:
    """Register every Todoist tool on ``mcp``, all sharing ``services``."""
    register_task_tools(mcp, services)
    register_bulk_tools(mcp, services)
    register_project_tools(mcp, services)
    register_section_tools(mcp, services)
    register_label_tools(mcp, services)
    register_comment_tools(mcp, services)


__all__ = [
    "register_all_tools",
]
