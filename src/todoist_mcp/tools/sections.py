"""Section tools."""

from __future__ import annotations

import logging
from typing import Optional

from mcp.server.fastmcp import FastMCP

from todoist_mcp.core.naming import canonical_tool
from todoist_mcp.core.responses import ToolResponse, success_response
from todoist_mcp.core.security import (
    require_text,
    validate_identifier,
    validate_optional_identifier,
)
from todoist_mcp.core.services import TodoistServices
from todoist_mcp.tools.common import (
    compact,
    pagination_meta,
    run_tool,
    tool_annotations,
    validate_order,
)

logger = logging.getLogger(__name__)


def register_section_tools(mcp: FastMCP, services: TodoistServices) -> None:
    """Register the section tools."""
    rest = services.rest

    @canonical_tool(
        mcp,
        canonical_name="list_sections",
        description="List sections, optionally only those of one project.",
        annotations=tool_annotations("List sections", read_only=True),
    )
    async def list_sections(
        project_id: Optional[str] = None, cursor: Optional[str] = None
    ) -> dict:
        async def handler() -> ToolResponse:
            params = compact(
                project_id=validate_optional_identifier(project_id, "project_id"),
                cursor=cursor,
            )
            sections, next_cursor = await rest.get_page("/sections", params=params)
            return success_response(
                sections=sections,
                count=len(sections),
                pagination=pagination_meta(next_cursor),
            )

        return await run_tool(services, "list_sections", handler)

    @canonical_tool(
        mcp,
        canonical_name="create_section",
        description="Create a section in a project.",
        annotations=tool_annotations("Create section"),
    )
    async def create_section(
        name: str, project_id: str, order: Optional[int] = None
    ) -> dict:
        async def handler() -> ToolResponse:
            body = compact(
                name=require_text(name, "name"),
                project_id=validate_identifier(project_id, "project_id"),
                order=validate_order(order),
            )
            section = await rest.post("/sections", body)
            return success_response(section=section)

        return await run_tool(services, "create_section", handler)

    @canonical_tool(
        mcp,
        canonical_name="update_section",
        description="Rename a section.",
        annotations=tool_annotations("Rename section", idempotent=True),
    )
    async def update_section(section_id: str, name: str) -> dict:
        async def handler() -> ToolResponse:
            identifier = validate_identifier(section_id, "section_id")
            body = {"name": require_text(name, "name")}
            section = await rest.post(f"/sections/{identifier}", body, idempotent=True)
            return success_response(section=section)

        return await run_tool(services, "update_section", handler)

    @canonical_tool(
        mcp,
        canonical_name="delete_section",
        description="Permanently delete a section and the tasks in it.",
        annotations=tool_annotations("Delete section", destructive=True, idempotent=True),
    )
    async def delete_section(section_id: str) -> dict:
        async def handler() -> ToolResponse:
            identifier = validate_identifier(section_id, "section_id")
            await rest.delete(f"/sections/{identifier}")
            return success_response(section_id=identifier, deleted=True)

        return await run_tool(services, "delete_section", handler)

    logger.debug("Registered section tools")


__all__ = ["register_section_tools"]
