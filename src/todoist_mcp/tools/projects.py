"""Project tools."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional

from mcp.server.fastmcp import FastMCP

from todoist_mcp.core.errors import InvalidArgumentError
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
    require_update,
    run_tool,
    tool_annotations,
    validate_color,
    validate_name,
)

logger = logging.getLogger(__name__)

VIEW_STYLES = ("list", "board", "calendar")


@dataclass
class ProjectFields:
    name: Optional[str] = None
    parent_id: Optional[str] = None
    color: Optional[str] = None
    is_favorite: Optional[bool] = None
    view_style: Optional[str] = None

    def validate(self) -> "ProjectFields":
        validate_name(self.name)
        validate_optional_identifier(self.parent_id, "parent_id")
        validate_color(self.color)
        if self.view_style is not None and self.view_style not in VIEW_STYLES:
            raise InvalidArgumentError(
                f"view_style must be one of: {', '.join(VIEW_STYLES)}",
                field="view_style",
            )
        return self

    def to_body(self) -> Dict[str, Any]:
        return compact(**asdict(self))


def register_project_tools(mcp: FastMCP, services: TodoistServices) -> None:
    """Register the project tools."""
    rest = services.rest

    @canonical_tool(
        mcp,
        canonical_name="list_projects",
        description="List projects, including the Inbox.",
        annotations=tool_annotations("List projects", read_only=True),
    )
    async def list_projects(cursor: Optional[str] = None) -> dict:
        async def handler() -> ToolResponse:
            projects, next_cursor = await rest.get_page(
                "/projects", params=compact(cursor=cursor)
            )
            return success_response(
                projects=projects,
                count=len(projects),
                pagination=pagination_meta(next_cursor),
            )

        return await run_tool(services, "list_projects", handler)

    @canonical_tool(
        mcp,
        canonical_name="get_project",
        description="Fetch one project by ID.",
        annotations=tool_annotations("Get project", read_only=True),
    )
    async def get_project(project_id: str) -> dict:
        async def handler() -> ToolResponse:
            identifier = validate_identifier(project_id, "project_id")
            project = await rest.get(f"/projects/{identifier}")
            return success_response(project=project)

        return await run_tool(services, "get_project", handler)

    @canonical_tool(
        mcp,
        canonical_name="create_project",
        description="Create a project, optionally nested under another.",
        annotations=tool_annotations("Create project"),
    )
    async def create_project(
        name: str,
        parent_id: Optional[str] = None,
        color: Optional[str] = None,
        is_favorite: Optional[bool] = None,
        view_style: Optional[str] = None,
    ) -> dict:
        """Create a project.

        Args:
            name: Project name
            parent_id: Parent project for nesting
            color: Todoist color name such as "berry_red" or "sky_blue"
            is_favorite: Pin to the favorites list
            view_style: "list", "board" or "calendar"
        """

        async def handler() -> ToolResponse:
            require_text(name, "name")
            project_fields = ProjectFields(
                name=name,
                parent_id=parent_id,
                color=color,
                is_favorite=is_favorite,
                view_style=view_style,
            ).validate()
            project = await rest.post("/projects", project_fields.to_body())
            return success_response(project=project)

        return await run_tool(services, "create_project", handler)

    @canonical_tool(
        mcp,
        canonical_name="update_project",
        description="Rename a project or change its color, favorite flag or view.",
        annotations=tool_annotations("Update project", idempotent=True),
    )
    async def update_project(
        project_id: str,
        name: Optional[str] = None,
        color: Optional[str] = None,
        is_favorite: Optional[bool] = None,
        view_style: Optional[str] = None,
    ) -> dict:
        async def handler() -> ToolResponse:
            identifier = validate_identifier(project_id, "project_id")
            project_fields = ProjectFields(
                name=name, color=color, is_favorite=is_favorite, view_style=view_style
            ).validate()
            body = require_update(
                project_fields.to_body(), ["name", "color", "is_favorite", "view_style"]
            )
            project = await rest.post(f"/projects/{identifier}", body, idempotent=True)
            return success_response(project=project)

        return await run_tool(services, "update_project", handler)

    @canonical_tool(
        mcp,
        canonical_name="delete_project",
        description="Permanently delete a project with its sections and tasks.",
        annotations=tool_annotations("Delete project", destructive=True, idempotent=True),
    )
    async def delete_project(project_id: str) -> dict:
        async def handler() -> ToolResponse:
            identifier = validate_identifier(project_id, "project_id")
            await rest.delete(f"/projects/{identifier}")
            return success_response(project_id=identifier, deleted=True)

        return await run_tool(services, "delete_project", handler)

    logger.debug("Registered project tools")


__all__ = [
    "ProjectFields",
    "register_project_tools",
]
