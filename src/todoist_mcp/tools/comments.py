"""Comment tools for tasks and projects."""

from __future__ import annotations

import logging
from typing import Dict, Optional

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
from todoist_mcp.tools.common import compact, pagination_meta, run_tool, tool_annotations

logger = logging.getLogger(__name__)


def comment_parent(task_id: Optional[str], project_id: Optional[str]) -> Dict[str, str]:
    """Comments hang off exactly one task or one project."""
    task = validate_optional_identifier(task_id, "task_id")
    project = validate_optional_identifier(project_id, "project_id")
    if task and project:
        raise InvalidArgumentError(
            "provide either task_id or project_id, not both", field="task_id"
        )
    if task:
        return {"task_id": task}
    if project:
        return {"project_id": project}
    raise InvalidArgumentError(
        "either task_id or project_id is required",
        field="task_id",
        remediation="Call search_tasks or list_projects to find the ID.",
    )


def register_comment_tools(mcp: FastMCP, services: TodoistServices) -> None:
    """Register the comment tools."""
    rest = services.rest

    @canonical_tool(
        mcp,
        canonical_name="get_comments",
        description="List the comments of a task or a project.",
        annotations=tool_annotations("Get comments", read_only=True),
    )
    async def get_comments(
        task_id: Optional[str] = None,
        project_id: Optional[str] = None,
        cursor: Optional[str] = None,
    ) -> dict:
        async def handler() -> ToolResponse:
            params = compact(cursor=cursor, **comment_parent(task_id, project_id))
            comments, next_cursor = await rest.get_page("/comments", params=params)
            return success_response(
                comments=comments,
                count=len(comments),
                pagination=pagination_meta(next_cursor),
            )

        return await run_tool(services, "get_comments", handler)

    @canonical_tool(
        mcp,
        canonical_name="add_comment",
        description="Add a comment to a task or a project.",
        annotations=tool_annotations("Add comment"),
    )
    async def add_comment(
        content: str,
        task_id: Optional[str] = None,
        project_id: Optional[str] = None,
    ) -> dict:
        """Add a Markdown comment; give exactly one of task_id or project_id."""

        async def handler() -> ToolResponse:
            body = {"content": require_text(content, "content")}
            body.update(comment_parent(task_id, project_id))
            comment = await rest.post("/comments", body)
            return success_response(comment=comment)

        return await run_tool(services, "add_comment", handler)

    @canonical_tool(
        mcp,
        canonical_name="update_comment",
        description="Replace the text of a comment.",
        annotations=tool_annotations("Update comment", idempotent=True),
    )
    async def update_comment(comment_id: str, content: str) -> dict:
        async def handler() -> ToolResponse:
            identifier = validate_identifier(comment_id, "comment_id")
            body = {"content": require_text(content, "content")}
            comment = await rest.post(f"/comments/{identifier}", body, idempotent=True)
            return success_response(comment=comment)

        return await run_tool(services, "update_comment", handler)

    @canonical_tool(
        mcp,
        canonical_name="delete_comment",
        description="Delete a comment.",
        annotations=tool_annotations("Delete comment", destructive=True, idempotent=True),
    )
    async def delete_comment(comment_id: str) -> dict:
        async def handler() -> ToolResponse:
            identifier = validate_identifier(comment_id, "comment_id")
            await rest.delete(f"/comments/{identifier}")
            return success_response(comment_id=identifier, deleted=True)

        return await run_tool(services, "delete_comment", handler)

    logger.debug("Registered comment tools")


__all__ = [
    "comment_parent",
    "register_comment_tools",
]
