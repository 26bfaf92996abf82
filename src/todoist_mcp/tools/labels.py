"""Personal label tools."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional

from mcp.server.fastmcp import FastMCP

from todoist_mcp.core.naming import canonical_tool
from todoist_mcp.core.responses import ToolResponse, success_response
from todoist_mcp.core.security import require_text, validate_identifier
from todoist_mcp.core.services import TodoistServices
from todoist_mcp.tools.common import (
    compact,
    pagination_meta,
    require_update,
    run_tool,
    tool_annotations,
    validate_color,
    validate_name,
    validate_order,
)

logger = logging.getLogger(__name__)


@dataclass
class LabelFields:
    name: Optional[str] = None
    color: Optional[str] = None
    order: Optional[int] = None
    is_favorite: Optional[bool] = None

    def validate(self) -> "LabelFields":
        validate_name(self.name)
        validate_color(self.color)
        validate_order(self.order)
        return self

    def to_body(self) -> Dict[str, Any]:
        return compact(**asdict(self))


def register_label_tools(mcp: FastMCP, services: TodoistServices) -> None:
    """Register the label tools."""
    rest = services.rest

    @canonical_tool(
        mcp,
        canonical_name="list_labels",
        description="List personal labels.",
        annotations=tool_annotations("List labels", read_only=True),
    )
    async def list_labels(cursor: Optional[str] = None) -> dict:
        async def handler() -> ToolResponse:
            labels, next_cursor = await rest.get_page("/labels", params=compact(cursor=cursor))
            return success_response(
                labels=labels,
                count=len(labels),
                pagination=pagination_meta(next_cursor),
            )

        return await run_tool(services, "list_labels", handler)

    @canonical_tool(
        mcp,
        canonical_name="create_label",
        description="Create a personal label.",
        annotations=tool_annotations("Create label"),
    )
    async def create_label(
        name: str,
        color: Optional[str] = None,
        order: Optional[int] = None,
        is_favorite: Optional[bool] = None,
    ) -> dict:
        async def handler() -> ToolResponse:
            require_text(name, "name")
            label_fields = LabelFields(
                name=name, color=color, order=order, is_favorite=is_favorite
            ).validate()
            label = await rest.post("/labels", label_fields.to_body())
            return success_response(label=label)

        return await run_tool(services, "create_label", handler)

    @canonical_tool(
        mcp,
        canonical_name="update_label",
        description="Rename a label or change its color, order or favorite flag.",
        annotations=tool_annotations("Update label", idempotent=True),
    )
    async def update_label(
        label_id: str,
        name: Optional[str] = None,
        color: Optional[str] = None,
        order: Optional[int] = None,
        is_favorite: Optional[bool] = None,
    ) -> dict:
        async def handler() -> ToolResponse:
            identifier = validate_identifier(label_id, "label_id")
            label_fields = LabelFields(
                name=name, color=color, order=order, is_favorite=is_favorite
            ).validate()
            body = require_update(
                label_fields.to_body(), ["name", "color", "order", "is_favorite"]
            )
            label = await rest.post(f"/labels/{identifier}", body, idempotent=True)
            return success_response(label=label)

        return await run_tool(services, "update_label", handler)

    @canonical_tool(
        mcp,
        canonical_name="delete_label",
        description="Delete a personal label. Tasks keep their other labels.",
        annotations=tool_annotations("Delete label", destructive=True, idempotent=True),
    )
    async def delete_label(label_id: str) -> dict:
        async def handler() -> ToolResponse:
            identifier = validate_identifier(label_id, "label_id")
            await rest.delete(f"/labels/{identifier}")
            return success_response(label_id=identifier, deleted=True)

        return await run_tool(services, "delete_label", handler)

    logger.debug("Registered label tools")


__all__ = [
    "LabelFields",
    "register_label_tools",
]
