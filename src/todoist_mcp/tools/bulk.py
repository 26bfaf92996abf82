"""Bulk task tools.

Each tool resolves its targets, hands them to the shared
``BulkOperationPlanner`` and reports the uniform outcome. A partial failure is
still a successful call: the per-task accounting is the result.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional

from mcp.server.fastmcp import FastMCP

from todoist_mcp.core.bulk import BulkOperationKind, BulkOutcome, BulkTarget
from todoist_mcp.core.errors import InvalidArgumentError
from todoist_mcp.core.naming import canonical_tool
from todoist_mcp.core.responses import ToolResponse, success_response
from todoist_mcp.core.security import MAX_ARRAY_LENGTH, require_text
from todoist_mcp.core.services import TodoistServices
from todoist_mcp.tools.common import run_tool, tool_annotations
from todoist_mcp.tools.tasks import TaskFields

logger = logging.getLogger(__name__)

_SUCCESS_KEYS = {
    BulkOperationKind.CLOSE: "completed",
    BulkOperationKind.MOVE: "moved",
    BulkOperationKind.CREATE: "created",
}

_ITEM_KEYS = frozenset(TaskFields.field_names()) | {"ref", "parent_ref"}
_INDEX_MARKER = "#"


def outcome_message(outcome: BulkOutcome) -> str:
    """One-line summary, e.g. "Completed 2 of 3 tasks (1 failed)"."""
    verb = _SUCCESS_KEYS[outcome.kind]
    if outcome.failed == 0:
        return f"Successfully {verb} {outcome.total} tasks"
    return (
        f"{verb.capitalize()} {outcome.succeeded} of {outcome.total} tasks "
        f"({outcome.failed} failed)"
    )


def outcome_response(outcome: BulkOutcome) -> ToolResponse:
    data: Dict[str, Any] = {
        "total_tasks": outcome.total,
        _SUCCESS_KEYS[outcome.kind]: outcome.succeeded,
        "failed": outcome.failed,
        "failed_task_ids": list(outcome.failed_identifiers),
        "used_batching": outcome.used_batching,
        "message": outcome_message(outcome),
    }
    if outcome.errors:
        data["errors"] = dict(outcome.errors)
    if outcome.kind is BulkOperationKind.CREATE:
        data["created_ids"] = dict(outcome.created_ids)

    warnings = []
    if outcome.partial:
        warnings.append(
            f"{outcome.failed} of {outcome.total} tasks failed; see data.errors"
        )
    return success_response(data, warnings=warnings)


def build_create_targets(items: Optional[List[Mapping[str, Any]]]) -> List[BulkTarget]:
    """Validate ``bulk_create_tasks`` items and turn them into planner targets.

    Items are identified by their ``ref`` when given, otherwise by ``"#<index>"``.
    Refs may not start with ``#`` so the two kinds never collide.
    """
    if not items:
        raise InvalidArgumentError("tasks is required", field="tasks")
    if len(items) > MAX_ARRAY_LENGTH:
        raise InvalidArgumentError(
            f"tasks has {len(items)} items; at most {MAX_ARRAY_LENGTH} are allowed per call",
            field="tasks",
            remediation="Split the work into several calls.",
        )

    targets = []
    for index, item in enumerate(items):
        prefix = f"tasks[{index}]."
        if not isinstance(item, Mapping):
            raise InvalidArgumentError(
                f"tasks[{index}] must be an object", field=f"tasks[{index}]"
            )
        unknown = sorted(set(item) - _ITEM_KEYS)
        if unknown:
            raise InvalidArgumentError(
                f"tasks[{index}] has unknown field '{unknown[0]}'",
                field=f"tasks[{index}]",
            )

        task_fields = TaskFields(
            **{key: value for key, value in item.items() if key not in ("ref", "parent_ref")}
        ).validate(prefix)
        require_text(task_fields.content, f"{prefix}content")

        for key in ("ref", "parent_ref"):
            value = item.get(key)
            if value is None:
                continue
            if not isinstance(value, str):
                raise InvalidArgumentError(
                    f"{prefix}{key} must be a string", field=f"{prefix}{key}"
                )
            if value.startswith(_INDEX_MARKER):
                raise InvalidArgumentError(
                    f"{prefix}{key} must not start with '{_INDEX_MARKER}'",
                    field=f"{prefix}{key}",
                    remediation=f"Refs starting with '{_INDEX_MARKER}' name items by position.",
                )

        parent_ref = item.get("parent_ref")
        if parent_ref and task_fields.parent_id:
            raise InvalidArgumentError(
                f"{prefix}parent_ref and {prefix}parent_id cannot both be set",
                field=f"{prefix}parent_ref",
            )

        ref = item.get("ref")
        targets.append(
            BulkTarget(
                identifier=ref if ref else f"{_INDEX_MARKER}{index}",
                args=task_fields.to_body(),
                parent_ref=parent_ref or None,
            )
        )
    return targets


def register_bulk_tools(mcp: FastMCP, services: TodoistServices) -> None:
    """Register the set-oriented task tools."""
    planner = services.planner

    @canonical_tool(
        mcp,
        canonical_name="bulk_complete_tasks",
        description=(
            "Complete many tasks at once, selected by IDs or a Todoist filter. "
            "More than 5 tasks are sent as one batch request."
        ),
        annotations=tool_annotations("Complete tasks in bulk", idempotent=True),
    )
    async def bulk_complete_tasks(
        task_ids: Optional[List[str]] = None,
        filter: Optional[str] = None,
    ) -> dict:
        """Complete up to 100 tasks.

        Args:
            task_ids: Tasks to complete; takes precedence over ``filter``
            filter: Todoist filter selecting the tasks, e.g. "overdue & #Errands"
        """

        async def handler() -> ToolResponse:
            outcome = await planner.complete_tasks(task_ids, filter)
            return outcome_response(outcome)

        return await run_tool(services, "bulk_complete_tasks", handler)

    @canonical_tool(
        mcp,
        canonical_name="bulk_move_tasks",
        description=(
            "Move many tasks to one project, section or parent task. "
            "More than 5 tasks are sent as one batch request."
        ),
        annotations=tool_annotations("Move tasks in bulk", idempotent=True),
    )
    async def bulk_move_tasks(
        task_ids: Optional[List[str]] = None,
        filter: Optional[str] = None,
        project_id: Optional[str] = None,
        section_id: Optional[str] = None,
        parent_id: Optional[str] = None,
    ) -> dict:
        """Move up to 100 tasks; give exactly one destination."""

        async def handler() -> ToolResponse:
            destination = {
                "project_id": project_id,
                "section_id": section_id,
                "parent_id": parent_id,
            }
            outcome = await planner.move_tasks(destination, task_ids, filter)
            return outcome_response(outcome)

        return await run_tool(services, "bulk_move_tasks", handler)

    @canonical_tool(
        mcp,
        canonical_name="bulk_create_tasks",
        description=(
            "Create up to 100 tasks. Each item takes the create_task fields plus "
            "an optional 'ref', and 'parent_ref' naming the ref of an earlier item "
            "to nest under it. Items without a ref are reported as '#<index>'."
        ),
        annotations=tool_annotations("Create tasks in bulk"),
    )
    async def bulk_create_tasks(tasks: List[Dict[str, Any]]) -> dict:
        """Create several tasks, optionally forming subtask trees.

        ``data.created_ids`` maps each item's ref (or "#<index>") to the new task ID.
        """

        async def handler() -> ToolResponse:
            outcome = await planner.create_tasks(build_create_targets(tasks))
            return outcome_response(outcome)

        return await run_tool(services, "bulk_create_tasks", handler)

    logger.debug("Registered bulk task tools")


__all__ = [
    "build_create_targets",
    "outcome_message",
    "outcome_response",
    "register_bulk_tools",
]
