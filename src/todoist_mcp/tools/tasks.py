"""Task tools: search, read, create, update, complete, delete, quick add, stats."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, fields
from datetime import date
from typing import Any, Dict, Iterable, List, Mapping, Optional

from mcp.server.fastmcp import FastMCP

from todoist_mcp.core.errors import InvalidArgumentError
from todoist_mcp.core.naming import canonical_tool
from todoist_mcp.core.quick_add import parse_quick_add
from todoist_mcp.core.responses import ToolResponse, success_response
from todoist_mcp.core.security import (
    MAX_ARRAY_LENGTH,
    require_text,
    validate_identifier,
    validate_identifiers,
    validate_optional_identifier,
    validate_priority,
    validate_text_length,
)
from todoist_mcp.core.services import TodoistServices
from todoist_mcp.tools.common import (
    compact,
    pagination_meta,
    require_update,
    run_tool,
    tool_annotations,
    validate_order,
)

logger = logging.getLogger(__name__)

DURATION_UNITS = ("minute", "day")
UNKNOWN_PROJECT = "Unknown"

_DUE_FIELDS = ("due_string", "due_date", "due_datetime")
_LOCATION_FIELDS = ("project_id", "section_id", "parent_id")
_TEXT_FIELDS = (
    "content",
    "description",
    "project_id",
    "section_id",
    "parent_id",
    "due_string",
    "due_date",
    "due_datetime",
    "due_lang",
    "assignee_id",
    "duration_unit",
    "deadline_date",
)


@dataclass
class TaskFields:
    """Writable task attributes in REST API shape.

    ``None`` means "not supplied"; only supplied fields reach the request body.
    """

    content: Optional[str] = None
    description: Optional[str] = None
    project_id: Optional[str] = None
    section_id: Optional[str] = None
    parent_id: Optional[str] = None
    order: Optional[int] = None
    labels: Optional[List[str]] = None
    priority: Optional[int] = None
    due_string: Optional[str] = None
    due_date: Optional[str] = None
    due_datetime: Optional[str] = None
    due_lang: Optional[str] = None
    assignee_id: Optional[str] = None
    duration: Optional[int] = None
    duration_unit: Optional[str] = None
    deadline_date: Optional[str] = None

    @classmethod
    def field_names(cls) -> List[str]:
        return [f.name for f in fields(cls)]

    def validate(self, prefix: str = "") -> "TaskFields":
        """Check field types and shapes; ``prefix`` qualifies names in error messages."""
        for name in _TEXT_FIELDS:
            value = getattr(self, name)
            if value is not None and not isinstance(value, str):
                raise InvalidArgumentError(
                    f"{prefix}{name} must be a string", field=f"{prefix}{name}"
                )
        if self.labels is not None and not isinstance(self.labels, list):
            raise InvalidArgumentError(
                f"{prefix}labels must be a list of label names", field=f"{prefix}labels"
            )

        for name in _LOCATION_FIELDS + ("assignee_id",):
            validate_optional_identifier(getattr(self, name), f"{prefix}{name}")

        if self.content is not None:
            validate_text_length(self.content, f"{prefix}content")
        if self.description is not None:
            validate_text_length(self.description, f"{prefix}description")
        validate_order(self.order, f"{prefix}order")
        validate_priority(self.priority)

        if self.labels is not None:
            if len(self.labels) > MAX_ARRAY_LENGTH:
                raise InvalidArgumentError(
                    f"{prefix}labels has too many entries", field=f"{prefix}labels"
                )
            for label in self.labels:
                if not isinstance(label, str) or not label.strip():
                    raise InvalidArgumentError(
                        f"{prefix}labels must contain non-empty names",
                        field=f"{prefix}labels",
                    )

        supplied_due = [name for name in _DUE_FIELDS if getattr(self, name)]
        if len(supplied_due) > 1:
            raise InvalidArgumentError(
                "only one of due_string, due_date or due_datetime may be provided",
                field=f"{prefix}due",
            )

        if self.duration is not None or self.duration_unit is not None:
            if self.duration is None or self.duration_unit is None:
                raise InvalidArgumentError(
                    "duration and duration_unit must be provided together",
                    field=f"{prefix}duration",
                )
            if isinstance(self.duration, bool) or not isinstance(self.duration, int) or self.duration <= 0:
                raise InvalidArgumentError(
                    "duration must be a positive integer", field=f"{prefix}duration"
                )
            if self.duration_unit not in DURATION_UNITS:
                raise InvalidArgumentError(
                    "duration_unit must be 'minute' or 'day'",
                    field=f"{prefix}duration_unit",
                )
        return self

    def to_body(self, *, include_location: bool = True) -> Dict[str, Any]:
        body = compact(**asdict(self))
        if not include_location:
            for name in _LOCATION_FIELDS:
                body.pop(name, None)
        return body


def _task_id(task_id: Optional[str]) -> str:
    return validate_identifier(task_id, "task_id")


def _due_day(task: Mapping[str, Any]) -> Optional[str]:
    due = task.get("due")
    if not isinstance(due, Mapping):
        return None
    value = due.get("date")
    if not value:
        return None
    return str(value)[:10]


def summarize_tasks(
    tasks: Iterable[Mapping[str, Any]],
    projects: Iterable[Mapping[str, Any]],
    *,
    today: Optional[date] = None,
) -> Dict[str, Any]:
    """Count active tasks by due state, priority and project.

    ``by_priority`` uses the labels shown in the Todoist UI, so ``p1`` counts
    tasks with API priority 4. Tasks whose project is not in ``projects`` are
    counted under "Unknown".
    """
    today_iso = (today or date.today()).isoformat()
    project_names = {
        str(project.get("id")): project.get("name") or UNKNOWN_PROJECT
        for project in projects
    }

    by_priority = {"p1": 0, "p2": 0, "p3": 0, "p4": 0}
    by_project: Dict[str, int] = {}
    total = due_today = overdue = 0

    for task in tasks:
        total += 1
        day = _due_day(task)
        if day is not None:
            if day == today_iso:
                due_today += 1
            elif day < today_iso:
                overdue += 1

        priority = task.get("priority") or 1
        if priority in (1, 2, 3, 4):
            by_priority[f"p{5 - priority}"] += 1

        name = project_names.get(str(task.get("project_id")), UNKNOWN_PROJECT)
        by_project[name] = by_project.get(name, 0) + 1

    return {
        "total_active": total,
        "due_today": due_today,
        "overdue": overdue,
        "by_priority": by_priority,
        "by_project": by_project,
    }


def _match_project(projects: Iterable[Mapping[str, Any]], name: str) -> Optional[str]:
    wanted = name.casefold()
    for project in projects:
        if str(project.get("name", "")).casefold() == wanted:
            return str(project["id"])
    return None


def register_task_tools(mcp: FastMCP, services: TodoistServices) -> None:
    """Register the single-task tools."""
    rest = services.rest

    @canonical_tool(
        mcp,
        canonical_name="search_tasks",
        description="List active tasks by Todoist filter, project, label or IDs.",
        annotations=tool_annotations("Search tasks", read_only=True),
    )
    async def search_tasks(
        filter: Optional[str] = None,
        project_id: Optional[str] = None,
        label: Optional[str] = None,
        ids: Optional[List[str]] = None,
        cursor: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> dict:
        """Search active tasks.

        Args:
            filter: Todoist filter query, e.g. "today | overdue" or "#Work & p1".
                When given, the other selectors are ignored.
            project_id: Only tasks in this project
            label: Only tasks carrying this label name
            ids: Only these task IDs
            cursor: ``next_cursor`` from a previous page
            limit: Page size (Todoist default applies when omitted)
        """

        async def handler() -> ToolResponse:
            validate_order(limit, "limit")
            if filter and filter.strip():
                path = "/tasks/filter"
                params = compact(query=filter, cursor=cursor, limit=limit)
            else:
                path = "/tasks"
                id_list = validate_identifiers(ids, "ids")
                params = compact(
                    project_id=validate_optional_identifier(project_id, "project_id"),
                    label=label or None,
                    ids=",".join(id_list) or None,
                    cursor=cursor,
                    limit=limit,
                )
            tasks, next_cursor = await rest.get_page(path, params=params)
            return success_response(
                tasks=tasks,
                count=len(tasks),
                pagination=pagination_meta(next_cursor),
            )

        return await run_tool(services, "search_tasks", handler)

    @canonical_tool(
        mcp,
        canonical_name="get_task",
        description="Fetch one task by ID.",
        annotations=tool_annotations("Get task", read_only=True),
    )
    async def get_task(task_id: str) -> dict:
        """Fetch a task with its due date, labels and location."""

        async def handler() -> ToolResponse:
            task = await rest.get(f"/tasks/{_task_id(task_id)}")
            return success_response(task=task)

        return await run_tool(services, "get_task", handler)

    @canonical_tool(
        mcp,
        canonical_name="create_task",
        description="Create a task.",
        annotations=tool_annotations("Create task"),
    )
    async def create_task(
        content: str,
        description: Optional[str] = None,
        project_id: Optional[str] = None,
        section_id: Optional[str] = None,
        parent_id: Optional[str] = None,
        order: Optional[int] = None,
        labels: Optional[List[str]] = None,
        priority: Optional[int] = None,
        due_string: Optional[str] = None,
        due_date: Optional[str] = None,
        due_datetime: Optional[str] = None,
        due_lang: Optional[str] = None,
        assignee_id: Optional[str] = None,
        duration: Optional[int] = None,
        duration_unit: Optional[str] = None,
        deadline_date: Optional[str] = None,
    ) -> dict:
        """Create a task. Without a project it lands in the Inbox.

        Args:
            content: Task title (Markdown allowed)
            priority: 1 (normal) to 4 (urgent)
            due_string: Natural language date such as "every monday 9am";
                mutually exclusive with due_date and due_datetime
            duration: Length of the task, together with duration_unit
                ("minute" or "day")
        """

        async def handler() -> ToolResponse:
            require_text(content, "content")
            task_fields = TaskFields(
                content=content,
                description=description,
                project_id=project_id,
                section_id=section_id,
                parent_id=parent_id,
                order=order,
                labels=labels,
                priority=priority,
                due_string=due_string,
                due_date=due_date,
                due_datetime=due_datetime,
                due_lang=due_lang,
                assignee_id=assignee_id,
                duration=duration,
                duration_unit=duration_unit,
                deadline_date=deadline_date,
            ).validate()
            task = await rest.post("/tasks", task_fields.to_body())
            return success_response(task=task)

        return await run_tool(services, "create_task", handler)

    @canonical_tool(
        mcp,
        canonical_name="update_task",
        description="Update fields of an existing task. Use bulk_move_tasks to move it.",
        annotations=tool_annotations("Update task", idempotent=True),
    )
    async def update_task(
        task_id: str,
        content: Optional[str] = None,
        description: Optional[str] = None,
        labels: Optional[List[str]] = None,
        priority: Optional[int] = None,
        due_string: Optional[str] = None,
        due_date: Optional[str] = None,
        due_datetime: Optional[str] = None,
        due_lang: Optional[str] = None,
        assignee_id: Optional[str] = None,
        duration: Optional[int] = None,
        duration_unit: Optional[str] = None,
        deadline_date: Optional[str] = None,
    ) -> dict:
        """Change a task's title, description, labels, priority or dates."""

        async def handler() -> ToolResponse:
            identifier = _task_id(task_id)
            task_fields = TaskFields(
                content=content,
                description=description,
                labels=labels,
                priority=priority,
                due_string=due_string,
                due_date=due_date,
                due_datetime=due_datetime,
                due_lang=due_lang,
                assignee_id=assignee_id,
                duration=duration,
                duration_unit=duration_unit,
                deadline_date=deadline_date,
            ).validate()
            if content is not None:
                require_text(content, "content")
            body = require_update(
                task_fields.to_body(include_location=False),
                [
                    name
                    for name in TaskFields.field_names()
                    if name not in _LOCATION_FIELDS + ("order",)
                ],
            )
            task = await rest.post(f"/tasks/{identifier}", body, idempotent=True)
            return success_response(task=task)

        return await run_tool(services, "update_task", handler)

    @canonical_tool(
        mcp,
        canonical_name="complete_task",
        description="Mark a task complete. Recurring tasks advance to their next date.",
        annotations=tool_annotations("Complete task", idempotent=True),
    )
    async def complete_task(task_id: str) -> dict:
        async def handler() -> ToolResponse:
            identifier = _task_id(task_id)
            await rest.post(f"/tasks/{identifier}/close", idempotent=True)
            return success_response(task_id=identifier, completed=True)

        return await run_tool(services, "complete_task", handler)

    @canonical_tool(
        mcp,
        canonical_name="uncomplete_task",
        description="Reopen a completed task.",
        annotations=tool_annotations("Reopen task", idempotent=True),
    )
    async def uncomplete_task(task_id: str) -> dict:
        async def handler() -> ToolResponse:
            identifier = _task_id(task_id)
            await rest.post(f"/tasks/{identifier}/reopen", idempotent=True)
            return success_response(task_id=identifier, completed=False)

        return await run_tool(services, "uncomplete_task", handler)

    @canonical_tool(
        mcp,
        canonical_name="delete_task",
        description="Permanently delete a task and its subtasks.",
        annotations=tool_annotations("Delete task", destructive=True, idempotent=True),
    )
    async def delete_task(task_id: str) -> dict:
        async def handler() -> ToolResponse:
            identifier = _task_id(task_id)
            await rest.delete(f"/tasks/{identifier}")
            return success_response(task_id=identifier, deleted=True)

        return await run_tool(services, "delete_task", handler)

    @canonical_tool(
        mcp,
        canonical_name="quick_add_task",
        description=(
            "Create a task from one line of text: '#Project' sets the project, "
            "'@label' adds labels, 'p1'..'p4' sets priority and a trailing "
            "date phrase such as 'tomorrow at 5pm' sets the due date."
        ),
        annotations=tool_annotations("Quick add task"),
    )
    async def quick_add_task(text: str) -> dict:
        """Parse quick-add text and create the task.

        An unknown ``#Project`` does not fail the call; the task goes to the
        Inbox and a warning says so.
        """

        async def handler() -> ToolResponse:
            parsed = parse_quick_add(text)
            warnings: List[str] = []
            project_id = None
            if parsed.project_name:
                projects, _ = await rest.get_page("/projects")
                project_id = _match_project(projects, parsed.project_name)
                if project_id is None:
                    warnings.append(
                        f"project '{parsed.project_name}' not found; task added to Inbox"
                    )

            body = TaskFields(
                content=parsed.content,
                project_id=project_id,
                labels=parsed.labels or None,
                priority=parsed.priority,
                due_string=parsed.due_string,
            ).to_body()
            task = await rest.post("/tasks", body)
            return success_response(task=task, parsed=parsed.to_dict(), warnings=warnings)

        return await run_tool(services, "quick_add_task", handler)

    @canonical_tool(
        mcp,
        canonical_name="get_task_stats",
        description="Summarize active tasks: due today, overdue, per priority and per project.",
        annotations=tool_annotations("Task statistics", read_only=True),
    )
    async def get_task_stats() -> dict:
        async def handler() -> ToolResponse:
            tasks, tasks_cursor = await rest.get_page("/tasks")
            projects, _ = await rest.get_page("/projects")
            warnings = []
            if tasks_cursor:
                warnings.append("more tasks exist than one page; counts cover the first page")
            return success_response(
                summarize_tasks(tasks, projects), warnings=warnings
            )

        return await run_tool(services, "get_task_stats", handler)

    logger.debug("Registered task tools")


__all__ = [
    "TaskFields",
    "register_task_tools",
    "summarize_tasks",
]
