"""
Bulk task operations across the REST and Sync APIs.

``BulkOperationPlanner`` decides per call which backend path to take:

* more than ``batch_threshold`` (5) targets: one Sync API request carrying a
  command per target, costing a single rate-limit unit;
* otherwise: one REST call per target, in order, after checking that the
  shared window has room for all of them.

Either way the caller gets the same ``BulkOutcome``. A failing target never
stops the others from being attempted; only a failure of the batch request
itself (nothing can be attributed per target) is raised.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence

from todoist_mcp.core.errors import (
    InvalidArgumentError,
    RateLimitExceededError,
    TodoistError,
)
from todoist_mcp.core.rest_client import TodoistRestClient
from todoist_mcp.core.security import (
    MAX_ARRAY_LENGTH,
    validate_identifier,
    validate_identifiers,
)
from todoist_mcp.core.sync_client import BatchResult, Command, TodoistSyncClient

logger = logging.getLogger(__name__)

BATCH_THRESHOLD = 5

MOVE_DESTINATION_FIELDS = ("project_id", "section_id", "parent_id")


class BulkOperationKind(str, Enum):
    """Set-oriented operations the planner knows how to route."""

    CLOSE = "close"
    MOVE = "move"
    CREATE = "create"


_SYNC_COMMAND_TYPES = {
    BulkOperationKind.CLOSE: "item_close",
    BulkOperationKind.MOVE: "item_move",
    BulkOperationKind.CREATE: "item_add",
}


@dataclass
class BulkTarget:
    """One unit of work in a bulk operation.

    Attributes:
        identifier: Task ID for close/move; the caller's ``ref`` (or ``"#<index>"``
            for items without one) for create. Reported back in ``failed_identifiers``.
        args: Task fields for create, in REST API shape
        parent_ref: For create, the ``identifier`` of an earlier target in the
            same call that should become this task's parent
    """

    identifier: str
    args: Dict[str, Any] = field(default_factory=dict)
    parent_ref: Optional[str] = None


@dataclass
class BulkOutcome:
    """Uniform report for a bulk operation, whichever path ran it."""

    kind: BulkOperationKind
    total: int
    succeeded: int = 0
    failed: int = 0
    failed_identifiers: List[str] = field(default_factory=list)
    used_batching: bool = False
    errors: Dict[str, str] = field(default_factory=dict)
    created_ids: Dict[str, str] = field(default_factory=dict)

    def record_success(self, identifier: str, created_id: Optional[str] = None) -> None:
        self.succeeded += 1
        if created_id is not None:
            self.created_ids[identifier] = created_id

    def record_failure(self, identifier: str, reason: str) -> None:
        self.failed += 1
        self.failed_identifiers.append(identifier)
        self.errors[identifier] = reason

    @property
    def partial(self) -> bool:
        return self.failed > 0


# ---------------------------------------------------------------------------
# Payload shaping
# ---------------------------------------------------------------------------


def rest_task_to_sync_args(body: Mapping[str, Any]) -> Dict[str, Any]:
    """Translate a REST task-create body into ``item_add`` arguments.

    The Sync API nests due dates, durations and deadlines and names a few
    fields differently.
    """
    args: Dict[str, Any] = {}
    for key, value in body.items():
        if value is None:
            continue
        if key == "due_string":
            args.setdefault("due", {})["string"] = value
        elif key == "due_date":
            args.setdefault("due", {})["date"] = value
        elif key == "due_datetime":
            args.setdefault("due", {})["date"] = value
        elif key == "due_lang":
            args.setdefault("due", {})["lang"] = value
        elif key == "order":
            args["child_order"] = value
        elif key == "assignee_id":
            args["responsible_uid"] = value
        elif key == "duration":
            args.setdefault("duration", {})["amount"] = value
        elif key == "duration_unit":
            args.setdefault("duration", {})["unit"] = value
        elif key == "deadline_date":
            args["deadline"] = {"date": value}
        else:
            args[key] = value
    return args


def validate_move_destination(destination: Mapping[str, Optional[str]]) -> Dict[str, str]:
    """Require exactly one of project_id, section_id, parent_id."""
    provided = {
        key: destination[key]
        for key in MOVE_DESTINATION_FIELDS
        if destination.get(key)
    }
    if len(provided) != 1:
        raise InvalidArgumentError(
            "exactly one of project_id, section_id or parent_id must be provided",
            field="destination",
            remediation="Pick a single destination; call list_projects or "
            "list_sections to find its ID.",
        )
    key, value = next(iter(provided.items()))
    return {key: validate_identifier(value, key)}


def _extract_task_ids(tasks: Sequence[Any]) -> List[str]:
    ids = []
    for task in tasks:
        if isinstance(task, dict) and task.get("id") is not None:
            ids.append(str(task["id"]))
    return ids


# ---------------------------------------------------------------------------
# Planner
# ---------------------------------------------------------------------------


class BulkOperationPlanner:
    """Routes bulk task operations to the REST or Sync dispatcher."""

    def __init__(
        self,
        rest: TodoistRestClient,
        sync: TodoistSyncClient,
        *,
        batch_threshold: int = BATCH_THRESHOLD,
    ):
        if rest.rate_limiter is not sync.rate_limiter:
            raise ValueError(
                "REST and Sync dispatchers must share one rate limiter instance"
            )
        self._rest = rest
        self._sync = sync
        self._rate_limiter = rest.rate_limiter
        self.batch_threshold = batch_threshold

    def uses_batching(self, count: int) -> bool:
        return count > self.batch_threshold

    # -- target selection ---------------------------------------------------

    async def resolve_task_ids(
        self,
        task_ids: Optional[Sequence[str]] = None,
        filter_query: Optional[str] = None,
    ) -> List[str]:
        """Turn explicit IDs or a filter query into a list of task IDs.

        Explicit IDs win when both are given. A filter costs one REST read.

        Raises:
            InvalidArgumentError: neither given, malformed IDs, too many
                targets, or a filter that matches nothing
        """
        if task_ids:
            return validate_identifiers(task_ids, "task_ids")

        if filter_query and filter_query.strip():
            tasks, next_cursor = await self._rest.get_page(
                "/tasks/filter", params={"query": filter_query}
            )
            ids = _extract_task_ids(tasks)
            if not ids:
                raise InvalidArgumentError(
                    f"filter '{filter_query}' matched no tasks",
                    field="filter",
                    remediation="Check the filter with search_tasks first.",
                )
            if next_cursor or len(ids) > MAX_ARRAY_LENGTH:
                raise InvalidArgumentError(
                    f"filter '{filter_query}' matches more than "
                    f"{MAX_ARRAY_LENGTH} tasks",
                    field="filter",
                    remediation="Narrow the filter so each call covers at most "
                    f"{MAX_ARRAY_LENGTH} tasks.",
                )
            return validate_identifiers(ids, "filter results")

        raise InvalidArgumentError(
            "either task_ids or filter must be provided",
            field="task_ids",
            remediation="Pass task IDs from search_tasks, or a Todoist filter "
            "such as 'overdue' or '#Work & today'.",
        )

    # -- entry points -------------------------------------------------------

    async def complete_tasks(
        self,
        task_ids: Optional[Sequence[str]] = None,
        filter_query: Optional[str] = None,
    ) -> BulkOutcome:
        ids = await self.resolve_task_ids(task_ids, filter_query)
        return await self.execute(
            BulkOperationKind.CLOSE, [BulkTarget(identifier=i) for i in ids]
        )

    async def move_tasks(
        self,
        destination: Mapping[str, Optional[str]],
        task_ids: Optional[Sequence[str]] = None,
        filter_query: Optional[str] = None,
    ) -> BulkOutcome:
        dest = validate_move_destination(destination)
        ids = await self.resolve_task_ids(task_ids, filter_query)
        return await self.execute(
            BulkOperationKind.MOVE,
            [BulkTarget(identifier=i, args=dict(dest)) for i in ids],
        )

    async def create_tasks(self, targets: Sequence[BulkTarget]) -> BulkOutcome:
        self._check_create_refs(targets)
        return await self.execute(BulkOperationKind.CREATE, targets)

    async def execute(
        self, kind: BulkOperationKind, targets: Sequence[BulkTarget]
    ) -> BulkOutcome:
        """Run ``kind`` over ``targets`` on whichever path fits.

        Raises:
            InvalidArgumentError: no targets, or more than one batch can hold
            RateLimitExceededError: sequential path without room for every call
            TodoistError: the batch request itself failed
        """
        count = len(targets)
        if count == 0:
            raise InvalidArgumentError("at least one target is required", field="targets")
        if count > MAX_ARRAY_LENGTH:
            raise InvalidArgumentError(
                f"at most {MAX_ARRAY_LENGTH} targets are allowed per call (got {count})",
                field="targets",
                remediation="Split the work into several calls.",
            )

        if self.uses_batching(count):
            logger.info("Bulk %s of %d tasks routed to the Sync API", kind.value, count)
            return await self._run_batch(kind, targets)

        remaining = self._rate_limiter.remaining()
        if remaining < count:
            raise RateLimitExceededError(
                f"insufficient rate limit capacity: need {count} requests, "
                f"have {remaining} remaining in 15min window",
                current=self._rate_limiter.config.max_requests - remaining,
                capacity=self._rate_limiter.config.max_requests,
                needed=count,
                retry_after=self._rate_limiter.reset_in(),
            )
        logger.info("Bulk %s of %d tasks routed to sequential REST calls", kind.value, count)
        return await self._run_sequential(kind, targets)

    # -- paths --------------------------------------------------------------

    async def _run_sequential(
        self, kind: BulkOperationKind, targets: Sequence[BulkTarget]
    ) -> BulkOutcome:
        outcome = BulkOutcome(kind=kind, total=len(targets), used_batching=False)

        for target in targets:
            try:
                created_id = await self._run_single(kind, target, outcome)
            except TodoistError as exc:
                logger.info("Bulk %s failed for %s: %s", kind.value, target.identifier, exc)
                outcome.record_failure(target.identifier, exc.message)
                continue
            outcome.record_success(target.identifier, created_id)

        return outcome

    async def _run_single(
        self, kind: BulkOperationKind, target: BulkTarget, outcome: BulkOutcome
    ) -> Optional[str]:
        if kind is BulkOperationKind.CLOSE:
            await self._rest.post(f"/tasks/{target.identifier}/close", idempotent=True)
            return None

        if kind is BulkOperationKind.MOVE:
            await self._rest.post(
                f"/tasks/{target.identifier}/move", dict(target.args), idempotent=True
            )
            return None

        body = dict(target.args)
        if target.parent_ref:
            parent_id = outcome.created_ids.get(target.parent_ref)
            if parent_id is None:
                raise InvalidArgumentError(
                    f"parent '{target.parent_ref}' was not created", field="parent_ref"
                )
            body["parent_id"] = parent_id
        task = await self._rest.post("/tasks", body)
        if not isinstance(task, dict) or task.get("id") is None:
            return None
        return str(task["id"])

    async def _run_batch(
        self, kind: BulkOperationKind, targets: Sequence[BulkTarget]
    ) -> BulkOutcome:
        commands = self._build_commands(kind, targets)
        result = await self._sync.submit(
            commands, idempotent=kind is not BulkOperationKind.CREATE
        )
        return self._reconcile(kind, targets, commands, result)

    def _build_commands(
        self, kind: BulkOperationKind, targets: Sequence[BulkTarget]
    ) -> List[Command]:
        command_type = _SYNC_COMMAND_TYPES[kind]
        commands: List[Command] = []
        temp_ids: Dict[str, str] = {}

        for target in targets:
            if kind is BulkOperationKind.CREATE:
                args = rest_task_to_sync_args(target.args)
                if target.parent_ref:
                    args["parent_id"] = temp_ids[target.parent_ref]
                command = Command.create(command_type, args, with_temp_id=True)
                temp_ids[target.identifier] = command.temp_id
            else:
                command = Command.create(command_type, {"id": target.identifier, **target.args})
            commands.append(command)

        return commands

    @staticmethod
    def _reconcile(
        kind: BulkOperationKind,
        targets: Sequence[BulkTarget],
        commands: Sequence[Command],
        result: BatchResult,
    ) -> BulkOutcome:
        outcome = BulkOutcome(kind=kind, total=len(targets), used_batching=True)
        for target, command in zip(targets, commands):
            if result.succeeded(command.uuid):
                outcome.record_success(target.identifier, result.real_id(command.temp_id))
            else:
                outcome.record_failure(target.identifier, result.error_for(command.uuid))
        return outcome

    @staticmethod
    def _check_create_refs(targets: Sequence[BulkTarget]) -> None:
        seen = set()
        for index, target in enumerate(targets):
            if target.parent_ref and target.parent_ref not in seen:
                raise InvalidArgumentError(
                    f"tasks[{index}].parent_ref '{target.parent_ref}' must name the "
                    "ref of an earlier task in the same call",
                    field=f"tasks[{index}].parent_ref",
                )
            if target.identifier in seen:
                raise InvalidArgumentError(
                    f"tasks[{index}].ref '{target.identifier}' is used more than once",
                    field=f"tasks[{index}].ref",
                )
            seen.add(target.identifier)
