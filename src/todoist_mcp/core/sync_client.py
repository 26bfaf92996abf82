"""Dispatcher for the Todoist Sync (command queue) API.

Many mutations travel in one request: the body is a single form field,
``commands``, holding a JSON array of ``{type, uuid, temp_id?, args}``
objects. The response reports a status per command ``uuid`` and maps each
``temp_id`` to the ID the server assigned.

Example usage:
    commands = [Command.create("item_close", {"id": task_id}) for task_id in ids]
    result = await sync_client.submit(commands, idempotent=True)
    failed = [c for c in commands if not result.succeeded(c.uuid)]
"""

import json
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Sequence

import httpx

from todoist_mcp.core.errors import InvalidArgumentError, ResponseDecodeError
from todoist_mcp.core.rate_limit import SlidingWindowRateLimiter
from todoist_mcp.core.resilience import RetryPolicy
from todoist_mcp.core.security import MAX_ARRAY_LENGTH
from todoist_mcp.core.transport import (
    DEFAULT_REQUEST_TIMEOUT,
    decode_json,
    send_request,
)

logger = logging.getLogger(__name__)

DEFAULT_SYNC_URL = "https://api.todoist.com/api/v1/sync"
SYNC_STATUS_OK = "ok"


def new_uuid() -> str:
    return str(uuid.uuid4())


@dataclass
class Command:
    """One mutation in a Sync API batch.

    Attributes:
        type: Sync command type (``item_close``, ``item_move``, ``item_add``, ...)
        args: Command arguments
        uuid: Correlation ID; the response reports this command's status under it
        temp_id: Placeholder ID for a created entity, so later commands in the
            same batch can refer to it (for example as ``parent_id``)
    """

    type: str
    args: Dict[str, Any] = field(default_factory=dict)
    uuid: str = field(default_factory=new_uuid)
    temp_id: Optional[str] = None

    @classmethod
    def create(
        cls, command_type: str, args: Dict[str, Any], *, with_temp_id: bool = False
    ) -> "Command":
        return cls(
            type=command_type,
            args=dict(args),
            temp_id=new_uuid() if with_temp_id else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"type": self.type, "uuid": self.uuid}
        if self.temp_id:
            payload["temp_id"] = self.temp_id
        payload["args"] = self.args
        return payload


@dataclass
class BatchResult:
    """Decoded Sync API response.

    Attributes:
        status_by_uuid: ``"ok"`` or an error object per command uuid
        temp_id_mapping: temp_id -> server-assigned ID for created entities
        sync_token: Token returned by the server, if any
    """

    status_by_uuid: Dict[str, Any] = field(default_factory=dict)
    temp_id_mapping: Dict[str, str] = field(default_factory=dict)
    sync_token: Optional[str] = None

    def succeeded(self, command_uuid: str) -> bool:
        return self.status_by_uuid.get(command_uuid) == SYNC_STATUS_OK

    def error_for(self, command_uuid: str) -> Optional[str]:
        """Human-readable failure for a command, or None if it succeeded.

        A command missing from the status map is reported as such.
        """
        if command_uuid not in self.status_by_uuid:
            return "no status returned for command"
        status = self.status_by_uuid[command_uuid]
        if status == SYNC_STATUS_OK:
            return None
        if isinstance(status, dict):
            message = status.get("error") or status.get("error_tag") or "command failed"
            code = status.get("error_code")
            return f"{message} (code {code})" if code is not None else str(message)
        return str(status)

    def real_id(self, temp_id: Optional[str]) -> Optional[str]:
        if not temp_id:
            return None
        resolved = self.temp_id_mapping.get(temp_id)
        return str(resolved) if resolved is not None else None

    @classmethod
    def from_payload(cls, payload: Any) -> "BatchResult":
        if not isinstance(payload, dict):
            raise ResponseDecodeError(
                "Todoist sync response was not a JSON object "
                f"(got {type(payload).__name__})"
            )
        status = payload.get("sync_status")
        if not isinstance(status, dict):
            raise ResponseDecodeError(
                "Todoist sync response is missing the sync_status map"
            )
        mapping = payload.get("temp_id_mapping") or {}
        if not isinstance(mapping, dict):
            raise ResponseDecodeError("Todoist sync response has a malformed temp_id_mapping")
        return cls(
            status_by_uuid=dict(status),
            temp_id_mapping={str(k): str(v) for k, v in mapping.items()},
            sync_token=payload.get("sync_token"),
        )


class TodoistSyncClient:
    """Submits command batches to the Sync API.

    A batch consumes one admission from the shared rate limiter however many
    commands it carries.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        api_token: str,
        rate_limiter: SlidingWindowRateLimiter,
        *,
        sync_url: str = DEFAULT_SYNC_URL,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
        retry_policy: Optional[RetryPolicy] = None,
    ):
        self._http = http_client
        self._api_token = api_token
        self._rate_limiter = rate_limiter
        self._sync_url = sync_url
        self._timeout = timeout
        self._retry = retry_policy or RetryPolicy()

    @property
    def rate_limiter(self) -> SlidingWindowRateLimiter:
        return self._rate_limiter

    async def _attempt(self, form: Dict[str, str]) -> BatchResult:
        self._rate_limiter.try_admit()
        response = await send_request(
            self._http,
            "POST",
            self._sync_url,
            api_token=self._api_token,
            timeout=self._timeout,
            form=form,
        )
        return BatchResult.from_payload(decode_json(response))

    async def submit(
        self, commands: Sequence[Command], *, idempotent: bool = False
    ) -> BatchResult:
        """Send ``commands`` in a single request.

        Args:
            commands: Commands with distinct uuids (at most 100)
            idempotent: Allow retrying the whole batch on a transient failure.
                The same uuids are resent, so the server can recognise
                commands it already applied. Leave False for batches with
                ``item_add`` commands.

        Raises:
            InvalidArgumentError: empty batch, oversized batch, or duplicate uuids
            TodoistError: admission, transport, status, or decode failure for
                the batch as a whole
        """
        if not commands:
            raise InvalidArgumentError("commands is required", field="commands")
        if len(commands) > MAX_ARRAY_LENGTH:
            raise InvalidArgumentError(
                f"a sync batch holds at most {MAX_ARRAY_LENGTH} commands "
                f"(got {len(commands)})",
                field="commands",
            )
        uuids = [command.uuid for command in commands]
        if len(set(uuids)) != len(uuids):
            raise InvalidArgumentError(
                "command uuids must be unique within a batch", field="commands"
            )

        form = {"commands": json.dumps([command.to_dict() for command in commands])}
        logger.debug("Submitting sync batch of %d commands", len(commands))

        if idempotent:
            result = await self._retry.run(
                lambda: self._attempt(form),
                description=f"sync batch of {len(commands)} commands",
            )
        else:
            result = await self._attempt(form)

        missing = [u for u in uuids if u not in result.status_by_uuid]
        if missing:
            logger.warning(
                "Sync response omitted status for %d of %d commands",
                len(missing),
                len(commands),
            )
        return result
