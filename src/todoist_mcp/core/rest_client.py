"""Dispatcher for the per-resource Todoist REST API.

Example usage:
    client = TodoistRestClient(http_client, api_token, rate_limiter)
    task = await client.get("/tasks/6X7rM8997g3RQmvh")
    await client.post("/tasks/6X7rM8997g3RQmvh/close", idempotent=True)
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

import httpx

from todoist_mcp.core.errors import ResponseDecodeError, TodoistError
from todoist_mcp.core.rate_limit import SlidingWindowRateLimiter
from todoist_mcp.core.resilience import FAST_TIMEOUT, RetryPolicy, with_timeout
from todoist_mcp.core.transport import (
    DEFAULT_REQUEST_TIMEOUT,
    decode_json,
    send_request,
)

logger = logging.getLogger(__name__)

DEFAULT_REST_BASE_URL = "https://api.todoist.com/api/v1"


class TodoistRestClient:
    """Single-resource HTTP calls against the REST API.

    Every attempt (including each retry) takes one admission from the shared
    rate limiter before any network I/O. Reads, deletes, and calls marked
    ``idempotent`` go through the retry policy; everything else is sent once.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        api_token: str,
        rate_limiter: SlidingWindowRateLimiter,
        *,
        base_url: str = DEFAULT_REST_BASE_URL,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
        retry_policy: Optional[RetryPolicy] = None,
    ):
        """Initialize the REST dispatcher.

        Args:
            http_client: Shared pooled client (owned by the caller)
            api_token: Bearer credential, already validated
            rate_limiter: The process-wide limiter shared with the Sync dispatcher
            base_url: REST base URL
            timeout: Overall bound on one request, connection setup included
            retry_policy: Backoff for idempotent calls (defaults to 3 attempts)
        """
        self._http = http_client
        self._api_token = api_token
        self._rate_limiter = rate_limiter
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._retry = retry_policy or RetryPolicy()

    @property
    def rate_limiter(self) -> SlidingWindowRateLimiter:
        return self._rate_limiter

    async def _attempt(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        body: Optional[Dict[str, Any]] = None,
    ) -> Any:
        self._rate_limiter.try_admit()
        response = await send_request(
            self._http,
            method,
            f"{self._base_url}{path}",
            api_token=self._api_token,
            timeout=self._timeout,
            params=params,
            json_body=body,
        )
        return decode_json(response)

    async def _call(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        body: Optional[Dict[str, Any]] = None,
        idempotent: bool,
    ) -> Any:
        if not idempotent:
            return await self._attempt(method, path, params=params, body=body)
        return await self._retry.run(
            lambda: self._attempt(method, path, params=params, body=body),
            description=f"{method} {path}",
        )

    async def get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """GET ``path`` and return the decoded JSON body."""
        return await self._call("GET", path, params=params, idempotent=True)

    async def post(
        self,
        path: str,
        body: Optional[Dict[str, Any]] = None,
        *,
        idempotent: bool = False,
    ) -> Any:
        """POST ``body`` as JSON to ``path``.

        Args:
            path: Resource path under the base URL
            body: JSON payload (omitted when None)
            idempotent: True for updates, closes and reopens. Creates must
                leave this False so they are never sent twice.
        """
        return await self._call("POST", path, body=body, idempotent=idempotent)

    async def delete(self, path: str) -> None:
        """DELETE ``path``."""
        await self._call("DELETE", path, idempotent=True)

    async def get_page(
        self, path: str, params: Optional[Dict[str, Any]] = None
    ) -> Tuple[List[Dict[str, Any]], Optional[str]]:
        """GET a collection and return ``(items, next_cursor)``.

        Accepts both a bare JSON array and the paginated
        ``{"results": [...], "next_cursor": ...}`` shape. Only one page is read.
        """
        payload = await self.get(path, params=params)
        return split_page(payload)

    @with_timeout(FAST_TIMEOUT, f"connection test failed: no response within {FAST_TIMEOUT:g}s")
    async def test_connection(self) -> None:
        """Probe the API with a cheap authenticated read.

        Raises:
            TodoistError: with a message prefixed "connection test failed"
        """
        try:
            await self.get("/projects", params={"limit": 1})
        except TodoistError as exc:
            exc.message = f"connection test failed: {exc.message}"
            exc.args = (exc.message,)
            raise
        logger.info("Connected to Todoist API at %s", self._base_url)


def split_page(payload: Any) -> Tuple[List[Dict[str, Any]], Optional[str]]:
    """Normalize a listing response into ``(items, next_cursor)``."""
    if payload is None:
        return [], None
    if isinstance(payload, list):
        return payload, None
    if isinstance(payload, dict) and isinstance(payload.get("results"), list):
        return payload["results"], payload.get("next_cursor")
    raise ResponseDecodeError(
        "Todoist returned an unexpected listing shape "
        f"({type(payload).__name__} without a results array)"
    )
