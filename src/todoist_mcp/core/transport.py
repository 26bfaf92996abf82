"""HTTP plumbing shared by the REST and Sync dispatchers.

``send_request`` is the one place an outbound request leaves the process:
it attaches the bearer credential, bounds the whole exchange by a single
deadline, and translates httpx failures and non-2xx statuses into the error
taxonomy. Rate admission is the caller's job so that a batch of many commands
costs one unit.
"""

import asyncio
import json
import logging
from typing import Any, Dict, Optional

import httpx

from todoist_mcp.core.errors import (
    ResponseDecodeError,
    TransportFailureError,
    classify_status,
    parse_retry_after,
)

logger = logging.getLogger(__name__)

DEFAULT_REQUEST_TIMEOUT = 30.0
USER_AGENT = "todoist-mcp"


def build_http_client(
    *,
    timeout: float = DEFAULT_REQUEST_TIMEOUT,
    max_idle_connections: int = 10,
    keepalive_expiry: float = 30.0,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.AsyncClient:
    """Create the process-wide pooled client.

    Args:
        timeout: Per-phase httpx timeout; ``send_request`` adds an overall bound
        max_idle_connections: Keep-alive connections retained in the pool
        keepalive_expiry: Seconds an idle pooled connection is kept
        transport: Substitute transport (``httpx.MockTransport`` in tests)
    """
    return httpx.AsyncClient(
        timeout=httpx.Timeout(timeout),
        limits=httpx.Limits(
            max_keepalive_connections=max_idle_connections,
            keepalive_expiry=keepalive_expiry,
        ),
        headers={"User-Agent": USER_AGENT},
        transport=transport,
    )


def auth_headers(api_token: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {api_token}"}


async def send_request(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    *,
    api_token: str,
    timeout: float = DEFAULT_REQUEST_TIMEOUT,
    params: Optional[Dict[str, Any]] = None,
    json_body: Optional[Dict[str, Any]] = None,
    form: Optional[Dict[str, str]] = None,
) -> httpx.Response:
    """Send one request and return the 2xx response.

    Raises:
        TransportFailureError: no response arrived (connect, DNS, timeout)
        TodoistError: the classified error for a non-2xx status
    """
    headers = auth_headers(api_token)
    if json_body is not None:
        headers["Content-Type"] = "application/json"

    try:
        response = await asyncio.wait_for(
            client.request(
                method,
                url,
                params=params,
                json=json_body,
                data=form,
                headers=headers,
            ),
            timeout=timeout,
        )
    except (asyncio.TimeoutError, httpx.TimeoutException) as exc:
        raise TransportFailureError(
            f"{method} {url} timed out after {timeout:g}s"
        ) from exc
    except httpx.RequestError as exc:
        raise TransportFailureError(
            f"{method} {url} failed: {type(exc).__name__}: {exc}"
        ) from exc

    logger.debug("%s %s -> %d", method, url, response.status_code)

    if not response.is_success:
        error = classify_status(
            response.status_code,
            response.text,
            retry_after=parse_retry_after(response.headers.get("Retry-After")),
        )
        logger.info(
            "Todoist %s %s returned %d (%s)",
            method,
            url,
            response.status_code,
            type(error).__name__,
        )
        raise error

    return response


def decode_json(response: httpx.Response) -> Any:
    """Decode a 2xx body; an empty body (204 and friends) decodes to None.

    Raises:
        ResponseDecodeError: if the body is not valid JSON
    """
    if response.status_code == 204 or not response.content.strip():
        return None
    try:
        return response.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ResponseDecodeError(
            f"Todoist returned a malformed response for "
            f"{response.request.method} {response.request.url.path} "
            f"(status {response.status_code})",
            status_code=response.status_code,
        ) from exc
