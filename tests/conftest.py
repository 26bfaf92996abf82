"""
Root pytest configuration and shared fixtures.

Provides a fake Todoist backend on ``httpx.MockTransport``, a controllable
clock for the rate limiter, and helpers for reading tool envelopes.
"""

import json
from typing import Any, Callable, Dict, List, Optional, Tuple, Union
from unittest.mock import MagicMock
from urllib.parse import parse_qs

import httpx
import pytest
from mcp.types import TextContent

from todoist_mcp.config import ServerConfig
from todoist_mcp.core.rate_limit import RateLimitConfig, SlidingWindowRateLimiter
from todoist_mcp.core.resilience import RetryPolicy
from todoist_mcp.core.services import TodoistServices

# Response contract version from responses.py
RESPONSE_CONTRACT_VERSION = "response-v2"

# 40 hex characters, the shape of a real Todoist token
TEST_TOKEN = "0123456789abcdef0123456789abcdef01234567"

REST_PREFIX = "/api/v1"


def extract_response_dict(result: Union[Dict[str, Any], TextContent]) -> Dict[str, Any]:
    """Extract dict from tool result, handling both dict and TextContent.

    Tools wrapped with canonical_tool return TextContent with minified JSON.
    """
    if isinstance(result, dict):
        return result
    if isinstance(result, TextContent):
        return json.loads(result.text)
    raise TypeError(
        f"Expected dict or TextContent, got {type(result).__name__}"
    )


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


async def no_sleep(_: float) -> None:
    return None


Responder = Union[
    Tuple[int, Any],
    Callable[[httpx.Request], httpx.Response],
    List[Any],
]


class FakeTodoist:
    """Scripted Todoist backend.

    Routes are keyed by ``(method, path)`` with the ``/api/v1`` prefix
    stripped, so ``("POST", "/tasks/1/close")`` or ``("POST", "/sync")``.
    A route maps to a ``(status, json_body)`` pair, a callable taking the
    request, or a list of either, consumed one per call (the last one
    repeats). Unrouted requests get a 404.
    """

    def __init__(self):
        self.routes: Dict[Tuple[str, str], Responder] = {}
        self.requests: List[httpx.Request] = []

    def route(self, method: str, path: str, responder: Responder) -> None:
        self.routes[(method, path)] = responder

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path.startswith(REST_PREFIX):
            path = path[len(REST_PREFIX):]

        responder = self.routes.get((request.method, path))
        if responder is None:
            return httpx.Response(404, text="Not found")

        if isinstance(responder, list):
            current = responder[0]
            if len(responder) > 1:
                responder.pop(0)
            responder = current

        if callable(responder):
            return responder(request)
        status, body = responder
        if body is None:
            return httpx.Response(status)
        if isinstance(body, str):
            return httpx.Response(status, text=body)
        return httpx.Response(status, json=body)

    def calls(self, method: Optional[str] = None, path: Optional[str] = None) -> List[httpx.Request]:
        selected = []
        for request in self.requests:
            request_path = request.url.path
            if request_path.startswith(REST_PREFIX):
                request_path = request_path[len(REST_PREFIX):]
            if method and request.method != method:
                continue
            if path and request_path != path:
                continue
            selected.append(request)
        return selected


def sync_commands(request: httpx.Request) -> List[Dict[str, Any]]:
    """Decode the ``commands`` form field of a Sync API request."""
    form = parse_qs(request.content.decode())
    return json.loads(form["commands"][0])


def sync_ok(request: httpx.Request, *, fail: Optional[Dict[int, Dict[str, Any]]] = None) -> httpx.Response:
    """Answer a Sync request: every command ok except the indices in ``fail``."""
    fail = fail or {}
    status = {}
    mapping = {}
    for index, command in enumerate(sync_commands(request)):
        status[command["uuid"]] = fail.get(index, "ok")
        if command.get("temp_id") and index not in fail:
            mapping[command["temp_id"]] = f"real-{index}"
    return httpx.Response(
        200,
        json={"sync_status": status, "temp_id_mapping": mapping, "sync_token": "tok"},
    )


def make_config(**overrides: Any) -> ServerConfig:
    config = ServerConfig(api_token=TEST_TOKEN, verify_connection=False)
    for key, value in overrides.items():
        setattr(config, key, value)
    return config


def make_services(
    backend: FakeTodoist,
    *,
    clock: Optional[FakeClock] = None,
    max_requests: int = 450,
    window_seconds: float = 900,
    config: Optional[ServerConfig] = None,
) -> TodoistServices:
    limiter = SlidingWindowRateLimiter(
        RateLimitConfig(max_requests=max_requests, window_seconds=window_seconds),
        clock=clock or FakeClock(),
    )
    return TodoistServices.build(
        config or make_config(),
        transport=httpx.MockTransport(backend.handler),
        rate_limiter=limiter,
        retry_policy=RetryPolicy(sleep=no_sleep),
    )


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def backend() -> FakeTodoist:
    return FakeTodoist()


@pytest.fixture
def services(backend, fake_clock) -> TodoistServices:
    return make_services(backend, clock=fake_clock)


@pytest.fixture
def mock_mcp():
    """Create a mock FastMCP server instance that records registered tools."""
    mcp = MagicMock()
    mcp._tools = {}

    def mock_tool(*args, **kwargs):
        def decorator(func):
            tool_name = kwargs.get("name", func.__name__)
            mcp._tools[tool_name] = func
            mcp._tools[f"{tool_name}:kwargs"] = kwargs
            return func
        return decorator

    mcp.tool = mock_tool
    return mcp


@pytest.fixture
def assert_response_contract():
    """Check the response-v2 envelope shape."""

    def _assert(result: Union[Dict[str, Any], TextContent]) -> Dict[str, Any]:
        response = extract_response_dict(result)
        assert set(response) == {"success", "data", "error", "meta"}
        assert response["meta"]["version"] == RESPONSE_CONTRACT_VERSION
        assert response["meta"].get("request_id")
        if response["success"]:
            assert response["error"] is None
        else:
            assert response["error"]
            assert response["data"].get("error_code")
            assert response["data"].get("error_type")
        return response

    return _assert
