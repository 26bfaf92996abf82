"""
Unit tests for todoist_mcp.core.rest_client module.

Runs the REST dispatcher against a scripted backend on httpx.MockTransport.
"""

import json

import httpx
import pytest

from todoist_mcp.core.errors import (
    AuthenticationFailedError,
    BackendUnavailableError,
    NotFoundError,
    RateLimitExceededError,
    ResponseDecodeError,
    TransportFailureError,
)
from todoist_mcp.core.rest_client import split_page
from tests.conftest import TEST_TOKEN, FakeTodoist, make_services


# =============================================================================
# Request Shape
# =============================================================================


class TestRequestShape:
    """Test what goes over the wire."""

    @pytest.mark.asyncio
    async def test_bearer_token_and_url(self, services, backend):
        """Requests carry the bearer token and hit the v1 base URL."""
        backend.route("GET", "/tasks/abc", (200, {"id": "abc", "content": "Buy milk"}))

        task = await services.rest.get("/tasks/abc")

        assert task == {"id": "abc", "content": "Buy milk"}
        request = backend.requests[0]
        assert request.headers["Authorization"] == f"Bearer {TEST_TOKEN}"
        assert str(request.url) == "https://api.todoist.com/api/v1/tasks/abc"

    @pytest.mark.asyncio
    async def test_post_sends_json(self, services, backend):
        backend.route("POST", "/tasks", (200, {"id": "1"}))

        await services.rest.post("/tasks", {"content": "Buy milk", "priority": 4})

        request = backend.requests[0]
        assert request.headers["Content-Type"] == "application/json"
        assert json.loads(request.content) == {"content": "Buy milk", "priority": 4}

    @pytest.mark.asyncio
    async def test_no_content_response(self, services, backend):
        """A 204 decodes to None."""
        backend.route("POST", "/tasks/1/close", (204, None))
        assert await services.rest.post("/tasks/1/close", idempotent=True) is None

    @pytest.mark.asyncio
    async def test_malformed_json(self, services, backend):
        backend.route("GET", "/projects", (200, "not json{"))
        with pytest.raises(ResponseDecodeError):
            await services.rest.get("/projects")


# =============================================================================
# Rate Admission
# =============================================================================


class TestAdmission:
    """Every attempt takes one admission before any I/O."""

    @pytest.mark.asyncio
    async def test_each_call_consumes_one_unit(self, services, backend):
        backend.route("GET", "/projects", (200, []))
        await services.rest.get("/projects")
        await services.rest.get("/projects")
        assert services.rate_limiter.remaining() == 448

    @pytest.mark.asyncio
    async def test_refused_admission_sends_nothing(self):
        backend = FakeTodoist()
        backend.route("GET", "/projects", (200, []))
        services = make_services(backend, max_requests=1)

        await services.rest.get("/projects")
        with pytest.raises(RateLimitExceededError):
            await services.rest.get("/projects")

        assert len(backend.requests) == 1


# =============================================================================
# Status Taxonomy and Retries
# =============================================================================


class TestErrors:
    """Test status mapping and which calls are retried."""

    @pytest.mark.asyncio
    async def test_401_not_retried(self, services, backend):
        backend.route("GET", "/tasks/1", (401, "Unauthorized"))
        with pytest.raises(AuthenticationFailedError):
            await services.rest.get("/tasks/1")
        assert len(backend.requests) == 1

    @pytest.mark.asyncio
    async def test_404(self, services, backend):
        with pytest.raises(NotFoundError):
            await services.rest.get("/tasks/missing")

    @pytest.mark.asyncio
    async def test_read_retried_on_5xx(self, services, backend):
        """Reads are retried and each attempt costs an admission."""
        backend.route(
            "GET",
            "/tasks/1",
            [(503, "busy"), (502, "busy"), (200, {"id": "1"})],
        )

        assert await services.rest.get("/tasks/1") == {"id": "1"}
        assert len(backend.requests) == 3
        assert services.rate_limiter.remaining() == 447

    @pytest.mark.asyncio
    async def test_read_gives_up_after_three(self, services, backend):
        backend.route("GET", "/tasks/1", (500, "boom"))
        with pytest.raises(BackendUnavailableError):
            await services.rest.get("/tasks/1")
        assert len(backend.requests) == 3

    @pytest.mark.asyncio
    async def test_create_never_retried(self, services, backend):
        """A non-idempotent POST is sent exactly once."""
        backend.route("POST", "/tasks", (503, "busy"))
        with pytest.raises(BackendUnavailableError):
            await services.rest.post("/tasks", {"content": "x"})
        assert len(backend.requests) == 1

    @pytest.mark.asyncio
    async def test_transport_failure(self, services, backend):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        backend.route("GET", "/projects", refuse)
        with pytest.raises(TransportFailureError) as exc_info:
            await services.rest.get("/projects")
        assert isinstance(exc_info.value.cause, httpx.ConnectError)
        assert len(backend.requests) == 3

    @pytest.mark.asyncio
    async def test_connection_probe_prefix(self, services, backend):
        backend.route("GET", "/projects", (401, "Unauthorized"))
        with pytest.raises(AuthenticationFailedError) as exc_info:
            await services.rest.test_connection()
        assert exc_info.value.message.startswith("connection test failed: authentication failed")


# =============================================================================
# Listing Shapes
# =============================================================================


class TestSplitPage:
    """Test split_page and get_page."""

    def test_bare_array(self):
        assert split_page([{"id": "1"}]) == ([{"id": "1"}], None)

    def test_paginated(self):
        payload = {"results": [{"id": "1"}], "next_cursor": "c2"}
        assert split_page(payload) == ([{"id": "1"}], "c2")

    def test_empty(self):
        assert split_page(None) == ([], None)

    def test_unexpected_shape(self):
        with pytest.raises(ResponseDecodeError):
            split_page({"items": []})

    @pytest.mark.asyncio
    async def test_get_page_passes_params(self, services, backend):
        backend.route("GET", "/tasks", (200, {"results": [], "next_cursor": None}))
        items, cursor = await services.rest.get_page("/tasks", params={"project_id": "p1"})
        assert (items, cursor) == ([], None)
        assert backend.requests[0].url.params["project_id"] == "p1"
