"""Process-wide Todoist service objects.

``TodoistServices`` owns the long-lived pieces every tool needs: one pooled
HTTP client, one rate limiter, and the dispatchers built on top of them.
Tools receive the container explicitly; nothing here is a module global.
"""

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

import httpx

from todoist_mcp.core.bulk import BulkOperationPlanner
from todoist_mcp.core.rate_limit import SlidingWindowRateLimiter
from todoist_mcp.core.resilience import RetryPolicy
from todoist_mcp.core.rest_client import TodoistRestClient
from todoist_mcp.core.sync_client import TodoistSyncClient
from todoist_mcp.core.transport import build_http_client

if TYPE_CHECKING:
    from todoist_mcp.config import ServerConfig

logger = logging.getLogger(__name__)


@dataclass
class TodoistServices:
    """Shared clients for one server process.

    Attributes:
        http_client: Pooled async HTTP client used by both dispatchers
        rate_limiter: The single admission gate for both Todoist APIs
        rest: REST dispatcher
        sync: Sync API dispatcher
        planner: Bulk operation planner
        tool_timeout: Deadline applied to each tool invocation
    """

    http_client: httpx.AsyncClient
    rate_limiter: SlidingWindowRateLimiter
    rest: TodoistRestClient
    sync: TodoistSyncClient
    planner: BulkOperationPlanner
    tool_timeout: float

    @classmethod
    def build(
        cls,
        config: "ServerConfig",
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        rate_limiter: Optional[SlidingWindowRateLimiter] = None,
        retry_policy: Optional[RetryPolicy] = None,
    ) -> "TodoistServices":
        """Wire the dispatchers around one limiter and one HTTP pool.

        Args:
            config: Validated server configuration
            transport: Substitute HTTP transport (tests use ``httpx.MockTransport``)
            rate_limiter: Pre-built limiter (tests inject one with a fake clock)
            retry_policy: Pre-built retry policy (tests inject a no-op sleep)
        """
        limiter = rate_limiter or SlidingWindowRateLimiter(
            config.rate_limit.to_limiter_config()
        )
        retry = retry_policy or RetryPolicy()
        http_client = build_http_client(
            timeout=config.request_timeout,
            max_idle_connections=config.max_idle_connections,
            transport=transport,
        )
        rest = TodoistRestClient(
            http_client,
            config.api_token,
            limiter,
            base_url=config.rest_base_url,
            timeout=config.request_timeout,
            retry_policy=retry,
        )
        sync = TodoistSyncClient(
            http_client,
            config.api_token,
            limiter,
            sync_url=config.sync_url,
            timeout=config.request_timeout,
            retry_policy=retry,
        )
        planner = BulkOperationPlanner(rest, sync, batch_threshold=config.batch_threshold)
        return cls(
            http_client=http_client,
            rate_limiter=limiter,
            rest=rest,
            sync=sync,
            planner=planner,
            tool_timeout=config.tool_timeout,
        )

    async def aclose(self) -> None:
        """Release pooled connections."""
        await self.http_client.aclose()
        logger.debug("Closed Todoist HTTP client")
