"""FastMCP server for todoist-mcp.

The server speaks MCP over stdio. stdout carries the JSON-RPC stream, so all
logging goes to stderr.
"""

from __future__ import annotations

import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from mcp.server.fastmcp import FastMCP

from todoist_mcp.config import ConfigError, ServerConfig, get_config
from todoist_mcp.core.observability import audit_log
from todoist_mcp.core.services import TodoistServices
from todoist_mcp.tools import register_all_tools

logger = logging.getLogger(__name__)


def _build_lifespan(config: ServerConfig, services: TodoistServices):
    """Probe Todoist once the event loop is running; release the pool on exit."""

    @asynccontextmanager
    async def lifespan(_: FastMCP) -> AsyncIterator[None]:
        try:
            if config.verify_connection:
                await services.rest.test_connection()
            else:
                logger.debug("Startup connection test skipped")
            yield
        finally:
            await services.aclose()

    return lifespan


def create_server(
    config: Optional[ServerConfig] = None,
    services: Optional[TodoistServices] = None,
) -> FastMCP:
    """Create and configure the FastMCP server instance.

    Args:
        config: Server configuration (defaults to the process-level config)
        services: Pre-built service container; built from ``config`` when omitted
    """
    if config is None:
        config = get_config()

    config.setup_logging()

    if services is None:
        services = TodoistServices.build(config)

    mcp = FastMCP(name=config.server_name, lifespan=_build_lifespan(config, services))
    register_all_tools(mcp, services)

    logger.info("Server created: %s v%s", config.server_name, config.server_version)
    return mcp


def main() -> None:
    """Main entry point for the todoist-mcp server."""

    try:
        config = get_config()
        config.setup_logging()
        config.validate()
        server = create_server(config)

        logger.info(
            "Starting %s v%s (rate limit: %d requests per %s, shared by REST and Sync)",
            config.server_name,
            config.server_version,
            config.rate_limit.max_requests,
            config.rate_limit.to_limiter_config().describe_window(),
        )
        audit_log("startup", version=config.server_version, **config.redacted())

        server.run()

    except KeyboardInterrupt:
        logger.info("Server shutdown requested")
        sys.exit(0)
    except ConfigError as exc:
        logger.error("Configuration error: %s", exc)
        audit_log("startup", error=str(exc), success=False)
        sys.exit(1)
    except BaseException as exc:
        logger.error("Server error: %s: %s", type(exc).__name__, exc)
        audit_log("startup", error=str(exc), success=False)
        sys.exit(1)


if __name__ == "__main__":
    main()
