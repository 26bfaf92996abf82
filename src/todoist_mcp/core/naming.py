"""Naming helpers for MCP tool registration."""

from __future__ import annotations

import asyncio
import functools
import json
import logging
from typing import Any, Callable

from mcp.server.fastmcp import FastMCP
from mcp.types import TextContent

from todoist_mcp.core.observability import mcp_tool

logger = logging.getLogger(__name__)


def _minify_response(result: dict[str, Any]) -> TextContent:
    """Convert a response envelope to TextContent with minified JSON."""
    return TextContent(
        type="text",
        text=json.dumps(result, separators=(",", ":"), default=str),
    )


def canonical_tool(
    mcp: FastMCP,
    *,
    canonical_name: str,
    **tool_kwargs: Any,
) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """Decorator that registers an async tool under its canonical name.

    The handler is instrumented with ``mcp_tool`` (which needs to see the
    envelope dict to audit failures), then its dict result is minified into a
    single ``TextContent`` block before FastMCP serializes it.

    Args:
        mcp: FastMCP instance
        canonical_name: The canonical name for the tool
        **tool_kwargs: Additional kwargs passed to mcp.tool() (description,
            annotations, ...)

    Returns:
        Decorated function registered as an MCP tool
    """
    tool_kwargs.setdefault("structured_output", False)

    def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
        if not asyncio.iscoroutinefunction(func):
            raise TypeError(f"Tool '{canonical_name}' must be an async function")

        instrumented = mcp_tool(tool_name=canonical_name)(func)

        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            result = await instrumented(*args, **kwargs)
            if isinstance(result, dict):
                return _minify_response(result)
            return result

        logger.debug("Registering tool %s", canonical_name)
        return mcp.tool(name=canonical_name, **tool_kwargs)(wrapper)

    return decorator
