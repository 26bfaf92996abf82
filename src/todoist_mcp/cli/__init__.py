"""Operator CLI for todoist-mcp.

JSON-only output, using the same response envelope as the MCP tools.
"""

from todoist_mcp.cli.main import cli

__all__ = ["cli"]
