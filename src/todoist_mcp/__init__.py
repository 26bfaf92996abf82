"""Todoist MCP - MCP server exposing a Todoist account to AI agents."""

from importlib.metadata import version, PackageNotFoundError

try:
    __version__ = version("todoist-mcp")
except PackageNotFoundError:
    # Package not installed (development mode without editable install)
    __version__ = "0.3.0"

from todoist_mcp.server import create_server, main

__all__ = ["__version__", "create_server", "main"]
