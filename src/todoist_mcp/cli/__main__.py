"""CLI module entry point.

Enables running the CLI via: python -m todoist_mcp.cli
"""

from todoist_mcp.cli.main import cli

if __name__ == "__main__":
    cli()
