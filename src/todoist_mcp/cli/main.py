"""todoist-mcp-cli entry point.

JSON-only output, so the commands are as easy to script as the MCP tools.
"""

import asyncio
from typing import Any, Dict, Optional

import click

from todoist_mcp.cli.output import emit_error, emit_exception, emit_success
from todoist_mcp.config import ConfigError, ServerConfig, set_config
from todoist_mcp.core.errors import TodoistError
from todoist_mcp.core.quick_add import parse_quick_add
from todoist_mcp.core.services import TodoistServices
from todoist_mcp.server import main as run_server


def _load_config(ctx: click.Context) -> ServerConfig:
    try:
        return ServerConfig.from_env(ctx.obj.get("config_file"))
    except ConfigError as exc:
        emit_error(str(exc), "VALIDATION_ERROR", error_type="validation")


async def _probe(config: ServerConfig) -> Dict[str, Any]:
    services = TodoistServices.build(config)
    try:
        await services.rest.test_connection()
        return services.rate_limiter.snapshot()
    finally:
        await services.aclose()


@click.group()
@click.option(
    "--config-file",
    envvar="TODOIST_MCP_CONFIG_FILE",
    type=click.Path(exists=False),
    help="Path to a todoist-mcp.toml file",
)
@click.pass_context
def cli(ctx: click.Context, config_file: Optional[str]) -> None:
    """todoist-mcp operator commands.

    All commands print a JSON envelope: success on stdout, errors on stderr.
    """
    ctx.ensure_object(dict)
    ctx.obj["config_file"] = config_file


@cli.command()
@click.pass_context
def serve(ctx: click.Context) -> None:
    """Run the MCP server over stdio."""
    set_config(_load_config(ctx))
    run_server()


@cli.command()
@click.option("--skip-probe", is_flag=True, help="Validate configuration only")
@click.pass_context
def check(ctx: click.Context, skip_probe: bool) -> None:
    """Validate configuration and test the connection to Todoist."""
    config = _load_config(ctx)
    try:
        config.validate()
    except ConfigError as exc:
        emit_error(
            str(exc),
            "VALIDATION_ERROR",
            error_type="validation",
            remediation="Set TODOIST_API_TOKEN or [todoist].api_token_file",
        )

    report: Dict[str, Any] = {"config": config.redacted(), "connection": "skipped"}
    if not skip_probe:
        try:
            report["rate_limit"] = asyncio.run(_probe(config))
        except TodoistError as exc:
            emit_exception(exc)
        report["connection"] = "ok"

    emit_success(report)


@cli.command("parse-quick-add")
@click.argument("text")
def parse_quick_add_command(text: str) -> None:
    """Show how TEXT would be split into task fields. Makes no API calls."""
    try:
        parsed = parse_quick_add(text)
    except TodoistError as exc:
        emit_exception(exc)
    emit_success(parsed.to_dict())


if __name__ == "__main__":
    cli()
