"""cryptodesk CLI entrypoint.

  serve            run the MCP tool server over stdio
  tools            list registered tools
  call TOOL        invoke one tool in-process and print the result
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from typing import Any

import click

from cryptodesk.constants import SERVER_VERSION

logger = logging.getLogger("cryptodesk")

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


def _setup_logging(level: str) -> None:
    # stdout belongs to the stdio transport
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%SZ",
        stream=sys.stderr,
    )


def _run(coro: Any) -> Any:
    """Run an async coroutine from sync Click context."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def _load_settings() -> Any:
    from cryptodesk.config import ConfigError, load_settings

    try:
        return load_settings()
    except ConfigError as e:
        click.echo("Configuration error: {}".format(e), err=True)
        sys.exit(2)


# ─── Root CLI ─────────────────────────────────────────────────────────────────

@click.group()
@click.version_option(version=SERVER_VERSION, prog_name="cryptodesk")
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    envvar=["CRYPTODESK_LOG_LEVEL", "LOG_LEVEL"],
    default="INFO",
    show_default=True,
    help="Log level (logs go to stderr)",
)
def cli(log_level: str) -> None:
    """Crypto market data and trading-risk tools over MCP."""
    _setup_logging(log_level)


@cli.command()
def serve() -> None:
    """Run the MCP server on stdin/stdout."""
    from cryptodesk.app import build_context
    from cryptodesk.server import run_stdio

    settings = _load_settings()

    async def _serve() -> None:
        await run_stdio(build_context(settings))

    try:
        _run(_serve())
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")


@cli.command("tools")
def list_tools() -> None:
    """List the registered tools."""
    from cryptodesk.handlers import TOOLS

    width = max(len(spec.name) for spec in TOOLS)
    for spec in TOOLS:
        click.echo("{}  {}".format(spec.name.ljust(width), spec.description))


@cli.command()
@click.argument("tool")
@click.option("--args", "args_json", default="{}", help="Tool arguments as a JSON object")
@click.option("--json", "as_json", is_flag=True, help="Print the structured result instead of text")
def call(tool: str, args_json: str, as_json: bool) -> None:
    """Invoke TOOL once and print its result."""
    from cryptodesk.app import build_context
    from cryptodesk.handlers import build_invoker

    try:
        arguments = json.loads(args_json)
    except json.JSONDecodeError as e:
        click.echo("Invalid JSON arguments: {}".format(e), err=True)
        sys.exit(1)
    if not isinstance(arguments, dict):
        click.echo("Tool arguments must be a JSON object", err=True)
        sys.exit(1)

    settings = _load_settings()

    async def _call() -> Any:
        ctx = build_context(settings)
        try:
            return await build_invoker(ctx).invoke(tool, arguments)
        finally:
            await ctx.aclose()

    result = _run(_call())
    if result.is_error:
        click.echo(result.text, err=True)
        sys.exit(1)
    if as_json and result.structured is not None:
        click.echo(json.dumps(result.structured, indent=2, default=str))
    else:
        click.echo(result.text)


if __name__ == "__main__":
    cli()
