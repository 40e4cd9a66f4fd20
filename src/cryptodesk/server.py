"""MCP server over stdio.

Publishes the ToolInvoker's table through the low-level mcp Server.
Error results are raised so the SDK marks the CallToolResult isError.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Tuple

import mcp.server.stdio
import mcp.types as types
from mcp.server import NotificationOptions, Server
from mcp.server.models import InitializationOptions

from cryptodesk.app import AppContext
from cryptodesk.constants import SERVER_NAME, SERVER_VERSION
from cryptodesk.handlers import build_invoker
from cryptodesk.invoker import ToolError, ToolInvoker

logger = logging.getLogger(__name__)


def build_server(invoker: ToolInvoker) -> Server:
    server = Server(SERVER_NAME, version=SERVER_VERSION)

    @server.list_tools()
    async def handle_list_tools() -> List[types.Tool]:
        return [
            types.Tool(
                name=spec.name,
                description=spec.description,
                inputSchema=spec.input_schema(),
            )
            for spec in invoker.specs
        ]

    # Arguments are validated by the pydantic models inside the invoker.
    @server.call_tool(validate_input=False)
    async def handle_call_tool(
        name: str, arguments: Optional[Dict[str, Any]]
    ) -> Tuple[List[types.TextContent], Optional[Dict[str, Any]]]:
        result = await invoker.invoke(name, arguments)
        if result.is_error:
            raise ToolError(result.text)
        return [types.TextContent(type="text", text=result.text)], result.structured

    return server


def initialization_options(server: Server) -> InitializationOptions:
    return InitializationOptions(
        server_name=SERVER_NAME,
        server_version=SERVER_VERSION,
        capabilities=server.get_capabilities(
            notification_options=NotificationOptions(),
            experimental_capabilities={},
        ),
    )


async def run_stdio(ctx: AppContext) -> None:
    """Serve until stdin closes, then tear the context down."""
    invoker = build_invoker(ctx)
    server = build_server(invoker)
    logger.info("Starting %s %s over stdio (%d tools)", SERVER_NAME, SERVER_VERSION, len(invoker.specs))
    try:
        async with mcp.server.stdio.stdio_server() as (read_stream, write_stream):
            await server.run(read_stream, write_stream, initialization_options(server))
    finally:
        await ctx.aclose()
