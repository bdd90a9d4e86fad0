"""MCP interface -- exposes the registered analytics tools to other agents.

list_tools mirrors the ToolRegistry definitions; call_tool executes a
tool and returns its JSON result as text. Failures are raised so the MCP
server reports them as error results (isError=true).

Uses mcp library's Server + Streamable HTTP transport, mounted at /mcp on
the same Starlette app.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from mcp.server import Server
from mcp.server.streamable_http_manager import StreamableHTTPSessionManager
from mcp.types import TextContent, Tool

from lumen.agent.errors import ToolExecutionError
from lumen.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)


def build_mcp_server(registry: ToolRegistry) -> Server:
    server = Server("lumen-block-util")

    @server.list_tools()
    async def list_tools() -> list[Tool]:
        return [
            Tool(name=d.name, description=d.description, inputSchema=d.input_schema)
            for d in registry.list_definitions()
        ]

    @server.call_tool()
    async def call_tool(name: str, arguments: dict[str, Any]) -> list[TextContent]:
        try:
            result = await registry.execute(name, arguments or {})
        except ToolExecutionError:
            raise
        except Exception as e:
            logger.error("MCP tool %s error: %s", name, e)
            raise ToolExecutionError(f"Error executing {name}: {e}") from e
        return [TextContent(type="text", text=json.dumps(result, indent=2))]

    return server


def create_mcp_server(registry: ToolRegistry) -> StreamableHTTPSessionManager:
    """Create the MCP session manager to be mounted on Starlette.

    The caller must enter ``session_manager.run()`` (app lifespan)
    before requests are handled.
    """
    return StreamableHTTPSessionManager(app=build_mcp_server(registry))
