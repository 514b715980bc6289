"""
Knowledge Graph MCP server over stdio.

Logging goes to stderr; stdout carries the MCP protocol.
"""

from __future__ import annotations

import logging
from typing import Any

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import TextContent, Tool

from episode_graph import __version__
from episode_graph.knowledge_graph.service import KnowledgeGraphService
from episode_graph.settings import GraphSettings

from .tools import TOOLS, ToolHandler

logger = logging.getLogger(__name__)

SERVER_NAME = "episode-graph"


class ToolCallError(Exception):
    """Raised from the MCP handler so the response is flagged `isError`."""


def build_server(handler: ToolHandler) -> Server:
    app = Server(SERVER_NAME, version=__version__)

    @app.list_tools()
    async def list_tools() -> list[Tool]:
        """List available knowledge graph tools."""
        return [Tool(name=t.name, description=t.description, inputSchema=t.input_schema) for t in TOOLS]

    @app.call_tool()
    async def call_tool(name: str, arguments: Any) -> list[TextContent]:
        """Handle tool calls."""
        response = await handler.call(name, arguments)
        if response.is_error:
            raise ToolCallError(response.text)
        return [TextContent(type="text", text=response.text)]

    return app


async def serve(cfg: GraphSettings) -> None:
    """Initialize the service, then serve MCP over stdio until the client disconnects."""
    service = KnowledgeGraphService.from_settings(cfg)
    app = build_server(ToolHandler(service))

    try:
        await service.initialize()
        logger.info("Starting knowledge graph MCP server...")
        async with stdio_server() as (read_stream, write_stream):
            await app.run(read_stream, write_stream, app.create_initialization_options())
    finally:
        await service.shutdown()
        logger.info("Knowledge graph MCP server shutdown complete")
