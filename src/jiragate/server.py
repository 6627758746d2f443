"""
MCP stdio server.

``list_tools`` serves the registry; ``call_tool`` runs every call through
the :class:`~jiragate.core.dispatcher.ToolDispatcher`.  A failure
envelope is raised so the MCP SDK marks the result ``isError``; the
envelope JSON is the error text the client sees.
"""

from __future__ import annotations

from typing import Any

import structlog
from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import TextContent, Tool

from jiragate import __version__
from jiragate.client.jira import JiraClient
from jiragate.core.config import GatewayConfig
from jiragate.core.constants import SERVER_NAME
from jiragate.core.dispatcher import ToolDispatcher, ToolResponse, build_dispatcher
from jiragate.core.exceptions import JiraGateError

logger = structlog.get_logger()


class ToolCallFailed(JiraGateError):
    """Carries a failure envelope out of ``call_tool``."""

    def __init__(self, response: ToolResponse) -> None:
        super().__init__(response.to_text())
        self.response = response


def create_server(dispatcher: ToolDispatcher) -> Server:
    """Build the MCP server bound to *dispatcher*."""
    server: Server = Server(SERVER_NAME, version=__version__)
    tools = dispatcher.registry.to_mcp_tools()

    @server.list_tools()
    async def list_tools() -> list[Tool]:
        return tools

    @server.call_tool()
    async def call_tool(name: str, arguments: dict[str, Any] | None) -> list[TextContent]:
        response = await dispatcher.dispatch(name, arguments)
        if not response.success:
            raise ToolCallFailed(response)
        return [TextContent(type="text", text=response.to_text())]

    return server


async def serve(config: GatewayConfig) -> None:
    """Run the gateway over stdio until the client disconnects."""
    async with JiraClient.from_config(config.jira) as client:
        dispatcher = build_dispatcher(config, client)
        server = create_server(dispatcher)
        dispatcher.start()
        logger.info(
            "server_started",
            host=config.jira.host,
            tools=len(dispatcher.registry),
            **config.security_summary(),
        )
        try:
            async with stdio_server() as (read_stream, write_stream):
                await server.run(
                    read_stream, write_stream, server.create_initialization_options()
                )
        finally:
            dispatcher.close()
            logger.info("server_stopped", audit_entries=len(dispatcher.audit))
