"""A live connection to one MCP server, opened over SSE, streamable HTTP or stdio."""

from __future__ import annotations

from contextlib import AsyncExitStack
from typing import Any, Awaitable, Callable, Protocol

from mcp import ClientSession, StdioServerParameters
from mcp.client.sse import sse_client
from mcp.client.stdio import stdio_client
from mcp.client.streamable_http import streamablehttp_client

from y_chat.core.models import McpServerConfig, McpTool


class ToolSession(Protocol):
    """What the connection manager needs from an open server session."""

    server_name: str

    async def list_tools(self) -> list[McpTool]: ...

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> list[dict[str, Any]]: ...

    async def close(self) -> None: ...


SessionFactory = Callable[[McpServerConfig, dict[str, str]], Awaitable[ToolSession]]


class McpClientSession:
    """Wraps an initialized ``mcp.ClientSession`` and the transport it runs on."""

    def __init__(self, server_name: str, session: ClientSession, stack: AsyncExitStack):
        self.server_name = server_name
        self._session = session
        self._stack = stack

    async def list_tools(self) -> list[McpTool]:
        result = await self._session.list_tools()
        return [
            McpTool(
                name=tool.name,
                description=tool.description or "",
                input_schema=tool.inputSchema or {},
            )
            for tool in result.tools
        ]

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> list[dict[str, Any]]:
        result = await self._session.call_tool(name, arguments)
        return [block.model_dump() for block in result.content]

    async def close(self) -> None:
        await self._stack.aclose()


async def open_session(server: McpServerConfig, headers: dict[str, str]) -> McpClientSession:
    """Open the transport for ``server`` and run the MCP initialize handshake."""
    stack = AsyncExitStack()
    try:
        if server.url:
            if server.transport == "streamable_http":
                read, write, _ = await stack.enter_async_context(
                    streamablehttp_client(server.url, headers=headers)
                )
            else:
                read, write = await stack.enter_async_context(
                    sse_client(server.url, headers=headers)
                )
        elif server.command:
            params = StdioServerParameters(
                command=server.command,
                args=server.args,
                env=server.env or None,
            )
            read, write = await stack.enter_async_context(stdio_client(params))
        else:
            raise ValueError(f"MCP server '{server.name}' has no URL or command")

        session = await stack.enter_async_context(ClientSession(read, write))
        await session.initialize()
    except BaseException:
        await stack.aclose()
        raise
    return McpClientSession(server.name, session, stack)
