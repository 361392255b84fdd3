"""MCP (Model Context Protocol) connection manager.

Holds at most one live server session. Every connect first closes whatever is
open, so tool listing and tool calls for different servers run strictly one
after another. The tool catalog of each server is cached in the server's
stored configuration and refreshed wholesale by :meth:`McpManager.list_tools`.
"""

from __future__ import annotations

import asyncio
import json
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Iterable, Optional

from y_chat.config import with_defaults
from y_chat.core.models import McpServerConfig, McpTool, iso_now
from y_chat.core.types import McpStatus, StatusKind
from y_chat.log import get_logger
from y_chat.mcp.session import SessionFactory, ToolSession, open_session

if TYPE_CHECKING:
    from y_chat.storage.config_repo import IntegrationRepository, McpServerRepository

logger = get_logger(__name__)

StatusSink = Callable[[StatusKind, str, Optional[str]], Awaitable[None]]

INTEGRATIONS_HEADER = "X-Connected-Integrations"
NO_SERVERS_TEXT = "(No MCP servers currently connected)"
NOT_CONNECTED_TEXT = "(Server not connected)"


class McpManager:
    """Connects to MCP servers on demand, one at a time.

    Lifecycle per server: disconnected -> connecting -> connected ->
    (executing) -> disconnected, with errors reported as status events rather
    than exceptions.
    """

    def __init__(
        self,
        server_repo: McpServerRepository,
        integration_repo: IntegrationRepository,
        default_servers: Iterable[McpServerConfig] = (),
        on_status: StatusSink | None = None,
        connect_timeout: float = 5.0,
        session_factory: SessionFactory = open_session,
    ):
        self._server_repo = server_repo
        self._integration_repo = integration_repo
        self._default_servers = list(default_servers)
        self._on_status = on_status
        self._connect_timeout = connect_timeout
        self._session_factory = session_factory
        self._session: ToolSession | None = None
        self._last_error: str | None = None

    @property
    def active_server(self) -> str | None:
        return self._session.server_name if self._session else None

    async def servers(self) -> list[McpServerConfig]:
        """Stored servers with the configured default servers merged in."""
        return with_defaults(await self._server_repo.list_all(), self._default_servers)

    async def get_server(self, name: str) -> McpServerConfig | None:
        return next((s for s in await self.servers() if s.name == name), None)

    # ── connection lifecycle ────────────────────────────────────

    async def connect(self, server_name: str, tool_name: str | None = None) -> ToolSession | None:
        """Open a session to ``server_name``, closing any session already open.

        ``tool_name`` selects integration credentials by name prefix. Returns
        None (after emitting an error status) when the server is unknown,
        unreachable or too slow to answer.
        """
        await self.disconnect()
        self._last_error = None

        server = await self.get_server(server_name)
        if server is None:
            return await self._fail(server_name, f"MCP server '{server_name}' not found")
        if not server.has_target:
            return await self._fail(server_name, f"MCP server '{server_name}' has no URL or command configured")

        headers = await self._build_headers(server, tool_name)
        await self._emit(StatusKind.CONNECTING, f"Connecting to MCP server '{server_name}'...", server_name)
        try:
            async with asyncio.timeout(self._connect_timeout):
                session = await self._session_factory(server, headers)
        except TimeoutError:
            return await self._fail(
                server_name,
                f"Connection to MCP server '{server_name}' timed out after {self._connect_timeout:g}s",
            )
        except Exception as e:
            return await self._fail(server_name, f"Failed to connect to MCP server '{server_name}': {e}")

        self._session = session
        logger.info("mcp_connected", server=server_name)
        await self._emit(StatusKind.CONNECTED, f"Connected to MCP server '{server_name}'", server_name)
        return session

    async def disconnect(self) -> None:
        session, self._session = self._session, None
        if session is None:
            return
        try:
            await session.close()
        except Exception as e:
            logger.warning("mcp_disconnect_error", server=session.server_name, error=str(e))
        logger.info("mcp_disconnected", server=session.server_name)
        await self._emit(
            StatusKind.DISCONNECTED,
            f"Disconnected from MCP server '{session.server_name}'",
            session.server_name,
        )

    # ── tool catalog ────────────────────────────────────────────

    async def list_tools(self, server_name: str) -> None:
        """Refresh the cached tool catalog of one server.

        The stored tools, status, last_updated and error_message are replaced
        on every call; a failed listing leaves an empty catalog behind.
        """
        tools: list[McpTool] = []
        error: str | None = None
        try:
            server = await self.get_server(server_name)
            if server is None:
                await self.disconnect()
                await self._emit(StatusKind.ERROR, f"MCP server '{server_name}' not found", server_name)
                return

            session = await self.connect(server_name)
            if session is None:
                error = self._last_error or "Could not connect"
            else:
                try:
                    async with asyncio.timeout(self._connect_timeout):
                        tools = await session.list_tools()
                except TimeoutError:
                    error = f"Listing tools timed out after {self._connect_timeout:g}s"
                except Exception as e:
                    error = f"Failed to list tools: {e}"
                if error:
                    await self._emit(StatusKind.ERROR, error, server_name)

            if error:
                logger.warning("mcp_list_tools_failed", server=server_name, error=error)
            else:
                logger.info("mcp_tools_listed", server=server_name, count=len(tools))
                await self._emit(
                    StatusKind.INFO, f"Found {len(tools)} tool(s) on '{server_name}'", server_name
                )

            await self._server_repo.upsert(
                server.model_copy(
                    update={
                        "tools": tools,
                        "status": McpStatus.FAILED if error else McpStatus.CONNECTED,
                        "last_updated": iso_now(),
                        "error_message": error,
                    }
                )
            )
        finally:
            await self.disconnect()

    async def refresh_all(self) -> None:
        """Re-list tools for every configured server, one server at a time."""
        servers = await self.servers()
        if not servers:
            await self._emit(StatusKind.INFO, "No MCP servers configured", None)
            return
        for server in servers:
            await self.list_tools(server.name)

    # ── execution ───────────────────────────────────────────────

    async def execute_tool(self, server_name: str, tool_name: str, arguments: dict[str, Any]) -> str:
        """Call a tool and return its text output; failures come back as text too."""
        try:
            session = await self.connect(server_name, tool_name)
            if session is None:
                return f"Error: Could not establish connection to MCP server '{server_name}'"

            logger.info("mcp_tool_execute", server=server_name, tool=tool_name)
            blocks = await session.call_tool(tool_name, arguments)
            result = "".join(
                str(block.get("text") or "") for block in blocks if block.get("type") == "text"
            )
            return result or "Tool execution completed successfully"
        except Exception as e:
            logger.error("mcp_tool_error", server=server_name, tool=tool_name, error=str(e))
            await self._emit(StatusKind.ERROR, f"Tool '{tool_name}' failed: {e}", server_name)
            return f"Error executing MCP tool: {e}"
        finally:
            await self.disconnect()

    async def is_auto_approved(self, server_name: str, tool_name: str) -> bool:
        server = await self.get_server(server_name)
        return server is not None and tool_name in server.allow_tools

    # ── prompt rendering ────────────────────────────────────────

    async def render_tools_prompt(self, server_names: Iterable[str] | None = None) -> str:
        """Describe the cached tool catalog of each server for the system prompt.

        Uses only stored data; no server is contacted.
        """
        servers = await self.servers()
        if server_names is not None:
            wanted = set(server_names)
            servers = [s for s in servers if s.name in wanted]
        if not servers:
            return NO_SERVERS_TEXT
        return "\n\n".join(_render_server(server) for server in servers)

    # ── helpers ─────────────────────────────────────────────────

    async def _build_headers(self, server: McpServerConfig, tool_name: str | None) -> dict[str, str]:
        connected = [i for i in await self._integration_repo.list_all() if i.connected]

        token = server.token
        if tool_name:
            for integration in connected:
                # plain prefix match: integration "cal" also claims "calendar_create"
                if tool_name.startswith(integration.name):
                    logger.debug("mcp_integration_token", integration=integration.name, tool=tool_name)
                    token = integration.bearer_token() or token
                    break

        headers: dict[str, str] = {}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        if connected:
            headers[INTEGRATIONS_HEADER] = ",".join(i.name for i in connected)
        return headers

    async def _fail(self, server_name: str, message: str) -> None:
        self._last_error = message
        logger.warning("mcp_connect_failed", server=server_name, error=message)
        await self._emit(StatusKind.ERROR, message, server_name)
        return None

    async def _emit(self, kind: StatusKind, message: str, server: str | None) -> None:
        if self._on_status is not None:
            await self._on_status(kind, message, server)


def _render_server(server: McpServerConfig) -> str:
    header = f"## {server.name}"
    if server.status == McpStatus.CONNECTED:
        if not server.tools:
            return header
        tools = []
        for tool in server.tools:
            schema = ""
            if tool.input_schema:
                schema_lines = json.dumps(tool.input_schema, indent=2).split("\n")
                schema = "\n    Input Schema:\n    " + "\n    ".join(schema_lines)
            tools.append(f"- {tool.name}: {tool.description}{schema}")
        return header + "\n\n### Available Tools\n" + "\n\n".join(tools)
    if server.status == McpStatus.FAILED:
        return f"{header}\n(Error: {server.error_message or 'unknown error'})"
    return f"{header}\n{NOT_CONNECTED_TEXT}"
