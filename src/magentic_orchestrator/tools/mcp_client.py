"""
MCP tool passthrough.

Connects to the configured MCP servers over stdio and exposes their tools to
agents under the name ``mcp_<server>_<tool>``. Server names therefore must
not contain underscores; the first underscore after the prefix separates the
server from the tool name.
"""

import logging
import re
from contextlib import AsyncExitStack
from typing import Any

from ..core.errors import ToolDispatchError

logger = logging.getLogger(__name__)

MCP_PREFIX = "mcp_"
_MCP_NAME_PATTERN = re.compile(r"^mcp_([^_]+)_(.+)$")


def mcp_tool_name(server: str, tool: str) -> str:
    return f"{MCP_PREFIX}{server}_{tool}"


def split_mcp_tool_name(name: str) -> tuple[str, str]:
    """
    Split ``mcp_<server>_<tool>`` into its parts.

    Raises:
        ToolDispatchError: If the name does not follow the format
    """
    match = _MCP_NAME_PATTERN.match(name)
    if not match:
        raise ToolDispatchError(f"Invalid MCP tool name format: {name}", tool_name=name)
    return match.group(1), match.group(2)


class MCPToolHub:
    """
    Holds one MCP client session per configured server.

    Example:
        hub = MCPToolHub()
        await hub.connect(settings.mcp_servers)
        tools = hub.get_definitions()
        output = await hub.call("mcp_files_read_file", {"path": "README.md"})
        await hub.close()
    """

    def __init__(self) -> None:
        self._stack = AsyncExitStack()
        self._sessions: dict[str, Any] = {}
        self._definitions: list[dict[str, Any]] = []

    @property
    def servers(self) -> list[str]:
        return list(self._sessions.keys())

    async def connect(self, servers: list[Any]) -> None:
        """
        Start and initialize every configured server.

        A server that fails to start is logged and skipped; the remaining
        servers stay available.

        Args:
            servers: Objects with ``name``, ``command``, ``args`` and ``env`` attributes
        """
        from mcp import ClientSession, StdioServerParameters
        from mcp.client.stdio import stdio_client

        for server in servers:
            if "_" in server.name:
                logger.warning(
                    f"Skipping MCP server '{server.name}': names must not contain underscores"
                )
                continue
            try:
                params = StdioServerParameters(
                    command=server.command,
                    args=list(server.args or []),
                    env=dict(server.env) if server.env else None,
                )
                read, write = await self._stack.enter_async_context(stdio_client(params))
                session = await self._stack.enter_async_context(ClientSession(read, write))
                await session.initialize()
                await self.add_session(server.name, session)
            except Exception as e:
                logger.error(f"Failed to initialize MCP server {server.name}: {e}")

    async def add_session(self, server_name: str, session: Any) -> None:
        """Register an initialized client session and load its tool list."""
        listing = await session.list_tools()
        self._sessions[server_name] = session
        for tool in listing.tools:
            self._definitions.append({
                "name": mcp_tool_name(server_name, tool.name),
                "description": tool.description or "",
                "parameters": tool.inputSchema or {"type": "object", "properties": {}},
            })
        logger.info(f"Loaded {len(listing.tools)} tools from MCP server: {server_name}")

    def get_definitions(self) -> list[dict[str, Any]]:
        return list(self._definitions)

    def has_tool(self, name: str) -> bool:
        return any(d["name"] == name for d in self._definitions)

    async def call(self, name: str, arguments: dict[str, Any]) -> Any:
        """
        Call an MCP tool by its prefixed name.

        Returns:
            The text content of the result, or the structured content when
            the server returned no text

        Raises:
            ToolDispatchError: If the server is unknown, the call fails, or
                the server reports a tool error
        """
        server_name, tool_name = split_mcp_tool_name(name)
        session = self._sessions.get(server_name)
        if session is None:
            raise ToolDispatchError(f"MCP server not found: {server_name}", tool_name=name)

        try:
            result = await session.call_tool(tool_name, arguments)
        except Exception as e:
            raise ToolDispatchError(f"MCP tool {name} failed: {e}", tool_name=name)

        texts = [
            item.text for item in (result.content or [])
            if getattr(item, "type", None) == "text"
        ]
        output: Any = "\n".join(texts)
        if not texts:
            output = getattr(result, "structuredContent", None) or ""

        if getattr(result, "isError", False):
            raise ToolDispatchError(f"MCP tool {name} reported an error: {output}", tool_name=name)
        return output

    async def close(self) -> None:
        """Close all MCP connections."""
        try:
            await self._stack.aclose()
        except Exception as e:
            logger.warning(f"Error closing MCP servers: {e}")
        self._stack = AsyncExitStack()
        self._sessions.clear()
        self._definitions.clear()
