"""
Tool Registry Client - the catalog of tools exposed by the tool host.

Connects to an MCP tool host, caches its tool catalog once per connection,
and dispatches tool calls by name.
"""

import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Optional

from ..config import ToolHostConfig, config
from ..errors import (
    SidChatError,
    ToolHostConnectionError,
    ToolInvocationError,
    TransportError,
    UnknownTool,
)
from .transport import HttpTransport, RpcError, StdioTransport, Transport

logger = logging.getLogger(__name__)

PROTOCOL_VERSION = "2025-03-26"


@dataclass(frozen=True)
class ToolDescriptor:
    """Metadata for a tool exposed by the tool host."""

    name: str
    description: str = ""
    input_schema: dict = field(default_factory=lambda: {"type": "object"})

    @classmethod
    def from_mcp(cls, data: dict) -> "ToolDescriptor":
        """Build a descriptor from an MCP ``tools/list`` entry."""
        return cls(
            name=data["name"],
            description=data.get("description") or "",
            input_schema=data.get("inputSchema") or {"type": "object"},
        )


def create_transport(tool_host: Optional[ToolHostConfig] = None) -> Transport:
    """
    Build the transport selected by configuration.

    Raises:
        ValueError: If the transport name or script type is not supported.
    """
    tool_host = tool_host or config.tool_host
    kind = tool_host.transport.lower()
    if kind == "stdio":
        return StdioTransport.for_script(tool_host.script, timeout=tool_host.timeout)
    if kind == "http":
        return HttpTransport(
            tool_host.url, token=tool_host.token, timeout=tool_host.timeout
        )
    raise ValueError(f"Unknown tool host transport: {tool_host.transport}")


class ToolRegistryClient:
    """
    Uniform list/call contract over a tool host connection.

    One instance is shared process-wide. The catalog is fetched once on
    connect and treated as immutable until the next connect.
    """

    def __init__(
        self,
        transport: Transport,
        client_name: str = "SID-Client",
        client_version: str = "1.0.0",
    ):
        self._transport = transport
        self.client_name = client_name
        self.client_version = client_version
        self._tools: dict[str, ToolDescriptor] = {}
        self._connected = False
        self._state_lock = threading.Lock()
        self.server_info: dict = {}

    @classmethod
    def from_config(
        cls, tool_host: Optional[ToolHostConfig] = None
    ) -> "ToolRegistryClient":
        """Create a client for the configured tool host."""
        tool_host = tool_host or config.tool_host
        return cls(
            create_transport(tool_host),
            client_name=tool_host.client_name,
            client_version=tool_host.client_version,
        )

    @property
    def connected(self) -> bool:
        """Whether the tool host connection is live."""
        return self._connected

    def connect(self) -> list[ToolDescriptor]:
        """
        Connect to the tool host and cache its catalog.

        Returns:
            The tool catalog.

        Raises:
            ToolHostConnectionError: If the transport or handshake fails.
        """
        try:
            self._transport.open()
            init = self._transport.request(
                "initialize",
                {
                    "protocolVersion": PROTOCOL_VERSION,
                    "capabilities": {},
                    "clientInfo": {
                        "name": self.client_name,
                        "version": self.client_version,
                    },
                },
            )
            self._transport.notify("notifications/initialized")
            tools = self._fetch_tools()
        except (SidChatError, ValueError, KeyError, TypeError) as e:
            logger.error("Failed to connect to tool host: %s", e)
            self._transport.close()
            raise ToolHostConnectionError(f"Failed to connect to tool host: {e}") from e

        with self._state_lock:
            self.server_info = init.get("serverInfo", {}) if isinstance(init, dict) else {}
            self._tools = {tool.name: tool for tool in tools}
            self._connected = True

        logger.info(
            "Connected to tool host %s with tools: %s",
            self.server_info.get("name", "<unnamed>"),
            list(self._tools),
        )
        return self.list_tools()

    def _fetch_tools(self) -> list[ToolDescriptor]:
        """Page through ``tools/list``."""
        tools: list[ToolDescriptor] = []
        cursor: Optional[str] = None
        while True:
            result = self._transport.request(
                "tools/list", {"cursor": cursor} if cursor else None
            )
            tools.extend(ToolDescriptor.from_mcp(item) for item in result.get("tools", []))
            cursor = result.get("nextCursor")
            if not cursor:
                return tools

    def list_tools(self) -> list[ToolDescriptor]:
        """Return the cached tool catalog."""
        return list(self._tools.values())

    def get_tool(self, name: str) -> Optional[ToolDescriptor]:
        """Look up a cached tool by name."""
        return self._tools.get(name)

    def call_tool(self, name: str, arguments: Optional[dict] = None) -> Any:
        """
        Invoke a tool on the tool host.

        Args:
            name: Tool name; must be in the cached catalog.
            arguments: Tool arguments, passed through verbatim.

        Returns:
            The tool host's result payload.

        Raises:
            UnknownTool: If the tool is not in the catalog.
            ToolInvocationError: If the tool host reports a failure.
            TransportError: If the connection dropped.
        """
        if name not in self._tools:
            raise UnknownTool(name)
        if not self._connected:
            raise TransportError("Not connected to tool host", tool_name=name)

        logger.debug("Calling tool '%s' with args %s", name, arguments)
        try:
            result = self._transport.request(
                "tools/call", {"name": name, "arguments": arguments or {}}
            )
        except RpcError as e:
            raise ToolInvocationError(
                f"Tool '{name}' failed: {e}", tool_name=name
            ) from e
        except TransportError as e:
            if not self._transport.is_open:
                with self._state_lock:
                    self._connected = False
            raise TransportError(str(e), tool_name=name) from e

        if not isinstance(result, dict):
            raise TransportError(
                f"Malformed result from tool '{name}': {result!r}", tool_name=name
            )
        if result.get("isError"):
            raise ToolInvocationError(
                f"Tool '{name}' reported an error: {result_text(result) or 'no details'}",
                tool_name=name,
            )
        return result

    def close(self) -> None:
        """Release the tool host connection. Idempotent."""
        with self._state_lock:
            was_connected, self._connected = self._connected, False
        self._transport.close()
        if was_connected:
            logger.info("Disconnected from tool host")


def result_text(result: Any) -> str:
    """Join the text items of an MCP tool result's ``content`` list."""
    if not isinstance(result, dict):
        return ""
    content = result.get("content")
    if not isinstance(content, list):
        return ""
    return "\n".join(
        item["text"]
        for item in content
        if isinstance(item, dict) and item.get("type") == "text" and "text" in item
    )
