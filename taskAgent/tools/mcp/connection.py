"""MCP server connection implementations (stdio, SSE and streamable HTTP)."""

from __future__ import annotations

import asyncio
import logging
import os
from abc import ABC, abstractmethod
from contextlib import AsyncExitStack
from typing import Any, Awaitable, Callable, Dict, List, Optional

from mcp import ClientSession, StdioServerParameters, types
from mcp.client.sse import sse_client
from mcp.client.stdio import stdio_client
from mcp.client.streamable_http import streamablehttp_client

from .config import MCPServerConfig

LOGGER = logging.getLogger(__name__)

NotificationHandler = Callable[[str, Any], Awaitable[None]]

CLOSE_TIMEOUT = 10.0


def resolve_env_refs(values: Dict[str, str]) -> Dict[str, str]:
    """Replace ``${VAR}`` values with the current environment value."""
    resolved = {}
    for key, value in values.items():
        if isinstance(value, str) and value.startswith("${") and value.endswith("}"):
            resolved[key] = os.environ.get(value[2:-1], "")
        else:
            resolved[key] = value
    return resolved


def render_tool_content(content: List[Any]) -> str:
    """Flatten MCP content blocks to text; non-text blocks get a placeholder."""
    parts = []
    for item in content or []:
        text = getattr(item, "text", None)
        if text is not None:
            parts.append(text)
        elif getattr(item, "type", None) == "image":
            parts.append(f"[image: {getattr(item, 'mimeType', 'unknown')}]")
        elif getattr(item, "type", None) == "resource":
            resource = getattr(item, "resource", None)
            parts.append(getattr(resource, "text", None) or f"[resource: {getattr(resource, 'uri', '')}]")
        else:
            parts.append(f"[{getattr(item, 'type', 'content')}]")
    return "\n".join(parts)


class MCPConnection(ABC):
    """Abstract base class for MCP server connections.

    The transport and client session are entered and exited by one owner task
    per connection: anyio cancel scopes inside the MCP transports must be
    closed by the task that opened them. ``start()`` and ``close()`` only
    signal that task and wait for it. Subclasses open a transport in
    ``_open_transport`` and return its read and write streams.
    """

    def __init__(self, config: MCPServerConfig, on_notification: Optional[NotificationHandler] = None):
        self.config = config
        self.server_id = config.id
        self._on_notification = on_notification
        self._client: Optional[ClientSession] = None
        self._initialized = False
        self._owner: Optional[asyncio.Task] = None
        self._ready: Optional[asyncio.Future] = None
        self._stop = asyncio.Event()

    @property
    def is_connected(self) -> bool:
        return self._initialized

    @property
    def owner_task(self) -> Optional[asyncio.Task]:
        return self._owner

    @abstractmethod
    async def _open_transport(self, stack: AsyncExitStack):
        """Enter the transport context on ``stack`` and return (read_stream, write_stream)."""

    async def _open_session(self, stack: AsyncExitStack, read_stream, write_stream) -> ClientSession:
        session = await stack.enter_async_context(
            ClientSession(read_stream, write_stream, message_handler=self._handle_message)
        )
        await session.initialize()
        return session

    async def start(self) -> None:
        """Spawn the owner task and wait until the initialize handshake is done."""
        if self._owner is not None:
            raise RuntimeError(f"Connection already started: {self.server_id}")
        loop = asyncio.get_running_loop()
        self._ready = loop.create_future()
        self._stop.clear()
        self._owner = loop.create_task(self._run(), name=f"mcp-connection-{self.server_id}")
        try:
            await self._ready
        except BaseException:
            # Failed handshake or a caller timeout; the owner tears down
            await self.close()
            raise
        LOGGER.debug(f"  Connection established for server: {self.server_id} ({self.config.transport})")

    async def _run(self) -> None:
        try:
            async with AsyncExitStack() as stack:
                read_stream, write_stream = await self._open_transport(stack)
                self._client = await self._open_session(stack, read_stream, write_stream)
                self._initialized = True
                if not self._ready.done():
                    self._ready.set_result(None)
                await self._stop.wait()
        except Exception as e:
            if not self._ready.done():
                self._ready.set_exception(e)
            elif not self._stop.is_set():
                LOGGER.warning(f"Connection to {self.server_id} ended: {e}")
                if self._on_notification:
                    await self._on_notification("transport_error", e)
            else:
                LOGGER.warning(f"  Error closing connection for {self.server_id}: {e}")
        finally:
            self._initialized = False
            self._client = None
            if not self._ready.done():
                self._ready.set_exception(ConnectionError(f"Connection to {self.server_id} closed during startup"))

    async def _handle_message(self, message: Any) -> None:
        if isinstance(message, Exception):
            LOGGER.warning(f"Transport error from {self.server_id}: {message}")
            if self._on_notification:
                await self._on_notification("transport_error", message)
            return
        if isinstance(message, types.ServerNotification):
            if isinstance(message.root, types.ToolListChangedNotification):
                LOGGER.info(f"Tool list changed on server: {self.server_id}")
                if self._on_notification:
                    await self._on_notification("tools_list_changed", message.root)

    async def list_tools(self) -> List[types.Tool]:
        if not self._initialized:
            raise RuntimeError(f"Server not initialized: {self.server_id}")
        result = await self._client.list_tools()
        return list(result.tools)

    async def call_tool(self, tool_name: str, arguments: Dict[str, Any]) -> types.CallToolResult:
        if not self._initialized:
            raise RuntimeError(f"Server not initialized: {self.server_id}")
        LOGGER.debug(f"  Calling tool: {tool_name} on server {self.server_id}")
        return await self._client.call_tool(tool_name, arguments)

    async def close(self, timeout: float = CLOSE_TIMEOUT) -> None:
        """Ask the owner task to exit its contexts and wait for it."""
        owner = self._owner
        if owner is None:
            return
        self._stop.set()
        if owner is not asyncio.current_task():
            try:
                await asyncio.wait_for(asyncio.shield(owner), timeout=timeout)
            except asyncio.TimeoutError:
                LOGGER.warning(f"  Connection for {self.server_id} did not close in {timeout}s; cancelling")
                owner.cancel()
                await asyncio.gather(owner, return_exceptions=True)
        self._owner = None
        LOGGER.debug(f"  Closed connection for server: {self.server_id}")


class StdioMCPConnection(MCPConnection):
    """Spawns the server as a subprocess and talks over its stdin/stdout."""

    async def _open_transport(self, stack: AsyncExitStack):
        if not self.config.command:
            raise ValueError(f"stdio server '{self.server_id}' has no command")
        full_env = os.environ.copy()
        full_env.update(resolve_env_refs(self.config.env))
        LOGGER.debug(f"  Starting stdio server: {self.config.command} {' '.join(self.config.args)}")

        params = StdioServerParameters(command=self.config.command, args=self.config.args, env=full_env)
        return await stack.enter_async_context(stdio_client(params))


class SSEMCPConnection(MCPConnection):
    """Server-sent event stream for server messages, HTTP POST for ours."""

    async def _open_transport(self, stack: AsyncExitStack):
        if not self.config.url:
            raise ValueError(f"sse server '{self.server_id}' has no url")
        return await stack.enter_async_context(
            sse_client(self.config.url, headers=resolve_env_refs(self.config.headers) or None)
        )


class StreamableHTTPMCPConnection(MCPConnection):
    """Request/response over HTTP with optional streaming."""

    async def _open_transport(self, stack: AsyncExitStack):
        if not self.config.url:
            raise ValueError(f"streamable-http server '{self.server_id}' has no url")
        read_stream, write_stream, _get_session_id = await stack.enter_async_context(
            streamablehttp_client(self.config.url, headers=resolve_env_refs(self.config.headers) or None)
        )
        return read_stream, write_stream


def create_connection(
    config: MCPServerConfig,
    on_notification: Optional[NotificationHandler] = None,
) -> MCPConnection:
    """Factory function to create the connection type named by the config's transport."""
    if config.transport == "stdio":
        return StdioMCPConnection(config, on_notification)
    if config.transport == "sse":
        return SSEMCPConnection(config, on_notification)
    if config.transport == "streamable-http":
        return StreamableHTTPMCPConnection(config, on_notification)
    raise ValueError(f"Unknown transport: {config.transport}")
