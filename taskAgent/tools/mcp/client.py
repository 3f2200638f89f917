"""Per-server MCP client with state tracking and automatic reconnection.

Lifecycle: ``connect()`` opens a transport, performs the handshake and loads
the tool catalog. An unexpected disconnect schedules a reconnect after
``base_delay * 2 ** (attempt - 1)`` seconds; once ``max_attempts`` reconnects
have failed the client parks in the ``error`` state with no timer pending
until a caller connects it again. ``disconnect()`` and ``dispose()`` cancel any
pending timer.

Each connection owns its transport in a dedicated task, so a reconnect started
from the timer task may safely be closed later from any caller.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

from mcp.shared.exceptions import McpError

from taskAgent.core.models import ToolDefinition, ToolInvocationResult, make_tool_key

from .config import MCPServerConfig
from .connection import MCPConnection, NotificationHandler, create_connection, render_tool_content

LOGGER = logging.getLogger(__name__)

ConnectionFactory = Callable[[MCPServerConfig, Optional[NotificationHandler]], MCPConnection]
SleepFn = Callable[[float], Awaitable[None]]

DEFAULT_BASE_DELAY = 1.0
DEFAULT_MAX_ATTEMPTS = 5
DEFAULT_CONNECT_TIMEOUT = 30.0


class ConnectionStatus(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    ERROR = "error"


@dataclass(frozen=True)
class ConnectionState:
    server_id: str
    name: str
    state: ConnectionStatus
    reconnect_attempts: int
    tool_count: int
    error: Optional[str] = None


def backoff_delay(attempt: int, base_delay: float = DEFAULT_BASE_DELAY) -> float:
    """Delay before reconnect ``attempt`` (1-based): base, 2*base, 4*base, ..."""
    return base_delay * (2 ** (attempt - 1))


def _is_connection_failure(error: BaseException) -> bool:
    if isinstance(error, McpError):
        return "connection closed" in str(error).lower()
    return isinstance(error, (ConnectionError, OSError, EOFError, asyncio.IncompleteReadError)) or (
        type(error).__name__ in {"ClosedResourceError", "BrokenResourceError", "EndOfStream"}
    )


class MCPServerClient:
    """Owns one server connection and its reconnect timer."""

    def __init__(
        self,
        config: MCPServerConfig,
        connection_factory: ConnectionFactory = create_connection,
        base_delay: float = DEFAULT_BASE_DELAY,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
        sleep: SleepFn = asyncio.sleep,
    ):
        self.config = config
        self._factory = connection_factory
        self.base_delay = base_delay
        self.max_attempts = max_attempts
        self.connect_timeout = connect_timeout
        self._sleep = sleep

        self._connection: Optional[MCPConnection] = None
        self._tools: List[ToolDefinition] = []
        self._status = ConnectionStatus.DISCONNECTED
        self._reconnect_attempts = 0
        self._error: Optional[str] = None
        self._reconnect_task: Optional[asyncio.Task] = None
        self._refresh_task: Optional[asyncio.Task] = None
        self._disposed = False
        self._lock = asyncio.Lock()

    @property
    def server_id(self) -> str:
        return self.config.id

    @property
    def status(self) -> ConnectionStatus:
        return self._status

    @property
    def tools(self) -> List[ToolDefinition]:
        return list(self._tools)

    @property
    def has_pending_reconnect(self) -> bool:
        return self._reconnect_task is not None and not self._reconnect_task.done()

    def state(self) -> ConnectionState:
        return ConnectionState(
            server_id=self.server_id,
            name=self.config.name,
            state=self._status,
            reconnect_attempts=self._reconnect_attempts,
            tool_count=len(self._tools),
            error=self._error,
        )

    # ---- lifecycle ---------------------------------------------------------

    async def connect(self) -> bool:
        """Explicit connect; resets the attempt counter and any terminal error."""
        self._disposed = False
        self._cancel_reconnect()
        self._reconnect_attempts = 0
        self._status = ConnectionStatus.CONNECTING
        ok = await self._establish()
        if not ok:
            self._status = ConnectionStatus.ERROR
        return ok

    async def _establish(self) -> bool:
        async with self._lock:
            await self._close_connection()
            connection = self._factory(self.config, self._on_notification)
            try:
                await asyncio.wait_for(connection.start(), timeout=self.connect_timeout)
                tools = await connection.list_tools()
            except asyncio.CancelledError:
                await self._safe_close(connection)
                raise
            except Exception as e:
                self._error = f"{type(e).__name__}: {e}"
                LOGGER.error(f"  Failed to connect MCP server '{self.server_id}': {self._error}")
                await self._safe_close(connection)
                return False

            self._connection = connection
            self._tools = self._to_definitions(tools)
            self._status = ConnectionStatus.CONNECTED
            self._error = None
            self._reconnect_attempts = 0
            LOGGER.info(f"  MCP server connected: {self.server_id} ({len(self._tools)} tools)")
            return True

    async def disconnect(self) -> None:
        """Explicit teardown; no reconnect will follow."""
        self._cancel_reconnect()
        if self._refresh_task and not self._refresh_task.done():
            self._refresh_task.cancel()
        async with self._lock:
            await self._close_connection()
        self._tools = []
        self._status = ConnectionStatus.DISCONNECTED
        self._reconnect_attempts = 0
        LOGGER.info(f"  MCP server disconnected: {self.server_id}")

    async def dispose(self) -> None:
        """Disconnect and never auto-reconnect again."""
        self._disposed = True
        await self.disconnect()

    async def refresh_tools(self) -> List[ToolDefinition]:
        """Re-read the tool catalog after a list-changed notification."""
        if self._connection is None or self._status != ConnectionStatus.CONNECTED:
            return self.tools
        try:
            tools = await self._connection.list_tools()
        except Exception as e:
            LOGGER.warning(f"  Tool refresh failed for {self.server_id}: {e}")
            if _is_connection_failure(e):
                self.handle_unexpected_disconnect(str(e))
            return self.tools
        self._tools = self._to_definitions(tools)
        LOGGER.info(f"  Refreshed tool catalog for {self.server_id}: {len(self._tools)} tools")
        return self.tools

    # ---- reconnect ---------------------------------------------------------

    def handle_unexpected_disconnect(self, reason: str = "connection lost") -> None:
        """Mark the connection lost and schedule the first reconnect attempt."""
        if self._disposed or self._status in (ConnectionStatus.DISCONNECTED, ConnectionStatus.RECONNECTING):
            return
        LOGGER.warning(f"MCP server '{self.server_id}' disconnected unexpectedly: {reason}")
        self._error = reason
        self._tools = []
        self._schedule_reconnect()

    def _schedule_reconnect(self) -> None:
        if self._disposed or self.has_pending_reconnect:
            return
        self._status = ConnectionStatus.RECONNECTING
        self._reconnect_task = asyncio.get_running_loop().create_task(self._reconnect_loop())

    async def _reconnect_loop(self) -> None:
        try:
            while not self._disposed:
                if self._reconnect_attempts >= self.max_attempts:
                    self._status = ConnectionStatus.ERROR
                    LOGGER.error(
                        f"MCP server '{self.server_id}' failed to reconnect after "
                        f"{self._reconnect_attempts} attempts; giving up until reconnected explicitly"
                    )
                    return
                self._reconnect_attempts += 1
                delay = backoff_delay(self._reconnect_attempts, self.base_delay)
                LOGGER.info(
                    f"Reconnecting '{self.server_id}' in {delay:.1f}s "
                    f"(attempt {self._reconnect_attempts}/{self.max_attempts})"
                )
                await self._sleep(delay)
                if self._disposed:
                    return
                attempts = self._reconnect_attempts
                if await self._establish():
                    LOGGER.info(f"MCP server '{self.server_id}' reconnected after {attempts} attempt(s)")
                    return
                self._status = ConnectionStatus.RECONNECTING
        finally:
            self._reconnect_task = None

    def _cancel_reconnect(self) -> None:
        task = self._reconnect_task
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
        self._reconnect_task = None

    # ---- calls -------------------------------------------------------------

    async def call_tool(self, tool_name: str, arguments: Dict[str, Any]) -> ToolInvocationResult:
        """Invoke a tool on this server; failures come back as error results."""
        key = make_tool_key(self.server_id, tool_name)
        if self._connection is None or self._status != ConnectionStatus.CONNECTED:
            return ToolInvocationResult.error(
                key, f'MCP server "{self.server_id}" is not connected (state: {self._status.value})'
            )

        started = time.monotonic()
        try:
            result = await self._connection.call_tool(tool_name, arguments)
        except Exception as e:
            duration = int((time.monotonic() - started) * 1000)
            if _is_connection_failure(e):
                self.handle_unexpected_disconnect(str(e))
            return ToolInvocationResult.error(key, f"Tool call failed: {type(e).__name__}: {e}", duration)

        duration = int((time.monotonic() - started) * 1000)
        content = render_tool_content(result.content)
        if result.isError:
            return ToolInvocationResult.error(key, content or "Tool reported an error", duration)
        return ToolInvocationResult.ok(key, content, duration)

    # ---- internals ---------------------------------------------------------

    async def _on_notification(self, kind: str, payload: Any) -> None:
        if kind == "tools_list_changed":
            # Refresh outside the session's message loop
            self._refresh_task = asyncio.get_running_loop().create_task(self.refresh_tools())
        elif kind == "transport_error":
            self.handle_unexpected_disconnect(str(payload))

    def _to_definitions(self, tools: List[Any]) -> List[ToolDefinition]:
        return [
            ToolDefinition(
                key=make_tool_key(self.server_id, tool.name),
                description=tool.description or "",
                input_schema=dict(tool.inputSchema or {}),
            )
            for tool in tools
        ]

    async def _close_connection(self) -> None:
        if self._connection is not None:
            await self._safe_close(self._connection)
            self._connection = None

    async def _safe_close(self, connection: MCPConnection) -> None:
        try:
            await connection.close()
        except Exception as e:
            LOGGER.warning(f"  Error closing connection for {self.server_id}: {e}")
