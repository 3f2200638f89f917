"""Registry of tool-server clients keyed by server id."""

import asyncio
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from taskAgent.config.project_root import default_config_file, resolve_project_path
from taskAgent.core.models import ToolDefinition, ToolInvocationResult, split_tool_key

from .client import (
    DEFAULT_BASE_DELAY,
    DEFAULT_CONNECT_TIMEOUT,
    DEFAULT_MAX_ATTEMPTS,
    ConnectionFactory,
    ConnectionState,
    MCPServerClient,
    SleepFn,
)
from .config import MCPServerConfig, load_server_configs
from .connection import create_connection

LOGGER = logging.getLogger(__name__)


class MCPClientRegistry:
    """
    Owns one MCPServerClient per configured server.

    Features:
    - Connects every enabled auto-connect server on startup
    - Aggregates tool catalogs as ``serverId::name`` definitions
    - Routes calls to the owning server; unknown or offline servers yield
      a "not connected" failure instead of raising
    """

    def __init__(
        self,
        configs: Optional[List[MCPServerConfig]] = None,
        connection_factory: ConnectionFactory = create_connection,
        base_delay: float = DEFAULT_BASE_DELAY,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
        sleep: SleepFn = asyncio.sleep,
    ):
        self._factory = connection_factory
        self._base_delay = base_delay
        self._max_attempts = max_attempts
        self._connect_timeout = connect_timeout
        self._sleep = sleep
        self._configs: Dict[str, MCPServerConfig] = {}
        self._clients: Dict[str, MCPServerClient] = {}
        self.load(configs or [])

    @classmethod
    def from_settings(cls, settings) -> "MCPClientRegistry":
        """Build from ``settings.mcp``; a missing config file means no servers."""
        mcp = settings.mcp
        if mcp.config_path:
            config_path = resolve_project_path(mcp.config_path)
        else:
            config_path = default_config_file("mcp_servers.yaml")
        configs: List[MCPServerConfig] = []
        try:
            configs = load_server_configs(Path(config_path))
        except FileNotFoundError:
            LOGGER.warning(f"MCP config not found at {config_path}; no tool servers configured")
        return cls(
            configs,
            base_delay=mcp.reconnect_base_delay,
            max_attempts=mcp.max_reconnect_attempts,
            connect_timeout=mcp.connect_timeout,
        )

    def _register(self, config: MCPServerConfig) -> None:
        self._configs[config.id] = config
        self._clients[config.id] = MCPServerClient(
            config,
            connection_factory=self._factory,
            base_delay=self._base_delay,
            max_attempts=self._max_attempts,
            connect_timeout=self._connect_timeout,
            sleep=self._sleep,
        )
        LOGGER.debug(f"  Registered MCP server config: {config.id}")

    def load(self, configs: List[MCPServerConfig]) -> None:
        """Register server records without connecting; existing ids are replaced."""
        for config in configs:
            self._register(config)

    @property
    def server_ids(self) -> List[str]:
        return list(self._configs)

    def get_client(self, server_id: str) -> Optional[MCPServerClient]:
        return self._clients.get(server_id)

    async def connect_all(self) -> Dict[str, bool]:
        """Connect every enabled server flagged for auto-connect, concurrently."""
        targets = [
            server_id
            for server_id, config in self._configs.items()
            if config.enabled and config.auto_connect
        ]
        if not targets:
            return {}
        LOGGER.info(f"Connecting {len(targets)} MCP server(s): {', '.join(targets)}")
        outcomes = await asyncio.gather(*(self._clients[s].connect() for s in targets))
        return dict(zip(targets, outcomes))

    async def connect(self, server_id: str) -> bool:
        client = self._clients.get(server_id)
        if client is None:
            LOGGER.warning(f"Cannot connect unknown MCP server: {server_id}")
            return False
        if not self._configs[server_id].enabled:
            LOGGER.warning(f"MCP server '{server_id}' is disabled")
            return False
        return await client.connect()

    async def disconnect(self, server_id: str) -> None:
        client = self._clients.get(server_id)
        if client is not None:
            await client.disconnect()

    async def reload(self, configs: List[MCPServerConfig]) -> None:
        """Replace the server set: removed servers are disposed, changed ones reconnected."""
        incoming = {config.id: config for config in configs}

        for server_id in list(self._configs):
            if server_id not in incoming:
                await self._clients[server_id].dispose()
                del self._clients[server_id]
                del self._configs[server_id]
                LOGGER.info(f"Removed MCP server: {server_id}")

        for server_id, config in incoming.items():
            existing = self._configs.get(server_id)
            if existing == config:
                continue
            if existing is not None:
                await self._clients[server_id].dispose()
            self._register(config)
            if config.enabled and config.auto_connect:
                await self._clients[server_id].connect()

    def list_tools(self) -> List[ToolDefinition]:
        """Definitions from every connected server."""
        tools: List[ToolDefinition] = []
        for client in self._clients.values():
            tools.extend(client.tools)
        return tools

    async def call_tool(self, tool_key: str, arguments: Dict[str, Any]) -> ToolInvocationResult:
        """Route ``serverId::name`` to its server. Never raises."""
        server_id, tool_name = split_tool_key(tool_key)
        client = self._clients.get(server_id)
        if client is None:
            return ToolInvocationResult.error(
                tool_key, f'MCP server "{server_id}" is not connected (unknown server)'
            )
        return await client.call_tool(tool_name, arguments)

    def is_tool_auto_approved(self, tool_key: str) -> bool:
        server_id, tool_name = split_tool_key(tool_key)
        config = self._configs.get(server_id)
        if config is None:
            return False
        return "*" in config.auto_approve or tool_name in config.auto_approve

    def get_statuses(self) -> List[ConnectionState]:
        return [client.state() for client in self._clients.values()]

    async def shutdown(self) -> None:
        """Dispose every client; safe to call more than once."""
        LOGGER.info("Shutting down MCP servers...")
        for server_id, client in list(self._clients.items()):
            try:
                await client.dispose()
            except Exception as e:
                LOGGER.warning(f"  Error disposing MCP server {server_id}: {e}")
        LOGGER.info("  All MCP servers closed")

    def __repr__(self) -> str:
        connected = sum(1 for c in self._clients.values() if c.status.value == "connected")
        return f"<MCPClientRegistry: {connected}/{len(self._clients)} connected>"
