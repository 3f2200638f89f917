"""MCP (Model Context Protocol) client integration.

Connects to configured tool servers over stdio, SSE or streamable HTTP,
tracks their connection state, and reconnects with exponential backoff.
"""

from .client import ConnectionState, ConnectionStatus, MCPServerClient, backoff_delay
from .config import MCPServerConfig, load_server_configs, parse_server_configs
from .connection import MCPConnection, create_connection, render_tool_content
from .manager import MCPClientRegistry

__all__ = [
    "ConnectionState",
    "ConnectionStatus",
    "MCPClientRegistry",
    "MCPConnection",
    "MCPServerClient",
    "MCPServerConfig",
    "backoff_delay",
    "create_connection",
    "load_server_configs",
    "parse_server_configs",
    "render_tool_content",
]
