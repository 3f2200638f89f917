"""Tool surface: built-in local tools and external MCP servers behind one registry."""

from .local import TOOL_SPECS, LocalToolProvider
from .mcp import MCPClientRegistry, MCPServerClient, MCPServerConfig, load_server_configs
from .registry import ToolRegistry

__all__ = [
    "TOOL_SPECS",
    "LocalToolProvider",
    "MCPClientRegistry",
    "MCPServerClient",
    "MCPServerConfig",
    "ToolRegistry",
    "load_server_configs",
]
