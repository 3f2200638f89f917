"""Single tool surface for the loop: local tools plus every connected MCP server."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from taskAgent.core.models import LOCAL_SERVER_ID, ToolDefinition, ToolInvocationResult, split_tool_key

from .local import LocalToolProvider
from .mcp.manager import MCPClientRegistry

LOGGER = logging.getLogger(__name__)


class ToolRegistry:
    """Routes ``serverId::name`` keys to the local provider or the MCP registry."""

    def __init__(
        self,
        local: Optional[LocalToolProvider] = None,
        mcp: Optional[MCPClientRegistry] = None,
    ) -> None:
        self.local = local
        self.mcp = mcp

    def list_definitions(self) -> List[ToolDefinition]:
        tools: List[ToolDefinition] = []
        if self.local is not None:
            tools.extend(self.local.list_definitions())
        if self.mcp is not None:
            tools.extend(self.mcp.list_tools())
        return tools

    def get_definition(self, tool_key: str) -> Optional[ToolDefinition]:
        for tool in self.list_definitions():
            if tool.key == tool_key:
                return tool
        return None

    async def call_tool(self, tool_key: str, arguments: Dict[str, Any]) -> ToolInvocationResult:
        """Invoke a tool by key. Never raises; failures are error results."""
        server_id, name = split_tool_key(tool_key)
        try:
            if server_id == LOCAL_SERVER_ID:
                if self.local is None or not self.local.has_tool(name):
                    return ToolInvocationResult.error(tool_key, f"Unknown tool: {tool_key}")
                return await self.local.call_tool(name, arguments)
            if self.mcp is None:
                return ToolInvocationResult.error(
                    tool_key, f'MCP server "{server_id}" is not connected (no tool servers configured)'
                )
            return await self.mcp.call_tool(tool_key, arguments)
        except Exception as e:
            LOGGER.error(f"Unexpected error calling {tool_key}: {type(e).__name__}: {e}")
            return ToolInvocationResult.error(tool_key, f"Tool call failed: {type(e).__name__}: {e}")

    def is_auto_approved(self, tool_key: str) -> bool:
        server_id, _ = split_tool_key(tool_key)
        if server_id == LOCAL_SERVER_ID or self.mcp is None:
            return False
        return self.mcp.is_tool_auto_approved(tool_key)
