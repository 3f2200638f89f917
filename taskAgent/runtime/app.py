"""Runtime assembly: gates, tool surface, engine and loop wired from settings."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from taskAgent.blackboard import Blackboard
from taskAgent.config import Settings, get_settings
from taskAgent.config.project_root import resolve_project_path
from taskAgent.engine import ReasoningEngine, build_chat_engine
from taskAgent.loop import EventBus, TaskLoop
from taskAgent.safety import PermissionGate, SafetyGate
from taskAgent.tools import LocalToolProvider, MCPClientRegistry, ToolRegistry

LOGGER = logging.getLogger(__name__)


@dataclass
class Application:
    settings: Settings
    loop: TaskLoop
    tools: ToolRegistry
    mcp: MCPClientRegistry
    safety_gate: SafetyGate
    permissions: PermissionGate
    events: EventBus
    blackboard: Blackboard = field(default_factory=Blackboard)
    _sweeper: Optional[asyncio.Task] = field(default=None, repr=False)

    def start_background_tasks(self) -> None:
        """Start the blackboard TTL sweep; needs a running event loop."""
        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.get_running_loop().create_task(self.blackboard.sweep_periodically())

    async def shutdown(self) -> None:
        if self._sweeper is not None:
            self._sweeper.cancel()
            try:
                await self._sweeper
            except asyncio.CancelledError:
                pass
            self._sweeper = None
        await self.mcp.shutdown()


def _optional_path(value: Optional[str]) -> Optional[Path]:
    return resolve_project_path(value) if value else None


async def build_application(
    settings: Optional[Settings] = None,
    engine: Optional[ReasoningEngine] = None,
    workdir: Optional[Path] = None,
    connect: bool = True,
) -> Application:
    """Build everything a task run needs.

    Args:
        settings: Defaults to the cached environment settings
        engine: Defaults to a ChatOpenAI engine built from ``settings.model``
        workdir: Root for local file and shell tools (defaults to the cwd)
        connect: Connect auto-connect MCP servers before returning
    """
    settings = settings or get_settings()

    safety_gate = SafetyGate.from_config(_optional_path(settings.safety_rules_path))
    permissions = PermissionGate.from_config(_optional_path(settings.permissions_path))
    LOGGER.info(f"Loaded permission profiles for {len(permissions.roles)} roles")

    mcp = MCPClientRegistry.from_settings(settings)
    if connect:
        results = await mcp.connect_all()
        connected = sum(1 for ok in results.values() if ok)
        LOGGER.info(f"MCP servers connected: {connected}/{len(results)}")

    root = Path(workdir) if workdir else Path.cwd()
    tools = ToolRegistry(local=LocalToolProvider(safety_gate, root=root), mcp=mcp)
    events = EventBus()
    loop = TaskLoop(
        engine=engine or build_chat_engine(settings),
        tools=tools,
        permissions=permissions,
        settings=settings,
        events=events,
        safety_gate=safety_gate,
        cwd=str(root),
    )
    app = Application(
        settings=settings,
        loop=loop,
        tools=tools,
        mcp=mcp,
        safety_gate=safety_gate,
        permissions=permissions,
        events=events,
    )
    app.start_background_tasks()
    return app
