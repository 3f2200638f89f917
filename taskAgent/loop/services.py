"""Collaborators shared by the loop graph nodes for one run."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional

from taskAgent.config.settings import Settings
from taskAgent.core.models import ExecutionContext, ExecutionResult, Task, ToolDefinition
from taskAgent.engine.base import ReasoningEngine, ThinkOptions
from taskAgent.safety.gate import SafetyGate
from taskAgent.safety.permissions import PermissionGate
from taskAgent.tools.registry import ToolRegistry

from .delegation import can_delegate_at_depth, delegation_tool_definition
from .events import EventBus

DelegateFn = Callable[[Task, ExecutionContext], Awaitable[ExecutionResult]]


@dataclass
class LoopServices:
    engine: ReasoningEngine
    tools: ToolRegistry
    permissions: PermissionGate
    settings: Settings
    ctx: ExecutionContext
    role: str
    events: EventBus = field(default_factory=EventBus)
    safety_gate: Optional[SafetyGate] = None
    delegate: Optional[DelegateFn] = None
    clock: Callable[[], float] = time.monotonic
    cwd: Optional[str] = None

    def redact(self, text: str) -> str:
        if self.safety_gate is None:
            return text
        return self.safety_gate.redact_secrets(text)

    def visible_tools(self) -> List[ToolDefinition]:
        """Tools this role may call, plus the delegation tool when it can delegate."""
        tools = self.permissions.filter_tools(self.role, self.tools.list_definitions())
        if self.delegate is not None and can_delegate_at_depth(
            self.ctx.delegation_depth, self.ctx.max_delegation_depth
        ):
            delegation = delegation_tool_definition(self.role)
            if delegation is not None:
                tools.append(delegation)
        return tools

    def think_options(self, **overrides) -> ThinkOptions:
        model = self.settings.model
        options = ThinkOptions(
            temperature=model.temperature,
            max_tokens=model.max_tokens,
            response_format="json",
            cancel=self.ctx.cancellation,
        )
        for key, value in overrides.items():
            setattr(options, key, value)
        return options
