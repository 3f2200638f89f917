"""Entry point that drives one task through the loop graph."""

from __future__ import annotations

import logging
import time
from dataclasses import replace
from typing import Callable, Optional

from taskAgent.config.settings import Settings, get_settings
from taskAgent.context.working_set import FileWorkingSet
from taskAgent.core.models import (
    ConfidenceTier,
    ExecutionContext,
    ExecutionResult,
    ResultStatus,
    Task,
    TerminationReason,
)
from taskAgent.engine.base import ReasoningEngine
from taskAgent.safety.gate import SafetyGate
from taskAgent.safety.permissions import PermissionGate
from taskAgent.tools.registry import ToolRegistry

from .builder import build_loop_graph
from .delegation import clamp_depth
from .detection import LoopDetector
from .events import EventBus
from .services import LoopServices
from .state import LoopState

LOGGER = logging.getLogger(__name__)

# Graph supersteps per iteration (guard, compact, decide, act) plus headroom for wrap-up
SUPERSTEPS_PER_ITERATION = 4
RECURSION_HEADROOM = 20


class TaskLoop:
    """Runs tasks for any role; delegated sub-tasks re-enter ``run`` one level deeper."""

    def __init__(
        self,
        engine: ReasoningEngine,
        tools: ToolRegistry,
        permissions: PermissionGate,
        settings: Optional[Settings] = None,
        events: Optional[EventBus] = None,
        safety_gate: Optional[SafetyGate] = None,
        clock: Callable[[], float] = time.monotonic,
        cwd: Optional[str] = None,
    ) -> None:
        self.engine = engine
        self.tools = tools
        self.permissions = permissions
        self.settings = settings or get_settings()
        self.events = events or EventBus()
        self.safety_gate = safety_gate
        self.clock = clock
        self.cwd = cwd

    def limits_for(self, role: str):
        """(max_steps, timeout_seconds) for a role, capped by the absolute ceiling."""
        config = self.permissions.config_for(role)
        ceiling = self.settings.loop.absolute_max_steps
        max_steps = min(config.max_steps, ceiling) if config.max_steps else ceiling
        if config.timeout_ms:
            timeout = config.timeout_ms / 1000
        else:
            timeout = self.settings.loop.default_timeout_seconds
        return max_steps, timeout

    async def run(self, task: Task, ctx: ExecutionContext) -> ExecutionResult:
        """Drive ``task`` to a terminal result. Never raises for loop-level failures."""
        role = task.assigned_role
        ctx = replace(ctx, max_delegation_depth=clamp_depth(ctx.max_delegation_depth))
        max_steps, timeout = self.limits_for(role)
        started_at = self.clock()
        task.mark_started()
        LOGGER.info(
            f"Starting task {ctx.task_id} as {role} "
            f"(max {max_steps} steps, {timeout:.0f}s, depth {ctx.delegation_depth})"
        )

        services = LoopServices(
            engine=self.engine,
            tools=self.tools,
            permissions=self.permissions,
            settings=self.settings,
            ctx=ctx,
            role=role,
            events=self.events,
            safety_gate=self.safety_gate,
            delegate=self.run,
            clock=self.clock,
            cwd=self.cwd,
        )
        initial: LoopState = {
            "task_id": ctx.task_id,
            "role": role,
            "task": task.description,
            "step": 0,
            "max_steps": max_steps,
            "corrections": 0,
            "started_at": started_at,
            "deadline": started_at + timeout,
            "correction_prompt": None,
            "tokens_in": 0,
            "tokens_out": 0,
            "model": "",
            "context_tokens": 0,
            "tool_results": [],
            "history": [],
            "tools_called": [],
            "working_set": FileWorkingSet(),
            "detector": LoopDetector.from_settings(self.settings.loop),
            "needs_compaction": False,
            "stuck_warning": None,
            "soft_warning": None,
            "soft_warning_given": False,
            "compaction_notice": "",
            "terminal": None,
            "terminal_detail": "",
            "terminal_error": None,
            "output": "",
        }

        try:
            graph = build_loop_graph(services)
            final_state = await graph.ainvoke(
                initial,
                config={"recursion_limit": max_steps * SUPERSTEPS_PER_ITERATION + RECURSION_HEADROOM},
            )
            result = final_state.get("result")
            if result is None:
                result = self._failure(
                    final_state.get("terminal_error") or "Loop ended without a result", started_at, final_state
                )
        except Exception as e:
            LOGGER.exception(f"Task {ctx.task_id} crashed", exc_info=e)
            result = self._failure(f"{type(e).__name__}: {e}", started_at, initial)
            self.events.error(ctx.task_id, role, result.error)

        if result.status == ResultStatus.FAILED:
            task.mark_failed()
        else:
            task.mark_completed()
        return result

    def _failure(self, message: str, started_at: float, state: dict) -> ExecutionResult:
        return ExecutionResult(
            status=ResultStatus.FAILED,
            output=f"Task failed: {message}",
            confidence=0.0,
            tier=ConfidenceTier.LOW,
            reason=TerminationReason.ERROR,
            tokens_in=state.get("tokens_in", 0),
            tokens_out=state.get("tokens_out", 0),
            model=state.get("model", ""),
            tools_called=list(state.get("tools_called", [])),
            tool_results=list(state.get("tool_results", [])),
            steps=state.get("step", 0),
            duration_ms=int((self.clock() - started_at) * 1000),
            error=message,
        )
