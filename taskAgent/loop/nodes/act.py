"""Act node: runs the single tool call the model proposed.

Order of checks for one call:
1. loop/stuck detection (a stop ends the run, a warning skips the call)
2. delegation to another role, handled here rather than by the registry
3. Permission Gate
4. working-set cache for reads
5. Tool Registry
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Tuple

from taskAgent.context.working_set import FileWorkingSet
from taskAgent.core.models import (
    ResultStatus,
    Task,
    TerminationReason,
    ToolInvocationResult,
    make_tool_key,
    split_tool_key,
)
from taskAgent.loop.delegation import (
    DELEGATION_TOOL_KEY,
    can_delegate,
    can_delegate_at_depth,
    clamp_depth,
    is_delegation_tool,
)
from taskAgent.loop.detection import DetectionOutcome, LoopDetector
from taskAgent.loop.parser import ToolCall
from taskAgent.loop.services import LoopServices
from taskAgent.loop.state import LoopState
from taskAgent.utils.error_handler import with_error_boundary
from taskAgent.utils.logging_utils import log_node_entry, log_tool_call, log_tool_result

LOGGER = logging.getLogger(__name__)

EVENT_SUMMARY_MAX_CHARS = 200
CACHE_HIT_SUMMARY = "Read from cache"


def _elapsed_ms(services: LoopServices, started: float) -> int:
    return int((services.clock() - started) * 1000)


async def _delegate(
    services: LoopServices, state: LoopState, args: Dict[str, Any]
) -> Tuple[ToolInvocationResult, int, int]:
    """Run a nested loop for another role. Returns the result plus the child's token usage."""
    key = DELEGATION_TOOL_KEY
    target = args.get("agent")
    subtask = args.get("task")
    if not isinstance(target, str) or not target or not isinstance(subtask, str) or not subtask:
        return ToolInvocationResult.error(
            key, 'Delegation requires string "agent" and "task" arguments'
        ), 0, 0
    if services.delegate is None:
        return ToolInvocationResult.error(key, "Delegation is not available in this context"), 0, 0

    decision = can_delegate(services.role, target)
    if not decision.allowed:
        return ToolInvocationResult.error(key, f"Delegation denied: {decision.reason}"), 0, 0

    ctx = services.ctx
    if not can_delegate_at_depth(ctx.delegation_depth, ctx.max_delegation_depth):
        return ToolInvocationResult.error(
            key,
            f"Delegation denied: maximum delegation depth ({clamp_depth(ctx.max_delegation_depth)}) reached",
        ), 0, 0

    step = state.get("step", 0)
    child_ctx = ctx.child(task_id=f"{state['task_id']}/{target}-{step}", parent_task=state["task"])
    child_task = Task(id=child_ctx.task_id, description=subtask, assigned_role=target)
    LOGGER.info(f"Delegating to {target} at depth {child_ctx.delegation_depth}: {subtask[:100]}")

    started = services.clock()
    child = await services.delegate(child_task, child_ctx)
    duration_ms = _elapsed_ms(services, started)

    content = (
        f'Agent "{target}" finished ({child.status.value}, confidence {child.confidence:.1f}):\n{child.output}'
    )
    if child.status == ResultStatus.FAILED:
        result = ToolInvocationResult.error(key, content, duration_ms)
    else:
        result = ToolInvocationResult.ok(key, content, duration_ms)
        if ctx.blackboard is not None and ctx.plan_id:
            ctx.blackboard.write(
                ctx.plan_id, f"delegation:{target}", child.output, services.role, state["task_id"]
            )
    return result, child.tokens_in, child.tokens_out


def build_act_node(*, services: LoopServices):

    @with_error_boundary("act")
    async def act_node(state: LoopState) -> dict:
        log_node_entry(LOGGER, "act", state)
        call: ToolCall = state["parsed"]
        # Bare names resolve to local tools before any check sees them
        key = make_tool_key(*split_tool_key(call.tool))
        args = call.args or {}
        step = state.get("step", 0)
        task_id = state["task_id"]

        detector: LoopDetector = state["detector"]
        detection = detector.check(key, args)
        if detection.outcome == DetectionOutcome.STOP:
            return {
                "detector": detector,
                "terminal": TerminationReason.LOOP_DETECTED,
                "terminal_detail": detection.message,
            }

        updates: dict = {"detector": detector}
        summary = None
        if detection.outcome == DetectionOutcome.WARN:
            result = ToolInvocationResult.error(key, f"STUCK DETECTION: {detection.message}")
            updates["stuck_warning"] = detection.message
        else:
            services.events.acting(task_id, services.role, f"{key} {services.redact(str(args))[:100]}")
            working_set: FileWorkingSet = state["working_set"]
            if is_delegation_tool(key):
                result, child_in, child_out = await _delegate(services, state, args)
                updates["tokens_in"] = state.get("tokens_in", 0) + child_in
                updates["tokens_out"] = state.get("tokens_out", 0) + child_out
            else:
                decision = services.permissions.authorize(services.role, key)
                cached = working_set.lookup(key, args) if decision.allowed else None
                if not decision.allowed:
                    result = ToolInvocationResult.error(key, f"PermissionDenied: {decision.reason}")
                elif cached is not None:
                    LOGGER.info(f"Step {step}: {key} served from working set")
                    result = ToolInvocationResult.ok(key, cached, 0)
                    summary = CACHE_HIT_SUMMARY
                else:
                    log_tool_call(LOGGER, key, args, step=step, redact=services.redact)
                    result = await services.tools.call_tool(key, args)
                    log_tool_result(
                        LOGGER, key, result.content, result.success, result.duration_ms, services.redact
                    )
                    working_set.observe(key, args, result.success, result.content, step)
            updates["working_set"] = working_set

        if summary is None:
            summary = services.redact(result.content)[:EVENT_SUMMARY_MAX_CHARS]
        services.events.tool_result(task_id, services.role, key, result.success, summary, step)

        updates.update({
            "tool_results": [*state.get("tool_results", []), result],
            "history": [*state.get("history", []), result],
            "tools_called": [*state.get("tools_called", []), key],
        })
        return updates

    return act_node
