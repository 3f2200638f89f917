"""Final summary and result assembly nodes."""

from __future__ import annotations

import logging
from typing import Tuple

from taskAgent.core.models import (
    ConfidenceTier,
    ExecutionResult,
    ResultStatus,
    TerminationReason,
)
from taskAgent.loop.parser import ToolCall, parse_response
from taskAgent.loop.prompts import (
    build_final_summary_prompt,
    build_final_summary_system_prompt,
    build_local_summary,
)
from taskAgent.loop.services import LoopServices
from taskAgent.loop.state import LoopState
from taskAgent.utils.error_handler import with_error_boundary
from taskAgent.utils.logging_utils import log_node_entry

LOGGER = logging.getLogger(__name__)

SUMMARY_TEMPERATURE = 0.3

# reason -> (status with a successful tool call, status without, confidence with, without, tier)
OUTCOMES = {
    TerminationReason.COMPLETED: (ResultStatus.SUCCESS, ResultStatus.PARTIAL, 0.9, 0.7, ConfidenceTier.HIGH),
    TerminationReason.UNPARSEABLE: (ResultStatus.SUCCESS, ResultStatus.PARTIAL, 0.6, 0.5, ConfidenceTier.MEDIUM),
    TerminationReason.LOOP_DETECTED: (ResultStatus.PARTIAL, ResultStatus.FAILED, 0.5, 0.4, ConfidenceTier.MEDIUM),
    TerminationReason.TIMED_OUT: (ResultStatus.PARTIAL, ResultStatus.FAILED, 0.3, 0.2, ConfidenceTier.LOW),
    TerminationReason.CANCELLED: (ResultStatus.PARTIAL, ResultStatus.FAILED, 0.3, 0.2, ConfidenceTier.LOW),
    TerminationReason.STEP_CEILING: (ResultStatus.PARTIAL, ResultStatus.FAILED, 0.3, 0.2, ConfidenceTier.LOW),
}


def classify_outcome(reason: TerminationReason, any_success: bool) -> Tuple[ResultStatus, float, ConfidenceTier]:
    if reason not in OUTCOMES:
        return ResultStatus.FAILED, 0.0, ConfidenceTier.LOW
    with_success, without_success, conf_with, conf_without, tier = OUTCOMES[reason]
    if any_success:
        return with_success, conf_with, tier
    return without_success, conf_without, tier


def build_summarize_node(*, services: LoopServices):
    """Plain-text wrap-up after a loop, timeout or step-ceiling stop.

    Falls back to a locally assembled summary if the engine call fails or
    the model answers with another tool call anyway.
    """

    @with_error_boundary("summarize")
    async def summarize_node(state: LoopState) -> dict:
        log_node_entry(LOGGER, "summarize", state)
        detail = state.get("terminal_detail", "")
        tool_results = state.get("tool_results", [])
        system_prompt = build_final_summary_system_prompt(services.role, detail)
        user_prompt = build_final_summary_prompt(state["task"], tool_results, state.get("step", 0))
        options = services.think_options(temperature=SUMMARY_TEMPERATURE, response_format=None)

        try:
            response = await services.engine.think(system_prompt, user_prompt, options)
        except Exception as e:
            LOGGER.warning(f"Final summary call failed, using local summary: {type(e).__name__}: {e}")
            return {"output": build_local_summary(detail, tool_results)}

        updates = {
            "tokens_in": state.get("tokens_in", 0) + response.tokens_in,
            "tokens_out": state.get("tokens_out", 0) + response.tokens_out,
        }
        text = response.content.strip()
        if not text or isinstance(parse_response(text), ToolCall):
            LOGGER.warning("Final summary was empty or a tool call, using local summary")
            text = build_local_summary(detail, tool_results)
        updates["output"] = text
        return updates

    return summarize_node


def build_finalize_node(*, services: LoopServices):

    @with_error_boundary("finalize")
    async def finalize_node(state: LoopState) -> dict:
        log_node_entry(LOGGER, "finalize", state)
        tool_results = list(state.get("tool_results", []))
        any_success = any(r.success for r in tool_results)
        error = state.get("terminal_error")
        reason = TerminationReason.ERROR if error else state.get("terminal") or TerminationReason.ERROR
        detail = error or state.get("terminal_detail", "")

        status, confidence, tier = classify_outcome(reason, any_success)
        output = state.get("output") or build_local_summary(detail or reason.value, tool_results)
        if reason == TerminationReason.ERROR and not error:
            error = "Loop ended without a termination reason"

        result = ExecutionResult(
            status=status,
            output=output,
            confidence=confidence,
            tier=tier,
            reason=reason,
            loop_detected=reason == TerminationReason.LOOP_DETECTED,
            tokens_in=state.get("tokens_in", 0),
            tokens_out=state.get("tokens_out", 0),
            model=state.get("model", ""),
            tools_called=list(state.get("tools_called", [])),
            tool_results=tool_results,
            steps=state.get("step", 0),
            duration_ms=int((services.clock() - state["started_at"]) * 1000),
            error=error,
        )
        LOGGER.info(
            f"Task {state['task_id']} finished: {reason.value} -> {status.value} "
            f"(confidence {confidence:.1f}, {result.steps} steps, {len(tool_results)} tool calls)"
        )

        task_id = state["task_id"]
        if status == ResultStatus.FAILED:
            services.events.error(task_id, services.role, error or detail)
        else:
            services.events.completed(
                task_id, services.role, confidence, result.tokens_in, result.tokens_out, result.tools_called
            )

        ctx = services.ctx
        if reason == TerminationReason.COMPLETED and ctx.blackboard is not None and ctx.plan_id:
            ctx.blackboard.write(ctx.plan_id, "final-summary", output, services.role, task_id)

        return {"result": result}

    return finalize_node
