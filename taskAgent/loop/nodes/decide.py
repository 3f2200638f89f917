"""Decide node (one reasoning call per iteration) and the corrective re-prompt node."""

from __future__ import annotations

import logging

from taskAgent.context.budget import estimate_tokens
from taskAgent.core.cancellation import CancellationError
from taskAgent.core.models import TerminationReason
from taskAgent.loop.parser import Completion, ToolCall, Unparseable, parse_response
from taskAgent.loop.prompts import build_correction_prompt, build_step_prompt, build_system_prompt
from taskAgent.loop.services import LoopServices
from taskAgent.loop.state import LoopState
from taskAgent.utils.error_handler import with_error_boundary
from taskAgent.utils.logging_utils import log_node_entry, log_prompt

LOGGER = logging.getLogger(__name__)


def _shared_context(services: LoopServices, state: LoopState) -> str:
    ctx = services.ctx
    if ctx.blackboard is None or not ctx.plan_id:
        return ""
    return ctx.blackboard.format_for_prompt(
        ctx.plan_id, exclude_role=services.role, exclude_task_id=state["task_id"]
    )


def build_decide_node(*, services: LoopServices):
    prompt_max_length = services.settings.observability.log_prompt_max_length

    @with_error_boundary("decide")
    async def decide_node(state: LoopState) -> dict:
        log_node_entry(LOGGER, "decide", state)
        ctx = services.ctx
        if ctx.cancellation.is_cancelled:
            return {
                "terminal": TerminationReason.CANCELLED,
                "terminal_detail": f"Cancelled: {ctx.cancellation.reason}",
            }

        system_prompt = build_system_prompt(services.role, services.visible_tools(), services.cwd)
        step = state.get("step", 0)
        updates: dict = {}

        correction_prompt = state.get("correction_prompt")
        if correction_prompt:
            user_prompt = correction_prompt
        else:
            user_prompt = build_step_prompt(
                task=state["task"],
                parent_task=ctx.parent_task,
                sibling_results=ctx.sibling_results,
                history=ctx.history,
                tool_results=state.get("history", []),
                remaining_calls=state["max_steps"] - step,
                shared_context=_shared_context(services, state),
                working_set=state["working_set"].render_for_prompt(),
                stuck_warning=state.get("stuck_warning"),
                soft_warning=state.get("soft_warning"),
                compaction_notice=state.get("compaction_notice", ""),
            )
            # Notices are shown once
            updates.update({"stuck_warning": None, "soft_warning": None, "compaction_notice": ""})

        log_prompt(LOGGER, f"decide step {step + 1}", user_prompt, prompt_max_length)
        services.events.thinking(state["task_id"], services.role, services.settings.model.model_id)

        try:
            response = await services.engine.think(system_prompt, user_prompt, services.think_options())
        except CancellationError as e:
            LOGGER.info(f"Reasoning call aborted: {e}")
            return {
                "terminal": TerminationReason.CANCELLED,
                "terminal_detail": f"Cancelled: {ctx.cancellation.reason or e}",
            }

        parsed = parse_response(response.content)
        updates.update({
            "step": step + 1,
            "last_response": response.content,
            "parsed": parsed,
            "correction_prompt": None,
            "tokens_in": state.get("tokens_in", 0) + response.tokens_in,
            "tokens_out": state.get("tokens_out", 0) + response.tokens_out,
            "model": response.model or state.get("model", ""),
            "context_tokens": response.tokens_in or estimate_tokens(system_prompt + user_prompt),
        })

        if isinstance(parsed, Completion):
            LOGGER.info(f"Step {step + 1}: completion signalled")
            updates.update({
                "terminal": TerminationReason.COMPLETED,
                "terminal_detail": "Task completed",
                "output": parsed.summary,
            })
        elif isinstance(parsed, ToolCall):
            LOGGER.info(f"Step {step + 1}: tool call {parsed.tool}")
            updates["corrections"] = 0
        else:
            LOGGER.warning(f"Step {step + 1}: unparseable response ({parsed.reason})")
        return updates

    return decide_node


def build_correct_node(*, services: LoopServices):
    max_corrections = services.settings.loop.max_corrections

    @with_error_boundary("correct")
    async def correct_node(state: LoopState) -> dict:
        log_node_entry(LOGGER, "correct", state)
        parsed = state.get("parsed")
        raw = parsed.raw if isinstance(parsed, Unparseable) else state.get("last_response", "")
        corrections = state.get("corrections", 0)

        if corrections >= max_corrections:
            LOGGER.warning(
                f"Still unparseable after {corrections} correction(s); using the raw response as output"
            )
            return {
                "terminal": TerminationReason.UNPARSEABLE,
                "terminal_detail": f"Unparseable after {corrections} correction(s)",
                "output": raw,
            }

        return {
            "corrections": corrections + 1,
            "correction_prompt": build_correction_prompt(state["task"], state.get("history", []), raw),
        }

    return correct_node
