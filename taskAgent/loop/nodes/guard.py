"""Per-iteration guard and context compaction nodes."""

from __future__ import annotations

import logging

from taskAgent.context.budget import budget_for, format_token_count
from taskAgent.context.compactor import build_compaction_notice, compact
from taskAgent.context.working_set import FileWorkingSet
from taskAgent.core.models import TerminationReason
from taskAgent.loop.services import LoopServices
from taskAgent.loop.state import LoopState
from taskAgent.utils.error_handler import with_error_boundary
from taskAgent.utils.logging_utils import log_node_entry

LOGGER = logging.getLogger(__name__)


def build_guard_node(*, services: LoopServices):
    """Checks run at the top of every iteration, in this order:

    1. cancellation
    2. wall-clock timeout
    3. absolute step ceiling
    4. one-time soft warning when the run gets long
    5. context budget (flags compaction for the router)
    """
    loop_settings = services.settings.loop
    context_settings = services.settings.context
    model_settings = services.settings.model

    @with_error_boundary("guard")
    async def guard_node(state: LoopState) -> dict:
        log_node_entry(LOGGER, "guard", state)

        token = services.ctx.cancellation
        if token.is_cancelled:
            return {
                "terminal": TerminationReason.CANCELLED,
                "terminal_detail": f"Cancelled: {token.reason}",
            }

        now = services.clock()
        if now >= state["deadline"]:
            elapsed = now - state["started_at"]
            return {
                "terminal": TerminationReason.TIMED_OUT,
                "terminal_detail": f"Timed out after {elapsed:.0f}s",
            }

        step = state.get("step", 0)
        max_steps = state["max_steps"]
        if step >= max_steps:
            return {
                "terminal": TerminationReason.STEP_CEILING,
                "terminal_detail": f"Step ceiling reached ({step}/{max_steps})",
            }

        updates: dict = {}
        if not state.get("soft_warning_given") and step >= loop_settings.soft_warning_step:
            updates["soft_warning"] = (
                f"NOTE: You have used {step} of {max_steps} steps. "
                "Wrap up soon and finish with a summary of what you have."
            )
            updates["soft_warning_given"] = True

        budget = budget_for(
            model_settings.model_id,
            state.get("context_tokens", 0),
            threshold=context_settings.compaction_threshold,
            context_limit=model_settings.context_window,
        )
        updates["needs_compaction"] = budget.should_compact
        if budget.should_compact:
            LOGGER.info(
                f"Context at {budget.usage_ratio:.0%} of input budget "
                f"({format_token_count(budget.current_usage)}/{format_token_count(budget.input_budget)})"
            )
        return updates

    return guard_node


def build_compact_node(*, services: LoopServices):
    context_settings = services.settings.context
    model_settings = services.settings.model

    @with_error_boundary("compact")
    async def compact_node(state: LoopState) -> dict:
        log_node_entry(LOGGER, "compact", state)
        usage = state.get("context_tokens", 0)
        # Compact down to the proactive threshold, not just under the trigger
        budget = budget_for(
            model_settings.model_id,
            usage,
            threshold=context_settings.proactive_threshold,
            context_limit=model_settings.context_window,
        )
        working_set: FileWorkingSet = state["working_set"]
        result = compact(
            working_set.entries,
            state.get("history", []),
            budget.compaction_target,
            at_step=state.get("step", 0),
            keep_recent_actions=context_settings.keep_recent_actions,
            keep_recent_files=context_settings.keep_recent_files,
            truncated_file_max_lines=context_settings.truncated_file_max_lines,
        )
        if result.tokens_freed == 0:
            LOGGER.info("Compaction freed nothing; continuing with the current context")
            return {"needs_compaction": False}

        return {
            "needs_compaction": False,
            "working_set": FileWorkingSet(result.working_set),
            "history": list(result.history),
            "context_tokens": max(0, usage - result.tokens_freed),
            "compaction_notice": build_compaction_notice(result),
        }

    return compact_node
