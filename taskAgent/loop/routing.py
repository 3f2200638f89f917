"""Conditional routing between loop graph nodes."""

from __future__ import annotations

import logging
from typing import Literal

from taskAgent.core.models import TerminationReason
from taskAgent.utils.logging_utils import log_routing_decision

from .parser import ToolCall
from .state import LoopState

LOGGER = logging.getLogger(__name__)


def route_after_guard(state: LoopState) -> Literal["decide", "compact", "summarize", "finalize"]:
    """Cancellation skips the summary call; the other stops get one."""
    if state.get("terminal_error"):
        decision, reason = "finalize", f"Error: {state['terminal_error']}"
    elif state.get("terminal") == TerminationReason.CANCELLED:
        decision, reason = "finalize", state.get("terminal_detail", "Cancelled")
    elif state.get("terminal"):
        decision, reason = "summarize", state.get("terminal_detail", "")
    elif state.get("needs_compaction"):
        decision, reason = "compact", "Context over the compaction threshold"
    else:
        decision, reason = "decide", ""
    log_routing_decision(LOGGER, "guard", decision, reason)
    return decision


def route_after_decide(state: LoopState) -> Literal["act", "correct", "finalize"]:
    if state.get("terminal_error"):
        decision, reason = "finalize", f"Error: {state['terminal_error']}"
    elif state.get("terminal"):
        decision, reason = "finalize", state.get("terminal_detail", "")
    elif isinstance(state.get("parsed"), ToolCall):
        decision, reason = "act", f"Tool call {state['parsed'].tool}"
    else:
        decision, reason = "correct", "Response was neither a tool call nor a completion"
    log_routing_decision(LOGGER, "decide", decision, reason)
    return decision


def route_after_correct(state: LoopState) -> Literal["guard", "finalize"]:
    if state.get("terminal_error") or state.get("terminal"):
        decision, reason = "finalize", state.get("terminal_error") or state.get("terminal_detail", "")
    else:
        decision, reason = "guard", f"Corrective re-prompt {state.get('corrections', 0)}"
    log_routing_decision(LOGGER, "correct", decision, reason)
    return decision


def route_after_act(state: LoopState) -> Literal["guard", "summarize", "finalize"]:
    if state.get("terminal_error"):
        decision, reason = "finalize", f"Error: {state['terminal_error']}"
    elif state.get("terminal"):
        decision, reason = "summarize", state.get("terminal_detail", "")
    else:
        decision, reason = "guard", "Tool result recorded"
    log_routing_decision(LOGGER, "act", decision, reason)
    return decision
