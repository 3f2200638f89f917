"""State carried through the loop graph for one task run."""

from __future__ import annotations

from typing import Any, List, Optional, TypedDict

from taskAgent.context.working_set import FileWorkingSet
from taskAgent.core.models import ExecutionResult, TerminationReason, ToolInvocationResult

from .detection import LoopDetector


class LoopState(TypedDict, total=False):
    """Per-run state; every node returns a partial update.

    ``detector`` and ``working_set`` are per-run mutable helpers; nodes
    mutate them in place and return them so the update is explicit.
    """

    # ========== Identity ==========
    task_id: str
    role: str
    task: str

    # ========== Counters ==========
    step: int
    max_steps: int
    corrections: int
    started_at: float
    deadline: float

    # ========== Model exchange ==========
    last_response: str
    parsed: Any  # ToolCall | Completion | Unparseable
    correction_prompt: Optional[str]
    tokens_in: int
    tokens_out: int
    model: str
    context_tokens: int

    # ========== Tool history ==========
    tool_results: List[ToolInvocationResult]  # complete record, never compacted
    history: List[ToolInvocationResult]  # what the prompt shows; compaction rewrites it
    tools_called: List[str]
    working_set: FileWorkingSet
    detector: LoopDetector
    needs_compaction: bool

    # ========== Prompt notices ==========
    stuck_warning: Optional[str]
    soft_warning: Optional[str]
    soft_warning_given: bool
    compaction_notice: str

    # ========== Termination ==========
    terminal: Optional[TerminationReason]
    terminal_detail: str
    terminal_error: Optional[str]
    output: str
    result: ExecutionResult
