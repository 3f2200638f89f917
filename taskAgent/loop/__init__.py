"""Orchestration loop: parse, detect, delegate and drive tasks to a result."""

from .builder import build_loop_graph
from .delegation import (
    DELEGATION_RULES,
    DELEGATION_TOOL_KEY,
    can_delegate,
    can_delegate_at_depth,
    delegation_tool_definition,
)
from .detection import Detection, DetectionOutcome, LoopDetector
from .events import EventBus, LoopEvent
from .parser import Completion, ToolCall, Unparseable, parse_response, stable_stringify
from .runner import TaskLoop
from .services import LoopServices
from .state import LoopState

__all__ = [
    "DELEGATION_RULES",
    "DELEGATION_TOOL_KEY",
    "Completion",
    "Detection",
    "DetectionOutcome",
    "EventBus",
    "LoopDetector",
    "LoopEvent",
    "LoopServices",
    "LoopState",
    "TaskLoop",
    "ToolCall",
    "Unparseable",
    "build_loop_graph",
    "can_delegate",
    "can_delegate_at_depth",
    "delegation_tool_definition",
    "parse_response",
    "stable_stringify",
]
