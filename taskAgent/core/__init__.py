"""Core records shared across taskAgent components."""

from .cancellation import CancellationError, CancellationToken
from .models import (
    KEY_SEPARATOR,
    LOCAL_SERVER_ID,
    ConfidenceTier,
    ExecutionContext,
    ExecutionResult,
    ResultStatus,
    Task,
    TaskStatus,
    TerminationReason,
    ToolDefinition,
    ToolInvocationResult,
    make_tool_key,
    split_tool_key,
)

__all__ = [
    "KEY_SEPARATOR",
    "LOCAL_SERVER_ID",
    "CancellationError",
    "CancellationToken",
    "ConfidenceTier",
    "ExecutionContext",
    "ExecutionResult",
    "ResultStatus",
    "Task",
    "TaskStatus",
    "TerminationReason",
    "ToolDefinition",
    "ToolInvocationResult",
    "make_tool_key",
    "split_tool_key",
]
