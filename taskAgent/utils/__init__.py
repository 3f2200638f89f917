"""Utilities for taskAgent."""

from .error_handler import (
    ConfigurationError,
    ModelInvocationError,
    SafetyBlocked,
    TaskAgentError,
    ToolExecutionError,
    handle_model_error,
    with_error_boundary,
)
from .logging_utils import (
    log_error,
    log_node_entry,
    log_prompt,
    log_routing_decision,
    log_safety_verdict,
    log_tool_call,
    log_tool_result,
    setup_logging,
)

__all__ = [
    "ConfigurationError",
    "ModelInvocationError",
    "SafetyBlocked",
    "TaskAgentError",
    "ToolExecutionError",
    "handle_model_error",
    "log_error",
    "log_node_entry",
    "log_prompt",
    "log_routing_decision",
    "log_safety_verdict",
    "log_tool_call",
    "log_tool_result",
    "setup_logging",
    "with_error_boundary",
]
