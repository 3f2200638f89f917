"""Unified error taxonomy and error boundaries for loop nodes and tools."""

from __future__ import annotations

import asyncio
import functools
import logging
from typing import Any, Callable, Dict

LOGGER = logging.getLogger(__name__)


class TaskAgentError(Exception):
    """Base exception for taskAgent errors."""

    def __init__(self, message: str, user_message: str = None):
        super().__init__(message)
        self.user_message = user_message or message


class SafetyBlocked(TaskAgentError):
    """The Safety Gate denied the concrete action."""


class ToolExecutionError(TaskAgentError):
    """Network or process failure inside a tool call."""


class ModelInvocationError(TaskAgentError):
    """The reasoning engine call failed."""


class ConfigurationError(TaskAgentError):
    """Invalid or unreadable configuration."""


def with_error_boundary(node_name: str):
    """Decorator adding an error boundary to loop graph nodes.

    Any exception escaping the node becomes a ``terminal_error`` state update,
    which routes the run to finalize instead of crashing the graph.

    Example:
        @with_error_boundary("decide")
        async def decide_node(state: LoopState) -> dict:
            ...
    """
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        async def async_wrapper(state: Dict[str, Any]) -> Dict[str, Any]:
            try:
                return await func(state)
            except ModelInvocationError as e:
                LOGGER.error(f"{node_name} model error: {e}")
                return {"terminal_error": e.user_message}
            except TaskAgentError as e:
                LOGGER.error(f"{node_name} failed: {e}")
                return {"terminal_error": e.user_message}
            except Exception as e:
                LOGGER.exception(f"{node_name} unexpected error", exc_info=e)
                return {"terminal_error": f"{node_name} failed: {type(e).__name__}: {e}"}

        @functools.wraps(func)
        def sync_wrapper(state: Dict[str, Any]) -> Dict[str, Any]:
            try:
                return func(state)
            except TaskAgentError as e:
                LOGGER.error(f"{node_name} failed: {e}")
                return {"terminal_error": e.user_message}
            except Exception as e:
                LOGGER.exception(f"{node_name} unexpected error", exc_info=e)
                return {"terminal_error": f"{node_name} failed: {type(e).__name__}: {e}"}

        if asyncio.iscoroutinefunction(func):
            return async_wrapper
        return sync_wrapper

    return decorator


def handle_model_error(error: Exception) -> str:
    """Convert reasoning engine errors to short user-facing messages."""
    error_str = str(error).lower()

    if "rate_limit" in error_str or "429" in error_str:
        return "Model rate limit reached, try again later"

    if "timeout" in error_str:
        return "Model request timed out"

    if "context_length" in error_str or "maximum context" in error_str:
        return "Prompt exceeds the model context window"

    if "invalid_api_key" in error_str or "authentication" in error_str:
        return "Model API key is invalid"

    if "quota" in error_str or "insufficient" in error_str:
        return "Model quota exhausted"

    return f"Model unavailable: {error}"
