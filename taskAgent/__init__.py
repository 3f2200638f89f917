"""Top-level package exports for taskAgent."""

from .core import ExecutionContext, ExecutionResult, Task
from .loop import TaskLoop
from .runtime import build_application

__all__ = ["ExecutionContext", "ExecutionResult", "Task", "TaskLoop", "build_application"]
