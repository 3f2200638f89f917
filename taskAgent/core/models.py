"""Task, context and result records shared by every component."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Tuple

from .cancellation import CancellationToken

if TYPE_CHECKING:
    from taskAgent.blackboard import Blackboard

LOCAL_SERVER_ID = "local"
KEY_SEPARATOR = "::"


class TaskStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    FAILED = "failed"
    RETRYING = "retrying"


@dataclass
class Task:
    """A unit of work assigned to one role.

    Created by a planner; only the loop driving it changes status and attempts.
    """

    id: str
    description: str
    assigned_role: str
    dependencies: List[str] = field(default_factory=list)
    attempts: int = 0
    max_attempts: int = 1
    status: TaskStatus = TaskStatus.PENDING

    def mark_started(self) -> None:
        self.attempts += 1
        self.status = TaskStatus.IN_PROGRESS if self.attempts == 1 else TaskStatus.RETRYING

    def mark_completed(self) -> None:
        self.status = TaskStatus.COMPLETED

    def mark_failed(self) -> None:
        self.status = TaskStatus.FAILED


@dataclass(frozen=True)
class ExecutionContext:
    """Per-task bundle handed to the loop.

    ``delegation_depth`` is the only counter that changes, and only through
    ``child()`` when a nested loop is spawned.
    """

    task_id: str
    plan_id: Optional[str] = None
    parent_task: Optional[str] = None
    sibling_results: Tuple[Tuple[str, str], ...] = ()
    history: Tuple[str, ...] = ()
    cancellation: CancellationToken = field(default_factory=CancellationToken)
    delegation_depth: int = 0
    max_delegation_depth: int = 2
    blackboard: Optional["Blackboard"] = None

    def child(self, task_id: str, parent_task: str) -> "ExecutionContext":
        """Context for a delegated sub-task: same plan, token and blackboard, depth + 1."""
        return replace(
            self,
            task_id=task_id,
            parent_task=parent_task,
            sibling_results=(),
            history=(),
            delegation_depth=self.delegation_depth + 1,
        )


@dataclass(frozen=True, slots=True)
class ToolDefinition:
    """A tool offered to the reasoning engine, keyed ``serverId::name``."""

    key: str
    description: str = ""
    input_schema: Dict[str, Any] = field(default_factory=dict)

    @property
    def server_id(self) -> str:
        return split_tool_key(self.key)[0]

    @property
    def name(self) -> str:
        return split_tool_key(self.key)[1]


@dataclass(frozen=True, slots=True)
class ToolInvocationResult:
    """Uniform tool result regardless of transport or locality."""

    tool_key: str
    success: bool
    content: str
    is_error: bool = False
    duration_ms: int = 0

    @classmethod
    def ok(cls, tool_key: str, content: str, duration_ms: int = 0) -> "ToolInvocationResult":
        return cls(tool_key=tool_key, success=True, content=content, is_error=False, duration_ms=duration_ms)

    @classmethod
    def error(cls, tool_key: str, content: str, duration_ms: int = 0) -> "ToolInvocationResult":
        return cls(tool_key=tool_key, success=False, content=content, is_error=True, duration_ms=duration_ms)


class ResultStatus(str, Enum):
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"


class ConfidenceTier(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class TerminationReason(str, Enum):
    COMPLETED = "completed"
    UNPARSEABLE = "unparseable"
    LOOP_DETECTED = "loop_detected"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"
    STEP_CEILING = "step_ceiling"
    ERROR = "error"


@dataclass
class ExecutionResult:
    """Record produced by every loop run, whatever the outcome."""

    status: ResultStatus
    output: str
    confidence: float
    tier: ConfidenceTier
    reason: TerminationReason
    loop_detected: bool = False
    tokens_in: int = 0
    tokens_out: int = 0
    model: str = ""
    tools_called: List[str] = field(default_factory=list)
    tool_results: List[ToolInvocationResult] = field(default_factory=list)
    steps: int = 0
    duration_ms: int = 0
    error: Optional[str] = None

    @property
    def any_success(self) -> bool:
        return any(result.success for result in self.tool_results)


def split_tool_key(key: str) -> Tuple[str, str]:
    """Split ``server::name`` into its parts; a bare name maps to the local server."""
    if KEY_SEPARATOR in key:
        server_id, name = key.split(KEY_SEPARATOR, 1)
        return server_id, name
    return LOCAL_SERVER_ID, key


def make_tool_key(server_id: str, name: str) -> str:
    return f"{server_id}{KEY_SEPARATOR}{name}"
