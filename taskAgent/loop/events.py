"""Fire-and-forget progress events emitted by the loop."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

LOGGER = logging.getLogger(__name__)

THINKING = "thinking"
ACTING = "acting"
TOOL_RESULT = "tool-result"
COMPLETED = "completed"
ERROR = "error"


@dataclass(frozen=True)
class LoopEvent:
    type: str
    task_id: str
    role: str
    payload: Dict[str, Any] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)


Listener = Callable[[LoopEvent], None]


class EventBus:
    """Synchronous pub/sub; listeners are called in registration order.

    A failing listener is logged and skipped, never surfaced to the emitter.
    """

    def __init__(self) -> None:
        self._listeners: Dict[Optional[str], List[Listener]] = {}

    def subscribe(self, listener: Listener, event_type: Optional[str] = None) -> Callable[[], None]:
        """Register for one event type, or for all when ``event_type`` is None."""
        self._listeners.setdefault(event_type, []).append(listener)

        def unsubscribe() -> None:
            listeners = self._listeners.get(event_type, [])
            if listener in listeners:
                listeners.remove(listener)

        return unsubscribe

    def emit(self, event: LoopEvent) -> None:
        for listener in [*self._listeners.get(event.type, []), *self._listeners.get(None, [])]:
            try:
                listener(event)
            except Exception as e:
                LOGGER.warning(f"Event listener failed for {event.type}: {type(e).__name__}: {e}")

    # Convenience emitters

    def thinking(self, task_id: str, role: str, model: str = "") -> None:
        self.emit(LoopEvent(THINKING, task_id, role, {"model": model}))

    def acting(self, task_id: str, role: str, action: str) -> None:
        self.emit(LoopEvent(ACTING, task_id, role, {"action": action}))

    def tool_result(self, task_id: str, role: str, tool: str, success: bool, summary: str, step: int) -> None:
        self.emit(LoopEvent(
            TOOL_RESULT, task_id, role,
            {"tool": tool, "success": success, "summary": summary, "step": step},
        ))

    def completed(
        self,
        task_id: str,
        role: str,
        confidence: float,
        tokens_in: int,
        tokens_out: int,
        tools_called: List[str],
    ) -> None:
        self.emit(LoopEvent(
            COMPLETED, task_id, role,
            {
                "confidence": confidence,
                "tokens_in": tokens_in,
                "tokens_out": tokens_out,
                "tools_called": list(tools_called),
            },
        ))

    def error(self, task_id: str, role: str, message: str) -> None:
        self.emit(LoopEvent(ERROR, task_id, role, {"message": message}))
