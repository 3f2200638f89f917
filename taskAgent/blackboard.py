"""Shared scratchpad so loops belonging to one plan can read each other's findings.

State is namespaced by plan id; there is no cross-plan visibility. Writes from
concurrent loops in the same plan are last-write-wins per
(key, writer role, task id).
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, List, Optional

LOGGER = logging.getLogger(__name__)

TTL_SECONDS = 10 * 60
MAX_ENTRIES_PER_PLAN = 50
PROMPT_VALUE_MAX_CHARS = 500
SWEEP_INTERVAL_SECONDS = 60


@dataclass(frozen=True, slots=True)
class BlackboardEntry:
    key: str
    value: str
    writer_role: str
    task_id: str
    timestamp: float


class Blackboard:
    """Plan-scoped key/value log with a per-plan TTL and entry cap."""

    def __init__(
        self,
        ttl_seconds: float = TTL_SECONDS,
        max_entries_per_plan: int = MAX_ENTRIES_PER_PLAN,
        clock: Callable[[], float] = time.time,
    ):
        self.ttl_seconds = ttl_seconds
        self.max_entries_per_plan = max_entries_per_plan
        self._clock = clock
        self._store: Dict[str, List[BlackboardEntry]] = {}
        self._created: Dict[str, float] = {}
        self._lock = threading.Lock()

    def write(self, plan_id: str, key: str, value: str, writer_role: str, task_id: str) -> bool:
        """Record a finding. Returns False when the write was dropped at the cap."""
        now = self._clock()
        entry = BlackboardEntry(key=key, value=value, writer_role=writer_role, task_id=task_id, timestamp=now)
        with self._lock:
            if plan_id not in self._store:
                self._store[plan_id] = []
                self._created[plan_id] = now
            entries = self._store[plan_id]

            for idx, existing in enumerate(entries):
                if existing.key == key and existing.writer_role == writer_role and existing.task_id == task_id:
                    entries[idx] = entry
                    return True

            if len(entries) >= self.max_entries_per_plan:
                LOGGER.warning(
                    f"Plan '{plan_id}' hit max entries ({self.max_entries_per_plan}), dropping write for key '{key}'"
                )
                return False
            entries.append(entry)
            return True

    def read_all(self, plan_id: str) -> List[BlackboardEntry]:
        return list(self._store.get(plan_id, ()))

    def read(self, plan_id: str, key: str) -> List[BlackboardEntry]:
        return [e for e in self._store.get(plan_id, ()) if e.key == key]

    def read_by_role(self, plan_id: str, writer_role: str) -> List[BlackboardEntry]:
        return [e for e in self._store.get(plan_id, ()) if e.writer_role == writer_role]

    def read_by_task(self, plan_id: str, task_id: str) -> List[BlackboardEntry]:
        return [e for e in self._store.get(plan_id, ()) if e.task_id == task_id]

    def count(self, plan_id: str) -> int:
        return len(self._store.get(plan_id, ()))

    def active_plans(self) -> List[str]:
        return list(self._store)

    def clear(self, plan_id: str) -> None:
        with self._lock:
            self._store.pop(plan_id, None)
            self._created.pop(plan_id, None)

    def sweep(self) -> int:
        """Evict plans whose first write is older than the TTL. Returns the number evicted."""
        now = self._clock()
        with self._lock:
            stale = [plan for plan, created in self._created.items() if now - created > self.ttl_seconds]
            for plan_id in stale:
                self._store.pop(plan_id, None)
                self._created.pop(plan_id, None)
        if stale:
            LOGGER.info(f"TTL sweep evicted {len(stale)} stale plan(s)")
        return len(stale)

    async def sweep_periodically(
        self,
        interval: float = SWEEP_INTERVAL_SECONDS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """Call ``sweep`` every ``interval`` seconds until the task is cancelled."""
        while True:
            await sleep(interval)
            self.sweep()

    def reset(self) -> None:
        """Drop every plan (test helper)."""
        with self._lock:
            self._store.clear()
            self._created.clear()

    def format_for_prompt(
        self,
        plan_id: str,
        exclude_role: Optional[str] = None,
        exclude_task_id: Optional[str] = None,
    ) -> str:
        """Render other agents' findings; the caller's own same-task writes are left out."""
        relevant = [
            e for e in self._store.get(plan_id, ())
            if not (e.writer_role == exclude_role and e.task_id == exclude_task_id)
        ]
        if not relevant:
            return ""

        now = self._clock()
        lines = []
        for entry in relevant:
            age = round(now - entry.timestamp)
            value = entry.value
            if len(value) > PROMPT_VALUE_MAX_CHARS:
                value = value[:PROMPT_VALUE_MAX_CHARS] + "..."
            lines.append(f"  [{entry.writer_role}/{entry.task_id}] ({age}s ago) {entry.key}: {value}")
        return "SHARED CONTEXT (findings from other agents in this plan):\n" + "\n".join(lines)
