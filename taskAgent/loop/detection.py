"""Loop and stuck detection for tool calls within one run."""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

from taskAgent.core.models import split_tool_key

from .parser import stable_stringify

LOGGER = logging.getLogger(__name__)

MAX_LOOP_REPEATS = 3
MAX_TOOL_FREQUENCY = 8
MAX_READ_TOOL_FREQUENCY = 30
MAX_CONSECUTIVE_SAME = 5

READ_ONLY_TOOLS = frozenset({
    "file_read", "read_text_file", "read_file", "directory_list", "list_directory",
    "list_allowed_directories", "search_files", "grep_search",
})


class DetectionOutcome(str, Enum):
    OK = "ok"
    WARN = "warn"
    STOP = "stop"


@dataclass(frozen=True)
class Detection:
    outcome: DetectionOutcome
    message: str = ""


@dataclass
class LoopDetector:
    """Checks each proposed call before it runs.

    Triggers, most to least strict:
    1. identical tool+args ``max_repeats`` times in a row: stop
    2. a tool name used ``max_frequency`` times in the run (higher limit for
       read-only tools): warn once, then stop
    3. the same tool name ``max_consecutive`` times in a row: warn once, then stop

    Triggers 2 and 3 share ``warning_given``, so a run gets one warning in total.
    """

    max_repeats: int = MAX_LOOP_REPEATS
    max_frequency: int = MAX_TOOL_FREQUENCY
    max_read_frequency: int = MAX_READ_TOOL_FREQUENCY
    max_consecutive: int = MAX_CONSECUTIVE_SAME
    warning_given: bool = False
    _last_signature: Optional[str] = None
    _identical_run: int = 0
    _last_name: Optional[str] = None
    _same_name_run: int = 0
    _name_counts: Counter = field(default_factory=Counter)

    @classmethod
    def from_settings(cls, loop_settings) -> "LoopDetector":
        return cls(
            max_repeats=loop_settings.max_loop_repeats,
            max_frequency=loop_settings.max_tool_frequency,
            max_read_frequency=loop_settings.max_read_tool_frequency,
            max_consecutive=loop_settings.max_consecutive_same,
        )

    def check(self, tool_key: str, args: Dict[str, Any]) -> Detection:
        _, name = split_tool_key(tool_key)
        signature = stable_stringify({"tool": tool_key, "args": args or {}})

        self._identical_run = self._identical_run + 1 if signature == self._last_signature else 1
        self._last_signature = signature
        self._same_name_run = self._same_name_run + 1 if name == self._last_name else 1
        self._last_name = name
        self._name_counts[name] += 1

        if self._identical_run >= self.max_repeats:
            message = f'Loop detected: "{name}" called {self._identical_run} times in a row with identical arguments'
            LOGGER.warning(message)
            return Detection(DetectionOutcome.STOP, message)

        limit = self.max_read_frequency if name in READ_ONLY_TOOLS else self.max_frequency
        count = self._name_counts[name]
        if count >= limit:
            return self._escalate(
                f'You have called "{name}" {count} times in this task. You may be looping.'
            )

        if self._same_name_run >= self.max_consecutive:
            return self._escalate(
                f'You have called "{name}" {self._same_name_run} times in a row. You may be stuck.'
            )

        return Detection(DetectionOutcome.OK)

    def _escalate(self, message: str) -> Detection:
        if not self.warning_given:
            self.warning_given = True
            LOGGER.warning(f"Stuck warning: {message}")
            return Detection(DetectionOutcome.WARN, message)
        LOGGER.warning(f"Stuck after warning: {message}")
        return Detection(DetectionOutcome.STOP, f"Stuck detected after warning: {message}")

    def tool_count(self, name: str) -> int:
        return self._name_counts[name]
