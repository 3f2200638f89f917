"""Staged compaction of the working set and tool-result history.

Levels, applied in order until the requested number of tokens is freed:
1. Compress tool results older than the most recent few to one-line summaries
2. Evict the oldest working-set files beyond the most recent few
3. Truncate remaining oversized files to head and tail halves

No model calls are involved. Inputs are never mutated, and a run that frees
nothing returns the original objects unchanged.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Dict, List, Mapping, Sequence

from taskAgent.core.models import ToolInvocationResult, split_tool_key

from .budget import estimate_tokens, format_token_count
from .working_set import WorkingSetEntry

LOGGER = logging.getLogger(__name__)

KEEP_RECENT_ACTIONS = 6
KEEP_RECENT_FILES = 4
TRUNCATED_FILE_MAX_LINES = 100
MAX_TOKENS_PER_FILE = 3_000
COMPACTED_PREFIX = "[Compacted]"


@dataclass
class CompactionResult:
    working_set: Mapping[str, WorkingSetEntry]
    history: Sequence[ToolInvocationResult]
    tokens_freed: int
    level: int
    summary_parts: List[str] = field(default_factory=list)

    @property
    def summary(self) -> str:
        if not self.summary_parts:
            return "No compaction needed"
        return f"Context compacted (level {self.level}): " + "; ".join(self.summary_parts)


def _compress_result(result: ToolInvocationResult) -> ToolInvocationResult:
    _, name = split_tool_key(result.tool_key)
    first_line = result.content.split("\n", 1)[0][:80]
    status = "OK" if result.success else "FAIL"
    return replace(result, content=f"{COMPACTED_PREFIX} {name}: {status} - {first_line}")


def _truncate_content(content: str, max_lines: int) -> str:
    lines = content.split("\n")
    half = max_lines // 2
    omitted = len(lines) - 2 * half
    return (
        "\n".join(lines[:half])
        + f"\n\n... [{omitted} lines omitted - file truncated to save context] ...\n\n"
        + "\n".join(lines[-half:])
    )


def compact(
    working_set: Mapping[str, WorkingSetEntry],
    history: Sequence[ToolInvocationResult],
    target_tokens: int,
    at_step: int,
    keep_recent_actions: int = KEEP_RECENT_ACTIONS,
    keep_recent_files: int = KEEP_RECENT_FILES,
    truncated_file_max_lines: int = TRUNCATED_FILE_MAX_LINES,
    max_tokens_per_file: int = MAX_TOKENS_PER_FILE,
) -> CompactionResult:
    """Free at least ``target_tokens`` if possible, escalating level by level."""
    if target_tokens <= 0:
        return CompactionResult(working_set=working_set, history=history, tokens_freed=0, level=0)

    files: Dict[str, WorkingSetEntry] = dict(working_set)
    results: List[ToolInvocationResult] = list(history)
    tokens_freed = 0
    level = 0
    summary_parts: List[str] = []

    # Level 1: old tool results become one-liners
    if tokens_freed < target_tokens and len(results) > keep_recent_actions:
        level = 1
        old = results[:-keep_recent_actions]
        recent = results[-keep_recent_actions:]
        compressed = [
            r if r.content.startswith(COMPACTED_PREFIX) else _compress_result(r)
            for r in old
        ]
        before = sum(estimate_tokens(r.content) for r in old)
        after = sum(estimate_tokens(r.content) for r in compressed)
        if before > after:
            tokens_freed += before - after
            results = compressed + recent
            summary_parts.append(f"Compressed {len(old)} old action log entries")

    # Level 2: evict oldest files
    if tokens_freed < target_tokens and len(files) > keep_recent_files:
        level = 2
        by_age = sorted(files.values(), key=lambda e: e.step_recorded)
        evictable = by_age[: len(by_age) - keep_recent_files]
        evicted = []
        for entry in evictable:
            if tokens_freed >= target_tokens:
                break
            tokens_freed += entry.tokens
            evicted.append(entry.normalized_path)
            del files[entry.normalized_path]
        if evicted:
            names = ", ".join(path.rsplit("/", 1)[-1] for path in evicted)
            summary_parts.append(f"Evicted {len(evicted)} oldest files: {names}")

    # Level 3: truncate what is left
    if tokens_freed < target_tokens:
        level = 3
        for path, entry in list(files.items()):
            if entry.truncated or entry.tokens <= max_tokens_per_file:
                continue
            line_count = entry.content.count("\n") + 1
            if line_count <= truncated_file_max_lines:
                continue
            truncated = _truncate_content(entry.content, truncated_file_max_lines)
            new_tokens = estimate_tokens(truncated)
            tokens_freed += entry.tokens - new_tokens
            files[path] = replace(entry, content=truncated, truncated=True)
            summary_parts.append(
                f"Truncated {path.rsplit('/', 1)[-1]} ({line_count} -> {truncated_file_max_lines} lines)"
            )

    if tokens_freed <= 0:
        return CompactionResult(working_set=working_set, history=history, tokens_freed=0, level=0)

    LOGGER.info(
        f"Compaction at step {at_step}: level {level}, freed {format_token_count(tokens_freed)} "
        f"of {format_token_count(target_tokens)} requested"
    )
    return CompactionResult(
        working_set=files,
        history=results,
        tokens_freed=tokens_freed,
        level=level,
        summary_parts=summary_parts,
    )


def build_compaction_notice(result: CompactionResult) -> str:
    """Prompt notice after a compaction; empty when nothing was freed."""
    if result.tokens_freed == 0:
        return ""
    return (
        "== CONTEXT COMPACTED ==\n"
        f"{result.summary}\n"
        f"{result.tokens_freed:,} tokens freed.\n"
        "Some earlier file contents or tool results may have been summarized.\n"
        "Continue working naturally. Do not mention the compaction."
    )
