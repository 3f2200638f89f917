"""Read-through cache of file contents the loop has already fetched."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterator, Mapping, Optional

from taskAgent.core.models import split_tool_key

from .budget import estimate_tokens

READ_CACHE_TOOLS = frozenset({"file_read", "read_file", "read_text_file"})
WRITE_INVALIDATE_TOOLS = frozenset({"file_write", "file_create", "file_edit", "file_delete", "file_move", "write_file"})
PATH_ARG_NAMES = ("path", "file_path", "filePath")


@dataclass(frozen=True)
class WorkingSetEntry:
    normalized_path: str
    content: str
    step_recorded: int
    truncated: bool = False

    @property
    def tokens(self) -> int:
        return estimate_tokens(self.content)


def normalize_path(path: str) -> str:
    return path.replace("\\", "/").lower()


def read_path_from_args(args: Mapping[str, Any]) -> Optional[str]:
    for name in PATH_ARG_NAMES:
        value = args.get(name)
        if isinstance(value, str) and value:
            return value
    return None


def _line_arg(args: Mapping[str, Any], name: str) -> Optional[int]:
    value = args.get(name)
    if value in (None, ""):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def render_line_range(content: str, start_line: Optional[int], end_line: Optional[int]) -> str:
    """Slice 1-based inclusive line range with a ``[Lines s-e of N total]`` header."""
    lines = content.split("\n")
    start = max(0, (start_line or 1) - 1)
    end = min(len(lines), end_line if end_line is not None else len(lines))
    return f"[Lines {start + 1}-{end} of {len(lines)} total]\n" + "\n".join(lines[start:end])


class FileWorkingSet:
    """Mapping of normalized path to the last full read of that file."""

    def __init__(self, entries: Optional[Mapping[str, WorkingSetEntry]] = None):
        self._entries: Dict[str, WorkingSetEntry] = dict(entries or {})

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, path: str) -> bool:
        return normalize_path(path) in self._entries

    def __iter__(self) -> Iterator[WorkingSetEntry]:
        return iter(self._entries.values())

    @property
    def entries(self) -> Dict[str, WorkingSetEntry]:
        return dict(self._entries)

    def get(self, path: str) -> Optional[WorkingSetEntry]:
        return self._entries.get(normalize_path(path))

    def lookup(self, tool_key: str, args: Mapping[str, Any]) -> Optional[str]:
        """Serve a read-class call from cache, or None when it must hit the tool."""
        _, name = split_tool_key(tool_key)
        if name not in READ_CACHE_TOOLS:
            return None
        path = read_path_from_args(args)
        if not path:
            return None
        entry = self.get(path)
        # Compacted entries hold head and tail only
        if entry is None or entry.truncated:
            return None
        start_line = _line_arg(args, "start_line")
        end_line = _line_arg(args, "end_line")
        if start_line is None and end_line is None:
            return entry.content
        return render_line_range(entry.content, start_line, end_line)

    def observe(self, tool_key: str, args: Mapping[str, Any], success: bool, content: str, step: int) -> None:
        """Update the cache after a real tool call."""
        if not success:
            return
        _, name = split_tool_key(tool_key)
        path = read_path_from_args(args)
        if not path:
            return
        if name in READ_CACHE_TOOLS:
            # Only full reads are cached; a sub-range is not the whole file
            if _line_arg(args, "start_line") is None and _line_arg(args, "end_line") is None:
                self.record(path, content, step)
        elif name in WRITE_INVALIDATE_TOOLS:
            self._entries.pop(normalize_path(path), None)
            destination = args.get("destination")
            if isinstance(destination, str):
                self._entries.pop(normalize_path(destination), None)

    def record(self, path: str, content: str, step: int) -> None:
        norm = normalize_path(path)
        self._entries[norm] = WorkingSetEntry(normalized_path=norm, content=content, step_recorded=step)

    def render_for_prompt(self, max_chars_per_file: int = 4000) -> str:
        """Files already read, so the model can use them without re-reading."""
        if not self._entries:
            return ""
        parts = ["== FILES ALREADY READ (use these, do not re-read) =="]
        for entry in sorted(self._entries.values(), key=lambda e: e.step_recorded):
            content = entry.content
            if len(content) > max_chars_per_file:
                content = content[:max_chars_per_file] + "\n...(truncated in prompt)"
            parts.append(f"--- {entry.normalized_path} (step {entry.step_recorded}) ---\n{content}")
        return "\n".join(parts)
