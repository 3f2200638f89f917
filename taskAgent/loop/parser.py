"""Decode a model response into exactly one of ToolCall, Completion or Unparseable.

Extraction strategies, tried in this order; the first candidate that decodes
to a tool call or completion wins:

1. the whole response as JSON
2. the first fenced code block (```json ... ```)
3. every balanced ``{...}`` object in the text, left to right, within each
   ``[TOOL_CALL]``-separated chunk

A completion whose summary is itself a tool-call payload is Unparseable.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, Optional, Union

FENCED_BLOCK = re.compile(r"```(?:json)?\s*\n?([\s\S]*?)\n?```")
TOOL_CALL_MARKER = re.compile(r"\[TOOL_CALL\]", re.IGNORECASE)


@dataclass(frozen=True)
class ToolCall:
    tool: str
    args: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Completion:
    summary: str


@dataclass(frozen=True)
class Unparseable:
    raw: str
    reason: str = "No tool call or completion signal found"


ParsedResponse = Union[ToolCall, Completion, Unparseable]


def stable_stringify(value: Any) -> str:
    """JSON with sorted keys so equal payloads hash equally regardless of key order."""
    return json.dumps(value, sort_keys=True, ensure_ascii=False, separators=(",", ":"), default=str)


def iter_balanced_objects(text: str) -> Iterator[str]:
    """Yield each balanced ``{...}`` span; string- and escape-aware.

    An opening brace with no matching close is skipped and scanning resumes
    one character later.
    """
    search_from = 0
    while search_from < len(text):
        start = text.find("{", search_from)
        if start == -1:
            return

        depth = 0
        in_string = False
        escape = False
        end = -1
        for i in range(start, len(text)):
            ch = text[i]
            if escape:
                escape = False
                continue
            if ch == "\\" and in_string:
                escape = True
                continue
            if ch == '"':
                in_string = not in_string
                continue
            if in_string:
                continue
            if ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    end = i
                    break

        if end != -1:
            yield text[start:end + 1]
            search_from = end + 1
        else:
            search_from = start + 1


def _looks_like_tool_call(text: str) -> bool:
    try:
        payload = json.loads(text.strip())
    except (json.JSONDecodeError, ValueError):
        return False
    return isinstance(payload, dict) and isinstance(payload.get("tool"), str) and bool(payload["tool"])


def _decode(candidate: str) -> Optional[ParsedResponse]:
    try:
        payload = json.loads(candidate)
    except (json.JSONDecodeError, ValueError):
        return None
    if not isinstance(payload, dict):
        return None

    tool = payload.get("tool")
    if isinstance(tool, str) and tool:
        args = payload.get("args")
        return ToolCall(tool=tool, args=args if isinstance(args, dict) else {})

    if payload.get("done") is True and isinstance(payload.get("summary"), str):
        summary = payload["summary"]
        if _looks_like_tool_call(summary):
            return Unparseable(raw=candidate, reason="Completion summary wraps a tool call")
        return Completion(summary=summary)
    return None


def _candidates(text: str) -> Iterator[str]:
    yield text.strip()
    match = FENCED_BLOCK.search(text)
    if match:
        yield match.group(1)
    for chunk in TOOL_CALL_MARKER.split(text):
        yield from iter_balanced_objects(chunk)


def parse_response(text: str) -> ParsedResponse:
    if not text or not text.strip():
        return Unparseable(raw=text or "", reason="Empty response")
    for candidate in _candidates(text):
        decoded = _decode(candidate)
        if decoded is None:
            continue
        if isinstance(decoded, Unparseable):
            return Unparseable(raw=text, reason=decoded.reason)
        return decoded
    return Unparseable(raw=text)
