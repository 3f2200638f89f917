"""Built-in local tools: file system, shell and HTTP.

Every call is turned into a ``SafetyAction`` and evaluated by the Safety Gate
before anything touches the OS. A denial comes back as a failed
``ToolInvocationResult``; no tool method lets an exception escape
``call_tool``.
"""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
import time
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx

from taskAgent.context.working_set import render_line_range
from taskAgent.core.models import LOCAL_SERVER_ID, ToolDefinition, ToolInvocationResult, make_tool_key
from taskAgent.safety.gate import NETWORK_ACTION, SHELL_ACTION, SafetyAction, SafetyGate
from taskAgent.utils.error_handler import SafetyBlocked, TaskAgentError, ToolExecutionError

LOGGER = logging.getLogger(__name__)

DEFAULT_SHELL_TIMEOUT = 30
DEFAULT_HTTP_TIMEOUT = 30.0
MAX_OUTPUT_CHARS = 20_000
MAX_DIRECTORY_ENTRIES = 500


def _truncate(text: str, limit: int = MAX_OUTPUT_CHARS) -> str:
    if len(text) > limit:
        return text[:limit] + f"\n... (truncated, {len(text) - limit} more chars)"
    return text


def _schema(properties: Dict[str, Any], required: List[str]) -> Dict[str, Any]:
    return {"type": "object", "properties": properties, "required": required}


TOOL_SPECS: Dict[str, Dict[str, Any]] = {
    "file_read": {
        "description": "Read a text file. Optional start_line/end_line (1-based, inclusive) return a slice.",
        "input_schema": _schema(
            {
                "path": {"type": "string", "description": "File path"},
                "start_line": {"type": "integer"},
                "end_line": {"type": "integer"},
            },
            ["path"],
        ),
    },
    "file_write": {
        "description": "Write text to a file, replacing any existing content.",
        "input_schema": _schema(
            {"path": {"type": "string"}, "content": {"type": "string"}},
            ["path", "content"],
        ),
    },
    "file_create": {
        "description": "Create a new file. Fails if the file already exists.",
        "input_schema": _schema(
            {"path": {"type": "string"}, "content": {"type": "string"}},
            ["path"],
        ),
    },
    "file_delete": {
        "description": "Delete a file.",
        "input_schema": _schema({"path": {"type": "string"}}, ["path"]),
    },
    "file_move": {
        "description": "Move or rename a file.",
        "input_schema": _schema(
            {"path": {"type": "string"}, "destination": {"type": "string"}},
            ["path", "destination"],
        ),
    },
    "directory_list": {
        "description": "List the entries of a directory. Directories end with '/'.",
        "input_schema": _schema({"path": {"type": "string", "default": "."}}, []),
    },
    "shell_execute": {
        "description": "Run a shell command and return its exit code and output.",
        "input_schema": _schema(
            {
                "command": {"type": "string"},
                "args": {"type": "array", "items": {"type": "string"}},
                "timeout": {"type": "integer", "description": "Seconds", "default": DEFAULT_SHELL_TIMEOUT},
            },
            ["command"],
        ),
    },
    "http_request": {
        "description": "Send an HTTP request and return status and body.",
        "input_schema": _schema(
            {
                "url": {"type": "string"},
                "method": {"type": "string", "default": "GET"},
                "headers": {"type": "object"},
                "body": {"type": "string"},
            },
            ["url"],
        ),
    },
}


class LocalToolProvider:
    """Executes the built-in tools inside ``root`` under the Safety Gate."""

    server_id = LOCAL_SERVER_ID

    def __init__(
        self,
        safety_gate: SafetyGate,
        root: Optional[Path] = None,
        http_transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.safety_gate = safety_gate
        self.root = Path(root or os.getcwd()).resolve()
        self._http_transport = http_transport
        self._handlers: Dict[str, Callable[[Dict[str, Any]], Awaitable[str]]] = {
            "file_read": self._file_read,
            "file_write": self._file_write,
            "file_create": self._file_create,
            "file_delete": self._file_delete,
            "file_move": self._file_move,
            "directory_list": self._directory_list,
            "shell_execute": self._shell_execute,
            "http_request": self._http_request,
        }

    def list_definitions(self) -> List[ToolDefinition]:
        return [
            ToolDefinition(
                key=make_tool_key(self.server_id, name),
                description=spec["description"],
                input_schema=spec["input_schema"],
            )
            for name, spec in TOOL_SPECS.items()
        ]

    def has_tool(self, name: str) -> bool:
        return name in self._handlers

    async def call_tool(self, name: str, arguments: Dict[str, Any]) -> ToolInvocationResult:
        key = make_tool_key(self.server_id, name)
        handler = self._handlers.get(name)
        if handler is None:
            return ToolInvocationResult.error(key, f"Unknown local tool: {name}")

        started = time.monotonic()
        try:
            content = await handler(arguments or {})
        except SafetyBlocked as e:
            return ToolInvocationResult.error(key, f"SafetyBlocked: {e}", self._elapsed(started))
        except TaskAgentError as e:
            return ToolInvocationResult.error(key, str(e), self._elapsed(started))
        except (OSError, ValueError, TypeError, UnicodeDecodeError) as e:
            return ToolInvocationResult.error(key, f"{type(e).__name__}: {e}", self._elapsed(started))
        return ToolInvocationResult.ok(key, content, self._elapsed(started))

    @staticmethod
    def _elapsed(started: float) -> int:
        return int((time.monotonic() - started) * 1000)

    # ---- helpers -----------------------------------------------------------

    def _resolve(self, path: str) -> Path:
        candidate = Path(path).expanduser()
        if not candidate.is_absolute():
            candidate = self.root / candidate
        return candidate.resolve()

    def _check(self, action: SafetyAction) -> None:
        verdict = self.safety_gate.evaluate(action)
        if not verdict.allowed:
            raise SafetyBlocked(verdict.reason)

    @staticmethod
    def _require(arguments: Dict[str, Any], name: str) -> str:
        value = arguments.get(name)
        if not isinstance(value, str) or not value:
            raise ToolExecutionError(f"Missing required argument: {name}")
        return value

    # ---- file tools --------------------------------------------------------

    async def _file_read(self, arguments: Dict[str, Any]) -> str:
        path = self._resolve(self._require(arguments, "path"))
        self._check(SafetyAction(type="file_read", path=str(path)))
        if not path.is_file():
            raise ToolExecutionError(f"File not found: {arguments['path']}")
        content = path.read_text(encoding="utf-8")
        start_line = arguments.get("start_line")
        end_line = arguments.get("end_line")
        if start_line is None and end_line is None:
            return content
        return render_line_range(
            content,
            int(start_line) if start_line is not None else None,
            int(end_line) if end_line is not None else None,
        )

    async def _file_write(self, arguments: Dict[str, Any]) -> str:
        path = self._resolve(self._require(arguments, "path"))
        content = str(arguments.get("content", ""))
        data = content.encode("utf-8")
        self._check(SafetyAction(type="file_write", path=str(path), size_bytes=len(data)))
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        return f"Wrote {len(data)} bytes to {arguments['path']}"

    async def _file_create(self, arguments: Dict[str, Any]) -> str:
        path = self._resolve(self._require(arguments, "path"))
        content = str(arguments.get("content", ""))
        data = content.encode("utf-8")
        self._check(SafetyAction(type="file_write", path=str(path), size_bytes=len(data)))
        if path.exists():
            raise ToolExecutionError(f"File already exists: {arguments['path']}")
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        return f"Created {arguments['path']} ({len(data)} bytes)"

    async def _file_delete(self, arguments: Dict[str, Any]) -> str:
        path = self._resolve(self._require(arguments, "path"))
        self._check(SafetyAction(type="file_delete", path=str(path)))
        if not path.is_file():
            raise ToolExecutionError(f"File not found: {arguments['path']}")
        path.unlink()
        return f"Deleted {arguments['path']}"

    async def _file_move(self, arguments: Dict[str, Any]) -> str:
        source = self._resolve(self._require(arguments, "path"))
        destination = self._resolve(self._require(arguments, "destination"))
        self._check(SafetyAction(type="file_move", path=str(source), destination=str(destination)))
        if not source.exists():
            raise ToolExecutionError(f"File not found: {arguments['path']}")
        destination.parent.mkdir(parents=True, exist_ok=True)
        shutil.move(str(source), str(destination))
        return f"Moved {arguments['path']} -> {arguments['destination']}"

    async def _directory_list(self, arguments: Dict[str, Any]) -> str:
        raw = arguments.get("path") or "."
        path = self._resolve(raw)
        self._check(SafetyAction(type="file_read", path=str(path)))
        if not path.is_dir():
            raise ToolExecutionError(f"Not a directory: {raw}")
        entries = sorted(path.iterdir(), key=lambda p: (not p.is_dir(), p.name.lower()))
        lines = [f"{p.name}/" if p.is_dir() else p.name for p in entries[:MAX_DIRECTORY_ENTRIES]]
        if len(entries) > MAX_DIRECTORY_ENTRIES:
            lines.append(f"... ({len(entries) - MAX_DIRECTORY_ENTRIES} more entries)")
        return "\n".join(lines) if lines else "(empty directory)"

    # ---- shell -------------------------------------------------------------

    async def _shell_execute(self, arguments: Dict[str, Any]) -> str:
        command = self._require(arguments, "command")
        args = [str(a) for a in arguments.get("args") or []]
        timeout = int(arguments.get("timeout") or DEFAULT_SHELL_TIMEOUT)
        self._check(SafetyAction(type=SHELL_ACTION, command=command, args=args, timeout_seconds=timeout))

        full_command = " ".join([command, *args])
        LOGGER.info(f"Executing shell command: {full_command}")
        process = await asyncio.create_subprocess_shell(
            full_command,
            cwd=str(self.root),
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
        )
        try:
            stdout, _ = await asyncio.wait_for(process.communicate(), timeout=timeout)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            raise ToolExecutionError(f"Command timed out after {timeout}s: {full_command}")

        output = _truncate(stdout.decode("utf-8", errors="replace"))
        if process.returncode != 0:
            raise ToolExecutionError(f"Exit code {process.returncode}\n{output}")
        return f"Exit code 0\n{output}"

    # ---- network -----------------------------------------------------------

    async def _http_request(self, arguments: Dict[str, Any]) -> str:
        url = self._require(arguments, "url")
        method = str(arguments.get("method") or "GET").upper()
        body = arguments.get("body")
        payload = body.encode("utf-8") if isinstance(body, str) else None
        self._check(SafetyAction(
            type=NETWORK_ACTION,
            url=url,
            request_size_bytes=len(payload) if payload else None,
        ))

        headers = {str(k): str(v) for k, v in (arguments.get("headers") or {}).items()}
        try:
            async with httpx.AsyncClient(
                timeout=DEFAULT_HTTP_TIMEOUT,
                transport=self._http_transport,
                follow_redirects=True,
            ) as client:
                response = await client.request(method, url, headers=headers, content=payload)
        except httpx.HTTPError as e:
            raise ToolExecutionError(f"HTTP request failed: {type(e).__name__}: {e}") from e

        text = _truncate(response.text)
        if response.status_code >= 400:
            raise ToolExecutionError(f"HTTP {response.status_code}\n{text}")
        return f"HTTP {response.status_code}\n{text}"
