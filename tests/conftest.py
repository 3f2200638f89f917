"""Pytest configuration and shared fixtures for all tests.

This file is automatically loaded by pytest and ensures proper test environment setup.
"""

import sys
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

import pytest
import yaml

# Ensure project root is in PYTHONPATH for imports to work
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from taskAgent.config.settings import ContextSettings, LoopSettings, ModelSettings, Settings  # noqa: E402
from taskAgent.core.models import ToolDefinition, ToolInvocationResult  # noqa: E402
from taskAgent.engine.base import ThinkOptions, ThinkResponse  # noqa: E402
from taskAgent.loop.events import EventBus, LoopEvent  # noqa: E402
from taskAgent.loop.runner import TaskLoop  # noqa: E402
from taskAgent.safety.gate import SafetyGate, load_safety_rules  # noqa: E402
from taskAgent.safety.permissions import PermissionGate  # noqa: E402

DONE = '{"done": true, "summary": "All done"}'

Scripted = Union[str, ThinkResponse, BaseException, Callable[[str, str], Any]]


class ScriptedEngine:
    """Reasoning engine that replays a fixed list of responses.

    Items may be strings, ThinkResponse objects, exceptions (raised) or
    callables taking (system, user). Once the script runs out the engine
    signals completion.
    """

    def __init__(self, responses: Optional[List[Scripted]] = None, tokens_in: int = 10, tokens_out: int = 5):
        self.responses = list(responses or [])
        self.tokens_in = tokens_in
        self.tokens_out = tokens_out
        self.calls: List[Dict[str, Any]] = []

    async def think(self, system: str, user: str, options: Optional[ThinkOptions] = None) -> ThinkResponse:
        self.calls.append({"system": system, "user": user, "options": options})
        item: Scripted = self.responses.pop(0) if self.responses else DONE
        if callable(item) and not isinstance(item, BaseException):
            item = item(system, user)
        if isinstance(item, BaseException):
            raise item
        if isinstance(item, ThinkResponse):
            return item
        return ThinkResponse(
            content=item,
            tokens_in=self.tokens_in,
            tokens_out=self.tokens_out,
            model="scripted-model",
            finish_reason="stop",
        )

    @property
    def call_count(self) -> int:
        return len(self.calls)


class FakeToolRegistry:
    """Tool surface backed by plain functions keyed ``server::name``."""

    def __init__(self, handlers: Optional[Dict[str, Any]] = None):
        self.handlers = dict(handlers or {})
        self.calls: List[tuple] = []

    def list_definitions(self) -> List[ToolDefinition]:
        return [ToolDefinition(key=key, description=f"Fake {key}") for key in self.handlers]

    async def call_tool(self, tool_key: str, arguments: Dict[str, Any]) -> ToolInvocationResult:
        self.calls.append((tool_key, dict(arguments)))
        handler = self.handlers.get(tool_key)
        if handler is None:
            return ToolInvocationResult.error(tool_key, f"Unknown tool: {tool_key}")
        value = handler(arguments) if callable(handler) else handler
        if isinstance(value, ToolInvocationResult):
            return value
        return ToolInvocationResult.ok(tool_key, str(value), 1)

    def calls_for(self, tool_key: str) -> List[Dict[str, Any]]:
        return [args for key, args in self.calls if key == tool_key]


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class EventRecorder:
    def __init__(self, bus: EventBus):
        self.events: List[LoopEvent] = []
        bus.subscribe(self.events.append)

    @property
    def types(self) -> List[str]:
        return [event.type for event in self.events]

    def of_type(self, event_type: str) -> List[LoopEvent]:
        return [event for event in self.events if event.type == event_type]


def make_settings(
    loop: Optional[Dict[str, Any]] = None,
    context: Optional[Dict[str, Any]] = None,
    context_window: Optional[int] = None,
) -> Settings:
    return Settings(
        model=ModelSettings(MODEL_ID="gpt-4o", MODEL_CONTEXT_WINDOW=context_window),
        loop=LoopSettings(**(loop or {})),
        context=ContextSettings(**(context or {})),
    )


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def safety_gate():
    return SafetyGate(load_safety_rules())


@pytest.fixture
def permissions():
    return PermissionGate()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def event_bus():
    return EventBus()


@pytest.fixture
def recorder(event_bus):
    return EventRecorder(event_bus)


@pytest.fixture
def make_loop(permissions, safety_gate, clock, event_bus, settings):
    """Factory for a TaskLoop over a scripted engine and fake tools."""

    def _make(engine, tools, loop_settings: Optional[Settings] = None) -> TaskLoop:
        return TaskLoop(
            engine=engine,
            tools=tools,
            permissions=permissions,
            settings=loop_settings or settings,
            events=event_bus,
            safety_gate=safety_gate,
            clock=clock,
            cwd="/workspace",
        )

    return _make


@pytest.fixture
def write_yaml(tmp_path):
    """Write a dict to a YAML file under tmp_path and return its path."""

    def _write(name: str, data: Dict[str, Any]) -> Path:
        path = tmp_path / name
        with open(path, "w", encoding="utf-8") as f:
            yaml.safe_dump(data, f)
        return path

    return _write
