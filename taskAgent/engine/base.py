"""Reasoning engine interface consumed by the loop."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol, runtime_checkable

from taskAgent.core.cancellation import CancellationToken


@dataclass
class ThinkOptions:
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    # "json" asks the provider for a JSON object response where supported
    response_format: Optional[str] = None
    cancel: Optional[CancellationToken] = None


@dataclass
class ThinkResponse:
    content: str
    tokens_in: int = 0
    tokens_out: int = 0
    model: str = ""
    finish_reason: Optional[str] = None


@runtime_checkable
class ReasoningEngine(Protocol):
    """Turns a (system, user) prompt pair into text.

    Implementations raise ``CancellationError`` when ``options.cancel`` fires
    mid-call and ``ModelInvocationError`` for provider failures.
    """

    async def think(self, system: str, user: str, options: Optional[ThinkOptions] = None) -> ThinkResponse:
        ...
