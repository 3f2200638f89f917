"""Cooperative cancellation for loop runs.

A token is a shared, externally settable flag. The loop checks it at the top of
every iteration and before assembling the next prompt; engines and transports
that support abort can await ``wait()`` or register an ``on_cancel`` callback.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, List, Optional

from taskAgent.utils.error_handler import TaskAgentError

LOGGER = logging.getLogger(__name__)


class CancellationError(TaskAgentError):
    """Raised by ``throw_if_cancelled`` once a token has been cancelled."""


class CancellationToken:
    """Settable cancellation flag with callbacks."""

    def __init__(self) -> None:
        self._cancelled = False
        self._reason: Optional[str] = None
        self._callbacks: List[Callable[[str], None]] = []
        self._event: Optional[asyncio.Event] = None

    @property
    def is_cancelled(self) -> bool:
        return self._cancelled

    @property
    def reason(self) -> Optional[str]:
        return self._reason

    def cancel(self, reason: str = "Cancelled by user") -> None:
        """Mark the token cancelled and fire callbacks once."""
        if self._cancelled:
            return
        self._cancelled = True
        self._reason = reason
        LOGGER.info(f"Cancellation requested: {reason}")
        if self._event is not None:
            self._event.set()
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            try:
                callback(reason)
            except Exception as e:
                LOGGER.warning(f"Cancellation callback failed: {e}")

    def on_cancel(self, callback: Callable[[str], None]) -> Callable[[], None]:
        """Register a callback; fires immediately if already cancelled.

        Returns a function that unregisters the callback.
        """
        if self._cancelled:
            callback(self._reason or "")
            return lambda: None
        self._callbacks.append(callback)

        def unregister() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return unregister

    def throw_if_cancelled(self) -> None:
        if self._cancelled:
            raise CancellationError(f"Operation cancelled: {self._reason}")

    async def wait(self) -> str:
        """Block until the token is cancelled; returns the reason."""
        if self._event is None:
            self._event = asyncio.Event()
            if self._cancelled:
                self._event.set()
        await self._event.wait()
        return self._reason or ""
