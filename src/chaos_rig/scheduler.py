"""Cancellable deferred actions keyed by id."""

from __future__ import annotations

import asyncio
from collections.abc import Callable

import structlog

logger = structlog.get_logger(__name__)


class DeferredActions:
    """Run a callback after a delay unless it is cancelled first.

    Callbacks are scheduled on the running event loop. Outside an event loop
    (plain synchronous callers) nothing is scheduled and ``schedule`` returns
    False; owners must then enforce deadlines themselves on lookup.
    """

    def __init__(self) -> None:
        self._handles: dict[str, asyncio.TimerHandle] = {}

    def schedule(self, key: str, delay_seconds: float, action: Callable[[], None]) -> bool:
        self.cancel(key)
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("deferred_action_not_scheduled", key=key)
            return False

        def fire() -> None:
            self._handles.pop(key, None)
            action()

        self._handles[key] = loop.call_later(delay_seconds, fire)
        return True

    def cancel(self, key: str) -> bool:
        handle = self._handles.pop(key, None)
        if handle is None:
            return False
        handle.cancel()
        return True

    def cancel_all(self) -> None:
        for handle in self._handles.values():
            handle.cancel()
        self._handles.clear()

    def is_scheduled(self, key: str) -> bool:
        return key in self._handles

    def __len__(self) -> int:
        return len(self._handles)
