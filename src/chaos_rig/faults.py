"""Artificial latency and probabilistic failure, driven by the config store."""

from __future__ import annotations

import asyncio
import random
from collections.abc import Awaitable, Callable

import structlog

from .config_store import ConfigStore

logger = structlog.get_logger(__name__)


class FaultInjector:
    """Stateless fault decisions over the current configuration.

    ``rng`` and ``sleep`` are injectable so tests can make the outcome
    deterministic without patching module globals.
    """

    def __init__(
        self,
        store: ConfigStore,
        rng: random.Random | None = None,
        sleep: Callable[[float], Awaitable[None]] | None = None,
    ) -> None:
        self._store = store
        self._rng = rng or random.Random()
        self._sleep = sleep or asyncio.sleep

    def pick_delay_ms(self) -> int:
        """Return the delay slow mode would impose right now (0 when off)."""
        slow = self._store.config.slow_mode
        if not slow.enabled:
            return 0
        return self._rng.randint(slow.min_ms, slow.max_ms)

    async def delay(self) -> None:
        delay_ms = self.pick_delay_ms()
        if delay_ms <= 0:
            return
        logger.debug("slow_mode_delay", delay_ms=delay_ms)
        await self._sleep(delay_ms / 1000)

    def roll_failure(self) -> bool:
        flaky = self._store.config.flaky
        if not flaky.enabled:
            return False
        return self._rng.random() * 100 < flaky.pct
