"""
ScrapeGuard Periodic Ticker

Fixed-period timer running on the asyncio loop of the host. The callback
is synchronous and runs on the loop thread, so ticks and event handling
are serialised without locks. A failing callback is logged and the next
tick still fires.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional


logger = logging.getLogger(__name__)


class PeriodicTicker:
    """
    Invoke `callback` every `interval_ms` milliseconds until stopped.

    Usage:
        ticker = PeriodicTicker("decay", 60000, lambda: registry.tick_all(TickKind.DECAY))
        ticker.start()
        ...
        await ticker.stop()
    """

    def __init__(self, name: str, interval_ms: float, callback: Callable[[], None]) -> None:
        if interval_ms <= 0:
            raise ValueError(f"Ticker interval must be positive, got {interval_ms}")
        self.name = name
        self.interval_ms = interval_ms
        self.callback = callback
        self.tick_count = 0
        self._task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Schedule the ticker on the running loop."""
        if self.is_running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run(), name=f"ticker:{self.name}")
        logger.info(f"Ticker '{self.name}' started ({self.interval_ms:.0f}ms)")

    async def stop(self) -> None:
        """Cancel the ticker and wait for it to finish."""
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info(f"Ticker '{self.name}' stopped after {self.tick_count} ticks")

    async def _run(self) -> None:
        interval_s = self.interval_ms / 1000.0
        while True:
            await asyncio.sleep(interval_s)
            self.tick_count += 1
            try:
                self.callback()
            except Exception as e:
                logger.error(f"Ticker '{self.name}' callback failed: {e}")
