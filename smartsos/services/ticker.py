"""
Fixed-interval tickers on the asyncio event loop.

Key patterns:
- One asyncio task per ticker, cancelled together at session end
- Sleep-then-tick, like a browser setInterval
- Error boundary per tick: a failing tick is logged, the ticker keeps going
- A callback returning False ends the ticker (used by the SOS countdown)
"""

import asyncio
import inspect
import time
from collections.abc import Awaitable, Callable

import structlog

logger = structlog.get_logger(__name__)

TickCallback = Callable[[], Awaitable[bool | None] | bool | None]


class PeriodicTicker:
    """Runs a callback every `interval_seconds` until stopped."""

    def __init__(self, name: str, interval_seconds: float, callback: TickCallback) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.name = name
        self.interval_seconds = interval_seconds
        self._callback = callback
        self._task: asyncio.Task[None] | None = None
        self.logger = logger.bind(component="ticker", ticker=name)

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Schedule the ticker on the running loop. Restarting cancels the old task."""
        self.cancel()
        self._task = asyncio.get_running_loop().create_task(self._run(), name=self.name)
        self.logger.debug("ticker_started", interval_seconds=self.interval_seconds)

    def cancel(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
            self.logger.debug("ticker_cancelled")
        self._task = None

    async def stop(self) -> None:
        """Cancel and wait for the task to unwind."""
        task = self._task
        self.cancel()
        if task is not None:
            try:
                await task
            except asyncio.CancelledError:
                pass

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            tick_start = time.perf_counter()

            try:
                outcome = self._callback()
                if inspect.isawaitable(outcome):
                    outcome = await outcome
            except Exception as e:
                self.logger.exception("tick_failed", error=str(e))
                continue

            if outcome is False:
                self.logger.debug("ticker_finished")
                return

            elapsed = time.perf_counter() - tick_start
            if elapsed > self.interval_seconds:
                self.logger.warning(
                    "tick_slower_than_interval",
                    elapsed_seconds=round(elapsed, 3),
                    interval_seconds=self.interval_seconds,
                )
