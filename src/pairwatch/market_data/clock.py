"""Shared polling clock aligned to wall-clock boundaries.

Every clock fires at exact multiples of its interval since the epoch, so
independently started consumers (several widgets, several processes) tick
together without coordinating. Subscribers get no payload; they pull fresh
data when notified.

One background task per clock replaces per-widget self-rescheduling timers,
which drift and duplicate upstream traffic.
"""

import asyncio
import inspect
import time
from collections.abc import Awaitable, Callable
from typing import Any

from pairwatch.logging import get_logger

logger = get_logger(__name__)

TickCallback = Callable[[], Any]


def next_deadline_delay(now: float, interval: float) -> float:
    """Seconds from ``now`` until the next multiple of ``interval`` since epoch.

    Exactly on a boundary, the next boundary is a full interval away.
    """
    return interval - (now % interval)


class PollingClock:
    """Wall-clock aligned tick source with subscribe/unsubscribe.

    Args:
        interval_seconds: Tick period (20s by default).
        time_fn: Wall-clock source, injectable for tests.
        sleep: Sleep coroutine, injectable for tests.
    """

    def __init__(
        self,
        interval_seconds: float = 20.0,
        time_fn: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self._interval = interval_seconds
        self._time_fn = time_fn
        self._sleep = sleep
        self._subscribers: list[TickCallback] = []
        self._running = False
        self._task: asyncio.Task | None = None  # type: ignore[type-arg]
        self._tick_count = 0

    @property
    def interval(self) -> float:
        return self._interval

    @property
    def tick_count(self) -> int:
        return self._tick_count

    @property
    def is_running(self) -> bool:
        return self._running

    def subscribe(self, callback: TickCallback) -> Callable[[], None]:
        """Register a tick callback. Returns a function that unsubscribes it."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    async def start(self) -> None:
        """Begin ticking in the background."""
        if self._running:
            logger.warning("polling_clock_already_running")
            return
        self._running = True
        self._task = asyncio.create_task(self._run_loop())
        logger.info("polling_clock_started", interval=self._interval)

    async def stop(self) -> None:
        """Stop ticking. Subscribers stay registered."""
        self._running = False
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("polling_clock_stopped", ticks=self._tick_count)

    async def _run_loop(self) -> None:
        while self._running:
            await self._sleep(next_deadline_delay(self._time_fn(), self._interval))
            if not self._running:
                break
            self._tick_count += 1
            await self._emit()

    async def _emit(self) -> None:
        """Notify every subscriber; one failing subscriber never stops the clock."""
        for callback in list(self._subscribers):
            try:
                result = callback()
                if inspect.isawaitable(result):
                    await result
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.warning("tick_subscriber_error", tick=self._tick_count, exc_info=True)
