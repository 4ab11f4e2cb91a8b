"""Market data engine -- the read interface consumed by the view layer.

Owns the active pair, its PresentationState, and the tick sequencing that
protects it:

- every refresh is stamped with a monotonic sequence number; a result whose
  sequence is no longer the newest started one is discarded on arrival
- switching pairs bumps a generation counter, cancels in-flight refresh
  tasks for the previous pair and resets sequence tracking
- subscribers receive a fresh PanelView after every state change
"""

import asyncio
import inspect
from collections.abc import Callable
from typing import Any

from pairwatch.logging import get_logger, tick_context
from pairwatch.market_data.clock import PollingClock
from pairwatch.market_data.resolver import PairResolver
from pairwatch.market_data.state import PanelView, PresentationState
from pairwatch.models import PairRef

logger = get_logger(__name__)

ViewCallback = Callable[[PanelView], Any]


class MarketDataEngine:
    """Drives the resolver from the polling clock for the active pair.

    Args:
        resolver: Per-tick provider fan-out and reconciliation.
        clock: Shared polling clock; the engine subscribes on start().
        flash_seconds: How long a price up/down flash stays visible.
    """

    def __init__(
        self,
        resolver: PairResolver,
        clock: PollingClock,
        flash_seconds: float = 0.5,
    ) -> None:
        self._resolver = resolver
        self._clock = clock
        self._flash_seconds = flash_seconds

        self._active: PairRef | None = None
        self._state: PresentationState | None = None
        self._generation = 0
        self._sequence = 0
        self._subscribers: dict[str, list[ViewCallback]] = {}
        self._active_subscribers: list[ViewCallback] = []
        self._tasks: set[asyncio.Task] = set()  # type: ignore[type-arg]
        self._notify_tasks: set[asyncio.Task] = set()  # type: ignore[type-arg]
        self._flash_handle: asyncio.TimerHandle | None = None
        self._unsubscribe_clock: Callable[[], None] | None = None

    @property
    def active_pair(self) -> PairRef | None:
        return self._active

    @property
    def sequence(self) -> int:
        return self._sequence

    # ──────────────────────────────────────────────────────────────────
    # Lifecycle
    # ──────────────────────────────────────────────────────────────────

    async def start(self) -> None:
        """Refresh the active pair on every clock tick."""
        if self._unsubscribe_clock is None:
            self._unsubscribe_clock = self._clock.subscribe(self._on_tick)
            logger.info("engine_started", interval=self._clock.interval)

    async def stop(self) -> None:
        """Detach from the clock and cancel outstanding work."""
        if self._unsubscribe_clock is not None:
            self._unsubscribe_clock()
            self._unsubscribe_clock = None
        await self._cancel_in_flight()
        for task in list(self._notify_tasks):
            task.cancel()
        logger.info("engine_stopped")

    # ──────────────────────────────────────────────────────────────────
    # Read interface
    # ──────────────────────────────────────────────────────────────────

    def get_snapshot(self, pair_id: str) -> PanelView | None:
        """Current view of ``pair_id``, or None when it is not the active pair."""
        if self._state is None or self._state.pair_id != pair_id.lower():
            return None
        return self._state.view()

    def subscribe(self, pair_id: str, callback: ViewCallback) -> Callable[[], None]:
        """Call ``callback(view)`` on every state change of ``pair_id``.

        Returns a function that unsubscribes it.
        """
        key = pair_id.lower()
        self._subscribers.setdefault(key, []).append(callback)

        def unsubscribe() -> None:
            callbacks = self._subscribers.get(key, [])
            if callback in callbacks:
                callbacks.remove(callback)

        return unsubscribe

    def subscribe_active(self, callback: ViewCallback) -> Callable[[], None]:
        """Call ``callback(view)`` on every state change of whichever pair is active."""
        self._active_subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._active_subscribers:
                self._active_subscribers.remove(callback)

        return unsubscribe

    async def set_active_pair(self, pair: PairRef, refresh: bool = True) -> PanelView:
        """Switch the observed pair.

        Cancels in-flight refreshes for the previous pair, resets sequence
        tracking and state, then schedules an immediate refresh.
        """
        previous = self._active
        await self._cancel_in_flight()
        self._generation += 1
        self._sequence = 0
        self._active = pair
        self._state = PresentationState(pair.pair_id)
        logger.info(
            "active_pair_changed",
            pair_id=pair.pair_id,
            previous=previous.pair_id if previous else None,
            generation=self._generation,
        )
        self._notify()
        if refresh:
            self._spawn_refresh()
        return self._state.view()

    # ──────────────────────────────────────────────────────────────────
    # Refresh
    # ──────────────────────────────────────────────────────────────────

    async def refresh(self) -> PanelView | None:
        """Run one tick for the active pair.

        Returns the resulting view, or None when there is no active pair or
        the result was superseded before it arrived.
        """
        if self._active is None or self._state is None:
            return None

        self._sequence += 1
        sequence = self._sequence
        generation = self._generation
        pair = self._active
        state = self._state

        state.begin_refresh()
        self._notify()

        with tick_context(pair.pair_id, sequence):
            try:
                update = await self._resolver.resolve(pair, last_price=state.price)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.error("tick_resolve_error", exc_info=True)
                update = None

            if generation != self._generation or sequence != self._sequence:
                logger.info("stale_tick_discarded", latest=self._sequence)
                return None

            if update is None:
                state.mark_failed()
                logger.warning("tick_failed_keeping_last_values")
            else:
                flash = state.apply(update)
                if flash is not None:
                    self._schedule_flash_clear(generation)
                logger.debug("tick_applied", sources=dict(update.sources))

        self._notify()
        return state.view()

    def _on_tick(self) -> None:
        if self._active is not None:
            self._spawn_refresh()

    def _spawn_refresh(self) -> None:
        task = asyncio.create_task(self.refresh())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _cancel_in_flight(self) -> None:
        if self._flash_handle is not None:
            self._flash_handle.cancel()
            self._flash_handle = None
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.debug("in_flight_refresh_cancelled", count=len(tasks))
        self._tasks.clear()

    # ──────────────────────────────────────────────────────────────────
    # Price flash and notification
    # ──────────────────────────────────────────────────────────────────

    def _schedule_flash_clear(self, generation: int) -> None:
        if self._flash_handle is not None:
            self._flash_handle.cancel()
        loop = asyncio.get_running_loop()
        self._flash_handle = loop.call_later(
            self._flash_seconds, self._clear_flash, generation
        )

    def _clear_flash(self, generation: int) -> None:
        self._flash_handle = None
        if generation != self._generation or self._state is None:
            return
        self._state.clear_flash()
        self._notify()

    def _notify(self) -> None:
        if self._state is None:
            return
        callbacks = [
            *self._subscribers.get(self._state.pair_id, []),
            *self._active_subscribers,
        ]
        if not callbacks:
            return
        view = self._state.view()
        for callback in callbacks:
            try:
                result = callback(view)
                if inspect.isawaitable(result):
                    task = asyncio.ensure_future(result)
                    self._notify_tasks.add(task)
                    task.add_done_callback(self._notify_tasks.discard)
            except Exception:
                logger.warning("view_subscriber_error", pair_id=view.pair_id, exc_info=True)
