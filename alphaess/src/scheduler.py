"""
Poll scheduler driving the tiered refresh cycle.

A cancellable timer task fires one cycle immediately on start and then one
every ``interval_s`` seconds. Each cycle runs as its own task so a slow
cycle never delays the timer. Within a cycle the steps are strictly
sequential:

1. Skip entirely unless the monitor is in automatic mode and fully
   configured (re-checked every cycle).
2. Refresh the hourly tier (series sorted by upload time).
3. Refresh the daily tier.
4. Refresh the monthly tier (timestamp only).
5. Refresh the yearly tier (timestamp only).
6. Fetch the real-time snapshot, all-zero on failure.
7. Normalize and emit the view to the sink.

At most one cycle is in flight: a tick that fires while the previous cycle
is still running is skipped. ``stop()`` cancels the timer only; a cycle
already running completes and still updates the cache. ``drain()`` awaits
such cycles.

CHANGELOG:
- 2026-10-19: Skip ticks while a cycle is still in flight (STORY-011)
- 2026-10-19: Initial creation (STORY-007)

TODO:
- None
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from enum import Enum
from typing import TYPE_CHECKING

from alphaess.src.config import Mode
from alphaess.src.models import OutboundEvent, Tier
from alphaess.src.normalizer import normalize

if TYPE_CHECKING:
    from alphaess.src.cache import TieredCache
    from alphaess.src.client import AlphaEssClient
    from alphaess.src.config import MonitorSettings
    from alphaess.src.health import HealthWriter
    from alphaess.src.models import DerivedView
    from alphaess.src.sink import EventSink

logger = logging.getLogger(__name__)


class SchedulerState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"


class PollScheduler:
    """Start/stop state machine around :meth:`run_cycle`.

    Args:
        settings: Monitor settings (mode, credentials, serial).
        client: Open API client.
        cache: Tiered statistics cache owned by this monitor.
        sink: Coroutine receiving each emitted event.
        health: HealthWriter instance, or None to skip health writes.
        clock: Returns the current time in epoch seconds.
    """

    def __init__(
        self,
        *,
        settings: MonitorSettings,
        client: AlphaEssClient,
        cache: TieredCache,
        sink: EventSink,
        health: HealthWriter | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._settings = settings
        self._client = client
        self._cache = cache
        self._sink = sink
        self._health = health
        self._clock = clock
        self._timer: asyncio.Task[None] | None = None
        self._current: asyncio.Task[DerivedView | None] | None = None
        self._in_flight: set[asyncio.Task[DerivedView | None]] = set()

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------

    @property
    def state(self) -> SchedulerState:
        if self._timer is not None and not self._timer.done():
            return SchedulerState.RUNNING
        return SchedulerState.IDLE

    @property
    def in_flight(self) -> int:
        """Number of cycles currently running."""
        return len(self._in_flight)

    def start(self, interval_s: float) -> None:
        """Run one cycle now and then one every *interval_s* seconds.

        Must be called from a running event loop. Starting a running
        scheduler is a no-op.
        """
        if self.state is SchedulerState.RUNNING:
            logger.warning("Scheduler already running, ignoring start")
            return
        logger.info("Poll scheduler started (interval=%ss)", interval_s)
        self._timer = asyncio.create_task(
            self._timer_loop(interval_s), name="alphaess-poll-timer"
        )

    def stop(self) -> None:
        """Cancel the timer. In-flight cycles are left to complete."""
        if self._timer is None:
            return
        self._timer.cancel()
        self._timer = None
        logger.info("Poll scheduler stopped (%d cycle(s) still in flight)", self.in_flight)

    async def drain(self) -> None:
        """Wait for every in-flight cycle to finish."""
        if self._in_flight:
            await asyncio.gather(*list(self._in_flight), return_exceptions=True)

    async def _timer_loop(self, interval_s: float) -> None:
        while True:
            self._tick()
            await asyncio.sleep(interval_s)

    def _tick(self) -> None:
        if self._current is not None and not self._current.done():
            logger.warning("Previous poll cycle still running, skipping this tick")
            return
        task = asyncio.create_task(self.run_cycle(), name="alphaess-poll-cycle")
        self._current = task
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)

    # ------------------------------------------------------------------
    # Cycle
    # ------------------------------------------------------------------

    def _is_enabled(self) -> bool:
        return self._settings.mode is Mode.AUTOMATIC and self._settings.is_configured

    async def run_cycle(self) -> DerivedView | None:
        """Execute one refresh-normalize-emit cycle.

        Catches all exceptions so that the timer loop is never broken.

        Returns:
            The emitted view, or ``None`` when the cycle was skipped or
            failed.
        """
        if not self._is_enabled():
            logger.debug("Monitor not in automatic mode or not configured, skipping cycle")
            return None

        try:
            view = await self._refresh_and_normalize()
        except Exception:
            logger.error("Poll cycle error", exc_info=True)
            return None

        try:
            await self._sink(OutboundEvent(payload=view))
        except Exception:
            logger.error("Failed to emit derived view", exc_info=True)

        if self._health is not None:
            try:
                self._health.record_cycle(self._cache.refresh_times())
            except Exception:
                logger.warning("Failed to write health file", exc_info=True)

        return view

    async def _refresh_and_normalize(self) -> DerivedView:
        serial = self._settings.serial
        cache = self._cache

        await cache.maybe_refresh(
            Tier.HOURLY, self._clock(), lambda: self._client.fetch_hourly_data(serial)
        )
        await cache.maybe_refresh(
            Tier.DAILY, self._clock(), lambda: self._client.fetch_todays_data(serial)
        )
        await cache.maybe_refresh(Tier.MONTHLY, self._clock())
        await cache.maybe_refresh(Tier.YEARLY, self._clock())

        snapshot = await self._client.fetch_realtime_data(serial)
        if snapshot is None:
            logger.warning("No real-time data available, using zeros")

        logger.debug("Processing data...")
        return normalize(
            snapshot,
            cache.value(Tier.DAILY),
            hourly=cache.value(Tier.HOURLY),
        )
