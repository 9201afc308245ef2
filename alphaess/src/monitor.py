"""
Monitor instance: one configured AlphaESS system and its components.

Bundles the settings, Open API client, tiered cache, poll scheduler and
manual gateway of a single monitored system. The instance is passed
explicitly to everything that needs it (the admin API receives it on
``app.state``); there is no process-wide "current instance".

CHANGELOG:
- 2026-10-19: Initial creation (STORY-009)

TODO:
- None
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from alphaess.src.cache import TieredCache
from alphaess.src.client import AlphaEssClient
from alphaess.src.config import Mode, MonitorSettings
from alphaess.src.gateway import ManualCommandGateway
from alphaess.src.health import HealthWriter
from alphaess.src.scheduler import PollScheduler
from alphaess.src.sink import EventSink

logger = logging.getLogger(__name__)


class Monitor:
    """A monitored system and the components acting on it.

    Args:
        settings: Frozen monitor settings.
        client: Open API client (closed by :meth:`aclose`).
        sink: Coroutine receiving every emitted event.
        cache: Tiered cache; a fresh one is created when omitted.
        health: HealthWriter instance, or None to skip health writes.
        clock: Returns the current time in epoch seconds.

    Usage::

        async with Monitor.from_settings(settings, sink=json_line_sink()) as monitor:
            monitor.start()
            ...
    """

    def __init__(
        self,
        *,
        settings: MonitorSettings,
        client: AlphaEssClient,
        sink: EventSink,
        cache: TieredCache | None = None,
        health: HealthWriter | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.settings = settings
        self.client = client
        self.cache = cache if cache is not None else TieredCache()
        self.health = health
        self.scheduler = PollScheduler(
            settings=settings,
            client=client,
            cache=self.cache,
            sink=sink,
            health=health,
            clock=clock,
        )
        self.gateway = ManualCommandGateway(settings=settings, client=client, sink=sink)

    @classmethod
    def from_settings(
        cls,
        settings: MonitorSettings,
        *,
        sink: EventSink,
        health: HealthWriter | None = None,
    ) -> Monitor:
        """Build a monitor with an Open API client configured from *settings*."""
        client = AlphaEssClient(
            app_id=settings.app_id,
            app_secret=settings.app_secret,
            base_url=settings.base_url,
            timeout_s=settings.request_timeout_s,
        )
        return cls(settings=settings, client=client, sink=sink, health=health)

    def start(self) -> None:
        """Start polling in automatic mode; manual mode only logs."""
        if self.settings.mode is Mode.AUTOMATIC:
            if not self.settings.is_configured:
                logger.warning(
                    "Automatic mode without app id, app secret and serial: "
                    "cycles will be skipped until configured"
                )
            self.scheduler.start(self.settings.interval_s)
        else:
            logger.info("Manual mode: polling disabled, serving on-demand commands only")

    async def stop(self) -> None:
        """Stop scheduling and wait for in-flight cycles to finish."""
        self.scheduler.stop()
        await self.scheduler.drain()

    async def aclose(self) -> None:
        await self.stop()
        await self.client.close()

    async def __aenter__(self) -> Monitor:
        await self.client.open()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()
