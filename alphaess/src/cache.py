"""
Tiered in-memory statistics cache.

Holds one slot per :class:`~alphaess.src.models.Tier`, each with its own
time-to-live. A slot is refreshed only when its window has elapsed, and its
timestamp advances after every attempt whether or not the fetch succeeded,
so a persistently failing endpoint is retried once per window rather than
once per poll.

Operations:
- maybe_refresh(tier, now, fetch): refresh a slot if its TTL has elapsed.
- is_due(tier, now): whether a refresh would be attempted.
- value(tier) / last_refreshed_at(tier) / refresh_times(): read access.

CHANGELOG:
- 2026-10-19: Sort mixed string/number upload times without raising (STORY-012)
- 2026-10-19: Guard each tier with an asyncio.Lock (STORY-007)
- 2026-10-19: Initial creation (STORY-004)

TODO:
- None
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

from alphaess.src.models import DailyAggregate, Tier

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

TTL_S: Mapping[Tier, float] = {
    Tier.HOURLY: 10 * 60.0,
    Tier.DAILY: 10 * 60.0,
    Tier.MONTHLY: 60 * 60.0,
    Tier.YEARLY: 24 * 60 * 60.0,
}
"""Minimum seconds between two refresh attempts of each tier."""

Fetch = Callable[[], Awaitable[Any]]


class RefreshOutcome(str, Enum):
    """Result of a single :meth:`TieredCache.maybe_refresh` call."""

    SKIPPED = "skipped"
    """TTL not elapsed; nothing fetched, slot unchanged."""
    REFRESHED = "refreshed"
    """Fetch returned a value, stored."""
    DEFAULTED = "defaulted"
    """Fetch returned nothing; the tier's default was stored."""
    PENDING = "pending"
    """Tier has no computation yet; only the timestamp advanced."""


@dataclass
class CacheSlot:
    """A single tier's cached value and the time of its last refresh attempt."""

    last_refreshed_at: float = 0.0
    value: Any = None


def _default_for(tier: Tier) -> Any:
    """Return the documented value stored when a tier's fetch fails."""
    if tier is Tier.HOURLY:
        return []
    if tier is Tier.DAILY:
        return DailyAggregate()
    return None


def _upload_key(entry: Any) -> tuple[int, float | str]:
    # Numbers and strings never compare directly; numbers sort first.
    value = entry.upload_time
    if isinstance(value, str):
        return (1, value)
    return (0, value)


def _sort_series(entries: list[Any]) -> list[Any]:
    # sorted() is stable, so equal upload times keep fetch order.
    return sorted(entries, key=_upload_key)


_POST_PROCESS: Mapping[Tier, Callable[[Any], Any]] = {
    Tier.HOURLY: _sort_series,
}


class TieredCache:
    """Four independently refreshed cache slots.

    Args:
        ttls: Optional per-tier TTL override in seconds. Tiers not given
            fall back to :data:`TTL_S`.
    """

    def __init__(self, ttls: Mapping[Tier, float] | None = None) -> None:
        self._ttls: dict[Tier, float] = {**TTL_S, **(ttls or {})}
        self._slots: dict[Tier, CacheSlot] = {tier: CacheSlot() for tier in Tier}
        self._locks: dict[Tier, asyncio.Lock] = {tier: asyncio.Lock() for tier in Tier}

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    def ttl(self, tier: Tier) -> float:
        return self._ttls[tier]

    def slot(self, tier: Tier) -> CacheSlot:
        return self._slots[tier]

    def value(self, tier: Tier) -> Any:
        return self._slots[tier].value

    def last_refreshed_at(self, tier: Tier) -> float:
        return self._slots[tier].last_refreshed_at

    def refresh_times(self) -> dict[Tier, float]:
        """Return the last refresh attempt time of every tier."""
        return {tier: slot.last_refreshed_at for tier, slot in self._slots.items()}

    def is_due(self, tier: Tier, now: float) -> bool:
        """Return True when *now* is strictly past the tier's window."""
        return now > self._slots[tier].last_refreshed_at + self._ttls[tier]

    # ------------------------------------------------------------------
    # Refresh
    # ------------------------------------------------------------------

    async def maybe_refresh(
        self,
        tier: Tier,
        now: float,
        fetch: Fetch | None = None,
    ) -> RefreshOutcome:
        """Refresh *tier* if its TTL has elapsed at *now*.

        Awaits *fetch* at most once. A ``None`` result (or an exception,
        which is logged) stores the tier's default. When *fetch* is
        ``None`` the tier has nothing to compute and only its timestamp
        advances.

        Args:
            tier: Slot to refresh.
            now: Current time in epoch seconds.
            fetch: Zero-argument coroutine function returning the new value
                or ``None``.

        Returns:
            What happened to the slot.
        """
        async with self._locks[tier]:
            slot = self._slots[tier]
            if not self.is_due(tier, now):
                return RefreshOutcome.SKIPPED

            if fetch is None:
                self._advance(slot, now)
                logger.debug("Tier %s has no computation yet, timestamp advanced", tier.value)
                return RefreshOutcome.PENDING

            try:
                value = await fetch()
                if value is not None and tier in _POST_PROCESS:
                    value = _POST_PROCESS[tier](value)
            except Exception:
                logger.warning("Refresh of tier %s failed", tier.value, exc_info=True)
                value = None

            self._advance(slot, now)
            if value is None:
                logger.warning("No %s statistics available, using defaults", tier.value)
                slot.value = _default_for(tier)
                return RefreshOutcome.DEFAULTED

            slot.value = value
            logger.debug("Tier %s refreshed", tier.value)
            return RefreshOutcome.REFRESHED

    @staticmethod
    def _advance(slot: CacheSlot, now: float) -> None:
        slot.last_refreshed_at = max(slot.last_refreshed_at, now)
