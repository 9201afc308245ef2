"""
Health file writer for the monitoring daemon.

Writes a JSON health file at a configurable path with:
- last_cycle_ts: ISO timestamp of the most recent completed poll cycle.
- cycle_count: Number of completed poll cycles since start.
- last_refresh: ISO timestamp of the last refresh attempt per cache tier
  (``null`` until the tier is first attempted).

The file is overwritten on every cycle, providing a simple liveness signal
that Docker HEALTHCHECK or monitoring can inspect.

CHANGELOG:
- 2026-10-19: Initial creation (STORY-010)

TODO:
- None
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from datetime import UTC, datetime
from pathlib import Path

from alphaess.src.models import Tier


def _iso(ts: float) -> str | None:
    if ts <= 0:
        return None
    return datetime.fromtimestamp(ts, tz=UTC).isoformat()


class HealthWriter:
    """Writes monitor health status to a JSON file.

    Args:
        path: Filesystem path for the health JSON file. Accepts str or Path.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._last_cycle_ts: str | None = None
        self._cycle_count: int = 0
        self._last_refresh: dict[str, str | None] = {tier.value: None for tier in Tier}

    @property
    def last_cycle_ts(self) -> str | None:
        return self._last_cycle_ts

    def record_cycle(self, refresh_times: Mapping[Tier, float]) -> None:
        """Record a completed cycle with the cache refresh times and write.

        Args:
            refresh_times: Last refresh attempt per tier in epoch seconds.
        """
        self._last_cycle_ts = datetime.now(tz=UTC).isoformat()
        self._cycle_count += 1
        for tier, ts in refresh_times.items():
            self._last_refresh[tier.value] = _iso(ts)
        self._write()

    def _write(self) -> None:
        """Write the health JSON file with current state."""
        data = {
            "last_cycle_ts": self._last_cycle_ts,
            "cycle_count": self._cycle_count,
            "last_refresh": self._last_refresh,
        }
        self.path.write_text(json.dumps(data))
