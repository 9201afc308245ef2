"""
Unit tests for the poll scheduler.

Tests verify:
- A cycle refreshes hourly, daily, monthly, yearly in order, then fetches
  real-time data and emits one normalized view.
- Manual mode or missing credentials/serial: zero fetch calls, no mutation.
- Failed fetches fall back to defaults and the view stays well-formed.
- Tiers inside their TTL are not fetched again on the next cycle.
- start() runs a cycle immediately; stop() prevents new cycles but lets an
  in-flight cycle finish and update the cache.
- A tick is skipped while the previous cycle is still running.
- Errors never escape a cycle; health is recorded after each cycle.

CHANGELOG:
- 2026-10-19: Initial creation (STORY-007)

TODO:
- None
"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from unittest.mock import AsyncMock

import pytest
from alphaess.src.cache import TieredCache
from alphaess.src.health import HealthWriter
from alphaess.src.models import (
    DailyAggregate,
    DerivedView,
    HourlySeriesEntry,
    RealtimeSnapshot,
    Tier,
)
from alphaess.src.scheduler import PollScheduler, SchedulerState

_T0 = 1_760_000_000.0


class _Clock:
    """Manually advanced epoch clock."""

    def __init__(self, now: float = _T0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def _make_scheduler(settings, client, sink, **kwargs) -> tuple[PollScheduler, TieredCache]:
    cache = kwargs.pop("cache", None) or TieredCache()
    scheduler = PollScheduler(
        settings=settings,
        client=client,
        cache=cache,
        sink=sink,
        **kwargs,
    )
    return scheduler, cache


def _assert_no_fetch(client: AsyncMock) -> None:
    client.fetch_hourly_data.assert_not_awaited()
    client.fetch_todays_data.assert_not_awaited()
    client.fetch_realtime_data.assert_not_awaited()


# ---------------------------------------------------------------------------
# Guard
# ---------------------------------------------------------------------------


class TestCycleGuard:
    """Cycles are skipped unless automatic and fully configured."""

    @pytest.mark.asyncio
    async def test_manual_mode_skips_cycle(self, make_settings, mock_client, sink) -> None:
        scheduler, cache = _make_scheduler(make_settings(mode="manual"), mock_client, sink)

        result = await scheduler.run_cycle()

        assert result is None
        _assert_no_fetch(mock_client)
        assert sink.events == []
        assert all(ts == 0.0 for ts in cache.refresh_times().values())

    @pytest.mark.asyncio
    @pytest.mark.parametrize("missing", ["app_id", "app_secret", "serial"])
    async def test_missing_configuration_skips_cycle(
        self, make_settings, mock_client, sink, missing: str
    ) -> None:
        """Automatic mode without credentials performs zero fetch calls."""
        settings = make_settings(**{missing: ""})
        scheduler, cache = _make_scheduler(settings, mock_client, sink)

        result = await scheduler.run_cycle()

        assert result is None
        _assert_no_fetch(mock_client)
        assert sink.events == []
        assert cache.value(Tier.DAILY) is None
        assert all(ts == 0.0 for ts in cache.refresh_times().values())


# ---------------------------------------------------------------------------
# Cycle algorithm
# ---------------------------------------------------------------------------


class TestRunCycle:
    """One cycle refreshes due tiers, fetches real-time data, and emits."""

    @pytest.mark.asyncio
    async def test_all_tiers_refreshed_on_first_cycle(
        self, make_settings, mock_client, sink
    ) -> None:
        """Scenario: hourly series sorted, all timestamps set to now."""
        mock_client.fetch_hourly_data.return_value = [
            HourlySeriesEntry.model_validate({"uploadTime": 200, "v": 1}),
            HourlySeriesEntry.model_validate({"uploadTime": 100, "v": 2}),
        ]
        mock_client.fetch_todays_data.return_value = DailyAggregate(e_input=4.0, epv=10.0)
        mock_client.fetch_realtime_data.return_value = RealtimeSnapshot(ppv=500.0, pgrid=20.0)
        scheduler, cache = _make_scheduler(
            make_settings(), mock_client, sink, clock=_Clock()
        )

        view = await scheduler.run_cycle()

        assert [(e.upload_time, e.v) for e in cache.value(Tier.HOURLY)] == [(100, 2), (200, 1)]
        assert cache.refresh_times() == {tier: _T0 for tier in Tier}
        mock_client.fetch_hourly_data.assert_awaited_once_with("AL2002321010043")
        mock_client.fetch_todays_data.assert_awaited_once_with("AL2002321010043")
        mock_client.fetch_realtime_data.assert_awaited_once_with("AL2002321010043")

        assert isinstance(view, DerivedView)
        assert view.consumption == 520.0
        assert view.today.consumption == 14.0
        assert len(sink.events) == 1
        assert sink.events[0].payload is view
        assert sink.events[0].origin is None

    @pytest.mark.asyncio
    async def test_tiers_refreshed_in_order_before_realtime(
        self, make_settings, mock_client, sink
    ) -> None:
        calls: list[str] = []
        mock_client.fetch_hourly_data.side_effect = lambda serial: calls.append("hourly")
        mock_client.fetch_todays_data.side_effect = lambda serial: calls.append("daily")
        mock_client.fetch_realtime_data.side_effect = lambda serial: calls.append("realtime")
        scheduler, _ = _make_scheduler(make_settings(), mock_client, sink)

        await scheduler.run_cycle()

        assert calls == ["hourly", "daily", "realtime"]

    @pytest.mark.asyncio
    async def test_all_fetches_fail_yields_zero_view(
        self, make_settings, mock_client, sink
    ) -> None:
        """Absence everywhere: daily default stored, view is all zeros."""
        scheduler, cache = _make_scheduler(make_settings(), mock_client, sink)

        view = await scheduler.run_cycle()

        assert cache.value(Tier.DAILY) == DailyAggregate()
        assert cache.value(Tier.HOURLY) == []
        assert view is not None
        assert view.consumption == 0.0
        assert view.today.consumption == 0.0
        assert view.rawdata.realtime["pev"] == 0.0
        assert len(sink.events) == 1

    @pytest.mark.asyncio
    async def test_second_cycle_within_ttl_fetches_only_realtime(
        self, make_settings, mock_client, sink
    ) -> None:
        clock = _Clock()
        scheduler, cache = _make_scheduler(make_settings(), mock_client, sink, clock=clock)
        await scheduler.run_cycle()

        clock.now += 60
        await scheduler.run_cycle()

        assert mock_client.fetch_hourly_data.await_count == 1
        assert mock_client.fetch_todays_data.await_count == 1
        assert mock_client.fetch_realtime_data.await_count == 2
        assert cache.last_refreshed_at(Tier.DAILY) == _T0
        assert len(sink.events) == 2

    @pytest.mark.asyncio
    async def test_tiers_refresh_on_their_own_cadence(
        self, make_settings, mock_client, sink
    ) -> None:
        """After 11 minutes hourly/daily refresh, monthly/yearly do not."""
        clock = _Clock()
        scheduler, cache = _make_scheduler(make_settings(), mock_client, sink, clock=clock)
        await scheduler.run_cycle()

        clock.now += 11 * 60
        await scheduler.run_cycle()

        assert cache.last_refreshed_at(Tier.HOURLY) == clock.now
        assert cache.last_refreshed_at(Tier.DAILY) == clock.now
        assert cache.last_refreshed_at(Tier.MONTHLY) == _T0
        assert cache.last_refreshed_at(Tier.YEARLY) == _T0

    @pytest.mark.asyncio
    async def test_daily_value_from_cache_used_after_later_failure(
        self, make_settings, mock_client, sink
    ) -> None:
        """Within the TTL the cached daily totals keep feeding the view."""
        mock_client.fetch_todays_data.return_value = DailyAggregate(e_output=3.0)
        clock = _Clock()
        scheduler, _ = _make_scheduler(make_settings(), mock_client, sink, clock=clock)
        await scheduler.run_cycle()

        mock_client.fetch_todays_data.return_value = None
        clock.now += 30
        view = await scheduler.run_cycle()

        assert view is not None
        assert view.today.grid.supply == 3.0

    @pytest.mark.asyncio
    async def test_client_exception_never_escapes(
        self, make_settings, mock_client, sink, caplog: pytest.LogCaptureFixture
    ) -> None:
        mock_client.fetch_realtime_data.side_effect = RuntimeError("socket gone")
        scheduler, _ = _make_scheduler(make_settings(), mock_client, sink)

        with caplog.at_level(logging.ERROR):
            result = await scheduler.run_cycle()

        assert result is None
        assert sink.events == []
        assert any("Poll cycle error" in msg for msg in caplog.messages)

    @pytest.mark.asyncio
    async def test_sink_failure_is_logged(
        self, make_settings, mock_client, caplog: pytest.LogCaptureFixture
    ) -> None:
        failing_sink = AsyncMock(side_effect=OSError("broken pipe"))
        scheduler, _ = _make_scheduler(make_settings(), mock_client, failing_sink)

        with caplog.at_level(logging.ERROR):
            view = await scheduler.run_cycle()

        assert view is not None
        assert any("emit" in msg for msg in caplog.messages)

    @pytest.mark.asyncio
    async def test_health_recorded_after_cycle(
        self, make_settings, mock_client, sink, tmp_path: Path
    ) -> None:
        health = HealthWriter(tmp_path / "health.json")
        scheduler, _ = _make_scheduler(
            make_settings(), mock_client, sink, health=health, clock=_Clock()
        )

        await scheduler.run_cycle()

        data = json.loads((tmp_path / "health.json").read_text())
        assert data["cycle_count"] == 1
        assert data["last_cycle_ts"] is not None
        assert data["last_refresh"]["daily"].startswith("2025-10-09")


# ---------------------------------------------------------------------------
# Start / stop
# ---------------------------------------------------------------------------


class TestStartStop:
    """Timer lifecycle and in-flight behaviour."""

    @pytest.mark.asyncio
    async def test_start_runs_immediate_cycle(self, make_settings, mock_client, sink) -> None:
        scheduler, _ = _make_scheduler(make_settings(), mock_client, sink)

        scheduler.start(3600)
        assert scheduler.state is SchedulerState.RUNNING
        await asyncio.sleep(0.05)
        scheduler.stop()
        await scheduler.drain()

        assert scheduler.state is SchedulerState.IDLE
        assert len(sink.events) == 1

    @pytest.mark.asyncio
    async def test_cycles_repeat_every_interval(self, make_settings, mock_client, sink) -> None:
        scheduler, _ = _make_scheduler(make_settings(), mock_client, sink)

        scheduler.start(0.01)
        await asyncio.sleep(0.1)
        scheduler.stop()
        await scheduler.drain()

        assert len(sink.events) >= 3

    @pytest.mark.asyncio
    async def test_start_twice_is_noop(self, make_settings, mock_client, sink) -> None:
        scheduler, _ = _make_scheduler(make_settings(), mock_client, sink)

        scheduler.start(3600)
        scheduler.start(3600)
        await asyncio.sleep(0.05)
        scheduler.stop()
        await scheduler.drain()

        assert len(sink.events) == 1

    @pytest.mark.asyncio
    async def test_manual_mode_never_runs_a_cycle(
        self, make_settings, mock_client, sink
    ) -> None:
        scheduler, _ = _make_scheduler(make_settings(mode="manual"), mock_client, sink)

        scheduler.start(0.01)
        await asyncio.sleep(0.1)
        scheduler.stop()
        await scheduler.drain()

        _assert_no_fetch(mock_client)
        assert sink.events == []

    @pytest.mark.asyncio
    async def test_stop_prevents_new_cycles(self, make_settings, mock_client, sink) -> None:
        scheduler, _ = _make_scheduler(make_settings(), mock_client, sink)
        scheduler.start(0.01)
        await asyncio.sleep(0.05)
        scheduler.stop()
        await scheduler.drain()
        emitted = len(sink.events)

        await asyncio.sleep(0.05)

        assert len(sink.events) == emitted

    @pytest.mark.asyncio
    async def test_in_flight_cycle_completes_after_stop(
        self, make_settings, mock_client, sink
    ) -> None:
        """stop() does not cancel a running cycle; it still mutates the cache."""
        release = asyncio.Event()

        async def _slow_daily(serial: str) -> DailyAggregate:
            await release.wait()
            return DailyAggregate(epv=9.5)

        mock_client.fetch_todays_data.side_effect = _slow_daily
        scheduler, cache = _make_scheduler(make_settings(), mock_client, sink)

        scheduler.start(3600)
        await asyncio.sleep(0.02)
        scheduler.stop()

        assert scheduler.state is SchedulerState.IDLE
        assert scheduler.in_flight == 1
        assert cache.value(Tier.DAILY) is None

        release.set()
        await scheduler.drain()

        assert scheduler.in_flight == 0
        assert cache.value(Tier.DAILY).epv == 9.5
        assert len(sink.events) == 1

    @pytest.mark.asyncio
    async def test_tick_skipped_while_cycle_in_flight(
        self, make_settings, mock_client, sink, caplog: pytest.LogCaptureFixture
    ) -> None:
        release = asyncio.Event()

        async def _slow_realtime(serial: str) -> None:
            await release.wait()

        mock_client.fetch_realtime_data.side_effect = _slow_realtime
        scheduler, _ = _make_scheduler(make_settings(), mock_client, sink)

        with caplog.at_level(logging.WARNING):
            scheduler.start(0.01)
            await asyncio.sleep(0.1)
            scheduler.stop()

        assert mock_client.fetch_realtime_data.await_count == 1
        assert scheduler.in_flight == 1
        assert any("skipping this tick" in msg for msg in caplog.messages)

        release.set()
        await scheduler.drain()
        assert len(sink.events) == 1
