"""
Pure normalizer that merges a real-time reading with today's totals.

Takes the latest :class:`RealtimeSnapshot` and the cached
:class:`DailyAggregate` and derives the emitted :class:`DerivedView`:
instantaneous flows, today's energy balance, and raw copies of the
inputs. Every derived number is rounded to two decimals, halves away
from zero.

This is a pure function: no side effects, no I/O, no clock. Absent inputs
are treated as zero, so it never fails.

CHANGELOG:
- 2026-10-19: Round halves away from zero (STORY-012)
- 2026-10-19: Initial creation (STORY-005)

TODO:
- None
"""

from __future__ import annotations

from collections.abc import Sequence
from decimal import ROUND_HALF_UP, Decimal

from alphaess.src.models import (
    BatteryNow,
    BatteryToday,
    DailyAggregate,
    DerivedView,
    GridToday,
    HourlySeriesEntry,
    RawData,
    RealtimeSnapshot,
    Statistics,
    TodayView,
)

_CENTS = Decimal("0.01")


def _r(value: float) -> float:
    """Round to two decimals, ties away from zero.

    The exact binary value is rounded, so 0.125 gives 0.13 while 1.005
    (stored just below the tie) gives 1.0.
    """
    return float(Decimal(float(value)).quantize(_CENTS, rounding=ROUND_HALF_UP))


def normalize(
    snapshot: RealtimeSnapshot | None,
    daily: DailyAggregate | None,
    *,
    hourly: Sequence[HourlySeriesEntry] | None = None,
) -> DerivedView:
    """Derive the output view from a real-time reading and today's totals.

    Args:
        snapshot: Latest power reading, or ``None`` for all-zero.
        daily: Cached daily totals, or ``None`` when never fetched. The raw
            copy is then emitted as ``null`` while the arithmetic uses zeros.
        hourly: Cached hourly series, copied into the raw data.

    Returns:
        A new :class:`DerivedView`.
    """
    now = snapshot if snapshot is not None else RealtimeSnapshot()
    day = daily if daily is not None else DailyAggregate()

    today = TodayView(
        consumption=_r(day.e_input + day.epv - day.e_output - day.e_grid_charge),
        grid=GridToday(supply=_r(day.e_output), purchase=_r(day.e_input)),
        modules=_r(day.epv),
        battery=BatteryToday(charge=_r(day.e_charge), discharge=_r(day.e_discharge)),
    )

    # Monthly and yearly statistics are not computed yet and stay out of
    # the raw data.
    rawdata = RawData(
        realtime=now.to_wire(),
        statistics=Statistics(
            hourly=None if hourly is None else [entry.to_wire() for entry in hourly],
            daily=None if daily is None else daily.to_wire(),
        ),
    )

    return DerivedView(
        consumption=_r(now.ppv + now.pbat + now.pgrid),
        grid=_r(now.pgrid),
        modules=_r(now.ppv),
        battery=BatteryNow(soc=_r(now.soc), load=_r(now.pbat)),
        today=today,
        rawdata=rawdata,
    )
