"""
Pydantic models for AlphaESS telemetry records and emitted events.

Records entering from the Open API are validated here, at the boundary, so
that missing or ``null`` numeric fields become ``0.0`` before any internal
logic sees them. Wire names (camelCase) are accepted as aliases; the rest of
the code uses snake_case attributes. Unknown wire fields are kept and passed
through unchanged to the raw copies in the emitted view.

CHANGELOG:
- 2026-10-19: Document raw data coercion on RawData (STORY-012)
- 2026-10-19: Add CommandRequest and OutboundEvent for the manual gateway (STORY-006)
- 2026-10-19: Initial creation (STORY-002)

TODO:
- None
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Tier(str, Enum):
    """Statistics cache tier, each refreshed on its own cadence."""

    HOURLY = "hourly"
    DAILY = "daily"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class _WireRecord(BaseModel):
    """Base for API records: alias-aware, keeps extra fields, nulls become 0."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    @field_validator("*", mode="before")
    @classmethod
    def _none_to_zero(cls, v: Any) -> Any:
        return 0.0 if v is None else v

    def to_wire(self) -> dict[str, Any]:
        """Dump the record using API field names, extras included."""
        return self.model_dump(mode="json", by_alias=True)


class HourlySeriesEntry(_WireRecord):
    """One point of the intraday power series (``getOneDayPowerBySn``).

    Only ``uploadTime`` is interpreted; the numeric fields (``ppv``,
    ``load``, ``cbat``, ``feedIn``, ``gridCharge``, ``pchargingPile``) are
    carried through untouched.
    """

    upload_time: int | float | str = Field(alias="uploadTime")


class DailyAggregate(_WireRecord):
    """Today's energy totals in kWh (``getOneDateEnergyBySn``).

    The all-zero instance is the documented default for a failed fetch.
    """

    e_charge: float = Field(default=0.0, alias="eCharge")
    e_charging_pile: float = Field(default=0.0, alias="eChargingPile")
    e_discharge: float = Field(default=0.0, alias="eDischarge")
    e_grid_charge: float = Field(default=0.0, alias="eGridCharge")
    e_input: float = Field(default=0.0, alias="eInput")
    e_output: float = Field(default=0.0, alias="eOutput")
    epv: float = 0.0


class RealtimeSnapshot(_WireRecord):
    """Latest power reading in W and battery SoC in % (``getLastPowerData``).

    Sign conventions follow the API: ``pgrid`` positive when importing,
    ``pbat`` positive when discharging.
    """

    ppv: float = 0.0
    pload: float = 0.0
    soc: float = 0.0
    pgrid: float = 0.0
    pbat: float = 0.0
    pev: float = 0.0


# ---------------------------------------------------------------------------
# Derived view
# ---------------------------------------------------------------------------


class BatteryNow(BaseModel):
    soc: float
    load: float


class GridToday(BaseModel):
    supply: float
    purchase: float


class BatteryToday(BaseModel):
    charge: float
    discharge: float


class TodayView(BaseModel):
    consumption: float
    grid: GridToday
    modules: float
    battery: BatteryToday


class Statistics(BaseModel):
    hourly: list[dict[str, Any]] | None = None
    daily: dict[str, Any] | None = None


class RawData(BaseModel):
    """API records as parsed, dumped with their API field names.

    Not byte-identical to the wire: declared numeric fields are coerced to
    float (``55`` becomes ``55.0``) and their nulls become ``0.0``. Extra
    fields the models do not declare are passed through unchanged.
    """

    realtime: dict[str, Any]
    statistics: Statistics


class DerivedView(BaseModel):
    """Normalized output combining the real-time reading and today's totals.

    Built fresh for every poll cycle; every numeric field is rounded to two
    decimals.
    """

    consumption: float
    grid: float
    modules: float
    battery: BatteryNow
    today: TodayView
    rawdata: RawData


# ---------------------------------------------------------------------------
# Host integration
# ---------------------------------------------------------------------------


class CommandRequest(BaseModel):
    """On-demand request accepted in manual mode.

    Attributes:
        topic: ``"POST"`` for a set command, anything else for a get.
        command: Open API endpoint name, e.g. ``getChargeConfigInfo``.
        payload: Query date, parameter dict or request body.
    """

    topic: str | None = None
    command: str | None = None
    payload: Any = None


class OutboundEvent(BaseModel):
    """Event emitted downstream by the scheduler or the manual gateway.

    Attributes:
        origin: The request that produced the event (manual mode only).
        payload: A :class:`DerivedView` or the raw command result.
        error: Validation message when a manual request was rejected.
    """

    origin: CommandRequest | None = None
    payload: Any = None
    error: str | None = None

    def to_message(self) -> dict[str, Any]:
        """Return the JSON-ready message, omitting unset origin and error."""
        message: dict[str, Any] = {}
        if self.origin is not None:
            message["origin"] = self.origin.model_dump(mode="json")
        message["payload"] = self.model_dump(mode="json", include={"payload"})["payload"]
        if self.error is not None:
            message["error"] = self.error
        return message
