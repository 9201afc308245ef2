"""
Async HTTPS client for the AlphaESS Open API.

Signs every request with the application credentials and unwraps the
``{"code", "msg", "data"}`` envelope. Designed to be robust:

- Network errors, timeouts, non-200 HTTP statuses, non-200 envelope codes
  and malformed bodies are logged as warnings and returned as ``None``.
- Never raises to the caller on a failed fetch; ``None`` is the absence
  signal that upstream code replaces with defaults.
- Typed fetchers validate records at the boundary into pydantic models.

Operations:
- fetch_hourly_data(serial): today's power series.
- fetch_todays_data(serial): today's energy totals.
- fetch_realtime_data(serial): latest power reading.
- fetch_system_list(): systems bound to the application.
- get_data(command, serial, payload) / set_data(...): generic pass-through.

CHANGELOG:
- 2026-10-19: Add generic get_data/set_data for the manual gateway (STORY-006)
- 2026-10-19: Initial creation (STORY-003)

TODO:
- None
"""

from __future__ import annotations

import hashlib
import logging
import time
from collections.abc import Callable
from datetime import date
from typing import Any, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from alphaess.src.models import DailyAggregate, HourlySeriesEntry, RealtimeSnapshot

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://openapi.alphaess.com/api"

DATE_COMMANDS: frozenset[str] = frozenset(
    {"getOneDayPowerBySn", "getOneDateEnergyBySn"}
)
"""Get commands whose payload is the ``queryDate`` (YYYY-MM-DD)."""

_OK_CODE = 200

_M = TypeVar("_M", bound=BaseModel)


def sign_request(app_id: str, app_secret: str, timestamp: str) -> str:
    """Return the Open API request signature.

    The signature is the hex SHA-512 digest of the app id, app secret and
    timestamp concatenated in that order.
    """
    return hashlib.sha512(f"{app_id}{app_secret}{timestamp}".encode()).hexdigest()


class AlphaEssClient:
    """AlphaESS Open API client backed by one ``httpx.AsyncClient``.

    Args:
        app_id: Open API application id.
        app_secret: Open API application secret.
        base_url: API base URL. Must start with ``https://``.
        timeout_s: Timeout per request in seconds.
        transport: Optional httpx transport (tests inject a MockTransport).
        clock: Returns epoch seconds for the ``timeStamp`` header.
        today: Returns the local date used as ``queryDate``.

    Raises:
        ValueError: If *base_url* does not start with ``https://``.

    Usage::

        async with AlphaEssClient(app_id="alpha...", app_secret="...") as api:
            snapshot = await api.fetch_realtime_data("AL2002321010043")
    """

    def __init__(
        self,
        *,
        app_id: str,
        app_secret: str,
        base_url: str = DEFAULT_BASE_URL,
        timeout_s: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
        clock: Callable[[], float] = time.time,
        today: Callable[[], date] = date.today,
    ) -> None:
        if not base_url.lower().startswith("https://"):
            raise ValueError(f"Open API base URL must use HTTPS (got: '{base_url}')")
        self._app_id = app_id
        self._app_secret = app_secret
        self._base_url = base_url.rstrip("/")
        self._timeout_s = timeout_s
        self._transport = transport
        self._clock = clock
        self._today = today
        self._http: httpx.AsyncClient | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def open(self) -> None:
        """Create the underlying HTTP client if not already open."""
        if self._http is None:
            self._http = httpx.AsyncClient(
                timeout=self._timeout_s,
                transport=self._transport,
                verify=True,
            )

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        if self._http is not None:
            await self._http.aclose()
            self._http = None

    async def __aenter__(self) -> AlphaEssClient:
        await self.open()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Typed fetchers
    # ------------------------------------------------------------------

    async def fetch_hourly_data(self, serial: str) -> list[HourlySeriesEntry] | None:
        """Fetch today's power series for *serial*, unsorted."""
        data = await self._request(
            "GET",
            "getOneDayPowerBySn",
            params={"sysSn": serial, "queryDate": self._today().isoformat()},
        )
        if data is None:
            return None
        if not isinstance(data, list):
            logger.warning("getOneDayPowerBySn: expected a list, got %s", type(data).__name__)
            return None
        entries = [_parse(HourlySeriesEntry, item, "getOneDayPowerBySn") for item in data]
        if any(entry is None for entry in entries):
            return None
        return entries  # type: ignore[return-value]

    async def fetch_todays_data(self, serial: str) -> DailyAggregate | None:
        """Fetch today's energy totals for *serial*."""
        data = await self._request(
            "GET",
            "getOneDateEnergyBySn",
            params={"sysSn": serial, "queryDate": self._today().isoformat()},
        )
        if data is None:
            return None
        return _parse(DailyAggregate, data, "getOneDateEnergyBySn")

    async def fetch_realtime_data(self, serial: str) -> RealtimeSnapshot | None:
        """Fetch the latest power reading for *serial*."""
        data = await self._request("GET", "getLastPowerData", params={"sysSn": serial})
        if data is None:
            return None
        return _parse(RealtimeSnapshot, data, "getLastPowerData")

    async def fetch_system_list(self) -> list[dict[str, Any]] | None:
        """Fetch the systems bound to the application."""
        data = await self._request("GET", "getEssList")
        if data is None:
            return None
        if not isinstance(data, list):
            logger.warning("getEssList: expected a list, got %s", type(data).__name__)
            return None
        return data

    # ------------------------------------------------------------------
    # Generic pass-through
    # ------------------------------------------------------------------

    async def get_data(self, command: str | None, serial: str, payload: Any) -> Any:
        """Issue a GET *command* for *serial* and return the raw ``data``.

        A dict payload is merged into the query parameters; any other
        non-empty payload is sent as ``queryDate``.
        """
        if not command:
            logger.warning("get_data called without a command")
            return None
        params: dict[str, Any] = {"sysSn": serial}
        if isinstance(payload, dict):
            params.update(payload)
        elif payload is not None:
            params["queryDate"] = payload
        return await self._request("GET", command, params=params)

    async def set_data(self, command: str | None, serial: str, payload: Any) -> Any:
        """Issue a POST *command* for *serial* and return the raw ``data``.

        The payload must be a JSON object; it is sent as the request body
        together with ``sysSn``.
        """
        if not command:
            logger.warning("set_data called without a command")
            return None
        if not isinstance(payload, dict):
            logger.warning(
                "%s: set payload must be a JSON object, got %s",
                command,
                type(payload).__name__,
            )
            return None
        return await self._request("POST", command, json={"sysSn": serial, **payload})

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _headers(self) -> dict[str, str]:
        timestamp = str(int(self._clock()))
        return {
            "appId": self._app_id,
            "timeStamp": timestamp,
            "sign": sign_request(self._app_id, self._app_secret, timestamp),
        }

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
    ) -> Any:
        """Send a signed request and unwrap the envelope.

        Returns:
            The envelope's ``data`` member, or ``None`` on any failure.
        """
        await self.open()
        assert self._http is not None
        try:
            response = await self._http.request(
                method,
                f"{self._base_url}/{path}",
                params=params,
                json=json,
                headers=self._headers(),
            )
        except httpx.HTTPError as exc:
            logger.warning("%s %s failed (network error): %s", method, path, exc)
            return None

        if response.status_code != 200:
            logger.warning("%s %s failed (HTTP %d)", method, path, response.status_code)
            return None

        try:
            body = response.json()
        except ValueError:
            logger.warning("%s %s returned a non-JSON body", method, path)
            return None

        if not isinstance(body, dict) or body.get("code") != _OK_CODE:
            code = body.get("code") if isinstance(body, dict) else None
            msg = body.get("msg") if isinstance(body, dict) else None
            logger.warning("%s %s rejected (code=%s, msg=%s)", method, path, code, msg)
            return None

        return body.get("data")


def _parse(model: type[_M], data: Any, command: str) -> _M | None:
    """Validate *data* into *model*, returning ``None`` when it does not fit."""
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        logger.warning(
            "%s: unexpected record shape (%d errors)", command, exc.error_count()
        )
        return None
