"""
Manual command gateway: on-demand get/set pass-through to the Open API.

Only active in manual mode. A request with topic ``POST`` becomes a set
call, anything else a get call. Requests missing required fields are
rejected before any remote call is made and answered with an event carrying
the validation error.

CHANGELOG:
- 2026-10-19: Initial creation (STORY-006)

TODO:
- None
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from alphaess.src.client import DATE_COMMANDS
from alphaess.src.config import Mode
from alphaess.src.models import CommandRequest, OutboundEvent

if TYPE_CHECKING:
    from alphaess.src.client import AlphaEssClient
    from alphaess.src.config import MonitorSettings
    from alphaess.src.sink import EventSink

logger = logging.getLogger(__name__)

POST_TOPIC = "POST"


class CommandValidationError(ValueError):
    """A manual request is missing its command or a required payload."""


def validate_request(request: CommandRequest) -> None:
    """Check that *request* carries what its command needs.

    Raises:
        CommandValidationError: If the command is missing, or the payload is
            missing for a set or for a date-based get.
    """
    if not request.command:
        raise CommandValidationError("Invalid arguments given: command is required")
    if request.payload is None:
        if request.topic == POST_TOPIC:
            raise CommandValidationError(
                f"Invalid arguments given: {request.command} requires a payload"
            )
        if request.command in DATE_COMMANDS:
            raise CommandValidationError(
                f"Invalid arguments given: {request.command} requires a query date"
            )


class ManualCommandGateway:
    """Routes manual requests to the client and emits the results.

    Args:
        settings: Monitor settings (mode and serial).
        client: Open API client.
        sink: Optional coroutine receiving each produced event.
    """

    def __init__(
        self,
        *,
        settings: MonitorSettings,
        client: AlphaEssClient,
        sink: EventSink | None = None,
    ) -> None:
        self._settings = settings
        self._client = client
        self._sink = sink

    async def handle(self, request: CommandRequest) -> OutboundEvent | None:
        """Validate and execute *request*, returning the wrapped result.

        Returns:
            ``None`` in automatic mode, otherwise an event whose payload is
            the raw result (``None`` on a failed call) or, for an invalid
            request, an event carrying the validation error.
        """
        if self._settings.mode is not Mode.MANUAL:
            logger.warning(
                "For being able to use input, you must switch over to manual mode."
            )
            return None

        try:
            validate_request(request)
        except CommandValidationError as exc:
            logger.error("%s", exc)
            event = OutboundEvent(origin=request, payload=None, error=str(exc))
            await self._emit(event)
            return event

        serial = self._settings.serial
        if request.topic == POST_TOPIC:
            result = await self._client.set_data(request.command, serial, request.payload)
        else:
            result = await self._client.get_data(request.command, serial, request.payload)

        event = OutboundEvent(origin=request, payload=result)
        await self._emit(event)
        return event

    async def _emit(self, event: OutboundEvent) -> None:
        if self._sink is None:
            return
        try:
            await self._sink(event)
        except Exception:
            logger.error("Failed to emit command result", exc_info=True)
