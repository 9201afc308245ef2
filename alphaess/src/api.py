"""
FastAPI admin surface for a running monitor.

Routes:
- ``GET /systems``: systems bound to the configured application, ``[]``
  without credentials or on failure.
- ``POST /commands``: manual-mode get/set pass-through.
- ``GET /health``: liveness plus scheduler state.

The monitor is injected at app creation and read back from ``app.state`` by
a dependency, so each app serves exactly the instance it was built for.

CHANGELOG:
- 2026-10-19: Add POST /commands for manual mode (STORY-006)
- 2026-10-19: Initial creation (STORY-009)

TODO:
- None
"""

from __future__ import annotations

import logging
from typing import Annotated, Any

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request

from alphaess.src.config import Mode
from alphaess.src.models import CommandRequest
from alphaess.src.monitor import Monitor

logger = logging.getLogger(__name__)

router = APIRouter()


def get_monitor(request: Request) -> Monitor:
    """Return the monitor instance attached to the application.

    Args:
        request: The incoming FastAPI request.
    """
    return request.app.state.monitor


MonitorDep = Annotated[Monitor, Depends(get_monitor)]


@router.get("/systems")
async def systems(monitor: MonitorDep) -> list[dict[str, Any]]:
    """List the systems bound to the configured application.

    Returns an empty list without calling the Open API when the app id or
    secret is missing, and an empty list when the call fails.
    """
    if not monitor.settings.has_credentials:
        return []
    result = await monitor.client.fetch_system_list()
    return result if result is not None else []


@router.post("/commands")
async def commands(body: CommandRequest, monitor: MonitorDep) -> dict[str, Any]:
    """Execute an on-demand get/set command in manual mode.

    Raises:
        HTTPException: 409 if the monitor is in automatic mode.
    """
    if monitor.settings.mode is not Mode.MANUAL:
        raise HTTPException(
            status_code=409,
            detail="Commands are only accepted in manual mode.",
        )
    event = await monitor.gateway.handle(body)
    assert event is not None
    return event.to_message()


@router.get("/health")
async def health(monitor: MonitorDep) -> dict[str, Any]:
    return {
        "status": "ok",
        "mode": monitor.settings.mode.value,
        "scheduler": monitor.scheduler.state.value,
        "last_cycle_ts": monitor.health.last_cycle_ts if monitor.health else None,
    }


def create_app(monitor: Monitor) -> FastAPI:
    """Build the admin application serving *monitor*."""
    app = FastAPI(
        title="AlphaESS Monitor",
        description="Admin API for the AlphaESS monitoring daemon.",
        version="0.1.0",
    )
    app.state.monitor = monitor
    app.include_router(router)
    return app
