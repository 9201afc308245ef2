"""
Shared test fixtures for the AlphaESS monitor tests.

Provides environment isolation for MonitorSettings, settings factories, a
mocked Open API client, and a recording event sink.

CHANGELOG:
- 2026-10-19: Initial creation (STORY-001)

TODO:
- None
"""

from __future__ import annotations

import os
from collections.abc import Callable
from unittest.mock import AsyncMock

import pytest
from alphaess.src.config import MonitorSettings
from alphaess.src.models import OutboundEvent


@pytest.fixture(autouse=True)
def _clean_alphaess_env(monkeypatch: pytest.MonkeyPatch, tmp_path: str) -> None:
    """Remove all ALPHAESS_* env vars and isolate from .env files.

    Changes working directory to tmp_path so no .env file is accidentally
    loaded by Pydantic BaseSettings.
    """
    for var in list(os.environ):
        if var.startswith("ALPHAESS_"):
            monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture()
def make_settings() -> Callable[..., MonitorSettings]:
    """Return a factory for fully configured automatic-mode settings."""

    def _make(**overrides: object) -> MonitorSettings:
        values: dict[str, object] = {
            "app_id": "alpha-test-id",
            "app_secret": "alpha-test-secret",
            "serial": "AL2002321010043",
            "mode": "automatic",
            "interval_s": 60,
        }
        values.update(overrides)
        return MonitorSettings(**values)

    return _make


@pytest.fixture()
def mock_client() -> AsyncMock:
    """Create a mock AlphaEssClient where every call reports absence."""
    client = AsyncMock()
    client.fetch_hourly_data = AsyncMock(return_value=None)
    client.fetch_todays_data = AsyncMock(return_value=None)
    client.fetch_realtime_data = AsyncMock(return_value=None)
    client.fetch_system_list = AsyncMock(return_value=None)
    client.get_data = AsyncMock(return_value=None)
    client.set_data = AsyncMock(return_value=None)
    client.open = AsyncMock()
    client.close = AsyncMock()
    return client


class RecordingSink:
    """Event sink that keeps every emitted event."""

    def __init__(self) -> None:
        self.events: list[OutboundEvent] = []

    async def __call__(self, event: OutboundEvent) -> None:
        self.events.append(event)


@pytest.fixture()
def sink() -> RecordingSink:
    return RecordingSink()
