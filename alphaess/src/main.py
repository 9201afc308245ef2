"""
Monitoring daemon entrypoint.

Loads settings, builds the monitor and its admin API, and runs until
SIGTERM/SIGINT:

1. **Poll scheduler** (automatic mode): periodic tiered refresh cycles,
   each emitting a normalized view as a JSON line on stdout.
2. **Admin API** (uvicorn): ``/systems``, ``/commands`` and ``/health``.

Shutdown stops the scheduler, waits for an in-flight cycle to finish, stops
the admin server and closes the Open API client.

Structured JSON logging is used for all events.

CHANGELOG:
- 2026-10-19: Initial creation (STORY-009)

TODO:
- None
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
import signal
import sys
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from alphaess.src.health import HealthWriter

if TYPE_CHECKING:
    import uvicorn

    from alphaess.src.config import MonitorSettings
    from alphaess.src.monitor import Monitor

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Structured JSON logging setup
# ---------------------------------------------------------------------------


def configure_logging(level: str = "INFO") -> None:
    """Configure structured JSON logging for the daemon.

    Sets up the root logger with a JSON-formatted handler writing to stderr,
    leaving stdout to the event stream.
    """

    class _JsonFormatter(logging.Formatter):
        """Minimal JSON log formatter."""

        def format(self, record: logging.LogRecord) -> str:
            log_entry = {
                "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
                "level": record.levelname,
                "logger": record.name,
                "msg": record.getMessage(),
            }
            if record.exc_info and record.exc_info[1] is not None:
                log_entry["exception"] = self.formatException(record.exc_info)
            return json.dumps(log_entry)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(_JsonFormatter())
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level.upper())


def _masked_token(value: str | None) -> str:
    """Return a short non-reversible token fingerprint for diagnostics."""
    if not value:
        return "empty"
    digest = hashlib.sha256(value.encode("utf-8")).hexdigest()[:10]
    return f"len={len(value)} sha256={digest}"


def log_config_summary(settings: MonitorSettings) -> None:
    """Log a config summary at startup, masking the app secret."""
    logger.info(
        "AlphaESS monitor starting with config: "
        "mode=%s, interval_s=%s, serial=%s, app_id=%s, base_url=%s, "
        "admin=%s:%s, health_path=%s, app_secret_masked=%s",
        settings.mode.value,
        settings.interval_s,
        settings.serial or "<unset>",
        settings.app_id or "<unset>",
        settings.base_url,
        settings.admin_host,
        settings.admin_port,
        settings.health_path,
        _masked_token(settings.app_secret),
    )


# ---------------------------------------------------------------------------
# Runner
# ---------------------------------------------------------------------------


async def run_monitor(
    *,
    monitor: Monitor,
    shutdown_event: asyncio.Event,
    server: uvicorn.Server | None = None,
) -> None:
    """Run the monitor (and optionally the admin server) until shutdown.

    If the admin server exits on its own, shutdown is triggered as well.

    Args:
        monitor: The monitor instance to run.
        shutdown_event: Event to signal graceful shutdown.
        server: Admin API server, or None to run without one.
    """
    monitor.start()

    server_task: asyncio.Task[None] | None = None
    if server is not None:
        server_task = asyncio.create_task(server.serve(), name="alphaess-admin-api")
        server_task.add_done_callback(lambda _: shutdown_event.set())

    await shutdown_event.wait()
    logger.info("Shutting down monitor")

    await monitor.stop()
    if server is not None and server_task is not None:
        server.should_exit = True
        try:
            await server_task
        except Exception:
            logger.error("Admin API server error", exc_info=True)
    logger.info("Shutdown complete")


# ---------------------------------------------------------------------------
# Entrypoint
# ---------------------------------------------------------------------------


async def async_main() -> None:
    """Async entrypoint: load config, build components, run until signalled."""
    import uvicorn

    from alphaess.src.api import create_app
    from alphaess.src.config import MonitorSettings
    from alphaess.src.monitor import Monitor
    from alphaess.src.sink import json_line_sink

    settings = MonitorSettings()
    configure_logging(settings.log_level)
    log_config_summary(settings)

    shutdown_event = asyncio.Event()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(
            sig,
            lambda: _handle_signal(shutdown_event),
        )

    health = HealthWriter(settings.health_path)

    async with Monitor.from_settings(
        settings, sink=json_line_sink(), health=health
    ) as monitor:
        server = uvicorn.Server(
            uvicorn.Config(
                create_app(monitor),
                host=settings.admin_host,
                port=settings.admin_port,
                log_level="warning",
            )
        )
        await run_monitor(monitor=monitor, shutdown_event=shutdown_event, server=server)


def _handle_signal(shutdown_event: asyncio.Event) -> None:
    """Handle SIGTERM/SIGINT by setting the shutdown event.

    Args:
        shutdown_event: The event to set for graceful shutdown.
    """
    logger.info("Received shutdown signal, initiating graceful shutdown")
    shutdown_event.set()


def main() -> None:
    """Synchronous entrypoint for the monitoring daemon."""
    asyncio.run(async_main())


if __name__ == "__main__":
    main()
