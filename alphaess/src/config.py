"""
Monitoring daemon configuration loaded from environment variables.

Uses Pydantic BaseSettings for automatic env var loading and validation.
Every variable carries the ``ALPHAESS_`` prefix and may also come from a
``.env`` file. Settings are frozen once constructed.

Credentials are optional at load time: an unconfigured daemon still starts,
serves the admin API, and simply skips its poll cycles.

CHANGELOG:
- 2026-10-19: Accept legacy numeric mode values 0/1 (STORY-008)
- 2026-10-19: Initial creation (STORY-001)

TODO:
- None
"""

from enum import Enum

from pydantic import field_validator
from pydantic_settings import BaseSettings


class Mode(str, Enum):
    """Operating mode of a monitor instance."""

    AUTOMATIC = "automatic"
    MANUAL = "manual"


_LEGACY_MODES = {"0": Mode.AUTOMATIC, "1": Mode.MANUAL}


class MonitorSettings(BaseSettings):
    """AlphaESS monitor configuration.

    Attributes:
        app_id: Open API application id.
        app_secret: Open API application secret. Never logged.
        serial: System serial number (``sysSn``) to monitor.
        mode: ``automatic`` polls continuously, ``manual`` only serves
            on-demand commands.
        interval_s: Seconds between poll cycles (automatic mode only).
        base_url: Open API base URL (must be HTTPS).
        request_timeout_s: Timeout per Open API request in seconds.
        admin_host: Bind address of the admin API.
        admin_port: Port of the admin API.
        health_path: Path of the JSON health file.
        log_level: Root log level name.
    """

    app_id: str = ""
    app_secret: str = ""
    serial: str = ""
    mode: Mode = Mode.AUTOMATIC
    interval_s: int = 60
    base_url: str = "https://openapi.alphaess.com/api"
    request_timeout_s: float = 10.0
    admin_host: str = "127.0.0.1"
    admin_port: int = 8080
    health_path: str = "health.json"
    log_level: str = "INFO"

    @property
    def has_credentials(self) -> bool:
        """True when both app id and app secret are set."""
        return bool(self.app_id and self.app_secret)

    @property
    def is_configured(self) -> bool:
        """True when credentials and the system serial are all set."""
        return self.has_credentials and bool(self.serial)

    @field_validator("mode", mode="before")
    @classmethod
    def mode_accepts_legacy_numbers(cls, v: object) -> object:
        """Map the legacy numeric modes (0 = automatic, 1 = manual)."""
        if isinstance(v, int) and not isinstance(v, bool):
            v = str(v)
        if isinstance(v, str):
            return _LEGACY_MODES.get(v.strip(), v.strip().lower())
        return v

    @field_validator("interval_s")
    @classmethod
    def interval_must_be_positive(cls, v: int) -> int:
        """Validate the poll interval is at least one second."""
        if v < 1:
            raise ValueError("ALPHAESS_INTERVAL_S must be >= 1")
        return v

    @field_validator("base_url")
    @classmethod
    def base_url_must_be_https(cls, v: str) -> str:
        """Validate that the Open API base URL uses HTTPS."""
        if not v.lower().startswith("https://"):
            raise ValueError(f"ALPHAESS_BASE_URL must use HTTPS (got: '{v[:30]}')")
        return v.rstrip("/")

    @field_validator("request_timeout_s")
    @classmethod
    def request_timeout_must_be_positive(cls, v: float) -> float:
        """Validate the request timeout is strictly positive."""
        if v <= 0:
            raise ValueError("ALPHAESS_REQUEST_TIMEOUT_S must be > 0")
        return v

    @field_validator("admin_port")
    @classmethod
    def admin_port_must_be_valid(cls, v: int) -> int:
        """Validate the admin API port is in valid range."""
        if v < 1 or v > 65535:
            raise ValueError("ALPHAESS_ADMIN_PORT must be between 1 and 65535")
        return v

    model_config = {
        "env_prefix": "ALPHAESS_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "frozen": True,
    }
