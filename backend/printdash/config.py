from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

_TRUE = {"1", "true", "yes", "on"}

DEFAULT_MOONRAKER_PORT = 7127
DEFAULT_UPSTREAM_TIMEOUT_S = 10.0


def env_flag(name: str, default: bool = False) -> bool:
    val = os.getenv(name)
    if val is None:
        return default
    return str(val).strip().lower() in _TRUE


def env_int(name: str, default: int) -> int:
    val = os.getenv(name)
    if val is None:
        return default
    try:
        return int(val.strip())
    except Exception:
        return default


def env_float(name: str, default: float) -> float:
    val = os.getenv(name)
    if val is None:
        return default
    try:
        return float(val.strip())
    except Exception:
        return default


def env_str(name: str, default: Optional[str] = None) -> Optional[str]:
    val = os.getenv(name)
    if val is None or not val.strip():
        return default
    return val.strip()


@dataclass(frozen=True)
class DashboardConfig:
    """
    Static external configuration for the upstream printer services.

    printer_host is required by every handler that talks to Moonraker;
    handlers check `is_configured` and fail with ConfigurationMissing.
    """
    printer_host: Optional[str] = None
    moonraker_port: int = DEFAULT_MOONRAKER_PORT
    camera_url_prefix: Optional[str] = None
    upstream_timeout_s: float = DEFAULT_UPSTREAM_TIMEOUT_S

    @property
    def is_configured(self) -> bool:
        return bool(self.printer_host)

    @property
    def moonraker_base_url(self) -> Optional[str]:
        if not self.printer_host:
            return None
        return f"http://{self.printer_host}:{self.moonraker_port}"

    @property
    def camera_base_url(self) -> str:
        # relative webcam urls are served by the printer's web frontend, not Moonraker
        if self.camera_url_prefix:
            return self.camera_url_prefix.rstrip("/")
        return f"http://{self.printer_host or ''}"

    @classmethod
    def from_env(cls) -> "DashboardConfig":
        return cls(
            printer_host=env_str("PRINTER_HOST"),
            moonraker_port=env_int("MOONRAKER_PORT", DEFAULT_MOONRAKER_PORT),
            camera_url_prefix=env_str("CAMERA_URL_PREFIX"),
            upstream_timeout_s=env_float("UPSTREAM_TIMEOUT_S", DEFAULT_UPSTREAM_TIMEOUT_S),
        )
