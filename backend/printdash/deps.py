"""
deps.py

Purpose:
  Dependency providers for the request handlers.

Services Managed:
  - `DashboardConfig` (printer host/port, camera prefix, timeouts)
  - `TTLCache` (process-wide response cache, one slot per endpoint kind)
  - `MoonrakerClient` (upstream HTTP client)
  - `DashboardSettings` (read-only persisted settings)

Pattern:
  - `lru_cache` makes the config, cache and client process-wide singletons.
  - Handlers receive them through `Depends`, so tests swap them via
    `app.dependency_overrides`.
"""
from __future__ import annotations

from functools import lru_cache

from fastapi import Depends
from sqlmodel import Session

from printdash.config import DashboardConfig
from printdash.models.db import DashboardSettings, get_session, load_dashboard_settings
from printdash.services.cache import TTLCache
from printdash.services.moonraker_client import MoonrakerClient


@lru_cache(maxsize=1)
def get_config() -> DashboardConfig:
    return DashboardConfig.from_env()


@lru_cache(maxsize=1)
def get_cache() -> TTLCache:
    return TTLCache()


def get_moonraker_client(config: DashboardConfig = Depends(get_config)) -> MoonrakerClient:
    return MoonrakerClient(config)


def get_dashboard_settings(session: Session = Depends(get_session)) -> DashboardSettings:
    return load_dashboard_settings(session)
