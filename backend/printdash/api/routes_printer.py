"""
routes_printer.py

Purpose:
  Printer telemetry for the dashboard views, proxied from Moonraker through
  the short-lived cache.

Endpoints:
  - **GET /printer/status**: Job, heaters, toolhead and klippy state. Cached 2 s.
    Honors the visibility mode (`offline` short-circuits, `private` redacts).
  - **GET /printer/system-stats**: Host + Moonraker process stats. Cached 1 s.
    Any upstream failure is a 503.
  - **GET /printer/temperature-history**: Last 5 minutes of heater readings.
    Cached 5 s. Always 200; charts get empty arrays instead of errors.
  - **GET /printer/lifetime-stats**: Job totals. Cached 30 s. Zeros on failure.
  - **GET /printer/file-metadata**: Slicer metadata for one gcode file. Uncached.
  - **GET /printer/thumbnail**: Slicer thumbnail passthrough, browser-cacheable
    for an hour.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response

from printdash.config import DashboardConfig
from printdash.deps import get_cache, get_config, get_dashboard_settings, get_moonraker_client
from printdash.errors import (
    ConfigurationMissing,
    DashboardError,
    InvalidRequest,
    UpstreamError,
    UpstreamUnreachable,
)
from printdash.models.db import DashboardSettings
from printdash.models.domain import (
    FileMetadata,
    LifetimeStats,
    PrinterStatus,
    SystemStatsResponse,
    TemperatureHistory,
    VisibilityMode,
)
from printdash.services.cache import (
    LIFETIME_STATS_TTL_MS,
    PRINTER_STATUS_TTL_MS,
    SYSTEM_STATS_TTL_MS,
    TEMPERATURE_HISTORY_TTL_MS,
    TTLCache,
)
from printdash.services.moonraker_client import MoonrakerClient
from printdash.services import normalizer

logger = logging.getLogger(__name__)

router = APIRouter()

THUMBNAIL_CACHE_CONTROL = "public, max-age=3600"


def _require_configured(config: DashboardConfig) -> None:
    if not config.is_configured:
        raise ConfigurationMissing("PRINTER_HOST environment variable not configured")


async def _load_printer_status(client: MoonrakerClient) -> PrinterStatus:
    objects, info = await asyncio.gather(client.query_printer_objects(), client.printer_info())

    metadata = None
    if normalizer.needs_time_estimate(objects):
        filename = normalizer.current_filename(objects)
        if filename:
            try:
                metadata = await client.file_metadata(filename)
            except UpstreamError as e:
                # progress-based estimate is good enough
                logger.info("File metadata unavailable for %s: %s", filename, e.message)

    return normalizer.normalize_printer_status(objects, info, metadata)


@router.get("/status", response_model=PrinterStatus)
async def printer_status(
    config: DashboardConfig = Depends(get_config),
    cache: TTLCache = Depends(get_cache),
    client: MoonrakerClient = Depends(get_moonraker_client),
    settings: DashboardSettings = Depends(get_dashboard_settings),
) -> PrinterStatus:
    if not config.is_configured:
        return normalizer.offline_printer_status("PRINTER_HOST environment variable not configured")

    mode = settings.visibility_mode
    if mode == VisibilityMode.OFFLINE.value:
        return normalizer.offline_printer_status("Dashboard set to offline mode")

    try:
        status = await cache.get_or_fetch(
            "printer_status", PRINTER_STATUS_TTL_MS, lambda: _load_printer_status(client)
        )
    except UpstreamError as e:
        logger.warning("Printer status unavailable: %s", e.message)
        status = normalizer.offline_printer_status()

    if mode == VisibilityMode.PRIVATE.value:
        return normalizer.apply_private_mode(status)
    return status


@router.get("/system-stats", response_model=SystemStatsResponse)
async def system_stats(
    config: DashboardConfig = Depends(get_config),
    cache: TTLCache = Depends(get_cache),
    client: MoonrakerClient = Depends(get_moonraker_client),
) -> SystemStatsResponse:
    _require_configured(config)

    async def fetch() -> SystemStatsResponse:
        # independent calls, combined once both resolve
        raw_stats, raw_info = await asyncio.gather(client.proc_stats(), client.system_info())
        return SystemStatsResponse(
            stats=normalizer.normalize_system_stats(raw_stats, raw_info, now_s=cache.now_ms() / 1000.0),
            info=normalizer.normalize_system_info(raw_info),
        )

    try:
        return await cache.get_or_fetch("system_stats", SYSTEM_STATS_TTL_MS, fetch)
    except UpstreamError as e:
        logger.warning("System stats unavailable: %s", e.message)
        raise UpstreamUnreachable("Failed to fetch system stats", endpoint=e.endpoint) from e


@router.get("/temperature-history", response_model=TemperatureHistory)
async def temperature_history(
    max_points: int = Query(
        normalizer.MAX_HISTORY_POINTS,
        ge=1,
        le=normalizer.MAX_HISTORY_POINTS,
        description="Newest samples to return (1 s apart)",
    ),
    config: DashboardConfig = Depends(get_config),
    cache: TTLCache = Depends(get_cache),
    client: MoonrakerClient = Depends(get_moonraker_client),
) -> TemperatureHistory:
    if not config.is_configured:
        return normalizer.empty_temperature_history()

    async def fetch() -> TemperatureHistory:
        raw = await client.temperature_store()
        return normalizer.normalize_temperature_history(raw, now_s=cache.now_ms() / 1000.0)

    try:
        history = await cache.get_or_fetch("temperature_history", TEMPERATURE_HISTORY_TTL_MS, fetch)
    except UpstreamError as e:
        logger.warning("Temperature history unavailable: %s", e.message)
        return normalizer.empty_temperature_history()

    return normalizer.trim_history(history, max_points)


@router.get("/lifetime-stats", response_model=LifetimeStats)
async def lifetime_stats(
    config: DashboardConfig = Depends(get_config),
    cache: TTLCache = Depends(get_cache),
    client: MoonrakerClient = Depends(get_moonraker_client),
) -> LifetimeStats:
    if not config.is_configured:
        return LifetimeStats()

    async def fetch() -> LifetimeStats:
        return normalizer.normalize_lifetime_stats(await client.history_totals())

    try:
        return await cache.get_or_fetch("lifetime_stats", LIFETIME_STATS_TTL_MS, fetch)
    except UpstreamError as e:
        logger.warning("Lifetime stats unavailable: %s", e.message)
        return LifetimeStats()


@router.get("/file-metadata", response_model=FileMetadata)
async def file_metadata(
    filename: Optional[str] = Query(None, description="Path relative to the gcodes root"),
    config: DashboardConfig = Depends(get_config),
    client: MoonrakerClient = Depends(get_moonraker_client),
) -> FileMetadata:
    _require_configured(config)
    if not filename:
        raise InvalidRequest("Filename parameter is required")

    try:
        raw = await client.file_metadata(filename)
    except UpstreamError as e:
        raise DashboardError("Failed to fetch file metadata", details=e.message) from e
    return normalizer.normalize_file_metadata(raw, filename)


@router.get("/thumbnail")
async def thumbnail(
    path: Optional[str] = Query(None, description="Thumbnail path relative to the gcodes root"),
    config: DashboardConfig = Depends(get_config),
    client: MoonrakerClient = Depends(get_moonraker_client),
) -> Response:
    _require_configured(config)
    if not path:
        raise InvalidRequest("Path parameter is required")

    try:
        image = await client.fetch_thumbnail(path)
    except UpstreamError as e:
        raise DashboardError("Failed to fetch thumbnail", details=e.message) from e

    return Response(
        content=image.content,
        media_type=image.content_type,
        headers={"Cache-Control": THUMBNAIL_CACHE_CONTROL},
    )
