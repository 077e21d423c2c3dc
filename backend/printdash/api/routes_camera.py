"""
routes_camera.py

Purpose:
  Webcam discovery and image passthrough for the printer's cameras.

Endpoints:
  - **GET /camera/webcams**: Webcams configured in Moonraker.
  - **GET /camera/data**: Webcams, the camera a viewer should show and its
    sizing hint in one response. Cached 10 s when no uid is given.
  - **GET /camera/info**: One webcam's descriptor plus an approximate resolution.
    404 when the uid is unknown or no webcams exist.
  - **GET /camera/resolution**: Sizing hint for stream overlays. Never fails on
    lookup problems; falls back to 1920x1080. Cacheable for an hour.
  - **GET /camera/snapshot**: Still image passthrough (10 s timeout).
  - **GET /camera/stream**: MJPEG passthrough.

Contract:
  - `uid` picks a webcam. Without it the dashboard's selected camera is used,
    then the first configured one.
  - Snapshot and stream prefer some picture over an error: unknown uids fall
    back like a missing uid, and a failed webcam lookup falls back to the
    crowsnest default path on the printer host.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse, Response, StreamingResponse
from starlette.background import BackgroundTask

from printdash.config import DashboardConfig
from printdash.deps import get_cache, get_config, get_dashboard_settings, get_moonraker_client
from printdash.errors import (
    ConfigurationMissing,
    DashboardError,
    UnreachableReason,
    UpstreamBadStatus,
    UpstreamError,
    UpstreamTimeout,
    UpstreamUnreachable,
)
from printdash.models.db import DashboardSettings
from printdash.models.domain import (
    CameraDataResponse,
    CameraInfoResponse,
    CameraResolutionResponse,
    WebcamConfig,
    WebcamListResponse,
)
from printdash.services import camera
from printdash.services.cache import CAMERA_DATA_TTL_MS, TTLCache
from printdash.services.moonraker_client import MoonrakerClient

logger = logging.getLogger(__name__)

router = APIRouter()

NO_STORE_HEADERS = {
    "Cache-Control": "no-cache, no-store, must-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}
RESOLUTION_CACHE_CONTROL = "public, max-age=3600, stale-while-revalidate=7200"
DATA_CACHE_CONTROL = "public, max-age=10, stale-while-revalidate=20"

UNREACHABLE_MESSAGES = {
    UnreachableReason.TLS: "Camera uses self-signed certificate. Please check camera configuration.",
    UnreachableReason.RESET: "Camera connection was reset. The camera may be busy or unavailable.",
    UnreachableReason.REFUSED: "Cannot connect to camera. Please check camera configuration.",
}


def _require_configured(config: DashboardConfig) -> None:
    if not config.is_configured:
        raise ConfigurationMissing("PRINTER_HOST environment variable not configured")


async def _list_webcams(client: MoonrakerClient) -> List[WebcamConfig]:
    return camera.parse_webcam_list(await client.webcam_list())


async def _lenient_camera(
    client: MoonrakerClient,
    uid: Optional[str],
    selected_uid: Optional[str],
) -> Optional[WebcamConfig]:
    """Webcam for the passthroughs, or None when the lookup fails in any way."""
    try:
        webcams = await _list_webcams(client)
        return camera.resolve_camera(
            webcams,
            requested_uid=uid,
            selected_uid=selected_uid,
            strategies=camera.LENIENT_STRATEGIES,
        )
    except DashboardError as e:
        logger.warning("Webcam lookup failed, using fallback url: %s", e.message)
        return None


@router.get("/webcams", response_model=WebcamListResponse)
async def list_webcams(
    config: DashboardConfig = Depends(get_config),
    client: MoonrakerClient = Depends(get_moonraker_client),
) -> JSONResponse:
    _require_configured(config)
    webcams = await _list_webcams(client)
    body = WebcamListResponse(webcams=webcams)
    return JSONResponse(body.model_dump(mode="json"), headers=NO_STORE_HEADERS)


@router.get("/data", response_model=CameraDataResponse)
async def camera_data(
    uid: Optional[str] = Query(None, description="Moonraker webcam uid"),
    config: DashboardConfig = Depends(get_config),
    cache: TTLCache = Depends(get_cache),
    client: MoonrakerClient = Depends(get_moonraker_client),
    settings: DashboardSettings = Depends(get_dashboard_settings),
) -> JSONResponse:
    _require_configured(config)

    async def fetch() -> CameraDataResponse:
        webcams = await _list_webcams(client)
        if not webcams:
            return CameraDataResponse()
        cam = camera.resolve_camera(
            webcams,
            requested_uid=uid or None,
            selected_uid=settings.selected_camera_uid,
            strategies=camera.OVERVIEW_STRATEGIES,
        )
        return CameraDataResponse(
            webcams=webcams,
            selected_camera=cam,
            resolution=camera.stream_resolution(cam.aspect_ratio),
        )

    # a specific uid is a one-off view; only the default overview is shared
    if uid:
        body = await fetch()
    else:
        body = await cache.get_or_fetch("camera_data", CAMERA_DATA_TTL_MS, fetch)
    return JSONResponse(body.model_dump(mode="json", by_alias=True), headers={"Cache-Control": DATA_CACHE_CONTROL})


@router.get("/info", response_model=CameraInfoResponse)
async def camera_info(
    uid: Optional[str] = Query(None, description="Moonraker webcam uid"),
    config: DashboardConfig = Depends(get_config),
    client: MoonrakerClient = Depends(get_moonraker_client),
    settings: DashboardSettings = Depends(get_dashboard_settings),
) -> JSONResponse:
    _require_configured(config)

    webcams = await _list_webcams(client)
    cam = camera.resolve_camera(webcams, requested_uid=uid or None, selected_uid=settings.selected_camera_uid)

    info = CameraInfoResponse(
        name=cam.name,
        service=cam.service,
        target_fps=cam.target_fps,
        target_fps_idle=cam.target_fps_idle,
        current_fps=cam.target_fps_idle,
        aspect_ratio=cam.aspect_ratio,
        resolution=camera.info_resolution(cam.aspect_ratio),
        location=cam.location,
        enabled=cam.enabled,
        stream_url=cam.stream_url,
        snapshot_url=cam.snapshot_url,
    )
    return JSONResponse(info.model_dump(mode="json"), headers=NO_STORE_HEADERS)


@router.get("/resolution", response_model=CameraResolutionResponse)
async def camera_resolution(
    uid: Optional[str] = Query(None, description="Moonraker webcam uid"),
    config: DashboardConfig = Depends(get_config),
    client: MoonrakerClient = Depends(get_moonraker_client),
    settings: DashboardSettings = Depends(get_dashboard_settings),
) -> JSONResponse:
    _require_configured(config)

    aspect_ratio: Optional[str] = None
    try:
        webcams = await _list_webcams(client)
        cam = camera.resolve_camera(webcams, requested_uid=uid or None, selected_uid=settings.selected_camera_uid)
        aspect_ratio = cam.aspect_ratio or camera.STREAM_DEFAULT_ASPECT_RATIO
    except DashboardError as e:
        logger.warning("Camera resolution lookup failed, using default: %s", e.message)

    res = camera.stream_resolution(aspect_ratio)
    body = CameraResolutionResponse(
        width=res.width,
        height=res.height,
        timestamp=datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
    )
    return JSONResponse(body.model_dump(mode="json"), headers={"Cache-Control": RESOLUTION_CACHE_CONTROL})


@router.get("/snapshot")
async def camera_snapshot(
    uid: Optional[str] = Query(None, description="Moonraker webcam uid"),
    config: DashboardConfig = Depends(get_config),
    client: MoonrakerClient = Depends(get_moonraker_client),
    settings: DashboardSettings = Depends(get_dashboard_settings),
) -> Response:
    _require_configured(config)

    cam = await _lenient_camera(client, uid or None, settings.selected_camera_uid)
    url = camera.snapshot_url_for(cam, config.camera_base_url)
    logger.debug("Snapshot for camera %s from %s", uid or "default", url)

    try:
        image = await client.fetch_snapshot(url)
    except UpstreamTimeout as e:
        raise UpstreamTimeout("Camera snapshot request timed out", endpoint=url) from e
    except UpstreamUnreachable as e:
        raise UpstreamUnreachable(UNREACHABLE_MESSAGES[e.reason], endpoint=url, reason=e.reason) from e
    except UpstreamBadStatus as e:
        return JSONResponse({"error": "Failed to fetch camera snapshot"}, status_code=e.status_code)
    except UpstreamError as e:
        raise DashboardError("Internal server error") from e

    return Response(
        content=image.content,
        media_type=image.content_type,
        headers={
            **NO_STORE_HEADERS,
            "Access-Control-Allow-Origin": "*",
        },
    )


@router.get("/stream")
async def camera_stream(
    uid: Optional[str] = Query(None, description="Moonraker webcam uid"),
    config: DashboardConfig = Depends(get_config),
    client: MoonrakerClient = Depends(get_moonraker_client),
    settings: DashboardSettings = Depends(get_dashboard_settings),
) -> Response:
    _require_configured(config)

    cam = await _lenient_camera(client, uid or None, settings.selected_camera_uid)
    url = camera.stream_url_for(cam, config.camera_base_url)

    try:
        http, upstream = await client.open_stream(url)
    except UpstreamBadStatus as e:
        return JSONResponse({"error": "Failed to fetch camera stream"}, status_code=e.status_code)

    async def _close() -> None:
        await upstream.aclose()
        await http.aclose()

    return StreamingResponse(
        upstream.aiter_raw(),
        media_type=upstream.headers.get("content-type", "multipart/x-mixed-replace"),
        headers={"Cache-Control": NO_STORE_HEADERS["Cache-Control"]},
        background=BackgroundTask(_close),
    )
