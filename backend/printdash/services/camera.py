"""
camera.py

Purpose:
  Pick a webcam out of Moonraker's configured list and build the concrete
  URLs the proxy fetches from.

Resolution:
  A resolver is an ordered tuple of strategies. Each strategy looks at the
  list and the request context and returns a webcam, returns None to defer
  to the next strategy, or raises to stop resolution outright.

  - DEFAULT_STRATEGIES: requested uid (must exist) -> selected uid -> first
  - LENIENT_STRATEGIES: requested uid (if it exists) -> selected uid -> first.
    Used by the image passthroughs, which prefer showing some camera over
    failing.
  - OVERVIEW_STRATEGIES: like LENIENT_STRATEGIES, but a disabled webcam is
    only picked when no enabled one exists.

  An empty list is always `NoCamerasConfigured`, whatever the strategies.

Resolution tables:
  Two aspect-ratio -> pixel tables exist with different values and defaults.
  Each serves a different consumer; keep them separate.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from pydantic import ValidationError

from printdash.errors import CameraNotFound, NoCamerasConfigured
from printdash.models.domain import Resolution, WebcamConfig

logger = logging.getLogger(__name__)

FALLBACK_SNAPSHOT_PATH = "/webcam/?action=snapshot"
FALLBACK_STREAM_PATH = "/webcam/?action=stream"

# /camera/info: approximations of typical USB webcam modes
INFO_RESOLUTIONS: Dict[str, Tuple[int, int]] = {
    "4:3": (640, 480),
    "16:9": (1280, 720),
    "16:10": (1280, 800),
}
INFO_DEFAULT_RESOLUTION = (640, 480)

# /camera/resolution: sizing hints for stream overlays
STREAM_RESOLUTIONS: Dict[str, Tuple[int, int]] = {
    "16:9": (1920, 1080),
    "4:3": (1280, 960),
    "1:1": (1080, 1080),
}
STREAM_DEFAULT_RESOLUTION = (1920, 1080)
STREAM_DEFAULT_ASPECT_RATIO = "16:9"


def info_resolution(aspect_ratio: Optional[str]) -> Resolution:
    width, height = INFO_RESOLUTIONS.get(aspect_ratio or "", INFO_DEFAULT_RESOLUTION)
    return Resolution(width=width, height=height)


def stream_resolution(aspect_ratio: Optional[str]) -> Resolution:
    width, height = STREAM_RESOLUTIONS.get(aspect_ratio or "", STREAM_DEFAULT_RESOLUTION)
    return Resolution(width=width, height=height)


# ============================================================
# WEBCAM LIST PARSING
# ============================================================

def parse_webcam_list(raw: Any) -> List[WebcamConfig]:
    """Webcams from a `/server/webcams/list` response; malformed entries are skipped."""
    result = raw.get("result") if isinstance(raw, dict) else None
    entries = result.get("webcams") if isinstance(result, dict) else None
    if not isinstance(entries, list):
        return []

    webcams: List[WebcamConfig] = []
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        # null fields fall back to model defaults
        cleaned = {k: v for k, v in entry.items() if v is not None}
        try:
            webcams.append(WebcamConfig.model_validate(cleaned))
        except ValidationError as e:
            logger.warning("Skipping malformed webcam entry %r: %s", entry.get("uid"), e)
    return webcams


# ============================================================
# RESOLUTION STRATEGIES
# ============================================================

@dataclass(frozen=True)
class CameraRequest:
    requested_uid: Optional[str] = None
    selected_uid: Optional[str] = None


Strategy = Callable[[Sequence[WebcamConfig], CameraRequest], Optional[WebcamConfig]]


def _find(webcams: Sequence[WebcamConfig], uid: str) -> Optional[WebcamConfig]:
    for cam in webcams:
        if cam.uid == uid:
            return cam
    return None


def by_requested_uid(webcams: Sequence[WebcamConfig], req: CameraRequest) -> Optional[WebcamConfig]:
    if not req.requested_uid:
        return None
    found = _find(webcams, req.requested_uid)
    if found is None:
        raise CameraNotFound(req.requested_uid)
    return found


def prefer_requested_uid(webcams: Sequence[WebcamConfig], req: CameraRequest) -> Optional[WebcamConfig]:
    if not req.requested_uid:
        return None
    return _find(webcams, req.requested_uid)


def by_selected_uid(webcams: Sequence[WebcamConfig], req: CameraRequest) -> Optional[WebcamConfig]:
    # a stale selection (camera removed from Moonraker) is not an error
    if not req.selected_uid:
        return None
    return _find(webcams, req.selected_uid)


def first_enabled(webcams: Sequence[WebcamConfig], req: CameraRequest) -> Optional[WebcamConfig]:
    for cam in webcams:
        if cam.enabled:
            return cam
    return None


def first_available(webcams: Sequence[WebcamConfig], req: CameraRequest) -> Optional[WebcamConfig]:
    return webcams[0] if webcams else None


DEFAULT_STRATEGIES: Tuple[Strategy, ...] = (by_requested_uid, by_selected_uid, first_available)
LENIENT_STRATEGIES: Tuple[Strategy, ...] = (prefer_requested_uid, by_selected_uid, first_available)
OVERVIEW_STRATEGIES: Tuple[Strategy, ...] = (prefer_requested_uid, by_selected_uid, first_enabled, first_available)


def resolve_camera(
    webcams: Sequence[WebcamConfig],
    requested_uid: Optional[str] = None,
    selected_uid: Optional[str] = None,
    strategies: Sequence[Strategy] = DEFAULT_STRATEGIES,
) -> WebcamConfig:
    if not webcams:
        raise NoCamerasConfigured()

    req = CameraRequest(requested_uid=requested_uid, selected_uid=selected_uid)
    for strategy in strategies:
        cam = strategy(webcams, req)
        if cam is not None:
            return cam

    # every resolver ends in first_available; reaching here means a custom list without it
    raise NoCamerasConfigured()


# ============================================================
# URL CONSTRUCTION
# ============================================================

def is_absolute_url(url: str) -> bool:
    return url.startswith("http://") or url.startswith("https://")


def build_camera_url(url: str, camera_base_url: str) -> str:
    """Absolute URLs are used verbatim; root-relative ones get the camera base."""
    if is_absolute_url(url):
        return url
    if not url.startswith("/"):
        url = "/" + url
    return f"{camera_base_url.rstrip('/')}{url}"


def snapshot_url_for(cam: Optional[WebcamConfig], camera_base_url: str) -> str:
    if cam is not None and cam.snapshot_url:
        return build_camera_url(cam.snapshot_url, camera_base_url)
    return build_camera_url(FALLBACK_SNAPSHOT_PATH, camera_base_url)


def stream_url_for(cam: Optional[WebcamConfig], camera_base_url: str) -> str:
    if cam is not None and cam.stream_url:
        return build_camera_url(cam.stream_url, camera_base_url)
    return build_camera_url(FALLBACK_STREAM_PATH, camera_base_url)
