"""
moonraker_client.py

Purpose:
  Thin async client for the printer control plane (Moonraker) and for the
  camera endpoints it advertises.

Contract:
  - One outbound GET per call, no retries. Polling clients retry on their
    own cadence.
  - Every call is bounded by an explicit timeout (`upstream_timeout_s`,
    default 10 s). Snapshot fetches always use 10 s.
  - Failures surface as typed `UpstreamError` subclasses:
      * non-2xx               -> UpstreamBadStatus (keeps the status)
      * refused / reset / TLS -> UpstreamUnreachable (with a reason)
      * timeout               -> UpstreamTimeout
      * body is not JSON      -> UpstreamInvalidResponse
  - `transport` is injectable so tests can use `httpx.MockTransport`.
"""
from __future__ import annotations

import logging
import ssl
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple, Union

import httpx

from printdash.config import DashboardConfig
from printdash.errors import (
    ConfigurationMissing,
    UnreachableReason,
    UpstreamBadStatus,
    UpstreamError,
    UpstreamInvalidResponse,
    UpstreamTimeout,
    UpstreamUnreachable,
)

logger = logging.getLogger(__name__)

SNAPSHOT_TIMEOUT_S = 10.0
USER_AGENT = "printdash/0.1"

QueryParams = Union[Mapping[str, Any], Sequence[Tuple[str, Any]], str, None]


class Endpoint(str, Enum):
    PRINTER_OBJECTS = "/printer/objects/query"
    PRINTER_INFO = "/printer/info"
    PROC_STATS = "/machine/proc_stats"
    SYSTEM_INFO = "/machine/system_info"
    TEMPERATURE_STORE = "/server/temperature_store"
    WEBCAM_LIST = "/server/webcams/list"
    HISTORY_TOTALS = "/server/history/totals"
    FILE_METADATA = "/server/files/metadata"
    GCODE_FILES = "/server/files/gcodes"


# Objects the status view needs, in one query
STATUS_OBJECTS = (
    "extruder",
    "heater_bed",
    "print_stats",
    "virtual_sdcard",
    "webhooks",
    "toolhead",
    "gcode_move",
)


@dataclass
class BinaryResponse:
    content: bytes
    content_type: str
    status_code: int


def _has_ssl_cause(exc: BaseException) -> bool:
    seen = exc
    while seen is not None:
        if isinstance(seen, ssl.SSLError):
            return True
        seen = seen.__cause__ or seen.__context__
    return False


def classify_transport_error(exc: httpx.HTTPError, endpoint: str) -> UpstreamError:
    """Map an httpx exception onto the upstream error taxonomy."""
    # Timeouts subclass TransportError, check them first
    if isinstance(exc, httpx.TimeoutException):
        return UpstreamTimeout(f"Request to {endpoint} timed out", endpoint=endpoint, details=str(exc))
    if _has_ssl_cause(exc):
        return UpstreamUnreachable(
            f"TLS handshake with {endpoint} failed",
            endpoint=endpoint,
            reason=UnreachableReason.TLS,
            details=str(exc),
        )
    if isinstance(exc, httpx.ConnectError):
        return UpstreamUnreachable(
            f"Cannot connect to {endpoint}",
            endpoint=endpoint,
            reason=UnreachableReason.REFUSED,
            details=str(exc),
        )
    if isinstance(exc, httpx.TransportError):
        return UpstreamUnreachable(
            f"Connection to {endpoint} was reset",
            endpoint=endpoint,
            reason=UnreachableReason.RESET,
            details=str(exc),
        )
    return UpstreamError(f"Request to {endpoint} failed", endpoint=endpoint, details=str(exc))


class MoonrakerClient:
    def __init__(
        self,
        config: DashboardConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config
        self._transport = transport

    # ------------------------------------------------------------
    # plumbing
    # ------------------------------------------------------------

    def _client(self, timeout: float, verify: bool = True, base_url: str = "") -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=base_url,
            timeout=httpx.Timeout(timeout),
            transport=self._transport,
            verify=verify,
            headers={"User-Agent": USER_AGENT},
        )

    def _require_base_url(self) -> str:
        base_url = self.config.moonraker_base_url
        if base_url is None:
            raise ConfigurationMissing("PRINTER_HOST environment variable not configured")
        return base_url

    @staticmethod
    def _check_status(resp: httpx.Response, endpoint: str) -> None:
        if not resp.is_success:
            logger.warning("Moonraker %s returned %s", endpoint, resp.status_code)
            raise UpstreamBadStatus(resp.status_code, endpoint=endpoint, reason_phrase=resp.reason_phrase)

    # ------------------------------------------------------------
    # JSON endpoints
    # ------------------------------------------------------------

    async def fetch_endpoint(self, kind: Endpoint, params: QueryParams = None) -> Dict[str, Any]:
        base_url = self._require_base_url()
        path = kind.value
        url = path
        if isinstance(params, str):
            url = f"{path}?{params}"
            params = None
        try:
            async with self._client(self.config.upstream_timeout_s, base_url=base_url) as client:
                resp = await client.get(url, params=params)
        except httpx.HTTPError as e:
            err = classify_transport_error(e, path)
            logger.warning("Moonraker %s failed: %s (%s)", path, err.kind.value, e)
            raise err from e

        self._check_status(resp, path)
        try:
            data = resp.json()
        except ValueError as e:
            raise UpstreamInvalidResponse(f"Moonraker {path} returned invalid JSON", endpoint=path) from e
        if not isinstance(data, dict):
            raise UpstreamInvalidResponse(f"Moonraker {path} returned unexpected payload", endpoint=path)
        return data

    async def query_printer_objects(self, objects: Sequence[str] = STATUS_OBJECTS) -> Dict[str, Any]:
        # Moonraker expects bare object names as query keys (?extruder&heater_bed)
        return await self.fetch_endpoint(Endpoint.PRINTER_OBJECTS, "&".join(objects))

    async def printer_info(self) -> Dict[str, Any]:
        return await self.fetch_endpoint(Endpoint.PRINTER_INFO)

    async def proc_stats(self) -> Dict[str, Any]:
        return await self.fetch_endpoint(Endpoint.PROC_STATS)

    async def system_info(self) -> Dict[str, Any]:
        return await self.fetch_endpoint(Endpoint.SYSTEM_INFO)

    async def temperature_store(self) -> Dict[str, Any]:
        return await self.fetch_endpoint(Endpoint.TEMPERATURE_STORE)

    async def webcam_list(self) -> Dict[str, Any]:
        return await self.fetch_endpoint(Endpoint.WEBCAM_LIST)

    async def history_totals(self) -> Dict[str, Any]:
        return await self.fetch_endpoint(Endpoint.HISTORY_TOTALS)

    async def file_metadata(self, filename: str) -> Dict[str, Any]:
        return await self.fetch_endpoint(Endpoint.FILE_METADATA, {"filename": filename})

    # ------------------------------------------------------------
    # camera passthrough
    # ------------------------------------------------------------

    async def _fetch_binary(
        self,
        url: str,
        what: str,
        timeout: float,
        verify: bool,
        default_type: str,
    ) -> BinaryResponse:
        try:
            async with self._client(timeout, verify=verify) as client:
                resp = await client.get(url)
        except httpx.HTTPError as e:
            err = classify_transport_error(e, url)
            logger.warning("%s %s failed: %s (%s)", what, url, err.kind.value, e)
            raise err from e

        if not resp.is_success:
            logger.warning("%s %s returned %s", what, url, resp.status_code)
            raise UpstreamBadStatus(resp.status_code, endpoint=url, reason_phrase=resp.reason_phrase)

        return BinaryResponse(
            content=resp.content,
            content_type=resp.headers.get("content-type", default_type),
            status_code=resp.status_code,
        )

    async def fetch_snapshot(self, url: str) -> BinaryResponse:
        """
        Fetch a camera still. Cameras behind a reverse proxy often use
        self-signed certificates, so verification is off for this call only.
        """
        return await self._fetch_binary(
            url, "Camera snapshot", SNAPSHOT_TIMEOUT_S, verify=False, default_type="image/jpeg"
        )

    async def fetch_thumbnail(self, path: str) -> BinaryResponse:
        """Slicer thumbnail stored next to the gcode, e.g. `.thumbs/part-300x300.png`."""
        base_url = self._require_base_url()
        url = f"{base_url}{Endpoint.GCODE_FILES.value}/{path.lstrip('/')}"
        return await self._fetch_binary(
            url, "Thumbnail", self.config.upstream_timeout_s, verify=True, default_type="image/png"
        )

    async def open_stream(self, url: str) -> Tuple[httpx.AsyncClient, httpx.Response]:
        """
        Open a long-lived MJPEG stream. The caller owns both returned objects
        and must close the response and then the client.
        """
        # connect/write bounded, reads unbounded: frames arrive for as long as the viewer stays
        timeout = httpx.Timeout(self.config.upstream_timeout_s, read=None)
        client = httpx.AsyncClient(
            timeout=timeout,
            transport=self._transport,
            verify=False,
            headers={"User-Agent": USER_AGENT},
        )
        try:
            resp = await client.send(client.build_request("GET", url), stream=True)
        except httpx.HTTPError as e:
            await client.aclose()
            err = classify_transport_error(e, url)
            logger.warning("Camera stream %s failed: %s (%s)", url, err.kind.value, e)
            raise err from e

        if not resp.is_success:
            status = resp.status_code
            await resp.aclose()
            await client.aclose()
            raise UpstreamBadStatus(status, endpoint=url)
        return client, resp
