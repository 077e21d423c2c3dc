"""
errors.py

Purpose:
  Typed failure taxonomy shared by the upstream client, the camera helper
  and the HTTP layer.

Contract:
  - Every failure carries an `ErrorKind`; handlers switch on the kind (or the
    class), never on message text.
  - `status_code` is the HTTP status the error renders as. `UpstreamBadStatus`
    relays the upstream's own status.
  - `message` is always human readable and becomes the `error` field of the
    JSON body.
"""
from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(str, Enum):
    CONFIGURATION_MISSING = "CONFIGURATION_MISSING"
    UPSTREAM_UNREACHABLE = "UPSTREAM_UNREACHABLE"
    UPSTREAM_TIMEOUT = "UPSTREAM_TIMEOUT"
    UPSTREAM_BAD_STATUS = "UPSTREAM_BAD_STATUS"
    NOT_FOUND = "NOT_FOUND"
    VALIDATION = "VALIDATION"
    UNEXPECTED = "UNEXPECTED"


_STATUS_BY_KIND: Dict[ErrorKind, int] = {
    ErrorKind.CONFIGURATION_MISSING: 500,
    ErrorKind.UPSTREAM_UNREACHABLE: 503,
    ErrorKind.UPSTREAM_TIMEOUT: 504,
    ErrorKind.UPSTREAM_BAD_STATUS: 502,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.VALIDATION: 400,
    ErrorKind.UNEXPECTED: 500,
}


def status_for(kind: ErrorKind) -> int:
    return _STATUS_BY_KIND.get(kind, 500)


class DashboardError(Exception):
    kind: ErrorKind = ErrorKind.UNEXPECTED

    def __init__(self, message: str, details: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    @property
    def status_code(self) -> int:
        return status_for(self.kind)

    def to_body(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.message}
        if self.details:
            body["details"] = self.details
        return body


class ConfigurationMissing(DashboardError):
    kind = ErrorKind.CONFIGURATION_MISSING


class InvalidRequest(DashboardError):
    kind = ErrorKind.VALIDATION


class NotFound(DashboardError):
    kind = ErrorKind.NOT_FOUND


class CameraNotFound(NotFound):
    def __init__(self, uid: str):
        super().__init__(f"Webcam with UID {uid} not found")
        self.uid = uid


class NoCamerasConfigured(NotFound):
    def __init__(self) -> None:
        super().__init__("No webcams configured")


# ============================================================
# UPSTREAM (produced by the Moonraker client)
# ============================================================

class UnreachableReason(str, Enum):
    REFUSED = "refused"
    RESET = "reset"
    TLS = "tls"


class UpstreamError(DashboardError):
    """Base for failures talking to the printer control plane or a camera."""

    def __init__(self, message: str, endpoint: str = "", details: Optional[str] = None):
        super().__init__(message, details=details)
        self.endpoint = endpoint


class UpstreamUnreachable(UpstreamError):
    kind = ErrorKind.UPSTREAM_UNREACHABLE

    def __init__(
        self,
        message: str,
        endpoint: str = "",
        reason: UnreachableReason = UnreachableReason.REFUSED,
        details: Optional[str] = None,
    ):
        super().__init__(message, endpoint=endpoint, details=details)
        self.reason = reason


class UpstreamTimeout(UpstreamError):
    kind = ErrorKind.UPSTREAM_TIMEOUT


class UpstreamBadStatus(UpstreamError):
    kind = ErrorKind.UPSTREAM_BAD_STATUS

    def __init__(self, upstream_status: int, endpoint: str = "", reason_phrase: str = ""):
        message = f"Moonraker returned {upstream_status}"
        if reason_phrase:
            message = f"{message}: {reason_phrase}"
        super().__init__(message, endpoint=endpoint)
        self.upstream_status = upstream_status

    @property
    def status_code(self) -> int:
        if 400 <= self.upstream_status <= 599:
            return self.upstream_status
        return status_for(self.kind)


class UpstreamInvalidResponse(UpstreamError):
    kind = ErrorKind.UNEXPECTED
