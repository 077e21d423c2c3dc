"""Logging setup for the dashboard backend."""
from __future__ import annotations

import json
import logging
import sys
from typing import Any, Dict, List


def configure_logging(level: str = "INFO", json_format: bool = False) -> None:
    """Configure root logging once; repeated calls replace the handlers."""
    level_value = getattr(logging, level.upper(), logging.INFO)

    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if json_format:
        formatter: logging.Formatter = _JsonFormatter()
    else:
        formatter = logging.Formatter(
            fmt="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
            datefmt="%Y-%m-%dT%H:%M:%S",
        )

    for handler in handlers:
        handler.setFormatter(formatter)

    logging.basicConfig(level=level_value, handlers=handlers, force=True)

    # httpx logs every outbound request at INFO; the dashboard polls every second
    logging.getLogger("httpx").setLevel(max(level_value, logging.WARNING))


class _JsonFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "ts": self.formatTime(record, datefmt="%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "name": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, sort_keys=True)
