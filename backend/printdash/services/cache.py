"""
cache.py

Purpose:
  Short-lived, single-slot-per-key cache that shields Moonraker from being
  hit on every dashboard poll.

Contract:
  - An entry is served as-is while `now - fetched_at_ms < ttl_ms`.
  - On a miss the fetch coroutine runs once; its result replaces the slot in
    full. If it raises, the exception propagates and the old slot is left
    untouched. Expired entries are never served, even when a refresh fails.
  - No stampede protection: concurrent misses may each call fetch. Writes are
    whole-slot replacements so a race only costs a redundant upstream call.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Generic, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

Clock = Callable[[], float]

# TTLs per endpoint kind (milliseconds)
SYSTEM_STATS_TTL_MS = 1_000
PRINTER_STATUS_TTL_MS = 2_000
TEMPERATURE_HISTORY_TTL_MS = 5_000
LIFETIME_STATS_TTL_MS = 30_000
CAMERA_DATA_TTL_MS = 10_000


def epoch_millis() -> float:
    return time.time() * 1000.0


@dataclass(frozen=True)
class CacheEntry(Generic[T]):
    payload: T
    fetched_at_ms: float


class TTLCache:
    def __init__(self, clock: Optional[Clock] = None):
        self._clock: Clock = clock or epoch_millis
        self._slots: Dict[str, CacheEntry[Any]] = {}

    def now_ms(self) -> float:
        return self._clock()

    def peek(self, key: str) -> Optional[CacheEntry[Any]]:
        """Raw slot, fresh or not. For inspection and tests."""
        return self._slots.get(key)

    async def get_or_fetch(self, key: str, ttl_ms: float, fetch: Callable[[], Awaitable[T]]) -> T:
        entry = self._slots.get(key)
        now = self._clock()
        if entry is not None and now - entry.fetched_at_ms < ttl_ms:
            return entry.payload

        payload = await fetch()
        self._slots[key] = CacheEntry(payload=payload, fetched_at_ms=now)
        logger.debug("cache refresh key=%s", key)
        return payload

    def invalidate(self, key: Optional[str] = None) -> None:
        if key is None:
            self._slots.clear()
        else:
            self._slots.pop(key, None)
