"""Simple in-memory TTL cache. No Redis needed.

Each upstream client owns its own instance with a single TTL. Expired
entries are skipped on read but stay in the map until overwritten or
cleared.
"""

import threading
import time
from dataclasses import dataclass
from typing import Any, Callable


@dataclass(frozen=True)
class CacheEntry:
    key: str
    value: Any
    stored_at: float


class TTLCache:
    def __init__(self, ttl_seconds: float, clock: Callable[[], float] | None = None):
        if ttl_seconds <= 0:
            raise ValueError(f"ttl_seconds must be positive, got {ttl_seconds}")
        self.ttl_seconds = ttl_seconds
        self._clock = clock or time.monotonic
        self._store: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Any | None:
        with self._lock:
            entry = self._store.get(key)
        if entry is None:
            return None
        if self._clock() - entry.stored_at < self.ttl_seconds:
            return entry.value
        return None

    def set(self, key: str, value: Any) -> None:
        entry = CacheEntry(key=key, value=value, stored_at=self._clock())
        with self._lock:
            self._store[key] = entry

    def clear(self) -> None:
        with self._lock:
            self._store.clear()

    def stats(self) -> dict:
        with self._lock:
            keys = list(self._store)
        return {
            "size": len(keys),
            "ttl_ms": int(self.ttl_seconds * 1000),
            "keys": keys,
        }
