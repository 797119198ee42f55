from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from kartleague.config import POINTS_CACHE_TTL_SECONDS


@dataclass
class CacheEntry:
    data: Any
    timestamp: float
    ttl: float

    def expired(self, now: float) -> bool:
        return now - self.timestamp > self.ttl


class TTLCache:
    """In-process cache whose entries expire after a per-entry TTL (seconds)."""

    def __init__(self, default_ttl: float = POINTS_CACHE_TTL_SECONDS, clock: Callable[[], float] = time.monotonic) -> None:
        self._entries: Dict[str, CacheEntry] = {}
        self._default_ttl = float(default_ttl)
        self._clock = clock

    def set(self, key: str, data: Any, ttl: Optional[float] = None) -> None:
        self._entries[key] = CacheEntry(
            data=data,
            timestamp=self._clock(),
            ttl=self._default_ttl if ttl is None else float(ttl),
        )

    def get(self, key: str) -> Any:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.expired(self._clock()):
            del self._entries[key]
            return None
        return entry.data

    def invalidate(self, key: str) -> None:
        self._entries.pop(key, None)

    def invalidate_prefix(self, prefix: str) -> None:
        for key in [k for k in self._entries if k.startswith(prefix)]:
            del self._entries[key]

    def clear(self) -> None:
        self._entries.clear()

    def stats(self) -> dict[str, int]:
        now = self._clock()
        expired = sum(1 for entry in self._entries.values() if entry.expired(now))
        return {
            "total_entries": len(self._entries),
            "valid_entries": len(self._entries) - expired,
            "expired_entries": expired,
        }


cache = TTLCache()
