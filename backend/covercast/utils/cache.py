"""
In-memory TTL cache for provider responses.

Historical weather never changes, so the weather provider caches it for the
configured TTL; events use a shorter TTL. Keys are built from rounded
coordinates so nearby lookups for the same restaurant collapse together.
"""

import threading
import time
from typing import Any, Dict, Optional, Tuple

from loguru import logger


def location_key(prefix: str, lat: float, lon: float, *parts: Any) -> str:
    """Cache key for a lookup at ``(lat, lon)``; coordinates are rounded to ~100m."""
    return ":".join([prefix, f"{lat:.3f}", f"{lon:.3f}", *(str(p) for p in parts)])


class Cache:
    """Thread-safe in-memory cache with TTL support."""

    def __init__(self, enabled: bool = True):
        self.enabled = enabled
        self._entries: Dict[str, Tuple[Any, float]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Any]:
        """Get value from cache if not expired."""
        if not self.enabled:
            return None
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if time.monotonic() >= expires_at:
                del self._entries[key]
                return None
        logger.debug(f"Cache hit: {key}")
        return value

    def set(self, key: str, value: Any, ttl_seconds: int = 300) -> None:
        """Set value in cache with TTL."""
        if not self.enabled:
            return
        now = time.monotonic()
        with self._lock:
            self._evict_expired(now)
            self._entries[key] = (value, now + ttl_seconds)

    def _evict_expired(self, now: float) -> None:
        expired = [k for k, (_, expires_at) in self._entries.items() if now >= expires_at]
        for key in expired:
            del self._entries[key]

    def __len__(self) -> int:
        return len(self._entries)
