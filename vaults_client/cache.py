"""In-memory caching for ledger reads that may be reused within one refresh window."""

import hashlib
import time
from collections.abc import Callable
from typing import Any

CACHE_VERSION = "1"  # Increment to invalidate all cache keys


def cache_key(prefix: str, *parts: Any) -> str:
    """Generate a deterministic cache key from prefix and parts."""
    key_str = f"{prefix}:{CACHE_VERSION}:" + ":".join(str(p) for p in parts)
    return hashlib.sha256(key_str.encode()).hexdigest()


class MemoryCache:
    """Time-bounded key/value cache. Entries expire `ttl_s` seconds after being stored."""

    def __init__(self, ttl_s: float, *, clock: Callable[[], float] = time.monotonic) -> None:
        if ttl_s < 0:
            raise ValueError("ttl_s must be >= 0")
        self.ttl_s = ttl_s
        self._clock = clock
        self._entries: dict[str, tuple[float, Any]] = {}

    def get_cached(self, key: str) -> Any | None:
        """Get cached data by key. Returns None if not found or expired."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        stored_at, data = entry
        if self._clock() - stored_at >= self.ttl_s:
            del self._entries[key]
            return None
        return data

    def set_cached(self, key: str, data: Any) -> None:
        """Store data in cache."""
        self._entries[key] = (self._clock(), data)

    def clear_cache(self) -> None:
        """Clear all cached data."""
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
