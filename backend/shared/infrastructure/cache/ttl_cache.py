"""
Process-local TTL cache for public read lookups.

Each API instance keeps its own copy, so readers tolerate staleness up to
the TTL; writers call ``invalidate`` for the keys they touch.
"""

import threading
import time
from typing import Any, Callable

from shared.config.logging import get_logger

logger = get_logger(__name__)

_MISSING = object()


class TTLCache:
    """Thread-safe key/value cache with per-entry expiry."""

    def __init__(self, default_ttl: float, clock: Callable[[], float] = time.monotonic):
        self.default_ttl = default_ttl
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: dict[str, tuple[float, Any]] = {}
        self.hits = 0
        self.misses = 0

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self.misses += 1
                return default
            expires_at, value = entry
            if expires_at <= self._clock():
                del self._entries[key]
                self.misses += 1
                return default
            self.hits += 1
            return value

    def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        ttl = self.default_ttl if ttl is None else ttl
        with self._lock:
            self._entries[key] = (self._clock() + ttl, value)

    def get_or_load(self, key: str, loader: Callable[[], Any], ttl: float | None = None) -> Any:
        """Return the cached value or call ``loader`` and cache a non-None result."""
        value = self.get(key, _MISSING)
        if value is not _MISSING:
            return value
        value = loader()
        if value is not None:
            self.set(key, value, ttl)
        return value

    def invalidate(self, *keys: str) -> None:
        with self._lock:
            for key in keys:
                self._entries.pop(key, None)
        logger.debug("Cache invalidated", keys=list(keys))

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def stats(self) -> dict[str, int]:
        with self._lock:
            return {"keys": len(self._entries), "hits": self.hits, "misses": self.misses}
