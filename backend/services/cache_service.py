"""
Cache service — small in-process TTL cache.

Used for read-through caching of script properties and of the legacy
Users sheet full-range read. Every entry expires after its TTL; writers
remove the keys they invalidate. Nothing here is shared across worker
processes, so a cached value is at most one TTL stale.
"""
import logging
import threading
import time

logger = logging.getLogger(__name__)

_MISSING = object()


class CacheManager:
    """Key/value cache with per-entry expiry."""

    def __init__(self, default_ttl=300, clock=time.monotonic):
        self.default_ttl = default_ttl
        self._clock = clock
        self._entries = {}
        self._lock = threading.Lock()

    def get(self, key, default=None):
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return default
            value, expires_at = entry
            if expires_at <= self._clock():
                del self._entries[key]
                return default
            return value

    def put(self, key, value, ttl=None):
        ttl = self.default_ttl if ttl is None else ttl
        with self._lock:
            self._entries[key] = (value, self._clock() + ttl)

    def remove(self, key):
        with self._lock:
            self._entries.pop(key, None)

    def remove_prefix(self, prefix):
        """Drop every key starting with prefix. Returns the number removed."""
        with self._lock:
            keys = [k for k in self._entries if k.startswith(prefix)]
            for k in keys:
                del self._entries[k]
        return len(keys)

    def clear(self):
        with self._lock:
            self._entries.clear()

    def get_or_compute(self, key, compute, ttl=None):
        """
        Return the cached value for key, computing and storing it on a miss.

        None results are not cached so a missing value is re-read next time.
        """
        value = self.get(key, _MISSING)
        if value is not _MISSING:
            return value
        value = compute()
        if value is not None:
            self.put(key, value, ttl)
        return value
