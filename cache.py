"""
NEAR Treasury Dashboard - Bounded Cache
========================================
A small LRU map with per-entry expiry. Instances are created by the caller
and passed into the clients that use them, so lifetime and invalidation
stay with whoever owns the cache.
"""

import threading
import time
from collections import OrderedDict
from typing import Any, Dict, Hashable, Iterable, Optional


class BoundedCache:
    def __init__(self, max_size: int = 1024, ttl: Optional[float] = None, clock=time.monotonic):
        if max_size <= 0:
            raise ValueError("max_size must be positive")
        self.max_size = max_size
        self.ttl = ttl
        self._clock = clock
        self._entries: "OrderedDict[Hashable, tuple]" = OrderedDict()
        self._lock = threading.Lock()

    def _expired(self, stored_at: float) -> bool:
        return self.ttl is not None and self._clock() - stored_at >= self.ttl

    def get(self, key: Hashable, default: Any = None) -> Any:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return default
            value, stored_at = entry
            if self._expired(stored_at):
                del self._entries[key]
                return default
            self._entries.move_to_end(key)
            return value

    def set(self, key: Hashable, value: Any) -> None:
        with self._lock:
            self._entries[key] = (value, self._clock())
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_size:
                self._entries.popitem(last=False)

    def get_many(self, keys: Iterable[Hashable]) -> Dict[Hashable, Any]:
        """Cached values for the keys that have one; misses are left out."""
        missing = object()
        found = {}
        for key in keys:
            value = self.get(key, missing)
            if value is not missing:
                found[key] = value
        return found

    def invalidate(self, key: Hashable) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __contains__(self, key: Hashable) -> bool:
        missing = object()
        return self.get(key, missing) is not missing

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
