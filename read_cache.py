"""Process-local read-through cache with TTL and explicit invalidation."""

from __future__ import annotations

import threading
import time
from typing import Any, Callable, Dict


_MISSING = object()


class ReadThroughCache:
    def __init__(self, ttl_s: float = 3600.0, clock: Callable[[], float] = time.time) -> None:
        self._entries: Dict[str, dict] = {}
        self._ttl_s = ttl_s
        self._clock = clock
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def get(self, key: str, default: Any = None) -> Any:
        entry = self._entries.get(key)
        if entry and self._clock() - entry["ts"] < self._ttl_s:
            return entry["value"]
        return default

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._entries[key] = {"value": value, "ts": self._clock()}

    def get_or_load(self, key: str, loader: Callable[[], Any]) -> Any:
        """Return the cached value for ``key`` or store what ``loader`` returns.

        ``None`` results are cached as well; an empty projection is a valid
        answer and should not hit storage on every request.
        """
        value = self.get(key, _MISSING)
        if value is not _MISSING:
            self.hits += 1
            return value
        self.misses += 1
        value = loader()
        self.set(key, value)
        return value

    def invalidate(self, key: str | None = None) -> None:
        with self._lock:
            if key is None:
                self._entries.clear()
            else:
                self._entries.pop(key, None)

    def invalidate_prefix(self, prefix: str) -> None:
        with self._lock:
            for key in list(self._entries.keys()):
                if key.startswith(prefix):
                    self._entries.pop(key, None)

    def __len__(self) -> int:
        return len(self._entries)
