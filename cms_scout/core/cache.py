"""
In-process TTL cache used for scan results and loaded translations.

Any object with get/put/forget can replace it (see core.context.CacheStore).
Entries are derived data, so last-writer-wins is fine.
"""

import threading
import time
from typing import Any, Dict, Optional, Tuple


class MemoryCache:
    """Thread-safe key/value store with per-entry expiry."""

    def __init__(self):
        self._entries: Dict[str, Tuple[Optional[float], Any]] = {}
        self._lock = threading.Lock()

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return default

            expires_at, value = entry
            if expires_at is not None and expires_at <= time.monotonic():
                del self._entries[key]
                return default

            return value

    def put(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        """Store value; ttl_seconds of None or <= 0 means no expiry."""
        expires_at = None
        if ttl_seconds is not None and ttl_seconds > 0:
            expires_at = time.monotonic() + ttl_seconds

        with self._lock:
            self._entries[key] = (expires_at, value)

    def forget(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def has(self, key: str) -> bool:
        return self.get(key, _MISSING) is not _MISSING

    def flush(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


_MISSING = object()
