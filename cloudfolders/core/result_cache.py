"""
Result Cache

In-memory TTL cache for expensive listing calls. Stale entries are evicted
lazily on read; there is no background sweeper.
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Generic, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class CacheEntry(Generic[T]):
    """Cached value and the monotonic instant it stops being valid."""
    value: T
    expires_at: float


class ResultCache:
    """
    Key/value cache with per-entry expiry.

    With ``max_entries`` set, writing a new key into a full cache first drops
    expired entries and then the oldest written ones.
    """

    def __init__(
        self,
        clock: Callable[[], float] = time.monotonic,
        max_entries: Optional[int] = None,
    ):
        self._clock = clock
        self._max_entries = max_entries
        self._entries: dict[str, CacheEntry[Any]] = {}

    def get(self, key: str) -> Optional[Any]:
        """Return the cached value, or None when absent or expired."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() >= entry.expires_at:
            del self._entries[key]
            return None
        return entry.value

    def set(self, key: str, value: Any, ttl_seconds: float) -> None:
        self._entries.pop(key, None)
        if self._max_entries and len(self._entries) >= self._max_entries:
            self._evict()
        self._entries[key] = CacheEntry(value=value, expires_at=self._clock() + ttl_seconds)

    def _evict(self) -> None:
        now = self._clock()
        for key in [k for k, entry in self._entries.items() if now >= entry.expires_at]:
            del self._entries[key]
        while len(self._entries) >= self._max_entries:
            del self._entries[next(iter(self._entries))]

    def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def delete_prefix(self, prefix: str) -> int:
        """Drop every entry whose key starts with ``prefix``."""
        stale = [key for key in self._entries if key.startswith(prefix)]
        for key in stale:
            del self._entries[key]
        if stale:
            logger.debug(f"Invalidated {len(stale)} cached entries with prefix {prefix!r}")
        return len(stale)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None
