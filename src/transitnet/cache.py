"""Time-bounded cache for fetched transit results."""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Generic, Hashable, Optional, Tuple, TypeVar

from .config import CACHE_TTL

logger = logging.getLogger(__name__)

T = TypeVar("T")

# (subsystem, city_id[, variant])
CacheKey = Tuple[Hashable, ...]


@dataclass(frozen=True)
class CacheEntry(Generic[T]):
    """A cached value and the time it was fetched. Replaced wholesale, never mutated."""
    value: T
    fetched_at: float


class TTLCache:
    """
    Key -> CacheEntry map with a fixed time-to-live.

    Expired entries are kept (and reported as stale) until replaced, so a
    caller can fall back to them when a refetch fails.
    """

    def __init__(self, ttl: float = CACHE_TTL, clock: Callable[[], float] = time.time):
        """
        Args:
            ttl: Seconds an entry stays fresh.
            clock: Returns the current time in seconds; tests pass a fake.
        """
        self.ttl = ttl
        self.clock = clock
        self._entries: Dict[CacheKey, CacheEntry] = {}
        self._lock = threading.Lock()

    def get_entry(self, key: CacheKey) -> Optional[CacheEntry]:
        """Return the entry for `key`, fresh or stale, or None."""
        with self._lock:
            return self._entries.get(key)

    def is_fresh(self, entry: CacheEntry) -> bool:
        return self.clock() - entry.fetched_at < self.ttl

    def get(self, key: CacheKey) -> Optional[Any]:
        """Return the value for `key` only while it is fresh."""
        entry = self.get_entry(key)
        if entry is not None and self.is_fresh(entry):
            logger.debug(f"Cache hit for {key}")
            return entry.value
        return None

    def set(self, key: CacheKey, value: Any) -> CacheEntry:
        """Store `value` under `key`, replacing any previous entry."""
        entry = CacheEntry(value=value, fetched_at=self.clock())
        with self._lock:
            self._entries[key] = entry
        return entry

    def evict_expired(self) -> int:
        """Drop stale entries; returns how many were removed."""
        now = self.clock()
        with self._lock:
            expired = [k for k, e in self._entries.items() if now - e.fetched_at >= self.ttl]
            for key in expired:
                del self._entries[key]
        if expired:
            logger.debug(f"Evicted {len(expired)} expired cache entries")
        return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
