"""
Keyed entry store shared by the simulated caches.

Stores values by string key together with the TTL and stale window they
were written with. Freshness is decided by the policy layer, not here.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Optional, Union

from cachelab.clock import Clock, SystemClock
from cachelab.keys import validate_key

logger = logging.getLogger(__name__)

EntryPredicate = Callable[["CacheEntry"], bool]


def validate_durations(ttl_seconds: float, stale_window_seconds: float) -> None:
    if ttl_seconds < 0 or stale_window_seconds < 0:
        raise ValueError("ttl_seconds and stale_window_seconds must be >= 0")


@dataclass(frozen=True)
class CacheEntry:
    """A cached value with its storage timestamp and expiry metadata."""

    key: str
    value: Any
    created_at: float  # clock.monotonic() when stored
    ttl_seconds: float
    stale_window_seconds: float

    def age(self, now: float) -> float:
        """Seconds since this entry was stored."""
        return now - self.created_at

    def expired(self, now: float) -> bool:
        """True once the entry is past both its TTL and its stale window."""
        return self.age(now) > self.ttl_seconds + self.stale_window_seconds


class KeyedEntryStore:
    """
    In-memory store of CacheEntry objects.

    - get(): returns the entry regardless of age.
    - put(): replaces any entry under the same key.
    - invalidate(): removes one key, or every entry matching a predicate.
    - purge_expired(): drops entries past their stale window.

    `generation` changes on every invalidate() or clear(). A writer that
    started before an invalidation passes the generation it saw to
    put_if_generation() and its value is dropped.
    """

    def __init__(self, name: str, clock: Optional[Clock] = None) -> None:
        self.name = name
        self._clock = clock or SystemClock()
        self._entries: dict[str, CacheEntry] = {}
        self._generation = 0
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    @property
    def generation(self) -> int:
        with self._lock:
            return self._generation

    def get(self, key: str) -> Optional[CacheEntry]:
        with self._lock:
            return self._entries.get(key)

    def put(
        self,
        key: str,
        value: Any,
        ttl_seconds: float,
        stale_window_seconds: float = 0,
    ) -> CacheEntry:
        """Store a value with the current timestamp, replacing any previous entry."""
        entry = self._new_entry(key, value, ttl_seconds, stale_window_seconds)
        with self._lock:
            self._entries[key] = entry
        return entry

    def put_if_generation(
        self,
        generation: int,
        key: str,
        value: Any,
        ttl_seconds: float,
        stale_window_seconds: float = 0,
    ) -> Optional[CacheEntry]:
        """Like put(), but only if nothing was invalidated since `generation`."""
        entry = self._new_entry(key, value, ttl_seconds, stale_window_seconds)
        with self._lock:
            if self._generation != generation:
                return None
            self._entries[key] = entry
        return entry

    def invalidate(self, target: Union[str, EntryPredicate]) -> int:
        """Remove a key or all entries matching a predicate. Returns the count removed."""
        with self._lock:
            self._generation += 1
            if callable(target):
                doomed = [k for k, e in self._entries.items() if target(e)]
            else:
                doomed = [target] if target in self._entries else []
            for key in doomed:
                del self._entries[key]
        if doomed:
            logger.debug("Invalidated %d entries in %s", len(doomed), self.name)
        return len(doomed)

    def clear(self) -> None:
        """Remove all entries."""
        with self._lock:
            self._generation += 1
            self._entries.clear()

    def purge_expired(self) -> int:
        """Remove entries past their TTL and stale window. Returns the count removed."""
        now = self._clock.monotonic()
        with self._lock:
            doomed = [k for k, e in self._entries.items() if e.expired(now)]
            for key in doomed:
                del self._entries[key]
        if doomed:
            logger.debug("Purged %d expired entries from %s", len(doomed), self.name)
        return len(doomed)

    def entries(self) -> list[CacheEntry]:
        """Snapshot of the stored entries, expired ones included."""
        with self._lock:
            return list(self._entries.values())

    def _new_entry(
        self, key: str, value: Any, ttl_seconds: float, stale_window_seconds: float
    ) -> CacheEntry:
        validate_key(key)
        validate_durations(ttl_seconds, stale_window_seconds)
        return CacheEntry(
            key=key,
            value=value,
            created_at=self._clock.monotonic(),
            ttl_seconds=ttl_seconds,
            stale_window_seconds=stale_window_seconds,
        )
