"""
Read-only reporting and aggregate invalidation over the simulated caches.

Each cache is read through its own snapshot method, so no lock is held
across caches. A cache that fails while being read is reported with an
error instead of failing the whole report.
"""

from __future__ import annotations

import logging
from typing import Callable, Iterable, Optional, Union

from cachelab.clock import Clock, SystemClock
from cachelab.memo import RequestScopeMemoizer
from cachelab.models import (
    CacheReport,
    CacheType,
    CacheTypeInfo,
    CacheTypeStats,
    ClearResult,
)
from cachelab.navigation import NavigationCacheSimulator
from cachelab.store import KeyedEntryStore

logger = logging.getLogger(__name__)

KeyPredicate = Callable[[str], bool]
InvalidationTarget = Union[str, CacheType, Iterable[Union[str, CacheType]], KeyPredicate]

ALL = "all"

CACHE_TYPE_INFO: dict[CacheType, CacheTypeInfo] = {
    CacheType.data_cache: CacheTypeInfo(
        location="server",
        storage="in-memory keyed store",
        description="Results of data fetches, served fresh, then stale while revalidating",
    ),
    CacheType.full_route_cache: CacheTypeInfo(
        location="server",
        storage="in-memory keyed store",
        description="Rendered route payloads with a long TTL and stale window",
    ),
    CacheType.router_cache: CacheTypeInfo(
        location="client",
        storage="in-memory LRU",
        description="Visited route snapshots (form state, scroll position), no TTL",
    ),
    CacheType.request_memoization: CacheTypeInfo(
        location="server",
        storage="per-request memory",
        description="Identical calls within one request share a single result",
    ),
}


def parse_cache_type(name: Union[str, CacheType]) -> CacheType:
    """Accept a CacheType, its value ("dataCache") or its name ("data_cache")."""
    if isinstance(name, CacheType):
        return name
    try:
        return CacheType(name)
    except ValueError:
        pass
    try:
        return CacheType[name]
    except KeyError:
        raise ValueError(f"Unknown cache type: {name!r}") from None


def _live_ages(store: KeyedEntryStore, now: float) -> list[float]:
    # Expired entries are dead weight until the next sweep.
    return [e.age(now) for e in store.entries() if not e.expired(now)]


class CacheInspector:
    def __init__(
        self,
        data_store: KeyedEntryStore,
        full_route_store: KeyedEntryStore,
        navigation: NavigationCacheSimulator,
        memoizer: RequestScopeMemoizer,
        clock: Optional[Clock] = None,
    ) -> None:
        self._data_store = data_store
        self._full_route_store = full_route_store
        self._navigation = navigation
        self._memoizer = memoizer
        self._clock = clock or SystemClock()

    def report(self) -> CacheReport:
        """Count live entries and their oldest age, per cache type."""
        now = self._clock.monotonic()
        per_type: dict[CacheType, CacheTypeStats] = {}
        oldest: Optional[float] = None
        total = 0

        for cache_type in CacheType:
            try:
                ages = self._ages(cache_type, now)
            except Exception as exc:
                logger.exception("Could not read %s for report", cache_type.value)
                per_type[cache_type] = CacheTypeStats(error=str(exc))
                continue
            type_oldest = max(ages) if ages else None
            per_type[cache_type] = CacheTypeStats(
                count=len(ages), oldest_age_seconds=type_oldest
            )
            total += len(ages)
            if type_oldest is not None and (oldest is None or type_oldest > oldest):
                oldest = type_oldest

        return CacheReport(
            timestamp=self._clock.now(),
            per_type=per_type,
            total_entries=total,
            oldest_entry_age_seconds=oldest,
        )

    def invalidate(self, target: InvalidationTarget = ALL) -> ClearResult:
        """
        Clear caches by type name, list of names, "all", or key predicate.

        With a predicate, every cache is scanned and only the types that
        lost entries are listed in cleared_types.
        """
        predicate: Optional[KeyPredicate] = None
        if callable(target):
            predicate = target
            cache_types = list(CacheType)
        else:
            cache_types = self._resolve_types(target)

        cleared_count = 0
        cleared_types: list[CacheType] = []
        for cache_type in cache_types:
            removed = self._clear(cache_type, predicate)
            cleared_count += removed
            if predicate is None or removed:
                cleared_types.append(cache_type)

        logger.info(
            "Cleared %d entries from %s",
            cleared_count,
            ", ".join(t.value for t in cleared_types) or "nothing",
        )
        return ClearResult(
            timestamp=self._clock.now(),
            cleared_count=cleared_count,
            cleared_types=cleared_types,
        )

    # ------------------------------------------------------------------

    @staticmethod
    def _resolve_types(target: Union[str, CacheType, Iterable]) -> list[CacheType]:
        names = [target] if isinstance(target, (str, CacheType)) else list(target)
        if ALL in names:
            return list(CacheType)
        resolved: list[CacheType] = []
        for name in names:
            cache_type = parse_cache_type(name)
            if cache_type not in resolved:
                resolved.append(cache_type)
        return resolved

    def _ages(self, cache_type: CacheType, now: float) -> list[float]:
        if cache_type is CacheType.data_cache:
            return _live_ages(self._data_store, now)
        if cache_type is CacheType.full_route_cache:
            return _live_ages(self._full_route_store, now)
        if cache_type is CacheType.router_cache:
            return [now - s.visited_at for s in self._navigation.snapshots()]
        return [
            now - created
            for scope in self._memoizer.open_scopes
            for created in scope.created_at()
        ]

    def _clear(self, cache_type: CacheType, predicate: Optional[KeyPredicate]) -> int:
        matches: KeyPredicate = predicate or (lambda _key: True)
        if cache_type is CacheType.data_cache:
            return self._data_store.invalidate(lambda e: matches(e.key))
        if cache_type is CacheType.full_route_cache:
            return self._full_route_store.invalidate(lambda e: matches(e.key))
        if cache_type is CacheType.router_cache:
            return self._navigation.invalidate(matches)
        return self._memoizer.invalidate(matches)
