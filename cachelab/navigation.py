"""
Client-side route cache simulation.

Keeps one snapshot per visited route, bounded by capacity with LRU
eviction. There is no TTL: a snapshot lives until it is evicted,
overwritten by another visit, or invalidated.
"""

from __future__ import annotations

import logging
import threading
from collections import OrderedDict
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Callable, Mapping, Optional, Union

from cachelab.clock import Clock, SystemClock
from cachelab.keys import validate_key

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 20


@dataclass(frozen=True)
class RouteSnapshot:
    route_id: str
    form_state: Mapping[str, Any] = field(default_factory=dict)
    scroll_position: float = 0
    visited_at: float = 0  # clock.monotonic() at visit


class NavigationCacheSimulator:
    def __init__(self, capacity: int = DEFAULT_CAPACITY, clock: Optional[Clock] = None) -> None:
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self._capacity = capacity
        self._clock = clock or SystemClock()
        self._snapshots: OrderedDict[str, RouteSnapshot] = OrderedDict()
        self._current: Optional[str] = None
        self._lock = threading.Lock()

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def current_route(self) -> Optional[str]:
        return self._current

    def __len__(self) -> int:
        with self._lock:
            return len(self._snapshots)

    def visit(
        self,
        route_id: str,
        form_state: Optional[Mapping[str, Any]] = None,
        scroll_position: float = 0,
    ) -> RouteSnapshot:
        """Record route_id as the current route with the given state."""
        validate_key(route_id)
        snapshot = RouteSnapshot(
            route_id=route_id,
            form_state=MappingProxyType(dict(form_state or {})),
            scroll_position=scroll_position,
            visited_at=self._clock.monotonic(),
        )
        with self._lock:
            self._snapshots[route_id] = snapshot
            self._snapshots.move_to_end(route_id)
            self._current = route_id
            self._evict()
        return snapshot

    def get_snapshot(self, route_id: str) -> Optional[RouteSnapshot]:
        """Return the stored snapshot, marking it recently used."""
        with self._lock:
            snapshot = self._snapshots.get(route_id)
            if snapshot is not None:
                self._snapshots.move_to_end(route_id)
            return snapshot

    def snapshots(self) -> list[RouteSnapshot]:
        """Snapshots from least to most recently used."""
        with self._lock:
            return list(self._snapshots.values())

    def invalidate(self, target: Union[str, Callable[[str], bool]]) -> int:
        """Remove one route or every route whose id matches a predicate."""
        with self._lock:
            if callable(target):
                doomed = [r for r in self._snapshots if target(r)]
            else:
                doomed = [target] if target in self._snapshots else []
            for route_id in doomed:
                del self._snapshots[route_id]
            if self._current in doomed:
                self._current = None
        return len(doomed)

    def clear(self) -> None:
        with self._lock:
            self._snapshots.clear()
            self._current = None

    def _evict(self) -> None:
        # Caller holds the lock.
        while len(self._snapshots) > self._capacity:
            victim = next(r for r in self._snapshots if r != self._current)
            del self._snapshots[victim]
            logger.debug("Evicted route snapshot %s", victim)
