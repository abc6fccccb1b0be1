"""
Wiring for the four simulated caches.

A CacheEngine owns one instance of each cache plus the inspector over
them. Create one per process (the FastAPI lifespan does) and call
aclose() at shutdown.
"""

from __future__ import annotations

import logging
from typing import Optional

from cachelab.clock import Clock, SystemClock
from cachelab.inspector import ALL, CacheInspector
from cachelab.memo import RequestScopeMemoizer
from cachelab.models import CacheType
from cachelab.navigation import DEFAULT_CAPACITY, NavigationCacheSimulator
from cachelab.policy import TTLCachePolicy
from cachelab.store import KeyedEntryStore

logger = logging.getLogger(__name__)


class CacheEngine:
    def __init__(
        self,
        router_cache_capacity: int = DEFAULT_CAPACITY,
        clock: Optional[Clock] = None,
    ) -> None:
        self.clock = clock or SystemClock()
        self.data_cache = TTLCachePolicy(
            KeyedEntryStore(CacheType.data_cache.value, self.clock), self.clock
        )
        self.full_route_cache = TTLCachePolicy(
            KeyedEntryStore(CacheType.full_route_cache.value, self.clock), self.clock
        )
        self.memoizer = RequestScopeMemoizer(self.clock)
        self.navigation = NavigationCacheSimulator(router_cache_capacity, self.clock)
        self.inspector = CacheInspector(
            data_store=self.data_cache.store,
            full_route_store=self.full_route_cache.store,
            navigation=self.navigation,
            memoizer=self.memoizer,
            clock=self.clock,
        )

    async def aclose(self) -> None:
        """Cancel background refreshes and drop every cached entry."""
        await self.data_cache.aclose()
        await self.full_route_cache.aclose()
        self.inspector.invalidate(ALL)
        logger.info("Cache engine closed")
