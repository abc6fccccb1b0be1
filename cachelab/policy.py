"""
TTL policy with stale-while-revalidate.

Classifies store entries as fresh, stale or expired and decides when the
producer runs:

- fresh: cached value, producer not called.
- stale: cached value, one background refresh per key.
- expired / miss: callers wait for a single shared producer call; expired
  entries in the store are swept first.

A producer result that lands after an invalidation of the store is dropped.
"""

from __future__ import annotations

import asyncio
import functools
import inspect
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Union

from cachelab.clock import Clock, SystemClock
from cachelab.errors import BackgroundRevalidationError, ProducerError
from cachelab.keys import validate_key
from cachelab.store import CacheEntry, KeyedEntryStore, validate_durations

logger = logging.getLogger(__name__)

Producer = Callable[[], Union[Any, Awaitable[Any]]]


class CacheState(str, Enum):
    fresh = "fresh"
    stale = "stale"
    expired = "expired"
    miss = "miss"


@dataclass(frozen=True)
class FetchOptions:
    ttl_seconds: float
    stale_window_seconds: float = 0


@dataclass(frozen=True)
class FetchResult:
    key: str
    value: Any
    state: CacheState


def classify(entry: Optional[CacheEntry], now: float) -> CacheState:
    """Derive the state of an entry at monotonic time `now`."""
    if entry is None:
        return CacheState.miss
    age = entry.age(now)
    if age <= entry.ttl_seconds:
        return CacheState.fresh
    if age <= entry.ttl_seconds + entry.stale_window_seconds:
        return CacheState.stale
    return CacheState.expired


async def call_producer(producer: Producer) -> Any:
    """Call a sync or async zero-argument producer and return its value."""
    result = producer()
    if inspect.isawaitable(result):
        result = await result
    return result


def _forget(registry: dict[str, asyncio.Task], key: str, task: asyncio.Task) -> None:
    if registry.get(key) is task:
        del registry[key]


class TTLCachePolicy:
    """Read-through access to a KeyedEntryStore with TTL and stale window."""

    def __init__(self, store: KeyedEntryStore, clock: Optional[Clock] = None) -> None:
        self._store = store
        self._clock = clock or SystemClock()
        self._loading: dict[str, asyncio.Task] = {}
        self._refreshing: dict[str, asyncio.Task] = {}

    @property
    def store(self) -> KeyedEntryStore:
        return self._store

    @property
    def refreshing(self) -> list[str]:
        """Keys with a background refresh in flight."""
        return [k for k, t in self._refreshing.items() if not t.done()]

    def classify(self, entry: Optional[CacheEntry]) -> CacheState:
        return classify(entry, self._clock.monotonic())

    async def resolve(
        self,
        key: str,
        producer: Producer,
        ttl_seconds: float,
        stale_window_seconds: float = 0,
    ) -> tuple[Any, CacheState]:
        """
        Return (value, state) for key, calling producer only when needed.

        Raises ProducerError if the producer fails while the caller waits.
        A failed producer leaves nothing in the store, and so does one that
        finishes after the key was invalidated.
        """
        validate_key(key)
        validate_durations(ttl_seconds, stale_window_seconds)
        entry = self._store.get(key)
        state = self.classify(entry)

        if state is CacheState.fresh:
            return entry.value, state

        if state is CacheState.stale:
            self._schedule_refresh(key, producer, ttl_seconds, stale_window_seconds)
            return entry.value, state

        logger.debug("Cache %s for %s in %s", state.value, key, self._store.name)
        self._store.purge_expired()
        value = await self._load(key, producer, ttl_seconds, stale_window_seconds)
        return value, CacheState.miss

    async def fetch(
        self, key: str, producer: Producer, options: FetchOptions
    ) -> FetchResult:
        value, state = await self.resolve(
            key, producer, options.ttl_seconds, options.stale_window_seconds
        )
        return FetchResult(key=key, value=value, state=state)

    async def drain(self) -> None:
        """Wait for all background refreshes scheduled so far."""
        pending = [t for t in self._refreshing.values() if not t.done()]
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    async def aclose(self) -> None:
        """Cancel outstanding producer work. Used at shutdown."""
        tasks = [*self._loading.values(), *self._refreshing.values()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    # ------------------------------------------------------------------
    # Producer scheduling
    # ------------------------------------------------------------------

    async def _load(
        self, key: str, producer: Producer, ttl: float, window: float
    ) -> Any:
        task = self._loading.get(key)
        if task is None:
            generation = self._store.generation
            task = asyncio.ensure_future(
                self._produce(generation, key, producer, ttl, window)
            )
            self._loading[key] = task
            task.add_done_callback(functools.partial(_forget, self._loading, key))
        # Shielded so one cancelled caller does not cancel the shared call.
        return await asyncio.shield(task)

    async def _produce(
        self, generation: int, key: str, producer: Producer, ttl: float, window: float
    ) -> Any:
        try:
            value = await call_producer(producer)
        except Exception as exc:
            raise ProducerError(key, exc) from exc
        self._store_result(generation, key, value, ttl, window)
        return value

    def _schedule_refresh(
        self, key: str, producer: Producer, ttl: float, window: float
    ) -> None:
        if key in self._refreshing:
            return
        generation = self._store.generation
        task = asyncio.ensure_future(
            self._revalidate(generation, key, producer, ttl, window)
        )
        self._refreshing[key] = task
        task.add_done_callback(functools.partial(_forget, self._refreshing, key))

    async def _revalidate(
        self, generation: int, key: str, producer: Producer, ttl: float, window: float
    ) -> None:
        try:
            value = await call_producer(producer)
        except Exception as exc:
            logger.warning("%s; keeping stale entry", BackgroundRevalidationError(key, exc))
            return
        if self._store_result(generation, key, value, ttl, window):
            logger.debug("Revalidated %s in %s", key, self._store.name)

    def _store_result(
        self, generation: int, key: str, value: Any, ttl: float, window: float
    ) -> bool:
        if self._store.put_if_generation(generation, key, value, ttl, window) is None:
            logger.debug("Dropped result for %s: %s was invalidated", key, self._store.name)
            return False
        return True
