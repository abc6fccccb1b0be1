"""
Request memoization.

A RequestScope lives for one logical request. Within it, calls sharing a
key run their producer at most once; later and concurrent callers await
the same task. Nothing is visible outside the scope that created it.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Callable, Optional, TypeVar

from cachelab.clock import Clock, SystemClock
from cachelab.errors import ProducerError, ScopeClosedError
from cachelab.keys import validate_key
from cachelab.policy import Producer, call_producer

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _discard_result(task: asyncio.Task) -> None:
    # Outcome of a task that outlived its scope.
    if not task.cancelled():
        task.exception()


class RequestScope:
    """Key -> task mapping for one request."""

    def __init__(self, scope_id: str, opened_at: float) -> None:
        self.id = scope_id
        self.opened_at = opened_at
        self.producer_calls = 0
        self._tasks: dict[str, asyncio.Task] = {}
        self._created: dict[str, float] = {}
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def __len__(self) -> int:
        return len(self._tasks)

    def keys(self) -> list[str]:
        return list(self._tasks)

    def created_at(self) -> list[float]:
        return list(self._created.values())

    def get(self, key: str) -> Optional[asyncio.Task]:
        return self._tasks.get(key)

    def add(self, key: str, task: asyncio.Task, created_at: float) -> None:
        """Register the producer task for key and count it as a producer call."""
        self._tasks[key] = task
        self._created[key] = created_at
        self.producer_calls += 1

    def drop(self, key: str) -> None:
        """Forget key; a task still running finishes and its result is discarded."""
        task = self._tasks.pop(key)
        self._created.pop(key, None)
        task.add_done_callback(_discard_result)

    def close(self) -> None:
        self._closed = True
        for key in list(self._tasks):
            self.drop(key)


class RequestScopeMemoizer:
    """Creates request scopes and deduplicates calls within them."""

    def __init__(self, clock: Optional[Clock] = None) -> None:
        self._clock = clock or SystemClock()
        self._open: dict[str, RequestScope] = {}

    @property
    def open_scopes(self) -> list[RequestScope]:
        return list(self._open.values())

    @asynccontextmanager
    async def scope(self) -> AsyncIterator[RequestScope]:
        """Open a scope for the duration of an `async with` block."""
        scope = RequestScope(uuid.uuid4().hex, self._clock.monotonic())
        self._open[scope.id] = scope
        try:
            yield scope
        finally:
            self._open.pop(scope.id, None)
            scope.close()
            logger.debug(
                "Closed scope %s after %d producer calls", scope.id, scope.producer_calls
            )

    async def with_scope(self, body: Callable[[RequestScope], Awaitable[T]]) -> T:
        """Run body(scope) inside a fresh scope and return its result."""
        async with self.scope() as scope:
            return await body(scope)

    async def memoize(self, scope: RequestScope, key: str, producer: Producer) -> Any:
        """
        Return the value of producer for key, calling it at most once per scope.

        Failures are memoized too: every caller for the key gets the same
        ProducerError.
        """
        if scope.closed:
            raise ScopeClosedError(scope.id)
        validate_key(key)

        task = scope.get(key)
        if task is None:
            task = asyncio.ensure_future(self._produce(key, producer))
            scope.add(key, task, self._clock.monotonic())
        return await asyncio.shield(task)

    def invalidate(self, predicate: Callable[[str], bool]) -> int:
        """Drop matching keys from every open scope. Returns the count removed."""
        removed = 0
        for scope in list(self._open.values()):
            for key in scope.keys():
                if predicate(key):
                    scope.drop(key)
                    removed += 1
        return removed

    @staticmethod
    async def _produce(key: str, producer: Producer) -> Any:
        try:
            return await call_producer(producer)
        except ProducerError:
            raise
        except Exception as exc:
            raise ProducerError(key, exc) from exc
