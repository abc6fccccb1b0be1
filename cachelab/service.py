"""
Demo service: orchestrates the data origin and the cache engine.

Each method exercises one caching layer and returns a response model that
records how the payload was served.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from typing import Optional, Sequence

from cachelab.config import AppConfig
from cachelab.engine import CacheEngine
from cachelab.inspector import CACHE_TYPE_INFO
from cachelab.keys import make_key
from cachelab.models import (
    CachedResponse,
    CacheInfoResponse,
    CacheType,
    ClearResult,
    MemoizedCall,
    PostsResponse,
    RouteSnapshotResponse,
    UsersMode,
    VisitRequest,
)
from cachelab.navigation import RouteSnapshot
from cachelab.origin import ALL, Origin
from cachelab.policy import CacheState, FetchOptions, FetchResult

logger = logging.getLogger(__name__)


class DemoService:
    """
    Main service class.

    Users go through the Data Cache, products through the Full Route Cache,
    posts through Request Memoization on top of the Data Cache, and route
    visits through the Router Cache.
    """

    def __init__(self, config: AppConfig, origin: Origin, engine: CacheEngine) -> None:
        self._config = config
        self._origin = origin
        self._engine = engine

    @property
    def engine(self) -> CacheEngine:
        return self._engine

    # ------------------------------------------------------------------
    # Data Cache
    # ------------------------------------------------------------------

    def users_options(self, mode: UsersMode) -> Optional[FetchOptions]:
        """Cache options for a users mode; None means the cache is bypassed."""
        if mode is UsersMode.no_store:
            return None
        if mode is UsersMode.revalidate:
            return FetchOptions(ttl_seconds=self._config.revalidate_seconds)
        return self._config.policy("users").options()

    async def get_users(
        self, mode: UsersMode = UsersMode.cached, cache_buster: Optional[str] = None
    ) -> CachedResponse:
        options = self.users_options(mode)
        args = {"cache_buster": cache_buster}
        if mode is UsersMode.revalidate:
            args["revalidate"] = self._config.revalidate_seconds
        key = make_key("users", args)

        if options is None:
            data = await self._origin.fetch_users()
            return CachedResponse(
                cache_type=None,
                key=key,
                state=CacheState.miss,
                served_at=self._engine.clock.now(),
                data=data,
            )

        result = await self._engine.data_cache.fetch(key, self._origin.fetch_users, options)
        return self._cached(CacheType.data_cache, result)

    # ------------------------------------------------------------------
    # Request Memoization
    # ------------------------------------------------------------------

    async def get_posts(self, authors: Sequence[str] = ()) -> PostsResponse:
        """
        Fetch posts for each author inside one request scope.

        Repeated authors share a single fetch. Each distinct author goes
        through the Data Cache with the posts policy.
        """
        authors = list(authors) or [ALL]
        options = self._config.policy("posts").options()
        memoizer = self._engine.memoizer

        async with memoizer.scope() as scope:
            keys = [make_key("posts", {"author": author}) for author in authors]
            results: list[FetchResult] = await asyncio.gather(
                *(
                    memoizer.memoize(
                        scope,
                        key,
                        functools.partial(
                            self._engine.data_cache.fetch,
                            key,
                            functools.partial(self._origin.fetch_posts, author),
                            options,
                        ),
                    )
                    for key, author in zip(keys, authors)
                )
            )
            logger.info(
                "Served %d post lookups with %d fetches in scope %s",
                len(authors),
                scope.producer_calls,
                scope.id,
            )
            return PostsResponse(
                scope_id=scope.id,
                producer_invocations=scope.producer_calls,
                calls=[
                    MemoizedCall(author=author, key=key, state=result.state, data=result.value)
                    for author, key, result in zip(authors, keys, results)
                ],
                served_at=self._engine.clock.now(),
            )

    # ------------------------------------------------------------------
    # Full Route Cache
    # ------------------------------------------------------------------

    def products_options(self) -> FetchOptions:
        return self._config.policy("products").options()

    async def get_products(
        self, category: str = ALL, cache_buster: Optional[str] = None
    ) -> CachedResponse:
        key = make_key("products", {"category": category, "cache_buster": cache_buster})
        result = await self._engine.full_route_cache.fetch(
            key,
            functools.partial(self._origin.fetch_products, category),
            self.products_options(),
        )
        return self._cached(CacheType.full_route_cache, result)

    # ------------------------------------------------------------------
    # Router Cache
    # ------------------------------------------------------------------

    def visit_route(self, route_id: str, visit: VisitRequest) -> RouteSnapshotResponse:
        snapshot = self._engine.navigation.visit(
            route_id, visit.form_state, visit.scroll_position
        )
        return self._snapshot_response(snapshot)

    def get_route(self, route_id: str) -> Optional[RouteSnapshotResponse]:
        """Return the cached snapshot for route_id, or None if not cached."""
        snapshot = self._engine.navigation.get_snapshot(route_id)
        if snapshot is None:
            return None
        return self._snapshot_response(snapshot)

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------

    def cache_info(self) -> CacheInfoResponse:
        return CacheInfoResponse(
            report=self._engine.inspector.report(), cache_types=CACHE_TYPE_INFO
        )

    def clear(self, cache_types: Sequence[str]) -> ClearResult:
        return self._engine.inspector.invalidate(list(cache_types))

    # ------------------------------------------------------------------

    def _cached(self, cache_type: CacheType, result: FetchResult) -> CachedResponse:
        return CachedResponse(
            cache_type=cache_type,
            key=result.key,
            state=result.state,
            served_at=self._engine.clock.now(),
            data=result.value,
        )

    def _snapshot_response(self, snapshot: RouteSnapshot) -> RouteSnapshotResponse:
        navigation = self._engine.navigation
        return RouteSnapshotResponse(
            route_id=snapshot.route_id,
            form_state=dict(snapshot.form_state),
            scroll_position=snapshot.scroll_position,
            visited_seconds_ago=self._engine.clock.monotonic() - snapshot.visited_at,
            current=navigation.current_route == snapshot.route_id,
        )
