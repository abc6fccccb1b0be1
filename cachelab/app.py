"""
FastAPI application for cachelab.

Lifespan manages the httpx client, the cache engine and the demo service.
Routes: /health, /v1/users, /v1/posts, /v1/products, /v1/routes/{route_id},
/v1/cache, /v1/cache/clear.
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import FastAPI, HTTPException, Query, Request, Response
from fastapi.responses import JSONResponse

from cachelab.config import load_config
from cachelab.engine import CacheEngine
from cachelab.errors import CacheLabError
from cachelab.models import (
    CachedResponse,
    CacheInfoResponse,
    ClearRequest,
    ClearResult,
    PostsResponse,
    RouteSnapshotResponse,
    UsersMode,
    VisitRequest,
)
from cachelab.origin import ALL, Origin, OriginClient, SimulatedOrigin
from cachelab.policy import CacheState, FetchOptions
from cachelab.service import DemoService

logger = logging.getLogger(__name__)

# Global reference set during lifespan
_service: Optional[DemoService] = None

NO_STORE = "no-store, no-cache, must-revalidate"

X_CACHE = {
    CacheState.fresh: "HIT",
    CacheState.stale: "STALE",
    CacheState.expired: "MISS",
    CacheState.miss: "MISS",
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup: load config, create HTTP client, origin, cache engine, service."""
    global _service

    # Configure logging
    log_level = os.environ.get("LOG_LEVEL", "info").upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    config = load_config()
    logger.info(
        "Loaded config: origin=%s, router_cache_capacity=%d, policies=%s",
        config.origin_base_url or "simulated",
        config.router_cache_capacity,
        ", ".join(
            f"{name}={p.ttl_seconds:g}/{p.stale_window_seconds:g}"
            for name, p in config.policies.items()
        ),
    )

    async with httpx.AsyncClient() as http_client:
        origin: Origin
        if config.origin_base_url:
            origin = OriginClient(http_client=http_client, base_url=config.origin_base_url)
        else:
            origin = SimulatedOrigin(delay_seconds=config.origin_delay_seconds)
        engine = CacheEngine(router_cache_capacity=config.router_cache_capacity)
        _service = DemoService(config=config, origin=origin, engine=engine)
        logger.info("cachelab ready")
        try:
            yield
        finally:
            await engine.aclose()

    _service = None


app = FastAPI(
    title="cachelab API",
    version="1.0.0",
    description="""
A simulator of four web framework caching layers, served as JSON.

## Caches

- **Data Cache** (`/v1/users`): TTL with stale-while-revalidate
- **Request Memoization** (`/v1/posts`): duplicate lookups in one request share a result
- **Full Route Cache** (`/v1/products`): long TTL and stale window
- **Router Cache** (`/v1/routes/{route_id}`): LRU route snapshots, no TTL

Every cached response carries an `X-Cache` header (`HIT`, `STALE`, `MISS` or
`BYPASS`) and the `Cache-Control` directive of its policy.
    """.strip(),
    lifespan=lifespan,
    openapi_tags=[
        {"name": "caches", "description": "Demo endpoints, one per caching layer"},
        {"name": "inspection", "description": "Cache report and clearing"},
        {"name": "health", "description": "Service health check"},
    ],
    docs_url="/docs",
    redoc_url="/redoc",
)


# ---------------------------------------------------------------------------
# Error handlers
# ---------------------------------------------------------------------------


@app.exception_handler(CacheLabError)
async def handle_cachelab_error(_request: Request, exc: CacheLabError):
    return JSONResponse({"error": str(exc)}, status_code=exc.status_code)


@app.exception_handler(ValueError)
async def handle_value_error(_request: Request, exc: ValueError):
    return JSONResponse({"error": str(exc)}, status_code=400)


@app.exception_handler(Exception)
async def handle_unexpected(_request: Request, exc: Exception):
    logger.exception("Unhandled error: %s", exc)
    return JSONResponse({"error": "Internal server error"}, status_code=500)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _require_service() -> DemoService:
    if _service is None:
        raise HTTPException(status_code=503, detail="Service not ready")
    return _service


def _set_cache_headers(
    response: Response, result: CachedResponse, options: Optional[FetchOptions]
) -> None:
    """Translate a cache state into X-Cache and Cache-Control headers."""
    if result.cache_type is None or options is None:
        response.headers["Cache-Control"] = "no-store"
        response.headers["X-Cache"] = "BYPASS"
        return
    response.headers["Cache-Control"] = (
        f"public, s-maxage={int(options.ttl_seconds)}, "
        f"stale-while-revalidate={int(options.stale_window_seconds)}"
    )
    response.headers["X-Cache"] = X_CACHE[result.state]


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


@app.get("/health", tags=["health"], summary="Health check")
async def health():
    """Always returns HTTP 200 with a simple JSON response."""
    return {"status": "healthy"}


@app.get(
    "/v1/users",
    response_model=CachedResponse,
    tags=["caches"],
    summary="Users through the Data Cache",
)
async def get_users(
    response: Response,
    mode: UsersMode = UsersMode.cached,
    cache_buster: Optional[str] = None,
):
    """
    Return the user list through the Data Cache.

    - `cached`: users policy (fresh for 10s, then stale for 59s by default)
    - `revalidate`: fresh for `revalidate_seconds`, no stale window
    - `no-store`: always fetched from the origin

    A new `cache_buster` value forces a miss.
    """
    service = _require_service()
    result = await service.get_users(mode=mode, cache_buster=cache_buster)
    _set_cache_headers(response, result, service.users_options(mode))
    return result


@app.get(
    "/v1/posts",
    response_model=PostsResponse,
    tags=["caches"],
    summary="Posts through Request Memoization",
)
async def get_posts(
    response: Response,
    author: list[str] = Query(default=[]),
):
    """
    Look up posts for every `author` query value within one request.

    Repeating an author (`?author=a&author=b&author=a`) reuses the first
    lookup; `producer_invocations` counts the lookups that actually ran.
    """
    result = await _require_service().get_posts(author)
    response.headers["X-Producer-Invocations"] = str(result.producer_invocations)
    return result


@app.get(
    "/v1/products",
    response_model=CachedResponse,
    tags=["caches"],
    summary="Products through the Full Route Cache",
)
async def get_products(
    response: Response,
    category: str = ALL,
    cache_buster: Optional[str] = None,
):
    service = _require_service()
    result = await service.get_products(category=category, cache_buster=cache_buster)
    _set_cache_headers(response, result, service.products_options())
    return result


@app.put(
    "/v1/routes/{route_id}",
    response_model=RouteSnapshotResponse,
    tags=["caches"],
    summary="Record a route visit in the Router Cache",
)
async def visit_route(route_id: str, visit: Optional[VisitRequest] = None):
    """Store form state and scroll position for route_id and make it current."""
    return _require_service().visit_route(route_id, visit or VisitRequest())


@app.get(
    "/v1/routes/{route_id}",
    response_model=RouteSnapshotResponse,
    tags=["caches"],
    summary="Read a route snapshot from the Router Cache",
    responses={404: {"description": "Route is not in the Router Cache"}},
)
async def get_route(route_id: str):
    snapshot = _require_service().get_route(route_id)
    if snapshot is None:
        raise HTTPException(status_code=404, detail=f"Route '{route_id}' not cached")
    return snapshot


@app.get(
    "/v1/cache",
    response_model=CacheInfoResponse,
    tags=["inspection"],
    summary="Report what is cached right now",
)
async def cache_info(response: Response):
    response.headers["Cache-Control"] = NO_STORE
    return _require_service().cache_info()


@app.post(
    "/v1/cache/clear",
    response_model=ClearResult,
    tags=["inspection"],
    summary="Clear caches by type",
)
async def clear_cache(
    response: Response,
    body: Optional[ClearRequest] = None,
):
    """Body `{"cacheTypes": ["dataCache", ...]}`; defaults to `["all"]`."""
    response.headers["Cache-Control"] = NO_STORE
    return _require_service().clear((body or ClearRequest()).cache_types)
