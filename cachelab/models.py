"""
Pydantic models for the cachelab API.

Inspector payloads use camelCase field names (perType, clearedCount, ...)
to match the cache-info and cache-clear contracts; demo payloads are
snake_case.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from cachelab.policy import CacheState


class CacheType(str, Enum):
    data_cache = "dataCache"
    full_route_cache = "fullRouteCache"
    router_cache = "routerCache"
    request_memoization = "requestMemoization"


class UsersMode(str, Enum):
    cached = "cached"
    revalidate = "revalidate"
    no_store = "no-store"


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Inspector
# ---------------------------------------------------------------------------


class CacheTypeStats(CamelModel):
    count: int = 0
    oldest_age_seconds: Optional[float] = None
    error: Optional[str] = Field(
        default=None, description="Set when this cache could not be read"
    )


class CacheReport(CamelModel):
    """Point-in-time view of every simulated cache."""

    timestamp: datetime
    per_type: dict[CacheType, CacheTypeStats]
    total_entries: int
    oldest_entry_age_seconds: Optional[float] = None


class CacheTypeInfo(CamelModel):
    location: str
    storage: str
    description: str


class CacheInfoResponse(CamelModel):
    report: CacheReport
    cache_types: dict[CacheType, CacheTypeInfo]


class ClearRequest(CamelModel):
    cache_types: list[str] = Field(
        default_factory=lambda: ["all"],
        description='Cache type names to clear, or ["all"]',
    )


class ClearResult(CamelModel):
    timestamp: datetime
    cleared_count: int
    cleared_types: list[CacheType]


# ---------------------------------------------------------------------------
# Demo endpoints
# ---------------------------------------------------------------------------


class CachedResponse(BaseModel):
    """A payload served through one of the TTL caches."""

    cache_type: Optional[CacheType] = Field(
        description="Cache the payload went through; null when bypassed"
    )
    key: str
    state: CacheState
    served_at: datetime
    data: Any


class MemoizedCall(BaseModel):
    author: str
    key: str
    state: CacheState
    data: Any


class PostsResponse(BaseModel):
    scope_id: str
    producer_invocations: int = Field(
        ge=0, description="Lookups actually run in this request; the rest were memoized"
    )
    calls: list[MemoizedCall]
    served_at: datetime


class VisitRequest(BaseModel):
    form_state: dict[str, Any] = Field(default_factory=dict)
    scroll_position: float = Field(default=0, ge=0)


class RouteSnapshotResponse(BaseModel):
    route_id: str
    form_state: dict[str, Any]
    scroll_position: float
    visited_seconds_ago: float
    current: bool
