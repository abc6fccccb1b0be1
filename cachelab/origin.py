"""
Data origins behind the simulated caches.

OriginClient fetches demo payloads from an HTTP origin with httpx.
SimulatedOrigin produces the same payloads in-process after a delay.
OriginClient raises OriginError when the origin fails or answers non-200.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from collections import Counter
from datetime import datetime, timezone
from typing import Protocol

import httpx

from cachelab.errors import OriginError

logger = logging.getLogger(__name__)

ALL = "all"


class Origin(Protocol):
    async def fetch_users(self) -> dict: ...

    async def fetch_posts(self, author: str = ALL) -> dict: ...

    async def fetch_products(self, category: str = ALL) -> dict: ...


class OriginClient:
    """Async client for an HTTP data origin."""

    def __init__(self, http_client: httpx.AsyncClient, base_url: str) -> None:
        self._http = http_client
        self._base_url = base_url.rstrip("/")

    async def fetch_users(self) -> dict:
        return await self._fetch("/users", {})

    async def fetch_posts(self, author: str = ALL) -> dict:
        return await self._fetch("/posts", {"author": author})

    async def fetch_products(self, category: str = ALL) -> dict:
        return await self._fetch("/products", {"category": category})

    async def _fetch(self, path: str, params: dict) -> dict:
        """Make an HTTP GET request to the origin and return the JSON body."""
        url = f"{self._base_url}{path}"
        try:
            response = await self._http.get(url, params=params, timeout=10.0)
        except httpx.HTTPError as exc:
            logger.error("Origin request failed: %s %s -> %s", "GET", url, exc)
            raise OriginError(f"Connection error: {exc}") from exc

        if response.status_code != 200:
            raise OriginError(
                f"Origin returned {response.status_code}",
                upstream_status=response.status_code,
            )

        return response.json()


_USERS = [
    {"id": 1, "name": "Taro Tanaka", "email": "tanaka@example.com"},
    {"id": 2, "name": "Hanako Sato", "email": "sato@example.com"},
    {"id": 3, "name": "Ichiro Suzuki", "email": "suzuki@example.com"},
]

_POSTS = [
    (1, "What's new in the framework", "Taro Tanaka"),
    (2, "Making the most of caching", "Hanako Sato"),
    (3, "Performance tuning", "Ichiro Suzuki"),
]

_PRODUCTS = [
    {"id": 1, "name": "Laptop", "price": 150000, "category": "Electronics"},
    {"id": 2, "name": "Smartphone", "price": 80000, "category": "Electronics"},
    {"id": 3, "name": "Headphones", "price": 25000, "category": "Electronics"},
]


class SimulatedOrigin:
    """
    In-process origin with artificial latency.

    Every payload carries a unique id and the time it was generated, so a
    cached response can be told apart from a fresh one. `calls` counts
    invocations per endpoint.
    """

    def __init__(self, delay_seconds: float = 0.5) -> None:
        self._delay = delay_seconds
        self.calls: Counter[str] = Counter()

    async def fetch_users(self) -> dict:
        await self._respond("users")
        return self._payload("users", {"users": list(_USERS)})

    async def fetch_posts(self, author: str = ALL) -> dict:
        await self._respond("posts")
        generated = datetime.now(timezone.utc).isoformat()
        posts = [
            {"id": pid, "title": title, "author": name, "created_at": generated}
            for pid, title, name in _POSTS
            if author == ALL or name == author
        ]
        return self._payload("posts", {"posts": posts})

    async def fetch_products(self, category: str = ALL) -> dict:
        await self._respond("products")
        products = [
            p for p in _PRODUCTS if category == ALL or p["category"] == category
        ]
        return self._payload("products", {"products": products})

    async def _respond(self, endpoint: str) -> None:
        self.calls[endpoint] += 1
        logger.debug("Simulated origin call #%d to %s", self.calls[endpoint], endpoint)
        if self._delay:
            await asyncio.sleep(self._delay)

    @staticmethod
    def _payload(endpoint: str, data: dict) -> dict:
        return {
            "id": f"{endpoint}-{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}",
            "message": f"Fetched {endpoint}",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "data": data,
        }
