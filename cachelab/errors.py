"""
Exceptions raised by the cache simulator.

Each carries the HTTP status code the API layer answers with.
"""

from __future__ import annotations

from typing import Optional


class CacheLabError(Exception):
    """Base exception with HTTP status code."""

    def __init__(self, message: str, status_code: int = 500):
        super().__init__(message)
        self.status_code = status_code


class InvalidKeyError(CacheLabError):
    def __init__(self, key: object):
        super().__init__(f"Invalid cache key: {key!r}", status_code=400)
        self.key = key


class ProducerError(CacheLabError):
    """A producer failed while a caller was waiting on it."""

    def __init__(self, key: str, cause: BaseException):
        super().__init__(f"Producer for {key} failed: {cause}", status_code=502)
        self.key = key
        self.cause = cause


class BackgroundRevalidationError(CacheLabError):
    """
    A producer failed during a stale-while-revalidate refresh.

    Only ever logged; the stale entry stays in place.
    """

    def __init__(self, key: str, cause: BaseException):
        super().__init__(f"Background refresh for {key} failed: {cause}")
        self.key = key
        self.cause = cause


class ScopeClosedError(CacheLabError):
    def __init__(self, scope_id: str):
        super().__init__(f"Request scope {scope_id} is closed", status_code=409)
        self.scope_id = scope_id


class OriginError(CacheLabError):
    """Raised when the data origin cannot be reached or answers non-200."""

    def __init__(self, message: str, upstream_status: Optional[int] = None):
        super().__init__(message, status_code=502)
        self.upstream_status = upstream_status
