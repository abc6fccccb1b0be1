"""Cache key derivation."""

from __future__ import annotations

import json
from typing import Any, Mapping, Optional

from cachelab.errors import InvalidKeyError


def validate_key(key: Any) -> str:
    """Return key unchanged, or raise InvalidKeyError if it is not a usable string."""
    if not isinstance(key, str) or not key.strip():
        raise InvalidKeyError(key)
    return key


def make_key(operation: str, args: Optional[Mapping[str, Any]] = None) -> str:
    """
    Build a canonical key from an operation name and its arguments.

    Arguments are serialized with sorted keys, so {"a": 1, "b": 2} and
    {"b": 2, "a": 1} produce the same key. None-valued arguments are
    dropped, matching an omitted query parameter.
    """
    validate_key(operation)
    cleaned = {k: v for k, v in (args or {}).items() if v is not None}
    canonical = json.dumps(cleaned, sort_keys=True, separators=(",", ":"), default=str)
    return f"{operation.strip()}:{canonical}"
