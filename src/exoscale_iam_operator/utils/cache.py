"""TTL cache used for provider API clients."""

from __future__ import annotations

import os
import threading
import time
from typing import Any, Optional

# Cache with TTL support
_cache: dict[str, tuple[Any, float]] = {}
_cache_ttl: float = float(os.getenv("CLIENT_CACHE_TTL_SECONDS", "300.0"))
_lock = threading.Lock()


def get_cached_object(key: str) -> Optional[Any]:
    """Get an object from cache if it hasn't expired.

    Args:
        key: Cache key (see make_cache_key)

    Returns:
        Cached object or None if not found or expired
    """
    with _lock:
        if key not in _cache:
            return None

        obj, timestamp = _cache[key]
        if time.time() - timestamp > _cache_ttl:
            del _cache[key]
            return None

        return obj


def set_cached_object(key: str, obj: Any) -> None:
    """Store an object in cache with current timestamp."""
    with _lock:
        _cache[key] = (obj, time.time())


def invalidate_cache(pattern: Optional[str] = None) -> None:
    """Invalidate cache entries.

    Args:
        pattern: Optional substring to match keys (if None, clears all)
    """
    with _lock:
        if pattern is None:
            _cache.clear()
        else:
            for key in [key for key in _cache if pattern in key]:
                del _cache[key]


def make_cache_key(kind: str, name: str, version: str = "") -> str:
    """Create a cache key for a cluster-scoped resource.

    Args:
        kind: Resource kind (e.g., "ProviderConfig")
        name: Resource name
        version: Identity of the configuration revision (e.g. resourceVersion)

    Returns:
        Cache key string
    """
    return f"{kind}:{name}:{version}"
