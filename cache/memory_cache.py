"""In-process TTL cache in front of the lyrics store."""

import logging
from contextvars import ContextVar

from cachetools import TTLCache  # type: ignore[import-untyped]

logger = logging.getLogger(__name__)

# Registry of all caches for bulk operations
_cache_registry: list[TTLCache] = []

_lyrics_cache: TTLCache | None = None

# Per-request flag to bypass all caches (in-memory and store).
_skip_cache_var: ContextVar[bool] = ContextVar("skip_cache", default=False)


def set_skip_cache(skip: bool) -> None:
    """Set the per-request skip_cache flag."""
    _skip_cache_var.set(skip)


def should_skip_cache() -> bool:
    """Check whether caches should be bypassed for the current request."""
    return _skip_cache_var.get(False)


def create_ttl_cache(maxsize: int, ttl: int) -> TTLCache:
    """Create a TTL cache and register it for bulk operations.

    Args:
        maxsize: Maximum number of entries in the cache
        ttl: Time-to-live in seconds for cache entries

    Returns:
        TTLCache instance
    """
    cache = TTLCache(maxsize=maxsize, ttl=ttl)
    _cache_registry.append(cache)
    return cache


def clear_all_caches() -> None:
    """Clear all registered caches and reset the lazy lyrics cache."""
    global _lyrics_cache
    for cache in _cache_registry:
        cache.clear()
    _cache_registry.clear()
    _lyrics_cache = None


def get_lyrics_cache() -> TTLCache:
    """Get or create the lyrics entry cache using settings."""
    global _lyrics_cache
    if _lyrics_cache is None:
        from config.settings import get_settings

        settings = get_settings()
        _lyrics_cache = create_ttl_cache(
            maxsize=settings.memory_cache_maxsize,
            ttl=min(settings.memory_cache_ttl, settings.cache_ttl_seconds),
        )
    return _lyrics_cache
