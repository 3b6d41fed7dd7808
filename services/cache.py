"""Cache key helpers and TTL defaults shared by the in-process caches."""

from __future__ import annotations

from dataclasses import dataclass


class CacheKeyPrefix:
    """Cache key prefixes for different data types."""

    GEOCODE = "geocode"
    REVERSE = "reverse"
    SUGGESTIONS = "suggestions"


class CacheTTL:
    """Default TTL values in seconds for different data types."""

    GEOCODING = 24 * 60 * 60
    SUGGESTIONS = 60 * 60
    SEARCH_RESULTS = 30 * 60


@dataclass(frozen=True, slots=True)
class LookupCacheStats:
    """Point-in-time statistics of the geocoding caches."""

    total_entries: int
    suggestion_entries: int
    hit_count: int
    miss_count: int
    hit_rate: float


def make_cache_key(prefix: str, *parts: object) -> str:
    """
    Build a normalized cache key.

    Example:
        >>> make_cache_key(CacheKeyPrefix.GEOCODE, "  New York ")
        'geocode:new york'
    """
    normalized = ":".join(str(part).strip().lower() for part in parts)
    return f"{prefix}:{normalized}"
