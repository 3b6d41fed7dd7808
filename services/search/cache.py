"""Cache of processed search results keyed by normalized search parameters."""

from __future__ import annotations

import asyncio
import threading
import time
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from core.logging import get_logger
from services.cache import CacheTTL
from services.geocoding.distance import DistanceUnit, calculate_distance
from services.providers.base import SearchParameters, SearchType

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Iterable

    from services.geocoding.base import Coordinates
    from services.providers.base import Opportunity

logger = get_logger(__name__)

DEFAULT_MAX_CACHE_SIZE = 100
DEFAULT_KEY_LIMIT = 50
KEY_PRECISION = 3
# Two cached searches closer than this (in km) are the same location.
SAME_LOCATION_KM = 0.1
APPROX_BYTES_PER_OPPORTUNITY = 1024


@dataclass(frozen=True, slots=True)
class CacheMetadata:
    """Summary stored next to cached opportunities."""

    total_results: int
    sources: tuple[str, ...]
    response_time: float


@dataclass(slots=True)
class CacheEntry:
    """
    One cached search.

    Attributes:
        key: Normalized cache key.
        data: Cached opportunities.
        metadata: Summary of the original search.
        params: Parameters the search ran with.
        timestamp: When the entry was stored (epoch seconds).
        ttl: Seconds the entry stays valid.
        access_count: Number of reads plus the initial write.
        last_accessed: Time of the latest read or write (epoch seconds).
    """

    key: str
    data: tuple[Opportunity, ...]
    metadata: CacheMetadata
    params: SearchParameters
    timestamp: float
    ttl: float
    access_count: int = 1
    last_accessed: float = 0.0

    def is_expired(self, now: float) -> bool:
        """Check whether the entry outlived its TTL."""
        return now - self.timestamp > self.ttl


@dataclass(frozen=True, slots=True)
class CacheStats:
    """Point-in-time statistics of the results cache."""

    total_entries: int
    hit_count: int
    miss_count: int
    hit_rate: float
    total_size: int
    oldest_entry: datetime | None = None
    newest_entry: datetime | None = None


@dataclass(frozen=True, slots=True)
class InvalidationCriteria:
    """
    Fields selecting entries to invalidate; an entry matching any is removed.

    Attributes:
        location: Entries searched within 0.1 km of this point.
        radius: Entries searched with exactly this radius.
        causes: Entries sharing at least one cause.
        type: Entries searched for this opportunity type.
    """

    location: Coordinates | None = None
    radius: float | None = None
    causes: tuple[str, ...] | None = None
    type: SearchType | None = None


@dataclass(frozen=True, slots=True)
class WarmLocation:
    """A popular search to pre-populate."""

    coordinates: Coordinates
    radius: float


type WarmSearch = Callable[
    [SearchParameters], Awaitable[tuple[list[Opportunity], CacheMetadata]]
]


def _format_number(value: float) -> str:
    if float(value).is_integer():
        return str(int(value))
    return repr(float(value))


class ResultsCache:
    """
    In-process store of processed search results.

    Entries expire after their TTL and the least recently accessed entry is
    evicted when the cache is full. All operations hold one lock and never
    await while holding it.
    """

    def __init__(
        self,
        default_ttl: float = CacheTTL.SEARCH_RESULTS,
        max_cache_size: int = DEFAULT_MAX_CACHE_SIZE,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """
        Initialize the cache.

        Args:
            default_ttl: Entry lifetime in seconds.
            max_cache_size: Maximum number of entries.
            clock: Wall-clock time source in seconds.
        """
        if default_ttl <= 0:
            msg = "default_ttl must be positive"
            raise ValueError(msg)
        if max_cache_size < 1:
            msg = "max_cache_size must be positive"
            raise ValueError(msg)

        self._default_ttl = default_ttl
        self._max_cache_size = max_cache_size
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._hits = 0
        self._misses = 0
        self._lock = threading.Lock()

    @property
    def default_ttl(self) -> float:
        """Return the lifetime of new entries in seconds."""
        return self._default_ttl

    @property
    def max_cache_size(self) -> int:
        """Return the maximum number of entries."""
        return self._max_cache_size

    @staticmethod
    def make_key(params: SearchParameters) -> str:
        """
        Build the cache key for search parameters.

        Coordinates are rounded to three decimals, causes are sorted and
        keywords are lower-cased with whitespace collapsed, so equivalent
        searches share a key.

        Example:
            >>> from services.geocoding.base import Coordinates
            >>> ResultsCache.make_key(
            ...     SearchParameters(Coordinates(40.71284, -74.00601), 25, causes=("health", "animals"))
            ... )
            'lat:40.713|lng:-74.006|radius:25|type:both|causes:animals,health|limit:50|keywords:'
        """
        parts = (
            f"lat:{_format_number(round(params.location.latitude, KEY_PRECISION))}",
            f"lng:{_format_number(round(params.location.longitude, KEY_PRECISION))}",
            f"radius:{_format_number(params.radius)}",
            f"type:{params.type.value}",
            f"causes:{','.join(sorted(params.causes))}",
            f"limit:{params.limit or DEFAULT_KEY_LIMIT}",
            f"keywords:{' '.join((params.keywords or '').lower().split())}",
        )
        return "|".join(parts)

    def set(
        self,
        params: SearchParameters,
        data: Iterable[Opportunity],
        metadata: CacheMetadata,
        ttl: float | None = None,
    ) -> None:
        """Store results for ``params``, replacing any previous entry."""
        key = self.make_key(params)
        opportunities = tuple(data)
        with self._lock:
            now = self._clock()
            self._purge_expired(now)
            if key not in self._entries:
                self._evict(self._max_cache_size - 1)
            self._entries[key] = CacheEntry(
                key=key,
                data=opportunities,
                metadata=metadata,
                params=params,
                timestamp=now,
                ttl=ttl if ttl is not None else self._default_ttl,
                access_count=1,
                last_accessed=now,
            )
        logger.debug("Search results cached", key=key, opportunities=len(opportunities))

    def get(self, params: SearchParameters) -> list[Opportunity] | None:
        """
        Return cached results for ``params``.

        Returns:
            The cached opportunities, or None when absent or expired.
        """
        key = self.make_key(params)
        with self._lock:
            now = self._clock()
            entry = self._entries.get(key)
            if entry is None or entry.is_expired(now):
                if entry is not None:
                    del self._entries[key]
                self._misses += 1
                logger.debug("Cache miss", key=key, expired=entry is not None)
                return None
            entry.access_count += 1
            entry.last_accessed = now
            self._hits += 1
            logger.debug("Cache hit", key=key, opportunities=len(entry.data))
            return list(entry.data)

    def has(self, params: SearchParameters) -> bool:
        """Check for a live entry without touching statistics."""
        key = self.make_key(params)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return False
            if entry.is_expired(self._clock()):
                del self._entries[key]
                return False
            return True

    def get_entry(self, params: SearchParameters) -> CacheEntry | None:
        """Return the raw entry for ``params``, expired or not."""
        with self._lock:
            return self._entries.get(self.make_key(params))

    def get_keys(self) -> list[str]:
        """Return the stored keys."""
        with self._lock:
            return list(self._entries)

    def clear(self) -> None:
        """Remove every entry and reset statistics."""
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
            self._hits = 0
            self._misses = 0
        logger.info("Results cache cleared", entries=count)

    def invalidate(self, criteria: InvalidationCriteria) -> int:
        """
        Remove entries matching any of the supplied criteria.

        Returns:
            Number of entries removed.
        """
        with self._lock:
            matching = [
                key for key, entry in self._entries.items() if self._matches(entry.params, criteria)
            ]
            for key in matching:
                del self._entries[key]
        if matching:
            logger.info("Cache entries invalidated", count=len(matching))
        return len(matching)

    @staticmethod
    def _matches(params: SearchParameters, criteria: InvalidationCriteria) -> bool:
        if criteria.location is not None:
            distance = calculate_distance(
                criteria.location, params.location, DistanceUnit.KILOMETERS
            )
            if distance < SAME_LOCATION_KM:
                return True
        if criteria.radius is not None and params.radius == criteria.radius:
            return True
        if criteria.causes and set(criteria.causes) & set(params.causes):
            return True
        return criteria.type is not None and params.type is criteria.type

    def get_stats(self) -> CacheStats:
        """Return statistics after dropping expired entries."""
        with self._lock:
            self._purge_expired(self._clock())
            total = self._hits + self._misses
            timestamps = [entry.timestamp for entry in self._entries.values()]
            return CacheStats(
                total_entries=len(self._entries),
                hit_count=self._hits,
                miss_count=self._misses,
                hit_rate=round(self._hits / total, 2) if total else 0.0,
                total_size=sum(
                    len(entry.data) * APPROX_BYTES_PER_OPPORTUNITY
                    for entry in self._entries.values()
                ),
                oldest_entry=datetime.fromtimestamp(min(timestamps), UTC) if timestamps else None,
                newest_entry=datetime.fromtimestamp(max(timestamps), UTC) if timestamps else None,
            )

    def set_default_ttl(self, ttl: float) -> None:
        """Change the lifetime of entries stored from now on."""
        if ttl <= 0:
            msg = "ttl must be positive"
            raise ValueError(msg)
        with self._lock:
            self._default_ttl = ttl
        logger.info("Cache default TTL changed", ttl=ttl)

    def set_max_cache_size(self, max_size: int) -> None:
        """Change the capacity, evicting immediately if the cache is too large."""
        if max_size < 1:
            msg = "max_size must be positive"
            raise ValueError(msg)
        with self._lock:
            self._max_cache_size = max_size
            self._evict(max_size)
        logger.info("Cache max size changed", max_size=max_size)

    async def warm_cache(
        self,
        locations: Iterable[WarmLocation],
        search: WarmSearch,
    ) -> int:
        """
        Pre-populate the cache for popular locations.

        Failures are logged and skipped.

        Returns:
            Number of locations cached.
        """
        locations = list(locations)
        logger.info("Warming results cache", locations=len(locations))

        async def warm(location: WarmLocation) -> bool:
            params = SearchParameters(
                location=location.coordinates,
                radius=location.radius,
                type=SearchType.BOTH,
                limit=DEFAULT_KEY_LIMIT,
            )
            try:
                opportunities, metadata = await search(params)
            except Exception as e:
                logger.warning(
                    "Failed to warm cache for location",
                    latitude=location.coordinates.latitude,
                    longitude=location.coordinates.longitude,
                    error=str(e),
                )
                return False
            self.set(params, opportunities, metadata)
            return True

        outcomes = await asyncio.gather(*(warm(location) for location in locations))
        warmed = sum(outcomes)
        logger.info("Cache warming completed", warmed=warmed)
        return warmed

    def __len__(self) -> int:
        """Return the number of stored entries."""
        return len(self._entries)

    def _purge_expired(self, now: float) -> None:
        expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.debug("Expired cache entries removed", count=len(expired))

    def _evict(self, keep: int) -> None:
        """Evict least recently accessed entries until at most ``keep`` remain."""
        while len(self._entries) > keep:
            oldest = min(self._entries.values(), key=lambda entry: entry.last_accessed)
            del self._entries[oldest.key]
            logger.debug("Evicted least recently used entry", key=oldest.key)
