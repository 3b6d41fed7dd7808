"""Geocoding through the OpenStreetMap Nominatim API."""

from __future__ import annotations

import asyncio
import threading
import time
from typing import TYPE_CHECKING, Any

import httpx
from cachetools import TTLCache

from core.config import GeocodingSettings
from core.logging import get_logger
from services.cache import CacheKeyPrefix, LookupCacheStats, make_cache_key
from services.geocoding.base import (
    Coordinates,
    GeocodingError,
    LocationInfo,
    LocationSuggestion,
)

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Iterable

logger = get_logger(__name__)

MAX_SUGGESTIONS = 10
MIN_SUGGESTION_QUERY = 2

# Nominatim addresses name the locality by settlement size.
CITY_FIELDS = ("city", "town", "village", "hamlet")
STATE_FIELDS = ("state", "region", "province")


def _first_of(address: dict[str, Any], fields: Iterable[str]) -> str | None:
    for field_name in fields:
        value = address.get(field_name)
        if value:
            return str(value)
    return None


def parse_location_info(item: dict[str, Any], fallback: str) -> LocationInfo:
    """Build a LocationInfo from a Nominatim result's ``address`` block."""
    address = item.get("address") or {}
    return LocationInfo(
        city=_first_of(address, CITY_FIELDS) or "Unknown",
        state=_first_of(address, STATE_FIELDS),
        country=address.get("country") or "Unknown",
        formatted_address=item.get("display_name") or fallback,
    )


class NominatimGeocoder:
    """
    GeocodingClient backed by Nominatim.

    Requests are spaced at least ``request_delay`` seconds apart, as the
    Nominatim usage policy requires. Results are cached independently of
    search results: lookups for a day, suggestions for an hour.
    """

    def __init__(
        self,
        settings: GeocodingSettings | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """
        Initialize the geocoder.

        Args:
            settings: Endpoint, user agent, throttling and cache settings.
            clock: Monotonic time source for throttling and cache expiry.
            sleep: Coroutine used to wait between requests.
        """
        self._settings = settings or GeocodingSettings()
        # Lookups and reverse lookups share one cache; suggestions expire sooner.
        self._lookups: TTLCache[str, Any] = TTLCache(
            maxsize=self._settings.max_cache_size,
            ttl=self._settings.cache_ttl,
            timer=clock,
        )
        self._suggestions: TTLCache[str, Any] = TTLCache(
            maxsize=self._settings.max_cache_size,
            ttl=self._settings.suggestion_cache_ttl,
            timer=clock,
        )
        self._cache_lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._clock = clock
        self._sleep = sleep
        self._client: httpx.AsyncClient | None = None
        self._throttle_lock = asyncio.Lock()
        self._last_request: float | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self._settings.base_url,
                headers={"User-Agent": self._settings.user_agent},
                timeout=self._settings.timeout,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def geocode_location(self, address: str) -> Coordinates:
        """
        Resolve an address to coordinates.

        Raises:
            GeocodingError: If the address is empty, unknown, or the request fails.
        """
        if not address.strip():
            msg = "Address cannot be empty"
            raise GeocodingError(msg)

        key = make_cache_key(CacheKeyPrefix.GEOCODE, address)
        cached = self._cache_get(self._lookups, key)
        if cached is not None:
            return cached

        data = await self._request(
            "/search",
            {"q": address, "format": "json", "limit": 1, "addressdetails": 1},
            operation="Geocoding",
        )
        if not data:
            msg = f"No results found for address: {address}"
            raise GeocodingError(msg)

        try:
            coordinates = Coordinates(
                latitude=float(data[0]["lat"]),
                longitude=float(data[0]["lon"]),
            )
        except (KeyError, TypeError, ValueError) as e:
            msg = "Geocoding failed: malformed response"
            raise GeocodingError(msg, details=str(e)) from e

        self._cache_set(self._lookups, key, coordinates)
        logger.info("Location geocoded", address=address)
        return coordinates

    async def reverse_geocode(self, coordinates: Coordinates) -> LocationInfo:
        """
        Resolve coordinates to a location description.

        Raises:
            GeocodingError: If Nominatim has no address for the point.
        """
        key = make_cache_key(
            CacheKeyPrefix.REVERSE,
            f"{coordinates.latitude:.6f},{coordinates.longitude:.6f}",
        )
        cached = self._cache_get(self._lookups, key)
        if cached is not None:
            return cached

        data = await self._request(
            "/reverse",
            {
                "lat": coordinates.latitude,
                "lon": coordinates.longitude,
                "format": "json",
                "addressdetails": 1,
            },
            operation="Reverse geocoding",
        )
        if not isinstance(data, dict) or not data.get("address"):
            msg = "No address information found for coordinates"
            raise GeocodingError(msg)

        location = parse_location_info(data, f"{coordinates.latitude}, {coordinates.longitude}")
        self._cache_set(self._lookups, key, location)
        return location

    async def get_suggestions(self, query: str, limit: int = 5) -> list[LocationSuggestion]:
        """
        Return autocomplete suggestions.

        Suggestions are advisory: failures are logged and yield an empty list.
        """
        if len(query.strip()) < MIN_SUGGESTION_QUERY:
            return []

        key = make_cache_key(CacheKeyPrefix.SUGGESTIONS, query, limit)
        cached = self._cache_get(self._suggestions, key)
        if cached is not None:
            return cached

        try:
            data = await self._request(
                "/search",
                {
                    "q": query,
                    "format": "json",
                    "limit": min(limit, MAX_SUGGESTIONS),
                    "addressdetails": 1,
                    "extratags": 1,
                },
                operation="Location suggestions",
            )
            suggestions = [
                LocationSuggestion(
                    display_name=item["display_name"],
                    coordinates=Coordinates(
                        latitude=float(item["lat"]),
                        longitude=float(item["lon"]),
                    ),
                    details=parse_location_info(item, item["display_name"]),
                )
                for item in data or []
            ]
        except (GeocodingError, KeyError, TypeError, ValueError) as e:
            logger.warning("Failed to get location suggestions", query=query, error=str(e))
            return []

        self._cache_set(self._suggestions, key, suggestions)
        return suggestions

    async def warm_cache(self, locations: Iterable[str]) -> None:
        """Geocode popular locations ahead of time, ignoring failures."""
        locations = list(locations)
        logger.info("Warming geocoding cache", count=len(locations))

        async def warm(location: str) -> None:
            with self._cache_lock:
                if make_cache_key(CacheKeyPrefix.GEOCODE, location) in self._lookups:
                    return
            try:
                await self.geocode_location(location)
            except GeocodingError as e:
                logger.warning("Failed to warm cache for location", location=location, error=e.message)

        await asyncio.gather(*(warm(location) for location in locations))

    def get_cache_stats(self) -> LookupCacheStats:
        """Return geocoding cache statistics."""
        with self._cache_lock:
            self._lookups.expire()
            self._suggestions.expire()
            total = self._hits + self._misses
            return LookupCacheStats(
                total_entries=len(self._lookups),
                suggestion_entries=len(self._suggestions),
                hit_count=self._hits,
                miss_count=self._misses,
                hit_rate=round(self._hits / total, 2) if total else 0.0,
            )

    def clear_cache(self) -> None:
        """Drop every cached lookup and suggestion."""
        with self._cache_lock:
            count = len(self._lookups) + len(self._suggestions)
            self._lookups.clear()
            self._suggestions.clear()
            self._hits = 0
            self._misses = 0
        logger.info("Geocoding cache cleared", entries=count)

    def _cache_get(self, cache: TTLCache[str, Any], key: str) -> Any | None:
        with self._cache_lock:
            value = cache.get(key)
            if value is None:
                self._misses += 1
            else:
                self._hits += 1
            return value

    def _cache_set(self, cache: TTLCache[str, Any], key: str, value: Any) -> None:
        with self._cache_lock:
            cache[key] = value

    async def _throttle(self) -> None:
        """Wait until ``request_delay`` has passed since the previous request."""
        async with self._throttle_lock:
            if self._last_request is not None:
                elapsed = self._clock() - self._last_request
                if elapsed < self._settings.request_delay:
                    await self._sleep(self._settings.request_delay - elapsed)
            self._last_request = self._clock()

    async def _request(self, path: str, params: dict[str, Any], *, operation: str) -> Any:
        """
        Perform a throttled GET and decode the JSON body.

        Raises:
            GeocodingError: On transport errors, error statuses or invalid JSON.
        """
        await self._throttle()
        client = await self._get_client()
        try:
            response = await client.get(path, params=params)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as e:
            msg = f"{operation} request failed: {e.response.status_code}"
            raise GeocodingError(msg, details=e.response.text[:500]) from e
        except httpx.HTTPError as e:
            msg = f"{operation} failed: {e}"
            raise GeocodingError(msg) from e
        except ValueError as e:
            msg = f"{operation} failed: invalid JSON response"
            raise GeocodingError(msg) from e
