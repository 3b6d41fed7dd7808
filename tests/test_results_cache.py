"""Tests for the search results cache."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from services.geocoding.base import Coordinates
from services.providers.base import SearchParameters, SearchType
from services.search.cache import (
    CacheMetadata,
    InvalidationCriteria,
    ResultsCache,
    WarmLocation,
)
from tests.conftest import NEW_YORK, build_opportunity

BOSTON = Coordinates(latitude=42.3601, longitude=-71.0589)
METADATA = CacheMetadata(total_results=1, sources=("VolunteerHub",), response_time=0.2)


class FakeClock:
    """Manually advanced wall clock."""

    def __init__(self) -> None:
        self.now = 1_700_000_000.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture()
def clock() -> FakeClock:
    """Return a fake clock."""
    return FakeClock()


@pytest.fixture()
def cache(clock: FakeClock) -> ResultsCache:
    """Return a cache driven by the fake clock."""
    return ResultsCache(default_ttl=60, max_cache_size=10, clock=clock)


def params(location: Coordinates = NEW_YORK, radius: float = 25, **kwargs) -> SearchParameters:
    return SearchParameters(location=location, radius=radius, **kwargs)


class TestMakeKey:
    """Tests for ResultsCache.make_key."""

    def test_key_format(self) -> None:
        """Coordinates are rounded and causes sorted."""
        key = ResultsCache.make_key(
            SearchParameters(
                Coordinates(40.71284, -74.00601), 25, causes=("health", "animals")
            )
        )

        assert key == "lat:40.713|lng:-74.006|radius:25|type:both|causes:animals,health|limit:50|keywords:"

    def test_cause_order_irrelevant(self) -> None:
        """Searches differing only in cause order share a key."""
        first = params(causes=("environment", "education"))
        second = params(causes=("education", "environment"))

        assert ResultsCache.make_key(first) == ResultsCache.make_key(second)

    def test_distinct_parameters(self) -> None:
        """Different radius, type or limit give different keys."""
        base = ResultsCache.make_key(params())

        assert ResultsCache.make_key(params(radius=10)) != base
        assert ResultsCache.make_key(params(type=SearchType.VIRTUAL)) != base
        assert ResultsCache.make_key(params(limit=20)) != base

    def test_keywords_distinguish_searches(self) -> None:
        """Searches differing only in keywords get different keys."""
        food = ResultsCache.make_key(params(keywords="food"))
        tutoring = ResultsCache.make_key(params(keywords="tutoring"))

        assert food != tutoring
        assert food != ResultsCache.make_key(params())

    def test_keywords_normalized(self) -> None:
        """Keyword case and spacing do not matter."""
        assert ResultsCache.make_key(params(keywords="  Food   Bank ")) == ResultsCache.make_key(
            params(keywords="food bank")
        )

    def test_fractional_radius(self) -> None:
        """Non-integer radii keep their decimals."""
        assert "radius:2.5" in ResultsCache.make_key(params(radius=2.5))


class TestResultsCache:
    """Tests for storing and reading results."""

    def test_invalid_configuration(self) -> None:
        """TTL and size must be positive."""
        with pytest.raises(ValueError):
            ResultsCache(default_ttl=0)
        with pytest.raises(ValueError):
            ResultsCache(max_cache_size=0)

    def test_set_and_get(self, cache: ResultsCache) -> None:
        """Stored results are returned for equivalent parameters."""
        opportunity = build_opportunity()
        cache.set(params(causes=("a", "b")), [opportunity], METADATA)

        assert cache.get(params(causes=("b", "a"))) == [opportunity]
        entry = cache.get_entry(params(causes=("a", "b")))
        assert entry is not None
        assert entry.access_count == 2
        assert entry.metadata == METADATA

    def test_ttl_expiry(self, cache: ResultsCache, clock: FakeClock) -> None:
        """An entry past its TTL is a miss and is removed."""
        cache.set(params(), [build_opportunity()], METADATA, ttl=0.1)

        clock.advance(0.15)

        assert cache.has(params()) is False
        assert cache.get(params()) is None
        assert len(cache) == 0

    def test_has_does_not_count(self, cache: ResultsCache) -> None:
        """has() leaves hit and miss counters alone."""
        cache.set(params(), [], METADATA)

        assert cache.has(params()) is True
        assert cache.has(params(radius=5)) is False
        stats = cache.get_stats()
        assert stats.hit_count == 0
        assert stats.miss_count == 0

    def test_lru_eviction(self, clock: FakeClock) -> None:
        """With max size 2, reading A then adding C evicts B."""
        cache = ResultsCache(max_cache_size=2, clock=clock)
        a, b, c = params(radius=1), params(radius=2), params(radius=3)
        cache.set(a, [], METADATA)
        clock.advance(1)
        cache.set(b, [], METADATA)
        clock.advance(1)
        cache.get(a)
        clock.advance(1)

        cache.set(c, [], METADATA)

        assert cache.has(a) is True
        assert cache.has(b) is False
        assert cache.has(c) is True

    def test_replacing_entry_does_not_evict(self, clock: FakeClock) -> None:
        """Overwriting a key at capacity keeps other entries."""
        cache = ResultsCache(max_cache_size=2, clock=clock)
        cache.set(params(radius=1), [], METADATA)
        cache.set(params(radius=2), [], METADATA)

        cache.set(params(radius=1), [build_opportunity()], METADATA)

        assert len(cache) == 2

    def test_clear_resets_statistics(self, cache: ResultsCache) -> None:
        """clear() removes entries and counters."""
        cache.set(params(), [], METADATA)
        cache.get(params())
        cache.get(params(radius=1))

        cache.clear()

        stats = cache.get_stats()
        assert stats.total_entries == 0
        assert stats.hit_count == 0
        assert stats.miss_count == 0
        assert stats.oldest_entry is None


class TestStatisticsAndConfiguration:
    """Tests for statistics and runtime configuration."""

    def test_stats(self, cache: ResultsCache, clock: FakeClock) -> None:
        """Statistics count hits, misses and approximate size."""
        cache.set(params(), [build_opportunity(), build_opportunity(id="opp-2")], METADATA)
        clock.advance(10)
        cache.set(params(radius=5), [build_opportunity()], METADATA)
        cache.get(params())
        cache.get(params())
        cache.get(params(radius=50))

        stats = cache.get_stats()

        assert stats.total_entries == 2
        assert stats.hit_count == 2
        assert stats.miss_count == 1
        assert stats.hit_rate == 0.67
        assert stats.total_size == 3 * 1024
        assert stats.newest_entry > stats.oldest_entry

    def test_set_default_ttl(self, cache: ResultsCache, clock: FakeClock) -> None:
        """New entries use the new TTL."""
        cache.set_default_ttl(5)
        cache.set(params(), [], METADATA)

        clock.advance(6)

        assert cache.get(params()) is None
        with pytest.raises(ValueError):
            cache.set_default_ttl(0)

    def test_set_max_cache_size_evicts(self, cache: ResultsCache, clock: FakeClock) -> None:
        """Shrinking evicts the least recently used entries."""
        for radius in (1, 2, 3):
            cache.set(params(radius=radius), [], METADATA)
            clock.advance(1)

        cache.set_max_cache_size(1)

        assert cache.max_cache_size == 1
        assert cache.get_keys() == [ResultsCache.make_key(params(radius=3))]


class TestInvalidate:
    """Tests for ResultsCache.invalidate."""

    @pytest.fixture()
    def filled(self, cache: ResultsCache) -> ResultsCache:
        cache.set(params(NEW_YORK, 25, causes=("animals",)), [], METADATA)
        cache.set(params(BOSTON, 10, causes=("health",), type=SearchType.VIRTUAL), [], METADATA)
        cache.set(params(BOSTON, 50), [], METADATA)
        return cache

    def test_by_location(self, filled: ResultsCache) -> None:
        """Entries within 0.1 km of the point are removed."""
        nearby = Coordinates(latitude=40.7130, longitude=-74.0061)

        assert filled.invalidate(InvalidationCriteria(location=nearby)) == 1
        assert len(filled) == 2

    def test_by_radius(self, filled: ResultsCache) -> None:
        """Entries with the exact radius are removed."""
        assert filled.invalidate(InvalidationCriteria(radius=50)) == 1

    def test_by_causes(self, filled: ResultsCache) -> None:
        """Entries sharing a cause are removed."""
        assert filled.invalidate(InvalidationCriteria(causes=("health", "seniors"))) == 1

    def test_by_type(self, filled: ResultsCache) -> None:
        """Entries of the given type are removed."""
        assert filled.invalidate(InvalidationCriteria(type=SearchType.BOTH)) == 2

    def test_any_criterion_matches(self, filled: ResultsCache) -> None:
        """An entry matching any field is removed."""
        removed = filled.invalidate(InvalidationCriteria(radius=25, causes=("health",)))

        assert removed == 2
        assert filled.get_keys() == [ResultsCache.make_key(params(BOSTON, 50))]

    def test_empty_criteria(self, filled: ResultsCache) -> None:
        """No criteria removes nothing."""
        assert filled.invalidate(InvalidationCriteria()) == 0


class TestWarmCache:
    """Tests for ResultsCache.warm_cache."""

    @pytest.mark.asyncio
    async def test_warm_cache(self, cache: ResultsCache) -> None:
        """Successful searches are cached; failures are skipped."""
        opportunity = build_opportunity()

        async def search(search_params: SearchParameters):
            if search_params.location == BOSTON:
                raise RuntimeError("provider down")
            return [opportunity], METADATA

        warmed = await cache.warm_cache(
            [WarmLocation(NEW_YORK, 25), WarmLocation(BOSTON, 25)],
            search,
        )

        assert warmed == 1
        cached = cache.get(SearchParameters(location=NEW_YORK, radius=25, limit=50))
        assert cached == [opportunity]

    @pytest.mark.asyncio
    async def test_warm_nothing(self, cache: ResultsCache) -> None:
        """Warming no locations does no work."""
        search = AsyncMock()

        assert await cache.warm_cache([], search) == 0
        search.assert_not_awaited()
