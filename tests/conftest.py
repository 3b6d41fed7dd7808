"""
Pytest configuration and fixtures for the test suite.

This module contains shared fixtures used across all tests.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any
from unittest.mock import AsyncMock

import pytest

from core.logging import clear_context
from core.result import failure, success
from services.geocoding.base import Coordinates, GeocodingError, LocationInfo
from services.providers.base import Opportunity, OpportunityType
from services.providers.rate_limiter import RateLimitConfig
from services.providers.retry import RetryConfig

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

    from core.result import Result
    from services.providers.base import SearchParameters
    from services.providers.errors import SearchError

NEW_YORK = Coordinates(latitude=40.7128, longitude=-74.0060)
BOSTON = Coordinates(latitude=42.3601, longitude=-71.0589)
CHICAGO = Coordinates(latitude=41.8781, longitude=-87.6298)

PLACES: dict[str, tuple[Coordinates, LocationInfo]] = {
    "new york": (NEW_YORK, LocationInfo("New York", "USA", "New York, NY, USA", state="NY")),
    "boston": (BOSTON, LocationInfo("Boston", "USA", "Boston, MA, USA", state="MA")),
    "chicago": (CHICAGO, LocationInfo("Chicago", "USA", "Chicago, IL, USA", state="IL")),
}


def build_opportunity(**overrides: Any) -> Opportunity:
    """Build an in-person opportunity near New York, with overrides."""
    fields: dict[str, Any] = {
        "id": "opp-1",
        "source": "VolunteerHub",
        "title": "Food Bank Sorting",
        "organization": "City Harvest",
        "description": "Sort donations at the warehouse",
        "location": "New York, NY",
        "city": "New York",
        "country": "USA",
        "type": OpportunityType.IN_PERSON,
        "cause": "community",
        "external_url": "https://example.org/opp-1",
        "coordinates": Coordinates(latitude=40.7306, longitude=-73.9352),
    }
    fields.update(overrides)
    return Opportunity(**fields)


class FakeProvider:
    """
    In-memory Provider used by orchestration tests.

    Each call to ``search_opportunities`` consumes the next entry of
    ``outcomes`` when given; otherwise it returns ``opportunities``, the
    ``error`` Failure, raises ``raises``, or never completes when ``hang``.
    """

    def __init__(
        self,
        name: str,
        opportunities: list[Opportunity] | None = None,
        *,
        error: SearchError | None = None,
        raises: Exception | None = None,
        hang: bool = False,
        healthy: bool = True,
        max_retries: int = 0,
        outcomes: list[Result[list[Opportunity], SearchError]] | None = None,
    ) -> None:
        self._name = name
        self._opportunities = opportunities or []
        self._error = error
        self._raises = raises
        self._hang = hang
        self._healthy = healthy
        self._max_retries = max_retries
        self._outcomes = list(outcomes or [])
        self.calls = 0
        self.cancelled = False
        self.closed = False

    @property
    def name(self) -> str:
        return self._name

    @property
    def rate_limit(self) -> RateLimitConfig:
        return RateLimitConfig(requests_per_minute=1000, requests_per_hour=10000)

    @property
    def retry_config(self) -> RetryConfig:
        return RetryConfig(max_retries=self._max_retries, base_delay=0.01, max_delay=0.05)

    async def search_opportunities(
        self,
        params: SearchParameters,
    ) -> Result[list[Opportunity], SearchError]:
        self.calls += 1
        if self._outcomes:
            return self._outcomes.pop(0)
        if self._hang:
            try:
                await asyncio.Event().wait()
            except asyncio.CancelledError:
                self.cancelled = True
                raise
        if self._raises is not None:
            raise self._raises
        if self._error is not None:
            return failure(self._error)
        return success(list(self._opportunities))

    async def get_opportunity_details(self, opportunity_id: str) -> Result[Opportunity, SearchError]:
        for opportunity in self._opportunities:
            if opportunity.id == opportunity_id:
                return success(opportunity)
        if self._error is not None:
            return failure(self._error)
        raise KeyError(opportunity_id)

    async def healthcheck(self) -> bool:
        if self._raises is not None:
            raise self._raises
        return self._healthy

    async def close(self) -> None:
        self.closed = True


class FakeGeocoder:
    """GeocodingClient that knows New York, Boston and Chicago."""

    def __init__(self) -> None:
        self.lookups: list[str] = []
        self.closed = False

    async def geocode_location(self, address: str) -> Coordinates:
        self.lookups.append(address)
        place = PLACES.get(address.strip().lower())
        if place is None:
            msg = f"No results found for address: {address}"
            raise GeocodingError(msg)
        return place[0]

    async def reverse_geocode(self, coordinates: Coordinates) -> LocationInfo:
        for known, info in PLACES.values():
            if known == coordinates:
                return info
        return LocationInfo.from_coordinates(coordinates)

    async def get_suggestions(self, query: str, limit: int = 5) -> list:
        return []

    async def close(self) -> None:
        self.closed = True


@pytest.fixture(autouse=True)
def _clean_log_context() -> Iterator[None]:
    """Keep bound log context from leaking between tests."""
    clear_context()
    yield
    clear_context()


@pytest.fixture()
def make_opportunity() -> Callable[..., Opportunity]:
    """Return a factory for opportunities."""
    return build_opportunity


@pytest.fixture()
def make_provider() -> type[FakeProvider]:
    """Return the fake provider class."""
    return FakeProvider


@pytest.fixture()
def no_sleep() -> AsyncMock:
    """Return a sleep replacement that returns immediately."""
    return AsyncMock(return_value=None)


@pytest.fixture()
def new_york() -> Coordinates:
    """Return the coordinates of New York City."""
    return NEW_YORK


@pytest.fixture()
def geocoder() -> FakeGeocoder:
    """Return a geocoder for the known test cities."""
    return FakeGeocoder()
