"""Searching several comma-separated locations at once."""

from __future__ import annotations

import asyncio
import dataclasses
import math
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING

from core.logging import get_logger
from services.geocoding.base import GeocodingError, LocationInfo
from services.providers.base import SearchParameters, SearchType
from services.providers.errors import geocoding_error, server_error, validation_error
from services.search.types import (
    LocationCount,
    LocationGroup,
    LocationValidation,
    MultiLocationSearchResult,
    ParsedLocation,
    SearchOptions,
    SearchResult,
    SearchStatistics,
)

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Sequence

    from services.geocoding.base import GeocodingClient
    from services.providers.base import Opportunity
    from services.providers.errors import SearchError
    from services.search.types import SearchFilters

logger = get_logger(__name__)

SOURCE = "MultiLocationSearch"
MAX_LOCATIONS = 10
MIN_LOCATION_LENGTH = 2

type SearchFunction = Callable[[SearchParameters, SearchOptions | None], Awaitable[SearchResult]]


class InvalidLocationInputError(Exception):
    """Raised when multi-location input fails validation."""

    def __init__(self, message: str, details: LocationValidation | None = None) -> None:
        """Initialize error."""
        super().__init__(message)
        self.message = message
        self.details = details


class GeocodingFailedError(Exception):
    """Raised when none of the requested locations could be geocoded."""

    def __init__(self, message: str, details: list[str] | None = None) -> None:
        """Initialize error."""
        super().__init__(message)
        self.message = message
        self.details = details or []


@dataclass(frozen=True, slots=True)
class LocationSearchOutcome:
    """Result of the search around one parsed location."""

    location: ParsedLocation
    result: SearchResult
    success: bool = True
    error: str | None = None


def round_half_up(value: float) -> int:
    """
    Round to the nearest integer, halves away from zero for positives.

    Example:
        >>> round_half_up(1.5), round_half_up(2.5)
        (2, 3)
    """
    return math.floor(value + 0.5)


def parse_location_input(location_input: str) -> list[str]:
    """
    Split comma-separated input into distinct locations.

    Example:
        >>> parse_location_input("New York, new york, NYC")
        ['New York', 'NYC']
    """
    seen: set[str] = set()
    locations = []
    for part in location_input.split(","):
        location = part.strip()
        if not location or location.lower() in seen:
            continue
        seen.add(location.lower())
        locations.append(location)
    return locations


def is_multi_location_input(location_input: str) -> bool:
    """Check whether the input names more than one location."""
    return len(parse_location_input(location_input)) > 1


def validate_location_input(location_input: str) -> LocationValidation:
    """Validate multi-location input, with suggestions for the user."""
    if not location_input.strip():
        return LocationValidation(
            is_valid=False,
            errors=("Location input cannot be empty",),
            suggestions=("Enter at least one location",),
        )

    locations = parse_location_input(location_input)
    if not locations:
        return LocationValidation(
            is_valid=False,
            errors=("No valid locations found in input",),
            suggestions=("Check your location format",),
        )

    errors: list[str] = []
    suggestions: list[str] = []

    short = [location for location in locations if len(location) < MIN_LOCATION_LENGTH]
    if short:
        errors.append(f"Some locations are too short: {', '.join(short)}")
        suggestions.append("Use full city names or add state/country information")

    if len(locations) > MAX_LOCATIONS:
        errors.append(f"Too many locations specified (maximum {MAX_LOCATIONS})")
        suggestions.append("Reduce the number of locations for better performance")

    if len(locations) > 1:
        suggestions.append("Multi-location search will find opportunities in all specified areas")
        suggestions.append("Results will be grouped by location")

    return LocationValidation(
        is_valid=not errors,
        errors=tuple(errors),
        suggestions=tuple(suggestions),
        parsed_count=len(locations),
    )


def get_location_summary(locations: Sequence[ParsedLocation]) -> str:
    """
    Describe a set of locations for display.

    Example:
        "Austin, Denver, and Boston"
    """
    if not locations:
        return "No locations"
    if len(locations) == 1:
        info = locations[0].location_info
        if info.state:
            return f"{info.city}, {info.state}, {info.country}"
        return f"{info.city}, {info.country}"

    cities = [location.location_info.city for location in locations]
    if len(cities) == 2:
        return f"{cities[0]} and {cities[1]}"
    return f"{', '.join(cities[:-1])}, and {cities[-1]}"


def group_results_by_location(
    outcomes: Sequence[LocationSearchOutcome],
    locations: Sequence[ParsedLocation],
) -> list[LocationGroup]:
    """Pair each location with the opportunities its search returned."""
    groups = []
    for position, location in enumerate(locations):
        outcome = outcomes[position] if position < len(outcomes) else None
        if outcome is None:
            groups.append(LocationGroup(location=location))
            continue
        groups.append(
            LocationGroup(
                location=location,
                opportunities=tuple(outcome.result.opportunities),
                search_success=outcome.success,
                error=outcome.error,
            )
        )
    return groups


def merge_opportunities_with_location_context(
    groups: Sequence[LocationGroup],
) -> list[Opportunity]:
    """Flatten successful groups, stamping each opportunity with where it was found."""
    merged = []
    for group in groups:
        if not group.search_success:
            continue
        merged.extend(
            dataclasses.replace(
                opportunity,
                search_location=group.location.location_info,
                search_coordinates=group.location.coordinates,
                original_location_input=group.location.original_input,
            )
            for opportunity in group.opportunities
        )
    return merged


def get_search_statistics(groups: Sequence[LocationGroup]) -> SearchStatistics:
    """Compute per-location counts and the average per successful location."""
    total_locations = len(groups)
    successful = sum(1 for group in groups if group.search_success)
    total_opportunities = sum(len(group.opportunities) for group in groups)
    average = round_half_up(total_opportunities / successful) if successful else 0

    return SearchStatistics(
        total_locations=total_locations,
        successful_locations=successful,
        failed_locations=total_locations - successful,
        total_opportunities=total_opportunities,
        average_opportunities_per_location=average,
        location_breakdown=tuple(
            LocationCount(location=group.location.location_info.city, count=len(group.opportunities))
            for group in groups
        ),
    )


class MultiLocationCoordinator:
    """
    Runs one search per location and recombines the results.

    Example:
        >>> coordinator = MultiLocationCoordinator(geocoder)
        >>> result = await coordinator.perform_multi_location_search(
        ...     "Austin, Denver", 25, SearchFilters(), orchestrator.perform_search
        ... )
        >>> result.search_statistics.total_locations
        2
    """

    def __init__(self, geocoder: GeocodingClient) -> None:
        """
        Initialize the coordinator.

        Args:
            geocoder: Resolves location text to coordinates and addresses.
        """
        self._geocoder = geocoder

    async def geocode_multiple_locations(self, locations: Sequence[str]) -> list[ParsedLocation]:
        """
        Geocode every location concurrently.

        Returns:
            The locations that resolved, in input order.

        Raises:
            GeocodingFailedError: If no location could be resolved.
        """
        if not locations:
            return []

        logger.info("Geocoding locations", count=len(locations))
        outcomes = await asyncio.gather(
            *(self._geocode_one(location, index) for index, location in enumerate(locations))
        )
        parsed = [outcome for outcome in outcomes if outcome is not None]
        failed = [
            location
            for location, outcome in zip(locations, outcomes, strict=True)
            if outcome is None
        ]

        if not parsed:
            msg = f"Unable to geocode any of the provided locations: {', '.join(failed)}"
            raise GeocodingFailedError(msg, details=failed)
        if failed:
            logger.warning("Some locations failed to geocode", failed=failed)
        return parsed

    async def resolve_locations(self, location_input: str) -> list[ParsedLocation]:
        """
        Validate, parse and geocode multi-location input.

        Raises:
            InvalidLocationInputError: If the input fails validation.
            GeocodingFailedError: If no location could be resolved.
        """
        validation = validate_location_input(location_input)
        if not validation.is_valid:
            msg = f"Invalid location input: {', '.join(validation.errors)}"
            raise InvalidLocationInputError(msg, details=validation)

        locations = parse_location_input(location_input)
        logger.info("Parsed locations", locations=locations)
        return await self.geocode_multiple_locations(locations)

    async def _geocode_one(self, location: str, index: int) -> ParsedLocation | None:
        try:
            coordinates = await self._geocoder.geocode_location(location)
            location_info = await self._geocoder.reverse_geocode(coordinates)
        except GeocodingError as e:
            logger.warning("Failed to geocode location", location=location, error=e.message)
            return None
        return ParsedLocation(
            original_input=location,
            location_info=location_info,
            coordinates=coordinates,
            index=index,
        )

    async def perform_multi_location_search(
        self,
        location_input: str,
        radius: float,
        filters: SearchFilters,
        search: SearchFunction,
        options: SearchOptions | None = None,
    ) -> MultiLocationSearchResult:
        """
        Search around every location in ``location_input``.

        Args:
            location_input: Comma-separated location text.
            radius: Search radius in miles for each location.
            filters: Causes, type and keywords applied to every search.
            search: Runs one single-location search.
            options: Fan-out options; also bounds how many locations are
                searched at once.

        Returns:
            The merged result. Invalid input or a total geocoding failure
            produce an empty result with a single top-level error.
        """
        start = time.perf_counter()
        opts = options or SearchOptions()

        try:
            locations = await self.resolve_locations(location_input)
        except InvalidLocationInputError as e:
            logger.warning("Multi-location search rejected", error=e.message)
            return self._failed_result(
                location_input,
                validation_error(SOURCE, e.message),
                time.perf_counter() - start,
            )
        except GeocodingFailedError as e:
            logger.warning("Multi-location geocoding failed", failed=e.details)
            return self._failed_result(
                location_input,
                geocoding_error(SOURCE, e.message),
                time.perf_counter() - start,
            )

        semaphore = asyncio.Semaphore(opts.max_concurrent_requests)

        async def search_location(location: ParsedLocation) -> LocationSearchOutcome:
            params = SearchParameters(
                location=location.coordinates,
                radius=radius,
                keywords=filters.keywords,
                causes=filters.causes,
                type=filters.type or SearchType.BOTH,
                limit=filters.limit,
            )
            async with semaphore:
                try:
                    result = await search(params, opts)
                except Exception as e:
                    logger.warning(
                        "Search failed for location",
                        location=location.original_input,
                        error=str(e),
                    )
                    failed = server_error(SOURCE, str(e) or "Search failed")
                    return LocationSearchOutcome(
                        location=location,
                        result=SearchResult(
                            opportunities=[],
                            search_location=location.location_info,
                            total_results=0,
                            errors=[
                                dataclasses.replace(
                                    failed,
                                    user_message=f"Search failed for {location.original_input}",
                                )
                            ],
                            partial_results=True,
                        ),
                        success=False,
                        error=str(e) or "Search failed",
                    )
            return LocationSearchOutcome(location=location, result=result)

        outcomes = await asyncio.gather(*(search_location(location) for location in locations))

        groups = group_results_by_location(outcomes, locations)
        opportunities = merge_opportunities_with_location_context(groups)
        statistics = get_search_statistics(groups)

        errors: list[SearchError] = []
        sources: list[str] = []
        statuses = []
        for outcome in outcomes:
            errors.extend(outcome.result.errors or [])
            sources.extend(outcome.result.sources)
            statuses.extend(outcome.result.service_statuses)

        response_time = time.perf_counter() - start
        logger.info(
            "Multi-location search completed",
            total_locations=statistics.total_locations,
            successful_locations=statistics.successful_locations,
            total_opportunities=statistics.total_opportunities,
            response_time=round(response_time, 3),
        )
        return MultiLocationSearchResult(
            opportunities=opportunities,
            search_location=LocationInfo(
                city=get_location_summary(locations),
                country="Multiple",
                formatted_address=location_input,
            ),
            total_results=len(opportunities),
            sources=list(dict.fromkeys(sources)),
            errors=errors or None,
            response_time=response_time,
            partial_results=any(outcome.result.partial_results for outcome in outcomes),
            service_statuses=statuses,
            location_groups=groups,
            search_statistics=statistics,
        )

    @staticmethod
    def _failed_result(
        location_input: str,
        error: SearchError,
        response_time: float,
    ) -> MultiLocationSearchResult:
        return MultiLocationSearchResult(
            opportunities=[],
            search_location=LocationInfo(
                city="Unknown",
                country="Unknown",
                formatted_address=location_input,
            ),
            total_results=0,
            errors=[error],
            response_time=response_time,
        )
