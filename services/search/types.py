"""Types for search orchestration."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from services.geocoding.base import Coordinates, LocationInfo
    from services.providers.base import Opportunity, SearchType
    from services.providers.errors import SearchError
    from services.providers.registry import ServiceStatus

DEFAULT_MAX_DISTANCE = 100.0


@dataclass(frozen=True, slots=True)
class SearchOptions:
    """
    How a search run fans out.

    Attributes:
        timeout: Seconds to wait for all providers.
        max_concurrent_requests: Maximum providers queried in one run.
        use_healthy_services_only: Skip providers whose last check failed.
    """

    timeout: float = 15.0
    max_concurrent_requests: int = 5
    use_healthy_services_only: bool = True

    def __post_init__(self) -> None:
        """Validate options."""
        if self.timeout <= 0:
            msg = "timeout must be positive"
            raise ValueError(msg)
        if self.max_concurrent_requests < 1:
            msg = "max_concurrent_requests must be at least 1"
            raise ValueError(msg)


@dataclass(frozen=True, slots=True)
class ProcessingOptions:
    """
    Which processing steps to run.

    Attributes:
        enable_deduplication: Merge duplicate listings.
        enable_distance_calculation: Compute distances and apply the radius.
        enable_data_enrichment: Fill in missing skills, images and such.
        max_distance: Radius in miles for in-person opportunities.
    """

    enable_deduplication: bool = True
    enable_distance_calculation: bool = True
    enable_data_enrichment: bool = True
    max_distance: float = DEFAULT_MAX_DISTANCE


@dataclass(frozen=True, slots=True)
class ProcessingStats:
    """Counters from one processing run."""

    original_count: int
    duplicates_removed: int
    enriched_count: int
    final_count: int
    processing_time: float


@dataclass(frozen=True, slots=True)
class ProcessedResults:
    """Output of the results processor."""

    opportunities: list[Opportunity]
    stats: ProcessingStats


@dataclass(slots=True)
class SearchResult:
    """
    Merged result of searching every selected provider.

    Attributes:
        opportunities: Processed opportunities in display order.
        search_location: Where the search was centred.
        total_results: Number of opportunities.
        sources: Providers queried, in selection order.
        errors: Per-provider failures, None when every provider answered.
        response_time: Seconds the search took.
        partial_results: True when at least one provider failed.
        service_statuses: Health observed for each provider during the run.
        processing_stats: Processor counters (absent on cache hits).
        cached: True when served from the results cache.
    """

    opportunities: list[Opportunity]
    search_location: LocationInfo
    total_results: int
    sources: list[str] = field(default_factory=list)
    errors: list[SearchError] | None = None
    response_time: float = 0.0
    partial_results: bool = False
    service_statuses: list[ServiceStatus] = field(default_factory=list)
    processing_stats: ProcessingStats | None = None
    cached: bool = False

    @property
    def failed_sources(self) -> list[str]:
        """Sources that reported an error."""
        return [error.source for error in self.errors or []]

    @property
    def successful_sources(self) -> list[str]:
        """Sources that answered."""
        failed = set(self.failed_sources)
        return [source for source in self.sources if source not in failed]


@dataclass(frozen=True, slots=True)
class ParsedLocation:
    """
    A geocoded entry of a multi-location query.

    Attributes:
        original_input: Text the user typed for this place.
        location_info: Resolved place description.
        coordinates: Resolved position.
        index: Position in the user's list.
    """

    original_input: str
    location_info: LocationInfo
    coordinates: Coordinates
    index: int


@dataclass(frozen=True, slots=True)
class LocationGroup:
    """Opportunities found around one searched place."""

    location: ParsedLocation
    opportunities: tuple[Opportunity, ...] = ()
    search_success: bool = True
    error: str | None = None


@dataclass(frozen=True, slots=True)
class LocationCount:
    """Number of opportunities found around one place."""

    location: str
    count: int


@dataclass(frozen=True, slots=True)
class SearchStatistics:
    """Aggregate counts of a multi-location search."""

    total_locations: int = 0
    successful_locations: int = 0
    failed_locations: int = 0
    total_opportunities: int = 0
    average_opportunities_per_location: int = 0
    location_breakdown: tuple[LocationCount, ...] = ()


@dataclass(frozen=True, slots=True)
class LocationValidation:
    """Outcome of validating a multi-location query."""

    is_valid: bool
    errors: tuple[str, ...] = ()
    suggestions: tuple[str, ...] = ()
    parsed_count: int = 0


@dataclass(slots=True)
class MultiLocationSearchResult(SearchResult):
    """A SearchResult spanning several places, grouped per place."""

    location_groups: list[LocationGroup] = field(default_factory=list)
    search_statistics: SearchStatistics = field(default_factory=SearchStatistics)


@dataclass(frozen=True, slots=True)
class SearchFilters:
    """
    User filters applied to location-text searches.

    Attributes:
        causes: Cause categories to match (empty for any).
        type: Opportunity type to search for.
        keywords: Free-text query.
        limit: Maximum results per provider.
    """

    causes: tuple[str, ...] = ()
    type: SearchType | None = None
    keywords: str | None = None
    limit: int = 50


@dataclass(frozen=True, slots=True)
class ErrorSummary:
    """
    User-facing digest of a search's errors.

    Attributes:
        has_errors: Whether any source failed.
        error_count: Number of failed sources.
        critical_errors: Errors retrying will not fix (or authentication).
        minor_errors: Transient errors.
        user_message: Message suitable for display.
        suggestions: Hints for the user.
    """

    has_errors: bool = False
    error_count: int = 0
    critical_errors: tuple[SearchError, ...] = ()
    minor_errors: tuple[SearchError, ...] = ()
    user_message: str = ""
    suggestions: tuple[str, ...] = ()
