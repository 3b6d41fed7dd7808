"""Base types and protocols for volunteer-opportunity providers."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from core.result import Result
    from services.geocoding.base import Coordinates, LocationInfo
    from services.providers.errors import SearchError
    from services.providers.rate_limiter import RateLimitConfig
    from services.providers.retry import RetryConfig

MAX_RADIUS_MILES = 500
MAX_LIMIT = 100


class OpportunityType(str, Enum):
    """Whether an opportunity happens at a place or online."""

    IN_PERSON = "in-person"
    VIRTUAL = "virtual"


class SearchType(str, Enum):
    """Opportunity types a search asks for."""

    IN_PERSON = "in-person"
    VIRTUAL = "virtual"
    BOTH = "both"


@dataclass(frozen=True, slots=True)
class SearchParameters:
    """
    Parameters for an opportunity search.

    Attributes:
        location: Search centre.
        radius: Search radius in miles.
        keywords: Free-text query (optional).
        causes: Cause filters; order is irrelevant for caching.
        type: Opportunity types to return.
        limit: Maximum results per provider (optional).
    """

    location: Coordinates
    radius: float
    keywords: str | None = None
    causes: tuple[str, ...] = ()
    type: SearchType = SearchType.BOTH
    limit: int | None = None

    def __post_init__(self) -> None:
        """Validate search parameters."""
        if not isinstance(self.causes, tuple):
            object.__setattr__(self, "causes", tuple(self.causes))
        if not isinstance(self.type, SearchType):
            object.__setattr__(self, "type", SearchType(self.type))
        if self.radius <= 0:
            msg = "radius must be positive"
            raise ValueError(msg)
        if self.radius > MAX_RADIUS_MILES:
            msg = f"radius cannot exceed {MAX_RADIUS_MILES} miles"
            raise ValueError(msg)
        if self.limit is not None and not 1 <= self.limit <= MAX_LIMIT:
            msg = f"limit must be between 1 and {MAX_LIMIT}"
            raise ValueError(msg)


@dataclass(frozen=True, slots=True)
class ContactInfo:
    """Ways to reach the organizing charity."""

    email: str | None = None
    phone: str | None = None
    website: str | None = None


@dataclass(frozen=True, slots=True)
class Opportunity:
    """
    A volunteer opportunity in the common shape shared by all providers.

    Attributes:
        id: Provider-scoped identifier.
        source: Name of the provider that returned it.
        title: Opportunity title.
        organization: Organizing charity.
        description: Full description.
        location: Free-text location as the provider reports it.
        city: City name.
        country: Country name.
        coordinates: Position, when the provider knows it.
        type: In-person or virtual.
        cause: Primary cause category.
        skills: Skills asked for or inferred.
        time_commitment: Human-readable time commitment.
        date: Date or schedule text.
        participants: Expected number of volunteers.
        contact_info: Contact details.
        external_url: Link to the provider's listing.
        image: Image URL.
        last_updated: When the listing last changed.
        verified: Whether the provider vouches for the listing.
        distance: Miles from the search centre, set during processing.
        application_deadline: Last day to apply.
        requirements: Eligibility requirements.
        search_location: Searched place, set by multi-location merges.
        search_coordinates: Searched position, set by multi-location merges.
        original_location_input: User text of the searched place.
    """

    id: str
    source: str
    title: str
    organization: str
    description: str
    location: str
    city: str
    country: str
    type: OpportunityType
    cause: str
    external_url: str
    coordinates: Coordinates | None = None
    skills: tuple[str, ...] = ()
    time_commitment: str = ""
    date: str = ""
    participants: int | None = None
    contact_info: ContactInfo = field(default_factory=ContactInfo)
    image: str | None = None
    last_updated: datetime | None = None
    verified: bool = False
    distance: float | None = None
    application_deadline: datetime | None = None
    requirements: tuple[str, ...] = ()
    search_location: LocationInfo | None = None
    search_coordinates: Coordinates | None = None
    original_location_input: str | None = None

    @property
    def is_virtual(self) -> bool:
        """Return True for online opportunities."""
        return self.type is OpportunityType.VIRTUAL


@dataclass(frozen=True, slots=True)
class ProviderResult:
    """
    Outcome of querying one provider during a search.

    Attributes:
        source: Provider name.
        opportunities: Opportunities returned (empty on failure).
        success: Whether the provider answered.
        error: Failure details when ``success`` is False.
        response_time: Seconds spent on the provider, retries included.
    """

    source: str
    opportunities: tuple[Opportunity, ...] = ()
    success: bool = True
    error: SearchError | None = None
    response_time: float = 0.0


def parse_timestamp(value: str | None) -> datetime | None:
    """
    Parse an ISO 8601 timestamp from a provider payload.

    Returns:
        The timestamp, or None when the value is missing or malformed.
    """
    if not value:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        return None


@runtime_checkable
class Provider(Protocol):
    """
    Protocol every opportunity provider adapter conforms to.

    Adapters report failures as ``Failure(SearchError)`` instead of raising;
    rate limiting and retries are applied by the caller.
    """

    @property
    def name(self) -> str:
        """Return the unique provider name."""
        ...

    @property
    def rate_limit(self) -> RateLimitConfig:
        """Return the provider's request quota."""
        ...

    @property
    def retry_config(self) -> RetryConfig:
        """Return the provider's retry policy."""
        ...

    async def search_opportunities(
        self,
        params: SearchParameters,
    ) -> Result[list[Opportunity], SearchError]:
        """
        Search the provider for opportunities.

        Args:
            params: Search parameters.

        Returns:
            Result containing the opportunities or a SearchError.
        """
        ...

    async def get_opportunity_details(
        self,
        opportunity_id: str,
    ) -> Result[Opportunity, SearchError]:
        """
        Fetch one opportunity by id.

        Args:
            opportunity_id: Provider-scoped identifier.

        Returns:
            Result containing the opportunity or a SearchError.
        """
        ...

    async def healthcheck(self) -> bool:
        """
        Check if the provider API is reachable.

        Returns:
            True if the API is healthy, False otherwise.
        """
        ...

    async def close(self) -> None:
        """Release the adapter's HTTP resources."""
        ...
