"""VolunteerHub provider adapter."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from core.logging import get_logger
from core.result import Failure, Result, failure, success
from services.geocoding.base import Coordinates
from services.providers.base import (
    ContactInfo,
    Opportunity,
    OpportunityType,
    SearchType,
    parse_timestamp,
)
from services.providers.errors import SearchError, server_error
from services.providers.http import ProviderHttpClient

if TYPE_CHECKING:
    from core.config import ProviderSettings
    from services.providers.base import SearchParameters
    from services.providers.rate_limiter import RateLimitConfig
    from services.providers.retry import RetryConfig

logger = get_logger(__name__)

DEFAULT_LIMIT = 50


class VolunteerHubAdapter:
    """
    Adapter for the VolunteerHub API.

    Authenticates with a Bearer token and searches ``/opportunities/search``.
    VolunteerHub filters on a single category, so only the first cause is
    sent.
    """

    def __init__(
        self,
        settings: ProviderSettings,
        client: ProviderHttpClient | None = None,
    ) -> None:
        """
        Initialize the adapter.

        Args:
            settings: VolunteerHub endpoint, credentials and policies.
            client: Optional pre-configured client for testing.
        """
        self._settings = settings
        headers: dict[str, str] = {}
        api_key = settings.api_key.get_secret_value()
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        self._client = client or ProviderHttpClient(
            settings.name,
            settings.base_url,
            headers=headers,
            timeout=settings.timeout,
        )

    @property
    def name(self) -> str:
        """Return the provider name."""
        return self._settings.name

    @property
    def rate_limit(self) -> RateLimitConfig:
        """Return the provider's request quota."""
        return self._settings.rate_limit

    @property
    def retry_config(self) -> RetryConfig:
        """Return the provider's retry policy."""
        return self._settings.retry_config

    def build_query(self, params: SearchParameters) -> dict[str, Any]:
        """Translate search parameters into VolunteerHub query parameters."""
        query: dict[str, Any] = {
            "lat": params.location.latitude,
            "lng": params.location.longitude,
            "radius": params.radius,
            "limit": params.limit or DEFAULT_LIMIT,
        }
        if params.keywords:
            query["q"] = params.keywords
        if params.causes:
            query["category"] = params.causes[0]
        if params.type is not SearchType.BOTH:
            query["type"] = params.type.value
        return query

    async def search_opportunities(
        self,
        params: SearchParameters,
    ) -> Result[list[Opportunity], SearchError]:
        """
        Search VolunteerHub for opportunities.

        Args:
            params: Search parameters.

        Returns:
            Result containing opportunities or a SearchError.
        """
        result = await self._client.get_json(
            "/opportunities/search",
            params=self.build_query(params),
            operation="search opportunities",
        )
        if isinstance(result, Failure):
            return failure(result.error)

        try:
            items = result.value.get("opportunities", [])
        except AttributeError:
            return failure(server_error(self.name, "Unexpected search response shape"))
        return success(self._parse_opportunities(items))

    async def get_opportunity_details(
        self,
        opportunity_id: str,
    ) -> Result[Opportunity, SearchError]:
        """
        Get one opportunity by id.

        Args:
            opportunity_id: VolunteerHub opportunity id.

        Returns:
            Result containing the opportunity or a SearchError.
        """
        result = await self._client.get_json(
            f"/opportunities/{opportunity_id}",
            operation="get opportunity details",
        )
        if isinstance(result, Failure):
            return failure(result.error)

        try:
            return success(self._parse_opportunity(result.value))
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            logger.error(
                "Failed to parse VolunteerHub opportunity",
                opportunity_id=opportunity_id,
                error=str(e),
            )
            return failure(server_error(self.name, "Failed to parse opportunity details"))

    async def healthcheck(self) -> bool:
        """Check if the VolunteerHub API is available."""
        return await self._client.probe()

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.close()

    def _parse_opportunities(self, items: list[dict[str, Any]]) -> list[Opportunity]:
        """Parse raw items, skipping the ones that do not parse."""
        opportunities = []
        for item in items:
            try:
                opportunities.append(self._parse_opportunity(item))
            except (KeyError, TypeError, ValueError, AttributeError) as e:
                logger.warning(
                    "Skipping unparseable opportunity",
                    source=self.name,
                    item_id=item.get("id", "unknown") if isinstance(item, dict) else "unknown",
                    error=str(e),
                )
        return opportunities

    def _parse_opportunity(self, item: dict[str, Any]) -> Opportunity:
        """
        Parse a VolunteerHub opportunity.

        Raises:
            KeyError: If required fields are missing.
            ValueError: If coordinates are out of range.
        """
        organization = item["organization"]
        location = item["location"]

        parts = [
            location.get("address"),
            location["city"],
            location.get("state"),
            location["country"],
        ]
        raw_coordinates = location.get("coordinates")
        coordinates = None
        if raw_coordinates:
            coordinates = Coordinates(
                latitude=float(raw_coordinates["lat"]),
                longitude=float(raw_coordinates["lng"]),
            )

        return Opportunity(
            id=str(item["id"]),
            source=self.name,
            title=item["title"],
            organization=organization["name"],
            description=item.get("description", ""),
            location=", ".join(part for part in parts if part),
            city=location["city"],
            country=location["country"],
            coordinates=coordinates,
            type=OpportunityType.VIRTUAL if item.get("is_virtual") else OpportunityType.IN_PERSON,
            cause=item.get("category", ""),
            skills=tuple(item.get("skills_required") or ()),
            time_commitment=item.get("time_commitment", ""),
            date=item.get("event_date", ""),
            participants=item.get("current_participants"),
            contact_info=ContactInfo(
                email=organization.get("email"),
                phone=organization.get("phone"),
                website=organization.get("website"),
            ),
            external_url=item.get("external_url", ""),
            last_updated=parse_timestamp(item.get("updated_at")),
            verified=bool(item.get("verified", False)),
            application_deadline=parse_timestamp(item.get("application_deadline")),
            requirements=tuple(item.get("requirements") or ()),
        )
