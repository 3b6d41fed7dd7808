"""Idealist provider adapter."""

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
DEFAULT_CATEGORY = "Social Impact"
ACTIVE_STATUS = "active"

# Idealist calls in-person listings plain "volunteer" listings.
TYPE_MAPPING: dict[SearchType, str] = {
    SearchType.VIRTUAL: "virtual",
    SearchType.IN_PERSON: "volunteer",
}


class IdealistAdapter:
    """
    Adapter for the Idealist volunteering API.

    Authenticates with ``Authorization: Token``. Results are requested
    sorted by distance; featured listings are treated as verified.
    """

    def __init__(
        self,
        settings: ProviderSettings,
        client: ProviderHttpClient | None = None,
    ) -> None:
        """
        Initialize the adapter.

        Args:
            settings: Idealist endpoint, credentials and policies.
            client: Optional pre-configured client for testing.
        """
        self._settings = settings
        headers: dict[str, str] = {}
        api_key = settings.api_key.get_secret_value()
        if api_key:
            headers["Authorization"] = f"Token {api_key}"
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
        """Translate search parameters into Idealist query parameters."""
        query: dict[str, Any] = {
            "lat": params.location.latitude,
            "lon": params.location.longitude,
            "radius": params.radius,
            "limit": params.limit or DEFAULT_LIMIT,
            "sort": "distance",
            "status": ACTIVE_STATUS,
        }
        if params.keywords:
            query["q"] = params.keywords
        if params.causes:
            query["category"] = params.causes[0]
        if params.type in TYPE_MAPPING:
            query["type"] = TYPE_MAPPING[params.type]
        return query

    async def search_opportunities(
        self,
        params: SearchParameters,
    ) -> Result[list[Opportunity], SearchError]:
        """Search Idealist for active volunteering listings."""
        result = await self._client.get_json(
            "/search/volunteering",
            params=self.build_query(params),
            operation="search opportunities",
        )
        if isinstance(result, Failure):
            return failure(result.error)

        try:
            items = [
                item
                for item in result.value.get("items", [])
                if item.get("status") == ACTIVE_STATUS
            ]
        except AttributeError:
            return failure(server_error(self.name, "Unexpected search response shape"))
        return success(self._parse_opportunities(items))

    async def get_opportunity_details(
        self,
        opportunity_id: str,
    ) -> Result[Opportunity, SearchError]:
        """Get one Idealist listing by id."""
        result = await self._client.get_json(
            f"/volunteering/{opportunity_id}",
            operation="get opportunity details",
        )
        if isinstance(result, Failure):
            return failure(result.error)

        try:
            return success(self._parse_opportunity(result.value))
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            logger.error(
                "Failed to parse Idealist listing",
                opportunity_id=opportunity_id,
                error=str(e),
            )
            return failure(server_error(self.name, "Failed to parse opportunity details"))

    async def healthcheck(self) -> bool:
        """Check if the Idealist API is available."""
        return await self._client.probe()

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.close()

    def _parse_opportunities(self, items: list[dict[str, Any]]) -> list[Opportunity]:
        opportunities = []
        for item in items:
            try:
                opportunities.append(self._parse_opportunity(item))
            except (KeyError, TypeError, ValueError, AttributeError) as e:
                logger.warning(
                    "Skipping unparseable opportunity",
                    source=self.name,
                    item_id=item.get("id", "unknown"),
                    error=str(e),
                )
        return opportunities

    def _parse_opportunity(self, item: dict[str, Any]) -> Opportunity:
        organization = item["organization"]
        location = item["location"]
        contact = item.get("contact_info") or {}

        parts = [
            *(location.get("address_lines") or ()),
            location["city"],
            location.get("state"),
            location.get("postal_code"),
            location["country"],
        ]
        coordinates = None
        if location.get("latitude") is not None and location.get("longitude") is not None:
            coordinates = Coordinates(
                latitude=float(location["latitude"]),
                longitude=float(location["longitude"]),
            )

        categories = item.get("categories") or []
        commitment = item.get("time_commitment") or {}
        time_commitment = commitment.get("duration", "")
        if commitment.get("schedule"):
            time_commitment = f"{time_commitment} ({commitment['schedule']})"

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
            cause=categories[0]["name"] if categories else DEFAULT_CATEGORY,
            skills=tuple(skill["name"] for skill in item.get("skills") or ()),
            time_commitment=time_commitment,
            date=item.get("start_date") or item.get("date_posted", ""),
            participants=item.get("current_participants"),
            contact_info=ContactInfo(
                email=contact.get("email") or organization.get("email"),
                phone=contact.get("phone") or organization.get("phone"),
                website=organization.get("url"),
            ),
            external_url=item.get("application_url", ""),
            last_updated=parse_timestamp(item.get("date_updated")),
            verified=bool(item.get("featured", False)),
            application_deadline=parse_timestamp(item.get("end_date")),
            requirements=self._build_requirements(item, contact),
        )

    @staticmethod
    def _build_requirements(item: dict[str, Any], contact: dict[str, Any]) -> tuple[str, ...]:
        requirements = list(item.get("requirements") or ())
        if item.get("min_age"):
            requirements.append(f"Minimum age: {item['min_age']}")
        if item.get("max_participants"):
            spots_left = item["max_participants"] - (item.get("current_participants") or 0)
            if spots_left > 0:
                requirements.append(f"{spots_left} spots remaining")
            else:
                requirements.append("Currently full - check for waitlist")
        if contact.get("contact_name"):
            requirements.append(f"Contact: {contact['contact_name']}")
        return tuple(requirements)
