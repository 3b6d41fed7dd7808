"""JustServe provider adapter."""

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
DEFAULT_CATEGORY = "Community Service"
ACTIVE_STATUS = "active"


class JustServeAdapter:
    """
    Adapter for the JustServe API.

    Authenticates with an ``X-API-Key`` header. JustServe accepts several
    categories at once and lists inactive or full projects, which are
    dropped here.
    """

    def __init__(
        self,
        settings: ProviderSettings,
        client: ProviderHttpClient | None = None,
    ) -> None:
        """
        Initialize the adapter.

        Args:
            settings: JustServe endpoint, credentials and policies.
            client: Optional pre-configured client for testing.
        """
        self._settings = settings
        headers: dict[str, str] = {}
        api_key = settings.api_key.get_secret_value()
        if api_key:
            headers["X-API-Key"] = api_key
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
        """Translate search parameters into JustServe query parameters."""
        query: dict[str, Any] = {
            "latitude": params.location.latitude,
            "longitude": params.location.longitude,
            "radius": params.radius,
            "limit": params.limit or DEFAULT_LIMIT,
            "status": ACTIVE_STATUS,
        }
        if params.keywords:
            query["query"] = params.keywords
        if params.causes:
            query["categories"] = ",".join(params.causes)
        if params.type is SearchType.VIRTUAL:
            query["is_virtual"] = True
        elif params.type is SearchType.IN_PERSON:
            query["is_virtual"] = False
        return query

    async def search_opportunities(
        self,
        params: SearchParameters,
    ) -> Result[list[Opportunity], SearchError]:
        """Search JustServe for active opportunities."""
        result = await self._client.get_json(
            "/opportunities",
            params=self.build_query(params),
            operation="search opportunities",
        )
        if isinstance(result, Failure):
            return failure(result.error)

        try:
            items = [
                item
                for item in result.value.get("results", [])
                if item.get("status") == ACTIVE_STATUS
            ]
        except AttributeError:
            return failure(server_error(self.name, "Unexpected search response shape"))
        return success(self._parse_opportunities(items))

    async def get_opportunity_details(
        self,
        opportunity_id: str,
    ) -> Result[Opportunity, SearchError]:
        """Get one JustServe opportunity by id."""
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
                "Failed to parse JustServe opportunity",
                opportunity_id=opportunity_id,
                error=str(e),
            )
            return failure(server_error(self.name, "Failed to parse opportunity details"))

    async def healthcheck(self) -> bool:
        """Check if the JustServe API is available."""
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
        """
        Parse a JustServe project.

        JustServe vets every listed project, so all are marked verified.
        """
        organization = item["organization"]
        location = item["location"]

        parts = [
            location.get("street_address"),
            location["city"],
            location.get("state"),
            location.get("zip_code"),
            location["country"],
        ]
        coordinates = None
        if location.get("latitude") is not None and location.get("longitude") is not None:
            coordinates = Coordinates(
                latitude=float(location["latitude"]),
                longitude=float(location["longitude"]),
            )
        categories = item.get("categories") or []

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
            cause=categories[0] if categories else DEFAULT_CATEGORY,
            skills=tuple(item.get("skills") or ()),
            time_commitment=item.get("duration", ""),
            date=item.get("start_date", ""),
            participants=item.get("volunteer_count"),
            contact_info=ContactInfo(
                email=organization.get("contact_email"),
                phone=organization.get("contact_phone"),
                website=organization.get("website"),
            ),
            external_url=item.get("application_url", ""),
            last_updated=parse_timestamp(item.get("modified_date")),
            verified=True,
            application_deadline=parse_timestamp(item.get("end_date")),
            requirements=self._build_requirements(item),
        )

    @staticmethod
    def _build_requirements(item: dict[str, Any]) -> tuple[str, ...]:
        requirements = list(item.get("requirements") or ())
        if item.get("age_requirement"):
            requirements.append(f"Age requirement: {item['age_requirement']}")
        if item.get("spots_available"):
            requirements.append(f"{item['spots_available']} spots available")
        return tuple(requirements)
