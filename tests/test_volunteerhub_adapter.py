"""Tests for the VolunteerHub adapter."""

from __future__ import annotations

from datetime import datetime
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
from pydantic import SecretStr

from core.config import VolunteerHubSettings
from core.result import Failure, Success, failure, success
from services.geocoding.base import Coordinates
from services.providers.base import OpportunityType, SearchParameters, SearchType
from services.providers.errors import ErrorType, network_error
from services.providers.http import ProviderHttpClient
from services.providers.volunteerhub import VolunteerHubAdapter

NEW_YORK = Coordinates(latitude=40.7128, longitude=-74.0060)


def hub_item(**overrides: Any) -> dict[str, Any]:
    """Build a raw VolunteerHub opportunity."""
    item: dict[str, Any] = {
        "id": 101,
        "title": "Park Cleanup",
        "description": "Help clean Central Park",
        "organization": {
            "name": "NYC Parks",
            "email": "volunteer@nycparks.org",
            "phone": "555-0100",
            "website": "https://nycparks.org",
        },
        "location": {
            "address": "5th Ave",
            "city": "New York",
            "state": "NY",
            "country": "USA",
            "coordinates": {"lat": 40.7812, "lng": -73.9665},
        },
        "category": "environment",
        "skills_required": ["teamwork"],
        "time_commitment": "3 hours",
        "event_date": "2026-11-01",
        "current_participants": 12,
        "external_url": "https://volunteerhub.com/opp/101",
        "updated_at": "2026-10-01T12:00:00+00:00",
        "verified": True,
        "is_virtual": False,
    }
    item.update(overrides)
    return item


@pytest.fixture()
def client() -> MagicMock:
    """Return a mocked ProviderHttpClient."""
    mock = MagicMock(spec=ProviderHttpClient)
    mock.get_json = AsyncMock(return_value=success({"opportunities": [hub_item()]}))
    mock.probe = AsyncMock(return_value=True)
    mock.close = AsyncMock()
    return mock


@pytest.fixture()
def adapter(client: MagicMock) -> VolunteerHubAdapter:
    """Return an adapter wired to the mocked client."""
    return VolunteerHubAdapter(VolunteerHubSettings(api_key=SecretStr("vh-key")), client=client)


class TestVolunteerHubAdapter:
    """Tests for VolunteerHubAdapter."""

    def test_policies_from_settings(self, adapter: VolunteerHubAdapter) -> None:
        """Name, quota and retry policy come from settings."""
        assert adapter.name == "VolunteerHub"
        assert adapter.rate_limit.requests_per_minute == 60
        assert adapter.retry_config.max_retries == 3

    def test_build_query(self, adapter: VolunteerHubAdapter) -> None:
        """Only the first cause is sent; BOTH sends no type."""
        params = SearchParameters(
            location=NEW_YORK,
            radius=25,
            keywords="park",
            causes=("environment", "animals"),
        )

        query = adapter.build_query(params)

        assert query == {
            "lat": 40.7128,
            "lng": -74.0060,
            "radius": 25,
            "limit": 50,
            "q": "park",
            "category": "environment",
        }

    def test_build_query_type(self, adapter: VolunteerHubAdapter) -> None:
        """A specific type is passed through."""
        params = SearchParameters(location=NEW_YORK, radius=10, type=SearchType.VIRTUAL, limit=5)

        query = adapter.build_query(params)

        assert query["type"] == "virtual"
        assert query["limit"] == 5

    def test_bearer_auth_header(self) -> None:
        """The API key is sent as a Bearer token."""
        adapter = VolunteerHubAdapter(VolunteerHubSettings(api_key=SecretStr("vh-key")))

        assert adapter._client._headers["Authorization"] == "Bearer vh-key"

    @pytest.mark.asyncio
    async def test_search_parses_opportunities(
        self, adapter: VolunteerHubAdapter, client: MagicMock
    ) -> None:
        """Search results are mapped to Opportunity."""
        result = await adapter.search_opportunities(SearchParameters(location=NEW_YORK, radius=25))

        assert isinstance(result, Success)
        [opportunity] = result.value
        assert opportunity.id == "101"
        assert opportunity.source == "VolunteerHub"
        assert opportunity.organization == "NYC Parks"
        assert opportunity.location == "5th Ave, New York, NY, USA"
        assert opportunity.coordinates == Coordinates(latitude=40.7812, longitude=-73.9665)
        assert opportunity.type is OpportunityType.IN_PERSON
        assert opportunity.skills == ("teamwork",)
        assert opportunity.contact_info.email == "volunteer@nycparks.org"
        assert opportunity.last_updated == datetime.fromisoformat("2026-10-01T12:00:00+00:00")
        assert opportunity.verified is True
        assert client.get_json.await_args.args[0] == "/opportunities/search"

    @pytest.mark.asyncio
    async def test_search_skips_malformed_items(
        self, adapter: VolunteerHubAdapter, client: MagicMock
    ) -> None:
        """Items missing required fields are skipped."""
        broken = hub_item(id=102)
        del broken["title"]
        client.get_json.return_value = success(
            {"opportunities": [broken, hub_item(id=103, is_virtual=True)]}
        )

        result = await adapter.search_opportunities(SearchParameters(location=NEW_YORK, radius=25))

        assert [opportunity.id for opportunity in result.value] == ["103"]
        assert result.value[0].is_virtual is True

    @pytest.mark.asyncio
    async def test_search_without_coordinates(
        self, adapter: VolunteerHubAdapter, client: MagicMock
    ) -> None:
        """Opportunities without coordinates are kept."""
        item = hub_item()
        item["location"] = {"city": "New York", "country": "USA"}
        client.get_json.return_value = success({"opportunities": [item]})

        result = await adapter.search_opportunities(SearchParameters(location=NEW_YORK, radius=25))

        assert result.value[0].coordinates is None
        assert result.value[0].location == "New York, USA"

    @pytest.mark.asyncio
    async def test_search_propagates_failure(
        self, adapter: VolunteerHubAdapter, client: MagicMock
    ) -> None:
        """Client failures are returned unchanged."""
        client.get_json.return_value = failure(network_error("VolunteerHub"))

        result = await adapter.search_opportunities(SearchParameters(location=NEW_YORK, radius=25))

        assert isinstance(result, Failure)
        assert result.error.type is ErrorType.NETWORK

    @pytest.mark.asyncio
    async def test_search_unexpected_shape(
        self, adapter: VolunteerHubAdapter, client: MagicMock
    ) -> None:
        """A non-object body is a server error."""
        client.get_json.return_value = success(["not", "an", "object"])

        result = await adapter.search_opportunities(SearchParameters(location=NEW_YORK, radius=25))

        assert isinstance(result, Failure)
        assert result.error.type is ErrorType.SERVER_ERROR

    @pytest.mark.asyncio
    async def test_details(self, adapter: VolunteerHubAdapter, client: MagicMock) -> None:
        """Details are fetched by id."""
        client.get_json.return_value = success(hub_item())

        result = await adapter.get_opportunity_details("101")

        assert result.value.title == "Park Cleanup"
        assert client.get_json.await_args.args[0] == "/opportunities/101"

    @pytest.mark.asyncio
    async def test_details_unparseable(self, adapter: VolunteerHubAdapter, client: MagicMock) -> None:
        """A malformed detail body is a server error."""
        client.get_json.return_value = success({"id": 1})

        result = await adapter.get_opportunity_details("1")

        assert isinstance(result, Failure)
        assert result.error.message == "Failed to parse opportunity details"

    @pytest.mark.asyncio
    async def test_healthcheck_and_close(
        self, adapter: VolunteerHubAdapter, client: MagicMock
    ) -> None:
        """healthcheck probes the API and close closes the client."""
        assert await adapter.healthcheck() is True

        await adapter.close()

        client.close.assert_awaited_once()
