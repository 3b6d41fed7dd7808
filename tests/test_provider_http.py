"""Tests for the shared provider HTTP client."""

from __future__ import annotations

import httpx
import pytest

from core.result import Failure, Success
from services.providers.errors import ErrorType
from services.providers.http import ProviderHttpClient

BASE_URL = "https://api.volunteerhub.com/v1"


def make_client(handler) -> ProviderHttpClient:
    """Build a client whose requests go to ``handler``."""
    client = ProviderHttpClient("VolunteerHub", BASE_URL, headers={"Authorization": "Bearer key"})
    client._client = httpx.AsyncClient(
        transport=httpx.MockTransport(handler),
        base_url=client.base_url,
        headers=client._headers,
    )
    return client


class TestProviderHttpClient:
    """Tests for ProviderHttpClient."""

    def test_requires_base_url(self) -> None:
        """An empty base URL is rejected."""
        with pytest.raises(ValueError, match="base_url is required for Idealist"):
            ProviderHttpClient("Idealist", "")

    def test_strips_trailing_slash(self) -> None:
        """The base URL is stored without trailing slash."""
        client = ProviderHttpClient("Idealist", "https://www.idealist.org/api/v1/")

        assert client.base_url == "https://www.idealist.org/api/v1"

    @pytest.mark.asyncio
    async def test_get_json_success(self) -> None:
        """A 200 response is decoded; None params are dropped."""
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"opportunities": []})

        client = make_client(handler)

        result = await client.get_json("/opportunities/search", params={"lat": 40.7, "q": None})

        assert isinstance(result, Success)
        assert result.value == {"opportunities": []}
        assert seen[0].url.path == "/v1/opportunities/search"
        assert dict(seen[0].url.params) == {"lat": "40.7"}
        assert seen[0].headers["Authorization"] == "Bearer key"
        await client.close()

    @pytest.mark.asyncio
    async def test_rate_limited_response(self) -> None:
        """429 responses carry the Retry-After value."""
        client = make_client(lambda request: httpx.Response(429, headers={"Retry-After": "7"}))

        result = await client.get_json("/opportunities/search", operation="search opportunities")

        assert isinstance(result, Failure)
        assert result.error.type is ErrorType.RATE_LIMIT
        assert result.error.retry_after == 7.0
        assert result.error.message == "Rate limit exceeded for search opportunities"

    @pytest.mark.asyncio
    async def test_server_error_response(self) -> None:
        """5xx responses are retryable server errors."""
        client = make_client(lambda request: httpx.Response(503, text="maintenance"))

        result = await client.get_json("/opportunities/search")

        assert isinstance(result, Failure)
        assert result.error.type is ErrorType.SERVER_ERROR
        assert result.error.retryable is True

    @pytest.mark.asyncio
    async def test_invalid_json(self) -> None:
        """A body that is not JSON is a server error."""
        client = make_client(lambda request: httpx.Response(200, text="<html>"))

        result = await client.get_json("/opportunities/search", operation="search")

        assert isinstance(result, Failure)
        assert result.error.message == "Invalid JSON during search"

    @pytest.mark.asyncio
    async def test_transport_error(self) -> None:
        """Connection failures are network errors."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = make_client(handler)

        result = await client.get_json("/opportunities/search")

        assert isinstance(result, Failure)
        assert result.error.type is ErrorType.NETWORK

    @pytest.mark.asyncio
    async def test_timeout(self) -> None:
        """Read timeouts are timeout errors."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        client = make_client(handler)

        result = await client.get_json("/opportunities/search")

        assert isinstance(result, Failure)
        assert result.error.type is ErrorType.TIMEOUT

    @pytest.mark.asyncio
    async def test_probe(self) -> None:
        """probe is True only for a success status."""
        healthy = make_client(lambda request: httpx.Response(200))
        unhealthy = make_client(lambda request: httpx.Response(500))

        assert await healthy.probe() is True
        assert await unhealthy.probe() is False

    @pytest.mark.asyncio
    async def test_probe_network_failure(self) -> None:
        """probe is False when the API cannot be reached."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("unreachable", request=request)

        assert await make_client(handler).probe() is False

    @pytest.mark.asyncio
    async def test_close(self) -> None:
        """close releases the underlying client."""
        client = make_client(lambda request: httpx.Response(200, json={}))

        await client.close()

        assert client._client is None
