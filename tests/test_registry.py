"""Tests for the provider registry and factory."""

from __future__ import annotations

import asyncio

import pytest
from pydantic import SecretStr

from core.config import IdealistSettings, JustServeSettings, Settings, VolunteerHubSettings
from core.result import Failure, Success
from services.providers.factory import build_registry, create_providers
from services.providers.idealist import IdealistAdapter
from services.providers.justserve import JustServeAdapter
from services.providers.registry import ProviderNotFoundError, ServiceRegistry
from services.providers.volunteerhub import VolunteerHubAdapter


class TestServiceRegistry:
    """Tests for ServiceRegistry."""

    def test_register_and_get(self, make_provider) -> None:
        """Registered providers can be looked up by name."""
        registry = ServiceRegistry()
        provider = make_provider("VolunteerHub")

        registry.register(provider)

        result = registry.get("VolunteerHub")
        assert isinstance(result, Success)
        assert result.value is provider
        assert registry.is_registered("VolunteerHub") is True

    def test_get_unknown(self) -> None:
        """Looking up an unknown name returns a Failure."""
        result = ServiceRegistry().get("Nope")

        assert isinstance(result, Failure)
        assert isinstance(result.error, ProviderNotFoundError)
        assert result.error.name == "Nope"

    def test_register_replaces(self, make_provider) -> None:
        """A provider registered under an existing name replaces it."""
        registry = ServiceRegistry()
        registry.register(make_provider("Idealist"))
        replacement = make_provider("Idealist")

        registry.register(replacement)

        assert registry.list_all() == [replacement]

    def test_register_empty_name(self, make_provider) -> None:
        """Providers must have a name."""
        with pytest.raises(ValueError, match="provider name cannot be empty"):
            ServiceRegistry().register(make_provider(""))

    @pytest.mark.asyncio
    async def test_unregister_drops_health(self, make_provider) -> None:
        """unregister removes the provider and its health record."""
        registry = ServiceRegistry()
        registry.register(make_provider("JustServe"))
        await registry.record_outcome("JustServe", healthy=False, error="down")

        assert registry.unregister("JustServe") is True
        assert registry.unregister("JustServe") is False
        assert registry.get_health("JustServe") is None

    @pytest.mark.asyncio
    async def test_unchecked_providers_are_healthy(self, make_provider) -> None:
        """Providers never observed count as healthy; failures exclude them."""
        registry = ServiceRegistry()
        registry.register(make_provider("VolunteerHub"))
        registry.register(make_provider("JustServe"))

        await registry.record_outcome("JustServe", healthy=False, error="timeout")

        assert [provider.name for provider in registry.list_healthy()] == ["VolunteerHub"]
        assert registry.get_stats() == {
            "total": 2,
            "healthy": 1,
            "unhealthy": 1,
            "providers": ["VolunteerHub", "JustServe"],
            "healthy_providers": ["VolunteerHub"],
        }

    @pytest.mark.asyncio
    async def test_consecutive_failures(self, make_provider) -> None:
        """Failures accumulate and reset on success."""
        registry = ServiceRegistry()
        registry.register(make_provider("Idealist"))

        await registry.record_outcome("Idealist", healthy=False)
        status = await registry.record_outcome("Idealist", healthy=False)
        assert status.consecutive_failures == 2

        status = await registry.record_outcome("Idealist", healthy=True)
        assert status.consecutive_failures == 0
        assert registry.get_health("Idealist").healthy is True

    @pytest.mark.asyncio
    async def test_outcome_for_unregistered_not_stored(self) -> None:
        """Observations for unknown providers are not kept."""
        registry = ServiceRegistry()

        await registry.record_outcome("Ghost", healthy=True)

        assert registry.get_all_health() == {}

    @pytest.mark.asyncio
    async def test_check_all(self, make_provider) -> None:
        """check_all probes every provider and records the outcome."""
        registry = ServiceRegistry()
        registry.register(make_provider("VolunteerHub"))
        registry.register(make_provider("JustServe", healthy=False))
        registry.register(make_provider("Idealist", raises=RuntimeError("dns failure")))

        statuses = await registry.check_all(timeout=1.0)

        assert statuses["VolunteerHub"].healthy is True
        assert statuses["JustServe"].healthy is False
        assert statuses["JustServe"].error == "Health check failed"
        assert statuses["Idealist"].error == "dns failure"
        assert [provider.name for provider in registry.list_healthy()] == ["VolunteerHub"]

    @pytest.mark.asyncio
    async def test_check_health_timeout(self, make_provider) -> None:
        """A probe that does not answer in time is unhealthy."""

        class SlowProvider(make_provider):
            async def healthcheck(self) -> bool:
                await asyncio.sleep(1)
                return True

        registry = ServiceRegistry()
        provider = SlowProvider("Idealist")
        registry.register(provider)

        status = await registry.check_health(provider, timeout=0.01)

        assert status.healthy is False
        assert status.error == "Health check timed out after 0.01s"

    @pytest.mark.asyncio
    async def test_close_all(self, make_provider) -> None:
        """close_all closes every provider."""
        registry = ServiceRegistry()
        providers = [make_provider("VolunteerHub"), make_provider("Idealist")]
        for provider in providers:
            registry.register(provider)

        await registry.close_all()

        assert all(provider.closed for provider in providers)

    def test_clear_health(self) -> None:
        """clear_health forgets observations."""
        registry = ServiceRegistry()

        registry.clear_health()

        assert registry.get_all_health() == {}


class TestFactory:
    """Tests for building providers from settings."""

    def test_creates_enabled_providers(self) -> None:
        """Every enabled provider with a base URL gets an adapter."""
        settings = Settings(
            volunteerhub=VolunteerHubSettings(api_key=SecretStr("vh")),
            justserve=JustServeSettings(api_key=SecretStr("js")),
            idealist=IdealistSettings(api_key=SecretStr("id")),
        )

        providers = create_providers(settings)

        assert [type(provider) for provider in providers] == [
            VolunteerHubAdapter,
            JustServeAdapter,
            IdealistAdapter,
        ]

    def test_skips_disabled_and_unconfigured(self) -> None:
        """Disabled providers and providers without a URL are skipped."""
        settings = Settings(
            volunteerhub=VolunteerHubSettings(enabled=False),
            justserve=JustServeSettings(base_url=""),
            idealist=IdealistSettings(),
        )

        registry = build_registry(settings)

        assert [provider.name for provider in registry.list_all()] == ["Idealist"]
