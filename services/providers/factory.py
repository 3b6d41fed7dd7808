"""Construction of the provider adapters from settings."""

from __future__ import annotations

from typing import TYPE_CHECKING

from core.logging import get_logger
from services.providers.idealist import IdealistAdapter
from services.providers.justserve import JustServeAdapter
from services.providers.registry import ServiceRegistry
from services.providers.volunteerhub import VolunteerHubAdapter

if TYPE_CHECKING:
    from collections.abc import Callable

    from core.config import ProviderSettings, Settings
    from services.providers.base import Provider

logger = get_logger(__name__)


def create_providers(settings: Settings) -> list[Provider]:
    """
    Build an adapter for every enabled provider.

    Providers without a base URL are skipped. A missing API key is only
    logged, since some endpoints accept anonymous requests.

    Args:
        settings: Application settings.

    Returns:
        Adapters in VolunteerHub, JustServe, Idealist order.
    """
    builders: list[tuple[ProviderSettings, Callable[[ProviderSettings], Provider]]] = [
        (settings.volunteerhub, VolunteerHubAdapter),
        (settings.justserve, JustServeAdapter),
        (settings.idealist, IdealistAdapter),
    ]

    providers: list[Provider] = []
    for provider_settings, build in builders:
        if not provider_settings.enabled:
            logger.info("Provider disabled", provider=provider_settings.name)
            continue
        if not provider_settings.base_url:
            logger.warning("Provider has no base_url, skipping", provider=provider_settings.name)
            continue
        if not provider_settings.api_key.get_secret_value():
            logger.warning("Provider has no API key", provider=provider_settings.name)
        providers.append(build(provider_settings))
    return providers


def build_registry(settings: Settings) -> ServiceRegistry:
    """Create a registry holding every enabled provider."""
    registry = ServiceRegistry()
    for provider in create_providers(settings):
        registry.register(provider)
    return registry
