"""Registry of opportunity providers and their last known health."""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from core.logging import get_logger
from core.result import Failure, Success

if TYPE_CHECKING:
    from core.result import Result
    from services.providers.base import Provider

logger = get_logger(__name__)


class ProviderNotFoundError(Exception):
    """Raised when no provider is registered under a name."""

    def __init__(self, name: str) -> None:
        """Initialize with the provider name."""
        self.name = name
        super().__init__(f"No provider registered under name: {name}")


@dataclass(frozen=True, slots=True)
class ServiceStatus:
    """
    Health of one provider, from a probe or a search run.

    Attributes:
        service_name: Provider name.
        healthy: Whether the last observation succeeded.
        last_checked: When it was observed.
        response_time: Seconds the observation took.
        error: Error message when unhealthy.
        consecutive_failures: Unhealthy observations in a row.
    """

    service_name: str
    healthy: bool
    last_checked: datetime
    response_time: float | None = None
    error: str | None = None
    consecutive_failures: int = 0


class ServiceRegistry:
    """
    Holds the registered providers and their health.

    Providers that were never checked count as healthy. A failed probe or
    search marks a provider unhealthy until it next succeeds.

    Example:
        >>> registry = ServiceRegistry()
        >>> registry.register(VolunteerHubAdapter(settings.volunteerhub))
        >>> await registry.check_all(timeout=5.0)
        >>> healthy = registry.list_healthy()
    """

    def __init__(self) -> None:
        """Initialize an empty registry."""
        self._providers: dict[str, Provider] = {}
        self._health: dict[str, ServiceStatus] = {}
        self._lock = asyncio.Lock()

    def register(self, provider: Provider) -> None:
        """
        Register a provider under its name, replacing any previous one.

        Raises:
            ValueError: If the provider name is empty.
        """
        if not provider.name:
            msg = "provider name cannot be empty"
            raise ValueError(msg)
        self._providers[provider.name] = provider
        logger.info("Provider registered", provider=provider.name)

    def unregister(self, name: str) -> bool:
        """
        Remove a provider and its health record.

        Returns:
            True if a provider was removed, False if not found.
        """
        if name not in self._providers:
            return False
        del self._providers[name]
        self._health.pop(name, None)
        logger.info("Provider unregistered", provider=name)
        return True

    def get(self, name: str) -> Result[Provider, ProviderNotFoundError]:
        """Get a provider by name."""
        provider = self._providers.get(name)
        if provider is None:
            return Failure(ProviderNotFoundError(name))
        return Success(provider)

    def is_registered(self, name: str) -> bool:
        """Check if a provider is registered."""
        return name in self._providers

    def list_all(self) -> list[Provider]:
        """Return every registered provider in registration order."""
        return list(self._providers.values())

    def list_healthy(self) -> list[Provider]:
        """Return providers whose last observation succeeded or that were never checked."""
        return [
            provider
            for name, provider in self._providers.items()
            if name not in self._health or self._health[name].healthy
        ]

    def get_health(self, name: str) -> ServiceStatus | None:
        """Return the last health observation for ``name``, if any."""
        return self._health.get(name)

    def get_all_health(self) -> dict[str, ServiceStatus]:
        """Return the last health observation of every checked provider."""
        return dict(self._health)

    async def record_outcome(
        self,
        name: str,
        *,
        healthy: bool,
        response_time: float | None = None,
        error: str | None = None,
    ) -> ServiceStatus:
        """
        Store a health observation for ``name``.

        Returns:
            The stored status, with ``consecutive_failures`` updated.
        """
        async with self._lock:
            previous = self._health.get(name)
            failures = 0
            if not healthy:
                failures = (previous.consecutive_failures if previous else 0) + 1
            status = ServiceStatus(
                service_name=name,
                healthy=healthy,
                last_checked=datetime.now(UTC),
                response_time=response_time,
                error=error,
                consecutive_failures=failures,
            )
            if name in self._providers:
                self._health[name] = status
        if previous is not None and previous.healthy != healthy:
            logger.info("Provider health changed", provider=name, healthy=healthy)
        return status

    async def check_health(self, provider: Provider, timeout: float = 5.0) -> ServiceStatus:
        """
        Probe one provider and record the outcome.

        Args:
            provider: Provider to probe.
            timeout: Seconds to wait for the probe.

        Returns:
            The recorded status.
        """
        start = time.perf_counter()
        error: str | None = None
        try:
            healthy = await asyncio.wait_for(provider.healthcheck(), timeout=timeout)
            if not healthy:
                error = "Health check failed"
        except TimeoutError:
            healthy = False
            error = f"Health check timed out after {timeout}s"
        except Exception as e:
            healthy = False
            error = str(e) or type(e).__name__
        elapsed = time.perf_counter() - start

        if not healthy:
            logger.warning("Provider health check failed", provider=provider.name, error=error)
        return await self.record_outcome(
            provider.name, healthy=bool(healthy), response_time=elapsed, error=error
        )

    async def check_all(self, timeout: float = 5.0) -> dict[str, ServiceStatus]:
        """Probe every registered provider concurrently."""
        providers = self.list_all()
        statuses = await asyncio.gather(
            *(self.check_health(provider, timeout) for provider in providers)
        )
        return {status.service_name: status for status in statuses}

    def clear_health(self) -> None:
        """Forget all health observations."""
        self._health.clear()

    def get_stats(self) -> dict[str, Any]:
        """
        Summarize the registry.

        Returns:
            Counts of registered, healthy and unhealthy providers plus names.
        """
        healthy = [provider.name for provider in self.list_healthy()]
        return {
            "total": len(self._providers),
            "healthy": len(healthy),
            "unhealthy": len(self._providers) - len(healthy),
            "providers": list(self._providers),
            "healthy_providers": healthy,
        }

    async def close_all(self) -> None:
        """Close every registered provider."""
        for provider in self._providers.values():
            try:
                await provider.close()
            except Exception as e:
                logger.warning("Error closing provider", provider=provider.name, error=str(e))
