"""Search orchestrator for coordinating multi-provider searches."""

from __future__ import annotations

import asyncio
import time
import uuid
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from core.config import SearchSettings, Settings, get_settings
from core.logging import bind_context, get_logger, unbind_context
from core.result import Failure, Result, failure
from services.geocoding.base import GeocodingError, LocationInfo
from services.geocoding.nominatim import NominatimGeocoder
from services.providers.base import ProviderResult, SearchParameters, SearchType
from services.providers.errors import (
    ErrorType,
    classify_exception,
    geocoding_error,
    timeout_error,
    validation_error,
)
from services.providers.factory import build_registry
from services.providers.rate_limiter import RateLimiterManager
from services.providers.retry import RetryExecutor
from services.search.cache import CacheMetadata, ResultsCache, WarmLocation
from services.search.multi_location import MultiLocationCoordinator, is_multi_location_input
from services.search.processor import ResultsProcessor, deduplicate_opportunities, sort_by_distance
from services.search.types import (
    ErrorSummary,
    ProcessingOptions,
    SearchFilters,
    SearchOptions,
    SearchResult,
)

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Iterable, Sequence

    from services.geocoding.base import GeocodingClient
    from services.providers.base import Opportunity, Provider
    from services.providers.errors import SearchError
    from services.providers.registry import ServiceRegistry, ServiceStatus
    from services.search.cache import CacheStats, InvalidationCriteria
    from services.search.types import MultiLocationSearchResult

logger = get_logger(__name__)

SOURCE = "SearchOrchestrator"


class SearchOrchestratorError(Exception):
    """Error in search orchestration."""

    def __init__(self, message: str, details: str | None = None) -> None:
        """Initialize error."""
        super().__init__(message)
        self.message = message
        self.details = details


class SearchOrchestrator:
    """
    Orchestrates searches across every registered provider.

    Fans a search out to the selected providers concurrently, each call
    rate limited and retried per provider policy, bounds the whole run with
    a timeout, and merges whatever came back into one processed result.
    Provider failures never raise out of a search; they are reported in
    ``SearchResult.errors``.
    """

    def __init__(
        self,
        registry: ServiceRegistry,
        *,
        settings: SearchSettings | None = None,
        rate_limiters: RateLimiterManager | None = None,
        processor: ResultsProcessor | None = None,
        cache: ResultsCache | None = None,
        geocoder: GeocodingClient | None = None,
        multi_location: MultiLocationCoordinator | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """
        Initialize the orchestrator.

        Args:
            registry: Registry of providers to search.
            settings: Timeout, concurrency and cache defaults.
            rate_limiters: Per-provider rate limiters.
            processor: Results processor.
            cache: Results cache.
            geocoder: Geocoder used for location-text searches.
            multi_location: Coordinator for multi-location searches.
            sleep: Coroutine used by retries and rate limiting to wait.
        """
        self._registry = registry
        self._settings = settings or SearchSettings()
        self._rate_limiters = rate_limiters or RateLimiterManager(sleep=sleep)
        self._processor = processor or ResultsProcessor()
        self._cache = cache or ResultsCache(
            default_ttl=self._settings.cache_ttl,
            max_cache_size=self._settings.cache_max_size,
        )
        self._geocoder = geocoder or NominatimGeocoder()
        self._multi_location = multi_location or MultiLocationCoordinator(self._geocoder)
        self._sleep = sleep
        self._last_search_time: datetime | None = None

    @property
    def registry(self) -> ServiceRegistry:
        """Return the provider registry."""
        return self._registry

    @property
    def cache(self) -> ResultsCache:
        """Return the results cache."""
        return self._cache

    def default_options(self) -> SearchOptions:
        """Return search options built from settings."""
        return SearchOptions(
            timeout=self._settings.default_timeout,
            max_concurrent_requests=self._settings.max_concurrent_requests,
            use_healthy_services_only=self._settings.use_healthy_services_only,
        )

    async def perform_search(
        self,
        params: SearchParameters,
        options: SearchOptions | None = None,
    ) -> SearchResult:
        """
        Search every selected provider around one location.

        Args:
            params: Search parameters.
            options: Fan-out options (defaults from settings).

        Returns:
            The merged, processed result. Never raises for provider failures.
        """
        bind_context(search_id=uuid.uuid4().hex[:12])
        try:
            return await self._search(params, options or self.default_options())
        finally:
            unbind_context("search_id")

    async def _search(
        self,
        params: SearchParameters,
        options: SearchOptions,
        *,
        read_cache: bool = True,
    ) -> SearchResult:
        start = time.perf_counter()
        self._last_search_time = datetime.now(UTC)
        search_location = LocationInfo.from_coordinates(params.location)

        if read_cache:
            cached = self._cache.get(params)
            if cached is not None:
                logger.info("Returning cached search results", total_results=len(cached))
                return SearchResult(
                    opportunities=cached,
                    search_location=search_location,
                    total_results=len(cached),
                    sources=list(dict.fromkeys(opportunity.source for opportunity in cached)),
                    response_time=time.perf_counter() - start,
                    cached=True,
                )

        try:
            providers = self._select_providers(options)
        except SearchOrchestratorError as e:
            logger.warning("Search aborted", error=e.message)
            return SearchResult(
                opportunities=[],
                search_location=search_location,
                total_results=0,
                errors=[validation_error(SOURCE, e.message)],
                response_time=time.perf_counter() - start,
            )

        logger.info(
            "Starting search",
            providers=[provider.name for provider in providers],
            latitude=params.location.latitude,
            longitude=params.location.longitude,
            radius=params.radius,
            timeout=options.timeout,
        )

        results = await self._fan_out(providers, params, options.timeout)
        statuses = await self._record_statuses(results)

        processed = self._processor.process_results(
            results,
            params.location,
            ProcessingOptions(max_distance=params.radius),
        )

        errors = [result.error for result in results if result.error is not None]
        result = SearchResult(
            opportunities=processed.opportunities,
            search_location=search_location,
            total_results=len(processed.opportunities),
            sources=list(dict.fromkeys(result.source for result in results)),
            errors=errors or None,
            response_time=time.perf_counter() - start,
            partial_results=bool(errors),
            service_statuses=statuses,
            processing_stats=processed.stats,
        )

        if result.opportunities:
            self._cache.set(
                params,
                result.opportunities,
                CacheMetadata(
                    total_results=result.total_results,
                    sources=tuple(result.sources),
                    response_time=result.response_time,
                ),
            )

        logger.info(
            "Search completed",
            total_results=result.total_results,
            sources=result.sources,
            errors=len(errors),
            response_time=round(result.response_time, 3),
        )
        return result

    def _select_providers(self, options: SearchOptions) -> list[Provider]:
        """
        Pick the providers to query.

        Raises:
            SearchOrchestratorError: If no provider is available.
        """
        providers = (
            self._registry.list_healthy()
            if options.use_healthy_services_only
            else self._registry.list_all()
        )
        if not providers:
            msg = "No available services"
            registered = len(self._registry.list_all())
            raise SearchOrchestratorError(msg, details=f"{registered} providers registered")
        return providers[: options.max_concurrent_requests]

    async def _fan_out(
        self,
        providers: Sequence[Provider],
        params: SearchParameters,
        timeout: float,
    ) -> list[ProviderResult]:
        """
        Query providers concurrently, bounded by ``timeout``.

        Providers still running at the deadline are cancelled and reported
        as timeouts; their late results are discarded.

        Returns:
            One ProviderResult per provider, in the given order.
        """
        tasks = {
            asyncio.create_task(
                self._search_provider(provider, params),
                name=f"search:{provider.name}",
            ): provider
            for provider in providers
        }
        pending: set[asyncio.Task[ProviderResult]] = set()
        try:
            _, pending = await asyncio.wait(tasks, timeout=timeout)
        finally:
            stragglers = [task for task in tasks if not task.done()]
            for task in stragglers:
                task.cancel()
            if stragglers:
                await asyncio.gather(*stragglers, return_exceptions=True)

        results = []
        for task, provider in tasks.items():
            if task in pending:
                logger.warning("Provider timed out", provider=provider.name, timeout=timeout)
                results.append(
                    ProviderResult(
                        source=provider.name,
                        success=False,
                        error=timeout_error(provider.name, f"Search timed out after {timeout:g}s"),
                        response_time=timeout,
                    )
                )
            else:
                results.append(task.result())
        return results

    async def _search_provider(
        self,
        provider: Provider,
        params: SearchParameters,
    ) -> ProviderResult:
        """Search one provider behind its rate limiter and retry policy."""
        start = time.perf_counter()
        try:
            limiter = self._rate_limiters.get_limiter(provider.name, provider.rate_limit)
            await limiter.acquire(provider.name)
            executor = RetryExecutor(provider.retry_config, sleep=self._sleep)
            outcome = await executor.execute(
                lambda: provider.search_opportunities(params),
                source=provider.name,
                operation_name="search",
            )
        except Exception as e:
            logger.error("Provider search failed", provider=provider.name, error=str(e))
            outcome = failure(classify_exception(provider.name, e, "search"))

        elapsed = time.perf_counter() - start
        if isinstance(outcome, Failure):
            return ProviderResult(
                source=provider.name,
                success=False,
                error=outcome.error,
                response_time=elapsed,
            )

        logger.debug("Provider answered", provider=provider.name, opportunities=len(outcome.value))
        return ProviderResult(
            source=provider.name,
            opportunities=tuple(outcome.value),
            response_time=elapsed,
        )

    async def _record_statuses(self, results: Iterable[ProviderResult]) -> list[ServiceStatus]:
        """Feed each provider's outcome into the registry's health state."""
        return [
            await self._registry.record_outcome(
                result.source,
                healthy=result.success,
                response_time=result.response_time,
                error=result.error.message if result.error is not None else None,
            )
            for result in results
        ]

    async def retry_failed_sources(
        self,
        params: SearchParameters,
        previous: SearchResult,
        options: SearchOptions | None = None,
    ) -> SearchResult:
        """
        Re-query only the providers whose previous error was retryable.

        Opportunities from sources that already answered are kept as they
        are. Returns ``previous`` unchanged when nothing can be retried.
        """
        if not previous.errors:
            return previous
        retryable = {error.source for error in previous.errors if error.retryable}
        providers = [provider for provider in self._registry.list_all() if provider.name in retryable]
        if not providers:
            return previous

        opts = options or self.default_options()
        start = time.perf_counter()
        logger.info("Retrying failed sources", sources=[provider.name for provider in providers])

        results = await self._fan_out(providers, params, opts.timeout)
        statuses = await self._record_statuses(results)
        retried = {result.source for result in results}

        processed = self._processor.process_results(
            results,
            params.location,
            ProcessingOptions(max_distance=params.radius),
        )
        opportunities = sort_by_distance(
            deduplicate_opportunities([*previous.opportunities, *processed.opportunities])
        )

        errors = [error for error in previous.errors if error.source not in retried]
        errors.extend(result.error for result in results if result.error is not None)

        result = SearchResult(
            opportunities=opportunities,
            search_location=previous.search_location,
            total_results=len(opportunities),
            sources=list(dict.fromkeys([*previous.sources, *retried])),
            errors=errors or None,
            response_time=time.perf_counter() - start,
            partial_results=bool(errors),
            service_statuses=[
                *(status for status in previous.service_statuses if status.service_name not in retried),
                *statuses,
            ],
            processing_stats=processed.stats,
        )
        if result.opportunities:
            self._cache.set(
                params,
                result.opportunities,
                CacheMetadata(
                    total_results=result.total_results,
                    sources=tuple(result.sources),
                    response_time=result.response_time,
                ),
            )

        logger.info(
            "Retry completed",
            recovered=sorted(retried - {error.source for error in errors}),
            still_failing=[error.source for error in errors],
        )
        return result

    async def perform_multi_location_search(
        self,
        location_input: str,
        radius: float,
        filters: SearchFilters | None = None,
        options: SearchOptions | None = None,
    ) -> MultiLocationSearchResult:
        """Search around every comma-separated location in ``location_input``."""
        return await self._multi_location.perform_multi_location_search(
            location_input,
            radius,
            filters or SearchFilters(),
            self.perform_search,
            options or self.default_options(),
        )

    async def perform_smart_search(
        self,
        location_input: str,
        radius: float,
        filters: SearchFilters | None = None,
        options: SearchOptions | None = None,
    ) -> SearchResult:
        """
        Search location text, detecting single or multiple locations.

        A single location is geocoded first; if that fails the result carries
        a geocoding error and no opportunities.
        """
        filters = filters or SearchFilters()
        if is_multi_location_input(location_input):
            logger.info("Detected multi-location input")
            return await self.perform_multi_location_search(location_input, radius, filters, options)

        try:
            coordinates = await self._geocoder.geocode_location(location_input)
        except GeocodingError as e:
            logger.warning("Failed to geocode search location", location=location_input, error=e.message)
            return SearchResult(
                opportunities=[],
                search_location=LocationInfo(
                    city="Unknown",
                    country="Unknown",
                    formatted_address=location_input,
                ),
                total_results=0,
                errors=[geocoding_error(SOURCE, e.message)],
            )

        params = SearchParameters(
            location=coordinates,
            radius=radius,
            keywords=filters.keywords,
            causes=filters.causes,
            type=filters.type or SearchType.BOTH,
            limit=filters.limit,
        )
        return await self.perform_search(params, options)

    async def get_opportunity_details(
        self,
        source: str,
        opportunity_id: str,
    ) -> Result[Opportunity, SearchError]:
        """Fetch one opportunity from the provider that listed it."""
        lookup = self._registry.get(source)
        if isinstance(lookup, Failure):
            return failure(validation_error(SOURCE, f"Unknown provider: {source}"))

        provider = lookup.value
        limiter = self._rate_limiters.get_limiter(provider.name, provider.rate_limit)
        await limiter.acquire(provider.name)
        executor = RetryExecutor(provider.retry_config, sleep=self._sleep)
        return await executor.execute(
            lambda: provider.get_opportunity_details(opportunity_id),
            source=provider.name,
            operation_name="details",
        )

    def get_cache_stats(self) -> CacheStats:
        """Return results cache statistics."""
        return self._cache.get_stats()

    def clear_cache(self) -> None:
        """Drop every cached search."""
        self._cache.clear()

    def configure_caching(self, ttl: float | None = None, max_size: int | None = None) -> None:
        """Change the results cache TTL and capacity."""
        if ttl is not None:
            self._cache.set_default_ttl(ttl)
        if max_size is not None:
            self._cache.set_max_cache_size(max_size)

    def invalidate_cache(self, criteria: InvalidationCriteria) -> int:
        """Remove cached searches matching ``criteria``."""
        return self._cache.invalidate(criteria)

    async def warm_cache(self, locations: Iterable[WarmLocation]) -> int:
        """
        Run searches for popular locations to pre-populate the cache.

        Returns:
            Number of locations cached.
        """
        options = self.default_options()

        async def search(params: SearchParameters) -> tuple[list[Opportunity], CacheMetadata]:
            result = await self._search(params, options, read_cache=False)
            return result.opportunities, CacheMetadata(
                total_results=result.total_results,
                sources=tuple(result.sources),
                response_time=result.response_time,
            )

        return await self._cache.warm_cache(locations, search)

    async def test_connectivity(self) -> dict[str, bool]:
        """Probe every registered provider and report reachability."""
        statuses = await self._registry.check_all(self._settings.health_check_timeout)
        return {name: status.healthy for name, status in statuses.items()}

    async def get_detailed_service_status(self) -> list[ServiceStatus]:
        """Probe every registered provider and return the full statuses."""
        statuses = await self._registry.check_all(self._settings.health_check_timeout)
        return list(statuses.values())

    def get_search_stats(self) -> dict[str, Any]:
        """
        Summarize search availability.

        Returns:
            Registered and healthy provider counts and the last search time.
        """
        stats = self._registry.get_stats()
        return {
            "available_services": stats["total"],
            "healthy_services": stats["healthy"],
            "last_search_time": self._last_search_time,
        }

    @staticmethod
    def get_error_summary(result: SearchResult) -> ErrorSummary:
        """Condense a result's errors into a message for the user."""
        if not result.errors:
            return ErrorSummary()

        critical = tuple(
            error
            for error in result.errors
            if not error.retryable or error.type is ErrorType.AUTHENTICATION
        )
        minor = tuple(error for error in result.errors if error not in critical)

        if result.total_results > 0:
            if len(result.errors) == 1:
                message = (
                    f"Found {result.total_results} opportunities, "
                    f"but {result.errors[0].source} was unavailable"
                )
            else:
                message = (
                    f"Found {result.total_results} opportunities, "
                    f"but {len(result.errors)} sources had issues"
                )
            suggestions = (
                "Results shown are from available sources",
                "Try again later for complete results",
            )
        elif critical:
            message = "Unable to search volunteer opportunities due to service issues"
            suggestions = ("Try again in a few minutes", "Check your internet connection")
        else:
            message = "All volunteer services are temporarily unavailable"
            suggestions = ("Services may be under maintenance", "Try again later")

        return ErrorSummary(
            has_errors=True,
            error_count=len(result.errors),
            critical_errors=critical,
            minor_errors=minor,
            user_message=message,
            suggestions=suggestions,
        )

    async def close(self) -> None:
        """Close every provider and the geocoder."""
        await self._registry.close_all()
        await self._geocoder.close()


def build_orchestrator(settings: Settings | None = None) -> SearchOrchestrator:
    """
    Wire an orchestrator with the configured providers.

    Args:
        settings: Application settings (defaults to ``get_settings()``).

    Returns:
        A ready-to-use SearchOrchestrator.
    """
    settings = settings or get_settings()
    return SearchOrchestrator(
        build_registry(settings),
        settings=settings.search,
        cache=ResultsCache(
            default_ttl=settings.search.cache_ttl,
            max_cache_size=settings.search.cache_max_size,
        ),
        geocoder=NominatimGeocoder(settings.geocoding),
    )
