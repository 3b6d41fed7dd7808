"""Search orchestration service package."""

from services.search.cache import CacheMetadata, InvalidationCriteria, ResultsCache, WarmLocation
from services.search.multi_location import MultiLocationCoordinator
from services.search.orchestrator import SearchOrchestrator, SearchOrchestratorError, build_orchestrator
from services.search.processor import ResultsProcessor
from services.search.types import (
    MultiLocationSearchResult,
    ProcessingOptions,
    SearchFilters,
    SearchOptions,
    SearchResult,
)

__all__ = [
    "CacheMetadata",
    "InvalidationCriteria",
    "MultiLocationCoordinator",
    "MultiLocationSearchResult",
    "ProcessingOptions",
    "ResultsCache",
    "ResultsProcessor",
    "SearchFilters",
    "SearchOptions",
    "SearchOrchestrator",
    "SearchOrchestratorError",
    "SearchResult",
    "WarmLocation",
    "build_orchestrator",
]
