"""Volunteer-opportunity provider adapters package."""

from services.providers.base import (
    ContactInfo,
    Opportunity,
    OpportunityType,
    Provider,
    ProviderResult,
    SearchParameters,
    SearchType,
)
from services.providers.errors import ErrorType, SearchError
from services.providers.rate_limiter import RateLimitConfig, RateLimiter, RateLimiterManager
from services.providers.registry import ServiceRegistry, ServiceStatus
from services.providers.retry import RetryConfig, RetryExecutor

__all__ = [
    "ContactInfo",
    "ErrorType",
    "Opportunity",
    "OpportunityType",
    "Provider",
    "ProviderResult",
    "RateLimitConfig",
    "RateLimiter",
    "RateLimiterManager",
    "RetryConfig",
    "RetryExecutor",
    "SearchError",
    "SearchParameters",
    "SearchType",
    "ServiceRegistry",
    "ServiceStatus",
]
