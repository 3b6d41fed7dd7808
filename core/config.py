"""
Application configuration using Pydantic Settings.

Provider endpoints, credentials, rate limits and retry policies, search
defaults and geocoding throttling are all typed and validated here, with
support for environment variables and .env files.
"""

from __future__ import annotations

from functools import lru_cache
from typing import TYPE_CHECKING, Literal

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

if TYPE_CHECKING:
    from services.providers.rate_limiter import RateLimitConfig
    from services.providers.retry import RetryConfig


class ProviderSettings(BaseSettings):
    """
    Settings shared by every volunteer-opportunity provider.

    Subclasses set the provider name, the env prefix and the defaults that
    match each provider's published limits.
    """

    model_config = SettingsConfigDict(extra="ignore")

    name: str = Field(default="", description="Provider display name")
    base_url: str = Field(default="", description="Base URL of the provider API")
    api_key: SecretStr = Field(default=SecretStr(""), description="Provider API key")
    timeout: float = Field(default=10.0, gt=0, description="HTTP timeout in seconds")
    enabled: bool = Field(default=True, description="Whether the provider is registered")

    requests_per_minute: int = Field(default=60, gt=0)
    requests_per_hour: int = Field(default=1000, gt=0)

    max_retries: int = Field(default=3, ge=0)
    base_delay: float = Field(default=1.0, gt=0, description="First backoff delay in seconds")
    max_delay: float = Field(default=10.0, gt=0, description="Backoff ceiling in seconds")
    backoff_multiplier: float = Field(default=2.0, ge=1)

    @property
    def is_configured(self) -> bool:
        """Check if the provider is enabled and has an endpoint and API key."""
        return bool(self.enabled and self.base_url and self.api_key.get_secret_value())

    @property
    def rate_limit(self) -> RateLimitConfig:
        """Build the rate limit configuration for this provider."""
        from services.providers.rate_limiter import RateLimitConfig

        return RateLimitConfig(
            requests_per_minute=self.requests_per_minute,
            requests_per_hour=self.requests_per_hour,
        )

    @property
    def retry_config(self) -> RetryConfig:
        """Build the retry configuration for this provider."""
        from services.providers.retry import RetryConfig

        return RetryConfig(
            max_retries=self.max_retries,
            base_delay=self.base_delay,
            max_delay=self.max_delay,
            backoff_multiplier=self.backoff_multiplier,
        )


class VolunteerHubSettings(ProviderSettings):
    """VolunteerHub API settings."""

    model_config = SettingsConfigDict(env_prefix="VOLUNTEERHUB_", extra="ignore")

    name: str = "VolunteerHub"
    base_url: str = "https://api.volunteerhub.com/v1"
    timeout: float = 15.0
    requests_per_minute: int = 60
    requests_per_hour: int = 1000
    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 10.0
    backoff_multiplier: float = 2.0


class JustServeSettings(ProviderSettings):
    """JustServe API settings."""

    model_config = SettingsConfigDict(env_prefix="JUSTSERVE_", extra="ignore")

    name: str = "JustServe"
    base_url: str = "https://api.justserve.org/v2"
    timeout: float = 12.0
    requests_per_minute: int = 30
    requests_per_hour: int = 500
    max_retries: int = 2
    base_delay: float = 1.5
    max_delay: float = 8.0
    backoff_multiplier: float = 2.0


class IdealistSettings(ProviderSettings):
    """Idealist API settings."""

    model_config = SettingsConfigDict(env_prefix="IDEALIST_", extra="ignore")

    name: str = "Idealist"
    base_url: str = "https://www.idealist.org/api/v1"
    timeout: float = 10.0
    requests_per_minute: int = 100
    requests_per_hour: int = 2000
    max_retries: int = 3
    base_delay: float = 0.8
    max_delay: float = 5.0
    backoff_multiplier: float = 1.5


class SearchSettings(BaseSettings):
    """Orchestration and result-cache defaults."""

    model_config = SettingsConfigDict(env_prefix="SEARCH_", extra="ignore")

    default_timeout: float = Field(default=15.0, gt=0, description="Fan-out deadline in seconds")
    max_concurrent_requests: int = Field(default=5, gt=0)
    use_healthy_services_only: bool = True
    default_limit: int = Field(default=50, ge=1, le=100)
    max_distance: float = Field(default=100.0, gt=0, description="Radius filter in miles")

    cache_ttl: float = Field(default=1800.0, gt=0, description="Result cache TTL in seconds")
    cache_max_size: int = Field(default=100, gt=0)

    health_check_timeout: float = Field(default=5.0, gt=0)
    health_check_interval: float = Field(default=300.0, gt=0)


class GeocodingSettings(BaseSettings):
    """Nominatim geocoding settings."""

    model_config = SettingsConfigDict(env_prefix="GEOCODING_", extra="ignore")

    base_url: str = "https://nominatim.openstreetmap.org"
    user_agent: str = "volunteer-aggregator/1.0"
    timeout: float = Field(default=10.0, gt=0)
    request_delay: float = Field(default=1.0, ge=0, description="Minimum seconds between requests")
    cache_ttl: float = Field(default=86400.0, gt=0)
    suggestion_cache_ttl: float = Field(default=3600.0, gt=0)
    max_cache_size: int = Field(default=1000, gt=0)


class LoggingSettings(BaseSettings):
    """Logging output settings."""

    model_config = SettingsConfigDict(env_prefix="LOG_", extra="ignore")

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    json_format: bool = False


class Settings(BaseSettings):
    """
    Main application settings.

    Aggregates all configuration sections.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    environment: Literal["development", "production", "test"] = Field(
        default="development", description="Application environment"
    )
    debug: bool = Field(default=False, description="Debug mode")

    volunteerhub: VolunteerHubSettings = Field(default_factory=VolunteerHubSettings)
    justserve: JustServeSettings = Field(default_factory=JustServeSettings)
    idealist: IdealistSettings = Field(default_factory=IdealistSettings)
    search: SearchSettings = Field(default_factory=SearchSettings)
    geocoding: GeocodingSettings = Field(default_factory=GeocodingSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @property
    def providers(self) -> dict[str, ProviderSettings]:
        """Provider settings keyed by provider name."""
        return {
            self.volunteerhub.name: self.volunteerhub,
            self.justserve.name: self.justserve,
            self.idealist.name: self.idealist,
        }

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"

    @property
    def is_test(self) -> bool:
        """Check if running in test environment."""
        return self.environment == "test"


def validate_provider_settings(settings: Settings) -> list[str]:
    """
    Check cross-field constraints that single-field validation cannot express.

    Args:
        settings: Settings to check.

    Returns:
        Human-readable problems, empty when the configuration is usable.
    """
    errors: list[str] = []

    for key, provider in settings.providers.items():
        if not provider.base_url:
            errors.append(f"{key}: base_url is required")
        if provider.requests_per_hour < provider.requests_per_minute:
            errors.append(f"{key}: requests_per_hour cannot be lower than requests_per_minute")
        if provider.max_delay <= provider.base_delay:
            errors.append(f"{key}: max_delay must be greater than base_delay")

    if settings.search.cache_max_size < 1:
        errors.append("search: cache_max_size must be positive")

    return errors


@lru_cache
def get_settings() -> Settings:
    """
    Get cached application settings.

    Returns:
        Configured Settings instance.
    """
    return Settings()
