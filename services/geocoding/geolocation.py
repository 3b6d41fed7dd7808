"""
Device geolocation with fallback strategies.

Obtaining a position is platform specific, so only the provider protocol is
defined here. The fallback policy tries progressively less demanding
strategies and gives up early on errors that retrying cannot fix.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from core.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Sequence

    from services.geocoding.base import Coordinates, LocationInfo

logger = get_logger(__name__)

MAX_BACKOFF = 5.0


class GeolocationErrorType(str, Enum):
    """Why a position could not be obtained."""

    PERMISSION_DENIED = "permission_denied"
    POSITION_UNAVAILABLE = "position_unavailable"
    TIMEOUT = "timeout"
    NOT_SUPPORTED = "not_supported"


NON_RECOVERABLE = frozenset({GeolocationErrorType.PERMISSION_DENIED, GeolocationErrorType.NOT_SUPPORTED})

ERROR_GUIDANCE: dict[GeolocationErrorType, tuple[str, tuple[str, ...]]] = {
    GeolocationErrorType.PERMISSION_DENIED: (
        "Location access was denied. To use this feature, please enable location permissions.",
        (
            "Allow location access for this application",
            "Try again after granting permission",
            "Or enter your location manually in the search box",
        ),
    ),
    GeolocationErrorType.POSITION_UNAVAILABLE: (
        "Your location is currently unavailable. This might be due to poor GPS signal "
        "or network issues.",
        (
            "Make sure you're connected to the internet",
            "Check if location services are enabled on your device",
            "Enter your location manually as an alternative",
        ),
    ),
    GeolocationErrorType.TIMEOUT: (
        "Location request timed out. Your device is taking longer than expected to "
        "determine your location.",
        (
            "Try again - sometimes it works on the second attempt",
            "Make sure you have a stable internet connection",
            "Enter your location manually if the issue persists",
        ),
    ),
    GeolocationErrorType.NOT_SUPPORTED: (
        "This device doesn't support location services.",
        ("Enter your location manually in the search box",),
    ),
}


class GeolocationError(Exception):
    """Raised by a GeolocationProvider when no position is available."""

    def __init__(self, error_type: GeolocationErrorType, message: str, code: int = 0) -> None:
        """Initialize error."""
        super().__init__(message)
        self.type = error_type
        self.message = message
        self.code = code

    @property
    def recoverable(self) -> bool:
        """Return True when retrying may succeed."""
        return self.type not in NON_RECOVERABLE


@dataclass(frozen=True, slots=True)
class PositionOptions:
    """
    Options for a position request.

    Attributes:
        enable_high_accuracy: Ask for GPS-grade accuracy.
        timeout: Seconds to wait for a fix.
        maximum_age: Seconds a cached fix stays acceptable.
    """

    enable_high_accuracy: bool = True
    timeout: float = 10.0
    maximum_age: float = 300.0


@dataclass(frozen=True, slots=True)
class GeolocationResult:
    """A device position with its address and accuracy in metres."""

    coordinates: Coordinates
    address: LocationInfo
    accuracy: float | None = None


@dataclass(frozen=True, slots=True)
class FallbackStrategy:
    """One step of the fallback sequence."""

    name: str
    options: PositionOptions
    retries: int


DEFAULT_STRATEGIES: tuple[FallbackStrategy, ...] = (
    FallbackStrategy(
        "high-accuracy",
        PositionOptions(enable_high_accuracy=True, timeout=10.0, maximum_age=300.0),
        retries=1,
    ),
    FallbackStrategy(
        "low-accuracy",
        PositionOptions(enable_high_accuracy=False, timeout=15.0, maximum_age=600.0),
        retries=2,
    ),
    FallbackStrategy(
        "basic",
        PositionOptions(enable_high_accuracy=False, timeout=20.0, maximum_age=900.0),
        retries=1,
    ),
)


@runtime_checkable
class GeolocationProvider(Protocol):
    """Source of the device's current position."""

    async def get_current_location(self, options: PositionOptions) -> GeolocationResult:
        """
        Return the current position.

        Raises:
            GeolocationError: If no position can be obtained.
        """
        ...


def backoff_delay(attempt: int) -> float:
    """Seconds to wait after the given zero-based attempt."""
    return min(1.0 * 2**attempt, MAX_BACKOFF)


def error_guidance(error: GeolocationError) -> tuple[str, tuple[str, ...]]:
    """Return a user-facing message and suggestions for a geolocation error."""
    return ERROR_GUIDANCE.get(
        error.type,
        (
            "Unable to determine your location due to an unexpected error.",
            ("Enter your location manually",),
        ),
    )


async def locate_with_fallback(
    provider: GeolocationProvider,
    strategies: Sequence[FallbackStrategy] = DEFAULT_STRATEGIES,
    *,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> GeolocationResult | None:
    """
    Try each strategy in turn, retrying recoverable failures.

    Args:
        provider: Position source.
        strategies: Strategies in order of preference.
        sleep: Coroutine used to wait between attempts.

    Returns:
        The first position obtained, or None when every strategy failed or
        the error cannot be recovered from.
    """
    for strategy in strategies:
        for attempt in range(strategy.retries + 1):
            try:
                result = await provider.get_current_location(strategy.options)
            except GeolocationError as e:
                logger.warning(
                    "Geolocation attempt failed",
                    strategy=strategy.name,
                    attempt=attempt + 1,
                    error_type=e.type.value,
                )
                if not e.recoverable:
                    logger.info("Stopping geolocation, error is not recoverable", error_type=e.type.value)
                    return None
                if attempt < strategy.retries:
                    await sleep(backoff_delay(attempt))
                continue

            logger.info("Geolocation succeeded", strategy=strategy.name, attempt=attempt + 1)
            return result

    logger.warning("All geolocation strategies failed")
    return None


async def locate_with_retry(
    provider: GeolocationProvider,
    options: PositionOptions | None = None,
    max_retries: int = 2,
    *,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> GeolocationResult:
    """
    Request a position, retrying only on timeouts.

    Raises:
        GeolocationError: The last error once retries are exhausted, or any
            non-timeout error immediately.
    """
    options = options or PositionOptions()
    attempt = 0
    while True:
        try:
            return await provider.get_current_location(options)
        except GeolocationError as e:
            if e.type is not GeolocationErrorType.TIMEOUT or attempt >= max_retries:
                raise
            delay = backoff_delay(attempt)
            logger.info("Geolocation timed out, retrying", attempt=attempt + 1, delay=delay)
            await sleep(delay)
            attempt += 1
