"""Error taxonomy for provider calls and search orchestration."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

import httpx


class ErrorType(str, Enum):
    """Classification of a search failure."""

    NETWORK = "network"
    RATE_LIMIT = "rate_limit"
    AUTHENTICATION = "authentication"
    SERVER_ERROR = "server_error"
    TIMEOUT = "timeout"
    VALIDATION_ERROR = "validation_error"
    GEOCODING_ERROR = "geocoding_error"


RETRYABLE_ERROR_TYPES: frozenset[ErrorType] = frozenset(
    {
        ErrorType.NETWORK,
        ErrorType.RATE_LIMIT,
        ErrorType.SERVER_ERROR,
        ErrorType.TIMEOUT,
    }
)


@dataclass(frozen=True, slots=True)
class SearchError:
    """
    A failure attributed to one source during a search.

    Attributes:
        source: Provider name (or orchestrator component) that failed.
        type: Error classification.
        message: Technical message for logs.
        retryable: Whether repeating the call may succeed.
        retry_after: Seconds the provider asked us to wait (rate limits).
        status_code: HTTP status code, when the failure came from a response.
        user_message: Message suitable for display.
        suggestions: Hints for the user.
    """

    source: str
    type: ErrorType
    message: str
    retryable: bool
    retry_after: float | None = None
    status_code: int | None = None
    user_message: str = ""
    suggestions: tuple[str, ...] = ()

    def __str__(self) -> str:
        """Return string representation of the error."""
        return f"[{self.source}] {self.type.value}: {self.message}"


def _make(
    source: str,
    error_type: ErrorType,
    message: str,
    user_message: str,
    suggestions: tuple[str, ...],
    *,
    retry_after: float | None = None,
    status_code: int | None = None,
) -> SearchError:
    return SearchError(
        source=source,
        type=error_type,
        message=message,
        retryable=error_type in RETRYABLE_ERROR_TYPES,
        retry_after=retry_after,
        status_code=status_code,
        user_message=user_message,
        suggestions=suggestions,
    )


def network_error(source: str, message: str = "Network error") -> SearchError:
    """Create a network error."""
    return _make(
        source,
        ErrorType.NETWORK,
        message,
        f"Unable to connect to {source}",
        (
            "Check your internet connection",
            "Try again in a few moments",
            "The service may be temporarily unavailable",
        ),
    )


def timeout_error(source: str, message: str = "Request timed out") -> SearchError:
    """Create a timeout error."""
    return _make(
        source,
        ErrorType.TIMEOUT,
        message,
        f"{source} is taking too long to respond",
        (
            "The service may be experiencing high traffic",
            "Try again with a smaller search radius",
            "Other sources are still being searched",
        ),
    )


def rate_limit_error(
    source: str,
    message: str = "Rate limit exceeded",
    retry_after: float | None = None,
) -> SearchError:
    """Create a rate limit error."""
    user_message = f"{source} is temporarily limiting requests"
    if retry_after is not None:
        user_message += f". Please wait {retry_after:g} seconds before trying again"
    return _make(
        source,
        ErrorType.RATE_LIMIT,
        message,
        user_message,
        (
            "Wait a few minutes before searching again",
            "Try using fewer search filters",
            "Other sources may still be available",
        ),
        retry_after=retry_after,
        status_code=429,
    )


def authentication_error(
    source: str,
    message: str = "Authentication failed",
    status_code: int | None = None,
) -> SearchError:
    """Create an authentication error."""
    return _make(
        source,
        ErrorType.AUTHENTICATION,
        message,
        f"Access denied by {source}",
        (
            "This service may require authentication",
            "Try searching other sources",
        ),
        status_code=status_code,
    )


def server_error(
    source: str,
    message: str = "Server error",
    status_code: int | None = None,
) -> SearchError:
    """Create a server error."""
    return _make(
        source,
        ErrorType.SERVER_ERROR,
        message,
        f"{source} encountered an internal error",
        (
            "This is a temporary server issue",
            "Try again in a few minutes",
            "Other sources may have results available",
        ),
        status_code=status_code,
    )


def validation_error(
    source: str,
    message: str = "Invalid request",
    status_code: int | None = None,
) -> SearchError:
    """Create a validation error."""
    return _make(
        source,
        ErrorType.VALIDATION_ERROR,
        message,
        f"{source} could not process the search",
        (
            "Check your search criteria",
            "Try broadening your search",
        ),
        status_code=status_code,
    )


def geocoding_error(source: str, message: str = "Unable to resolve location") -> SearchError:
    """Create a geocoding error."""
    return _make(
        source,
        ErrorType.GEOCODING_ERROR,
        message,
        "We could not find that location",
        (
            "Check the spelling of the location",
            "Add a state or country to the location",
        ),
    )


def _parse_retry_after(value: str | None) -> float | None:
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        return None


def error_from_status(
    source: str,
    status_code: int,
    operation: str,
    retry_after: str | None = None,
) -> SearchError:
    """
    Map an HTTP error status to a SearchError.

    Args:
        source: Provider name.
        status_code: HTTP status code (>= 400).
        operation: Operation being performed, used in the message.
        retry_after: Raw ``Retry-After`` header value, if any.

    Returns:
        Classified SearchError.
    """
    if status_code in (401, 403):
        return authentication_error(
            source, f"Authentication failed for {operation}", status_code=status_code
        )
    if status_code == 429:
        return rate_limit_error(
            source,
            f"Rate limit exceeded for {operation}",
            retry_after=_parse_retry_after(retry_after),
        )
    if status_code == 408:
        return timeout_error(source, f"Request timeout during {operation}")
    if status_code >= 500:
        return server_error(
            source, f"Server error during {operation}: {status_code}", status_code=status_code
        )
    return validation_error(
        source, f"HTTP {status_code} error during {operation}", status_code=status_code
    )


def classify_exception(source: str, exc: BaseException, operation: str) -> SearchError:
    """
    Convert an exception raised by a provider call into a SearchError.

    Args:
        source: Provider name.
        exc: The raised exception.
        operation: Operation being performed, used in the message.

    Returns:
        Classified SearchError.
    """
    if isinstance(exc, httpx.TimeoutException | TimeoutError):
        return timeout_error(source, f"Request timeout during {operation}")
    if isinstance(exc, httpx.HTTPStatusError):
        response = exc.response
        return error_from_status(
            source,
            response.status_code,
            operation,
            retry_after=response.headers.get("Retry-After"),
        )
    if isinstance(exc, httpx.RequestError):
        return network_error(source, f"Network error during {operation}: {exc}")
    if isinstance(exc, ValueError):
        return validation_error(source, f"Invalid data during {operation}: {exc}")
    return server_error(source, f"{operation} failed: {exc}")
