"""Bounded retries with exponential backoff for provider calls."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import TYPE_CHECKING

from core.logging import get_logger
from core.result import Failure, failure
from services.providers.errors import ErrorType, classify_exception, timeout_error

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from core.result import Result
    from services.providers.errors import SearchError

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class RetryConfig:
    """
    Retry policy for one provider.

    Attributes:
        max_retries: Retries after the first attempt.
        base_delay: Delay before the first retry, in seconds.
        max_delay: Ceiling for any single delay, in seconds.
        backoff_multiplier: Growth factor between consecutive delays.
    """

    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 10.0
    backoff_multiplier: float = 2.0

    def __post_init__(self) -> None:
        """Validate the policy."""
        if self.max_retries < 0:
            msg = "max_retries cannot be negative"
            raise ValueError(msg)
        if self.base_delay <= 0:
            msg = "base_delay must be positive"
            raise ValueError(msg)
        if self.max_delay < self.base_delay:
            msg = "max_delay cannot be lower than base_delay"
            raise ValueError(msg)
        if self.backoff_multiplier < 1:
            msg = "backoff_multiplier must be at least 1"
            raise ValueError(msg)

    def backoff(self, attempt: int) -> float:
        """Return the capped exponential delay after the given zero-based attempt."""
        return min(self.base_delay * self.backoff_multiplier**attempt, self.max_delay)


class RetryExecutor:
    """
    Runs a provider operation until it succeeds or the policy is exhausted.

    Only errors classified as retryable (network, timeout, server error,
    rate limit) are retried.
    """

    def __init__(
        self,
        config: RetryConfig | None = None,
        *,
        attempt_timeout: float | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """
        Initialize the executor.

        Args:
            config: Retry policy (defaults to ``RetryConfig()``).
            attempt_timeout: Optional bound on each attempt, in seconds.
            sleep: Coroutine used to wait between attempts.
        """
        self._config = config or RetryConfig()
        self._attempt_timeout = attempt_timeout
        self._sleep = sleep

    @property
    def config(self) -> RetryConfig:
        """Return the retry policy."""
        return self._config

    def delay_for(self, attempt: int, error: SearchError) -> float:
        """
        Compute how long to wait before the next attempt.

        A rate limit error carrying ``retry_after`` waits at least that long,
        but never more than ``max_delay``.
        """
        delay = self._config.backoff(attempt)
        if error.type is ErrorType.RATE_LIMIT and error.retry_after is not None:
            delay = min(max(error.retry_after, delay), self._config.max_delay)
        return delay

    async def execute[T](
        self,
        operation: Callable[[], Awaitable[Result[T, SearchError]]],
        *,
        source: str,
        operation_name: str = "request",
    ) -> Result[T, SearchError]:
        """
        Execute ``operation`` with retries.

        Args:
            operation: Zero-argument callable returning an awaitable Result.
            source: Provider name used when classifying exceptions.
            operation_name: Label for logs and error messages.

        Returns:
            The first Success, or the last Failure once retries are exhausted
            or a non-retryable error occurs.
        """
        attempts = self._config.max_retries + 1
        outcome: Result[T, SearchError] = failure(
            timeout_error(source, f"{operation_name} was not attempted")
        )

        for attempt in range(attempts):
            outcome = await self._attempt(operation, source, operation_name)
            if not isinstance(outcome, Failure):
                if attempt > 0:
                    logger.info(
                        "Operation succeeded after retry",
                        source=source,
                        operation=operation_name,
                        attempt=attempt + 1,
                    )
                return outcome

            error = outcome.error
            if not error.retryable:
                logger.info(
                    "Non-retryable error, giving up",
                    source=source,
                    operation=operation_name,
                    error_type=error.type.value,
                )
                return outcome

            if attempt + 1 >= attempts:
                break

            delay = self.delay_for(attempt, error)
            logger.warning(
                "Operation failed, retrying",
                source=source,
                operation=operation_name,
                attempt=attempt + 1,
                max_attempts=attempts,
                delay=delay,
                error_type=error.type.value,
                error=error.message,
            )
            await self._sleep(delay)

        logger.error(
            "Operation failed after all retries",
            source=source,
            operation=operation_name,
            attempts=attempts,
        )
        return outcome

    async def _attempt[T](
        self,
        operation: Callable[[], Awaitable[Result[T, SearchError]]],
        source: str,
        operation_name: str,
    ) -> Result[T, SearchError]:
        """Run one attempt, converting exceptions and timeouts into Failures."""
        try:
            if self._attempt_timeout is None:
                return await operation()
            async with asyncio.timeout(self._attempt_timeout):
                return await operation()
        except TimeoutError:
            return failure(timeout_error(source, f"{operation_name} timed out"))
        except Exception as e:
            logger.warning(
                "Provider operation raised",
                source=source,
                operation=operation_name,
                error=str(e),
                exc_type=type(e).__name__,
            )
            return failure(classify_exception(source, e, operation_name))
