"""Rolling-window rate limiting per provider key."""

from __future__ import annotations

import asyncio
import time
from collections import deque
from dataclasses import dataclass
from typing import TYPE_CHECKING

from core.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

logger = get_logger(__name__)

MINUTE = 60.0
HOUR = 3600.0

# Added to every computed wait so the oldest entry has left the window.
WAIT_BUFFER = 0.1


@dataclass(frozen=True, slots=True)
class RateLimitConfig:
    """
    Request quota for one provider.

    Attributes:
        requests_per_minute: Cap over any rolling 60 second window.
        requests_per_hour: Cap over any rolling hour.
    """

    requests_per_minute: int
    requests_per_hour: int

    def __post_init__(self) -> None:
        """Validate the quota."""
        if self.requests_per_minute < 1 or self.requests_per_hour < 1:
            msg = "rate limits must be positive"
            raise ValueError(msg)


@dataclass(frozen=True, slots=True)
class RateLimitStatus:
    """Snapshot of a key's usage against its quota."""

    requests_in_last_minute: int
    requests_in_last_hour: int
    minute_limit: int
    hour_limit: int
    time_until_reset: float


class RateLimiter:
    """
    Tracks request timestamps per key and admits requests within quota.

    Use ``acquire`` from concurrent tasks: it waits and records under a
    per-key lock, so two callers can never both take the last slot.
    """

    def __init__(
        self,
        config: RateLimitConfig,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """
        Initialize the limiter.

        Args:
            config: Quota applied to every key.
            clock: Monotonic time source in seconds.
            sleep: Coroutine used to wait for a free slot.
        """
        self.config = config
        self._clock = clock
        self._sleep = sleep
        self._requests: dict[str, deque[float]] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def _purge(self, key: str, now: float) -> deque[float]:
        timestamps = self._requests.setdefault(key, deque())
        while timestamps and now - timestamps[0] >= HOUR:
            timestamps.popleft()
        return timestamps

    @staticmethod
    def _count_within(timestamps: deque[float], now: float, window: float) -> int:
        return sum(1 for ts in timestamps if now - ts < window)

    def is_allowed(self, key: str) -> bool:
        """Check whether a request for ``key`` fits in both windows right now."""
        now = self._clock()
        timestamps = self._purge(key, now)
        if self._count_within(timestamps, now, MINUTE) >= self.config.requests_per_minute:
            return False
        return len(timestamps) < self.config.requests_per_hour

    def record_request(self, key: str) -> None:
        """Record a request for ``key`` at the current time."""
        now = self._clock()
        self._purge(key, now).append(now)

    def time_until_allowed(self, key: str) -> float:
        """
        Return seconds until a request for ``key`` would be admitted.

        Zero when a request is allowed now.
        """
        now = self._clock()
        timestamps = self._purge(key, now)

        minute_window = [ts for ts in timestamps if now - ts < MINUTE]
        if len(minute_window) >= self.config.requests_per_minute:
            return max(0.0, MINUTE - (now - minute_window[0]))
        if len(timestamps) >= self.config.requests_per_hour:
            return max(0.0, HOUR - (now - timestamps[0]))
        return 0.0

    async def wait_for_allowed(self, key: str) -> None:
        """Sleep until a request for ``key`` is allowed."""
        while True:
            wait = self.time_until_allowed(key)
            if wait <= 0:
                return
            logger.info("Rate limit reached, waiting", key=key, wait_seconds=round(wait, 2))
            await self._sleep(wait + WAIT_BUFFER)

    async def acquire(self, key: str) -> None:
        """Wait for a free slot for ``key`` and claim it."""
        lock = self._locks.setdefault(key, asyncio.Lock())
        async with lock:
            await self.wait_for_allowed(key)
            self.record_request(key)

    def get_status(self, key: str) -> RateLimitStatus:
        """Return the current usage of ``key``."""
        now = self._clock()
        timestamps = self._purge(key, now)
        return RateLimitStatus(
            requests_in_last_minute=self._count_within(timestamps, now, MINUTE),
            requests_in_last_hour=len(timestamps),
            minute_limit=self.config.requests_per_minute,
            hour_limit=self.config.requests_per_hour,
            time_until_reset=self.time_until_allowed(key),
        )

    def reset(self, key: str) -> None:
        """Forget all requests recorded for ``key``."""
        self._requests.pop(key, None)

    def reset_all(self) -> None:
        """Forget all recorded requests."""
        self._requests.clear()


class RateLimiterManager:
    """Owns one RateLimiter per provider key."""

    def __init__(
        self,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """Initialize the manager; ``clock`` and ``sleep`` are passed to every limiter."""
        self._limiters: dict[str, RateLimiter] = {}
        self._clock = clock
        self._sleep = sleep

    def get_limiter(self, key: str, config: RateLimitConfig) -> RateLimiter:
        """
        Return the limiter for ``key``, creating it with ``config`` if needed.

        A changed config replaces the limiter and its history.
        """
        limiter = self._limiters.get(key)
        if limiter is None or limiter.config != config:
            limiter = RateLimiter(config, clock=self._clock, sleep=self._sleep)
            self._limiters[key] = limiter
            logger.debug(
                "Rate limiter created",
                key=key,
                requests_per_minute=config.requests_per_minute,
                requests_per_hour=config.requests_per_hour,
            )
        return limiter

    def remove_limiter(self, key: str) -> bool:
        """Drop the limiter for ``key``. Returns True if one existed."""
        return self._limiters.pop(key, None) is not None

    def get_all_statuses(self) -> dict[str, RateLimitStatus]:
        """Return the status of every managed key."""
        return {key: limiter.get_status(key) for key, limiter in self._limiters.items()}

    def reset_all(self) -> None:
        """Reset every managed limiter."""
        for limiter in self._limiters.values():
            limiter.reset_all()
