"""Shared HTTP client used by the provider adapters."""

from __future__ import annotations

import time
from typing import Any

import httpx

from core.logging import get_logger
from core.result import Result, failure, success
from services.providers.errors import (
    SearchError,
    classify_exception,
    error_from_status,
    server_error,
)

logger = get_logger(__name__)

DEFAULT_TIMEOUT = 10.0
HEALTH_CHECK_TIMEOUT = 5.0


class ProviderHttpClient:
    """
    Thin JSON-over-HTTP client bound to one provider.

    Transport errors and HTTP error statuses come back as ``Failure``
    values carrying a classified SearchError, never as exceptions.

    Attributes:
        source: Provider name used in errors and logs.
        base_url: API root, without trailing slash.
        timeout: Request timeout in seconds.
    """

    def __init__(
        self,
        source: str,
        base_url: str,
        *,
        headers: dict[str, str] | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        """
        Initialize the client.

        Args:
            source: Provider name.
            base_url: API root URL.
            headers: Extra headers sent with every request (auth).
            timeout: Request timeout in seconds.

        Raises:
            ValueError: If base_url is empty.
        """
        if not base_url:
            msg = f"base_url is required for {source}"
            raise ValueError(msg)

        self.source = source
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._headers = {"Accept": "application/json", **(headers or {})}
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=self._headers,
                timeout=self.timeout,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def get_json(
        self,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        operation: str = "request",
    ) -> Result[Any, SearchError]:
        """
        Perform a GET request and decode the JSON body.

        Args:
            path: Path relative to ``base_url``.
            params: Query parameters; ``None`` values are dropped.
            operation: Label for logs and error messages.

        Returns:
            Result containing the decoded body or a SearchError.
        """
        query = {key: value for key, value in (params or {}).items() if value is not None}
        client = await self._get_client()
        start = time.perf_counter()

        logger.debug("Provider request", source=self.source, path=path, params=query)
        try:
            response = await client.get(path, params=query)
        except httpx.HTTPError as e:
            logger.error(
                "Provider request failed",
                source=self.source,
                path=path,
                operation=operation,
                error=str(e),
                exc_type=type(e).__name__,
            )
            return failure(classify_exception(self.source, e, operation))

        duration = time.perf_counter() - start
        logger.info(
            "Provider response",
            source=self.source,
            path=path,
            status_code=response.status_code,
            duration=round(duration, 3),
        )
        return self._handle_response(response, operation)

    def _handle_response(
        self,
        response: httpx.Response,
        operation: str,
    ) -> Result[Any, SearchError]:
        """Map the response status to a Result and decode the body."""
        if response.status_code >= 400:
            logger.warning(
                "Provider API error",
                source=self.source,
                operation=operation,
                status_code=response.status_code,
                response_text=response.text[:500],
            )
            return failure(
                error_from_status(
                    self.source,
                    response.status_code,
                    operation,
                    retry_after=response.headers.get("Retry-After"),
                )
            )

        try:
            return success(response.json())
        except ValueError as e:
            logger.error("Failed to decode provider response", source=self.source, error=str(e))
            return failure(server_error(self.source, f"Invalid JSON during {operation}"))

    async def probe(self, path: str = "/health", timeout: float = HEALTH_CHECK_TIMEOUT) -> bool:
        """
        Check that the provider answers on ``path`` with a success status.

        Returns:
            True if the API is healthy, False otherwise.
        """
        client = await self._get_client()
        try:
            response = await client.get(path, timeout=timeout)
        except httpx.HTTPError as e:
            logger.warning("Provider health probe failed", source=self.source, error=str(e))
            return False
        return response.is_success
