"""
HTTP infrastructure layer for feed fetches.

Separates HTTP concerns (timeouts, retry classification, Retry-After
handling) from feed parsing. Every request goes through the shared
backoff executor.
"""

import logging
from typing import Any

import httpx

from feed_curator.retry.backoff import RetryConfig, retry_with_backoff
from feed_curator.retry.errors import (
    RateLimitedError,
    is_transient_http_error,
    parse_retry_after,
)

logger = logging.getLogger(__name__)

USER_AGENT = "FeedCurator/0.1 (RSS Reader)"


class HTTPClient:
    """
    Async HTTP client with retry logic.

    - Exponential backoff on 429, 5xx, timeouts and connection errors
    - Retry-After honoured on 429 responses
    - Non-retryable 4xx raised immediately as httpx.HTTPStatusError
    - Context manager for proper resource cleanup

    Example:
        async with HTTPClient(RetryConfig(max_retries=3)) as client:
            response = await client.get("https://example.com/feed.xml")
    """

    def __init__(
        self,
        retry_config: RetryConfig | None = None,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ):
        """
        Initialize HTTP client.

        Args:
            retry_config: Configuration for retry behavior. Uses defaults if None.
            timeout: Request timeout in seconds.
            client: Pre-built httpx client (not closed by this wrapper)
        """
        self.retry_config = retry_config or RetryConfig()
        self.timeout = timeout
        self._client = client
        self._owns_client = client is None

    async def __aenter__(self) -> "HTTPClient":
        """Enter async context manager, create client."""
        self._ensure_client()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Exit async context manager, close client if we created it."""
        await self.close()

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                headers={"User-Agent": USER_AGENT},
                follow_redirects=True,
            )
            self._owns_client = True
        return self._client

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def get(
        self,
        url: str,
        params: dict[str, Any] | None = None,
    ) -> httpx.Response:
        """
        Perform GET request with retry logic.

        Returns:
            httpx.Response with a 2xx/3xx status

        Raises:
            httpx.HTTPStatusError: Non-retryable error status
            MaxRetriesExceededError / RetryTimeoutError: Retries or time budget
                exhausted, including a Retry-After that would not fit the budget
        """
        client = self._ensure_client()

        async def attempt() -> httpx.Response:
            response = await client.get(url, params=params)
            if response.status_code == 429:
                raise RateLimitedError(
                    f"rate limited by {response.url.host}",
                    retry_after=parse_retry_after(response.headers.get("Retry-After")),
                    response=response,
                )
            response.raise_for_status()
            return response

        return await retry_with_backoff(
            attempt,
            self.retry_config,
            is_transient_http_error,
            operation_name="http_get",
        )
