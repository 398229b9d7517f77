"""
HTTP infrastructure layer with request spacing.

Provides:
- TransportError: Network, DNS, timeout and HTTP status failures
- RateLimitedClient: Async HTTP client that spaces consecutive requests

This layer separates HTTP concerns (spacing, transport errors) from
domain logic (response decoding, item transformation) in the fetchers.
"""

import asyncio
import logging
import time
from collections.abc import Callable
from typing import Any

import httpx

logger = logging.getLogger(__name__)

DEFAULT_MIN_INTERVAL = 0.5


class TransportError(Exception):
    """Raised when a request could not be completed at the transport level."""

    def __init__(
        self,
        message: str,
        url: str | None = None,
        status_code: int | None = None,
    ):
        super().__init__(message)
        self.url = url
        self.status_code = status_code


class RateLimitedClient:
    """
    Async HTTP client enforcing a minimum spacing between requests.

    The spacing is global to the client instance, not per destination:
    every caller sharing the instance passes through the same timing gate.
    Only the gate is serialized; once a caller has been let through, its
    network call may overlap with other callers waiting at the gate.

    No retries are performed. Transport failures are raised as
    TransportError with the underlying httpx exception chained.

    Example:
        async with RateLimitedClient(min_interval=0.5) as client:
            response = await client.get(
                "https://api.example.com/data",
                params={"q": "search"},
            )
    """

    def __init__(
        self,
        min_interval: float = DEFAULT_MIN_INTERVAL,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize rate-limited client.

        Args:
            min_interval: Minimum seconds between the start of consecutive requests.
            timeout: Request timeout in seconds (ignored when client is given).
            client: Optional pre-built httpx client. The caller keeps ownership.
            clock: Monotonic time source used for spacing.
        """
        if min_interval < 0:
            raise ValueError("min_interval must be >= 0")

        self.min_interval = min_interval
        self.timeout = timeout
        self._client = client
        self._owns_client = client is None
        self._clock = clock
        self._gate = asyncio.Lock()
        self._last_request_at: float | None = None

    async def __aenter__(self) -> "RateLimitedClient":
        """Enter async context manager, create client if needed."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
            self._owns_client = True
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Exit async context manager, close client if we created it."""
        await self.aclose()

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    @property
    def last_request_at(self) -> float | None:
        """Monotonic timestamp of the last request let through the gate."""
        return self._last_request_at

    def build_request(
        self,
        method: str,
        url: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Request:
        """Build a request bound to the underlying client."""
        if self._client is None:
            raise RuntimeError("RateLimitedClient must be used as async context manager")
        return self._client.build_request(method, url, params=params, headers=headers)

    async def get(
        self,
        url: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        """
        Perform a spaced GET request.

        Raises:
            TransportError: On network failure or HTTP status >= 400
        """
        return await self.send(self.build_request("GET", url, params=params, headers=headers))

    async def send(self, request: httpx.Request) -> httpx.Response:
        """
        Send a prepared request once the spacing gate allows it.

        Raises:
            TransportError: On network failure or HTTP status >= 400
        """
        if self._client is None:
            raise RuntimeError("RateLimitedClient must be used as async context manager")

        await self._wait_for_slot()

        url = str(request.url)
        logger.debug(f"Sending {request.method} {url}")

        try:
            response = await self._client.send(request)
        except httpx.TransportError as e:
            logger.error(f"Request to {url} failed: {type(e).__name__}: {e}")
            raise TransportError(f"Request to {url} failed: {e}", url=url) from e

        if response.status_code >= 400:
            logger.error(f"Request to {url} returned status {response.status_code}")
            raise TransportError(
                f"Request failed with status {response.status_code}",
                url=url,
                status_code=response.status_code,
            )

        logger.debug(f"Completed {request.method} {url} status={response.status_code}")
        return response

    async def _wait_for_slot(self) -> None:
        async with self._gate:
            if self._last_request_at is not None:
                elapsed = self._clock() - self._last_request_at
                if elapsed < self.min_interval:
                    wait_time = self.min_interval - elapsed
                    logger.debug(f"Request spacing, waiting {wait_time:.3f}s")
                    await asyncio.sleep(wait_time)
            self._last_request_at = self._clock()
