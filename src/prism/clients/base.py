"""Shared async HTTP plumbing for the backend and gateway clients.

Subclasses get one pooled httpx connection per ``async with`` block, a
token-bucket rate limit, and an ``APIProviderError`` for every failure
mode (HTTP status, transport, unparseable body). Retries are opt-in.

Usage:
    class GatewayClient(BaseAsyncClient):
        def __init__(self, base_url: str, token: str):
            super().__init__(
                base_url=base_url,
                headers={"Authorization": f"Bearer {token}"},
                rate_limit=20,
                max_retries=2,
            )

        async def count(self, collection: str) -> dict:
            return await self.post(f"/collections/{collection}/count")
"""

import asyncio
import logging
from typing import Any

import httpx


logger = logging.getLogger(__name__)

_RETRYABLE_STATUS_CODES = {429, 502, 503, 504}
_BASE_BACKOFF = 1.0  # seconds


class RateLimiter:
    """Token bucket shared by every coroutine using one client.

    Args:
        rate: Maximum requests per second
    """

    def __init__(self, rate: int) -> None:
        self.rate = rate
        self.tokens = rate
        self.updated_at: float = 0.0
        self._initialized: bool = False
        self._lock = asyncio.Lock()

    async def acquire(self) -> None:
        """Take one token, sleeping until the bucket refills if empty."""
        async with self._lock:
            loop = asyncio.get_running_loop()
            if not self._initialized:
                self.updated_at = loop.time()
                self._initialized = True

            while self.tokens < 1:
                now = loop.time()
                self.tokens = min(self.rate, self.tokens + (now - self.updated_at) * self.rate)
                self.updated_at = now
                if self.tokens < 1:
                    await asyncio.sleep((1 - self.tokens) / self.rate)

            self.tokens -= 1
            self.updated_at = loop.time()


class APIProviderError(Exception):
    """A backend or gateway call failed.

    Attributes:
        status_code: HTTP status, None for transport failures
        response_body: First 500 characters of the error body
        retryable: True for throttling, gateway errors and transport failures
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response_body: str | None = None,
        retryable: bool = False,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body
        self.retryable = retryable


class BaseAsyncClient:
    """Pooled, rate-limited JSON client.

    Args:
        base_url: Base URL for all requests
        headers: Default headers for all requests
        rate_limit: Maximum requests per second (default: 10)
        timeout: Request timeout in seconds (default: 30)
        max_retries: Extra attempts after a retryable failure (default: 0)
    """

    def __init__(
        self,
        base_url: str,
        headers: dict[str, str] | None = None,
        rate_limit: int = 10,
        timeout: float = 30.0,
        max_retries: int = 0,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.headers = headers or {}
        self.timeout = timeout
        self.max_retries = max_retries
        self._rate_limiter = RateLimiter(rate=rate_limit)
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "BaseAsyncClient":
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=self.headers,
            timeout=self.timeout,
            limits=httpx.Limits(max_keepalive_connections=5, max_connections=10),
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def _send(
        self,
        method: str,
        endpoint: str,
        params: dict[str, Any] | None,
        json_data: dict[str, Any] | None,
    ) -> dict[str, Any]:
        """One rate-limited attempt; every failure becomes APIProviderError."""
        await self._rate_limiter.acquire()
        try:
            response = await self._client.request(method, endpoint, params=params, json=json_data)
        except httpx.TimeoutException as e:
            raise APIProviderError(f"Request timeout: {e}", retryable=True) from e
        except httpx.NetworkError as e:
            raise APIProviderError(f"Network error: {e}", retryable=True) from e

        logger.debug("Response: %d for %s", response.status_code, endpoint)
        if response.status_code >= 400:
            raise APIProviderError(
                f"API request failed: {response.status_code}",
                status_code=response.status_code,
                response_body=response.text[:500],
                retryable=response.status_code in _RETRYABLE_STATUS_CODES,
            )
        try:
            return response.json()
        except ValueError as e:
            raise APIProviderError(
                f"Invalid JSON response: {e}",
                status_code=response.status_code,
                response_body=response.text[:500],
            ) from e

    async def _request(
        self,
        method: str,
        endpoint: str,
        params: dict[str, Any] | None = None,
        json_data: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Send a request, retrying retryable failures with exponential backoff.

        Raises:
            RuntimeError: If used outside ``async with``
            APIProviderError: On the first non-retryable failure, or the last
                retryable one once ``max_retries`` is spent
        """
        if not self._client:
            raise RuntimeError("Client not initialized. Use async with context manager.")
        if not endpoint.startswith("/"):
            endpoint = f"/{endpoint}"

        attempts = self.max_retries + 1
        attempt = 0
        while True:
            logger.debug("%s %s%s (attempt %d/%d)", method, self.base_url, endpoint, attempt + 1, attempts)
            try:
                return await self._send(method, endpoint, params, json_data)
            except APIProviderError as e:
                if not e.retryable or attempt >= self.max_retries:
                    logger.error("%s %s failed: %s %s", method, endpoint, e, e.response_body or "")
                    raise
                backoff = _BASE_BACKOFF * (2 ** attempt)
                logger.warning(
                    "%s for %s, retrying in %.1fs (attempt %d/%d)",
                    e, endpoint, backoff, attempt + 1, attempts,
                )
                await asyncio.sleep(backoff)
                attempt += 1

    async def post(
        self,
        endpoint: str,
        json_data: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        return await self._request("POST", endpoint, params=params, json_data=json_data)
