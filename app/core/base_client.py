import asyncio
from collections.abc import AsyncIterator
from typing import Any

import httpx
from loguru import logger


class BaseClient:
    """
    Base asynchronous HTTP client with built-in retry logic and logging.
    """

    def __init__(
        self, base_url: str = "", timeout: float = 10.0, max_retries: int = 3, headers: dict[str, str] | None = None
    ):
        self.base_url = base_url
        self.timeout = timeout
        self.max_retries = max_retries
        self.headers = headers or {}
        self._client: httpx.AsyncClient | None = None

    async def get_client(self) -> httpx.AsyncClient:
        """Get or create the httpx.AsyncClient instance."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url, timeout=self.timeout, headers=self.headers, follow_redirects=True
            )
        return self._client

    async def close(self):
        """Close the underlying HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    @staticmethod
    def _is_retryable(error: httpx.HTTPError) -> bool:
        # Client errors other than rate limiting will fail the same way again
        if isinstance(error, httpx.HTTPStatusError):
            status = error.response.status_code
            return status == 429 or status >= 500
        return isinstance(error, httpx.TransportError)

    async def _request(self, method: str, url: str, max_tries: int | None = None, **kwargs) -> httpx.Response:
        """Internal request handler with retry logic."""
        client = await self.get_client()
        tries = max_tries or self.max_retries

        for attempt in range(1, tries + 1):
            try:
                response = await client.request(method, url, **kwargs)
                response.raise_for_status()
                return response
            except (httpx.HTTPStatusError, httpx.RequestError) as e:
                if attempt >= tries or not self._is_retryable(e):
                    logger.error(f"Request failed ({method} {url}) after {attempt} attempt(s): {e}")
                    raise
                wait_time = 0.5 * (2 ** (attempt - 1))  # Exponential backoff
                logger.warning(f"Request failed ({method} {url}): {e}. Retrying in {wait_time}s ({attempt}/{tries})")
                await asyncio.sleep(wait_time)

        raise httpx.RequestError(f"No attempts made for {method} {url}")

    async def post(self, url: str, json: dict[str, Any] | None = None, **kwargs) -> dict[str, Any]:
        """Perform a POST request and return the JSON response."""
        response = await self._request("POST", url, json=json, **kwargs)
        return response.json()

    async def stream_lines(self, method: str, url: str, **kwargs) -> AsyncIterator[str]:
        """
        Open a streaming request and yield the response body line by line.

        Streams are not retried: once bytes have reached the caller a replay
        would duplicate output. Closing the iterator (or cancelling the task
        consuming it) closes the upstream response.
        """
        client = await self.get_client()
        async with client.stream(method, url, **kwargs) as response:
            if response.is_error:
                await response.aread()
                response.raise_for_status()
            async for line in response.aiter_lines():
                yield line
