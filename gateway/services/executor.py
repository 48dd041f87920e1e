"""
RequestExecutor - One upstream attempt with classification and 429 backoff.
"""

import asyncio
from collections.abc import Callable
from typing import Any

import httpx
from loguru import logger

from gateway.services.circuit_breaker import CircuitBreaker
from gateway.services.errors import (
    CircuitOpenError,
    RateLimitedError,
    UpstreamHttpError,
    UpstreamTimeoutError,
)


class RequestExecutor:
    """
    Performs GET requests against the upstream.

    429 responses feed the circuit breaker and are retried with exponential
    backoff (retry_base_delay * 2**attempt) up to retry_max times. Other
    failures are not retried and do not count towards the breaker.
    """

    def __init__(
        self,
        service_id: str,
        breaker: CircuitBreaker,
        timeout: float,
        retry_max: int,
        retry_base_delay: float,
        http_client: httpx.AsyncClient | None = None,
        on_circuit_open: Callable[[], None] | None = None,
    ):
        self.service_id = service_id
        self._breaker = breaker
        self._timeout = timeout
        self._retry_max = retry_max
        self._retry_base_delay = retry_base_delay
        self._on_circuit_open = on_circuit_open

        self._http_client = http_client
        self._owns_client = http_client is None

        self.attempts = 0
        self.retries = 0

    def _get_http_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                timeout=httpx.Timeout(self._timeout),
                follow_redirects=True,
            )
        return self._http_client

    async def execute(self, url: str, attempt: int = 0) -> Any:
        """
        Run one attempt (plus any 429 retries) and return the decoded JSON.

        Raises:
            RateLimitedError: 429 after exhausting retries, or this 429 tripped the breaker
            CircuitOpenError: breaker opened by another request before a retry
            UpstreamHttpError: any other non-success status or transport failure
            UpstreamTimeoutError: the attempt exceeded its deadline
        """
        response = await self._attempt(url)

        if response.status_code == 429:
            # A 429 arriving after the cooldown starts a fresh window
            self._breaker.try_close()
            if self._breaker.record_rate_limited():
                if self._on_circuit_open:
                    self._on_circuit_open()
                raise RateLimitedError(self.service_id, circuit_open=True)
            if self._breaker.is_open:
                raise self._circuit_open_error()

            if attempt < self._retry_max:
                delay = self._retry_base_delay * (2**attempt)
                self.retries += 1
                logger.debug(
                    f"[{self.service_id}] 429 on attempt {attempt + 1}, "
                    f"retrying in {delay:.2f}s"
                )
                await asyncio.sleep(delay)
                if self._breaker.is_open:
                    raise self._circuit_open_error()
                return await self.execute(url, attempt + 1)

            raise RateLimitedError(self.service_id)

        if not response.is_success:
            raise UpstreamHttpError(
                self.service_id, response.status_code, response.text[:200]
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise UpstreamHttpError(
                self.service_id,
                response.status_code,
                f"invalid JSON body: {response.text[:120]!r}",
            ) from e

        self._breaker.record_success()
        return payload

    async def _attempt(self, url: str) -> httpx.Response:
        client = self._get_http_client()
        self.attempts += 1
        try:
            return await asyncio.wait_for(client.get(url), timeout=self._timeout)
        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            raise UpstreamTimeoutError(self.service_id, self._timeout) from e
        except httpx.RequestError as e:
            raise UpstreamHttpError(self.service_id, detail=str(e) or type(e).__name__) from e

    def _circuit_open_error(self) -> CircuitOpenError:
        return CircuitOpenError(
            self.service_id, self._breaker.get_time_until_reset() or 0
        )

    async def close(self) -> None:
        """Close the HTTP client if this executor created it."""
        if self._http_client and self._owns_client:
            await self._http_client.aclose()
        self._http_client = None
