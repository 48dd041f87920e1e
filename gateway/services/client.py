"""
UpstreamGateway - Shared, rate-limited broker in front of one upstream API.

Combines:
- DedupCache for replaying recent successful responses
- CircuitBreaker for fast-failing while the upstream rate-limits us
- AdmissionQueue + Scheduler for FIFO, paced, bounded-concurrency dispatch
- RequestExecutor for timeouts, classification and 429 backoff
"""

import asyncio
import copy
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import httpx
from loguru import logger

from gateway.services.admission import AdmissionQueue, PendingRequest
from gateway.services.cache import DedupCache
from gateway.services.circuit_breaker import CircuitBreaker
from gateway.services.errors import CircuitOpenError, GatewayClosedError, GatewayError
from gateway.services.executor import RequestExecutor
from gateway.services.scheduler import Scheduler
from gateway.settings import GatewaySettings, global_settings

DEFAULT_DEGRADED: dict[str, Any] = {"articles": []}


@dataclass
class GatewayStats:
    """Read-only diagnostic snapshot."""

    in_flight: int
    queued: int
    circuit_open: bool
    consecutive_failures: int
    cache_size: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "in_flight": self.in_flight,
            "queued": self.queued,
            "circuit_open": self.circuit_open,
            "consecutive_failures": self.consecutive_failures,
            "cache_size": self.cache_size,
        }


class UpstreamGateway:
    """
    Every caller that talks to the upstream goes through one instance of this.

    Usage:
        gateway = UpstreamGateway()

        # Never raises; returns the degraded value on any failure
        data = await gateway.fetch(url, caller="conflict_news")

        # Typed errors propagate (RateLimitedError, CircuitOpenError, ...)
        data = await gateway.request(url)
    """

    def __init__(
        self,
        settings: GatewaySettings | None = None,
        http_client: httpx.AsyncClient | None = None,
        service_id: str = "GDELT",
        clock: Callable[[], float] = time.monotonic,
        debug: bool = False,
    ):
        self.settings = settings or global_settings
        self.service_id = service_id
        self._clock = clock

        self._cache = DedupCache(
            ttl=self.settings.dedup_ttl,
            max_entries=self.settings.dedup_max_entries,
            clock=clock,
            debug=debug,
        )
        self._breaker = CircuitBreaker(
            service_id,
            failure_threshold=self.settings.circuit_threshold,
            reset_timeout=self.settings.circuit_reset,
            decay=self.settings.failure_decay,
            clock=clock,
        )
        self._queue = AdmissionQueue(service_id, max_depth=self.settings.max_queue)
        self._executor = RequestExecutor(
            service_id,
            breaker=self._breaker,
            timeout=self.settings.timeout,
            retry_max=self.settings.retry_max,
            retry_base_delay=self.settings.retry_base_delay,
            http_client=http_client,
            on_circuit_open=self._on_circuit_open,
        )
        self._scheduler = Scheduler(
            service_id,
            queue=self._queue,
            breaker=self._breaker,
            executor=self._executor,
            cache=self._cache,
            max_concurrent=self.settings.max_concurrent,
            min_gap=self.settings.min_gap,
            clock=clock,
        )

        # Requests queued or executing, by URL, for coalescing identical calls
        self._active: dict[str, PendingRequest] = {}
        self._coalesced = 0

        logger.info(f"[{service_id}] {self.settings.summary()}")

    @property
    def breaker(self) -> CircuitBreaker:
        return self._breaker

    @property
    def cache(self) -> DedupCache:
        return self._cache

    @property
    def executor(self) -> RequestExecutor:
        return self._executor

    @property
    def scheduler(self) -> Scheduler:
        return self._scheduler

    async def request(self, url: str) -> Any:
        """
        Admit url and wait for its payload.

        Raises:
            CircuitOpenError: breaker open, or request drained when it tripped
            QueueFullError: admission queue at its bound
            RateLimitedError / UpstreamHttpError / UpstreamTimeoutError: from the executor
            GatewayClosedError: gateway closed while waiting
        """
        if self._scheduler.closed:
            raise GatewayClosedError("Gateway closed", service_id=self.service_id)

        cached = self._cache.get(url)
        if cached is not None:
            return cached

        if self._breaker.is_open:
            if self._breaker.is_blocking():
                raise CircuitOpenError(
                    self.service_id, self._breaker.get_time_until_reset() or 0
                )
            if self._breaker.try_close():
                self._scheduler.notify()

        active = self._active.get(url)
        if active is not None and not active.done:
            active.waiters += 1
            self._coalesced += 1
            logger.debug(f"[{self.service_id}] Coalesced onto pending request: {url[:80]}")
            return copy.deepcopy(await asyncio.shield(active.future))

        pending = PendingRequest(
            url=url,
            future=asyncio.get_running_loop().create_future(),
            enqueued_at=self._clock(),
        )
        self._queue.push(pending)
        self._active[url] = pending
        pending.future.add_done_callback(lambda _: self._forget(pending))
        self._scheduler.notify()

        return copy.deepcopy(await asyncio.shield(pending.future))

    async def fetch(
        self,
        url: str,
        caller: str = "unknown",
        degraded: Any = None,
    ) -> Any:
        """
        Rate-limited fetch. Never raises.

        Args:
            url: Full upstream URL (the dedup key)
            caller: Tag of the calling service, used in log messages
            degraded: Value returned on any failure (default: {"articles": []})

        Returns:
            Decoded JSON payload, or a fresh copy of the degraded value
        """
        fallback = DEFAULT_DEGRADED if degraded is None else degraded
        try:
            return await self.request(url)
        except CircuitOpenError as e:
            logger.debug(f"[{self.service_id}:{caller}] Degraded, {e}")
        except GatewayError as e:
            logger.warning(f"[{self.service_id}:{caller}] Fetch failed for {url[:80]}: {e}")
        except Exception as e:
            logger.opt(exception=e).error(
                f"[{self.service_id}:{caller}] Unexpected error for {url[:80]}: {e}"
            )
        return copy.deepcopy(fallback)

    def _forget(self, pending: PendingRequest) -> None:
        if self._active.get(pending.url) is pending:
            del self._active[pending.url]

    def _on_circuit_open(self) -> None:
        self._scheduler.drain()
        self._scheduler.notify()

    # Health and status methods

    def get_stats(self) -> GatewayStats:
        return GatewayStats(
            in_flight=self._scheduler.in_flight,
            queued=len(self._queue),
            circuit_open=self._breaker.is_open,
            consecutive_failures=self._breaker.consecutive_failures,
            cache_size=len(self._cache),
        )

    def get_health_status(self) -> dict[str, Any]:
        return {
            **self.get_stats().to_dict(),
            "profile": self.settings.profile,
            "circuit_breaker": self._breaker.get_status(),
            "cache": self._cache.get_stats().to_dict(),
            "queue": self._queue.get_stats(),
            "scheduler": self._scheduler.get_stats(),
            "coalesced": self._coalesced,
            # Callers currently awaiting a queued or executing request
            "waiters": sum(p.waiters for p in self._active.values() if not p.done),
            "attempts": self._executor.attempts,
            "retries": self._executor.retries,
        }

    def reset_circuit(self) -> None:
        self._breaker.reset()
        self._scheduler.notify()

    def clear_cache(self) -> None:
        self._cache.clear()

    async def close(self) -> None:
        """Stop dispatching, fail anything still waiting, close the HTTP client."""
        await self._scheduler.stop()
        await self._executor.close()
        self._active.clear()
        logger.debug(f"[{self.service_id}] Gateway closed")

    async def __aenter__(self) -> "UpstreamGateway":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()


# Global gateway instance
_global_gateway: UpstreamGateway | None = None


def get_gateway() -> UpstreamGateway:
    """Get the global gateway instance."""
    global _global_gateway
    if _global_gateway is None:
        _global_gateway = UpstreamGateway()
    return _global_gateway


async def close_gateway() -> None:
    """Close the global gateway."""
    global _global_gateway
    if _global_gateway:
        await _global_gateway.close()
        _global_gateway = None
