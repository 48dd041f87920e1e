"""
Scheduler - Turns the admission queue into paced, bounded-concurrency attempts.

A single worker task owns dispatching. It sleeps until either the wakeup
event is set (enqueue, completion, breaker transition) or the pacing timer
expires, then runs one tick:

1. Queue empty → idle.
2. Breaker open → close it if the cooldown elapsed, otherwise drain the
   whole queue so nothing waits behind an open breaker.
3. No free concurrency slot → idle until a completion.
4. Pacing gap not yet elapsed → sleep the remainder.
5. Dispatch the oldest request and loop.
"""

import asyncio
import time
from collections.abc import Callable
from typing import Any

from loguru import logger

from gateway.services.admission import AdmissionQueue, PendingRequest
from gateway.services.cache import DedupCache
from gateway.services.circuit_breaker import CircuitBreaker
from gateway.services.errors import CircuitOpenError, GatewayClosedError
from gateway.services.executor import RequestExecutor


class Scheduler:
    def __init__(
        self,
        service_id: str,
        queue: AdmissionQueue,
        breaker: CircuitBreaker,
        executor: RequestExecutor,
        cache: DedupCache,
        max_concurrent: int,
        min_gap: float,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.service_id = service_id
        self._queue = queue
        self._breaker = breaker
        self._executor = executor
        self._cache = cache
        self._max_concurrent = max_concurrent
        self._min_gap = min_gap
        self._clock = clock

        self._wakeup = asyncio.Event()
        self._worker: asyncio.Task[None] | None = None
        self._tasks: set[asyncio.Task[None]] = set()
        self._closed = False

        self._in_flight = 0
        self._last_dispatch: float | None = None

        self.dispatched = 0
        self.drained = 0

    @property
    def in_flight(self) -> int:
        return self._in_flight

    @property
    def closed(self) -> bool:
        return self._closed

    def notify(self) -> None:
        """Wake the worker, starting it on first use."""
        if self._closed:
            return
        self._wakeup.set()
        if self._worker is None or self._worker.done():
            self._worker = asyncio.get_running_loop().create_task(
                self._run(), name=f"{self.service_id}-scheduler"
            )
            self._worker.add_done_callback(self._on_worker_done)

    async def _run(self) -> None:
        while not self._closed:
            self._wakeup.clear()
            delay = self._tick()
            try:
                await asyncio.wait_for(self._wakeup.wait(), timeout=delay)
            except asyncio.TimeoutError:
                pass

    def _tick(self) -> float | None:
        """Dispatch what can go out now; return seconds to sleep, None to idle."""
        while self._queue:
            if self._breaker.is_open and not self._breaker.try_close():
                self.drain()
                return None

            if self._in_flight >= self._max_concurrent:
                return None

            now = self._clock()
            if self._last_dispatch is not None:
                remaining = self._min_gap - (now - self._last_dispatch)
                if remaining > 0:
                    return remaining

            request = self._queue.pop()
            if request is None:
                break
            self._dispatch(request, now)
        return None

    def _dispatch(self, request: PendingRequest, now: float) -> None:
        self._in_flight += 1
        self._last_dispatch = now
        self.dispatched += 1
        logger.debug(
            f"[{self.service_id}] Dispatch {request.url[:80]} "
            f"(waited {now - request.enqueued_at:.3f}s, in_flight={self._in_flight})"
        )
        task = asyncio.get_running_loop().create_task(self._complete(request))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _complete(self, request: PendingRequest) -> None:
        try:
            payload = await self._executor.execute(request.url)
        except asyncio.CancelledError:
            request.fail(GatewayClosedError("Gateway closed", service_id=self.service_id))
            raise
        except Exception as e:
            request.fail(e)
        else:
            self._cache.store(request.url, payload)
            request.resolve(payload)
        finally:
            self._in_flight -= 1
            self.notify()

    def drain(self) -> int:
        """Fail every queued request with CircuitOpenError. Returns the count."""
        pending = self._queue.drain()
        if not pending:
            return 0

        reset_after = self._breaker.get_time_until_reset() or 0
        for request in pending:
            request.fail(CircuitOpenError(self.service_id, reset_after))
        self.drained += len(pending)
        logger.warning(
            f"[{self.service_id}] Drained {len(pending)} queued requests with degraded data"
        )
        return len(pending)

    def _on_worker_done(self, task: asyncio.Task[None]) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.opt(exception=exc).error(
                f"[{self.service_id}] Scheduler worker crashed, restarting on next event"
            )

    async def stop(self) -> None:
        """Stop the worker, cancel running attempts, fail what is still queued."""
        self._closed = True

        if self._worker and not self._worker.done():
            self._worker.cancel()
            await asyncio.gather(self._worker, return_exceptions=True)
        self._worker = None

        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        for request in self._queue.drain():
            request.fail(GatewayClosedError("Gateway closed", service_id=self.service_id))

    def get_stats(self) -> dict[str, Any]:
        return {
            "in_flight": self._in_flight,
            "max_concurrent": self._max_concurrent,
            "dispatched": self.dispatched,
            "drained": self.drained,
        }
