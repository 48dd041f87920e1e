"""
AdmissionQueue - FIFO buffer of requests waiting for a concurrency slot.
"""

import asyncio
from collections import deque
from dataclasses import dataclass, field
from typing import Any

from gateway.services.errors import QueueFullError


@dataclass
class PendingRequest:
    """
    One admitted upstream request.

    The future is the one-shot result handle: it receives exactly one
    payload or exception. Callers coalesced onto the same URL all await it.
    """

    url: str
    future: asyncio.Future[Any]
    enqueued_at: float
    waiters: int = field(default=1)

    @property
    def done(self) -> bool:
        return self.future.done()

    def resolve(self, payload: Any) -> None:
        if not self.future.done():
            self.future.set_result(payload)

    def fail(self, exc: BaseException) -> None:
        if not self.future.done():
            self.future.set_exception(exc)
            # Drained requests may have no awaiter left; mark as retrieved.
            self.future.exception()


class AdmissionQueue:
    """
    Strict FIFO queue with an optional depth bound (0 means unbounded).
    """

    def __init__(self, service_id: str, max_depth: int = 0):
        self._service_id = service_id
        self._max_depth = max_depth
        self._items: deque[PendingRequest] = deque()
        self._total_admitted = 0
        self._total_rejected = 0

    def push(self, request: PendingRequest) -> None:
        if self._max_depth and len(self._items) >= self._max_depth:
            self._total_rejected += 1
            raise QueueFullError(self._service_id, self._max_depth)
        self._items.append(request)
        self._total_admitted += 1

    def pop(self) -> PendingRequest | None:
        """Remove and return the oldest request, or None when empty."""
        if not self._items:
            return None
        return self._items.popleft()

    def drain(self) -> list[PendingRequest]:
        """Remove and return every queued request, oldest first."""
        items = list(self._items)
        self._items.clear()
        return items

    def __len__(self) -> int:
        return len(self._items)

    def __bool__(self) -> bool:
        return bool(self._items)

    def get_stats(self) -> dict[str, Any]:
        return {
            "queued": len(self._items),
            "max_depth": self._max_depth,
            "total_admitted": self._total_admitted,
            "total_rejected": self._total_rejected,
        }
