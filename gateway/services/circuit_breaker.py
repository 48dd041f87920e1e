"""
CircuitBreaker - Stops traffic to a rate-limiting upstream until it cools down.

States:
- CLOSED: Normal operation, requests pass through
- OPEN: Upstream kept answering 429, requests are fast-failed

Transitions:
- CLOSED → OPEN: When failure_threshold consecutive 429s are seen
- OPEN → CLOSED: Once reset_timeout has elapsed since opening (counter zeroed)

There is no half-open trial state: the first request after the cooldown simply
goes out, and the threshold has to be reached again before re-opening.
"""

import time
from collections.abc import Callable
from enum import Enum
from typing import Any

from loguru import logger


class CircuitState(str, Enum):
    """Circuit breaker states."""

    CLOSED = "CLOSED"  # Normal operation
    OPEN = "OPEN"  # Blocking requests


class FailureDecay(str, Enum):
    """How a success lowers the consecutive-failure counter."""

    DECREMENT = "decrement"  # soft recovery, one step per success
    RESET = "reset"  # back to zero


class CircuitBreaker:
    """
    Circuit breaker for a single upstream.

    Usage:
        cb = CircuitBreaker("gdelt", failure_threshold=8, reset_timeout=60.0)

        if cb.is_blocking():
            return degraded

        if response.status_code == 429 and cb.record_rate_limited():
            drain_queue()
    """

    def __init__(
        self,
        service_id: str,
        failure_threshold: int,
        reset_timeout: float,
        decay: FailureDecay | str = FailureDecay.DECREMENT,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.service_id = service_id
        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout
        self.decay = FailureDecay(decay)
        self._clock = clock

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._opened_at: float | None = None
        self._times_opened = 0

    @property
    def state(self) -> CircuitState:
        return self._state

    @property
    def is_open(self) -> bool:
        return self._state == CircuitState.OPEN

    @property
    def consecutive_failures(self) -> int:
        return self._failure_count

    @property
    def opened_at(self) -> float | None:
        return self._opened_at

    def cooldown_elapsed(self) -> bool:
        if self._opened_at is None:
            return True
        return self._clock() - self._opened_at >= self.reset_timeout

    def is_blocking(self) -> bool:
        """True while OPEN and still inside the cooldown window."""
        return self.is_open and not self.cooldown_elapsed()

    def try_close(self) -> bool:
        """Close the circuit if its cooldown has elapsed. Returns True on transition."""
        if not self.is_open or not self.cooldown_elapsed():
            return False
        self._close()
        logger.info(f"[{self.service_id}] Circuit breaker reset, resuming requests")
        return True

    def record_rate_limited(self) -> bool:
        """
        Count one 429 response.

        Returns True if this failure tripped the breaker.
        """
        self._failure_count += 1
        if self._state == CircuitState.CLOSED and self._failure_count >= self.failure_threshold:
            self._open()
            return True
        return False

    def record_success(self) -> None:
        if self.decay == FailureDecay.RESET:
            self._failure_count = 0
        else:
            self._failure_count = max(0, self._failure_count - 1)

    def _open(self) -> None:
        self._state = CircuitState.OPEN
        self._opened_at = self._clock()
        self._times_opened += 1
        logger.warning(
            f"[{self.service_id}] Circuit breaker OPEN after {self._failure_count} "
            f"consecutive 429s, pausing for {self.reset_timeout:.1f}s"
        )

    def _close(self) -> None:
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._opened_at = None

    def reset(self) -> None:
        """Manually reset the circuit breaker."""
        self._close()
        logger.info(f"[{self.service_id}] Circuit breaker manually reset")

    def get_time_until_reset(self) -> float | None:
        """Get seconds until the circuit may close again."""
        if not self.is_open or self._opened_at is None:
            return None
        remaining = self._opened_at + self.reset_timeout - self._clock()
        return max(0.0, remaining)

    def get_status(self) -> dict[str, Any]:
        return {
            "service_id": self.service_id,
            "state": self._state.value,
            "failure_count": self._failure_count,
            "failure_threshold": self.failure_threshold,
            "decay": self.decay.value,
            "times_opened": self._times_opened,
            "time_until_reset": self.get_time_until_reset(),
        }
