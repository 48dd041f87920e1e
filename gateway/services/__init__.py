"""
Service layer infrastructure - the shared upstream gateway.

Provides:
- DedupCache: Short-TTL memo of recent successful responses
- CircuitBreaker: Fast-fails while the upstream rate-limits us
- AdmissionQueue / Scheduler: FIFO, paced, bounded-concurrency dispatch
- RequestExecutor: Timeouts, classification and 429 backoff
- UpstreamGateway: Unified broker combining all of the above
"""

from gateway.services.errors import (
    ServiceError,
    GatewayError,
    RateLimitedError,
    UpstreamHttpError,
    UpstreamTimeoutError,
    CircuitOpenError,
    QueueFullError,
    GatewayClosedError,
)
from gateway.services.cache import DedupCache, DedupEntry, CacheStats
from gateway.services.circuit_breaker import (
    CircuitBreaker,
    CircuitState,
    FailureDecay,
)
from gateway.services.admission import AdmissionQueue, PendingRequest
from gateway.services.executor import RequestExecutor
from gateway.services.scheduler import Scheduler
from gateway.services.client import (
    GatewayStats,
    UpstreamGateway,
    close_gateway,
    get_gateway,
)

__all__ = [
    # Errors
    "ServiceError",
    "GatewayError",
    "RateLimitedError",
    "UpstreamHttpError",
    "UpstreamTimeoutError",
    "CircuitOpenError",
    "QueueFullError",
    "GatewayClosedError",
    # Cache
    "DedupCache",
    "DedupEntry",
    "CacheStats",
    # Circuit Breaker
    "CircuitBreaker",
    "CircuitState",
    "FailureDecay",
    # Queue / scheduling
    "AdmissionQueue",
    "PendingRequest",
    "RequestExecutor",
    "Scheduler",
    # Gateway
    "GatewayStats",
    "UpstreamGateway",
    "get_gateway",
    "close_gateway",
]
