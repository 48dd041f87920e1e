"""
Service layer exceptions.

These are raised inside the executor / scheduler layer only. The public
fetch surface converts every one of them into a degraded value.
"""


class ServiceError(Exception):
    """Base exception for service layer errors."""

    def __init__(self, message: str, service_id: str | None = None):
        self.service_id = service_id
        super().__init__(message)


class GatewayError(ServiceError):
    """An upstream request could not produce a real payload."""

    pass


class RateLimitedError(GatewayError):
    """Upstream kept answering 429, or the breaker tripped on this request."""

    def __init__(self, service_id: str, circuit_open: bool = False):
        self.circuit_open = circuit_open
        msg = f"Rate limited by service '{service_id}'"
        if circuit_open:
            msg += " (circuit open)"
        super().__init__(msg, service_id=service_id)


class UpstreamHttpError(GatewayError):
    """Non-success status, transport failure or undecodable body."""

    def __init__(
        self,
        service_id: str,
        status_code: int | None = None,
        detail: str = "",
    ):
        self.status_code = status_code
        msg = f"HTTP {status_code}" if status_code is not None else "Request failed"
        if detail:
            msg += f": {detail}"
        super().__init__(f"{msg} (service '{service_id}')", service_id=service_id)


class UpstreamTimeoutError(GatewayError):
    """Request timed out."""

    def __init__(self, service_id: str, timeout: float):
        self.timeout = timeout
        super().__init__(
            f"Request to service '{service_id}' timed out after {timeout}s",
            service_id=service_id,
        )


class CircuitOpenError(GatewayError):
    """Circuit breaker is open, request blocked."""

    def __init__(self, service_id: str, reset_after_seconds: float):
        self.reset_after_seconds = reset_after_seconds
        super().__init__(
            f"Circuit breaker open for service '{service_id}', "
            f"retry after {reset_after_seconds:.1f}s",
            service_id=service_id,
        )


class QueueFullError(GatewayError):
    """Admission queue is at its configured depth."""

    def __init__(self, service_id: str, max_depth: int):
        self.max_depth = max_depth
        super().__init__(
            f"Admission queue for service '{service_id}' is full ({max_depth})",
            service_id=service_id,
        )


class GatewayClosedError(GatewayError):
    """Gateway was closed before the request could run."""

    pass
