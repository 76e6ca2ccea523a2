"""
Circuit Breaker Exceptions
"""

from taskguard.core.config.constants import SERVICE_UNAVAILABLE_MESSAGE
from taskguard.core.exceptions.base import TaskGuardError


class CircuitBreakerError(TaskGuardError):
    """Base exception for circuit breaker errors."""
    pass


class CircuitBreakerOpenError(CircuitBreakerError):
    """
    Raised when a call is short-circuited and no fallback is configured.

    The message is deliberately generic; the breaker name is kept in
    ``details`` for logs only.

    Common causes:
    - Failure percentage crossed the threshold
    - A half-open trial is already in flight
    """

    def __init__(self, message: str = SERVICE_UNAVAILABLE_MESSAGE, **kwargs):
        super().__init__(message, **kwargs)


class CircuitBreakerTimeoutError(CircuitBreakerError):
    """Raised when a guarded call exceeds the breaker timeout."""

    def __init__(self, message: str = SERVICE_UNAVAILABLE_MESSAGE, **kwargs):
        super().__init__(message, **kwargs)
