"""
Rate Limiting Exceptions
"""

from taskguard.core.exceptions.base import TaskGuardError


class RateLimitError(TaskGuardError):
    """Base exception for rate limiting errors."""
    pass


class RateLimitExceededError(RateLimitError):
    """
    Raised when a client exceeds its request window.

    Carries the numbers the 429 response reports: ``limit``, ``current``
    (requests already in the window), ``remaining`` (always 0) and
    ``retry_after`` in seconds.
    """

    def __init__(
        self,
        message: str,
        limit: int,
        current: int,
        retry_after: int,
        request_id: str | None = None,
    ):
        self.limit = limit
        self.current = current
        self.remaining = 0
        self.retry_after = retry_after
        super().__init__(
            message,
            request_id=request_id,
            details={
                "limit": limit,
                "current": current,
                "remaining": 0,
                "retry_after": retry_after,
            },
        )
