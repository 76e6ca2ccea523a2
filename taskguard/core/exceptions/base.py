"""
Base Exception Class

This module contains the base exception class that all other exceptions
inherit from. Specialized exceptions live in their themed modules.
"""

from typing import Any


class TaskGuardError(Exception):
    """
    Base exception for all taskguard errors.

    All custom exceptions inherit from this class to enable:
    - Consistent error handling
    - Request ID correlation
    - Structured error logging

    Attributes:
        message: Error message
        request_id: Request ID for correlation (if available)
        details: Additional error details (dict)

    Example:
        raise StoreUnavailableError(
            "Redis GET failed",
            details={"operation": "get", "key": "app:user:1"}
        )
    """

    def __init__(
        self, message: str, request_id: str | None = None, details: dict[str, Any] | None = None
    ):
        self.message = message
        self.request_id = request_id
        self.details = (details or {}).copy()
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """
        Convert exception to dictionary for logging.

        Returns:
            Dict with error_type, message, request_id, and details
        """
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "request_id": self.request_id,
            "details": self.details,
        }

    def with_context(self, **context) -> "TaskGuardError":
        """
        Add additional context to the error details.

        Returns:
            Self (for method chaining)
        """
        self.details.update(context)
        return self

    def __repr__(self) -> str:
        details_str = f", details={self.details}" if self.details else ""
        request_id_str = f", request_id='{self.request_id}'" if self.request_id else ""
        return f"{self.__class__.__name__}(message='{self.message}'{request_id_str}{details_str})"

    @classmethod
    def from_exception(
        cls,
        exc: Exception,
        message: str | None = None,
        request_id: str | None = None,
        **details
    ) -> "TaskGuardError":
        """
        Create an error of this class from another exception.

        Useful for wrapping third-party exceptions with additional context.

        Example:
            >>> try:
            ...     await redis.get(key)
            ... except redis.ConnectionError as e:
            ...     raise StoreUnavailableError.from_exception(e, operation="get")
        """
        error_message = message or str(exc)
        error_details = {
            "original_error": exc.__class__.__name__,
            "original_message": str(exc),
            **details
        }
        return cls(error_message, request_id=request_id, details=error_details)


class ConfigurationError(TaskGuardError):
    """
    Raised when configuration is invalid or missing.

    Common causes:
    - Missing signing secrets in production
    - Unparseable token lifetimes
    - Invalid limiter or breaker options
    """
    pass
