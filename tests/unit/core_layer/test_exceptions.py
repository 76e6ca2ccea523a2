"""
Unit Tests for the exception hierarchy
"""

import pytest

from taskguard.core.exceptions import (
    AuthenticationError,
    CircuitBreakerError,
    CircuitBreakerOpenError,
    CircuitBreakerTimeoutError,
    InvalidOrExpiredCredentialError,
    RateLimitError,
    RateLimitExceededError,
    StoreError,
    StoreOperationError,
    StoreUnavailableError,
    TaskGuardError,
)


@pytest.mark.unit
class TestBaseError:
    def test_to_dict(self):
        error = TaskGuardError("boom", request_id="req-1", details={"key": "app:x"})

        assert error.to_dict() == {
            "error_type": "TaskGuardError",
            "message": "boom",
            "request_id": "req-1",
            "details": {"key": "app:x"},
        }

    def test_with_context_chains(self):
        error = StoreOperationError("bad").with_context(operation="get")
        assert error.details == {"operation": "get"}

    def test_details_are_copied(self):
        details = {"a": 1}
        error = TaskGuardError("x", details=details)
        error.with_context(b=2)
        assert details == {"a": 1}

    def test_from_exception_keeps_original(self):
        original = ConnectionRefusedError("refused")
        error = StoreUnavailableError.from_exception(original, message="Redis GET failed", operation="get")

        assert isinstance(error, StoreUnavailableError)
        assert error.message == "Redis GET failed"
        assert error.details["original_error"] == "ConnectionRefusedError"
        assert error.details["operation"] == "get"

    def test_repr_includes_details(self):
        assert "details=" in repr(TaskGuardError("x", details={"a": 1}))


@pytest.mark.unit
class TestHierarchy:
    @pytest.mark.parametrize(
        ("error_cls", "parent"),
        [
            (StoreUnavailableError, StoreError),
            (StoreOperationError, StoreError),
            (RateLimitExceededError, RateLimitError),
            (InvalidOrExpiredCredentialError, AuthenticationError),
            (CircuitBreakerOpenError, CircuitBreakerError),
            (CircuitBreakerTimeoutError, CircuitBreakerError),
        ],
    )
    def test_parents(self, error_cls, parent):
        assert issubclass(error_cls, parent)
        assert issubclass(error_cls, TaskGuardError)

    def test_rate_limit_error_carries_numbers(self):
        error = RateLimitExceededError("Rate limit exceeded.", limit=5, current=5, retry_after=42)

        assert (error.limit, error.current, error.remaining, error.retry_after) == (5, 5, 0, 42)
        assert error.details["retry_after"] == 42

    def test_credential_error_message_is_uniform(self):
        assert InvalidOrExpiredCredentialError().message == "Invalid or expired refresh token"

    def test_breaker_errors_default_to_generic_message(self):
        assert CircuitBreakerOpenError().message == "Service temporarily unavailable"
        assert CircuitBreakerTimeoutError(details={"breaker": "db"}).details == {"breaker": "db"}
