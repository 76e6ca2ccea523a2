"""
Exception Module

Structured exception hierarchy for taskguard. Exceptions are organized by
theme.

Module Structure:
-----------------
- **base.py**: TaskGuardError base class + ConfigurationError
- **store.py**: Distributed store exceptions (Redis)
- **rate_limit.py**: Rate limiting exceptions
- **auth.py**: Credential exceptions
- **circuit_breaker.py**: Circuit breaker exceptions

Usage:
------
```python
from taskguard.core.exceptions import StoreUnavailableError, RateLimitExceededError
```
"""

from taskguard.core.exceptions.auth import AuthenticationError, InvalidOrExpiredCredentialError
from taskguard.core.exceptions.base import ConfigurationError, TaskGuardError
from taskguard.core.exceptions.circuit_breaker import (
    CircuitBreakerError,
    CircuitBreakerOpenError,
    CircuitBreakerTimeoutError,
)
from taskguard.core.exceptions.rate_limit import RateLimitError, RateLimitExceededError
from taskguard.core.exceptions.store import (
    SerializationError,
    StoreError,
    StoreOperationError,
    StoreUnavailableError,
)

__all__ = [
    "AuthenticationError",
    "CircuitBreakerError",
    "CircuitBreakerOpenError",
    "CircuitBreakerTimeoutError",
    "ConfigurationError",
    "InvalidOrExpiredCredentialError",
    "RateLimitError",
    "RateLimitExceededError",
    "SerializationError",
    "StoreError",
    "StoreOperationError",
    "StoreUnavailableError",
    "TaskGuardError",
]
