"""
Middleware Package

- request_context: request ID, bearer identity and access log
- rate_limit: RequestGate and the ``rate_limited`` route dependency
- error_handler: exception → HTTP mapping and the catch-all middleware

Middleware executes in reverse order of registration; ``create_app``
registers the error handler first so it wraps everything else.
"""

from taskguard.application.api.middleware.error_handler import (
    ErrorHandlingMiddleware,
    register_exception_handlers,
)
from taskguard.application.api.middleware.rate_limit import (
    RequestGate,
    rate_limit_headers,
    rate_limited,
)
from taskguard.application.api.middleware.request_context import RequestContextMiddleware

__all__ = [
    "ErrorHandlingMiddleware",
    "RequestContextMiddleware",
    "RequestGate",
    "rate_limit_headers",
    "rate_limited",
    "register_exception_handlers",
]
