"""
Error Handling
==============

Two layers, registered from ``create_app``:

1. Exception handlers for the TaskGuardError hierarchy. Starlette picks the
   handler of the most specific class in the exception's MRO:

       RateLimitExceededError   → 429 + Retry-After + X-RateLimit-*
       AuthenticationError      → 401
       CircuitBreakerError      → 503 "Service temporarily unavailable"
       StoreUnavailableError    → 503 "Service temporarily unavailable"
       TaskGuardError (other)   → 500

2. ErrorHandlingMiddleware, the catch-all for anything else. Full details
   go to the log; the client gets a generic body (plus the traceback in
   development only).

Response bodies never include breaker names, store keys, client IPs or
credentials. Those stay in ``exc.details`` and the log.
"""

import traceback
from collections.abc import Callable

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from taskguard.application.api.middleware.rate_limit import rate_limit_headers
from taskguard.core.config.constants import HEADER_RETRY_AFTER, SERVICE_UNAVAILABLE_MESSAGE
from taskguard.core.exceptions import (
    AuthenticationError,
    CircuitBreakerError,
    RateLimitExceededError,
    StoreUnavailableError,
    TaskGuardError,
)
from taskguard.core.logging.logger import get_logger

logger = get_logger(__name__)

INTERNAL_ERROR_MESSAGE = "Internal server error"


def error_body(status_code: int, message: str) -> dict:
    return {"statusCode": status_code, "message": message}


# ============================================================================
# Exception handlers
# ============================================================================


async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceededError) -> JSONResponse:
    headers = {HEADER_RETRY_AFTER: str(exc.retry_after)}
    decision = getattr(request.state, "rate_limit", None)
    if decision is not None:
        headers.update(rate_limit_headers(decision))
    return JSONResponse(
        status_code=429,
        content={
            **error_body(429, exc.message),
            "limit": exc.limit,
            "current": exc.current,
            "remaining": exc.remaining,
            "retryAfter": exc.retry_after,
        },
        headers=headers,
    )


async def authentication_error_handler(request: Request, exc: AuthenticationError) -> JSONResponse:
    return JSONResponse(status_code=401, content=error_body(401, exc.message))


async def service_unavailable_handler(request: Request, exc: TaskGuardError) -> JSONResponse:
    logger.warning(
        "Dependency unavailable",
        path=request.url.path,
        error_type=type(exc).__name__,
        details=exc.details,
    )
    return JSONResponse(status_code=503, content=error_body(503, SERVICE_UNAVAILABLE_MESSAGE))


async def taskguard_error_handler(request: Request, exc: TaskGuardError) -> JSONResponse:
    logger.error(
        f"Unhandled {type(exc).__name__}: {exc.message}",
        path=request.url.path,
        **exc.to_dict(),
    )
    return JSONResponse(status_code=500, content=error_body(500, INTERNAL_ERROR_MESSAGE))


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(RateLimitExceededError, rate_limit_exceeded_handler)
    app.add_exception_handler(AuthenticationError, authentication_error_handler)
    app.add_exception_handler(CircuitBreakerError, service_unavailable_handler)
    app.add_exception_handler(StoreUnavailableError, service_unavailable_handler)
    app.add_exception_handler(TaskGuardError, taskguard_error_handler)


# ============================================================================
# Catch-all middleware
# ============================================================================


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """Last line of defence for exceptions no handler claimed."""

    def __init__(self, app, include_traceback: bool = False):
        super().__init__(app)
        self.include_traceback = include_traceback

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        try:
            return await call_next(request)
        except Exception as e:
            logger.error(
                f"Unhandled exception in request: {request.method} {request.url.path}",
                method=request.method,
                path=request.url.path,
                error_type=type(e).__name__,
                exc_info=True,
            )
            body = error_body(500, INTERNAL_ERROR_MESSAGE)
            if self.include_traceback:
                body["traceback"] = traceback.format_exc()
            return JSONResponse(status_code=500, content=body)
