"""
Request Context Middleware

Runs first for every request:

1. Request ID: taken from X-Request-ID or generated, bound to the logging
   context and echoed on the response.
2. Caller identity: a valid ``Authorization: Bearer <access token>`` sets
   ``request.state.subject_id``. An invalid or missing token leaves it
   unset; routes that need a caller enforce that themselves.
3. Access log line with status and duration.
"""

import time
import uuid
from collections.abc import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from taskguard.core.config.constants import HEADER_REQUEST_ID
from taskguard.core.exceptions import AuthenticationError
from taskguard.core.logging.logger import clear_request_id, get_logger, set_request_id

logger = get_logger(__name__)

BEARER_PREFIX = "bearer "


def bearer_token(request: Request) -> str | None:
    header = request.headers.get("authorization", "")
    if header.lower().startswith(BEARER_PREFIX):
        return header[len(BEARER_PREFIX):].strip() or None
    return None


class RequestContextMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(HEADER_REQUEST_ID) or str(uuid.uuid4())
        set_request_id(request_id)
        start_time = time.perf_counter()

        request.state.subject_id = None
        token = bearer_token(request)
        sessions = getattr(request.app.state, "sessions", None)
        if token and sessions is not None:
            try:
                request.state.subject_id = sessions.verify_access_token(token).subject_id
            except AuthenticationError:
                logger.debug("Ignoring invalid bearer token", path=request.url.path)

        try:
            response = await call_next(request)
            response.headers[HEADER_REQUEST_ID] = request_id
            logger.info(
                f"Request completed: {request.method} {request.url.path}",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                duration_seconds=round(time.perf_counter() - start_time, 4),
            )
            return response
        finally:
            clear_request_id()
