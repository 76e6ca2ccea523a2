"""
FastAPI Dependencies
====================

Every long-lived component is built once in the application lifespan and
stored on ``app.state``. The providers below hand them to route handlers:

    @router.post("/refresh")
    async def refresh(body: RefreshRequest, sessions: SessionsDep): ...

Tests swap a component by assigning to ``app.state`` or through
``app.dependency_overrides``.
"""

from typing import Annotated

from fastapi import Depends, Request

from taskguard.auth.session_tokens import SessionTokenService
from taskguard.core.exceptions import AuthenticationError
from taskguard.core.resilience.circuit_breaker import CircuitBreakerRegistry
from taskguard.infrastructure.cache.distributed_store import DistributedStore


def get_store(request: Request) -> DistributedStore:
    return request.app.state.store


def get_breakers(request: Request) -> CircuitBreakerRegistry:
    return request.app.state.breakers


def get_sessions(request: Request) -> SessionTokenService:
    return request.app.state.sessions


def get_current_subject(request: Request) -> str:
    """
    Subject resolved from the bearer token by RequestContextMiddleware.

    Raises:
        AuthenticationError: No valid access token on the request
    """
    subject_id = getattr(request.state, "subject_id", None)
    if not subject_id:
        raise AuthenticationError("Authentication required")
    return subject_id


StoreDep = Annotated[DistributedStore, Depends(get_store)]
BreakersDep = Annotated[CircuitBreakerRegistry, Depends(get_breakers)]
SessionsDep = Annotated[SessionTokenService, Depends(get_sessions)]
CurrentSubjectDep = Annotated[str, Depends(get_current_subject)]
