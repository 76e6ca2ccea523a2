"""
Auth Routes

Refresh-token exchange and logout. Login and registration live with the
user service; they call ``SessionTokenService.open_session`` once the
caller's password has been checked.

Every route here is rate limited; the refresh exchange gets a tighter
window because it is the endpoint a stolen credential would be replayed
against.
"""

from fastapi import APIRouter

from taskguard.application.api.dependencies import CurrentSubjectDep, SessionsDep
from taskguard.application.api.middleware.rate_limit import rate_limited
from taskguard.application.api.models.auth import (
    LogoutRequest,
    LogoutResponse,
    RefreshRequest,
    TokenPairResponse,
)

router = APIRouter(prefix="/auth", tags=["Auth"])

REFRESH_LIMIT = 10
REFRESH_WINDOW_MS = 60_000


@router.post(
    "/refresh",
    response_model=TokenPairResponse,
    dependencies=[rate_limited(limit=REFRESH_LIMIT, window_ms=REFRESH_WINDOW_MS)],
)
async def refresh_tokens(body: RefreshRequest, sessions: SessionsDep):
    """
    Exchange a refresh credential for a new access/refresh pair.

    The presented credential is consumed; presenting it again returns 401.
    """
    tokens = await sessions.refresh(body.refresh_token)
    return TokenPairResponse(
        access_token=tokens.access_token,
        refresh_token=tokens.refresh_token,
        token_type=tokens.token_type,
        expires_in=tokens.expires_in,
    )


@router.post("/logout", response_model=LogoutResponse, dependencies=[rate_limited()])
async def logout(body: LogoutRequest, sessions: SessionsDep):
    return LogoutResponse(revoked=await sessions.logout(body.refresh_token))


@router.post("/logout-all", response_model=LogoutResponse, dependencies=[rate_limited()])
async def logout_everywhere(subject_id: CurrentSubjectDep, sessions: SessionsDep):
    """Revoke every refresh credential of the authenticated caller."""
    return LogoutResponse(revoked=await sessions.logout_everywhere(subject_id))
