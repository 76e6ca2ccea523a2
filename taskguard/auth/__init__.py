"""
Auth Module

Single-use rotating refresh credentials and the access/refresh session flow.
"""

from taskguard.auth.refresh_token_store import (
    IssuedRefreshToken,
    RefreshTokenRecord,
    RefreshTokenStore,
)
from taskguard.auth.session_tokens import AccessClaims, SessionTokens, SessionTokenService

__all__ = [
    "AccessClaims",
    "IssuedRefreshToken",
    "RefreshTokenRecord",
    "RefreshTokenStore",
    "SessionTokenService",
    "SessionTokens",
]
