"""
Session token service: access + refresh pairs for the auth flow.

Access tokens are short-lived signed JWTs and are never stored. Refresh
credentials go through RefreshTokenStore and are single-use.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from taskguard.auth.refresh_token_store import RefreshTokenStore
from taskguard.core.config.settings import Settings, get_settings
from taskguard.core.exceptions import AuthenticationError

TOKEN_TYPE_ACCESS = "access"
TOKEN_TYPE_BEARER = "bearer"


@dataclass(frozen=True)
class SessionTokens:
    access_token: str
    refresh_token: str
    expires_in: int
    token_type: str = TOKEN_TYPE_BEARER


@dataclass(frozen=True)
class AccessClaims:
    subject_id: str
    email: str | None = None
    role: str | None = None


class SessionTokenService:
    """
    Usage:
        sessions = SessionTokenService(refresh_tokens)
        tokens = await sessions.open_session("42", email="a@b.c", role="user")
        tokens = await sessions.refresh(tokens.refresh_token)
    """

    def __init__(self, refresh_tokens: RefreshTokenStore, settings: Settings | None = None):
        self._refresh_tokens = refresh_tokens
        auth = (settings or get_settings()).auth
        self._secret = auth.JWT_SECRET
        self._algorithm = auth.JWT_ALGORITHM
        self._access_ttl = auth.access_ttl_seconds

    def issue_access_token(self, subject_id: str, email: str | None = None, role: str | None = None) -> str:
        now = datetime.now(timezone.utc)
        return jwt.encode(
            {
                "sub": subject_id,
                "email": email,
                "role": role,
                "type": TOKEN_TYPE_ACCESS,
                "iat": int(now.timestamp()),
                "exp": int((now + timedelta(seconds=self._access_ttl)).timestamp()),
            },
            self._secret,
            algorithm=self._algorithm,
        )

    def verify_access_token(self, token: str) -> AccessClaims:
        """
        Raises:
            AuthenticationError: Bad signature, expired or not an access token
        """
        try:
            claims = jwt.decode(token, self._secret, algorithms=[self._algorithm])
        except JWTError:
            raise AuthenticationError("Invalid or expired access token") from None
        if claims.get("type") != TOKEN_TYPE_ACCESS or not claims.get("sub"):
            raise AuthenticationError("Invalid or expired access token")
        return AccessClaims(str(claims["sub"]), claims.get("email"), claims.get("role"))

    async def open_session(
        self, subject_id: str, email: str | None = None, role: str | None = None
    ) -> SessionTokens:
        """Called after the caller's credentials were checked (login, register)."""
        issued = await self._refresh_tokens.issue(subject_id, {"email": email, "role": role})
        return SessionTokens(
            access_token=self.issue_access_token(subject_id, email, role),
            refresh_token=issued.credential,
            expires_in=self._access_ttl,
        )

    async def refresh(self, refresh_token: str) -> SessionTokens:
        """
        Rotate the refresh credential and mint a new access token from the
        attribute snapshot stored with it.
        """
        issued = await self._refresh_tokens.consume_and_rotate(refresh_token)
        attributes = issued.record.attributes
        return SessionTokens(
            access_token=self.issue_access_token(
                issued.record.subject_id, attributes.get("email"), attributes.get("role")
            ),
            refresh_token=issued.credential,
            expires_in=self._access_ttl,
        )

    async def logout(self, refresh_token: str) -> int:
        return await self._refresh_tokens.revoke_credential(refresh_token)

    async def logout_everywhere(self, subject_id: str) -> int:
        return await self._refresh_tokens.revoke_all(subject_id)
