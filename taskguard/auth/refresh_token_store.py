"""
Refresh Token Store

Single-use, rotating refresh credentials backed by the distributed store.

Lifecycle:
    issue(subject)           → record at auth:refresh_token:<token_id>:<subject>
                               (TTL = refresh lifetime) + signed credential
    consume_and_rotate(cred) → verify, look up, DELETE, then issue successor
    revoke / revoke_all      → delete one record / every record for a subject

Deleting the old record before the successor exists means a replayed
credential finds nothing and is rejected. The delete's return value is
checked, so of two concurrent exchanges of the same credential only the
one whose delete removed the record succeeds.

Every rejection carries the same message; callers cannot distinguish an
unknown, expired, replayed or forged credential.

A lookup that fails because the store is unavailable also rejects: token
rotation fails closed.
"""

import secrets
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, NoReturn

from jose import JWTError, jwt
from pydantic import BaseModel, Field, ValidationError

from taskguard.core.config.constants import AUTH_NAMESPACE, REDIS_KEY_REFRESH_TOKEN, Stage
from taskguard.core.config.settings import Settings, get_settings
from taskguard.core.exceptions import InvalidOrExpiredCredentialError
from taskguard.core.logging.logger import get_logger, hash_identifier
from taskguard.infrastructure.cache.distributed_store import DistributedStore, escape_pattern
from taskguard.infrastructure.monitoring.metrics_collector import (
    MetricsCollector,
    get_metrics_collector,
)

logger = get_logger(__name__)

TOKEN_TYPE_REFRESH = "refresh"
TOKEN_ID_BYTES = 32
# Matches exactly one token id (fixed-length hex)
_TOKEN_ID_GLOB = "?" * (TOKEN_ID_BYTES * 2)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class RefreshTokenRecord(BaseModel):
    """What the store keeps for one live refresh credential."""

    token_id: str
    subject_id: str
    attributes: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime


@dataclass(frozen=True)
class IssuedRefreshToken:
    token_id: str
    credential: str
    expires_at: datetime
    record: RefreshTokenRecord


class RefreshTokenStore:
    """
    Issue, rotate and revoke refresh credentials.

    Usage:
        tokens = RefreshTokenStore(store)
        issued = await tokens.issue("42", {"email": "a@b.c", "role": "user"})
        successor = await tokens.consume_and_rotate(issued.credential)
        await tokens.consume_and_rotate(issued.credential)  # raises
    """

    def __init__(
        self,
        store: DistributedStore,
        settings: Settings | None = None,
        clock: Callable[[], datetime] = utc_now,
        metrics: MetricsCollector | None = None,
    ):
        self._store = store
        auth = (settings or get_settings()).auth
        self._secret = auth.JWT_REFRESH_SECRET
        self._algorithm = auth.JWT_ALGORITHM
        self.ttl_seconds = auth.refresh_ttl_seconds
        self._clock = clock
        self._metrics = metrics or get_metrics_collector()

    @staticmethod
    def _key(token_id: str, subject_id: str) -> str:
        return f"{REDIS_KEY_REFRESH_TOKEN}:{token_id}:{subject_id}"

    async def issue(self, subject_id: str, attributes: dict[str, Any] | None = None) -> IssuedRefreshToken:
        """
        Create a record and its signed credential.

        Raises:
            StoreError: The record could not be written
        """
        now = self._clock()
        token_id = secrets.token_hex(TOKEN_ID_BYTES)
        expires_at = now + timedelta(seconds=self.ttl_seconds)
        record = RefreshTokenRecord(
            token_id=token_id,
            subject_id=subject_id,
            attributes=dict(attributes or {}),
            created_at=now,
        )

        await self._store.set(
            self._key(token_id, subject_id),
            record.model_dump(mode="json"),
            ttl_seconds=self.ttl_seconds,
            namespace=AUTH_NAMESPACE,
        )

        credential = jwt.encode(
            {
                "sub": subject_id,
                "tokenId": token_id,
                "type": TOKEN_TYPE_REFRESH,
                "iat": int(now.timestamp()),
                "exp": int(expires_at.timestamp()),
            },
            self._secret,
            algorithm=self._algorithm,
        )
        logger.info(
            "Refresh token issued",
            stage=Stage.AUTH.value,
            subject=hash_identifier(subject_id),
            ttl_seconds=self.ttl_seconds,
        )
        return IssuedRefreshToken(token_id, credential, expires_at, record)

    async def consume_and_rotate(self, credential: str) -> IssuedRefreshToken:
        """
        Exchange a credential for its successor, exactly once.

        Raises:
            InvalidOrExpiredCredentialError: For any credential that cannot be exchanged
            StoreError: The old record could not be deleted or the new one written
        """
        token_id, subject_id = self._verify(credential)
        key = self._key(token_id, subject_id)

        stored = await self._store.get(key, namespace=AUTH_NAMESPACE)
        if stored is None:
            self._reject("record missing", subject_id)

        try:
            record = RefreshTokenRecord.model_validate(stored)
        except ValidationError:
            self._reject("record malformed", subject_id)

        if not await self._store.delete(key, namespace=AUTH_NAMESPACE):
            self._reject("record already consumed", subject_id)

        successor = await self.issue(subject_id, record.attributes)
        self._metrics.record_token_rotation("rotated")
        return successor

    async def revoke(self, token_id: str, subject_id: str | None = None) -> int:
        """Delete one record; without the subject the record is found by pattern."""
        if subject_id is not None:
            return int(await self._store.delete(self._key(token_id, subject_id), namespace=AUTH_NAMESPACE))
        return await self._store.delete_by_pattern(
            f"{REDIS_KEY_REFRESH_TOKEN}:{escape_pattern(token_id)}:*", namespace=AUTH_NAMESPACE
        )

    async def revoke_credential(self, credential: str) -> int:
        """
        Revoke the record behind a credential (logout).

        Expired credentials are still honoured; credentials that fail
        signature checks count as already revoked.
        """
        try:
            token_id, subject_id = self._verify(credential, verify_exp=False)
        except InvalidOrExpiredCredentialError:
            return 0
        return await self.revoke(token_id, subject_id)

    async def revoke_all(self, subject_id: str) -> int:
        """
        Delete every refresh record for a subject.

        Uses a SCAN walk, so a credential issued concurrently may survive.
        """
        deleted = await self._store.delete_by_pattern(
            f"{REDIS_KEY_REFRESH_TOKEN}:{_TOKEN_ID_GLOB}:{escape_pattern(subject_id)}", namespace=AUTH_NAMESPACE
        )
        logger.info(
            "Refresh tokens revoked",
            stage=Stage.AUTH.value,
            subject=hash_identifier(subject_id),
            revoked=deleted,
        )
        return deleted

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _verify(self, credential: str, verify_exp: bool = True) -> tuple[str, str]:
        try:
            claims = jwt.decode(
                credential,
                self._secret,
                algorithms=[self._algorithm],
                options={"verify_exp": verify_exp},
            )
        except JWTError:
            self._reject("signature or expiry check failed")

        token_id = claims.get("tokenId")
        subject_id = claims.get("sub")
        if claims.get("type") != TOKEN_TYPE_REFRESH or not token_id or not subject_id:
            self._reject("unexpected claims")
        return str(token_id), str(subject_id)

    def _reject(self, reason: str, subject_id: str | None = None) -> NoReturn:
        self._metrics.record_token_rotation("rejected")
        logger.info(
            "Refresh token rejected",
            stage=Stage.AUTH.value,
            reason=reason,
            subject=hash_identifier(subject_id),
        )
        raise InvalidOrExpiredCredentialError()
