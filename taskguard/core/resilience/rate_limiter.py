"""
Sliding Window Rate Limiter

Admission control shared by every instance, built on the distributed
store's sorted-set primitives.

MECHANISM OF ACTION:
-------------------
Each client has a sorted set at ``rate_limit:<key>`` whose members are
admitted requests scored by their timestamp (ms). For every request:

1.  Evict members scored before ``now - window``.
2.  Count what is left.
3.  ``count >= limit`` rejects; retry-after is the key's remaining TTL.
4.  Otherwise admit: add ``now`` and refresh the key expiry to the window,
    both in one pipelined round trip.

Steps 1-2 and step 4 are separate round trips, so two concurrent requests
for the same key can both see ``limit - 1`` and both be admitted. This
bounded over-admission is accepted.

Client keys are ``sha256(ip)[:16]``, suffixed with ``:<subject_id>`` once
the caller is authenticated, so raw IPs never reach the store.

FAILURE POLICY:
--------------
The limiter fails open. If the store is unreachable during eviction or
counting the request is admitted as if the window were empty and the
decision is flagged ``degraded``; a failed insert is logged and the
request still admitted. Availability of the API is preferred over strict
enforcement while Redis is down.
"""

import hashlib
import math
import secrets
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone

from taskguard.core.config.constants import (
    RATE_LIMIT_KEY_HASH_LENGTH,
    REDIS_KEY_RATE_LIMIT,
    Stage,
)
from taskguard.core.exceptions import ConfigurationError, RateLimitExceededError, StoreError
from taskguard.core.logging.logger import get_logger, hash_identifier
from taskguard.infrastructure.cache.distributed_store import DistributedStore
from taskguard.infrastructure.cache.redis_client import BatchOperation
from taskguard.infrastructure.monitoring.metrics_collector import (
    MetricsCollector,
    get_metrics_collector,
)

logger = get_logger(__name__)


def epoch_millis() -> int:
    return time.time_ns() // 1_000_000


@dataclass(frozen=True)
class RequestIdentity:
    """Who is asking: client IP (may be unknown) and authenticated subject, if any."""

    ip: str | None
    subject_id: str | None = None


KeyFunc = Callable[[RequestIdentity], str]


def derive_rate_limit_key(identity: RequestIdentity) -> str:
    """
    ``sha256(ip)[:16]`` or ``sha256(ip)[:16]:<subject_id>``.

    A missing IP hashes the literal "unknown", so all such clients share
    one window.
    """
    digest = hashlib.sha256((identity.ip or "unknown").encode("utf-8")).hexdigest()
    digest = digest[:RATE_LIMIT_KEY_HASH_LENGTH]
    if identity.subject_id:
        return f"{digest}:{identity.subject_id}"
    return digest


@dataclass(frozen=True)
class RateLimitRule:
    """Limit and window for a route; ``key_func`` replaces key derivation."""

    limit: int
    window_ms: int
    key_func: KeyFunc | None = None

    def __post_init__(self):
        if self.limit <= 0 or self.window_ms <= 0:
            raise ConfigurationError(
                "Rate limit and window must be positive",
                details={"limit": self.limit, "window_ms": self.window_ms},
            )

    @property
    def window_seconds(self) -> int:
        return math.ceil(self.window_ms / 1000)

    def key_for(self, identity: RequestIdentity) -> str:
        if self.key_func is not None:
            return self.key_func(identity)
        return derive_rate_limit_key(identity)

    def describe(self) -> str:
        return f"Maximum {self.limit} requests per {self.window_ms / 1000:g} seconds."


@dataclass(frozen=True)
class RateLimitDecision:
    """
    Outcome of one admission check.

    Admitted: ``remaining = limit - count - 1`` and ``reset_at_ms = now + window``.
    Rejected: ``remaining = 0`` and ``retry_after`` seconds are set.
    """

    allowed: bool
    limit: int
    current: int
    remaining: int
    reset_at_ms: int
    retry_after: int | None = None
    degraded: bool = False

    @property
    def reset_at(self) -> datetime:
        return datetime.fromtimestamp(self.reset_at_ms / 1000, tz=timezone.utc)

    def reset_at_iso(self) -> str:
        """ISO-8601 UTC with millisecond precision, e.g. 2025-01-01T00:01:00.000Z."""
        return self.reset_at.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def rejection_error(decision: RateLimitDecision, rule: RateLimitRule) -> RateLimitExceededError:
    return RateLimitExceededError(
        f"Rate limit exceeded. {rule.describe()}",
        limit=decision.limit,
        current=decision.current,
        retry_after=decision.retry_after,
    )


class SlidingWindowLimiter:
    """
    Sliding-window admission engine.

    Usage:
        limiter = SlidingWindowLimiter(store, RateLimitRule(limit=100, window_ms=60_000))
        decision = await limiter.check(RequestIdentity(ip="203.0.113.7"))
        if not decision.allowed:
            ...
    """

    NAMESPACE = REDIS_KEY_RATE_LIMIT

    def __init__(
        self,
        store: DistributedStore,
        default_rule: RateLimitRule,
        clock: Callable[[], int] = epoch_millis,
        metrics: MetricsCollector | None = None,
    ):
        self._store = store
        self.default_rule = default_rule
        self._clock = clock
        self._metrics = metrics or get_metrics_collector()

    async def check(
        self, identity: RequestIdentity, rule: RateLimitRule | None = None
    ) -> RateLimitDecision:
        """
        Decide whether one request is admitted.

        STAGE-1.0: Rate limit check

        Never raises on store failure (fails open).
        """
        rule = rule or self.default_rule
        key = rule.key_for(identity)
        now = self._clock()
        window_start = now - rule.window_ms

        try:
            await self._store.zremrangebyscore(key, 0, window_start - 1, namespace=self.NAMESPACE)
            count = await self._store.zcard(key, namespace=self.NAMESPACE)
        except StoreError as e:
            return self._fail_open(key, rule, now, e)

        if count >= rule.limit:
            retry_after = await self._retry_after(key, rule)
            self._metrics.record_rate_limit_decision("rejected")
            logger.info(
                "Rate limit exceeded",
                stage=Stage.RATE_LIMITING.value,
                client=hash_identifier(key),
                limit=rule.limit,
                current=count,
                retry_after=retry_after,
            )
            return RateLimitDecision(
                allowed=False,
                limit=rule.limit,
                current=count,
                remaining=0,
                reset_at_ms=now + rule.window_ms,
                retry_after=retry_after,
            )

        degraded = not await self._record(key, rule, now)
        self._metrics.record_rate_limit_decision("failed_open" if degraded else "admitted")
        return RateLimitDecision(
            allowed=True,
            limit=rule.limit,
            current=count + 1,
            remaining=max(0, rule.limit - count - 1),
            reset_at_ms=now + rule.window_ms,
            degraded=degraded,
        )

    async def enforce(
        self, identity: RequestIdentity, rule: RateLimitRule | None = None
    ) -> RateLimitDecision:
        """Like ``check`` but raises RateLimitExceededError on rejection."""
        rule = rule or self.default_rule
        decision = await self.check(identity, rule)
        if not decision.allowed:
            raise rejection_error(decision, rule)
        return decision

    async def reset(self, identity: RequestIdentity, rule: RateLimitRule | None = None) -> bool:
        """Forget a client's window."""
        rule = rule or self.default_rule
        return await self._store.delete(rule.key_for(identity), namespace=self.NAMESPACE)

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    async def _record(self, key: str, rule: RateLimitRule, now: int) -> bool:
        full_key = self._store.build_key(key, self.NAMESPACE)
        # Random suffix keeps same-millisecond requests distinct
        member = f"{now}:{secrets.token_hex(4)}"
        try:
            await self._store.execute_batch([
                BatchOperation.zadd(full_key, member, now),
                BatchOperation.expire(full_key, rule.window_seconds),
            ])
        except StoreError as e:
            logger.warning(
                "Rate limit insert failed, request admitted",
                stage=Stage.RATE_LIMITING.value,
                client=hash_identifier(key),
                error_type=type(e).__name__,
            )
            return False
        return True

    async def _retry_after(self, key: str, rule: RateLimitRule) -> int:
        try:
            ttl = await self._store.ttl(key, namespace=self.NAMESPACE)
        except StoreError:
            return rule.window_seconds
        return ttl if ttl > 0 else rule.window_seconds

    def _fail_open(
        self, key: str, rule: RateLimitRule, now: int, error: StoreError
    ) -> RateLimitDecision:
        self._metrics.record_rate_limit_decision("failed_open")
        logger.warning(
            "Rate limit store unavailable, failing open",
            stage=Stage.RATE_LIMITING.value,
            client=hash_identifier(key),
            error_type=type(error).__name__,
        )
        return RateLimitDecision(
            allowed=True,
            limit=rule.limit,
            current=0,
            remaining=rule.limit - 1,
            reset_at_ms=now + rule.window_ms,
            degraded=True,
        )
