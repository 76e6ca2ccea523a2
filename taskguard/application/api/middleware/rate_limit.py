"""
Request Gate
============

Turns SlidingWindowLimiter decisions into HTTP behaviour.

    request ──▶ RequestGate.evaluate ──▶ SlidingWindowLimiter.check
                     │
           admitted  │  rejected
     X-RateLimit-*   │  RateLimitExceededError ──▶ 429 handler (error_handler.py)

The gate runs as a FastAPI dependency rather than a BaseHTTPMiddleware so
that individual routes can carry their own limit, window and key function:

    @router.post("/refresh", dependencies=[rate_limited(limit=10, window_ms=60_000)])

Client identity:
- IP from the socket peer, or the first X-Forwarded-For hop when
  TRUST_FORWARDED_FOR is enabled (only behind a proxy that sets it)
- subject from ``request.state.subject_id`` when the auth middleware
  resolved a bearer token
"""

from collections.abc import Callable

from fastapi import Depends, Request, Response

from taskguard.core.config.constants import (
    HEADER_FORWARDED_FOR,
    HEADER_RATE_LIMIT,
    HEADER_RATE_REMAINING,
    HEADER_RATE_RESET,
    Stage,
)
from taskguard.core.logging.logger import get_logger
from taskguard.core.resilience.rate_limiter import (
    RateLimitDecision,
    RateLimitRule,
    RequestIdentity,
    SlidingWindowLimiter,
    rejection_error,
)

logger = get_logger(__name__)


def rate_limit_headers(decision: RateLimitDecision) -> dict[str, str]:
    return {
        HEADER_RATE_LIMIT: str(decision.limit),
        HEADER_RATE_REMAINING: str(decision.remaining),
        HEADER_RATE_RESET: decision.reset_at_iso(),
    }


class RequestGate:
    """
    Per-request admission using the shared limiter.

    The last decision is left on ``request.state.rate_limit`` so the 429
    handler can echo the same headers.
    """

    def __init__(self, limiter: SlidingWindowLimiter, enabled: bool = True, trust_forwarded_for: bool = False):
        self.limiter = limiter
        self.enabled = enabled
        self.trust_forwarded_for = trust_forwarded_for

    def client_ip(self, request: Request) -> str | None:
        if self.trust_forwarded_for:
            forwarded = request.headers.get(HEADER_FORWARDED_FOR)
            if forwarded:
                first_hop = forwarded.split(",")[0].strip()
                if first_hop:
                    return first_hop
        return request.client.host if request.client else None

    def identity(self, request: Request) -> RequestIdentity:
        return RequestIdentity(
            ip=self.client_ip(request),
            subject_id=getattr(request.state, "subject_id", None),
        )

    def rule_for(
        self,
        limit: int | None = None,
        window_ms: int | None = None,
        key_func: Callable[[RequestIdentity], str] | None = None,
    ) -> RateLimitRule:
        """Route override merged over the process default."""
        default = self.limiter.default_rule
        if limit is None and window_ms is None and key_func is None:
            return default
        return RateLimitRule(
            limit=limit or default.limit,
            window_ms=window_ms or default.window_ms,
            key_func=key_func or default.key_func,
        )

    async def evaluate(self, request: Request, rule: RateLimitRule | None = None) -> RateLimitDecision | None:
        """
        Check and record one request.

        Returns:
            The decision, or None when rate limiting is disabled

        Raises:
            RateLimitExceededError: The client's window is full
        """
        if not self.enabled:
            return None

        rule = rule or self.limiter.default_rule
        decision = await self.limiter.check(self.identity(request), rule)
        request.state.rate_limit = decision
        if not decision.allowed:
            raise rejection_error(decision, rule)
        if decision.degraded:
            logger.debug(
                "Request admitted without rate limit accounting",
                stage=Stage.RATE_LIMITING.value,
                path=request.url.path,
            )
        return decision


def rate_limited(
    limit: int | None = None,
    window_ms: int | None = None,
    key_func: Callable[[RequestIdentity], str] | None = None,
):
    """
    Build a route dependency enforcing a rate limit.

    With no arguments the process default (RATE_LIMIT_MAX per
    RATE_LIMIT_TTL) applies.
    """

    async def enforce_rate_limit(request: Request, response: Response) -> None:
        gate: RequestGate = request.app.state.request_gate
        decision = await gate.evaluate(request, gate.rule_for(limit, window_ms, key_func))
        if decision is not None:
            response.headers.update(rate_limit_headers(decision))

    return Depends(enforce_rate_limit)
