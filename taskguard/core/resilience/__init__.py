"""
Resilience Module

COMPONENTS:
===========
- SlidingWindowLimiter: shared request admission control (fails open)
- CircuitBreakerRegistry: process-local breakers with observers
- LoggingBreakerObserver / MetricsBreakerObserver: breaker event consumers
"""

from taskguard.core.resilience.circuit_breaker import (
    NO_FALLBACK,
    BreakerEvent,
    BreakerEventKind,
    BreakerObserver,
    BreakerOptions,
    CircuitBreaker,
    CircuitBreakerRegistry,
)
from taskguard.core.resilience.observers import LoggingBreakerObserver, MetricsBreakerObserver
from taskguard.core.resilience.rate_limiter import (
    RateLimitDecision,
    RateLimitRule,
    RequestIdentity,
    SlidingWindowLimiter,
    derive_rate_limit_key,
)

__all__ = [
    "NO_FALLBACK",
    "BreakerEvent",
    "BreakerEventKind",
    "BreakerObserver",
    "BreakerOptions",
    "CircuitBreaker",
    "CircuitBreakerRegistry",
    "LoggingBreakerObserver",
    "MetricsBreakerObserver",
    "RateLimitDecision",
    "RateLimitRule",
    "RequestIdentity",
    "SlidingWindowLimiter",
    "derive_rate_limit_key",
]
