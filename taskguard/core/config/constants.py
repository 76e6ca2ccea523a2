"""
System Constants and Enumerations

This module defines system-wide constants and enumerations used across
the taskguard resilience layer.

Architectural Decision: Centralized constants for maintainability
- Single source of truth for key prefixes and header names
- Type-safe enums for state management
- Defaults mirrored by the settings layer
"""

from enum import Enum

# ============================================================================
# Stage Identifiers (for structured logging)
# ============================================================================


class Stage(str, Enum):
    """
    Processing stages used as the ``stage=`` field on log entries.

    Each stage names a component so that log lines can be filtered by
    concern without reading the emitting module.
    """

    INITIALIZATION = "0.0_INITIALIZATION"
    RATE_LIMITING = "1.0_RATE_LIMITING"
    CACHE = "2.0_DISTRIBUTED_STORE"
    AUTH = "3.0_REFRESH_TOKENS"
    CLEANUP = "6.0_CLEANUP"

    # Cross-cutting concerns
    CIRCUIT_BREAKER = "CB_CIRCUIT_BREAKER"
    RETRY = "R_RETRY_LOGIC"
    QUEUE = "Q_NOTIFICATION_QUEUE"
    METRICS = "M_METRICS_COLLECTION"


# ============================================================================
# Circuit Breaker States
# ============================================================================


class CircuitState(str, Enum):
    """
    Circuit breaker states.

    CLOSED: Normal operation, calls pass through
    OPEN: Failing fast, calls short-circuit
    HALF_OPEN: Exactly one trial call is allowed
    """

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


# ============================================================================
# Distributed Store Defaults
# ============================================================================

DEFAULT_NAMESPACE = "app"
DEFAULT_CACHE_TTL = 300  # seconds
SCAN_BATCH_SIZE = 100

# Retry policy for transient store failures
MAX_RETRIES = 3
RETRY_BASE_DELAY = 0.05  # seconds
RETRY_MAX_DELAY = 1.0  # seconds

# ============================================================================
# Redis Key Prefixes
# ============================================================================

REDIS_KEY_RATE_LIMIT = "rate_limit"
REDIS_KEY_REFRESH_TOKEN = "refresh_token"
AUTH_NAMESPACE = "auth"

# Length of the hashed client identifier inside a rate-limit key
RATE_LIMIT_KEY_HASH_LENGTH = 16

# ============================================================================
# HTTP Headers
# ============================================================================

HEADER_REQUEST_ID = "X-Request-ID"
HEADER_RATE_LIMIT = "X-RateLimit-Limit"
HEADER_RATE_REMAINING = "X-RateLimit-Remaining"
HEADER_RATE_RESET = "X-RateLimit-Reset"
HEADER_RETRY_AFTER = "Retry-After"
HEADER_FORWARDED_FOR = "X-Forwarded-For"

# ============================================================================
# Messages
# ============================================================================

INVALID_REFRESH_TOKEN_MESSAGE = "Invalid or expired refresh token"
SERVICE_UNAVAILABLE_MESSAGE = "Service temporarily unavailable"
