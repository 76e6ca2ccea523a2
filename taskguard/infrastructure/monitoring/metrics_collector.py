#!/usr/bin/env python3
"""
Metrics Collector with Prometheus Integration

This module provides metrics for the resilience layer:
- Rate limit decisions (admitted, rejected, failed open)
- Distributed store errors by operation
- Cache hit/miss counts
- Circuit breaker states and events
- Refresh token rotations
- Notification queue submissions

Architectural Decision: prometheus-client for industry-standard metrics
- Compatible with Grafana dashboards
- Scraped from /metrics
"""


from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    Counter,
    Gauge,
    Info,
    generate_latest,
)

from taskguard.core.config.constants import CircuitState
from taskguard.core.config.settings import get_settings
from taskguard.core.logging.logger import get_logger

logger = get_logger(__name__)


# ============================================================================
# Metric Definitions
# ============================================================================

# Rate limiting metrics
RATE_LIMIT_DECISIONS = Counter(
    'taskguard_rate_limit_decisions_total',
    'Admission decisions made by the sliding window limiter',
    ['outcome']  # admitted, rejected, failed_open
)

# Store metrics
STORE_ERRORS = Counter(
    'taskguard_store_errors_total',
    'Distributed store errors by operation',
    ['operation', 'error_type']
)

CACHE_HITS = Counter(
    'taskguard_cache_hits_total',
    'Total cache hits',
    ['namespace']
)

CACHE_MISSES = Counter(
    'taskguard_cache_misses_total',
    'Total cache misses',
    ['namespace']
)

# Circuit breaker metrics
CIRCUIT_BREAKER_STATE = Gauge(
    'taskguard_circuit_breaker_state',
    'Circuit breaker state (0=closed, 1=half_open, 2=open)',
    ['breaker']
)

CIRCUIT_BREAKER_EVENTS = Counter(
    'taskguard_circuit_breaker_events_total',
    'Circuit breaker events',
    ['breaker', 'event']
)

# Auth metrics
TOKEN_ROTATIONS = Counter(
    'taskguard_refresh_token_rotations_total',
    'Refresh token exchange attempts',
    ['outcome']  # rotated, rejected
)

# Queue metrics
QUEUE_SUBMISSIONS = Counter(
    'taskguard_queue_submissions_total',
    'Notification queue submissions',
    ['queue', 'outcome']  # queued, dropped
)

# App info
APP_INFO = Info(
    'taskguard_app',
    'Application information'
)

_STATE_VALUES = {
    CircuitState.CLOSED: 0,
    CircuitState.HALF_OPEN: 1,
    CircuitState.OPEN: 2,
}


class MetricsCollector:
    """
    Centralized metrics collector.

    STAGE-M: Metrics collection

    Usage:
        metrics = get_metrics_collector()
        metrics.record_rate_limit_decision("admitted")
        output = metrics.get_prometheus_metrics()
    """

    def __init__(self):
        self.settings = get_settings()

        APP_INFO.info({
            'version': self.settings.app.APP_VERSION,
            'environment': self.settings.app.ENVIRONMENT,
            'app_name': self.settings.app.APP_NAME
        })

        logger.info("Metrics collector initialized", stage="M.0")

    # =========================================================================
    # Rate Limiting Metrics
    # =========================================================================

    def record_rate_limit_decision(self, outcome: str) -> None:
        RATE_LIMIT_DECISIONS.labels(outcome=outcome).inc()

    # =========================================================================
    # Store Metrics
    # =========================================================================

    def record_store_error(self, operation: str, error_type: str) -> None:
        STORE_ERRORS.labels(operation=operation, error_type=error_type).inc()

    def record_cache_hit(self, namespace: str) -> None:
        CACHE_HITS.labels(namespace=namespace).inc()

    def record_cache_miss(self, namespace: str) -> None:
        CACHE_MISSES.labels(namespace=namespace).inc()

    # =========================================================================
    # Circuit Breaker Metrics
    # =========================================================================

    def set_circuit_state(self, breaker: str, state: CircuitState) -> None:
        """Set circuit breaker state gauge."""
        CIRCUIT_BREAKER_STATE.labels(breaker=breaker).set(_STATE_VALUES[state])

    def record_circuit_event(self, breaker: str, event: str) -> None:
        CIRCUIT_BREAKER_EVENTS.labels(breaker=breaker, event=event).inc()

    # =========================================================================
    # Auth Metrics
    # =========================================================================

    def record_token_rotation(self, outcome: str) -> None:
        TOKEN_ROTATIONS.labels(outcome=outcome).inc()

    # =========================================================================
    # Queue Metrics
    # =========================================================================

    def record_queue_submission(self, queue: str, outcome: str) -> None:
        QUEUE_SUBMISSIONS.labels(queue=queue, outcome=outcome).inc()

    # =========================================================================
    # Export
    # =========================================================================

    def get_prometheus_metrics(self) -> bytes:
        """Prometheus text format metrics."""
        return generate_latest(REGISTRY)

    def get_content_type(self) -> str:
        return CONTENT_TYPE_LATEST


# Global metrics collector (prometheus metrics live in the process-wide registry)
_metrics: MetricsCollector | None = None


def get_metrics_collector() -> MetricsCollector:
    """Get global metrics collector."""
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    return _metrics
