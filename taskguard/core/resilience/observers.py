"""
Circuit breaker observers.

Consumers of BreakerEvent that turn breaker activity into log lines and
Prometheus metrics. The breaker itself knows nothing about either.
"""

from taskguard.core.config.constants import Stage
from taskguard.core.logging.logger import get_logger
from taskguard.core.resilience.circuit_breaker import BreakerEvent, BreakerEventKind
from taskguard.infrastructure.monitoring.metrics_collector import (
    MetricsCollector,
    get_metrics_collector,
)

logger = get_logger(__name__)

_TRANSITIONS = {BreakerEventKind.OPEN, BreakerEventKind.HALF_OPEN, BreakerEventKind.CLOSE}


class LoggingBreakerObserver:
    """Structured log line per transition; failures at warning, the rest at debug."""

    def on_event(self, event: BreakerEvent) -> None:
        fields = {
            "stage": Stage.CIRCUIT_BREAKER.value,
            "breaker": event.name,
            "state": event.state.value,
        }
        if event.kind is BreakerEventKind.OPEN:
            logger.error(f"Circuit '{event.name}' opened", **fields)
        elif event.kind is BreakerEventKind.HALF_OPEN:
            logger.info(f"Circuit '{event.name}' half-open, allowing one trial call", **fields)
        elif event.kind is BreakerEventKind.CLOSE:
            logger.info(f"Circuit '{event.name}' closed", **fields)
        elif event.kind in (BreakerEventKind.FAILURE, BreakerEventKind.TIMEOUT):
            logger.warning(
                f"Circuit '{event.name}' recorded {event.kind.value}",
                error_type=event.error_type,
                **fields,
            )
        else:
            logger.debug(f"Circuit '{event.name}' {event.kind.value}", **fields)


class MetricsBreakerObserver:
    """Keeps the state gauge current and counts every event."""

    def __init__(self, metrics: MetricsCollector | None = None):
        self._metrics = metrics or get_metrics_collector()

    def on_event(self, event: BreakerEvent) -> None:
        self._metrics.record_circuit_event(event.name, event.kind.value)
        if event.kind in _TRANSITIONS:
            self._metrics.set_circuit_state(event.name, event.state)
