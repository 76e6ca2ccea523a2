"""
Monitoring Module

Prometheus metrics for the resilience layer.
"""

from taskguard.infrastructure.monitoring.metrics_collector import (
    MetricsCollector,
    get_metrics_collector,
)

__all__ = ["MetricsCollector", "get_metrics_collector"]
