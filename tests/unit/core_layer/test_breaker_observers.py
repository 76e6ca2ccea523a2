"""
Unit Tests for the logging and metrics breaker observers
"""

from unittest.mock import patch

import pytest

from taskguard.core.config.constants import CircuitState
from taskguard.core.resilience.circuit_breaker import BreakerEvent, BreakerEventKind
from taskguard.core.resilience.observers import LoggingBreakerObserver, MetricsBreakerObserver


@pytest.mark.unit
class TestMetricsBreakerObserver:
    def test_transition_sets_gauge_and_counts(self, mock_metrics):
        observer = MetricsBreakerObserver(mock_metrics)
        observer.on_event(BreakerEvent("tasks-db", BreakerEventKind.OPEN, CircuitState.OPEN))

        mock_metrics.record_circuit_event.assert_called_once_with("tasks-db", "open")
        mock_metrics.set_circuit_state.assert_called_once_with("tasks-db", CircuitState.OPEN)

    def test_outcome_only_counts(self, mock_metrics):
        observer = MetricsBreakerObserver(mock_metrics)
        observer.on_event(
            BreakerEvent("tasks-db", BreakerEventKind.FAILURE, CircuitState.CLOSED, "RuntimeError")
        )

        mock_metrics.record_circuit_event.assert_called_once_with("tasks-db", "failure")
        mock_metrics.set_circuit_state.assert_not_called()


@pytest.mark.unit
class TestLoggingBreakerObserver:
    @pytest.mark.parametrize(
        ("kind", "state", "level"),
        [
            (BreakerEventKind.OPEN, CircuitState.OPEN, "error"),
            (BreakerEventKind.HALF_OPEN, CircuitState.HALF_OPEN, "info"),
            (BreakerEventKind.CLOSE, CircuitState.CLOSED, "info"),
            (BreakerEventKind.FAILURE, CircuitState.CLOSED, "warning"),
            (BreakerEventKind.TIMEOUT, CircuitState.CLOSED, "warning"),
            (BreakerEventKind.SUCCESS, CircuitState.CLOSED, "debug"),
            (BreakerEventKind.SHORT_CIRCUIT, CircuitState.OPEN, "debug"),
        ],
    )
    def test_log_level_per_event(self, kind, state, level):
        with patch("taskguard.core.resilience.observers.logger") as logger:
            LoggingBreakerObserver().on_event(BreakerEvent("tasks-db", kind, state))

        log_call = getattr(logger, level)
        log_call.assert_called_once()
        assert log_call.call_args.kwargs["breaker"] == "tasks-db"
        assert log_call.call_args.kwargs["state"] == state.value
