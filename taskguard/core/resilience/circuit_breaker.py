"""
Circuit Breaker Registry

Process-local circuit breakers keyed by the name of the protected
operation, created lazily and reused for the life of the registry.

MECHANISM OF ACTION:
-------------------
1.  **CLOSED**: Calls pass through. Each outcome is recorded in a rolling
    window (``rolling_window_ms``). After every recorded outcome, if the
    window holds at least ``volume_threshold`` calls and the failure
    percentage exceeds ``error_threshold_percentage``, the breaker opens.
    A call running longer than ``timeout_ms`` is abandoned and counts as a
    failure.

2.  **OPEN**: Calls short-circuit without invoking the operation. The
    configured fallback is returned, or CircuitBreakerOpenError is raised
    with a generic message.

3.  **HALF-OPEN**: Once ``reset_timeout_ms`` has elapsed since opening, the
    next call becomes the single trial. Callers arriving while the trial is
    in flight short-circuit. Trial success closes the breaker and clears
    the window; trial failure reopens it and restarts the reset timer.

Every transition and outcome is published as a BreakerEvent to the
registry's observers (logging, metrics). Observer failures are logged
and never change a decision.

The registry is an ordinary object: build one at startup and pass it to
the code that needs it.
"""

import asyncio
import inspect
import time
from collections import deque
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Protocol, TypeVar

from taskguard.core.config.constants import CircuitState, Stage
from taskguard.core.config.settings import Settings
from taskguard.core.exceptions import (
    CircuitBreakerOpenError,
    CircuitBreakerTimeoutError,
    ConfigurationError,
)
from taskguard.core.logging.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class _NoFallback:
    def __repr__(self) -> str:
        return "NO_FALLBACK"


NO_FALLBACK: Any = _NoFallback()


# ============================================================================
# Events & Observers
# ============================================================================


class BreakerEventKind(str, Enum):
    OPEN = "open"
    HALF_OPEN = "half_open"
    CLOSE = "close"
    SUCCESS = "success"
    FAILURE = "failure"
    TIMEOUT = "timeout"
    SHORT_CIRCUIT = "short_circuit"


@dataclass(frozen=True)
class BreakerEvent:
    name: str
    kind: BreakerEventKind
    state: CircuitState
    error_type: str | None = None


class BreakerObserver(Protocol):
    """Consumer of breaker events. Must not block."""

    def on_event(self, event: BreakerEvent) -> None: ...


# ============================================================================
# Options
# ============================================================================


@dataclass(frozen=True)
class BreakerOptions:
    """
    Per-breaker configuration.

    ``fallback`` is either a plain value or a zero-argument callable (sync
    or async) that produces one; it is used only for short-circuited calls.
    """

    timeout_ms: int = 3000
    error_threshold_percentage: float = 50
    reset_timeout_ms: int = 30000
    volume_threshold: int = 10
    rolling_window_ms: int = 10000
    fallback: Any = NO_FALLBACK
    enabled: bool = True

    def __post_init__(self):
        if not 0 < self.error_threshold_percentage <= 100:
            raise ConfigurationError(
                "error_threshold_percentage must be in (0, 100]",
                details={"value": self.error_threshold_percentage},
            )
        for field_name in ("timeout_ms", "reset_timeout_ms", "volume_threshold", "rolling_window_ms"):
            if getattr(self, field_name) <= 0:
                raise ConfigurationError(f"{field_name} must be positive")

    @classmethod
    def from_settings(cls, settings: Settings) -> "BreakerOptions":
        cb = settings.circuit_breaker
        return cls(
            timeout_ms=cb.CIRCUIT_BREAKER_TIMEOUT,
            error_threshold_percentage=cb.CIRCUIT_BREAKER_ERROR_THRESHOLD,
            reset_timeout_ms=cb.CIRCUIT_BREAKER_RESET_TIMEOUT,
            volume_threshold=cb.CIRCUIT_BREAKER_VOLUME_THRESHOLD,
            rolling_window_ms=cb.CIRCUIT_BREAKER_ROLLING_WINDOW,
            enabled=cb.CIRCUIT_BREAKER_ENABLED,
        )

    @property
    def has_fallback(self) -> bool:
        return self.fallback is not NO_FALLBACK


# ============================================================================
# Breaker
# ============================================================================


class CircuitBreaker:
    """One named breaker. Not shared across processes."""

    def __init__(
        self,
        name: str,
        options: BreakerOptions,
        clock: Callable[[], float] = time.monotonic,
        notify: Callable[[BreakerEvent], None] | None = None,
    ):
        self.name = name
        self.options = options
        self._clock = clock
        self._notify = notify or (lambda event: None)

        self._state = CircuitState.CLOSED
        self._outcomes: deque[tuple[float, bool]] = deque()
        self._opened_at: float | None = None
        self._trial_in_flight = False

        self._successes = 0
        self._failures = 0
        self._timeouts = 0
        self._short_circuits = 0

    @property
    def state(self) -> CircuitState:
        return self._state

    async def call(self, operation: Callable[[], Awaitable[T]]) -> T:
        """
        Run ``operation`` under this breaker.

        Raises:
            CircuitBreakerOpenError: Short-circuited and no fallback configured
            CircuitBreakerTimeoutError: Operation exceeded timeout_ms
            Exception: Whatever the operation raised (recorded as a failure)
        """
        if not self.options.enabled:
            return await self._invoke(operation)

        self._maybe_half_open()
        if self._state is CircuitState.OPEN or (
            self._state is CircuitState.HALF_OPEN and self._trial_in_flight
        ):
            return await self._short_circuit()

        is_trial = self._state is CircuitState.HALF_OPEN
        if is_trial:
            self._trial_in_flight = True
        try:
            result = await self._invoke(operation)
        except CircuitBreakerTimeoutError as e:
            self._timeouts += 1
            self._on_failure(is_trial, BreakerEventKind.TIMEOUT, type(e).__name__)
            raise
        except Exception as e:
            self._on_failure(is_trial, BreakerEventKind.FAILURE, type(e).__name__)
            raise
        finally:
            if is_trial:
                self._trial_in_flight = False

        self._on_success(is_trial)
        return result

    def reset(self) -> None:
        """Force CLOSED and clear the window."""
        previous = self._state
        self._close()
        if previous is not CircuitState.CLOSED:
            self._emit(BreakerEventKind.CLOSE)

    def stats(self) -> dict[str, Any]:
        self._prune(self._clock())
        total = len(self._outcomes)
        failures = sum(1 for _, failed in self._outcomes if failed)
        return {
            "name": self.name,
            "state": self._state.value,
            "enabled": self.options.enabled,
            "window": {
                "total": total,
                "failures": failures,
                "error_percentage": round(failures * 100 / total, 1) if total else 0.0,
            },
            "successes": self._successes,
            "failures": self._failures,
            "timeouts": self._timeouts,
            "short_circuits": self._short_circuits,
        }

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _invoke(self, operation: Callable[[], Awaitable[T]]) -> T:
        try:
            return await asyncio.wait_for(operation(), timeout=self.options.timeout_ms / 1000)
        except asyncio.TimeoutError:
            raise CircuitBreakerTimeoutError(
                details={"breaker": self.name, "timeout_ms": self.options.timeout_ms}
            ) from None

    async def _short_circuit(self) -> Any:
        self._short_circuits += 1
        self._emit(BreakerEventKind.SHORT_CIRCUIT)
        if not self.options.has_fallback:
            raise CircuitBreakerOpenError(details={"breaker": self.name})

        fallback = self.options.fallback
        if callable(fallback):
            value = fallback()
            if inspect.isawaitable(value):
                value = await value
            return value
        return fallback

    def _maybe_half_open(self) -> None:
        if self._state is not CircuitState.OPEN or self._opened_at is None:
            return
        if (self._clock() - self._opened_at) * 1000 >= self.options.reset_timeout_ms:
            self._state = CircuitState.HALF_OPEN
            self._emit(BreakerEventKind.HALF_OPEN)

    def _on_success(self, is_trial: bool) -> None:
        self._successes += 1
        self._emit(BreakerEventKind.SUCCESS)
        if is_trial:
            self._close()
            self._emit(BreakerEventKind.CLOSE)
            return
        self._record(failed=False)

    def _on_failure(self, is_trial: bool, kind: BreakerEventKind, error_type: str) -> None:
        self._failures += 1
        self._emit(kind, error_type)
        if is_trial:
            self._open()
            return
        self._record(failed=True)

    def _record(self, failed: bool) -> None:
        # Either outcome can complete the minimum volume
        now = self._clock()
        self._outcomes.append((now, failed))
        self._prune(now)
        if self._state is CircuitState.CLOSED and self._should_trip():
            self._open()

    def _prune(self, now: float) -> None:
        horizon = now - self.options.rolling_window_ms / 1000
        while self._outcomes and self._outcomes[0][0] < horizon:
            self._outcomes.popleft()

    def _should_trip(self) -> bool:
        total = len(self._outcomes)
        if total < self.options.volume_threshold:
            return False
        failures = sum(1 for _, failed in self._outcomes if failed)
        return failures * 100 / total > self.options.error_threshold_percentage

    def _open(self) -> None:
        self._state = CircuitState.OPEN
        self._opened_at = self._clock()
        self._emit(BreakerEventKind.OPEN)

    def _close(self) -> None:
        self._state = CircuitState.CLOSED
        self._opened_at = None
        self._outcomes.clear()

    def _emit(self, kind: BreakerEventKind, error_type: str | None = None) -> None:
        self._notify(BreakerEvent(self.name, kind, self._state, error_type))


# ============================================================================
# Registry
# ============================================================================


class CircuitBreakerRegistry:
    """
    Name → breaker map with shared defaults and observers.

    Usage:
        registry = CircuitBreakerRegistry.from_settings(settings, observers=[...])
        result = await registry.execute("tasks-db", lambda: repo.fetch(task_id))
        quick = registry.options(timeout_ms=500, fallback=[])
        items = await registry.execute("search", run_search, quick)
    """

    def __init__(
        self,
        defaults: BreakerOptions | None = None,
        observers: Iterable[BreakerObserver] = (),
        clock: Callable[[], float] = time.monotonic,
    ):
        self.defaults = defaults or BreakerOptions()
        self._observers: list[BreakerObserver] = list(observers)
        self._clock = clock
        self._breakers: dict[str, CircuitBreaker] = {}

    @classmethod
    def from_settings(
        cls, settings: Settings, observers: Iterable[BreakerObserver] = ()
    ) -> "CircuitBreakerRegistry":
        return cls(BreakerOptions.from_settings(settings), observers)

    def add_observer(self, observer: BreakerObserver) -> None:
        self._observers.append(observer)

    def options(self, **overrides) -> BreakerOptions:
        """Process defaults with some fields replaced."""
        return replace(self.defaults, **overrides)

    def get(self, name: str, options: BreakerOptions | None = None) -> CircuitBreaker:
        """
        Breaker for ``name``; created on first use.

        Options only apply when the breaker is created; later calls reuse
        the existing breaker unchanged.
        """
        breaker = self._breakers.get(name)
        if breaker is None:
            breaker = CircuitBreaker(name, options or self.defaults, self._clock, self._publish)
            self._breakers[name] = breaker
            logger.debug("Circuit breaker created", stage=Stage.CIRCUIT_BREAKER.value, breaker=name)
        return breaker

    async def execute(
        self,
        name: str,
        operation: Callable[[], Awaitable[T]],
        options: BreakerOptions | None = None,
    ) -> T:
        return await self.get(name, options).call(operation)

    def stats(self, name: str) -> dict[str, Any] | None:
        breaker = self._breakers.get(name)
        return breaker.stats() if breaker else None

    def all_stats(self) -> dict[str, dict[str, Any]]:
        return {name: breaker.stats() for name, breaker in self._breakers.items()}

    def reset(self, name: str) -> bool:
        breaker = self._breakers.get(name)
        if breaker is None:
            return False
        breaker.reset()
        return True

    def _publish(self, event: BreakerEvent) -> None:
        for observer in self._observers:
            try:
                observer.on_event(event)
            except Exception:
                logger.error(
                    "Circuit breaker observer failed",
                    stage=Stage.CIRCUIT_BREAKER.value,
                    observer=type(observer).__name__,
                    breaker_event=event.kind.value,
                    exc_info=True,
                )
