"""Retry and circuit breaker primitives operating on :class:`CallResult` values."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Callable, Optional

from .errors import CircuitOpenError, RateLimitError, RequestTimeoutError, VerisoulError
from .metrics import API_RETRIES, BREAKER_REJECTIONS, BREAKER_TRANSITIONS, MetricRegistry
from .state_store import KeyValueStore
from .telemetry import Telemetry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CallResult:
    """Outcome of one logical call.

    ``attempts`` counts the attempts actually made; ``0`` means the call was
    never attempted (for example because the circuit was open).
    """

    success: bool
    value: Any = None
    error: Optional[VerisoulError] = None
    attempts: int = 0

    @classmethod
    def ok(cls, value: Any, *, attempts: int = 1) -> "CallResult":
        return cls(success=True, value=value, attempts=attempts)

    @classmethod
    def failure(cls, error: VerisoulError, *, attempts: int = 1) -> "CallResult":
        return cls(success=False, error=error, attempts=attempts)

    @property
    def attempted(self) -> bool:
        return self.attempts > 0

    @property
    def retryable(self) -> bool:
        return bool(self.error is not None and self.error.retryable)

    def with_attempts(self, attempts: int) -> "CallResult":
        return replace(self, attempts=attempts)

    def unwrap(self) -> Any:
        if self.success:
            return self.value
        assert self.error is not None  # nosec - failures always carry an error
        raise self.error


Operation = Callable[[], CallResult]


@dataclass(frozen=True)
class RetryPolicy:
    """Attempt budget and exponential backoff.

    The wait before attempt ``n + 1`` is ``base_delay * backoff_factor ** (n - 1)``
    capped at ``max_delay``. ``backoff_factor=1`` gives a fixed delay.
    """

    max_attempts: int = 3
    base_delay: float = 1.0
    backoff_factor: float = 2.0
    max_delay: float = 30.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got {self.max_attempts}")
        if self.base_delay < 0 or self.max_delay < 0:
            raise ValueError("Retry delays must be non-negative")
        if self.backoff_factor < 1:
            raise ValueError(f"backoff_factor must be >= 1, got {self.backoff_factor}")

    def delay_for(self, attempt: int, error: Optional[VerisoulError] = None) -> Optional[float]:
        """Return the wait after ``attempt`` (1-based) failed with ``error``.

        ``None`` means the server asked for a longer wait than ``max_delay``
        allows, so the caller should stop retrying.
        """

        delay = min(self.base_delay * (self.backoff_factor ** max(attempt - 1, 0)), self.max_delay)
        if isinstance(error, RateLimitError) and error.retry_after:
            retry_after = float(error.retry_after)
            if retry_after > self.max_delay:
                return None
            delay = max(delay, retry_after)
        return delay


class RetryStrategy:
    """Re-run an operation while it fails with a retryable error."""

    def __init__(
        self,
        policy: Optional[RetryPolicy] = None,
        *,
        sleep: Callable[[float], None] = time.sleep,
        metrics: Optional[MetricRegistry] = None,
        name: str = "operation",
    ) -> None:
        self.policy = policy or RetryPolicy()
        self._sleep = sleep
        self._metrics = metrics
        self._name = name

    def execute(self, operation: Operation) -> CallResult:
        attempts = 0
        while True:
            attempts += 1
            result = operation()
            if result.success:
                return result.with_attempts(attempts)
            if not result.retryable or attempts >= self.policy.max_attempts:
                if result.retryable:
                    logger.warning(
                        "Giving up after %s attempts",
                        attempts,
                        extra={"operation": self._name, "error": str(result.error)},
                    )
                return result.with_attempts(attempts)
            delay = self.policy.delay_for(attempts, result.error)
            if delay is None:
                logger.warning(
                    "Server asked %s to wait longer than the retry cap, not retrying",
                    self._name,
                    extra={
                        "operation": self._name,
                        "retry_after": getattr(result.error, "retry_after", None),
                        "max_delay_s": self.policy.max_delay,
                    },
                )
                return result.with_attempts(attempts)
            logger.info(
                "Retrying %s after retryable failure",
                self._name,
                extra={
                    "operation": self._name,
                    "attempt": attempts,
                    "delay_s": delay,
                    "error": str(result.error),
                },
            )
            if self._metrics is not None:
                self._metrics.inc(API_RETRIES, labels={"operation": self._name})
            if delay > 0:
                self._sleep(delay)


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """Per-service breaker whose state lives in a shared :class:`KeyValueStore`.

    Transitions use the store's ``compare_and_set`` and ``increment`` so several
    processes sharing a store agree on one breaker. An absent state key reads as
    closed.
    """

    def __init__(
        self,
        service: str,
        store: KeyValueStore,
        *,
        failure_threshold: int = 5,
        recovery_time: float = 300.0,
        timeout_seconds: float = 60.0,
        failure_ttl: float = 600.0,
        clock: Callable[[], float] = time.time,
        metrics: Optional[MetricRegistry] = None,
        telemetry: Optional[Telemetry] = None,
    ) -> None:
        if failure_threshold < 1:
            raise ValueError(f"failure_threshold must be at least 1, got {failure_threshold}")
        if recovery_time <= 0 or timeout_seconds <= 0:
            raise ValueError("recovery_time and timeout_seconds must be positive")
        self.service = service
        self._store = store
        self.failure_threshold = failure_threshold
        self.recovery_time = recovery_time
        self.timeout_seconds = timeout_seconds
        self.failure_ttl = failure_ttl
        self._clock = clock
        self._metrics = metrics
        self._telemetry = telemetry

    @property
    def _state_key(self) -> str:
        return f"circuit_breaker:{self.service}:state"

    @property
    def _failures_key(self) -> str:
        return f"circuit_breaker:{self.service}:failures"

    @property
    def _opened_at_key(self) -> str:
        return f"circuit_breaker:{self.service}:opened_at"

    @property
    def _open_ttl(self) -> float:
        # Outlives the recovery window so the half-open trial stays reachable.
        return self.recovery_time * 2 + self.timeout_seconds

    @property
    def _half_open_ttl(self) -> float:
        return max(self.timeout_seconds, self.recovery_time)

    def state(self) -> CircuitState:
        raw = self._store.get(self._state_key)
        if raw is None:
            return CircuitState.CLOSED
        try:
            return CircuitState(raw)
        except ValueError:
            logger.warning("Ignoring unknown breaker state %r for %s", raw, self.service)
            return CircuitState.CLOSED

    def failure_count(self) -> int:
        return int(self._store.get(self._failures_key) or 0)

    def reset(self) -> None:
        self._store.delete(self._state_key)
        self._store.delete(self._failures_key)
        self._store.delete(self._opened_at_key)
        self._record_transition(None, CircuitState.CLOSED)

    def call(self, operation: Operation) -> CallResult:
        admitted, trial, retry_in = self._admit()
        if not admitted:
            if self._metrics is not None:
                self._metrics.inc(BREAKER_REJECTIONS, labels={"service": self.service})
            logger.warning(
                "Circuit breaker open, rejecting call",
                extra={"service": self.service, "retry_in": retry_in},
            )
            return CallResult.failure(CircuitOpenError(self.service, retry_in=retry_in), attempts=0)

        started = self._clock()
        try:
            result = operation()
        except BaseException:
            self._on_failure(trial)
            raise
        duration = self._clock() - started
        if result.success and duration > self.timeout_seconds:
            error = RequestTimeoutError(
                f"Call to {self.service} took {duration:.2f}s, exceeding {self.timeout_seconds:.2f}s",
                context={"service": self.service, "duration_s": round(duration, 3)},
            )
            result = CallResult.failure(error, attempts=result.attempts)

        if result.success:
            self._on_success(trial)
        else:
            self._on_failure(trial)
        return result

    def _admit(self) -> tuple[bool, bool, Optional[float]]:
        state = self.state()
        if state is CircuitState.CLOSED:
            return True, False, None
        if state is CircuitState.HALF_OPEN:
            # A trial call is already in flight.
            return False, False, None
        opened_at = float(self._store.get(self._opened_at_key) or 0.0)
        elapsed = self._clock() - opened_at
        if elapsed < self.recovery_time:
            return False, False, self.recovery_time - elapsed
        if self._store.compare_and_set(
            self._state_key, CircuitState.OPEN.value, CircuitState.HALF_OPEN.value, ttl=self._half_open_ttl
        ):
            self._record_transition(CircuitState.OPEN, CircuitState.HALF_OPEN)
            return True, True, None
        return False, False, None

    def _on_success(self, trial: bool) -> None:
        if trial:
            if self._store.compare_and_set(
                self._state_key, CircuitState.HALF_OPEN.value, CircuitState.CLOSED.value
            ):
                self._store.delete(self._failures_key)
                self._store.delete(self._opened_at_key)
                self._record_transition(CircuitState.HALF_OPEN, CircuitState.CLOSED)
            return
        if self._store.get(self._failures_key) is None:
            return
        remaining = self._store.increment(self._failures_key, -1, ttl=self.failure_ttl)
        if remaining <= 0:
            self._store.delete(self._failures_key)

    def _on_failure(self, trial: bool) -> None:
        failures = self._store.increment(self._failures_key, 1, ttl=self.failure_ttl)
        if trial:
            self._open(CircuitState.HALF_OPEN)
            return
        if failures >= self.failure_threshold:
            current = self._store.get(self._state_key)
            if current in (None, CircuitState.CLOSED.value):
                self._open(CircuitState.CLOSED, expected=current)

    def _open(self, previous: CircuitState, *, expected: Any = None) -> None:
        if expected is None and previous is CircuitState.HALF_OPEN:
            expected = CircuitState.HALF_OPEN.value
        # Written first so no reader pairs the new state with a stale timestamp.
        self._store.set(self._opened_at_key, self._clock(), ttl=self._open_ttl)
        if self._store.compare_and_set(self._state_key, expected, CircuitState.OPEN.value, ttl=self._open_ttl):
            self._record_transition(previous, CircuitState.OPEN)

    def _record_transition(self, previous: Optional[CircuitState], current: CircuitState) -> None:
        log_level = logging.WARNING if current is CircuitState.OPEN else logging.INFO
        logger.log(
            log_level,
            "Circuit breaker transition",
            extra={
                "service": self.service,
                "from_state": previous.value if previous else None,
                "to_state": current.value,
                "failures": self.failure_count(),
            },
        )
        if self._metrics is not None:
            self._metrics.inc(
                BREAKER_TRANSITIONS,
                labels={"service": self.service, "to_state": current.value},
            )
        if self._telemetry is not None:
            self._telemetry.record_circuit_state(self.service, current.value)


__all__ = ["CallResult", "CircuitBreaker", "CircuitState", "RetryPolicy", "RetryStrategy"]
