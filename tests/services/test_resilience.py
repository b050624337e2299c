from typing import List

import pytest

from services.errors import (
    AuthenticationError,
    CircuitOpenError,
    RateLimitError,
    RequestTimeoutError,
    ServerError,
)
from services.metrics import API_RETRIES, BREAKER_REJECTIONS, BREAKER_TRANSITIONS, MetricRegistry
from services.resilience import CallResult, CircuitBreaker, CircuitState, RetryPolicy, RetryStrategy
from services.state_store import MemoryKeyValueStore
from services.telemetry import Telemetry


class _Clock:
    def __init__(self, now: float = 10_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class _Operation:
    """Replays queued results and counts invocations."""

    def __init__(self, *results: CallResult) -> None:
        self.results = list(results)
        self.calls = 0

    def __call__(self) -> CallResult:
        self.calls += 1
        if len(self.results) > 1:
            return self.results.pop(0)
        return self.results[0]


def _server_error() -> CallResult:
    return CallResult.failure(ServerError("boom", 500))


def _breaker(clock: _Clock, **kwargs) -> CircuitBreaker:
    return CircuitBreaker("verisoul:sandbox", MemoryKeyValueStore(clock=clock), clock=clock, **kwargs)


def test_call_result_unwrap():
    assert CallResult.ok({"a": 1}).unwrap() == {"a": 1}
    with pytest.raises(ServerError):
        _server_error().unwrap()


def test_retry_policy_validates_arguments():
    with pytest.raises(ValueError):
        RetryPolicy(max_attempts=0)
    with pytest.raises(ValueError):
        RetryPolicy(base_delay=-1)
    with pytest.raises(ValueError):
        RetryPolicy(backoff_factor=0.5)


def test_retry_policy_backoff_and_cap():
    policy = RetryPolicy(base_delay=1.0, backoff_factor=2.0, max_delay=5.0)

    assert [policy.delay_for(attempt) for attempt in (1, 2, 3, 4)] == [1.0, 2.0, 4.0, 5.0]
    assert policy.delay_for(1, RateLimitError("slow down", 429, retry_after=3)) == 3.0
    assert policy.delay_for(1, RateLimitError("slow down", 429, retry_after=60)) is None


def test_retryable_failure_is_attempted_max_attempts_times():
    sleeps: List[float] = []
    metrics = MetricRegistry()
    operation = _Operation(_server_error())

    result = RetryStrategy(RetryPolicy(max_attempts=3), sleep=sleeps.append, metrics=metrics, name="op").execute(
        operation
    )

    assert not result.success
    assert result.attempts == 3
    assert operation.calls == 3
    assert sleeps == [1.0, 2.0]
    assert metrics.counter(API_RETRIES, labels={"operation": "op"}) == 2


def test_non_retryable_failure_is_attempted_once():
    sleeps: List[float] = []
    operation = _Operation(CallResult.failure(AuthenticationError("bad key", 401)))

    result = RetryStrategy(RetryPolicy(max_attempts=3), sleep=sleeps.append).execute(operation)

    assert isinstance(result.error, AuthenticationError)
    assert result.attempts == 1
    assert sleeps == []


def test_success_after_retry_reports_attempts():
    operation = _Operation(_server_error(), CallResult.ok({"ok": True}))

    result = RetryStrategy(sleep=lambda _: None).execute(operation)

    assert result.success
    assert result.attempts == 2


def test_breaker_opens_after_threshold_and_short_circuits():
    clock = _Clock()
    metrics = MetricRegistry()
    breaker = _breaker(clock, failure_threshold=5, metrics=metrics)
    failing = _Operation(_server_error())

    for _ in range(5):
        breaker.call(failing)

    assert breaker.state() is CircuitState.OPEN
    assert failing.calls == 5

    untouched = _Operation(CallResult.ok("never"))
    result = breaker.call(untouched)

    assert isinstance(result.error, CircuitOpenError)
    assert result.attempts == 0
    assert not result.attempted
    assert untouched.calls == 0
    assert result.error.retry_in == pytest.approx(300.0)
    assert metrics.counter(BREAKER_REJECTIONS, labels={"service": "verisoul:sandbox"}) == 1
    assert metrics.counter(BREAKER_TRANSITIONS, labels={"service": "verisoul:sandbox", "to_state": "open"}) == 1


def test_breaker_stays_closed_below_threshold():
    clock = _Clock()
    breaker = _breaker(clock, failure_threshold=5)

    for _ in range(4):
        breaker.call(_Operation(_server_error()))

    assert breaker.state() is CircuitState.CLOSED
    assert breaker.failure_count() == 4


def test_success_while_closed_decrements_failures():
    clock = _Clock()
    breaker = _breaker(clock)
    breaker.call(_Operation(_server_error()))
    breaker.call(_Operation(_server_error()))

    breaker.call(_Operation(CallResult.ok(1)))

    assert breaker.failure_count() == 1


def test_half_open_trial_success_closes_and_resets_counter():
    clock = _Clock()
    telemetry = Telemetry()
    breaker = _breaker(clock, failure_threshold=2, recovery_time=60, telemetry=telemetry)
    for _ in range(2):
        breaker.call(_Operation(_server_error()))
    assert breaker.state() is CircuitState.OPEN

    clock.now += 61
    result = breaker.call(_Operation(CallResult.ok("recovered")))

    assert result.unwrap() == "recovered"
    assert breaker.state() is CircuitState.CLOSED
    assert breaker.failure_count() == 0
    assert telemetry.service_status["verisoul:sandbox"].circuit_state == "closed"


def test_only_one_trial_call_is_admitted_while_half_open():
    clock = _Clock()
    breaker = _breaker(clock, failure_threshold=1, recovery_time=30)
    breaker.call(_Operation(_server_error()))
    clock.now += 31
    nested: List[CallResult] = []

    def trial() -> CallResult:
        assert breaker.state() is CircuitState.HALF_OPEN
        nested.append(breaker.call(_Operation(CallResult.ok("second"))))
        return CallResult.ok("first")

    result = breaker.call(trial)

    assert result.unwrap() == "first"
    assert isinstance(nested[0].error, CircuitOpenError)
    assert breaker.state() is CircuitState.CLOSED


def test_failed_trial_reopens_the_circuit():
    clock = _Clock()
    breaker = _breaker(clock, failure_threshold=1, recovery_time=30)
    breaker.call(_Operation(_server_error()))
    clock.now += 31

    breaker.call(_Operation(_server_error()))

    assert breaker.state() is CircuitState.OPEN
    rejected = breaker.call(_Operation(CallResult.ok("no")))
    assert isinstance(rejected.error, CircuitOpenError)
    assert rejected.error.retry_in == pytest.approx(30.0)


def test_slow_success_counts_as_timeout_failure():
    clock = _Clock()
    breaker = _breaker(clock, timeout_seconds=5)

    def slow() -> CallResult:
        clock.now += 6
        return CallResult.ok("late")

    result = breaker.call(slow)

    assert isinstance(result.error, RequestTimeoutError)
    assert breaker.failure_count() == 1


def test_retry_exhaustion_counts_as_one_breaker_failure():
    clock = _Clock()
    breaker = _breaker(clock, failure_threshold=5)
    operation = _Operation(_server_error())
    retry = RetryStrategy(RetryPolicy(max_attempts=3), sleep=lambda _: None)

    result = breaker.call(lambda: retry.execute(operation))

    assert result.attempts == 3
    assert operation.calls == 3
    assert breaker.failure_count() == 1


def test_reset_clears_breaker_state():
    clock = _Clock()
    breaker = _breaker(clock, failure_threshold=1)
    breaker.call(_Operation(_server_error()))

    breaker.reset()

    assert breaker.state() is CircuitState.CLOSED
    assert breaker.failure_count() == 0


def test_breakers_sharing_a_store_share_state():
    clock = _Clock()
    store = MemoryKeyValueStore(clock=clock)
    first = CircuitBreaker("verisoul:production", store, failure_threshold=1, clock=clock)
    second = CircuitBreaker("verisoul:production", store, failure_threshold=1, clock=clock)

    first.call(_Operation(_server_error()))

    assert second.state() is CircuitState.OPEN


def test_retry_stops_when_server_wait_exceeds_cap():
    operation = _Operation(CallResult.failure(RateLimitError("slow down", 429, retry_after=60)))
    sleeps: List[float] = []
    retry = RetryStrategy(RetryPolicy(max_attempts=3, max_delay=30.0), sleep=sleeps.append)

    result = retry.execute(operation)

    assert isinstance(result.error, RateLimitError)
    assert result.attempts == 1
    assert operation.calls == 1
    assert sleeps == []


def test_raising_operation_counts_as_failure():
    clock = _Clock()
    breaker = _breaker(clock, failure_threshold=5)

    def explode() -> CallResult:
        raise RuntimeError("unexpected")

    with pytest.raises(RuntimeError):
        breaker.call(explode)

    assert breaker.failure_count() == 1
    assert breaker.state() is CircuitState.CLOSED


def test_raising_trial_reopens_the_circuit():
    clock = _Clock()
    breaker = _breaker(clock, failure_threshold=1, recovery_time=30)
    breaker.call(_Operation(_server_error()))
    clock.now += 31

    def explode() -> CallResult:
        raise RuntimeError("unexpected")

    with pytest.raises(RuntimeError):
        breaker.call(explode)

    assert breaker.state() is CircuitState.OPEN
    clock.now += 31
    recovered = breaker.call(_Operation(CallResult.ok("back")))
    assert recovered.success
    assert breaker.state() is CircuitState.CLOSED
