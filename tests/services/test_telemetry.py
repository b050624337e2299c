from services.telemetry import ResiliencePolicy, Telemetry


def test_policy_from_mapping_coerces_types():
    policy = ResiliencePolicy.from_mapping({"max_attempts": "4", "request_timeout": 12, "retry_delay": None})

    assert policy.max_attempts == 4
    assert policy.request_timeout == 12.0
    assert policy.retry_delay == 1.0


def test_breaker_timeout_includes_retry_waits():
    policy = ResiliencePolicy(request_timeout=10, max_attempts=3, retry_delay=1, backoff_factor=2)

    assert policy.breaker_timeout == 10 * 3 + 1 + 2


def test_health_and_readiness_snapshots():
    telemetry = Telemetry()
    telemetry.mark_service_healthy("verisoul:sandbox")

    assert telemetry.health_snapshot()["status"] == "healthy"
    assert telemetry.readiness_snapshot()["ready"] is True

    telemetry.mark_service_degraded("verisoul:sandbox", "server_error")
    health = telemetry.health_snapshot()
    assert health["status"] == "degraded"
    assert health["services"]["verisoul:sandbox"]["reason"] == "server_error"
    assert telemetry.readiness_snapshot()["ready"] is False


def test_open_circuit_is_not_ready():
    telemetry = Telemetry()
    telemetry.mark_service_healthy("verisoul:production")
    telemetry.record_circuit_state("verisoul:production", "open")

    readiness = telemetry.readiness_snapshot()

    assert readiness["ready"] is False
    assert readiness["services"]["verisoul:production"]["circuit_state"] == "open"
