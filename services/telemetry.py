"""Resilience defaults and service health tracking for outbound calls."""

from __future__ import annotations

import logging
import threading
from dataclasses import asdict, dataclass, fields
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional

logger = logging.getLogger(__name__)


@dataclass
class ResiliencePolicy:
    """Default resilience configuration for calls to the Verisoul API."""

    request_timeout: float = 30.0
    connect_timeout: float = 10.0
    max_attempts: int = 3
    retry_delay: float = 1.0
    backoff_factor: float = 2.0
    max_retry_delay: float = 30.0
    circuit_failure_threshold: int = 5
    circuit_recovery_s: float = 300.0
    circuit_failure_ttl_s: float = 600.0

    @classmethod
    def from_mapping(cls, payload: Optional[Mapping[str, Any]]) -> "ResiliencePolicy":
        if not payload:
            return cls()
        kwargs: Dict[str, Any] = {}
        for item in fields(cls):
            if item.name in payload and payload[item.name] is not None:
                kwargs[item.name] = type(getattr(cls, item.name))(payload[item.name])
        return cls(**kwargs)

    @property
    def breaker_timeout(self) -> float:
        """Wall-clock budget for one logical call, retries and waits included."""

        waits = 0.0
        delay = self.retry_delay
        for _ in range(max(self.max_attempts - 1, 0)):
            waits += min(delay, self.max_retry_delay)
            delay *= self.backoff_factor
        return self.request_timeout * self.max_attempts + waits


@dataclass
class ServiceStatus:
    status: str
    reason: Optional[str] = None
    last_success: Optional[datetime] = None
    last_checked: Optional[datetime] = None
    failures: int = 0
    successes: int = 0
    circuit_state: Optional[str] = None

    @property
    def is_ready(self) -> bool:
        return self.status == "healthy" and self.last_success is not None and self.circuit_state != "open"

    def as_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        for key in ("last_success", "last_checked"):
            stamp = getattr(self, key)
            payload[key] = stamp.isoformat() if stamp else None
        return payload


class Telemetry:
    """Collect health data and last-seen metric values per remote service."""

    def __init__(self, *, policy: Optional[ResiliencePolicy] = None) -> None:
        self.policy = policy or ResiliencePolicy()
        self.metrics: Dict[str, Any] = {}
        self.service_status: Dict[str, ServiceStatus] = {}
        self._lock = threading.Lock()

    def _status_for(self, name: str, initial: str) -> ServiceStatus:
        status = self.service_status.get(name)
        if status is None:
            status = ServiceStatus(status=initial)
            self.service_status[name] = status
        return status

    def mark_service_healthy(self, name: str) -> None:
        now = datetime.now(timezone.utc)
        with self._lock:
            status = self._status_for(name, "healthy")
            status.status = "healthy"
            status.reason = None
            status.last_success = now
            status.last_checked = now
            status.successes += 1

    def mark_service_degraded(self, name: str, reason: str) -> None:
        now = datetime.now(timezone.utc)
        with self._lock:
            status = self._status_for(name, "unknown")
            if status.status != "degraded":
                logger.warning("Service %s degraded: %s", name, reason)
            status.status = "degraded"
            status.reason = reason
            status.last_checked = now
            status.failures += 1

    def record_circuit_state(self, name: str, state: str) -> None:
        with self._lock:
            self._status_for(name, "healthy").circuit_state = state

    def record_metric(self, name: str, value: Any) -> None:
        self.metrics[name] = value

    def health_snapshot(self) -> Dict[str, Any]:
        with self._lock:
            statuses = dict(self.service_status)
        degraded = any(item.status != "healthy" for item in statuses.values())
        return {
            "status": "degraded" if degraded else "healthy",
            "services": {name: item.as_dict() for name, item in statuses.items()},
        }

    def readiness_snapshot(self) -> Dict[str, Any]:
        """Health plus ``ready``: every known service healthy with a closed circuit."""

        snapshot = self.health_snapshot()
        with self._lock:
            snapshot["ready"] = all(item.is_ready for item in self.service_status.values())
        return snapshot


__all__ = ["ResiliencePolicy", "ServiceStatus", "Telemetry"]
