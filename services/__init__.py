"""Outbound service plumbing: resilience, shared state, metrics and the Verisoul clients."""

from .errors import (
    ApiError,
    AuthenticationError,
    BadRequestError,
    BusinessLogicError,
    CircuitOpenError,
    ConfigurationError,
    InvalidResponseError,
    MissingParameterError,
    NotFoundError,
    RateLimitError,
    RequestTimeoutError,
    ServerError,
    UnknownOperationError,
    ValidationError,
    VerisoulConnectionError,
    VerisoulError,
)
from .metrics import MetricRegistry, Timer
from .resilience import CallResult, CircuitBreaker, CircuitState, RetryPolicy, RetryStrategy
from .state_store import FileKeyValueStore, KeyValueStore, MemoryKeyValueStore
from .telemetry import ResiliencePolicy, ServiceStatus, Telemetry

__all__ = [
    "ApiError",
    "AuthenticationError",
    "BadRequestError",
    "BusinessLogicError",
    "CallResult",
    "CircuitBreaker",
    "CircuitOpenError",
    "CircuitState",
    "ConfigurationError",
    "FileKeyValueStore",
    "InvalidResponseError",
    "KeyValueStore",
    "MemoryKeyValueStore",
    "MetricRegistry",
    "MissingParameterError",
    "NotFoundError",
    "RateLimitError",
    "RequestTimeoutError",
    "ResiliencePolicy",
    "RetryPolicy",
    "RetryStrategy",
    "ServerError",
    "ServiceStatus",
    "Telemetry",
    "Timer",
    "UnknownOperationError",
    "ValidationError",
    "VerisoulConnectionError",
    "VerisoulError",
]
