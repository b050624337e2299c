"""Resilient HTTP client shared by every Verisoul API client."""

from __future__ import annotations

import logging
import time
import uuid
from typing import Any, Callable, Dict, Mapping, Optional

import httpx

from services.errors import (
    BusinessLogicError,
    ConfigurationError,
    InvalidResponseError,
    MissingParameterError,
    RequestTimeoutError,
    UnknownOperationError,
    VerisoulConnectionError,
    VerisoulError,
    api_error_from_response,
)
from services.metrics import API_ERRORS, API_LATENCY, API_REQUESTS, MetricRegistry, Timer
from services.resilience import CallResult, CircuitBreaker, RetryPolicy, RetryStrategy
from services.state_store import KeyValueStore, MemoryKeyValueStore
from services.telemetry import ResiliencePolicy, Telemetry

from .endpoints import EndpointRegistry, Environment, HttpMethod, Operation

logger = logging.getLogger(__name__)

CLIENT_VERSION = "0.1.0"
MAX_TIMEOUT_SECONDS = 300.0


class ResilientClient:
    """Run Verisoul operations through a circuit breaker and retry loop.

    ``call`` never raises for API failures: it returns a :class:`CallResult`
    carrying either the decoded JSON object or a typed
    :class:`~services.errors.VerisoulError`. ``request`` unwraps that result.
    """

    user_agent = f"verisoul-risk-python/{CLIENT_VERSION}"

    def __init__(
        self,
        api_key: str,
        environment: Environment | str = Environment.SANDBOX,
        *,
        policy: Optional[ResiliencePolicy] = None,
        store: Optional[KeyValueStore] = None,
        registry: Optional[EndpointRegistry] = None,
        http_client: Optional[httpx.Client] = None,
        transport: Optional[httpx.BaseTransport] = None,
        metrics: Optional[MetricRegistry] = None,
        telemetry: Optional[Telemetry] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.time,
        service_name: Optional[str] = None,
    ) -> None:
        self.policy = policy or ResiliencePolicy()
        _validate_constructor_params(api_key, self.policy)
        self._api_key = api_key
        self.environment = Environment(environment)
        self.registry = registry or EndpointRegistry()
        self.metrics = metrics or MetricRegistry()
        self.telemetry = telemetry or Telemetry(policy=self.policy)
        self.service_name = service_name or f"verisoul:{self.environment.value}"
        self._sleep = sleep
        self._retry_policy = RetryPolicy(
            max_attempts=self.policy.max_attempts,
            base_delay=self.policy.retry_delay,
            backoff_factor=self.policy.backoff_factor,
            max_delay=self.policy.max_retry_delay,
        )
        self.breaker = CircuitBreaker(
            self.service_name,
            store or MemoryKeyValueStore(clock=clock),
            failure_threshold=self.policy.circuit_failure_threshold,
            recovery_time=self.policy.circuit_recovery_s,
            timeout_seconds=self.policy.breaker_timeout,
            failure_ttl=self.policy.circuit_failure_ttl_s,
            clock=clock,
            metrics=self.metrics,
            telemetry=self.telemetry,
        )
        self._owns_http_client = http_client is None
        self._http = http_client or httpx.Client(
            base_url=self.environment.base_url,
            timeout=httpx.Timeout(self.policy.request_timeout, connect=self.policy.connect_timeout),
            transport=transport,
        )

    @classmethod
    def create(cls, api_key: str, environment: Environment | str = Environment.SANDBOX, **kwargs: Any):
        return cls(api_key, environment, **kwargs)

    @property
    def base_url(self) -> str:
        return self.environment.base_url

    def close(self) -> None:
        if self._owns_http_client:
            self._http.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # -- public API ----------------------------------------------------------

    def call(
        self,
        operation: Operation | str,
        path_params: Optional[Mapping[str, Any]] = None,
        body: Optional[Mapping[str, Any]] = None,
    ) -> CallResult:
        request_id = _new_request_id()
        op_name = getattr(operation, "value", str(operation))
        try:
            descriptor = self.registry.resolve(operation)
            path = self.registry.build_path(descriptor, path_params)
        except (MissingParameterError, UnknownOperationError) as exc:
            logger.error(
                "Verisoul request rejected before sending",
                extra={"request_id": request_id, "operation": op_name, "error": exc.message},
            )
            self.metrics.inc(API_ERRORS, labels={"operation": op_name, "kind": exc.kind})
            return CallResult.failure(exc, attempts=0)

        method = self.registry.method(descriptor)
        query = self.registry.query_params(descriptor, path_params)
        headers = self._headers(request_id)
        logger.debug(
            "Verisoul request started",
            extra={"request_id": request_id, "operation": op_name, "method": method.value, "path": path},
        )

        retry = RetryStrategy(self._retry_policy, sleep=self._sleep, metrics=self.metrics, name=op_name)
        with Timer(self.metrics, API_LATENCY, labels={"operation": op_name}) as timer:
            result = self.breaker.call(
                lambda: retry.execute(lambda: self._attempt(method, path, query, body, headers, request_id))
            )
            timer.label("outcome", "success" if result.success else result.error.kind)

        self._record(result, op_name, method, path, request_id, timer.elapsed)
        return result

    def request(
        self,
        operation: Operation | str,
        path_params: Optional[Mapping[str, Any]] = None,
        body: Optional[Mapping[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Like :meth:`call` but raise the typed error on failure."""

        return self.call(operation, path_params, body).unwrap()

    # -- internals -----------------------------------------------------------

    def _headers(self, request_id: str) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "x-api-key": self._api_key,
            "User-Agent": self.user_agent,
            "X-Client-Version": CLIENT_VERSION,
            "X-Request-ID": request_id,
        }

    def _attempt(
        self,
        method: HttpMethod,
        path: str,
        query: Mapping[str, str],
        body: Optional[Mapping[str, Any]],
        headers: Mapping[str, str],
        request_id: str,
    ) -> CallResult:
        params: Dict[str, Any] = dict(query)
        kwargs: Dict[str, Any] = {"headers": dict(headers)}
        if method is HttpMethod.GET:
            params.update({key: value for key, value in (body or {}).items() if value is not None})
        else:
            kwargs["json"] = dict(body or {})
        if params:
            kwargs["params"] = params
        try:
            response = self._http.request(method.value, path, **kwargs)
        except httpx.TimeoutException as exc:
            return CallResult.failure(
                RequestTimeoutError(
                    f"Request to {path} timed out: {exc}",
                    context={"endpoint": path, "request_id": request_id},
                )
            )
        except httpx.DecodingError as exc:
            return CallResult.failure(
                InvalidResponseError(f"Could not decode response body: {exc}", endpoint=path)
            )
        except httpx.RequestError as exc:
            return CallResult.failure(
                VerisoulConnectionError(
                    f"Network error calling {path}: {exc}",
                    context={"endpoint": path, "request_id": request_id},
                )
            )
        return self._classify(response, path, request_id)

    def _classify(self, response: httpx.Response, path: str, request_id: str) -> CallResult:
        status = response.status_code
        if not 200 <= status < 300:
            body = _json_object_or_none(response) or {}
            retry_after = _parse_retry_after(response.headers.get("Retry-After") or body.get("retry_after"))
            return CallResult.failure(
                api_error_from_response(
                    status, body, endpoint=path, request_id=request_id, retry_after=retry_after
                )
            )

        content_type = response.headers.get("content-type", "")
        if "application/json" not in content_type.lower():
            return CallResult.failure(
                InvalidResponseError(
                    f"Expected JSON response, got: {content_type or 'no content type'}",
                    endpoint=path,
                    body=response.text,
                )
            )
        try:
            data = response.json()
        except ValueError as exc:
            return CallResult.failure(
                InvalidResponseError(f"Invalid JSON response: {exc}", endpoint=path, body=response.text)
            )
        if not isinstance(data, dict):
            return CallResult.failure(InvalidResponseError("Response is not a JSON object", endpoint=path))

        error = _business_logic_error(data, path, request_id)
        if error is not None:
            return CallResult.failure(error)
        return CallResult.ok(data)

    def _record(
        self,
        result: CallResult,
        op_name: str,
        method: HttpMethod,
        path: str,
        request_id: str,
        elapsed: float,
    ) -> None:
        duration_ms = round(elapsed * 1000, 2)
        details = {
            "request_id": request_id,
            "operation": op_name,
            "method": method.value,
            "path": path,
            "duration_ms": duration_ms,
            "attempts": result.attempts,
        }
        self.telemetry.record_metric(f"{self.service_name}.{op_name}.latency_ms", duration_ms)
        if result.success:
            self.metrics.inc(API_REQUESTS, labels={"operation": op_name, "outcome": "success"})
            self.telemetry.mark_service_healthy(self.service_name)
            logger.info("Verisoul request completed", extra=details)
            return

        error = result.error
        assert error is not None  # nosec - failures always carry an error
        self.metrics.inc(API_REQUESTS, labels={"operation": op_name, "outcome": "failure"})
        self.metrics.inc(API_ERRORS, labels={"operation": op_name, "kind": error.kind})
        self.telemetry.mark_service_degraded(self.service_name, error.kind)
        details.update({"error": error.message, "error_kind": error.kind, "status_code": error.status_code})
        log_level = logging.WARNING if not result.attempted else logging.ERROR
        logger.log(log_level, "Verisoul request failed", extra=details)


def _validate_constructor_params(api_key: str, policy: ResiliencePolicy) -> None:
    if not api_key:
        raise ConfigurationError("API key is required")
    if policy.request_timeout <= 0 or policy.request_timeout > MAX_TIMEOUT_SECONDS:
        raise ConfigurationError(f"Timeout must be greater than 0 and at most {MAX_TIMEOUT_SECONDS:g} seconds")
    if policy.connect_timeout <= 0 or policy.connect_timeout > policy.request_timeout:
        raise ConfigurationError("Connect timeout must be positive and <= timeout")


def _new_request_id() -> str:
    return f"req_{uuid.uuid4().hex}"


def _json_object_or_none(response: httpx.Response) -> Optional[Dict[str, Any]]:
    try:
        data = response.json()
    except ValueError:
        return None
    return data if isinstance(data, dict) else None


def _parse_retry_after(value: Any) -> Optional[float]:
    if value is None:
        return None
    try:
        seconds = float(value)
    except (TypeError, ValueError):
        return None
    return seconds if seconds >= 0 else None


def _business_logic_error(data: Mapping[str, Any], path: str, request_id: str) -> Optional[VerisoulError]:
    """Detect failures reported inside a 2xx response body."""

    message: Optional[str] = None
    if data.get("error") is not None:
        error = data["error"]
        message = f"Business logic error: {error if isinstance(error, str) else 'Unknown error'}"
    elif data.get("success") is False:
        message = f"Operation failed: {data.get('message') or 'Operation failed'}"
    elif data.get("status") == "error":
        detail = data.get("message") or data.get("error_message") or "Unknown error"
        message = f"API returned error status: {detail}"
    if message is None:
        return None
    return BusinessLogicError(message, 200, response=data, endpoint=path, request_id=request_id)


__all__ = ["CLIENT_VERSION", "ResilientClient"]
