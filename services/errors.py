"""Error taxonomy for outbound calls to the Verisoul API.

Errors are ordinary exceptions so the typed clients can raise them, but the
retry loop and circuit breaker pass them around as values inside
:class:`services.resilience.CallResult` and only consult ``retryable``.
"""

from __future__ import annotations

from typing import Any, Dict, Mapping, Optional, Type


class VerisoulError(Exception):
    """Base class for every failure surfaced by the Verisoul client."""

    kind = "verisoul_error"
    retryable = False
    status_code: Optional[int] = None

    def __init__(
        self,
        message: str,
        *,
        context: Optional[Mapping[str, Any]] = None,
        retryable: Optional[bool] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.context: Dict[str, Any] = dict(context or {})
        if retryable is not None:
            self.retryable = retryable

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "error": self.kind,
            "message": self.message,
            "retryable": self.retryable,
        }
        if self.status_code is not None:
            payload["status_code"] = self.status_code
        if self.context:
            payload["context"] = dict(self.context)
        return payload


class ConfigurationError(VerisoulError, ValueError):
    kind = "configuration_error"


class VerisoulConnectionError(VerisoulError):
    """DNS, TCP or TLS failure before any response was received."""

    kind = "connection_error"
    retryable = True


class RequestTimeoutError(VerisoulConnectionError):
    kind = "timeout"
    status_code = 504


class ApiError(VerisoulError):
    """The remote API answered with an error."""

    kind = "api_error"

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        *,
        response: Optional[Mapping[str, Any]] = None,
        endpoint: Optional[str] = None,
        request_id: Optional[str] = None,
        context: Optional[Mapping[str, Any]] = None,
        retryable: Optional[bool] = None,
    ) -> None:
        merged = dict(context or {})
        if endpoint:
            merged.setdefault("endpoint", endpoint)
        if request_id:
            merged.setdefault("request_id", request_id)
        super().__init__(message, context=merged, retryable=retryable)
        if status_code is not None:
            self.status_code = status_code
        self.response: Dict[str, Any] = dict(response or {})
        self.endpoint = endpoint
        self.request_id = request_id


class BadRequestError(ApiError):
    kind = "bad_request"
    status_code = 400


class AuthenticationError(ApiError):
    kind = "authentication_failed"
    status_code = 401


class NotFoundError(ApiError):
    kind = "not_found"
    status_code = 404


class ValidationError(ApiError):
    kind = "validation_failed"
    status_code = 422

    def __init__(self, message: str, status_code: Optional[int] = None, **kwargs: Any) -> None:
        super().__init__(message, status_code, **kwargs)
        self.field = str(self.response.get("field") or "unknown")
        self.value = self.response.get("value")
        self.context.setdefault("field", self.field)
        self.context.setdefault("value", self.value)


class RateLimitError(ApiError):
    kind = "rate_limited"
    status_code = 429
    retryable = True

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        *,
        retry_after: Optional[float] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, status_code, **kwargs)
        self.retry_after = retry_after
        if retry_after is not None:
            self.context.setdefault("retry_after", retry_after)


class ServerError(ApiError):
    kind = "server_error"
    status_code = 500
    retryable = True


class BusinessLogicError(ApiError):
    """A 2xx response whose body reports a failure."""

    kind = "business_logic_error"
    status_code = 200


class CircuitOpenError(VerisoulError):
    """The breaker rejected the call; no request was sent."""

    kind = "circuit_open"
    status_code = 503

    def __init__(self, service: str, *, retry_in: Optional[float] = None) -> None:
        message = f"Circuit breaker is open for service {service}"
        context: Dict[str, Any] = {"service": service}
        if retry_in is not None:
            context["retry_in"] = round(retry_in, 3)
        super().__init__(message, context=context)
        self.service = service
        self.retry_in = retry_in


class InvalidResponseError(VerisoulError):
    kind = "invalid_response"

    def __init__(self, message: str, *, endpoint: Optional[str] = None, body: Optional[str] = None) -> None:
        context: Dict[str, Any] = {}
        if endpoint:
            context["endpoint"] = endpoint
        if body:
            context["body"] = body[:500]
        super().__init__(message, context=context)
        self.endpoint = endpoint


class MissingParameterError(VerisoulError):
    kind = "missing_parameter"

    def __init__(self, parameter: str, *, template: Optional[str] = None) -> None:
        context: Dict[str, Any] = {"parameter": parameter}
        if template:
            context["template"] = template
        super().__init__(f"Missing required parameter: {parameter}", context=context)
        self.parameter = parameter


class UnknownOperationError(VerisoulError, LookupError):
    kind = "unknown_operation"


_STATUS_ERRORS: Dict[int, Type[ApiError]] = {
    400: BadRequestError,
    401: AuthenticationError,
    404: NotFoundError,
    422: ValidationError,
    429: RateLimitError,
}

_DEFAULT_MESSAGES: Dict[int, str] = {
    400: "Bad request",
    401: "Authentication failed",
    404: "Resource not found",
    422: "Validation failed",
    429: "Rate limit exceeded",
}


def api_error_from_response(
    status_code: int,
    response: Optional[Mapping[str, Any]] = None,
    *,
    endpoint: Optional[str] = None,
    request_id: Optional[str] = None,
    retry_after: Optional[float] = None,
) -> ApiError:
    """Map a non-2xx response onto the error taxonomy."""

    body = dict(response or {})
    if request_id:
        body["request_id"] = request_id
    message = body.get("message") or body.get("error") or _DEFAULT_MESSAGES.get(status_code)
    if not message:
        message = f"Server error (HTTP {status_code})" if status_code >= 500 else f"HTTP {status_code}"
    error_cls = _STATUS_ERRORS.get(status_code)
    if error_cls is None:
        error_cls = ServerError if status_code >= 500 else ApiError
    kwargs: Dict[str, Any] = {"response": body, "endpoint": endpoint, "request_id": request_id}
    if error_cls is RateLimitError:
        kwargs["retry_after"] = retry_after
    return error_cls(str(message), status_code, **kwargs)


__all__ = [
    "ApiError",
    "AuthenticationError",
    "BadRequestError",
    "BusinessLogicError",
    "CircuitOpenError",
    "ConfigurationError",
    "InvalidResponseError",
    "MissingParameterError",
    "NotFoundError",
    "RateLimitError",
    "RequestTimeoutError",
    "ServerError",
    "UnknownOperationError",
    "ValidationError",
    "VerisoulConnectionError",
    "VerisoulError",
    "api_error_from_response",
]
