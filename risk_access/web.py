"""FastAPI integration: the risk level gate, error handlers and health routes."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.responses import JSONResponse

from risk_engine import RiskLevel
from services.errors import RateLimitError, VerisoulError
from services.telemetry import Telemetry

from .profiles import RiskProfile

logger = logging.getLogger(__name__)

UserResolver = Callable[[Request], Optional[str]]
ProfileLoader = Callable[[str], Optional[RiskProfile]]


class RiskLevelGate:
    """Dependency that admits users whose assessed risk is at most ``max_level``.

    ``resolver`` returns the authenticated user id for a request (``None``
    when anonymous) and ``profiles`` loads that user's stored profile.
    The admitted :class:`RiskProfile` is returned to the route.
    """

    def __init__(
        self,
        max_level: RiskLevel | str = RiskLevel.MEDIUM,
        *,
        resolver: UserResolver,
        profiles: ProfileLoader,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.max_level = RiskLevel(max_level)
        self._resolver = resolver
        self._profiles = profiles
        self._clock = clock

    def __call__(self, request: Request) -> RiskProfile:
        user_id = self._resolver(request)
        if not user_id:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail={"message": "Authentication required", "error": "unauthenticated"},
            )

        profile = self._profiles(user_id)
        now = self._clock() if self._clock else None
        if profile is None or profile.needs_assessment(now):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail={"message": "Account verification is required", "error": "verification_required"},
            )

        if profile.exceeds(self.max_level):
            logger.warning(
                "High risk user access denied",
                extra={
                    "user_id": user_id,
                    "user_risk_level": profile.risk_level.value,
                    "user_risk_score": profile.risk_score.value,
                    "max_allowed_level": self.max_level.value,
                    "risk_flags": list(profile.risk_flags),
                    "path": request.url.path,
                },
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail={
                    "message": (
                        f"Access denied. Your account risk level ({profile.risk_level.value}) exceeds "
                        f"the maximum allowed ({self.max_level.value}) for this resource."
                    ),
                    "error": "high_risk_user",
                    "user_risk_level": profile.risk_level.value,
                    "user_risk_score": profile.risk_score.value,
                    "max_allowed_level": self.max_level.value,
                    "risk_flags": list(profile.risk_flags),
                },
            )
        return profile


_UNPROCESSABLE = 422

# Upstream failures are reported as gateway errors; caller mistakes keep their status.
_STATUS_BY_KIND: Dict[str, int] = {
    "bad_request": status.HTTP_400_BAD_REQUEST,
    "not_found": status.HTTP_404_NOT_FOUND,
    "validation_failed": _UNPROCESSABLE,
    "business_logic_error": _UNPROCESSABLE,
    "missing_parameter": _UNPROCESSABLE,
    "rate_limited": status.HTTP_429_TOO_MANY_REQUESTS,
    "circuit_open": status.HTTP_503_SERVICE_UNAVAILABLE,
    "timeout": status.HTTP_504_GATEWAY_TIMEOUT,
    "configuration_error": status.HTTP_500_INTERNAL_SERVER_ERROR,
    "unknown_operation": status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def status_for_error(error: VerisoulError) -> int:
    return _STATUS_BY_KIND.get(error.kind, status.HTTP_502_BAD_GATEWAY)


def install_error_handlers(app: FastAPI) -> None:
    """Render :class:`VerisoulError` raised by routes as JSON responses."""

    @app.exception_handler(VerisoulError)
    async def _handle_verisoul_error(request: Request, exc: VerisoulError) -> JSONResponse:
        status_code = status_for_error(exc)
        log_level = logging.ERROR if status_code >= 500 else logging.WARNING
        logger.log(
            log_level,
            "Verisoul error while handling request",
            extra={"path": request.url.path, "error_kind": exc.kind, "error": exc.message},
        )
        headers: Dict[str, str] = {}
        if isinstance(exc, RateLimitError) and exc.retry_after is not None:
            headers["Retry-After"] = str(int(exc.retry_after))
        retry_in = getattr(exc, "retry_in", None)
        if retry_in is not None:
            headers["Retry-After"] = str(max(1, int(retry_in)))
        payload: Dict[str, Any] = {"message": exc.message, "error": exc.kind, "retryable": exc.retryable}
        return JSONResponse(payload, status_code=status_code, headers=headers or None)


def install_health_routes(app: FastAPI, telemetry: Telemetry, *, prefix: str = "/verisoul") -> None:
    @app.get(f"{prefix}/health", response_class=JSONResponse)
    async def verisoul_health() -> JSONResponse:
        return JSONResponse(telemetry.health_snapshot())

    @app.get(f"{prefix}/ready", response_class=JSONResponse)
    async def verisoul_ready() -> JSONResponse:
        snapshot = telemetry.readiness_snapshot()
        status_code = status.HTTP_200_OK if snapshot["ready"] else status.HTTP_503_SERVICE_UNAVAILABLE
        return JSONResponse(snapshot, status_code=status_code)


__all__ = ["RiskLevelGate", "install_error_handlers", "install_health_routes", "status_for_error"]
