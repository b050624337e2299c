"""Settings for the Verisoul integration with environment overrides."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Mapping, MutableMapping, Optional

from risk_engine import AssessmentRules, RiskThresholds
from services.errors import ConfigurationError
from services.state_store import FileKeyValueStore, KeyValueStore
from services.telemetry import ResiliencePolicy
from services.verisoul import Environment, VerisoulApi

logger = logging.getLogger(__name__)


@dataclass
class ApiSettings:
    api_key: Optional[str] = None
    enabled: bool = False
    environment: Environment = Environment.SANDBOX


@dataclass
class RiskSettings:
    """Level bands, automatic actions and how long an assessment stays valid."""

    thresholds: RiskThresholds = field(default_factory=RiskThresholds)
    approve_low_risk: bool = True
    review_medium_risk: bool = True
    suspend_high_risk: bool = False
    profile_expiry_days: int = 30

    def assessment_rules(self) -> AssessmentRules:
        return AssessmentRules(
            thresholds=self.thresholds,
            approve_low_risk=self.approve_low_risk,
            review_medium_risk=self.review_medium_risk,
            suspend_high_risk=self.suspend_high_risk,
        )


@dataclass
class Settings:
    """Single entry point for Verisoul configuration."""

    api: ApiSettings = field(default_factory=ApiSettings)
    resilience: ResiliencePolicy = field(default_factory=ResiliencePolicy)
    risk: RiskSettings = field(default_factory=RiskSettings)
    state_path: Optional[Path] = None

    @classmethod
    def from_mapping(cls, payload: Optional[Mapping[str, Any]], *, base_dir: Optional[Path] = None) -> "Settings":
        """Build settings from a parsed JSON document."""

        payload = _ensure_mapping({} if payload is None else payload, description="Verisoul configuration")
        api_raw = _ensure_mapping(payload.get("api") or {}, description="Verisoul configuration 'api'")
        risk_raw = _ensure_mapping(payload.get("risk") or {}, description="Verisoul configuration 'risk'")

        api = ApiSettings(
            api_key=api_raw.get("api_key") or None,
            enabled=_coerce_bool(api_raw.get("enabled"), False),
            environment=_parse_environment(api_raw.get("environment", Environment.SANDBOX.value)),
        )
        risk = RiskSettings(
            thresholds=RiskThresholds.from_mapping(risk_raw.get("thresholds")),
            approve_low_risk=_coerce_bool(risk_raw.get("approve_low_risk"), True),
            review_medium_risk=_coerce_bool(risk_raw.get("review_medium_risk"), True),
            suspend_high_risk=_coerce_bool(risk_raw.get("suspend_high_risk"), False),
            profile_expiry_days=int(risk_raw.get("profile_expiry_days", 30)),
        )

        state_path: Optional[Path] = None
        if payload.get("state_path"):
            state_path = _resolve_path_relative_to(base_dir or Path.cwd(), payload["state_path"])

        return cls(
            api=api,
            resilience=ResiliencePolicy.from_mapping(payload.get("resilience")),
            risk=risk,
            state_path=state_path,
        )

    @classmethod
    def from_environment(
        cls, *, base: Optional["Settings"] = None, env: Optional[Mapping[str, str]] = None
    ) -> "Settings":
        """Apply ``VERISOUL_*`` overrides on top of ``base``.

        Values that do not parse are ignored and the existing value is kept.
        """

        env = os.environ if env is None else env
        settings = base or cls()

        api_key = env.get("VERISOUL_API_KEY")
        if api_key:
            settings.api.api_key = api_key
        enabled = _env_bool(env.get("VERISOUL_ENABLED"))
        if enabled is not None:
            settings.api.enabled = enabled
        environment = env.get("VERISOUL_ENVIRONMENT")
        if environment:
            try:
                settings.api.environment = Environment(environment.strip().lower())
            except ValueError:
                logger.warning("Ignoring unknown VERISOUL_ENVIRONMENT %r", environment)

        resilience = settings.resilience
        timeout = _env_float(env.get("VERISOUL_TIMEOUT"))
        if timeout is not None:
            resilience.request_timeout = timeout
        connect_timeout = _env_float(env.get("VERISOUL_CONNECT_TIMEOUT"))
        if connect_timeout is not None:
            resilience.connect_timeout = connect_timeout
        retry_attempts = _env_int(env.get("VERISOUL_RETRY_ATTEMPTS"))
        if retry_attempts is not None and retry_attempts > 0:
            resilience.max_attempts = retry_attempts
        retry_delay_ms = _env_float(env.get("VERISOUL_RETRY_DELAY"))
        if retry_delay_ms is not None and retry_delay_ms >= 0:
            resilience.retry_delay = retry_delay_ms / 1000.0
        failure_threshold = _env_int(env.get("VERISOUL_CIRCUIT_FAILURE_THRESHOLD"))
        if failure_threshold is not None and failure_threshold > 0:
            resilience.circuit_failure_threshold = failure_threshold
        recovery = _env_float(env.get("VERISOUL_CIRCUIT_RECOVERY_SECONDS"))
        if recovery is not None and recovery > 0:
            resilience.circuit_recovery_s = recovery

        risk = settings.risk
        bands: Dict[str, float] = {}
        for band in ("low", "medium", "high"):
            value = _env_float(env.get(f"VERISOUL_RISK_THRESHOLD_{band.upper()}"))
            if value is not None:
                bands[band] = value
        if bands:
            current = {item.name: getattr(risk.thresholds, item.name) for item in fields(risk.thresholds)}
            current.update(bands)
            try:
                risk.thresholds = RiskThresholds(**current)
            except ValueError as exc:
                logger.warning("Ignoring VERISOUL_RISK_THRESHOLD_* overrides: %s", exc)
        approve = _env_bool(env.get("VERISOUL_AUTO_APPROVE_LOW_RISK"))
        if approve is not None:
            risk.approve_low_risk = approve
        suspend = _env_bool(env.get("VERISOUL_AUTO_SUSPEND_HIGH_RISK"))
        if suspend is not None:
            risk.suspend_high_risk = suspend
        review = _env_bool(env.get("VERISOUL_MANUAL_REVIEW_MEDIUM_RISK"))
        if review is not None:
            risk.review_medium_risk = review
        expiry_days = _env_int(env.get("VERISOUL_PROFILE_EXPIRY_DAYS"))
        if expiry_days is not None and expiry_days > 0:
            risk.profile_expiry_days = expiry_days

        state_path = env.get("VERISOUL_STATE_PATH")
        if state_path:
            settings.state_path = Path(state_path).expanduser()

        return settings

    def build_store(self) -> Optional[KeyValueStore]:
        if self.state_path is None:
            return None
        return FileKeyValueStore(self.state_path)

    def build_client(self, client_cls: Any = VerisoulApi, **kwargs: Any):
        """Create ``client_cls`` wired with these settings.

        ``client_cls`` may be :class:`VerisoulApi` or any
        :class:`~services.verisoul.ResilientClient` subclass.
        """

        if not self.api.enabled:
            raise ConfigurationError("Verisoul integration is disabled (set VERISOUL_ENABLED=true)")
        if not self.api.api_key:
            raise ConfigurationError("API key is required")
        kwargs.setdefault("policy", self.resilience)
        if "store" not in kwargs:
            kwargs["store"] = self.build_store()
        return client_cls(self.api.api_key, self.api.environment, **kwargs)


def load_settings(path: Path | str, env: Optional[Mapping[str, str]] = None) -> Settings:
    """Load a JSON settings file, then apply environment overrides."""

    resolved = Path(path).expanduser().resolve()
    payload = _load_json(resolved)
    settings = Settings.from_mapping(payload, base_dir=resolved.parent)
    return Settings.from_environment(base=settings, env=env)


def _load_json(path: Path) -> Dict[str, Any]:
    """Return parsed JSON payload from ``path`` with helpful error messages."""

    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise FileNotFoundError(f"Configuration file not found: {path}") from exc
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid JSON in configuration file {path}: {exc}") from exc


def _ensure_mapping(payload: Any, *, description: str) -> MutableMapping[str, Any]:
    if isinstance(payload, MutableMapping):
        return payload
    if isinstance(payload, Mapping):
        return dict(payload)
    raise TypeError(f"{description} must be a JSON object, not {type(payload).__name__}.")


def _resolve_path_relative_to(base: Path, candidate: Any) -> Path:
    path = Path(str(candidate)).expanduser()
    if not path.is_absolute():
        path = base / path
    return path.resolve()


def _parse_environment(value: Any) -> Environment:
    try:
        return Environment(str(value).strip().lower())
    except ValueError as exc:
        raise ValueError(f"Unknown Verisoul environment {value!r}; expected 'sandbox' or 'production'.") from exc


def _coerce_bool(value: Any, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


def _env_float(value: Optional[str]) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _env_int(value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _env_bool(value: Optional[str]) -> Optional[bool]:
    if value is None:
        return None
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


__all__ = ["ApiSettings", "RiskSettings", "Settings", "load_settings"]
