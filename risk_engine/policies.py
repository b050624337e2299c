"""Access policy definitions and evaluation helpers."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, MutableMapping

from .scores import RiskLevel
from .signals import RiskSignalCollection, SignalScope


@dataclass(frozen=True)
class RiskViolation:
    """A structured policy violation result."""

    policy: str
    message: str
    severity: str = "warning"
    subject: str | None = None
    data: Mapping[str, Any] | None = None

    def as_dict(self) -> MutableMapping[str, Any]:
        payload: MutableMapping[str, Any] = {
            "policy": self.policy,
            "message": self.message,
            "severity": self.severity,
        }
        if self.subject is not None:
            payload["subject"] = self.subject
        if self.data is not None:
            payload["data"] = dict(self.data)
        return payload


@dataclass
class RiskPolicy:
    """Configuration for an access policy rule.

    ``threshold`` is a score for the score and signal based rules. For
    ``max_risk_level`` the ceiling is given by ``level`` instead.
    """

    type: str
    threshold: float = 0.0
    name: str | None = None
    severity: str = "warning"
    scope: str | None = None
    level: str | None = None
    description: str | None = None
    extra: MutableMapping[str, Any] = field(default_factory=dict)

    def evaluate(self, snapshot: Mapping[str, Any]) -> list[RiskViolation]:
        """Evaluate the policy against a risk profile snapshot."""

        evaluators = {
            "max_risk_level": _evaluate_max_risk_level,
            "max_risk_score": _evaluate_max_risk_score,
            "weighted_score": _evaluate_weighted_score,
            "flagged_signals": _evaluate_flagged_signals,
            "high_risk_signals": _evaluate_high_risk_signals,
        }
        evaluator = evaluators.get(self.type)
        if evaluator is None:
            return []
        return evaluator(self, snapshot)


def evaluate_policies(
    policies: Iterable[RiskPolicy], snapshot: Mapping[str, Any]
) -> list[RiskViolation]:
    """Evaluate ``policies`` against ``snapshot`` and collect violations."""

    violations: list[RiskViolation] = []
    for policy in policies:
        violations.extend(policy.evaluate(snapshot))
    return violations


def _signals(policy: RiskPolicy, snapshot: Mapping[str, Any]) -> RiskSignalCollection:
    raw = snapshot.get("risk_signals") if isinstance(snapshot, Mapping) else None
    if isinstance(raw, RiskSignalCollection):
        collection = raw
    else:
        collection = RiskSignalCollection.from_raw_scores(raw or [])
    if policy.scope:
        collection = collection.by_scope(SignalScope(policy.scope))
    return collection


def _score(snapshot: Mapping[str, Any]) -> float:
    try:
        return float(snapshot.get("risk_score") or 0.0)
    except (TypeError, ValueError):
        return 0.0


def _evaluate_max_risk_level(policy: RiskPolicy, snapshot: Mapping[str, Any]) -> list[RiskViolation]:
    ceiling = RiskLevel(policy.level or RiskLevel.MEDIUM)
    try:
        level = RiskLevel(snapshot.get("risk_level") or RiskLevel.UNKNOWN)
    except ValueError:
        level = RiskLevel.UNKNOWN
    if not level.exceeds(ceiling):
        return []
    name = policy.name or "max_risk_level"
    message = f"Risk level {level.value} exceeds allowed {ceiling.value}"
    return [
        RiskViolation(
            name,
            message,
            severity=policy.severity,
            subject=snapshot.get("user_id"),
            data={"risk_level": level.value, "max_allowed_level": ceiling.value},
        )
    ]


def _evaluate_max_risk_score(policy: RiskPolicy, snapshot: Mapping[str, Any]) -> list[RiskViolation]:
    score = _score(snapshot)
    if score <= policy.threshold:
        return []
    name = policy.name or "max_risk_score"
    message = f"Risk score {score:.2f} exceeds limit {policy.threshold:.2f}"
    return [
        RiskViolation(
            name, message, severity=policy.severity, subject=snapshot.get("user_id"), data={"risk_score": score}
        )
    ]


def _evaluate_weighted_score(policy: RiskPolicy, snapshot: Mapping[str, Any]) -> list[RiskViolation]:
    weights = policy.extra.get("weights") if isinstance(policy.extra.get("weights"), Mapping) else None
    weighted = _signals(policy, snapshot).weighted_risk_score(weights).value
    if weighted <= policy.threshold:
        return []
    name = policy.name or "weighted_score"
    message = f"Weighted signal score {weighted:.2f} exceeds limit {policy.threshold:.2f}"
    return [
        RiskViolation(
            name,
            message,
            severity=policy.severity,
            subject=policy.scope or snapshot.get("user_id"),
            data={"weighted_score": weighted},
        )
    ]


def _evaluate_flagged_signals(policy: RiskPolicy, snapshot: Mapping[str, Any]) -> list[RiskViolation]:
    signal_threshold = float(policy.extra.get("signal_threshold", 0.5))
    flagged = _signals(policy, snapshot).flagged(signal_threshold)
    if len(flagged) <= policy.threshold:
        return []
    name = policy.name or "flagged_signals"
    message = f"{len(flagged)} flagged signals exceed allowed {int(policy.threshold)}"
    return [
        RiskViolation(
            name,
            message,
            severity=policy.severity,
            subject=policy.scope or snapshot.get("user_id"),
            data={"signals": flagged.names()},
        )
    ]


def _evaluate_high_risk_signals(policy: RiskPolicy, snapshot: Mapping[str, Any]) -> list[RiskViolation]:
    signal_threshold = float(policy.extra.get("signal_threshold", 0.8))
    high_risk = _signals(policy, snapshot).high_risk(signal_threshold)
    violations: list[RiskViolation] = []
    for signal in high_risk:
        name = policy.name or "high_risk_signals"
        message = f"{signal.display_name} score {signal.value:.2f} exceeds {signal_threshold:.2f}"
        violations.append(
            RiskViolation(
                name,
                message,
                severity=policy.severity,
                subject=signal.name,
                data={"score": signal.value, "scope": signal.scope.value},
            )
        )
    return violations
