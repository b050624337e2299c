"""Pure decisioning over remote verdicts, scores and signals."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, Optional, Sequence

from .scores import DEFAULT_THRESHOLDS, RiskLevel, RiskScore, RiskThresholds
from .signals import RiskSignalCollection

logger = logging.getLogger(__name__)


class Decision(str, Enum):
    """Verdict returned by the remote verification service."""

    FAKE = "Fake"
    SUSPICIOUS = "Suspicious"
    REAL = "Real"
    UNKNOWN = "Unknown"

    @classmethod
    def _missing_(cls, value: object) -> Optional["Decision"]:
        if isinstance(value, str):
            for member in cls:
                if member.value.lower() == value.strip().lower():
                    return member
            return cls.UNKNOWN
        return None


class AssessmentOutcome(str, Enum):
    APPROVE = "approve"
    REVIEW = "review"
    REJECT = "reject"


DEFAULT_BLOCKING_FLAGS = frozenset(
    {
        "known_fraud",
        "id_digital_spoof",
        "id_expired",
        "face_mismatch",
        "repeat_face",
    }
)


@dataclass
class AssessmentRules:
    """Score bands and automatic actions applied by :class:`RiskAssessor`."""

    approve_max_score: float = 0.3
    review_min_score: float = 0.4
    reject_min_score: float = 0.8
    high_risk_signal_threshold: float = 0.8
    blocking_flags: FrozenSet[str] = field(default_factory=lambda: DEFAULT_BLOCKING_FLAGS)
    thresholds: RiskThresholds = field(default_factory=lambda: DEFAULT_THRESHOLDS)
    approve_low_risk: bool = True
    review_medium_risk: bool = True
    suspend_high_risk: bool = False


@dataclass
class RiskAssessment:
    decision: Decision
    risk_score: float
    risk_level: RiskLevel
    weighted_score: float
    outcome: AssessmentOutcome
    rationale: str
    flagged_signals: Sequence[str] = ()
    risk_flags: Sequence[str] = ()
    suspend: bool = False
    manual_review: bool = False

    def to_payload(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["decision"] = self.decision.value
        payload["risk_level"] = self.risk_level.value
        payload["outcome"] = self.outcome.value
        payload["flagged_signals"] = list(self.flagged_signals)
        payload["risk_flags"] = list(self.risk_flags)
        return payload


class RiskAssessor:
    """Turn a verdict, score and signal collection into an access outcome."""

    def __init__(self, rules: Optional[AssessmentRules] = None) -> None:
        self._rules = rules or AssessmentRules()

    @property
    def rules(self) -> AssessmentRules:
        return self._rules

    def is_successful(self, decision: Decision, risk_score: float, risk_flags: Iterable[str] = ()) -> bool:
        return (
            Decision(decision) is Decision.REAL
            and risk_score <= self._rules.approve_max_score
            and not self._blocking(risk_flags)
        )

    def should_reject(self, decision: Decision, risk_score: float, risk_flags: Iterable[str] = ()) -> bool:
        return (
            Decision(decision) is Decision.FAKE
            or risk_score >= self._rules.reject_min_score
            or bool(self._blocking(risk_flags))
        )

    def requires_manual_review(self, decision: Decision, risk_score: float) -> bool:
        return Decision(decision) is Decision.SUSPICIOUS or (
            self._rules.review_min_score <= risk_score < self._rules.reject_min_score
        )

    def assess(
        self,
        decision: Decision | str,
        risk_score: RiskScore | float,
        signals: Optional[RiskSignalCollection] = None,
        risk_flags: Iterable[str] = (),
    ) -> RiskAssessment:
        rules = self._rules
        verdict = Decision(decision)
        score = RiskScore.of(risk_score)
        collection = signals or RiskSignalCollection()
        flags = tuple(risk_flags)
        blocking = self._blocking(flags)
        level = score.level(rules.thresholds)
        high_risk = collection.high_risk(rules.high_risk_signal_threshold)

        if self.should_reject(verdict, score.value, flags):
            outcome = AssessmentOutcome.REJECT
            if blocking:
                rationale = f"Blocking risk flags present: {', '.join(sorted(blocking))}"
            elif verdict is Decision.FAKE:
                rationale = "Remote verdict is Fake"
            else:
                rationale = f"Risk score {score.value:.2f} at or above reject threshold {rules.reject_min_score:.2f}"
        elif self.requires_manual_review(verdict, score.value) or len(high_risk):
            outcome = AssessmentOutcome.REVIEW
            if verdict is Decision.SUSPICIOUS:
                rationale = "Remote verdict is Suspicious"
            elif len(high_risk):
                rationale = f"High risk signals present: {', '.join(high_risk.names())}"
            else:
                rationale = f"Risk score {score.value:.2f} within manual review band"
        elif self.is_successful(verdict, score.value, flags):
            outcome = AssessmentOutcome.APPROVE
            rationale = "Verified with low risk"
        else:
            outcome = AssessmentOutcome.REVIEW
            rationale = f"Inconclusive verdict {verdict.value} with risk score {score.value:.2f}"

        if outcome is AssessmentOutcome.APPROVE and not rules.approve_low_risk:
            outcome = AssessmentOutcome.REVIEW
            rationale = "Automatic approval disabled"
        suspend = outcome is AssessmentOutcome.REJECT and rules.suspend_high_risk
        manual_review = outcome is AssessmentOutcome.REVIEW and rules.review_medium_risk

        log_level = logging.INFO
        if outcome is AssessmentOutcome.REVIEW:
            log_level = logging.WARNING
        elif outcome is AssessmentOutcome.REJECT:
            log_level = logging.ERROR
        logger.log(
            log_level,
            "Evaluated risk assessment",
            extra={
                "decision": verdict.value,
                "outcome": outcome.value,
                "risk_score": score.value,
                "rationale": rationale,
            },
        )
        return RiskAssessment(
            decision=verdict,
            risk_score=score.value,
            risk_level=level,
            weighted_score=collection.weighted_risk_score().value,
            outcome=outcome,
            rationale=rationale,
            flagged_signals=tuple(collection.flagged().names()),
            risk_flags=flags,
            suspend=suspend,
            manual_review=manual_review,
        )

    def _blocking(self, risk_flags: Iterable[str]) -> FrozenSet[str]:
        return frozenset(flag for flag in risk_flags if flag in self._rules.blocking_flags)


__all__ = [
    "AssessmentOutcome",
    "AssessmentRules",
    "Decision",
    "RiskAssessment",
    "RiskAssessor",
]
