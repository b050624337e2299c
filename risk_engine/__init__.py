"""Risk scoring, signal aggregation and decisioning."""

from .assessment import AssessmentOutcome, AssessmentRules, Decision, RiskAssessment, RiskAssessor
from .policies import RiskPolicy, RiskViolation, evaluate_policies
from .scores import DEFAULT_THRESHOLDS, RiskLevel, RiskScore, RiskThresholds
from .signals import DEFAULT_SCOPE_WEIGHTS, RiskSignal, RiskSignalCollection, SignalScope

__all__ = [
    "AssessmentOutcome",
    "AssessmentRules",
    "DEFAULT_SCOPE_WEIGHTS",
    "DEFAULT_THRESHOLDS",
    "Decision",
    "RiskAssessment",
    "RiskAssessor",
    "RiskLevel",
    "RiskPolicy",
    "RiskScore",
    "RiskSignal",
    "RiskSignalCollection",
    "RiskThresholds",
    "RiskViolation",
    "SignalScope",
    "evaluate_policies",
]
