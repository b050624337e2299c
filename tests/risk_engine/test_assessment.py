import logging

import pytest

from risk_engine import (
    AssessmentOutcome,
    AssessmentRules,
    Decision,
    RiskAssessor,
    RiskLevel,
    RiskSignalCollection,
)


def _signals(*scores: float) -> RiskSignalCollection:
    return RiskSignalCollection.from_raw_scores(
        [{"name": f"signal_{index}", "score": score} for index, score in enumerate(scores)]
    )


def test_real_low_risk_is_approved():
    assessment = RiskAssessor().assess("Real", 0.1, _signals(0.2))

    assert assessment.outcome is AssessmentOutcome.APPROVE
    assert assessment.risk_level is RiskLevel.LOW
    assert assessment.manual_review is False


@pytest.mark.parametrize(
    "decision, score, flags",
    [
        (Decision.FAKE, 0.1, ()),
        (Decision.REAL, 0.8, ()),
        (Decision.REAL, 0.1, ("known_fraud",)),
    ],
)
def test_reject_conditions(decision, score, flags):
    assessment = RiskAssessor().assess(decision, score, risk_flags=flags)

    assert assessment.outcome is AssessmentOutcome.REJECT


def test_suspicious_or_mid_band_requires_review():
    assessor = RiskAssessor()

    assert assessor.assess("Suspicious", 0.1).outcome is AssessmentOutcome.REVIEW
    band = assessor.assess("Real", 0.5)
    assert band.outcome is AssessmentOutcome.REVIEW
    assert band.manual_review is True
    assert "manual review band" in band.rationale


def test_high_risk_signals_force_review():
    assessment = RiskAssessor().assess(Decision.REAL, 0.1, _signals(0.95, 0.6))

    assert assessment.outcome is AssessmentOutcome.REVIEW
    assert assessment.flagged_signals == ("signal_0", "signal_1")


def test_unknown_verdict_is_inconclusive():
    assessment = RiskAssessor().assess("something-new", 0.35)

    assert assessment.decision is Decision.UNKNOWN
    assert assessment.outcome is AssessmentOutcome.REVIEW


def test_auto_actions_follow_rules():
    rules = AssessmentRules(approve_low_risk=False, suspend_high_risk=True)
    assessor = RiskAssessor(rules)

    assert assessor.assess("Real", 0.1).outcome is AssessmentOutcome.REVIEW
    assert assessor.assess("Fake", 0.9).suspend is True


def test_payload_is_json_friendly(caplog):
    caplog.set_level(logging.INFO, logger="risk_engine.assessment")

    payload = RiskAssessor().assess("Fake", 0.95, risk_flags=["face_mismatch"]).to_payload()

    assert payload["decision"] == "Fake"
    assert payload["outcome"] == "reject"
    assert payload["risk_level"] == "critical"
    assert payload["risk_flags"] == ["face_mismatch"]
    assert "Blocking risk flags" in payload["rationale"]
    assert any(record.levelno == logging.ERROR for record in caplog.records)


def test_decision_helpers_match_verification_bands():
    assessor = RiskAssessor()

    assert assessor.is_successful(Decision.REAL, 0.3)
    assert not assessor.is_successful(Decision.REAL, 0.3, ["id_expired"])
    assert assessor.should_reject(Decision.SUSPICIOUS, 0.8)
    assert assessor.requires_manual_review(Decision.REAL, 0.4)
    assert not assessor.requires_manual_review(Decision.REAL, 0.8)
