from datetime import datetime, timedelta, timezone

from risk_access.profiles import RiskProfile
from risk_engine import Decision, RiskAssessor, RiskLevel, RiskSignalCollection, SignalScope

NOW = datetime(2025, 7, 3, 12, 0, tzinfo=timezone.utc)


def _signals() -> RiskSignalCollection:
    return RiskSignalCollection.from_raw_scores(
        [
            {"name": "proxy", "score": 0.9, "scope": "device_network"},
            {"name": "id_face_match_score", "score": 0.35, "scope": "document"},
        ]
    )


def test_new_profile_needs_assessment():
    profile = RiskProfile(user_id="user-1")

    assert not profile.is_assessed
    assert profile.needs_assessment(NOW)
    assert profile.risk_level is RiskLevel.UNKNOWN
    assert profile.days_until_expiration(NOW) is None


def test_apply_assessment_sets_expiry():
    assessment = RiskAssessor().assess(Decision.REAL, 0.1)

    profile = RiskProfile(user_id="user-1").apply_assessment(assessment, _signals(), expiry_days=30, now=NOW)

    assert profile.is_assessed
    assert profile.decision is Decision.REAL
    assert profile.risk_level is RiskLevel.LOW
    assert profile.expires_at == NOW + timedelta(days=30)
    assert profile.days_until_expiration(NOW) == 30
    assert not profile.needs_assessment(NOW)
    assert profile.is_about_to_expire(now=NOW + timedelta(days=25))
    assert profile.is_expired(NOW + timedelta(days=30))
    assert profile.needs_assessment(NOW + timedelta(days=31))
    assert profile.days_until_expiration(NOW + timedelta(days=40)) == 0


def test_profile_level_ceiling():
    assessment = RiskAssessor().assess(Decision.SUSPICIOUS, 0.85)
    profile = RiskProfile(user_id="user-2").apply_assessment(assessment, now=NOW)

    assert profile.risk_level is RiskLevel.HIGH
    assert profile.exceeds("medium")
    assert not profile.exceeds(RiskLevel.HIGH)


def test_payload_round_trip_is_exact():
    assessment = RiskAssessor().assess(Decision.SUSPICIOUS, 0.55, _signals(), ["repeat_face"])
    profile = RiskProfile(user_id="user-3").apply_assessment(assessment, _signals().updated("proxy", 0.0), now=NOW)

    payload = profile.to_payload()
    restored = RiskProfile.from_payload(payload)

    assert restored == profile
    assert payload["signals"][0] == {"name": "proxy", "score": 0.0, "scope": "device_network"}
    assert restored.signals[1].scope is SignalScope.DOCUMENT
    assert payload["assessed_at"] == "2025-07-03T12:00:00+00:00"
