"""Per-user risk profile persisted by the host application."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple

from risk_engine import (
    Decision,
    RiskAssessment,
    RiskLevel,
    RiskScore,
    RiskSignal,
    RiskSignalCollection,
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class RiskProfile:
    """The latest assessment stored for one user.

    A profile with no decision or no ``assessed_at`` has never been assessed
    and reads as :attr:`RiskLevel.UNKNOWN`.
    """

    user_id: str
    decision: Optional[Decision] = None
    risk_level: RiskLevel = RiskLevel.UNKNOWN
    risk_score: RiskScore = field(default_factory=RiskScore.zero)
    signals: RiskSignalCollection = field(default_factory=RiskSignalCollection)
    risk_flags: Tuple[str, ...] = ()
    assessed_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None

    @property
    def is_assessed(self) -> bool:
        return self.decision is not None and self.assessed_at is not None

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.expires_at is None:
            return False
        return self.expires_at <= (now or _utcnow())

    def needs_assessment(self, now: Optional[datetime] = None) -> bool:
        return not self.is_assessed or self.is_expired(now)

    def days_until_expiration(self, now: Optional[datetime] = None) -> Optional[int]:
        if self.expires_at is None:
            return None
        return max(0, (self.expires_at - (now or _utcnow())).days)

    def is_about_to_expire(self, warning_days: int = 7, now: Optional[datetime] = None) -> bool:
        remaining = self.days_until_expiration(now)
        return remaining is not None and remaining <= warning_days

    def exceeds(self, max_level: RiskLevel | str) -> bool:
        return self.risk_level.exceeds(max_level)

    def apply_assessment(
        self,
        assessment: RiskAssessment,
        signals: Optional[RiskSignalCollection] = None,
        *,
        expiry_days: int = 30,
        now: Optional[datetime] = None,
    ) -> "RiskProfile":
        """Return a copy holding ``assessment`` valid for ``expiry_days``."""

        assessed_at = now or _utcnow()
        return replace(
            self,
            decision=assessment.decision,
            risk_level=assessment.risk_level,
            risk_score=RiskScore.of(assessment.risk_score),
            signals=signals if signals is not None else self.signals,
            risk_flags=tuple(assessment.risk_flags),
            assessed_at=assessed_at,
            expires_at=assessed_at + timedelta(days=expiry_days),
        )

    def to_payload(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "decision": self.decision.value if self.decision is not None else None,
            "risk_level": self.risk_level.value,
            "risk_score": self.risk_score.value,
            "signals": self.signals.as_list(),
            "risk_flags": list(self.risk_flags),
            "assessed_at": self.assessed_at.isoformat() if self.assessed_at else None,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
        }

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "RiskProfile":
        decision = payload.get("decision")
        return cls(
            user_id=str(payload["user_id"]),
            decision=Decision(decision) if decision else None,
            risk_level=RiskLevel(payload.get("risk_level") or RiskLevel.UNKNOWN.value),
            risk_score=RiskScore.of(payload.get("risk_score") or 0.0),
            signals=_signals_from_payload(payload.get("signals") or ()),
            risk_flags=tuple(str(flag) for flag in payload.get("risk_flags") or ()),
            assessed_at=_parse_datetime(payload.get("assessed_at")),
            expires_at=_parse_datetime(payload.get("expires_at")),
        )


def _signals_from_payload(entries: Sequence[Mapping[str, Any]]) -> RiskSignalCollection:
    # Stored signals are rebuilt verbatim; zero scores written by ``updated`` survive.
    return RiskSignalCollection(
        tuple(RiskSignal(name=entry["name"], score=entry["score"], scope=entry["scope"]) for entry in entries)
    )


def _parse_datetime(value: Any) -> Optional[datetime]:
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


__all__ = ["RiskProfile"]
