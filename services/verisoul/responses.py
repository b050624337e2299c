"""Typed views over Verisoul JSON responses."""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from risk_engine import (
    AssessmentRules,
    Decision,
    RiskAssessment,
    RiskAssessor,
    RiskScore,
    RiskSignal,
    RiskSignalCollection,
    SignalScope,
)


class VerisoulModel(BaseModel):
    """Base model: unknown fields are kept so newer API versions still parse."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)


class _DecisionModel(VerisoulModel):
    decision: Decision = Decision.UNKNOWN

    @field_validator("decision", mode="before")
    @classmethod
    def _coerce_decision(cls, value: Any) -> Decision:
        if value is None or value == "":
            return Decision.UNKNOWN
        return Decision(value)


def _scores_to_collection(
    scores: Optional[Mapping[str, Any]], scope: Optional[SignalScope] = None
) -> RiskSignalCollection:
    signals: List[RiskSignal] = []
    for name, raw in (scores or {}).items():
        if isinstance(raw, bool) or not isinstance(raw, (int, float)):
            continue
        if not 0.0 < float(raw) <= 1.0:
            continue
        if scope is None:
            signals.append(RiskSignal.from_score(name, float(raw)))
        else:
            signals.append(RiskSignal(name, RiskScore(float(raw)), scope))
    return RiskSignalCollection(tuple(signals))


class Metadata(VerisoulModel):
    project_id: Optional[str] = None
    session_id: Optional[str] = None
    account_id: Optional[str] = None
    referring_session_id: Optional[str] = None
    request_id: Optional[str] = None
    timestamp: Optional[str] = None


class UserAccount(VerisoulModel):
    id: str
    email: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    group: Optional[str] = None


class AccountList(VerisoulModel):
    name: str
    description: Optional[str] = None
    accounts: List[Any] = Field(default_factory=list)


class SessionResponse(VerisoulModel):
    request_id: Optional[str] = None
    project_id: Optional[str] = None
    session_id: Optional[str] = None
    account_ids: List[str] = Field(default_factory=list)
    start_time: Optional[str] = None
    true_country_code: Optional[str] = None
    network: Dict[str, Any] = Field(default_factory=dict)
    location: Dict[str, Any] = Field(default_factory=dict)
    browser: Dict[str, Any] = Field(default_factory=dict)
    device: Dict[str, Any] = Field(default_factory=dict)
    bot: Dict[str, Any] = Field(default_factory=dict)
    risk_signals: Dict[str, Any] = Field(default_factory=dict)

    def signals(self) -> RiskSignalCollection:
        return _scores_to_collection(self.risk_signals)


class AuthenticateSessionResponse(_DecisionModel):
    project_id: Optional[str] = None
    session_id: Optional[str] = None
    account_id: Optional[str] = None
    request_id: Optional[str] = None
    account_score: float = 0.0
    bot: float = 0.0
    multiple_accounts: float = 0.0
    risk_signals: float = 0.0
    accounts_linked: int = 0
    lists: List[str] = Field(default_factory=list)
    session: Dict[str, Any] = Field(default_factory=dict)
    account: Dict[str, Any] = Field(default_factory=dict)
    linked_accounts: Optional[List[Dict[str, Any]]] = None

    def signals(self) -> RiskSignalCollection:
        """Session scores followed by the account's historical averages."""

        session_scores = self.session.get("risk_signals") if isinstance(self.session, Mapping) else None
        averages = self.account.get("risk_signal_average") if isinstance(self.account, Mapping) else None
        return _scores_to_collection(session_scores).merge(
            _scores_to_collection(averages, SignalScope.ACCOUNT)
        )

    def has_concerning_signals(self) -> bool:
        collection = self.signals()
        return collection.has_flagged_signals() or collection.has_high_risk_signals()

    def most_critical_signals(self, limit: int = 3) -> RiskSignalCollection:
        return self.signals().most_critical(limit)

    def assess(self, assessor: Optional[RiskAssessor] = None) -> RiskAssessment:
        return (assessor or RiskAssessor()).assess(self.decision, self.account_score, self.signals())


class AccountResponse(_DecisionModel):
    project_id: Optional[str] = None
    request_id: Optional[str] = None
    account: Optional[UserAccount] = None
    num_sessions: int = 0
    first_seen: Optional[str] = None
    last_seen: Optional[str] = None
    last_session: Optional[str] = None
    country: Optional[str] = None
    countries: List[str] = Field(default_factory=list)
    account_score: float = 0.0
    bot: float = 0.0
    multiple_accounts: float = 0.0
    risk_signals: float = 0.0
    lists: List[str] = Field(default_factory=list)
    risk_signal_average: Dict[str, Any] = Field(default_factory=dict)

    def signals(self) -> RiskSignalCollection:
        return _scores_to_collection(self.risk_signal_average, SignalScope.ACCOUNT)


class AccountSessionsResponse(VerisoulModel):
    request_id: Optional[str] = None
    sessions: List[Dict[str, Any]] = Field(default_factory=list)


class LinkedAccountsResponse(VerisoulModel):
    request_id: Optional[str] = None
    accounts_linked: List[Dict[str, Any]] = Field(default_factory=list)


class DeleteAccountResponse(VerisoulModel):
    request_id: Optional[str] = None
    account_id: Optional[str] = None
    success: bool = False


class ListOperationResponse(VerisoulModel):
    request_id: Optional[str] = None
    message: Optional[str] = None
    success: bool = False


class PhoneDetails(VerisoulModel):
    valid: bool = False
    phone_number: Optional[str] = None
    calling_country_code: Optional[str] = None
    country_code: Optional[str] = None
    carrier_name: Optional[str] = None
    line_type: Optional[str] = None


class VerifyPhoneResponse(VerisoulModel):
    project_id: Optional[str] = None
    request_id: Optional[str] = None
    phone: PhoneDetails = Field(default_factory=PhoneDetails)


class LivenessSessionResponse(VerisoulModel):
    request_id: Optional[str] = None
    session_id: str


class EnrollAccountResponse(VerisoulModel):
    request_id: Optional[str] = None
    account_id: Optional[str] = None
    session_id: Optional[str] = None
    success: bool = True


class VerifyIdentityResponse(VerisoulModel):
    request_id: Optional[str] = None
    success: bool = False
    match: bool = False


class _VerificationResponse(_DecisionModel):
    metadata: Metadata = Field(default_factory=Metadata)
    risk_score: float = Field(default=0.0, ge=0.0, le=1.0)
    risk_flags: List[str] = Field(default_factory=list)
    device_network_signals: Dict[str, Any] = Field(default_factory=dict)
    referring_session_signals: Dict[str, Any] = Field(default_factory=dict)
    photo_urls: Dict[str, Any] = Field(default_factory=dict)
    session_data: Dict[str, Any] = Field(default_factory=dict)
    matches: Dict[str, Any] = Field(default_factory=dict)

    def signals(self) -> RiskSignalCollection:
        return RiskSignalCollection.from_verisoul_signals(
            device_network=self.device_network_signals,
            referring_session=self.referring_session_signals,
        )

    def has_blocking_risk_flags(self, rules: Optional[AssessmentRules] = None) -> bool:
        blocking = (rules or AssessmentRules()).blocking_flags
        return any(flag in blocking for flag in self.risk_flags)

    def is_successful(self, assessor: Optional[RiskAssessor] = None) -> bool:
        return (assessor or RiskAssessor()).is_successful(self.decision, self.risk_score, self.risk_flags)

    def should_reject(self, assessor: Optional[RiskAssessor] = None) -> bool:
        return (assessor or RiskAssessor()).should_reject(self.decision, self.risk_score, self.risk_flags)

    def requires_manual_review(self, assessor: Optional[RiskAssessor] = None) -> bool:
        return (assessor or RiskAssessor()).requires_manual_review(self.decision, self.risk_score)

    def assess(self, assessor: Optional[RiskAssessor] = None) -> RiskAssessment:
        return (assessor or RiskAssessor()).assess(self.decision, self.risk_score, self.signals(), self.risk_flags)


class VerifyFaceResponse(_VerificationResponse):
    pass


class VerifyIdResponse(_VerificationResponse):
    document_signals: Dict[str, Any] = Field(default_factory=dict)
    document_data: Dict[str, Any] = Field(default_factory=dict)

    def signals(self) -> RiskSignalCollection:
        return RiskSignalCollection.from_verisoul_signals(
            device_network=self.device_network_signals,
            document=self.document_signals,
            referring_session=self.referring_session_signals,
        )


__all__ = [
    "AccountList",
    "AccountResponse",
    "AccountSessionsResponse",
    "AuthenticateSessionResponse",
    "DeleteAccountResponse",
    "EnrollAccountResponse",
    "LinkedAccountsResponse",
    "ListOperationResponse",
    "LivenessSessionResponse",
    "Metadata",
    "PhoneDetails",
    "SessionResponse",
    "UserAccount",
    "VerifyFaceResponse",
    "VerifyIdResponse",
    "VerifyIdentityResponse",
    "VerifyPhoneResponse",
    "VerisoulModel",
]
