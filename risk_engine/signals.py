"""Named risk signals and the immutable collection used for scoring."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, Iterator, List, Mapping, MutableMapping, Optional, Tuple, Union

from .scores import DEFAULT_THRESHOLDS, RiskLevel, RiskScore, RiskThresholds

logger = logging.getLogger(__name__)


class SignalScope(str, Enum):
    DEVICE_NETWORK = "device_network"
    DOCUMENT = "document"
    REFERRING_SESSION = "referring_session"
    ACCOUNT = "account"
    SESSION = "session"

    @classmethod
    def for_signal(cls, name: str) -> "SignalScope":
        info = _SIGNAL_CATALOG.get(name)
        return info[0] if info else cls.DEVICE_NETWORK


DEVICE_NETWORK_SIGNALS = (
    "device_risk",
    "proxy",
    "vpn",
    "datacenter",
    "tor",
    "spoofed_ip",
    "recent_fraud_ip",
    "device_network_mismatch",
    "location_spoofing",
)
DOCUMENT_SIGNALS = ("id_age", "id_face_match_score")
REFERRING_SESSION_SIGNALS = (
    "impossible_travel",
    "ip_mismatch",
    "user_agent_mismatch",
    "device_timezone_mismatch",
    "ip_timezone_mismatch",
)

_SIGNAL_CATALOG: Dict[str, Tuple[SignalScope, str, str]] = {
    "device_risk": (SignalScope.DEVICE_NETWORK, "Device Risk", "Overall device risk assessment"),
    "proxy": (SignalScope.DEVICE_NETWORK, "Proxy", "Connection through proxy server detected"),
    "vpn": (SignalScope.DEVICE_NETWORK, "VPN", "VPN usage detected"),
    "datacenter": (SignalScope.DEVICE_NETWORK, "Datacenter", "Connection from datacenter IP address"),
    "tor": (SignalScope.DEVICE_NETWORK, "Tor", "Connection through Tor network"),
    "spoofed_ip": (SignalScope.DEVICE_NETWORK, "Spoofed IP", "IP address spoofing detected"),
    "recent_fraud_ip": (
        SignalScope.DEVICE_NETWORK,
        "Recent Fraud IP",
        "IP address recently associated with fraud",
    ),
    "device_network_mismatch": (
        SignalScope.DEVICE_NETWORK,
        "Device Network Mismatch",
        "Device and network information mismatch",
    ),
    "location_spoofing": (SignalScope.DEVICE_NETWORK, "Location Spoofing", "Location spoofing detected"),
    "id_age": (SignalScope.DOCUMENT, "ID Age", "Age of the identity document"),
    "id_face_match_score": (
        SignalScope.DOCUMENT,
        "ID Face Match Score",
        "Face match score between selfie and ID",
    ),
    "id_barcode_status": (SignalScope.DOCUMENT, "ID Barcode Status", "Status of ID barcode verification"),
    "id_face_status": (SignalScope.DOCUMENT, "ID Face Status", "Status of face on ID document"),
    "id_text_status": (SignalScope.DOCUMENT, "ID Text Status", "Status of text on ID document"),
    "is_id_digital_spoof": (
        SignalScope.DOCUMENT,
        "ID Digital Spoof",
        "Whether ID appears to be digitally spoofed",
    ),
    "is_full_id_captured": (SignalScope.DOCUMENT, "Full ID Captured", "Whether full ID was captured"),
    "id_validity": (SignalScope.DOCUMENT, "ID Validity", "Overall validity of the ID document"),
    "impossible_travel": (
        SignalScope.REFERRING_SESSION,
        "Impossible Travel",
        "Impossible travel pattern detected",
    ),
    "ip_mismatch": (SignalScope.REFERRING_SESSION, "IP Mismatch", "IP address mismatch between sessions"),
    "user_agent_mismatch": (
        SignalScope.REFERRING_SESSION,
        "User Agent Mismatch",
        "User agent mismatch between sessions",
    ),
    "device_timezone_mismatch": (
        SignalScope.REFERRING_SESSION,
        "Device Timezone Mismatch",
        "Device timezone mismatch",
    ),
    "ip_timezone_mismatch": (SignalScope.REFERRING_SESSION, "IP Timezone Mismatch", "IP timezone mismatch"),
}

DEFAULT_SCOPE_WEIGHTS: Mapping[SignalScope, float] = {
    SignalScope.DEVICE_NETWORK: 0.3,
    SignalScope.DOCUMENT: 0.3,
    SignalScope.REFERRING_SESSION: 0.2,
    SignalScope.ACCOUNT: 0.1,
    SignalScope.SESSION: 0.1,
}
FALLBACK_SCOPE_WEIGHT = 0.1

ScoreLike = Union[RiskScore, float, int]


def _camel_case(name: str) -> str:
    head, *rest = name.split("_")
    return head[:1].lower() + head[1:] + "".join(part[:1].upper() + part[1:] for part in rest)


@dataclass(frozen=True)
class RiskSignal:
    """A single named risk measurement attached to a :class:`SignalScope`."""

    name: str
    score: RiskScore
    scope: SignalScope = SignalScope.DEVICE_NETWORK

    def __post_init__(self) -> None:
        object.__setattr__(self, "score", RiskScore.of(self.score))
        object.__setattr__(self, "scope", SignalScope(self.scope))

    @classmethod
    def from_score(cls, name: str, score: ScoreLike) -> "RiskSignal":
        return cls(name=name, score=RiskScore.of(score), scope=SignalScope.for_signal(name))

    @property
    def value(self) -> float:
        return self.score.value

    @property
    def display_name(self) -> str:
        info = _SIGNAL_CATALOG.get(self.name)
        if info:
            return info[1]
        return " ".join(part[:1].upper() + part[1:] for part in self.name.split("_"))

    @property
    def description(self) -> str:
        info = _SIGNAL_CATALOG.get(self.name)
        if info:
            return info[2]
        return f"Risk signal: {self.name}"

    def is_flagged(self, threshold: float = 0.5) -> bool:
        return self.score.exceeds(threshold)

    def is_high_risk(self, threshold: float = 0.8) -> bool:
        return self.score.exceeds(threshold)

    def risk_level(self, thresholds: RiskThresholds = DEFAULT_THRESHOLDS) -> RiskLevel:
        return self.score.level(thresholds)

    def as_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "score": self.score.value, "scope": self.scope.value}

    def describe(self) -> Dict[str, Any]:
        payload = self.as_dict()
        payload.update(
            {
                "display_name": self.display_name,
                "description": self.description,
                "risk_level": self.risk_level().value,
                "is_flagged": self.is_flagged(),
                "is_high_risk": self.is_high_risk(),
            }
        )
        return payload


@dataclass(frozen=True)
class RiskSignalCollection:
    """Insertion-ordered, immutable sequence of :class:`RiskSignal` entries.

    Every editing operation returns a new collection. Duplicate names are kept
    unless :meth:`updated` is used explicitly.
    """

    signals: Tuple[RiskSignal, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "signals", tuple(self.signals))

    # -- sequence protocol -------------------------------------------------

    def __len__(self) -> int:
        return len(self.signals)

    def __iter__(self) -> Iterator[RiskSignal]:
        return iter(self.signals)

    def __getitem__(self, index):
        if isinstance(index, slice):
            return RiskSignalCollection(self.signals[index])
        return self.signals[index]

    def __contains__(self, item: object) -> bool:
        if isinstance(item, str):
            return any(signal.name == item for signal in self.signals)
        return item in self.signals

    def is_empty(self) -> bool:
        return not self.signals

    def names(self) -> List[str]:
        return [signal.name for signal in self.signals]

    # -- construction ------------------------------------------------------

    @classmethod
    def from_raw_scores(cls, entries: Optional[Iterable[Any]]) -> "RiskSignalCollection":
        """Build a collection from ``{name, score, scope}`` mappings.

        Entries with a non-positive score carry no risk information and are
        dropped. A missing scope defaults to ``device_network``.
        """

        signals: List[RiskSignal] = []
        for entry in entries or ():
            if isinstance(entry, RiskSignal):
                if entry.score.is_positive():
                    signals.append(entry)
                continue
            if not isinstance(entry, Mapping):
                raise TypeError(f"Risk signal entries must be mappings, not {type(entry).__name__}")
            raw_score = entry.get("score", 0.0)
            if isinstance(raw_score, Mapping):
                raw_score = raw_score.get("value", 0.0)
            if isinstance(raw_score, RiskScore):
                raw_score = raw_score.value
            value = _numeric_or_zero(raw_score)
            if value <= 0.0:
                continue
            signals.append(
                RiskSignal(
                    name=str(entry.get("name") or "unknown"),
                    score=RiskScore(value),
                    scope=SignalScope(entry.get("scope") or SignalScope.DEVICE_NETWORK),
                )
            )
        return cls(tuple(signals))

    from_payload = from_raw_scores

    @classmethod
    def from_device_network_signals(cls, payload: Optional[Mapping[str, Any]]) -> "RiskSignalCollection":
        return cls._from_named_scores(payload, DEVICE_NETWORK_SIGNALS, SignalScope.DEVICE_NETWORK)

    @classmethod
    def from_document_signals(cls, payload: Optional[Mapping[str, Any]]) -> "RiskSignalCollection":
        return cls._from_named_scores(payload, DOCUMENT_SIGNALS, SignalScope.DOCUMENT)

    @classmethod
    def from_referring_session_signals(cls, payload: Optional[Mapping[str, Any]]) -> "RiskSignalCollection":
        return cls._from_named_scores(payload, REFERRING_SESSION_SIGNALS, SignalScope.REFERRING_SESSION)

    @classmethod
    def from_verisoul_signals(
        cls,
        device_network: Optional[Mapping[str, Any]] = None,
        document: Optional[Mapping[str, Any]] = None,
        referring_session: Optional[Mapping[str, Any]] = None,
    ) -> "RiskSignalCollection":
        collection = cls()
        if device_network:
            collection = collection.merge(cls.from_device_network_signals(device_network))
        if document:
            collection = collection.merge(cls.from_document_signals(document))
        if referring_session:
            collection = collection.merge(cls.from_referring_session_signals(referring_session))
        return collection

    @classmethod
    def _from_named_scores(
        cls,
        payload: Optional[Mapping[str, Any]],
        names: Iterable[str],
        scope: SignalScope,
    ) -> "RiskSignalCollection":
        signals: List[RiskSignal] = []
        if not payload:
            return cls()
        for name in names:
            raw = payload.get(name, payload.get(_camel_case(name)))
            if isinstance(raw, bool) or not isinstance(raw, (int, float)):
                continue
            value = float(raw)
            if math.isnan(value) or value <= 0.0:
                continue
            if value > 1.0:
                # Some document fields (``id_age``) are not probabilities.
                logger.debug(
                    "Skipping out-of-range risk signal",
                    extra={"signal": name, "scope": scope.value, "raw_value": value},
                )
                continue
            signals.append(RiskSignal(name=name, score=RiskScore(value), scope=scope))
        return cls(tuple(signals))

    # -- editing -----------------------------------------------------------

    def with_signal(
        self, name: str, score: ScoreLike, scope: Optional[SignalScope] = None
    ) -> "RiskSignalCollection":
        risk_score = RiskScore.of(score)
        if not risk_score.is_positive():
            return self
        signal = RiskSignal(name=name, score=risk_score, scope=scope or SignalScope.DEVICE_NETWORK)
        return RiskSignalCollection(self.signals + (signal,))

    def updated(self, name: str, score: ScoreLike, scope: Optional[SignalScope] = None) -> "RiskSignalCollection":
        """Replace the first signal called ``name`` or append a new one."""

        risk_score = RiskScore.of(score)
        for index, existing in enumerate(self.signals):
            if existing.name == name:
                replacement = RiskSignal(name=name, score=risk_score, scope=existing.scope)
                signals = self.signals[:index] + (replacement,) + self.signals[index + 1 :]
                return RiskSignalCollection(signals)
        return self.with_signal(name, risk_score, scope)

    def without(self, name: str) -> "RiskSignalCollection":
        return RiskSignalCollection(tuple(signal for signal in self.signals if signal.name != name))

    def merge(self, other: Iterable[RiskSignal]) -> "RiskSignalCollection":
        return RiskSignalCollection(self.signals + tuple(other))

    # -- queries -----------------------------------------------------------

    def _filter(self, predicate) -> "RiskSignalCollection":
        return RiskSignalCollection(tuple(signal for signal in self.signals if predicate(signal)))

    def by_scope(self, scope: SignalScope | str) -> "RiskSignalCollection":
        wanted = SignalScope(scope)
        return self._filter(lambda signal: signal.scope is wanted)

    def flagged(self, threshold: float = 0.5) -> "RiskSignalCollection":
        return self._filter(lambda signal: signal.is_flagged(threshold))

    def high_risk(self, threshold: float = 0.8) -> "RiskSignalCollection":
        return self._filter(lambda signal: signal.is_high_risk(threshold))

    def by_name(self, name: str) -> Optional[RiskSignal]:
        for signal in self.signals:
            if signal.name == name:
                return signal
        return None

    def by_names(self, names: Iterable[str]) -> "RiskSignalCollection":
        wanted = set(names)
        return self._filter(lambda signal: signal.name in wanted)

    def has_flagged_signals(self, threshold: float = 0.5) -> bool:
        return any(signal.is_flagged(threshold) for signal in self.signals)

    def has_high_risk_signals(self, threshold: float = 0.8) -> bool:
        return any(signal.is_high_risk(threshold) for signal in self.signals)

    def most_critical(self, limit: int = 5) -> "RiskSignalCollection":
        if limit <= 0:
            return RiskSignalCollection()
        ordered = sorted(self.signals, key=lambda signal: signal.score.value, reverse=True)
        return RiskSignalCollection(tuple(ordered[:limit]))

    def grouped_by_scope(self) -> Dict[SignalScope, "RiskSignalCollection"]:
        groups: Dict[SignalScope, List[RiskSignal]] = {}
        for signal in self.signals:
            groups.setdefault(signal.scope, []).append(signal)
        return {scope: RiskSignalCollection(tuple(items)) for scope, items in groups.items()}

    def grouped_by_risk_level(
        self, thresholds: RiskThresholds = DEFAULT_THRESHOLDS
    ) -> Dict[RiskLevel, "RiskSignalCollection"]:
        groups: Dict[RiskLevel, List[RiskSignal]] = {}
        for signal in self.signals:
            groups.setdefault(signal.risk_level(thresholds), []).append(signal)
        return {level: RiskSignalCollection(tuple(items)) for level, items in groups.items()}

    # -- scoring -----------------------------------------------------------

    def overall_risk_score(self) -> RiskScore:
        if not self.signals:
            return RiskScore.zero()
        total = sum(signal.score.value for signal in self.signals)
        return RiskScore(_clamp(total / len(self.signals)))

    def weighted_risk_score(
        self, weights: Optional[Mapping[Union[SignalScope, str], float]] = None
    ) -> RiskScore:
        """Return the per-scope weighted mean of signal scores.

        ``weights`` overrides the defaults scope by scope. Scopes missing from
        both fall back to ``FALLBACK_SCOPE_WEIGHT``. The result is normalised by
        the total weight, so the weights need not sum to one.
        """

        if not self.signals:
            return RiskScore.zero()
        resolved = _resolve_weights(weights)
        numerator = 0.0
        denominator = 0.0
        for signal in self.signals:
            weight = resolved.get(signal.scope, FALLBACK_SCOPE_WEIGHT)
            numerator += signal.score.value * weight
            denominator += weight
        if denominator <= 0.0:
            return RiskScore.zero()
        return RiskScore(_clamp(numerator / denominator))

    # -- reporting ---------------------------------------------------------

    def summary(self) -> Dict[str, Any]:
        if not self.signals:
            return {
                "total_signals": 0,
                "flagged_signals": 0,
                "high_risk_signals": 0,
                "overall_risk_score": 0.0,
                "weighted_risk_score": 0.0,
                "max_score": 0.0,
                "min_score": 0.0,
                "avg_score": 0.0,
                "by_scope": {},
                "by_risk_level": {},
            }
        values = [signal.score.value for signal in self.signals]
        return {
            "total_signals": len(self.signals),
            "flagged_signals": len(self.flagged()),
            "high_risk_signals": len(self.high_risk()),
            "overall_risk_score": self.overall_risk_score().value,
            "weighted_risk_score": self.weighted_risk_score().value,
            "max_score": max(values),
            "min_score": min(values),
            "avg_score": sum(values) / len(values),
            "by_scope": {scope.value: len(group) for scope, group in self.grouped_by_scope().items()},
            "by_risk_level": {
                level.value: len(group) for level, group in self.grouped_by_risk_level().items()
            },
        }

    def as_list(self) -> List[Dict[str, Any]]:
        return [signal.as_dict() for signal in self.signals]

    def describe(self) -> List[Dict[str, Any]]:
        return [signal.describe() for signal in self.signals]

    def to_legacy_flags(self, threshold: float = 0.5) -> Dict[str, bool]:
        return {_camel_case(signal.name): signal.is_flagged(threshold) for signal in self.signals}

    def to_legacy_scores(self) -> Dict[str, float]:
        return {_camel_case(signal.name): signal.score.value for signal in self.signals}


def _resolve_weights(weights: Optional[Mapping[Union[SignalScope, str], float]]) -> Dict[SignalScope, float]:
    resolved: MutableMapping[SignalScope, float] = dict(DEFAULT_SCOPE_WEIGHTS)
    for key, weight in (weights or {}).items():
        weight = float(weight)
        if weight < 0 or math.isnan(weight):
            raise ValueError(f"Scope weight for {key} must be a non-negative number, got {weight}")
        resolved[SignalScope(key)] = weight
    return dict(resolved)


def _clamp(value: float) -> float:
    return min(1.0, max(0.0, value))


def _numeric_or_zero(value: Any) -> float:
    """Read a raw score; missing or non-numeric values count as no risk."""

    if value is None or isinstance(value, bool):
        return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    return 0.0 if math.isnan(number) else number


__all__ = [
    "DEFAULT_SCOPE_WEIGHTS",
    "FALLBACK_SCOPE_WEIGHT",
    "RiskSignal",
    "RiskSignalCollection",
    "SignalScope",
]
