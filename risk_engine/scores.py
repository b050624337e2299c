"""Bounded risk scores and their level classification."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"
    UNKNOWN = "unknown"

    @property
    def rank(self) -> int:
        return _LEVEL_RANKS[self]

    def exceeds(self, other: "RiskLevel | str") -> bool:
        """Return ``True`` when this level is strictly riskier than ``other``."""

        return self.rank > RiskLevel(other).rank

    @property
    def label(self) -> str:
        return self.value.capitalize()


# ``unknown`` ranks above every assessed level so un-assessed subjects never
# pass a ceiling check.
_LEVEL_RANKS = {
    RiskLevel.LOW: 1,
    RiskLevel.MEDIUM: 2,
    RiskLevel.HIGH: 3,
    RiskLevel.CRITICAL: 4,
    RiskLevel.UNKNOWN: 5,
}


@dataclass(frozen=True)
class RiskThresholds:
    """Upper bounds (inclusive) of the low, medium and high bands."""

    low: float = 0.3
    medium: float = 0.7
    high: float = 0.9

    def __post_init__(self) -> None:
        if not 0.0 <= self.low <= self.medium <= self.high <= 1.0:
            raise ValueError(
                f"Risk thresholds must satisfy 0 <= low <= medium <= high <= 1, "
                f"got low={self.low}, medium={self.medium}, high={self.high}"
            )

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any] | None) -> "RiskThresholds":
        if not payload:
            return cls()
        kwargs = {key: float(payload[key]) for key in ("low", "medium", "high") if key in payload}
        return cls(**kwargs)

    def classify(self, value: float) -> RiskLevel:
        if value <= self.low:
            return RiskLevel.LOW
        if value <= self.medium:
            return RiskLevel.MEDIUM
        if value <= self.high:
            return RiskLevel.HIGH
        return RiskLevel.CRITICAL


DEFAULT_THRESHOLDS = RiskThresholds()


@dataclass(frozen=True, order=True)
class RiskScore:
    """An immutable risk value in the closed interval ``[0.0, 1.0]``."""

    value: float = field(default=0.0)

    def __post_init__(self) -> None:
        if isinstance(self.value, bool) or not isinstance(self.value, (int, float)):
            raise ValueError(f"Risk score must be numeric, got {type(self.value).__name__}")
        value = float(self.value)
        if math.isnan(value) or not 0.0 <= value <= 1.0:
            raise ValueError(f"Risk score must be between 0.0 and 1.0, got {self.value}")
        object.__setattr__(self, "value", value)

    @classmethod
    def of(cls, value: "RiskScore | float | Mapping[str, Any]") -> "RiskScore":
        """Coerce ``value`` into a :class:`RiskScore`."""

        if isinstance(value, RiskScore):
            return value
        if isinstance(value, Mapping):
            return cls(value.get("value", 0.0))
        return cls(value)

    @classmethod
    def zero(cls) -> "RiskScore":
        return cls(0.0)

    def __float__(self) -> float:
        return self.value

    def level(self, thresholds: RiskThresholds = DEFAULT_THRESHOLDS) -> RiskLevel:
        return thresholds.classify(self.value)

    def is_low(self, thresholds: RiskThresholds = DEFAULT_THRESHOLDS) -> bool:
        return self.level(thresholds) is RiskLevel.LOW

    def is_medium(self, thresholds: RiskThresholds = DEFAULT_THRESHOLDS) -> bool:
        return self.level(thresholds) is RiskLevel.MEDIUM

    def is_high(self, thresholds: RiskThresholds = DEFAULT_THRESHOLDS) -> bool:
        return self.level(thresholds) is RiskLevel.HIGH

    def is_critical(self, thresholds: RiskThresholds = DEFAULT_THRESHOLDS) -> bool:
        return self.level(thresholds) is RiskLevel.CRITICAL

    def is_zero(self) -> bool:
        return self.value == 0.0

    def is_one(self) -> bool:
        return self.value == 1.0

    def is_positive(self) -> bool:
        return self.value > 0.0

    def is_between(self, lower: float, upper: float) -> bool:
        return lower <= self.value <= upper

    def exceeds(self, threshold: float) -> bool:
        return self.value > threshold

    def at_least(self, threshold: float) -> bool:
        return self.value >= threshold

    def to_payload(self) -> float:
        return self.value


__all__ = ["DEFAULT_THRESHOLDS", "RiskLevel", "RiskScore", "RiskThresholds"]
