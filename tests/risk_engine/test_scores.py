import math

import pytest

from risk_engine import RiskLevel, RiskScore, RiskThresholds


@pytest.mark.parametrize(
    "value, expected",
    [
        (0.0, RiskLevel.LOW),
        (0.3, RiskLevel.LOW),
        (0.31, RiskLevel.MEDIUM),
        (0.7, RiskLevel.MEDIUM),
        (0.71, RiskLevel.HIGH),
        (0.9, RiskLevel.HIGH),
        (0.91, RiskLevel.CRITICAL),
        (1.0, RiskLevel.CRITICAL),
    ],
)
def test_level_boundaries(value, expected):
    assert RiskScore(value).level() is expected


@pytest.mark.parametrize("value", [-0.01, 1.01, math.nan, math.inf, "0.5", None, True])
def test_out_of_range_or_non_numeric_scores_are_rejected(value):
    with pytest.raises(ValueError):
        RiskScore(value)


def test_integer_bounds_are_normalised_to_float():
    assert RiskScore(1).value == 1.0
    assert isinstance(RiskScore(0).value, float)
    assert RiskScore(1).is_one()
    assert RiskScore(0).is_zero()


def test_custom_thresholds_shift_levels():
    strict = RiskThresholds(low=0.1, medium=0.2, high=0.5)

    assert RiskScore(0.15).level(strict) is RiskLevel.MEDIUM
    assert RiskScore(0.6).is_critical(strict)
    assert RiskScore(0.6).is_medium()


def test_thresholds_must_be_ordered():
    with pytest.raises(ValueError):
        RiskThresholds(low=0.5, medium=0.4, high=0.9)
    assert RiskThresholds.from_mapping({"high": 0.95}).high == 0.95
    assert RiskThresholds.from_mapping(None) == RiskThresholds()


def test_comparison_helpers():
    score = RiskScore(0.5)

    assert not score.exceeds(0.5)
    assert score.at_least(0.5)
    assert score.is_between(0.5, 0.6)
    assert score.is_positive()
    assert float(score) == 0.5
    assert RiskScore(0.2) < score
    assert RiskScore.of({"value": 0.5}) == score
    assert RiskScore.of(score) is score


def test_level_ranks_order_unknown_last():
    assert RiskLevel.HIGH.exceeds("medium")
    assert not RiskLevel.LOW.exceeds(RiskLevel.LOW)
    assert RiskLevel.UNKNOWN.exceeds(RiskLevel.CRITICAL)
    assert RiskLevel.CRITICAL.label == "Critical"
