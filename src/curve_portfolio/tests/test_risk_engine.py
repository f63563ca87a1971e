from __future__ import annotations

import math

import pytest

from curve_portfolio.analysis.risk import RiskScoreEngine, compute_risk_score, level_for_score
from curve_portfolio.datalake.schemas import CurveSnapshot, RiskImpact, RiskLevel

NOW = 1_700_000_000.0
HOUR = 3_600.0


def _curve(**overrides) -> CurveSnapshot:
    values = dict(
        id="curve-1",
        created_at=NOW - 10 * 24 * HOUR,
        graduated=False,
        total_volume_eth=5.0,
        trade_count=100,
        last_trade_at=NOW - 2 * HOUR,
        symbol="TKN",
        name="Token",
    )
    values.update(overrides)
    return CurveSnapshot(**values)


def _points(result) -> dict:
    return {factor.name: factor.points for factor in result.factors}


def test_untouched_fresh_curve_scores_95_high() -> None:
    curve = _curve(total_volume_eth=0.0, trade_count=0, created_at=NOW, last_trade_at=None)
    result = RiskScoreEngine().score(curve, now=NOW)

    assert result.score == 95
    assert result.level is RiskLevel.HIGH
    assert result.emoji == "\U0001F534"
    assert [factor.name for factor in result.factors] == [
        "Volume",
        "Trade Count",
        "Age",
        "Graduated",
        "Last Trade",
    ]
    assert _points(result) == {
        "Volume": 25,
        "Trade Count": 25,
        "Age": 20,
        "Graduated": 10,
        "Last Trade": 15,
    }
    assert result.factors[0].value == "0 ETH"
    assert result.factors[2].value == "0 min"
    assert result.factors[4].value == "Never"


def test_established_graduated_curve_clamps_at_zero() -> None:
    curve = _curve(graduated=True)
    result = RiskScoreEngine().score(curve, now=NOW)

    assert sum(factor.points for factor in result.factors) == -10
    assert result.score == 0
    assert result.level is RiskLevel.LOW
    assert result.factors[3].impact is RiskImpact.POSITIVE


@pytest.mark.parametrize(
    ("volume", "expected_points", "display"),
    [
        (0.0, 25, "0 ETH"),
        (0.05, 20, "0.0500 ETH"),
        (0.5, 10, "0.5000 ETH"),
        (1.0, 0, "1.0000 ETH"),
    ],
)
def test_volume_buckets(volume: float, expected_points: int, display: str) -> None:
    result = RiskScoreEngine().score(_curve(total_volume_eth=volume), now=NOW)

    assert result.factors[0].points == expected_points
    assert result.factors[0].value == display


@pytest.mark.parametrize(("count", "expected_points"), [(0, 25), (4, 15), (5, 5), (19, 5), (20, 0)])
def test_trade_count_buckets(count: int, expected_points: int) -> None:
    result = RiskScoreEngine().score(_curve(trade_count=count), now=NOW)

    assert result.factors[1].points == expected_points
    assert result.factors[1].value == str(count)


def test_age_and_recency_buckets_use_injected_clock() -> None:
    engine = RiskScoreEngine(clock=lambda: NOW)

    young = engine.score(_curve(created_at=NOW - 30 * 60))
    assert young.factors[2].points == 20
    assert young.factors[2].value == "30 min"

    hours = engine.score(_curve(created_at=NOW - 5.5 * HOUR))
    assert hours.factors[2].points == 10
    assert hours.factors[2].value == "6 hours"

    days = engine.score(_curve(created_at=NOW - 3 * 24 * HOUR))
    assert days.factors[2].points == 0
    assert days.factors[2].value == "3 days"

    idle = engine.score(_curve(last_trade_at=NOW - 49 * HOUR))
    assert idle.factors[4].points == 10
    assert idle.factors[4].value == "2d ago"

    recent = engine.score(_curve(last_trade_at=NOW - 2 * HOUR))
    assert recent.factors[4].points == 0
    assert recent.factors[4].value == "2h ago"


def test_score_is_monotonic_in_volume_and_trades() -> None:
    engine = RiskScoreEngine()
    volumes = [0.0, 0.01, 0.2, 3.0, 50.0]
    scores = [engine.score(_curve(total_volume_eth=v, trade_count=1), now=NOW).score for v in volumes]
    assert scores == sorted(scores, reverse=True)

    counts = [0, 1, 6, 25, 500]
    scores = [engine.score(_curve(trade_count=c, total_volume_eth=0.0), now=NOW).score for c in counts]
    assert scores == sorted(scores, reverse=True)


def test_non_finite_inputs_do_not_raise() -> None:
    curve = _curve(total_volume_eth=math.nan, created_at=math.nan, last_trade_at=math.nan)
    result = RiskScoreEngine().score(curve, now=NOW)

    assert 0 <= result.score <= 100
    assert result.factors[0].points == 0
    assert result.factors[2].points == 0
    assert result.factors[4].points == 0


@pytest.mark.parametrize(
    ("score", "level"),
    [(0, RiskLevel.LOW), (30, RiskLevel.LOW), (31, RiskLevel.MEDIUM), (60, RiskLevel.MEDIUM), (61, RiskLevel.HIGH)],
)
def test_level_boundaries(score: int, level: RiskLevel) -> None:
    assert level_for_score(score) is level


def test_to_dict_matches_wire_shape() -> None:
    payload = compute_risk_score(_curve(), now=NOW).to_dict()

    assert set(payload) == {"score", "level", "emoji", "factors"}
    assert set(payload["factors"][0]) == {"name", "value", "impact", "detail"}
    assert payload["level"] == "low"
