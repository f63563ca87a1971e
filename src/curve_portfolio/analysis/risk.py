"""Deterministic heuristic risk scoring for bonding-curve tokens."""

from __future__ import annotations

import math
import time
from typing import Callable, List, Optional

from ..datalake.schemas import CurveSnapshot, RiskFactor, RiskImpact, RiskLevel, RiskResult
from ..utils.constants import (
    HOURS_PER_DAY,
    LOW_RISK_MAX_SCORE,
    MAX_RISK_SCORE,
    MEDIUM_RISK_MAX_SCORE,
    MIN_RISK_SCORE,
    SECONDS_PER_HOUR,
)


def _nearest(value: float) -> str:
    """Round half up for display; non-finite values are shown as-is."""

    if not math.isfinite(value):
        return str(value)
    return str(math.floor(value + 0.5))


def level_for_score(score: int) -> RiskLevel:
    if score <= LOW_RISK_MAX_SCORE:
        return RiskLevel.LOW
    if score <= MEDIUM_RISK_MAX_SCORE:
        return RiskLevel.MEDIUM
    return RiskLevel.HIGH


class RiskScoreEngine:
    """Additive point scoring over volume, trade count, age, graduation, and recency.

    Each factor is scored independently and appended in a fixed order so the
    breakdown is reproducible. Points are summed and clamped to ``[0, 100]``
    only after all five factors have contributed; the graduation bonus is the
    only negative contribution.
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock

    def score(self, curve: CurveSnapshot, now: Optional[float] = None) -> RiskResult:
        current = self._clock() if now is None else now
        factors: List[RiskFactor] = [
            self._volume(curve.total_volume_eth),
            self._trade_count(curve.trade_count),
            self._age((current - curve.created_at) / SECONDS_PER_HOUR),
            self._graduation(curve.graduated),
            self._recency(curve.last_trade_at, current),
        ]
        raw = sum(factor.points for factor in factors)
        score = max(MIN_RISK_SCORE, min(MAX_RISK_SCORE, raw))
        level = level_for_score(score)
        return RiskResult(score=score, level=level, emoji=level.emoji, factors=factors)

    def _volume(self, volume_eth: float) -> RiskFactor:
        if volume_eth == 0:
            return RiskFactor(
                "Volume", "0 ETH", RiskImpact.NEGATIVE,
                "No trading volume, completely untested liquidity", 25,
            )
        display = f"{volume_eth:.4f} ETH"
        if volume_eth < 0.1:
            return RiskFactor(
                "Volume", display, RiskImpact.NEGATIVE, "Very low volume, high slippage risk", 20
            )
        if volume_eth < 1:
            return RiskFactor(
                "Volume", display, RiskImpact.NEUTRAL,
                "Moderate volume, some liquidity established", 10,
            )
        return RiskFactor("Volume", display, RiskImpact.POSITIVE, "Healthy volume, good liquidity", 0)

    def _trade_count(self, trade_count: int) -> RiskFactor:
        if trade_count == 0:
            return RiskFactor(
                "Trade Count", "0", RiskImpact.NEGATIVE, "No trades, zero market interest", 25
            )
        display = str(trade_count)
        if trade_count < 5:
            return RiskFactor(
                "Trade Count", display, RiskImpact.NEGATIVE,
                "Very few trades, limited price discovery", 15,
            )
        if trade_count < 20:
            return RiskFactor("Trade Count", display, RiskImpact.NEUTRAL, "Some trading activity", 5)
        return RiskFactor(
            "Trade Count", display, RiskImpact.POSITIVE, "Active trading, good price discovery", 0
        )

    def _age(self, age_hours: float) -> RiskFactor:
        if age_hours < 1:
            return RiskFactor(
                "Age", f"{_nearest(age_hours * 60)} min", RiskImpact.NEGATIVE,
                "Brand new token, extremely high rug risk", 20,
            )
        if age_hours < HOURS_PER_DAY:
            return RiskFactor(
                "Age", f"{_nearest(age_hours)} hours", RiskImpact.NEUTRAL,
                "Less than a day old, still very early", 10,
            )
        return RiskFactor(
            "Age", f"{_nearest(age_hours / HOURS_PER_DAY)} days", RiskImpact.POSITIVE,
            "Survived multiple days, some resilience shown", 0,
        )

    def _graduation(self, graduated: bool) -> RiskFactor:
        if graduated:
            return RiskFactor(
                "Graduated", "Yes", RiskImpact.POSITIVE,
                "Graduated from bonding curve, reached liquidity threshold", -10,
            )
        return RiskFactor(
            "Graduated", "No", RiskImpact.NEGATIVE,
            "Still on bonding curve, has not reached liquidity threshold", 10,
        )

    def _recency(self, last_trade_at: Optional[float], now: float) -> RiskFactor:
        if last_trade_at is None:
            return RiskFactor(
                "Last Trade", "Never", RiskImpact.NEGATIVE, "No trades recorded, dead token", 15
            )
        idle_hours = (now - last_trade_at) / SECONDS_PER_HOUR
        if idle_hours > HOURS_PER_DAY:
            return RiskFactor(
                "Last Trade", f"{_nearest(idle_hours / HOURS_PER_DAY)}d ago", RiskImpact.NEGATIVE,
                "No recent trading activity, potentially abandoned", 10,
            )
        return RiskFactor(
            "Last Trade", f"{_nearest(idle_hours)}h ago", RiskImpact.POSITIVE,
            "Recently traded, active market", 0,
        )


_DEFAULT_ENGINE = RiskScoreEngine()


def compute_risk_score(curve: CurveSnapshot, now: Optional[float] = None) -> RiskResult:
    """Score ``curve`` with the default wall-clock engine."""

    return _DEFAULT_ENGINE.score(curve, now=now)


__all__ = ["RiskScoreEngine", "compute_risk_score", "level_for_score"]
