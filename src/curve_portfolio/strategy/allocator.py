"""Ranks scored curves into a weighted target portfolio per strategy tier."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable, List, Optional

from ..analysis.risk import RiskScoreEngine
from ..datalake.schemas import (
    Allocation,
    CurveSnapshot,
    RiskResult,
    StrategyPlan,
    StrategyTier,
)


@dataclass(slots=True, frozen=True)
class TierProfile:
    description: str
    apr_min: float
    apr_max: float
    risk_label: str


TIER_PROFILES = {
    StrategyTier.CONSERVATIVE: TierProfile(
        description=(
            "Focuses on the most liquid and actively traded tokens with the lowest risk "
            "scores. Prioritizes capital preservation."
        ),
        apr_min=8,
        apr_max=12,
        risk_label="Low Risk",
    ),
    StrategyTier.BALANCED: TierProfile(
        description=(
            "Balanced mix of established high-volume tokens and promising mid-cap picks. "
            "Moderate risk with solid upside."
        ),
        apr_min=15,
        apr_max=25,
        risk_label="Medium Risk",
    ),
    StrategyTier.AGGRESSIVE: TierProfile(
        description=(
            "Targets high-activity tokens with strong trading momentum. Higher volatility "
            "but higher potential returns."
        ),
        apr_min=30,
        apr_max=60,
        risk_label="High Risk",
    ),
}

CONSERVATIVE_MAX_SCORE = 40
CONSERVATIVE_SLOTS = 5
AGGRESSIVE_MIN_SCORE = 30
AGGRESSIVE_SLOTS = 7
BALANCED_CORE_SLOTS = 3
BALANCED_SATELLITE_SLOTS = 3
BALANCED_SATELLITE_MAX_SCORE = 55
MIN_QUALIFIED = 3


@dataclass(slots=True, frozen=True)
class ScoredCurve:
    curve: CurveSnapshot
    risk: RiskResult

    @property
    def volume(self) -> float:
        return self.curve.total_volume_eth

    @property
    def trades(self) -> int:
        return self.curve.trade_count


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


class StrategyAllocator:
    """Stateless allocator driven by the risk engine's scores."""

    def __init__(self, risk_engine: Optional[RiskScoreEngine] = None) -> None:
        self._risk_engine = risk_engine or RiskScoreEngine()

    def allocate(
        self,
        tier: StrategyTier | str | None,
        curves: Iterable[CurveSnapshot],
        now: Optional[float] = None,
    ) -> StrategyPlan:
        resolved = StrategyTier.parse(tier)
        profile = TIER_PROFILES[resolved]
        scored = [ScoredCurve(curve, self._risk_engine.score(curve, now=now)) for curve in curves]
        active = sorted(
            (item for item in scored if item.curve.has_traded),
            key=lambda item: item.volume,
            reverse=True,
        )
        selected = self._select(resolved, active)
        return StrategyPlan(
            tier=resolved,
            description=profile.description,
            apr_min=profile.apr_min,
            apr_max=profile.apr_max,
            risk_label=profile.risk_label,
            allocations=self._weigh(selected),
            candidates=[item.curve for item in scored if item.curve.has_traded],
        )

    def _select(self, tier: StrategyTier, active: List[ScoredCurve]) -> List[ScoredCurve]:
        if tier is StrategyTier.CONSERVATIVE:
            selected = [item for item in active if item.risk.score <= CONSERVATIVE_MAX_SCORE]
            selected = selected[:CONSERVATIVE_SLOTS]
            if len(selected) < MIN_QUALIFIED:
                selected = active[:CONSERVATIVE_SLOTS]
            return selected
        if tier is StrategyTier.AGGRESSIVE:
            by_trades = sorted(active, key=lambda item: item.trades, reverse=True)
            selected = [item for item in by_trades if item.risk.score >= AGGRESSIVE_MIN_SCORE]
            selected = selected[:AGGRESSIVE_SLOTS]
            if len(selected) < MIN_QUALIFIED:
                selected = by_trades[:AGGRESSIVE_SLOTS]
            return selected
        core = active[:BALANCED_CORE_SLOTS]
        satellites = [
            item
            for item in active[BALANCED_CORE_SLOTS:]
            if item.risk.score <= BALANCED_SATELLITE_MAX_SCORE
        ]
        return core + satellites[:BALANCED_SATELLITE_SLOTS]

    def _weigh(self, selected: List[ScoredCurve]) -> List[Allocation]:
        if not selected:
            return []
        total_volume = sum(item.volume for item in selected)
        if math.isfinite(total_volume) and total_volume > 0:
            weights = [_round_half_up(item.volume / total_volume * 100) for item in selected]
        else:
            weights = [_round_half_up(100 / len(selected)) for _ in selected]
        weights[0] += 100 - sum(weights)
        return [
            Allocation(
                curve_id=item.curve.id,
                symbol=item.curve.symbol,
                name=item.curve.name,
                weight=weight,
                risk_score=item.risk.score,
                risk_level=item.risk.level,
                volume_eth=item.volume,
                trade_count=item.trades,
                price_usd=item.curve.last_price_usd,
            )
            for item, weight in zip(selected, weights)
        ]


__all__ = ["StrategyAllocator", "TIER_PROFILES", "TierProfile", "ScoredCurve"]
