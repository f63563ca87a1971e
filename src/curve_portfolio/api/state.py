"""Shared API state wiring the ledger, allocator, and indexer client together."""

from __future__ import annotations

import math
from typing import Any, Dict, List, Optional

from ..analysis.risk import RiskScoreEngine
from ..analytics.ledger import PortfolioLedger
from ..analytics.valuation import PortfolioValuation, value_portfolio
from ..config.settings import AppConfig, get_app_config
from ..datalake.schemas import CurveSnapshot, Portfolio, StrategyPlan, StrategyTier
from ..datalake.storage import build_portfolio_store
from ..ingestion.subgraph import SubgraphClient
from ..monitoring.logger import get_logger
from ..monitoring.metrics import METRICS, MetricsRegistry
from ..strategy import LimitOrderBook, StrategyAllocator, StrategyExecutor


class ApiState:
    """Holds the long-lived collaborators behind the HTTP routes."""

    def __init__(
        self,
        *,
        config: AppConfig,
        ledger: PortfolioLedger,
        indexer: SubgraphClient,
        risk_engine: Optional[RiskScoreEngine] = None,
        order_book: Optional[LimitOrderBook] = None,
        metrics: MetricsRegistry = METRICS,
    ) -> None:
        self.config = config
        self.ledger = ledger
        self.indexer = indexer
        self.risk_engine = risk_engine or RiskScoreEngine()
        self.allocator = StrategyAllocator(self.risk_engine)
        self.executor = StrategyExecutor(ledger)
        self.order_book = order_book or LimitOrderBook()
        self.metrics = metrics
        self._logger = get_logger(__name__)

    @classmethod
    def from_config(cls, config: Optional[AppConfig] = None) -> "ApiState":
        app_config = config or get_app_config()
        store = build_portfolio_store(app_config.storage)
        return cls(
            config=app_config,
            ledger=PortfolioLedger(store, app_config.ledger),
            indexer=SubgraphClient(app_config.indexer),
        )

    def latest_curves(self) -> List[CurveSnapshot]:
        return self.indexer.fetch_curves(self.config.api.curve_page_size)

    def strategy_plan(self, tier: StrategyTier | str | None) -> StrategyPlan:
        curves = self.latest_curves()
        plan = self.allocator.allocate(tier, curves)
        self.metrics.increment(f"strategy.plans.{plan.tier.value}", 1)
        self._logger.info(
            "Strategy plan built",
            extra={"tier": plan.tier.value, "allocations": len(plan.allocations), "curves": len(curves)},
        )
        return plan

    def analyze(self, curve_id: str) -> Optional[Dict[str, Any]]:
        curve = self.indexer.fetch_curve(curve_id)
        if curve is None:
            return None
        trades = self.indexer.fetch_trades(curve_id, self.config.api.analyze_trade_count)
        risk = self.risk_engine.score(curve)
        recent_volume = sum(trade.amount_eth for trade in trades if math.isfinite(trade.amount_eth))
        return {
            "curve": curve.to_dict(),
            "risk": risk.to_dict(),
            "tradeSummary": {
                "uniqueTraders": len({trade.trader for trade in trades}),
                "buys": sum(1 for trade in trades if trade.side == "BUY"),
                "sells": sum(1 for trade in trades if trade.side == "SELL"),
                "recentVolume": f"{recent_volume:.4f}",
            },
        }

    def valuation(self, portfolio: Portfolio) -> PortfolioValuation:
        prices: Dict[str, float] = {}
        for curve_id in portfolio.holdings:
            curve = self.indexer.fetch_curve(curve_id)
            if curve is not None:
                prices[curve_id] = curve.last_price_usd
        return value_portfolio(portfolio, prices, seed_balance=self.ledger.seed_balance)


__all__ = ["ApiState"]
