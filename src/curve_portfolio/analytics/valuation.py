"""Mark-to-market valuation of simulated portfolios."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping

from ..datalake.schemas import Holding, Portfolio


@dataclass(slots=True, frozen=True)
class HoldingValuation:
    """Current value and unrealised PnL of a single holding."""

    curve_id: str
    symbol: str
    quantity: float
    mark_price: float
    market_value: float
    cost_basis: float
    unrealized_pnl: float
    unrealized_pnl_pct: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "curveId": self.curve_id,
            "symbol": self.symbol,
            "quantity": self.quantity,
            "markPrice": self.mark_price,
            "marketValue": self.market_value,
            "costBasis": self.cost_basis,
            "unrealizedPnl": self.unrealized_pnl,
            "unrealizedPnlPct": self.unrealized_pnl_pct,
        }


@dataclass(slots=True, frozen=True)
class PortfolioValuation:
    user_id: int
    cash_balance: float
    holdings_value: float
    total_value: float
    total_pnl: float
    total_pnl_pct: float
    holdings: List[HoldingValuation] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "userId": self.user_id,
            "cashBalance": self.cash_balance,
            "holdingsValue": self.holdings_value,
            "totalValue": self.total_value,
            "totalPnl": self.total_pnl,
            "totalPnlPct": self.total_pnl_pct,
            "holdings": [item.to_dict() for item in self.holdings],
        }


def _mark_price(holding: Holding, prices: Mapping[str, float]) -> float:
    price = prices.get(holding.curve_id)
    if price is None or not math.isfinite(price) or price <= 0:
        return holding.avg_buy_price
    return price


def value_holding(holding: Holding, prices: Mapping[str, float]) -> HoldingValuation:
    mark_price = _mark_price(holding, prices)
    market_value = holding.quantity * mark_price
    unrealized = market_value - holding.total_cost
    pnl_pct = (unrealized / holding.total_cost) * 100.0 if holding.total_cost else 0.0
    return HoldingValuation(
        curve_id=holding.curve_id,
        symbol=holding.symbol,
        quantity=holding.quantity,
        mark_price=mark_price,
        market_value=market_value,
        cost_basis=holding.total_cost,
        unrealized_pnl=unrealized,
        unrealized_pnl_pct=pnl_pct,
    )


def value_portfolio(
    portfolio: Portfolio,
    prices: Mapping[str, float],
    seed_balance: float = 100.0,
) -> PortfolioValuation:
    """Value holdings at ``prices`` (keyed by curve id), falling back to the average buy price."""

    holdings = [value_holding(holding, prices) for holding in portfolio.holdings.values()]
    holdings_value = sum(item.market_value for item in holdings)
    total_value = portfolio.usdc_balance + holdings_value
    return PortfolioValuation(
        user_id=portfolio.user_id,
        cash_balance=portfolio.usdc_balance,
        holdings_value=holdings_value,
        total_value=total_value,
        total_pnl=total_value - seed_balance,
        total_pnl_pct=((total_value - seed_balance) / seed_balance) * 100.0 if seed_balance else 0.0,
        holdings=holdings,
    )


__all__ = ["HoldingValuation", "PortfolioValuation", "value_holding", "value_portfolio"]
