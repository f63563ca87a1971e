"""Invest a lump sum across a strategy plan's allocations."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import List, Optional

from ..analytics.ledger import (
    InsufficientBalance,
    InvalidInput,
    LedgerError,
    PortfolioLedger,
    TradeRequest,
)
from ..datalake.schemas import Portfolio, StrategyPlan, TradeRecord, TradeSide, TradeType


@dataclass(slots=True, frozen=True)
class StrategyExecution:
    portfolio: Optional[Portfolio]
    fills: List[TradeRecord] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    error: Optional[LedgerError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class StrategyExecutor:
    """Turns a plan into one strategy-tagged buy per allocation."""

    def __init__(self, ledger: PortfolioLedger) -> None:
        self._ledger = ledger

    def invest(self, user_id: int, plan: StrategyPlan, amount: float) -> StrategyExecution:
        if not math.isfinite(amount) or amount <= 0:
            return StrategyExecution(portfolio=None, error=InvalidInput("amount", "must be a positive number"))
        portfolio = self._ledger.get_portfolio(user_id)
        if amount > portfolio.usdc_balance:
            return StrategyExecution(
                portfolio=portfolio,
                error=InsufficientBalance(required=amount, available=portfolio.usdc_balance),
            )
        fills: List[TradeRecord] = []
        skipped: List[str] = []
        for allocation in plan.allocations:
            # Capped at the live balance so float dust cannot fail the final slice.
            slice_amount = min(amount * allocation.weight / 100, portfolio.usdc_balance)
            price = allocation.price_usd
            if slice_amount <= 0 or not math.isfinite(price) or price <= 0:
                skipped.append(allocation.curve_id)
                continue
            result = self._ledger.record_trade(
                TradeRequest(
                    user_id=user_id,
                    symbol=allocation.symbol,
                    side=TradeSide.BUY,
                    amount=slice_amount,
                    price=price,
                    type=TradeType.STRATEGY,
                    curve_id=allocation.curve_id,
                    name=allocation.name,
                )
            )
            if not result.ok:
                return StrategyExecution(
                    portfolio=result.portfolio, fills=fills, skipped=skipped, error=result.error
                )
            portfolio = result.portfolio
            if result.record is not None:
                fills.append(result.record)
        return StrategyExecution(portfolio=portfolio, fills=fills, skipped=skipped)


__all__ = ["StrategyExecution", "StrategyExecutor"]
