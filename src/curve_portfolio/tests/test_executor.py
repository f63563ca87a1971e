from __future__ import annotations

import math

import pytest

from curve_portfolio.analytics.ledger import InsufficientBalance, InvalidInput, PortfolioLedger
from curve_portfolio.config.settings import LedgerConfig
from curve_portfolio.datalake.schemas import (
    Allocation,
    RiskLevel,
    StrategyPlan,
    StrategyTier,
    TradeType,
)
from curve_portfolio.datalake.storage import InMemoryPortfolioStore
from curve_portfolio.strategy.executor import StrategyExecutor


def _allocation(curve_id: str, weight: int, price: float) -> Allocation:
    return Allocation(
        curve_id=curve_id,
        symbol=curve_id.upper(),
        name=f"Token {curve_id}",
        weight=weight,
        risk_score=20,
        risk_level=RiskLevel.LOW,
        volume_eth=1.0,
        trade_count=10,
        price_usd=price,
    )


def _plan(*allocations: Allocation) -> StrategyPlan:
    return StrategyPlan(
        tier=StrategyTier.BALANCED,
        description="test",
        apr_min=15,
        apr_max=25,
        risk_label="Medium Risk",
        allocations=list(allocations),
    )


def _executor() -> tuple[StrategyExecutor, PortfolioLedger]:
    ledger = PortfolioLedger(InMemoryPortfolioStore(), LedgerConfig())
    return StrategyExecutor(ledger), ledger


def test_invest_splits_amount_by_weight() -> None:
    executor, ledger = _executor()
    plan = _plan(_allocation("a", 50, 0.5), _allocation("b", 30, 2.0), _allocation("c", 20, 1.0))

    execution = executor.invest(1, plan, 60)

    assert execution.ok
    assert [fill.amount for fill in execution.fills] == pytest.approx([30, 18, 12])
    assert all(fill.type is TradeType.STRATEGY for fill in execution.fills)
    portfolio = ledger.get_portfolio(1)
    assert portfolio.usdc_balance == pytest.approx(40)
    assert portfolio.holding("a").quantity == pytest.approx(60)
    assert portfolio.holding("b").quantity == pytest.approx(9)
    assert portfolio.holding("c").name == "Token c"


def test_invest_whole_balance_with_rounding_dust() -> None:
    executor, ledger = _executor()
    plan = _plan(_allocation("a", 34, 1.0), _allocation("b", 33, 1.0), _allocation("c", 33, 1.0))

    execution = executor.invest(2, plan, 100)

    assert execution.ok
    assert len(execution.fills) == 3
    assert ledger.get_portfolio(2).usdc_balance == pytest.approx(0, abs=1e-9)


def test_invest_skips_unpriced_allocations() -> None:
    executor, _ = _executor()
    plan = _plan(_allocation("a", 60, 1.0), _allocation("b", 40, math.nan))

    execution = executor.invest(3, plan, 10)

    assert execution.ok
    assert execution.skipped == ["b"]
    assert [fill.symbol for fill in execution.fills] == ["A"]


def test_invest_rejects_amount_above_balance() -> None:
    executor, ledger = _executor()

    execution = executor.invest(4, _plan(_allocation("a", 100, 1.0)), 150)

    assert execution.error == InsufficientBalance(required=150, available=100)
    assert execution.fills == []
    assert ledger.get_portfolio(4).holdings == {}


@pytest.mark.parametrize("amount", [0, -5, math.nan])
def test_invest_rejects_non_positive_amount(amount: float) -> None:
    executor, _ = _executor()

    execution = executor.invest(5, _plan(_allocation("a", 100, 1.0)), amount)

    assert isinstance(execution.error, InvalidInput)
    assert execution.error.field == "amount"
