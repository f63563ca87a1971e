from __future__ import annotations

import itertools
import threading
from pathlib import Path

import pytest

from curve_portfolio.analytics.ledger import PortfolioLedger, TradeRequest
from curve_portfolio.config.settings import LedgerConfig, StorageBackend, StorageConfig
from curve_portfolio.datalake.schemas import Holding, Portfolio, TradeSide, TradeType
from curve_portfolio.datalake.storage import (
    InMemoryPortfolioStore,
    KeyedLocks,
    SQLitePortfolioStore,
    build_portfolio_store,
)


def _portfolio(user_id: int = 1) -> Portfolio:
    return Portfolio(
        user_id=user_id,
        wallet_address="0xabc",
        usdc_balance=42.5,
        created_at=1,
        updated_at=2,
        holdings={
            "B": Holding("B", "BBB", "Bee", 3.0, 2.0, 6.0),
            "A": Holding("A", "AAA", "Ay", 1.5, 4.0, 6.0),
        },
    )


def test_in_memory_store_returns_copies() -> None:
    store = InMemoryPortfolioStore()
    original = _portfolio()
    store.put(original)

    loaded = store.get(1)
    loaded.usdc_balance = 0
    loaded.holdings.clear()

    assert store.get(1).usdc_balance == 42.5
    assert list(store.get(1).holdings) == ["B", "A"]
    assert store.user_ids() == [1]
    assert store.get(2) is None


def test_sqlite_store_round_trips_portfolio(tmp_path: Path) -> None:
    store = SQLitePortfolioStore(tmp_path / "nested" / "portfolios.sqlite3")
    assert store.get(1) is None

    store.put(_portfolio())
    loaded = store.get(1)

    assert loaded == _portfolio()
    assert list(loaded.holdings) == ["B", "A"]


def test_sqlite_store_backs_ledger_across_instances(tmp_path: Path) -> None:
    path = tmp_path / "portfolios.sqlite3"
    counter = itertools.count(1)
    ledger = PortfolioLedger(
        SQLitePortfolioStore(path),
        LedgerConfig(),
        id_factory=lambda: f"t{next(counter)}",
    )
    ledger.record_trade(TradeRequest(5, "XYZ", TradeSide.BUY, 30, 3, curve_id="X"))
    ledger.record_trade(TradeRequest(5, "RSV", TradeSide.BUY, 10, 1, type=TradeType.RESERVE))

    reopened = PortfolioLedger(SQLitePortfolioStore(path), LedgerConfig())
    portfolio = reopened.get_portfolio(5)

    assert portfolio.usdc_balance == pytest.approx(60)
    assert portfolio.holding("X").quantity == pytest.approx(10)
    assert [trade.id for trade in portfolio.trades] == ["t2", "t1"]
    assert portfolio.trades[0].type is TradeType.RESERVE


def test_build_portfolio_store_selects_backend(tmp_path: Path) -> None:
    memory = build_portfolio_store(StorageConfig())
    sqlite_store = build_portfolio_store(
        StorageConfig(backend=StorageBackend.SQLITE, database_path=tmp_path / "db.sqlite3")
    )

    assert isinstance(memory, InMemoryPortfolioStore)
    assert isinstance(sqlite_store, SQLitePortfolioStore)


def test_keyed_locks_do_not_block_other_keys() -> None:
    locks = KeyedLocks()
    assert locks.get("a") is locks.get("a")
    assert locks.get("a") is not locks.get("b")

    acquired = threading.Event()

    def other_key() -> None:
        with locks.hold("b"):
            acquired.set()

    with locks.hold("a"):
        thread = threading.Thread(target=other_key)
        thread.start()
        assert acquired.wait(timeout=2)
        thread.join()
