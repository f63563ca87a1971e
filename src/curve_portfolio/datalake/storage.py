"""Persistence backends for user portfolios."""

from __future__ import annotations

import copy
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import ContextManager, Dict, Hashable, Iterator, List, Optional, Protocol

from ..config.settings import StorageBackend, StorageConfig, get_app_config
from .schemas import Holding, Portfolio, TradeRecord, TradeSide, TradeType


class KeyedLocks:
    """Hands out one lock per key so operations on different keys never contend."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: Dict[Hashable, threading.Lock] = {}

    def get(self, key: Hashable) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            return lock

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        lock = self.get(key)
        with lock:
            yield


class PortfolioStore(Protocol):
    """Interface describing portfolio backends (memory, SQLite, ...)."""

    def get(self, user_id: int) -> Optional[Portfolio]:
        ...

    def put(self, portfolio: Portfolio) -> None:
        ...

    def lock(self, user_id: int) -> ContextManager[None]:
        ...

    def user_ids(self) -> List[int]:
        ...


class InMemoryPortfolioStore:
    """Process-lifetime table of portfolios keyed by user id."""

    def __init__(self) -> None:
        self._portfolios: Dict[int, Portfolio] = {}
        self._locks = KeyedLocks()

    def get(self, user_id: int) -> Optional[Portfolio]:
        portfolio = self._portfolios.get(user_id)
        return copy.deepcopy(portfolio) if portfolio is not None else None

    def put(self, portfolio: Portfolio) -> None:
        self._portfolios[portfolio.user_id] = copy.deepcopy(portfolio)

    def lock(self, user_id: int) -> ContextManager[None]:
        return self._locks.hold(user_id)

    def user_ids(self) -> List[int]:
        return list(self._portfolios)


CREATE_PORTFOLIO_TABLE = """
CREATE TABLE IF NOT EXISTS portfolios (
    user_id INTEGER PRIMARY KEY,
    wallet_address TEXT NOT NULL,
    usdc_balance REAL NOT NULL,
    created_at INTEGER NOT NULL,
    updated_at INTEGER NOT NULL
);
"""

CREATE_HOLDING_TABLE = """
CREATE TABLE IF NOT EXISTS holdings (
    user_id INTEGER NOT NULL,
    position INTEGER NOT NULL,
    curve_id TEXT NOT NULL,
    symbol TEXT NOT NULL,
    name TEXT NOT NULL,
    quantity REAL NOT NULL,
    avg_buy_price REAL NOT NULL,
    total_cost REAL NOT NULL,
    PRIMARY KEY (user_id, curve_id)
);
"""

CREATE_TRADE_TABLE = """
CREATE TABLE IF NOT EXISTS trades (
    id TEXT PRIMARY KEY,
    user_id INTEGER NOT NULL,
    position INTEGER NOT NULL,
    timestamp INTEGER NOT NULL,
    type TEXT NOT NULL,
    symbol TEXT NOT NULL,
    side TEXT NOT NULL,
    amount REAL NOT NULL,
    price REAL NOT NULL
);
"""

CREATE_TRADE_INDEX = """
CREATE INDEX IF NOT EXISTS idx_trades_user_position ON trades (user_id, position);
"""


class SQLitePortfolioStore:
    """SQLite-backed portfolio table; each ``put`` rewrites one user's rows atomically."""

    def __init__(self, database_path: Path) -> None:
        self._path = Path(database_path)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._locks = KeyedLocks()
        self._initialize()

    def _initialize(self) -> None:
        with self._connect() as con:
            con.execute(CREATE_PORTFOLIO_TABLE)
            con.execute(CREATE_HOLDING_TABLE)
            con.execute(CREATE_TRADE_TABLE)
            con.execute(CREATE_TRADE_INDEX)
            con.commit()

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        con = sqlite3.connect(self._path)
        try:
            yield con
        finally:
            con.close()

    def lock(self, user_id: int) -> ContextManager[None]:
        return self._locks.hold(user_id)

    def get(self, user_id: int) -> Optional[Portfolio]:
        with self._connect() as con:
            row = con.execute(
                """
                SELECT user_id, wallet_address, usdc_balance, created_at, updated_at
                FROM portfolios WHERE user_id = ?
                """,
                (user_id,),
            ).fetchone()
            if row is None:
                return None
            holding_rows = con.execute(
                """
                SELECT curve_id, symbol, name, quantity, avg_buy_price, total_cost
                FROM holdings WHERE user_id = ? ORDER BY position
                """,
                (user_id,),
            ).fetchall()
            trade_rows = con.execute(
                """
                SELECT id, timestamp, type, symbol, side, amount, price
                FROM trades WHERE user_id = ? ORDER BY position
                """,
                (user_id,),
            ).fetchall()
        holdings = {
            curve_id: Holding(
                curve_id=curve_id,
                symbol=symbol,
                name=name,
                quantity=quantity,
                avg_buy_price=avg_buy_price,
                total_cost=total_cost,
            )
            for curve_id, symbol, name, quantity, avg_buy_price, total_cost in holding_rows
        }
        trades = [
            TradeRecord(
                id=trade_id,
                timestamp=timestamp,
                type=TradeType(trade_type),
                symbol=symbol,
                side=TradeSide(side),
                amount=amount,
                price=price,
            )
            for trade_id, timestamp, trade_type, symbol, side, amount, price in trade_rows
        ]
        user, wallet_address, balance, created_at, updated_at = row
        return Portfolio(
            user_id=user,
            wallet_address=wallet_address,
            usdc_balance=balance,
            created_at=created_at,
            updated_at=updated_at,
            holdings=holdings,
            trades=trades,
        )

    def put(self, portfolio: Portfolio) -> None:
        with self._connect() as con:
            con.execute(
                """
                INSERT INTO portfolios (user_id, wallet_address, usdc_balance, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(user_id) DO UPDATE SET
                    wallet_address = excluded.wallet_address,
                    usdc_balance = excluded.usdc_balance,
                    created_at = excluded.created_at,
                    updated_at = excluded.updated_at
                """,
                (
                    portfolio.user_id,
                    portfolio.wallet_address,
                    portfolio.usdc_balance,
                    portfolio.created_at,
                    portfolio.updated_at,
                ),
            )
            con.execute("DELETE FROM holdings WHERE user_id = ?", (portfolio.user_id,))
            con.executemany(
                """
                INSERT INTO holdings (
                    user_id, position, curve_id, symbol, name, quantity, avg_buy_price, total_cost
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    (
                        portfolio.user_id,
                        position,
                        holding.curve_id,
                        holding.symbol,
                        holding.name,
                        holding.quantity,
                        holding.avg_buy_price,
                        holding.total_cost,
                    )
                    for position, holding in enumerate(portfolio.holdings.values())
                ],
            )
            con.execute("DELETE FROM trades WHERE user_id = ?", (portfolio.user_id,))
            con.executemany(
                """
                INSERT INTO trades (id, user_id, position, timestamp, type, symbol, side, amount, price)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    (
                        trade.id,
                        portfolio.user_id,
                        position,
                        trade.timestamp,
                        trade.type.value,
                        trade.symbol,
                        trade.side.value,
                        trade.amount,
                        trade.price,
                    )
                    for position, trade in enumerate(portfolio.trades)
                ],
            )
            con.commit()

    def user_ids(self) -> List[int]:
        with self._connect() as con:
            rows = con.execute("SELECT user_id FROM portfolios ORDER BY user_id").fetchall()
        return [row[0] for row in rows]


def build_portfolio_store(config: Optional[StorageConfig] = None) -> PortfolioStore:
    """Instantiate the backend selected by ``storage.backend``."""

    cfg = config or get_app_config().storage
    if cfg.backend == StorageBackend.SQLITE:
        return SQLitePortfolioStore(cfg.database_path)
    return InMemoryPortfolioStore()


__all__ = [
    "InMemoryPortfolioStore",
    "KeyedLocks",
    "PortfolioStore",
    "SQLitePortfolioStore",
    "build_portfolio_store",
]
