"""Per-user simulated balance, holdings, and trade history."""

from __future__ import annotations

import hashlib
import math
import time
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional, Union, assert_never

from ..config.settings import LedgerConfig, get_app_config
from ..datalake.schemas import (
    Holding,
    Portfolio,
    TradeRecord,
    TradeSide,
    TradeType,
    parse_float,
)
from ..datalake.storage import InMemoryPortfolioStore, PortfolioStore
from ..utils.constants import epoch_millis


@dataclass(slots=True, frozen=True)
class InsufficientBalance:
    """The requested debit exceeds the available balance."""

    required: float
    available: float

    @property
    def message(self) -> str:
        return f"Insufficient balance: required {self.required:.2f}, available {self.available:.2f}"


@dataclass(slots=True, frozen=True)
class InvalidInput:
    """A required field is missing or malformed."""

    field: str
    reason: str

    @property
    def message(self) -> str:
        return f"Invalid value for '{self.field}': {self.reason}"


LedgerError = Union[InsufficientBalance, InvalidInput]


@dataclass(slots=True, frozen=True)
class TradeRequest:
    user_id: int
    symbol: str
    side: TradeSide
    amount: float
    price: float
    type: TradeType = TradeType.TRADE
    curve_id: Optional[str] = None
    name: Optional[str] = None

    @property
    def holding_key(self) -> str:
        return self.curve_id or self.symbol


@dataclass(slots=True, frozen=True)
class TradeResult:
    """Outcome of a ledger mutation; ``error`` is set when nothing was changed."""

    portfolio: Optional[Portfolio]
    error: Optional[LedgerError] = None
    record: Optional[TradeRecord] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def derive_wallet_address(user_id: int, salt: str) -> str:
    digest = hashlib.sha256(f"{salt}{user_id}".encode("utf-8")).hexdigest()
    return f"0x{digest[:40]}"


def parse_user_id(value: Any) -> Union[int, InvalidInput]:
    if isinstance(value, bool) or value is None or value == "":
        return InvalidInput("userId", "required")
    try:
        number = float(value) if isinstance(value, str) else value
        user_id = int(number)
    except (TypeError, ValueError, OverflowError):
        return InvalidInput("userId", "must be a positive integer")
    if user_id != number or user_id <= 0:
        return InvalidInput("userId", "must be a positive integer")
    return user_id


def validate_trade_request(request: TradeRequest) -> Optional[InvalidInput]:
    if isinstance(request.user_id, bool) or not isinstance(request.user_id, int) or request.user_id <= 0:
        return InvalidInput("userId", "must be a positive integer")
    if not request.symbol:
        return InvalidInput("symbol", "required")
    if not isinstance(request.side, TradeSide):
        return InvalidInput("side", "must be one of buy, sell")
    if not isinstance(request.type, TradeType):
        return InvalidInput("type", "must be one of trade, limit_order, strategy, reserve")
    if not math.isfinite(request.amount) or request.amount <= 0:
        return InvalidInput("amount", "must be a positive number")
    if not math.isfinite(request.price) or request.price < 0:
        return InvalidInput("price", "must be a non-negative number")
    if request.type is not TradeType.RESERVE and request.side is TradeSide.BUY and request.price <= 0:
        return InvalidInput("price", "must be a positive number for buys")
    return None


def parse_trade_request(payload: Mapping[str, Any]) -> Union[TradeRequest, InvalidInput]:
    """Convert the JSON trade request shape into a validated ``TradeRequest``."""

    user_id = parse_user_id(payload.get("userId"))
    if isinstance(user_id, InvalidInput):
        return user_id
    for required in ("symbol", "side", "amount", "price"):
        if payload.get(required) in (None, ""):
            return InvalidInput(required, "required")
    try:
        side = TradeSide(str(payload["side"]).strip().lower())
    except ValueError:
        return InvalidInput("side", "must be one of buy, sell")
    raw_type = payload.get("type") or TradeType.TRADE.value
    try:
        trade_type = TradeType(str(raw_type).strip().lower())
    except ValueError:
        return InvalidInput("type", "must be one of trade, limit_order, strategy, reserve")
    request = TradeRequest(
        user_id=user_id,
        symbol=str(payload["symbol"]),
        side=side,
        amount=parse_float(payload["amount"]),
        price=parse_float(payload["price"]),
        type=trade_type,
        curve_id=str(payload["curveId"]) if payload.get("curveId") else None,
        name=str(payload["name"]) if payload.get("name") else None,
    )
    invalid = validate_trade_request(request)
    return invalid if invalid is not None else request


class PortfolioLedger:
    """Applies buy, sell, and reserve instructions to per-user portfolios.

    Every operation runs under the store's lock for the user id, reads the
    portfolio, validates, mutates, and writes it back. Balance checks happen
    before any mutation, so a rejected instruction leaves the stored
    portfolio exactly as it was.
    """

    def __init__(
        self,
        store: Optional[PortfolioStore] = None,
        config: Optional[LedgerConfig] = None,
        *,
        clock: Callable[[], float] = time.time,
        id_factory: Callable[[], str] = lambda: str(uuid.uuid4()),
    ) -> None:
        self._store = store if store is not None else InMemoryPortfolioStore()
        self._config = config or get_app_config().ledger
        self._clock = clock
        self._id_factory = id_factory

    @property
    def seed_balance(self) -> float:
        return self._config.seed_balance

    def get_portfolio(self, user_id: int) -> Portfolio:
        with self._store.lock(user_id):
            return self._load_or_seed(user_id)

    def record_trade(self, request: TradeRequest) -> TradeResult:
        invalid = validate_trade_request(request)
        if invalid is not None:
            return TradeResult(portfolio=None, error=invalid)
        with self._store.lock(request.user_id):
            portfolio = self._load_or_seed(request.user_id)
            error = self._apply(portfolio, request)
            if error is not None:
                return TradeResult(portfolio=portfolio, error=error)
            record = TradeRecord(
                id=self._id_factory(),
                timestamp=self._now_ms(),
                type=request.type,
                symbol=request.symbol,
                side=TradeSide.BUY if request.type is TradeType.RESERVE else request.side,
                amount=request.amount,
                price=request.price,
            )
            portfolio.trades.insert(0, record)
            del portfolio.trades[self._config.trade_history_limit:]
            portfolio.updated_at = record.timestamp
            self._store.put(portfolio)
            return TradeResult(portfolio=portfolio, record=record)

    def _apply(self, portfolio: Portfolio, request: TradeRequest) -> Optional[InsufficientBalance]:
        match request.type:
            case TradeType.RESERVE:
                return self._reserve(portfolio, request)
            case TradeType.TRADE | TradeType.LIMIT_ORDER | TradeType.STRATEGY:
                return self._settle(portfolio, request)
            case _:
                assert_never(request.type)

    def _settle(self, portfolio: Portfolio, request: TradeRequest) -> Optional[InsufficientBalance]:
        match request.side:
            case TradeSide.BUY:
                return self._buy(portfolio, request)
            case TradeSide.SELL:
                self._sell(portfolio, request)
                return None
            case _:
                assert_never(request.side)

    def _reserve(self, portfolio: Portfolio, request: TradeRequest) -> Optional[InsufficientBalance]:
        if request.amount > portfolio.usdc_balance:
            return InsufficientBalance(required=request.amount, available=portfolio.usdc_balance)
        portfolio.usdc_balance -= request.amount
        return None

    def _buy(self, portfolio: Portfolio, request: TradeRequest) -> Optional[InsufficientBalance]:
        if request.amount > portfolio.usdc_balance:
            return InsufficientBalance(required=request.amount, available=portfolio.usdc_balance)
        portfolio.usdc_balance -= request.amount
        quantity = request.amount / request.price
        key = request.holding_key
        existing = portfolio.holding(key)
        if existing is None:
            portfolio.holdings[key] = Holding(
                curve_id=key,
                symbol=request.symbol,
                name=request.name or request.symbol,
                quantity=quantity,
                avg_buy_price=request.price,
                total_cost=request.amount,
            )
            return None
        total_cost = existing.total_cost + request.amount
        total_quantity = existing.quantity + quantity
        existing.avg_buy_price = total_cost / total_quantity if total_quantity > 0 else request.price
        existing.quantity = total_quantity
        existing.total_cost = total_cost
        return None

    def _sell(self, portfolio: Portfolio, request: TradeRequest) -> None:
        # Settlement is notional: the credit does not depend on holding state.
        portfolio.usdc_balance += request.amount
        key = request.holding_key
        existing = portfolio.holding(key)
        if existing is None:
            return
        sold = request.amount / request.price if request.price > 0 else 0.0
        existing.quantity = max(0.0, existing.quantity - sold)
        existing.total_cost = max(0.0, existing.total_cost - request.amount)
        if existing.quantity <= 0:
            del portfolio.holdings[key]
            return
        existing.avg_buy_price = existing.total_cost / existing.quantity

    def _load_or_seed(self, user_id: int) -> Portfolio:
        portfolio = self._store.get(user_id)
        if portfolio is not None:
            return portfolio
        now = self._now_ms()
        portfolio = Portfolio(
            user_id=user_id,
            wallet_address=derive_wallet_address(user_id, self._config.wallet_salt),
            usdc_balance=self._config.seed_balance,
            created_at=now,
            updated_at=now,
        )
        self._store.put(portfolio)
        return portfolio

    def _now_ms(self) -> int:
        return epoch_millis(self._clock())


__all__ = [
    "InsufficientBalance",
    "InvalidInput",
    "LedgerError",
    "PortfolioLedger",
    "TradeRequest",
    "TradeResult",
    "derive_wallet_address",
    "parse_trade_request",
    "parse_user_id",
    "validate_trade_request",
]
