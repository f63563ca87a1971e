"""Data models shared by the risk engine, ledger, allocator, and API layers."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional


def parse_float(value: Any) -> float:
    """Parse an indexer numeric string, mapping anything unparsable to NaN."""

    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float)):
        return float(value)
    try:
        return float(str(value).strip())
    except (TypeError, ValueError):
        return math.nan


def parse_count(value: Any) -> int:
    """Parse an integer count; unparsable or non-finite values become zero."""

    number = parse_float(value)
    if not math.isfinite(number):
        return 0
    return int(number)


def parse_timestamp(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    return parse_float(value)


@dataclass(slots=True, frozen=True)
class CurveSnapshot:
    """Read-only trading statistics for one bonding-curve token."""

    id: str
    created_at: float
    graduated: bool
    total_volume_eth: float
    trade_count: int
    last_trade_at: Optional[float]
    last_price_usd: float = 0.0
    last_price_eth: float = 0.0
    name: str = ""
    symbol: str = ""
    token: str = ""
    creator: str = ""
    uri: str = ""

    @classmethod
    def from_indexer(cls, payload: Mapping[str, Any]) -> "CurveSnapshot":
        created_at = parse_timestamp(payload.get("createdAt"))
        return cls(
            id=str(payload.get("id", "")),
            created_at=math.nan if created_at is None else created_at,
            graduated=bool(payload.get("graduated", False)),
            total_volume_eth=parse_float(payload.get("totalVolumeEth")),
            trade_count=parse_count(payload.get("tradeCount")),
            last_trade_at=parse_timestamp(payload.get("lastTradeAt")),
            last_price_usd=parse_float(payload.get("lastPriceUsd")),
            last_price_eth=parse_float(payload.get("lastPriceEth")),
            name=str(payload.get("name") or ""),
            symbol=str(payload.get("symbol") or ""),
            token=str(payload.get("token") or ""),
            creator=str(payload.get("creator") or ""),
            uri=str(payload.get("uri") or ""),
        )

    @property
    def has_traded(self) -> bool:
        return self.trade_count > 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "createdAt": self.created_at,
            "token": self.token,
            "name": self.name,
            "symbol": self.symbol,
            "uri": self.uri,
            "creator": self.creator,
            "graduated": self.graduated,
            "lastPriceUsd": self.last_price_usd,
            "lastPriceEth": self.last_price_eth,
            "totalVolumeEth": self.total_volume_eth,
            "tradeCount": self.trade_count,
            "lastTradeAt": self.last_trade_at,
        }


@dataclass(slots=True, frozen=True)
class CurveTrade:
    """A single swap against a curve as reported by the indexer."""

    id: str
    timestamp: float
    tx_hash: str
    trader: str
    side: str
    amount_eth: float
    amount_token: float
    price_eth: float
    price_usd: float

    @classmethod
    def from_indexer(cls, payload: Mapping[str, Any]) -> "CurveTrade":
        timestamp = parse_timestamp(payload.get("timestamp"))
        return cls(
            id=str(payload.get("id", "")),
            timestamp=math.nan if timestamp is None else timestamp,
            tx_hash=str(payload.get("txHash") or ""),
            trader=str(payload.get("trader") or ""),
            side=str(payload.get("side") or "").upper(),
            amount_eth=parse_float(payload.get("amountEth")),
            amount_token=parse_float(payload.get("amountToken")),
            price_eth=parse_float(payload.get("priceEth")),
            price_usd=parse_float(payload.get("priceUsd")),
        )


class RiskImpact(str, Enum):
    POSITIVE = "positive"
    NEUTRAL = "neutral"
    NEGATIVE = "negative"


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def emoji(self) -> str:
        return _LEVEL_EMOJI[self]


_LEVEL_EMOJI = {
    RiskLevel.LOW: "\U0001F7E2",
    RiskLevel.MEDIUM: "\U0001F7E1",
    RiskLevel.HIGH: "\U0001F534",
}


@dataclass(slots=True, frozen=True)
class RiskFactor:
    """One scored contributor to a curve's risk score."""

    name: str
    value: str
    impact: RiskImpact
    detail: str
    points: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "value": self.value,
            "impact": self.impact.value,
            "detail": self.detail,
        }


@dataclass(slots=True, frozen=True)
class RiskResult:
    """Clamped risk score, its level, and the factors that produced it."""

    score: int
    level: RiskLevel
    emoji: str
    factors: List[RiskFactor] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "score": self.score,
            "level": self.level.value,
            "emoji": self.emoji,
            "factors": [factor.to_dict() for factor in self.factors],
        }


class TradeType(str, Enum):
    TRADE = "trade"
    LIMIT_ORDER = "limit_order"
    STRATEGY = "strategy"
    RESERVE = "reserve"


class TradeSide(str, Enum):
    BUY = "buy"
    SELL = "sell"


@dataclass(slots=True)
class Holding:
    """Quantity of one token owned by a user and its running cost basis."""

    curve_id: str
    symbol: str
    name: str
    quantity: float
    avg_buy_price: float
    total_cost: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "curveId": self.curve_id,
            "symbol": self.symbol,
            "name": self.name,
            "quantity": self.quantity,
            "avgBuyPrice": self.avg_buy_price,
            "totalCost": self.total_cost,
        }


@dataclass(slots=True, frozen=True)
class TradeRecord:
    """Entry in a portfolio's capped, most-recent-first trade history."""

    id: str
    timestamp: int
    type: TradeType
    symbol: str
    side: TradeSide
    amount: float
    price: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp,
            "type": self.type.value,
            "symbol": self.symbol,
            "side": self.side.value,
            "amount": self.amount,
            "price": self.price,
        }


@dataclass(slots=True)
class Portfolio:
    """Simulated balance, holdings, and trade history for a single user."""

    user_id: int
    wallet_address: str
    usdc_balance: float
    created_at: int
    updated_at: int
    holdings: Dict[str, Holding] = field(default_factory=dict)
    trades: List[TradeRecord] = field(default_factory=list)

    def holding(self, curve_id: str) -> Optional[Holding]:
        return self.holdings.get(curve_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "userId": self.user_id,
            "walletAddress": self.wallet_address,
            "usdcBalance": self.usdc_balance,
            "holdings": [holding.to_dict() for holding in self.holdings.values()],
            "trades": [trade.to_dict() for trade in self.trades],
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }


class StrategyTier(str, Enum):
    CONSERVATIVE = "conservative"
    BALANCED = "balanced"
    AGGRESSIVE = "aggressive"

    @classmethod
    def parse(cls, value: "StrategyTier | str | None") -> "StrategyTier":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value or "").strip().lower())
        except ValueError:
            return cls.BALANCED


@dataclass(slots=True, frozen=True)
class Allocation:
    """Target weight for one curve inside a strategy plan."""

    curve_id: str
    symbol: str
    name: str
    weight: int
    risk_score: int
    risk_level: RiskLevel
    volume_eth: float
    trade_count: int
    price_usd: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "symbol": self.symbol,
            "name": self.name,
            "curveId": self.curve_id,
            "weight": self.weight,
            "riskScore": self.risk_score,
            "riskLevel": self.risk_level.value,
            "volumeEth": f"{self.volume_eth:.4f}",
            "tradeCount": self.trade_count,
            "priceUsd": self.price_usd,
        }


@dataclass(slots=True, frozen=True)
class StrategyPlan:
    """Ranked, weighted target portfolio for a strategy tier."""

    tier: StrategyTier
    description: str
    apr_min: float
    apr_max: float
    risk_label: str
    allocations: List[Allocation] = field(default_factory=list)
    candidates: List[CurveSnapshot] = field(default_factory=list)

    @property
    def total_weight(self) -> int:
        return sum(allocation.weight for allocation in self.allocations)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tier": self.tier.value,
            "description": self.description,
            "aprRange": {"min": self.apr_min, "max": self.apr_max},
            "riskLabel": self.risk_label,
            "allocations": [allocation.to_dict() for allocation in self.allocations],
            "allTokens": [
                {
                    "id": curve.id,
                    "name": curve.name,
                    "symbol": curve.symbol,
                    "lastPriceUsd": curve.last_price_usd,
                    "totalVolumeEth": curve.total_volume_eth,
                }
                for curve in self.candidates
            ],
        }


class LimitOrderStatus(str, Enum):
    PENDING = "pending"
    FILLED = "filled"
    CANCELLED = "cancelled"


@dataclass(slots=True)
class LimitOrder:
    """A stored limit order. Nothing transitions it to filled automatically."""

    id: str
    symbol: str
    curve_id: str
    side: TradeSide
    trigger_price: float
    amount: float
    current_price: float
    created_at: int
    status: LimitOrderStatus = LimitOrderStatus.PENDING
    user_id: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "symbol": self.symbol,
            "curveId": self.curve_id,
            "side": self.side.value,
            "triggerPrice": self.trigger_price,
            "amount": self.amount,
            "currentPrice": self.current_price,
            "status": self.status.value,
            "createdAt": self.created_at,
            "userId": self.user_id,
        }


__all__ = [
    "Allocation",
    "CurveSnapshot",
    "CurveTrade",
    "Holding",
    "LimitOrder",
    "LimitOrderStatus",
    "Portfolio",
    "RiskFactor",
    "RiskImpact",
    "RiskLevel",
    "RiskResult",
    "StrategyPlan",
    "StrategyTier",
    "TradeRecord",
    "TradeSide",
    "TradeType",
    "parse_count",
    "parse_float",
    "parse_timestamp",
]
