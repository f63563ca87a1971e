"""In-memory limit order book.

Orders are stored and can be cancelled. No price watcher exists, so an order
stays ``pending`` until cancelled; ``filled`` is never set here.
"""

from __future__ import annotations

import math
import random
import string
import threading
import time
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from ..analytics.ledger import InvalidInput, parse_user_id
from ..datalake.schemas import LimitOrder, LimitOrderStatus, TradeSide, parse_float
from ..utils.constants import epoch_millis

_ID_ALPHABET = string.digits + string.ascii_lowercase


def _order_suffix(rng: random.Random, length: int = 6) -> str:
    return "".join(rng.choice(_ID_ALPHABET) for _ in range(length))


class LimitOrderBook:
    def __init__(
        self,
        *,
        clock: Callable[[], float] = time.time,
        rng: Optional[random.Random] = None,
    ) -> None:
        self._clock = clock
        self._rng = rng or random.Random()
        self._lock = threading.Lock()
        self._orders: Dict[str, LimitOrder] = {}

    def parse(self, payload: Mapping[str, Any]) -> Union[LimitOrder, InvalidInput]:
        """Validate an order payload without storing it."""

        for required in ("symbol", "curveId", "side", "triggerPrice", "amount"):
            if payload.get(required) in (None, ""):
                return InvalidInput(required, "required")
        try:
            side = TradeSide(str(payload["side"]).strip().lower())
        except ValueError:
            return InvalidInput("side", "must be one of buy, sell")
        trigger_price = parse_float(payload["triggerPrice"])
        if not math.isfinite(trigger_price) or trigger_price <= 0:
            return InvalidInput("triggerPrice", "must be a positive number")
        amount = parse_float(payload["amount"])
        if not math.isfinite(amount) or amount <= 0:
            return InvalidInput("amount", "must be a positive number")
        current_price = parse_float(payload.get("currentPrice") or 0)
        if not math.isfinite(current_price):
            current_price = 0.0
        user_id: Optional[int] = None
        if payload.get("userId") not in (None, ""):
            parsed_user = parse_user_id(payload["userId"])
            if isinstance(parsed_user, InvalidInput):
                return parsed_user
            user_id = parsed_user
        created_at = epoch_millis(self._clock())
        return LimitOrder(
            id=f"ord_{created_at}_{_order_suffix(self._rng)}",
            symbol=str(payload["symbol"]),
            curve_id=str(payload["curveId"]),
            side=side,
            trigger_price=trigger_price,
            amount=amount,
            current_price=current_price,
            created_at=created_at,
            user_id=user_id,
        )

    def add(self, order: LimitOrder) -> LimitOrder:
        with self._lock:
            self._orders[order.id] = order
        return order

    def place(self, payload: Mapping[str, Any]) -> Union[LimitOrder, InvalidInput]:
        order = self.parse(payload)
        if isinstance(order, InvalidInput):
            return order
        return self.add(order)

    def list_orders(self) -> List[LimitOrder]:
        with self._lock:
            orders = list(self._orders.values())
        return sorted(orders, key=lambda order: order.created_at, reverse=True)

    def get(self, order_id: str) -> Optional[LimitOrder]:
        with self._lock:
            return self._orders.get(order_id)

    def cancel(self, order_id: str) -> Optional[LimitOrder]:
        with self._lock:
            order = self._orders.get(order_id)
            if order is None:
                return None
            order.status = LimitOrderStatus.CANCELLED
            return order


__all__ = ["LimitOrderBook"]
