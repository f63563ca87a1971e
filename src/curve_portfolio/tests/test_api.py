from __future__ import annotations

import asyncio
import time
from typing import Awaitable, Callable, List, Optional

import pytest
from httpx import ASGITransport, AsyncClient

from curve_portfolio.analytics.ledger import PortfolioLedger
from curve_portfolio.api import ApiState, create_app
from curve_portfolio.config.settings import ApiConfig, AppConfig, LedgerConfig
from curve_portfolio.datalake.schemas import CurveSnapshot, CurveTrade
from curve_portfolio.datalake.storage import InMemoryPortfolioStore
from curve_portfolio.ingestion.subgraph import IndexerError
from curve_portfolio.monitoring.metrics import MetricsRegistry

HOUR = 3_600.0


def _curve(curve_id: str, volume: float, trades: int, price: float = 0.5) -> CurveSnapshot:
    now = time.time()
    return CurveSnapshot(
        id=curve_id,
        created_at=now - 72 * HOUR,
        graduated=False,
        total_volume_eth=volume,
        trade_count=trades,
        last_trade_at=now - HOUR if trades else None,
        last_price_usd=price,
        symbol=curve_id.upper(),
        name=f"Token {curve_id}",
    )


class FakeIndexer:
    def __init__(self, curves: List[CurveSnapshot], *, fail: bool = False) -> None:
        self.curves = {curve.id: curve for curve in curves}
        self.fail = fail

    def _check(self) -> None:
        if self.fail:
            raise IndexerError("subgraph unreachable")

    def fetch_curves(self, first: Optional[int] = None) -> List[CurveSnapshot]:
        self._check()
        return list(self.curves.values())[: first or None]

    def fetch_curve(self, curve_id: str) -> Optional[CurveSnapshot]:
        self._check()
        return self.curves.get(curve_id)

    def fetch_trades(self, curve_id: str, first: int = 50) -> List[CurveTrade]:
        self._check()
        return [
            CurveTrade("t1", 0.0, "0x1", "alice", "BUY", 0.2, 100.0, 0.001, 0.5),
            CurveTrade("t2", 0.0, "0x2", "bob", "SELL", 0.1, 50.0, 0.001, 0.5),
            CurveTrade("t3", 0.0, "0x3", "alice", "BUY", 0.3, 150.0, 0.001, 0.5),
        ][:first]


def _state(*, fail: bool = False) -> ApiState:
    curves = [_curve("alpha", 5.0, 120), _curve("beta", 3.0, 60), _curve("gamma", 2.0, 30, price=2.0)]
    return ApiState(
        config=AppConfig(ledger=LedgerConfig(), api=ApiConfig()),
        ledger=PortfolioLedger(InMemoryPortfolioStore(), LedgerConfig()),
        indexer=FakeIndexer(curves, fail=fail),
        metrics=MetricsRegistry(),
    )


def _run(state: ApiState, scenario: Callable[[AsyncClient], Awaitable[None]]) -> None:
    app = create_app(state)

    async def _exercise() -> None:
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://testserver") as client:
            await scenario(client)

    asyncio.run(_exercise())


def test_health_metrics_and_correlation_header() -> None:
    state = _state()

    async def scenario(client: AsyncClient) -> None:
        resp = await client.get("/health", headers={"X-Request-ID": "abc"})
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}
        assert resp.headers["X-Request-ID"] == "abc"

        metrics = await client.get("/metrics")
        assert metrics.status_code == 200
        assert "curve_portfolio_api_requests" in metrics.text

    _run(state, scenario)


def test_portfolio_lifecycle() -> None:
    state = _state()

    async def scenario(client: AsyncClient) -> None:
        missing = await client.get("/api/portfolio")
        assert missing.status_code == 400
        assert missing.json()["field"] == "userId"

        seeded = await client.get("/api/portfolio", params={"userId": "999"})
        assert seeded.status_code == 200
        body = seeded.json()
        assert body["usdcBalance"] == 100
        assert body["holdings"] == []
        assert body["trades"] == []
        assert body["walletAddress"].startswith("0x") and len(body["walletAddress"]) == 42

        bought = await client.post(
            "/api/portfolio",
            json={"userId": 999, "symbol": "X", "curveId": "X", "side": "buy", "amount": "50", "price": "10"},
        )
        assert bought.status_code == 200
        assert bought.json()["usdcBalance"] == pytest.approx(50)
        assert bought.json()["holdings"][0]["quantity"] == pytest.approx(5)

        refused = await client.post(
            "/api/portfolio",
            json={"userId": 999, "symbol": "X", "curveId": "X", "side": "buy", "amount": 150, "price": 1},
        )
        assert refused.status_code == 400
        assert refused.json() == {"error": "Insufficient balance", "required": 150, "available": 50}

        invalid = await client.post(
            "/api/portfolio", json={"userId": 999, "symbol": "X", "side": "buy", "price": 1}
        )
        assert invalid.status_code == 400
        assert invalid.json()["field"] == "amount"

        not_object = await client.post("/api/portfolio", json=[1, 2, 3])
        assert not_object.status_code == 400

    _run(state, scenario)
    assert state.metrics.get("ledger.trades.trade") == 1
    assert state.metrics.get("ledger.rejections.insufficient_balance") == 1


def test_strategy_and_invest() -> None:
    state = _state()

    async def scenario(client: AsyncClient) -> None:
        plan = await client.get("/api/strategy", params={"tier": "conservative"})
        assert plan.status_code == 200
        payload = plan.json()
        assert payload["tier"] == "conservative"
        assert sum(item["weight"] for item in payload["allocations"]) == 100
        assert {token["id"] for token in payload["allTokens"]} == {"alpha", "beta", "gamma"}

        invest = await client.post(
            "/api/strategy/invest", json={"userId": 5, "tier": "conservative", "amount": 40}
        )
        assert invest.status_code == 200
        result = invest.json()
        assert len(result["fills"]) == 3
        assert all(fill["type"] == "strategy" for fill in result["fills"])
        assert result["portfolio"]["usdcBalance"] == pytest.approx(60)

        too_much = await client.post("/api/strategy/invest", json={"userId": 5, "amount": 500})
        assert too_much.status_code == 400
        assert too_much.json()["error"] == "Insufficient balance"

    _run(state, scenario)


def test_analyze_routes() -> None:
    state = _state()

    async def scenario(client: AsyncClient) -> None:
        found = await client.get("/api/analyze", params={"id": "alpha"})
        assert found.status_code == 200
        body = found.json()
        assert body["curve"]["id"] == "alpha"
        assert body["risk"]["level"] == "low"
        assert len(body["risk"]["factors"]) == 5
        assert body["tradeSummary"] == {"uniqueTraders": 2, "buys": 2, "sells": 1, "recentVolume": "0.6000"}

        posted = await client.post("/api/analyze", json={"curveId": "beta"})
        assert posted.json()["curve"]["symbol"] == "BETA"

        missing = await client.get("/api/analyze", params={"id": "nope"})
        assert missing.status_code == 404

        no_id = await client.get("/api/analyze")
        assert no_id.status_code == 400

    _run(state, scenario)


def test_indexer_failure_maps_to_bad_gateway() -> None:
    state = _state(fail=True)

    async def scenario(client: AsyncClient) -> None:
        resp = await client.get("/api/strategy")
        assert resp.status_code == 502
        assert resp.json() == {"error": "Indexer unavailable"}

    _run(state, scenario)
    assert state.metrics.get("api.indexer_errors") == 1


def test_limit_order_routes_reserve_funds() -> None:
    state = _state()

    async def scenario(client: AsyncClient) -> None:
        order = {"symbol": "ALPHA", "curveId": "alpha", "side": "buy", "triggerPrice": "0.4", "amount": "30"}
        placed = await client.post("/api/limit-order", json={**order, "userId": 11})
        assert placed.status_code == 201
        placed_body = placed.json()
        assert placed_body["status"] == "pending"
        assert placed_body["id"].startswith("ord_")

        portfolio = (await client.get("/api/portfolio", params={"userId": 11})).json()
        assert portfolio["usdcBalance"] == pytest.approx(70)
        assert portfolio["trades"][0]["type"] == "reserve"
        assert portfolio["holdings"] == []

        refused = await client.post("/api/limit-order", json={**order, "amount": "500", "userId": 11})
        assert refused.status_code == 400
        assert refused.json()["available"] == pytest.approx(70)

        anonymous = await client.post("/api/limit-order", json={**order, "side": "sell"})
        assert anonymous.status_code == 201

        listed = (await client.get("/api/limit-order")).json()
        assert len(listed) == 2

        cancelled = await client.delete("/api/limit-order", params={"id": placed_body["id"]})
        assert cancelled.status_code == 200
        assert cancelled.json()["status"] == "cancelled"

        unknown = await client.delete("/api/limit-order", params={"id": "ord_missing"})
        assert unknown.status_code == 404

        invalid = await client.post("/api/limit-order", json={**order, "triggerPrice": "0"})
        assert invalid.status_code == 400
        assert invalid.json()["field"] == "triggerPrice"

    _run(state, scenario)


def test_portfolio_valuation_route() -> None:
    state = _state()

    async def scenario(client: AsyncClient) -> None:
        await client.post(
            "/api/portfolio",
            json={"userId": 3, "symbol": "GAMMA", "curveId": "gamma", "side": "buy", "amount": 20, "price": 1},
        )
        resp = await client.get("/api/portfolio/valuation", params={"userId": 3})
        assert resp.status_code == 200
        body = resp.json()
        assert body["holdings"][0]["markPrice"] == pytest.approx(2.0)
        assert body["totalValue"] == pytest.approx(120.0)
        assert body["totalPnl"] == pytest.approx(20.0)

    _run(state, scenario)
