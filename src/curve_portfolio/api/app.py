"""FastAPI application factory for the portfolio mini-app backend."""

from __future__ import annotations

import time
import uuid
from typing import Any, Dict, Optional

from fastapi import Body, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse

from ..analytics.ledger import (
    InsufficientBalance,
    InvalidInput,
    LedgerError,
    TradeRequest,
    parse_trade_request,
    parse_user_id,
)
from ..datalake.schemas import TradeSide, TradeType, parse_float
from ..ingestion.subgraph import IndexerError
from ..monitoring.logger import correlation_scope, get_logger
from .state import ApiState
from .utils import to_serializable

CORRELATION_HEADER = "X-Request-ID"


def _json(payload: Any, status_code: int = 200) -> JSONResponse:
    return JSONResponse(to_serializable(payload), status_code=status_code)


def _error_response(state: ApiState, error: LedgerError) -> JSONResponse:
    if isinstance(error, InsufficientBalance):
        state.metrics.increment("ledger.rejections.insufficient_balance", 1)
        return _json(
            {"error": "Insufficient balance", "required": error.required, "available": error.available},
            status_code=400,
        )
    state.metrics.increment("ledger.rejections.invalid_input", 1)
    return _json({"error": error.message, "field": error.field}, status_code=400)


def create_app(state: ApiState) -> FastAPI:
    app = FastAPI(title="Curve Portfolio API", version="1.0.0")
    app.state.api = state
    logger = get_logger(__name__)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=state.config.api.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def correlation_middleware(request: Request, call_next):
        started = time.perf_counter()
        with correlation_scope(request.headers.get(CORRELATION_HEADER) or uuid.uuid4().hex) as correlation_id:
            response = await call_next(request)
        response.headers[CORRELATION_HEADER] = correlation_id
        state.metrics.increment("api.requests", 1)
        state.metrics.observe("api.latency_seconds", time.perf_counter() - started)
        return response

    @app.exception_handler(IndexerError)
    async def indexer_error_handler(_: Request, exc: IndexerError) -> JSONResponse:
        state.metrics.increment("api.indexer_errors", 1)
        logger.error("Indexer request failed: %s", exc)
        return _json({"error": "Indexer unavailable"}, status_code=502)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(_: Request, exc: RequestValidationError) -> JSONResponse:
        errors = exc.errors()
        field = ".".join(str(part) for part in errors[0]["loc"]) if errors else "body"
        return _json({"error": "Invalid request", "field": field}, status_code=400)

    @app.get("/health")
    async def healthcheck() -> Dict[str, str]:
        return {"status": "ok"}

    @app.get("/metrics", response_class=PlainTextResponse)
    async def prometheus_metrics() -> str:
        return state.metrics.export_prometheus()

    @app.get("/api/portfolio")
    def get_portfolio(user_id: Optional[str] = Query(default=None, alias="userId")) -> JSONResponse:
        parsed = parse_user_id(user_id)
        if isinstance(parsed, InvalidInput):
            return _error_response(state, parsed)
        return _json(state.ledger.get_portfolio(parsed))

    @app.get("/api/portfolio/valuation")
    def get_valuation(user_id: Optional[str] = Query(default=None, alias="userId")) -> JSONResponse:
        parsed = parse_user_id(user_id)
        if isinstance(parsed, InvalidInput):
            return _error_response(state, parsed)
        return _json(state.valuation(state.ledger.get_portfolio(parsed)))

    @app.post("/api/portfolio")
    def post_trade(payload: Dict[str, Any] = Body(...)) -> JSONResponse:
        request = parse_trade_request(payload)
        if isinstance(request, InvalidInput):
            return _error_response(state, request)
        result = state.ledger.record_trade(request)
        if result.error is not None:
            return _error_response(state, result.error)
        state.metrics.increment(f"ledger.trades.{request.type.value}", 1)
        logger.info(
            "Trade recorded",
            extra={"user_id": request.user_id, "type": request.type.value, "side": request.side.value},
        )
        return _json(result.portfolio)

    @app.get("/api/strategy")
    def get_strategy(tier: Optional[str] = Query(default=None)) -> JSONResponse:
        return _json(state.strategy_plan(tier))

    @app.post("/api/strategy/invest")
    def invest(payload: Dict[str, Any] = Body(...)) -> JSONResponse:
        user_id = parse_user_id(payload.get("userId"))
        if isinstance(user_id, InvalidInput):
            return _error_response(state, user_id)
        if payload.get("amount") in (None, ""):
            return _error_response(state, InvalidInput("amount", "required"))
        plan = state.strategy_plan(payload.get("tier"))
        execution = state.executor.invest(user_id, plan, parse_float(payload["amount"]))
        if execution.error is not None and not execution.fills:
            return _error_response(state, execution.error)
        state.metrics.increment("strategy.investments", 1)
        body: Dict[str, Any] = {
            "tier": plan.tier.value,
            "allocations": plan.allocations,
            "fills": [fill.to_dict() for fill in execution.fills],
            "skipped": execution.skipped,
            "portfolio": execution.portfolio,
        }
        if execution.error is not None:
            body["error"] = execution.error.message
        return _json(body)

    def _analyze(curve_id: Optional[str]) -> JSONResponse:
        if not curve_id:
            return _error_response(state, InvalidInput("id", "required"))
        analysis = state.analyze(curve_id)
        if analysis is None:
            return _json({"error": "Token not found"}, status_code=404)
        return _json(analysis)

    @app.get("/api/analyze")
    def analyze(curve_id: Optional[str] = Query(default=None, alias="id")) -> JSONResponse:
        return _analyze(curve_id)

    @app.post("/api/analyze")
    def analyze_post(payload: Dict[str, Any] = Body(...)) -> JSONResponse:
        return _analyze(payload.get("curveId"))

    @app.get("/api/limit-order")
    def list_limit_orders() -> JSONResponse:
        return _json(state.order_book.list_orders())

    @app.post("/api/limit-order")
    def place_limit_order(payload: Dict[str, Any] = Body(...)) -> JSONResponse:
        order = state.order_book.parse(payload)
        if isinstance(order, InvalidInput):
            return _error_response(state, order)
        if order.user_id is not None and order.side is TradeSide.BUY:
            result = state.ledger.record_trade(
                TradeRequest(
                    user_id=order.user_id,
                    symbol=order.symbol,
                    side=TradeSide.BUY,
                    amount=order.amount,
                    price=order.trigger_price,
                    type=TradeType.RESERVE,
                    curve_id=order.curve_id,
                )
            )
            if result.error is not None:
                return _error_response(state, result.error)
        state.order_book.add(order)
        state.metrics.increment("limit_orders.placed", 1)
        return _json(order, status_code=201)

    @app.delete("/api/limit-order")
    def cancel_limit_order(order_id: Optional[str] = Query(default=None, alias="id")) -> JSONResponse:
        order = state.order_book.cancel(order_id) if order_id else None
        if order is None:
            return _json({"error": "Order not found"}, status_code=404)
        state.metrics.increment("limit_orders.cancelled", 1)
        return _json(order)

    return app


__all__ = ["create_app", "CORRELATION_HEADER"]
