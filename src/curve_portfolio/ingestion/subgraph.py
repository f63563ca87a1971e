"""GraphQL client for the curve indexer subgraph."""

from __future__ import annotations

import time
from typing import Any, Callable, Dict, List, Optional

import requests
from cachetools import TTLCache
from tenacity import (
    RetryError,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ..config.settings import IndexerConfig, get_app_config
from ..datalake.schemas import CurveSnapshot, CurveTrade
from ..monitoring.logger import get_logger
from ..monitoring.metrics import METRICS

DEFAULT_HEADERS = {"User-Agent": "curve-portfolio/1.0", "Content-Type": "application/json"}

CURVE_FIELDS = """
    id createdAt token name symbol uri creator graduated
    lastPriceUsd lastPriceEth totalVolumeEth tradeCount lastTradeAt
"""

LATEST_CURVES_QUERY = f"""
query LatestCurves($first: Int!) {{
  curves(first: $first, orderBy: createdAt, orderDirection: desc) {{
    {CURVE_FIELDS}
  }}
}}
"""

CURVE_BY_ID_QUERY = f"""
query CurveById($id: ID!) {{
  curve(id: $id) {{
    {CURVE_FIELDS}
  }}
}}
"""

TRADES_FOR_CURVE_QUERY = """
query TradesForCurve($curveId: ID!, $first: Int!) {
  trades(first: $first, orderBy: timestamp, orderDirection: desc, where: { curve: $curveId }) {
    id timestamp txHash trader side amountEth amountToken priceEth priceUsd
  }
}
"""


class IndexerError(RuntimeError):
    """The subgraph could not be reached or answered with errors."""


class SubgraphClient:
    """Fetches curve snapshots and trades, with retries and a short-lived cache."""

    def __init__(
        self,
        config: Optional[IndexerConfig] = None,
        session: Optional[requests.Session] = None,
        *,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._config = config or get_app_config().indexer
        self._session = session or requests.Session()
        self._cache: TTLCache[str, Any] = TTLCache(maxsize=256, ttl=self._config.cache_ttl_seconds)
        self._sleep = sleep
        self._logger = get_logger(__name__)

    def _post_once(self, query: str, variables: Dict[str, Any]) -> requests.Response:
        return self._session.post(
            str(self._config.subgraph_url),
            json={"query": query, "variables": variables},
            headers=DEFAULT_HEADERS,
            timeout=self._config.http_timeout,
        )

    def _query(self, query: str, variables: Dict[str, Any]) -> Dict[str, Any]:
        retrying = Retrying(
            wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
            stop=stop_after_attempt(self._config.max_attempts),
            retry=retry_if_exception_type((requests.ConnectionError, requests.Timeout)),
            sleep=self._sleep,
            reraise=False,
        )
        try:
            response = retrying(self._post_once, query, variables)
            response.raise_for_status()
            payload = response.json()
        except RetryError as exc:
            METRICS.increment("indexer.failures", 1)
            self._logger.warning("Subgraph unreachable after %s attempts", self._config.max_attempts)
            raise IndexerError("subgraph unreachable") from exc
        except (requests.RequestException, ValueError) as exc:
            METRICS.increment("indexer.failures", 1)
            self._logger.warning("Subgraph request failed: %s", exc)
            raise IndexerError(f"subgraph request failed: {exc}") from exc
        if not isinstance(payload, dict):
            raise IndexerError("unexpected subgraph payload")
        if payload.get("errors"):
            METRICS.increment("indexer.failures", 1)
            raise IndexerError(f"subgraph returned errors: {payload['errors']}")
        METRICS.increment("indexer.requests", 1)
        return payload.get("data") or {}

    def fetch_curves(self, first: Optional[int] = None) -> List[CurveSnapshot]:
        limit = first or self._config.page_size
        cache_key = f"curves::{limit}"
        if cache_key in self._cache:
            return self._cache[cache_key]
        data = self._query(LATEST_CURVES_QUERY, {"first": limit})
        curves = [CurveSnapshot.from_indexer(item) for item in data.get("curves") or []]
        self._cache[cache_key] = curves
        return curves

    def fetch_curve(self, curve_id: str) -> Optional[CurveSnapshot]:
        cache_key = f"curve::{curve_id}"
        if cache_key in self._cache:
            return self._cache[cache_key]
        data = self._query(CURVE_BY_ID_QUERY, {"id": curve_id})
        item = data.get("curve")
        curve = CurveSnapshot.from_indexer(item) if item else None
        if curve is not None:
            self._cache[cache_key] = curve
        return curve

    def fetch_trades(self, curve_id: str, first: int = 50) -> List[CurveTrade]:
        cache_key = f"trades::{curve_id}::{first}"
        if cache_key in self._cache:
            return self._cache[cache_key]
        data = self._query(TRADES_FOR_CURVE_QUERY, {"curveId": curve_id, "first": first})
        trades = [CurveTrade.from_indexer(item) for item in data.get("trades") or []]
        self._cache[cache_key] = trades
        return trades

    def clear_cache(self) -> None:
        self._cache.clear()


__all__ = ["IndexerError", "SubgraphClient"]
