"""Command line entry point for scanning curves and previewing strategy plans."""

from __future__ import annotations

import argparse
import json
import sys
from typing import List, Optional, Sequence, TextIO

from .analysis.risk import RiskScoreEngine
from .api.utils import to_serializable
from .config.settings import get_app_config
from .ingestion.subgraph import IndexerError, SubgraphClient
from .monitoring import bootstrap_observability
from .monitoring.logger import get_logger
from .monitoring.metrics import METRICS
from .strategy import StrategyAllocator

logger = get_logger(__name__)


def scan(client: SubgraphClient, limit: int, out: TextIO = sys.stdout) -> int:
    engine = RiskScoreEngine()
    with METRICS.timer("cli.scan.duration_seconds"):
        curves = client.fetch_curves(limit)
    rows: List[tuple] = []
    for curve in curves:
        risk = engine.score(curve)
        rows.append((risk.score, risk.emoji, curve.symbol or "?", curve.id))
    for score, emoji, symbol, curve_id in sorted(rows, key=lambda row: row[0]):
        out.write(f"{emoji} {score:>3}  {symbol:<12} {curve_id}\n")
    logger.info("Scanned curves", extra={"count": len(rows)})
    return 0


def strategy(client: SubgraphClient, tier: str, out: TextIO = sys.stdout) -> int:
    curves = client.fetch_curves()
    plan = StrategyAllocator().allocate(tier, curves)
    json.dump(to_serializable(plan), out, indent=2, ensure_ascii=False)
    out.write("\n")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Risk scores and strategy plans for bonding-curve tokens")
    commands = parser.add_subparsers(dest="command", required=True)
    scan_parser = commands.add_parser("scan", help="Score the latest curves from the indexer")
    scan_parser.add_argument("--limit", type=int, default=None, help="Number of curves to fetch")
    strategy_parser = commands.add_parser("strategy", help="Print a strategy plan as JSON")
    strategy_parser.add_argument(
        "--tier",
        default="balanced",
        help="conservative, balanced or aggressive (default: balanced)",
    )
    return parser


def main(
    argv: Optional[Sequence[str]] = None,
    *,
    client: Optional[SubgraphClient] = None,
    out: TextIO = sys.stdout,
) -> int:
    args = build_parser().parse_args(argv)
    config = get_app_config()
    bootstrap_observability(config)
    indexer = client or SubgraphClient(config.indexer)
    try:
        if args.command == "scan":
            return scan(indexer, args.limit or config.indexer.page_size, out)
        return strategy(indexer, args.tier, out)
    except IndexerError as exc:
        logger.error("Indexer unavailable: %s", exc)
        return 1


if __name__ == "__main__":
    sys.exit(main())
