"""Monitoring package exports and helpers."""

from __future__ import annotations

from typing import Optional

from ..config.settings import AppConfig, get_app_config
from .logger import configure_logging, correlation_scope, get_logger
from .metrics import METRICS


def bootstrap_observability(config: Optional[AppConfig] = None) -> None:
    """Install JSON logging at the configured level and publish the seed balance gauge."""

    app_config = config or get_app_config()
    configure_logging(app_config.monitoring, force=True)
    METRICS.gauge("ledger.seed_balance", app_config.ledger.seed_balance)
    get_logger(__name__).info(
        "Observability ready",
        extra={"profile": app_config.profile.active, "storage": app_config.storage.backend.value},
    )


__all__ = ["METRICS", "bootstrap_observability", "correlation_scope", "get_logger"]
