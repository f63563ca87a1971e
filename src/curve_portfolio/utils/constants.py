"""Shared constants and time helpers."""

import time


def epoch_millis(seconds: float | None = None) -> int:
    """Epoch milliseconds, the timestamp unit used in portfolio payloads."""
    return int((time.time() if seconds is None else seconds) * 1000)


SECONDS_PER_HOUR = 3_600
HOURS_PER_DAY = 24

# Risk level thresholds (inclusive upper bounds).
LOW_RISK_MAX_SCORE = 30
MEDIUM_RISK_MAX_SCORE = 60

MIN_RISK_SCORE = 0
MAX_RISK_SCORE = 100

__all__ = [
    "epoch_millis",
    "SECONDS_PER_HOUR",
    "HOURS_PER_DAY",
    "LOW_RISK_MAX_SCORE",
    "MEDIUM_RISK_MAX_SCORE",
    "MIN_RISK_SCORE",
    "MAX_RISK_SCORE",
]
