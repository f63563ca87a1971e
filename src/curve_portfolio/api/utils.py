"""Serialization helpers for API responses."""

from __future__ import annotations

import math
from dataclasses import asdict, is_dataclass
from datetime import datetime
from enum import Enum
from typing import Any


def to_serializable(value: Any) -> Any:
    """Recursively convert models into strict JSON values.

    Objects exposing ``to_dict`` use their wire shape. Non-finite floats become
    ``None`` because strict JSON has no NaN.
    """

    if hasattr(value, "to_dict") and callable(value.to_dict):
        return to_serializable(value.to_dict())
    if is_dataclass(value) and not isinstance(value, type):
        return {key: to_serializable(val) for key, val in asdict(value).items()}
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, float) and not math.isfinite(value):
        return None
    if isinstance(value, dict):
        return {str(key): to_serializable(val) for key, val in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [to_serializable(item) for item in value]
    return value


__all__ = ["to_serializable"]
