"""Strategy package exports."""

from .allocator import StrategyAllocator
from .executor import StrategyExecution, StrategyExecutor
from .limit_orders import LimitOrderBook

__all__ = [
    "LimitOrderBook",
    "StrategyAllocator",
    "StrategyExecution",
    "StrategyExecutor",
]
