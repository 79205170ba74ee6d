"""Strategies: the per-bar decision contract and bundled implementations."""

from backtester.strategy.base import BaseStrategy, Strategy, StrategyContext
from backtester.strategy.exceptions import StrategyError, UnknownStrategyError
from backtester.strategy.library import BuyAndHold, RSIReversion, SMACrossover, Threshold
from backtester.strategy.registry import (
    available_strategies,
    create_strategy,
    register_strategy,
    strategy_label,
)

__all__ = [
    "BaseStrategy",
    "BuyAndHold",
    "RSIReversion",
    "SMACrossover",
    "Strategy",
    "StrategyContext",
    "StrategyError",
    "Threshold",
    "UnknownStrategyError",
    "available_strategies",
    "create_strategy",
    "register_strategy",
    "strategy_label",
]
