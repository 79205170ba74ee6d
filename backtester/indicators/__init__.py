"""Indicators and the shared memoization cache."""

from backtester.indicators.base import Indicator, IndicatorKey, IndicatorValue, indicator_key
from backtester.indicators.cache import CacheStats, IndicatorCache
from backtester.indicators.exceptions import IndicatorError, InsufficientDataError
from backtester.indicators.library import EMA, RSI, SMA

__all__ = [
    "EMA",
    "RSI",
    "SMA",
    "CacheStats",
    "Indicator",
    "IndicatorCache",
    "IndicatorError",
    "IndicatorKey",
    "IndicatorValue",
    "InsufficientDataError",
    "indicator_key",
]
