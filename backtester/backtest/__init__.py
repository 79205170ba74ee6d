"""Backtest runs: sequential replay, results and metrics."""

from backtester.backtest.exceptions import BacktestError, RunCancelled
from backtester.backtest.metrics import compute_metrics
from backtester.backtest.run import BacktestRun, cancelled_result, failed_result
from backtester.backtest.types import Metrics, Result, RunKey

__all__ = [
    "BacktestError",
    "BacktestRun",
    "Metrics",
    "Result",
    "RunCancelled",
    "RunKey",
    "cancelled_result",
    "compute_metrics",
    "failed_result",
]
