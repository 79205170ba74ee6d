"""Backtest run exceptions."""

from __future__ import annotations


class BacktestError(Exception):
    """Base exception for run-level errors."""


class RunCancelled(BacktestError):
    """The operator cancelled the run before it finished."""
