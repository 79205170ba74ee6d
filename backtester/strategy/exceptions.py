"""Strategy-layer exceptions."""

from __future__ import annotations


class StrategyError(Exception):
    """Base exception for strategy errors. Fatal to the run that raised it."""


class UnknownStrategyError(StrategyError):
    """No strategy is registered under the requested name."""
