"""Indicator computation exceptions."""

from __future__ import annotations


class IndicatorError(Exception):
    """Base exception for indicator errors. Fails only the requesting run."""


class InsufficientDataError(IndicatorError):
    """The series is shorter than the indicator's lookback window."""
