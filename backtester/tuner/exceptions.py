"""Tuner exceptions."""

from __future__ import annotations


class TunerError(Exception):
    """Base exception for parameter search errors."""


class TunerNoFeasibleParams(TunerError):
    """The search space is empty or every evaluated candidate failed."""
