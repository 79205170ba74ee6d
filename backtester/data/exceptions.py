"""Exception hierarchy for market data input."""

from __future__ import annotations


class InputError(Exception):
    """Base exception for input data errors. Fatal to a whole batch."""


class MalformedInputError(InputError):
    """A price table is missing columns, unparseable, or out of order."""
