"""Simulated exchange exceptions."""

from __future__ import annotations


class BrokerError(Exception):
    """Base exception for simulated exchange errors."""


class OrderRejected(BrokerError):
    """An order failed validation. The run continues."""

    def __init__(self, message: str, order_id: int | None = None) -> None:
        super().__init__(message)
        self.order_id = order_id


class OrderNotFoundError(BrokerError):
    """No order with the requested id exists on this exchange."""


class ExchangeClosedError(BrokerError):
    """The exchange has been closed and accepts no further calls."""
