"""Simulated broker: order matching, positions, cash and trading costs."""

from backtester.broker.account import Account, FillEffect
from backtester.broker.costs import commission_for, slipped_price
from backtester.broker.exceptions import (
    BrokerError,
    ExchangeClosedError,
    OrderNotFoundError,
    OrderRejected,
)
from backtester.broker.exchange import ExchangeState, RunEventCallback, SimulatedExchange

__all__ = [
    "Account",
    "BrokerError",
    "ExchangeClosedError",
    "ExchangeState",
    "FillEffect",
    "OrderNotFoundError",
    "OrderRejected",
    "RunEventCallback",
    "SimulatedExchange",
    "commission_for",
    "slipped_price",
]
