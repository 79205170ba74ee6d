"""Commission and slippage: pure functions of (side, quantity, price, config)."""

from __future__ import annotations

from decimal import Decimal

from backtester.core.config import BrokerConfig
from backtester.core.types import Side


def commission_for(config: BrokerConfig, quantity: Decimal, price: Decimal) -> Decimal:
    """Commission charged on a fill of ``quantity`` at ``price``."""
    return config.commission.compute(quantity, price)


def slipped_price(config: BrokerConfig, side: Side, price: Decimal) -> tuple[Decimal, Decimal]:
    """Apply slippage against the taker.

    Returns:
        ``(fill_price, slippage)`` where slippage is the per-unit magnitude.
    """
    slippage = config.slippage.amount(price)
    if side == Side.BUY:
        return price + slippage, slippage  # worse fill for buyer
    slippage = min(slippage, price)
    return price - slippage, slippage  # worse fill for seller
