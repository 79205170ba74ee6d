"""Core configuration, shared types and logging setup."""

from backtester.core.config import (
    BpsSlippage,
    BrokerConfig,
    EngineConfig,
    FillPolicy,
    FixedSlippage,
    FlatCommission,
    NoSlippage,
    PercentageCommission,
    PerShareCommission,
    Settings,
    get_settings,
    load_settings,
    reset_settings,
)
from backtester.core.logging import run_context, setup_logging
from backtester.core.types import (
    Bar,
    EquityPoint,
    Order,
    OrderHandle,
    OrderRequest,
    OrderStatus,
    OrderType,
    Position,
    RunEvent,
    RunEventType,
    RunStatus,
    Side,
    Ticker,
    Trade,
)

__all__ = [
    "Bar",
    "BpsSlippage",
    "BrokerConfig",
    "EngineConfig",
    "EquityPoint",
    "FillPolicy",
    "FixedSlippage",
    "FlatCommission",
    "NoSlippage",
    "Order",
    "OrderHandle",
    "OrderRequest",
    "OrderStatus",
    "OrderType",
    "PerShareCommission",
    "PercentageCommission",
    "Position",
    "RunEvent",
    "RunEventType",
    "RunStatus",
    "Settings",
    "Side",
    "Ticker",
    "Trade",
    "get_settings",
    "load_settings",
    "reset_settings",
    "run_context",
    "setup_logging",
]
