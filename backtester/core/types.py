"""Domain types for the simulation core. All prices and quantities use Decimal."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field


class Side(StrEnum):
    """Order side."""

    BUY = "BUY"
    SELL = "SELL"

    @property
    def sign(self) -> int:
        return 1 if self is Side.BUY else -1


class OrderType(StrEnum):
    """Order type."""

    MARKET = "MARKET"
    LIMIT = "LIMIT"
    STOP = "STOP"


class OrderStatus(StrEnum):
    """Order lifecycle state. Everything but PENDING is terminal."""

    PENDING = "PENDING"
    FILLED = "FILLED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"

    @property
    def terminal(self) -> bool:
        return self is not OrderStatus.PENDING


# ── Market data ─────────────────────────────────────────────────


class Bar(BaseModel):
    """One OHLCV observation."""

    model_config = ConfigDict(frozen=True)

    timestamp: datetime
    open: Decimal
    high: Decimal
    low: Decimal
    close: Decimal
    volume: Decimal = Decimal(0)


@dataclass(frozen=True, slots=True)
class Ticker:
    """The bar a strategy is deciding on, plus its position in the series."""

    index: int
    symbol: str
    bar: Bar

    @property
    def timestamp(self) -> datetime:
        return self.bar.timestamp

    @property
    def open(self) -> Decimal:
        return self.bar.open

    @property
    def high(self) -> Decimal:
        return self.bar.high

    @property
    def low(self) -> Decimal:
        return self.bar.low

    @property
    def close(self) -> Decimal:
        return self.bar.close

    @property
    def volume(self) -> Decimal:
        return self.bar.volume


# ── Orders ──────────────────────────────────────────────────────


class OrderRequest(BaseModel):
    """Input type for submitting an order to the exchange."""

    symbol: str
    side: Side
    quantity: Decimal
    order_type: OrderType = OrderType.MARKET
    price: Decimal | None = None  # limit or stop level


class Order(BaseModel):
    """An order tracked by the exchange from submission to a terminal state."""

    model_config = ConfigDict(frozen=True)

    order_id: int
    symbol: str
    side: Side
    quantity: Decimal
    order_type: OrderType = OrderType.MARKET
    price: Decimal | None = None
    submitted_at: datetime | None = None
    submitted_index: int = -1
    status: OrderStatus = OrderStatus.PENDING
    reason: str = ""
    filled_at: datetime | None = None
    fill_price: Decimal | None = None


class OrderHandle(BaseModel):
    """Returned by ``submit_order``; query live state via ``get_order``."""

    model_config = ConfigDict(frozen=True)

    order_id: int
    symbol: str
    side: Side
    quantity: Decimal


class Trade(BaseModel):
    """An executed fill. The trade log is the ordered sequence of these."""

    model_config = ConfigDict(frozen=True)

    order_id: int
    symbol: str
    side: Side
    quantity: Decimal
    price: Decimal
    commission: Decimal = Decimal(0)
    slippage: Decimal = Decimal(0)
    realized_pnl: Decimal = Decimal(0)
    closes_position: bool = False
    timestamp: datetime
    bar_index: int


class Position(BaseModel):
    """Net position in one symbol. Quantity is signed (negative = short)."""

    model_config = ConfigDict(frozen=True)

    symbol: str
    quantity: Decimal = Decimal(0)
    avg_price: Decimal = Decimal(0)
    realized_pnl: Decimal = Decimal(0)

    @property
    def is_flat(self) -> bool:
        return self.quantity == 0

    def market_value(self, price: Decimal) -> Decimal:
        return self.quantity * price


# ── Run lifecycle ───────────────────────────────────────────────


class RunStatus(StrEnum):
    """Terminal status of a backtest run."""

    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


class RunEventType(StrEnum):
    """Type of event emitted by the exchange and the run driver."""

    ORDER_SUBMITTED = "ORDER_SUBMITTED"
    ORDER_FILLED = "ORDER_FILLED"
    ORDER_REJECTED = "ORDER_REJECTED"
    ORDER_CANCELLED = "ORDER_CANCELLED"
    RUN_STARTED = "RUN_STARTED"
    RUN_COMPLETED = "RUN_COMPLETED"
    RUN_FAILED = "RUN_FAILED"
    RUN_CANCELLED = "RUN_CANCELLED"


class RunEvent(BaseModel):
    """Discrete event in a run's lifecycle."""

    event_type: RunEventType
    run: str = ""
    order: Order | None = None
    trade: Trade | None = None
    reason: str = ""
    bar_index: int = -1
    timestamp: datetime | None = None
    data: dict[str, str] = Field(default_factory=dict)


class EquityPoint(BaseModel):
    """Account value at the close of one bar."""

    model_config = ConfigDict(frozen=True)

    timestamp: datetime
    equity: Decimal
