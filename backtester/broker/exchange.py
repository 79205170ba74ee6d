"""Simulated exchange: per-run order matching, positions and cash.

One instance belongs to exactly one run and is not thread-safe.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from datetime import datetime
from decimal import Decimal
from enum import StrEnum

import structlog

from backtester.broker.account import Account
from backtester.broker.costs import commission_for, slipped_price
from backtester.broker.exceptions import (
    BrokerError,
    ExchangeClosedError,
    OrderNotFoundError,
    OrderRejected,
)
from backtester.core.config import BrokerConfig, FillPolicy
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
    Side,
    Ticker,
    Trade,
)

logger = structlog.stdlib.get_logger()

RunEventCallback = Callable[[RunEvent], None]


class ExchangeState(StrEnum):
    IDLE = "IDLE"
    PROCESSING = "PROCESSING"
    CLOSED = "CLOSED"


class SimulatedExchange:
    """Deterministic broker simulation driven one bar at a time.

    Per bar the run driver calls :meth:`observe` with the bar the strategy
    is deciding on, lets the strategy submit orders, then calls
    :meth:`advance` with the same bar. Orders are only eligible to fill on
    a bar after the one they were submitted on, so a market order placed
    while looking at bar *n* fills at bar *n+1*.

    Fill rules:

    - MARKET: bar open (``NEXT_OPEN``) or close (``NEXT_CLOSE``), then slippage.
    - LIMIT: only if the bar's range crosses the limit; fills at the open if
      the open already satisfies the limit, otherwise at the limit. No slippage.
    - STOP: triggers when the range touches the stop; fills at the worse of
      open and stop, then slippage.

    Buying power is pre-checked at submission against the limit price or
    the last observed close, and checked again at fill time including
    commission.

    Usage::

        exchange = SimulatedExchange(BrokerConfig(), symbols=["AAPL"])
        exchange.observe(ticker)
        exchange.submit_order(OrderRequest(symbol="AAPL", side=Side.BUY, quantity=Decimal(10)))
        exchange.advance(ticker.bar)
    """

    def __init__(
        self,
        config: BrokerConfig,
        symbols: Iterable[str],
        run: str = "",
    ) -> None:
        self._config = config
        self._symbols = frozenset(symbols)
        self._run = run
        self._account = Account(config.starting_cash, config.leverage)
        self._state = ExchangeState.IDLE

        self._orders: dict[int, Order] = {}
        self._pending: list[Order] = []
        self._trades: list[Trade] = []
        self._equity_curve: list[EquityPoint] = []
        self._marks: dict[str, Decimal] = {}
        self._order_counter = 0

        self._current: Ticker | None = None
        self._last_index = -1
        self._last_bar: Bar | None = None
        self._last_symbol: str | None = None

        self._callbacks: list[RunEventCallback] = []

    # ── Properties ──────────────────────────────────────────────

    @property
    def config(self) -> BrokerConfig:
        return self._config

    @property
    def state(self) -> ExchangeState:
        return self._state

    @property
    def cash(self) -> Decimal:
        return self._account.cash

    @property
    def positions(self) -> dict[str, Position]:
        return self._account.positions

    @property
    def orders(self) -> list[Order]:
        """Every order ever submitted, in submission order."""
        return list(self._orders.values())

    @property
    def pending_orders(self) -> list[Order]:
        return list(self._pending)

    @property
    def trades(self) -> list[Trade]:
        return list(self._trades)

    @property
    def equity_curve(self) -> list[EquityPoint]:
        return list(self._equity_curve)

    def position(self, symbol: str) -> Decimal:
        """Signed quantity held in ``symbol``."""
        return self._account.position(symbol)

    def equity(self) -> Decimal:
        """Cash plus positions marked at the latest known close."""
        return self._account.equity(self._marks)

    def buying_power(self) -> Decimal:
        return self._account.buying_power(self._marks)

    # ── Callbacks ───────────────────────────────────────────────

    def on_event(self, callback: RunEventCallback) -> None:
        """Register a callback for order events."""
        self._callbacks.append(callback)

    def _emit(self, event: RunEvent) -> None:
        for cb in self._callbacks:
            try:
                cb(event)
            except Exception:
                logger.exception("run_event_callback_error", event_type=event.event_type)

    # ── Bar processing ──────────────────────────────────────────

    def observe(self, ticker: Ticker) -> None:
        """Record the bar the strategy is about to decide on. Resolves nothing."""
        self._ensure_open()
        self._state = ExchangeState.PROCESSING
        self._current = ticker
        self._last_index = ticker.index
        self._marks[ticker.symbol] = ticker.close

    def advance(self, bar: Bar) -> list[Trade]:
        """Resolve eligible pending orders against ``bar``, then mark it complete.

        Returns:
            Trades produced on this bar, in FIFO submission order.
        """
        self._ensure_open()
        self._state = ExchangeState.PROCESSING

        if self._current is not None and self._current.bar is bar:
            index, symbol = self._current.index, self._current.symbol
        else:
            index, symbol = self._last_index + 1, self._default_symbol()

        fills: list[Trade] = []
        still_pending: list[Order] = []
        for order in self._pending:
            if order.submitted_index >= index or order.symbol != symbol:
                still_pending.append(order)
                continue
            price = self._match(order, bar)
            if price is None:
                still_pending.append(order)
                continue
            trade = self._execute(order, price, bar, index)
            if trade is not None:
                fills.append(trade)
        self._pending = still_pending

        self._marks[symbol] = bar.close
        self._equity_curve.append(EquityPoint(timestamp=bar.timestamp, equity=self.equity()))

        self._current = None
        self._last_index = index
        self._last_bar = bar
        self._last_symbol = symbol
        return fills

    def close(self, liquidate: bool | None = None) -> None:
        """Cancel pending orders and, when liquidating, flatten every position.

        Args:
            liquidate: Close positions at the last close. Defaults to the
                config's ``liquidate_on_close``; otherwise positions stay
                marked to market.
        """
        if self._state == ExchangeState.CLOSED:
            return

        for order in list(self._pending):
            self._cancel(order, "exchange closed")
        self._pending.clear()

        if liquidate is None:
            liquidate = self._config.liquidate_on_close

        last_bar = self._last_bar
        if liquidate and last_bar is not None:
            for symbol, pos in self._account.positions.items():
                if not pos.is_flat:
                    self._liquidate(symbol, pos.quantity, last_bar)
            if self._equity_curve:
                last = self._equity_curve[-1]
                self._equity_curve[-1] = EquityPoint(timestamp=last.timestamp, equity=self.equity())

        self._state = ExchangeState.CLOSED
        logger.debug(
            "exchange_closed",
            liquidated=liquidate,
            cash=str(self.cash),
            equity=str(self.equity()),
        )

    # ── Orders ──────────────────────────────────────────────────

    def submit_order(self, request: OrderRequest) -> OrderHandle:
        """Validate and queue an order.

        Raises:
            OrderRejected: Invalid quantity, symbol or price, a short while
                shorting is disabled, or insufficient buying power. The
                order is still recorded as REJECTED.
            ExchangeClosedError: The exchange is closed.
        """
        self._ensure_open()

        self._order_counter += 1
        order = Order(
            order_id=self._order_counter,
            symbol=request.symbol,
            side=request.side,
            quantity=request.quantity,
            order_type=request.order_type,
            price=request.price,
            submitted_at=self._current.timestamp if self._current else None,
            submitted_index=self._last_index,
        )
        self._orders[order.order_id] = order

        reason = self._validate(order)
        if reason:
            self._reject(order, reason)
            raise OrderRejected(reason, order_id=order.order_id)

        if self._config.exclusive_orders:
            for pending in list(self._pending):
                self._cancel(pending, "superseded by a newer order")
            self._pending.clear()

        self._pending.append(order)
        logger.debug(
            "order_submitted",
            order_id=order.order_id,
            symbol=order.symbol,
            side=order.side,
            quantity=str(order.quantity),
            order_type=order.order_type,
            price=str(order.price) if order.price is not None else None,
            bar_index=order.submitted_index,
        )
        self._emit(RunEvent(
            event_type=RunEventType.ORDER_SUBMITTED,
            run=self._run,
            order=order,
            bar_index=order.submitted_index,
            timestamp=order.submitted_at,
        ))
        return OrderHandle(
            order_id=order.order_id,
            symbol=order.symbol,
            side=order.side,
            quantity=order.quantity,
        )

    def cancel_order(self, order_id: int) -> Order:
        """Cancel a pending order. Terminal orders are returned unchanged."""
        self._ensure_open()
        order = self._orders.get(order_id)
        if order is None:
            raise OrderNotFoundError(f"unknown order id {order_id}")
        if order.status == OrderStatus.PENDING:
            self._pending.remove(order)
            order = self._cancel(order, "cancelled by strategy")
        return order

    def get_order(self, order_id: int) -> Order:
        order = self._orders.get(order_id)
        if order is None:
            raise OrderNotFoundError(f"unknown order id {order_id}")
        return order

    # ── Internal ────────────────────────────────────────────────

    def _ensure_open(self) -> None:
        if self._state == ExchangeState.CLOSED:
            raise ExchangeClosedError("exchange is closed")

    def _default_symbol(self) -> str:
        if self._last_symbol is not None:
            return self._last_symbol
        if len(self._symbols) == 1:
            return next(iter(self._symbols))
        raise ValueError("advance() without observe() needs a single-symbol exchange")

    def _validate(self, order: Order) -> str:
        if order.quantity <= 0:
            return f"quantity must be positive, got {order.quantity}"
        if order.symbol not in self._symbols:
            return f"unknown symbol {order.symbol!r}"
        if order.order_type != OrderType.MARKET and (order.price is None or order.price <= 0):
            return f"{order.order_type} order requires a positive price"

        if not self._config.allow_short and order.side == Side.SELL:
            if order.quantity > self._account.position(order.symbol):
                return "short selling is disabled"

        reference = order.price if order.order_type != OrderType.MARKET else None
        if reference is None:
            reference = self._marks.get(order.symbol)
        if reference is not None:
            opening = self._account.opening_quantity(order.symbol, order.side, order.quantity)
            required = opening * reference
            available = self.buying_power()
            if required > available:
                return f"insufficient buying power: need {required}, have {available}"
        return ""

    def _match(self, order: Order, bar: Bar) -> Decimal | None:
        """Raw fill price for ``order`` on ``bar``, or None if it does not fill."""
        if order.order_type == OrderType.MARKET:
            return bar.close if self._config.fill_policy == FillPolicy.NEXT_CLOSE else bar.open

        level = order.price
        if level is None:
            raise BrokerError(f"{order.order_type} order {order.order_id} has no price")

        if order.order_type == OrderType.LIMIT:
            if order.side == Side.BUY:
                if bar.low > level:
                    return None
                return bar.open if bar.open <= level else level
            if bar.high < level:
                return None
            return bar.open if bar.open >= level else level

        # STOP
        if order.side == Side.BUY:
            if bar.high < level:
                return None
            return max(bar.open, level)
        if bar.low > level:
            return None
        return min(bar.open, level)

    def _execute(self, order: Order, raw_price: Decimal, bar: Bar, index: int) -> Trade | None:
        if order.order_type == OrderType.LIMIT:
            price, slippage = raw_price, Decimal(0)
        else:
            price, slippage = slipped_price(self._config, order.side, raw_price)
        commission = commission_for(self._config, order.quantity, price)

        if not self._config.allow_short and order.side == Side.SELL:
            if order.quantity > self._account.position(order.symbol):
                self._reject(order, "short selling is disabled", bar, index)
                return None

        opening = self._account.opening_quantity(order.symbol, order.side, order.quantity)
        if opening > 0:
            marks = {**self._marks, order.symbol: price}
            required = opening * price + max(commission, Decimal(0))
            available = self._account.buying_power(marks)
            if required > available:
                self._reject(
                    order,
                    f"insufficient buying power at fill: need {required}, have {available}",
                    bar,
                    index,
                )
                return None

        return self._fill(order, price, slippage, commission, bar.timestamp, index)

    def _fill(
        self,
        order: Order,
        price: Decimal,
        slippage: Decimal,
        commission: Decimal,
        timestamp: datetime,
        index: int,
    ) -> Trade:
        effect = self._account.apply_fill(
            order.symbol, order.side, order.quantity, price, commission,
        )
        order = self._update(
            order, status=OrderStatus.FILLED, filled_at=timestamp, fill_price=price,
        )

        trade = Trade(
            order_id=order.order_id,
            symbol=order.symbol,
            side=order.side,
            quantity=order.quantity,
            price=price,
            commission=commission,
            slippage=slippage,
            realized_pnl=effect.realized_pnl,
            closes_position=effect.closes_position,
            timestamp=timestamp,
            bar_index=index,
        )
        self._trades.append(trade)

        logger.info(
            "order_filled",
            order_id=order.order_id,
            symbol=order.symbol,
            side=order.side,
            quantity=str(order.quantity),
            price=str(price),
            commission=str(commission),
            bar_index=index,
        )
        self._emit(RunEvent(
            event_type=RunEventType.ORDER_FILLED,
            run=self._run,
            order=order,
            trade=trade,
            bar_index=index,
            timestamp=timestamp,
        ))
        return trade

    def _liquidate(self, symbol: str, quantity: Decimal, bar: Bar) -> None:
        self._order_counter += 1
        side = Side.SELL if quantity > 0 else Side.BUY
        order = Order(
            order_id=self._order_counter,
            symbol=symbol,
            side=side,
            quantity=abs(quantity),
            submitted_at=bar.timestamp,
            submitted_index=self._last_index,
            reason="liquidation",
        )
        self._orders[order.order_id] = order
        mark = self._marks.get(symbol, bar.close)
        price, slippage = slipped_price(self._config, side, mark)
        commission = commission_for(self._config, order.quantity, price)
        self._fill(order, price, slippage, commission, bar.timestamp, self._last_index)

    def _update(self, order: Order, **changes: object) -> Order:
        """Replace the stored snapshot of ``order``. Orders are frozen."""
        updated = order.model_copy(update=changes)
        self._orders[updated.order_id] = updated
        return updated

    def _reject(
        self,
        order: Order,
        reason: str,
        bar: Bar | None = None,
        index: int | None = None,
    ) -> Order:
        order = self._update(order, status=OrderStatus.REJECTED, reason=reason)
        logger.info(
            "order_rejected",
            order_id=order.order_id,
            symbol=order.symbol,
            side=order.side,
            quantity=str(order.quantity),
            reason=reason,
        )
        self._emit(RunEvent(
            event_type=RunEventType.ORDER_REJECTED,
            run=self._run,
            order=order,
            reason=reason,
            bar_index=self._last_index if index is None else index,
            timestamp=bar.timestamp if bar is not None else order.submitted_at,
        ))
        return order

    def _cancel(self, order: Order, reason: str) -> Order:
        order = self._update(order, status=OrderStatus.CANCELLED, reason=reason)
        logger.debug("order_cancelled", order_id=order.order_id, reason=reason)
        self._emit(RunEvent(
            event_type=RunEventType.ORDER_CANCELLED,
            run=self._run,
            order=order,
            reason=reason,
            bar_index=self._last_index,
        ))
        return order
