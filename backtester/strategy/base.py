"""Strategy protocol, per-run context and a convenience base class."""

from __future__ import annotations

import abc
from collections.abc import Hashable
from decimal import Decimal
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from backtester.core.types import OrderHandle, OrderRequest, OrderType, Side, Ticker
from backtester.data.timeseries import TimeSeries
from backtester.indicators.base import Indicator, IndicatorValue, indicator_key
from backtester.indicators.cache import IndicatorCache

if TYPE_CHECKING:
    from backtester.broker.exchange import SimulatedExchange


class StrategyContext:
    """What a strategy sees before the first bar: its series and the shared cache.

    Indicator values fetched here are computed at most once per
    (indicator, series) across every run sharing the cache.
    """

    def __init__(self, series: TimeSeries, cache: IndicatorCache, run: str = "") -> None:
        self._series = series
        self._cache = cache
        self._run = run

    @property
    def series(self) -> TimeSeries:
        return self._series

    @property
    def symbol(self) -> str:
        return self._series.symbol

    @property
    def run(self) -> str:
        return self._run

    def indicator(self, indicator: Indicator) -> IndicatorValue:
        """Values of ``indicator`` over this run's series, via the cache."""
        series = self._series
        return self._cache.get_or_compute(
            indicator_key(indicator, series),
            lambda: indicator.compute(series),
        )


@runtime_checkable
class Strategy(Protocol):
    """Interface that all strategies must satisfy.

    ``on_ticker`` is called exactly once per bar, in timestamp order, with
    exclusive access to the run's exchange. ``on_start(context)`` and
    ``on_finish(exchange)`` are optional hooks.
    """

    def on_ticker(self, ticker: Ticker, exchange: SimulatedExchange) -> None:
        """Inspect the bar and submit orders."""
        ...


class BaseStrategy(abc.ABC):
    """Optional base class with no-op hooks and order helpers.

    Subclasses implement ``on_ticker()``.
    """

    name = "strategy"

    def params(self) -> dict[str, Hashable]:
        return {}

    def on_start(self, context: StrategyContext) -> None:
        pass

    @abc.abstractmethod
    def on_ticker(self, ticker: Ticker, exchange: SimulatedExchange) -> None:
        """Inspect the bar and submit orders."""

    def on_finish(self, exchange: SimulatedExchange) -> None:
        pass

    # ── Order helpers ───────────────────────────────────────────

    def buy(
        self,
        exchange: SimulatedExchange,
        symbol: str,
        quantity: Decimal,
        order_type: OrderType = OrderType.MARKET,
        price: Decimal | None = None,
    ) -> OrderHandle:
        return exchange.submit_order(OrderRequest(
            symbol=symbol, side=Side.BUY, quantity=quantity, order_type=order_type, price=price,
        ))

    def sell(
        self,
        exchange: SimulatedExchange,
        symbol: str,
        quantity: Decimal,
        order_type: OrderType = OrderType.MARKET,
        price: Decimal | None = None,
    ) -> OrderHandle:
        return exchange.submit_order(OrderRequest(
            symbol=symbol, side=Side.SELL, quantity=quantity, order_type=order_type, price=price,
        ))

    def __repr__(self) -> str:
        args = ", ".join(f"{k}={v}" for k, v in self.params().items())
        return f"{type(self).__name__}({args})"


def to_decimal(value: object) -> Decimal:
    """Config values arrive as int/float/str; route floats through str."""
    return value if isinstance(value, Decimal) else Decimal(str(value))
