"""Bundled strategies: buy-and-hold, SMA crossover, price threshold, RSI reversion."""

from __future__ import annotations

from collections.abc import Hashable
from typing import TYPE_CHECKING

from backtester.core.types import Ticker
from backtester.indicators.base import IndicatorValue
from backtester.indicators.library import RSI, SMA
from backtester.strategy.base import BaseStrategy, StrategyContext, to_decimal
from backtester.strategy.exceptions import StrategyError
from backtester.strategy.registry import register_strategy

if TYPE_CHECKING:
    from backtester.broker.exchange import SimulatedExchange


@register_strategy("buy_and_hold")
class BuyAndHold(BaseStrategy):
    """Buy once on the first bar and hold to the end.

    Baseline for comparing other strategies against.
    """

    name = "buy_and_hold"

    def __init__(self, quantity: object = 100) -> None:
        self.quantity = to_decimal(quantity)
        self._bought = False

    def params(self) -> dict[str, Hashable]:
        return {"quantity": self.quantity}

    def on_ticker(self, ticker: Ticker, exchange: SimulatedExchange) -> None:
        if self._bought:
            return
        self._bought = True
        self.buy(exchange, ticker.symbol, self.quantity)


@register_strategy("threshold")
class Threshold(BaseStrategy):
    """Buy ``quantity`` once, the first time the close is above ``threshold``."""

    name = "threshold"

    def __init__(self, threshold: object, quantity: object = 100) -> None:
        self.threshold = to_decimal(threshold)
        self.quantity = to_decimal(quantity)
        self._done = False

    def params(self) -> dict[str, Hashable]:
        return {"threshold": self.threshold, "quantity": self.quantity}

    def on_ticker(self, ticker: Ticker, exchange: SimulatedExchange) -> None:
        if self._done or ticker.close <= self.threshold:
            return
        self._done = True
        self.buy(exchange, ticker.symbol, self.quantity)


@register_strategy("sma_crossover")
class SMACrossover(BaseStrategy):
    """Long while the fast SMA is above the slow SMA, flat otherwise.

    Enters on the bar where fast crosses above slow and exits on the cross
    back below. Both averages come from the shared indicator cache.
    """

    name = "sma_crossover"

    def __init__(self, fast: int = 10, slow: int = 30, quantity: object = 100) -> None:
        self.fast = int(fast)
        self.slow = int(slow)
        if self.fast >= self.slow:
            raise StrategyError(f"fast period ({fast}) must be shorter than slow ({slow})")
        self.quantity = to_decimal(quantity)
        self._fast: IndicatorValue = ()
        self._slow: IndicatorValue = ()

    def params(self) -> dict[str, Hashable]:
        return {"fast": self.fast, "slow": self.slow, "quantity": self.quantity}

    def on_start(self, context: StrategyContext) -> None:
        self._fast = context.indicator(SMA(self.fast))
        self._slow = context.indicator(SMA(self.slow))

    def on_ticker(self, ticker: Ticker, exchange: SimulatedExchange) -> None:
        i = ticker.index
        if i < 1:
            return
        fast, slow = self._fast[i], self._slow[i]
        prev_fast, prev_slow = self._fast[i - 1], self._slow[i - 1]
        if fast is None or slow is None or prev_fast is None or prev_slow is None:
            return

        held = exchange.position(ticker.symbol)
        if prev_fast <= prev_slow and fast > slow and held <= 0:
            self.buy(exchange, ticker.symbol, self.quantity - held)
        elif prev_fast >= prev_slow and fast < slow and held > 0:
            self.sell(exchange, ticker.symbol, held)


@register_strategy("rsi_reversion")
class RSIReversion(BaseStrategy):
    """Buy when RSI drops below ``lower``; sell the position when it rises above ``upper``."""

    name = "rsi_reversion"

    def __init__(
        self,
        period: int = 14,
        lower: object = 30,
        upper: object = 70,
        quantity: object = 100,
    ) -> None:
        self.period = int(period)
        self.lower = to_decimal(lower)
        self.upper = to_decimal(upper)
        self.quantity = to_decimal(quantity)
        if self.lower >= self.upper:
            raise StrategyError(f"lower ({self.lower}) must be below upper ({self.upper})")
        self._rsi: IndicatorValue = ()

    def params(self) -> dict[str, Hashable]:
        return {
            "period": self.period,
            "lower": self.lower,
            "upper": self.upper,
            "quantity": self.quantity,
        }

    def on_start(self, context: StrategyContext) -> None:
        self._rsi = context.indicator(RSI(self.period))

    def on_ticker(self, ticker: Ticker, exchange: SimulatedExchange) -> None:
        value = self._rsi[ticker.index]
        if value is None:
            return
        if exchange.pending_orders:
            return
        held = exchange.position(ticker.symbol)
        if value < self.lower and held <= 0:
            self.buy(exchange, ticker.symbol, self.quantity - held)
        elif value > self.upper and held > 0:
            self.sell(exchange, ticker.symbol, held)
