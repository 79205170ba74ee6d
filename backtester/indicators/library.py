"""Technical indicators (SMA, EMA and RSI). Pure functions of (series, params) with no I/O.

Each indicator returns a tuple aligned with the series bars; entries inside
the warm-up window are ``None``.
"""

from __future__ import annotations

from collections.abc import Hashable, Sequence
from dataclasses import dataclass
from decimal import Decimal
from typing import ClassVar

from backtester.data.timeseries import BAR_FIELDS, TimeSeries
from backtester.indicators.base import IndicatorKey, IndicatorValue, indicator_key
from backtester.indicators.exceptions import IndicatorError, InsufficientDataError

_HUNDRED = Decimal(100)


def _check_period(name: str, period: int, available: int, needed: int) -> None:
    if period < 1:
        raise IndicatorError(f"{name} period must be >= 1, got {period}")
    if available < needed:
        raise InsufficientDataError(
            f"Need at least {needed} bars for {name}({period}), got {available}"
        )


def _check_field(field: str) -> None:
    if field not in BAR_FIELDS:
        raise IndicatorError(f"unknown bar field {field!r}")


# ── Moving averages ─────────────────────────────────────────────


def simple_moving_average(values: Sequence[Decimal], period: int) -> IndicatorValue:
    """Rolling mean of the last *period* values.

    The window sum is maintained incrementally: add the newest value, drop
    the oldest.
    """
    out: list[Decimal | None] = [None] * len(values)
    window = sum(values[:period], Decimal(0))
    out[period - 1] = window / period
    for i in range(period, len(values)):
        window += values[i] - values[i - period]
        out[i] = window / period
    return tuple(out)


def exponential_moving_average(values: Sequence[Decimal], period: int) -> IndicatorValue:
    """EMA with ``k = 2 / (period + 1)``, seeded with the SMA of the first *period* values."""
    k = Decimal(2) / (period + 1)
    out: list[Decimal | None] = [None] * len(values)
    ema = sum(values[:period], Decimal(0)) / period
    out[period - 1] = ema
    for i in range(period, len(values)):
        ema = values[i] * k + ema * (1 - k)
        out[i] = ema
    return tuple(out)


@dataclass(frozen=True)
class SMA:
    """Simple moving average of one bar field."""

    kind: ClassVar[str] = "sma"

    period: int
    field: str = "close"

    def params(self) -> dict[str, Hashable]:
        return {"period": self.period, "field": self.field}

    def key(self, series: TimeSeries) -> IndicatorKey:
        return indicator_key(self, series)

    def compute(self, series: TimeSeries) -> IndicatorValue:
        _check_field(self.field)
        _check_period("SMA", self.period, len(series), self.period)
        return simple_moving_average(series.field(self.field), self.period)


@dataclass(frozen=True)
class EMA:
    """Exponential moving average of one bar field."""

    kind: ClassVar[str] = "ema"

    period: int
    field: str = "close"

    def params(self) -> dict[str, Hashable]:
        return {"period": self.period, "field": self.field}

    def key(self, series: TimeSeries) -> IndicatorKey:
        return indicator_key(self, series)

    def compute(self, series: TimeSeries) -> IndicatorValue:
        _check_field(self.field)
        _check_period("EMA", self.period, len(series), self.period)
        return exponential_moving_average(series.field(self.field), self.period)


# ── RSI ─────────────────────────────────────────────────────────


def _rsi_from_avgs(avg_gain: Decimal, avg_loss: Decimal) -> Decimal:
    if avg_loss == 0:
        return _HUNDRED
    rs = avg_gain / avg_loss
    return _HUNDRED - _HUNDRED / (1 + rs)


@dataclass(frozen=True)
class RSI:
    """Relative Strength Index of close-to-close changes.

    Algorithm:
        1. delta = close[i] - close[i-1], split into gains and losses.
        2. Seed average gain/loss = mean of the first *period* deltas.
        3. smooth=True (Wilder): avg = (prev_avg × (period-1) + current) / period
           smooth=False: avg = mean of the last *period* deltas.
        4. RSI = 100 - 100 / (1 + avg_gain / avg_loss); 100 when avg_loss is 0.

    Requires ``period + 1`` bars. The first value lands on bar ``period``.
    """

    kind: ClassVar[str] = "rsi"

    period: int = 14
    smooth: bool = True

    def params(self) -> dict[str, Hashable]:
        return {"period": self.period, "smooth": self.smooth}

    def key(self, series: TimeSeries) -> IndicatorKey:
        return indicator_key(self, series)

    def compute(self, series: TimeSeries) -> IndicatorValue:
        period = self.period
        _check_period("RSI", period, len(series), period + 1)

        closes = series.field("close")
        deltas = [closes[i] - closes[i - 1] for i in range(1, len(closes))]
        gains = [max(d, Decimal(0)) for d in deltas]
        losses = [max(-d, Decimal(0)) for d in deltas]

        out: list[Decimal | None] = [None] * len(closes)
        avg_gain = sum(gains[:period], Decimal(0)) / period
        avg_loss = sum(losses[:period], Decimal(0)) / period
        out[period] = _rsi_from_avgs(avg_gain, avg_loss)

        for i in range(period, len(deltas)):
            if self.smooth:
                avg_gain = (avg_gain * (period - 1) + gains[i]) / period
                avg_loss = (avg_loss * (period - 1) + losses[i]) / period
            else:
                avg_gain = sum(gains[i - period + 1 : i + 1], Decimal(0)) / period
                avg_loss = sum(losses[i - period + 1 : i + 1], Decimal(0)) / period
            # deltas are offset by one bar
            out[i + 1] = _rsi_from_avgs(avg_gain, avg_loss)

        return tuple(out)
