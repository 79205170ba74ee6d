"""Indicator contract and cache key."""

from __future__ import annotations

from collections.abc import Hashable, Mapping
from dataclasses import dataclass
from decimal import Decimal
from typing import Protocol, runtime_checkable

from backtester.data.timeseries import TimeSeries

# One value per bar; None while the lookback window is still filling.
IndicatorValue = tuple[Decimal | None, ...]


@dataclass(frozen=True, slots=True)
class IndicatorKey:
    """(indicator kind, parameters, series identity).

    A key depends only on price data and indicator parameters, never on
    broker configuration.
    """

    kind: str
    params: tuple[tuple[str, Hashable], ...]
    series: str

    @classmethod
    def of(
        cls,
        kind: str,
        params: Mapping[str, Hashable],
        series_identity: str,
    ) -> IndicatorKey:
        return cls(kind=kind, params=tuple(sorted(params.items())), series=series_identity)

    def __str__(self) -> str:
        args = ",".join(f"{k}={v}" for k, v in self.params)
        return f"{self.kind}({args})@{self.series[:12]}"


@runtime_checkable
class Indicator(Protocol):
    """A pure function of (series, parameters)."""

    kind: str

    def params(self) -> dict[str, Hashable]:
        """Parameters that, with ``kind``, identify the computation."""
        ...

    def compute(self, series: TimeSeries) -> IndicatorValue:
        """Compute values aligned 1:1 with ``series`` bars."""
        ...


def indicator_key(indicator: Indicator, series: TimeSeries) -> IndicatorKey:
    """Cache key for ``indicator`` evaluated over ``series``."""
    return IndicatorKey.of(indicator.kind, indicator.params(), series.identity)
