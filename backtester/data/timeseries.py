"""Immutable, content-addressed sequence of bars."""

from __future__ import annotations

import hashlib
from collections.abc import Iterable, Iterator
from datetime import datetime
from decimal import Decimal
from itertools import pairwise
from typing import Any, overload

from backtester.core.types import Bar, Ticker
from backtester.data.exceptions import MalformedInputError

BAR_FIELDS = ("open", "high", "low", "close", "volume")


class TimeSeries:
    """Ordered bars for one symbol, shared read-only by every consumer.

    Timestamps must be strictly increasing. ``identity`` is a SHA-256 hash
    of the symbol and bar contents; it is the series component of every
    indicator cache key, so identical data loaded twice shares cache entries.

    Usage::

        series = TimeSeries("AAPL", bars)
        for ticker in series.tickers():
            ...
        closes = series.field("close")
    """

    __slots__ = ("_symbol", "_bars", "_identity", "_source")

    def __init__(self, symbol: str, bars: Iterable[Bar], source: str = "") -> None:
        frozen = tuple(bars)
        for index, (prev, cur) in enumerate(pairwise(frozen), start=1):
            if cur.timestamp <= prev.timestamp:
                raise MalformedInputError(
                    f"{symbol}: bar {index} at {cur.timestamp.isoformat()} is not after"
                    f" {prev.timestamp.isoformat()} (timestamps must strictly increase)"
                )
        object.__setattr__(self, "_symbol", symbol)
        object.__setattr__(self, "_bars", frozen)
        object.__setattr__(self, "_source", source)
        object.__setattr__(self, "_identity", _content_hash(symbol, frozen))

    def __setattr__(self, name: str, value: Any) -> None:
        raise AttributeError(f"{type(self).__name__} is immutable")

    # ── Properties ──────────────────────────────────────────────

    @property
    def symbol(self) -> str:
        return self._symbol

    @property
    def bars(self) -> tuple[Bar, ...]:
        return self._bars

    @property
    def identity(self) -> str:
        """Stable content hash used as the cache key series component."""
        return self._identity

    @property
    def source(self) -> str:
        """Where the bars came from (file path), informational only."""
        return self._source

    @property
    def start(self) -> datetime | None:
        return self._bars[0].timestamp if self._bars else None

    @property
    def end(self) -> datetime | None:
        return self._bars[-1].timestamp if self._bars else None

    # ── Access ──────────────────────────────────────────────────

    def field(self, name: str) -> tuple[Decimal, ...]:
        """Column view of one bar field, aligned with the bars."""
        if name not in BAR_FIELDS:
            raise ValueError(f"unknown bar field {name!r}; expected one of {BAR_FIELDS}")
        return tuple(getattr(bar, name) for bar in self._bars)

    def ticker(self, index: int) -> Ticker:
        return Ticker(index=index, symbol=self._symbol, bar=self._bars[index])

    def tickers(self) -> Iterator[Ticker]:
        for index, bar in enumerate(self._bars):
            yield Ticker(index=index, symbol=self._symbol, bar=bar)

    def __len__(self) -> int:
        return len(self._bars)

    def __iter__(self) -> Iterator[Bar]:
        return iter(self._bars)

    @overload
    def __getitem__(self, index: int) -> Bar: ...

    @overload
    def __getitem__(self, index: slice) -> tuple[Bar, ...]: ...

    def __getitem__(self, index: int | slice) -> Bar | tuple[Bar, ...]:
        return self._bars[index]

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, TimeSeries):
            return NotImplemented
        return self._identity == other._identity

    def __hash__(self) -> int:
        return hash(self._identity)

    def __repr__(self) -> str:
        return (
            f"TimeSeries(symbol={self._symbol!r}, bars={len(self._bars)},"
            f" identity={self._identity[:12]})"
        )


def _content_hash(symbol: str, bars: tuple[Bar, ...]) -> str:
    digest = hashlib.sha256(symbol.encode())
    for bar in bars:
        digest.update(
            f"\n{bar.timestamp.isoformat()}|{bar.open}|{bar.high}|{bar.low}"
            f"|{bar.close}|{bar.volume}".encode()
        )
    return digest.hexdigest()
