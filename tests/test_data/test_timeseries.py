"""Tests for backtester/data/timeseries.py."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest

from backtester.core.types import Bar
from backtester.data.exceptions import MalformedInputError
from backtester.data.timeseries import TimeSeries


def _bars(closes: list[int | str], start: datetime | None = None) -> list[Bar]:
    t0 = start or datetime(2024, 1, 1, tzinfo=UTC)
    return [
        Bar(
            timestamp=t0 + timedelta(days=i),
            open=Decimal(c),
            high=Decimal(c) + 1,
            low=Decimal(c) - 1,
            close=Decimal(c),
            volume=Decimal(100),
        )
        for i, c in enumerate(closes)
    ]


class TestConstruction:
    def test_length_and_bounds(self) -> None:
        series = TimeSeries("AAPL", _bars([1, 2, 3]))
        assert len(series) == 3
        assert series.symbol == "AAPL"
        assert series.start == datetime(2024, 1, 1, tzinfo=UTC)
        assert series.end == datetime(2024, 1, 3, tzinfo=UTC)

    def test_empty_series(self) -> None:
        series = TimeSeries("AAPL", [])
        assert len(series) == 0
        assert series.start is None
        assert series.end is None

    def test_rejects_out_of_order_timestamps(self) -> None:
        bars = _bars([1, 2, 3])
        bars[1], bars[2] = bars[2], bars[1]
        with pytest.raises(MalformedInputError, match="strictly increase"):
            TimeSeries("AAPL", bars)

    def test_rejects_duplicate_timestamps(self) -> None:
        bars = _bars([1, 2])
        bars[1] = bars[1].model_copy(update={"timestamp": bars[0].timestamp})
        with pytest.raises(MalformedInputError):
            TimeSeries("AAPL", bars)

    def test_is_immutable(self) -> None:
        series = TimeSeries("AAPL", _bars([1]))
        with pytest.raises(AttributeError):
            series.symbol = "MSFT"  # type: ignore[misc]


class TestIdentity:
    def test_same_content_same_identity(self) -> None:
        a = TimeSeries("AAPL", _bars([1, 2, 3]), source="a.csv")
        b = TimeSeries("AAPL", _bars([1, 2, 3]), source="b.csv")
        assert a.identity == b.identity
        assert a == b
        assert hash(a) == hash(b)

    def test_different_prices_differ(self) -> None:
        a = TimeSeries("AAPL", _bars([1, 2, 3]))
        b = TimeSeries("AAPL", _bars([1, 2, 4]))
        assert a.identity != b.identity

    def test_symbol_is_part_of_identity(self) -> None:
        a = TimeSeries("AAPL", _bars([1, 2, 3]))
        b = TimeSeries("MSFT", _bars([1, 2, 3]))
        assert a.identity != b.identity


class TestAccess:
    def test_field_column(self) -> None:
        series = TimeSeries("AAPL", _bars([10, 20, 30]))
        assert series.field("close") == (Decimal(10), Decimal(20), Decimal(30))
        assert series.field("high") == (Decimal(11), Decimal(21), Decimal(31))

    def test_unknown_field(self) -> None:
        series = TimeSeries("AAPL", _bars([10]))
        with pytest.raises(ValueError, match="unknown bar field"):
            series.field("vwap")

    def test_tickers_carry_index_and_symbol(self) -> None:
        series = TimeSeries("AAPL", _bars([10, 20]))
        tickers = list(series.tickers())
        assert [t.index for t in tickers] == [0, 1]
        assert all(t.symbol == "AAPL" for t in tickers)
        assert tickers[1].close == Decimal(20)
        assert series.ticker(1) == tickers[1]

    def test_indexing_and_slicing(self) -> None:
        series = TimeSeries("AAPL", _bars([10, 20, 30]))
        assert series[0].close == Decimal(10)
        assert [b.close for b in series[1:]] == [Decimal(20), Decimal(30)]
        assert [b.close for b in series] == [Decimal(10), Decimal(20), Decimal(30)]
