"""Tests for backtester/data/loader.py."""

from __future__ import annotations

from datetime import UTC, datetime
from decimal import Decimal
from pathlib import Path

import pandas as pd
import pytest

from backtester.data.exceptions import InputError, MalformedInputError
from backtester.data.loader import from_frame, load_csv, load_directory

_HEADER = "datetime,open,high,low,close,volume\n"


def _write(path: Path, body: str, header: str = _HEADER) -> Path:
    path.write_text(header + body)
    return path


class TestLoadCsv:
    def test_loads_bars(self, tmp_path: Path) -> None:
        path = _write(
            tmp_path / "AAPL.csv",
            "2024-01-02,100,101,99,100.5,1000\n"
            "2024-01-03,100.5,102,100,101.25,1200\n",
        )
        series = load_csv(path)
        assert series.symbol == "AAPL"
        assert len(series) == 2
        assert series[1].close == Decimal("101.25")
        assert series[0].timestamp == datetime(2024, 1, 2, tzinfo=UTC)
        assert series.source == str(path)

    def test_symbol_override(self, tmp_path: Path) -> None:
        path = _write(tmp_path / "prices.csv", "2024-01-02,1,1,1,1,1\n")
        assert load_csv(path, symbol="MSFT").symbol == "MSFT"

    def test_columns_are_case_insensitive(self, tmp_path: Path) -> None:
        path = _write(
            tmp_path / "X.csv",
            "2024-01-02,1,2,0.5,1.5,10\n",
            header="Date,Open,High,Low,Close,Volume\n",
        )
        assert load_csv(path)[0].high == Decimal(2)

    def test_epoch_seconds(self, tmp_path: Path) -> None:
        path = _write(
            tmp_path / "X.csv",
            "1704067200,1,1,1,1,1\n1704153600,1,1,1,1,1\n",
            header="timestamp,open,high,low,close,volume\n",
        )
        series = load_csv(path)
        assert series[0].timestamp == datetime(2024, 1, 1, tzinfo=UTC)
        assert series[1].timestamp == datetime(2024, 1, 2, tzinfo=UTC)

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(MalformedInputError, match="not found"):
            load_csv(tmp_path / "missing.csv")

    def test_missing_column(self, tmp_path: Path) -> None:
        path = _write(
            tmp_path / "X.csv",
            "2024-01-02,1,1,1,1\n",
            header="datetime,open,high,low,close\n",
        )
        with pytest.raises(MalformedInputError, match="volume"):
            load_csv(path)

    def test_missing_time_column(self, tmp_path: Path) -> None:
        path = _write(tmp_path / "X.csv", "1,1,1,1,1\n", header="open,high,low,close,volume\n")
        with pytest.raises(MalformedInputError, match="datetime"):
            load_csv(path)

    def test_unparseable_number(self, tmp_path: Path) -> None:
        path = _write(tmp_path / "X.csv", "2024-01-02,1,1,1,abc,1\n")
        with pytest.raises(MalformedInputError, match="close"):
            load_csv(path)

    def test_empty_cell(self, tmp_path: Path) -> None:
        path = _write(tmp_path / "X.csv", "2024-01-02,1,1,1,,1\n")
        with pytest.raises(MalformedInputError):
            load_csv(path)

    def test_unparseable_timestamp(self, tmp_path: Path) -> None:
        path = _write(tmp_path / "X.csv", "not-a-date,1,1,1,1,1\n")
        with pytest.raises(MalformedInputError, match="timestamp"):
            load_csv(path)

    def test_out_of_order_rows(self, tmp_path: Path) -> None:
        path = _write(
            tmp_path / "X.csv",
            "2024-01-03,1,1,1,1,1\n2024-01-02,1,1,1,1,1\n",
        )
        with pytest.raises(MalformedInputError, match="strictly increase"):
            load_csv(path)

    def test_malformed_is_input_error(self, tmp_path: Path) -> None:
        with pytest.raises(InputError):
            load_csv(tmp_path / "missing.csv")


class TestLoadDirectory:
    def test_loads_sorted_by_name(self, tmp_path: Path) -> None:
        _write(tmp_path / "MSFT.csv", "2024-01-02,1,1,1,1,1\n")
        _write(tmp_path / "AAPL.csv", "2024-01-02,2,2,2,2,2\n")
        (tmp_path / "notes.txt").write_text("ignored")

        series = load_directory(tmp_path)
        assert [s.symbol for s in series] == ["AAPL", "MSFT"]

    def test_missing_directory(self, tmp_path: Path) -> None:
        with pytest.raises(MalformedInputError):
            load_directory(tmp_path / "nope")


class TestFromFrame:
    def test_same_content_same_identity(self) -> None:
        frame = pd.DataFrame({
            "datetime": ["2024-01-02", "2024-01-03"],
            "open": ["1", "2"],
            "high": ["1", "2"],
            "low": ["1", "2"],
            "close": ["1", "2"],
            "volume": ["0", "0"],
        })
        a = from_frame(frame, "AAPL", source="a")
        b = from_frame(frame.copy(), "AAPL", source="b")
        assert a.identity == b.identity
