"""Parse OHLCV tables into immutable TimeSeries.

The loader never repairs input: a missing column, an unparseable value or
out-of-order timestamps raise :class:`MalformedInputError`.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from pathlib import Path

import pandas as pd
import structlog

from backtester.core.types import Bar
from backtester.data.exceptions import MalformedInputError
from backtester.data.timeseries import BAR_FIELDS, TimeSeries

logger = structlog.stdlib.get_logger()

_TIME_COLUMNS = ("datetime", "date", "timestamp")


def load_csv(path: str | Path, symbol: str | None = None) -> TimeSeries:
    """Load a TimeSeries from a CSV file.

    Args:
        path: CSV with ``open, high, low, close, volume, datetime`` columns
            (case-insensitive; ``date``/``timestamp`` accepted for datetime).
        symbol: Symbol name. Defaults to the file stem.
    """
    csv_path = Path(path)
    if not csv_path.is_file():
        raise MalformedInputError(f"price file not found: {csv_path}")

    try:
        frame = pd.read_csv(csv_path, dtype=str, skipinitialspace=True)
    except (pd.errors.ParserError, pd.errors.EmptyDataError, UnicodeDecodeError) as exc:
        raise MalformedInputError(f"{csv_path}: unreadable CSV ({exc})") from exc

    series = from_frame(frame, symbol or csv_path.stem, source=str(csv_path))
    logger.debug(
        "timeseries_loaded",
        path=str(csv_path),
        symbol=series.symbol,
        bars=len(series),
        identity=series.identity[:12],
    )
    return series


def load_directory(path: str | Path) -> list[TimeSeries]:
    """Load every ``*.csv`` in a folder, sorted by file name."""
    folder = Path(path)
    if not folder.is_dir():
        raise MalformedInputError(f"data directory not found: {folder}")
    return [load_csv(p) for p in sorted(folder.glob("*.csv"))]


def from_frame(frame: pd.DataFrame, symbol: str, source: str = "") -> TimeSeries:
    """Build a TimeSeries from a DataFrame of raw (string) values."""
    columns = {str(c).strip().lower(): c for c in frame.columns}
    time_column = next((columns[name] for name in _TIME_COLUMNS if name in columns), None)

    missing = [name for name in BAR_FIELDS if name not in columns]
    if time_column is None:
        missing.append("datetime")
    if missing:
        raise MalformedInputError(f"{source or symbol}: missing column(s) {', '.join(missing)}")

    timestamps = _parse_timestamps(frame[time_column], source or symbol)

    values = {name: frame[columns[name]].tolist() for name in BAR_FIELDS}
    bars: list[Bar] = []
    for row, ts in enumerate(timestamps):
        fields = {
            name: _to_decimal(values[name][row], name, row, source or symbol)
            for name in BAR_FIELDS
        }
        bars.append(Bar(timestamp=ts.to_pydatetime(), **fields))

    return TimeSeries(symbol, bars, source=source)


def _parse_timestamps(raw: pd.Series, where: str) -> pd.DatetimeIndex:
    text = raw.astype(str).str.strip()
    try:
        if len(text) and text.str.fullmatch(r"\d+").all():
            parsed = pd.to_datetime(text.astype("int64"), unit="s", utc=True)
        else:
            parsed = pd.to_datetime(text, utc=True, errors="raise")
    except (ValueError, TypeError, OverflowError) as exc:
        raise MalformedInputError(f"{where}: unparseable timestamp ({exc})") from exc

    index = pd.DatetimeIndex(parsed)
    if index.isna().any():
        row = int(index.isna().argmax())
        raise MalformedInputError(f"{where}: empty timestamp at row {row}")
    return index


def _to_decimal(raw: object, column: str, row: int, where: str) -> Decimal:
    try:
        value = Decimal(str(raw).strip())
    except InvalidOperation as exc:
        raise MalformedInputError(
            f"{where}: row {row} column {column!r} is not a number ({raw!r})"
        ) from exc
    if not value.is_finite():
        raise MalformedInputError(f"{where}: row {row} column {column!r} is missing")
    return value
