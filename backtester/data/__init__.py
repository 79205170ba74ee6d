"""Market data: immutable time series and CSV loading."""

from backtester.data.exceptions import InputError, MalformedInputError
from backtester.data.loader import from_frame, load_csv, load_directory
from backtester.data.timeseries import TimeSeries

__all__ = [
    "InputError",
    "MalformedInputError",
    "TimeSeries",
    "from_frame",
    "load_csv",
    "load_directory",
]
