"""Objective functions: map a Result to a score to maximize."""

from __future__ import annotations

from collections.abc import Callable

from backtester.backtest.types import Metrics, Result
from backtester.tuner.exceptions import TunerError

Objective = Callable[[Result], float]

METRIC_NAMES = tuple(Metrics.model_fields)


def metric_objective(name: str) -> Objective:
    """Objective reading one metric. A leading ``-`` minimizes it instead.

    ``max_drawdown`` is a loss, so tune with ``"-max_drawdown"``.
    """
    sign = -1.0 if name.startswith("-") else 1.0
    field = name.lstrip("-")
    if field not in METRIC_NAMES:
        raise TunerError(f"unknown metric {field!r}; expected one of {', '.join(METRIC_NAMES)}")

    def objective(result: Result) -> float:
        value = getattr(result.metrics, field)
        return sign * float(value or 0.0)

    objective.__name__ = name
    return objective


def resolve_objective(objective: str | Objective) -> tuple[str, Objective]:
    """``(display name, callable)`` for a metric name or a custom callable."""
    if isinstance(objective, str):
        return objective, metric_objective(objective)
    return getattr(objective, "__name__", "custom"), objective
