"""Declarative experiment description: datasets × strategies × brokers, plus tuning."""

from __future__ import annotations

from collections.abc import Iterator
from itertools import product
from pathlib import Path
from typing import Any, Literal

import structlog
from pydantic import BaseModel, Field, ValidationError, field_validator

from backtester.core.config import BrokerConfig, get_settings, read_yaml
from backtester.data.exceptions import InputError
from backtester.data.loader import load_csv, load_directory
from backtester.data.timeseries import TimeSeries
from backtester.strategy.base import Strategy
from backtester.strategy.registry import create_strategy, strategy_label

logger = structlog.stdlib.get_logger()


class DatasetSpec(BaseModel):
    """A CSV file, or a folder of CSV files (one series per file)."""

    path: str
    symbol: str | None = None
    name: str | None = None


class StrategySpec(BaseModel):
    """A registered strategy name plus constructor parameters."""

    name: str
    params: dict[str, Any] = {}
    label: str | None = None

    @property
    def display(self) -> str:
        return self.label or strategy_label(self.name, self.params)

    def build(self) -> Strategy:
        """Fresh strategy instance. Called once per run."""
        return create_strategy(self.name, self.params)


class ParameterSpace(BaseModel):
    """Candidate values per parameter.

    ``strategy`` keys are constructor parameters. ``broker`` keys are dotted
    paths into :class:`BrokerConfig` such as ``slippage.bps`` or
    ``commission.rate``.
    """

    strategy: dict[str, list[Any]] = {}
    broker: dict[str, list[Any]] = {}

    @field_validator("strategy", "broker")
    @classmethod
    def _check_values(cls, v: dict[str, list[Any]]) -> dict[str, list[Any]]:
        for name, values in v.items():
            if not values:
                raise ValueError(f"parameter {name!r} has no candidate values")
        return v

    def dimensions(self) -> list[tuple[str, list[Any]]]:
        """``(qualified name, values)`` in a stable order: strategy first, then broker."""
        dims = [(f"strategy.{k}", list(vs)) for k, vs in self.strategy.items()]
        dims += [(f"broker.{k}", list(vs)) for k, vs in self.broker.items()]
        return dims

    @property
    def size(self) -> int:
        """Number of combinations; 0 for a space with no parameters."""
        dims = self.dimensions()
        total = 1
        for _, values in dims:
            total *= len(values)
        return total if dims else 0

    def combinations(self) -> Iterator[dict[str, Any]]:
        """Lazily yield every combination, last dimension varying fastest."""
        dims = self.dimensions()
        if not dims:
            return
        names = [name for name, _ in dims]
        for combo in product(*(values for _, values in dims)):
            yield dict(zip(names, combo))


class TuningConfig(BaseModel):
    """Search over one strategy's (and the broker's) parameters."""

    strategy: StrategySpec
    space: ParameterSpace = ParameterSpace()
    objective: str = "sharpe_ratio"
    search: Literal["grid", "random"] = "grid"
    samples: int = Field(default=20, ge=1)
    seed: int = 0


class ExperimentConfig(BaseModel):
    """Everything the orchestrator needs to expand a batch of runs."""

    name: str = "experiment"
    datasets: list[DatasetSpec]
    strategies: list[StrategySpec] = []
    brokers: list[BrokerConfig] = Field(default_factory=lambda: [get_settings().broker])
    tuning: TuningConfig | None = None

    @field_validator("brokers")
    @classmethod
    def _check_brokers(cls, v: list[BrokerConfig]) -> list[BrokerConfig]:
        names = [b.name for b in v]
        dupes = sorted({n for n in names if names.count(n) > 1})
        if dupes:
            raise ValueError(f"duplicate broker name(s): {', '.join(dupes)}")
        return v


def load_experiment(path: str | Path) -> ExperimentConfig:
    """Load an experiment from YAML. Relative dataset paths resolve against the file.

    Raises:
        InputError: The file is missing or does not describe a valid experiment.
    """
    config_path = Path(path)
    if not config_path.is_file():
        raise InputError(f"experiment file not found: {config_path}")
    raw = read_yaml(config_path)
    try:
        experiment = ExperimentConfig(**raw)
    except ValidationError as exc:
        raise InputError(f"{config_path}: invalid experiment ({exc})") from exc

    base = config_path.parent
    datasets = [
        ds if Path(ds.path).is_absolute() else ds.model_copy(update={"path": str(base / ds.path)})
        for ds in experiment.datasets
    ]
    return experiment.model_copy(update={"datasets": datasets})


def load_datasets(specs: list[DatasetSpec]) -> dict[str, TimeSeries]:
    """Load every dataset up front, keyed by label.

    A folder contributes one series per CSV, labelled by file stem.

    Raises:
        InputError: Any file is missing or malformed, or two datasets share a label.
    """
    loaded: dict[str, TimeSeries] = {}

    def add(label: str, series: TimeSeries) -> None:
        if label in loaded:
            raise InputError(f"duplicate dataset label {label!r}")
        loaded[label] = series

    for spec in specs:
        path = Path(spec.path)
        if path.is_dir():
            for series in load_directory(path):
                add(series.symbol, series)
        else:
            series = load_csv(path, symbol=spec.symbol)
            add(spec.name or series.symbol, series)

    logger.info("datasets_loaded", count=len(loaded), labels=sorted(loaded))
    return loaded
