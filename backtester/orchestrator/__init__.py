"""Orchestration: expand experiments into runs and execute them in parallel."""

from backtester.orchestrator.experiment import (
    DatasetSpec,
    ExperimentConfig,
    ParameterSpace,
    StrategySpec,
    TuningConfig,
    load_datasets,
    load_experiment,
)
from backtester.orchestrator.scheduler import BatchResult, Orchestrator, RunTask

__all__ = [
    "BatchResult",
    "DatasetSpec",
    "ExperimentConfig",
    "Orchestrator",
    "ParameterSpace",
    "RunTask",
    "StrategySpec",
    "TuningConfig",
    "load_datasets",
    "load_experiment",
]
