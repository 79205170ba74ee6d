"""Parameter search over strategy and broker settings."""

from backtester.orchestrator.experiment import ParameterSpace
from backtester.tuner.exceptions import TunerError, TunerNoFeasibleParams
from backtester.tuner.objectives import METRIC_NAMES, Objective, metric_objective, resolve_objective
from backtester.tuner.search import GridSearch, RandomSearch, SearchStrategy
from backtester.tuner.tuner import (
    Candidate,
    RankedCandidate,
    Tuner,
    TuningResult,
    apply_broker_overrides,
)

__all__ = [
    "METRIC_NAMES",
    "Candidate",
    "GridSearch",
    "Objective",
    "ParameterSpace",
    "RandomSearch",
    "RankedCandidate",
    "SearchStrategy",
    "Tuner",
    "TunerError",
    "TunerNoFeasibleParams",
    "TuningResult",
    "apply_broker_overrides",
    "metric_objective",
    "resolve_objective",
]
