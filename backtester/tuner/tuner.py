"""Searches a parameter space through the Orchestrator."""

from __future__ import annotations

import math
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from typing import Any

import structlog
from pydantic import ValidationError

from backtester.backtest.types import Result, RunKey
from backtester.core.config import BrokerConfig
from backtester.core.types import RunStatus
from backtester.data.timeseries import TimeSeries
from backtester.orchestrator.experiment import ParameterSpace, StrategySpec, TuningConfig
from backtester.orchestrator.scheduler import BatchResult, Orchestrator, RunTask
from backtester.tuner.exceptions import TunerError, TunerNoFeasibleParams
from backtester.tuner.objectives import Objective, resolve_objective
from backtester.tuner.search import GridSearch, RandomSearch, SearchStrategy

logger = structlog.stdlib.get_logger()


@dataclass(frozen=True)
class Candidate:
    """One point of the space, resolved into a strategy spec and broker config."""

    index: int
    params: dict[str, Any]
    strategy: StrategySpec
    broker: BrokerConfig


@dataclass(frozen=True)
class RankedCandidate:
    """A candidate with its objective score across datasets."""

    candidate: Candidate
    score: float
    completed: int
    failed: int
    results: tuple[Result, ...] = ()

    @property
    def params(self) -> dict[str, Any]:
        return self.candidate.params


@dataclass
class TuningResult:
    """Best candidate plus the full ranking (descending score, ties in candidate order)."""

    best: RankedCandidate
    ranking: list[RankedCandidate]
    infeasible: list[Candidate] = field(default_factory=list)
    objective: str = ""
    batch: BatchResult | None = None

    @property
    def evaluated(self) -> int:
        return len(self.ranking) + len(self.infeasible)


def apply_broker_overrides(base: BrokerConfig, overrides: Mapping[str, Any]) -> BrokerConfig:
    """Copy of ``base`` with dotted-path overrides such as ``slippage.bps``.

    Raises:
        TunerError: A path does not exist on the config.
        ValidationError: An overridden value is invalid.
    """
    data = base.model_dump()
    for path, value in overrides.items():
        parts = path.split(".")
        node = data
        for part in parts[:-1]:
            if not isinstance(node.get(part), dict):
                raise TunerError(f"unknown broker parameter {path!r}")
            node = node[part]
        if parts[-1] not in node:
            raise TunerError(f"unknown broker parameter {path!r}")
        node[parts[-1]] = value
    return BrokerConfig.model_validate(data)


def _describe(overrides: Mapping[str, Any]) -> str:
    return ",".join(f"{k}={overrides[k]}" for k in sorted(overrides))


class Tuner:
    """Evaluates candidates across datasets and ranks them by an objective.

    Every candidate runs through the same Orchestrator, so every run
    shares its IndicatorCache: sweeping broker parameters recomputes no
    indicator, and strategy candidates reuse whatever indicators they
    have in common.

    Usage::

        tuner = Tuner(orchestrator, objective="sharpe_ratio", search=GridSearch())
        space = ParameterSpace(strategy={"fast": [5, 10]}, broker={"slippage.bps": [0, 5]})
        result = await tuner.tune(StrategySpec(name="sma_crossover"), datasets, space)
        print(result.best.params, result.best.score)
    """

    def __init__(
        self,
        orchestrator: Orchestrator,
        objective: str | Objective = "sharpe_ratio",
        search: SearchStrategy | None = None,
    ) -> None:
        self._orchestrator = orchestrator
        self._objective_name, self._objective = resolve_objective(objective)
        self._search = search or GridSearch()

    @classmethod
    def from_config(cls, orchestrator: Orchestrator, config: TuningConfig) -> Tuner:
        search: SearchStrategy = (
            RandomSearch(samples=config.samples, seed=config.seed)
            if config.search == "random"
            else GridSearch()
        )
        return cls(orchestrator, objective=config.objective, search=search)

    @property
    def orchestrator(self) -> Orchestrator:
        return self._orchestrator

    async def tune(
        self,
        strategy: StrategySpec,
        datasets: Mapping[str, TimeSeries],
        space: ParameterSpace,
        base_broker: BrokerConfig | None = None,
    ) -> TuningResult:
        """Run every candidate on every dataset and rank by mean objective.

        Raises:
            TunerNoFeasibleParams: The space is empty or no candidate
                completed a single run.
            TunerError: A broker parameter path is unknown.
        """
        if space.size == 0 or not datasets:
            raise TunerNoFeasibleParams("search space or dataset set is empty")
        base = base_broker or BrokerConfig()

        candidates: list[Candidate] = []
        invalid: list[Candidate] = []
        owners: dict[RunKey, int] = {}

        def tasks() -> Iterator[RunTask]:
            seen_params: set[str] = set()
            # Values such as 5 and "5" render to the same RunKey labels.
            seen_labels: set[tuple[str, str]] = set()
            for params in self._search.candidates(space):
                fingerprint = repr(sorted(params.items()))
                if fingerprint in seen_params:
                    continue
                seen_params.add(fingerprint)
                index = len(candidates) + len(invalid)
                candidate = self._resolve(index, params, strategy, base)
                if candidate is None:
                    invalid.append(Candidate(index, params, strategy, base))
                    continue
                labels = (candidate.strategy.display, candidate.broker.name)
                if labels in seen_labels:
                    logger.debug("candidate_duplicate", params=params, broker=labels[1])
                    continue
                seen_labels.add(labels)
                candidates.append(candidate)
                for label, series in datasets.items():
                    task = RunTask.of(candidate.strategy, label, series, candidate.broker)
                    owners[task.key] = candidate.index
                    yield task

        logger.info(
            "tuning_started",
            strategy=strategy.name,
            space_size=space.size,
            search=repr(self._search),
            objective=self._objective_name,
        )
        batch = await self._orchestrator.run(tasks())

        by_candidate: dict[int, list[Result]] = {c.index: [] for c in candidates}
        for key, result in batch.results.items():
            by_candidate[owners[key]].append(result)

        ranking: list[RankedCandidate] = []
        infeasible = list(invalid)
        for candidate in candidates:
            results = by_candidate[candidate.index]
            scores = [
                self._objective(r) for r in results if r.status == RunStatus.COMPLETED
            ]
            scores = [s for s in scores if not math.isnan(s)]
            if not scores:
                infeasible.append(candidate)
                continue
            ranking.append(RankedCandidate(
                candidate=candidate,
                score=sum(scores) / len(scores),
                completed=len(scores),
                failed=sum(1 for r in results if r.status == RunStatus.FAILED),
                results=tuple(results),
            ))

        if not ranking:
            raise TunerNoFeasibleParams(
                f"none of {len(candidates) + len(invalid)} candidates completed a run"
            )

        ranking.sort(key=lambda rc: -rc.score)
        best = ranking[0]
        logger.info(
            "tuning_completed",
            evaluated=len(candidates) + len(invalid),
            feasible=len(ranking),
            best=best.params,
            score=round(best.score, 6),
        )
        return TuningResult(
            best=best,
            ranking=ranking,
            infeasible=sorted(infeasible, key=lambda c: c.index),
            objective=self._objective_name,
            batch=batch,
        )

    def _resolve(
        self,
        index: int,
        params: dict[str, Any],
        strategy: StrategySpec,
        base: BrokerConfig,
    ) -> Candidate | None:
        strategy_params = {
            k.removeprefix("strategy."): v for k, v in params.items() if k.startswith("strategy.")
        }
        broker_params = {
            k.removeprefix("broker."): v for k, v in params.items() if k.startswith("broker.")
        }

        merged = {**strategy.params, **strategy_params}
        spec = StrategySpec(name=strategy.name, params=merged)

        broker = base
        if broker_params:
            try:
                broker = apply_broker_overrides(base, broker_params)
            except ValidationError as exc:
                logger.warning("candidate_invalid", params=params, error=str(exc))
                return None
            broker = broker.model_copy(update={"name": f"{base.name}[{_describe(broker_params)}]"})

        return Candidate(index=index, params=params, strategy=spec, broker=broker)
