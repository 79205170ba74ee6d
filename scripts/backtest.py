#!/usr/bin/env python3
"""Backtest CLI: run an experiment (or tune one) and print a ranked table.

Usage:
    python -m scripts.backtest config/experiment.example.yaml
    python -m scripts.backtest experiment.yaml --workers 4
    python -m scripts.backtest experiment.yaml --tune

Experiment YAML format::

    name: sma-sweep
    datasets:
      - path: data/AAPL.csv          # or a folder of CSV files
    strategies:
      - name: sma_crossover
        params: {fast: 10, slow: 30, quantity: 100}
      - name: buy_and_hold
    brokers:
      - name: zero-cost
      - name: retail
        commission: {kind: percentage, rate: "0.001"}
        slippage: {kind: bps, bps: "5"}
    tuning:                          # used with --tune
      strategy: {name: sma_crossover, params: {quantity: 100}}
      space:
        strategy: {fast: [5, 10], slow: [20, 30]}
        broker: {slippage.bps: [0, 5]}
      objective: sharpe_ratio
      search: grid
"""

from __future__ import annotations

import argparse
import asyncio
import sys

import structlog

from backtester.backtest.types import Result
from backtester.core.config import load_settings
from backtester.core.logging import setup_logging
from backtester.data.exceptions import InputError
from backtester.indicators.cache import IndicatorCache
from backtester.monitor.event_log import EventLog
from backtester.orchestrator.experiment import ExperimentConfig, load_datasets, load_experiment
from backtester.orchestrator.scheduler import Orchestrator
from backtester.tuner.exceptions import TunerError
from backtester.tuner.tuner import Tuner, TuningResult

logger = structlog.stdlib.get_logger()


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Run strategies × datasets × broker configs in parallel.",
    )
    parser.add_argument(
        "experiment",
        help="Path to experiment YAML file",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to settings YAML (default: config/settings.yaml)",
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=None,
        help="Worker threads (default: settings, then CPU count)",
    )
    parser.add_argument(
        "--tune",
        action="store_true",
        help="Run the experiment's tuning section instead of the plain cross-product",
    )
    parser.add_argument(
        "--metric",
        default="sharpe_ratio",
        help="Metric to rank batch results by (default: sharpe_ratio)",
    )
    return parser.parse_args(argv)


def format_results(results: list[Result]) -> str:
    header = (
        f"{'STRATEGY':<32} {'DATASET':<12} {'BROKER':<24} {'STATUS':<10}"
        f" {'RETURN':>9} {'SHARPE':>8} {'MAX DD':>8} {'TRADES':>6}"
    )
    lines = [header, "-" * len(header)]
    for r in results:
        m = r.metrics
        lines.append(
            f"{r.key.strategy[:32]:<32} {r.key.dataset[:12]:<12} {r.key.broker[:24]:<24}"
            f" {r.status.value:<10} {m.total_return:>9.2%} {m.sharpe_ratio:>8.2f}"
            f" {m.max_drawdown:>8.2%} {m.trade_count:>6}"
        )
        if r.error:
            lines.append(f"    ! {r.error_type}: {r.error}")
    return "\n".join(lines)


def format_tuning(result: TuningResult) -> str:
    lines = [f"Objective: {result.objective}", ""]
    lines.append(f"{'#':>3} {'SCORE':>10} {'RUNS':>5} {'FAILED':>6}  PARAMS")
    for rank, rc in enumerate(result.ranking, start=1):
        params = ", ".join(f"{k}={v}" for k, v in rc.params.items())
        lines.append(f"{rank:>3} {rc.score:>10.4f} {rc.completed:>5} {rc.failed:>6}  {params}")
    if result.infeasible:
        lines.append("")
        lines.append(f"Infeasible candidates: {len(result.infeasible)}")
    lines.append("")
    lines.append(f"Best: {result.best.params} (score={result.best.score:.4f})")
    return "\n".join(lines)


async def run_experiment(args: argparse.Namespace, experiment: ExperimentConfig) -> int:
    datasets = load_datasets(experiment.datasets)

    orchestrator = Orchestrator(cache=IndicatorCache(), workers=args.workers)
    events = EventLog(log_decisions=False)
    orchestrator.on_event(events.on_event)

    print(f"Running experiment: {experiment.name}")
    print(f"  Datasets:   {len(datasets)}")

    if args.tune:
        if experiment.tuning is None:
            print("Experiment has no tuning section", file=sys.stderr)
            return 2
        tuning = experiment.tuning
        print(f"  Candidates: {tuning.space.size} ({tuning.search})")
        print()
        tuner = Tuner.from_config(orchestrator, tuning)
        result = await tuner.tune(
            tuning.strategy,
            datasets,
            tuning.space,
            base_broker=experiment.brokers[0] if experiment.brokers else None,
        )
        print(format_tuning(result))
        return 0

    print(f"  Strategies: {len(experiment.strategies)}")
    print(f"  Brokers:    {len(experiment.brokers)}")
    print()

    batch = await orchestrator.run(orchestrator.expand(experiment, datasets))
    ranked = batch.ranked(args.metric)
    print(format_results(ranked + batch.failed + batch.cancelled))

    stats = batch.cache_stats
    print()
    print(
        f"Runs: {len(batch)} completed={len(batch.completed)} failed={len(batch.failed)}"
        f" cancelled={len(batch.cancelled)}"
    )
    if stats is not None:
        print(
            f"Indicator cache: computations={stats.computations} hits={stats.hits}"
            f" waits={stats.waits}"
        )
    print(f"Events: {events.counts()}")
    return 1 if batch.all_failed else 0


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    load_settings(args.config)
    setup_logging()

    try:
        experiment = load_experiment(args.experiment)
        code = asyncio.run(run_experiment(args, experiment))
    except InputError as exc:
        logger.error("input_error", error=str(exc))
        print(f"Input error: {exc}", file=sys.stderr)
        code = 2
    except TunerError as exc:
        print(f"Tuning failed: {exc}", file=sys.stderr)
        code = 1
    sys.exit(code)


if __name__ == "__main__":
    main()
