"""Runs many independent backtests on a shared worker pool."""

from __future__ import annotations

import asyncio
import os
import threading
from collections.abc import Callable, Iterable, Iterator, Mapping, Sized
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field

import structlog

from backtester.backtest.run import BacktestRun, cancelled_result, failed_result
from backtester.backtest.types import Result, RunKey
from backtester.broker.exchange import RunEventCallback
from backtester.core.config import BrokerConfig, get_settings
from backtester.core.logging import run_context
from backtester.core.types import RunStatus
from backtester.data.timeseries import TimeSeries
from backtester.indicators.cache import CacheStats, IndicatorCache
from backtester.orchestrator.experiment import ExperimentConfig, StrategySpec
from backtester.strategy.base import Strategy

logger = structlog.stdlib.get_logger()

StrategyFactory = Callable[[], Strategy]


@dataclass(frozen=True)
class RunTask:
    """One (strategy, dataset, broker) combination, not yet started.

    ``factory`` builds a fresh strategy inside the worker, so construction
    errors fail only this run.
    """

    key: RunKey
    factory: StrategyFactory
    series: TimeSeries
    broker: BrokerConfig

    @classmethod
    def of(
        cls,
        spec: StrategySpec,
        dataset: str,
        series: TimeSeries,
        broker: BrokerConfig,
    ) -> RunTask:
        key = RunKey(strategy=spec.display, dataset=dataset, broker=broker.name)
        return cls(key=key, factory=spec.build, series=series, broker=broker)


@dataclass
class BatchResult:
    """Results of one batch, keyed by RunKey in submission order."""

    results: dict[RunKey, Result] = field(default_factory=dict)
    cache_stats: CacheStats | None = None

    def __len__(self) -> int:
        return len(self.results)

    def __getitem__(self, key: RunKey) -> Result:
        return self.results[key]

    @property
    def statuses(self) -> dict[RunKey, RunStatus]:
        return {key: r.status for key, r in self.results.items()}

    @property
    def completed(self) -> list[Result]:
        return [r for r in self.results.values() if r.status == RunStatus.COMPLETED]

    @property
    def failed(self) -> list[Result]:
        return [r for r in self.results.values() if r.status == RunStatus.FAILED]

    @property
    def cancelled(self) -> list[Result]:
        return [r for r in self.results.values() if r.status == RunStatus.CANCELLED]

    @property
    def all_failed(self) -> bool:
        """Every run failed (cancelled runs aside) and at least one did."""
        return bool(self.failed) and not self.completed

    @property
    def partial_failure(self) -> bool:
        return bool(self.failed) and bool(self.completed)

    def ranked(self, metric: str = "sharpe_ratio") -> list[Result]:
        """Completed results, best first by ``metric``; ties keep submission order."""
        return sorted(
            self.completed,
            key=lambda r: getattr(r.metrics, metric) or 0.0,
            reverse=True,
        )


class Orchestrator:
    """Schedules BacktestRuns on a fixed-size thread pool.

    Runs execute on threads and share one in-memory IndicatorCache and the
    TimeSeries; each run owns its exchange and strategy.

    Usage::

        orchestrator = Orchestrator(cache=IndicatorCache(), workers=4)
        tasks = orchestrator.expand(experiment, datasets)
        batch = await orchestrator.run(tasks)
        for key, result in batch.results.items():
            print(key, result.metrics.sharpe_ratio)
    """

    def __init__(
        self,
        cache: IndicatorCache | None = None,
        workers: int | None = None,
        periods_per_year: int | None = None,
    ) -> None:
        settings = get_settings()
        self._cache = cache if cache is not None else IndicatorCache(
            capacity=settings.engine.cache_capacity,
        )
        self._workers = workers or settings.engine.workers
        self._periods_per_year = periods_per_year or settings.engine.periods_per_year
        self._callbacks: list[RunEventCallback] = []
        self._cancel_event = threading.Event()
        self._running = False

    @property
    def cache(self) -> IndicatorCache:
        return self._cache

    @property
    def running(self) -> bool:
        return self._running

    def on_event(self, callback: RunEventCallback) -> None:
        """Register a callback for every run's events. Called from worker threads."""
        self._callbacks.append(callback)

    def cancel(self) -> None:
        """Stop the current batch: in-flight runs end at their next bar.

        Called while no batch is running, it cancels the next batch.
        """
        if not self._cancel_event.is_set():
            logger.info("batch_cancel_requested")
        self._cancel_event.set()

    # ── Expansion ───────────────────────────────────────────────

    def expand(
        self,
        experiment: ExperimentConfig,
        datasets: Mapping[str, TimeSeries],
    ) -> Iterator[RunTask]:
        """Lazily yield the strategies × datasets × brokers cross-product."""
        for spec in experiment.strategies:
            for label, series in datasets.items():
                for broker in experiment.brokers:
                    yield RunTask.of(spec, label, series, broker)

    # ── Execution ───────────────────────────────────────────────

    async def run(self, tasks: Iterable[RunTask]) -> BatchResult:
        """Execute every task and collect results.

        The task iterable is consumed lazily; at most ``workers`` runs are in
        flight. Cancelling the awaiting asyncio task cancels the batch.

        Raises:
            ValueError: Two tasks share a RunKey.
        """
        if self._running:
            raise RuntimeError("orchestrator is already running a batch")
        self._running = True
        cancel_event = self._cancel_event

        workers = _resolve_workers(self._workers, tasks)
        loop = asyncio.get_running_loop()
        slots = asyncio.Semaphore(workers)
        order: list[RunKey] = []
        done: dict[RunKey, Result] = {}
        futures: dict[RunKey, asyncio.Future[Result]] = {}

        logger.info("batch_started", workers=workers)
        pool = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="backtest")
        try:
            for task in tasks:
                if task.key in done or task.key in futures:
                    raise ValueError(f"duplicate run key {task.key}")
                order.append(task.key)

                await slots.acquire()
                if cancel_event.is_set():
                    slots.release()
                    done[task.key] = cancelled_result(task.key, task.broker)
                    continue

                future = loop.run_in_executor(pool, self._execute, task, cancel_event)
                future.add_done_callback(lambda _: slots.release())
                futures[task.key] = future

            for key, result in zip(futures, await asyncio.gather(*futures.values())):
                done[key] = result
        except BaseException:
            cancel_event.set()
            await asyncio.gather(*futures.values(), return_exceptions=True)
            raise
        finally:
            pool.shutdown(wait=False)
            self._cancel_event = threading.Event()
            self._running = False

        batch = BatchResult(
            results={key: done[key] for key in order},
            cache_stats=self._cache.stats,
        )
        logger.info(
            "batch_completed",
            runs=len(batch),
            completed=len(batch.completed),
            failed=len(batch.failed),
            cancelled=len(batch.cancelled),
            cache_hits=batch.cache_stats.hits if batch.cache_stats else 0,
            cache_computations=batch.cache_stats.computations if batch.cache_stats else 0,
        )
        return batch

    def _execute(self, task: RunTask, cancel_event: threading.Event) -> Result:
        """Worker-thread entry point. Never raises for run-local errors."""
        if cancel_event.is_set():
            return cancelled_result(task.key, task.broker)
        try:
            strategy = task.factory()
        except Exception as exc:
            with run_context(str(task.key)):
                logger.warning("run_setup_failed", error=str(exc), error_type=type(exc).__name__)
            return failed_result(task.key, task.broker, exc)

        run = BacktestRun(
            key=task.key,
            strategy=strategy,
            series=task.series,
            broker=task.broker,
            cache=self._cache,
            cancel_event=cancel_event,
            periods_per_year=self._periods_per_year,
            callbacks=self._callbacks,
        )
        return run.execute()


def _resolve_workers(configured: int | None, tasks: Iterable[RunTask]) -> int:
    workers = configured or os.cpu_count() or 1
    if isinstance(tasks, Sized):
        workers = min(workers, len(tasks))
    return max(1, workers)
