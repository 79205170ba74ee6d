"""Drives one (strategy, series, broker config) run to a Result."""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterable

import structlog

from backtester.backtest.exceptions import RunCancelled
from backtester.backtest.metrics import compute_metrics
from backtester.backtest.types import Metrics, Result, RunKey
from backtester.broker.exceptions import OrderRejected
from backtester.broker.exchange import RunEventCallback, SimulatedExchange
from backtester.core.config import BrokerConfig
from backtester.core.logging import run_context
from backtester.core.types import RunEvent, RunEventType, RunStatus
from backtester.data.timeseries import TimeSeries
from backtester.indicators.cache import IndicatorCache
from backtester.indicators.exceptions import IndicatorError
from backtester.strategy.base import Strategy, StrategyContext
from backtester.strategy.exceptions import StrategyError

logger = structlog.stdlib.get_logger()

_EVENT_FOR_STATUS = {
    RunStatus.COMPLETED: RunEventType.RUN_COMPLETED,
    RunStatus.FAILED: RunEventType.RUN_FAILED,
    RunStatus.CANCELLED: RunEventType.RUN_CANCELLED,
}


class BacktestRun:
    """Sequential, single-threaded replay of one series through one strategy.

    Per bar, in timestamp order:

    1. ``exchange.observe(ticker)``
    2. ``strategy.on_ticker(ticker, exchange)``
    3. ``exchange.advance(bar)``

    An ``OrderRejected`` escaping the strategy is logged and the run goes
    on. Any other strategy or indicator error fails this run only. The
    cancel event is checked before every bar.

    Usage::

        run = BacktestRun(key, SMACrossover(10, 30), series, BrokerConfig(), cache)
        result = run.execute()
    """

    def __init__(
        self,
        key: RunKey,
        strategy: Strategy,
        series: TimeSeries,
        broker: BrokerConfig,
        cache: IndicatorCache,
        cancel_event: threading.Event | None = None,
        periods_per_year: int = 252,
        callbacks: Iterable[RunEventCallback] = (),
    ) -> None:
        self._key = key
        self._strategy = strategy
        self._series = series
        self._broker = broker
        self._cache = cache
        self._cancel_event = cancel_event or threading.Event()
        self._periods_per_year = periods_per_year
        self._callbacks = list(callbacks)

    @property
    def key(self) -> RunKey:
        return self._key

    def execute(self) -> Result:
        """Replay every bar and assemble the Result. Never raises for run-local errors."""
        label = str(self._key)
        with run_context(label):
            exchange = SimulatedExchange(self._broker, [self._series.symbol], run=label)
            for cb in self._callbacks:
                exchange.on_event(cb)
            return self._replay(exchange, label)

    # ── Internal ────────────────────────────────────────────────

    def _replay(self, exchange: SimulatedExchange, label: str) -> Result:
        self._emit(RunEvent(
            event_type=RunEventType.RUN_STARTED,
            run=label,
            data={"bars": str(len(self._series)), "symbol": self._series.symbol},
        ))
        logger.info("run_started", bars=len(self._series), symbol=self._series.symbol)

        status = RunStatus.COMPLETED
        error: BaseException | None = None
        bars = 0
        try:
            self._check_cancelled()
            on_start: Callable[[StrategyContext], None] | None = getattr(
                self._strategy, "on_start", None,
            )
            if on_start is not None:
                on_start(StrategyContext(self._series, self._cache, run=label))

            for ticker in self._series.tickers():
                self._check_cancelled()
                exchange.observe(ticker)
                try:
                    self._strategy.on_ticker(ticker, exchange)
                except OrderRejected as exc:
                    logger.info(
                        "strategy_order_rejected",
                        order_id=exc.order_id,
                        reason=str(exc),
                        bar_index=ticker.index,
                    )
                exchange.advance(ticker.bar)
                bars += 1

            on_finish: Callable[[SimulatedExchange], None] | None = getattr(
                self._strategy, "on_finish", None,
            )
            if on_finish is not None:
                on_finish(exchange)
            exchange.close()
        except RunCancelled as exc:
            status, error = RunStatus.CANCELLED, exc
            logger.info("run_cancelled", bars_processed=bars)
        except (StrategyError, IndicatorError) as exc:
            status, error = RunStatus.FAILED, exc
            logger.warning("run_failed", error=str(exc), error_type=type(exc).__name__)
        except Exception as exc:
            status, error = RunStatus.FAILED, exc
            logger.exception("run_failed", error=str(exc), error_type=type(exc).__name__)
        finally:
            exchange.close(liquidate=False)

        result = self._assemble(exchange, status, error, bars)
        if status == RunStatus.COMPLETED:
            logger.info(
                "run_completed",
                bars_processed=bars,
                trades=len(result.trades),
                final_equity=str(result.final_equity),
                total_return=result.metrics.total_return,
            )
        self._emit(RunEvent(
            event_type=_EVENT_FOR_STATUS[status],
            run=label,
            reason=result.error,
            data={"final_equity": str(result.final_equity), "bars": str(bars)},
        ))
        return result

    def _check_cancelled(self) -> None:
        if self._cancel_event.is_set():
            raise RunCancelled(f"{self._key} cancelled")

    def _assemble(
        self,
        exchange: SimulatedExchange,
        status: RunStatus,
        error: BaseException | None,
        bars: int,
    ) -> Result:
        equity_curve = exchange.equity_curve
        trades = exchange.trades
        return Result(
            key=self._key,
            status=status,
            starting_cash=self._broker.starting_cash,
            final_equity=exchange.equity(),
            bars_processed=bars,
            equity_curve=tuple(equity_curve),
            trades=tuple(trades),
            orders=tuple(exchange.orders),
            positions=tuple(sorted(exchange.positions.values(), key=lambda p: p.symbol)),
            metrics=compute_metrics(
                self._broker.starting_cash, equity_curve, trades, self._periods_per_year,
            ),
            error=str(error) if error is not None else "",
            error_type=type(error).__name__ if error is not None else "",
        )

    def _emit(self, event: RunEvent) -> None:
        for cb in self._callbacks:
            try:
                cb(event)
            except Exception:
                logger.exception("run_event_callback_error", event_type=event.event_type)


def failed_result(key: RunKey, broker: BrokerConfig, error: BaseException) -> Result:
    """Result for a run that could not be set up (e.g. bad strategy parameters)."""
    return Result(
        key=key,
        status=RunStatus.FAILED,
        starting_cash=broker.starting_cash,
        final_equity=broker.starting_cash,
        metrics=Metrics(),
        error=str(error),
        error_type=type(error).__name__,
    )


def cancelled_result(key: RunKey, broker: BrokerConfig) -> Result:
    """Result for a run that was cancelled before it started."""
    return Result(
        key=key,
        status=RunStatus.CANCELLED,
        starting_cash=broker.starting_cash,
        final_equity=broker.starting_cash,
        error=f"{key} cancelled before start",
        error_type="RunCancelled",
    )