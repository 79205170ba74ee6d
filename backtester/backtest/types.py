"""Data types for backtest runs and their results."""

from __future__ import annotations

from decimal import Decimal

from pydantic import BaseModel, ConfigDict

from backtester.core.types import EquityPoint, Order, Position, RunStatus, Trade


class RunKey(BaseModel):
    """Identity of one (strategy, dataset, broker) combination."""

    model_config = ConfigDict(frozen=True)

    strategy: str
    dataset: str
    broker: str = "default"

    def __str__(self) -> str:
        return f"{self.strategy}|{self.dataset}|{self.broker}"


class Metrics(BaseModel):
    """Summary statistics derived from the equity curve and trade log."""

    model_config = ConfigDict(frozen=True)

    total_return: float = 0.0
    net_pnl: float = 0.0
    sharpe_ratio: float = 0.0
    max_drawdown: float = 0.0
    trade_count: int = 0
    closed_trades: int = 0
    win_rate: float = 0.0
    profit_factor: float | None = None


class Result(BaseModel):
    """Outcome of one BacktestRun. Deeply immutable; contains no wall-clock data.

    ``positions`` holds one frozen snapshot per symbol, sorted by symbol.
    """

    model_config = ConfigDict(frozen=True)

    key: RunKey
    status: RunStatus
    starting_cash: Decimal
    final_equity: Decimal
    bars_processed: int = 0
    equity_curve: tuple[EquityPoint, ...] = ()
    trades: tuple[Trade, ...] = ()
    orders: tuple[Order, ...] = ()
    positions: tuple[Position, ...] = ()
    metrics: Metrics = Metrics()
    error: str = ""
    error_type: str = ""

    @property
    def ok(self) -> bool:
        return self.status == RunStatus.COMPLETED

    def position(self, symbol: str) -> Position | None:
        """Final position snapshot for ``symbol``, if one was ever opened."""
        return next((p for p in self.positions if p.symbol == symbol), None)

    def summary(self) -> dict[str, object]:
        """Flat view for reporting."""
        return {
            "strategy": self.key.strategy,
            "dataset": self.key.dataset,
            "broker": self.key.broker,
            "status": self.status.value,
            "bars": self.bars_processed,
            "starting_cash": str(self.starting_cash),
            "final_equity": str(self.final_equity),
            **self.metrics.model_dump(),
            "error": self.error,
        }
