"""Backtest statistics: pure functions over the equity curve and trade log."""

from __future__ import annotations

import math
from collections.abc import Sequence
from decimal import Decimal

from backtester.backtest.types import Metrics
from backtester.core.types import EquityPoint, Trade


def compute_metrics(
    starting_cash: Decimal,
    equity_curve: Sequence[EquityPoint],
    trades: Sequence[Trade],
    periods_per_year: int = 252,
) -> Metrics:
    """Summary statistics for one run.

    Returns are per bar, starting from ``starting_cash``. Trade statistics
    consider only fills that closed (part of) a position, net of that
    fill's commission.
    """
    equities = [starting_cash, *(p.equity for p in equity_curve)]
    final = equities[-1]
    net_pnl = final - starting_cash
    total_return = float(net_pnl / starting_cash) if starting_cash > 0 else 0.0

    closing = [t.realized_pnl - t.commission for t in trades if t.closes_position]
    winners = [p for p in closing if p > 0]
    losers = [p for p in closing if p <= 0]
    gross_profit = sum(winners, Decimal(0))
    gross_loss = abs(sum(losers, Decimal(0)))

    return Metrics(
        total_return=round(total_return, 6),
        net_pnl=round(float(net_pnl), 2),
        sharpe_ratio=round(_sharpe(_returns(equities), periods_per_year), 4),
        max_drawdown=round(_max_drawdown(equities), 6),
        trade_count=len(trades),
        closed_trades=len(closing),
        win_rate=round(len(winners) / len(closing), 4) if closing else 0.0,
        profit_factor=round(float(gross_profit / gross_loss), 4) if gross_loss > 0 else None,
    )


# ── Helpers ──────────────────────────────────────────────────────


def _returns(equities: Sequence[Decimal]) -> list[float]:
    out: list[float] = []
    for prev, cur in zip(equities, equities[1:]):
        out.append(float((cur - prev) / prev) if prev > 0 else 0.0)
    return out


def _sharpe(returns: Sequence[float], periods_per_year: int) -> float:
    """Annualised Sharpe ratio from per-bar returns.

    Uses sample standard deviation (n − 1). Returns 0.0 when the series
    has fewer than 2 observations or zero variance.
    """
    n = len(returns)
    if n < 2:
        return 0.0
    mean = sum(returns) / n
    variance = sum((r - mean) ** 2 for r in returns) / (n - 1)
    std = math.sqrt(variance)
    if std == 0:
        return 0.0
    return (mean / std) * math.sqrt(periods_per_year)


def _max_drawdown(equities: Sequence[Decimal]) -> float:
    """Largest peak-to-trough decline as a fraction of the peak."""
    peak = Decimal(0)
    max_dd = 0.0
    for equity in equities:
        if equity > peak:
            peak = equity
        if peak > 0:
            dd = float((peak - equity) / peak)
            if dd > max_dd:
                max_dd = dd
    return max_dd
