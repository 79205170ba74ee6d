"""Tests for backtester/backtest/metrics.py."""

from __future__ import annotations

import math
from datetime import UTC, datetime, timedelta
from decimal import Decimal

from backtester.backtest.metrics import compute_metrics
from backtester.core.types import EquityPoint, Side, Trade

T0 = datetime(2024, 1, 1, tzinfo=UTC)


def _curve(values: list[int | str]) -> list[EquityPoint]:
    return [
        EquityPoint(timestamp=T0 + timedelta(days=i), equity=Decimal(v))
        for i, v in enumerate(values)
    ]


def _closing_trade(pnl: int | str, commission: int | str = 0) -> Trade:
    return Trade(
        order_id=1,
        symbol="AAPL",
        side=Side.SELL,
        quantity=Decimal(1),
        price=Decimal(100),
        commission=Decimal(commission),
        realized_pnl=Decimal(pnl),
        closes_position=True,
        timestamp=T0,
        bar_index=1,
    )


def _opening_trade() -> Trade:
    return Trade(
        order_id=1,
        symbol="AAPL",
        side=Side.BUY,
        quantity=Decimal(1),
        price=Decimal(100),
        timestamp=T0,
        bar_index=0,
    )


class TestReturns:
    def test_flat_curve(self) -> None:
        m = compute_metrics(Decimal(1000), _curve([1000, 1000, 1000]), [])
        assert m.total_return == 0.0
        assert m.net_pnl == 0.0
        assert m.sharpe_ratio == 0.0
        assert m.max_drawdown == 0.0
        assert m.trade_count == 0
        assert m.profit_factor is None

    def test_total_return(self) -> None:
        m = compute_metrics(Decimal(1000), _curve([1100, 1200]), [])
        assert m.total_return == 0.2
        assert m.net_pnl == 200.0

    def test_empty_curve(self) -> None:
        m = compute_metrics(Decimal(1000), [], [])
        assert m.total_return == 0.0
        assert m.sharpe_ratio == 0.0

    def test_zero_starting_cash(self) -> None:
        m = compute_metrics(Decimal(0), _curve([0, 0]), [])
        assert m.total_return == 0.0


class TestSharpe:
    def test_annualised_with_sample_std(self) -> None:
        # returns: +10%, -10%, +10%
        m = compute_metrics(Decimal(1000), _curve([1100, 990, 1089]), [], periods_per_year=4)
        returns = [0.1, -0.1, 0.1]
        mean = sum(returns) / 3
        std = math.sqrt(sum((r - mean) ** 2 for r in returns) / 2)
        assert m.sharpe_ratio == round(mean / std * 2, 4)

    def test_constant_returns_have_zero_sharpe(self) -> None:
        m = compute_metrics(Decimal(100), _curve([110, 121]), [])
        assert m.sharpe_ratio == 0.0


class TestDrawdown:
    def test_max_drawdown_fraction(self) -> None:
        m = compute_metrics(Decimal(100), _curve([120, 90, 130, 117]), [])
        assert m.max_drawdown == 0.25

    def test_drawdown_from_starting_cash(self) -> None:
        m = compute_metrics(Decimal(100), _curve([80, 90]), [])
        assert m.max_drawdown == 0.2


class TestTradeStats:
    def test_only_closing_trades_count(self) -> None:
        trades = [_opening_trade(), _closing_trade(50), _closing_trade(-20), _closing_trade(30)]
        m = compute_metrics(Decimal(1000), _curve([1060]), trades)
        assert m.trade_count == 4
        assert m.closed_trades == 3
        assert m.win_rate == round(2 / 3, 4)
        assert m.profit_factor == 4.0

    def test_commission_nets_pnl(self) -> None:
        m = compute_metrics(Decimal(1000), _curve([1000]), [_closing_trade(5, commission=5)])
        assert m.win_rate == 0.0
        assert m.profit_factor is None

    def test_no_losses_means_no_profit_factor(self) -> None:
        m = compute_metrics(Decimal(1000), _curve([1010]), [_closing_trade(10)])
        assert m.win_rate == 1.0
        assert m.profit_factor is None
