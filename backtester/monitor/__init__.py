"""Monitoring: structured event log for backtest runs."""

from backtester.monitor.event_log import EventLog, decision_logger

__all__ = ["EventLog", "decision_logger"]
