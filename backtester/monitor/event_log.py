"""EventLog: thread-safe sink for run events.

Subscribes to ``Orchestrator.on_event()`` (or a single exchange) and
aggregates:
- Counts per event type
- Counts per run and event type
- A bounded tail of recent events

Every event is also written to the structured decision log.
"""

from __future__ import annotations

import threading
from collections import Counter, defaultdict, deque

import structlog

from backtester.core.types import RunEvent, RunEventType

# Dedicated structured logger for decision records.
decision_logger = structlog.get_logger("decision_log")


class EventLog:
    """Records events emitted by the exchange and the run driver.

    Usage::

        events = EventLog()
        orchestrator.on_event(events.on_event)
        await orchestrator.run(tasks)
        print(events.counts())
    """

    def __init__(self, max_events: int = 10_000, log_decisions: bool = True) -> None:
        self._lock = threading.Lock()
        self._events: deque[RunEvent] = deque(maxlen=max_events)
        self._counts: Counter[RunEventType] = Counter()
        self._per_run: defaultdict[str, Counter[RunEventType]] = defaultdict(Counter)
        self._log_decisions = log_decisions

    # ── Callback entry point ────────────────────────────────────

    def on_event(self, event: RunEvent) -> None:
        """Callback for ``on_event()`` registrations. Safe from any thread."""
        with self._lock:
            self._events.append(event)
            self._counts[event.event_type] += 1
            self._per_run[event.run][event.event_type] += 1
        if self._log_decisions:
            self._log_decision(event)

    # ── Queries ─────────────────────────────────────────────────

    @property
    def events(self) -> list[RunEvent]:
        """Most recent events, oldest first."""
        with self._lock:
            return list(self._events)

    def counts(self) -> dict[str, int]:
        with self._lock:
            return {etype.value: n for etype, n in self._counts.items()}

    def count(self, event_type: RunEventType, run: str | None = None) -> int:
        with self._lock:
            if run is None:
                return self._counts[event_type]
            per_run = self._per_run.get(run)
            return per_run[event_type] if per_run is not None else 0

    def for_run(self, run: str) -> list[RunEvent]:
        with self._lock:
            return [e for e in self._events if e.run == run]

    def clear(self) -> None:
        with self._lock:
            self._events.clear()
            self._counts.clear()
            self._per_run.clear()

    # ── Internal ────────────────────────────────────────────────

    def _log_decision(self, event: RunEvent) -> None:
        fields: dict[str, object] = {
            "event_type": event.event_type.value,
            "run": event.run,
            "bar_index": event.bar_index,
        }
        if event.order is not None:
            fields.update(
                order_id=event.order.order_id,
                symbol=event.order.symbol,
                side=event.order.side.value,
                quantity=str(event.order.quantity),
                status=event.order.status.value,
            )
        if event.trade is not None:
            fields.update(
                price=str(event.trade.price),
                commission=str(event.trade.commission),
                realized_pnl=str(event.trade.realized_pnl),
            )
        if event.reason:
            fields["reason"] = event.reason
        if event.data:
            fields["data"] = dict(event.data)
        decision_logger.info("decision", **fields)
