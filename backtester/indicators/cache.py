"""Thread-safe memoization of indicator values shared across runs."""

from __future__ import annotations

import threading
import time
from collections import OrderedDict
from collections.abc import Callable, Iterable
from concurrent.futures import Future
from dataclasses import dataclass

import structlog

from backtester.indicators.base import IndicatorKey, IndicatorValue
from backtester.indicators.exceptions import IndicatorError

logger = structlog.stdlib.get_logger()


@dataclass(frozen=True)
class CacheStats:
    """Point-in-time cache counters."""

    hits: int = 0
    misses: int = 0
    waits: int = 0
    computations: int = 0
    failures: int = 0
    evictions: int = 0
    size: int = 0


class IndicatorCache:
    """Memoizes indicator values keyed by :class:`IndicatorKey`.

    At most one computation runs per key at a time. The first requester of
    a missing key owns the attempt and runs ``compute_fn``; concurrent
    requesters block on the owner's :class:`~concurrent.futures.Future` and
    receive the same value (or the same error). Failed attempts are not
    memoized, so a later request computes again.

    With a ``capacity`` the cache evicts least-recently-used entries; a key
    with an attempt in flight is never evicted. Without one, entries live
    until :meth:`clear`.

    Usage::

        cache = IndicatorCache()
        value = cache.get_or_compute(key, lambda: sma.compute(series))
    """

    def __init__(self, capacity: int | None = None) -> None:
        if capacity is not None and capacity < 1:
            raise ValueError("capacity must be >= 1")
        self._capacity = capacity
        self._entries: OrderedDict[IndicatorKey, IndicatorValue] = OrderedDict()
        self._inflight: dict[IndicatorKey, Future[IndicatorValue]] = {}
        self._lock = threading.Lock()

        self._hits = 0
        self._misses = 0
        self._waits = 0
        self._computations = 0
        self._failures = 0
        self._evictions = 0

    @property
    def capacity(self) -> int | None:
        return self._capacity

    @property
    def stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(
                hits=self._hits,
                misses=self._misses,
                waits=self._waits,
                computations=self._computations,
                failures=self._failures,
                evictions=self._evictions,
                size=len(self._entries),
            )

    # ── Lookup ──────────────────────────────────────────────────

    def get_or_compute(
        self,
        key: IndicatorKey,
        compute_fn: Callable[[], Iterable[object]],
    ) -> IndicatorValue:
        """Return the cached value for ``key``, computing it at most once.

        Raises:
            IndicatorError: The computation (this attempt, or the in-flight
                attempt this call waited on) failed.
        """
        with self._lock:
            value = self._entries.get(key)
            if value is not None:
                self._entries.move_to_end(key)
                self._hits += 1
                return value

            attempt = self._inflight.get(key)
            owner = attempt is None
            if attempt is None:
                attempt = Future()
                self._inflight[key] = attempt
                self._misses += 1
                self._computations += 1
            else:
                self._waits += 1

        if not owner:
            logger.debug("indicator_wait", key=str(key))
            return attempt.result()

        return self._compute(key, compute_fn, attempt)

    def get(self, key: IndicatorKey) -> IndicatorValue | None:
        """Peek at a cached value without computing or touching recency."""
        with self._lock:
            return self._entries.get(key)

    def clear(self) -> None:
        """Drop all completed entries. In-flight attempts are unaffected."""
        with self._lock:
            self._entries.clear()

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    # ── Internal ────────────────────────────────────────────────

    def _compute(
        self,
        key: IndicatorKey,
        compute_fn: Callable[[], Iterable[object]],
        attempt: Future[IndicatorValue],
    ) -> IndicatorValue:
        started = time.perf_counter()
        try:
            value: IndicatorValue = tuple(compute_fn())  # type: ignore[arg-type]
        except IndicatorError as exc:
            self._fail(key, attempt, exc)
            raise
        except Exception as exc:
            error = IndicatorError(f"{key}: {exc}")
            self._fail(key, attempt, error)
            raise error from exc
        except BaseException:
            # Waiters must not block forever on an interrupted owner.
            self._fail(key, attempt, IndicatorError(f"{key}: computation interrupted"))
            raise

        with self._lock:
            self._entries[key] = value
            self._inflight.pop(key, None)
            self._evict_locked()
        attempt.set_result(value)

        logger.debug(
            "indicator_computed",
            key=str(key),
            bars=len(value),
            elapsed_ms=round((time.perf_counter() - started) * 1000, 3),
        )
        return value

    def _fail(
        self,
        key: IndicatorKey,
        attempt: Future[IndicatorValue],
        error: IndicatorError,
    ) -> None:
        with self._lock:
            self._failures += 1
            if self._inflight.get(key) is attempt:
                del self._inflight[key]
        if not attempt.done():
            attempt.set_exception(error)
        logger.warning("indicator_failed", key=str(key), error=str(error))

    def _evict_locked(self) -> None:
        if self._capacity is None:
            return
        while len(self._entries) > self._capacity:
            victim = next((k for k in self._entries if k not in self._inflight), None)
            if victim is None:
                return
            del self._entries[victim]
            self._evictions += 1
            logger.debug("indicator_evicted", key=str(victim))
