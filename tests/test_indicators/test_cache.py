"""Tests for backtester/indicators/cache.py."""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from decimal import Decimal

import pytest

from backtester.indicators.base import IndicatorKey
from backtester.indicators.cache import IndicatorCache
from backtester.indicators.exceptions import IndicatorError, InsufficientDataError


def _key(kind: str = "sma", period: int = 3, series: str = "abc") -> IndicatorKey:
    return IndicatorKey.of(kind, {"period": period}, series)


def _wait_until(predicate: Callable[[], bool], timeout: float = 5.0) -> None:
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not reached")
        time.sleep(0.001)


class TestKeys:
    def test_param_order_does_not_matter(self) -> None:
        a = IndicatorKey.of("sma", {"period": 3, "field": "close"}, "abc")
        b = IndicatorKey.of("sma", {"field": "close", "period": 3}, "abc")
        assert a == b
        assert hash(a) == hash(b)

    def test_str(self) -> None:
        assert str(_key(series="0123456789abcdef")) == "sma(period=3)@0123456789ab"


class TestGetOrCompute:
    def test_computes_once_then_hits(self) -> None:
        cache = IndicatorCache()
        calls = []

        def compute() -> list[Decimal]:
            calls.append(1)
            return [Decimal(1), Decimal(2)]

        first = cache.get_or_compute(_key(), compute)
        second = cache.get_or_compute(_key(), compute)

        assert first == (Decimal(1), Decimal(2))
        assert second is first
        assert len(calls) == 1
        stats = cache.stats
        assert stats.misses == 1
        assert stats.hits == 1
        assert stats.computations == 1
        assert stats.size == 1

    def test_distinct_keys_compute_separately(self) -> None:
        cache = IndicatorCache()
        cache.get_or_compute(_key(period=3), lambda: [Decimal(1)])
        cache.get_or_compute(_key(period=5), lambda: [Decimal(2)])
        assert len(cache) == 2
        assert cache.stats.computations == 2

    def test_get_and_contains(self) -> None:
        cache = IndicatorCache()
        assert cache.get(_key()) is None
        assert _key() not in cache
        cache.get_or_compute(_key(), lambda: [None, Decimal(1)])
        assert cache.get(_key()) == (None, Decimal(1))
        assert _key() in cache

    def test_clear(self) -> None:
        cache = IndicatorCache()
        cache.get_or_compute(_key(), lambda: [Decimal(1)])
        cache.clear()
        assert len(cache) == 0
        cache.get_or_compute(_key(), lambda: [Decimal(1)])
        assert cache.stats.computations == 2

    def test_empty_cache_is_still_a_cache(self) -> None:
        assert len(IndicatorCache()) == 0

    def test_invalid_capacity(self) -> None:
        with pytest.raises(ValueError):
            IndicatorCache(capacity=0)


class TestFailures:
    def test_indicator_error_propagates_and_is_not_memoized(self) -> None:
        cache = IndicatorCache()

        def boom() -> list[Decimal]:
            raise InsufficientDataError("too short")

        with pytest.raises(InsufficientDataError):
            cache.get_or_compute(_key(), boom)
        assert _key() not in cache

        value = cache.get_or_compute(_key(), lambda: [Decimal(7)])
        assert value == (Decimal(7),)
        stats = cache.stats
        assert stats.failures == 1
        assert stats.computations == 2

    def test_other_exceptions_are_wrapped(self) -> None:
        cache = IndicatorCache()

        def boom() -> list[Decimal]:
            raise ZeroDivisionError("division by zero")

        with pytest.raises(IndicatorError, match="division by zero") as exc_info:
            cache.get_or_compute(_key(), boom)
        assert isinstance(exc_info.value.__cause__, ZeroDivisionError)

    def test_waiter_receives_owner_error(self) -> None:
        cache = IndicatorCache()
        release = threading.Event()
        errors: list[BaseException] = []

        def slow_failure() -> list[Decimal]:
            release.wait(5)
            raise IndicatorError("bad data")

        def request() -> None:
            try:
                cache.get_or_compute(_key(), slow_failure)
            except IndicatorError as exc:
                errors.append(exc)

        owner = threading.Thread(target=request)
        owner.start()
        _wait_until(lambda: cache.stats.misses == 1)
        waiter = threading.Thread(target=request)
        waiter.start()
        _wait_until(lambda: cache.stats.waits == 1)
        release.set()
        owner.join(5)
        waiter.join(5)

        assert len(errors) == 2
        assert all("bad data" in str(e) for e in errors)
        assert cache.stats.computations == 1
        assert _key() not in cache


class TestConcurrency:
    def test_concurrent_requests_compute_once(self) -> None:
        cache = IndicatorCache()
        workers = 8
        barrier = threading.Barrier(workers)
        calls = []
        results: list[tuple] = []
        lock = threading.Lock()

        def compute() -> list[Decimal]:
            calls.append(1)
            time.sleep(0.05)
            return [Decimal(42)]

        def request() -> None:
            barrier.wait()
            value = cache.get_or_compute(_key(), compute)
            with lock:
                results.append(value)

        threads = [threading.Thread(target=request) for _ in range(workers)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(5)

        assert len(calls) == 1
        assert len(results) == workers
        assert all(r is results[0] for r in results)
        stats = cache.stats
        assert stats.computations == 1
        assert stats.hits + stats.waits == workers - 1


class TestEviction:
    def test_least_recently_used_is_evicted(self) -> None:
        cache = IndicatorCache(capacity=2)
        a, b, c = _key(period=1), _key(period=2), _key(period=3)
        cache.get_or_compute(a, lambda: [Decimal(1)])
        cache.get_or_compute(b, lambda: [Decimal(2)])
        cache.get_or_compute(a, lambda: [Decimal(1)])  # refresh a
        cache.get_or_compute(c, lambda: [Decimal(3)])

        assert a in cache
        assert b not in cache
        assert c in cache
        assert cache.stats.evictions == 1
        assert cache.stats.size == 2

    def test_inflight_key_survives_eviction(self) -> None:
        cache = IndicatorCache(capacity=1)
        release = threading.Event()
        slow_key, fast_key = _key(period=10), _key(period=20)

        def slow() -> list[Decimal]:
            release.wait(5)
            return [Decimal(10)]

        thread = threading.Thread(target=lambda: cache.get_or_compute(slow_key, slow))
        thread.start()
        _wait_until(lambda: cache.stats.misses == 1)

        cache.get_or_compute(fast_key, lambda: [Decimal(20)])
        release.set()
        thread.join(5)

        # The slow attempt completed and was stored; the older entry went.
        assert slow_key in cache
        assert fast_key not in cache
        assert cache.stats.evictions == 1

    def test_unbounded_never_evicts(self) -> None:
        cache = IndicatorCache()
        for period in range(50):
            cache.get_or_compute(_key(period=period), lambda: [Decimal(0)])
        assert len(cache) == 50
        assert cache.stats.evictions == 0
