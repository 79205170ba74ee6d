"""Name → strategy class registry for declarative configuration."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any, TypeVar

from backtester.strategy.base import Strategy
from backtester.strategy.exceptions import StrategyError, UnknownStrategyError

_REGISTRY: dict[str, type] = {}

T = TypeVar("T", bound=type)


def register_strategy(name: str) -> Callable[[T], T]:
    """Class decorator registering a strategy under ``name``."""

    def decorator(cls: T) -> T:
        existing = _REGISTRY.get(name)
        if existing is not None and existing is not cls:
            raise ValueError(f"strategy {name!r} already registered to {existing.__name__}")
        _REGISTRY[name] = cls
        return cls

    return decorator


def available_strategies() -> list[str]:
    return sorted(_REGISTRY)


def create_strategy(name: str, params: Mapping[str, Any] | None = None) -> Strategy:
    """Instantiate a fresh strategy from its registered name and parameters.

    Raises:
        UnknownStrategyError: Nothing is registered under ``name``.
        StrategyError: The parameters do not fit the strategy.
    """
    cls = _REGISTRY.get(name)
    if cls is None:
        raise UnknownStrategyError(
            f"unknown strategy {name!r}; available: {', '.join(available_strategies())}"
        )
    try:
        return cls(**dict(params or {}))
    except (TypeError, ValueError, ArithmeticError) as exc:
        raise StrategyError(f"bad parameters for strategy {name!r}: {exc}") from exc


def strategy_label(name: str, params: Mapping[str, Any] | None = None) -> str:
    """Stable label such as ``sma_crossover(fast=10,slow=30)``."""
    if not params:
        return name
    args = ",".join(f"{k}={params[k]}" for k in sorted(params))
    return f"{name}({args})"
