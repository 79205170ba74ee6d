"""Pluggable search strategies producing candidates lazily."""

from __future__ import annotations

import random
from collections.abc import Iterator
from typing import Any, Protocol, runtime_checkable

from backtester.orchestrator.experiment import ParameterSpace


@runtime_checkable
class SearchStrategy(Protocol):
    """Yields parameter combinations drawn from a space.

    Each call to ``candidates`` starts a fresh, finite sequence.
    """

    def candidates(self, space: ParameterSpace) -> Iterator[dict[str, Any]]:
        ...


class GridSearch:
    """Every combination, last dimension varying fastest."""

    def candidates(self, space: ParameterSpace) -> Iterator[dict[str, Any]]:
        return space.combinations()

    def __repr__(self) -> str:
        return "GridSearch()"


class RandomSearch:
    """``samples`` distinct combinations drawn with a seeded RNG.

    Same seed, same space → same candidates in the same order. When
    ``samples`` covers the whole space this degenerates to a grid search.
    """

    def __init__(self, samples: int = 20, seed: int = 0) -> None:
        if samples < 1:
            raise ValueError("samples must be >= 1")
        self.samples = samples
        self.seed = seed

    def candidates(self, space: ParameterSpace) -> Iterator[dict[str, Any]]:
        dims = space.dimensions()
        if not dims:
            return
        if self.samples >= space.size:
            yield from space.combinations()
            return

        rng = random.Random(self.seed)
        seen: set[tuple[int, ...]] = set()
        while len(seen) < self.samples:
            picks = tuple(rng.randrange(len(values)) for _, values in dims)
            if picks in seen:
                continue
            seen.add(picks)
            yield {name: values[i] for (name, values), i in zip(dims, picks)}

    def __repr__(self) -> str:
        return f"RandomSearch(samples={self.samples}, seed={self.seed})"
