"""Seeded random source used by a single scheduling run.

Each generation request owns one :class:`SeededRandom`.  It wraps a private
:class:`random.Random` instance rather than the module-level generator so
concurrent requests never interfere with each other and the same seed always
reproduces the same line.
"""

from __future__ import annotations

import math
import random
from typing import Sequence, TypeVar

__all__ = ["SeededRandom", "make_rng"]

T = TypeVar("T")


class SeededRandom:
    """Deterministic random source built from an integer seed."""

    def __init__(self, seed: int) -> None:
        self.seed = seed
        self._random = random.Random(seed)

    def next_float(self) -> float:
        """Return a float in ``[0, 1)``."""

        return self._random.random()

    def next_int(self, max_exclusive: int) -> int:
        """Return an integer in ``[0, max_exclusive)``."""

        if isinstance(max_exclusive, bool) or not isinstance(max_exclusive, int) or max_exclusive <= 0:
            raise ValueError("max_exclusive must be a positive integer")
        return math.floor(self.next_float() * max_exclusive)

    def choice_weighted(self, items: Sequence[T], weights: Sequence[float]) -> T:
        """Pick one of ``items`` with probability proportional to ``weights``.

        Raises
        ------
        ValueError
            If ``items`` is empty, the lengths differ, a weight is negative or
            not finite, or all weights are zero.
        """

        if not items:
            raise ValueError("items must not be empty")
        if len(items) != len(weights):
            raise ValueError("items and weights must have the same length")
        total = 0.0
        for weight in weights:
            if weight < 0 or not math.isfinite(weight):
                raise ValueError("weights must be finite and non-negative")
            total += weight
        if total == 0:
            raise ValueError("weights must not sum to zero")

        threshold = self.next_float() * total
        cumulative = 0.0
        for item, weight in zip(items, weights):
            cumulative += weight
            if threshold < cumulative:
                return item
        # Floating point rounding can leave the threshold at the very top.
        return items[-1]


def make_rng(seed: int) -> SeededRandom:
    """Return a :class:`SeededRandom` for ``seed``.

    Raises
    ------
    ValueError
        If ``seed`` is not an integer.
    """

    if isinstance(seed, bool) or not isinstance(seed, int):
        raise ValueError("seed must be an integer")
    return SeededRandom(seed)
