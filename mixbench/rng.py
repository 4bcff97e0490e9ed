"""
Deterministic Pseudo-Random Stream

Linear congruential generator shared by the workload programs and the
experiment runner. Every component owns its own instance so that reseeding
one never perturbs another:

    state = (state * 1664525 + 1013904223) mod 2**32
    output = state & 0x7FFFFFFF
"""

from __future__ import annotations

import os
import time
from typing import Optional

MULTIPLIER = 1664525
INCREMENT = 1013904223
STATE_MASK = 0xFFFFFFFF
OUTPUT_MASK = 0x7FFFFFFF


def default_seed() -> int:
    """Seed derived from wall-clock nanoseconds and the current pid."""
    return (time.time_ns() ^ (os.getpid() << 16)) & STATE_MASK


class LinearCongruentialGenerator:
    """
    Seeded LCG producing non-negative 31-bit integers.

    Example:
        rng = LinearCongruentialGenerator(seed=42)
        vertices = rng.randint(100, 200)
    """

    def __init__(self, seed: Optional[int] = None):
        """
        Initialize the generator.

        Args:
            seed: Initial state. Derived from the clock and pid if None.
        """
        self._state = 0
        self.seed(default_seed() if seed is None else seed)

    @property
    def state(self) -> int:
        return self._state

    def seed(self, value: int) -> None:
        """Reset the internal state to a 32-bit value."""
        self._state = value & STATE_MASK

    def next(self) -> int:
        """Advance the recurrence and return the next 31-bit output."""
        self._state = (self._state * MULTIPLIER + INCREMENT) & STATE_MASK
        return self._state & OUTPUT_MASK

    def below(self, bound: int) -> int:
        """
        Return an integer in [0, bound).

        Raises:
            ValueError: If bound < 1.
        """
        if bound < 1:
            raise ValueError("bound must be at least 1")
        return self.next() % bound

    def randint(self, low: int, high: int) -> int:
        """
        Return an integer in [low, high], both ends inclusive.

        Raises:
            ValueError: If high < low.
        """
        if high < low:
            raise ValueError("high must be >= low")
        return low + self.below(high - low + 1)

    def spawn_seed(self) -> int:
        """Draw a seed for an independent generator owned by someone else."""
        return self.next()
