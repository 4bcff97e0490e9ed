"""Monotonic tick source used for every duration the harness records."""

from __future__ import annotations

import time

# perf_counter_ns is the finest monotonic clock Python exposes.
TICKS_PER_SECOND = 1_000_000_000


def now_ticks() -> int:
    return time.perf_counter_ns()


def ticks_to_seconds(ticks: float) -> float:
    return ticks / TICKS_PER_SECOND
