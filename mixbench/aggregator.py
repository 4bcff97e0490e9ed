"""
Round Metrics Aggregation

Reduces one round's process results and raw records to a composite score.
Every duration is converted from ticks to seconds first, so all inverse-time
metrics share a single float scale (per second) and higher is always better:

    throughput      = N / total_elapsed
    fairness        = (sum x)^2 / (N * sum x^2)      (Jain's index over exec times)
    fs_efficiency   = 1 / sum(io write + read/permute + delete)
    memory_overhead = 1 / sum(cpu alloc + access + free)
    system_performance = mean of the four above

Any formula whose denominator is zero yields 0.0.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Any, Dict, Iterable, Sequence, Tuple

import numpy as np

from mixbench.clock import ticks_to_seconds
from mixbench.orchestrator import RoundOutcome
from mixbench.records import ProcessResult, RawTimingRecord, WorkloadKind

logger = logging.getLogger(__name__)

METRIC_FIELDS = (
    "throughput",
    "fairness",
    "fs_efficiency",
    "memory_overhead",
    "system_performance",
)


@dataclass(frozen=True)
class AggregateMetrics:
    """
    Composite score of one round. All values are non-negative.

    Attributes:
        throughput: Completed processes per second of round wall time.
        fairness: Jain's fairness index over per-process execution times.
        fs_efficiency: Reciprocal of total I/O phase seconds.
        memory_overhead: Reciprocal of total CPU workload phase seconds.
        system_performance: Mean of the four metrics above.
    """
    throughput: float
    fairness: float
    fs_efficiency: float
    memory_overhead: float
    system_performance: float

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)


@dataclass(frozen=True)
class RoundQuality:
    """
    Confidence indicators for a round.

    Attributes:
        spawned: Processes that were actually started.
        completed: Processes that exited on their own before any deadline.
        records_expected: Processes the workload mix asked for.
        records_received: Well-formed records drained from the channel.
        corrupt_records: Channel lines that failed to parse.
        spawn_failures: Processes that could not be created.
        timed_out: Processes killed at the round deadline.
        nonzero_exits: Processes that exited with a failure status.
    """
    spawned: int
    completed: int
    records_expected: int
    records_received: int
    corrupt_records: int = 0
    spawn_failures: int = 0
    timed_out: int = 0
    nonzero_exits: int = 0

    @property
    def record_coverage(self) -> float:
        if self.records_expected == 0:
            return 1.0
        return self.records_received / self.records_expected

    @property
    def degraded(self) -> bool:
        return (
            self.records_received != self.records_expected
            or self.corrupt_records > 0
            or self.spawn_failures > 0
            or self.timed_out > 0
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = asdict(self)
        data["record_coverage"] = self.record_coverage
        data["degraded"] = self.degraded
        return data


def safe_reciprocal(value: float) -> float:
    """1 / value, or 0.0 when value is not positive."""
    return 1.0 / value if value > 0 else 0.0


def jain_fairness(values: Iterable[float]) -> float:
    """
    Jain's fairness index (sum x)^2 / (n * sum x^2).

    Bounded in (0, 1] for non-negative input with at least one positive
    value; 1.0 exactly when all values are equal. Returns 0.0 for an empty
    input or when every value is zero.
    """
    samples = np.asarray(list(values), dtype=np.float64)
    if samples.size == 0:
        return 0.0
    sum_of_squares = float(np.sum(samples * samples))
    if sum_of_squares <= 0:
        return 0.0
    total = float(np.sum(samples))
    return (total * total) / (samples.size * sum_of_squares)


def phase_seconds(records: Iterable[RawTimingRecord], kind: WorkloadKind) -> float:
    """Total seconds across all three phases of the records of one kind."""
    return ticks_to_seconds(sum(r.total for r in records if r.kind is kind))


class MetricsAggregator:
    """
    Stateless reducer from raw round data to AggregateMetrics.

    Example:
        aggregator = MetricsAggregator()
        metrics = aggregator.aggregate(
            outcome.elapsed_total, outcome.process_results, outcome.raw_records
        )
    """

    def aggregate(
        self,
        total_elapsed: int,
        process_results: Sequence[ProcessResult],
        raw_records: Sequence[RawTimingRecord],
    ) -> AggregateMetrics:
        """
        Compute the five round metrics.

        N is the number of process results, which may exceed the number of
        raw records when some workloads failed before reporting.

        Args:
            total_elapsed: Round wall time in ticks.
            process_results: Completed processes of the round.
            raw_records: Records drained from the channel, in any order.

        Returns:
            AggregateMetrics for the round.
        """
        completed = len(process_results)
        elapsed_seconds = ticks_to_seconds(total_elapsed)

        throughput = completed / elapsed_seconds if elapsed_seconds > 0 else 0.0
        fairness = jain_fairness(ticks_to_seconds(r.exec_time) for r in process_results)
        fs_efficiency = safe_reciprocal(phase_seconds(raw_records, WorkloadKind.IO))
        memory_overhead = safe_reciprocal(phase_seconds(raw_records, WorkloadKind.CPU))

        system_performance = (
            throughput + fairness + fs_efficiency + memory_overhead
        ) / 4.0

        return AggregateMetrics(
            throughput=throughput,
            fairness=fairness,
            fs_efficiency=fs_efficiency,
            memory_overhead=memory_overhead,
            system_performance=system_performance,
        )

    def assess(self, outcome: RoundOutcome) -> RoundQuality:
        """Build RoundQuality from an orchestrator RoundOutcome."""
        results = outcome.process_results
        quality = RoundQuality(
            spawned=len(results),
            completed=sum(1 for r in results if not r.timed_out),
            records_expected=outcome.spec.total,
            records_received=len(outcome.raw_records),
            corrupt_records=outcome.corrupt_records,
            spawn_failures=len(outcome.spawn_failures),
            timed_out=sum(1 for r in results if r.timed_out),
            nonzero_exits=sum(1 for r in results if r.returncode not in (0, None)),
        )
        if quality.degraded:
            logger.warning(
                f"Round degraded: {quality.records_received}/{quality.records_expected} "
                f"records, {quality.corrupt_records} corrupt, "
                f"{quality.spawn_failures} spawn failure(s), {quality.timed_out} timed out"
            )
        return quality

    def summarize(self, outcome: RoundOutcome) -> Tuple[AggregateMetrics, RoundQuality]:
        """Aggregate metrics and quality for a RoundOutcome in one call."""
        metrics = self.aggregate(
            outcome.elapsed_total, outcome.process_results, outcome.raw_records
        )
        return metrics, self.assess(outcome)
