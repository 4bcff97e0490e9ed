"""
mixbench: Mixed Workload Benchmark for Scheduling Fairness and I/O Efficiency

Spawns a configurable mix of CPU-bound and I/O-bound workload processes,
collects each process's phase timings through an append-only file channel,
and reduces every round to throughput, fairness, filesystem efficiency,
memory overhead and an overall system performance score.

Key Features:
- One OS process per workload, no shared memory with the orchestrator
- Jain's fairness index over per-process execution times
- Optional per-round deadline that degrades a round instead of hanging it
- Deterministic, per-component seeded random streams

Example:
    from mixbench import BenchmarkConfig, ExperimentRunner, format_round_report

    runner = ExperimentRunner(BenchmarkConfig(rounds=5, seed=2))
    for report in runner.run():
        print(format_round_report(report))

License: MIT
"""

from __future__ import annotations

from mixbench.aggregator import (
    AggregateMetrics,
    MetricsAggregator,
    RoundQuality,
    jain_fairness,
)
from mixbench.channel import MetricsChannel
from mixbench.config import BenchmarkConfig, load_config
from mixbench.errors import (
    ChannelIoFailure,
    MixBenchError,
    SpawnFailure,
    WorkloadIoFailure,
)
from mixbench.orchestrator import Orchestrator, RoundOutcome
from mixbench.records import (
    ProcessResult,
    RawTimingRecord,
    WorkloadKind,
    WorkloadSpec,
)
from mixbench.rng import LinearCongruentialGenerator
from mixbench.runner import (
    ExperimentRunner,
    MetricSummary,
    RoundReport,
    format_round_report,
    format_summary,
)
from mixbench.workloads import CpuWorkload, IoWorkload

__version__ = "1.0.0"
__license__ = "MIT"

__all__ = [
    # Data model
    "WorkloadKind",
    "WorkloadSpec",
    "ProcessResult",
    "RawTimingRecord",
    # Configuration and errors
    "BenchmarkConfig",
    "load_config",
    "MixBenchError",
    "SpawnFailure",
    "ChannelIoFailure",
    "WorkloadIoFailure",
    # Workloads
    "LinearCongruentialGenerator",
    "CpuWorkload",
    "IoWorkload",
    # Pipeline
    "MetricsChannel",
    "Orchestrator",
    "RoundOutcome",
    "MetricsAggregator",
    "AggregateMetrics",
    "RoundQuality",
    "jain_fairness",
    # Experiment
    "ExperimentRunner",
    "RoundReport",
    "MetricSummary",
    "format_round_report",
    "format_summary",
]
