"""
Experiment Runner

Drives repeated rounds with randomized workload mixes, reports each round
with fixed labels and summarizes every metric across rounds with a 95%
confidence interval (t-distribution).
"""

from __future__ import annotations

import logging
import platform
import statistics
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import psutil

from mixbench.aggregator import METRIC_FIELDS, AggregateMetrics, MetricsAggregator, RoundQuality
from mixbench.clock import ticks_to_seconds
from mixbench.config import BenchmarkConfig
from mixbench.orchestrator import Orchestrator
from mixbench.records import WorkloadSpec
from mixbench.rng import LinearCongruentialGenerator

logger = logging.getLogger(__name__)

CONFIDENCE_LEVEL = 0.95

METRIC_LABELS = {
    "throughput": "Throughput",
    "fairness": "Fairness",
    "fs_efficiency": "Filesystem Efficiency",
    "memory_overhead": "Memory Overhead",
    "system_performance": "System Performance",
}


@dataclass(frozen=True)
class RoundReport:
    """
    Reported outcome of one round.

    Attributes:
        index: 1-based round number.
        spec: Workload mix of the round.
        metrics: Aggregate score.
        quality: Confidence indicators.
        elapsed_seconds: Round wall time.
        cpu_percent: Host CPU utilization sampled across the round.
    """
    index: int
    spec: WorkloadSpec
    metrics: AggregateMetrics
    quality: RoundQuality
    elapsed_seconds: float
    cpu_percent: float


@dataclass(frozen=True)
class MetricSummary:
    """Cross-round statistics for one metric."""
    metric: str
    mean: float
    margin: float
    minimum: float
    maximum: float
    n: int


def compute_ci(data: Sequence[float], confidence: float = CONFIDENCE_LEVEL) -> Tuple[float, float]:
    """
    Mean and confidence-interval margin using the t-distribution.

    Returns a zero margin for fewer than two samples.
    """
    n = len(data)
    if n == 0:
        return (0.0, 0.0)
    if n < 2:
        return (float(data[0]), 0.0)

    # Keep scipy out of worker process start-up.
    from scipy import stats

    mean = statistics.mean(data)
    stderr = statistics.stdev(data) / (n ** 0.5)
    t_value = stats.t.ppf((1 + confidence) / 2, n - 1)
    return (mean, float(t_value * stderr))


def format_round_report(report: RoundReport) -> str:
    """Human-readable block with one fixed label per metric."""
    quality = report.quality
    lines = [
        f"Round {report.index}: CPU-bound={report.spec.cpu_count}, IO-bound={report.spec.io_count}",
        "========= Metrics ========",
    ]
    for name in METRIC_FIELDS:
        lines.append(f"{METRIC_LABELS[name]}: {getattr(report.metrics, name):.6f}")
    lines.append(
        f"Records: {quality.records_received}/{quality.records_expected} "
        f"(corrupt {quality.corrupt_records}, spawn failures {quality.spawn_failures}, "
        f"timed out {quality.timed_out})"
    )
    return "\n".join(lines)


def format_summary(summaries: Dict[str, MetricSummary]) -> str:
    """Table of mean +/- margin and range for every metric."""
    lines = [
        f"{'Metric':<22} | {'Mean (±95% CI)':<28} | {'Min':>12} | {'Max':>12}",
        "-" * 84,
    ]
    for name in METRIC_FIELDS:
        summary = summaries[name]
        mean_str = f"{summary.mean:.6f}±{summary.margin:.6f}"
        lines.append(
            f"{METRIC_LABELS[name]:<22} | {mean_str:<28} | "
            f"{summary.minimum:>12.6f} | {summary.maximum:>12.6f}"
        )
    return "\n".join(lines)


def host_info() -> Dict[str, object]:
    """Host facts worth recording next to the results."""
    return {
        "python_version": platform.python_version(),
        "machine": platform.machine(),
        "physical_cores": psutil.cpu_count(logical=False),
        "logical_cores": psutil.cpu_count(logical=True),
        "total_memory_bytes": psutil.virtual_memory().total,
    }


class ExperimentRunner:
    """
    Runs rounds of randomized CPU/IO workload mixes.

    Example:
        runner = ExperimentRunner(BenchmarkConfig(rounds=5, seed=2))
        reports = runner.run(on_report=lambda r: print(format_round_report(r)))
        print(format_summary(runner.summarize(reports)))
    """

    def __init__(
        self,
        config: Optional[BenchmarkConfig] = None,
        orchestrator: Optional[Orchestrator] = None,
        aggregator: Optional[MetricsAggregator] = None,
        rng: Optional[LinearCongruentialGenerator] = None,
    ):
        """
        Initialize the runner.

        Args:
            config: Benchmark configuration. Uses defaults if None.
            orchestrator: Round orchestrator. Built from config if None,
                with its own generator seeded from this runner's.
            aggregator: Metrics reducer. A fresh one if None.
            rng: Generator for workload mixes. Seeded from config if None.
        """
        self.config = config or BenchmarkConfig()
        self.rng = rng or LinearCongruentialGenerator(seed=self.config.seed)
        self.orchestrator = orchestrator or Orchestrator(
            self.config, rng=LinearCongruentialGenerator(seed=self.rng.spawn_seed())
        )
        self.aggregator = aggregator or MetricsAggregator()

    def pick_workload_spec(self) -> WorkloadSpec:
        """Draw cpu_count uniformly from the configured range; the rest are I/O."""
        cpu_count = self.rng.randint(self.config.min_cpu_count, self.config.max_cpu_count)
        return WorkloadSpec(
            cpu_count=cpu_count,
            io_count=self.config.total_processes - cpu_count,
        )

    def run_round(self, index: int, spec: Optional[WorkloadSpec] = None) -> RoundReport:
        """
        Run a single round.

        Args:
            index: 1-based round number used in the report.
            spec: Workload mix. Drawn at random if None.
        """
        spec = spec or self.pick_workload_spec()
        psutil.cpu_percent(interval=None)

        outcome = self.orchestrator.run_round(spec)
        cpu_percent = psutil.cpu_percent(interval=None)
        metrics, quality = self.aggregator.summarize(outcome)

        report = RoundReport(
            index=index,
            spec=spec,
            metrics=metrics,
            quality=quality,
            elapsed_seconds=ticks_to_seconds(outcome.elapsed_total),
            cpu_percent=cpu_percent,
        )
        logger.info(
            f"Round {index}: cpu={spec.cpu_count}, io={spec.io_count}, "
            f"elapsed={report.elapsed_seconds:.3f}s, cpu={cpu_percent:.1f}%, "
            f"performance={metrics.system_performance:.4f}"
        )
        return report

    def run(
        self,
        rounds: Optional[int] = None,
        on_report: Optional[Callable[[RoundReport], None]] = None,
    ) -> List[RoundReport]:
        """
        Run an experiment.

        Args:
            rounds: Number of rounds. Defaults to config.rounds.
            on_report: Called with each report as soon as its round ends.

        Returns:
            Reports of every round in order.
        """
        rounds = rounds if rounds is not None else self.config.rounds
        info = host_info()
        logger.info(
            f"Starting {rounds} round(s) of {self.config.total_processes} processes on "
            f"{info['physical_cores']} physical / {info['logical_cores']} logical cores"
        )

        reports = []
        for index in range(1, rounds + 1):
            report = self.run_round(index)
            reports.append(report)
            if on_report is not None:
                on_report(report)
        return reports

    def summarize(self, reports: Sequence[RoundReport]) -> Dict[str, MetricSummary]:
        """Mean, 95% CI margin and range of every metric across rounds."""
        summaries = {}
        for name in METRIC_FIELDS:
            values = [getattr(r.metrics, name) for r in reports]
            mean, margin = compute_ci(values)
            summaries[name] = MetricSummary(
                metric=name,
                mean=mean,
                margin=margin,
                minimum=min(values) if values else 0.0,
                maximum=max(values) if values else 0.0,
                n=len(values),
            )
        return summaries
