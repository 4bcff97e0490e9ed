"""
Command Line Interface

Entry point for the mixbench command: a full multi-round experiment (run),
a single round with an explicit mix (round) and the filesystem probes
(probe). Reports go to stdout, logs to stderr.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import List, Optional

from mixbench.config import BenchmarkConfig, SPAWN_MODES, load_config
from mixbench.errors import MixBenchError
from mixbench.probes import run_probes
from mixbench.records import WorkloadSpec
from mixbench.runner import ExperimentRunner, RoundReport, format_round_report, format_summary

logger = logging.getLogger("mixbench")


def _print_report(report: RoundReport) -> None:
    print(format_round_report(report))
    print()


def _config_from_args(args: argparse.Namespace) -> BenchmarkConfig:
    base = load_config(args.config) if args.config else BenchmarkConfig()
    return base.with_overrides(
        total_processes=args.total_processes,
        min_cpu_count=args.min_cpu,
        max_cpu_count=args.max_cpu,
        rounds=getattr(args, "rounds", None),
        record_count=args.record_count,
        record_length=args.record_length,
        min_vertices=args.min_vertices,
        max_vertices=args.max_vertices,
        min_edges=args.min_edges,
        max_edges=args.max_edges,
        seed=args.seed,
        spawn_mode=args.spawn_mode,
        round_timeout=args.round_timeout,
        work_dir=args.work_dir,
        scratch_dir=args.scratch_dir,
    )


def cmd_run(args: argparse.Namespace) -> int:
    config = _config_from_args(args)
    runner = ExperimentRunner(config)
    reports = runner.run(on_report=_print_report)
    print(format_summary(runner.summarize(reports)))
    return 0


def cmd_round(args: argparse.Namespace) -> int:
    spec = WorkloadSpec(cpu_count=args.cpu, io_count=args.io)
    args.total_processes = spec.total
    args.min_cpu = args.max_cpu = spec.cpu_count
    config = _config_from_args(args)
    runner = ExperimentRunner(config)
    report = runner.run_round(1, spec=spec)
    _print_report(report)
    return 0 if not report.quality.degraded else 2


def cmd_probe(args: argparse.Namespace) -> int:
    results = run_probes(args.dir)
    print(json.dumps(results, indent=2, sort_keys=True))
    return 0


def _add_tunables(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--config", default=None, help="JSON file with BenchmarkConfig fields")
    parser.add_argument("--total-processes", type=int, default=None)
    parser.add_argument("--min-cpu", type=int, default=None, help="Lower bound of CPU-bound processes")
    parser.add_argument("--max-cpu", type=int, default=None, help="Upper bound of CPU-bound processes")
    parser.add_argument("--record-count", type=int, default=None)
    parser.add_argument("--record-length", type=int, default=None)
    parser.add_argument("--min-vertices", type=int, default=None)
    parser.add_argument("--max-vertices", type=int, default=None)
    parser.add_argument("--min-edges", type=int, default=None)
    parser.add_argument("--max-edges", type=int, default=None)
    parser.add_argument("--seed", type=int, default=None)
    parser.add_argument("--spawn-mode", choices=SPAWN_MODES, default=None)
    parser.add_argument("--round-timeout", type=float, default=None, help="Per-round deadline in seconds")
    parser.add_argument("--work-dir", default=None, help="Directory for the metrics channel file")
    parser.add_argument("--scratch-dir", default=None, help="Directory for I/O workload scratch files")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mixbench",
        description="Mixed CPU/IO workload benchmark for scheduler fairness and filesystem efficiency.",
    )
    parser.add_argument("--log-level", default="INFO", help="Logging level (written to stderr)")
    subparsers = parser.add_subparsers(dest="command", required=True)

    run = subparsers.add_parser("run", help="Run a full multi-round experiment.")
    run.add_argument("--rounds", type=int, default=None)
    _add_tunables(run)
    run.set_defaults(func=cmd_run)

    single = subparsers.add_parser("round", help="Run one round with an explicit workload mix.")
    single.add_argument("--cpu", type=int, required=True, help="CPU-bound processes")
    single.add_argument("--io", type=int, required=True, help="I/O-bound processes")
    _add_tunables(single)
    single.set_defaults(func=cmd_round)

    probe = subparsers.add_parser("probe", help="Measure scratch filesystem latency and throughput.")
    probe.add_argument("--dir", default=None, help="Directory to probe (system temp dir by default)")
    probe.set_defaults(func=cmd_probe)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s %(name)s %(levelname)s: %(message)s",
        stream=sys.stderr,
    )

    try:
        return int(args.func(args))
    except (MixBenchError, ValueError, FileNotFoundError) as e:
        logger.error(str(e))
        return 1


if __name__ == "__main__":
    sys.exit(main())
