"""
Workload process entry point.

Runs exactly one workload and appends its RawTimingRecord to the round's
metrics channel:

    python -m mixbench.worker cpu --channel /tmp/metrics.log --seed 17
    python -m mixbench.worker io --channel /tmp/metrics.log --record-count 100

Exit codes: 0 on success, 1 when the I/O workload cannot use its scratch
file, 2 when the metrics channel is unusable, 3 when the CPU workload runs
out of memory. No record is written on any failure.
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import List, Optional

from mixbench.channel import MetricsChannel
from mixbench.errors import ChannelIoFailure, WorkloadIoFailure
from mixbench.records import RawTimingRecord, WorkloadKind
from mixbench.rng import LinearCongruentialGenerator
from mixbench.workloads import CpuWorkload, IoWorkload

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_WORKLOAD_IO = 1
EXIT_CHANNEL_IO = 2
EXIT_OUT_OF_MEMORY = 3

KIND_ARGUMENTS = {"cpu": WorkloadKind.CPU, "io": WorkloadKind.IO}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mixbench.worker",
        description="Run one synthetic workload and report its phase timings.",
    )
    parser.add_argument("kind", choices=sorted(KIND_ARGUMENTS))
    parser.add_argument("--channel", required=True, help="Metrics channel file")
    parser.add_argument("--seed", type=int, default=None, help="RNG seed (clock-derived if omitted)")
    parser.add_argument("--min-vertices", type=int, default=100)
    parser.add_argument("--max-vertices", type=int, default=200)
    parser.add_argument("--min-edges", type=int, default=50)
    parser.add_argument("--max-edges", type=int, default=400)
    parser.add_argument("--record-count", type=int, default=100)
    parser.add_argument("--record-length", type=int, default=100)
    parser.add_argument("--scratch-dir", default=None)
    parser.add_argument("--log-level", default="WARNING")
    return parser


def run_workload(args: argparse.Namespace) -> RawTimingRecord:
    rng = LinearCongruentialGenerator(seed=args.seed)
    if KIND_ARGUMENTS[args.kind] is WorkloadKind.CPU:
        workload = CpuWorkload(
            min_vertices=args.min_vertices,
            max_vertices=args.max_vertices,
            min_edges=args.min_edges,
            max_edges=args.max_edges,
            rng=rng,
        )
    else:
        workload = IoWorkload(
            record_count=args.record_count,
            record_length=args.record_length,
            scratch_dir=args.scratch_dir,
            rng=rng,
        )
    return workload.run()


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s %(process)d %(name)s %(levelname)s: %(message)s",
        stream=sys.stderr,
    )

    try:
        record = run_workload(args)
    except WorkloadIoFailure as e:
        logger.error(f"{args.kind} workload failed: {e}")
        return EXIT_WORKLOAD_IO
    except MemoryError:
        logger.error(f"{args.kind} workload ran out of memory")
        return EXIT_OUT_OF_MEMORY

    try:
        MetricsChannel(args.channel).append(record)
    except ChannelIoFailure as e:
        logger.error(f"cannot report metrics: {e}")
        return EXIT_CHANNEL_IO

    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
