"""
Round Orchestrator

Spawns the workload processes of one round, observes each exit, and collects
the raw records the processes reported through the metrics channel.

Every workload runs as an independent OS process (python -m mixbench.worker).
A dedicated waiter thread blocks on each child so that its exit tick is
captured the moment the child terminates, regardless of the order in which
children finish. An optional round deadline kills stragglers instead of
letting a hung child stall the experiment.
"""

from __future__ import annotations

import logging
import os
import subprocess
import sys
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from concurrent.futures import TimeoutError as FuturesTimeoutError
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

import psutil

from mixbench.channel import MetricsChannel
from mixbench.clock import now_ticks
from mixbench.config import BenchmarkConfig
from mixbench.errors import SpawnFailure
from mixbench.records import ProcessResult, RawTimingRecord, WorkloadKind, WorkloadSpec
from mixbench.rng import LinearCongruentialGenerator

logger = logging.getLogger(__name__)

WORKER_MODULE = "mixbench.worker"
PACKAGE_ROOT = Path(__file__).resolve().parent.parent


@dataclass
class RoundOutcome:
    """
    Everything the orchestrator learned during one round.

    Attributes:
        spec: Workload mix that was run.
        elapsed_total: Ticks from the first spawn to the last observed exit.
        process_results: One entry per spawned process, ordered by slot.
        raw_records: Records drained from the metrics channel (unordered).
        spawn_failures: Slots whose process could not be created.
        corrupt_records: Channel lines that could not be parsed.
        deadline_expired: True if the round deadline cut the round short.
    """
    spec: WorkloadSpec
    elapsed_total: int
    process_results: List[ProcessResult]
    raw_records: List[RawTimingRecord]
    spawn_failures: List[SpawnFailure] = field(default_factory=list)
    corrupt_records: int = 0
    deadline_expired: bool = False


@dataclass
class ChildHandle:
    """Bookkeeping for one live workload process."""
    slot: int
    kind: WorkloadKind
    process: psutil.Popen
    start_tick: int
    end_tick: Optional[int] = None
    returncode: Optional[int] = None
    timed_out: bool = False

    @property
    def pid(self) -> int:
        return self.process.pid

    def to_result(self) -> ProcessResult:
        end_tick = self.end_tick if self.end_tick is not None else now_ticks()
        return ProcessResult(
            slot=self.slot,
            kind=self.kind,
            pid=self.pid,
            start_tick=self.start_tick,
            end_tick=end_tick,
            returncode=self.returncode,
            timed_out=self.timed_out,
        )


class Orchestrator:
    """
    Runs rounds of CPU-bound and I/O-bound workload processes.

    Example:
        orchestrator = Orchestrator(BenchmarkConfig(seed=1))
        outcome = orchestrator.run_round(WorkloadSpec(cpu_count=6, io_count=14))
        print(len(outcome.process_results), len(outcome.raw_records))
    """

    def __init__(
        self,
        config: Optional[BenchmarkConfig] = None,
        rng: Optional[LinearCongruentialGenerator] = None,
    ):
        """
        Initialize the orchestrator.

        Args:
            config: Benchmark configuration. Uses defaults if None.
            rng: Generator for per-process seeds. Seeded from config.seed
                (or the clock) if None.
        """
        self.config = config or BenchmarkConfig()
        self.rng = rng or LinearCongruentialGenerator(seed=self.config.seed)
        self._rounds_started = 0

    def run_round(self, spec: WorkloadSpec, seed: Optional[int] = None) -> RoundOutcome:
        """
        Spawn spec.cpu_count CPU workloads then spec.io_count I/O workloads,
        wait for all of them and drain their records.

        Args:
            spec: Workload mix of the round.
            seed: Reseeds the per-process seed generator before spawning,
                so the round can be replayed. Leaves it untouched if None.

        Raises:
            ChannelIoFailure: If the metrics channel cannot be created,
                read or deleted.
        """
        self._rounds_started += 1
        if seed is not None:
            self.rng.seed(seed)
        channel = MetricsChannel(self._channel_path())
        channel.open_for_round()

        deadline = self._deadline()
        children: List[ChildHandle] = []
        failures: List[SpawnFailure] = []
        expired = False

        logger.debug(
            f"Round {self._rounds_started}: spawning {spec.cpu_count} cpu and "
            f"{spec.io_count} io workloads ({self.config.spawn_mode})"
        )

        round_start = now_ticks()
        try:
            if self.config.spawn_mode == "sequential":
                for slot in range(spec.total):
                    if expired:
                        logger.warning(f"Round deadline passed, slot {slot} not started")
                        break
                    child = self._spawn_slot(spec, slot, channel, failures)
                    if child is not None:
                        children.append(child)
                        expired = self._await_children([child], deadline)
            else:
                for slot in range(spec.total):
                    child = self._spawn_slot(spec, slot, channel, failures)
                    if child is not None:
                        children.append(child)
                expired = self._await_children(children, deadline)
        except BaseException:
            self._kill_all(children)
            channel.destroy()
            raise
        round_end = now_ticks()

        records = channel.drain_all()

        return RoundOutcome(
            spec=spec,
            elapsed_total=round_end - round_start,
            process_results=sorted((c.to_result() for c in children), key=lambda r: r.slot),
            raw_records=records,
            spawn_failures=failures,
            corrupt_records=channel.corrupt_lines,
            deadline_expired=expired,
        )

    def build_command(
        self,
        kind: WorkloadKind,
        channel_path: Path,
        seed: int,
    ) -> List[str]:
        """Argument vector that runs one workload of the given kind."""
        config = self.config
        argv = [
            sys.executable, "-m", WORKER_MODULE,
            "cpu" if kind is WorkloadKind.CPU else "io",
            "--channel", str(channel_path),
            "--seed", str(seed),
        ]
        if kind is WorkloadKind.CPU:
            argv += [
                "--min-vertices", str(config.min_vertices),
                "--max-vertices", str(config.max_vertices),
                "--min-edges", str(config.min_edges),
                "--max-edges", str(config.max_edges),
            ]
        else:
            argv += [
                "--record-count", str(config.record_count),
                "--record-length", str(config.record_length),
                "--scratch-dir", str(config.resolved_scratch_dir()),
            ]
        return argv

    def _spawn_slot(
        self,
        spec: WorkloadSpec,
        slot: int,
        channel: MetricsChannel,
        failures: List[SpawnFailure],
    ) -> Optional[ChildHandle]:
        kind = spec.kind_for_slot(slot)
        argv = self.build_command(kind, channel.path, self.rng.spawn_seed())

        start_tick = now_ticks()
        try:
            process = psutil.Popen(
                argv,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                env=self._child_env(),
            )
        except OSError as e:
            failure = SpawnFailure(slot, kind, str(e))
            logger.warning(str(failure))
            failures.append(failure)
            return None

        return ChildHandle(slot=slot, kind=kind, process=process, start_tick=start_tick)

    def _await_children(
        self,
        children: List[ChildHandle],
        deadline: Optional[float],
    ) -> bool:
        """
        Block until every child has exited or the deadline passes.

        Live children are killed before the waiter pool shuts down, both at
        the deadline and when the wait is interrupted, so neither case
        blocks on a hung child.

        Returns:
            True if the deadline expired and stragglers were killed.
        """
        pending = [c for c in children if c.end_tick is None]
        if not pending:
            return False

        expired = False
        with ThreadPoolExecutor(
            max_workers=len(pending), thread_name_prefix="mixbench-wait"
        ) as pool:
            futures = [pool.submit(self._wait_for_exit, c) for c in pending]
            try:
                for future in as_completed(futures, timeout=self._remaining(deadline)):
                    future.result()
            except FuturesTimeoutError:
                # Exited but not yet recorded by its waiter: not a straggler.
                stragglers = [
                    c for c in pending
                    if c.end_tick is None and c.process.poll() is None
                ]
                expired = bool(stragglers)
                if stragglers:
                    logger.warning(
                        f"Round deadline of {self.config.round_timeout}s reached, "
                        f"killing {len(stragglers)} workload process(es)"
                    )
                for child in stragglers:
                    child.timed_out = True
                    self._kill_tree(child)
            except BaseException:
                logger.warning("Round interrupted, killing live workload processes")
                self._kill_all(pending)
                raise
        return expired

    def _wait_for_exit(self, child: ChildHandle) -> None:
        returncode = child.process.wait()
        child.end_tick = now_ticks()
        child.returncode = int(returncode) if returncode is not None else None
        if child.returncode:
            logger.info(
                f"Workload pid {child.pid} (slot {child.slot}, {child.kind.value}) "
                f"exited with status {child.returncode}"
            )

    def _kill_all(self, children: List[ChildHandle]) -> None:
        for child in children:
            if child.end_tick is None:
                self._kill_tree(child)

    def _kill_tree(self, child: ChildHandle) -> None:
        try:
            victims = child.process.children(recursive=True)
        except psutil.NoSuchProcess:
            victims = []
        victims.append(child.process)
        for proc in victims:
            try:
                proc.kill()
            except psutil.NoSuchProcess:
                pass

    def _deadline(self) -> Optional[float]:
        if self.config.round_timeout is None:
            return None
        return time.monotonic() + self.config.round_timeout

    @staticmethod
    def _remaining(deadline: Optional[float]) -> Optional[float]:
        if deadline is None:
            return None
        return max(0.0, deadline - time.monotonic())

    def _channel_path(self) -> Path:
        return self.config.resolved_work_dir() / (
            f"mixbench-metrics-{os.getpid()}-{self._rounds_started}.log"
        )

    @staticmethod
    def _child_env() -> dict:
        env = os.environ.copy()
        existing = env.get("PYTHONPATH")
        env["PYTHONPATH"] = (
            f"{PACKAGE_ROOT}{os.pathsep}{existing}" if existing else str(PACKAGE_ROOT)
        )
        return env
