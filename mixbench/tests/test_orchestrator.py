"""
Integration Tests for the Orchestrator, Worker and Experiment Runner

These spawn real workload processes with small graphs and record files so a
full round finishes in a few seconds.
"""

import os
import signal
import sys
import tempfile
import threading
import time
import unittest
from pathlib import Path

import psutil

from mixbench import (
    BenchmarkConfig,
    ExperimentRunner,
    MetricsChannel,
    Orchestrator,
    WorkloadKind,
    WorkloadSpec,
)
from mixbench import worker
from mixbench.clock import now_ticks, ticks_to_seconds
from mixbench.orchestrator import ChildHandle

SMALL_WORKLOADS = dict(
    min_vertices=10,
    max_vertices=20,
    min_edges=5,
    max_edges=30,
    record_count=10,
    record_length=16,
)


class MissingIoBinaryOrchestrator(Orchestrator):
    """I/O slots point at an executable that does not exist."""

    def build_command(self, kind, channel_path, seed):
        if kind is WorkloadKind.IO:
            return ["/nonexistent/mixbench-io-worker"]
        return super().build_command(kind, channel_path, seed)


class HangingIoOrchestrator(Orchestrator):
    """I/O slots never finish on their own."""

    def build_command(self, kind, channel_path, seed):
        if kind is WorkloadKind.IO:
            return [sys.executable, "-c", "import time; time.sleep(60)"]
        return super().build_command(kind, channel_path, seed)


class RecordingHangingOrchestrator(HangingIoOrchestrator):
    """Keeps a handle on every process it starts."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.spawned = []

    def _spawn_slot(self, spec, slot, channel, failures):
        child = super()._spawn_slot(spec, slot, channel, failures)
        if child is not None:
            self.spawned.append(child)
        return child


class SeedRecordingOrchestrator(Orchestrator):
    """Remembers the seed handed to every workload."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.seeds = []

    def build_command(self, kind, channel_path, seed):
        self.seeds.append(seed)
        return super().build_command(kind, channel_path, seed)


class SlowWaiterOrchestrator(Orchestrator):
    """Waiter threads notice exits half a second late."""

    def _wait_for_exit(self, child):
        time.sleep(0.5)
        super()._wait_for_exit(child)


class OrchestratorTestCase(unittest.TestCase):

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.work_dir = Path(self._tmp.name)

    def tearDown(self):
        self._tmp.cleanup()

    def make_config(self, **overrides):
        values = dict(SMALL_WORKLOADS, seed=42, work_dir=str(self.work_dir))
        values.update(overrides)
        return BenchmarkConfig(**values)


class TestOrchestrator(OrchestratorTestCase):
    """Tests for Orchestrator.run_round."""

    def test_full_round(self):
        """A 6 CPU / 14 I/O round yields one result and one record per process."""
        orchestrator = Orchestrator(self.make_config())
        spec = WorkloadSpec(cpu_count=6, io_count=14)

        outcome = orchestrator.run_round(spec)

        self.assertEqual(len(outcome.process_results), 20)
        self.assertEqual([r.slot for r in outcome.process_results], list(range(20)))
        self.assertTrue(all(r.returncode == 0 for r in outcome.process_results))
        self.assertLessEqual(len(outcome.raw_records), 20)
        self.assertEqual(len(outcome.raw_records), 20)
        kinds = [r.kind for r in outcome.raw_records]
        self.assertEqual(kinds.count(WorkloadKind.CPU), 6)
        self.assertEqual(kinds.count(WorkloadKind.IO), 14)
        self.assertEqual(outcome.corrupt_records, 0)
        self.assertFalse(outcome.deadline_expired)

        for result in outcome.process_results:
            self.assertLessEqual(result.exec_time, outcome.elapsed_total)
        self.assertEqual(os.listdir(self.work_dir), [])

    def test_distinct_pids(self):
        outcome = Orchestrator(self.make_config()).run_round(WorkloadSpec(cpu_count=2, io_count=2))
        pids = [r.pid for r in outcome.process_results]

        self.assertEqual(len(set(pids)), 4)
        self.assertNotIn(os.getpid(), pids)

    def test_sequential_mode(self):
        """Sequential spawning starts each process after the previous one exits."""
        orchestrator = Orchestrator(self.make_config(spawn_mode="sequential"))

        outcome = orchestrator.run_round(WorkloadSpec(cpu_count=1, io_count=2))

        results = outcome.process_results
        self.assertEqual(len(results), 3)
        self.assertEqual(len(outcome.raw_records), 3)
        for earlier, later in zip(results, results[1:]):
            self.assertGreaterEqual(later.start_tick, earlier.end_tick)

    def test_empty_round(self):
        outcome = Orchestrator(self.make_config()).run_round(WorkloadSpec(cpu_count=0, io_count=0))

        self.assertEqual(outcome.process_results, [])
        self.assertEqual(outcome.raw_records, [])

    def test_spawn_failure(self):
        """A process that cannot be created is reported, not fatal."""
        orchestrator = MissingIoBinaryOrchestrator(self.make_config())

        with self.assertLogs("mixbench.orchestrator", level="WARNING"):
            outcome = orchestrator.run_round(WorkloadSpec(cpu_count=2, io_count=1))

        self.assertEqual(len(outcome.process_results), 2)
        self.assertEqual(len(outcome.raw_records), 2)
        self.assertEqual(len(outcome.spawn_failures), 1)
        failure = outcome.spawn_failures[0]
        self.assertEqual(failure.slot, 2)
        self.assertIs(failure.kind, WorkloadKind.IO)

    def test_failed_workload_reports_nothing(self):
        """A workload that fails exits non-zero and leaves no record."""
        config = self.make_config(scratch_dir=str(self.work_dir / "missing"))

        outcome = Orchestrator(config).run_round(WorkloadSpec(cpu_count=1, io_count=1))

        returncodes = [r.returncode for r in outcome.process_results]
        self.assertEqual(returncodes, [worker.EXIT_OK, worker.EXIT_WORKLOAD_IO])
        self.assertEqual([r.kind for r in outcome.raw_records], [WorkloadKind.CPU])

    def test_deadline_kills_stragglers(self):
        """A hung process is killed at the deadline and flagged."""
        orchestrator = HangingIoOrchestrator(self.make_config(round_timeout=2.0))

        started = time.monotonic()
        outcome = orchestrator.run_round(WorkloadSpec(cpu_count=1, io_count=1))
        waited = time.monotonic() - started

        self.assertLess(waited, 30)
        self.assertTrue(outcome.deadline_expired)
        cpu_result, io_result = outcome.process_results
        self.assertFalse(cpu_result.timed_out)
        self.assertTrue(io_result.timed_out)
        self.assertEqual([r.kind for r in outcome.raw_records], [WorkloadKind.CPU])
        self.assertGreaterEqual(ticks_to_seconds(outcome.elapsed_total), 1.5)

    def test_channel_is_per_round(self):
        """Consecutive rounds do not see each other's records."""
        orchestrator = Orchestrator(self.make_config())

        first = orchestrator.run_round(WorkloadSpec(cpu_count=1, io_count=1))
        second = orchestrator.run_round(WorkloadSpec(cpu_count=0, io_count=1))

        self.assertEqual(len(first.raw_records), 2)
        self.assertEqual(len(second.raw_records), 1)

    def test_round_seed_replays_child_seeds(self):
        """Rounds run with the same seed hand out the same workload seeds."""
        orchestrator = SeedRecordingOrchestrator(self.make_config())
        spec = WorkloadSpec(cpu_count=1, io_count=2)

        orchestrator.run_round(spec, seed=99)
        orchestrator.run_round(spec, seed=99)
        orchestrator.run_round(spec, seed=100)

        first, second, third = (orchestrator.seeds[i:i + 3] for i in (0, 3, 6))
        self.assertEqual(first, second)
        self.assertNotEqual(first, third)

    def test_interrupt_kills_live_children(self):
        """An interrupted round kills hung processes instead of waiting them out."""
        orchestrator = RecordingHangingOrchestrator(self.make_config())
        timer = threading.Timer(
            1.0, signal.pthread_kill, args=(threading.main_thread().ident, signal.SIGINT)
        )
        previous_handler = signal.signal(signal.SIGINT, signal.default_int_handler)

        started = time.monotonic()
        timer.start()
        try:
            with self.assertRaises(KeyboardInterrupt):
                orchestrator.run_round(WorkloadSpec(cpu_count=0, io_count=2))
        finally:
            timer.cancel()
            signal.signal(signal.SIGINT, previous_handler)
        waited = time.monotonic() - started

        self.assertLess(waited, 20)
        self.assertEqual(len(orchestrator.spawned), 2)
        for child in orchestrator.spawned:
            self.assertNotEqual(child.process.wait(timeout=5), 0)
        self.assertEqual(os.listdir(self.work_dir), [])

    def test_exit_at_deadline_is_not_a_straggler(self):
        """A process that already exited when the deadline hits is not flagged."""
        orchestrator = SlowWaiterOrchestrator(self.make_config(round_timeout=1.0))
        process = psutil.Popen([sys.executable, "-c", "pass"])
        give_up = time.monotonic() + 30
        while process.status() != psutil.STATUS_ZOMBIE:
            self.assertLess(time.monotonic(), give_up)
            time.sleep(0.01)
        child = ChildHandle(
            slot=0, kind=WorkloadKind.CPU, process=process, start_tick=now_ticks()
        )

        expired = orchestrator._await_children([child], deadline=time.monotonic())

        self.assertFalse(expired)
        self.assertFalse(child.timed_out)
        self.assertEqual(child.returncode, 0)
        self.assertIsNotNone(child.end_tick)


class TestWorker(OrchestratorTestCase):
    """Tests for worker.main exit statuses."""

    def setUp(self):
        super().setUp()
        self.channel = MetricsChannel(self.work_dir / "metrics.log")
        self.channel.open_for_round()

    def test_io_worker_reports(self):
        status = worker.main([
            "io", "--channel", str(self.channel.path), "--seed", "1",
            "--record-count", "5", "--record-length", "8",
            "--scratch-dir", str(self.work_dir),
        ])

        self.assertEqual(status, worker.EXIT_OK)
        records = self.channel.drain_all()
        self.assertEqual(len(records), 1)
        self.assertIs(records[0].kind, WorkloadKind.IO)

    def test_cpu_worker_reports(self):
        status = worker.main([
            "cpu", "--channel", str(self.channel.path), "--seed", "1",
            "--min-vertices", "5", "--max-vertices", "8",
            "--min-edges", "0", "--max-edges", "10",
        ])

        self.assertEqual(status, worker.EXIT_OK)
        self.assertIs(self.channel.drain_all()[0].kind, WorkloadKind.CPU)

    def test_missing_channel(self):
        self.channel.destroy()
        status = worker.main([
            "cpu", "--channel", str(self.channel.path),
            "--min-vertices", "5", "--max-vertices", "5",
        ])

        self.assertEqual(status, worker.EXIT_CHANNEL_IO)

    def test_unusable_scratch_dir(self):
        status = worker.main([
            "io", "--channel", str(self.channel.path),
            "--scratch-dir", str(self.work_dir / "missing"),
        ])

        self.assertEqual(status, worker.EXIT_WORKLOAD_IO)
        self.assertEqual(self.channel.drain_all(), [])


class TestExperimentRunner(OrchestratorTestCase):
    """Tests for ExperimentRunner."""

    def make_runner(self, seed=7):
        config = self.make_config(total_processes=4, min_cpu_count=1, max_cpu_count=3, rounds=2, seed=seed)
        return ExperimentRunner(config)

    def test_workload_specs_within_bounds(self):
        runner = self.make_runner()
        for _ in range(50):
            spec = runner.pick_workload_spec()
            self.assertEqual(spec.total, 4)
            self.assertTrue(1 <= spec.cpu_count <= 3)

    def test_seed_reproduces_mixes(self):
        a, b = self.make_runner(seed=11), self.make_runner(seed=11)

        self.assertEqual(
            [a.pick_workload_spec() for _ in range(10)],
            [b.pick_workload_spec() for _ in range(10)],
        )

    def test_run_and_summarize(self):
        runner = self.make_runner()
        seen = []

        reports = runner.run(on_report=seen.append)
        summaries = runner.summarize(reports)

        self.assertEqual([r.index for r in reports], [1, 2])
        self.assertEqual(seen, reports)
        for report in reports:
            self.assertFalse(report.quality.degraded)
            self.assertGreater(report.metrics.throughput, 0)
            self.assertGreater(report.metrics.fairness, 0)
            self.assertLessEqual(report.metrics.fairness, 1.0 + 1e-9)
        self.assertEqual(summaries["throughput"].n, 2)
        self.assertLessEqual(summaries["fairness"].minimum, summaries["fairness"].maximum)


if __name__ == "__main__":
    unittest.main(verbosity=2)
