"""
Round Data Model

Value types passed between the workload processes, the orchestrator and the
aggregator. All durations are integer ticks from mixbench.clock.

The metrics channel wire format is one record per line:

    <phase1> <phase2> <phase3> (<kind>)\\n

where kind is cpu_bound or io_bound.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional


class WorkloadKind(Enum):
    """Workload profile; values double as the channel wire tags."""
    CPU = "cpu_bound"
    IO = "io_bound"


_LINE_PATTERN = re.compile(r"([0-9]+) ([0-9]+) ([0-9]+) \((cpu_bound|io_bound)\)\n")


@dataclass(frozen=True)
class WorkloadSpec:
    """
    Workload mix for a single round.

    Attributes:
        cpu_count: Number of CPU-bound processes.
        io_count: Number of I/O-bound processes.
    """
    cpu_count: int
    io_count: int

    def __post_init__(self):
        if self.cpu_count < 0 or self.io_count < 0:
            raise ValueError("workload counts must be non-negative")

    @property
    def total(self) -> int:
        """Concurrency level of the round."""
        return self.cpu_count + self.io_count

    def kind_for_slot(self, slot: int) -> WorkloadKind:
        """CPU workloads occupy the first cpu_count slots, I/O the rest."""
        if not 0 <= slot < self.total:
            raise IndexError(f"slot {slot} out of range for {self.total} processes")
        return WorkloadKind.CPU if slot < self.cpu_count else WorkloadKind.IO


@dataclass(frozen=True)
class ProcessResult:
    """
    Completion record for one spawned workload process.

    Attributes:
        slot: Spawn position within the round.
        kind: Workload kind of the process.
        pid: Operating system process id.
        start_tick: Tick at which the process was spawned.
        end_tick: Tick at which its exit was observed.
        returncode: Exit status, or None if it never reported one.
        timed_out: True if the process was killed at the round deadline.
    """
    slot: int
    kind: WorkloadKind
    pid: int
    start_tick: int
    end_tick: int
    returncode: Optional[int] = None
    timed_out: bool = False

    def __post_init__(self):
        if self.end_tick < self.start_tick:
            raise ValueError("end_tick must not precede start_tick")

    @property
    def exec_time(self) -> int:
        return self.end_tick - self.start_tick

    def to_dict(self) -> Dict[str, Any]:
        return {
            "slot": self.slot,
            "kind": self.kind.value,
            "pid": self.pid,
            "start_tick": self.start_tick,
            "end_tick": self.end_tick,
            "exec_time": self.exec_time,
            "returncode": self.returncode,
            "timed_out": self.timed_out,
        }


@dataclass(frozen=True)
class RawTimingRecord:
    """
    Three phase durations reported by one workload process.

    Phase meaning depends on kind: allocate, access and free for CPU
    workloads; write, read+permute and delete for I/O workloads.
    """
    kind: WorkloadKind
    phase1: int
    phase2: int
    phase3: int

    def __post_init__(self):
        if min(self.phase1, self.phase2, self.phase3) < 0:
            raise ValueError("phase durations must be non-negative")

    @property
    def total(self) -> int:
        return self.phase1 + self.phase2 + self.phase3

    def to_line(self) -> str:
        """Encode as a single newline-terminated channel line."""
        return f"{self.phase1} {self.phase2} {self.phase3} ({self.kind.value})\n"

    @classmethod
    def from_line(cls, line: str) -> "RawTimingRecord":
        """
        Decode a channel line.

        Raises:
            ValueError: If the line does not match the wire grammar,
                including a missing trailing newline.
        """
        match = _LINE_PATTERN.fullmatch(line)
        if match is None:
            raise ValueError(f"malformed metrics record: {line!r}")
        phase1, phase2, phase3, tag = match.groups()
        return cls(
            kind=WorkloadKind(tag),
            phase1=int(phase1),
            phase2=int(phase2),
            phase3=int(phase3),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "phase1": self.phase1,
            "phase2": self.phase2,
            "phase3": self.phase3,
        }
