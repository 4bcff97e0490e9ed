"""Exception taxonomy for the benchmark harness."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from mixbench.records import WorkloadKind


class MixBenchError(RuntimeError):
    pass


class SpawnFailure(MixBenchError):
    """
    A workload process could not be created.

    The round continues with one fewer completed process.

    Attributes:
        slot: Position of the workload within the round's spawn order.
        kind: Workload kind that was being launched.
        reason: Text of the underlying OS error.
    """

    def __init__(self, slot: int, kind: "WorkloadKind", reason: str):
        super().__init__(f"slot {slot} ({kind.value}) failed to spawn: {reason}")
        self.slot = slot
        self.kind = kind
        self.reason = reason


class ChannelIoFailure(MixBenchError):
    """The metrics channel file could not be opened, read or written."""


class WorkloadIoFailure(MixBenchError):
    """An I/O workload could not use its scratch data file."""
