"""
Synthetic Workload Programs

Provides the two workload profiles spawned by the orchestrator:

- CpuWorkload: builds a random weighted digraph and runs single-source
  shortest paths with a full-scan extract-min (no priority queue).
- IoWorkload: writes fixed-length text records to a private scratch file,
  reads them back, permutes them in place and deletes the file.

Each workload measures three phases and reports them as one RawTimingRecord.
"""

from __future__ import annotations

import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, List, Optional

import numpy as np

from mixbench.clock import now_ticks
from mixbench.errors import WorkloadIoFailure
from mixbench.records import RawTimingRecord, WorkloadKind
from mixbench.rng import LinearCongruentialGenerator

logger = logging.getLogger(__name__)

# Large enough to exceed any real path, small enough that adding an edge
# weight to it cannot overflow int64.
UNREACHABLE = np.iinfo(np.int64).max // 4
MIN_WEIGHT = 1
MAX_WEIGHT = 20

ASCII_A = ord("A")
ALPHABET_SIZE = 26


def build_graph(
    rng: LinearCongruentialGenerator,
    vertices: int,
    edges: int,
) -> np.ndarray:
    """
    Allocate a dense adjacency matrix and insert random weighted edges.

    Duplicate edges overwrite earlier ones, so the final density varies
    between graphs with the same edge count.

    Args:
        rng: Generator supplying endpoints and weights.
        vertices: Number of vertices (V).
        edges: Number of edge insertions (E).

    Returns:
        V x V int64 matrix with 0 on the diagonal and UNREACHABLE where
        no edge exists.
    """
    if vertices < 1:
        raise ValueError("graph needs at least one vertex")

    graph = np.full((vertices, vertices), UNREACHABLE, dtype=np.int64)
    np.fill_diagonal(graph, 0)

    for _ in range(edges):
        u = rng.below(vertices)
        v = rng.below(vertices)
        graph[u, v] = rng.randint(MIN_WEIGHT, MAX_WEIGHT)

    return graph


@dataclass
class ShortestPaths:
    """
    Result of a single-source shortest-path run.

    Attributes:
        distances: Distance per vertex, UNREACHABLE if no path exists.
        iterations: Outer extract-min iterations performed.
    """
    distances: np.ndarray
    iterations: int

    def reachable(self) -> np.ndarray:
        return self.distances < UNREACHABLE


def shortest_paths(graph: np.ndarray, source: int = 0) -> ShortestPaths:
    """
    O(V^2) shortest paths from source.

    Each iteration scans every unvisited vertex for the smallest tentative
    distance (np.argmin picks the lowest index on ties), marks it visited and
    relaxes its outgoing edges towards unvisited vertices whose distance
    strictly improves. Stops once no unvisited vertex is reachable, and
    after at most V-1 iterations.
    """
    vertices = graph.shape[0]
    if not 0 <= source < vertices:
        raise ValueError(f"source {source} outside graph of {vertices} vertices")

    distances = np.full(vertices, UNREACHABLE, dtype=np.int64)
    visited = np.zeros(vertices, dtype=bool)
    distances[source] = 0
    iterations = 0

    for _ in range(vertices - 1):
        candidates = np.where(visited, UNREACHABLE, distances)
        u = int(np.argmin(candidates))
        if candidates[u] >= UNREACHABLE:
            break

        visited[u] = True
        iterations += 1

        row = graph[u]
        through_u = distances[u] + row
        improved = ~visited & (row < UNREACHABLE) & (through_u < distances)
        distances[improved] = through_u[improved]

    return ShortestPaths(distances=distances, iterations=iterations)


class CpuWorkload:
    """
    CPU-bound workload: graph construction plus shortest paths.

    Phases reported:
        phase1: allocation and graph construction.
        phase2: shortest-path computation.
        phase3: release of the adjacency matrix.

    Example:
        workload = CpuWorkload(rng=LinearCongruentialGenerator(seed=7))
        record = workload.run()
    """

    def __init__(
        self,
        min_vertices: int = 100,
        max_vertices: int = 200,
        min_edges: int = 50,
        max_edges: int = 400,
        rng: Optional[LinearCongruentialGenerator] = None,
    ):
        if not 1 <= min_vertices <= max_vertices:
            raise ValueError("vertex bounds must satisfy 1 <= min_vertices <= max_vertices")
        if not 0 <= min_edges <= max_edges:
            raise ValueError("edge bounds must satisfy 0 <= min_edges <= max_edges")

        self.min_vertices = min_vertices
        self.max_vertices = max_vertices
        self.min_edges = min_edges
        self.max_edges = max_edges
        self.rng = rng or LinearCongruentialGenerator()
        self.last_result: Optional[ShortestPaths] = None

    def run(self) -> RawTimingRecord:
        """Execute all three phases once and return their durations."""
        vertices = self.rng.randint(self.min_vertices, self.max_vertices)
        edges = self.rng.randint(self.min_edges, self.max_edges)

        alloc_start = now_ticks()
        graph = build_graph(self.rng, vertices, edges)
        alloc_end = now_ticks()

        result = shortest_paths(graph, source=0)
        access_end = now_ticks()

        del graph
        free_end = now_ticks()

        self.last_result = result
        logger.debug(
            f"cpu workload: V={vertices}, E={edges}, iterations={result.iterations}"
        )

        return RawTimingRecord(
            kind=WorkloadKind.CPU,
            phase1=alloc_end - alloc_start,
            phase2=access_end - alloc_end,
            phase3=free_end - access_end,
        )


class IoWorkload:
    """
    I/O-bound workload over fixed-length newline-terminated records.

    Phases reported:
        phase1: scratch file creation and sequential write of every record.
        phase2: sequential read-back plus in-place permutation.
        phase3: deletion of the scratch file.
    """

    def __init__(
        self,
        record_count: int = 100,
        record_length: int = 100,
        scratch_dir: Optional[str | Path] = None,
        rng: Optional[LinearCongruentialGenerator] = None,
    ):
        if record_count < 1:
            raise ValueError("record_count must be at least 1")
        if record_length < 2:
            raise ValueError("record_length must leave room for data and a newline")

        self.record_count = record_count
        self.record_length = record_length
        self.scratch_dir = Path(scratch_dir) if scratch_dir else Path(tempfile.gettempdir())
        self.rng = rng or LinearCongruentialGenerator()

    def generate_record(self) -> bytes:
        """Random uppercase letters followed by a newline, record_length bytes total."""
        body = bytes(
            ASCII_A + self.rng.below(ALPHABET_SIZE)
            for _ in range(self.record_length - 1)
        )
        return body + b"\n"

    def write_records(self, handle: BinaryIO) -> List[bytes]:
        """Write record_count fresh records sequentially and return them."""
        records = []
        for _ in range(self.record_count):
            record = self.generate_record()
            handle.write(record)
            records.append(record)
        handle.flush()
        return records

    def read_records(self, handle: BinaryIO) -> List[bytes]:
        """
        Read record_count records sequentially from the current position.

        Raises:
            WorkloadIoFailure: On a short or misterminated record.
        """
        records = []
        for index in range(self.record_count):
            records.append(self._checked_read(handle, index))
        return records

    def permute_records(self, handle: BinaryIO) -> List[int]:
        """
        Shuffle records in place with a Fisher-Yates pass.

        For i from R-1 down to 1 a position j in [0, i] is drawn and records
        i and j are exchanged through direct-offset reads and writes, so at
        most two records are held in memory.

        Returns:
            The applied permutation: record k afterwards is original record
            order[k].
        """
        order = list(range(self.record_count))
        for i in range(self.record_count - 1, 0, -1):
            j = self.rng.below(i + 1)
            if i == j:
                continue
            self._swap(handle, i, j)
            order[i], order[j] = order[j], order[i]
        handle.flush()
        return order

    def _swap(self, handle: BinaryIO, first: int, second: int) -> None:
        handle.seek(first * self.record_length)
        first_record = self._checked_read(handle, first)
        handle.seek(second * self.record_length)
        second_record = self._checked_read(handle, second)

        handle.seek(first * self.record_length)
        handle.write(second_record)
        handle.seek(second * self.record_length)
        handle.write(first_record)

    def _checked_read(self, handle: BinaryIO, index: int) -> bytes:
        record = handle.read(self.record_length)
        if len(record) != self.record_length or not record.endswith(b"\n"):
            raise WorkloadIoFailure(f"record {index} is truncated or corrupt")
        return record

    def run(self) -> RawTimingRecord:
        """
        Execute write, read+permute and delete once.

        Raises:
            WorkloadIoFailure: If the scratch file cannot be created or used.
                The scratch file is removed before the error propagates.
        """
        write_start = now_ticks()
        try:
            fd, name = tempfile.mkstemp(
                prefix="mixbench-io-", suffix=".txt", dir=self.scratch_dir
            )
        except OSError as e:
            raise WorkloadIoFailure(
                f"cannot create scratch file in {self.scratch_dir}: {e}"
            ) from e

        path = Path(name)
        try:
            with os.fdopen(fd, "wb") as handle:
                self.write_records(handle)
            write_end = now_ticks()

            with open(path, "r+b") as handle:
                self.read_records(handle)
                self.permute_records(handle)
            permute_end = now_ticks()

            os.remove(path)
            delete_end = now_ticks()
        except OSError as e:
            path.unlink(missing_ok=True)
            raise WorkloadIoFailure(f"scratch file {path} failed: {e}") from e
        except WorkloadIoFailure:
            path.unlink(missing_ok=True)
            raise

        return RawTimingRecord(
            kind=WorkloadKind.IO,
            phase1=write_end - write_start,
            phase2=permute_end - write_end,
            phase3=delete_end - permute_end,
        )
