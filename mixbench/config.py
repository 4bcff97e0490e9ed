"""
Benchmark Configuration

All tunables of an experiment live on BenchmarkConfig. Defaults reproduce the
canonical experiment: 30 rounds of 20 processes, 6 to 14 of them CPU-bound.
"""

from __future__ import annotations

import json
import logging
import tempfile
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

SPAWN_MODES = ("concurrent", "sequential")


@dataclass
class BenchmarkConfig:
    """
    Configuration parameters for an experiment.

    Attributes:
        total_processes: Workload processes spawned per round.
        min_cpu_count: Lower bound of the CPU-bound share of a round.
        max_cpu_count: Upper bound of the CPU-bound share of a round.
        rounds: Number of rounds in an experiment.
        record_count: Records written by each I/O workload.
        record_length: Bytes per record, trailing newline included.
        min_vertices: Lower bound of the CPU workload graph size.
        max_vertices: Upper bound of the CPU workload graph size.
        min_edges: Lower bound of inserted edges.
        max_edges: Upper bound of inserted edges.
        seed: Experiment seed. Clock-derived seeds are used if None.
        spawn_mode: "concurrent" spawns every process before waiting,
            "sequential" waits for each process before spawning the next.
        round_timeout: Wall-clock deadline per round in seconds, or None.
        work_dir: Directory holding the metrics channel file.
        scratch_dir: Directory for I/O workload scratch files.
    """
    total_processes: int = 20
    min_cpu_count: int = 6
    max_cpu_count: int = 14
    rounds: int = 30
    record_count: int = 100
    record_length: int = 100
    min_vertices: int = 100
    max_vertices: int = 200
    min_edges: int = 50
    max_edges: int = 400
    seed: Optional[int] = None
    spawn_mode: str = "concurrent"
    round_timeout: Optional[float] = None
    work_dir: Optional[str] = None
    scratch_dir: Optional[str] = None

    def __post_init__(self):
        if self.total_processes < 0:
            raise ValueError("total_processes must be non-negative")
        if not 0 <= self.min_cpu_count <= self.max_cpu_count <= self.total_processes:
            raise ValueError(
                "cpu split must satisfy 0 <= min_cpu_count <= max_cpu_count <= total_processes"
            )
        if self.rounds < 1:
            raise ValueError("rounds must be at least 1")
        if self.record_count < 1:
            raise ValueError("record_count must be at least 1")
        if self.record_length < 2:
            raise ValueError("record_length must leave room for data and a newline")
        if not 1 <= self.min_vertices <= self.max_vertices:
            raise ValueError("vertex bounds must satisfy 1 <= min_vertices <= max_vertices")
        if not 0 <= self.min_edges <= self.max_edges:
            raise ValueError("edge bounds must satisfy 0 <= min_edges <= max_edges")
        if self.spawn_mode not in SPAWN_MODES:
            raise ValueError(f"spawn_mode must be one of {', '.join(SPAWN_MODES)}")
        if self.round_timeout is not None and self.round_timeout <= 0:
            raise ValueError("round_timeout must be positive")

    def resolved_work_dir(self) -> Path:
        return Path(self.work_dir or tempfile.gettempdir())

    def resolved_scratch_dir(self) -> Path:
        return Path(self.scratch_dir) if self.scratch_dir else self.resolved_work_dir()

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, values: Dict[str, Any]) -> "BenchmarkConfig":
        """Build a config from a mapping, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(values) - known)
        if unknown:
            logger.warning(f"Ignoring unknown config keys: {', '.join(unknown)}")
        return cls(**{k: v for k, v in values.items() if k in known})

    def with_overrides(self, **overrides: Any) -> "BenchmarkConfig":
        """Copy of this config with the non-None overrides applied."""
        values = self.to_dict()
        values.update({k: v for k, v in overrides.items() if v is not None})
        return BenchmarkConfig.from_dict(values)


def load_config(path: str | Path) -> BenchmarkConfig:
    """
    Load a BenchmarkConfig from a JSON object file.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the document is not a JSON object or fails validation.
    """
    file_path = Path(path)
    if not file_path.exists():
        raise FileNotFoundError(f"Config file does not exist: {file_path}")

    payload = json.loads(file_path.read_text(encoding="utf-8"))
    if not isinstance(payload, dict):
        raise ValueError(f"Top-level JSON document must be an object in {file_path}")
    return BenchmarkConfig.from_dict(payload)
