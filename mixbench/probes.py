"""
Filesystem Probes

Quick single-shot measurements of the scratch filesystem, useful as a sanity
check before a full experiment. Each probe writes a private scratch file and
deletes it before returning.
"""

from __future__ import annotations

import logging
import os
import string
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterator, Optional, Tuple

from mixbench.clock import TICKS_PER_SECOND, now_ticks
from mixbench.errors import WorkloadIoFailure

logger = logging.getLogger(__name__)

DEFAULT_BUFFER_SIZE = 512


def probe_buffer(size: int = DEFAULT_BUFFER_SIZE) -> bytes:
    """Repeating A-Z pattern of the requested length."""
    letters = string.ascii_uppercase.encode("ascii")
    return bytes(letters[i % len(letters)] for i in range(size))


@contextmanager
def _scratch_file(directory: Optional[str | Path]) -> Iterator[Tuple[int, Path]]:
    try:
        fd, name = tempfile.mkstemp(prefix="mixbench-probe-", dir=directory)
    except OSError as e:
        raise WorkloadIoFailure(f"cannot create probe file in {directory}: {e}") from e
    path = Path(name)
    try:
        yield fd, path
    finally:
        path.unlink(missing_ok=True)


def measure_io_latency(
    directory: Optional[str | Path] = None,
    size: int = DEFAULT_BUFFER_SIZE,
) -> int:
    """Ticks spent writing one buffer and closing the file."""
    buffer = probe_buffer(size)
    with _scratch_file(directory) as (fd, _):
        start = now_ticks()
        try:
            os.write(fd, buffer)
        finally:
            os.close(fd)
        return now_ticks() - start


def measure_write_throughput(
    directory: Optional[str | Path] = None,
    size: int = DEFAULT_BUFFER_SIZE,
    repeats: int = 10,
) -> float:
    """
    Bytes per second for repeated buffer writes.

    Returns 0.0 if the clock did not advance during the writes.
    """
    buffer = probe_buffer(size)
    written = 0
    with _scratch_file(directory) as (fd, _):
        start = now_ticks()
        try:
            for _ in range(repeats):
                written += os.write(fd, buffer)
        finally:
            os.close(fd)
        elapsed = now_ticks() - start

    if elapsed <= 0:
        return 0.0
    return written * TICKS_PER_SECOND / elapsed


def count_fs_operations(
    directory: Optional[str | Path] = None,
    size: int = DEFAULT_BUFFER_SIZE,
    writes: int = 5,
) -> int:
    """Number of full-buffer writes that completed."""
    buffer = probe_buffer(size)
    operations = 0
    with _scratch_file(directory) as (fd, _):
        try:
            for _ in range(writes):
                if os.write(fd, buffer) == len(buffer):
                    operations += 1
        finally:
            os.close(fd)
    return operations


def run_probes(directory: Optional[str | Path] = None) -> Dict[str, float]:
    """Run every probe once and return the results keyed by name."""
    results = {
        "io_latency_ticks": float(measure_io_latency(directory)),
        "write_throughput_bytes_per_sec": measure_write_throughput(directory),
        "fs_operations": float(count_fs_operations(directory)),
    }
    logger.debug(f"Probe results: {results}")
    return results
