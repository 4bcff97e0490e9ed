"""
Cross-Process Metrics Channel

An append-only line log through which every workload process of a round
reports its RawTimingRecord to the orchestrator. There is no shared memory:
each child opens the backing file in append mode and writes its whole record
with a single os.write call. Records are far shorter than PIPE_BUF, so
concurrent appends from independent processes never interleave within a line.

Lifecycle per round:
    open_for_round() -> children append() -> drain_all() (reads and deletes)
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, List

from mixbench.errors import ChannelIoFailure
from mixbench.records import RawTimingRecord

logger = logging.getLogger(__name__)


class MetricsChannel:
    """
    File-backed, process-safe record channel.

    Example:
        channel = MetricsChannel(work_dir / "metrics.log")
        channel.open_for_round()
        # ... children call MetricsChannel(path).append(record) ...
        records = channel.drain_all()

    Attributes:
        path: Location of the backing file.
        corrupt_lines: Lines skipped by the most recent drain_all().
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self.corrupt_lines = 0

    def open_for_round(self) -> Path:
        """
        Create the backing file, truncating any previous content.

        Raises:
            ChannelIoFailure: If the file cannot be created.
        """
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "wb"):
                pass
        except OSError as e:
            raise ChannelIoFailure(f"cannot open metrics channel {self.path}: {e}") from e
        self.corrupt_lines = 0
        return self.path

    def append(self, record: RawTimingRecord) -> None:
        """
        Append one record as a single atomic write.

        The file is not created here, so a record sent after the round was
        drained fails instead of resurrecting the channel.

        Raises:
            ChannelIoFailure: If the file is missing or the write is short.
        """
        payload = record.to_line().encode("ascii")
        try:
            fd = os.open(self.path, os.O_WRONLY | os.O_APPEND)
        except OSError as e:
            raise ChannelIoFailure(f"cannot open metrics channel {self.path}: {e}") from e
        try:
            written = os.write(fd, payload)
        except OSError as e:
            raise ChannelIoFailure(f"cannot write metrics channel {self.path}: {e}") from e
        finally:
            os.close(fd)

        if written != len(payload):
            raise ChannelIoFailure(
                f"short write to metrics channel {self.path}: {written}/{len(payload)} bytes"
            )

    def drain_all(self) -> List[RawTimingRecord]:
        """
        Consume every record and delete the backing file.

        Corrupt lines, including an unterminated trailing line left by an
        interrupted writer, are skipped and counted in corrupt_lines. Once
        drained, further calls return an empty list.

        Raises:
            ChannelIoFailure: If the file exists but cannot be read or removed.
        """
        try:
            data = self.path.read_bytes()
        except FileNotFoundError:
            self.corrupt_lines = 0
            return []
        except OSError as e:
            raise ChannelIoFailure(f"cannot read metrics channel {self.path}: {e}") from e

        records: List[RawTimingRecord] = []
        corrupt = 0
        for raw_line in data.splitlines(keepends=True):
            try:
                records.append(RawTimingRecord.from_line(raw_line.decode("ascii")))
            except (UnicodeDecodeError, ValueError):
                corrupt += 1

        self.corrupt_lines = corrupt
        if corrupt:
            logger.warning(f"Skipped {corrupt} corrupt record(s) in {self.path}")

        self.destroy()
        return records

    def destroy(self) -> None:
        """Remove the backing file if it still exists."""
        try:
            self.path.unlink(missing_ok=True)
        except OSError as e:
            raise ChannelIoFailure(f"cannot delete metrics channel {self.path}: {e}") from e

    def exists(self) -> bool:
        return self.path.exists()

    def __enter__(self) -> "MetricsChannel":
        self.open_for_round()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> bool:
        self.destroy()
        return False
