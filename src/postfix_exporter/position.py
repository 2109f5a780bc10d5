"""
Position tracking for the mail log.

The tracker decides which byte range of the log source has not been classified yet.
The log source is identified by device and inode so that a rotated file (a new file
under the same path) is detected even when it has already grown past the stored
offset.
"""
import logging
import os
from enum import Enum
from pathlib import Path
from typing import List, Optional, Tuple

import attrs

from postfix_exporter.exceptions import SourceUnavailable

__all__ = [
    "LogIdentity",
    "LogPosition",
    "TrackerMode",
    "ReadRange",
    "TrackResult",
    "LogSource",
    "resolve_range",
    "track",
]

logger = logging.getLogger(__name__)

TAIL_BLOCK_SIZE = 64 * 1024


@attrs.frozen
class LogIdentity:
    device: int
    inode: int

    def __str__(self) -> str:
        return f"{self.device}:{self.inode}"

    @classmethod
    def parse(cls, value: str) -> "LogIdentity":
        device, sep, inode = value.partition(":")
        if not sep or not device.isdigit() or not inode.isdigit():
            raise ValueError(f"Invalid log identity: {value!r}")
        return cls(device=int(device), inode=int(inode))

    @classmethod
    def from_stat(cls, stat_result: os.stat_result) -> "LogIdentity":
        return cls(device=stat_result.st_dev, inode=stat_result.st_ino)


@attrs.frozen
class LogPosition:
    identity: LogIdentity
    byte_offset: int


class TrackerMode(Enum):
    BOOTSTRAP = "bootstrap"
    TRACKING = "tracking"
    ROTATED = "rotated"
    TRUNCATED = "truncated"


@attrs.frozen
class ReadRange:
    """
    Byte range of the log source to classify.

    In ``BOOTSTRAP`` mode ``start_offset`` is not known until the tail window has been
    located in the file, and is reported as 0.
    """

    start_offset: int
    end_offset: int
    mode: TrackerMode


@attrs.frozen
class TrackResult:
    """
    Outcome of tracking the log source for one cycle.

    ``position`` is ``None`` when the source could not be read. In that case the stored
    position must be kept as it is.
    """

    lines: List[bytes] = attrs.field(factory=list)
    position: Optional[LogPosition] = None
    mode: Optional[TrackerMode] = None

    @property
    def available(self) -> bool:
        return self.position is not None


def resolve_range(
    identity: LogIdentity,
    size: int,
    stored: Optional[LogPosition],
    fresh: bool,
) -> ReadRange:
    """
    Determine the byte range that is new since the stored position.

    Parameters
    ----------
    identity
        Current identity of the log source
    size
        Current size of the log source in bytes
    stored
        Position persisted by the previous cycle, if any
    fresh
        True when the counter store holds no valid persisted state

    Returns
    -------
    The range to classify and the tracker mode that produced it

    """
    if fresh or stored is None:
        return ReadRange(0, size, TrackerMode.BOOTSTRAP)
    if identity != stored.identity:
        return ReadRange(0, size, TrackerMode.ROTATED)
    if size < stored.byte_offset:
        return ReadRange(0, size, TrackerMode.TRUNCATED)
    return ReadRange(stored.byte_offset, size, TrackerMode.TRACKING)


@attrs.define
class LogSource:
    path: Path = attrs.field(converter=Path)

    def stat(self) -> Tuple[LogIdentity, int]:
        try:
            stat_result = self.path.stat()
        except OSError as e:
            raise SourceUnavailable(f"Cannot stat log file {self.path}: {e}") from e
        if not os.access(self.path, os.R_OK):
            raise SourceUnavailable(f"Cannot read log file {self.path}")
        return LogIdentity.from_stat(stat_result), stat_result.st_size

    def read_lines(self, read_range: ReadRange, tail_lines: int) -> Tuple[List[bytes], int]:
        """
        Read the complete lines of ``read_range``.

        A last line without its terminating newline is still being written. It is left
        out, and the returned end offset stops before it so that the next cycle reads it
        in full. In bootstrap mode only the last ``tail_lines`` complete lines are
        returned.

        Returns
        -------
        The lines, and the offset just past the last of them
        """
        try:
            with self.path.open("rb") as fp:
                start = read_range.start_offset
                end = read_range.end_offset
                if read_range.mode is TrackerMode.BOOTSTRAP:
                    end = _complete_end(fp, end)
                    start = _tail_start(fp, end, tail_lines)
                fp.seek(start)
                data = fp.read(end - start)
        except OSError as e:
            raise SourceUnavailable(f"Cannot read log file {self.path}: {e}") from e
        complete = data.rfind(b"\n") + 1
        return data[:complete].splitlines(), start + complete


def _complete_end(fp, end: int) -> int:
    """Offset just past the last newline before ``end``, or 0 if there is none."""
    position = end
    while position > 0:
        block_start = max(0, position - TAIL_BLOCK_SIZE)
        fp.seek(block_start)
        index = fp.read(position - block_start).rfind(b"\n")
        if index >= 0:
            return block_start + index + 1
        position = block_start
    return 0


def _tail_start(fp, end: int, n: int) -> int:
    """Offset of the first byte of the last ``n`` lines ending at ``end``."""
    if n <= 0 or end <= 0:
        return end
    # A newline terminating the last line does not start a new line
    position = end - 1
    fp.seek(position)
    if fp.read(1) != b"\n":
        position = end
    newlines = 0
    while position > 0:
        block_start = max(0, position - TAIL_BLOCK_SIZE)
        fp.seek(block_start)
        block = fp.read(position - block_start)
        index = len(block)
        while True:
            index = block.rfind(b"\n", 0, index)
            if index < 0:
                break
            newlines += 1
            if newlines == n:
                return block_start + index + 1
        position = block_start
    return 0


def track(
    source: LogSource,
    stored: Optional[LogPosition],
    fresh: bool,
    tail_lines: int,
) -> TrackResult:
    """
    Read the lines appended to ``source`` since ``stored``.

    The returned position points just past the last complete line that was read,
    whatever the mode. An unavailable source yields an empty result without position.
    """
    try:
        identity, size = source.stat()
        read_range = resolve_range(identity, size, stored, fresh)
        lines, end_offset = source.read_lines(read_range, tail_lines)
    except SourceUnavailable as e:
        logger.warning(f"Log source unavailable, skipping classification: {e}")
        return TrackResult()

    if read_range.mode is TrackerMode.ROTATED:
        logger.info(f"Log file {source.path} rotated, reading from start")
    elif read_range.mode is TrackerMode.TRUNCATED:
        logger.info(f"Log file {source.path} truncated, reading from start")
    elif read_range.mode is TrackerMode.BOOTSTRAP:
        logger.info(f"No prior position, reading last {tail_lines} lines of {source.path}")

    return TrackResult(
        lines=lines,
        position=LogPosition(identity=identity, byte_offset=end_offset),
        mode=read_range.mode,
    )
