"""A simulated disk whose sectors are stored in a host file.

The disk has a single surface of tracks, each holding the same number of
fixed-size sectors, addressed as ``track * SECTORS_PER_TRACK + offset``.
Requests complete asynchronously: the transfer to the file happens at once,
but the completion handler runs after a simulated latency made of seek time,
rotational delay and transfer time, with a track buffer that speeds up reads
on the current track.
"""

from __future__ import annotations

import logging
import os
import struct
from typing import Callable, Optional, Union

from . import host
from .interrupt import Interrupt, IntType
from .stats import ROTATION_TIME, SEEK_TIME, Statistics

log = logging.getLogger(__name__)

SECTOR_SIZE = 128  # bytes per sector
SECTORS_PER_TRACK = 32
NUM_TRACKS = 32
NUM_SECTORS = SECTORS_PER_TRACK * NUM_TRACKS

# Marks a host file as holding a simulated disk.
MAGIC_NUMBER = 0x456789AB
_MAGIC = struct.Struct("<I")
MAGIC_SIZE = _MAGIC.size
DISK_SIZE = MAGIC_SIZE + NUM_SECTORS * SECTOR_SIZE

PathLike = Union[str, os.PathLike]


def _cdiv(a: int, b: int) -> int:
    """Integer division truncating toward zero."""
    q = abs(a) // abs(b)
    return q if (a >= 0) == (b >= 0) else -q


def _sector_dump(writing: bool, sector: int, data: bytes) -> str:
    words = struct.unpack(f"<{len(data) // 4}I", data[: len(data) // 4 * 4])
    action = "Writing" if writing else "Reading"
    return f"{action} sector: {sector}\n" + " ".join(f"{w:x}" for w in words)


class Disk:
    """A single-request-at-a-time disk device backed by a host file."""

    # Set to False to simulate a disk without a track buffer.
    track_buffer: bool = True

    def __init__(
        self,
        path: PathLike,
        interrupt: Interrupt,
        stats: Optional[Statistics] = None,
        on_done: Optional[Callable[[], None]] = None,
    ):
        self.interrupt = interrupt
        self.stats = stats if stats is not None else interrupt.stats
        self.on_done = on_done
        self._last_sector = 0
        self._buffer_init = 0
        self._active = False
        self._closed = False

        fd = host.open_for_read_write(path, False)
        if fd is not None:
            try:
                (magic,) = _MAGIC.unpack(host.read_exact(fd, MAGIC_SIZE))
            except EOFError:
                host.close(fd)
                raise ValueError(f"{path} is not a simulated disk") from None
            if magic != MAGIC_NUMBER:
                host.close(fd)
                raise ValueError(f"{path} is not a simulated disk")
        else:
            fd = host.open_for_write(path)
            host.write_all(fd, _MAGIC.pack(MAGIC_NUMBER))
            # Write at the very end so that reads never hit end of file.
            host.seek(fd, DISK_SIZE - 4)
            host.write_all(fd, bytes(4))
        self._fd = fd

    @property
    def active(self) -> bool:
        """Whether a request is in progress."""
        return self._active

    def _check_request(self, sector: int) -> None:
        if self._active:
            raise RuntimeError("only one disk request may be in progress")
        if not 0 <= sector < NUM_SECTORS:
            raise ValueError(f"sector {sector} out of range")

    def _start(self, sector: int, ticks: int) -> None:
        self._active = True
        self._update_last(sector)
        self.interrupt.schedule(self.handle_interrupt, ticks, IntType.DISK)

    def read_request(self, sector: int) -> bytes:
        """Read one whole sector; the completion handler runs later."""
        ticks = self.compute_latency(sector, False)
        self._check_request(sector)
        log.debug("Reading from sector %d", sector)
        host.seek(self._fd, SECTOR_SIZE * sector + MAGIC_SIZE)
        data = host.read_exact(self._fd, SECTOR_SIZE)
        if log.isEnabledFor(logging.DEBUG):
            log.debug("%s", _sector_dump(False, sector, data))
        self.stats.num_disk_reads += 1
        self._start(sector, ticks)
        return data

    def write_request(self, sector: int, data: bytes) -> None:
        """Write one whole sector; the completion handler runs later."""
        ticks = self.compute_latency(sector, True)
        self._check_request(sector)
        if len(data) != SECTOR_SIZE:
            raise ValueError(f"a sector holds exactly {SECTOR_SIZE} bytes")
        log.debug("Writing to sector %d", sector)
        host.seek(self._fd, SECTOR_SIZE * sector + MAGIC_SIZE)
        host.write_all(self._fd, bytes(data))
        if log.isEnabledFor(logging.DEBUG):
            log.debug("%s", _sector_dump(True, sector, bytes(data)))
        self.stats.num_disk_writes += 1
        self._start(sector, ticks)

    def handle_interrupt(self) -> None:
        """Mark the current request finished and notify the caller."""
        self._active = False
        if self.on_done is not None:
            self.on_done()

    def _time_to_seek(self, new_sector: int) -> tuple[int, int]:
        """Return the seek time and the wait until the next sector boundary."""
        new_track = new_sector // SECTORS_PER_TRACK
        old_track = self._last_sector // SECTORS_PER_TRACK
        seek = abs(new_track - old_track) * SEEK_TIME
        over = (self.stats.total_ticks + seek) % ROTATION_TIME
        rotation = ROTATION_TIME - over if over > 0 else 0
        return seek, rotation

    @staticmethod
    def _modulo_diff(to: int, frm: int) -> int:
        """Sectors of rotational delay from position ``frm`` to sector ``to``."""
        to_offset = to % SECTORS_PER_TRACK
        from_offset = frm % SECTORS_PER_TRACK
        return (to_offset - from_offset + SECTORS_PER_TRACK) % SECTORS_PER_TRACK

    def compute_latency(self, new_sector: int, writing: bool) -> int:
        """Return the ticks a request for ``new_sector`` would take from now."""
        seek, rotation = self._time_to_seek(new_sector)
        time_after = self.stats.total_ticks + seek + rotation

        if (
            self.track_buffer
            and not writing
            and seek == 0
            and _cdiv(time_after - self._buffer_init, ROTATION_TIME)
            > self._modulo_diff(new_sector, _cdiv(self._buffer_init, ROTATION_TIME))
        ):
            log.debug("Request latency = %d", ROTATION_TIME)
            return ROTATION_TIME

        rotation += (
            self._modulo_diff(new_sector, _cdiv(time_after, ROTATION_TIME))
            * ROTATION_TIME
        )
        latency = seek + rotation + ROTATION_TIME
        log.debug("Request latency = %d", latency)
        return latency

    def _update_last(self, new_sector: int) -> None:
        seek, rotate = self._time_to_seek(new_sector)
        if seek != 0:
            self._buffer_init = self.stats.total_ticks + seek + rotate
        self._last_sector = new_sector
        log.debug(
            "Updating last sector = %d, %d", self._last_sector, self._buffer_init
        )

    def close(self) -> None:
        """Close the backing file."""
        if not self._closed:
            self._closed = True
            host.close(self._fd)

    def __enter__(self) -> "Disk":
        return self

    def __exit__(self, *args) -> None:
        self.close()