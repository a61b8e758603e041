"""A simulated serial console: a keyboard for input and a display for output.

Both halves are backed by host files (standard input and output by default).
The device is asynchronous: a character written to the display completes
later, with a call to the write handler, and the keyboard is polled
periodically, calling the read handler whenever a character arrives.
"""

from __future__ import annotations

import os
from typing import Callable, Optional, Union

from . import host
from .interrupt import Interrupt, IntType, MachineStatus
from .stats import CONSOLE_TIME, Statistics

_STDIN = 0
_STDOUT = 1

PathLike = Union[str, os.PathLike]


class Console:
    """A full-duplex terminal device driven by simulated interrupts."""

    def __init__(
        self,
        interrupt: Interrupt,
        stats: Optional[Statistics] = None,
        read_avail: Optional[Callable[[], None]] = None,
        write_done: Optional[Callable[[], None]] = None,
        read_file: Optional[PathLike] = None,
        write_file: Optional[PathLike] = None,
    ):
        self.interrupt = interrupt
        self.stats = stats if stats is not None else interrupt.stats
        self._read_handler = read_avail
        self._write_handler = write_done

        if read_file is None:
            self._read_fd = _STDIN
            self._owns_read = False
        else:
            self._read_fd = host.open_for_read_write(read_file, True)
            self._owns_read = True
        if write_file is None:
            self._write_fd = _STDOUT
            self._owns_write = False
        else:
            self._write_fd = host.open_for_write(write_file)
            self._owns_write = True

        self._put_busy = False
        self._incoming: Optional[str] = None
        self._closed = False

        self.interrupt.schedule(
            self.check_char_avail, CONSOLE_TIME, IntType.CONSOLE_READ
        )

    @property
    def busy(self) -> bool:
        """Whether a written character has not yet completed."""
        return self._put_busy

    def put_char(self, ch: str) -> None:
        """Write one character to the display; the write handler runs later."""
        if len(ch) != 1:
            raise ValueError("put_char takes exactly one character")
        if self._put_busy:
            raise RuntimeError("a character is already being written")
        host.write_all(self._write_fd, ch.encode("latin-1"))
        self._put_busy = True
        self.interrupt.schedule(self.write_done, CONSOLE_TIME, IntType.CONSOLE_WRITE)

    def get_char(self) -> Optional[str]:
        """Return the buffered input character, or None if there is none."""
        ch = self._incoming
        self._incoming = None
        return ch

    def write_done(self) -> None:
        """Complete an output character and notify the write handler."""
        self._put_busy = False
        self.stats.num_console_chars_written += 1
        if self._write_handler is not None:
            self._write_handler()

    def check_char_avail(self) -> None:
        """Poll the keyboard; buffer a character and notify the read handler."""
        self.interrupt.schedule(
            self.check_char_avail, CONSOLE_TIME, IntType.CONSOLE_READ
        )
        if self._incoming is not None:
            return
        idle = self.interrupt.status is MachineStatus.IDLE
        if not host.poll_file(self._read_fd, idle):
            return
        self._incoming = host.read_exact(self._read_fd, 1).decode("latin-1")
        self.stats.num_console_chars_read += 1
        if self._read_handler is not None:
            self._read_handler()

    def close(self) -> None:
        """Close the backing files that this console opened."""
        if self._closed:
            return
        self._closed = True
        if self._owns_read:
            host.close(self._read_fd)
        if self._owns_write:
            host.close(self._write_fd)

    def __enter__(self) -> "Console":
        return self

    def __exit__(self, *args) -> None:
        self.close()