"""Thin, checked wrappers over the host operating system.

The simulated devices use these routines for their backing files, for the
datagram sockets that connect several simulated machines, and for process
control and pseudo-random numbers.
"""

from __future__ import annotations

import os
import random
import select
import signal
import socket
import time
from typing import Any, Callable, Optional, Union

# How long to wait for input when the simulated machine has nothing to run,
# so that other simulator instances on the host get a chance to run.
IDLE_POLL_SECONDS = 0.02

_rng = random.Random()

# Largest value returned by random_int().
RANDOM_MAX = 2**31 - 1

Pollable = Union[int, socket.socket]


def poll_file(fd: Pollable, idle: bool = False) -> bool:
    """Return whether ``fd`` has input that can be read without blocking.

    When ``idle`` is true, wait briefly before giving up, rather than
    busy-waiting on the host CPU.
    """
    timeout = IDLE_POLL_SECONDS if idle else 0.0
    readable, _, _ = select.select([fd], [], [], timeout)
    return bool(readable)


def open_for_write(name: Union[str, os.PathLike]) -> int:
    """Open ``name`` for writing, creating or truncating it; return the descriptor."""
    return os.open(name, os.O_RDWR | os.O_CREAT | os.O_TRUNC, 0o666)


def open_for_read_write(
    name: Union[str, os.PathLike], crash_on_error: bool = True
) -> Optional[int]:
    """Open an existing file for reading and writing.

    If the file cannot be opened, the error is raised when ``crash_on_error``
    is true; otherwise None is returned.
    """
    try:
        return os.open(name, os.O_RDWR)
    except OSError:
        if crash_on_error:
            raise
        return None


def read_exact(fd: int, count: int) -> bytes:
    """Read exactly ``count`` bytes from ``fd``; raise EOFError if fewer arrive."""
    data = os.read(fd, count)
    if len(data) != count:
        raise EOFError(f"expected {count} bytes, read {len(data)}")
    return data


def read_partial(fd: int, count: int) -> bytes:
    """Read up to ``count`` bytes from ``fd``, returning whatever is available."""
    return os.read(fd, count)


def write_all(fd: int, data: bytes) -> None:
    """Write all of ``data`` to ``fd``; raise OSError on a short write."""
    written = os.write(fd, data)
    if written != len(data):
        raise OSError(f"expected to write {len(data)} bytes, wrote {written}")


def seek(fd: int, offset: int, whence: int = os.SEEK_SET) -> int:
    """Move the position within ``fd``; return the new position."""
    return os.lseek(fd, offset, whence)


def tell(fd: int) -> int:
    """Return the current position within ``fd``."""
    return os.lseek(fd, 0, os.SEEK_CUR)


def close(fd: int) -> None:
    """Close a file descriptor."""
    os.close(fd)


def unlink(name: Union[str, os.PathLike]) -> bool:
    """Delete ``name``; return whether a file was removed."""
    try:
        os.unlink(name)
    except FileNotFoundError:
        return False
    return True


def open_socket() -> socket.socket:
    """Open a datagram port on which other simulated machines can reach us."""
    return socket.socket(socket.AF_UNIX, socket.SOCK_DGRAM)


def assign_name_to_socket(name: str, sock: socket.socket) -> None:
    """Bind ``sock`` to the file name ``name``, replacing any stale file."""
    unlink(name)
    sock.bind(name)


def deassign_name_to_socket(name: str) -> None:
    """Remove the file name that was bound to a socket."""
    unlink(name)


def poll_socket(sock: socket.socket, idle: bool = False) -> bool:
    """Return whether a datagram is waiting on ``sock``."""
    return poll_file(sock, idle)


def read_from_socket(sock: socket.socket, size: int) -> bytes:
    """Receive one datagram of exactly ``size`` bytes; raise EOFError otherwise."""
    data = sock.recv(size)
    if len(data) != size:
        raise EOFError(f"expected a {size}-byte packet, got {len(data)} bytes")
    return data


def send_to_socket(sock: socket.socket, data: bytes, to_name: str) -> None:
    """Send ``data`` as one datagram to the socket bound to ``to_name``."""
    sent = sock.sendto(data, to_name)
    if sent != len(data):
        raise OSError(f"expected to send {len(data)} bytes, sent {sent}")


def call_on_user_abort(func: Callable[[], Any]) -> Any:
    """Arrange for ``func`` to be called on an interrupt from the keyboard.

    Returns the previously installed handler.
    """

    def _handler(signum: int, frame: Any) -> None:
        func()

    return signal.signal(signal.SIGINT, _handler)


def delay(seconds: float) -> None:
    """Suspend the host process for ``seconds``."""
    time.sleep(seconds)


def random_init(seed: int) -> None:
    """Seed the pseudo-random number generator."""
    _rng.seed(seed)


def random_int() -> int:
    """Return a pseudo-random integer between 0 and RANDOM_MAX inclusive."""
    return _rng.randint(0, RANDOM_MAX)