"""A simulated network interface connecting several simulated machines.

Each machine owns a datagram socket named after its network address in the
current directory.  Packets are ordered, fixed-size and unreliable: the
sender may lose them at random, according to the link's reliability.  The
device is asynchronous in the same way as the console.
"""

from __future__ import annotations

import logging
import struct
from dataclasses import dataclass
from typing import Callable, Optional, Tuple

from . import host
from .interrupt import Interrupt, IntType, MachineStatus
from .stats import NETWORK_TIME, Statistics

log = logging.getLogger(__name__)

_HEADER = struct.Struct("<iiI")
HEADER_SIZE = _HEADER.size
MAX_WIRE_SIZE = 64  # largest packet that can go out on the wire
MAX_PACKET_SIZE = MAX_WIRE_SIZE - HEADER_SIZE  # largest data payload


def socket_name(address: int) -> str:
    """Return the file name of the socket for a network address."""
    return f"SOCKET_{address}"


@dataclass
class PacketHeader:
    """The header prepended to every packet: destination, source, length."""

    to: int = 0
    from_: int = 0
    length: int = 0

    def pack(self) -> bytes:
        """Return the header in its wire format."""
        return _HEADER.pack(self.to, self.from_, self.length)

    @classmethod
    def unpack(cls, data: bytes) -> "PacketHeader":
        """Parse a header from the start of ``data``."""
        if len(data) < HEADER_SIZE:
            raise ValueError(f"a packet header needs {HEADER_SIZE} bytes")
        return cls(*_HEADER.unpack_from(data))


class Network:
    """A full-duplex network device driven by simulated interrupts."""

    def __init__(
        self,
        address: int,
        reliability: float,
        interrupt: Interrupt,
        stats: Optional[Statistics] = None,
        read_avail: Optional[Callable[[], None]] = None,
        write_done: Optional[Callable[[], None]] = None,
    ):
        self.address = address
        self.chance_to_work = min(max(reliability, 0.0), 1.0)
        self.interrupt = interrupt
        self.stats = stats if stats is not None else interrupt.stats
        self._read_handler = read_avail
        self._write_handler = write_done
        self._send_busy = False
        self._in_header = PacketHeader()
        self._inbox = b""
        self._closed = False

        self._sock = host.open_socket()
        self._sock_name = socket_name(address)
        try:
            host.assign_name_to_socket(self._sock_name, self._sock)
        except OSError:
            self._sock.close()
            raise
        log.debug("Created socket %s", self._sock_name)

        self.interrupt.schedule(
            self.check_packet_available, NETWORK_TIME, IntType.NETWORK_RECV
        )

    @property
    def busy(self) -> bool:
        """Whether a sent packet has not yet completed."""
        return self._send_busy

    def send(self, header: PacketHeader, data: bytes) -> None:
        """Send ``header.length`` bytes of ``data``; the write handler runs later.

        The write handler runs whether or not the packet is lost.
        """
        if self._send_busy:
            raise RuntimeError("a packet is already being sent")
        if not 0 < header.length <= MAX_PACKET_SIZE:
            raise ValueError(
                f"packet length must be between 1 and {MAX_PACKET_SIZE} bytes"
            )
        if header.from_ != self.address:
            raise ValueError("the packet must come from this machine's address")
        if len(data) < header.length:
            raise ValueError("data is shorter than the header's length")
        log.debug("Sending to addr %d, %d bytes", header.to, header.length)

        self._send_busy = True
        self.interrupt.schedule(self.send_done, NETWORK_TIME, IntType.NETWORK_SEND)

        if host.random_int() % 100 >= self.chance_to_work * 100:
            log.debug("oops, lost it!")
            return

        packet = header.pack() + bytes(data[: header.length])
        packet = packet.ljust(MAX_WIRE_SIZE, b"\0")
        host.send_to_socket(self._sock, packet, socket_name(header.to))

    def receive(self) -> Tuple[PacketHeader, bytes]:
        """Take the buffered packet, if any.

        Returns its header and data; with nothing buffered the header has
        length 0 and the data is empty.
        """
        header = self._in_header
        data = self._inbox[: header.length] if header.length else b""
        self._in_header = PacketHeader()
        self._inbox = b""
        return header, data

    def send_done(self) -> None:
        """Complete a send and notify the write handler."""
        self._send_busy = False
        self.stats.num_packets_sent += 1
        if self._write_handler is not None:
            self._write_handler()

    def check_packet_available(self) -> None:
        """Poll the socket; buffer an arriving packet and notify the read handler.

        While a packet is still buffered, reading the next one is delayed.
        """
        self.interrupt.schedule(
            self.check_packet_available, NETWORK_TIME, IntType.NETWORK_RECV
        )
        if self._in_header.length != 0:
            return
        idle = self.interrupt.status is MachineStatus.IDLE
        if not host.poll_socket(self._sock, idle):
            return

        packet = host.read_from_socket(self._sock, MAX_WIRE_SIZE)
        header = PacketHeader.unpack(packet)
        if header.to != self.address or header.length > MAX_PACKET_SIZE:
            raise ValueError("received a malformed packet")
        self._in_header = header
        self._inbox = packet[HEADER_SIZE : HEADER_SIZE + header.length]
        log.debug(
            "Network received packet from %d, length %d", header.from_, header.length
        )
        self.stats.num_packets_recvd += 1
        if self._read_handler is not None:
            self._read_handler()

    def close(self) -> None:
        """Close the socket and remove its file name."""
        if self._closed:
            return
        self._closed = True
        self._sock.close()
        host.deassign_name_to_socket(self._sock_name)

    def __enter__(self) -> "Network":
        return self

    def __exit__(self, *args) -> None:
        self.close()