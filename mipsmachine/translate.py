"""Translation of virtual addresses to physical memory addresses.

Two schemes are supported: a linear page table indexed by virtual page
number, and a small software-loaded translation lookaside buffer searched
associatively.  Exactly one of them must be in use when an address is
translated.  Memory holds words and half-words in little-endian order.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import IntEnum
from typing import List, Optional

from .disk import SECTOR_SIZE

log = logging.getLogger(__name__)

PAGE_SIZE = SECTOR_SIZE  # a page is the same size as a disk sector
NUM_PHYS_PAGES = 512
MEMORY_SIZE = NUM_PHYS_PAGES * PAGE_SIZE
TLB_SIZE = 4

_MASKS = {1: 0xFF, 2: 0xFFFF, 4: 0xFFFFFFFF}


class ExceptionType(IntEnum):
    """Causes of a trap from a user program into the kernel."""

    NO_EXCEPTION = 0
    SYSCALL = 1
    PAGE_FAULT = 2
    READ_ONLY = 3
    BUS_ERROR = 4
    ADDRESS_ERROR = 5
    OVERFLOW = 6
    ILLEGAL_INSTR = 7

    @property
    def description(self) -> str:
        """A short human-readable name for the exception."""
        return _DESCRIPTIONS[self]


_DESCRIPTIONS = {
    ExceptionType.NO_EXCEPTION: "no exception",
    ExceptionType.SYSCALL: "syscall",
    ExceptionType.PAGE_FAULT: "page fault/no TLB entry",
    ExceptionType.READ_ONLY: "page read only",
    ExceptionType.BUS_ERROR: "bus error",
    ExceptionType.ADDRESS_ERROR: "address error",
    ExceptionType.OVERFLOW: "overflow",
    ExceptionType.ILLEGAL_INSTR: "illegal instruction",
}


class TranslationFault(Exception):
    """A virtual address could not be translated."""

    def __init__(self, exception: ExceptionType, address: int):
        super().__init__(f"{exception.description} at 0x{address & 0xFFFFFFFF:x}")
        self.exception = exception
        self.address = address


@dataclass
class TranslationEntry:
    """One mapping from a virtual page to a physical page, with status bits."""

    virtual_page: int
    physical_page: int
    valid: bool = True
    read_only: bool = False
    use: bool = False
    dirty: bool = False


class Mmu:
    """Physical memory together with the page table or TLB that maps into it."""

    def __init__(
        self,
        memory: Optional[bytearray] = None,
        tlb: Optional[List[TranslationEntry]] = None,
        page_table: Optional[List[TranslationEntry]] = None,
    ):
        self.memory = memory if memory is not None else bytearray(MEMORY_SIZE)
        self.tlb = tlb
        self.page_table = page_table

    def translate(self, virt_addr: int, size: int, writing: bool) -> int:
        """Return the physical address for ``virt_addr``.

        Sets the use bit (and the dirty bit when writing) of the entry used.
        Raises TranslationFault when the address cannot be translated.
        """
        if size not in _MASKS:
            raise ValueError(f"cannot access {size} bytes at once")
        log.debug("Translate 0x%x, %s", virt_addr, "write" if writing else "read")

        if (size == 4 and virt_addr & 0x3) or (size == 2 and virt_addr & 0x1):
            log.debug("alignment problem at %d, size %d", virt_addr, size)
            raise TranslationFault(ExceptionType.ADDRESS_ERROR, virt_addr)

        if (self.tlb is None) == (self.page_table is None):
            raise ValueError("exactly one of a TLB or a page table must be in use")

        unsigned = virt_addr & 0xFFFFFFFF
        vpn, offset = divmod(unsigned, PAGE_SIZE)

        if self.tlb is None:
            if vpn >= len(self.page_table):
                log.debug(
                    "virtual page # %d too large for page table size %d",
                    vpn,
                    len(self.page_table),
                )
                raise TranslationFault(ExceptionType.ADDRESS_ERROR, virt_addr)
            entry = self.page_table[vpn]
            if not entry.valid:
                log.debug("virtual page # %d is not valid", vpn)
                raise TranslationFault(ExceptionType.PAGE_FAULT, virt_addr)
        else:
            entry = next(
                (e for e in self.tlb if e.valid and e.virtual_page == vpn), None
            )
            if entry is None:
                log.debug("no valid TLB entry found for this virtual page")
                raise TranslationFault(ExceptionType.PAGE_FAULT, virt_addr)

        if entry.read_only and writing:
            log.debug("%d mapped read-only", virt_addr)
            raise TranslationFault(ExceptionType.READ_ONLY, virt_addr)

        frame = entry.physical_page
        if not 0 <= frame < NUM_PHYS_PAGES:
            log.debug("frame %d > %d", frame, NUM_PHYS_PAGES)
            raise TranslationFault(ExceptionType.BUS_ERROR, virt_addr)

        entry.use = True
        if writing:
            entry.dirty = True
        phys = frame * PAGE_SIZE + offset
        if phys + size > len(self.memory):
            raise RuntimeError(f"physical address 0x{phys:x} beyond main memory")
        log.debug("phys addr = 0x%x", phys)
        return phys

    def read_mem(self, addr: int, size: int) -> int:
        """Read 1, 2 or 4 bytes at virtual ``addr``; return them unsigned."""
        phys = self.translate(addr, size, False)
        value = int.from_bytes(self.memory[phys : phys + size], "little")
        log.debug("value read = %08x", value)
        return value

    def write_mem(self, addr: int, size: int, value: int) -> None:
        """Write the low 1, 2 or 4 bytes of ``value`` at virtual ``addr``."""
        log.debug("Writing VA 0x%x, size %d, value 0x%x", addr, size, value)
        phys = self.translate(addr, size, True)
        self.memory[phys : phys + size] = (value & _MASKS[size]).to_bytes(
            size, "little"
        )