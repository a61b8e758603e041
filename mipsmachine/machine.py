"""The simulated MIPS processor that executes user programs.

User programs live in the machine's main memory and run one instruction
at a time.  Each memory reference goes through the page table or TLB.
System calls and faults trap to the kernel through an exception handler.
"""

from __future__ import annotations

import logging
import re
import sys
from typing import Callable, List, Optional, TextIO, Tuple

from .instructions import Instruction, OpCode, mult
from .interrupt import Interrupt, MachineStatus
from .stats import Statistics
from .translate import (
    MEMORY_SIZE,
    TLB_SIZE,
    ExceptionType,
    Mmu,
    TranslationEntry,
    TranslationFault,
)

log = logging.getLogger(__name__)

STACK_REG = 29  # user's stack pointer
RET_ADDR_REG = 31  # return address for procedure calls
NUM_GP_REGS = 32  # general purpose registers
HI_REG = 32  # high word of a multiply result
LO_REG = 33  # low word of a multiply result
PC_REG = 34  # current program counter
NEXT_PC_REG = 35  # next program counter (for branch delay)
PREV_PC_REG = 36  # previous program counter (for debugging)
LOAD_REG = 37  # target register of a delayed load
LOAD_VALUE_REG = 38  # value to be loaded by a delayed load
BAD_VADDR_REG = 39  # failing virtual address on an exception
NUM_TOTAL_REGS = 40

_WORD = 0xFFFFFFFF
_SIGN = 0x80000000

_HELP = (
    "Machine commands:\n"
    "    <return>  execute one instruction\n"
    "    <number>  run until the given timer tick\n"
    "    c         run until completion\n"
    "    ?         print help message"
)

_LEADING_INT = re.compile(r"\s*([+-]?\d+)")

_Step = Tuple[int, int, int]


def _s32(value: int) -> int:
    value &= _WORD
    return value - (1 << 32) if value & _SIGN else value


def _u32(value: int) -> int:
    return value & _WORD


def _cdiv(a: int, b: int) -> int:
    q = abs(a) // abs(b)
    return q if (a >= 0) == (b >= 0) else -q


class Machine:
    """CPU registers, main memory and address translation for user programs."""

    def __init__(
        self,
        interrupt: Interrupt,
        stats: Optional[Statistics] = None,
        exception_handler: Optional[Callable[[ExceptionType], None]] = None,
        use_tlb: bool = False,
        debug: bool = False,
    ):
        self.interrupt = interrupt
        self.stats = stats if stats is not None else interrupt.stats
        self.exception_handler = exception_handler
        self.registers: List[int] = [0] * NUM_TOTAL_REGS
        tlb = (
            [TranslationEntry(0, 0, valid=False) for _ in range(TLB_SIZE)]
            if use_tlb
            else None
        )
        self.mmu = Mmu(bytearray(MEMORY_SIZE), tlb, None)
        self.single_step = debug
        self.run_until_time = 0
        self.input: TextIO = sys.stdin
        self.output: TextIO = sys.stdout
        # Any pending delayed load completes before an interrupt handler runs.
        self.interrupt.pre_handler = lambda: self.delayed_load(0, 0)

    @property
    def memory(self) -> bytearray:
        """Physical main memory."""
        return self.mmu.memory

    @property
    def tlb(self) -> Optional[List[TranslationEntry]]:
        """The TLB entries, or None when a page table is used."""
        return self.mmu.tlb

    @property
    def page_table(self) -> Optional[List[TranslationEntry]]:
        """The linear page table of the running address space."""
        return self.mmu.page_table

    @page_table.setter
    def page_table(self, table: Optional[List[TranslationEntry]]) -> None:
        self.mmu.page_table = table

    def run(self) -> None:
        """Execute user instructions forever; leaves only through an exception."""
        log.debug("Starting user program at time %d", self.stats.total_ticks)
        self.interrupt.status = MachineStatus.USER
        while True:
            self.one_instruction()
            self.interrupt.one_tick()
            if self.single_step and self.run_until_time <= self.stats.total_ticks:
                self.debugger()

    def read_register(self, num: int) -> int:
        """Return the contents of register ``num``."""
        if not 0 <= num < NUM_TOTAL_REGS:
            raise IndexError(f"no register {num}")
        return self.registers[num]

    def write_register(self, num: int, value: int) -> None:
        """Store ``value``, as a 32-bit word, into register ``num``."""
        if not 0 <= num < NUM_TOTAL_REGS:
            raise IndexError(f"no register {num}")
        self.registers[num] = _s32(value)

    def read_mem(self, addr: int, size: int) -> int:
        """Read 1, 2 or 4 bytes of virtual memory; return them unsigned.

        If the address cannot be translated, the fault is first delivered to
        the kernel's exception handler and then raised as TranslationFault.
        """
        try:
            return self.mmu.read_mem(addr, size)
        except TranslationFault as fault:
            self.raise_exception(fault.exception, addr)
            raise

    def write_mem(self, addr: int, size: int, value: int) -> None:
        """Write 1, 2 or 4 bytes of virtual memory.

        Faults are delivered and raised as for read_mem.
        """
        try:
            self.mmu.write_mem(addr, size, value)
        except TranslationFault as fault:
            self.raise_exception(fault.exception, addr)
            raise

    def raise_exception(self, which: ExceptionType, bad_vaddr: int) -> None:
        """Trap into the kernel because of a system call or a fault."""
        log.debug("Exception: %s", which.description)
        if self.exception_handler is None:
            raise RuntimeError(f"unhandled exception: {which.description}")
        self.registers[BAD_VADDR_REG] = _s32(bad_vaddr)
        self.delayed_load(0, 0)
        self.interrupt.status = MachineStatus.SYSTEM
        self.exception_handler(which)
        self.interrupt.status = MachineStatus.USER

    def delayed_load(self, next_reg: int, next_value: int) -> None:
        """Complete the pending delayed load and record the next one."""
        regs = self.registers
        regs[regs[LOAD_REG]] = regs[LOAD_VALUE_REG]
        regs[LOAD_REG] = next_reg
        regs[LOAD_VALUE_REG] = _s32(next_value)
        regs[0] = 0

    def one_instruction(self) -> None:
        """Fetch, decode and execute one user instruction.

        After a trap the program counters are left unchanged, so the kernel
        decides where execution resumes.
        """
        regs = self.registers
        try:
            raw = self.read_mem(regs[PC_REG], 4)
        except TranslationFault:
            return
        instr = Instruction.decode(raw)
        if log.isEnabledFor(logging.DEBUG):
            log.debug("At PC = 0x%x: %s", _u32(regs[PC_REG]), instr.disassemble())
        try:
            step = self._execute(instr)
        except TranslationFault:
            return
        if step is None:
            return
        next_reg, next_value, pc_after = step
        self.delayed_load(next_reg, next_value)
        regs[PREV_PC_REG] = regs[PC_REG]
        regs[PC_REG] = regs[NEXT_PC_REG]
        regs[NEXT_PC_REG] = pc_after

    def _trap(self, which: ExceptionType, addr: int = 0) -> None:
        self.raise_exception(which, addr)

    def _execute(self, instr: Instruction) -> Optional[_Step]:
        """Run ``instr``; return the delayed load and next PC, or None on a trap."""
        r = self.registers
        O = OpCode
        op = instr.op_code
        rs = r[instr.rs]
        rt = r[instr.rt]
        extra = instr.extra
        pc_after = _s32(r[NEXT_PC_REG] + 4)
        load_reg = 0
        load_value = 0

        def branch_target() -> int:
            return _s32(r[NEXT_PC_REG] + (extra << 2))

        if op is O.ADD:
            total = rs + rt
            if _s32(total) != total:
                self._trap(ExceptionType.OVERFLOW)
                return None
            r[instr.rd] = total
        elif op is O.ADDI:
            total = rs + extra
            if _s32(total) != total:
                self._trap(ExceptionType.OVERFLOW)
                return None
            r[instr.rt] = total
        elif op is O.ADDIU:
            r[instr.rt] = _s32(rs + extra)
        elif op is O.ADDU:
            r[instr.rd] = _s32(rs + rt)
        elif op is O.AND:
            r[instr.rd] = rs & rt
        elif op is O.ANDI:
            r[instr.rt] = rs & (extra & 0xFFFF)
        elif op is O.BEQ:
            if rs == rt:
                pc_after = branch_target()
        elif op in (O.BGEZ, O.BGEZAL):
            if op is O.BGEZAL:
                r[RET_ADDR_REG] = _s32(r[NEXT_PC_REG] + 4)
            if r[instr.rs] >= 0:
                pc_after = branch_target()
        elif op is O.BGTZ:
            if rs > 0:
                pc_after = branch_target()
        elif op is O.BLEZ:
            if rs <= 0:
                pc_after = branch_target()
        elif op in (O.BLTZ, O.BLTZAL):
            if op is O.BLTZAL:
                r[RET_ADDR_REG] = _s32(r[NEXT_PC_REG] + 4)
            if r[instr.rs] < 0:
                pc_after = branch_target()
        elif op is O.BNE:
            if rs != rt:
                pc_after = branch_target()
        elif op is O.DIV:
            if rt == 0:
                r[LO_REG] = r[HI_REG] = 0
            else:
                quotient = _cdiv(rs, rt)
                r[LO_REG] = _s32(quotient)
                r[HI_REG] = _s32(rs - quotient * rt)
        elif op is O.DIVU:
            urs, urt = _u32(rs), _u32(rt)
            if urt == 0:
                r[LO_REG] = r[HI_REG] = 0
            else:
                r[LO_REG] = _s32(urs // urt)
                r[HI_REG] = _s32(urs % urt)
        elif op in (O.J, O.JAL):
            if op is O.JAL:
                r[RET_ADDR_REG] = _s32(r[NEXT_PC_REG] + 4)
            pc_after = _s32((pc_after & 0xF0000000) | (extra << 2))
        elif op in (O.JR, O.JALR):
            if op is O.JALR:
                r[instr.rd] = _s32(r[NEXT_PC_REG] + 4)
            pc_after = r[instr.rs]
        elif op in (O.LB, O.LBU):
            value = self.read_mem(_s32(rs + extra), 1)
            if value & 0x80 and op is O.LB:
                value -= 0x100
            load_reg, load_value = instr.rt, value
        elif op in (O.LH, O.LHU):
            addr = _s32(rs + extra)
            if addr & 0x1:
                self._trap(ExceptionType.ADDRESS_ERROR, addr)
                return None
            value = self.read_mem(addr, 2)
            if value & 0x8000 and op is O.LH:
                value -= 0x10000
            load_reg, load_value = instr.rt, value
        elif op is O.LUI:
            r[instr.rt] = _s32(extra << 16)
        elif op is O.LW:
            addr = _s32(rs + extra)
            if addr & 0x3:
                self._trap(ExceptionType.ADDRESS_ERROR, addr)
                return None
            load_reg, load_value = instr.rt, _s32(self.read_mem(addr, 4))
        elif op in (O.LWL, O.LWR):
            addr = _s32(rs + extra)
            if addr & 0x3:
                raise RuntimeError("unaligned partial-word loads are not supported")
            value = _s32(self.read_mem(addr, 4))
            if op is O.LWL:
                load_value = value
            else:
                if r[LOAD_REG] == instr.rt:
                    old = r[LOAD_VALUE_REG]
                else:
                    old = r[instr.rt]
                load_value = _s32((old & 0xFFFFFF00) | ((value >> 24) & 0xFF))
            load_reg = instr.rt
        elif op is O.MFHI:
            r[instr.rd] = r[HI_REG]
        elif op is O.MFLO:
            r[instr.rd] = r[LO_REG]
        elif op is O.MTHI:
            r[HI_REG] = rs
        elif op is O.MTLO:
            r[LO_REG] = rs
        elif op in (O.MULT, O.MULTU):
            r[HI_REG], r[LO_REG] = mult(rs, rt, op is O.MULT)
        elif op is O.NOR:
            r[instr.rd] = _s32(~(rs | rt))
        elif op is O.OR:
            # This processor's OR combines rs with itself; rt is ignored.
            r[instr.rd] = rs | rs
        elif op is O.ORI:
            r[instr.rt] = _s32(rs | (extra & 0xFFFF))
        elif op in (O.SB, O.SH, O.SW):
            size = {O.SB: 1, O.SH: 2, O.SW: 4}[op]
            self.write_mem(_u32(rs + extra), size, rt)
        elif op is O.SLL:
            r[instr.rd] = _s32(rt << extra)
        elif op is O.SLLV:
            r[instr.rd] = _s32(rt << (rs & 0x1F))
        elif op is O.SLT:
            r[instr.rd] = int(rs < rt)
        elif op is O.SLTI:
            r[instr.rt] = int(rs < extra)
        elif op is O.SLTIU:
            r[instr.rt] = int(_u32(rs) < _u32(extra))
        elif op is O.SLTU:
            r[instr.rd] = int(_u32(rs) < _u32(rt))
        elif op in (O.SRA, O.SRL):
            # Both shifts propagate the sign bit on this processor.
            r[instr.rd] = rt >> extra
        elif op in (O.SRAV, O.SRLV):
            r[instr.rd] = rt >> (rs & 0x1F)
        elif op is O.SUB:
            diff = rs - rt
            if _s32(diff) != diff:
                self._trap(ExceptionType.OVERFLOW)
                return None
            r[instr.rd] = diff
        elif op is O.SUBU:
            r[instr.rd] = _s32(rs - rt)
        elif op in (O.SWL, O.SWR):
            addr = _s32(rs + extra)
            if addr & 0x3:
                raise RuntimeError("unaligned partial-word stores are not supported")
            value = _s32(self.read_mem(addr & ~0x3, 4))
            if op is O.SWL:
                value = rt
            else:
                value = _s32((value & 0xFFFFFF) | (rt << 24))
            self.write_mem(addr & ~0x3, 4, value)
        elif op is O.SYSCALL:
            self._trap(ExceptionType.SYSCALL)
            return None
        elif op is O.XOR:
            r[instr.rd] = rs ^ rt
        elif op is O.XORI:
            r[instr.rt] = _s32(rs ^ (extra & 0xFFFF))
        elif op in (O.RES, O.UNIMP):
            self._trap(ExceptionType.ILLEGAL_INSTR)
            return None
        else:
            raise RuntimeError(f"cannot execute {instr.disassemble()}")
        return load_reg, load_value, pc_after

    def debugger(self) -> None:
        """A primitive single-stepping debugger for user programs."""
        print(self.interrupt.dump_state(), file=self.output)
        print(self.dump_state(), file=self.output)
        print(f"{self.stats.total_ticks}> ", end="", file=self.output)
        self.output.flush()
        line = self.input.readline()
        match = _LEADING_INT.match(line)
        if match:
            self.run_until_time = int(match.group(1))
            return
        self.run_until_time = 0
        command = line[:1]
        if command == "c":
            self.single_step = False
        elif command == "?":
            print(_HELP, file=self.output)

    def dump_state(self) -> str:
        """Return the user program's CPU registers as text."""
        regs = self.registers
        parts = ["Machine registers:\n"]
        for i in range(NUM_GP_REGS):
            if i == STACK_REG:
                name = f"SP({i})"
            elif i == RET_ADDR_REG:
                name = f"RA({i})"
            else:
                name = str(i)
            end = "\n" if i % 4 == 3 else ""
            parts.append(f"\t{name}:\t0x{_u32(regs[i]):x}{end}")
        parts.append(f"\tHi:\t0x{_u32(regs[HI_REG]):x}")
        parts.append(f"\tLo:\t0x{_u32(regs[LO_REG]):x}\n")
        parts.append(f"\tPC:\t0x{_u32(regs[PC_REG]):x}")
        parts.append(f"\tNextPC:\t0x{_u32(regs[NEXT_PC_REG]):x}")
        parts.append(f"\tPrevPC:\t0x{_u32(regs[PREV_PC_REG]):x}\n")
        parts.append(f"\tLoad:\t0x{_u32(regs[LOAD_REG]):x}")
        parts.append(f"\tLoadV:\t0x{_u32(regs[LOAD_VALUE_REG]):x}\n")
        return "".join(parts)