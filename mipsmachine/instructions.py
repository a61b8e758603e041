"""Decoding and disassembly of MIPS R2000/R3000 instruction words.

The ``op_code`` of a decoded instruction is the simulator's own numbering
(see OpCode).  It is not the raw opcode field of the instruction word.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Tuple, Union

SIGN_BIT = 0x80000000
R31 = 31
MAX_OPCODE = 63

_WORD = 0xFFFFFFFF


class OpCode(IntEnum):
    """Operations understood by the simulator.

    UNIMP is a legal instruction that the simulator does not implement.
    RES is a reserved opcode that the architecture does not define.
    """

    ADD = 1
    ADDI = 2
    ADDIU = 3
    ADDU = 4
    AND = 5
    ANDI = 6
    BEQ = 7
    BGEZ = 8
    BGEZAL = 9
    BGTZ = 10
    BLEZ = 11
    BLTZ = 12
    BLTZAL = 13
    BNE = 14
    DIV = 16
    DIVU = 17
    J = 18
    JAL = 19
    JALR = 20
    JR = 21
    LB = 22
    LBU = 23
    LH = 24
    LHU = 25
    LUI = 26
    LW = 27
    LWL = 28
    LWR = 29
    MFHI = 31
    MFLO = 32
    MTHI = 34
    MTLO = 35
    MULT = 36
    MULTU = 37
    NOR = 38
    OR = 39
    ORI = 40
    RFE = 41
    SB = 42
    SH = 43
    SLL = 44
    SLLV = 45
    SLT = 46
    SLTI = 47
    SLTIU = 48
    SLTU = 49
    SRA = 50
    SRAV = 51
    SRL = 52
    SRLV = 53
    SUB = 54
    SUBU = 55
    SW = 56
    SWL = 57
    SWR = 58
    XOR = 59
    XORI = 60
    SYSCALL = 61
    UNIMP = 62
    RES = 63


class Format(Enum):
    """Layout of the operand fields of an instruction word."""

    I = 1  # noqa: E741 - immediate
    J = 2  # jump target
    R = 3  # register


# Markers in the primary table that call for further decoding.
_SPECIAL = 100
_BCOND = 101

_Entry = Tuple[Union[int, OpCode], Format]

_I, _J, _R = Format.I, Format.J, Format.R
_O = OpCode

# Indexed by bits 31:26 of the instruction word.
_OP_TABLE: Tuple[_Entry, ...] = (
    (_SPECIAL, _R), (_BCOND, _I), (_O.J, _J), (_O.JAL, _J),
    (_O.BEQ, _I), (_O.BNE, _I), (_O.BLEZ, _I), (_O.BGTZ, _I),
    (_O.ADDI, _I), (_O.ADDIU, _I), (_O.SLTI, _I), (_O.SLTIU, _I),
    (_O.ANDI, _I), (_O.ORI, _I), (_O.XORI, _I), (_O.LUI, _I),
    (_O.UNIMP, _I), (_O.UNIMP, _I), (_O.UNIMP, _I), (_O.UNIMP, _I),
    (_O.RES, _I), (_O.RES, _I), (_O.RES, _I), (_O.RES, _I),
    (_O.RES, _I), (_O.RES, _I), (_O.RES, _I), (_O.RES, _I),
    (_O.RES, _I), (_O.RES, _I), (_O.RES, _I), (_O.RES, _I),
    (_O.LB, _I), (_O.LH, _I), (_O.LWL, _I), (_O.LW, _I),
    (_O.LBU, _I), (_O.LHU, _I), (_O.LWR, _I), (_O.RES, _I),
    (_O.SB, _I), (_O.SH, _I), (_O.SWL, _I), (_O.SW, _I),
    (_O.RES, _I), (_O.RES, _I), (_O.SWR, _I), (_O.RES, _I),
    (_O.UNIMP, _I), (_O.UNIMP, _I), (_O.UNIMP, _I), (_O.UNIMP, _I),
    (_O.RES, _I), (_O.RES, _I), (_O.RES, _I), (_O.RES, _I),
    (_O.UNIMP, _I), (_O.UNIMP, _I), (_O.UNIMP, _I), (_O.UNIMP, _I),
    (_O.RES, _I), (_O.RES, _I), (_O.RES, _I), (_O.RES, _I),
)

# Indexed by the "funct" field (bits 5:0) of SPECIAL instructions.
_SPECIAL_TABLE: Tuple[OpCode, ...] = (
    _O.SLL, _O.RES, _O.SRL, _O.SRA, _O.SLLV, _O.RES, _O.SRLV, _O.SRAV,
    _O.JR, _O.JALR, _O.RES, _O.RES, _O.SYSCALL, _O.UNIMP, _O.RES, _O.RES,
    _O.MFHI, _O.MTHI, _O.MFLO, _O.MTLO, _O.RES, _O.RES, _O.RES, _O.RES,
    _O.MULT, _O.MULTU, _O.DIV, _O.DIVU, _O.RES, _O.RES, _O.RES, _O.RES,
    _O.ADD, _O.ADDU, _O.SUB, _O.SUBU, _O.AND, _O.OR, _O.XOR, _O.NOR,
    _O.RES, _O.RES, _O.SLT, _O.SLTU, _O.RES, _O.RES, _O.RES, _O.RES,
    _O.RES, _O.RES, _O.RES, _O.RES, _O.RES, _O.RES, _O.RES, _O.RES,
    _O.RES, _O.RES, _O.RES, _O.RES, _O.RES, _O.RES, _O.RES, _O.RES,
)

# Selected by bits 20:16 of BCOND instructions.
_BCOND_TABLE = {
    0x00: _O.BLTZ,
    0x01: _O.BGEZ,
    0x10: _O.BLTZAL,
    0x11: _O.BGEZAL,
}

_THREE_REG = ("rd", "rs", "rt")
_IMMEDIATE = ("rt", "rs", "extra")
_MEMORY = ("rt", "extra", "rs")
_BRANCH = ("rs", "extra")

# Printed form of each instruction, and the fields it shows, in order.
_TEMPLATES = {
    _O.ADD: ("ADD r{},r{},r{}", _THREE_REG),
    _O.ADDI: ("ADDI r{},r{},{}", _IMMEDIATE),
    _O.ADDIU: ("ADDIU r{},r{},{}", _IMMEDIATE),
    _O.ADDU: ("ADDU r{},r{},r{}", _THREE_REG),
    _O.AND: ("AND r{},r{},r{}", _THREE_REG),
    _O.ANDI: ("ANDI r{},r{},{}", _IMMEDIATE),
    _O.BEQ: ("BEQ r{},r{},{}", ("rs", "rt", "extra")),
    _O.BGEZ: ("BGEZ r{},{}", _BRANCH),
    _O.BGEZAL: ("BGEZAL r{},{}", _BRANCH),
    _O.BGTZ: ("BGTZ r{},{}", _BRANCH),
    _O.BLEZ: ("BLEZ r{},{}", _BRANCH),
    _O.BLTZ: ("BLTZ r{},{}", _BRANCH),
    _O.BLTZAL: ("BLTZAL r{},{}", _BRANCH),
    _O.BNE: ("BNE r{},r{},{}", ("rs", "rt", "extra")),
    _O.DIV: ("DIV r{},r{}", ("rs", "rt")),
    _O.DIVU: ("DIVU r{},r{}", ("rs", "rt")),
    _O.J: ("J {}", ("extra",)),
    _O.JAL: ("JAL {}", ("extra",)),
    _O.JALR: ("JALR r{},r{}", ("rd", "rs")),
    _O.JR: ("JR r{},r{}", ("rd", "rs")),
    _O.LB: ("LB r{},{}(r{})", _MEMORY),
    _O.LBU: ("LBU r{},{}(r{})", _MEMORY),
    _O.LH: ("LH r{},{}(r{})", _MEMORY),
    _O.LHU: ("LHU r{},{}(r{})", _MEMORY),
    _O.LUI: ("LUI r{},{}", ("rt", "extra")),
    _O.LW: ("LW r{},{}(r{})", _MEMORY),
    _O.LWL: ("LWL r{},{}(r{})", _MEMORY),
    _O.LWR: ("LWR r{},{}(r{})", _MEMORY),
    _O.MFHI: ("MFHI r{}", ("rd",)),
    _O.MFLO: ("MFLO r{}", ("rd",)),
    _O.MTHI: ("MTHI r{}", ("rs",)),
    _O.MTLO: ("MTLO r{}", ("rs",)),
    _O.MULT: ("MULT r{},r{}", ("rs", "rt")),
    _O.MULTU: ("MULTU r{},r{}", ("rs", "rt")),
    _O.NOR: ("NOR r{},r{},r{}", _THREE_REG),
    _O.OR: ("OR r{},r{},r{}", _THREE_REG),
    _O.ORI: ("ORI r{},r{},{}", _IMMEDIATE),
    _O.RFE: ("RFE", ()),
    _O.SB: ("SB r{},{}(r{})", _MEMORY),
    _O.SH: ("SH r{},{}(r{})", _MEMORY),
    _O.SLL: ("SLL r{},r{},{}", ("rd", "rt", "extra")),
    _O.SLLV: ("SLLV r{},r{},r{}", ("rd", "rt", "rs")),
    _O.SLT: ("SLT r{},r{},r{}", _THREE_REG),
    _O.SLTI: ("SLTI r{},r{},{}", _IMMEDIATE),
    _O.SLTIU: ("SLTIU r{},r{},{}", _IMMEDIATE),
    _O.SLTU: ("SLTU r{},r{},r{}", _THREE_REG),
    _O.SRA: ("SRA r{},r{},{}", ("rd", "rt", "extra")),
    _O.SRAV: ("SRAV r{},r{},r{}", ("rd", "rt", "rs")),
    _O.SRL: ("SRL r{},r{},{}", ("rd", "rt", "extra")),
    _O.SRLV: ("SRLV r{},r{},r{}", ("rd", "rt", "rs")),
    _O.SUB: ("SUB r{},r{},r{}", _THREE_REG),
    _O.SUBU: ("SUBU r{},r{},r{}", _THREE_REG),
    _O.SW: ("SW r{},{}(r{})", _MEMORY),
    _O.SWL: ("SWL r{},{}(r{})", _MEMORY),
    _O.SWR: ("SWR r{},{}(r{})", _MEMORY),
    _O.XOR: ("XOR r{},r{},r{}", _THREE_REG),
    _O.XORI: ("XORI r{},r{},{}", _IMMEDIATE),
    _O.SYSCALL: ("SYSCALL", ()),
    _O.UNIMP: ("Unimplemented", ()),
    _O.RES: ("Reserved", ()),
}


def _signed32(value: int) -> int:
    value &= _WORD
    return value - (1 << 32) if value & SIGN_BIT else value


@dataclass(frozen=True)
class Instruction:
    """A decoded instruction word.

    ``extra`` holds the immediate (sign-extended), the jump target, or the
    shift amount, depending on the instruction's format.
    """

    value: int
    op_code: OpCode
    rs: int
    rt: int
    rd: int
    extra: int

    @classmethod
    def decode(cls, value: int) -> "Instruction":
        """Decode a 32-bit instruction word."""
        if not 0 <= value <= _WORD:
            raise ValueError(f"0x{value:x} is not a 32-bit instruction word")
        rs = (value >> 21) & 0x1F
        rt = (value >> 16) & 0x1F
        rd = (value >> 11) & 0x1F
        op, fmt = _OP_TABLE[(value >> 26) & 0x3F]

        if fmt is Format.I:
            extra = value & 0xFFFF
            if extra & 0x8000:
                extra -= 0x10000
        elif fmt is Format.R:
            extra = (value >> 6) & 0x1F
        else:
            extra = value & 0x3FFFFFF

        if op == _SPECIAL:
            op_code = _SPECIAL_TABLE[value & 0x3F]
        elif op == _BCOND:
            op_code = _BCOND_TABLE.get((value >> 16) & 0x1F, OpCode.UNIMP)
        else:
            op_code = OpCode(op)
        return cls(value, op_code, rs, rt, rd, extra)

    def disassemble(self) -> str:
        """Return the instruction in the simulator's debugging notation."""
        template, fields = _TEMPLATES[self.op_code]
        return template.format(*(getattr(self, name) for name in fields))

    def __str__(self) -> str:
        return self.disassemble()


def mult(a: int, b: int, signed: bool) -> Tuple[int, int]:
    """Multiply two 32-bit words as the R2000 does.

    Returns the high and low words of the 64-bit product, each as a signed
    32-bit integer, as they are stored in the HI and LO registers.
    """
    if signed:
        product = _signed32(a) * _signed32(b)
    else:
        product = (a & _WORD) * (b & _WORD)
    product &= (1 << 64) - 1
    return _signed32(product >> 32), _signed32(product)