import pytest

from mipsmachine.instructions import (
    MAX_OPCODE,
    Instruction,
    OpCode,
    mult,
)

M32 = 0xFFFFFFFF


def i_type(op, rs, rt, imm):
    return (op << 26) | (rs << 21) | (rt << 16) | (imm & 0xFFFF)


def r_type(funct, rs, rt, rd, shamt=0):
    return (rs << 21) | (rt << 16) | (rd << 11) | (shamt << 6) | funct


def j_type(op, target):
    return (op << 26) | (target & 0x3FFFFFF)


def combine(hi, lo):
    return ((hi & M32) << 32) | (lo & M32)


def test_decoded_opcode_values_fixed_by_format():
    assert Instruction.decode(r_type(0x20, 1, 2, 3)).op_code == 1
    assert Instruction.decode(r_type(0x0C, 0, 0, 0)).op_code == 61
    assert Instruction.decode(i_type(20, 0, 0, 0)).op_code == MAX_OPCODE == 63


@pytest.mark.parametrize("rs,rt,imm", [(29, 29, 100), (1, 2, 0x7FFF), (31, 0, 0)])
def test_decode_i_type_fields(rs, rt, imm):
    instr = Instruction.decode(i_type(9, rs, rt, imm))
    assert instr.op_code is OpCode.ADDIU
    assert (instr.rs, instr.rt, instr.extra) == (rs, rt, imm)


@pytest.mark.parametrize("imm", [-1, -24, -0x8000])
def test_decode_sign_extends_immediate(imm):
    instr = Instruction.decode(i_type(8, 3, 4, imm))
    assert instr.op_code is OpCode.ADDI
    assert instr.extra == imm


def test_decode_r_type_special():
    instr = Instruction.decode(r_type(0x21, 5, 6, 7))
    assert instr.op_code is OpCode.ADDU
    assert (instr.rs, instr.rt, instr.rd) == (5, 6, 7)


def test_decode_shift_amount_is_extra():
    instr = Instruction.decode(r_type(0x00, 0, 9, 10, shamt=17))
    assert instr.op_code is OpCode.SLL
    assert instr.extra == 17


def test_decode_jump_target():
    instr = Instruction.decode(j_type(3, 0x3FFFFFF))
    assert instr.op_code is OpCode.JAL
    assert instr.extra == 0x3FFFFFF


@pytest.mark.parametrize(
    "rt,expected",
    [
        (0x00, OpCode.BLTZ),
        (0x01, OpCode.BGEZ),
        (0x10, OpCode.BLTZAL),
        (0x11, OpCode.BGEZAL),
        (0x02, OpCode.UNIMP),
    ],
)
def test_decode_bcond(rt, expected):
    assert Instruction.decode(i_type(1, 4, rt, 8)).op_code is expected


@pytest.mark.parametrize(
    "word,expected",
    [
        (r_type(0x0C, 0, 0, 0), OpCode.SYSCALL),
        (r_type(0x01, 0, 0, 0), OpCode.RES),
        (r_type(0x0D, 0, 0, 0), OpCode.UNIMP),
        (i_type(20, 0, 0, 0), OpCode.RES),
        (i_type(16, 0, 0, 0), OpCode.UNIMP),
        (i_type(35, 1, 2, 4), OpCode.LW),
        (i_type(43, 1, 2, 4), OpCode.SW),
    ],
)
def test_decode_opcode_table(word, expected):
    assert Instruction.decode(word).op_code is expected


def test_decode_keeps_raw_value():
    word = i_type(13, 1, 2, 0xBEEF)
    assert Instruction.decode(word).value == word


@pytest.mark.parametrize("word", [-1, 1 << 32])
def test_decode_rejects_out_of_range(word):
    with pytest.raises(ValueError):
        Instruction.decode(word)


def test_disassemble_fixed_strings():
    assert Instruction.decode(r_type(0x0C, 0, 0, 0)).disassemble() == "SYSCALL"
    assert Instruction.decode(i_type(20, 0, 0, 0)).disassemble() == "Reserved"
    assert Instruction.decode(i_type(16, 0, 0, 0)).disassemble() == "Unimplemented"


def test_disassemble_operands():
    assert Instruction.decode(i_type(9, 29, 29, -24)).disassemble() == "ADDIU r29,r29,-24"
    assert Instruction.decode(i_type(35, 4, 2, 8)).disassemble() == "LW r2,8(r4)"
    assert str(Instruction.decode(r_type(0x21, 5, 6, 7))) == "ADDU r7,r5,r6"


@pytest.mark.parametrize("funct", range(64))
def test_every_special_instruction_disassembles(funct):
    instr = Instruction.decode(r_type(funct, 1, 2, 3))
    text = instr.disassemble()
    assert text.split()[0] in {op.name for op in OpCode} | {"Reserved", "Unimplemented"}


def test_mult_by_zero():
    assert mult(0, 12345, True) == (0, 0)
    assert mult(-7, 0, False) == (0, 0)


@pytest.mark.parametrize(
    "a,b",
    [(3, 5), (-3, 5), (-3, -5), (0x7FFFFFFF, 0x7FFFFFFF), (-0x80000000, -0x80000000),
     (-0x80000000, 1), (123456789, -987654321)],
)
def test_mult_signed_matches_product(a, b):
    hi, lo = mult(a, b, True)
    assert combine(hi, lo) == (a * b) & ((1 << 64) - 1)
    assert -(1 << 31) <= hi < (1 << 31) and -(1 << 31) <= lo < (1 << 31)


@pytest.mark.parametrize(
    "a,b", [(3, 5), (-1, -1), (-1, 2), (0x80000000, 0x80000000), (M32, 1)]
)
def test_mult_unsigned_matches_product(a, b):
    hi, lo = mult(a, b, False)
    assert combine(hi, lo) == (a & M32) * (b & M32)


def test_mult_signed_and_unsigned_differ_for_negatives():
    assert mult(-1, -1, True) != mult(-1, -1, False)
    assert mult(-1, -1, True)[1] == mult(-1, -1, False)[1]