import enum
from dataclasses import astuple, dataclass, fields

from bitfields import s32, u32


class UnsupportedOpcodeError(ValueError):
    pass


@dataclass(frozen=True)
class ControlSignals:
    reg_dst: bool = False
    alu_src: bool = False
    mem_to_reg: bool = False
    reg_write: bool = False
    mem_read: bool = False
    mem_write: bool = False
    branch: bool = False
    alu_op1: bool = False
    alu_op0: bool = False

    @property
    def alu_op(self):
        return (int(self.alu_op1), int(self.alu_op0))

    def as_bits(self):
        return tuple(int(v) for v in astuple(self))

    def __str__(self):
        return " ".join(f"{f.name}={int(getattr(self, f.name))}" for f in fields(self))


def _signals(*bits):
    return ControlSignals(*(bool(b) for b in bits))


#                   RegDst ALUSrc MemToReg RegWrite MemRead MemWrite Branch ALUOp1 ALUOp0
_CONTROL_TABLE = {
    0x00: _signals(1, 0, 0, 1, 0, 0, 0, 1, 0),  # R-format
    0x23: _signals(0, 1, 1, 1, 1, 0, 0, 0, 0),  # lw
    0x2B: _signals(0, 1, 0, 0, 0, 1, 0, 0, 0),  # sw
    0x04: _signals(0, 0, 0, 0, 0, 0, 1, 0, 1),  # beq
    0x08: _signals(0, 1, 0, 1, 0, 0, 0, 0, 0),  # addi
    0x0D: _signals(0, 1, 0, 1, 0, 0, 0, 0, 0),  # ori
    0x02: _signals(0, 0, 0, 0, 0, 0, 0, 0, 0),  # j
}


def signals_for(opcode):
    try:
        return _CONTROL_TABLE[opcode]
    except KeyError:
        raise UnsupportedOpcodeError(f"No control signals for opcode 0x{opcode:02x}") from None


class ALUOperation(enum.Enum):
    AND = "and"
    OR = "or"
    ADD = "add"
    SUBTRACT = "sub"
    SET_LESS_THAN = "slt"
    NOR = "nor"
    SHIFT_LEFT_LOGICAL = "sll"
    SHIFT_RIGHT_LOGICAL = "srl"
    SHIFT_RIGHT_ARITHMETIC = "sra"

    def apply(self, a, b):
        return s32(_ALU_FUNCS[self](s32(a), s32(b)))


_ALU_FUNCS = {
    ALUOperation.AND: lambda a, b: a & b,
    ALUOperation.OR: lambda a, b: a | b,
    ALUOperation.ADD: lambda a, b: a + b,
    ALUOperation.SUBTRACT: lambda a, b: a - b,
    ALUOperation.SET_LESS_THAN: lambda a, b: 1 if a < b else 0,
    ALUOperation.NOR: lambda a, b: ~(a | b),
    ALUOperation.SHIFT_LEFT_LOGICAL: lambda a, b: a << (b & 0x1F),
    ALUOperation.SHIFT_RIGHT_LOGICAL: lambda a, b: u32(a) >> (b & 0x1F),
    ALUOperation.SHIFT_RIGHT_ARITHMETIC: lambda a, b: a >> (b & 0x1F),
}

_FUNCT_OPERATIONS = {
    0x20: ALUOperation.ADD,
    0x21: ALUOperation.ADD,
    0x22: ALUOperation.SUBTRACT,
    0x23: ALUOperation.SUBTRACT,
    0x24: ALUOperation.AND,
    0x25: ALUOperation.OR,
    0x27: ALUOperation.NOR,
    0x2A: ALUOperation.SET_LESS_THAN,
    0x00: ALUOperation.SHIFT_LEFT_LOGICAL,
    0x02: ALUOperation.SHIFT_RIGHT_LOGICAL,
    0x03: ALUOperation.SHIFT_RIGHT_ARITHMETIC,
}


def alu_operation(alu_op, funct=0):
    """Select the ALU operation from the two ALUOp bits and, for R-format, funct."""
    if alu_op == (0, 0):
        return ALUOperation.ADD
    if alu_op == (0, 1):
        return ALUOperation.SUBTRACT
    if alu_op == (1, 0):
        try:
            return _FUNCT_OPERATIONS[funct]
        except KeyError:
            raise UnsupportedOpcodeError(f"No ALU operation for funct 0x{funct:02x}") from None
    raise UnsupportedOpcodeError(f"No ALU operation for ALUOp {alu_op[0]}{alu_op[1]}")


class ControlUnit:
    def __init__(self):
        self.signals = None

    def decode(self, opcode):
        self.signals = signals_for(opcode)
        return self.signals

    def reset(self):
        self.signals = None
