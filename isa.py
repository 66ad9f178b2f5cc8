import enum
import re
from dataclasses import dataclass
from types import MappingProxyType

import registers
from bitfields import bits, check_widths, compose, decompose, parse_int, sign_extend, u32


class Format(enum.Enum):
    R = "R"
    I = "I"
    J = "J"
    EXIT = "EXIT"

    @property
    def widths(self):
        return _FORMAT_WIDTHS[self]

    @property
    def field_names(self):
        return _FORMAT_FIELDS[self]


_FORMAT_WIDTHS = {
    Format.R: (6, 5, 5, 5, 5, 6),
    Format.I: (6, 5, 5, 16),
    Format.J: (6, 26),
    Format.EXIT: (6, 26),
}

_FORMAT_FIELDS = {
    Format.R: ("opcode", "rs", "rt", "rd", "shamt", "funct"),
    Format.I: ("opcode", "rs", "rt", "immediate"),
    Format.J: ("opcode", "target"),
    Format.EXIT: ("opcode", "target"),
}

for _widths in _FORMAT_WIDTHS.values():
    check_widths(_widths)

# Fields that must be zero unless an argument or the catalog lookup uses them.
_CHECKED_FIELDS = {
    Format.R: ("rs", "rt", "rd", "shamt"),
    Format.I: ("rs", "rt"),
    Format.J: (),
    Format.EXIT: ("target",),
}

# Argument kind -> instruction fields it occupies.
_ARG_FIELDS = {
    "rd": ("rd",),
    "rs": ("rs",),
    "rt": ("rt",),
    "shamt": ("shamt",),
    "imm": ("immediate",),
    "offset": ("immediate",),
    "offset(rs)": ("immediate", "rs"),
    "hint": ("rt",),
    "target": ("target",),
}


class InstructionType(enum.Enum):
    ARITHMETIC = "arithmetic"
    SHIFT = "shift"
    BRANCH = "branch"
    JUMP = "jump"
    LOAD_STORE = "load/store"
    SYSTEM = "system"


class Validity(enum.Enum):
    VALID = "valid"
    PARTIALLY_VALID = "partially valid"
    UNKNOWN = "unknown"


class DecodeError(ValueError):
    def __init__(self, message, line=None):
        super().__init__(message)
        self.line = line

    def __str__(self):
        msg = super().__str__()
        if self.line is not None:
            return f"line {self.line}: {msg}"
        return msg


class MalformedMnemonicError(DecodeError):
    pass


class UnknownInstructionError(DecodeError):
    pass


@dataclass(frozen=True)
class Prototype:
    name: str
    format: Format
    type: InstructionType
    opcode: int
    pattern: str
    example: str
    numeric_example: int
    description: str
    funct: int = None
    rt: int = None

    @property
    def arguments(self):
        if not self.pattern:
            return ()
        return tuple(arg.strip() for arg in self.pattern.split(","))

    @property
    def used_fields(self):
        used = set()
        for arg in self.arguments:
            used.update(_ARG_FIELDS[arg])
        if self.rt is not None:
            used.add("rt")
        return used


_R, _I, _J = Format.R, Format.I, Format.J
_AR = InstructionType.ARITHMETIC
_SH = InstructionType.SHIFT
_BR = InstructionType.BRANCH
_JP = InstructionType.JUMP
_LS = InstructionType.LOAD_STORE
_SY = InstructionType.SYSTEM


def _r(name, itype, funct, pattern, example, numeric, description, opcode=0):
    return Prototype(name, _R, itype, opcode, pattern, example, numeric, description, funct=funct)


def _i(name, itype, opcode, pattern, example, numeric, description, rt=None):
    return Prototype(name, _I, itype, opcode, pattern, example, numeric, description, rt=rt)


CATALOG = [
    _r("nop", _SY, 0x00, "", "nop", 0x00000000, "Null operation; machine code is all zeroes"),
    _r("sll", _SH, 0x00, "rd, rt, shamt", "sll $t1, $t2, 10", 0x000A4A80, "Shift left logical: rd = rt << shamt"),
    _r("srl", _SH, 0x02, "rd, rt, shamt", "srl $t1, $t2, 10", 0x000A4A82, "Shift right logical: rd = rt >>> shamt"),
    _r("sra", _SH, 0x03, "rd, rt, shamt", "sra $t1, $t2, 10", 0x000A4A83, "Shift right arithmetic: rd = rt >> shamt"),
    _r("sllv", _SH, 0x04, "rd, rs, rt", "sllv $t1, $t2, $t3", 0x014B4804, "Shift left logical variable: rd = rt << rs"),
    _r("srlv", _SH, 0x06, "rd, rs, rt", "srlv $t1, $t2, $t3", 0x014B4806, "Shift right logical variable: rd = rt >>> rs"),
    _r("srav", _SH, 0x07, "rd, rs, rt", "srav $t1, $t2, $t3", 0x014B4807, "Shift right arithmetic variable: rd = rt >> rs"),
    _r("jr", _JP, 0x08, "rs", "jr $t1", 0x01200008, "Jump register"),
    _r("jalr", _JP, 0x09, "rd, rs", "jalr $t1, $t2", 0x01404809, "Jump and link register: rd = return address"),
    _r("movz", _AR, 0x0A, "rd, rs, rt", "movz $t1, $t2, $t3", 0x014B480A, "Move conditional on zero: if rt == 0 then rd = rs"),
    _r("movn", _AR, 0x0B, "rd, rs, rt", "movn $t1, $t2, $t3", 0x014B480B, "Move conditional on not zero: if rt != 0 then rd = rs"),
    _r("syscall", _SY, 0x0C, "", "syscall", 0x0000000C, "System call"),
    _r("break", _SY, 0x0D, "", "break", 0x0000000D, "Breakpoint"),
    _r("sync", _SY, 0x0F, "", "sync", 0x0000000F, "Synchronize shared memory"),
    _r("mfhi", _AR, 0x10, "rd", "mfhi $t1", 0x00004810, "Move from HI: rd = HI"),
    _r("mthi", _AR, 0x11, "rs", "mthi $t1", 0x01200011, "Move to HI: HI = rs"),
    _r("mflo", _AR, 0x12, "rd", "mflo $t1", 0x00004812, "Move from LO: rd = LO"),
    _r("mtlo", _AR, 0x13, "rs", "mtlo $t1", 0x01200013, "Move to LO: LO = rs"),
    _r("mult", _AR, 0x18, "rs, rt", "mult $t1, $t2", 0x012A0018, "Multiply: HI,LO = rs * rt"),
    _r("multu", _AR, 0x19, "rs, rt", "multu $t1, $t2", 0x012A0019, "Multiply unsigned: HI,LO = rs * rt"),
    _r("div", _AR, 0x1A, "rs, rt", "div $t1, $t2", 0x012A001A, "Divide: LO = rs / rt, HI = rs % rt"),
    _r("divu", _AR, 0x1B, "rs, rt", "divu $t1, $t2", 0x012A001B, "Divide unsigned: LO = rs / rt, HI = rs % rt"),
    _r("add", _AR, 0x20, "rd, rs, rt", "add $t1, $t2, $t3", 0x014B4820, "Add: rd = rs + rt"),
    _r("addu", _AR, 0x21, "rd, rs, rt", "addu $t1, $t2, $t3", 0x014B4821, "Add unsigned: rd = rs + rt"),
    _r("sub", _AR, 0x22, "rd, rs, rt", "sub $t1, $t2, $t3", 0x014B4822, "Subtract: rd = rs - rt"),
    _r("subu", _AR, 0x23, "rd, rs, rt", "subu $t1, $t2, $t3", 0x014B4823, "Subtract unsigned: rd = rs - rt"),
    _r("and", _AR, 0x24, "rd, rs, rt", "and $t1, $t2, $t3", 0x014B4824, "Bitwise and: rd = rs & rt"),
    _r("or", _AR, 0x25, "rd, rs, rt", "or $t1, $t2, $t3", 0x014B4825, "Bitwise or: rd = rs | rt"),
    _r("xor", _AR, 0x26, "rd, rs, rt", "xor $t1, $t2, $t3", 0x014B4826, "Bitwise exclusive or: rd = rs ^ rt"),
    _r("nor", _AR, 0x27, "rd, rs, rt", "nor $t1, $t2, $t3", 0x014B4827, "Bitwise nor: rd = ~(rs | rt)"),
    _r("slt", _AR, 0x2A, "rd, rs, rt", "slt $t1, $t2, $t3", 0x014B482A, "Set on less than: rd = rs < rt"),
    _r("sltu", _AR, 0x2B, "rd, rs, rt", "sltu $t1, $t2, $t3", 0x014B482B, "Set on less than unsigned: rd = rs < rt"),
    _r("tge", _SY, 0x30, "rs, rt", "tge $t1, $t2", 0x012A0030, "Trap if greater or equal"),
    _r("tgeu", _SY, 0x31, "rs, rt", "tgeu $t1, $t2", 0x012A0031, "Trap if greater or equal unsigned"),
    _r("tlt", _SY, 0x32, "rs, rt", "tlt $t1, $t2", 0x012A0032, "Trap if less than"),
    _r("tltu", _SY, 0x33, "rs, rt", "tltu $t1, $t2", 0x012A0033, "Trap if less than unsigned"),
    _r("teq", _SY, 0x34, "rs, rt", "teq $t1, $t2", 0x012A0034, "Trap if equal"),
    _r("tne", _SY, 0x36, "rs, rt", "tne $t1, $t2", 0x012A0036, "Trap if not equal"),
    _i("bltz", _BR, 0x01, "rs, offset", "bltz $t1, 5", 0x05200005, "Branch on less than zero", rt=0x00),
    _i("bgez", _BR, 0x01, "rs, offset", "bgez $t1, 5", 0x05210005, "Branch on greater than or equal to zero", rt=0x01),
    _i("bltzl", _BR, 0x01, "rs, offset", "bltzl $t1, 5", 0x05220005, "Branch on less than zero likely", rt=0x02),
    _i("bgezl", _BR, 0x01, "rs, offset", "bgezl $t1, 5", 0x05230005, "Branch on greater than or equal to zero likely", rt=0x03),
    _i("tgei", _SY, 0x01, "rs, imm", "tgei $t1, 5", 0x05280005, "Trap if greater or equal immediate", rt=0x08),
    _i("tgeiu", _SY, 0x01, "rs, imm", "tgeiu $t1, 5", 0x05290005, "Trap if greater or equal immediate unsigned", rt=0x09),
    _i("tlti", _SY, 0x01, "rs, imm", "tlti $t1, 5", 0x052A0005, "Trap if less than immediate", rt=0x0A),
    _i("tltiu", _SY, 0x01, "rs, imm", "tltiu $t1, 5", 0x052B0005, "Trap if less than immediate unsigned", rt=0x0B),
    _i("teqi", _SY, 0x01, "rs, imm", "teqi $t1, 5", 0x052C0005, "Trap if equal immediate", rt=0x0C),
    _i("tnei", _SY, 0x01, "rs, imm", "tnei $t1, 5", 0x052E0005, "Trap if not equal immediate", rt=0x0E),
    _i("bltzal", _BR, 0x01, "rs, offset", "bltzal $t1, 10", 0x0530000A, "Branch on less than zero and link", rt=0x10),
    _i("bgezal", _BR, 0x01, "rs, offset", "bgezal $t1, 10", 0x0531000A, "Branch on greater than or equal to zero and link", rt=0x11),
    _i("bltzall", _BR, 0x01, "rs, offset", "bltzall $t1, 10", 0x0532000A, "Branch on less than zero and link likely", rt=0x12),
    _i("bgezall", _BR, 0x01, "rs, offset", "bgezall $t1, 10", 0x0533000A, "Branch on greater than or equal to zero and link likely", rt=0x13),
    Prototype("j", _J, _JP, 0x02, "target", "j 4", 0x08000004, "Jump to target"),
    Prototype("jal", _J, _JP, 0x03, "target", "jal 4", 0x0C000004, "Jump and link: $ra = return address"),
    _i("beq", _BR, 0x04, "rs, rt, offset", "beq $t1, $t2, 4", 0x112A0004, "Branch on equal"),
    _i("bne", _BR, 0x05, "rs, rt, offset", "bne $t1, $t2, 4", 0x152A0004, "Branch on not equal"),
    _i("blez", _BR, 0x06, "rs, offset", "blez $t1, 4", 0x19200004, "Branch on less than or equal to zero"),
    _i("bgtz", _BR, 0x07, "rs, offset", "bgtz $t1, 4", 0x1D200004, "Branch on greater than zero"),
    _i("addi", _AR, 0x08, "rt, rs, imm", "addi $t1, $t2, 4", 0x21490004, "Add immediate: rt = rs + imm"),
    _i("addiu", _AR, 0x09, "rt, rs, imm", "addiu $t1, $t2, 4", 0x25490004, "Add immediate unsigned: rt = rs + imm"),
    _i("slti", _AR, 0x0A, "rt, rs, imm", "slti $t1, $t2, 4", 0x29490004, "Set on less than immediate"),
    _i("sltiu", _AR, 0x0B, "rt, rs, imm", "sltiu $t1, $t2, 4", 0x2D490004, "Set on less than immediate unsigned"),
    _i("andi", _AR, 0x0C, "rt, rs, imm", "andi $t1, $t2, 4", 0x31490004, "And immediate: rt = rs & imm"),
    _i("ori", _AR, 0x0D, "rt, rs, imm", "ori $t1, $t2, 4", 0x35490004, "Or immediate: rt = rs | imm"),
    _i("xori", _AR, 0x0E, "rt, rs, imm", "xori $t1, $t2, 4", 0x39490004, "Exclusive or immediate: rt = rs ^ imm"),
    _i("lui", _AR, 0x0F, "rt, imm", "lui $t1, 4", 0x3C090004, "Load upper immediate: rt = imm << 16"),
    _i("beql", _BR, 0x14, "rs, rt, offset", "beql $t1, $t2, 6", 0x512A0006, "Branch on equal likely"),
    _i("bnel", _BR, 0x15, "rs, rt, offset", "bnel $t1, $t2, 6", 0x552A0006, "Branch on not equal likely"),
    _i("blezl", _BR, 0x16, "rs, offset", "blezl $t1, 6", 0x59200006, "Branch on less than or equal to zero likely"),
    _i("bgtzl", _BR, 0x17, "rs, offset", "bgtzl $t1, 6", 0x5D200006, "Branch on greater than zero likely"),
    _r("madd", _AR, 0x00, "rs, rt", "madd $t1, $t2", 0x712A0000, "Multiply and add: HI,LO += rs * rt", opcode=0x1C),
    _r("maddu", _AR, 0x01, "rs, rt", "maddu $t1, $t2", 0x712A0001, "Multiply and add unsigned", opcode=0x1C),
    _r("mul", _AR, 0x02, "rd, rs, rt", "mul $v0, $a0, $v0", 0x70821002, "Multiply to register: rd = rs * rt", opcode=0x1C),
    _r("msub", _AR, 0x04, "rs, rt", "msub $t1, $t2", 0x712A0004, "Multiply and subtract: HI,LO -= rs * rt", opcode=0x1C),
    _r("msubu", _AR, 0x05, "rs, rt", "msubu $t1, $t2", 0x712A0005, "Multiply and subtract unsigned", opcode=0x1C),
    _r("clz", _AR, 0x20, "rd, rs", "clz $t1, $t2", 0x71404820, "Count leading zeros in word", opcode=0x1C),
    _r("clo", _AR, 0x21, "rd, rs", "clo $t1, $t2", 0x71404821, "Count leading ones in word", opcode=0x1C),
    _i("lb", _LS, 0x20, "rt, offset(rs)", "lb $t1, 7($t2)", 0x81490007, "Load byte"),
    _i("lh", _LS, 0x21, "rt, offset(rs)", "lh $t1, 8($t2)", 0x85490008, "Load halfword"),
    _i("lwl", _LS, 0x22, "rt, offset(rs)", "lwl $t1, 9($t2)", 0x89490009, "Load word left"),
    _i("lw", _LS, 0x23, "rt, offset(rs)", "lw $t1, 10($t2)", 0x8D49000A, "Load word"),
    _i("lbu", _LS, 0x24, "rt, offset(rs)", "lbu $t1, 11($t2)", 0x9149000B, "Load byte unsigned"),
    _i("lhu", _LS, 0x25, "rt, offset(rs)", "lhu $t1, 12($t2)", 0x9549000C, "Load halfword unsigned"),
    _i("lwr", _LS, 0x26, "rt, offset(rs)", "lwr $t1, 13($t2)", 0x9949000D, "Load word right"),
    _i("sb", _LS, 0x28, "rt, offset(rs)", "sb $t1, 4($t2)", 0xA1490004, "Store byte"),
    _i("sh", _LS, 0x29, "rt, offset(rs)", "sh $t1, 4($t2)", 0xA5490004, "Store halfword"),
    _i("swl", _LS, 0x2A, "rt, offset(rs)", "swl $t1, 4($t2)", 0xA9490004, "Store word left"),
    _i("sw", _LS, 0x2B, "rt, offset(rs)", "sw $ra, 4($sp)", 0xAFBF0004, "Store word"),
    _i("ll", _LS, 0x30, "rt, offset(rs)", "ll $ra, 4($sp)", 0xC3BF0004, "Load linked word"),
    _i("lwc1", _LS, 0x31, "rt, offset(rs)", "lwc1 $ra, 4($sp)", 0xC7BF0004, "Load word to coprocessor 1"),
    _i("lwc2", _LS, 0x32, "rt, offset(rs)", "lwc2 $ra, 4($sp)", 0xCBBF0004, "Load word to coprocessor 2"),
    _i("pref", _SY, 0x33, "hint, offset(rs)", "pref 1, 2($sp)", 0xCFA10002, "Prefetch"),
    _i("ldc1", _LS, 0x35, "rt, offset(rs)", "ldc1 $t1, 4($sp)", 0xD7A90004, "Load doubleword to coprocessor 1"),
    _i("ldc2", _LS, 0x36, "rt, offset(rs)", "ldc2 $t1, 4($sp)", 0xDBA90004, "Load doubleword to coprocessor 2"),
    _i("sc", _LS, 0x38, "rt, offset(rs)", "sc $t1, 4($sp)", 0xE3A90004, "Store conditional word"),
    _i("swc1", _LS, 0x39, "rt, offset(rs)", "swc1 $t1, 4($sp)", 0xE7A90004, "Store word from coprocessor 1"),
    _i("swc2", _LS, 0x3A, "rt, offset(rs)", "swc2 $t1, 4($sp)", 0xEBA90004, "Store word from coprocessor 2"),
    _i("sdc1", _LS, 0x3D, "rt, offset(rs)", "sdc1 $t1, 4($sp)", 0xF7A90004, "Store doubleword from coprocessor 1"),
    _i("sdc2", _LS, 0x3E, "rt, offset(rs)", "sdc2 $t1, 4($sp)", 0xFBA90004, "Store doubleword from coprocessor 2"),
    Prototype("exit", Format.EXIT, _SY, 0x3F, "", "exit", 0xFC000000, "Halt the simulation"),
]

NOP = CATALOG[0]
EXIT = CATALOG[-1]

_BY_NAME = {}
_BY_FUNCT = {0x00: {}, 0x1C: {}}
_BY_RT = {}
_BY_OPCODE = {}

for _proto in CATALOG:
    if _proto.name in _BY_NAME:
        raise ValueError(f"Duplicate instruction name {_proto.name}")
    _BY_NAME[_proto.name] = _proto
    if _proto is NOP:
        continue
    if _proto.opcode in _BY_FUNCT:
        _BY_FUNCT[_proto.opcode][_proto.funct] = _proto
    elif _proto.opcode == 0x01:
        _BY_RT[_proto.rt] = _proto
    else:
        _BY_OPCODE[_proto.opcode] = _proto


def supported_mnemonics():
    return [proto.name for proto in CATALOG]


def prototype(name):
    try:
        return _BY_NAME[name.lower()]
    except KeyError:
        raise UnknownInstructionError(f"Unknown instruction name: {name!r}") from None


def format_for_opcode(opcode):
    if opcode in _BY_FUNCT:
        return Format.R
    if opcode in (0x02, 0x03):
        return Format.J
    if opcode == EXIT.opcode:
        return Format.EXIT
    return Format.I


def format_fields(values, hexadecimal=False):
    if hexadecimal:
        return "[" + ", ".join(f"0x{v:x}" for v in values) + "]"
    return "[" + ", ".join(str(v) for v in values) + "]"


class Instruction:
    """A decoded instruction: its catalog prototype plus the 32-bit encoding.

    Instances are immutable. Field values are derived from ``numeric`` once,
    at construction, and exposed read-only. ``errors`` lists the non-zero
    fields the prototype does not use; an instruction with errors is
    partially valid.
    """

    __slots__ = ("_prototype", "_numeric", "_errors", "_fields")

    def __init__(self, proto, numeric, errors=()):
        numeric = u32(numeric)
        fields = dict(zip(proto.format.field_names, decompose(numeric, proto.format.widths)))
        object.__setattr__(self, "_prototype", proto)
        object.__setattr__(self, "_numeric", numeric)
        object.__setattr__(self, "_errors", tuple(errors))
        object.__setattr__(self, "_fields", MappingProxyType(fields))

    def __setattr__(self, name, value):
        raise AttributeError(f"Instruction is immutable; cannot set {name!r}")

    def __delattr__(self, name):
        raise AttributeError(f"Instruction is immutable; cannot delete {name!r}")

    @property
    def prototype(self):
        return self._prototype

    @property
    def numeric(self):
        return self._numeric

    @property
    def errors(self):
        return self._errors

    @property
    def fields(self):
        return self._fields

    @property
    def name(self):
        return self.prototype.name

    @property
    def format(self):
        return self.prototype.format

    @property
    def type(self):
        return self.prototype.type

    @property
    def opcode(self):
        return self.fields["opcode"]

    @property
    def rs(self):
        return self.fields.get("rs", 0)

    @property
    def rt(self):
        return self.fields.get("rt", 0)

    @property
    def rd(self):
        return self.fields.get("rd", 0)

    @property
    def shamt(self):
        return self.fields.get("shamt", 0)

    @property
    def funct(self):
        return self.fields.get("funct", 0)

    @property
    def immediate(self):
        return self.fields.get("immediate", 0)

    @property
    def signed_immediate(self):
        return sign_extend(self.immediate, 16)

    @property
    def target(self):
        return self.fields.get("target", 0)

    @property
    def validity(self):
        return Validity.PARTIALLY_VALID if self.errors else Validity.VALID

    @property
    def partially_valid(self):
        return bool(self.errors)

    def is_exit(self):
        return self.format is Format.EXIT

    def args(self):
        values = []
        for arg in self.prototype.arguments:
            if arg == "offset(rs)":
                values.append((self.immediate, self.rs))
            else:
                values.append(self.fields[_ARG_FIELDS[arg][0]])
        return tuple(values)

    def _render(self, arg):
        if arg in ("rd", "rs", "rt"):
            return registers.name_of(self.fields[arg])
        if arg in ("imm", "offset"):
            return str(self.signed_immediate)
        if arg == "offset(rs)":
            return f"{self.signed_immediate}({registers.name_of(self.rs)})"
        if arg == "hint":
            return str(self.rt)
        return str(self.fields[arg])

    @property
    def mnemonic(self):
        rendered = [self._render(arg) for arg in self.prototype.arguments]
        if not rendered:
            return self.name
        return f"{self.name} {', '.join(rendered)}"

    def field_values(self):
        return [self.fields[name] for name in self.format.field_names]

    def hex(self):
        return f"0x{self.numeric:08x}"

    def decimal_fields(self):
        return format_fields(self.field_values())

    def hex_fields(self):
        return format_fields(self.field_values(), hexadecimal=True)

    def __eq__(self, other):
        if not isinstance(other, Instruction):
            return NotImplemented
        return self.name == other.name and self.args() == other.args()

    def __hash__(self):
        return hash((self.name, self.args()))

    def columns(self):
        return (self.hex(), self.format.name, self.decimal_fields(), self.hex_fields(), self.mnemonic)

    def __str__(self):
        return " ".join(self.columns())

    def __repr__(self):
        return f"Instruction({self.mnemonic!r}, {self.hex()})"


def _unused_field_errors(proto, fields):
    used = proto.used_fields
    errors = []
    for name in _CHECKED_FIELDS[proto.format]:
        if name not in used and fields[name] != 0:
            errors.append(f"Expected {name} to be zero. Got {fields[name]}")
    return errors


def decode_word(word):
    word = u32(word)
    if word == 0:
        return Instruction(NOP, 0)
    opcode = bits(31, 26, word)
    if opcode in _BY_FUNCT:
        proto = _BY_FUNCT[opcode].get(word & 0x3F)
    elif opcode == 0x01:
        proto = _BY_RT.get(bits(20, 16, word))
    else:
        proto = _BY_OPCODE.get(opcode)
    if proto is None:
        raise UnknownInstructionError(f"Unknown instruction: 0x{word:08x}")
    fields = dict(zip(proto.format.field_names, decompose(word, proto.format.widths)))
    return Instruction(proto, word, _unused_field_errors(proto, fields))


_ILLEGAL_CHARS_RE = re.compile(r"[^A-Za-z0-9$\-,()\s]")
_NAME_RE = re.compile(r"([A-Za-z0-9]+)(.*)", re.DOTALL)
_ADDRESS_RE = re.compile(r"([^()]*)\(([^()]+)\)")


def standardize(text):
    return re.sub(r"\s+", " ", text.replace(",", ", ")).strip()


def _number(text, lo, hi, what, source):
    try:
        value = parse_int(text)
    except ValueError:
        raise MalformedMnemonicError(f"Could not interpret {text!r} as a number in {source!r}") from None
    if not lo <= value <= hi:
        raise MalformedMnemonicError(f"{what} {value} outside [{lo}, {hi}] in {source!r}")
    return value


def _register(text, source):
    try:
        return registers.index_of(text)
    except registers.UnknownRegisterError as exc:
        raise MalformedMnemonicError(f"{exc} in {source!r}") from None


def _resolve_arg(kind, text, source):
    """Return {field: value} for one argument of the given kind."""
    if kind != "offset(rs)" and ("(" in text or ")" in text):
        raise MalformedMnemonicError(f"Parentheses are only allowed in offset(register) arguments: {text!r} in {source!r}")
    if kind in ("rd", "rs", "rt"):
        return {kind: _register(text, source)}
    if kind == "shamt":
        return {"shamt": _number(text, 0, 31, "Shift amount", source)}
    if kind in ("imm", "offset"):
        return {"immediate": _number(text, -0x8000, 0xFFFF, "Immediate", source) & 0xFFFF}
    if kind == "hint":
        return {"rt": _number(text, 0, 31, "Hint", source)}
    if kind == "target":
        return {"target": _number(text, 0, (1 << 26) - 1, "Jump target", source)}
    m = _ADDRESS_RE.fullmatch(text)
    if not m:
        raise MalformedMnemonicError(f"Expected offset(register), got {text!r} in {source!r}")
    offset = m.group(1).strip()
    imm = _number(offset, -0x8000, 0xFFFF, "Offset", source) if offset else 0
    return {"immediate": imm & 0xFFFF, "rs": _register(m.group(2), source)}


def decode_mnemonic(text):
    illegal = sorted(set(_ILLEGAL_CHARS_RE.findall(text)))
    if illegal:
        raise MalformedMnemonicError(f"Illegal characters {''.join(illegal)!r} in {text!r}")
    source = standardize(text)
    m = _NAME_RE.fullmatch(source)
    if not m:
        raise MalformedMnemonicError(f"Expected an instruction name at the start of {text!r}")
    name, rest = m.group(1), m.group(2)
    if rest and not rest[0].isspace() and rest[0] != ",":
        raise MalformedMnemonicError(f"Expected whitespace after instruction name in {text!r}")
    proto = prototype(name)
    expected = proto.arguments

    commas = source.count(",")
    if commas != max(len(expected) - 1, 0):
        raise MalformedMnemonicError(
            f"{proto.name} takes {len(expected)} argument(s) ({proto.pattern or 'none'}) "
            f"but {commas} comma(s) were given in {text!r}"
        )
    rest = rest.strip()
    given = [arg.strip() for arg in rest.split(",")] if rest else []
    if len(given) != len(expected):
        raise MalformedMnemonicError(
            f"{proto.name} takes {len(expected)} argument(s) ({proto.pattern or 'none'}), got {len(given)} in {text!r}"
        )

    fields = {name: 0 for name in proto.format.field_names}
    fields["opcode"] = proto.opcode
    if proto.funct is not None:
        fields["funct"] = proto.funct
    if proto.rt is not None:
        fields["rt"] = proto.rt
    for kind, arg in zip(expected, given):
        if not arg:
            raise MalformedMnemonicError(f"Missing argument in {text!r}")
        if " " in arg and kind != "offset(rs)":
            raise MalformedMnemonicError(f"Missing comma between arguments in {text!r}")
        fields.update(_resolve_arg(kind, arg, source))

    numeric = compose([fields[name] for name in proto.format.field_names], proto.format.widths)
    return Instruction(proto, numeric)


def decode(value):
    if isinstance(value, str):
        return decode_mnemonic(value)
    if not -0x80000000 <= value <= 0xFFFFFFFF:
        raise DecodeError(f"{value} does not fit in 32 bits")
    return decode_word(value)


@dataclass
class Decompiled:
    word: int
    instruction: Instruction = None
    errors: tuple = ()

    @property
    def status(self):
        if self.instruction is None:
            return Validity.UNKNOWN
        return self.instruction.validity

    def columns(self):
        if self.instruction is not None:
            return self.instruction.columns()
        fmt = format_for_opcode(bits(31, 26, self.word))
        values = decompose(self.word, fmt.widths)
        return (f"0x{self.word:08x}", fmt.name, format_fields(values), format_fields(values, True), "UNKNOWN")

    def __str__(self):
        return " ".join(self.columns())


def decompile(word):
    word = u32(word)
    try:
        instr = decode_word(word)
    except UnknownInstructionError as exc:
        return Decompiled(word, None, (str(exc),))
    return Decompiled(word, instr, instr.errors)
