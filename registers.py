from bitfields import s32


REGISTER_NAMES = [
    "$zero", "$at", "$v0", "$v1", "$a0", "$a1", "$a2", "$a3",
    "$t0", "$t1", "$t2", "$t3", "$t4", "$t5", "$t6", "$t7",
    "$s0", "$s1", "$s2", "$s3", "$s4", "$s5", "$s6", "$s7",
    "$t8", "$t9", "$k0", "$k1", "$gp", "$sp", "$fp", "$ra",
]

REGISTER_DESCRIPTIONS = (
    ["Constant 0", "Reserved for assembler"]
    + ["Expression evaluation and results of a function"] * 2
    + [f"Argument {i}" for i in range(1, 5)]
    + ["Temporary (not preserved across call)"] * 8
    + ["Saved temporary (preserved across call)"] * 8
    + ["Temporary (not preserved across call)"] * 2
    + ["Reserved for OS kernel"] * 2
    + ["Pointer to global area", "Stack pointer", "Frame pointer", "Return address (used by function call)"]
)

_ALIASES = {"$s8": 30}
_NAME_TO_INDEX = {name: idx for idx, name in enumerate(REGISTER_NAMES)}
_NAME_TO_INDEX.update(_ALIASES)


class UnknownRegisterError(ValueError):
    pass


def index_of(name):
    """Resolve "$t0" or "$8" to a register index."""
    if isinstance(name, int):
        if not 0 <= name <= 31:
            raise UnknownRegisterError(f"Register index {name} outside [0, 32)")
        return name
    text = str(name).strip().lower()
    if not text.startswith("$"):
        raise UnknownRegisterError(f'Registers have to start with a "$". Got {name!r}')
    bare = text[1:]
    if bare.isdigit():
        idx = int(bare)
        if idx > 31:
            raise UnknownRegisterError(f"Register index {idx} outside [0, 32)")
        return idx
    try:
        return _NAME_TO_INDEX[text]
    except KeyError:
        raise UnknownRegisterError(f"No such register: {name!r}") from None


def name_of(index):
    return REGISTER_NAMES[index_of(index)]


class RegisterFile:
    def __init__(self):
        self.regs = [0] * 32

    def reset(self):
        self.regs = [0] * 32

    def read(self, reg):
        return self.regs[index_of(reg)]

    def write(self, reg, value):
        idx = index_of(reg)
        if idx == 0:
            return
        self.regs[idx] = s32(value)

    def snapshot(self):
        return {name: self.regs[idx] for idx, name in enumerate(REGISTER_NAMES)}

    def __getitem__(self, reg):
        return self.read(reg)

    def __setitem__(self, reg, value):
        self.write(reg, value)

    def __len__(self):
        return len(self.regs)
