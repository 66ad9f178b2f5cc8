import isa
from bitfields import s32, u32


class MemoryAccessError(ValueError):
    pass


class OutOfBoundsError(MemoryAccessError):
    pass


class MisalignedAccessError(MemoryAccessError):
    pass


class DataMemory:
    """Byte-addressable data memory. Words are stored big-endian and read back signed."""

    def __init__(self, size=1000):
        if size <= 0:
            raise ValueError(f"Invalid data memory size {size}")
        self.size = size
        self.data = bytearray(size)

    def reset(self):
        self.data = bytearray(self.size)

    def check(self, addr, width=4):
        if addr < 0 or addr + width > self.size:
            raise OutOfBoundsError(f"Data memory access out of range at {addr} (size {self.size})")

    def read_byte(self, addr):
        self.check(addr, 1)
        return self.data[addr]

    def write_byte(self, addr, value):
        self.check(addr, 1)
        self.data[addr] = value & 0xff

    def read_word(self, addr):
        self.check(addr, 4)
        return s32(int.from_bytes(self.data[addr:addr + 4], "big"))

    def write_word(self, addr, value):
        self.check(addr, 4)
        self.data[addr:addr + 4] = u32(value).to_bytes(4, "big")

    def nonzero_words(self):
        words = {}
        for addr in range(0, self.size - 3, 4):
            value = self.read_word(addr)
            if value:
                words[addr] = value
        return words


# Fills every unused slot.
PADDING = isa.Instruction(isa.NOP, 0)


class InstructionMemory:
    def __init__(self, size=1000):
        if size < 4:
            raise ValueError(f"Invalid instruction memory size {size}")
        self.size = size
        self.capacity = size // 4
        self.slots = [PADDING] * self.capacity
        self.count = 0

    def load(self, instructions):
        instructions = list(instructions)
        if len(instructions) > self.capacity:
            raise OutOfBoundsError(
                f"Program of {len(instructions)} instructions does not fit in {self.capacity} slots"
            )
        slots = instructions + [PADDING] * (self.capacity - len(instructions))
        self.slots = slots
        self.count = len(instructions)

    def check(self, addr):
        if addr % 4:
            raise MisalignedAccessError(f"Instruction fetch at unaligned address {addr}")
        if addr < 0 or addr // 4 >= self.capacity:
            raise OutOfBoundsError(f"Instruction fetch out of range at {addr} (size {self.size})")

    def fetch(self, addr):
        self.check(addr)
        return self.slots[addr // 4]

    def instructions(self):
        return self.slots[:self.count]

    def __len__(self):
        return self.count
