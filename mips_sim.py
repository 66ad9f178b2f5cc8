# mips_sim.py
# Single-cycle MIPS subset simulator: fetch, control decode, ALU, memory, write-back

import json
import signal
import sys
import threading
import time

import isa
import program
from bitfields import parse_int, u32
from control_unit import ControlUnit, alu_operation
from memory import DataMemory, InstructionMemory, OutOfBoundsError
from registers import REGISTER_NAMES, RegisterFile, index_of


class HaltException(Exception):
    def __init__(self, reason, code=None):
        message = f"{reason}: {code}" if code is not None else reason
        super().__init__(message)
        self.reason = reason
        self.code = code


class ExecutionError(ValueError):
    pass


class ProgramCounter:
    def __init__(self):
        self.address = 0

    def reset(self):
        self.address = 0

    def step_forward(self):
        self.address = u32(self.address + 4)

    def set_to(self, addr):
        self.address = u32(addr)

    def set_relative(self, offset):
        self.address = u32(self.address + offset)

    @property
    def instruction_index(self):
        return self.address // 4


def _to_int(value):
    return value if isinstance(value, int) else parse_int(value)


def _to_word(value):
    value = _to_int(value)
    if not -0x80000000 <= value <= 0xFFFFFFFF:
        raise ValueError(f"{value} does not fit in 32 bits")
    return value


class MipsSim:
    def __init__(self, data_memory_size=1000, instruction_memory_size=1000, trace=False):
        self.regs = RegisterFile()
        self.data_memory = DataMemory(data_memory_size)
        self.instruction_memory = InstructionMemory(instruction_memory_size)
        self.pc = ProgramCounter()
        self.control = ControlUnit()
        self.trace = trace
        self.lock = threading.RLock()
        self.last_alu_operation = None
        self.instr_count = 0
        self.halted = False
        self.halt_reason = None

    @property
    def last_signals(self):
        return self.control.signals

    def load(self, source):
        """Replace the program with a listing (str) or a sequence of instructions/words."""
        if isinstance(source, str):
            instructions = program.parse_text(source)
        else:
            instructions = [i if isinstance(i, isa.Instruction) else isa.decode(i) for i in source]
        with self.lock:
            self.instruction_memory.load(instructions)
            self.pc.reset()
            self.halted = False
            self.halt_reason = None
        print(f"[SIM] Loaded {len(instructions)} instructions")

    def load_file(self, filename):
        self.load(program.parse_file(filename))

    def reset(self):
        with self.lock:
            self.regs.reset()
            self.data_memory.reset()
            self.pc.reset()
            self.control.reset()
            self.last_alu_operation = None
            self.instr_count = 0
            self.halted = False
            self.halt_reason = None

    def _halt(self, reason, code=None):
        self.halted = True
        self.halt_reason = reason
        raise HaltException(reason, code)

    def _trace(self, msg):
        if self.trace:
            print(f"[TRACE] {msg}")

    def execute(self):
        """Run exactly one cycle. Nothing is committed if the cycle raises."""
        with self.lock:
            pc = self.pc.address
            instr = self.instruction_memory.fetch(pc)
            next_pc = pc + 4
            self._trace(f"pc=0x{pc:08x} {instr.mnemonic}")

            if instr.is_exit():
                self.pc.set_to(next_pc)
                self.instr_count += 1
                self._halt("exit")

            signals = self.control.decode(instr.opcode)
            op = None
            if instr.format is isa.Format.J:
                next_pc = (instr.target << 2) | (next_pc & 0xF0000000)
                self._trace(f"jump -> 0x{next_pc:08x}")
            elif instr.format is isa.Format.R:
                if signals.alu_op == (1, 0) and instr.funct == 0x08:
                    next_pc = pc + (self.regs.read(instr.rs) << 2)
                    self._trace(f"jump register -> 0x{u32(next_pc):08x}")
                else:
                    op = alu_operation(signals.alu_op, instr.funct)
                    if instr.type is isa.InstructionType.SHIFT and "shamt" in instr.prototype.arguments:
                        a, b = self.regs.read(instr.rt), instr.shamt
                    else:
                        a, b = self.regs.read(instr.rs), self.regs.read(instr.rt)
                    result = op.apply(a, b)
                    if signals.reg_dst:
                        self.regs.write(instr.rd, result)
            elif instr.format is isa.Format.I:
                a = self.regs.read(instr.rs)
                b = instr.signed_immediate if signals.alu_src else self.regs.read(instr.rt)
                op = alu_operation(signals.alu_op)
                result = op.apply(a, b)
                if signals.branch and result == 0:
                    next_pc = pc + (instr.signed_immediate << 2)
                    self._trace(f"branch taken -> 0x{u32(next_pc):08x}")
                if signals.mem_to_reg:
                    self.regs.write(instr.rt, self.data_memory.read_word(result))
                elif signals.mem_write and signals.alu_src:
                    value = self.regs.read(instr.rt)
                    self.data_memory.write_word(result, value)
                    self._trace(f"mem[{result}] = {value}")
                elif signals.alu_src:
                    self.regs.write(instr.rt, result)
            else:
                raise ExecutionError(f"Cannot execute {instr.name}: unknown format {instr.format}")

            self.last_alu_operation = op
            if op is not None:
                self._trace(f"alu={op.name}")
            self.pc.set_to(next_pc)
            self.instr_count += 1

    def step(self):
        """Run one cycle. Returns True once the program has halted."""
        if self.halted:
            return True
        try:
            self.execute()
        except HaltException as e:
            print(f"[SIM] Halted: {e}")
            return True
        return False

    def run(self, should_stop=None, max_steps=None):
        """Step until halt, should_stop() returns true or max_steps cycles ran.

        Returns the number of cycles executed, including the halting one.
        """
        executed = 0
        while max_steps is None or executed < max_steps:
            if should_stop is not None and should_stop():
                break
            if self.halted:
                break
            halted = self.step()
            executed += 1
            if halted:
                break
        return executed

    def read_register(self, reg):
        with self.lock:
            return self.regs.read(reg)

    def write_register(self, reg, value):
        with self.lock:
            self.regs.write(reg, value)

    def read_memory_word(self, addr):
        with self.lock:
            return self.data_memory.read_word(addr)

    def write_memory_word(self, addr, value):
        with self.lock:
            self.data_memory.write_word(addr, value)

    def current_instruction(self):
        with self.lock:
            return self.instruction_memory.fetch(self.pc.address)

    def program_counter_address(self):
        with self.lock:
            return self.pc.address

    def set_program_counter_instruction(self, index):
        with self.lock:
            if not 0 <= index < self.instruction_memory.capacity:
                raise OutOfBoundsError(f"Instruction index {index} outside [0, {self.instruction_memory.capacity})")
            self.pc.set_to(index * 4)

    def snapshot(self):
        with self.lock:
            return {
                "pc": self.pc.address,
                "registers": self.regs.snapshot(),
                "memory": self.data_memory.nonzero_words(),
                "instr_count": self.instr_count,
                "halted": self.halted,
            }

    def dump_regs(self):
        for i, name in enumerate(REGISTER_NAMES):
            print(f"${i:<2} ({name:>5}) = 0x{u32(self.regs.read(i)):08x}")
        print(f"pc           = 0x{self.pc.address:08x}")

    def load_state_config(self, filename):
        """Load initial registers, data memory words and PC from a JSON file.

        Every entry is parsed and bounds-checked before anything is applied,
        so a bad config leaves the simulator untouched.
        """
        try:
            with open(filename, "r") as f:
                config = json.load(f)
            reg_writes = [(index_of(reg), _to_word(value)) for reg, value in config.get("registers", {}).items()]
            mem_writes = []
            for addr, value in config.get("memory", {}).items():
                addr = _to_int(addr)
                self.data_memory.check(addr)
                mem_writes.append((addr, _to_word(value)))
            pc = None
            if "pc" in config:
                pc = _to_int(config["pc"])
                self.instruction_memory.check(pc)
            with self.lock:
                for reg, value in reg_writes:
                    self.regs.write(reg, value)
                for addr, value in mem_writes:
                    self.data_memory.write_word(addr, value)
                if pc is not None:
                    self.pc.set_to(pc)
            print(f"[SIM] Loaded state config from {filename}")
        except FileNotFoundError:
            print(f"[SIM] No state config found: {filename}")
        except Exception as e:
            print(f"[SIM] Error loading state config: {e}")

    def save_state(self, filename):
        state = self.snapshot()
        config = {
            "registers": {name: value for name, value in state["registers"].items() if value},
            "memory": {f"0x{addr:08x}": f"0x{u32(value):08x}" for addr, value in sorted(state["memory"].items())},
            "pc": f"0x{state['pc']:08x}",
        }
        with open(filename, "w") as f:
            json.dump(config, f, indent=2)
        print(f"[SIM] Saved state to {filename}")


def _usage():
    print("Usage: python mips_sim.py PROGRAM [OPTIONS]")
    print("Options:")
    print("  --max-steps=N       Stop after N cycles")
    print("  --data-mem=BYTES    Data memory size (default: 1000)")
    print("  --instr-mem=BYTES   Instruction memory size (default: 1000)")
    print("  --init=FILE         Load initial registers/memory/pc from JSON")
    print("  --save=FILE         Save final registers/memory/pc to JSON")
    print("  --delay=SECONDS     Pause between cycles")
    print("  --trace             Print every cycle")


def main(argv=None):
    args = list(sys.argv[1:] if argv is None else argv)
    program_file = None
    max_steps = None
    data_mem = 1000
    instr_mem = 1000
    init_config = None
    save_file = None
    delay = 0.0
    trace = False

    try:
        while args:
            arg = args.pop(0)
            if arg.startswith("--max-steps="):
                max_steps = int(arg.split("=", 1)[1])
            elif arg.startswith("--data-mem="):
                data_mem = parse_int(arg.split("=", 1)[1])
            elif arg.startswith("--instr-mem="):
                instr_mem = parse_int(arg.split("=", 1)[1])
            elif arg.startswith("--init="):
                init_config = arg.split("=", 1)[1]
            elif arg.startswith("--save="):
                save_file = arg.split("=", 1)[1]
            elif arg.startswith("--delay="):
                delay = float(arg.split("=", 1)[1])
                if delay < 0:
                    raise ValueError(f"--delay must not be negative, got {delay}")
            elif arg == "--trace":
                trace = True
            elif arg in ("-h", "--help"):
                _usage()
                sys.exit(0)
            elif arg.startswith("-"):
                print(f"Unknown option: {arg}")
                sys.exit(1)
            else:
                if program_file:
                    print("Only one program file allowed")
                    sys.exit(1)
                program_file = arg
    except ValueError as e:
        print(f"[ERROR] {e}")
        sys.exit(1)

    if not program_file:
        _usage()
        sys.exit(1)

    try:
        sim = MipsSim(data_memory_size=data_mem, instruction_memory_size=instr_mem, trace=trace)
        sim.load_file(program_file)
    except (OSError, ValueError) as e:
        print(f"[ERROR] {e}")
        sys.exit(1)

    if init_config:
        sim.load_state_config(init_config)

    stop = threading.Event()

    def should_stop():
        if delay:
            time.sleep(delay)
        return stop.is_set()

    previous = signal.signal(signal.SIGINT, lambda signum, frame: stop.set())
    try:
        executed = sim.run(should_stop=should_stop, max_steps=max_steps)
        print(f"[SIM] Executed {executed} instructions")
    except ValueError as e:
        print(f"[SIM] Execution stopped: {e}")
    finally:
        signal.signal(signal.SIGINT, previous)

    if stop.is_set():
        print("\n[SIM] Shutting down...")
    sim.dump_regs()
    if save_file:
        sim.save_state(save_file)


if __name__ == "__main__":
    main()
