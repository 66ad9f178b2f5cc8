import dataclasses
import json
import threading
import time
import types

import pytest

import isa
from control_unit import ALUOperation, UnsupportedOpcodeError
from isa import MalformedMnemonicError
from memory import OutOfBoundsError
from mips_sim import ExecutionError, HaltException, MipsSim, ProgramCounter, main


def make_sim(listing, **regs):
    sim = MipsSim()
    sim.load(listing)
    for name, value in regs.items():
        sim.write_register("$" + name, value)
    return sim


def run_single(listing, **regs):
    sim = make_sim(listing, **regs)
    assert sim.step() is False
    return sim


def test_program_counter():
    pc = ProgramCounter()
    pc.step_forward()
    assert pc.address == 4
    pc.set_relative(8)
    assert pc.instruction_index == 3
    pc.set_to(40)
    assert pc.address == 40
    pc.reset()
    assert pc.address == 0


def test_add():
    sim = run_single("add $v0, $t0, $t1", t0=3, t1=5)
    assert sim.read_register("$v0") == 8
    assert sim.program_counter_address() == 4
    assert sim.last_alu_operation is ALUOperation.ADD
    assert sim.last_signals.reg_dst


def test_sub():
    sim = run_single("sub $v0, $t0, $t1", t0=5, t1=3)
    assert sim.read_register("$v0") == 2


def test_and_or():
    assert run_single("and $v0, $t0, $t1", t0=5, t1=3).read_register("$v0") == 1
    assert run_single("or $v0, $t0, $t1", t0=5, t1=3).read_register("$v0") == 5 | 3


def test_nor():
    assert run_single("nor $v0, $t0, $t1", t0=10, t1=17).read_register("$v0") == ~(10 | 17)
    assert run_single("nor $v0, $t0, $t1").read_register("$v0") == -1


def test_slt():
    assert run_single("slt $v0, $t0, $t1", t0=3, t1=5).read_register("$v0") == 1
    assert run_single("slt $v0, $t0, $t1", t0=5, t1=3).read_register("$v0") == 0
    assert run_single("slt $v0, $t0, $t1", t0=-1, t1=0).read_register("$v0") == 1


def test_add_wraps():
    sim = run_single("add $v0, $t0, $t1", t0=0x7FFFFFFF, t1=1)
    assert sim.read_register("$v0") == -0x80000000


def test_lw():
    sim = make_sim("lw $t0, 20($t1)", t1=3)
    sim.write_memory_word(23, 7)
    sim.step()
    assert sim.read_register("$t0") == 7
    assert sim.program_counter_address() == 4


def test_sw():
    sim = run_single("sw $t0, 20($t1)", t0=5, t1=3)
    assert sim.read_memory_word(23) == 5


def test_sw_with_zeros():
    sim = run_single("sw $zero, 0($zero)")
    assert sim.read_memory_word(0) == 0
    assert sim.program_counter_address() == 4


def test_beq_not_taken():
    sim = run_single("beq $t0, $t1, 6", t0=5, t1=3)
    assert sim.program_counter_address() == 4


def test_beq_taken():
    sim = run_single("beq $t0, $t1, 6", t0=5, t1=5)
    assert sim.program_counter_address() == 24
    assert sim.last_alu_operation is ALUOperation.SUBTRACT


def test_addi():
    sim = run_single("addi $t0, $t1, 4", t1=3)
    assert sim.read_register("$t0") == 7
    assert run_single("addi $t0, $t1, -4", t1=3).read_register("$t0") == -1


def test_ori():
    sim = run_single("ori $t0, $t1, 4", t1=8)
    assert sim.read_register("$t0") == 12


def test_shifts():
    assert run_single("srl $t1, $t2, 2", t2=127).read_register("$t1") == 31
    assert run_single("srl $t1, $t2, 2", t2=0b10000000).read_register("$t1") == 0b100000
    assert run_single("srl $t1, $t2, 1", t2=-8).read_register("$t1") == 0x7FFFFFFC
    assert run_single("sra $t1, $t2, 1", t2=-8).read_register("$t1") == -4
    assert run_single("sll $t1, $t2, 3", t2=1).read_register("$t1") == 8


def test_nop():
    sim = run_single("nop\nnop")
    assert sim.program_counter_address() == 4
    assert sim.pc.instruction_index == 1


def test_zero_register_stays_zero():
    sim = run_single("addi $zero, $zero, 5")
    assert sim.read_register("$zero") == 0
    assert run_single("add $zero, $t0, $t1", t0=3, t1=5).read_register("$zero") == 0
    sim = make_sim("lw $zero, 0($zero)")
    sim.write_memory_word(0, 7)
    sim.step()
    assert sim.read_register("$zero") == 0
    assert sim.program_counter_address() == 4


def test_jump():
    sim = make_sim("nop\nnop\nnop\nj 5\nnop\nexit")
    sim.set_program_counter_instruction(3)
    sim.step()
    assert sim.pc.instruction_index == 5
    assert sim.current_instruction().name == "exit"


def test_jump_register():
    listing = "\n".join(["nop"] * 5 + ["jr $t1"] + ["nop"] * 3 + ["add $v0, $t0, $t1"])
    sim = make_sim(listing, t1=4)
    sim.set_program_counter_instruction(5)
    sim.step()
    assert sim.pc.instruction_index == 9
    assert sim.current_instruction().name == "add"
    assert sim.read_register("$v0") == 0


def test_exit_halts():
    sim = make_sim("exit")
    with pytest.raises(HaltException):
        sim.execute()
    assert sim.halted
    assert sim.halt_reason == "exit"
    assert sim.program_counter_address() == 4


def test_step_reports_halt(capsys):
    sim = make_sim("nop\nexit")
    assert sim.step() is False
    assert sim.step() is True
    assert "[SIM] Halted: exit" in capsys.readouterr().out
    assert sim.step() is True
    assert sim.instr_count == 2


def test_program():
    sim = make_sim(
        "addi $t0, $zero, 3\n"
        "addi $t1, $zero, 5\n"
        "add $t2, $t0, $t1\n"
        "sw $t2, 4($zero)\n"
        "exit\n"
    )
    assert sim.run() == 5
    assert sim.halted
    assert sim.read_register("$t2") == 8
    assert sim.read_memory_word(4) == 8
    assert sim.program_counter_address() == 20


def test_countdown_loop():
    sim = make_sim(
        "addi $t0, $zero, 3\n"
        "addi $t1, $zero, -1\n"
        "add $t0, $t0, $t1\n"
        "beq $t0, $zero, 2\n"
        "j 2\n"
        "exit\n"
    )
    assert sim.run() == 11
    assert sim.read_register("$t0") == 0


def test_run_limits():
    sim = make_sim("j 0")
    assert sim.run(max_steps=7) == 7
    assert not sim.halted
    assert sim.run(should_stop=lambda: True) == 0

    calls = []

    def stop_after_three():
        calls.append(1)
        return len(calls) > 3

    assert sim.run(should_stop=stop_after_three) == 3


def test_failed_cycle_commits_nothing():
    sim = make_sim("lw $t0, 1000($zero)", t0=9)
    with pytest.raises(OutOfBoundsError):
        sim.step()
    assert sim.read_register("$t0") == 9
    assert sim.program_counter_address() == 0
    assert sim.instr_count == 0


@pytest.mark.parametrize("listing", ["addiu $t0, $t0, 1", "mult $t0, $t1", "bne $t0, $t1, 2"])
def test_unsupported_instructions(listing):
    sim = make_sim(listing)
    with pytest.raises(UnsupportedOpcodeError):
        sim.step()
    assert sim.program_counter_address() == 0


def test_fetch_past_program_end():
    sim = MipsSim(instruction_memory_size=8)
    sim.load("nop")
    sim.run(max_steps=2)
    with pytest.raises(OutOfBoundsError):
        sim.step()


def test_unknown_format_is_execution_error():
    odd_format = types.SimpleNamespace(name="X", widths=(6, 26), field_names=("opcode", "target"))
    proto = dataclasses.replace(isa.NOP, name="odd", format=odd_format)
    sim = MipsSim()
    sim.load([isa.Instruction(proto, 0)])
    with pytest.raises(ExecutionError):
        sim.step()
    assert sim.program_counter_address() == 0


def test_load_resets_pc_but_keeps_registers():
    sim = make_sim("nop\nnop", t0=4)
    sim.step()
    sim.load(["addi $t0, $t0, 1", 0xFC000000])
    assert sim.program_counter_address() == 0
    assert sim.read_register("$t0") == 4
    assert len(sim.instruction_memory) == 2
    assert sim.run() == 2
    assert sim.read_register("$t0") == 5


def test_failed_load_keeps_program():
    sim = MipsSim(instruction_memory_size=8)
    sim.load("exit")
    with pytest.raises(OutOfBoundsError):
        sim.load("nop\nnop\nnop")
    with pytest.raises(MalformedMnemonicError):
        sim.load("add $t0")
    assert sim.current_instruction().name == "exit"


def test_load_file(tmp_path):
    path = tmp_path / "prog.asm"
    path.write_text("addi $t0, $zero, 2\nexit\n")
    sim = MipsSim()
    sim.load_file(path)
    sim.run()
    assert sim.read_register("$t0") == 2


def test_reset_keeps_program():
    sim = make_sim("addi $t0, $t0, 1\nsw $t0, 0($zero)\nexit")
    sim.run()
    sim.reset()
    snap = sim.snapshot()
    assert snap["pc"] == 0
    assert snap["memory"] == {}
    assert snap["registers"]["$t0"] == 0
    assert not snap["halted"]
    assert sim.last_signals is None
    assert sim.run() == 3
    assert sim.read_memory_word(0) == 1


def test_set_program_counter_bounds():
    sim = MipsSim(instruction_memory_size=16)
    with pytest.raises(OutOfBoundsError):
        sim.set_program_counter_instruction(4)


def test_snapshot_from_another_thread():
    sim = make_sim("addi $t0, $t0, 1\nj 0")
    stop = threading.Event()
    result = {}

    def worker():
        result["executed"] = sim.run(should_stop=stop.is_set)

    t = threading.Thread(target=worker)
    t.start()
    snaps = [sim.snapshot() for _ in range(50)]
    deadline = time.time() + 5
    while sim.snapshot()["instr_count"] < 10 and time.time() < deadline:
        time.sleep(0.001)
    stop.set()
    t.join(timeout=5)
    assert not t.is_alive()
    assert result["executed"] > 0
    for snap in snaps:
        assert snap["pc"] in (0, 4)
        assert snap["instr_count"] >= 0


def test_trace_output(capsys):
    sim = MipsSim(trace=True)
    sim.load("addi $t0, $zero, 1\nsw $t0, 8($zero)\nexit")
    sim.run()
    out = capsys.readouterr().out
    assert "[TRACE] pc=0x00000000 addi $t0, $zero, 1" in out
    assert "[TRACE] mem[8] = 1" in out


def test_dump_regs(capsys):
    sim = make_sim("nop", t1=5)
    sim.dump_regs()
    out = capsys.readouterr().out
    assert "$t1) = 0x00000005" in out
    assert "pc" in out


def test_state_config_roundtrip(tmp_path, capsys):
    config = tmp_path / "state.json"
    config.write_text(json.dumps({"registers": {"$t0": 5, "$9": "0x10"}, "memory": {"0x14": 7}, "pc": "0x4"}))
    sim = make_sim("nop\nsw $t0, 0($zero)\nexit")
    sim.load_state_config(str(config))
    assert sim.read_register("$t0") == 5
    assert sim.read_register("$t1") == 16
    assert sim.read_memory_word(20) == 7
    assert sim.program_counter_address() == 4
    sim.run()

    out = tmp_path / "out.json"
    sim.save_state(str(out))
    saved = json.loads(out.read_text())
    assert saved["registers"] == {"$t0": 5, "$t1": 16}
    assert saved["memory"] == {"0x00000000": "0x00000005", "0x00000014": "0x00000007"}
    assert saved["pc"] == "0x0000000c"
    captured = capsys.readouterr().out
    assert "[SIM] Loaded state config" in captured
    assert "[SIM] Saved state" in captured


def test_state_config_errors(tmp_path, capsys):
    sim = MipsSim()
    sim.load_state_config(str(tmp_path / "missing.json"))
    assert "[SIM] No state config found" in capsys.readouterr().out
    bad = tmp_path / "bad.json"
    bad.write_text("{not json")
    sim.load_state_config(str(bad))
    assert "[SIM] Error loading state config" in capsys.readouterr().out


def test_state_config_is_all_or_nothing(tmp_path, capsys):
    sim = make_sim("nop\nnop", t0=1)
    sim.write_memory_word(8, 3)
    for config in (
        {"registers": {"$t0": 5, "$t1": 6}, "memory": {"0x100000": 1}},
        {"registers": {"$t0": 5}, "memory": {"0x10": 1}, "pc": "0x400"},
        {"registers": {"$t0": 5}, "memory": {"0x10": 1}, "pc": "0x2"},
        {"registers": {"$t0": 5, "$bogus": 1}},
        {"registers": {"$t0": 5}, "memory": {"0x10": "0x100000000"}},
    ):
        path = tmp_path / "state.json"
        path.write_text(json.dumps(config))
        sim.load_state_config(str(path))
        assert "[SIM] Error loading state config" in capsys.readouterr().out
        assert sim.read_register("$t0") == 1
        assert sim.read_register("$t1") == 0
        assert sim.read_memory_word(16) == 0
        assert sim.read_memory_word(8) == 3
        assert sim.program_counter_address() == 0


def test_cli_runs_program(tmp_path, capsys):
    prog = tmp_path / "prog.asm"
    prog.write_text("addi $t0, $zero, 7\nexit\n")
    save = tmp_path / "final.json"
    main([str(prog), f"--save={save}", "--max-steps=10"])
    out = capsys.readouterr().out
    assert "[SIM] Executed 2 instructions" in out
    assert "$t0) = 0x00000007" in out
    assert json.loads(save.read_text())["registers"]["$t0"] == 7


def test_cli_init_and_trace(tmp_path, capsys):
    prog = tmp_path / "prog.asm"
    prog.write_text("add $v0, $t0, $t1\nexit\n")
    init = tmp_path / "init.json"
    init.write_text(json.dumps({"registers": {"$t0": 3, "$t1": 5}}))
    main([str(prog), f"--init={init}", "--trace", "--data-mem=0x40", "--instr-mem=16"])
    out = capsys.readouterr().out
    assert "[TRACE]" in out
    assert "$v0) = 0x00000008" in out


def test_cli_reports_execution_error(tmp_path, capsys):
    prog = tmp_path / "prog.asm"
    prog.write_text("bne $t0, $t1, 2\n")
    main([str(prog)])
    assert "[SIM] Execution stopped" in capsys.readouterr().out


def test_cli_errors(tmp_path, capsys):
    with pytest.raises(SystemExit) as exc:
        main([])
    assert exc.value.code == 1
    with pytest.raises(SystemExit) as exc:
        main(["--bogus"])
    assert exc.value.code == 1
    with pytest.raises(SystemExit) as exc:
        main(["a.asm", "b.asm"])
    assert exc.value.code == 1
    with pytest.raises(SystemExit) as exc:
        main([str(tmp_path / "missing.asm")])
    assert exc.value.code == 1
    assert "[ERROR]" in capsys.readouterr().out
    bad = tmp_path / "bad.asm"
    bad.write_text("nop\nadd $t0\n")
    with pytest.raises(SystemExit):
        main([str(bad)])
    assert "line 2" in capsys.readouterr().out


def test_cli_help(capsys):
    with pytest.raises(SystemExit) as exc:
        main(["--help"])
    assert exc.value.code == 0
    assert "Usage: python mips_sim.py" in capsys.readouterr().out


def test_cli_rejects_negative_delay(tmp_path, capsys):
    prog = tmp_path / "prog.asm"
    prog.write_text("exit\n")
    with pytest.raises(SystemExit) as exc:
        main([str(prog), "--delay=-1"])
    assert exc.value.code == 1
    out = capsys.readouterr().out
    assert "[ERROR] --delay must not be negative" in out
    assert "Execution stopped" not in out
