"""
Verification suite for the Befunge engine.

Covers the instruction set, the IP state machine (torus wraparound, bridge,
conditional turns), self-modifying code, fault reporting and the bundled
example programs end to end.
"""

from __future__ import annotations

import logging

import pytest

from befunge.channels import BufferedChannel
from befunge.config import EngineConfig
from befunge.examples import ERATOSTHENES, FACTORIAL, HELLO_WORLD, QUINE, RNG
from befunge.machine import (
    CONTINUED, HALTED, OPCODES, Direction, Engine, FaultKind, Op, Status,
    decode, trunc_div, trunc_mod, wrap_int,
)
from befunge.space import Position, ProgramSpace

SIEVE_OUTPUT = "2357111317192329313741434753596167717379"
# Instruction count of the sieve, including the final @
SIEVE_STEPS = 4752


def make(source: str, input_text: str = "", **kwargs) -> Engine:
    return Engine.from_source(source, BufferedChannel(input_text), **kwargs)


def run(source: str, input_text: str = "", **kwargs) -> Engine:
    engine = make(source, input_text, **kwargs)
    result = engine.run_to_halt(max_steps=100_000)
    assert result.outcome.status is not Status.CONTINUED, "program did not stop"
    return engine


# ---------------------------------------------------------------------------
# Decoding
# ---------------------------------------------------------------------------

def test_decode_is_total():
    assert decode(ord(" ")) is Op.NOP
    assert decode(ord("x")) is Op.UNKNOWN
    assert decode(-1) is Op.UNKNOWN
    assert decode(ord("@")) is Op.HALT
    assert set(OPCODES.values()) | {Op.UNKNOWN} == set(Op)


def test_current_op_follows_the_ip():
    engine = make("1x@")
    assert engine.current_op is Op.DIGIT
    engine.step()
    assert engine.current_op is Op.UNKNOWN
    engine.step()
    assert engine.current_op is Op.HALT


# ---------------------------------------------------------------------------
# Literals, arithmetic, logic
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("digit", range(10))
def test_digit_pushes_its_value(digit):
    engine = run(f"987{digit}@")
    assert engine.stack_snapshot()[-1] == digit


@pytest.mark.parametrize("source, expected", [
    ("34+@", 7),
    ("73-@", 4),
    ("37-@", -4),
    ("34*@", 12),
    ("73/@", 2),
    ("73%@", 1),
    ("07-3/@", -2),
    ("07-3%@", -1),
    ("703-/@", -2),
    ("703-%@", 1),
])
def test_arithmetic(source, expected):
    assert run(source).stack_snapshot() == (expected,)


@pytest.mark.parametrize("source", ["50/@", "50%@", "/@", "%@"])
def test_division_by_zero_pushes_zero(source):
    engine = run(source)
    assert engine.halted
    assert engine.stack_snapshot() == (0,)


def test_division_by_zero_fault_policy():
    engine = make("50/@", config=EngineConfig(division_by_zero="fault"))
    result = engine.run_to_halt()
    assert result.outcome.status is Status.FAULTED
    assert result.outcome.fault.kind is FaultKind.DIVISION_BY_ZERO
    assert engine.position == Position(2, 0)


def test_arithmetic_wraps_to_64_bits():
    assert wrap_int(2 ** 63) == -(2 ** 63)
    assert wrap_int(-(2 ** 63) - 1) == 2 ** 63 - 1
    assert wrap_int(12345) == 12345
    # 9^32 overflows a signed 64-bit integer
    engine = run("9" + ":*" * 5 + "@")
    assert engine.stack_snapshot() == (wrap_int(9 ** 32),)


def test_truncating_division_helpers():
    assert trunc_div(7, 2) == 3
    assert trunc_div(-7, 2) == -3
    assert trunc_div(7, -2) == -3
    assert trunc_mod(-7, 2) == -1
    assert trunc_mod(7, -2) == 1


@pytest.mark.parametrize("source, expected", [
    ("0!@", 1),
    ("5!@", 0),
    ("!@", 1),
    ("52`@", 1),
    ("25`@", 0),
    ("55`@", 0),
])
def test_logic(source, expected):
    assert run(source).stack_snapshot() == (expected,)


def test_stack_instructions():
    assert run("12:@").stack_snapshot() == (1, 2, 2)
    assert run("12\\@").stack_snapshot() == (2, 1)
    assert run("5\\@").stack_snapshot() == (5, 0)
    assert run("12$@").stack_snapshot() == (1,)
    assert run(":@").stack_snapshot() == (0,)
    assert run("$$@").stack_snapshot() == ()


# ---------------------------------------------------------------------------
# String mode
# ---------------------------------------------------------------------------

def test_string_mode_pushes_code_points_in_order():
    engine = run('"abc"@')
    assert engine.stack_snapshot() == (ord("a"), ord("b"), ord("c"))
    assert not engine.string_mode


def test_string_mode_does_not_dispatch():
    engine = run('"@v#"@')
    assert engine.stack_snapshot() == (ord("@"), ord("v"), ord("#"))


def test_string_mode_flag_visible_between_steps():
    engine = make('"a"@')
    engine.step()
    assert engine.string_mode
    engine.step()
    assert engine.stack_snapshot() == (ord("a"),)
    engine.step()
    assert not engine.string_mode


# ---------------------------------------------------------------------------
# Control flow
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("source, expected", [
    ("1_", Direction.LEFT),
    ("0_", Direction.RIGHT),
    ("_", Direction.RIGHT),
    ("1|", Direction.UP),
    ("0|", Direction.DOWN),
    ("^", Direction.UP),
    ("v", Direction.DOWN),
    ("<", Direction.LEFT),
    (">", Direction.RIGHT),
])
def test_direction_changes(source, expected):
    engine = make(source)
    for _ in source:
        engine.step()
    assert engine.direction is expected


def test_bridge_skips_next_cell():
    engine = make("#1@")
    assert engine.run_to_halt().outcome is HALTED
    assert engine.stack_snapshot() == ()
    assert engine.instruction_count == 2


def test_halt_stops_dispatch():
    engine = make("1@2")
    engine.run_to_halt()
    assert engine.halted
    assert engine.position == Position(1, 0)
    count = engine.instruction_count
    assert engine.step() is HALTED
    assert engine.instruction_count == count
    assert engine.stack_snapshot() == (1,)


def test_random_direction_uses_injected_rng():
    class AlwaysDown:
        def choice(self, seq):
            return Direction.DOWN

    engine = Engine(ProgramSpace.from_text(RNG), BufferedChannel(), rng=AlwaysDown())
    engine.run_to_halt()
    assert engine.output == "3"


def test_random_direction_is_reproducible_with_seed():
    outputs = {run(RNG, seed=seed).output for seed in range(20)}
    assert outputs <= {"1", "2", "3"}
    for seed in range(5):
        assert run(RNG, seed=seed).output == run(RNG, seed=seed).output


# ---------------------------------------------------------------------------
# Torus wraparound
# ---------------------------------------------------------------------------

def test_wraps_right_edge_to_left_edge():
    engine = make("123\n4")
    for _ in range(3):
        assert engine.step() is CONTINUED
    assert engine.position == Position(0, 0)
    assert engine.direction is Direction.RIGHT
    engine.step()
    assert engine.stack_snapshot() == (1, 2, 3, 1)


def test_wraps_left_edge_to_right_edge():
    engine = make("<@")
    assert engine.run_to_halt().outcome is HALTED
    assert engine.position == Position(1, 0)


def test_wraps_vertically():
    engine = make("^\n \n@")
    assert engine.run_to_halt().outcome is HALTED
    assert engine.position == Position(0, 2)


def test_short_row_uses_full_width():
    # Row 1 is shorter than row 0; the IP still walks to max x before wrapping
    engine = make("v    \n>1")
    engine.run_to_halt(max_steps=9)
    assert engine.stack_snapshot() == (1, 1)


def test_wrap_follows_grid_growth():
    engine = make('"@"90p')
    result = engine.run_to_halt(max_steps=1000)
    assert result.outcome is HALTED
    assert engine.position == Position(9, 0)
    assert engine.space.extent == (0, 0, 9, 0)


# ---------------------------------------------------------------------------
# Self-modifying code
# ---------------------------------------------------------------------------

def test_put_then_get_round_trip():
    engine = run("912p12g@")
    assert engine.stack_snapshot() == (9,)
    assert engine.space.get((1, 2)) == 9
    assert engine.grid_writes == 1
    assert engine.grid_reads == 1


def test_put_at_negative_coordinates():
    engine = run('"A"01-01-p01-01-g@')
    assert engine.stack_snapshot() == (ord("A"),)
    assert engine.space.extent[:2] == (-1, -1)


def test_get_of_unset_cell_is_space():
    assert run("99g@").stack_snapshot() == (32,)


def test_put_rewrites_upcoming_instruction():
    # Writes '@' over the 9 before the IP reaches it
    engine = run('"@"70p 9')
    assert engine.position == Position(7, 0)
    assert engine.stack_snapshot() == ()


# ---------------------------------------------------------------------------
# IO
# ---------------------------------------------------------------------------

def test_output_int_and_char():
    engine = run('"ih",,34+.@')
    assert engine.output == "hi7"
    assert engine.channel.output == "hi7"
    assert engine.io_ops == 3


def test_output_char_folds_negative_values():
    engine = run("01-,@")
    assert engine.output == chr(0x10FFFF)


def test_input_int_and_char():
    engine = run("&.~,@", input_text="42\nx")
    assert engine.output == "42x"


def test_input_exhausted_is_a_fault():
    engine = make("1&@")
    result = engine.run_to_halt()
    assert result.outcome.status is Status.FAULTED
    fault = result.outcome.fault
    assert fault.kind is FaultKind.INPUT_EXHAUSTED
    assert fault.position == Position(1, 0)
    assert fault.instruction == ord("&")
    assert "input exhausted at (1, 0)" in str(fault)
    # Fault is terminal: no more dispatch, IP stays on the faulting cell
    assert engine.step().fault is fault
    assert engine.instruction_count == 2
    assert engine.position == Position(1, 0)
    assert engine.stack_snapshot() == (1,)


def test_char_input_exhausted_is_a_fault():
    result = make("~@").run_to_halt()
    assert result.outcome.fault.kind is FaultKind.INPUT_EXHAUSTED


def test_output_failure_is_a_fault():
    class BrokenSink(BufferedChannel):
        def write_char(self, ch):
            raise OSError("sink closed")

    engine = Engine.from_source("65*,@", BrokenSink())
    result = engine.run_to_halt()
    assert result.outcome.status is Status.FAULTED
    assert result.outcome.fault.kind is FaultKind.OUTPUT_FAILED
    assert "sink closed" in str(result.outcome.fault)
    assert engine.output == ""


# ---------------------------------------------------------------------------
# Unknown instruction policies
# ---------------------------------------------------------------------------

def test_unknown_instruction_is_nop_by_default():
    assert run("1x2@").stack_snapshot() == (1, 2)


def test_unknown_instruction_reverse_policy():
    engine = run("1x2@", config=EngineConfig(unknown_instruction="reverse"))
    assert engine.stack_snapshot() == (1, 1)


def test_unknown_instruction_fault_policy():
    engine = make("1x2@", config=EngineConfig(unknown_instruction="fault"))
    result = engine.run_to_halt()
    assert result.outcome.fault.kind is FaultKind.UNKNOWN_INSTRUCTION
    assert result.outcome.fault.position == Position(1, 0)


def test_config_rejects_unknown_policies():
    with pytest.raises(ValueError):
        EngineConfig(division_by_zero="explode")
    with pytest.raises(ValueError):
        EngineConfig(unknown_instruction="ignore")


# ---------------------------------------------------------------------------
# Run to completion, inspection, reset
# ---------------------------------------------------------------------------

def test_run_to_halt_respects_step_budget():
    engine = make(">")
    result = engine.run_to_halt(max_steps=100)
    assert result.outcome is CONTINUED
    assert result.instructions_executed == 100
    result = engine.run_to_halt(max_steps=50)
    assert result.instructions_executed == 50
    assert engine.instruction_count == 150


def test_run_to_halt_on_halted_engine_does_nothing():
    engine = make("@")
    engine.run_to_halt()
    result = engine.run_to_halt(max_steps=0)
    assert result.outcome is HALTED
    assert result.instructions_executed == 0


def test_run_result_throughput():
    result = make(">").run_to_halt(max_steps=1000)
    assert result.elapsed >= 0
    if result.elapsed > 0:
        assert result.instructions_per_second == pytest.approx(1000 / result.elapsed)


def test_state_accessor_returns_copy():
    engine = make("1@")
    state = engine.state
    state.position = Position(5, 5)
    state.halted = True
    assert engine.position == Position(0, 0)
    assert not engine.halted
    assert engine.current_instruction == "1"


def test_window_and_stats():
    engine = run('"A"55p@')
    assert engine.window(4, 5, 3, 1) == [[32, ord("A"), 32]]
    stats = engine.stats()
    assert stats["instructions"] == 7
    assert stats["grid_writes"] == 1
    assert stats["stack_depth"] == 0
    assert stats["stack_peak"] == 3
    assert stats["extent"] == (7, 6)
    assert "Instructions: 7" in engine.stats_summary()


def test_reset_restores_original_program():
    engine = run('"X"00p@')
    assert engine.space.get((0, 0)) == ord("X")
    engine.reset()
    assert engine.space.get((0, 0)) == ord('"')
    assert engine.run_to_halt().outcome is HALTED
    assert engine.space.get((0, 0)) == ord("X")


def test_reset_clears_run_state():
    engine = make(HELLO_WORLD)
    engine.run_to_halt()
    assert engine.output
    engine.reset(BufferedChannel())
    assert engine.output == ""
    assert engine.stack.peak == 0
    assert engine.position == Position(0, 0)
    assert engine.direction is Direction.RIGHT
    assert engine.stack_snapshot() == ()
    assert engine.instruction_count == 0
    assert not engine.halted
    engine.run_to_halt()
    assert engine.output == "Hello, World!\n"


def test_reset_reseeds_rng():
    engine = make(RNG, seed=7)
    engine.run_to_halt()
    first = engine.output
    engine.reset(BufferedChannel())
    engine.run_to_halt()
    assert engine.output == first


def test_trace_logs_each_instruction(caplog):
    caplog.set_level(logging.DEBUG, logger="befunge.trace")
    run("1:@", config=EngineConfig(trace=True))
    messages = [r.getMessage() for r in caplog.records if r.name == "befunge.trace"]
    assert len(messages) == 3
    assert messages[0].startswith("[   0] ( 0,  0) -> 1")
    assert messages[2].endswith("-> @ | 1 1")


# ---------------------------------------------------------------------------
# Example programs end to end
# ---------------------------------------------------------------------------

def test_hello_world():
    assert run(HELLO_WORLD).output == "Hello, World!\n"


def test_factorial():
    assert run(FACTORIAL, input_text="5").output == "120"


def test_quine_prints_its_own_source():
    engine = run(QUINE)
    assert engine.halted
    assert engine.output == QUINE
    assert engine.grid_reads > 0


def test_sieve_of_eratosthenes():
    engine = make(ERATOSTHENES)
    result = engine.run_to_halt()
    assert result.outcome is HALTED
    assert engine.output == SIEVE_OUTPUT
    assert result.instructions_executed == SIEVE_STEPS
    assert engine.instruction_count == SIEVE_STEPS

    # Step count matches a manual trace of the same program
    stepped = make(ERATOSTHENES)
    steps = 0
    while stepped.step() is CONTINUED:
        steps += 1
    assert steps + 1 == result.instructions_executed
    assert stepped.output == SIEVE_OUTPUT


def test_runs_without_random_are_deterministic():
    for source, input_text in ((ERATOSTHENES, ""), (FACTORIAL, "6"), (HELLO_WORLD, "")):
        a = run(source, input_text)
        b = run(source, input_text)
        assert a.output == b.output
        assert a.instruction_count == b.instruction_count
