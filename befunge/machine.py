"""
Befunge machine — instruction pointer state machine over a self-modifying grid.

Owns the program space, the operand stack and the IP state; borrows an
IOChannel for ``&``, ``~``, ``.`` and ``,``. Consumers drive it one
instruction at a time with ``step()`` or to completion with
``run_to_halt()``. Program-level failures never raise out of either call:
they come back as a FAULTED ``StepOutcome`` and end the run.
"""

from __future__ import annotations

import enum
import logging
import random
import time
from dataclasses import dataclass, replace

from .channels import IOChannel
from .config import CODEPOINT_LIMIT, INT_BITS, INT_MAX, INT_MIN, EngineConfig
from .loader import load_text
from .space import ORIGIN, Position, ProgramSpace, cell_char
from .stack import OperandStack

logger = logging.getLogger(__name__)
trace_logger = logging.getLogger("befunge.trace")

_INT_MASK = (1 << INT_BITS) - 1


def wrap_int(value: int) -> int:
    """Fold an arbitrary Python int into signed 64-bit two's complement."""
    if INT_MIN <= value <= INT_MAX:
        return value
    return ((value - INT_MIN) & _INT_MASK) + INT_MIN


def trunc_div(a: int, b: int) -> int:
    """Integer division rounding toward zero."""
    q = abs(a) // abs(b)
    return q if (a < 0) == (b < 0) else -q


def trunc_mod(a: int, b: int) -> int:
    """Remainder with the sign of the dividend, paired with trunc_div."""
    return a - b * trunc_div(a, b)


# ---------------------------------------------------------------------------
# IP state
# ---------------------------------------------------------------------------

class Direction(enum.Enum):
    UP = (0, -1)
    DOWN = (0, 1)
    LEFT = (-1, 0)
    RIGHT = (1, 0)

    @property
    def reverse(self) -> Direction:
        dx, dy = self.value
        return Direction((-dx, -dy))


# Order ``?`` draws from
DIRECTIONS = (Direction.UP, Direction.DOWN, Direction.LEFT, Direction.RIGHT)


@dataclass
class ExecutionState:
    position: Position = ORIGIN
    direction: Direction = Direction.RIGHT
    string_mode: bool = False
    halted: bool = False


# ---------------------------------------------------------------------------
# Instruction set
# ---------------------------------------------------------------------------

class Op(enum.Enum):
    NOP = "nop"
    DIGIT = "digit"
    ADD = "add"
    SUB = "sub"
    MUL = "mul"
    DIV = "div"
    MOD = "mod"
    NOT = "not"
    GREATER = "greater"
    DUP = "dup"
    SWAP = "swap"
    DISCARD = "discard"
    UP = "up"
    DOWN = "down"
    LEFT = "left"
    RIGHT = "right"
    IF_HORIZONTAL = "if_horizontal"
    IF_VERTICAL = "if_vertical"
    RANDOM = "random"
    STRING_MODE = "string_mode"
    BRIDGE = "bridge"
    GET = "get"
    PUT = "put"
    OUT_INT = "out_int"
    OUT_CHAR = "out_char"
    IN_INT = "in_int"
    IN_CHAR = "in_char"
    HALT = "halt"
    UNKNOWN = "unknown"


QUOTE = ord('"')

OPCODES: dict[int, Op] = {
    ord(" "): Op.NOP,
    **{ord(d): Op.DIGIT for d in "0123456789"},
    ord("+"): Op.ADD,
    ord("-"): Op.SUB,
    ord("*"): Op.MUL,
    ord("/"): Op.DIV,
    ord("%"): Op.MOD,
    ord("!"): Op.NOT,
    ord("`"): Op.GREATER,
    ord(":"): Op.DUP,
    ord("\\"): Op.SWAP,
    ord("$"): Op.DISCARD,
    ord("^"): Op.UP,
    ord("v"): Op.DOWN,
    ord("<"): Op.LEFT,
    ord(">"): Op.RIGHT,
    ord("_"): Op.IF_HORIZONTAL,
    ord("|"): Op.IF_VERTICAL,
    ord("?"): Op.RANDOM,
    QUOTE: Op.STRING_MODE,
    ord("#"): Op.BRIDGE,
    ord("g"): Op.GET,
    ord("p"): Op.PUT,
    ord("."): Op.OUT_INT,
    ord(","): Op.OUT_CHAR,
    ord("&"): Op.IN_INT,
    ord("~"): Op.IN_CHAR,
    ord("@"): Op.HALT,
}


def decode(cell: int) -> Op:
    """Total mapping from a cell value to its operation."""
    return OPCODES.get(cell, Op.UNKNOWN)


# ---------------------------------------------------------------------------
# Outcomes
# ---------------------------------------------------------------------------

class FaultKind(enum.Enum):
    INPUT_EXHAUSTED = "input exhausted"
    OUTPUT_FAILED = "output failed"
    DIVISION_BY_ZERO = "division by zero"
    UNKNOWN_INSTRUCTION = "unknown instruction"


@dataclass(frozen=True)
class Fault:
    kind: FaultKind
    position: Position
    instruction: int
    detail: str = ""

    def __str__(self) -> str:
        x, y = self.position
        text = f"{self.kind.value} at ({x}, {y}) executing {cell_char(self.instruction)!r}"
        if self.detail:
            text += f": {self.detail}"
        return text


class Status(enum.Enum):
    CONTINUED = "continued"
    HALTED = "halted"
    FAULTED = "faulted"


@dataclass(frozen=True)
class StepOutcome:
    status: Status
    fault: Fault | None = None

    @property
    def running(self) -> bool:
        return self.status is Status.CONTINUED


CONTINUED = StepOutcome(Status.CONTINUED)
HALTED = StepOutcome(Status.HALTED)


@dataclass(frozen=True)
class RunResult:
    instructions_executed: int
    elapsed: float
    outcome: StepOutcome

    @property
    def instructions_per_second(self) -> float:
        if self.elapsed <= 0:
            return 0.0
        return self.instructions_executed / self.elapsed


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------

class Engine:
    """Single-IP Befunge interpreter over an unbounded torus grid."""

    def __init__(self, space: ProgramSpace, channel: IOChannel,
                 seed: int | None = None, config: EngineConfig | None = None,
                 rng: random.Random | None = None):
        self.config = config or EngineConfig()
        self.channel = channel
        self.seed = seed
        self.rng = rng if rng is not None else random.Random(seed)

        self._initial_space = space.copy()
        self.space = space
        self.stack = OperandStack()
        self._state = ExecutionState()
        self.fault: Fault | None = None
        self._output: list[str] = []
        self._trace = self.config.trace

        handlers = {
            Op.NOP: self._op_nop,
            Op.DIGIT: self._op_digit,
            Op.ADD: self._op_add,
            Op.SUB: self._op_sub,
            Op.MUL: self._op_mul,
            Op.DIV: self._op_div,
            Op.MOD: self._op_mod,
            Op.NOT: self._op_not,
            Op.GREATER: self._op_greater,
            Op.DUP: self._op_dup,
            Op.SWAP: self._op_swap,
            Op.DISCARD: self._op_discard,
            Op.UP: self._op_up,
            Op.DOWN: self._op_down,
            Op.LEFT: self._op_left,
            Op.RIGHT: self._op_right,
            Op.IF_HORIZONTAL: self._op_if_horizontal,
            Op.IF_VERTICAL: self._op_if_vertical,
            Op.RANDOM: self._op_random,
            Op.STRING_MODE: self._op_string_mode,
            Op.BRIDGE: self._op_bridge,
            Op.GET: self._op_get,
            Op.PUT: self._op_put,
            Op.OUT_INT: self._op_out_int,
            Op.OUT_CHAR: self._op_out_char,
            Op.IN_INT: self._op_in_int,
            Op.IN_CHAR: self._op_in_char,
            Op.HALT: self._op_halt,
            Op.UNKNOWN: {
                "nop": self._op_nop,
                "reverse": self._op_reverse,
                "fault": self._op_unknown,
            }[self.config.unknown_instruction],
        }
        # Resolve cell -> handler once; cells outside OPCODES fall back to UNKNOWN
        self._cell_handlers = {cell: handlers[op] for cell, op in OPCODES.items()}
        self._unknown_handler = handlers[Op.UNKNOWN]

        self.reset_counters()

    @classmethod
    def from_source(cls, text: str, channel: IOChannel, seed: int | None = None,
                    config: EngineConfig | None = None) -> Engine:
        return cls(load_text(text), channel, seed=seed, config=config)

    # -------------------------------------------------------------------
    # Inspection
    # -------------------------------------------------------------------

    @property
    def state(self) -> ExecutionState:
        """Copy of the IP state; mutating it does not affect the engine."""
        return replace(self._state)

    @property
    def position(self) -> Position:
        return self._state.position

    @property
    def direction(self) -> Direction:
        return self._state.direction

    @property
    def string_mode(self) -> bool:
        return self._state.string_mode

    @property
    def halted(self) -> bool:
        return self._state.halted

    @property
    def outcome(self) -> StepOutcome:
        """Status the next ``step()`` starts from."""
        if self._state.halted:
            return HALTED
        if self.fault is not None:
            return StepOutcome(Status.FAULTED, self.fault)
        return CONTINUED

    @property
    def output(self) -> str:
        """Everything written through the channel so far."""
        return "".join(self._output)

    @property
    def current_instruction(self) -> str:
        return cell_char(self.space.get(self._state.position))

    @property
    def current_op(self) -> Op:
        """Operation the cell under the IP decodes to, ignoring string mode."""
        return decode(self.space.get(self._state.position))

    def stack_snapshot(self) -> tuple[int, ...]:
        return self.stack.snapshot()

    def window(self, x: int, y: int, width: int, height: int) -> list[list[int]]:
        return self.space.window(x, y, width, height)

    # -------------------------------------------------------------------
    # Execution
    # -------------------------------------------------------------------

    def step(self) -> StepOutcome:
        """Execute the instruction under the IP and advance it."""
        state = self._state
        if state.halted:
            return HALTED
        if self.fault is not None:
            return StepOutcome(Status.FAULTED, self.fault)

        cell = self.space.get(state.position)
        if self._trace:
            self._trace_step(cell)
        self.instruction_count += 1

        if state.string_mode and cell != QUOTE:
            self.stack.push(cell)
        else:
            fault = self._cell_handlers.get(cell, self._unknown_handler)(cell)
            if fault is not None:
                self.fault = fault
                logger.debug("Fault after %d instructions: %s",
                             self.instruction_count, fault)
                return StepOutcome(Status.FAULTED, fault)
            if state.halted:
                return HALTED

        self._move()
        return CONTINUED

    def run_to_halt(self, max_steps: int | None = None) -> RunResult:
        """Step until halt, fault, or ``max_steps`` instructions."""
        step = self.step
        start_count = self.instruction_count
        outcome = self.outcome
        start = time.perf_counter()
        if outcome is CONTINUED:
            if max_steps is None:
                while outcome is CONTINUED:
                    outcome = step()
            else:
                for _ in range(max_steps):
                    outcome = step()
                    if outcome is not CONTINUED:
                        break
        elapsed = time.perf_counter() - start
        return RunResult(
            instructions_executed=self.instruction_count - start_count,
            elapsed=elapsed,
            outcome=outcome,
        )

    def reset(self, channel: IOChannel | None = None):
        """Restart from the program as originally loaded."""
        self.space = self._initial_space.copy()
        self.stack.clear()
        self._state = ExecutionState()
        self.fault = None
        self._output.clear()
        if self.seed is not None:
            self.rng.seed(self.seed)
        if channel is not None:
            self.channel = channel
        self.reset_counters()

    def _move(self):
        """Advance one cell, wrapping around the live extent of the grid."""
        state = self._state
        space = self.space
        dx, dy = state.direction.value
        x = state.position.x + dx
        y = state.position.y + dy
        if x > space.max_x:
            x = space.min_x
        elif x < space.min_x:
            x = space.max_x
        if y > space.max_y:
            y = space.min_y
        elif y < space.min_y:
            y = space.max_y
        state.position = Position(x, y)

    def _fault(self, kind: FaultKind, cell: int, detail: str = "") -> Fault:
        return Fault(kind, self._state.position, cell, detail)

    def _trace_step(self, cell: int):
        x, y = self._state.position
        trace_logger.debug(
            "[%4d] (%2d, %2d) -> %s | %s",
            self.instruction_count, x, y, cell_char(cell),
            " ".join(str(v) for v in self.stack.items),
        )

    # -------------------------------------------------------------------
    # Instruction handlers: return a Fault to stop, None to continue
    # -------------------------------------------------------------------

    def _op_nop(self, cell: int):
        pass

    def _op_reverse(self, cell: int):
        self._state.direction = self._state.direction.reverse

    def _op_unknown(self, cell: int):
        return self._fault(FaultKind.UNKNOWN_INSTRUCTION, cell,
                           f"code point {cell}")

    def _op_digit(self, cell: int):
        self.stack.push(cell - 48)

    def _op_add(self, cell: int):
        b = self.stack.pop()
        a = self.stack.pop()
        self.stack.push(wrap_int(a + b))

    def _op_sub(self, cell: int):
        b = self.stack.pop()
        a = self.stack.pop()
        self.stack.push(wrap_int(a - b))

    def _op_mul(self, cell: int):
        b = self.stack.pop()
        a = self.stack.pop()
        self.stack.push(wrap_int(a * b))

    def _op_div(self, cell: int):
        b = self.stack.pop()
        a = self.stack.pop()
        if b == 0:
            if self.config.division_by_zero == "fault":
                return self._fault(FaultKind.DIVISION_BY_ZERO, cell, f"{a} / 0")
            self.stack.push(0)
            return None
        self.stack.push(wrap_int(trunc_div(a, b)))

    def _op_mod(self, cell: int):
        b = self.stack.pop()
        a = self.stack.pop()
        if b == 0:
            if self.config.division_by_zero == "fault":
                return self._fault(FaultKind.DIVISION_BY_ZERO, cell, f"{a} % 0")
            self.stack.push(0)
            return None
        self.stack.push(trunc_mod(a, b))

    def _op_not(self, cell: int):
        self.stack.push(1 if self.stack.pop() == 0 else 0)

    def _op_greater(self, cell: int):
        b = self.stack.pop()
        a = self.stack.pop()
        self.stack.push(1 if a > b else 0)

    def _op_dup(self, cell: int):
        self.stack.dup()

    def _op_swap(self, cell: int):
        self.stack.swap()

    def _op_discard(self, cell: int):
        self.stack.discard()

    def _op_up(self, cell: int):
        self._state.direction = Direction.UP

    def _op_down(self, cell: int):
        self._state.direction = Direction.DOWN

    def _op_left(self, cell: int):
        self._state.direction = Direction.LEFT

    def _op_right(self, cell: int):
        self._state.direction = Direction.RIGHT

    def _op_if_horizontal(self, cell: int):
        self._state.direction = Direction.LEFT if self.stack.pop() else Direction.RIGHT

    def _op_if_vertical(self, cell: int):
        self._state.direction = Direction.UP if self.stack.pop() else Direction.DOWN

    def _op_random(self, cell: int):
        self._state.direction = self.rng.choice(DIRECTIONS)

    def _op_string_mode(self, cell: int):
        self._state.string_mode = not self._state.string_mode

    def _op_bridge(self, cell: int):
        self._move()

    def _op_get(self, cell: int):
        y = self.stack.pop()
        x = self.stack.pop()
        self.grid_reads += 1
        self.stack.push(self.space.get((x, y)))

    def _op_put(self, cell: int):
        y = self.stack.pop()
        x = self.stack.pop()
        v = self.stack.pop()
        self.grid_writes += 1
        self.space.set((x, y), v)

    def _op_out_int(self, cell: int):
        value = self.stack.pop()
        try:
            self.channel.write_int(value)
        except (OSError, ValueError) as e:
            return self._fault(FaultKind.OUTPUT_FAILED, cell, str(e))
        self.io_ops += 1
        self._output.append(str(value))

    def _op_out_char(self, cell: int):
        ch = chr(self.stack.pop() % CODEPOINT_LIMIT)
        try:
            self.channel.write_char(ch)
        except (OSError, ValueError) as e:
            return self._fault(FaultKind.OUTPUT_FAILED, cell, str(e))
        self.io_ops += 1
        self._output.append(ch)

    def _op_in_int(self, cell: int):
        try:
            value = self.channel.read_int()
        except OSError as e:
            return self._fault(FaultKind.INPUT_EXHAUSTED, cell, str(e))
        if value is None:
            return self._fault(FaultKind.INPUT_EXHAUSTED, cell, "no integer available")
        self.io_ops += 1
        self.stack.push(wrap_int(value))

    def _op_in_char(self, cell: int):
        try:
            ch = self.channel.read_char()
        except OSError as e:
            return self._fault(FaultKind.INPUT_EXHAUSTED, cell, str(e))
        if ch is None:
            return self._fault(FaultKind.INPUT_EXHAUSTED, cell, "no character available")
        self.io_ops += 1
        self.stack.push(ord(ch))

    def _op_halt(self, cell: int):
        self._state.halted = True

    # -------------------------------------------------------------------
    # Counters
    # -------------------------------------------------------------------

    def reset_counters(self):
        self.instruction_count = 0
        self.grid_reads = 0
        self.grid_writes = 0
        self.io_ops = 0

    def stats(self) -> dict:
        return {
            "instructions": self.instruction_count,
            "grid_reads": self.grid_reads,
            "grid_writes": self.grid_writes,
            "io_ops": self.io_ops,
            "stack_depth": len(self.stack),
            "stack_peak": self.stack.peak,
            "extent": (self.space.width, self.space.height),
        }

    def stats_summary(self) -> str:
        s = self.stats()
        width, height = s["extent"]
        return (
            f"Instructions: {s['instructions']}\n"
            f"Grid: {s['grid_reads']}g/{s['grid_writes']}p "
            f"({width}x{height} cells)\n"
            f"IO: {s['io_ops']} operations\n"
            f"Stack: depth {s['stack_depth']}, peak {s['stack_peak']}"
        )
