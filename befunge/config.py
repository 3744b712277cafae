"""
Configuration — engine policies and shared constants.

The interpreter has two behaviours that differ between Befunge
implementations: what ``/`` and ``%`` do with a zero divisor, and what an
unrecognised instruction does. Both are fixed here rather than scattered
through the dispatch code.
"""

from __future__ import annotations

from dataclasses import dataclass

# Cell value every unset grid position reads as (ASCII space, a no-op).
SPACE = 32

# Operand stack values are signed integers of this width.
INT_BITS = 64
INT_MIN = -(1 << (INT_BITS - 1))
INT_MAX = (1 << (INT_BITS - 1)) - 1

# Largest code point + 1; ``,`` folds stack values into this range.
CODEPOINT_LIMIT = 0x110000

# Interactive stepper pacing (instructions per second).
DEFAULT_RATE = 10
MAX_RATE = 1000

DIVISION_POLICIES = ("zero", "fault")
UNKNOWN_POLICIES = ("nop", "reverse", "fault")


@dataclass
class EngineConfig:
    """Behaviour switches for one Engine.

    division_by_zero:
        ``"zero"`` pushes 0 for ``a/0`` and ``a%0``; ``"fault"`` stops the
        run with a DIVISION_BY_ZERO fault.
    unknown_instruction:
        ``"nop"`` skips characters outside the instruction set,
        ``"reverse"`` turns the IP around, ``"fault"`` stops the run.
    trace:
        Log every executed instruction on the ``befunge.trace`` logger.
    """
    division_by_zero: str = "zero"
    unknown_instruction: str = "nop"
    trace: bool = False

    def __post_init__(self):
        if self.division_by_zero not in DIVISION_POLICIES:
            raise ValueError(
                f"division_by_zero must be one of {DIVISION_POLICIES}, "
                f"got {self.division_by_zero!r}"
            )
        if self.unknown_instruction not in UNKNOWN_POLICIES:
            raise ValueError(
                f"unknown_instruction must be one of {UNKNOWN_POLICIES}, "
                f"got {self.unknown_instruction!r}"
            )
