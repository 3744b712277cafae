"""
Batch runner — load a program, execute it to completion, report.

Wraps an Engine for the ``run`` command: output goes straight to the
channel's stream, faults and profile figures are reported by the caller
on stderr.
"""

from __future__ import annotations

import logging
from pathlib import Path

from .channels import IOChannel, StreamChannel
from .config import EngineConfig
from .loader import load_file
from .machine import Engine, RunResult, Status

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAULT = 1
EXIT_BUDGET = 2

_DURATION_UNITS = (
    ("h", 3600.0),
    ("m", 60.0),
    ("s", 1.0),
    ("ms", 1e-3),
    ("us", 1e-6),
    ("ns", 1e-9),
)


def format_duration(seconds: float) -> str:
    """Human-readable duration, e.g. ``1s 250ms 3us``."""
    if seconds <= 0:
        return "0s"
    parts = []
    remaining = seconds
    for unit, size in _DURATION_UNITS:
        count = int(remaining / size + 1e-9)
        if count:
            parts.append(f"{count}{unit}")
            remaining -= count * size
    return " ".join(parts) if parts else "0s"


def profile_line(result: RunResult) -> str:
    return (
        f"Executed {result.instructions_executed} instructions in "
        f"{format_duration(result.elapsed)} "
        f"({int(result.instructions_per_second):,} instructions/second)"
    )


class BatchRunner:
    """Runs one program to halt (or fault, or step budget)."""

    def __init__(self, source: str | Path, channel: IOChannel | None = None,
                 seed: int | None = None, config: EngineConfig | None = None,
                 max_steps: int | None = None):
        self.source = source
        self.space = load_file(source)
        self.channel = channel if channel is not None else StreamChannel()
        self.engine = Engine(self.space, self.channel, seed=seed, config=config)
        self.max_steps = max_steps
        self.result: RunResult | None = None

    def run(self) -> RunResult:
        logger.info("Running %s", self.source)
        result = self.engine.run_to_halt(self.max_steps)
        try:
            self.channel.flush()
        except OSError as e:
            logger.warning("Could not flush program output: %s", e)
        self.result = result

        status = result.outcome.status
        if status is Status.FAULTED:
            logger.warning("Run faulted: %s", result.outcome.fault)
        elif status is Status.CONTINUED:
            logger.warning("Step budget of %d exhausted", self.max_steps)
        logger.info("%s", profile_line(result))
        return result

    @property
    def exit_code(self) -> int:
        if self.result is None:
            raise RuntimeError("run() has not been called")
        status = self.result.outcome.status
        if status is Status.HALTED:
            return EXIT_OK
        if status is Status.FAULTED:
            return EXIT_FAULT
        return EXIT_BUDGET
