"""
Command line entry point.

Usage:
    befunge run program.bf [--profile] [--show] [--trace]
    befunge run example:eratosthenes --profile
    befunge step program.bf --rate 20
    befunge examples [NAME]
"""

from __future__ import annotations

import argparse
import io
import logging
import sys

from .channels import BufferedChannel, StreamChannel
from .config import DEFAULT_RATE, DIVISION_POLICIES, UNKNOWN_POLICIES, EngineConfig
from .examples import EXAMPLES, get_example
from .loader import LoadError, load_file
from .logging_config import setup_logging
from .machine import Engine, Status
from .runner import EXIT_FAULT, EXIT_OK, BatchRunner, profile_line

logger = logging.getLogger(__name__)


def _add_engine_options(parser: argparse.ArgumentParser):
    parser.add_argument("file", help="Program file, or example:NAME for a bundled program")
    parser.add_argument("--seed", type=int, default=None,
                        help="Seed for the ? instruction (reproducible runs)")
    parser.add_argument("--input", default=None,
                        help="Use this text as program input instead of stdin")
    parser.add_argument("--div-zero", choices=DIVISION_POLICIES, default="zero",
                        help="What / and %% do with a zero divisor")
    parser.add_argument("--unknown", choices=UNKNOWN_POLICIES, default="nop",
                        help="What an unrecognised instruction does")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Befunge interpreter with a batch runner and an interactive stepper",
        prog="befunge",
    )
    parser.add_argument("-v", "--verbose", action="count", default=0,
                        help="More log output (-v info, -vv debug)")
    parser.add_argument("--log-file", default=None, help="Also write logs to this file")
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Execute a program to completion")
    _add_engine_options(run)
    run.add_argument("--profile", "--time", action="store_true", dest="profile",
                     help="Report instruction count, elapsed time and throughput")
    run.add_argument("--show", action="store_true",
                     help="Print the program before executing it")
    run.add_argument("--trace", action="store_true",
                     help="Log every instruction to stderr")
    run.add_argument("--max-steps", type=int, default=None,
                     help="Stop after this many instructions")

    step = sub.add_parser("step", help="Step through a program in a terminal UI")
    _add_engine_options(step)
    step.add_argument("--rate", type=int, default=DEFAULT_RATE,
                      help="Instructions per second while running")

    examples = sub.add_parser("examples", help="List bundled programs or print one")
    examples.add_argument("name", nargs="?", help="Example to print")
    return parser


def _config_from_args(args, trace: bool = False) -> EngineConfig:
    return EngineConfig(
        division_by_zero=args.div_zero,
        unknown_instruction=args.unknown,
        trace=trace,
    )


def cmd_run(args) -> int:
    if args.input is not None:
        channel = StreamChannel(io.StringIO(args.input))
    else:
        channel = StreamChannel()

    try:
        runner = BatchRunner(
            args.file, channel=channel, seed=args.seed,
            config=_config_from_args(args, trace=args.trace),
            max_steps=args.max_steps,
        )
    except LoadError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_FAULT

    if args.show:
        print(runner.space.render())
        print()

    result = runner.run()
    sys.stdout.flush()

    status = result.outcome.status
    if status is Status.FAULTED:
        print(f"\nError: {result.outcome.fault}", file=sys.stderr)
    elif status is Status.CONTINUED:
        print(f"\nStopped after {result.instructions_executed} instructions "
              f"(--max-steps)", file=sys.stderr)

    if args.profile:
        print(profile_line(result), file=sys.stderr)
        if args.verbose:
            print(runner.engine.stats_summary(), file=sys.stderr)
    return runner.exit_code


def cmd_step(args) -> int:
    from .debugger import run_stepper

    try:
        space = load_file(args.file)
    except LoadError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_FAULT

    input_text = args.input or ""
    engine = Engine(space, BufferedChannel(input_text), seed=args.seed,
                    config=_config_from_args(args))
    run_stepper(engine, input_text=input_text, rate=args.rate)
    return EXIT_OK


def cmd_examples(args) -> int:
    if args.name is None:
        for name in sorted(EXAMPLES):
            print(name)
        return EXIT_OK
    try:
        source = get_example(args.name)
    except KeyError as e:
        print(f"Error: {e.args[0]}", file=sys.stderr)
        return EXIT_FAULT
    sys.stdout.write(source)
    return EXIT_OK


COMMANDS = {
    "run": cmd_run,
    "step": cmd_step,
    "examples": cmd_examples,
}


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    level = logging.WARNING
    if args.verbose == 1:
        level = logging.INFO
    elif args.verbose >= 2:
        level = logging.DEBUG
    setup_logging(level, args.log_file, trace=getattr(args, "trace", False))

    return COMMANDS[args.command](args)


if __name__ == "__main__":
    sys.exit(main())
