"""
Loader — source text to ProgramSpace.

Parsing cannot fail: any text is a valid grid. Only obtaining the text can,
and that surfaces as LoadError.
"""

from __future__ import annotations

import logging
from pathlib import Path

from .examples import get_example
from .space import ProgramSpace

logger = logging.getLogger(__name__)

EXAMPLE_PREFIX = "example:"


class LoadError(Exception):
    """Program source could not be read."""


def load_text(text: str) -> ProgramSpace:
    return ProgramSpace.from_text(text)


def read_source(source: str | Path) -> str:
    """Return program text for a file path or an ``example:NAME`` reference."""
    if isinstance(source, str) and source.startswith(EXAMPLE_PREFIX):
        name = source[len(EXAMPLE_PREFIX):]
        try:
            text = get_example(name)
        except KeyError as e:
            raise LoadError(e.args[0]) from None
        logger.debug("Loaded bundled example %r", name)
        return text

    path = Path(source)
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        raise LoadError(f"File not found: {path}") from None
    except (OSError, UnicodeDecodeError) as e:
        raise LoadError(f"Cannot read {path}: {e}") from e
    logger.info("Loaded %s (%d bytes)", path, len(text))
    return text


def load_file(source: str | Path) -> ProgramSpace:
    space = load_text(read_source(source))
    logger.debug("Program extent %dx%d, %d cells",
                 space.width, space.height, len(space))
    return space
