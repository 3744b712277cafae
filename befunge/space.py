"""
Program space — the sparse, self-modifiable grid a Befunge program lives in.

Cells are stored as integer code points in a dict keyed by ``(x, y)``; any
position never written reads back as a space. The grid tracks the bounding
box of every cell ever written, which is what torus wraparound is computed
against.
"""

from __future__ import annotations

from typing import NamedTuple

from .config import CODEPOINT_LIMIT, SPACE


class Position(NamedTuple):
    x: int
    y: int

    def shifted(self, dx: int, dy: int) -> Position:
        return Position(self.x + dx, self.y + dy)


ORIGIN = Position(0, 0)


def cell_char(value: int) -> str:
    """Printable single-character rendering of a cell value."""
    if 0 <= value < CODEPOINT_LIMIT and chr(value).isprintable():
        return chr(value)
    return "·"


class ProgramSpace:
    """Unbounded 2D grid of code points with default-on-miss reads.

    The extent always contains the origin, so an instruction pointer that
    starts there is on a valid cell even for an empty program.
    """

    def __init__(self):
        self.cells: dict[tuple[int, int], int] = {}
        self.min_x = 0
        self.min_y = 0
        self.max_x = 0
        self.max_y = 0

    # -------------------------------------------------------------------
    # Cell access
    # -------------------------------------------------------------------

    def get(self, pos: tuple[int, int]) -> int:
        return self.cells.get(pos, SPACE)

    def set(self, pos: tuple[int, int], value: int):
        x, y = pos
        self.cells[(x, y)] = value
        if x < self.min_x:
            self.min_x = x
        elif x > self.max_x:
            self.max_x = x
        if y < self.min_y:
            self.min_y = y
        elif y > self.max_y:
            self.max_y = y

    def __contains__(self, pos) -> bool:
        return tuple(pos) in self.cells

    def __len__(self) -> int:
        return len(self.cells)

    # -------------------------------------------------------------------
    # Loading
    # -------------------------------------------------------------------

    def load(self, text: str):
        """Store ``text`` row by row: line index is y, column index is x."""
        for y, line in enumerate(text.split("\n")):
            if line.endswith("\r"):
                line = line[:-1]
            for x, ch in enumerate(line):
                self.set((x, y), ord(ch))

    @classmethod
    def from_text(cls, text: str) -> ProgramSpace:
        space = cls()
        space.load(text)
        return space

    def copy(self) -> ProgramSpace:
        other = ProgramSpace()
        other.cells = dict(self.cells)
        other.min_x, other.min_y = self.min_x, self.min_y
        other.max_x, other.max_y = self.max_x, self.max_y
        return other

    # -------------------------------------------------------------------
    # Extent and views
    # -------------------------------------------------------------------

    @property
    def extent(self) -> tuple[int, int, int, int]:
        """(min_x, min_y, max_x, max_y), inclusive."""
        return (self.min_x, self.min_y, self.max_x, self.max_y)

    @property
    def width(self) -> int:
        return self.max_x - self.min_x + 1

    @property
    def height(self) -> int:
        return self.max_y - self.min_y + 1

    def window(self, x: int, y: int, width: int, height: int) -> list[list[int]]:
        """Cell values of the rectangle with upper-left corner (x, y)."""
        get = self.cells.get
        return [
            [get((cx, cy), SPACE) for cx in range(x, x + width)]
            for cy in range(y, y + height)
        ]

    def render(self) -> str:
        """The whole tracked extent as text, trailing blanks stripped per row."""
        rows = self.window(self.min_x, self.min_y, self.width, self.height)
        return "\n".join(
            "".join(cell_char(v) for v in row).rstrip() for row in rows
        )
