"""
Operand stack for the Befunge engine.

Popping an empty stack yields 0; this is part of the language, not an error.
"""

from __future__ import annotations


class OperandStack:
    """Single shared stack of signed integers, top = end of the list."""

    def __init__(self):
        self.items: list[int] = []
        self.peak = 0

    def push(self, val: int):
        items = self.items
        items.append(val)
        if len(items) > self.peak:
            self.peak = len(items)

    def pop(self) -> int:
        return self.items.pop() if self.items else 0

    def peek(self) -> int:
        return self.items[-1] if self.items else 0

    def dup(self):
        self.push(self.peek())

    def swap(self):
        a = self.pop()
        b = self.pop()
        self.push(a)
        self.push(b)

    def discard(self):
        if self.items:
            self.items.pop()

    def clear(self):
        self.items.clear()
        self.peak = 0

    def snapshot(self) -> tuple[int, ...]:
        """Bottom-to-top copy of the contents."""
        return tuple(self.items)

    def __len__(self) -> int:
        return len(self.items)

    def __repr__(self) -> str:
        return f"OperandStack({self.items!r})"
