"""
IO channels — pluggable character and integer input/output for the engine.

The engine never owns a channel; it is handed one at construction and calls
it when ``&``, ``~``, ``.`` or ``,`` execute. Reads return ``None`` when the
input is exhausted. Writes raise (``OSError``, ``ValueError``) when the sink
rejects output; the engine turns either case into a fault.
"""

from __future__ import annotations

import abc
import collections
import io
import sys
from typing import TextIO

DIGITS = "0123456789"


class IOChannel(abc.ABC):
    """Contract between the engine and whatever supplies input / takes output."""

    @abc.abstractmethod
    def read_int(self) -> int | None:
        """Next integer from input, or None if the input is exhausted."""

    @abc.abstractmethod
    def read_char(self) -> str | None:
        """Next character from input, or None if the input is exhausted."""

    @abc.abstractmethod
    def write_int(self, value: int):
        ...

    @abc.abstractmethod
    def write_char(self, ch: str):
        ...

    def flush(self):
        pass


class StreamChannel(IOChannel):
    """Channel over text streams, reading one character at a time.

    ``input_stream`` / ``output_stream`` default to ``sys.stdin`` /
    ``sys.stdout`` looked up on each call, so redirection done after
    construction (pytest's capsys, for one) is honoured.
    """

    def __init__(self, input_stream: TextIO | None = None,
                 output_stream: TextIO | None = None):
        self._input = input_stream
        self._output = output_stream
        self._pending: collections.deque[str] = collections.deque()

    # -------------------------------------------------------------------
    # Input
    # -------------------------------------------------------------------

    def _getc(self) -> str | None:
        if self._pending:
            return self._pending.popleft()
        stream = self._input if self._input is not None else sys.stdin
        ch = stream.read(1)
        return ch or None

    def _ungetc(self, ch: str):
        self._pending.appendleft(ch)

    def read_char(self) -> str | None:
        return self._getc()

    def read_int(self) -> int | None:
        """Skip to the first digit, then consume the whole number.

        A ``-`` directly before the first digit makes it negative. A newline
        ending the number is consumed; any other terminator is left in place.
        """
        negative = False
        while True:
            ch = self._getc()
            if ch is None:
                return None
            if ch in DIGITS:
                break
            negative = ch == "-"

        value = 0
        while ch is not None and ch in DIGITS:
            value = value * 10 + (ord(ch) - 48)
            ch = self._getc()
        if ch is not None and ch != "\n":
            self._ungetc(ch)
        return -value if negative else value

    # -------------------------------------------------------------------
    # Output
    # -------------------------------------------------------------------

    def _sink(self) -> TextIO:
        return self._output if self._output is not None else sys.stdout

    def write_int(self, value: int):
        self._sink().write(str(value))

    def write_char(self, ch: str):
        self._sink().write(ch)

    def flush(self):
        self._sink().flush()


class BufferedChannel(StreamChannel):
    """In-memory channel: queued input text, captured output.

    Used by tests and by the interactive stepper, which can ``feed`` more
    input while a program is paused.
    """

    def __init__(self, input_text: str = ""):
        super().__init__(io.StringIO(""), io.StringIO())
        self._pending.extend(input_text)

    def feed(self, text: str):
        self._pending.extend(text)

    @property
    def pending_input(self) -> str:
        return "".join(self._pending)

    @property
    def output(self) -> str:
        return self._output.getvalue()
