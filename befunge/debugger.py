"""
Textual TUI stepper for the Befunge engine.

Drives ``Engine.step()`` from a Textual timer and shows the grid around the
instruction pointer, the operand stack, IP state and program output.

Usage:
    befunge step program.bf
    befunge step example:eratosthenes --rate 30
"""

from __future__ import annotations

from rich.markup import escape
from rich.text import Text
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import ScrollableContainer
from textual.timer import Timer
from textual.widgets import Footer, Static

from .channels import BufferedChannel
from .config import DEFAULT_RATE, MAX_RATE
from .machine import Engine, Fault, Status
from .space import Position, cell_char

# Timer callbacks faster than this are batched into several steps per tick
MAX_TICKS_PER_SECOND = 30


# ---------------------------------------------------------------------------
# CSS
# ---------------------------------------------------------------------------

STEPPER_CSS = """
Screen {
    layout: grid;
    grid-size: 2 3;
    grid-columns: 4fr 1fr;
    grid-rows: 3fr 1fr auto;
}

.panel {
    border: solid $accent;
    border-title-align: left;
    overflow-y: auto;
    height: 100%;
}

#program-panel { column-span: 1; }
#stack-panel   { column-span: 1; }
#output-panel  { column-span: 1; }
#state-panel   { column-span: 1; }

Footer {
    column-span: 2;
}
"""


# ---------------------------------------------------------------------------
# Panel widgets
# ---------------------------------------------------------------------------

class ProgramPanel(ScrollableContainer):
    """Grid window centred on the view position."""
    BORDER_TITLE = "Program"

    def compose(self) -> ComposeResult:
        yield Static("", id="program-content")


class StackPanel(ScrollableContainer):
    """Operand stack, top first."""
    BORDER_TITLE = "Stack"

    def compose(self) -> ComposeResult:
        yield Static("", id="stack-content")


class OutputPanel(ScrollableContainer):
    """Accumulated program output and any fault."""
    BORDER_TITLE = "Output"

    def compose(self) -> ComposeResult:
        yield Static("", id="output-content")


class StatePanel(ScrollableContainer):
    """IP state, counters and stepper settings."""
    BORDER_TITLE = "State"

    def compose(self) -> ComposeResult:
        yield Static("", id="state-content")


# ---------------------------------------------------------------------------
# Rendering helpers
# ---------------------------------------------------------------------------

def render_grid(engine: Engine, center: Position, width: int, height: int) -> Text:
    """Rich text of the grid window with the IP and view centre highlighted."""
    left = center.x - width // 2
    top = center.y - height // 2
    ip = engine.position
    ip_style = "bold white on red" if engine.outcome.status is not Status.CONTINUED \
        else "bold black on green"

    text = Text(no_wrap=True)
    for dy, row in enumerate(engine.window(left, top, width, height)):
        y = top + dy
        for dx, value in enumerate(row):
            x = left + dx
            ch = cell_char(value)
            if (x, y) == ip:
                text.append(ch, style=ip_style)
            elif (x, y) == center:
                text.append(ch, style="on magenta")
            else:
                text.append(ch)
        text.append("\n")
    return text


def render_stack(items: tuple[int, ...]) -> str:
    if not items:
        return "(empty)"
    lines = []
    for value in reversed(items):
        if 32 <= value < 127:
            lines.append(f"{value:>8d}  {chr(value)!r}")
        else:
            lines.append(f"{value:>8d}")
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Main stepper app
# ---------------------------------------------------------------------------

class BefungeStepper(App):
    """Textual TUI that single-steps or free-runs a Befunge program."""

    CSS = STEPPER_CSS
    TITLE = "Befunge Stepper"

    BINDINGS = [
        Binding("space", "toggle_pause", "Run/Pause"),
        Binding("s", "step_1", "Step"),
        Binding("n", "step_10", "x10"),
        Binding("r", "reset", "Reset"),
        Binding("f", "toggle_follow", "Follow"),
        Binding("plus,equals_sign", "faster", "Faster"),
        Binding("minus", "slower", "Slower"),
        Binding("left", "pan(-1, 0)", "Pan", show=False, priority=True),
        Binding("right", "pan(1, 0)", "Pan", show=False, priority=True),
        Binding("up", "pan(0, -1)", "Pan", show=False, priority=True),
        Binding("down", "pan(0, 1)", "Pan", show=False, priority=True),
        Binding("q", "quit", "Quit"),
    ]

    def __init__(self, engine: Engine, input_text: str = "",
                 rate: int = DEFAULT_RATE):
        super().__init__()
        self.engine = engine
        self.input_text = input_text
        self.rate = max(1, min(rate, MAX_RATE))
        self.paused = True
        self.following = True
        self.view_center: Position = engine.position
        self.error: Fault | None = None
        self._timer: Timer | None = None

    def compose(self) -> ComposeResult:
        yield ProgramPanel(id="program-panel", classes="panel")
        yield StackPanel(id="stack-panel", classes="panel")
        yield OutputPanel(id="output-panel", classes="panel")
        yield StatePanel(id="state-panel", classes="panel")
        yield Footer()

    def on_mount(self) -> None:
        self._start_timer()
        # Panel sizes are only known after the first layout pass
        self.call_after_refresh(self.refresh_panels)

    # -------------------------------------------------------------------
    # Timer
    # -------------------------------------------------------------------

    def _steps_per_tick(self) -> int:
        return max(1, self.rate // MAX_TICKS_PER_SECOND)

    def _start_timer(self) -> None:
        if self._timer is not None:
            self._timer.stop()
        interval = self._steps_per_tick() / self.rate
        self._timer = self.set_interval(interval, self._on_tick, pause=self.paused)

    def _on_tick(self) -> None:
        if self.paused:
            return
        self._do_steps(self._steps_per_tick())

    def _set_paused(self, paused: bool) -> None:
        self.paused = paused
        if self._timer is None:
            return
        if paused:
            self._timer.pause()
        else:
            self._timer.resume()

    # -------------------------------------------------------------------
    # Panel refresh
    # -------------------------------------------------------------------

    def refresh_panels(self) -> None:
        self._refresh_program()
        self._refresh_stack()
        self._refresh_output()
        self._refresh_state()

    def _refresh_program(self) -> None:
        panel = self.query_one("#program-panel", ProgramPanel)
        width = panel.size.width or 60
        height = panel.size.height or 20
        x, y = self.view_center
        panel.border_title = f"Program | view ({x}, {y})"
        content = self.query_one("#program-content", Static)
        content.update(render_grid(self.engine, self.view_center, width, height))

    def _refresh_stack(self) -> None:
        content = self.query_one("#stack-content", Static)
        content.update(escape(render_stack(self.engine.stack_snapshot())))

    def _refresh_output(self) -> None:
        text = Text(self.engine.output)
        if self.error is not None:
            text.append(f"\n[fault] {self.error}", style="bold red")
        content = self.query_one("#output-content", Static)
        content.update(text)

    def _refresh_state(self) -> None:
        e = self.engine
        x, y = e.position
        flags = []
        if self.paused:
            flags.append("paused")
        if self.following:
            flags.append("following")
        if e.string_mode:
            flags.append("string")
        text = (
            f"[bold]IP:[/bold] ({x}, {y}) {e.direction.name}\n"
            f"[bold]Cell:[/bold] {escape(repr(e.current_instruction))} "
            f"({e.current_op.value})\n"
            f"[bold]Status:[/bold] {e.outcome.status.value}\n"
            f"[bold]Steps:[/bold] {e.instruction_count}\n"
            f"[bold]Rate:[/bold] {self.rate}/s\n"
            f"{' '.join(flags)}"
        )
        content = self.query_one("#state-content", Static)
        content.update(text)

    # -------------------------------------------------------------------
    # Actions
    # -------------------------------------------------------------------

    def _do_steps(self, count: int) -> None:
        outcome = self.engine.outcome
        for _ in range(count):
            outcome = self.engine.step()
            if not outcome.running:
                break
        if self.following:
            self.view_center = self.engine.position
        if not outcome.running:
            self._set_paused(True)
            if outcome.fault is not None:
                self.error = outcome.fault
        self.refresh_panels()

    def action_toggle_pause(self) -> None:
        if self.paused and not self.engine.outcome.running:
            return
        self._set_paused(not self.paused)
        self._refresh_state()

    def action_step_1(self) -> None:
        self._set_paused(True)
        self._do_steps(1)

    def action_step_10(self) -> None:
        self._set_paused(True)
        self._do_steps(10)

    def action_reset(self) -> None:
        self._set_paused(True)
        self.engine.reset(BufferedChannel(self.input_text))
        self.error = None
        self.view_center = self.engine.position
        self.refresh_panels()

    def action_toggle_follow(self) -> None:
        self.following = not self.following
        if self.following:
            self.view_center = self.engine.position
        self.refresh_panels()

    def action_faster(self) -> None:
        self.rate = min(self.rate + 1, MAX_RATE)
        self._start_timer()
        self._refresh_state()

    def action_slower(self) -> None:
        self.rate = max(self.rate - 1, 1)
        self._start_timer()
        self._refresh_state()

    def action_pan(self, dx: int, dy: int) -> None:
        self.following = False
        self.view_center = self.view_center.shifted(dx, dy)
        self.refresh_panels()


def run_stepper(engine: Engine, input_text: str = "", rate: int = DEFAULT_RATE):
    BefungeStepper(engine, input_text=input_text, rate=rate).run()
