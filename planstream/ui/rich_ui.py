"""Rich-based terminal UI implementation."""

from __future__ import annotations

import sys
from collections.abc import Sequence
from typing import TYPE_CHECKING

from rich.console import Console, RenderableType
from rich.control import Control, ControlType
from rich.markdown import Markdown
from rich.padding import Padding
from rich.status import Status
from rich.text import Text

from planstream.render import NEXT_STEP_COMMANDS, build_table_lines, hotkey_hint

if TYPE_CHECKING:
    from typing import TextIO

    from planstream.render import RenderCursor
    from planstream.state import FileRow

MAX_REPLY_WIDTH = 100


def render_markdown(text: str) -> RenderableType:
    """Format reply markdown for the terminal."""
    return Padding(Markdown(text), (0, 0, 0, 2))


class RichUI:
    """Rich-based terminal UI."""

    def __init__(
        self,
        no_color: bool = False,
        ascii_only: bool = False,
        file: TextIO | None = None,
        err_file: TextIO | None = None,
    ):
        self.no_color = no_color
        self.ascii_only = ascii_only
        self.console = Console(
            file=file or sys.stdout,
            no_color=no_color,
            force_terminal=True,
            highlight=False,
        )
        self.err_console = Console(
            file=err_file or sys.stderr,
            no_color=no_color,
            highlight=False,
        )
        self._status: Status | None = None
        self._alt_screen = False

    def _reply_width(self) -> int:
        return min(self.console.size.width, MAX_REPLY_WIDTH)

    def _rewind(self, lines: int) -> None:
        """Move up over ``lines`` previously drawn lines, clearing each."""
        if lines <= 0:
            return
        codes: list[tuple[ControlType, int]] = []
        for _ in range(lines):
            codes.append((ControlType.CURSOR_UP, 1))
            codes.append((ControlType.ERASE_IN_LINE, 2))
        self.console.control(Control(*codes))

    def section(self, text: str) -> None:
        self.console.print()
        if self.ascii_only:
            self.console.print(f"== {text} ==", style="bold")
        else:
            self.console.rule(Text(text, style="bold"), style="dim")

    def kv(self, key: str, value: str) -> None:
        padded_key = f"  {key}:".ljust(16)
        self.console.print(Text(padded_key, style="dim") + Text(value))

    def info(self, text: str) -> None:
        self.console.print(text, style="dim", markup=False)

    def ok(self, text: str) -> None:
        self.console.print(f"OK: {text}", style="green", markup=False)

    def warn(self, text: str) -> None:
        self.console.print(f"WARN: {text}", style="yellow", markup=False)

    def err(self, text: str) -> None:
        self.err_console.print(f"ERROR: {text}", style="red bold", markup=False)

    def start_spinner(self, text: str) -> None:
        if self._status is not None:
            self._status.update(text)
            return
        spinner = "line" if self.ascii_only else "dots"
        self._status = self.console.status(text, spinner=spinner)
        self._status.start()

    def stop_spinner(self) -> None:
        if self._status is None:
            return
        self._status.stop()
        self._status = None

    def enter_reply_screen(self) -> None:
        self._alt_screen = self.console.set_alt_screen(True)
        self.console.clear()

    def leave_reply_screen(self) -> None:
        if self._alt_screen:
            self.console.set_alt_screen(False)
            self._alt_screen = False

    def draw_reply(self, text: str) -> None:
        self.console.clear()
        self.console.print(render_markdown(text), width=self._reply_width())
        self.console.print(Text(hotkey_hint(self.ascii_only), style="dim"))

    def print_reply(self, text: str) -> None:
        self.console.print(render_markdown(text), width=self._reply_width())
        self.console.print()

    def building_header(self) -> None:
        label = " Building plan " if self.ascii_only else " \U0001f3d7  Building plan "
        self.console.print(Text("  ") + Text(label, style="bold bright_white on green"))

    def draw_build_table(
        self,
        rows: Sequence[FileRow],
        cursor: RenderCursor,
        all_finished: bool,
    ) -> None:
        lines = build_table_lines(rows, ascii_only=self.ascii_only)
        if not all_finished:
            lines.extend(["", hotkey_hint(self.ascii_only)])
        self._rewind(cursor.lines_drawn)
        for line in lines:
            self.console.print(Text(line, no_wrap=True, overflow="ellipsis"))
        cursor.lines_drawn = len(lines)

    def next_steps(self, has_files: bool) -> None:
        self.console.print()
        if has_files:
            for command, description in NEXT_STEP_COMMANDS:
                self._print_command(command, description)
        self._print_command("tell", "update the plan, give more info, or chat")
        self._print_command("next", "continue to the next step")

    def _print_command(self, command: str, description: str) -> None:
        line = Text("  ")
        line.append(f"planstream {command}".ljust(22), style="bold cyan")
        line.append(description, style="dim")
        self.console.print(line)
