"""Plain text UI implementation (no Rich dependency)."""

from __future__ import annotations

import sys
from collections.abc import Sequence
from typing import TYPE_CHECKING

from planstream.render import NEXT_STEP_COMMANDS, build_table_lines

if TYPE_CHECKING:
    from typing import TextIO

    from planstream.render import RenderCursor
    from planstream.state import FileRow

# ANSI color codes
COLORS = {
    "reset": "\033[0m",
    "bold": "\033[1m",
    "dim": "\033[2m",
    "red": "\033[31m",
    "green": "\033[32m",
    "yellow": "\033[33m",
    "cyan": "\033[36m",
}


class PlainUI:
    """Plain text UI with optional ANSI colors.

    Never redraws in place: the reply is printed once when it ends and each
    file is reported once per render cursor when it finishes.
    """

    def __init__(
        self,
        no_color: bool = False,
        ascii_only: bool = False,
        file: TextIO | None = None,
        err_file: TextIO | None = None,
    ):
        self.no_color = no_color
        self.ascii_only = ascii_only
        self._file = file or sys.stdout
        self._err_file = err_file or sys.stderr

    def _color(self, text: str, *styles: str) -> str:
        """Apply color codes if colors are enabled."""
        if self.no_color:
            return text
        prefix = "".join(COLORS.get(s, "") for s in styles)
        return f"{prefix}{text}{COLORS['reset']}" if prefix else text

    def _print(self, text: str = "") -> None:
        """Print to output file."""
        print(text, file=self._file, flush=True)

    def section(self, text: str) -> None:
        self._print()
        self._print(self._color(f"== {text} ==", "bold"))

    def kv(self, key: str, value: str) -> None:
        padded_key = f"  {key}:".ljust(16)
        self._print(f"{padded_key}{value}")

    def info(self, text: str) -> None:
        self._print(self._color(text, "dim"))

    def ok(self, text: str) -> None:
        self._print(self._color(f"OK: {text}", "green"))

    def warn(self, text: str) -> None:
        self._print(self._color(f"WARN: {text}", "yellow"))

    def err(self, text: str) -> None:
        print(self._color(f"ERROR: {text}", "red", "bold"), file=self._err_file, flush=True)

    def start_spinner(self, text: str) -> None:
        if text:
            self.info(text)

    def stop_spinner(self) -> None:
        return

    def enter_reply_screen(self) -> None:
        return

    def leave_reply_screen(self) -> None:
        return

    def draw_reply(self, text: str) -> None:
        _ = text

    def print_reply(self, text: str) -> None:
        self._print(text)
        self._print()

    def building_header(self) -> None:
        self.section("Building plan")

    def draw_build_table(
        self,
        rows: Sequence[FileRow],
        cursor: RenderCursor,
        all_finished: bool,
    ) -> None:
        _ = all_finished
        finished = [row for row in rows if row.finished and row.path not in cursor.reported]
        for line in build_table_lines(finished, ascii_only=self.ascii_only):
            self._print(line)
        cursor.reported.update(row.path for row in finished)
        cursor.lines_drawn = 0

    def next_steps(self, has_files: bool) -> None:
        self._print()
        if has_files:
            for command, description in NEXT_STEP_COMMANDS:
                self._print(f"  planstream {command}".ljust(24) + self._color(description, "dim"))
        self._print(
            "  planstream tell".ljust(24)
            + self._color("update the plan, give more info, or chat", "dim")
        )
        self._print("  planstream next".ljust(24) + self._color("continue to the next step", "dim"))
