"""Render scheduling for proposal sessions."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import anyio

from planstream.state import FileRow, Phase, SessionSnapshot

if TYPE_CHECKING:
    from planstream.state import SessionState
    from planstream.ui.base import UI

DEFAULT_INTERVAL = 0.1

HOTKEYS: tuple[tuple[str, str], ...] = (("s", "stop"),)

NEXT_STEP_COMMANDS: tuple[tuple[str, str], ...] = (
    ("apply", "apply the plan to your project files"),
    ("diffs", "review pending changes"),
    ("preview", "preview the plan's files"),
)


@dataclass
class RenderCursor:
    """Where the previous frame left the terminal.

    ``lines_drawn`` is the height of the last in-place frame; ``reported``
    holds the files an append-only renderer has already printed.
    """

    lines_drawn: int = 0
    reported: set[str] = field(default_factory=set)

    def reset(self) -> None:
        self.lines_drawn = 0
        self.reported.clear()


def hotkey_hint(ascii_only: bool = False) -> str:
    """Return the hotkey legend, e.g. ``(s)top``."""
    sep = " | " if ascii_only else " · "
    return "  " + sep.join(f"({key}){label[len(key):]}" for key, label in HOTKEYS)


def build_table_lines(rows: Iterable[FileRow], ascii_only: bool = False) -> list[str]:
    """Format the per-file build status table. Pure; one line per file."""
    file_icon = "-" if ascii_only else "\U0001f4c4"
    token_icon = "tokens" if ascii_only else "\U0001fa99"
    done = "done" if ascii_only else "done ✅"
    lines: list[str] = []
    for row in rows:
        line = f"  {file_icon} {row.path} | {row.streamed_token_count} {token_icon}"
        if row.finished:
            line += f" | {done}"
        lines.append(line)
    return lines


class RenderScheduler:
    """Fixed-period ticker that redraws when the session state is dirty.

    Owns the render cursor, so a fresh scheduler always starts from a clean
    terminal position.
    """

    def __init__(
        self,
        state: SessionState,
        ui: UI,
        interval: float = DEFAULT_INTERVAL,
    ) -> None:
        self._state = state
        self._ui = ui
        self.interval = interval
        self.cursor = RenderCursor()
        self.passes = 0

    def render(self) -> bool:
        """Run one render pass if anything changed. Returns True if drawn."""
        state = self._state
        if not state.dirty or state.failed:
            return False
        state.dirty = False
        self.render_snapshot(state.snapshot())
        return True

    def render_snapshot(self, snapshot: SessionSnapshot) -> None:
        if snapshot.phase is Phase.FAILED:
            return
        if snapshot.phase is Phase.REPLYING:
            if snapshot.reply.started:
                self._ui.draw_reply(snapshot.reply.text)
                self.passes += 1
            return
        if snapshot.rows:
            self._ui.draw_build_table(snapshot.rows, self.cursor, snapshot.all_files_finished)
            self.passes += 1

    def reset(self) -> None:
        self.cursor.reset()

    async def run(self) -> None:
        """Tick until cancelled."""
        while True:
            await anyio.sleep(self.interval)
            self.render()
