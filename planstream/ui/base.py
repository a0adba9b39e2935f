"""Base UI protocol for proposal sessions."""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from planstream.render import RenderCursor
    from planstream.state import FileRow


class UI(Protocol):
    """Protocol for terminal UI implementations."""

    def section(self, text: str) -> None:
        """Display a section header."""
        ...

    def kv(self, key: str, value: str) -> None:
        """Display a key-value pair."""
        ...

    def info(self, text: str) -> None:
        """Display info message (dim)."""
        ...

    def ok(self, text: str) -> None:
        """Display success message (green)."""
        ...

    def warn(self, text: str) -> None:
        """Display warning message (yellow)."""
        ...

    def err(self, text: str) -> None:
        """Display error message (red) on the error stream."""
        ...

    def start_spinner(self, text: str) -> None:
        """Show a transient progress indicator."""
        ...

    def stop_spinner(self) -> None:
        """Remove the progress indicator, if shown."""
        ...

    def enter_reply_screen(self) -> None:
        """Switch to the full-screen reply view."""
        ...

    def leave_reply_screen(self) -> None:
        """Return from the reply view to the main screen."""
        ...

    def draw_reply(self, text: str) -> None:
        """Redraw the reply view with the current reply text."""
        ...

    def print_reply(self, text: str) -> None:
        """Print the finished reply on the main screen."""
        ...

    def building_header(self) -> None:
        """Announce that plan files are being built."""
        ...

    def draw_build_table(
        self,
        rows: Sequence[FileRow],
        cursor: RenderCursor,
        all_finished: bool,
    ) -> None:
        """Draw the per-file build table, replacing the previous frame."""
        ...

    def next_steps(self, has_files: bool) -> None:
        """Display the commands available after a proposal."""
        ...
