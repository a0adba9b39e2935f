"""Raw keypress input for interactive sessions."""

from __future__ import annotations

import os
import select
import sys
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING

import anyio

from planstream.errors import PlanStreamError, TransportError

if TYPE_CHECKING:
    from typing import TextIO

ESCAPE_TIMEOUT = 0.05
POLL_INTERVAL = 0.2


def can_listen(stream: TextIO | None = None) -> bool:
    """Check if raw key input is available."""
    stream = stream or sys.stdin
    try:
        return stream.isatty()
    except (AttributeError, ValueError):
        return False


@contextmanager
def key_input_mode(stream: TextIO | None = None) -> Iterator[None]:
    """Put the terminal in cbreak mode (no echo, no line buffering).

    Output processing and signals stay enabled, so Ctrl+C still interrupts.
    """
    import termios
    import tty

    fd = (stream or sys.stdin).fileno()
    old_attrs = termios.tcgetattr(fd)
    try:
        tty.setcbreak(fd)
        yield
    finally:
        termios.tcsetattr(fd, termios.TCSADRAIN, old_attrs)


def _read_escape_sequence(fd: int) -> bytes:
    """After ESC, read the rest of the sequence if one follows quickly."""
    seq = b"\x1b"
    while True:
        ready, _, _ = select.select([fd], [], [], ESCAPE_TIMEOUT)
        if not ready:
            break
        byte = os.read(fd, 1)
        if not byte:
            break
        seq += byte
        # CSI sequences end with a byte in 0x40-0x7E (after "[" and params)
        if len(seq) >= 3 and 0x40 <= seq[-1] <= 0x7E:
            break
    return seq


def read_key(stream: TextIO | None = None, timeout: float | None = None) -> str:
    """Block until one keypress is available and return it.

    Escape sequences (arrows and the like) come back whole. Returns "" when
    ``timeout`` passes without input. Raises EOFError when the input is closed.
    """
    fd = (stream or sys.stdin).fileno()
    if timeout is not None:
        ready, _, _ = select.select([fd], [], [], timeout)
        if not ready:
            return ""
    first = os.read(fd, 1)
    if not first:
        raise EOFError("keyboard input closed")
    byte = first[0]
    if byte == 0x1B:
        return _read_escape_sequence(fd).decode("utf-8", errors="replace")
    if byte < 0x80:
        return chr(byte)
    if byte < 0xC0 or byte >= 0xF8:
        # Stray continuation byte or invalid lead: one unreadable key.
        return "\ufffd"
    if byte < 0xE0:
        rest = 1
    elif byte < 0xF0:
        rest = 2
    else:
        rest = 3
    return (first + _read_continuation(fd, rest)).decode("utf-8", errors="replace")


def _read_continuation(fd: int, count: int) -> bytes:
    """Read up to ``count`` bytes, stopping early if the sequence is cut short."""
    data = b""
    while len(data) < count:
        ready, _, _ = select.select([fd], [], [], ESCAPE_TIMEOUT)
        if not ready:
            break
        more = os.read(fd, count - len(data))
        if not more:
            break
        data += more
    return data


def poll_key() -> str:
    """Read one key from stdin, returning "" after ``POLL_INTERVAL`` of silence."""
    return read_key(timeout=POLL_INTERVAL)


class InputListener:
    """Forward keypresses from a blocking reader until cancelled.

    The blocking read runs in a worker thread that is abandoned on
    cancellation. The default reader polls, so an abandoned read returns
    within ``POLL_INTERVAL`` and the thread can exit.
    """

    def __init__(self, reader: Callable[[], str] | None = None) -> None:
        self._reader = reader or poll_key
        self.keys_read = 0

    async def run(
        self,
        on_key: Callable[[str], None],
        on_error: Callable[[PlanStreamError], None],
    ) -> None:
        while True:
            try:
                key = await anyio.to_thread.run_sync(self._reader, abandon_on_cancel=True)
            except (OSError, EOFError) as exc:
                on_error(TransportError(f"failed to read keyboard input: {exc}"))
                return
            if not key:
                continue
            self.keys_read += 1
            on_key(key)
