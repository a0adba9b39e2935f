"""Hotkey commands available while a proposal streams."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING

from planstream.errors import SessionCancelled

if TYPE_CHECKING:
    from planstream.transports.base import Transport

KeyHandler = Callable[[str, str], Awaitable[None]]

STOP_KEYS = frozenset({"s", "S"})


class HotkeyCommands:
    """Default key dispatch: ``s`` stops the proposal, other keys are ignored.

    Raising from ``__call__`` ends the session loop with that error.
    """

    def __init__(self, transport: Transport) -> None:
        self._transport = transport

    async def __call__(self, key: str, proposal_id: str) -> None:
        if key in STOP_KEYS:
            if proposal_id:
                await self._transport.abort(proposal_id)
            raise SessionCancelled()
