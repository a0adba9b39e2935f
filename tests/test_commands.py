"""Tests for commands module."""

from __future__ import annotations

import anyio
import pytest

from planstream.commands import HotkeyCommands
from planstream.errors import SessionCancelled

from fakes import ScriptedTransport


class TestHotkeyCommands:
    """Tests for HotkeyCommands."""

    @pytest.mark.parametrize("key", ["s", "S"])
    def test_stop_aborts_and_cancels(self, key: str) -> None:
        transport = ScriptedTransport([])
        commands = HotkeyCommands(transport)

        with pytest.raises(SessionCancelled) as excinfo:
            anyio.run(commands, key, "p1")

        assert transport.aborted == ["p1"]
        assert excinfo.value.to_payload() == {"code": "cancelled", "message": "Proposal stopped"}

    def test_stop_before_id_skips_abort(self) -> None:
        transport = ScriptedTransport([])

        with pytest.raises(SessionCancelled):
            anyio.run(HotkeyCommands(transport), "s", "")

        assert transport.aborted == []

    @pytest.mark.parametrize("key", ["x", "q", "\x1b[A", " "])
    def test_other_keys_are_ignored(self, key: str) -> None:
        transport = ScriptedTransport([])
        anyio.run(HotkeyCommands(transport), key, "p1")
        assert transport.aborted == []
