"""Tests for transports package."""

from __future__ import annotations

import json
import time
from pathlib import Path

import anyio
import pytest

from planstream.errors import PersistenceError, ProtocolError, TransportError
from planstream.stream import StreamChunk, StreamState
from planstream.transports import CommandTransport, LoggingTransport, ProposalRequest, get_transport

from fakes import ScriptedTransport, id_chunk, proposal_chunks, reply_chunk, server_script


def _request() -> ProposalRequest:
    return ProposalRequest(prompt="add docs", parent_id="p0", root_id="root")


class TestCommandTransport:
    """Tests for CommandTransport."""

    def test_forwards_chunks_in_order(self, tmp_path: Path) -> None:
        expected = proposal_chunks(files={"a.py": "x = 1\n"})
        transport = CommandTransport(server_script(tmp_path, expected), cwd=tmp_path)
        received: list[StreamChunk] = []

        metadata = anyio.run(transport.propose, _request(), received.append)

        assert received == expected
        assert metadata.chunk_count == len(expected)
        assert metadata.returncode == 0

    def test_request_written_to_stdin(self, tmp_path: Path) -> None:
        transport = CommandTransport(server_script(tmp_path, [id_chunk()]), cwd=tmp_path)

        anyio.run(transport.propose, _request(), lambda chunk: None)

        request = json.loads((tmp_path / "request.json").read_text())
        assert request == {"prompt": "add docs", "parentProposalId": "p0", "rootId": "root"}

    def test_error_line_becomes_error_chunk(self, tmp_path: Path) -> None:
        line = '{"proposalId":"p1","state":"replying","content":"","error":"model overloaded"}'
        transport = CommandTransport(server_script(tmp_path, raw_lines=[line]), cwd=tmp_path)
        received: list[StreamChunk] = []

        anyio.run(transport.propose, _request(), received.append)

        assert isinstance(received[0].error, TransportError)
        assert str(received[0].error) == "model overloaded"

    def test_invalid_line_raises_protocol_error(self, tmp_path: Path) -> None:
        command = server_script(tmp_path, [id_chunk()], raw_lines=["not json"])
        transport = CommandTransport(command, cwd=tmp_path)
        received: list[StreamChunk] = []

        with pytest.raises(ProtocolError, match="invalid stream chunk"):
            anyio.run(transport.propose, _request(), received.append)

        assert received == [id_chunk()]

    def test_nonzero_exit_raises_with_stderr(self, tmp_path: Path) -> None:
        command = server_script(tmp_path, [id_chunk()], exit_code=3, stderr="quota exceeded")
        transport = CommandTransport(command, cwd=tmp_path)

        with pytest.raises(TransportError, match="status 3: quota exceeded"):
            anyio.run(transport.propose, _request(), lambda chunk: None)

    def test_missing_command(self, tmp_path: Path) -> None:
        transport = CommandTransport("planstream-no-such-server-xyz", cwd=tmp_path)

        with pytest.raises(TransportError, match="exited with status 127"):
            anyio.run(transport.propose, _request(), lambda chunk: None)

    def test_abort_terminates_server(self, tmp_path: Path) -> None:
        command = server_script(tmp_path, [id_chunk()], linger=True)
        transport = CommandTransport(command, cwd=tmp_path)
        received: list[StreamChunk] = []
        errors: list[TransportError] = []

        async def main() -> None:
            async def run() -> None:
                try:
                    await transport.propose(_request(), received.append)
                except TransportError as exc:
                    errors.append(exc)

            async with anyio.create_task_group() as tg:
                tg.start_soon(run)
                while not received:
                    await anyio.sleep(0.01)
                await transport.abort("p1")

        started = time.monotonic()
        anyio.run(main)

        assert time.monotonic() - started < 4
        assert len(errors) == 1
        assert "exited with status" in errors[0].message

    def test_cancel_kills_server_tree(self, tmp_path: Path) -> None:
        # A background child would outlive a killed shell wrapper and leave a marker.
        marker = tmp_path / "survived"
        command = f"(sleep 1; touch {marker}) & wait"
        transport = CommandTransport(command, cwd=tmp_path)

        async def main() -> None:
            with anyio.move_on_after(0.5):
                await transport.propose(_request(), lambda chunk: None)

        anyio.run(main)

        time.sleep(1.5)
        assert not marker.exists()

    def test_invalid_utf8_line_raises_protocol_error(self, tmp_path: Path) -> None:
        transport = CommandTransport("cat > /dev/null; printf '\\377\\n'", cwd=tmp_path)

        with pytest.raises(ProtocolError, match="not valid UTF-8"):
            anyio.run(transport.propose, _request(), lambda chunk: None)

    def test_startup_crash_reports_exit_status_and_stderr(self, tmp_path: Path) -> None:
        # Exits without reading stdin.
        transport = CommandTransport("echo 'bad config' >&2; exit 4", cwd=tmp_path)

        with pytest.raises(TransportError, match="status 4: bad config"):
            anyio.run(transport.propose, _request(), lambda chunk: None)

    def test_abort_without_running_process_is_noop(self) -> None:
        anyio.run(CommandTransport("true").abort, "p1")


class TestLoggingTransport:
    """Tests for LoggingTransport."""

    def test_appends_chunk_lines(self, tmp_path: Path) -> None:
        log_path = tmp_path / "logs" / "session.log"
        inner = ScriptedTransport(
            [
                id_chunk(),
                reply_chunk("Hi"),
                StreamChunk(StreamState.REPLYING, "", "p1", error=TransportError("gone")),
            ]
        )
        transport = LoggingTransport(inner, log_path)
        received: list[StreamChunk] = []

        anyio.run(transport.propose, _request(), received.append)

        assert len(received) == 3
        lines = [json.loads(line) for line in log_path.read_text().splitlines()]
        assert lines[0] == {"proposalId": "", "state": "replying", "content": "p1", "error": None}
        assert lines[1]["content"] == "Hi"
        assert lines[2]["error"] == "gone"

    def test_unopenable_log_raises_persistence_error(self, tmp_path: Path) -> None:
        inner = ScriptedTransport([id_chunk()])
        transport = LoggingTransport(inner, tmp_path)

        with pytest.raises(PersistenceError, match="failed to open session log"):
            anyio.run(transport.propose, _request(), lambda chunk: None)

        assert inner.requests == []

    def test_abort_is_forwarded(self, tmp_path: Path) -> None:
        inner = ScriptedTransport([])
        anyio.run(LoggingTransport(inner, tmp_path / "x.log").abort, "p9")
        assert inner.aborted == ["p9"]


def test_get_transport_wraps_with_logging(tmp_path: Path) -> None:
    assert isinstance(get_transport("cat"), CommandTransport)
    wrapped = get_transport("cat", log_path=tmp_path / "a.log")
    assert isinstance(wrapped, LoggingTransport)
    assert wrapped.name == "command (cat)"
