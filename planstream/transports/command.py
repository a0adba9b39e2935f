"""Transport that talks to a local server command over stdio."""

from __future__ import annotations

import os
import signal
import subprocess
from collections.abc import AsyncIterator
from pathlib import Path

import anyio
from anyio.abc import ByteReceiveStream, Process
from anyio.streams.buffered import BufferedByteReceiveStream

from planstream.errors import PlanStreamError, ProtocolError, TransportError
from planstream.stream import parse_chunk_line
from planstream.transports.base import ChunkCallback, ProposalRequest, RequestMetadata

MAX_LINE_BYTES = 4 * 1024 * 1024
STDERR_TAIL_CHARS = 400


class CommandTransport:
    """Run a shell command per proposal.

    The request is written to the command's stdin as one JSON line. The
    command answers with one JSON chunk per line on stdout.
    """

    def __init__(self, command: str, cwd: Path | None = None):
        """Initialize with command string.

        Args:
            command: Shell command implementing the proposal service.
            cwd: Working directory for the command.
        """
        self._command = command
        self._cwd = cwd
        self._process: Process | None = None

    @property
    def name(self) -> str:
        """Human-readable transport name."""
        return f"command ({self._command})"

    async def propose(self, request: ProposalRequest, on_chunk: ChunkCallback) -> RequestMetadata:
        """Run the command and forward every chunk it prints."""
        payload = request.model_dump_json(by_alias=True).encode("utf-8") + b"\n"
        stderr_parts: list[bytes] = []
        chunk_count = 0
        failure: PlanStreamError | None = None

        try:
            process = await anyio.open_process(
                self._command,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                cwd=self._cwd,
                start_new_session=True,
            )
        except OSError as exc:
            raise TransportError(f"failed to start server command: {exc}") from exc

        async with process:
            self._process = process
            try:
                async with anyio.create_task_group() as tg:
                    if process.stderr is not None:
                        tg.start_soon(_collect, process.stderr, stderr_parts)
                    try:
                        await _send_request(process, payload)
                        if process.stdout is not None:
                            stream = BufferedByteReceiveStream(process.stdout)
                            async for line in _read_lines(stream):
                                on_chunk(parse_chunk_line(line))
                                chunk_count += 1
                    except PlanStreamError as exc:
                        failure = exc
                        if process.returncode is None:
                            _signal_group(process, signal.SIGKILL)
                returncode = await process.wait()
            finally:
                self._process = None
                if process.returncode is None:
                    # Cancelled mid-stream: take the whole server tree down.
                    _signal_group(process, signal.SIGKILL)

        if failure is not None:
            raise failure

        if returncode != 0:
            stderr = b"".join(stderr_parts).decode("utf-8", errors="replace").strip()
            detail = f": {stderr[-STDERR_TAIL_CHARS:]}" if stderr else ""
            raise TransportError(f"server command exited with status {returncode}{detail}")

        return RequestMetadata(chunk_count=chunk_count, returncode=returncode)

    async def abort(self, proposal_id: str) -> None:
        """Terminate the running command and everything it started, if any."""
        _ = proposal_id
        process = self._process
        if process is not None and process.returncode is None:
            _signal_group(process, signal.SIGTERM)


def _signal_group(process: Process, sig: signal.Signals) -> None:
    # The command runs in its own session, so its pid is also its group id.
    try:
        os.killpg(process.pid, sig)
    except ProcessLookupError:
        return


async def _send_request(process: Process, payload: bytes) -> None:
    if process.stdin is None:
        return
    try:
        await process.stdin.send(payload)
    except (
        anyio.BrokenResourceError,
        anyio.ClosedResourceError,
        BrokenPipeError,
        ConnectionResetError,
    ):
        # The server stopped reading; its exit status and stderr say why.
        return
    finally:
        await process.stdin.aclose()


async def _read_lines(stream: BufferedByteReceiveStream) -> AsyncIterator[str]:
    while True:
        try:
            raw = await stream.receive_until(b"\n", MAX_LINE_BYTES)
        except anyio.IncompleteRead:
            # EOF: a final line without a trailing newline is still a line
            raw = stream.buffer
            if raw.strip():
                yield _decode_line(raw)
            return
        except anyio.DelimiterNotFound as exc:
            raise TransportError("stream line exceeds maximum size") from exc
        if raw.strip():
            yield _decode_line(raw)


def _decode_line(raw: bytes) -> str:
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise ProtocolError(f"stream line is not valid UTF-8: {exc}") from exc


async def _collect(stream: ByteReceiveStream, parts: list[bytes]) -> None:
    async for data in stream:
        parts.append(data)
