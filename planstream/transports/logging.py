"""Transport wrapper that appends streamed chunks to a log file."""

from __future__ import annotations

from pathlib import Path

from planstream.errors import PersistenceError
from planstream.stream import ChunkMessage, StreamChunk
from planstream.transports.base import ChunkCallback, ProposalRequest, RequestMetadata, Transport


class LoggingTransport:
    """Record every chunk as a JSON line before forwarding it.

    Failures to open or write the log surface as PersistenceError, so they
    fail the session like any other persistence problem.
    """

    def __init__(self, transport: Transport, log_path: Path) -> None:
        self._transport = transport
        self._log_path = log_path

    @property
    def name(self) -> str:
        return self._transport.name

    async def propose(self, request: ProposalRequest, on_chunk: ChunkCallback) -> RequestMetadata:
        try:
            self._log_path.parent.mkdir(parents=True, exist_ok=True)
            handle = self._log_path.open("a", encoding="utf-8")
        except OSError as exc:
            raise PersistenceError(f"failed to open session log: {exc}") from exc

        def _record(chunk: StreamChunk) -> object:
            line = ChunkMessage.from_chunk(chunk).model_dump_json(by_alias=True)
            try:
                handle.write(f"{line}\n")
                handle.flush()
            except OSError as exc:
                raise PersistenceError(f"failed to write session log: {exc}") from exc
            return on_chunk(chunk)

        with handle:
            return await self._transport.propose(request, _record)

    async def abort(self, proposal_id: str) -> None:
        await self._transport.abort(proposal_id)
