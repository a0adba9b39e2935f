"""Base transport protocol for proposal streams."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol

from pydantic import BaseModel, ConfigDict, Field

from planstream.stream import StreamChunk

ChunkCallback = Callable[[StreamChunk], Any]


class ProposalRequest(BaseModel):
    """Request sent to the plan-generation service."""

    model_config = ConfigDict(populate_by_name=True)

    prompt: str
    parent_id: str = Field(default="", alias="parentProposalId")
    root_id: str = Field(default="", alias="rootId")


@dataclass(frozen=True)
class RequestMetadata:
    """What the transport reports once the stream has ended."""

    chunk_count: int
    returncode: int | None = None


class Transport(Protocol):
    """Protocol for proposal transports."""

    @property
    def name(self) -> str:
        """Human-readable transport name for display."""
        ...

    async def propose(self, request: ProposalRequest, on_chunk: ChunkCallback) -> RequestMetadata:
        """Send a prompt and deliver each streamed chunk to ``on_chunk``.

        Returns once the stream has ended.

        Raises:
            TransportError: the request could not be sent or the stream broke.
        """
        ...

    async def abort(self, proposal_id: str) -> None:
        """Stop the running proposal on the server side."""
        ...
