"""Stream chunk types and wire payload schemas."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from planstream.errors import ProtocolError, TransportError

# Sentinel content values that open a phase instead of carrying payload.
DESCRIPTION_PHASE = "@@describing@@"
BUILD_PHASE = "@@building@@"


class StreamState(str, Enum):
    """Tagged state of a streamed chunk."""

    REPLYING = "replying"
    REVISING = "revising"
    DESCRIBING = "describing"
    BUILDING = "building"
    FINISHED = "finished"


@dataclass(frozen=True)
class StreamChunk:
    """One incremental unit of a proposal stream."""

    state: StreamState
    content: str = ""
    proposal_id: str = ""
    error: Exception | None = None

    @property
    def is_phase_marker(self) -> bool:
        return self.content in (DESCRIPTION_PHASE, BUILD_PHASE)


class ChunkMessage(BaseModel):
    """JSON-line representation of a chunk as sent by a transport."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    proposal_id: str = Field(default="", alias="proposalId")
    state: StreamState
    content: str = ""
    error: str | None = None

    def to_chunk(self) -> StreamChunk:
        error = TransportError(self.error) if self.error else None
        return StreamChunk(
            state=self.state,
            content=self.content,
            proposal_id=self.proposal_id,
            error=error,
        )

    @classmethod
    def from_chunk(cls, chunk: StreamChunk) -> ChunkMessage:
        return cls(
            proposal_id=chunk.proposal_id,
            state=chunk.state,
            content=chunk.content,
            error=str(chunk.error) if chunk.error is not None else None,
        )


class PlanDescription(BaseModel):
    """Summary of the plan a proposal produced."""

    model_config = ConfigDict(populate_by_name=True)

    made_plan: bool = Field(default=False, alias="madePlan")
    files: list[str] = Field(default_factory=list)
    response_timestamp: str = Field(default="", alias="responseTimestamp")

    @field_validator("files")
    @classmethod
    def _unique_paths(cls, files: list[str]) -> list[str]:
        seen: set[str] = set()
        for path in files:
            if path in seen:
                raise ValueError(f"duplicate file path: {path}")
            seen.add(path)
        return files

    @property
    def has_files(self) -> bool:
        return self.made_plan and bool(self.files)


class FileFragment(BaseModel):
    """Building-phase payload: a piece of one file's record."""

    model_config = ConfigDict(extra="forbid")

    path: str = Field(min_length=1)
    content: str


class FileRecord(BaseModel):
    """A completed per-file record decoded from buffered fragments."""

    model_config = ConfigDict(extra="allow")

    path: str = ""
    content: str


def parse_chunk_line(line: str) -> StreamChunk:
    """Parse one JSON line from a transport into a chunk."""
    try:
        return ChunkMessage.model_validate_json(line).to_chunk()
    except ValidationError as exc:
        raise ProtocolError(f"invalid stream chunk: {_first_error(exc)}") from exc


def parse_description(content: str) -> PlanDescription:
    """Parse the Describing-phase payload."""
    try:
        return PlanDescription.model_validate_json(content)
    except ValidationError as exc:
        raise ProtocolError(f"error parsing plan description: {_first_error(exc)}") from exc


def parse_fragment(content: str) -> FileFragment:
    """Parse a Building-phase chunk into its (path, fragment) pair."""
    try:
        return FileFragment.model_validate_json(content)
    except ValidationError as exc:
        raise ProtocolError(f"invalid file fragment: {_first_error(exc)}") from exc


def _first_error(exc: ValidationError) -> str:
    errors: list[dict[str, Any]] = list(exc.errors())
    if not errors:
        return str(exc)
    error = errors[0]
    location = ".".join(str(part) for part in error.get("loc", ()))
    message = error.get("msg", "invalid value")
    return f"{location}: {message}" if location else message
