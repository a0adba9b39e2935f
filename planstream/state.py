"""Session state owned by the proposal state machine."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from planstream.decoder import PerFileBuildState
from planstream.errors import PlanStreamError
from planstream.reply import ReplyAccumulator
from planstream.stream import PlanDescription


class Phase(str, Enum):
    """Where the state machine is in the proposal lifecycle."""

    AWAITING_ID = "awaiting_id"
    REPLYING = "replying"
    DESCRIBING = "describing"
    BUILDING = "building"
    FINISHED = "finished"
    FAILED = "failed"


@dataclass(frozen=True)
class ReplyState:
    text: str
    token_count: int
    started: bool


@dataclass(frozen=True)
class FileRow:
    path: str
    streamed_token_count: int
    finished: bool


@dataclass(frozen=True)
class SessionSnapshot:
    """Read-only view handed to the renderer."""

    phase: Phase
    reply: ReplyState
    rows: tuple[FileRow, ...] = ()
    all_files_finished: bool = False


@dataclass
class SessionState:
    """Mutable state for one proposal. Written only by the state machine."""

    reply: ReplyAccumulator = field(default_factory=ReplyAccumulator)
    phase: Phase = Phase.AWAITING_ID
    proposal_id: str = ""
    root_id: str = ""
    reply_started: bool = False
    description: PlanDescription | None = None
    builds: dict[str, PerFileBuildState] = field(default_factory=dict)
    stream_finished: bool = False
    all_files_finished: bool = False
    dirty: bool = False
    error: PlanStreamError | None = None

    @property
    def completed(self) -> bool:
        return self.stream_finished and self.all_files_finished

    @property
    def failed(self) -> bool:
        return self.phase is Phase.FAILED

    @property
    def terminal(self) -> bool:
        return self.failed or self.completed

    def snapshot(self) -> SessionSnapshot:
        rows = tuple(
            FileRow(
                path=path,
                streamed_token_count=build.streamed_token_count,
                finished=build.finished,
            )
            for path, build in self.builds.items()
        )
        return SessionSnapshot(
            phase=self.phase,
            reply=ReplyState(
                text=self.reply.text,
                token_count=self.reply.token_count,
                started=self.reply_started,
            ),
            rows=rows,
            all_files_finished=self.all_files_finished,
        )
