"""Plan state and conversation persistence."""

from __future__ import annotations

import json
import os
from datetime import datetime, timezone
from pathlib import Path, PurePosixPath
from typing import Protocol

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from planstream.errors import PersistenceError
from planstream.stream import FileRecord, PlanDescription

STATE_FILE = "plan.json"
CONVERSATION_FILE = "conversation.jsonl"
PROPOSALS_DIR = "proposals"


def string_ts(now: datetime | None = None) -> str:
    """Return a UTC timestamp string for persisted records."""
    return (now or datetime.now(timezone.utc)).isoformat()


def is_safe_id(value: str) -> bool:
    """Check that a proposal id can name a single directory under the plan."""
    if not value or value in (".", ".."):
        return False
    return "/" not in value and "\\" not in value and "\0" not in value


class PlanState(BaseModel):
    """Current position of the plan in the proposal chain."""

    model_config = ConfigDict(populate_by_name=True)

    proposal_id: str = Field(default="", alias="proposalId")
    root_id: str = Field(default="", alias="rootId")
    description: PlanDescription | None = None
    updated_at: str = Field(default="", alias="updatedAt")


class ConversationEntry(BaseModel):
    """One prompt/reply exchange appended to the conversation log."""

    model_config = ConfigDict(populate_by_name=True)

    timestamp: str
    response_timestamp: str = Field(default="", alias="responseTimestamp")
    proposal_id: str = Field(default="", alias="proposalId")
    prompt: str
    prompt_tokens: int = Field(default=0, alias="promptTokens")
    reply: str
    reply_tokens: int = Field(default=0, alias="replyTokens")


class PlanPersistence(Protocol):
    """Persistence used by a proposal session."""

    def get_state(self) -> PlanState:
        ...

    def set_state(self, state: PlanState, timestamp: str) -> None:
        ...

    def append_conversation(self, entry: ConversationEntry) -> None:
        ...

    def save_file_record(self, proposal_id: str, record: FileRecord) -> Path:
        ...


class PlanStore:
    """File-backed persistence rooted at a plan directory."""

    def __init__(self, root: Path) -> None:
        self.root = root

    @property
    def state_path(self) -> Path:
        return self.root / STATE_FILE

    @property
    def conversation_path(self) -> Path:
        return self.root / CONVERSATION_FILE

    def get_state(self) -> PlanState:
        """Load plan state; a missing file is an empty plan."""
        if not self.state_path.exists():
            return PlanState()
        try:
            return PlanState.model_validate_json(self.state_path.read_text(encoding="utf-8"))
        except OSError as exc:
            raise PersistenceError(f"failed to read plan state: {exc}") from exc
        except ValidationError as exc:
            raise PersistenceError(f"invalid plan state in {self.state_path}") from exc

    def set_state(self, state: PlanState, timestamp: str) -> None:
        """Write plan state, replacing the previous file atomically."""
        state.updated_at = timestamp
        payload = state.model_dump_json(by_alias=True, indent=2)
        self._write_atomic(self.state_path, payload + "\n", "plan state")

    def append_conversation(self, entry: ConversationEntry) -> None:
        line = entry.model_dump_json(by_alias=True)
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            with self.conversation_path.open("a", encoding="utf-8") as handle:
                handle.write(f"{line}\n")
        except OSError as exc:
            raise PersistenceError(f"failed to append conversation: {exc}") from exc

    def read_conversation(self) -> list[ConversationEntry]:
        if not self.conversation_path.exists():
            return []
        try:
            lines = self.conversation_path.read_text(encoding="utf-8").splitlines()
            return [ConversationEntry.model_validate_json(line) for line in lines if line.strip()]
        except OSError as exc:
            raise PersistenceError(f"failed to read conversation: {exc}") from exc
        except ValidationError as exc:
            raise PersistenceError(f"invalid conversation log in {self.conversation_path}") from exc

    def record_path(self, proposal_id: str, file_path: str) -> Path:
        """Resolve where a completed record for ``file_path`` is stored."""
        relative = PurePosixPath(file_path)
        if relative.is_absolute() or ".." in relative.parts:
            raise PersistenceError(f"refusing to store record outside the plan: {file_path}")
        if not is_safe_id(proposal_id):
            raise PersistenceError(f"refusing to store record for proposal id {proposal_id!r}")
        base = self.root / PROPOSALS_DIR / proposal_id / "files"
        return base.joinpath(*relative.parts).with_name(relative.name + ".json")

    def save_file_record(self, proposal_id: str, record: FileRecord) -> Path:
        target = self.record_path(proposal_id, record.path)
        payload = json.dumps(record.model_dump(), ensure_ascii=False, indent=2)
        self._write_atomic(target, payload + "\n", f"record for {record.path}")
        return target

    def _write_atomic(self, path: Path, content: str, label: str) -> None:
        tmp_path = path.with_name(f".{path.name}.tmp")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(content, encoding="utf-8")
            os.replace(tmp_path, path)
        except OSError as exc:
            raise PersistenceError(f"failed to write {label}: {exc}") from exc
