"""Log artifacts for proposal sessions."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Iterable

_SUMMARY_SUFFIX = ".summary.json"
_NAME_RE = re.compile(r"[^a-zA-Z0-9_.-]+")


@dataclass(frozen=True)
class SessionLogPaths:
    """Files written for one session."""

    log_path: Path
    summary_path: Path


def resolve_log_dir(root: Path, log_dir: Path | None = None) -> Path:
    """Resolve the directory for session logs."""
    if log_dir is None:
        return root / "logs"
    return log_dir if log_dir.is_absolute() else root / log_dir


def new_session_log(
    log_dir: Path,
    command: str,
    now: datetime | None = None,
) -> SessionLogPaths:
    """Reserve log paths for a session and make sure the directory exists."""
    log_dir.mkdir(parents=True, exist_ok=True)
    timestamp = (now or datetime.now()).strftime("%Y%m%d-%H%M%S")
    stem = f"{timestamp}_{_sanitize_name(command)}"
    return SessionLogPaths(
        log_path=log_dir / f"{stem}.log",
        summary_path=log_dir / f"{stem}{_SUMMARY_SUFFIX}",
    )


def write_summary(
    paths: SessionLogPaths,
    *,
    outcome: str,
    proposal_id: str = "",
    reply_tokens: int = 0,
    files: Iterable[str] = (),
    error: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Write the session summary JSON next to the chunk log."""
    payload: dict[str, Any] = {
        "outcome": outcome,
        "proposal_id": proposal_id,
        "reply_tokens": reply_tokens,
        "files": list(files),
        "log_path": str(paths.log_path),
    }
    if error is not None:
        payload["error"] = error
    paths.summary_path.write_text(
        json.dumps(payload, ensure_ascii=False),
        encoding="utf-8",
    )
    return payload


def _sanitize_name(name: str) -> str:
    sanitized = _NAME_RE.sub("_", name.strip())
    return sanitized or "session"
