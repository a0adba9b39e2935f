"""Tests for session_log module."""

from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path

from planstream.errors import TransportError
from planstream.session_log import new_session_log, resolve_log_dir, write_summary


def test_resolve_log_dir(tmp_path: Path) -> None:
    assert resolve_log_dir(tmp_path) == tmp_path / "logs"
    assert resolve_log_dir(tmp_path, Path("custom")) == tmp_path / "custom"
    assert resolve_log_dir(tmp_path, Path("/abs/logs")) == Path("/abs/logs")


def test_new_session_log_names(tmp_path: Path) -> None:
    now = datetime(2026, 5, 6, 7, 8, 9)
    paths = new_session_log(tmp_path / "logs", "tell me", now=now)

    assert paths.log_path == tmp_path / "logs" / "20260506-070809_tell_me.log"
    assert paths.summary_path == tmp_path / "logs" / "20260506-070809_tell_me.summary.json"
    assert (tmp_path / "logs").is_dir()


def test_write_summary(tmp_path: Path) -> None:
    paths = new_session_log(tmp_path, "tell")
    error = TransportError("connection reset")

    payload = write_summary(
        paths,
        outcome="failed",
        proposal_id="p1",
        reply_tokens=12,
        files=("a.py",),
        error=error.to_payload(),
    )

    saved = json.loads(paths.summary_path.read_text())
    assert saved == payload
    assert saved["outcome"] == "failed"
    assert saved["files"] == ["a.py"]
    assert saved["error"] == {"code": "transport_error", "message": "connection reset"}
    assert saved["log_path"] == str(paths.log_path)
