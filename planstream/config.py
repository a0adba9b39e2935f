"""Configuration handling for planstream."""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from pathlib import Path

from planstream.machine import REVEAL_DELAY
from planstream.render import DEFAULT_INTERVAL
from planstream.session_log import resolve_log_dir

UI_MODES = {"auto", "rich", "plain"}


def _parse_bool(value: str | None) -> bool:
    """Parse boolean from environment variable."""
    if value is None:
        return False
    return bool(re.match(r"^(1|true|yes)$", value.lower()))


def _parse_mode(value: str | None, default: str, allowed: set[str]) -> str:
    """Parse a mode value with allowed options."""
    if value is None:
        return default
    lowered = value.lower().strip()
    if lowered in allowed:
        return lowered
    return default


def _parse_ms(value: str | None, default: float) -> float:
    """Parse a millisecond setting into seconds."""
    if value is None or not value.strip():
        return default
    return float(value) / 1000


@dataclass
class SessionConfig:
    """Configuration for proposal sessions."""

    plan_dir: Path = field(default_factory=lambda: Path(".planstream"))
    server_cmd: str | None = None

    # UI config
    ui_mode: str = "auto"  # auto|rich|plain
    no_color: bool = False
    ascii_only: bool = False
    listen_keys: bool = True

    # Timing, in seconds
    render_interval: float = DEFAULT_INTERVAL
    reveal_delay: float = REVEAL_DELAY

    # None means <plan_dir>/logs
    log_dir: Path | None = None

    @classmethod
    def from_env(cls, root_dir: Path | None = None) -> SessionConfig:
        """Load configuration from environment variables."""
        if root_dir is None:
            root_dir = Path.cwd()

        log_dir_value = os.environ.get("PLANSTREAM_LOG_DIR")
        return cls(
            plan_dir=root_dir / os.environ.get("PLANSTREAM_DIR", ".planstream"),
            server_cmd=os.environ.get("PLANSTREAM_SERVER_CMD") or None,
            ui_mode=_parse_mode(os.environ.get("PLANSTREAM_UI"), "auto", UI_MODES),
            no_color="NO_COLOR" in os.environ,
            ascii_only=_parse_bool(os.environ.get("PLANSTREAM_ASCII")),
            listen_keys=os.environ.get("PLANSTREAM_KEYS", "1") != "0",
            render_interval=_parse_ms(os.environ.get("PLANSTREAM_RENDER_MS"), DEFAULT_INTERVAL),
            reveal_delay=_parse_ms(os.environ.get("PLANSTREAM_REVEAL_MS"), REVEAL_DELAY),
            log_dir=Path(log_dir_value) if log_dir_value else None,
        )

    @property
    def resolved_log_dir(self) -> Path:
        return resolve_log_dir(self.plan_dir, self.log_dir)

    def validate(self) -> list[str]:
        """Validate configuration, returning list of errors."""
        errors: list[str] = []

        if not self.server_cmd:
            errors.append("No server command configured (set PLANSTREAM_SERVER_CMD or --server-cmd)")

        if self.render_interval <= 0:
            errors.append(f"Render interval must be positive (got: {self.render_interval}s)")

        if self.reveal_delay < 0:
            errors.append(f"Reveal delay must be non-negative (got: {self.reveal_delay}s)")

        if self.plan_dir.exists() and not self.plan_dir.is_dir():
            errors.append(f"Plan directory is not a directory: {self.plan_dir}")

        return errors
