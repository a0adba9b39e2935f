"""Pytest fixtures for planstream tests."""

from __future__ import annotations

import os
from collections.abc import Generator
from pathlib import Path

import pytest

from fakes import MemoryStore, RecordingUI


@pytest.fixture
def temp_project(tmp_path: Path) -> Generator[Path, None, None]:
    """Create a temporary project directory and run from inside it."""
    original_dir = os.getcwd()
    os.chdir(tmp_path)

    yield tmp_path

    os.chdir(original_dir)


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Clear planstream-related environment variables."""
    env_vars = [
        "PLANSTREAM_DIR",
        "PLANSTREAM_SERVER_CMD",
        "PLANSTREAM_UI",
        "PLANSTREAM_FORCE_RICH",
        "PLANSTREAM_ASCII",
        "PLANSTREAM_RENDER_MS",
        "PLANSTREAM_REVEAL_MS",
        "PLANSTREAM_KEYS",
        "PLANSTREAM_LOG_DIR",
        "NO_COLOR",
    ]
    for var in env_vars:
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def ui() -> RecordingUI:
    return RecordingUI()


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()
