"""Per-file record decoding for the Building phase.

Framing: the fragments streamed for one file concatenate to a single compact
JSON object followed by a newline. Compact JSON never contains a raw newline,
so the terminator is unambiguous:

- no terminator yet: the record is incomplete, keep buffering
- terminator seen: parse the buffered text once; failure means malformed
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field

from pydantic import ValidationError

from planstream.errors import ProtocolError
from planstream.stream import FileRecord

RECORD_TERMINATOR = "\n"


@dataclass
class PerFileBuildState:
    """Build progress for one file of the plan."""

    streamed_token_count: int = 0
    finished: bool = False
    _parts: list[str] = field(default_factory=list, repr=False)

    @property
    def partial_buffer(self) -> str:
        return "".join(self._parts)


def new_builds(paths: Iterable[str]) -> dict[str, PerFileBuildState]:
    """Create empty build state for each described file, preserving order."""
    return {path: PerFileBuildState() for path in paths}


def all_finished(builds: dict[str, PerFileBuildState]) -> bool:
    return all(build.finished for build in builds.values())


def decode(
    path: str,
    fragment: str,
    builds: dict[str, PerFileBuildState],
) -> FileRecord | None:
    """Feed one fragment for ``path``; return the record once it is complete.

    Raises:
        ProtocolError: unknown or already finished path, data after the
            terminator, or a terminated record that does not parse.
    """
    build = builds.get(path)
    if build is None:
        raise ProtocolError(f"file not in plan description: {path}")
    if build.finished:
        raise ProtocolError(f"fragment received for finished file: {path}")

    build.streamed_token_count += 1

    end = fragment.find(RECORD_TERMINATOR)
    if end < 0:
        build._parts.append(fragment)
        return None

    trailing = fragment[end + len(RECORD_TERMINATOR):]
    if trailing.strip():
        raise ProtocolError(f"data after record terminator for file: {path}")

    build._parts.append(fragment[:end])
    body = build.partial_buffer
    try:
        record = FileRecord.model_validate_json(body)
    except ValidationError as exc:
        raise ProtocolError(f"malformed record for file {path}: {exc.error_count()} error(s)") from exc

    build._parts.clear()
    build.finished = True
    return record.model_copy(update={"path": path})
