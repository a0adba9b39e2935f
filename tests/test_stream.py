"""Tests for stream module."""

from __future__ import annotations

import pytest

from planstream.errors import ProtocolError, TransportError
from planstream.stream import (
    BUILD_PHASE,
    ChunkMessage,
    StreamChunk,
    StreamState,
    parse_chunk_line,
    parse_description,
    parse_fragment,
)
from planstream.tokens import count_tokens, fmt_tokens


class TestParseChunkLine:
    """Tests for parse_chunk_line."""

    def test_wire_names(self) -> None:
        chunk = parse_chunk_line('{"proposalId":"p1","state":"revising","content":"x"}')
        assert chunk == StreamChunk(StreamState.REVISING, "x", "p1")

    def test_error_field(self) -> None:
        chunk = parse_chunk_line('{"state":"replying","error":"boom"}')
        assert isinstance(chunk.error, TransportError)

    def test_unknown_state(self) -> None:
        with pytest.raises(ProtocolError, match="state"):
            parse_chunk_line('{"state":"dancing"}')

    def test_unknown_field(self) -> None:
        with pytest.raises(ProtocolError):
            parse_chunk_line('{"state":"replying","extra":1}')

    def test_from_chunk_keeps_error_text(self) -> None:
        message = ChunkMessage.from_chunk(
            StreamChunk(StreamState.FINISHED, error=TransportError("late"))
        )
        assert message.error == "late"


class TestPayloads:
    """Tests for Describing and Building payloads."""

    def test_description(self) -> None:
        description = parse_description(
            '{"madePlan":true,"files":["a","b"],"responseTimestamp":"t"}'
        )
        assert description.has_files is True
        assert description.files == ["a", "b"]
        assert description.response_timestamp == "t"

    def test_description_without_plan_has_no_files(self) -> None:
        assert parse_description('{"madePlan":false}').has_files is False

    def test_duplicate_paths_rejected(self) -> None:
        with pytest.raises(ProtocolError, match="duplicate"):
            parse_description('{"madePlan":true,"files":["a","a"]}')

    def test_malformed_description(self) -> None:
        with pytest.raises(ProtocolError, match="plan description"):
            parse_description("{oops")

    def test_fragment(self) -> None:
        fragment = parse_fragment('{"path":"a.py","content":"{\\"con"}')
        assert fragment.path == "a.py"
        assert fragment.content == '{"con'

    def test_fragment_requires_path(self) -> None:
        with pytest.raises(ProtocolError, match="file fragment"):
            parse_fragment('{"path":"","content":"x"}')

    def test_phase_marker(self) -> None:
        assert StreamChunk(StreamState.BUILDING, BUILD_PHASE).is_phase_marker is True
        assert StreamChunk(StreamState.BUILDING, "x").is_phase_marker is False


class TestTokens:
    """Tests for token helpers that need no encoding download."""

    def test_empty_text_has_no_tokens(self) -> None:
        assert count_tokens("") == 0

    def test_fmt_tokens(self) -> None:
        assert fmt_tokens(999) == "999"
        assert fmt_tokens(1_500) == "1.5K"
        assert fmt_tokens(2_000_000) == "2.0M"
