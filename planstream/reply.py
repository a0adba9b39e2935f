"""Running reply buffer for streamed text."""

from __future__ import annotations


class ReplyAccumulator:
    """Append-only reply text with an incremental token count.

    The server streams one model token per reply chunk, so each appended
    fragment counts as one token and the text is never re-scanned.
    """

    def __init__(self) -> None:
        self._parts: list[str] = []
        self._text_cache: str | None = ""
        self._token_count = 0
        self._finished = False

    def append(self, fragment: str) -> None:
        if self._finished:
            raise RuntimeError("reply already finished")
        self._parts.append(fragment)
        self._token_count += 1
        self._text_cache = None

    @property
    def text(self) -> str:
        if self._text_cache is None:
            self._text_cache = "".join(self._parts)
            self._parts = [self._text_cache]
        return self._text_cache

    @property
    def token_count(self) -> int:
        return self._token_count

    @property
    def finished(self) -> bool:
        return self._finished

    def finish(self) -> int:
        """Close the reply and return the final token count."""
        self._finished = True
        return self._token_count
