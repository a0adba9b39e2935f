"""Finite-state machine applying stream chunks to a session."""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Union

import anyio

from planstream import decoder
from planstream.errors import PersistenceError, PlanStreamError, ProtocolError, TransportError
from planstream.state import Phase, SessionState
from planstream.store import ConversationEntry, PlanState, is_safe_id, string_ts
from planstream.stream import (
    StreamChunk,
    StreamState,
    parse_description,
    parse_fragment,
)

if TYPE_CHECKING:
    from planstream.store import PlanPersistence
    from planstream.ui.base import UI

REVEAL_DELAY = 0.7

_PHASE_ORDER = (
    Phase.AWAITING_ID,
    Phase.REPLYING,
    Phase.DESCRIBING,
    Phase.BUILDING,
    Phase.FINISHED,
)

_TARGET_PHASE = {
    StreamState.REPLYING: Phase.REPLYING,
    StreamState.REVISING: Phase.REPLYING,
    StreamState.DESCRIBING: Phase.DESCRIBING,
    StreamState.BUILDING: Phase.BUILDING,
    StreamState.FINISHED: Phase.FINISHED,
}


@dataclass(frozen=True)
class StreamClosed:
    """Queued after the transport's last chunk; carries its failure, if any."""

    error: PlanStreamError | None = None


StreamUpdate = Union[StreamChunk, StreamClosed]


class ProposalStateMachine:
    """Apply stream updates to a :class:`SessionState`.

    The machine is the only writer of the session state. Updates must be
    delivered one at a time (see ``SerializedDispatcher``). Every fatal
    error lands in ``Phase.FAILED`` and fires ``on_failed`` exactly once;
    completion fires ``on_complete`` exactly once.
    """

    def __init__(
        self,
        state: SessionState,
        *,
        store: PlanPersistence,
        ui: UI,
        plan_state: PlanState,
        prompt: str,
        timestamp: str,
        started_at: float,
        on_complete: Callable[[], None],
        on_failed: Callable[[PlanStreamError], None],
        prompt_tokens: Callable[[], int] = lambda: 0,
        reveal_delay: float = REVEAL_DELAY,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = anyio.sleep,
    ) -> None:
        self.state = state
        self._store = store
        self._ui = ui
        self._plan_state = plan_state
        self._prompt = prompt
        self._timestamp = timestamp
        self._started_at = started_at
        self._on_complete = on_complete
        self._on_failed = on_failed
        self._prompt_tokens = prompt_tokens
        self._reveal_delay = reveal_delay
        self._clock = clock
        self._sleep = sleep
        self._reply_screen_open = False
        self._signalled = False

    async def apply(self, update: StreamUpdate) -> None:
        """Apply one update. Updates after a terminal state are ignored."""
        if self.state.terminal:
            return
        try:
            if isinstance(update, StreamClosed):
                self._on_stream_closed(update)
            else:
                await self._apply_chunk(update)
        except PlanStreamError as exc:
            self._fail(exc)

    def abandon(self, error: PlanStreamError) -> None:
        """Fail the session from outside the stream, e.g. when the user stops it."""
        if not self.state.terminal:
            self._fail(error)

    async def _apply_chunk(self, chunk: StreamChunk) -> None:
        state = self.state
        if chunk.error is not None:
            if isinstance(chunk.error, PlanStreamError):
                raise chunk.error
            raise TransportError(str(chunk.error))

        if state.phase is Phase.AWAITING_ID:
            self._assign_id(chunk.content)
            return

        if chunk.proposal_id and chunk.proposal_id != state.proposal_id:
            raise ProtocolError(
                f"chunk for proposal {chunk.proposal_id} received in proposal {state.proposal_id}"
            )

        if not state.reply_started:
            await self._reveal()

        self._advance(_TARGET_PHASE[chunk.state])

        if chunk.state in (StreamState.REPLYING, StreamState.REVISING):
            state.reply.append(chunk.content)
            state.dirty = True
        elif chunk.state is StreamState.DESCRIBING:
            self._on_describing(chunk)
        elif chunk.state is StreamState.BUILDING:
            self._on_building(chunk)
        elif chunk.state is StreamState.FINISHED:
            self._on_finished()

    def _assign_id(self, content: str) -> None:
        if not content:
            raise ProtocolError("proposal id not sent in first chunk")
        if not is_safe_id(content):
            raise ProtocolError(f"invalid proposal id: {content!r}")
        state = self.state
        state.proposal_id = content
        state.root_id = self._plan_state.root_id or content

        self._plan_state.proposal_id = state.proposal_id
        self._plan_state.root_id = state.root_id
        self._store.set_state(self._plan_state, string_ts())
        state.phase = Phase.REPLYING

    async def _reveal(self) -> None:
        # Hold the spinner for a minimum time so a fast reply does not flash.
        elapsed = self._clock() - self._started_at
        if elapsed < self._reveal_delay:
            await self._sleep(self._reveal_delay - elapsed)
        self._ui.stop_spinner()
        self._ui.enter_reply_screen()
        self._reply_screen_open = True
        self.state.reply_started = True

    def _advance(self, target: Phase) -> None:
        current = self.state.phase
        if _PHASE_ORDER.index(target) >= _PHASE_ORDER.index(current):
            self.state.phase = target
            return
        # File fragments already in flight may still drain after Finished.
        if target is Phase.BUILDING and current is Phase.FINISHED:
            return
        raise ProtocolError(f"{target.value} chunk received after {current.value}")

    def _end_reply(self) -> None:
        if not self._reply_screen_open:
            return
        self._reply_screen_open = False
        self._ui.leave_reply_screen()
        self._ui.print_reply(self.state.reply.text)
        self._ui.start_spinner("")

    def _on_describing(self, chunk: StreamChunk) -> None:
        state = self.state
        if chunk.is_phase_marker:
            self._end_reply()
            return
        if state.description is not None:
            raise ProtocolError("plan description sent twice")

        description = parse_description(chunk.content)
        self._end_reply()
        state.description = description

        self._plan_state.description = description
        self._append_conversation()
        self._store.set_state(self._plan_state, string_ts())

        if description.has_files:
            self._ui.stop_spinner()
            self._ui.building_header()
            state.builds = decoder.new_builds(description.files)
            state.dirty = True
        else:
            state.all_files_finished = True
            self._check_complete()

    def _append_conversation(self) -> None:
        state = self.state
        description = state.description
        reply_tokens = state.reply.finish()
        entry = ConversationEntry(
            timestamp=self._timestamp,
            response_timestamp=description.response_timestamp if description else "",
            proposal_id=state.proposal_id,
            prompt=self._prompt,
            prompt_tokens=self._prompt_tokens(),
            reply=state.reply.text,
            reply_tokens=reply_tokens,
        )
        try:
            self._store.append_conversation(entry)
        except PersistenceError as exc:
            self._ui.warn(f"failed to append conversation: {exc.message}")

    def _on_building(self, chunk: StreamChunk) -> None:
        state = self.state
        if chunk.is_phase_marker:
            return
        if state.description is None:
            raise ProtocolError("file fragment received before plan description")

        fragment = parse_fragment(chunk.content)
        record = decoder.decode(fragment.path, fragment.content, state.builds)
        state.dirty = True
        if record is None:
            return

        self._store.save_file_record(state.proposal_id, record)
        if decoder.all_finished(state.builds):
            state.all_files_finished = True
            self._check_complete()

    def _on_finished(self) -> None:
        state = self.state
        state.stream_finished = True
        self._ui.stop_spinner()
        if state.description is None:
            raise ProtocolError("stream finished without a plan description")
        self._check_complete()

    def _on_stream_closed(self, update: StreamClosed) -> None:
        if update.error is not None:
            raise update.error
        state = self.state
        if not state.stream_finished:
            raise ProtocolError("stream closed before proposal finished")
        pending = [path for path, build in state.builds.items() if not build.finished]
        if pending:
            raise ProtocolError(f"stream closed with unfinished files: {', '.join(pending)}")

    def _check_complete(self) -> None:
        if self.state.completed and not self._signalled:
            self._signalled = True
            self._on_complete()

    def _fail(self, error: PlanStreamError) -> None:
        state = self.state
        state.phase = Phase.FAILED
        state.error = error
        state.dirty = False
        self._ui.stop_spinner()
        if self._reply_screen_open:
            self._reply_screen_open = False
            self._ui.leave_reply_screen()
        if not self._signalled:
            self._signalled = True
            self._on_failed(error)
