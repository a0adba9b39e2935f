"""Session driver: one prompt in, one streamed proposal out."""

from __future__ import annotations

import math
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Union

import anyio

from planstream import tokens
from planstream.commands import KeyHandler
from planstream.config import SessionConfig
from planstream.dispatch import SerializedDispatcher
from planstream.errors import PlanStreamError, ProtocolError
from planstream.keys import InputListener, can_listen, key_input_mode, poll_key
from planstream.machine import ProposalStateMachine, StreamClosed, StreamUpdate
from planstream.render import RenderScheduler
from planstream.state import SessionState
from planstream.store import string_ts
from planstream.stream import PlanDescription
from planstream.transports.base import ProposalRequest

if TYPE_CHECKING:
    from planstream.store import PlanPersistence
    from planstream.transports.base import Transport
    from planstream.ui.base import UI


@dataclass(frozen=True)
class KeyPressed:
    key: str


@dataclass(frozen=True)
class Completed:
    pass


@dataclass(frozen=True)
class Failed:
    error: PlanStreamError


SessionEvent = Union[KeyPressed, Completed, Failed]


@dataclass
class SessionResult:
    """Result of a completed proposal session."""

    proposal_id: str
    root_id: str
    description: PlanDescription
    reply: str
    reply_tokens: int
    prompt_tokens: int
    files: tuple[str, ...]


async def _ignore_keys(key: str, proposal_id: str) -> None:
    return None


async def run_session(
    prompt: str,
    *,
    transport: Transport,
    store: PlanPersistence,
    ui: UI,
    config: SessionConfig | None = None,
    key_handler: KeyHandler | None = None,
    key_reader: Callable[[], str] | None = None,
    clock: Callable[[], float] = time.monotonic,
) -> SessionResult:
    """Send ``prompt`` and drive the streamed proposal to completion.

    Stream updates are applied by a single dispatcher task; the renderer
    ticks on its own period; keypresses go to ``key_handler``. The session
    ends on the first of completion, failure, or a key handler error.

    Args:
        prompt: Prompt text for the plan-generation service
        transport: Transport that streams the proposal
        store: Plan persistence
        ui: UI implementation for output
        config: Session configuration (defaults from the environment)
        key_handler: Called with each keypress and the current proposal id
        key_reader: Blocking key reader; defaults to the terminal when
            ``config.listen_keys`` is set and stdin is a tty

    Returns:
        SessionResult for the finished proposal

    Raises:
        PlanStreamError: the session failed or was stopped
    """
    if config is None:
        config = SessionConfig.from_env()
    if key_handler is None:
        key_handler = _ignore_keys

    started_at = clock()
    ui.start_spinner("Sending prompt...")
    timestamp = string_ts()
    try:
        plan_state = store.get_state()
    except PlanStreamError:
        ui.stop_spinner()
        raise

    state = SessionState()
    send, receive = anyio.create_memory_object_stream[SessionEvent](math.inf)
    prompt_tokens = 0

    def post(event: SessionEvent) -> None:
        send.send_nowait(event)

    machine = ProposalStateMachine(
        state,
        store=store,
        ui=ui,
        plan_state=plan_state,
        prompt=prompt,
        timestamp=timestamp,
        started_at=started_at,
        on_complete=lambda: post(Completed()),
        on_failed=lambda error: post(Failed(error)),
        prompt_tokens=lambda: prompt_tokens,
        reveal_delay=config.reveal_delay,
        clock=clock,
    )
    dispatcher: SerializedDispatcher[StreamUpdate] = SerializedDispatcher(machine.apply)
    scheduler = RenderScheduler(state, ui, config.render_interval)
    request = ProposalRequest(
        prompt=prompt,
        parent_id=plan_state.proposal_id,
        root_id=plan_state.root_id,
    )

    async def count_prompt() -> None:
        nonlocal prompt_tokens
        try:
            prompt_tokens = await anyio.to_thread.run_sync(
                tokens.count_tokens, prompt, abandon_on_cancel=True
            )
        except Exception as exc:
            ui.warn(f"failed to count prompt tokens: {exc}")

    async def stream() -> None:
        try:
            await transport.propose(request, dispatcher.submit)
        except PlanStreamError as exc:
            dispatcher.submit(StreamClosed(error=exc))
        else:
            dispatcher.submit(StreamClosed())

    async def listen(reader: Callable[[], str], raw_terminal: bool) -> None:
        listener = InputListener(reader)

        def on_key(key: str) -> None:
            post(KeyPressed(key))

        def on_error(exc: PlanStreamError) -> None:
            post(Failed(exc))

        if raw_terminal:
            with key_input_mode():
                await listener.run(on_key, on_error)
        else:
            await listener.run(on_key, on_error)

    error: PlanStreamError | None = None
    async with anyio.create_task_group() as tg:
        tg.start_soon(dispatcher.run)
        tg.start_soon(scheduler.run)
        tg.start_soon(count_prompt)
        tg.start_soon(stream)
        if key_reader is not None:
            tg.start_soon(listen, key_reader, False)
        elif config.listen_keys and can_listen():
            tg.start_soon(listen, poll_key, True)

        try:
            async for event in receive:
                if isinstance(event, KeyPressed):
                    try:
                        await key_handler(event.key, state.proposal_id)
                    except PlanStreamError as exc:
                        error = exc
                        break
                elif isinstance(event, Failed):
                    error = event.error
                    break
                else:
                    break
        finally:
            tg.cancel_scope.cancel()

    dispatcher.close()
    if error is not None:
        machine.abandon(error)
    send.close()
    receive.close()
    ui.stop_spinner()
    if error is not None:
        raise error

    scheduler.render()

    description = state.description
    if description is None:
        raise ProtocolError("proposal completed without a plan description")
    ui.next_steps(description.has_files)

    return SessionResult(
        proposal_id=state.proposal_id,
        root_id=state.root_id,
        description=description,
        reply=state.reply.text,
        reply_tokens=state.reply.token_count,
        prompt_tokens=prompt_tokens,
        files=tuple(state.builds),
    )
