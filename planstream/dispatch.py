"""Serialized delivery of stream updates to a single consumer."""

from __future__ import annotations

import math
from collections.abc import Awaitable, Callable
from typing import Generic, TypeVar

import anyio
from anyio.streams.memory import MemoryObjectReceiveStream, MemoryObjectSendStream

T = TypeVar("T")


class SerializedDispatcher(Generic[T]):
    """Apply submitted updates one at a time, in submission order.

    One consumer task (``run``) owns the handler, so two updates are never
    applied concurrently and the busy state is reset after every update,
    including failing ones.

    Policies:
        apply-all (default): every submitted update is applied; the mailbox
            is unbounded.
        coalesce: a single pending slot; submitting while the slot is full
            replaces the pending update, which is counted in ``superseded``.
    """

    def __init__(
        self,
        handler: Callable[[T], Awaitable[None]],
        *,
        coalesce: bool = False,
    ) -> None:
        self._handler = handler
        self.coalesce = coalesce
        buffer_size = 1 if coalesce else math.inf
        send, receive = anyio.create_memory_object_stream(buffer_size)
        self._send: MemoryObjectSendStream[T] = send
        self._receive: MemoryObjectReceiveStream[T] = receive
        self._busy = False
        self.applied = 0
        self.superseded = 0

    @property
    def busy(self) -> bool:
        return self._busy

    @property
    def pending(self) -> int:
        return self._receive.statistics().current_buffer_used

    def submit(self, update: T) -> bool:
        """Queue ``update`` for the consumer.

        Returns False when the dispatcher has been closed.
        """
        try:
            self._send.send_nowait(update)
        except anyio.WouldBlock:
            # Only reachable when coalescing: replace the pending update.
            self._receive.receive_nowait()
            self.superseded += 1
            self._send.send_nowait(update)
        except (anyio.ClosedResourceError, anyio.BrokenResourceError):
            return False
        return True

    def close(self) -> None:
        """Stop accepting updates; ``run`` returns once the queue drains."""
        self._send.close()

    async def run(self) -> None:
        """Serve updates until closed or cancelled."""
        async with self._receive:
            async for update in self._receive:
                self._busy = True
                try:
                    await self._handler(update)
                finally:
                    self._busy = False
                self.applied += 1
