"""Tests for dispatch module."""

from __future__ import annotations

import anyio
import pytest

from planstream.dispatch import SerializedDispatcher


class TestApplyAll:
    """Tests for the default apply-all policy."""

    def test_applies_in_submission_order_one_at_a_time(self) -> None:
        applied: list[int] = []
        in_flight = 0
        max_in_flight = 0

        async def handler(update: int) -> None:
            nonlocal in_flight, max_in_flight
            in_flight += 1
            max_in_flight = max(max_in_flight, in_flight)
            await anyio.sleep(0)
            await anyio.sleep(0)
            applied.append(update)
            in_flight -= 1

        dispatcher: SerializedDispatcher[int] = SerializedDispatcher(handler)

        async def main() -> None:
            async with anyio.create_task_group() as tg:
                tg.start_soon(dispatcher.run)
                for i in range(20):
                    assert dispatcher.submit(i) is True
                    if i % 3 == 0:
                        await anyio.sleep(0)
                dispatcher.close()

        anyio.run(main)

        assert applied == list(range(20))
        assert max_in_flight == 1
        assert dispatcher.applied == 20
        assert dispatcher.superseded == 0

    def test_pending_counts_queued_updates(self) -> None:
        async def handler(update: int) -> None:
            return None

        dispatcher: SerializedDispatcher[int] = SerializedDispatcher(handler)
        dispatcher.submit(1)
        dispatcher.submit(2)
        assert dispatcher.pending == 2
        assert dispatcher.busy is False

    def test_busy_is_reset_after_failing_update(self) -> None:
        seen: list[int] = []

        async def handler(update: int) -> None:
            seen.append(update)
            raise ValueError("boom")

        dispatcher: SerializedDispatcher[int] = SerializedDispatcher(handler)
        dispatcher.submit(1)

        async def main() -> None:
            with pytest.raises(ValueError):
                await dispatcher.run()

        anyio.run(main)

        assert seen == [1]
        assert dispatcher.busy is False

    def test_busy_while_handling(self) -> None:
        observed: list[bool] = []
        dispatcher: SerializedDispatcher[int]

        async def handler(update: int) -> None:
            observed.append(dispatcher.busy)

        dispatcher = SerializedDispatcher(handler)
        dispatcher.submit(1)
        dispatcher.close()
        anyio.run(dispatcher.run)

        assert observed == [True]
        assert dispatcher.busy is False

    def test_submit_after_close_is_rejected(self) -> None:
        async def handler(update: int) -> None:
            return None

        dispatcher: SerializedDispatcher[int] = SerializedDispatcher(handler)
        dispatcher.close()
        assert dispatcher.submit(1) is False


class TestCoalesce:
    """Tests for the latest-wins policy."""

    def test_pending_update_is_superseded(self) -> None:
        applied: list[int] = []

        async def handler(update: int) -> None:
            applied.append(update)

        dispatcher: SerializedDispatcher[int] = SerializedDispatcher(handler, coalesce=True)
        for i in (1, 2, 3):
            assert dispatcher.submit(i) is True
        dispatcher.close()

        anyio.run(dispatcher.run)

        assert applied == [3]
        assert dispatcher.superseded == 2
        assert dispatcher.applied == 1

    def test_update_submitted_while_busy_is_applied_next(self) -> None:
        applied: list[int] = []
        dispatcher: SerializedDispatcher[int]

        async def handler(update: int) -> None:
            if update == 1:
                # Two submissions while busy: only the latest survives.
                dispatcher.submit(2)
                dispatcher.submit(3)
            applied.append(update)

        dispatcher = SerializedDispatcher(handler, coalesce=True)

        async def main() -> None:
            async with anyio.create_task_group() as tg:
                tg.start_soon(dispatcher.run)
                dispatcher.submit(1)
                while dispatcher.applied < 2:
                    await anyio.sleep(0)
                dispatcher.close()

        anyio.run(main)

        assert applied == [1, 3]
        assert dispatcher.superseded == 1
