"""Tests for the session event queue."""

import asyncio

import pytest

from p2pcall.core.event_queue import EventQueue


class TestEventQueue:
    """Test event queue functionality."""

    @pytest.mark.asyncio
    async def test_fifo_order(self, event_queue: EventQueue[int]) -> None:
        for i in range(5):
            assert event_queue.send_nowait(i)

        assert len(event_queue) == 5
        assert [await event_queue.receive() for _ in range(5)] == [0, 1, 2, 3, 4]

    @pytest.mark.asyncio
    async def test_receive_waits_for_producer(self, event_queue: EventQueue[int]) -> None:
        async def producer() -> None:
            await asyncio.sleep(0.01)
            event_queue.send_nowait(42)

        task = asyncio.create_task(producer())
        item = await asyncio.wait_for(event_queue.receive(), timeout=1.0)
        await task

        assert item == 42

    @pytest.mark.asyncio
    async def test_close_drops_pending(self, event_queue: EventQueue[int]) -> None:
        event_queue.send_nowait(1)
        event_queue.send_nowait(2)

        assert event_queue.close() == [1, 2]
        assert event_queue.closed
        assert not event_queue.send_nowait(3)
        assert len(event_queue) == 0
