"""Single-consumer event queue feeding the call state machine."""

import asyncio
from typing import Generic, TypeVar

T = TypeVar("T")


class EventQueue(Generic[T]):
    """Unbounded asyncio Queue-based FIFO with a close flag.

    Producers (user intents, signaling events, peer link callbacks) push
    without blocking; exactly one consumer task drains it.
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue[T] = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        """Whether the queue stopped accepting events."""
        return self._closed

    def __len__(self) -> int:
        return self._queue.qsize()

    def send_nowait(self, item: T) -> bool:
        """Enqueue item without waiting.

        Args:
            item: Event to enqueue

        Returns:
            False if the queue is closed and the item was dropped
        """
        if self._closed:
            return False
        self._queue.put_nowait(item)
        return True

    async def receive(self) -> T:
        """Dequeue the next event, waiting if necessary."""
        return await self._queue.get()

    def close(self) -> list[T]:
        """Stop accepting events and drop whatever is still queued.

        Returns:
            The events that were discarded, oldest first
        """
        self._closed = True
        dropped: list[T] = []
        while not self._queue.empty():
            try:
                dropped.append(self._queue.get_nowait())
            except asyncio.QueueEmpty:
                break
        return dropped
