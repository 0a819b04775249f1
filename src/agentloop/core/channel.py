"""
Bounded Channels

Explicit message passing between the execution pipeline and its caller.
Channels are bounded: send() waits while the buffer is full, so a slow
consumer throttles the producer instead of losing events. After close(),
receivers drain what is buffered and then see ChannelClosed.
"""

import asyncio
from typing import Generic, TypeVar

T = TypeVar("T")


class ChannelClosed(Exception):
    """The channel is closed (and drained, for receivers)."""


class Channel(Generic[T]):
    """Bounded single-direction queue with close semantics."""

    def __init__(self, maxsize: int = 100):
        if maxsize < 1:
            raise ValueError("Channel capacity must be positive")
        self._queue: asyncio.Queue[T] = asyncio.Queue(maxsize=maxsize)
        self._closed = asyncio.Event()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    @property
    def maxsize(self) -> int:
        return self._queue.maxsize

    def qsize(self) -> int:
        return self._queue.qsize()

    def close(self) -> None:
        self._closed.set()

    async def send(self, item: T) -> None:
        """
        Enqueue an item, waiting while the channel is full.

        Raises:
            ChannelClosed: If the channel was closed
        """
        if self.closed:
            raise ChannelClosed("send on closed channel")
        await self._queue.put(item)

    def send_nowait(self, item: T) -> None:
        if self.closed:
            raise ChannelClosed("send on closed channel")
        self._queue.put_nowait(item)

    async def receive(self) -> T:
        """
        Dequeue the next item.

        Raises:
            ChannelClosed: If the channel is closed and fully drained
        """
        while True:
            if not self._queue.empty():
                return self._queue.get_nowait()
            if self.closed:
                raise ChannelClosed("channel closed")

            getter = asyncio.ensure_future(self._queue.get())
            closer = asyncio.ensure_future(self._closed.wait())
            try:
                done, _ = await asyncio.wait(
                    {getter, closer}, return_when=asyncio.FIRST_COMPLETED
                )
            finally:
                closer.cancel()
                if not getter.done():
                    getter.cancel()
            if getter in done and not getter.cancelled():
                return getter.result()

    def __aiter__(self) -> "Channel[T]":
        return self

    async def __anext__(self) -> T:
        try:
            return await self.receive()
        except ChannelClosed:
            raise StopAsyncIteration from None
