"""
Bounded, closable channels and cancellation-aware waiting
"""

import asyncio
from collections import deque
from typing import Any, Awaitable, Deque, Generic, Optional, TypeVar

T = TypeVar("T")


class ChannelClosed(Exception):
    """Sending to a closed channel, or receiving from a closed and drained one"""


class Cancelled(Exception):
    """The shared cancel signal fired while waiting"""


async def until_cancelled(awaitable: Awaitable[T], cancel: Optional[asyncio.Event]) -> T:
    """
    Await ``awaitable`` unless ``cancel`` fires first

    When both finish together the awaitable's result wins, so an item that
    was already handed over is never lost.

    Raises:
        Cancelled: ``cancel`` was set before ``awaitable`` finished
    """
    task = asyncio.ensure_future(awaitable)
    if cancel is None:
        return await task
    if cancel.is_set():
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        raise Cancelled()

    waiter = asyncio.ensure_future(cancel.wait())
    try:
        await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        waiter.cancel()
        if not task.done():
            task.cancel()
        await asyncio.gather(task, waiter, return_exceptions=True)

    if not task.cancelled():
        return task.result()
    raise Cancelled()


class Channel(Generic[T]):
    """
    FIFO channel with a fixed capacity

    Any number of tasks may send or receive. ``close()`` is called exactly
    once by the owner of the sending side; receivers then drain what is left
    and get ``ChannelClosed``.
    """

    def __init__(self, maxsize: int, name: str = "channel"):
        if maxsize < 1:
            raise ValueError("maxsize must be at least 1")
        self.name = name
        self._maxsize = maxsize
        self._items: Deque[T] = deque()
        self._closed = False
        self._cond = asyncio.Condition()
        self.sent = 0
        self.received = 0

    @property
    def closed(self) -> bool:
        return self._closed

    def qsize(self) -> int:
        return len(self._items)

    async def send(self, item: T, cancel: Optional[asyncio.Event] = None) -> None:
        """
        Deliver ``item``, blocking while the channel is full

        When there is room the item is delivered even if ``cancel`` is
        already set; ``cancel`` only abandons a send that has to wait.
        """
        async with self._cond:
            if self._closed:
                raise ChannelClosed(f"{self.name} is closed")
            if len(self._items) < self._maxsize:
                self._append(item)
                return
        await until_cancelled(self._send(item), cancel)

    async def receive(self, cancel: Optional[asyncio.Event] = None) -> T:
        """Block while the channel is empty and open; give up when ``cancel`` fires"""
        return await until_cancelled(self._receive(), cancel)

    async def close(self) -> None:
        async with self._cond:
            if self._closed:
                raise RuntimeError(f"{self.name} is already closed")
            self._closed = True
            self._cond.notify_all()

    async def _send(self, item: T) -> None:
        async with self._cond:
            await self._cond.wait_for(lambda: self._closed or len(self._items) < self._maxsize)
            if self._closed:
                raise ChannelClosed(f"{self.name} is closed")
            self._append(item)

    def _append(self, item: T) -> None:
        # caller holds the lock
        self._items.append(item)
        self.sent += 1
        self._cond.notify_all()

    async def _receive(self) -> T:
        async with self._cond:
            await self._cond.wait_for(lambda: self._closed or self._items)
            if not self._items:
                raise ChannelClosed(f"{self.name} is closed")
            item = self._items.popleft()
            self.received += 1
            self._cond.notify_all()
            return item

    def __aiter__(self):
        return self

    async def __anext__(self) -> Any:
        try:
            return await self.receive()
        except ChannelClosed:
            raise StopAsyncIteration from None
