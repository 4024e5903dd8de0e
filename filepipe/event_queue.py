"""Single-producer / single-consumer async queue with completion and abort.

The watch engine runs its event source in one task and consumes events in
another; this queue is the only thing they share.

    queue = EventQueue()
    queue.push(event)        # producer
    queue.done()             # consumer drains what is buffered, then stops
    queue.done(abort=True)   # consumer stops now, buffer is discarded

    async for event in queue:
        ...
"""
from __future__ import annotations

import asyncio
from collections import deque
from typing import Deque, Generic, Optional, TypeVar

from filepipe.errors import QueueClosedError

T = TypeVar("T")

_OPEN = "open"
_DONE = "done"
_ABORTED = "aborted"


class EventQueue(Generic[T]):
    def __init__(self) -> None:
        self._items: Deque[T] = deque()
        self._state = _OPEN
        self._waiter: Optional[asyncio.Future] = None

    @property
    def closed(self) -> bool:
        return self._state != _OPEN

    @property
    def aborted(self) -> bool:
        return self._state == _ABORTED

    def __len__(self) -> int:
        return len(self._items)

    def push(self, value: T) -> None:
        if self._state != _OPEN:
            raise QueueClosedError("Can not push to done queue")
        self._items.append(value)
        self._wake()

    def done(self, abort: bool = False) -> None:
        if abort:
            self._state = _ABORTED
            self._items.clear()
        elif self._state == _OPEN:
            self._state = _DONE
        self._wake()

    def _wake(self) -> None:
        if self._waiter is not None and not self._waiter.done():
            self._waiter.set_result(None)

    def __aiter__(self) -> "EventQueue[T]":
        return self

    async def __anext__(self) -> T:
        while True:
            if self._state == _ABORTED:
                raise StopAsyncIteration
            if self._items:
                return self._items.popleft()
            if self._state == _DONE:
                raise StopAsyncIteration

            self._waiter = asyncio.get_running_loop().create_future()
            try:
                await self._waiter
            finally:
                self._waiter = None
