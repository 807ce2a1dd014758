#
# SPDX-FileCopyrightText: Copyright (c) 2025 provide.io llc. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
#

"""Bounded, closable async channel used to deliver watch outcomes.

Unlike ``asyncio.Queue`` the channel can be closed: closing drops anything
still buffered and wakes every waiting sender and receiver, and all later
operations raise ``ChannelClosedError``. A sender blocked on a full channel
can be cancelled at any point without corrupting the channel, which is what
lets a watch loop exit while nobody reads."""

from __future__ import annotations

import asyncio
from collections import deque
from collections.abc import AsyncIterator
import contextlib
from typing import Generic, TypeVar

from certwatch.errors import ChannelClosedError

T = TypeVar("T")


class OutcomeChannel(Generic[T]):
    """Single-producer channel with a fixed capacity."""

    def __init__(self, name: str, maxsize: int = 1) -> None:
        if maxsize < 1:
            raise ValueError("maxsize must be at least 1")
        self.name = name
        self._maxsize = maxsize
        self._buffer: deque[T] = deque()
        self._getters: deque[asyncio.Future[None]] = deque()
        self._putters: deque[asyncio.Future[None]] = deque()
        self._closed = False

    def __repr__(self) -> str:
        state = "closed" if self._closed else f"{len(self._buffer)}/{self._maxsize}"
        return f"<OutcomeChannel {self.name!r} {state}>"

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def maxsize(self) -> int:
        return self._maxsize

    def qsize(self) -> int:
        return len(self._buffer)

    def full(self) -> bool:
        return len(self._buffer) >= self._maxsize

    @staticmethod
    def _wakeup_next(waiters: deque[asyncio.Future[None]]) -> None:
        while waiters:
            waiter = waiters.popleft()
            if not waiter.done():
                waiter.set_result(None)
                break

    async def _wait(self, waiters: deque[asyncio.Future[None]]) -> None:
        waiter = asyncio.get_running_loop().create_future()
        waiters.append(waiter)
        try:
            await waiter
        except asyncio.CancelledError:
            waiter.cancel()
            with contextlib.suppress(ValueError):
                waiters.remove(waiter)
            # Pass the wakeup on so another waiter does not miss it.
            if waiters is self._getters and self._buffer:
                self._wakeup_next(self._getters)
            elif waiters is self._putters and not self.full():
                self._wakeup_next(self._putters)
            raise

    async def put(self, item: T) -> None:
        """Append *item*, waiting while the channel is full.

        Raises:
            ChannelClosedError: If the channel is closed before the item is accepted
        """
        while not self._closed and self.full():
            await self._wait(self._putters)
        if self._closed:
            raise ChannelClosedError(self.name)
        self._buffer.append(item)
        self._wakeup_next(self._getters)

    def put_nowait(self, item: T) -> None:
        if self._closed:
            raise ChannelClosedError(self.name)
        if self.full():
            raise asyncio.QueueFull
        self._buffer.append(item)
        self._wakeup_next(self._getters)

    async def get(self) -> T:
        """Remove and return the oldest item, waiting if none is buffered.

        Raises:
            ChannelClosedError: If the channel is closed
        """
        while not self._closed and not self._buffer:
            await self._wait(self._getters)
        return self.get_nowait()

    def get_nowait(self) -> T:
        """Return the oldest item without waiting.

        Raises:
            ChannelClosedError: If the channel is closed
            asyncio.QueueEmpty: If the channel is open but empty
        """
        if self._closed:
            raise ChannelClosedError(self.name)
        if not self._buffer:
            raise asyncio.QueueEmpty
        item = self._buffer.popleft()
        self._wakeup_next(self._putters)
        return item

    def close(self) -> None:
        """Close the channel, dropping buffered items. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        self._buffer.clear()
        for waiters in (self._getters, self._putters):
            while waiters:
                waiter = waiters.popleft()
                if not waiter.done():
                    waiter.set_result(None)

    def __aiter__(self) -> AsyncIterator[T]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[T]:
        while True:
            try:
                yield await self.get()
            except ChannelClosedError:
                return


# 🔼⚙️🔚
