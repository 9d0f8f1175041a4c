"""Bounded command channel shared by the poll loop, dispatcher and orchestrator."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import StrEnum

from smsrelay.errors import ChannelFault


class CommandKind(StrEnum):
    NOTIFY = "notify"
    TERMINATE = "terminate"


@dataclass(frozen=True, slots=True)
class Command:
    kind: CommandKind
    text: str = ""

    @classmethod
    def notify(cls, text: str) -> Command:
        return cls(kind=CommandKind.NOTIFY, text=str(text))

    @classmethod
    def terminate(cls) -> Command:
        return cls(kind=CommandKind.TERMINATE)

    @property
    def is_terminate(self) -> bool:
        return self.kind is CommandKind.TERMINATE


class CommandChannel:
    """Single-consumer FIFO of ``Command`` values.

    ``send`` blocks while the channel is full, so a slow consumer applies
    backpressure instead of dropping work. Once the consumer closes the
    channel further sends raise ``ChannelFault``, and so do sends that were
    still waiting for room when it closed.
    """

    def __init__(self, capacity: int = 1024, *, name: str = "dispatch") -> None:
        self.name = name
        self.capacity = max(1, int(capacity))
        self._queue: asyncio.Queue[Command] = asyncio.Queue(maxsize=self.capacity)
        self._closed = asyncio.Event()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def qsize(self) -> int:
        return self._queue.qsize()

    async def send(self, command: Command) -> None:
        if self.closed:
            raise ChannelFault(f"{self.name} channel is closed")
        if not self._queue.full():
            self._queue.put_nowait(command)
            return
        putter = asyncio.ensure_future(self._queue.put(command))
        closer = asyncio.ensure_future(self._closed.wait())
        try:
            await asyncio.wait({putter, closer}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            closer.cancel()
            delivered = putter.done()
            if not delivered:
                putter.cancel()
        if not delivered:
            raise ChannelFault(f"{self.name} channel closed while waiting for room")

    async def notify(self, text: str) -> None:
        await self.send(Command.notify(text))

    async def terminate(self) -> None:
        await self.send(Command.terminate())

    async def receive(self, timeout: float | None = None) -> Command:
        """Wait for the next command; raises ``asyncio.TimeoutError`` after ``timeout``."""
        if timeout is None:
            return await self._queue.get()
        return await asyncio.wait_for(self._queue.get(), timeout=timeout)

    def receive_nowait(self) -> Command | None:
        try:
            return self._queue.get_nowait()
        except asyncio.QueueEmpty:
            return None

    def close(self) -> None:
        self._closed.set()
