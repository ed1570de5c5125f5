"""
Poller — wait for work by polling DocumentQueue.get() with backoff.

get() never blocks: an empty queue returns None immediately. Poller wraps it
in a loop that sleeps between attempts, doubling the delay from min_interval
up to max_interval while the queue stays empty and resetting it as soon as a
message arrives.

Usage
-----
    poller = Poller(queue, min_interval=0.05, max_interval=2.0)

    message = await poller.next(timeout=5.0)   # None if nothing arrived in 5 s

    async for message in poller:               # runs until the caller breaks
        await handle(message)
        await queue.ack(message.ack)

Store errors propagate unchanged; retrying a failing store is the caller's
decision.
"""
from __future__ import annotations

import asyncio
import dataclasses
from collections.abc import AsyncIterator
from typing import Protocol

from docqueue.config import QueueSettings
from docqueue.domain.models import Message


class _HasGet(Protocol):
    async def get(self, visibility: float | None = None) -> Message | None: ...


@dataclasses.dataclass
class Poller:
    """
    Polling loop around get().

    Parameters
    ----------
    queue        : any object with async get(visibility=None) -> Message | None
    min_interval : first sleep after an empty poll, in seconds
    max_interval : backoff ceiling, in seconds
    visibility   : lease length requested on each get (default: the queue's)
    """

    queue: _HasGet
    min_interval: float = 0.05
    max_interval: float = 2.0
    visibility: float | None = None

    def __post_init__(self) -> None:
        if self.min_interval <= 0 or self.max_interval < self.min_interval:
            raise ValueError(
                "Poller needs 0 < min_interval <= max_interval, got "
                f"{self.min_interval!r} / {self.max_interval!r}"
            )

    @classmethod
    def from_settings(
        cls,
        queue: _HasGet,
        settings: QueueSettings,
        visibility: float | None = None,
    ) -> Poller:
        return cls(
            queue=queue,
            min_interval=settings.poll_min_interval,
            max_interval=settings.poll_max_interval,
            visibility=visibility,
        )

    async def next(self, timeout: float | None = None) -> Message | None:
        """
        Return the next leased message, waiting up to `timeout` seconds.

        timeout=None waits forever. Returns None on timeout.
        """
        loop = asyncio.get_running_loop()
        deadline = None if timeout is None else loop.time() + timeout
        delay = self.min_interval
        while True:
            message = await self.queue.get(self.visibility)
            if message is not None:
                return message
            if deadline is not None:
                remaining = deadline - loop.time()
                if remaining <= 0:
                    return None
                await asyncio.sleep(min(delay, remaining))
            else:
                await asyncio.sleep(delay)
            delay = min(delay * 2, self.max_interval)

    async def __aiter__(self) -> AsyncIterator[Message]:
        while True:
            message = await self.next()
            if message is not None:
                yield message
