"""
LeaseKeeper — async context manager that keeps a lease alive in the background.

A consumer holding a message longer than its visibility timeout wraps its work
in LeaseKeeper, which ping()s the lease token periodically so the message does
not become claimable again mid-processing.

Usage
-----
    queue = DocumentQueue(store, "emails", visibility=30)

    message = await queue.get()
    if message is not None:
        async with LeaseKeeper(queue, message.ack, interval=timedelta(seconds=10)):
            await send_email(message.payload)
        await queue.ack(message.ack)

Pick an interval comfortably shorter than the visibility. If a ping fails
with a DocQueueError (lease already lost or acked) the keeper stops; the
worker finds out for sure when its own ack() raises UnidentifiedAckError.

If the worker raises, the keeper task is cancelled and the lease simply runs
out, returning the message to the queue.

LeaseKeeper is typed against the structural Protocol _HasPing, so it works
with DocumentQueue or any wrapper exposing the same ping() signature.
"""
from __future__ import annotations

import asyncio
import dataclasses
from datetime import timedelta
from types import TracebackType
from typing import Protocol

import structlog

from docqueue.config import QueueSettings
from docqueue.domain.errors import DocQueueError

logger = structlog.get_logger(__name__)


class _HasPing(Protocol):
    """Structural Protocol: any object with an async ping(ack, visibility) method."""

    async def ping(self, ack: str, visibility: float | None = None) -> str: ...


@dataclasses.dataclass
class LeaseKeeper:
    """
    Renews a single lease until the context exits.

    Parameters
    ----------
    queue      : any object with async ping(ack, visibility=None) -> str
    ack        : the lease token returned by get()
    interval   : time between pings (default 10 seconds)
    visibility : lease length requested on each ping (default: the queue's)
    """

    queue: _HasPing
    ack: str
    interval: timedelta = timedelta(seconds=10)
    visibility: float | None = None

    lost: bool = dataclasses.field(default=False, init=False)
    _task: asyncio.Task[None] | None = dataclasses.field(
        default=None, init=False, repr=False
    )

    @classmethod
    def from_settings(
        cls, queue: _HasPing, ack: str, settings: QueueSettings
    ) -> LeaseKeeper:
        """Keeper pinging every settings.lease_keeper_interval seconds."""
        return cls(
            queue=queue,
            ack=ack,
            interval=timedelta(seconds=settings.lease_keeper_interval),
        )

    async def __aenter__(self) -> LeaseKeeper:
        self._task = asyncio.create_task(
            self._renew(), name=f"docqueue-lease-{self.ack[:8]}"
        )
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    async def _renew(self) -> None:
        while True:
            await asyncio.sleep(self.interval.total_seconds())
            try:
                await self.queue.ping(self.ack, self.visibility)
            except DocQueueError as exc:
                # Lease expired or already acked.
                self.lost = True
                logger.info("lease_lost", error=str(exc))
                return
