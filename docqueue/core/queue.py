"""
DocumentQueue — visibility-timeout queue over a find-one-and-modify store.

Every operation is a single round-trip to the store:

  add()    insert, or upsert on a dedup key
  get()    findAndModify: oldest CLAIMABLE → IN_FLIGHT, mint lease token
  ping()   findAndModify: IN_FLIGHT (matching token) → push `visible` forward
  ack()    findAndModify: IN_FLIGHT (matching token) → DONE (soft delete)
  total/size/in_flight/done   count queries

State machine
-------------
        add()                 get()                 ack()
(none) ------> CLAIMABLE ------------> IN_FLIGHT ------------> DONE
                  ^                        |
                  |  lease expires         |
                  +------------------------+

ping() is a self-loop on IN_FLIGHT. Expiry needs no writer: once `visible`
passes, the same document matches the CLAIMABLE filter again and the stale
token stops matching the lease filter.

The queue object holds configuration only. All mutual exclusion comes from the
store's atomic single-document update; the class has no locks and no mutable
state, so one instance may be shared by any number of concurrent consumers.
"""
from __future__ import annotations

import dataclasses
import secrets
from collections.abc import Mapping
from datetime import datetime
from typing import Any

import structlog

from docqueue.config import QueueSettings
from docqueue.core import codec
from docqueue.core.clock import Clock, SystemClock, plus_seconds
from docqueue.core.filters import lease_filter, state_filter
from docqueue.domain.errors import (
    ConfigurationError,
    DedupKeyError,
    StorageError,
    UnidentifiedAckError,
)
from docqueue.domain.models import Message, MessageState
from docqueue.ports.store import DocumentStorePort, Filter

logger = structlog.get_logger(__name__)

DEFAULT_VISIBILITY: float = 30

_LEASE_EVENTS = {"ping": "lease_extended", "ack": "message_acked"}


def new_ack_token() -> str:
    """Fresh lease token: 16 random bytes as 32 hex characters."""
    return secrets.token_hex(16)


@dataclasses.dataclass(frozen=True)
class DocumentQueue:
    """
    A named queue stored as one collection of a DocumentStorePort.

    Parameters
    ----------
    store      : any DocumentStorePort implementation
    name       : queue (collection) name
    visibility : default lease duration in seconds (default 30)
    clock      : source of "now" (default SystemClock)

    Raises
    ------
    ConfigurationError  if store is None, name is empty, or visibility <= 0
    """

    store: DocumentStorePort
    name: str
    visibility: float = DEFAULT_VISIBILITY
    clock: Clock = dataclasses.field(default_factory=SystemClock)

    def __post_init__(self) -> None:
        if self.store is None:
            raise ConfigurationError("Please provide a document store")
        if not self.name:
            raise ConfigurationError("Please provide a queue name")
        if self.visibility <= 0:
            raise ConfigurationError(
                f"Default visibility must be positive, got {self.visibility!r}"
            )

    @classmethod
    def from_settings(
        cls,
        store: DocumentStorePort,
        name: str,
        settings: QueueSettings,
        clock: Clock | None = None,
    ) -> DocumentQueue:
        """Build a queue whose default visibility comes from `settings`."""
        return cls(
            store=store,
            name=name,
            visibility=settings.visibility,
            clock=clock or SystemClock(),
        )

    # ------------------------------------------------------------------ #
    # Setup                                                                #
    # ------------------------------------------------------------------ #

    async def create_indexes(self) -> None:
        """
        Ensure the indexes the lease protocol relies on. Idempotent.

        (deleted, visible) backs candidate selection in get() and the counters;
        the unique sparse index on ack keeps lease tokens unique.
        """
        await self.store.create_index(self.name, [("deleted", 1), ("visible", 1)])
        await self.store.create_index(self.name, [("ack", 1)], unique=True, sparse=True)

    # ------------------------------------------------------------------ #
    # Write operations                                                     #
    # ------------------------------------------------------------------ #

    async def add(self, payload: Any, dedup_key: Any = None) -> str:
        """
        Enqueue `payload` and return the message id.

        With a dedup_key, an existing message whose payload matches is reused
        instead: its `occurrences` is incremented and `updatedAt` refreshed,
        nothing else. A match that is already DONE or IN_FLIGHT stays that
        way; dedup never re-arms a message.

        For a mapping payload the key names the payload field to match on;
        for any other payload the whole stored payload is compared to the key.
        """
        now = self.clock.now()
        fields = codec.new_document(payload, now)

        if dedup_key is None:
            message_id = await self.store.insert_one(
                self.name, {**fields, "occurrences": 1}
            )
            logger.debug("message_added", queue=self.name, message_id=message_id)
            return message_id

        document = await self.store.find_one_and_update(
            self.name,
            _dedup_filter(payload, dedup_key),
            {
                "$inc": {"occurrences": 1},
                "$set": {"updatedAt": now},
                "$setOnInsert": fields,
            },
            upsert=True,
        )
        if document is None:
            raise StorageError(
                "Upsert returned no document",
                RuntimeError(f"find_one_and_update(upsert=True) on {self.name!r}"),
            )
        message_id = codec.identifier(document)
        logger.debug(
            "message_added",
            queue=self.name,
            message_id=message_id,
            occurrences=document.get("occurrences"),
        )
        return message_id

    async def get(self, visibility: float | None = None) -> Message | None:
        """
        Lease the oldest CLAIMABLE message.

        The message stays invisible to other consumers for `visibility`
        seconds (default: the queue's). A zero lease would expire on issue,
        so visibility must be positive. Returns None when nothing is
        claimable right now; callers poll.
        """
        lease = self._lease_seconds(visibility, allow_zero=False)
        now = self.clock.now()
        document = await self.store.find_one_and_update(
            self.name,
            state_filter(MessageState.CLAIMABLE, now),
            {
                "$inc": {"tries": 1},
                "$set": {
                    "updatedAt": now,
                    "ack": new_ack_token(),
                    "visible": plus_seconds(now, lease),
                },
            },
            sort=[("_id", 1)],
        )
        if document is None:
            return None

        message = codec.decode_message(document)
        logger.debug(
            "message_leased",
            queue=self.name,
            message_id=message.id,
            tries=message.tries,
            visibility=lease,
        )
        return message

    async def ping(self, ack: str, visibility: float | None = None) -> str:
        """
        Extend the lease identified by `ack` to now + visibility.

        visibility=0 releases the message for immediate redelivery.

        Raises UnidentifiedAckError if the token is unknown, expired, or
        already acknowledged.
        """
        lease = self._lease_seconds(visibility)
        now = self.clock.now()
        return await self._update_lease(
            "ping", ack, now, {"$set": {"visible": plus_seconds(now, lease)}}
        )

    async def ack(self, ack: str) -> str:
        """
        Mark the message leased under `ack` as DONE.

        Raises UnidentifiedAckError if the token is unknown, expired, or
        already acknowledged.
        """
        now = self.clock.now()
        return await self._update_lease("ack", ack, now, {"$set": {"deleted": now}})

    # ------------------------------------------------------------------ #
    # Read operations                                                      #
    # ------------------------------------------------------------------ #

    async def total(self) -> int:
        """Number of messages in any state."""
        return await self.store.count_documents(self.name, {})

    async def size(self) -> int:
        """Number of messages claimable right now."""
        return await self._count(MessageState.CLAIMABLE)

    async def in_flight(self) -> int:
        """Number of outstanding, unexpired leases."""
        return await self._count(MessageState.IN_FLIGHT)

    async def done(self) -> int:
        """Number of acknowledged messages."""
        return await self._count(MessageState.DONE)

    # ------------------------------------------------------------------ #
    # Internals                                                            #
    # ------------------------------------------------------------------ #

    def _lease_seconds(self, visibility: float | None, allow_zero: bool = True) -> float:
        if visibility is None:
            return self.visibility
        if visibility < 0 or (visibility == 0 and not allow_zero):
            bound = ">= 0" if allow_zero else "> 0"
            raise ValueError(f"visibility must be {bound}, got {visibility!r}")
        return visibility

    async def _count(self, state: MessageState) -> int:
        return await self.store.count_documents(
            self.name, state_filter(state, self.clock.now())
        )

    async def _update_lease(
        self,
        operation: str,
        ack: str,
        now: datetime,
        update: dict[str, dict[str, Any]],
    ) -> str:
        document = await self.store.find_one_and_update(
            self.name, lease_filter(ack, now), update
        )
        if document is None:
            logger.warning("unidentified_ack", queue=self.name, operation=operation)
            raise UnidentifiedAckError(ack, operation)
        message_id = codec.identifier(document)
        logger.debug(_LEASE_EVENTS[operation], queue=self.name, message_id=message_id)
        return message_id


def _dedup_filter(payload: Any, dedup_key: Any) -> Filter:
    match payload:
        case Mapping():
            if dedup_key not in payload:
                raise DedupKeyError(str(dedup_key))
            if payload[dedup_key] is None:
                raise DedupKeyError(str(dedup_key), "is None in payload")
            return {f"payload.{dedup_key}": payload[dedup_key]}
        case _:
            return {"payload": dedup_key}
