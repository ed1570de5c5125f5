"""
Domain models for docqueue — backed by Pydantic v2.

The store keeps one document per message, with camelCase field names
(createdAt, updatedAt, ...) so that collections are interchangeable with other
implementations of the same lease protocol. The models below expose snake_case
attributes and accept the stored names as aliases.

All models are frozen (immutable). The store is the only source of truth;
these are snapshots of a document as it was returned by the last operation.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class MessageState(str, Enum):
    """
    Lifecycle states derived from a stored message.

    PENDING is only reachable through writes made outside the queue engine
    (deleted absent, no ack, visible in the future). It exists so that every
    document classifies to exactly one state.
    """

    CLAIMABLE = "claimable"
    IN_FLIGHT = "in_flight"
    DONE = "done"
    PENDING = "pending"


def _as_utc(v: datetime | None) -> datetime | None:
    # BSON datetimes come back naive unless the client is tz_aware.
    if v is not None and v.tzinfo is None:
        return v.replace(tzinfo=timezone.utc)
    return v


class MessageRecord(BaseModel):
    """
    A message document exactly as stored.

    id          — store-assigned identifier (sortable, approximates FIFO)
    created_at  — insert time, never changed
    updated_at  — last lease issue or dedup hit
    visible     — instant from which the message can be claimed
    payload     — caller data, opaque to the engine
    ack         — current (or last) lease token
    tries       — number of leases issued so far
    deleted     — completion time; presence means DONE
    occurrences — how many add() calls were coalesced into this record
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    id: str = Field(alias="_id")
    created_at: datetime = Field(alias="createdAt")
    updated_at: datetime | None = Field(default=None, alias="updatedAt")
    visible: datetime
    payload: Any = None
    ack: str | None = None
    tries: int = Field(default=0, ge=0)
    deleted: datetime | None = None
    occurrences: int | None = Field(default=None, ge=1)

    @field_validator("id", mode="before")
    @classmethod
    def _stringify_id(cls, v: Any) -> str:
        """Accept ObjectId (or any identifier type) and keep its string form."""
        return v if isinstance(v, str) else str(v)

    @field_validator("created_at", "updated_at", "visible", "deleted")
    @classmethod
    def _ensure_utc(cls, v: datetime | None) -> datetime | None:
        return _as_utc(v)

    def state_at(self, now: datetime) -> MessageState:
        """Classify this record against the clock reading `now`."""
        from docqueue.core.filters import classify

        return classify(self.model_dump(by_alias=True), now)


class Message(BaseModel):
    """
    External view of a leased message, as returned by DocumentQueue.get().

    `ack` is the lease token to pass to ping() / ack().
    """

    model_config = ConfigDict(frozen=True)

    id: str
    ack: str
    created_at: datetime
    updated_at: datetime
    payload: Any = None
    tries: int
    occurrences: int = 1

    @field_validator("created_at", "updated_at")
    @classmethod
    def _ensure_utc(cls, v: datetime) -> datetime:
        return _as_utc(v)  # type: ignore[return-value]

    @classmethod
    def from_record(cls, record: MessageRecord) -> "Message":
        """Build the external view from a freshly leased record."""
        if record.ack is None or record.updated_at is None:
            raise ValueError(f"Record {record.id!r} has not been leased")
        return cls(
            id=record.id,
            ack=record.ack,
            created_at=record.created_at,
            updated_at=record.updated_at,
            payload=record.payload,
            tries=record.tries,
            occurrences=record.occurrences or 1,
        )
