"""
Codec — convert between store documents and domain models using Pydantic v2.

Stored document format
----------------------
{
  "_id": "665f1c2e9b1e8a3d4c0a1b2c",
  "createdAt": datetime(2024, 1, 1, 0, 0, tzinfo=UTC),
  "updatedAt": datetime(2024, 1, 1, 0, 0, 5, tzinfo=UTC),   <-- after first lease
  "visible": datetime(2024, 1, 1, 0, 0, 35, tzinfo=UTC),
  "payload": {"to": "user@example.com"},
  "ack": "9f86d081884c7d659a2feaa0c55ad015",                 <-- after first lease
  "tries": 1,
  "occurrences": 1,
  "deleted": datetime(...)                                   <-- once acked
}

Datetimes are stored natively (BSON dates for MongoDB) rather than as
strings so that range queries on `visible` compare instants.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any

from docqueue.domain.models import Message, MessageRecord
from docqueue.ports.store import Document


def new_document(payload: Any, now: datetime) -> Document:
    """Initial fields of a freshly added message (occurrences excluded)."""
    return {
        "createdAt": now,
        "visible": now,
        "payload": payload,
        "tries": 0,
    }


def decode_record(document: Document) -> MessageRecord:
    """Parse a stored document into a MessageRecord."""
    return MessageRecord.model_validate(document)


def decode_message(document: Document) -> Message:
    """Parse a freshly leased document into the external Message view."""
    return Message.from_record(decode_record(document))


def identifier(document: Document) -> str:
    """Return the document identifier as a string."""
    return str(document["_id"])
