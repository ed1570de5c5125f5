"""
docqueue — visibility-timeout message queue on a document store.

Each message is one document. The store only has to provide an atomic
find-one-and-modify; every state change is a single such call, so any number
of consumers can share a queue without a broker process and without locks.

  get()  leases the oldest claimable message for `visibility` seconds and
         hands back an ack token
  ping() extends the lease
  ack()  completes the message (soft delete)

A lease that is neither pinged nor acked runs out and the message becomes
claimable again: at-least-once delivery.

Quick start
-----------
    import asyncio
    from docqueue import DocumentQueue, InMemoryDocumentStore, LeaseKeeper

    async def main():
        queue = DocumentQueue(InMemoryDocumentStore(), "emails")
        await queue.create_indexes()

        await queue.add({"to": "user@example.com"})

        message = await queue.get()
        async with LeaseKeeper(queue, message.ack):
            print(f"Sending {message.payload}")
        await queue.ack(message.ack)

    asyncio.run(main())

Deduplication
-------------
    await queue.add({"url": "https://example.com", "depth": 1}, dedup_key="url")
    await queue.add({"url": "https://example.com", "depth": 2}, dedup_key="url")
    # one message, occurrences == 2, payload from the first add

Store adapters
--------------
Built-in adapters (no extra deps):
  - InMemoryDocumentStore  — for tests and examples

Optional adapters (install extras):
  - MongoDocumentStore     (pip install "docqueue[mongo]")

Custom adapters implement the four-method DocumentStorePort:
  insert_one, find_one_and_update, count_documents, create_index

Architecture
------------
Follows the Ports & Adapters pattern:
  domain/   — pure value types (Message, MessageRecord, MessageState) and errors
  ports/    — Protocol interfaces (DocumentStorePort)
  core/     — business logic (DocumentQueue, LeaseKeeper, Poller, filters)
  adapters/ — concrete store implementations
"""
from __future__ import annotations

from docqueue.adapters.store.memory import InMemoryDocumentStore
from docqueue.config import QueueSettings, get_settings
from docqueue.core.clock import Clock, ManualClock, SystemClock
from docqueue.core.lease import LeaseKeeper
from docqueue.core.poller import Poller
from docqueue.core.queue import DocumentQueue
from docqueue.domain.errors import (
    ConfigurationError,
    DedupKeyError,
    DocQueueError,
    StorageError,
    UnidentifiedAckError,
)
from docqueue.domain.models import Message, MessageRecord, MessageState
from docqueue.ports.store import DocumentStorePort

__all__ = [
    # Domain models
    "Message",
    "MessageRecord",
    "MessageState",
    # Errors
    "DocQueueError",
    "ConfigurationError",
    "DedupKeyError",
    "StorageError",
    "UnidentifiedAckError",
    # Port (for typing custom adapters)
    "DocumentStorePort",
    # High-level queue API
    "DocumentQueue",
    "LeaseKeeper",
    "Poller",
    # Time
    "Clock",
    "ManualClock",
    "SystemClock",
    # Configuration
    "QueueSettings",
    "get_settings",
    # Built-in store adapters
    "InMemoryDocumentStore",
]
