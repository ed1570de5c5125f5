"""
MongoDocumentStore — MongoDB adapter using pymongo's native asyncio API.

Install extras: pip install "docqueue[mongo]"

Atomicity
---------
find_one_and_update() maps directly onto MongoDB's findAndModify, which
selects and updates a single document atomically. That is the only
concurrency guarantee the queue needs.

Identifiers
-----------
MongoDB assigns ObjectIds on insert. They sort by creation second and then by
a per-process counter, which gives the queue its approximate FIFO order.
The adapter converts them to their 24-character hex form on the way out.

Datetimes
---------
BSON dates have millisecond precision and come back naive unless the client
was created with tz_aware=True. from_settings() creates a tz_aware client;
the domain models treat naive values as UTC either way.
"""
from __future__ import annotations

import dataclasses
from typing import TYPE_CHECKING, Any

from docqueue.domain.errors import DocQueueError, StorageError
from docqueue.ports.store import Document, Filter, SortSpec, Update

if TYPE_CHECKING:
    from pymongo.asynchronous.collection import AsyncCollection
    from pymongo.asynchronous.database import AsyncDatabase

    from docqueue.config import QueueSettings


@dataclasses.dataclass
class MongoDocumentStore:
    """
    MongoDB storage adapter.

    Parameters
    ----------
    database : pymongo AsyncDatabase; each queue name maps to one collection
    """

    database: AsyncDatabase[Document]

    @classmethod
    def from_settings(cls, settings: QueueSettings) -> MongoDocumentStore:
        """Create a client from settings.mongodb_url and bind settings.mongodb_database."""
        try:
            from pymongo import AsyncMongoClient
        except ImportError as exc:
            raise ImportError(
                "MongoDocumentStore requires pymongo. "
                "Install with: pip install 'docqueue[mongo]'"
            ) from exc
        client: Any = AsyncMongoClient(settings.mongodb_url, tz_aware=True)
        return cls(database=client[settings.mongodb_database])

    def _collection(self, name: str) -> AsyncCollection[Document]:
        return self.database[name]

    async def insert_one(self, collection: str, document: Document) -> str:
        """Insert a copy of `document`; returns the ObjectId as a hex string."""
        try:
            result = await self._collection(collection).insert_one(dict(document))
        except DocQueueError:
            raise
        except Exception as exc:
            raise StorageError("MongoDB insert failed", exc) from exc
        return str(result.inserted_id)

    async def find_one_and_update(
        self,
        collection: str,
        filter: Filter,
        update: Update,
        *,
        sort: SortSpec | None = None,
        upsert: bool = False,
    ) -> Document | None:
        """findAndModify returning the post-update document (or None)."""
        from pymongo import ReturnDocument

        kwargs: dict[str, Any] = {"upsert": upsert, "return_document": ReturnDocument.AFTER}
        if sort:
            kwargs["sort"] = list(sort)
        try:
            document = await self._collection(collection).find_one_and_update(
                dict(filter), dict(update), **kwargs
            )
        except DocQueueError:
            raise
        except Exception as exc:
            raise StorageError("MongoDB findAndModify failed", exc) from exc
        return _normalize(document)

    async def count_documents(self, collection: str, filter: Filter) -> int:
        try:
            return int(await self._collection(collection).count_documents(dict(filter)))
        except DocQueueError:
            raise
        except Exception as exc:
            raise StorageError("MongoDB count failed", exc) from exc

    async def create_index(
        self,
        collection: str,
        keys: SortSpec,
        *,
        unique: bool = False,
        sparse: bool = False,
    ) -> None:
        """createIndex is idempotent server-side for identical specs."""
        try:
            await self._collection(collection).create_index(
                list(keys), unique=unique, sparse=sparse
            )
        except DocQueueError:
            raise
        except Exception as exc:
            raise StorageError("MongoDB createIndex failed", exc) from exc


def _normalize(document: Document | None) -> Document | None:
    """Return the document with its ObjectId replaced by the hex string."""
    if document is None:
        return None
    return {**document, "_id": str(document["_id"])}
