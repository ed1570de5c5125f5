"""
DocumentStorePort — the single port in docqueue.

Any object satisfying this structural Protocol can act as the storage backend.
No base class or registration is required: Python's structural subtyping
(duck typing + Protocol) is sufficient.

Filter and update language
--------------------------
Filters and updates use the MongoDB query dialect, restricted to what the
queue engine emits:

  filters : {"field": value}                 equality (None = absent or null)
            {"field": {"$lte": v}}           also $lt, $gt, $gte, $eq, $ne
            {"field": {"$exists": bool}}
            "a.b" dotted paths into nested documents
  updates : {"$set": {...}, "$inc": {...}, "$setOnInsert": {...}}
  sort    : [("field", 1 | -1), ...]

Documents carry their identifier under "_id" as a string. Identifiers must be
unique and must sort in insertion order (approximately; ties between
concurrent inserts are acceptable).

Atomicity contract
------------------
find_one_and_update() must select and mutate a single document atomically:
two concurrent calls with the same filter never both receive the same
document in a state that matched the filter.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any, Protocol, runtime_checkable

Document = dict[str, Any]
Filter = Mapping[str, Any]
Update = Mapping[str, Mapping[str, Any]]
SortSpec = Sequence[tuple[str, int]]


@runtime_checkable
class DocumentStorePort(Protocol):
    """
    Minimal interface required by docqueue core.

    Every method is scoped by a collection name; one store can host any
    number of queues.

    Implementing adapters (built-in):
      - InMemoryDocumentStore — asyncio.Lock-based, for testing
      - MongoDocumentStore    — MongoDB via pymongo's asyncio client
    """

    async def insert_one(self, collection: str, document: Document) -> str:
        """
        Insert a document and return its newly assigned identifier.

        Raises
        ------
        StorageError  for any I/O failure (including unique index violations)
        """
        ...

    async def find_one_and_update(
        self,
        collection: str,
        filter: Filter,
        update: Update,
        *,
        sort: SortSpec | None = None,
        upsert: bool = False,
    ) -> Document | None:
        """
        Atomically update the first document matching `filter`.

        Parameters
        ----------
        filter : selection criteria
        update : update operators to apply
        sort   : order used to pick among several matches
        upsert : insert a document built from the filter's equality fields
                 plus the update when nothing matches

        Returns
        -------
        Document | None : the document *after* the update, or None when
                          nothing matched and upsert is False

        Raises
        ------
        StorageError  for any I/O failure
        """
        ...

    async def count_documents(self, collection: str, filter: Filter) -> int:
        """Count documents matching `filter` (an empty filter counts all)."""
        ...

    async def create_index(
        self,
        collection: str,
        keys: SortSpec,
        *,
        unique: bool = False,
        sparse: bool = False,
    ) -> None:
        """
        Ensure an index exists. Idempotent.

        A unique sparse index only constrains documents that carry the field.
        """
        ...
