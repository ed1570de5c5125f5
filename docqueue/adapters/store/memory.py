"""
InMemoryDocumentStore — asyncio.Lock-based document store for testing and development.

Keeps every collection as an insertion-ordered dict of documents in memory.
A single asyncio.Lock serializes all operations, which gives
find_one_and_update() the same single-document atomicity a real database
provides: concurrent claimants never observe the same pre-update document.

Queries are evaluated with docqueue.core.filters.matches(), the same function
that defines message states, so the in-memory semantics cannot drift from the
queue's own state definitions.

Identifiers are 24 hex digits from a per-store counter, so they sort in
insertion order like MongoDB ObjectIds do.

Zero external dependencies. Safe for multiple concurrent coroutines in a
single event loop. NOT safe across processes or threads.
"""
from __future__ import annotations

import asyncio
import copy
import dataclasses
import itertools
from collections.abc import Iterator, Mapping
from typing import Any

from docqueue.core.filters import is_missing, matches, resolve
from docqueue.domain.errors import StorageError
from docqueue.ports.store import Document, Filter, SortSpec, Update


class DuplicateKeyError(ValueError):
    """A write would violate a unique index. Surfaces wrapped in StorageError."""


@dataclasses.dataclass(frozen=True)
class _IndexSpec:
    keys: tuple[tuple[str, int], ...]
    unique: bool
    sparse: bool


@dataclasses.dataclass
class InMemoryDocumentStore:
    """
    In-process document store.

    Parameters
    ----------
    initial_documents : optional {collection: [documents]} for test setup;
                        documents without an "_id" are assigned one
    """

    initial_documents: Mapping[str, list[Document]] = dataclasses.field(
        default_factory=dict
    )

    def __post_init__(self) -> None:
        self._collections: dict[str, dict[str, Document]] = {}
        self._indexes: dict[str, list[_IndexSpec]] = {}
        self._ids: Iterator[int] = itertools.count(1)
        self._lock: asyncio.Lock = asyncio.Lock()
        for name, documents in self.initial_documents.items():
            for document in documents:
                self._insert(name, copy.deepcopy(document))

    # ------------------------------------------------------------------ #
    # DocumentStorePort                                                    #
    # ------------------------------------------------------------------ #

    async def insert_one(self, collection: str, document: Document) -> str:
        """Insert a copy of `document` and return its new identifier."""
        async with self._lock:
            return self._insert(collection, copy.deepcopy(document))

    async def find_one_and_update(
        self,
        collection: str,
        filter: Filter,
        update: Update,
        *,
        sort: SortSpec | None = None,
        upsert: bool = False,
    ) -> Document | None:
        """Atomically update the first match and return a copy of the result."""
        async with self._lock:
            candidates = self._find(collection, filter, sort)
            if candidates:
                current = candidates[0]
                updated = _apply_update(copy.deepcopy(current), update, inserting=False)
                self._check_unique(collection, updated)
                self._documents(collection)[updated["_id"]] = updated
                return copy.deepcopy(updated)
            if not upsert:
                return None
            seeded = _apply_update(_seed_from_filter(filter), update, inserting=True)
            new_id = self._insert(collection, seeded)
            return copy.deepcopy(self._documents(collection)[new_id])

    async def count_documents(self, collection: str, filter: Filter) -> int:
        async with self._lock:
            return sum(
                1 for doc in self._documents(collection).values() if matches(doc, filter)
            )

    async def create_index(
        self,
        collection: str,
        keys: SortSpec,
        *,
        unique: bool = False,
        sparse: bool = False,
    ) -> None:
        """Record the index; unique indexes are enforced on every later write."""
        spec = _IndexSpec(keys=tuple(keys), unique=unique, sparse=sparse)
        async with self._lock:
            specs = self._indexes.setdefault(collection, [])
            if spec in specs:
                return
            if unique:
                for document in self._documents(collection).values():
                    self._check_unique(collection, document, extra=(spec,))
            specs.append(spec)

    # ------------------------------------------------------------------ #
    # Introspection helpers (tests)                                       #
    # ------------------------------------------------------------------ #

    def documents(self, collection: str) -> list[Document]:
        """Snapshot of every document in `collection`, in identifier order."""
        return [copy.deepcopy(d) for d in self._documents(collection).values()]

    def indexes(self, collection: str) -> list[_IndexSpec]:
        return list(self._indexes.get(collection, []))

    # ------------------------------------------------------------------ #
    # Internals (caller holds the lock)                                   #
    # ------------------------------------------------------------------ #

    def _documents(self, collection: str) -> dict[str, Document]:
        return self._collections.setdefault(collection, {})

    def _insert(self, collection: str, document: Document) -> str:
        document.setdefault("_id", f"{next(self._ids):024x}")
        doc_id = str(document["_id"])
        document["_id"] = doc_id
        docs = self._documents(collection)
        if doc_id in docs:
            raise StorageError(
                "In-memory insert failed",
                DuplicateKeyError(f"duplicate _id {doc_id!r} in {collection!r}"),
            )
        self._check_unique(collection, document)
        docs[doc_id] = document
        return doc_id

    def _find(
        self, collection: str, filter: Filter, sort: SortSpec | None
    ) -> list[Document]:
        found = [d for d in self._documents(collection).values() if matches(d, filter)]
        for field, direction in reversed(list(sort or ())):
            found.sort(key=lambda d: _sort_key(d, field), reverse=direction < 0)
        return found

    def _check_unique(
        self,
        collection: str,
        document: Document,
        extra: tuple[_IndexSpec, ...] = (),
    ) -> None:
        for spec in (*self._indexes.get(collection, ()), *extra):
            if not spec.unique:
                continue
            key = _index_key(document, spec)
            if key is None:
                continue
            for other in self._documents(collection).values():
                if other["_id"] != document["_id"] and _index_key(other, spec) == key:
                    raise StorageError(
                        "In-memory write failed",
                        DuplicateKeyError(
                            f"duplicate key {key!r} for unique index "
                            f"{[k for k, _ in spec.keys]} in {collection!r}"
                        ),
                    )


def _index_key(document: Document, spec: _IndexSpec) -> tuple[Any, ...] | None:
    values = tuple(resolve(document, field) for field, _ in spec.keys)
    if spec.sparse and all(is_missing(v) for v in values):
        return None
    return tuple(None if is_missing(v) else v for v in values)


def _sort_key(document: Document, field: str) -> tuple[int, Any]:
    value = resolve(document, field)
    # Missing and null sort before any value, as in MongoDB.
    if is_missing(value) or value is None:
        return (0, 0)
    return (1, value)


def _set_path(document: Document, path: str, value: Any) -> None:
    *parents, leaf = path.split(".")
    target = document
    for part in parents:
        child = target.get(part)
        if not isinstance(child, dict):
            child = {}
            target[part] = child
        target = child
    target[leaf] = value


def _seed_from_filter(filter: Filter) -> Document:
    """Build the base of an upserted document from the filter's equality fields."""
    seeded: Document = {}
    for path, condition in filter.items():
        if isinstance(condition, Mapping) and any(str(k).startswith("$") for k in condition):
            if "$eq" in condition:
                _set_path(seeded, path, copy.deepcopy(condition["$eq"]))
            continue
        _set_path(seeded, path, copy.deepcopy(condition))
    return seeded


def _apply_update(document: Document, update: Update, *, inserting: bool) -> Document:
    for op, fields in update.items():
        match op:
            case "$set":
                for path, value in fields.items():
                    _set_path(document, path, copy.deepcopy(value))
            case "$setOnInsert":
                if inserting:
                    for path, value in fields.items():
                        _set_path(document, path, copy.deepcopy(value))
            case "$inc":
                for path, amount in fields.items():
                    current = resolve(document, path)
                    base = 0 if is_missing(current) or current is None else current
                    _set_path(document, path, base + amount)
            case _:
                raise ValueError(f"Unsupported update operator: {op}")
    return document
