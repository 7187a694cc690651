"""Process-local document backend used for the local profile and unit tests."""

from __future__ import annotations

import copy
import logging
import threading
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional, Sequence, Set

from coredata.store.backend import Document, DocumentBackend, StoreHandle
from coredata.store.errors import NotUniqueError, UnexpectedError
from coredata.store.filters import Predicate, matches

LOGGER = logging.getLogger(__name__)


class MemoryBackend(DocumentBackend):
    """Keep collections in dictionaries keyed by document id.

    Collections preserve insertion order. A single re-entrant lock isolates
    individual operations from each other.
    """

    name = "memory"

    def __init__(self) -> None:
        self._collections: Dict[str, Dict[str, Document]] = {}
        self._unique: Dict[str, Set[str]] = {}
        self._lock = threading.RLock()
        self._connected = False

    def connect(self) -> None:
        LOGGER.info("Using in-memory document backend")
        self._connected = True

    def close(self) -> None:
        self._connected = False

    def ensure_unique(self, collection: str, field: str) -> None:
        with self._lock:
            self._unique.setdefault(collection, set()).add(field)

    @contextmanager
    def handle(self) -> Iterator["MemoryHandle"]:
        if not self._connected:
            raise UnexpectedError("Memory backend is not connected")
        yield MemoryHandle(self)

    def _collection(self, name: str) -> Dict[str, Document]:
        return self._collections.setdefault(name, {})

    def _check_unique(self, collection: str, document: Document, *, ignore_id: str | None = None) -> None:
        for field in self._unique.get(collection, ()):
            if field not in document:
                continue
            for existing_id, existing in self._collection(collection).items():
                if existing_id == ignore_id:
                    continue
                if existing.get(field) == document[field]:
                    raise NotUniqueError(f"{collection}.{field}={document[field]!r} already exists")


class MemoryHandle(StoreHandle):
    """Handle operating directly on a :class:`MemoryBackend`."""

    def __init__(self, backend: MemoryBackend) -> None:
        self._backend = backend

    def insert_one(self, collection: str, document: Document) -> None:
        self.insert_many(collection, [document])

    def insert_many(self, collection: str, documents: Sequence[Document]) -> None:
        with self._backend._lock:
            for document in documents:
                document_id = document.get("_id")
                if not document_id:
                    raise UnexpectedError(f"Document inserted into {collection} without an _id")
                if document_id in self._backend._collection(collection):
                    raise UnexpectedError(f"Duplicate _id {document_id} in {collection}")
                self._backend._check_unique(collection, document)
                self._backend._collection(collection)[document_id] = copy.deepcopy(dict(document))

    def find(
        self,
        collection: str,
        predicates: Sequence[Predicate] = (),
        *,
        limit: Optional[int] = None,
    ) -> List[Document]:
        results: List[Document] = []
        with self._backend._lock:
            for document in self._backend._collection(collection).values():
                if not matches(document, predicates):
                    continue
                results.append(copy.deepcopy(document))
                if limit and len(results) >= limit:
                    break
        return results

    def find_one(self, collection: str, predicates: Sequence[Predicate]) -> Optional[Document]:
        found = self.find(collection, predicates, limit=1)
        return found[0] if found else None

    def count(self, collection: str, predicates: Sequence[Predicate] = ()) -> int:
        with self._backend._lock:
            return sum(1 for document in self._backend._collection(collection).values() if matches(document, predicates))

    def replace_by_id(self, collection: str, document_id: str, document: Document) -> bool:
        with self._backend._lock:
            documents = self._backend._collection(collection)
            if document_id not in documents:
                return False
            replacement = copy.deepcopy(dict(document))
            replacement["_id"] = document_id
            self._backend._check_unique(collection, replacement, ignore_id=document_id)
            documents[document_id] = replacement
            return True

    def update_by_id(self, collection: str, document_id: str, fields: Document) -> bool:
        with self._backend._lock:
            documents = self._backend._collection(collection)
            if document_id not in documents:
                return False
            updated = dict(documents[document_id])
            updated.update(copy.deepcopy({key: value for key, value in fields.items() if key != "_id"}))
            self._backend._check_unique(collection, updated, ignore_id=document_id)
            documents[document_id] = updated
            return True

    def delete_by_id(self, collection: str, document_id: str) -> bool:
        with self._backend._lock:
            return self._backend._collection(collection).pop(document_id, None) is not None

    def delete_all(self, collection: str) -> int:
        with self._backend._lock:
            documents = self._backend._collection(collection)
            removed = len(documents)
            documents.clear()
            return removed


__all__ = ["MemoryBackend", "MemoryHandle"]
