"""Interfaces implemented by document store backends."""

from __future__ import annotations

from contextlib import AbstractContextManager
from typing import Any, Dict, List, Optional, Sequence

from coredata.store.filters import Predicate

Document = Dict[str, Any]


class StoreHandle:
    """Scoped access to the store for a single client operation.

    Documents carry their identifier under ``_id`` as a hex string. Handles
    raise :class:`~coredata.store.errors.NotUniqueError` on unique-key
    conflicts and :class:`~coredata.store.errors.UnexpectedError` for any
    other store failure.
    """

    def insert_one(self, collection: str, document: Document) -> None:  # pragma: no cover - interface only
        raise NotImplementedError

    def insert_many(self, collection: str, documents: Sequence[Document]) -> None:  # pragma: no cover
        raise NotImplementedError

    def find(
        self,
        collection: str,
        predicates: Sequence[Predicate] = (),
        *,
        limit: Optional[int] = None,
    ) -> List[Document]:  # pragma: no cover - interface only
        raise NotImplementedError

    def find_one(
        self, collection: str, predicates: Sequence[Predicate]
    ) -> Optional[Document]:  # pragma: no cover - interface only
        raise NotImplementedError

    def count(self, collection: str, predicates: Sequence[Predicate] = ()) -> int:  # pragma: no cover
        raise NotImplementedError

    def replace_by_id(
        self, collection: str, document_id: str, document: Document
    ) -> bool:  # pragma: no cover - interface only
        """Replace the whole document; return False when the id is unknown."""

        raise NotImplementedError

    def update_by_id(
        self, collection: str, document_id: str, fields: Document
    ) -> bool:  # pragma: no cover - interface only
        """Set ``fields`` on the document; return False when the id is unknown."""

        raise NotImplementedError

    def delete_by_id(self, collection: str, document_id: str) -> bool:  # pragma: no cover
        """Delete a single document; return False when the id is unknown."""

        raise NotImplementedError

    def delete_all(self, collection: str) -> int:  # pragma: no cover - interface only
        raise NotImplementedError


class DocumentBackend:
    """A connectable document store that hands out per-operation handles."""

    name = "abstract"

    def connect(self) -> None:  # pragma: no cover - interface only
        raise NotImplementedError

    def close(self) -> None:  # pragma: no cover - interface only
        raise NotImplementedError

    def ensure_unique(self, collection: str, field: str) -> None:  # pragma: no cover - interface only
        raise NotImplementedError

    def handle(self) -> AbstractContextManager[StoreHandle]:  # pragma: no cover - interface only
        raise NotImplementedError


__all__ = ["Document", "StoreHandle", "DocumentBackend"]
