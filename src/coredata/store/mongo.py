"""MongoDB backend built on pymongo.

One pooled :class:`pymongo.MongoClient` is shared by the backend; every
client operation runs inside its own :class:`~pymongo.client_session.ClientSession`
which is ended when the operation returns.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional, Sequence

from bson import ObjectId
from pymongo import MongoClient
from pymongo.client_session import ClientSession
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError, PyMongoError

from coredata.store.backend import Document, DocumentBackend, StoreHandle
from coredata.store.errors import NotUniqueError, StoreConnectionError, UnexpectedError
from coredata.store.filters import Eq, In, Predicate, to_mongo

LOGGER = logging.getLogger(__name__)

ID_FIELD = "_id"


def _to_object_id(value: Any) -> Any:
    if isinstance(value, str) and ObjectId.is_valid(value):
        return ObjectId(value)
    return value


def _encode_predicates(predicates: Sequence[Predicate]) -> Dict[str, Any]:
    encoded: List[Predicate] = []
    for predicate in predicates:
        if predicate.field == ID_FIELD and isinstance(predicate, Eq):
            predicate = Eq(ID_FIELD, _to_object_id(predicate.value))
        elif predicate.field == ID_FIELD and isinstance(predicate, In):
            predicate = In(ID_FIELD, [_to_object_id(value) for value in predicate.values])
        encoded.append(predicate)
    return to_mongo(encoded)


def _encode_document(document: Document) -> Document:
    encoded = dict(document)
    if encoded.get(ID_FIELD) is not None:
        encoded[ID_FIELD] = _to_object_id(encoded[ID_FIELD])
    else:
        encoded.pop(ID_FIELD, None)
    return encoded


def _decode_document(document: Document) -> Document:
    decoded = dict(document)
    if isinstance(decoded.get(ID_FIELD), ObjectId):
        decoded[ID_FIELD] = str(decoded[ID_FIELD])
    return decoded


@contextmanager
def _driver_errors(operation: str, collection: str) -> Iterator[None]:
    try:
        yield
    except DuplicateKeyError as exc:
        raise NotUniqueError(f"{operation} on {collection} violates a unique index") from exc
    except PyMongoError as exc:
        raise UnexpectedError(f"{operation} on {collection} failed: {exc}") from exc


class MongoHandle(StoreHandle):
    """Store handle bound to one database and one client session."""

    def __init__(self, database: Database, session: ClientSession) -> None:
        self._database = database
        self._session = session

    def insert_one(self, collection: str, document: Document) -> None:
        with _driver_errors("insert", collection):
            self._database[collection].insert_one(_encode_document(document), session=self._session)

    def insert_many(self, collection: str, documents: Sequence[Document]) -> None:
        if not documents:
            return
        with _driver_errors("insert", collection):
            self._database[collection].insert_many(
                [_encode_document(document) for document in documents],
                ordered=True,
                session=self._session,
            )

    def find(
        self,
        collection: str,
        predicates: Sequence[Predicate] = (),
        *,
        limit: Optional[int] = None,
    ) -> List[Document]:
        with _driver_errors("find", collection):
            cursor = self._database[collection].find(_encode_predicates(predicates), session=self._session)
            if limit:
                cursor = cursor.limit(limit)
            return [_decode_document(document) for document in cursor]

    def find_one(self, collection: str, predicates: Sequence[Predicate]) -> Optional[Document]:
        with _driver_errors("find", collection):
            document = self._database[collection].find_one(_encode_predicates(predicates), session=self._session)
        if document is None:
            return None
        return _decode_document(document)

    def count(self, collection: str, predicates: Sequence[Predicate] = ()) -> int:
        with _driver_errors("count", collection):
            return self._database[collection].count_documents(_encode_predicates(predicates), session=self._session)

    def replace_by_id(self, collection: str, document_id: str, document: Document) -> bool:
        replacement = _encode_document(document)
        replacement.pop(ID_FIELD, None)
        with _driver_errors("replace", collection):
            result = self._database[collection].replace_one(
                {ID_FIELD: _to_object_id(document_id)},
                replacement,
                session=self._session,
            )
        return result.matched_count > 0

    def update_by_id(self, collection: str, document_id: str, fields: Document) -> bool:
        values = dict(fields)
        values.pop(ID_FIELD, None)
        with _driver_errors("update", collection):
            result = self._database[collection].update_one(
                {ID_FIELD: _to_object_id(document_id)},
                {"$set": values},
                session=self._session,
            )
        return result.matched_count > 0

    def delete_by_id(self, collection: str, document_id: str) -> bool:
        with _driver_errors("delete", collection):
            result = self._database[collection].delete_one(
                {ID_FIELD: _to_object_id(document_id)},
                session=self._session,
            )
        return result.deleted_count > 0

    def delete_all(self, collection: str) -> int:
        with _driver_errors("delete", collection):
            result = self._database[collection].delete_many({}, session=self._session)
        return result.deleted_count


class MongoBackend(DocumentBackend):
    """Document backend talking to a MongoDB server."""

    name = "mongo"

    def __init__(
        self,
        *,
        host: str,
        port: int,
        database: str,
        username: str | None = None,
        password: str | None = None,
        timeout_ms: int = 5000,
        client: MongoClient | None = None,
    ) -> None:
        if not database:
            raise ValueError("MongoBackend requires a database name")
        self.host = host
        self.port = port
        self.database_name = database
        self._username = username or None
        self._password = password or None
        self._timeout_ms = timeout_ms
        self._client = client
        self._database: Database | None = None

    def connect(self) -> None:
        address = f"{self.host}:{self.port}"
        LOGGER.info("Connecting to mongo at %s database=%s", address, self.database_name)
        if self._client is None:
            self._client = MongoClient(
                host=self.host,
                port=self.port,
                username=self._username,
                password=self._password,
                authSource=self.database_name,
                serverSelectionTimeoutMS=self._timeout_ms,
                connectTimeoutMS=self._timeout_ms,
            )
        try:
            self._client.admin.command("ping")
        except PyMongoError as exc:
            LOGGER.error("Error dialing the mongo server at %s: %s", address, exc)
            self._client.close()
            self._client = None
            raise StoreConnectionError(f"Unable to reach mongo at {address}") from exc
        self._database = self._client[self.database_name]

    def close(self) -> None:
        if self._client is None:
            return
        self._client.close()
        self._client = None
        self._database = None

    def ensure_unique(self, collection: str, field: str) -> None:
        database = self._require_database()
        with _driver_errors("create_index", collection):
            database[collection].create_index(field, unique=True)

    @contextmanager
    def handle(self) -> Iterator[MongoHandle]:
        database = self._require_database()
        session = self._client.start_session()
        try:
            yield MongoHandle(database, session)
        finally:
            session.end_session()

    def _require_database(self) -> Database:
        if self._client is None or self._database is None:
            raise UnexpectedError("Mongo backend is not connected")
        return self._database


__all__ = ["MongoBackend", "MongoHandle"]
