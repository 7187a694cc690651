"""Tests for the pymongo backend using a hand-written fake driver."""

from __future__ import annotations

from types import SimpleNamespace
from typing import Any, Dict, List

import pytest
from bson import ObjectId
from pymongo.errors import DuplicateKeyError, PyMongoError, ServerSelectionTimeoutError

from coredata.settings import DatabaseSettings
from coredata.store.client import VALUE_DESCRIPTOR_COLLECTION, DataStoreClient, create_backend
from coredata.store.errors import NotUniqueError, StoreConnectionError, UnexpectedError
from coredata.store.filters import Eq, In, Range
from coredata.store.memory import MemoryBackend
from coredata.store.models import ValueDescriptor
from coredata.store.mongo import MongoBackend


class _FakeCursor:
    def __init__(self, documents: List[Dict[str, Any]]) -> None:
        self._documents = documents
        self.limit_value: int | None = None

    def limit(self, value: int) -> "_FakeCursor":
        self.limit_value = value
        return self

    def __iter__(self):
        documents = self._documents
        if self.limit_value:
            documents = documents[: self.limit_value]
        return iter(documents)


class _FakeCollection:
    def __init__(self, name: str) -> None:
        self.name = name
        self.documents: List[Dict[str, Any]] = []
        self.calls: List[tuple[str, Any, Any]] = []
        self.cursors: List[_FakeCursor] = []
        self.indexes: List[tuple[str, bool]] = []
        self.raise_on: Dict[str, Exception] = {}

    def _record(self, operation: str, argument: Any, session: Any) -> None:
        self.calls.append((operation, argument, session))
        if operation in self.raise_on:
            raise self.raise_on[operation]

    def insert_one(self, document, session=None):
        self._record("insert_one", document, session)
        self.documents.append(document)

    def insert_many(self, documents, ordered=True, session=None):
        self._record("insert_many", documents, session)
        self.documents.extend(documents)

    def find(self, query, session=None):
        self._record("find", query, session)
        cursor = _FakeCursor(list(self.documents))
        self.cursors.append(cursor)
        return cursor

    def find_one(self, query, session=None):
        self._record("find_one", query, session)
        return self.documents[0] if self.documents else None

    def count_documents(self, query, session=None):
        self._record("count_documents", query, session)
        return len(self.documents)

    def replace_one(self, query, replacement, session=None):
        self._record("replace_one", (query, replacement), session)
        return SimpleNamespace(matched_count=len(self.documents))

    def update_one(self, query, update, session=None):
        self._record("update_one", (query, update), session)
        return SimpleNamespace(matched_count=len(self.documents))

    def delete_one(self, query, session=None):
        self._record("delete_one", query, session)
        return SimpleNamespace(deleted_count=1 if self.documents else 0)

    def delete_many(self, query, session=None):
        self._record("delete_many", query, session)
        removed = len(self.documents)
        self.documents.clear()
        return SimpleNamespace(deleted_count=removed)

    def create_index(self, field, unique=False):
        if "create_index" in self.raise_on:
            raise self.raise_on["create_index"]
        self.indexes.append((field, unique))


class _FakeDatabase:
    def __init__(self) -> None:
        self.collections: Dict[str, _FakeCollection] = {}

    def __getitem__(self, name: str) -> _FakeCollection:
        return self.collections.setdefault(name, _FakeCollection(name))


class _FakeSession:
    def __init__(self) -> None:
        self.ended = False

    def end_session(self) -> None:
        self.ended = True


class _FakeAdmin:
    def __init__(self, error: Exception | None) -> None:
        self._error = error
        self.commands: List[str] = []

    def command(self, name: str):
        self.commands.append(name)
        if self._error:
            raise self._error
        return {"ok": 1}


class _FakeMongoClient:
    def __init__(self, *, ping_error: Exception | None = None) -> None:
        self.admin = _FakeAdmin(ping_error)
        self.databases: Dict[str, _FakeDatabase] = {}
        self.sessions: List[_FakeSession] = []
        self.closed = False

    def __getitem__(self, name: str) -> _FakeDatabase:
        return self.databases.setdefault(name, _FakeDatabase())

    def start_session(self) -> _FakeSession:
        session = _FakeSession()
        self.sessions.append(session)
        return session

    def close(self) -> None:
        self.closed = True


def _backend(fake: _FakeMongoClient | None = None) -> tuple[MongoBackend, _FakeMongoClient]:
    fake = fake or _FakeMongoClient()
    backend = MongoBackend(host="mongo", port=27017, database="coredata", client=fake)
    backend.connect()
    return backend, fake


def test_connect_pings_server_and_selects_database():
    backend, fake = _backend()

    assert fake.admin.commands == ["ping"]
    with backend.handle() as handle:
        handle.count("event")
    assert "event" in fake.databases["coredata"].collections


def test_connect_failure_raises_store_connection_error():
    fake = _FakeMongoClient(ping_error=ServerSelectionTimeoutError("no servers"))
    backend = MongoBackend(host="mongo", port=27017, database="coredata", client=fake)

    with pytest.raises(StoreConnectionError) as excinfo:
        backend.connect()

    assert isinstance(excinfo.value.__cause__, ServerSelectionTimeoutError)
    assert fake.closed is True
    with pytest.raises(UnexpectedError):
        with backend.handle():
            pass


def test_handle_uses_and_ends_a_session_per_operation():
    backend, fake = _backend()

    with backend.handle() as handle:
        handle.count("event")
    with backend.handle() as handle:
        handle.count("event")

    assert len(fake.sessions) == 2
    assert all(session.ended for session in fake.sessions)
    collection = fake.databases["coredata"]["event"]
    assert collection.calls[0][2] is fake.sessions[0]


def test_session_is_ended_when_operation_fails():
    backend, fake = _backend()
    fake.databases.setdefault("coredata", _FakeDatabase())["event"].raise_on["count_documents"] = PyMongoError("x")

    with pytest.raises(UnexpectedError):
        with backend.handle() as handle:
            handle.count("event")

    assert fake.sessions[-1].ended


def test_insert_encodes_ids_and_find_decodes_them():
    backend, fake = _backend()
    document_id = str(ObjectId())

    with backend.handle() as handle:
        handle.insert_one("reading", {"_id": document_id, "device": "d1"})
        found = handle.find("reading", (Eq("device", "d1"),), limit=5)

    stored = fake.databases["coredata"]["reading"].documents[0]
    assert isinstance(stored["_id"], ObjectId)
    assert found == [{"_id": document_id, "device": "d1"}]
    assert fake.databases["coredata"]["reading"].cursors[0].limit_value == 5


def test_find_translates_filters_and_id_membership():
    backend, fake = _backend()
    first, second = str(ObjectId()), str(ObjectId())

    with backend.handle() as handle:
        handle.find("reading", (In("_id", [first, second]),))
        handle.find("event", (Range("created", lt=50), Eq("device", "d1")))
        handle.find_one("event", (Eq("_id", first),))

    reading_query = fake.databases["coredata"]["reading"].calls[0][1]
    assert reading_query == {"_id": {"$in": [ObjectId(first), ObjectId(second)]}}
    event_calls = fake.databases["coredata"]["event"].calls
    assert event_calls[0][1] == {"created": {"$lt": 50}, "device": "d1"}
    assert event_calls[1][1] == {"_id": ObjectId(first)}


def test_update_uses_set_and_strips_id():
    backend, fake = _backend()
    document_id = str(ObjectId())
    collection = fake.databases.setdefault("coredata", _FakeDatabase())["event"]
    collection.documents.append({"_id": ObjectId(document_id)})

    with backend.handle() as handle:
        assert handle.update_by_id("event", document_id, {"_id": document_id, "pushed": 5}) is True
        assert handle.replace_by_id("event", document_id, {"_id": document_id, "device": "d1"}) is True

    update_query, update_doc = collection.calls[0][1]
    assert update_query == {"_id": ObjectId(document_id)}
    assert update_doc == {"$set": {"pushed": 5}}
    _, replacement = collection.calls[1][1]
    assert replacement == {"device": "d1"}


def test_delete_reports_missing_documents():
    backend, _ = _backend()

    with backend.handle() as handle:
        assert handle.delete_by_id("event", str(ObjectId())) is False
        assert handle.delete_all("event") == 0


def test_duplicate_key_maps_to_not_unique_and_driver_errors_to_unexpected():
    backend, fake = _backend()
    collection = fake.databases.setdefault("coredata", _FakeDatabase())["valueDescriptor"]
    collection.raise_on["insert_one"] = DuplicateKeyError("E11000 duplicate key")
    collection.raise_on["find"] = PyMongoError("boom")

    with backend.handle() as handle:
        with pytest.raises(NotUniqueError):
            handle.insert_one("valueDescriptor", {"_id": str(ObjectId()), "name": "temp"})
        with pytest.raises(UnexpectedError) as excinfo:
            handle.find("valueDescriptor")

    assert isinstance(excinfo.value.__cause__, PyMongoError)


def test_client_open_creates_unique_name_index():
    fake = _FakeMongoClient()
    backend = MongoBackend(host="mongo", port=27017, database="coredata", client=fake)

    client = DataStoreClient.open(DatabaseSettings(backend="mongo", name="coredata"), backend=backend)

    assert fake.databases["coredata"][VALUE_DESCRIPTOR_COLLECTION].indexes == [("name", True)]
    client.close()
    assert fake.closed is True


def test_client_surfaces_duplicate_value_descriptor_as_not_unique():
    fake = _FakeMongoClient()
    backend = MongoBackend(host="mongo", port=27017, database="coredata", client=fake)
    client = DataStoreClient.open(DatabaseSettings(backend="mongo"), backend=backend)
    collection = fake.databases["coredata"][VALUE_DESCRIPTOR_COLLECTION]
    collection.raise_on["insert_one"] = DuplicateKeyError("E11000 duplicate key")

    with pytest.raises(NotUniqueError):
        client.add_value_descriptor(ValueDescriptor(name="temp"))


def test_create_backend_selects_implementation():
    mongo = create_backend(DatabaseSettings(backend="mongo", host="db", port=27018, name="core"))
    assert isinstance(mongo, MongoBackend)
    assert (mongo.host, mongo.port, mongo.database_name) == ("db", 27018, "core")

    assert isinstance(create_backend(DatabaseSettings(backend="memory")), MemoryBackend)


def test_mongo_backend_requires_database_name():
    with pytest.raises(ValueError):
        MongoBackend(host="db", port=1, database="")


def test_client_open_closes_backend_when_index_creation_fails():
    fake = _FakeMongoClient()
    fake["coredata"][VALUE_DESCRIPTOR_COLLECTION].raise_on["create_index"] = PyMongoError("not authorized")
    backend = MongoBackend(host="mongo", port=27017, database="coredata", client=fake)

    with pytest.raises(StoreConnectionError) as excinfo:
        DataStoreClient.open(DatabaseSettings(backend="mongo"), backend=backend)

    assert isinstance(excinfo.value.__cause__, UnexpectedError)
    assert fake.closed is True


def test_update_value_descriptor_accepts_uppercase_id_of_itself():
    fake = _FakeMongoClient()
    backend = MongoBackend(host="mongo", port=27017, database="coredata", client=fake)
    client = DataStoreClient.open(DatabaseSettings(backend="mongo"), backend=backend)
    object_id = ObjectId()
    collection = fake.databases["coredata"][VALUE_DESCRIPTOR_COLLECTION]
    collection.documents.append({"_id": object_id, "name": "temp"})

    client.update_value_descriptor(ValueDescriptor(id=str(object_id).upper(), name="temp", uom_label="F"))

    query, replacement = collection.calls[-1][1]
    assert query == {"_id": object_id}
    assert replacement["uomLabel"] == "F"
    assert "_id" not in replacement
