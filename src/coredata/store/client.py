"""Data store client for events, readings and value descriptors.

The client hides the document store behind typed CRUD calls. Each call takes
a scoped handle from the backend, issues one store operation (two for
:meth:`DataStoreClient.add_event`), translates "not found" and duplicate-key
signals into :mod:`coredata.store.errors` and returns.

Limits on list operations: ``0`` returns an empty list without querying,
a positive value caps the number of documents returned.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Callable, Dict, Iterator, List, Sequence

from bson import ObjectId

from coredata.settings.config import DatabaseSettings
from coredata.store.backend import Document, DocumentBackend, StoreHandle
from coredata.store.errors import (
    DataStoreError,
    InvalidIdentifierError,
    NoActiveClientError,
    NotFoundError,
    NotUniqueError,
    StoreConnectionError,
)
from coredata.store.filters import Eq, In, Predicate, Range
from coredata.store.ids import is_valid_id, new_id, now_ms
from coredata.store.memory import MemoryBackend
from coredata.store.models import Event, Reading, ValueDescriptor
from coredata.store.mongo import MongoBackend

LOGGER = logging.getLogger(__name__)

EVENTS_COLLECTION = "event"
READINGS_COLLECTION = "reading"
VALUE_DESCRIPTOR_COLLECTION = "valueDescriptor"


def create_backend(config: DatabaseSettings) -> DocumentBackend:
    """Instantiate the (unconnected) backend selected by ``config.backend``."""

    if config.backend == "mongo":
        return MongoBackend(
            host=config.host,
            port=config.port,
            database=config.name,
            username=config.username,
            password=config.password,
            timeout_ms=config.timeout_ms,
        )
    if config.backend == "memory":
        return MemoryBackend()
    raise NotImplementedError(f"Unsupported document backend '{config.backend}'")


def _check_limit(limit: int) -> int:
    if limit < 0:
        raise ValueError(f"limit must be >= 0, got {limit}")
    return limit


def _require_id(value: str | None) -> str:
    """Validate ``value`` and return its canonical lowercase hex form."""

    if not is_valid_id(value):
        raise InvalidIdentifierError(value)
    return str(ObjectId(value))


class DataStoreClient:
    """Typed CRUD access to the core data collections."""

    def __init__(self, backend: DocumentBackend, *, clock: Callable[[], int] | None = None) -> None:
        self._backend = backend
        self._clock = clock or now_ms
        self._active = False

    @classmethod
    def open(
        cls,
        config: DatabaseSettings,
        *,
        backend: DocumentBackend | None = None,
        clock: Callable[[], int] | None = None,
    ) -> "DataStoreClient":
        """Connect to the store described by ``config`` and return an active client.

        Args:
            config: Store connection parameters.
            backend: Pre-built backend; when ``None`` one is created from ``config``.
            clock: Millisecond clock used for ``created``/``modified`` stamps.

        Raises:
            StoreConnectionError: If the store cannot be reached.
        """

        client = cls(backend or create_backend(config), clock=clock)
        client.connect()
        return client

    def connect(self) -> None:
        """Connect the backend and prepare the value descriptor name index.

        Raises:
            StoreConnectionError: If the store is unreachable or the index
                cannot be created. The backend is closed before raising.
        """

        self._backend.connect()
        try:
            self._backend.ensure_unique(VALUE_DESCRIPTOR_COLLECTION, "name")
        except DataStoreError as exc:
            LOGGER.error("Failed to prepare %s name index: %s", VALUE_DESCRIPTOR_COLLECTION, exc)
            self._backend.close()
            raise StoreConnectionError(f"Failed to prepare {VALUE_DESCRIPTOR_COLLECTION} name index") from exc
        self._active = True

    def close(self) -> None:
        """Release the backend connection."""

        if not self._active:
            return
        self._active = False
        self._backend.close()

    @property
    def is_active(self) -> bool:
        return self._active

    def __enter__(self) -> "DataStoreClient":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @contextmanager
    def _handle(self) -> Iterator[StoreHandle]:
        if not self._active:
            raise NoActiveClientError("No active data store client; open one before issuing requests")
        with self._backend.handle() as handle:
            yield handle

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------
    def events(self) -> List[Event]:
        """Return every event with its readings."""

        return self._get_events(())

    def add_event(self, event: Event) -> str:
        """Persist a new event and its readings, returning the event id.

        Readings are inserted before the event. When the event insert fails
        the readings already written are left in place.
        """

        created = self._clock()
        pending = event.model_copy(deep=True)
        pending.id = new_id()
        pending.created = created
        for reading in pending.readings:
            reading.id = new_id()
            reading.created = created
            reading.device = pending.device

        with self._handle() as handle:
            if pending.readings:
                handle.insert_many(READINGS_COLLECTION, [reading.to_document() for reading in pending.readings])
            handle.insert_one(EVENTS_COLLECTION, pending.to_document())

        LOGGER.info(
            "Added event id=%s device=%s readings=%s",
            pending.id,
            pending.device,
            len(pending.readings),
        )
        return pending.id

    def update_event(self, event: Event) -> None:
        """Replace an event's fields by id, leaving its readings untouched."""

        event_id = _require_id(event.id)
        updated = event.model_copy(update={"id": event_id})
        updated.modified = self._clock()
        with self._handle() as handle:
            found = handle.update_by_id(EVENTS_COLLECTION, event_id, updated.to_document(exclude={"readings"}))
        if not found:
            raise NotFoundError(f"Event {event_id} not found")

    def event_by_id(self, event_id: str) -> Event:
        """Return one event by id."""

        event_id = _require_id(event_id)
        return self._get_event((Eq("_id", event_id),))

    def event_count(self) -> int:
        with self._handle() as handle:
            return handle.count(EVENTS_COLLECTION)

    def event_count_by_device(self, device: str) -> int:
        with self._handle() as handle:
            return handle.count(EVENTS_COLLECTION, (Eq("device", device),))

    def delete_event_by_id(self, event_id: str) -> None:
        """Delete an event document; its readings are not removed."""

        self._delete_by_id(event_id, EVENTS_COLLECTION)

    def events_for_device(self, device: str) -> List[Event]:
        return self._get_events((Eq("device", device),))

    def events_for_device_limit(self, device: str, limit: int) -> List[Event]:
        return self._get_events((Eq("device", device),), limit=limit)

    def events_by_creation_time(self, start: int, end: int, limit: int) -> List[Event]:
        """Events created between ``start`` and ``end`` inclusive."""

        return self._get_events((Range("created", gte=start, lte=end),), limit=limit)

    def events_older_than_age(self, age: int) -> List[Event]:
        """Events whose ``created`` is strictly before ``now - age``."""

        expire_at = self._clock() - age
        return self._get_events((Range("created", lt=expire_at),))

    def events_pushed(self) -> List[Event]:
        return self._get_events((Range("pushed", gt=0),))

    def scrub_all_events(self) -> None:
        """Delete all readings, then all events."""

        with self._handle() as handle:
            readings = handle.delete_all(READINGS_COLLECTION)
            events = handle.delete_all(EVENTS_COLLECTION)
        LOGGER.info("Scrubbed %s event(s) and %s reading(s)", events, readings)

    def _get_events(self, predicates: Sequence[Predicate], *, limit: int | None = None) -> List[Event]:
        if limit is not None and _check_limit(limit) == 0:
            return []
        with self._handle() as handle:
            documents = handle.find(EVENTS_COLLECTION, predicates, limit=limit)
            return self._load_events(handle, documents)

    def _get_event(self, predicates: Sequence[Predicate]) -> Event:
        with self._handle() as handle:
            document = handle.find_one(EVENTS_COLLECTION, predicates)
            if document is None:
                raise NotFoundError("Event not found")
            return self._load_events(handle, [document])[0]

    def _load_events(self, handle: StoreHandle, documents: Sequence[Document]) -> List[Event]:
        """Resolve each event's reading references into Reading models."""

        reading_ids: List[str] = []
        for document in documents:
            reading_ids.extend(ref for ref in document.get("readings") or [] if ref)
        readings: Dict[str, Document] = {}
        if reading_ids:
            for reading in handle.find(READINGS_COLLECTION, (In("_id", reading_ids),)):
                readings[reading["_id"]] = reading

        events: List[Event] = []
        for document in documents:
            data = dict(document)
            refs = data.get("readings") or []
            data["readings"] = [Reading.from_document(readings[ref]) for ref in refs if ref in readings]
            if len(data["readings"]) != len(refs):
                LOGGER.debug(
                    "Event %s references %s missing reading(s)",
                    data.get("_id"),
                    len(refs) - len(data["readings"]),
                )
            events.append(Event.from_document(data))
        return events

    # ------------------------------------------------------------------
    # Readings
    # ------------------------------------------------------------------
    def readings(self) -> List[Reading]:
        return self._get_readings(())

    def add_reading(self, reading: Reading) -> str:
        """Persist a reading and return its new id."""

        pending = reading.model_copy()
        pending.id = new_id()
        pending.created = self._clock()
        with self._handle() as handle:
            handle.insert_one(READINGS_COLLECTION, pending.to_document())
        return pending.id

    def update_reading(self, reading: Reading) -> None:
        """Replace a reading by id."""

        reading_id = _require_id(reading.id)
        updated = reading.model_copy(update={"id": reading_id})
        updated.modified = self._clock()
        with self._handle() as handle:
            found = handle.replace_by_id(READINGS_COLLECTION, reading_id, updated.to_document())
        if not found:
            raise NotFoundError(f"Reading {reading_id} not found")

    def reading_by_id(self, reading_id: str) -> Reading:
        reading_id = _require_id(reading_id)
        with self._handle() as handle:
            document = handle.find_one(READINGS_COLLECTION, (Eq("_id", reading_id),))
        if document is None:
            raise NotFoundError(f"Reading {reading_id} not found")
        return Reading.from_document(document)

    def reading_count(self) -> int:
        with self._handle() as handle:
            return handle.count(READINGS_COLLECTION)

    def delete_reading_by_id(self, reading_id: str) -> None:
        self._delete_by_id(reading_id, READINGS_COLLECTION)

    def readings_by_device(self, device: str, limit: int) -> List[Reading]:
        return self._get_readings((Eq("device", device),), limit=limit)

    def readings_by_value_descriptor(self, name: str, limit: int) -> List[Reading]:
        return self._get_readings((Eq("name", name),), limit=limit)

    def readings_by_value_descriptor_names(self, names: Sequence[str], limit: int) -> List[Reading]:
        """Readings whose value descriptor name is one of ``names``."""

        return self._get_readings((In("name", names),), limit=limit)

    def readings_by_creation_time(self, start: int, end: int, limit: int) -> List[Reading]:
        return self._get_readings((Range("created", gte=start, lte=end),), limit=limit)

    def readings_by_device_and_value_descriptor(self, device: str, name: str, limit: int) -> List[Reading]:
        return self._get_readings((Eq("device", device), Eq("name", name)), limit=limit)

    def _get_readings(self, predicates: Sequence[Predicate], *, limit: int | None = None) -> List[Reading]:
        if limit is not None and _check_limit(limit) == 0:
            return []
        with self._handle() as handle:
            documents = handle.find(READINGS_COLLECTION, predicates, limit=limit)
        return [Reading.from_document(document) for document in documents]

    # ------------------------------------------------------------------
    # Value descriptors
    # ------------------------------------------------------------------
    def add_value_descriptor(self, descriptor: ValueDescriptor) -> str:
        """Insert a value descriptor whose name must not exist yet.

        Raises:
            NotUniqueError: A descriptor with the same name already exists; it
                is left unchanged.
        """

        pending = descriptor.model_copy(deep=True)
        pending.id = new_id()
        pending.created = self._clock()
        with self._handle() as handle:
            handle.insert_one(VALUE_DESCRIPTOR_COLLECTION, pending.to_document())
        LOGGER.info("Added value descriptor id=%s name=%s", pending.id, pending.name)
        return pending.id

    def value_descriptors(self) -> List[ValueDescriptor]:
        return self._get_value_descriptors(())

    def update_value_descriptor(self, descriptor: ValueDescriptor) -> None:
        """Replace a value descriptor by id, keeping names unique."""

        descriptor_id = _require_id(descriptor.id)
        with self._handle() as handle:
            owner = handle.find_one(VALUE_DESCRIPTOR_COLLECTION, (Eq("name", descriptor.name),))
            if owner is not None and owner["_id"] != descriptor_id:
                raise NotUniqueError(f"Value descriptor name {descriptor.name!r} is already in use")

            updated = descriptor.model_copy(update={"id": descriptor_id}, deep=True)
            updated.modified = self._clock()
            found = handle.replace_by_id(VALUE_DESCRIPTOR_COLLECTION, descriptor_id, updated.to_document())
        if not found:
            raise NotFoundError(f"Value descriptor {descriptor_id} not found")

    def delete_value_descriptor_by_id(self, descriptor_id: str) -> None:
        """Delete a value descriptor. Readings that use its name are not checked."""

        self._delete_by_id(descriptor_id, VALUE_DESCRIPTOR_COLLECTION)

    def value_descriptor_by_name(self, name: str) -> ValueDescriptor:
        return self._get_value_descriptor((Eq("name", name),))

    def value_descriptors_by_name(self, names: Sequence[str]) -> List[ValueDescriptor]:
        """Fetch descriptors one name at a time, skipping names that do not exist."""

        found: List[ValueDescriptor] = []
        for name in names:
            try:
                found.append(self.value_descriptor_by_name(name))
            except NotFoundError:
                continue
        return found

    def value_descriptor_by_id(self, descriptor_id: str) -> ValueDescriptor:
        descriptor_id = _require_id(descriptor_id)
        return self._get_value_descriptor((Eq("_id", descriptor_id),))

    def value_descriptors_by_uom_label(self, uom_label: str) -> List[ValueDescriptor]:
        return self._get_value_descriptors((Eq("uomLabel", uom_label),))

    def value_descriptors_by_label(self, label: str) -> List[ValueDescriptor]:
        return self._get_value_descriptors((Eq("labels", label),))

    def value_descriptors_by_type(self, value_type: str) -> List[ValueDescriptor]:
        return self._get_value_descriptors((Eq("type", value_type),))

    def scrub_all_value_descriptors(self) -> None:
        with self._handle() as handle:
            removed = handle.delete_all(VALUE_DESCRIPTOR_COLLECTION)
        LOGGER.info("Scrubbed %s value descriptor(s)", removed)

    def _get_value_descriptors(self, predicates: Sequence[Predicate]) -> List[ValueDescriptor]:
        with self._handle() as handle:
            documents = handle.find(VALUE_DESCRIPTOR_COLLECTION, predicates)
        return [ValueDescriptor.from_document(document) for document in documents]

    def _get_value_descriptor(self, predicates: Sequence[Predicate]) -> ValueDescriptor:
        with self._handle() as handle:
            document = handle.find_one(VALUE_DESCRIPTOR_COLLECTION, predicates)
        if document is None:
            raise NotFoundError("Value descriptor not found")
        return ValueDescriptor.from_document(document)

    # ------------------------------------------------------------------
    # Shared helpers
    # ------------------------------------------------------------------
    def _delete_by_id(self, document_id: str, collection: str) -> None:
        document_id = _require_id(document_id)
        with self._handle() as handle:
            removed = handle.delete_by_id(collection, document_id)
        if not removed:
            raise NotFoundError(f"{collection} {document_id} not found")
        LOGGER.info("Deleted %s id=%s", collection, document_id)


__all__ = [
    "DataStoreClient",
    "create_backend",
    "EVENTS_COLLECTION",
    "READINGS_COLLECTION",
    "VALUE_DESCRIPTOR_COLLECTION",
]
