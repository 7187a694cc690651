"""Data store package for coredata.

This package exposes the :class:`DataStoreClient` used to persist and query
events, readings and value descriptors, together with the document backends
(MongoDB and in-memory) it runs on and the error kinds it raises.
"""

from coredata.store.client import (
    EVENTS_COLLECTION,
    READINGS_COLLECTION,
    VALUE_DESCRIPTOR_COLLECTION,
    DataStoreClient,
    create_backend,
)
from coredata.store.errors import (
    DataStoreError,
    InvalidIdentifierError,
    NoActiveClientError,
    NotFoundError,
    NotUniqueError,
    StoreConnectionError,
    UnexpectedError,
)
from coredata.store.models import Event, Reading, ValueDescriptor

__all__ = [
    "DataStoreClient",
    "create_backend",
    "EVENTS_COLLECTION",
    "READINGS_COLLECTION",
    "VALUE_DESCRIPTOR_COLLECTION",
    "DataStoreError",
    "InvalidIdentifierError",
    "NoActiveClientError",
    "NotFoundError",
    "NotUniqueError",
    "StoreConnectionError",
    "UnexpectedError",
    "Event",
    "Reading",
    "ValueDescriptor",
]
