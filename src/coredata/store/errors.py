"""Error kinds raised by the data store client and its backends."""

from __future__ import annotations


class DataStoreError(Exception):
    """Base error for the data store layer."""


class InvalidIdentifierError(DataStoreError):
    """Raised when a caller supplies a string that is not a valid object id."""

    def __init__(self, value: object) -> None:
        super().__init__(f"Invalid object id: {value!r}")
        self.value = value


class NotFoundError(DataStoreError):
    """Raised when a by-id operation targets a document that does not exist."""


class NotUniqueError(DataStoreError):
    """Raised when a value descriptor name is already taken."""


class UnexpectedError(DataStoreError):
    """Raised for any other store failure (connectivity, driver errors)."""


class StoreConnectionError(DataStoreError):
    """Raised when the store cannot be reached while opening a client."""


class NoActiveClientError(DataStoreError):
    """Raised when an operation runs on a client that is not open."""


__all__ = [
    "DataStoreError",
    "InvalidIdentifierError",
    "NotFoundError",
    "NotUniqueError",
    "UnexpectedError",
    "StoreConnectionError",
    "NoActiveClientError",
]
