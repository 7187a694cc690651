"""Factory helpers that instantiate the data store based on configuration.

These helpers centralize the logic for honoring the environment-specific
settings declared in :mod:`coredata.settings` and return the backend and
client implementations compatible with the current environment profile.
"""

from __future__ import annotations

from coredata.settings import Settings, get_settings
from coredata.store.backend import DocumentBackend
from coredata.store.client import DataStoreClient, create_backend


def build_backend(*, settings: Settings | None = None) -> DocumentBackend:
    """Return an unconnected backend that matches ``settings.database.backend``.

    Raises:
        NotImplementedError: If the configured backend is not supported.
    """

    resolved = settings or get_settings()
    return create_backend(resolved.database)


def build_data_store_client(*, settings: Settings | None = None) -> DataStoreClient:
    """Open a :class:`DataStoreClient` against the configured store."""

    resolved = settings or get_settings()
    return DataStoreClient.open(resolved.database, backend=build_backend(settings=resolved))


def build_export_data_store_client(*, settings: Settings | None = None) -> DataStoreClient:
    """Open a client using the export client's store parameters."""

    resolved = settings or get_settings()
    database = resolved.export_client.database()
    return DataStoreClient.open(database, backend=create_backend(database))


__all__ = ["build_backend", "build_data_store_client", "build_export_data_store_client"]
