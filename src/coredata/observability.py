"""Structured log events and StatsD counters for data store jobs.

Every counter carries the emitting component and the configured store
backend as tags; callers narrow it further with the ``collection`` and
``operation`` they touched.
"""

from __future__ import annotations

import json
import logging
import socket
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict

from coredata.settings import Settings, get_settings

_LOGGER = logging.getLogger("coredata.observability")
_SINK_LOCK = threading.Lock()
_SHARED_SINK: "_StatsdSink | None" = None


class Observability:
    """Emit store events as log records and StatsD counters."""

    def __init__(
        self,
        *,
        settings: Settings,
        component: str = "store",
        sink: "_StatsdSink | None" = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.component = component
        self.backend = settings.database.backend
        self._structured = bool(settings.observability.structured_logging)
        self._sink = sink
        self._logger = logger or _LOGGER

    def emit_event(self, event: str, *, collection: str | None = None, **fields: Any) -> None:
        """Log ``event`` as one JSON line, or as ``key=value`` pairs when structured logging is off."""

        if not self._structured:
            details = " ".join(f"{key}={value}" for key, value in sorted(fields.items()))
            self._logger.info("%s collection=%s %s", event, collection or "-", details)
            return
        record: Dict[str, Any] = {
            "event": event,
            "component": self.component,
            "backend": self.backend,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        if collection:
            record["collection"] = collection
        record.update(fields)
        self._logger.info(json.dumps(record, default=str, sort_keys=True))

    def increment(
        self,
        metric: str,
        *,
        value: int = 1,
        collection: str | None = None,
        operation: str | None = None,
    ) -> None:
        """Add ``value`` to a counter; a no-op when no StatsD host is configured."""

        if self._sink is None:
            return
        tags = {"component": self.component, "backend": self.backend}
        if collection:
            tags["collection"] = collection
        if operation:
            tags["operation"] = operation
        self._sink.count(metric, value, tags)


@dataclass(slots=True)
class _StatsdSink:
    """Fire-and-forget UDP counter sink using the DogStatsD tag syntax."""

    host: str
    port: int
    prefix: str
    _socket: socket.socket = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._socket = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)

    def count(self, metric: str, value: int, tags: Dict[str, str]) -> None:
        name = f"{self.prefix}.{metric}" if self.prefix else metric
        tag_block = ",".join(f"{key}:{tags[key]}" for key in sorted(tags))
        payload = f"{name}:{value}|c|#{tag_block}"
        try:
            self._socket.sendto(payload.encode("utf-8"), (self.host, self.port))
        except OSError:
            _LOGGER.debug("StatsD send failed for %s", metric, exc_info=True)


def get_observability(*, component: str = "store", settings: Settings | None = None) -> Observability:
    """Return an :class:`Observability` sharing one StatsD sink per process."""

    resolved = settings or get_settings()
    return Observability(settings=resolved, component=component, sink=_shared_sink(resolved))


def reset_observability_cache() -> None:
    """Drop the shared StatsD sink so the next call rebuilds it from settings."""

    global _SHARED_SINK
    with _SINK_LOCK:
        _SHARED_SINK = None


def _shared_sink(settings: Settings) -> _StatsdSink | None:
    global _SHARED_SINK
    with _SINK_LOCK:
        if _SHARED_SINK is None and settings.observability.statsd_host:
            _SHARED_SINK = _StatsdSink(
                host=settings.observability.statsd_host,
                port=settings.observability.statsd_port,
                prefix=settings.observability.statsd_prefix,
            )
        return _SHARED_SINK


__all__ = ["Observability", "get_observability", "reset_observability_cache"]
