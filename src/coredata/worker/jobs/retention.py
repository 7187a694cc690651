"""Batch job entrypoint that prunes pushed and expired events."""

from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass
from typing import Dict, Iterable, List

from coredata.observability import get_observability
from coredata.services.factories import build_data_store_client
from coredata.settings import get_settings
from coredata.store.client import EVENTS_COLLECTION, READINGS_COLLECTION, DataStoreClient
from coredata.store.errors import NotFoundError
from coredata.store.models import Event

LOGGER = logging.getLogger("coredata.worker.jobs.retention")


@dataclass(slots=True)
class PurgeResult:
    """Counts of documents removed by a purge pass."""

    events: int = 0
    readings: int = 0


def _configure_logging() -> None:
    level_name = os.getenv("COREDATA_RUNTIME__LOG_LEVEL", "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s %(message)s")


def purge_events(client: DataStoreClient, events: Iterable[Event], *, dry_run: bool = False) -> PurgeResult:
    """Delete each event together with the readings it references.

    Readings already removed by another caller are skipped. An event that
    disappears between listing and deletion is not counted.
    """

    result = PurgeResult()
    for event in events:
        if dry_run:
            LOGGER.info(
                "Dry run: would delete event id=%s device=%s readings=%s",
                event.id,
                event.device,
                len(event.readings),
            )
            continue
        for reading in event.readings:
            try:
                client.delete_reading_by_id(reading.id)
                result.readings += 1
            except NotFoundError:
                LOGGER.debug("Reading %s already removed", reading.id)
        try:
            client.delete_event_by_id(event.id)
            result.events += 1
        except NotFoundError:
            LOGGER.debug("Event %s already removed", event.id)
    return result


def collect_candidates(client: DataStoreClient, *, scrub_pushed: bool, max_event_age_ms: int) -> List[Event]:
    """Return pushed and/or expired events, each event at most once."""

    candidates: Dict[str, Event] = {}
    if scrub_pushed:
        for event in client.events_pushed():
            candidates.setdefault(event.id, event)
    if max_event_age_ms > 0:
        for event in client.events_older_than_age(max_event_age_ms):
            candidates.setdefault(event.id, event)
    return list(candidates.values())


def main() -> int:
    """Entry point executed by the scheduled retention job."""

    _configure_logging()
    settings = get_settings()
    retention = settings.retention
    observability = get_observability(component="retention", settings=settings)

    if not retention.scrub_pushed and retention.max_event_age_ms <= 0:
        LOGGER.info("Retention disabled (scrub_pushed=false, max_event_age_ms<=0); exiting")
        return 0

    try:
        client = build_data_store_client(settings=settings)
    except Exception:
        LOGGER.exception("Failed to open data store client")
        return 1

    try:
        with client:
            candidates = collect_candidates(
                client,
                scrub_pushed=retention.scrub_pushed,
                max_event_age_ms=retention.max_event_age_ms,
            )
            LOGGER.info(
                "Purging %s event(s) scrub_pushed=%s max_event_age_ms=%s dry_run=%s",
                len(candidates),
                retention.scrub_pushed,
                retention.max_event_age_ms,
                retention.dry_run,
            )
            total = purge_events(client, candidates, dry_run=retention.dry_run)
    except Exception:
        LOGGER.exception("Retention pass failed")
        observability.increment("retention.failures", collection=EVENTS_COLLECTION, operation="purge")
        return 1

    observability.emit_event(
        "retention.complete",
        collection=EVENTS_COLLECTION,
        events_deleted=total.events,
        readings_deleted=total.readings,
        dry_run=retention.dry_run,
    )
    observability.increment(
        "retention.deleted", value=total.events, collection=EVENTS_COLLECTION, operation="purge"
    )
    observability.increment(
        "retention.deleted", value=total.readings, collection=READINGS_COLLECTION, operation="purge"
    )
    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
