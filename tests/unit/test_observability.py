"""Tests for store event logging and StatsD counters."""

from __future__ import annotations

import json
import logging
from types import SimpleNamespace

from coredata import observability
from coredata.observability import Observability, get_observability, reset_observability_cache


def _settings(*, structured: bool = True, statsd_host: str | None = None, backend: str = "mongo"):
    return SimpleNamespace(
        database=SimpleNamespace(backend=backend),
        observability=SimpleNamespace(
            structured_logging=structured,
            statsd_host=statsd_host,
            statsd_port=8125,
            statsd_prefix="coredata",
        ),
    )


def test_emit_event_writes_json_with_store_context(caplog):
    logger = logging.getLogger("coredata.tests.observability")
    obs = Observability(settings=_settings(), component="retention", logger=logger)

    with caplog.at_level(logging.INFO, logger="coredata.tests.observability"):
        obs.emit_event("retention.complete", collection="event", events_deleted=2)

    payload = json.loads(caplog.records[-1].getMessage())
    assert payload["event"] == "retention.complete"
    assert payload["component"] == "retention"
    assert payload["backend"] == "mongo"
    assert payload["collection"] == "event"
    assert payload["events_deleted"] == 2


def test_emit_event_plain_text_when_structured_logging_disabled(caplog):
    logger = logging.getLogger("coredata.tests.observability.plain")
    obs = Observability(settings=_settings(structured=False, backend="memory"), logger=logger)

    with caplog.at_level(logging.INFO, logger="coredata.tests.observability.plain"):
        obs.emit_event("retention.complete", collection="event", readings_deleted=3, dry_run=True)

    assert caplog.records[-1].getMessage() == "retention.complete collection=event dry_run=True readings_deleted=3"


def test_increment_is_noop_without_statsd_host():
    obs = get_observability(settings=_settings())

    obs.increment("retention.deleted", value=4, collection="event")


def test_counters_share_one_sink_and_carry_store_tags(monkeypatch):
    sent = []

    class _FakeSocket:
        def sendto(self, payload, address):
            sent.append((payload.decode("utf-8"), address))

    monkeypatch.setattr(observability.socket, "socket", lambda *args, **kwargs: _FakeSocket())
    reset_observability_cache()
    try:
        settings = _settings(statsd_host="127.0.0.1")
        retention = get_observability(component="retention", settings=settings)
        store = get_observability(settings=settings)

        retention.increment("retention.deleted", value=3, collection="reading", operation="purge")
        store.increment("store.failures")
    finally:
        reset_observability_cache()

    assert sent == [
        (
            "coredata.retention.deleted:3|c|#backend:mongo,collection:reading,component:retention,operation:purge",
            ("127.0.0.1", 8125),
        ),
        ("coredata.store.failures:1|c|#backend:mongo,component:store", ("127.0.0.1", 8125)),
    ]
