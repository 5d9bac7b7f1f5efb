"""Bridge between EventStore and the key/value store (three named records)."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime

from src.contracts.enums import RecordKey
from src.shared.config_loader import TrackerConfig
from src.storage.kv_store import FileKeyValueStore
from src.tracker.store import EventStore

log = logging.getLogger(__name__)


def open_store(
    kv: FileKeyValueStore,
    config: TrackerConfig | None = None,
    clock: Callable[[], datetime] | None = None,
) -> EventStore:
    """Build an EventStore and load whatever records are currently persisted."""
    kwargs = {}
    if config is not None:
        kwargs["default_triggers"] = config.default_triggers
        kwargs["default_mitigations"] = config.default_mitigations
    store = EventStore(clock=clock, **kwargs)

    raw_attacks = kv.get(RecordKey.ATTACKS.value)
    if raw_attacks is not None and not isinstance(raw_attacks, list):
        log.warning("Record %r is not a list, treating as absent", RecordKey.ATTACKS.value)
        raw_attacks = None

    store.load(
        raw_attacks,
        kv.get(RecordKey.TRIGGERS.value),
        kv.get(RecordKey.MITIGATIONS.value),
    )
    return store


def save_store(store: EventStore, kv: FileKeyValueStore) -> None:
    """Persist all three records from the store snapshot."""
    snap = store.snapshot()
    for key in RecordKey:
        kv.set(key.value, snap[key.value])
    log.debug("Saved %d attack records to %s", len(snap[RecordKey.ATTACKS.value]), kv.root)
