"""Tests for src.storage.kv_store and src.tracker.persistence."""

from __future__ import annotations

import json

import pytest

from src.shared.config_loader import TrackerConfig
from src.tracker.persistence import open_store, save_store
from src.tracker.store import DEFAULT_TRIGGERS
from tests.conftest import T0, FixedClock, dt, make_attack

# ═══════════════════════════════════════════════════════════════════════════
#  FileKeyValueStore
# ═══════════════════════════════════════════════════════════════════════════


class TestFileKeyValueStore:
    def test_missing_record_is_none(self, kv):
        assert kv.get("attacks") is None

    def test_set_get(self, kv):
        kv.set("mitigations", ["tea", "walk"])
        assert kv.get("mitigations") == ["tea", "walk"]
        assert (kv.root / "mitigations.json").exists()

    def test_unparseable_record_is_none(self, kv):
        kv.root.mkdir(parents=True)
        (kv.root / "attacks.json").write_text("{not json", encoding="utf-8")
        assert kv.get("attacks") is None

    def test_no_temp_files_left(self, kv):
        kv.set("attacks", [])
        assert [p.name for p in kv.root.iterdir()] == ["attacks.json"]

    def test_invalid_key(self, kv):
        with pytest.raises(ValueError):
            kv.get("../etc/passwd")


# ═══════════════════════════════════════════════════════════════════════════
#  open_store / save_store
# ═══════════════════════════════════════════════════════════════════════════


class TestPersistence:
    def test_empty_store_uses_defaults(self, kv):
        store = open_store(kv)
        assert store.triggers() == DEFAULT_TRIGGERS
        assert store.historical_events() == ()

    def test_config_defaults(self, kv):
        cfg = TrackerConfig(default_triggers=("x",), default_mitigations=("y",))
        store = open_store(kv, cfg)
        assert store.triggers() == ("x",)
        assert store.mitigations() == ("y",)

    def test_save_writes_three_records(self, kv):
        store = open_store(kv)
        save_store(store, kv)
        assert sorted(p.name for p in kv.root.iterdir()) == [
            "attacks.json",
            "locationTriggers.json",
            "mitigations.json",
        ]

    def test_active_attack_survives_reload(self, kv):
        store = open_store(kv, clock=FixedClock())
        store.start_event(T0, 6, ["work"])
        store.record_mitigation(dt(minutes=15), ["tea"], 4)
        save_store(store, kv)

        raw = json.loads((kv.root / "attacks.json").read_text(encoding="utf-8"))
        assert raw[0]["endTime"] is None

        reloaded = open_store(kv)
        active = reloaded.active_event()
        assert active is not None
        assert active.current_severity == 4
        assert reloaded.historical_events() == ()

        reloaded.end_active_event(dt(hours=1))
        save_store(reloaded, kv)
        final = open_store(kv)
        assert final.active_event() is None
        assert len(final.historical_events()) == 1

    def test_corrupt_attacks_record_treated_as_absent(self, kv):
        kv.set("locationTriggers", ["custom"])
        (kv.root / "attacks.json").write_text("[{", encoding="utf-8")
        store = open_store(kv)
        assert store.historical_events() == ()
        assert store.triggers() == ("custom",)

    def test_non_list_attacks_record_treated_as_absent(self, kv):
        kv.set("attacks", {"oops": True})
        assert open_store(kv).historical_events() == ()

    def test_nan_instant_skips_only_that_record(self, kv):
        bad = make_attack(attack_id=1).to_dict()
        bad["endTime"] = float("nan")
        kv.set("attacks", [bad, make_attack(attack_id=2).to_dict()])
        assert "NaN" in (kv.root / "attacks.json").read_text(encoding="utf-8")
        store = open_store(kv)
        assert [a.id for a in store.historical_events()] == [2]
        assert len(store.inconsistencies) == 1

    def test_unsaved_mutation_is_lost(self, kv):
        store = open_store(kv)
        store.start_event(T0, 5, ["work"])
        assert open_store(kv).active_event() is None

    def test_inconsistency_reported_through_open(self, kv):
        kv.set(
            "attacks",
            [
                make_attack(attack_id=1, ended=False).to_dict(),
                make_attack(attack_id=2, ended=False).to_dict(),
            ],
        )
        store = open_store(kv)
        assert store.active_event().id == 1
        assert len(store.inconsistencies) == 1
