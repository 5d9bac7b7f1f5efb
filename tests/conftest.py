"""Shared fixtures for Episode Tracker tests."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import UTC, datetime, timedelta

import pytest

from src.contracts.attack import Attack, MitigationAttempt
from src.storage.kv_store import FileKeyValueStore
from src.tracker.store import EventStore

T0 = datetime(2026, 3, 15, 10, 0, 0, tzinfo=UTC)
NOW = datetime(2026, 3, 15, 18, 0, 0, tzinfo=UTC)


# ── Timestamp helpers ────────────────────────────────────────────────────


def dt(days: float = 0, hours: float = 0, minutes: float = 0, base: datetime = T0) -> datetime:
    """Return *base* shifted by the given offset."""
    return base + timedelta(days=days, hours=hours, minutes=minutes)


# ── Helper: create contract objects with sensible defaults ──────────────


def make_attempt(
    *,
    timestamp: datetime | None = None,
    tags: Sequence[str] = ("deep breathing",),
    severity_after: int = 3,
) -> MitigationAttempt:
    return MitigationAttempt(
        timestamp=timestamp or dt(hours=1),
        tags=tuple(tags),
        severity_after=severity_after,
    )


def make_attack(
    *,
    attack_id: int = 1,
    start_time: datetime | None = None,
    end_time: datetime | None = None,
    ended: bool = True,
    initial_severity: int = 5,
    current_severity: int | None = None,
    triggers: Sequence[str] = ("work",),
    attempts: Sequence[MitigationAttempt] = (),
) -> Attack:
    """Build an Attack; ``ended=True`` closes it one hour after the start."""
    start = start_time or T0
    if end_time is None and ended:
        end_time = start + timedelta(hours=1)
    if current_severity is None:
        current_severity = attempts[-1].severity_after if attempts else initial_severity
    return Attack(
        id=attack_id,
        start_time=start,
        end_time=end_time,
        initial_severity=initial_severity,
        current_severity=current_severity,
        location_triggers=tuple(triggers),
        mitigation_attempts=tuple(attempts),
    )


# ── Store fixtures ───────────────────────────────────────────────────────


class FixedClock:
    """Clock returning a constant instant (forces id collision handling)."""

    def __init__(self, instant: datetime = T0) -> None:
        self.instant = instant

    def __call__(self) -> datetime:
        return self.instant


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def store(clock: FixedClock) -> EventStore:
    return EventStore(clock=clock)


@pytest.fixture
def kv(tmp_path) -> FileKeyValueStore:
    return FileKeyValueStore(tmp_path / "data")
