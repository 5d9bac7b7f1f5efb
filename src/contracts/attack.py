"""Attack and MitigationAttempt data-classes — the persisted episode contract.

Wire format
───────────
    Records are stored as JSON objects with camelCase keys.  Instants are
    integer epoch milliseconds (UTC); ``endTime`` is ``null`` for the
    attack that is still in progress.

    {
      "id": 1760860800000,
      "startTime": 1760860800000,
      "endTime": null,
      "initialSeverity": 5,
      "currentSeverity": 3,
      "locationTriggers": ["work"],
      "mitigationAttempts": [
        {"timestamp": 1760864400000, "tags": ["deep breathing"], "severityAfter": 3}
      ]
    }
"""

from __future__ import annotations

import json
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

from src.contracts.enums import SEVERITY_MAX, SEVERITY_MIN
from src.contracts.errors import ValidationError

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_MS = timedelta(milliseconds=1)


# ── instants ──────────────────────────────────────────────────────────────


def to_epoch_ms(dt: datetime) -> int:
    return (dt - EPOCH) // _MS


def from_epoch_ms(ms: int) -> datetime:
    return EPOCH + timedelta(milliseconds=ms)


def parse_instant(value: Any, field_name: str = "timestamp") -> datetime:
    """Coerce a persisted or user-supplied instant into an aware datetime.

    Accepts epoch milliseconds, ISO-8601 strings (``Z`` suffix allowed) and
    aware datetimes.  Naive ISO strings are read as UTC.

    Raises:
        ValidationError: missing or unparseable value, or a naive datetime.
    """
    if isinstance(value, datetime):
        if value.tzinfo is None or value.utcoffset() is None:
            raise ValidationError(f"{field_name} must be timezone-aware")
        return value
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{field_name} is missing or invalid")
    if isinstance(value, (int, float)):
        try:
            return from_epoch_ms(int(value))
        except (ValueError, OverflowError) as exc:
            raise ValidationError(f"{field_name} is out of range: {value!r}") from exc
    if isinstance(value, str):
        try:
            dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError as exc:
            raise ValidationError(f"{field_name} is not ISO-8601: {value!r}") from exc
        return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)
    raise ValidationError(f"{field_name} has unsupported type {type(value).__name__}")


# ── field validation ──────────────────────────────────────────────────────


def validate_severity(value: Any, field_name: str = "severity") -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{field_name} must be an integer, got {value!r}")
    if not SEVERITY_MIN <= value <= SEVERITY_MAX:
        raise ValidationError(
            f"{field_name} must be within {SEVERITY_MIN}..{SEVERITY_MAX}, got {value}"
        )
    return value


def unique_tags(tags: Iterable[str] | None, field_name: str = "tags") -> tuple[str, ...]:
    """Return the tag selection as an ordered, de-duplicated, non-empty tuple."""
    if tags is None or isinstance(tags, str):
        raise ValidationError(f"{field_name} must be a sequence of strings")
    result: list[str] = []
    for tag in tags:
        if not isinstance(tag, str) or not tag.strip():
            raise ValidationError(f"{field_name} contains an empty or non-string tag")
        if tag not in result:
            result.append(tag)
    if not result:
        raise ValidationError(f"At least one tag is required in {field_name}")
    return tuple(result)


# ── data-classes ──────────────────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class MitigationAttempt:
    """One relief attempt recorded against an attack in progress."""

    timestamp: datetime
    tags: tuple[str, ...]
    severity_after: int  # 1..10

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": to_epoch_ms(self.timestamp),
            "tags": list(self.tags),
            "severityAfter": self.severity_after,
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> MitigationAttempt:
        if not isinstance(raw, dict):
            raise ValidationError("mitigation attempt must be an object")
        return cls(
            timestamp=parse_instant(raw.get("timestamp")),
            tags=unique_tags(raw.get("tags")),
            severity_after=validate_severity(raw.get("severityAfter"), "severityAfter"),
        )


@dataclass(frozen=True, slots=True)
class Attack:
    """One episode, from start to (optional) end.

    Lifecycle
    ─────────
      active      — ``end_time is None``; severity and attempts may change
      historical  — ``end_time`` set; frozen

    ``current_severity`` of a historical attack equals the ``severity_after``
    of its last attempt, or ``initial_severity`` when there are none.
    """

    id: int
    start_time: datetime
    initial_severity: int
    current_severity: int
    location_triggers: tuple[str, ...]
    end_time: datetime | None = None
    mitigation_attempts: tuple[MitigationAttempt, ...] = ()

    @property
    def is_active(self) -> bool:
        return self.end_time is None

    @property
    def duration(self) -> timedelta | None:
        if self.end_time is None:
            return None
        return self.end_time - self.start_time

    def settled_severity(self) -> int:
        """Severity implied by the attempt history."""
        if self.mitigation_attempts:
            return self.mitigation_attempts[-1].severity_after
        return self.initial_severity

    # ── serialisation ─────────────────────────────────────────────────────

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "startTime": to_epoch_ms(self.start_time),
            "endTime": to_epoch_ms(self.end_time) if self.end_time else None,
            "initialSeverity": self.initial_severity,
            "currentSeverity": self.current_severity,
            "locationTriggers": list(self.location_triggers),
            "mitigationAttempts": [a.to_dict() for a in self.mitigation_attempts],
        }

    def to_json(self) -> str:
        """Return compact JSON string."""
        return json.dumps(self.to_dict(), ensure_ascii=False, separators=(",", ":"))

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> Attack:
        """Build an Attack from a persisted record.

        Raises:
            ValidationError: the record is missing fields or holds bad values.
        """
        if not isinstance(raw, dict):
            raise ValidationError("attack record must be an object")
        attack_id = raw.get("id")
        if isinstance(attack_id, str) and attack_id.isdigit():
            attack_id = int(attack_id)
        if isinstance(attack_id, bool) or not isinstance(attack_id, int):
            raise ValidationError(f"attack id must be an integer, got {attack_id!r}")

        initial = validate_severity(raw.get("initialSeverity"), "initialSeverity")
        current = raw.get("currentSeverity", initial)
        attempts_raw = raw.get("mitigationAttempts") or []
        if not isinstance(attempts_raw, list):
            raise ValidationError("mitigationAttempts must be a list")

        end_raw = raw.get("endTime")
        return cls(
            id=attack_id,
            start_time=parse_instant(raw.get("startTime"), "startTime"),
            end_time=parse_instant(end_raw, "endTime") if end_raw is not None else None,
            initial_severity=initial,
            current_severity=validate_severity(current, "currentSeverity"),
            location_triggers=unique_tags(raw.get("locationTriggers"), "locationTriggers"),
            mitigation_attempts=tuple(MitigationAttempt.from_dict(a) for a in attempts_raw),
        )
