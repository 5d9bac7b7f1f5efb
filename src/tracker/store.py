"""EventStore — owns vocabularies, historical attacks and the single active attack.

Invariants enforced here
────────────────────────
  * at most one attack has no ``end_time`` (the active slot);
  * attack ids are unique across the historical and active sets;
  * an ended attack's ``current_severity`` is the ``severity_after`` of its
    last mitigation attempt, or its ``initial_severity`` without attempts;
  * ending is one-way: historical attacks never return to the active slot.

Every mutating method validates all of its input before touching state, so
a raised error always leaves the store exactly as it was.  Persistence is
the caller's job: call ``snapshot()`` after a successful mutation.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Sequence
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any

from src.contracts.attack import (
    Attack,
    MitigationAttempt,
    parse_instant,
    to_epoch_ms,
    unique_tags,
    validate_severity,
)
from src.contracts.enums import RecordKey, Vocabulary
from src.contracts.errors import (
    DataInconsistencyError,
    DuplicateTagError,
    NoActiveEventError,
    ValidationError,
)

log = logging.getLogger(__name__)

DEFAULT_TRIGGERS: tuple[str, ...] = (
    "alone",
    "phone call",
    "driving",
    "work",
    "social gathering",
)
DEFAULT_MITIGATIONS: tuple[str, ...] = (
    "drinking tea",
    "going for a walk",
    "playing a game",
    "deep breathing",
    "talking to a friend",
)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _vocabulary(value: Vocabulary | str) -> Vocabulary:
    try:
        return Vocabulary(value)
    except ValueError as exc:
        raise ValidationError(f"Unknown vocabulary: {value!r}") from exc


class EventStore:
    """In-memory aggregate of the tracker state for one local user."""

    def __init__(
        self,
        *,
        default_triggers: Iterable[str] = DEFAULT_TRIGGERS,
        default_mitigations: Iterable[str] = DEFAULT_MITIGATIONS,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._defaults: dict[Vocabulary, tuple[str, ...]] = {
            Vocabulary.TRIGGERS: tuple(default_triggers),
            Vocabulary.MITIGATIONS: tuple(default_mitigations),
        }
        self._clock = clock or _utc_now
        self._historical: list[Attack] = []
        self._active: Attack | None = None
        self._vocab: dict[Vocabulary, list[str]] = {
            v: list(tags) for v, tags in self._defaults.items()
        }
        self._last_id = 0
        self.inconsistencies: list[DataInconsistencyError] = []

    # ═══════════════════════════════════════════════════════════════════════
    #  Load / snapshot
    # ═══════════════════════════════════════════════════════════════════════

    def load(
        self,
        raw_events: Sequence[Attack | dict[str, Any]] | None,
        raw_triggers: Sequence[str] | None = None,
        raw_mitigations: Sequence[str] | None = None,
    ) -> list[DataInconsistencyError]:
        """Replace the store contents with persisted records.

        The first attack without ``endTime`` becomes the active attack and
        is kept out of the historical collection.  Further open attacks,
        duplicate ids and undecodable records are reported as
        ``DataInconsistencyError`` (logged and returned, never raised).
        ``None`` vocabularies fall back to the starter vocabulary.
        """
        problems: list[DataInconsistencyError] = []

        def report(msg: str) -> None:
            log.warning("Data inconsistency on load: %s", msg)
            problems.append(DataInconsistencyError(msg))

        decoded: list[Attack] = []
        for idx, raw in enumerate(raw_events or []):
            if isinstance(raw, Attack):
                decoded.append(raw)
                continue
            try:
                decoded.append(Attack.from_dict(raw))
            except ValidationError as exc:
                report(f"record #{idx} skipped: {exc}")

        active = next((a for a in decoded if a.is_active), None)
        historical: list[Attack] = []
        seen: set[int] = {active.id} if active else set()
        for attack in decoded:
            if attack is active:
                continue
            if attack.id in seen:
                report(f"duplicate attack id {attack.id} dropped")
                continue
            seen.add(attack.id)
            if attack.is_active:
                report(
                    f"attack {attack.id} is open while {active.id} is active; "
                    "closed and moved to history"
                )
                attack = self._demote(attack)
            historical.append(attack)

        vocab = {
            Vocabulary.TRIGGERS: self._load_vocabulary(Vocabulary.TRIGGERS, raw_triggers, report),
            Vocabulary.MITIGATIONS: self._load_vocabulary(
                Vocabulary.MITIGATIONS, raw_mitigations, report
            ),
        }

        self._active = active
        self._historical = historical
        self._vocab = vocab
        self._last_id = max(seen, default=0)
        self.inconsistencies = problems
        log.info(
            "Loaded %d historical attacks, active=%s, %d triggers, %d mitigations",
            len(historical),
            active.id if active else None,
            len(vocab[Vocabulary.TRIGGERS]),
            len(vocab[Vocabulary.MITIGATIONS]),
        )
        return problems

    def _load_vocabulary(
        self,
        vocabulary: Vocabulary,
        raw: Sequence[str] | None,
        report: Callable[[str], None],
    ) -> list[str]:
        if raw is None:
            return list(self._defaults[vocabulary])
        if isinstance(raw, str) or not isinstance(raw, (list, tuple)):
            report(f"{vocabulary.value} vocabulary is not a list; using defaults")
            return list(self._defaults[vocabulary])
        tags: list[str] = []
        for tag in raw:
            if not isinstance(tag, str) or not tag.strip():
                report(f"invalid {vocabulary.value} tag {tag!r} dropped")
            elif tag in tags:
                report(f"duplicate {vocabulary.value} tag {tag!r} dropped")
            else:
                tags.append(tag)
        return tags

    @staticmethod
    def _demote(attack: Attack) -> Attack:
        """Close a surplus open attack at its last known instant."""
        end = attack.start_time
        if attack.mitigation_attempts:
            end = max(end, max(a.timestamp for a in attack.mitigation_attempts))
        return replace(attack, end_time=end, current_severity=attack.settled_severity())

    def snapshot(self) -> dict[str, list[Any]]:
        """Serializable state in the shape ``load`` consumes.

        The active attack (if any) is appended after the historical ones
        with ``endTime: null``.
        """
        attacks = list(self._historical)
        if self._active is not None:
            attacks.append(self._active)
        return {
            RecordKey.ATTACKS.value: [a.to_dict() for a in attacks],
            RecordKey.TRIGGERS.value: list(self._vocab[Vocabulary.TRIGGERS]),
            RecordKey.MITIGATIONS.value: list(self._vocab[Vocabulary.MITIGATIONS]),
        }

    # ═══════════════════════════════════════════════════════════════════════
    #  Attack lifecycle
    # ═══════════════════════════════════════════════════════════════════════

    def start_event(
        self,
        start_time: datetime,
        initial_severity: int,
        trigger_tags: Iterable[str],
    ) -> Attack:
        """Open a new attack in the active slot.

        Raises:
            ValidationError: empty trigger selection, severity outside 1..10,
                bad ``start_time``, or an attack already in progress.
        """
        start = parse_instant(start_time, "start_time")
        severity = validate_severity(initial_severity, "initial_severity")
        triggers = unique_tags(trigger_tags, "trigger_tags")
        if self._active is not None:
            raise ValidationError(
                f"Attack {self._active.id} is still in progress; end it first"
            )

        attack = Attack(
            id=self._next_id(),
            start_time=start,
            initial_severity=severity,
            current_severity=severity,
            location_triggers=triggers,
        )
        self._active = attack
        self._last_id = attack.id
        log.info(
            "Started attack %d (severity=%d, triggers=%s)",
            attack.id,
            severity,
            ", ".join(triggers),
        )
        return attack

    def record_mitigation(
        self,
        timestamp: datetime,
        tags: Iterable[str],
        severity_after: int,
    ) -> Attack:
        """Append a mitigation attempt to the active attack and update its severity.

        Raises:
            NoActiveEventError: nothing is in progress.
            ValidationError: empty tags, severity outside 1..10, bad timestamp.
        """
        active = self._require_active("record a mitigation")
        attempt = MitigationAttempt(
            timestamp=parse_instant(timestamp, "timestamp"),
            tags=unique_tags(tags, "tags"),
            severity_after=validate_severity(severity_after, "severity_after"),
        )
        self._active = replace(
            active,
            current_severity=attempt.severity_after,
            mitigation_attempts=active.mitigation_attempts + (attempt,),
        )
        log.info(
            "Attack %d: mitigation %s, severity %d -> %d",
            active.id,
            ", ".join(attempt.tags),
            active.current_severity,
            attempt.severity_after,
        )
        return self._active

    def end_active_event(self, end_time: datetime) -> Attack:
        """Close the active attack and move it into history.

        Raises:
            NoActiveEventError: nothing is in progress.
            ValidationError: bad ``end_time`` or ``end_time`` before the start.
        """
        active = self._require_active("end an attack")
        end = parse_instant(end_time, "end_time")
        if end < active.start_time:
            raise ValidationError(
                f"end_time {end.isoformat()} is before start_time "
                f"{active.start_time.isoformat()}"
            )

        settled = active.settled_severity()
        if settled != active.current_severity:
            log.debug(
                "Attack %d: current severity %d reset to %d from attempt history",
                active.id,
                active.current_severity,
                settled,
            )
        ended = replace(active, end_time=end, current_severity=settled)
        self._historical.append(ended)
        self._active = None
        log.info("Ended attack %d (duration=%s)", ended.id, ended.duration)
        return ended

    def _require_active(self, action: str) -> Attack:
        if self._active is None:
            raise NoActiveEventError(f"Cannot {action}: no attack in progress")
        return self._active

    def _next_id(self) -> int:
        candidate = to_epoch_ms(self._clock())
        return candidate if candidate > self._last_id else self._last_id + 1

    # ═══════════════════════════════════════════════════════════════════════
    #  Vocabularies
    # ═══════════════════════════════════════════════════════════════════════

    def add_vocabulary_tag(self, vocabulary: Vocabulary | str, tag: str) -> tuple[str, ...]:
        """Append ``tag`` to a vocabulary.

        Raises:
            ValidationError: unknown vocabulary or blank tag.
            DuplicateTagError: the tag is already present (case-sensitive).
        """
        vocab = _vocabulary(vocabulary)
        if not isinstance(tag, str) or not tag.strip():
            raise ValidationError("Tag must be a non-empty string")
        tags = self._vocab[vocab]
        if tag in tags:
            raise DuplicateTagError(vocab.value, tag)
        tags.append(tag)
        log.info("Added %s tag %r", vocab.value, tag)
        return tuple(tags)

    def remove_vocabulary_tag(self, vocabulary: Vocabulary | str, tag: str) -> bool:
        """Remove ``tag`` if present.  Recorded attacks keep their tags."""
        vocab = _vocabulary(vocabulary)
        tags = self._vocab[vocab]
        if tag not in tags:
            return False
        tags.remove(tag)
        log.info("Removed %s tag %r", vocab.value, tag)
        return True

    # ═══════════════════════════════════════════════════════════════════════
    #  Read accessors
    # ═══════════════════════════════════════════════════════════════════════

    def active_event(self) -> Attack | None:
        return self._active

    def historical_events(self) -> tuple[Attack, ...]:
        return tuple(self._historical)

    def triggers(self) -> tuple[str, ...]:
        return tuple(self._vocab[Vocabulary.TRIGGERS])

    def mitigations(self) -> tuple[str, ...]:
        return tuple(self._vocab[Vocabulary.MITIGATIONS])

    def vocabulary(self, vocabulary: Vocabulary | str) -> tuple[str, ...]:
        return tuple(self._vocab[_vocabulary(vocabulary)])
