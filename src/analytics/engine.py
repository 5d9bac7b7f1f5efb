"""Aggregation Engine — rolling-window statistics over ended attacks.

Day bucketing
─────────────
    Every instant is converted to the reporting zone and truncated to local
    midnight.  The gap between an attack's start day and today is

        ``ceil(abs(today_midnight - start_midnight) / 24h)``

    measured in absolute milliseconds.  An attack lands in the window when
    that gap is ``<= window_days - 1`` and its start day is one of the
    window's days.  Across a DST change the absolute difference between two
    local midnights is 23h or 25h, so the ceiling can report a gap one day
    wider than the calendar distance; this boundary behaviour is kept as is.

Inclusion rules
───────────────
  * only ended attacks (``end_time`` set) are aggregated;
  * an attack is attributed to its **start** day regardless of duration;
  * attacks that end before they start are skipped with a warning;
  * attacks starting after today are outside every window.

Every function is pure: ``now`` (and optionally ``tz``) are parameters.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, tzinfo

from src.contracts.attack import Attack
from src.contracts.enums import SEVERITY_MAX, SEVERITY_MIN, Vocabulary

log = logging.getLogger(__name__)

MS_PER_DAY = 24 * 60 * 60 * 1000

# Upper bounds of the heatmap severity bands (level 1..5)
HEATMAP_BANDS: tuple[float, ...] = (2, 4, 6, 8)


@dataclass(frozen=True, slots=True)
class FrequencyBucket:
    date: date
    count: int = 0


@dataclass(frozen=True, slots=True)
class HeatmapBucket:
    """One heatmap day.  ``attack_count == 0`` means "no data", not severity 0."""

    date: date
    average_initial_severity: float = 0.0
    attack_count: int = 0

    @property
    def has_data(self) -> bool:
        return self.attack_count > 0


@dataclass(frozen=True, slots=True)
class TagCount:
    tag: str
    count: int


@dataclass
class AnalyticsSummary:
    """All derived series for one ``now``."""

    now: datetime
    frequency: list[FrequencyBucket] = field(default_factory=list)
    heatmap: list[HeatmapBucket] = field(default_factory=list)
    top_triggers: list[TagCount] = field(default_factory=list)
    top_mitigations: list[TagCount] = field(default_factory=list)
    attacks_total: int = 0


# ═══════════════════════════════════════════════════════════════════════════
#  Day helpers
# ═══════════════════════════════════════════════════════════════════════════


def _resolve_zone(now: datetime, tz: tzinfo | None) -> tzinfo | None:
    """Explicit zone, else the zone of ``now``; None means the system local zone."""
    if tz is not None:
        return tz
    return now.tzinfo


def _local_midnight(instant: datetime, tz: tzinfo | None) -> datetime:
    if tz is None:
        # naive local midnight, resolved with the offset in force that day
        local_day = instant.astimezone().date()
        return datetime.combine(local_day, time(0)).astimezone()
    local_day = instant.astimezone(tz).date()
    return datetime.combine(local_day, time(0), tzinfo=tz)


def day_gap(start_midnight: datetime, today_midnight: datetime) -> int:
    """Ceiling of the absolute millisecond distance, in days."""
    ms = abs(today_midnight.timestamp() - start_midnight.timestamp()) * 1000
    return math.ceil(round(ms) / MS_PER_DAY)


def window_dates(now: datetime, days: int, tz: tzinfo | None = None) -> list[date]:
    """Calendar days ``[today - (days-1), today]`` oldest first."""
    zone = _resolve_zone(now, tz)
    today = _local_midnight(now, zone).date()
    return [today - timedelta(days=i) for i in range(days - 1, -1, -1)]


def _windowed(
    events: Iterable[Attack],
    now: datetime,
    days: int,
    tz: tzinfo | None,
) -> tuple[list[date], list[tuple[date, Attack]]]:
    """Window days plus ``(start_day, attack)`` pairs that fall inside it."""
    zone = _resolve_zone(now, tz)
    today_midnight = _local_midnight(now, zone)
    keys = window_dates(now, days, zone)
    in_window = set(keys)

    hits: list[tuple[date, Attack]] = []
    for attack in ended_attacks(events):
        start_midnight = _local_midnight(attack.start_time, zone)
        if day_gap(start_midnight, today_midnight) > days - 1:
            continue
        day = start_midnight.date()
        if day not in in_window:
            log.debug("Attack %s starts after %s, outside window", attack.id, keys[-1])
            continue
        hits.append((day, attack))
    return keys, hits


def ended_attacks(events: Iterable[Attack]) -> list[Attack]:
    """Filter to well-formed ended attacks."""
    result: list[Attack] = []
    for attack in events:
        if attack.end_time is None:
            continue
        if attack.end_time < attack.start_time:
            log.warning(
                "Attack %s skipped: end_time %s before start_time %s",
                attack.id,
                attack.end_time.isoformat(),
                attack.start_time.isoformat(),
            )
            continue
        result.append(attack)
    return result


# ═══════════════════════════════════════════════════════════════════════════
#  Series
# ═══════════════════════════════════════════════════════════════════════════


def frequency_series(
    events: Iterable[Attack],
    now: datetime,
    window_days: int = 30,
    tz: tzinfo | None = None,
) -> list[FrequencyBucket]:
    """Attack count per start day for the ``window_days`` days ending today.

    Always returns exactly ``window_days`` buckets, oldest first; empty
    days are present with ``count == 0``.
    """
    if window_days < 1:
        return []
    keys, hits = _windowed(events, now, window_days, tz)
    counts = dict.fromkeys(keys, 0)
    for day, _ in hits:
        counts[day] += 1
    return [FrequencyBucket(date=d, count=c) for d, c in counts.items()]


def severity_heatmap(
    events: Iterable[Attack],
    now: datetime,
    window_days: int = 90,
    tz: tzinfo | None = None,
) -> list[HeatmapBucket]:
    """Average *initial* severity and attack count per start day.

    Days with no attacks report ``average_initial_severity = 0`` and
    ``attack_count = 0``; use ``attack_count`` to tell them apart.
    """
    if window_days < 1:
        return []
    keys, hits = _windowed(events, now, window_days, tz)
    totals: dict[date, list[int]] = {d: [0, 0] for d in keys}
    for day, attack in hits:
        sev = min(max(attack.initial_severity, SEVERITY_MIN), SEVERITY_MAX)
        totals[day][0] += sev
        totals[day][1] += 1

    return [
        HeatmapBucket(
            date=d,
            average_initial_severity=(total / count) if count else 0.0,
            attack_count=count,
        )
        for d, (total, count) in totals.items()
    ]


def tag_usage(events: Iterable[Attack], field: Vocabulary | str) -> dict[str, int]:
    """Occurrence count per tag, in first-encountered order."""
    vocab = Vocabulary(field)
    counts: dict[str, int] = {}
    for attack in ended_attacks(events):
        if vocab is Vocabulary.TRIGGERS:
            tags: Sequence[str] = attack.location_triggers
        else:
            tags = [t for a in attack.mitigation_attempts for t in a.tags]
        for tag in tags:
            counts[tag] = counts.get(tag, 0) + 1
    return counts


def top_tags(
    events: Iterable[Attack],
    field: Vocabulary | str,
    limit: int = 5,
) -> list[TagCount]:
    """The ``limit`` most used tags, count descending, ties in first-seen order.

    ``field='triggers'`` counts each tag in ``location_triggers``;
    ``field='mitigations'`` counts each tag of every mitigation attempt.
    """
    if limit <= 0:
        return []
    counts = tag_usage(events, field)
    # sorted() is stable, so equal counts keep first-encountered order
    ranked = sorted(counts.items(), key=lambda kv: -kv[1])
    return [TagCount(tag=t, count=c) for t, c in ranked[:limit]]


def heatmap_level(bucket: HeatmapBucket) -> int:
    """0 for "no data", otherwise 1..5 by average severity band."""
    if not bucket.has_data:
        return 0
    for level, upper in enumerate(HEATMAP_BANDS, 1):
        if bucket.average_initial_severity <= upper:
            return level
    return len(HEATMAP_BANDS) + 1


def summarize(
    events: Sequence[Attack],
    now: datetime,
    *,
    frequency_window: int = 30,
    heatmap_window: int = 90,
    top_limit: int = 5,
    tz: tzinfo | None = None,
) -> AnalyticsSummary:
    """Compute every series in one pass over the caller's snapshot."""
    summary = AnalyticsSummary(
        now=now,
        frequency=frequency_series(events, now, frequency_window, tz),
        heatmap=severity_heatmap(events, now, heatmap_window, tz),
        top_triggers=top_tags(events, Vocabulary.TRIGGERS, top_limit),
        top_mitigations=top_tags(events, Vocabulary.MITIGATIONS, top_limit),
        attacks_total=len(ended_attacks(events)),
    )
    log.info(
        "Analytics: %d ended attacks, %d in last %d days",
        summary.attacks_total,
        sum(b.count for b in summary.frequency),
        frequency_window,
    )
    return summary
