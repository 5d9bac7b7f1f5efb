"""pandas views of attacks and analytics series, for export and plotting."""

from __future__ import annotations

from collections.abc import Iterable, Sequence

import pandas as pd

from src.analytics.engine import FrequencyBucket, HeatmapBucket, TagCount, heatmap_level
from src.contracts.attack import Attack

ATTACK_COLUMNS = [
    "id",
    "start_time",
    "end_time",
    "duration_min",
    "initial_severity",
    "current_severity",
    "location_triggers",
    "mitigation_count",
    "mitigation_tags",
]


def attacks_frame(attacks: Iterable[Attack]) -> pd.DataFrame:
    """One row per attack; tag lists are joined with ``;``."""
    rows = []
    for a in attacks:
        duration = a.duration
        rows.append(
            {
                "id": a.id,
                "start_time": a.start_time,
                "end_time": a.end_time,
                "duration_min": round(duration.total_seconds() / 60, 2) if duration else None,
                "initial_severity": a.initial_severity,
                "current_severity": a.current_severity,
                "location_triggers": ";".join(a.location_triggers),
                "mitigation_count": len(a.mitigation_attempts),
                "mitigation_tags": ";".join(
                    t for attempt in a.mitigation_attempts for t in attempt.tags
                ),
            }
        )
    df = pd.DataFrame(rows, columns=ATTACK_COLUMNS)
    for col in ("start_time", "end_time"):
        df[col] = pd.to_datetime(df[col], utc=True, errors="coerce")
    return df


def frequency_frame(series: Sequence[FrequencyBucket]) -> pd.DataFrame:
    df = pd.DataFrame(
        [{"date": b.date, "count": b.count} for b in series],
        columns=["date", "count"],
    )
    df["date"] = pd.to_datetime(df["date"])
    return df


def heatmap_frame(series: Sequence[HeatmapBucket]) -> pd.DataFrame:
    """Heatmap buckets with their display level (0 = no data)."""
    df = pd.DataFrame(
        [
            {
                "date": b.date,
                "average_initial_severity": round(b.average_initial_severity, 2),
                "attack_count": b.attack_count,
                "level": heatmap_level(b),
            }
            for b in series
        ],
        columns=["date", "average_initial_severity", "attack_count", "level"],
    )
    df["date"] = pd.to_datetime(df["date"])
    return df


def tags_frame(ranking: Sequence[TagCount]) -> pd.DataFrame:
    return pd.DataFrame(
        [{"tag": t.tag, "count": t.count} for t in ranking],
        columns=["tag", "count"],
    )
