"""Tests for src.analytics.engine — rolling windows and tag rankings."""

from __future__ import annotations

from datetime import UTC, date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import pytest

from src.analytics.engine import (
    HeatmapBucket,
    TagCount,
    day_gap,
    frequency_series,
    heatmap_level,
    severity_heatmap,
    summarize,
    tag_usage,
    top_tags,
    window_dates,
)
from src.contracts.enums import Vocabulary
from tests.conftest import NOW, dt, make_attack, make_attempt

TODAY = NOW.date()


def _days_ago(n: int, hour: int = 9) -> datetime:
    return datetime(NOW.year, NOW.month, NOW.day, hour, tzinfo=UTC) - timedelta(days=n)


# ═══════════════════════════════════════════════════════════════════════════
#  Day helpers
# ═══════════════════════════════════════════════════════════════════════════


class TestDayHelpers:
    def test_window_dates_oldest_first(self):
        days = window_dates(NOW, 3)
        assert days == [TODAY - timedelta(days=2), TODAY - timedelta(days=1), TODAY]

    def test_day_gap_exact_days(self):
        a = datetime(2026, 3, 1, tzinfo=UTC)
        assert day_gap(a, a + timedelta(days=4)) == 4
        assert day_gap(a + timedelta(days=4), a) == 4

    def test_day_gap_rounds_up_partial_days(self):
        a = datetime(2026, 3, 1, tzinfo=UTC)
        assert day_gap(a, a + timedelta(hours=25)) == 2

    def test_explicit_zone_shifts_today(self):
        late = datetime(2026, 3, 15, 23, 30, tzinfo=UTC)
        plus_two = timezone(timedelta(hours=2))
        assert window_dates(late, 1, plus_two) == [date(2026, 3, 16)]


# ═══════════════════════════════════════════════════════════════════════════
#  frequency_series
# ═══════════════════════════════════════════════════════════════════════════


class TestFrequencySeries:
    def test_empty_input_full_window(self):
        series = frequency_series([], NOW, 30)
        assert len(series) == 30
        assert series[0].date == TODAY - timedelta(days=29)
        assert series[-1].date == TODAY
        assert all(b.count == 0 for b in series)

    def test_counts_by_start_day(self):
        events = [
            make_attack(attack_id=1, start_time=_days_ago(0)),
            make_attack(attack_id=2, start_time=_days_ago(0, hour=14)),
            make_attack(attack_id=3, start_time=_days_ago(5)),
        ]
        counts = {b.date: b.count for b in frequency_series(events, NOW, 30)}
        assert counts[TODAY] == 2
        assert counts[TODAY - timedelta(days=5)] == 1
        assert sum(counts.values()) == 3

    def test_window_edges(self):
        events = [
            make_attack(attack_id=1, start_time=_days_ago(29)),
            make_attack(attack_id=2, start_time=_days_ago(30)),
        ]
        series = frequency_series(events, NOW, 30)
        assert series[0].count == 1
        assert sum(b.count for b in series) == 1

    def test_active_attacks_excluded(self):
        events = [make_attack(attack_id=1, start_time=_days_ago(1), ended=False)]
        assert sum(b.count for b in frequency_series(events, NOW)) == 0

    def test_future_start_excluded(self):
        events = [make_attack(attack_id=1, start_time=_days_ago(-2))]
        series = frequency_series(events, NOW, 30)
        assert len(series) == 30
        assert sum(b.count for b in series) == 0

    def test_multi_day_attack_counts_on_start_day(self):
        start = _days_ago(3)
        events = [make_attack(attack_id=1, start_time=start, end_time=start + timedelta(days=2))]
        counts = {b.date: b.count for b in frequency_series(events, NOW, 30)}
        assert counts[TODAY - timedelta(days=3)] == 1
        assert counts[TODAY - timedelta(days=1)] == 0

    def test_end_before_start_skipped(self):
        start = _days_ago(1)
        events = [make_attack(attack_id=1, start_time=start, end_time=start - timedelta(hours=1))]
        assert sum(b.count for b in frequency_series(events, NOW)) == 0

    def test_sum_matches_ended_attacks_in_range(self):
        events = [make_attack(attack_id=i, start_time=_days_ago(i * 4)) for i in range(12)]
        series = frequency_series(events, NOW, 30)
        in_range = [e for e in events if (TODAY - e.start_time.date()).days <= 29]
        assert sum(b.count for b in series) == len(in_range)

    def test_zero_window(self):
        assert frequency_series([], NOW, 0) == []

    def test_deterministic(self):
        events = [make_attack(attack_id=1, start_time=_days_ago(2))]
        assert frequency_series(events, NOW) == frequency_series(events, NOW)

    def test_local_day_truncation(self):
        # 23:30 UTC on the 14th is already the 15th at UTC+2
        plus_two = timezone(timedelta(hours=2))
        start = datetime(2026, 3, 14, 23, 30, tzinfo=UTC)
        events = [make_attack(attack_id=1, start_time=start)]
        counts = {b.date: b.count for b in frequency_series(events, NOW, 7, tz=plus_two)}
        assert counts[date(2026, 3, 15)] == 1
        assert counts[date(2026, 3, 14)] == 0

    def test_dst_fall_back_gap_is_preserved(self):
        try:
            berlin = ZoneInfo("Europe/Berlin")
        except ZoneInfoNotFoundError:
            pytest.skip("tz database not available")
        # Clocks go back on 2026-10-25: that local day lasts 25 hours
        now = datetime(2026, 10, 26, 12, 0, tzinfo=berlin)
        events = [make_attack(attack_id=1, start_time=datetime(2026, 10, 25, 10, 0, tzinfo=berlin))]

        two_day = frequency_series(events, now, 2)
        assert [b.date for b in two_day] == [date(2026, 10, 25), date(2026, 10, 26)]
        assert sum(b.count for b in two_day) == 0

        three_day = {b.date: b.count for b in frequency_series(events, now, 3)}
        assert three_day[date(2026, 10, 25)] == 1


# ═══════════════════════════════════════════════════════════════════════════
#  severity_heatmap
# ═══════════════════════════════════════════════════════════════════════════


class TestSeverityHeatmap:
    def test_full_window(self):
        heat = severity_heatmap([], NOW)
        assert len(heat) == 90
        assert heat[-1].date == TODAY
        assert all(not b.has_data and b.average_initial_severity == 0 for b in heat)

    def test_average_of_initial_severity(self):
        events = [
            make_attack(attack_id=1, start_time=_days_ago(2), initial_severity=4),
            make_attack(
                attack_id=2,
                start_time=_days_ago(2, hour=15),
                initial_severity=9,
                attempts=[make_attempt(timestamp=_days_ago(2, hour=16), severity_after=1)],
            ),
        ]
        bucket = {b.date: b for b in severity_heatmap(events, NOW)}[TODAY - timedelta(days=2)]
        assert bucket.attack_count == 2
        assert bucket.average_initial_severity == pytest.approx(6.5)

    def test_active_excluded(self):
        events = [make_attack(attack_id=1, start_time=_days_ago(0), ended=False)]
        assert severity_heatmap(events, NOW)[-1].attack_count == 0

    def test_outside_window(self):
        events = [make_attack(attack_id=1, start_time=_days_ago(90))]
        assert sum(b.attack_count for b in severity_heatmap(events, NOW, 90)) == 0


class TestHeatmapLevel:
    @pytest.mark.parametrize(
        "avg,count,level",
        [(0.0, 0, 0), (1.0, 1, 1), (2.0, 1, 1), (3.5, 2, 2), (6.0, 1, 3), (7.5, 2, 4), (10.0, 1, 5)],
    )
    def test_bands(self, avg, count, level):
        bucket = HeatmapBucket(date=TODAY, average_initial_severity=avg, attack_count=count)
        assert heatmap_level(bucket) == level


# ═══════════════════════════════════════════════════════════════════════════
#  top_tags
# ═══════════════════════════════════════════════════════════════════════════


class TestTopTags:
    def test_no_data(self):
        assert top_tags([], "triggers") == []
        assert top_tags([], Vocabulary.MITIGATIONS) == []

    def test_trigger_ranking(self):
        events = [
            make_attack(attack_id=1, triggers=["work"]),
            make_attack(attack_id=2, triggers=["work", "home"]),
        ]
        assert top_tags(events, "triggers", 5) == [
            TagCount(tag="work", count=2),
            TagCount(tag="home", count=1),
        ]

    def test_ties_keep_first_encountered_order(self):
        events = [
            make_attack(attack_id=1, triggers=["b", "a"]),
            make_attack(attack_id=2, triggers=["c", "a", "b"]),
        ]
        assert [t.tag for t in top_tags(events, "triggers")] == ["b", "a", "c"]

    def test_mitigations_count_every_attempt(self):
        events = [
            make_attack(
                attack_id=1,
                attempts=[
                    make_attempt(tags=["tea", "walk"]),
                    make_attempt(tags=["tea"]),
                ],
            ),
            make_attack(attack_id=2, attempts=[make_attempt(tags=["walk"])]),
            make_attack(attack_id=3),
        ]
        assert top_tags(events, "mitigations") == [
            TagCount(tag="tea", count=2),
            TagCount(tag="walk", count=2),
        ]

    def test_active_excluded(self):
        events = [make_attack(attack_id=1, triggers=["work"], ended=False)]
        assert top_tags(events, "triggers") == []

    def test_limit(self):
        events = [make_attack(attack_id=1, triggers=[f"t{i}" for i in range(8)])]
        assert len(top_tags(events, "triggers", 5)) == 5
        assert top_tags(events, "triggers", 0) == []

    def test_unknown_field(self):
        with pytest.raises(ValueError):
            top_tags([], "moods")

    def test_tag_usage(self):
        events = [make_attack(attack_id=1, triggers=["x", "y"]), make_attack(attack_id=2, triggers=["y"])]
        assert tag_usage(events, "triggers") == {"x": 1, "y": 2}


# ═══════════════════════════════════════════════════════════════════════════
#  summarize
# ═══════════════════════════════════════════════════════════════════════════


class TestSummarize:
    def test_bundles_all_series(self):
        events = [
            make_attack(attack_id=1, start_time=dt(hours=-1), attempts=[make_attempt()]),
            make_attack(attack_id=2, ended=False),
        ]
        summary = summarize(events, NOW, frequency_window=7, heatmap_window=14, top_limit=3)
        assert len(summary.frequency) == 7
        assert len(summary.heatmap) == 14
        assert summary.attacks_total == 1
        assert summary.top_triggers == [TagCount(tag="work", count=1)]
        assert summary.top_mitigations == [TagCount(tag="deep breathing", count=1)]
