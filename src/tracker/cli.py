"""CLI entry-point for the episode tracker.

Usage examples
--------------
# Record an attack:
episode-tracker start --severity 6 --trigger work --trigger "phone call"
episode-tracker mitigate --severity 3 --tag "deep breathing"
episode-tracker end

# Vocabularies:
episode-tracker tags list
episode-tracker tags add triggers commute

# Analytics:
episode-tracker stats
episode-tracker report --out-dir out
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from datetime import datetime, tzinfo
from zoneinfo import ZoneInfo

from src.analytics.engine import AnalyticsSummary, summarize, tag_usage
from src.analytics.reporter import render_report_txt, write_report
from src.analytics.suggest import suggest_tags
from src.contracts.attack import Attack
from src.contracts.enums import Vocabulary
from src.contracts.errors import TrackerError, ValidationError
from src.shared.config_loader import TrackerConfig, load_config
from src.shared.logger import setup_logging
from src.storage.kv_store import FileKeyValueStore
from src.tracker.persistence import open_store, save_store
from src.tracker.store import EventStore

log = logging.getLogger(__name__)

VOCAB_CHOICES = [v.value for v in Vocabulary]


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="episode-tracker",
        description="Track attacks, triggers and mitigations; derive rolling analytics.",
    )
    p.add_argument(
        "--config",
        default=None,
        help="Path to tracker.yaml. Default: config/tracker.yaml if present.",
    )
    p.add_argument(
        "--data-dir",
        default=None,
        help="Directory of the persisted records. Overrides storage.data_dir.",
    )
    p.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level. Overrides logging.level (default: WARNING).",
    )
    sub = p.add_subparsers(dest="command", required=True)

    sub.add_parser("status", help="Show the attack in progress and vocabulary sizes.")

    start = sub.add_parser("start", help="Start a new attack.")
    start.add_argument("--severity", type=int, required=True, help="Initial severity 1-10.")
    start.add_argument(
        "--trigger",
        action="append",
        default=[],
        help="Location/trigger tag (repeatable, at least one).",
    )
    start.add_argument("--at", default=None, help="Start time, ISO-8601. Default: now.")

    mit = sub.add_parser("mitigate", help="Record a mitigation attempt.")
    mit.add_argument("--severity", type=int, required=True, help="Severity after, 1-10.")
    mit.add_argument(
        "--tag",
        action="append",
        default=[],
        help="Mitigation tag (repeatable, at least one).",
    )
    mit.add_argument("--at", default=None, help="Attempt time, ISO-8601. Default: now.")

    end = sub.add_parser("end", help="End the attack in progress.")
    end.add_argument("--at", default=None, help="End time, ISO-8601. Default: now.")

    tags = sub.add_parser("tags", help="Manage tag vocabularies.")
    tags_sub = tags.add_subparsers(dest="tags_command", required=True)
    t_list = tags_sub.add_parser("list", help="List vocabulary tags.")
    t_list.add_argument("vocabulary", nargs="?", choices=VOCAB_CHOICES, default=None)
    for name, text in (("add", "Add a tag."), ("remove", "Remove a tag.")):
        t = tags_sub.add_parser(name, help=text)
        t.add_argument("vocabulary", choices=VOCAB_CHOICES)
        t.add_argument("tag")

    sug = sub.add_parser("suggest", help="Suggest tags matching a query.")
    sug.add_argument("vocabulary", choices=VOCAB_CHOICES)
    sug.add_argument("query", nargs="?", default="")
    sug.add_argument("--limit", type=int, default=8)

    stats = sub.add_parser("stats", help="Print rolling analytics.")
    stats.add_argument("--now", default=None, help="Reference instant, ISO-8601. Default: now.")
    stats.add_argument("--json", action="store_true", default=False, help="Emit JSON.")

    rep = sub.add_parser("report", help="Write CSV/TXT/PNG report files.")
    rep.add_argument("--now", default=None, help="Reference instant, ISO-8601. Default: now.")
    rep.add_argument("--out-dir", default=None, help="Output directory. Overrides report.out_dir.")
    rep.add_argument("--no-plots", action="store_true", default=False, help="Skip PNG charts.")
    return p


# ═══════════════════════════════════════════════════════════════════════════
#  Helpers
# ═══════════════════════════════════════════════════════════════════════════


def _zone(cfg: TrackerConfig) -> tzinfo | None:
    return ZoneInfo(cfg.timezone) if cfg.timezone else None


def _parse_when(text: str | None, zone: tzinfo | None) -> datetime:
    """ISO-8601 text to an aware datetime; naive input is read as local time."""
    if text is None:
        return datetime.now(zone) if zone else datetime.now().astimezone()
    try:
        dt = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError as exc:
        raise ValidationError(f"Invalid timestamp: {text!r}") from exc
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=zone) if zone else dt.astimezone()
    return dt


def _describe(attack: Attack) -> str:
    lines = [
        f"Attack {attack.id}",
        f"  started:   {attack.start_time.astimezone().isoformat(timespec='minutes')}",
        f"  severity:  {attack.initial_severity} -> {attack.current_severity}",
        f"  triggers:  {', '.join(attack.location_triggers)}",
    ]
    if attack.end_time is not None:
        lines.append(f"  ended:     {attack.end_time.astimezone().isoformat(timespec='minutes')}")
    for attempt in attack.mitigation_attempts:
        lines.append(
            f"  - {attempt.timestamp.astimezone().isoformat(timespec='minutes')}: "
            f"{', '.join(attempt.tags)} (severity -> {attempt.severity_after})"
        )
    return "\n".join(lines)


def _summary(store: EventStore, cfg: TrackerConfig, now_text: str | None) -> AnalyticsSummary:
    zone = _zone(cfg)
    now = _parse_when(now_text, zone)
    if zone is None:
        # naive local time: each day resolves with the offset in force that day
        now = now.astimezone().replace(tzinfo=None)
    return summarize(
        store.historical_events(),
        now,
        frequency_window=cfg.frequency_window_days,
        heatmap_window=cfg.heatmap_window_days,
        top_limit=cfg.top_limit,
        tz=zone,
    )


def _summary_json(summary: AnalyticsSummary) -> str:
    payload = {
        "now": summary.now.isoformat(),
        "attacksTotal": summary.attacks_total,
        "frequency": [{"date": b.date.isoformat(), "count": b.count} for b in summary.frequency],
        "heatmap": [
            {
                "date": b.date.isoformat(),
                "averageInitialSeverity": b.average_initial_severity,
                "attackCount": b.attack_count,
            }
            for b in summary.heatmap
        ],
        "topTriggers": [{"tag": t.tag, "count": t.count} for t in summary.top_triggers],
        "topMitigations": [{"tag": t.tag, "count": t.count} for t in summary.top_mitigations],
    }
    return json.dumps(payload, ensure_ascii=False, indent=2)


# ═══════════════════════════════════════════════════════════════════════════
#  Commands
# ═══════════════════════════════════════════════════════════════════════════


def _run(args: argparse.Namespace, cfg: TrackerConfig, kv: FileKeyValueStore) -> None:
    store = open_store(kv, cfg)
    zone = _zone(cfg)
    cmd = args.command

    if cmd == "status":
        active = store.active_event()
        print(_describe(active) if active else "No attack in progress.")
        print(
            f"History: {len(store.historical_events())} attacks | "
            f"triggers: {len(store.triggers())} | mitigations: {len(store.mitigations())}"
        )
        for problem in store.inconsistencies:
            print(f"warning: {problem}", file=sys.stderr)
        return

    if cmd == "start":
        attack = store.start_event(_parse_when(args.at, zone), args.severity, args.trigger)
        save_store(store, kv)
        print(_describe(attack))
        return

    if cmd == "mitigate":
        attack = store.record_mitigation(_parse_when(args.at, zone), args.tag, args.severity)
        save_store(store, kv)
        print(_describe(attack))
        return

    if cmd == "end":
        attack = store.end_active_event(_parse_when(args.at, zone))
        save_store(store, kv)
        print(_describe(attack))
        return

    if cmd == "tags":
        if args.tags_command == "list":
            vocabs = [args.vocabulary] if args.vocabulary else VOCAB_CHOICES
            for name in vocabs:
                print(f"{name}: {', '.join(store.vocabulary(name)) or '(empty)'}")
        elif args.tags_command == "add":
            store.add_vocabulary_tag(args.vocabulary, args.tag)
            save_store(store, kv)
            print(f"Added {args.tag!r} to {args.vocabulary}")
        else:
            removed = store.remove_vocabulary_tag(args.vocabulary, args.tag)
            if removed:
                save_store(store, kv)
                print(f"Removed {args.tag!r} from {args.vocabulary}")
            else:
                print(f"{args.tag!r} not in {args.vocabulary}")
        return

    if cmd == "suggest":
        active = store.active_event()
        selected: tuple[str, ...] = ()
        if active is not None and args.vocabulary == Vocabulary.TRIGGERS.value:
            selected = active.location_triggers
        matches = suggest_tags(
            args.query,
            store.vocabulary(args.vocabulary),
            selected=selected,
            usage=tag_usage(store.historical_events(), args.vocabulary),
            limit=args.limit,
        )
        for tag in matches:
            print(tag)
        return

    if cmd == "stats":
        summary = _summary(store, cfg, args.now)
        if args.json:
            print(_summary_json(summary))
        else:
            print(render_report_txt(summary, store.active_event()), end="")
        return

    if cmd == "report":
        summary = _summary(store, cfg, args.now)
        out_dir = args.out_dir or cfg.report_out_dir
        write_report(
            summary,
            store.historical_events(),
            out_dir,
            active=store.active_event(),
            plots=not args.no_plots,
        )
        print(f"Report written to {out_dir}")
        return

    raise ValueError(f"Unknown command: {cmd}")


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    cfg = load_config(args.config)
    setup_logging(args.log_level or cfg.log_level, cfg.log_file)

    if args.data_dir:
        cfg.data_dir = args.data_dir
    kv = FileKeyValueStore(cfg.data_dir)

    try:
        _run(args, cfg, kv)
    except TrackerError as exc:
        log.debug("Command %s failed", args.command, exc_info=True)
        print(f"error: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
