"""Звітування: запис CSV, TXT, PNG."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from pathlib import Path

from src.analytics.engine import AnalyticsSummary, TagCount, heatmap_level
from src.analytics.frames import attacks_frame, frequency_frame, heatmap_frame, tags_frame
from src.contracts.attack import Attack
from src.shared.fileio import atomic_write

log = logging.getLogger(__name__)

# Heatmap cell colours by level (0 = no data)
HEATMAP_COLORS: tuple[str, ...] = (
    "#f3f4f6",
    "#dcfce7",
    "#a7f3d0",
    "#fde68a",
    "#fca5a5",
    "#ef4444",
)


# ═══════════════════════════════════════════════════════════════════════════
#  CSV writers
# ═══════════════════════════════════════════════════════════════════════════


def write_attacks_csv(attacks: Sequence[Attack], path: str | Path) -> None:
    df = attacks_frame(attacks)
    atomic_write(path, df.to_csv(index=False))
    log.info("Wrote attacks → %s (%d rows)", path, len(df))


def write_series_csv(summary: AnalyticsSummary, out_dir: str | Path) -> None:
    """Write frequency.csv, heatmap.csv, top_triggers.csv, top_mitigations.csv."""
    out = Path(out_dir)
    atomic_write(out / "frequency.csv", frequency_frame(summary.frequency).to_csv(index=False))
    atomic_write(out / "heatmap.csv", heatmap_frame(summary.heatmap).to_csv(index=False))
    atomic_write(out / "top_triggers.csv", tags_frame(summary.top_triggers).to_csv(index=False))
    atomic_write(
        out / "top_mitigations.csv", tags_frame(summary.top_mitigations).to_csv(index=False)
    )
    log.info("Wrote series CSVs → %s", out)


# ═══════════════════════════════════════════════════════════════════════════
#  TXT report
# ═══════════════════════════════════════════════════════════════════════════


def _ranking_lines(ranking: Sequence[TagCount], unit: str, empty: str) -> list[str]:
    if not ranking:
        return [f"  {empty}"]
    return [f"  {i}. {t.tag} ({t.count} {unit})" for i, t in enumerate(ranking, 1)]


def render_report_txt(summary: AnalyticsSummary, active: Attack | None = None) -> str:
    """Генерує текстовий звіт."""
    lines: list[str] = []
    lines.append("=" * 60)
    lines.append("  Episode Tracker Report")
    lines.append(f"  Generated for {summary.now.isoformat(timespec='minutes')}")
    lines.append("=" * 60)
    lines.append("")

    lines.append("--- Current ---")
    if active is None:
        lines.append("  No attack in progress")
    else:
        lines.append(f"  Attack {active.id} since {active.start_time.isoformat(timespec='minutes')}")
        lines.append(f"  Severity:         {active.initial_severity} -> {active.current_severity}")
        lines.append(f"  Triggers:         {', '.join(active.location_triggers)}")
        lines.append(f"  Mitigations:      {len(active.mitigation_attempts)}")
    lines.append("")

    freq = summary.frequency
    total = sum(b.count for b in freq)
    lines.append(f"--- Frequency (last {len(freq)} days) ---")
    lines.append(f"  Attacks:          {total}")
    if freq:
        busiest = max(freq, key=lambda b: b.count)
        if busiest.count:
            lines.append(f"  Busiest day:      {busiest.date.isoformat()} ({busiest.count})")
        lines.append(f"  Per day (avg):    {total / len(freq):.2f}")
    lines.append("")

    heat = [b for b in summary.heatmap if b.has_data]
    lines.append(f"--- Severity (last {len(summary.heatmap)} days) ---")
    if heat:
        weighted = sum(b.average_initial_severity * b.attack_count for b in heat)
        count = sum(b.attack_count for b in heat)
        worst = max(heat, key=lambda b: b.average_initial_severity)
        lines.append(f"  Days with attacks: {len(heat)}")
        lines.append(f"  Avg initial:      {weighted / count:.1f}")
        lines.append(
            f"  Worst day:        {worst.date.isoformat()} "
            f"(avg {worst.average_initial_severity:.1f}, level {heatmap_level(worst)})"
        )
    else:
        lines.append("  No data")
    lines.append("")

    lines.append("--- Top triggers ---")
    lines.extend(_ranking_lines(summary.top_triggers, "attacks", "No trigger data yet."))
    lines.append("")
    lines.append("--- Top mitigations ---")
    lines.extend(_ranking_lines(summary.top_mitigations, "uses", "No mitigation data yet."))
    lines.append("")
    lines.append(f"Ended attacks on record: {summary.attacks_total}")
    lines.append("=" * 60)
    return "\n".join(lines) + "\n"


def write_report_txt(
    summary: AnalyticsSummary,
    path: str | Path,
    active: Attack | None = None,
) -> None:
    atomic_write(path, render_report_txt(summary, active))
    log.info("Wrote report → %s", path)


# ═══════════════════════════════════════════════════════════════════════════
#  Plots (matplotlib)
# ═══════════════════════════════════════════════════════════════════════════


def write_plots(summary: AnalyticsSummary, out_dir: str | Path) -> list[Path]:
    """Generate PNG charts into out_dir/plots/.  Returns written paths."""
    try:
        import matplotlib

        matplotlib.use("Agg")
        import matplotlib.pyplot as plt
    except ImportError:
        log.warning("matplotlib not installed — skipping plots")
        return []

    plots_dir = Path(out_dir) / "plots"
    plots_dir.mkdir(parents=True, exist_ok=True)
    written: list[Path] = []

    # ── 1. Frequency bar chart ───────────────────────────────────────
    freq = frequency_frame(summary.frequency)
    fig, ax = plt.subplots(figsize=(10, 4))
    ax.bar(freq["date"], freq["count"], color="#6366f1", edgecolor="black", linewidth=0.3)
    ax.set_ylabel("Attacks")
    ax.set_title(f"Attack Frequency (last {len(freq)} days)")
    fig.autofmt_xdate()
    fig.tight_layout()
    path = plots_dir / "frequency.png"
    fig.savefig(str(path), dpi=150)
    plt.close(fig)
    written.append(path)
    log.info("Wrote plots/frequency.png")

    # ── 2. Severity heatmap (weeks × weekdays) ───────────────────────
    heat = heatmap_frame(summary.heatmap)
    fig, ax = plt.subplots(figsize=(10, 2.6))
    if not heat.empty:
        offset = heat["date"].iloc[0].weekday()
        slots = [offset + i for i in range(len(heat))]
        ax.scatter(
            [s // 7 for s in slots],
            [s % 7 for s in slots],
            c=[HEATMAP_COLORS[lvl] for lvl in heat["level"]],
            marker="s",
            s=110,
            edgecolors="#d1d5db",
            linewidths=0.4,
        )
    ax.set_yticks(range(7))
    ax.set_yticklabels(["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"])
    ax.invert_yaxis()
    ax.set_xticks([])
    ax.set_title(f"Average Initial Severity (last {len(heat)} days)")
    for spine in ax.spines.values():
        spine.set_visible(False)
    fig.tight_layout()
    path = plots_dir / "heatmap.png"
    fig.savefig(str(path), dpi=150)
    plt.close(fig)
    written.append(path)
    log.info("Wrote plots/heatmap.png")

    # ── 3. Top tags ──────────────────────────────────────────────────
    fig, (ax_t, ax_m) = plt.subplots(1, 2, figsize=(10, 4))
    for ax, ranking, title, color in (
        (ax_t, summary.top_triggers, "Top Triggers", "#f97316"),
        (ax_m, summary.top_mitigations, "Top Mitigations", "#10b981"),
    ):
        tags = tags_frame(ranking)
        ax.barh(tags["tag"], tags["count"], color=color)
        ax.invert_yaxis()
        ax.set_title(title)
        ax.set_xlabel("Count")
    fig.tight_layout()
    path = plots_dir / "top_tags.png"
    fig.savefig(str(path), dpi=150)
    plt.close(fig)
    written.append(path)
    log.info("Wrote plots/top_tags.png")

    return written


def write_report(
    summary: AnalyticsSummary,
    attacks: Sequence[Attack],
    out_dir: str | Path,
    *,
    active: Attack | None = None,
    plots: bool = True,
) -> None:
    """Write every report artefact into ``out_dir``."""
    out = Path(out_dir)
    write_attacks_csv(attacks, out / "attacks.csv")
    write_series_csv(summary, out)
    write_report_txt(summary, out / "report.txt", active)
    if plots:
        write_plots(summary, out)
