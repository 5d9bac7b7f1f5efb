"""Завантаження YAML конфігурацій."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from src.tracker.store import DEFAULT_MITIGATIONS, DEFAULT_TRIGGERS

log = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "config/tracker.yaml"


def load_yaml(path: str | Path) -> dict[str, Any]:
    """Зчитує YAML файл та повертає його вміст як dict.

    Args:
        path: Шлях до файлу.

    Returns:
        Вміст файлу як словник.

    Raises:
        FileNotFoundError: Якщо файл не знайдено.
    """
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Config not found: {p}")
    with p.open("r", encoding="utf-8") as fh:
        data = yaml.safe_load(fh)
    log.debug("Loaded config %s (%d top-level keys)", p.name, len(data or {}))
    return data or {}


@dataclass
class TrackerConfig:
    """Resolved settings for the tracker CLI and report writer."""

    data_dir: str = "data"
    default_triggers: tuple[str, ...] = DEFAULT_TRIGGERS
    default_mitigations: tuple[str, ...] = DEFAULT_MITIGATIONS
    frequency_window_days: int = 30
    heatmap_window_days: int = 90
    top_limit: int = 5
    timezone: str | None = None  # IANA name; None = system local zone
    report_out_dir: str = "out"
    log_level: str = "WARNING"
    log_file: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TrackerConfig:
        cfg = cls()
        storage = data.get("storage") or {}
        vocab = data.get("vocabulary") or {}
        analytics = data.get("analytics") or {}
        report = data.get("report") or {}
        logging_cfg = data.get("logging") or {}

        if "data_dir" in storage:
            cfg.data_dir = str(storage["data_dir"])
        if vocab.get("triggers") is not None:
            cfg.default_triggers = tuple(str(t) for t in vocab["triggers"])
        if vocab.get("mitigations") is not None:
            cfg.default_mitigations = tuple(str(t) for t in vocab["mitigations"])
        cfg.frequency_window_days = int(
            analytics.get("frequency_window_days", cfg.frequency_window_days)
        )
        cfg.heatmap_window_days = int(analytics.get("heatmap_window_days", cfg.heatmap_window_days))
        cfg.top_limit = int(analytics.get("top_limit", cfg.top_limit))
        cfg.timezone = analytics.get("timezone") or None
        if "out_dir" in report:
            cfg.report_out_dir = str(report["out_dir"])
        cfg.log_level = str(logging_cfg.get("level") or cfg.log_level)
        cfg.log_file = logging_cfg.get("file") or None

        for name in ("frequency_window_days", "heatmap_window_days"):
            if getattr(cfg, name) < 1:
                raise ValueError(f"analytics.{name} must be >= 1")
        return cfg


def load_config(path: str | Path | None = None) -> TrackerConfig:
    """Load tracker settings, falling back to defaults when the file is missing.

    An explicitly given path that does not exist is still an error.
    """
    if path is None:
        if not Path(DEFAULT_CONFIG_PATH).exists():
            log.debug("No %s found, using built-in defaults", DEFAULT_CONFIG_PATH)
            return TrackerConfig()
        path = DEFAULT_CONFIG_PATH
    return TrackerConfig.from_dict(load_yaml(path))
