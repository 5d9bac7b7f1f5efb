"""File-backed key/value store: one JSON document per named record."""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Any

from src.shared.fileio import atomic_write

log = logging.getLogger(__name__)

_KEY_RE = re.compile(r"^[A-Za-z0-9_.-]+$")


class FileKeyValueStore:
    """Stores each record as ``<root>/<key>.json``.

    Records are independent: a corrupt ``attacks.json`` does not affect
    ``mitigations.json``.  Unreadable or unparseable records read as absent.
    """

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)

    def _path(self, key: str) -> Path:
        if not _KEY_RE.match(key):
            raise ValueError(f"Invalid record key: {key!r}")
        return self.root / f"{key}.json"

    def get(self, key: str) -> Any | None:
        """Повертає розібраний запис, або None якщо він відсутній чи пошкоджений."""
        path = self._path(key)
        if not path.exists():
            return None
        try:
            with path.open("r", encoding="utf-8") as fh:
                return json.load(fh)
        except (OSError, json.JSONDecodeError) as exc:
            log.warning("Record %r unreadable, treating as absent: %s", key, exc)
            return None

    def set(self, key: str, value: Any) -> None:
        content = json.dumps(value, ensure_ascii=False, indent=2)
        atomic_write(self._path(key), content + "\n")
        log.debug("Wrote record %r -> %s", key, self._path(key))
