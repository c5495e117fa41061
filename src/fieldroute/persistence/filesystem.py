"""Run artifacts for route optimizations and clustering runs.

Each run gets its own directory under ``<data_root>/outputs`` named after the
tenant and a UTC timestamp, e.g. ``route_t1_20240101T090000123456Z``. Routes
write ``summary.json`` and ``stops.csv``; clustering runs write
``summary.json`` and ``assignments.csv``.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from ..config import settings


class FileStorage:
    """Writes per-run summaries and stop/assignment tables below the data root."""

    def __init__(self, root: Path | None = None) -> None:
        self.root = (root or settings.data_root).resolve()
        self.output_root = self.root / "outputs"
        self.output_root.mkdir(parents=True, exist_ok=True)

    def make_run_directory(self, prefix: str = "route") -> Path:
        # Microseconds keep back-to-back runs of one tenant apart.
        timestamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%fZ")
        path = self.output_root / f"{prefix}_{timestamp}"
        path.mkdir(parents=True, exist_ok=False)
        return path

    def write_json(self, path: Path, data: Any, *, indent: int = 2) -> None:
        """Dump a run summary; dates and other non-JSON values are written as strings."""

        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("w", encoding="utf-8") as handle:
            json.dump(data, handle, ensure_ascii=False, indent=indent, default=str)

    def write_csv(self, path: Path, content: str) -> None:
        """Write CSV text produced by the output formatters unchanged."""

        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("w", encoding="utf-8", newline="") as handle:
            handle.write(content)
