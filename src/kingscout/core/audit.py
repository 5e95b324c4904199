"""Append-only JSON-lines audit log of confirm attempts.

One record per confirm attempt, whatever the outcome. Write failures are
logged and never interrupt scanning.
"""
from __future__ import annotations

import json
import logging
import threading
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)


@dataclass
class AuditRecord:
    timestamp: str
    kingdom: int
    x: int
    y: int
    confirmed: bool
    stored: bool
    initial_score: float
    calibration_score: Optional[float]
    scan_pattern: str
    scan_duration_secs: Optional[float]


def make_record(
    kingdom: int,
    x: int,
    y: int,
    confirmed: bool,
    stored: bool,
    initial_score: float,
    calibration_score: Optional[float],
    scan_pattern: str,
    scan_duration_secs: Optional[float],
) -> AuditRecord:
    return AuditRecord(
        timestamp=datetime.now(timezone.utc).isoformat(),
        kingdom=int(kingdom),
        x=int(x),
        y=int(y),
        confirmed=bool(confirmed),
        stored=bool(stored),
        initial_score=float(initial_score),
        calibration_score=None if calibration_score is None else float(calibration_score),
        scan_pattern=str(scan_pattern),
        scan_duration_secs=scan_duration_secs,
    )


class AuditLog:
    """Thread-safe appender for AuditRecord lines."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()

    def append(self, record: AuditRecord) -> bool:
        """Append one record; returns False if it could not be written."""
        line = json.dumps(asdict(record))
        with self._lock:
            try:
                if self.path.parent and not self.path.parent.exists():
                    self.path.parent.mkdir(parents=True, exist_ok=True)
                with self.path.open("a", encoding="utf-8") as fh:
                    fh.write(line + "\n")
            except OSError as exc:
                logger.warning("failed to write audit record to %s: %s", self.path, exc)
                return False
        return True
