"""Exchange records and the in-memory, deduplicated exchange store.

The store is not thread-safe on its own; ScanState owns it and guards every
access with its lock.
"""
from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from ..config.vision import WORLD_MAX, WORLD_MIN


def clamp_world(value: int) -> int:
    """Clamp a world coordinate to the inclusive world range."""
    return max(WORLD_MIN, min(WORLD_MAX, int(value)))


@dataclass
class Exchange:
    """A located target building.

    confirmed=True means the coordinates were read from the game's own popup
    text; False means they are a calibration estimate.
    """

    kingdom: int
    x: int
    y: int
    found_at: float = field(default_factory=time.time)
    scan_duration: Optional[float] = None
    confirmed: bool = False
    screenshot: Optional[bytes] = field(default=None, repr=False)

    def __post_init__(self) -> None:
        self.x = clamp_world(self.x)
        self.y = clamp_world(self.y)

    def to_dict(self) -> Dict[str, object]:
        """Serializable view; screenshot bytes are left out."""
        return {
            "kingdom": self.kingdom,
            "x": self.x,
            "y": self.y,
            "found_at": self.found_at,
            "scan_duration_secs": self.scan_duration,
            "confirmed": self.confirmed,
        }


class ExchangeStore:
    """Exchanges found this process lifetime, deduplicated on (kingdom, x, y)."""

    def __init__(self, dedupe_window: float = 300.0, clock=time.time) -> None:
        self.dedupe_window = float(dedupe_window)
        self._clock = clock
        self._items: List[Exchange] = []

    def __len__(self) -> int:
        return len(self._items)

    def add(self, exchange: Exchange) -> bool:
        """Store exchange unless the same K/X/Y was found within the dedupe window.

        Returns True when stored.
        """
        now = self._clock()
        for e in self._items:
            if (e.kingdom, e.x, e.y) == (exchange.kingdom, exchange.x, exchange.y) \
                    and (now - e.found_at) < self.dedupe_window:
                return False
        self._items.append(exchange)
        return True

    def for_kingdom(self, kingdom: int) -> Optional[Tuple[int, int]]:
        """Return (x, y) of the most recently found exchange for kingdom."""
        candidates = [e for e in self._items if e.kingdom == kingdom]
        if not candidates:
            return None
        latest = max(candidates, key=lambda e: e.found_at)
        return latest.x, latest.y

    def refresh(self, kingdom: int, x: int, y: int) -> bool:
        """Bump found_at to now for the matching exchange."""
        for e in self._items:
            if (e.kingdom, e.x, e.y) == (kingdom, x, y):
                e.found_at = self._clock()
                return True
        return False

    def remove(self, kingdom: int) -> int:
        """Remove all exchanges for kingdom; returns how many were dropped."""
        before = len(self._items)
        self._items = [e for e in self._items if e.kingdom != kingdom]
        return before - len(self._items)

    def clear(self) -> None:
        self._items.clear()

    def get(self, index: int) -> Optional[Exchange]:
        if 0 <= index < len(self._items):
            return self._items[index]
        return None

    def snapshot(self) -> List[Exchange]:
        """Shallow copy of the stored exchanges, in insertion order."""
        return list(self._items)
