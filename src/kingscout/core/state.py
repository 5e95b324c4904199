"""
Scan state owner.

ScanState holds everything the scan loop and the control surface share:
phase, current kingdom, exchange store, last-scan times, cached screenshot,
viewport session and the active background task. One lock guards all of it
and is held only for the read or write itself, never across viewport I/O.
The methods below are the only mutation points.
"""
from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple

from .errors import PhaseConflict
from .exchanges import Exchange, ExchangeStore

logger = logging.getLogger(__name__)


class ScannerPhase(Enum):
    IDLE = "idle"
    PREPARING = "preparing"
    READY = "ready"
    SCANNING = "scanning"
    PAUSED = "paused"


@dataclass
class TaskHandle:
    """Cancellation token for one background prepare or scan run."""

    name: str
    cancel: threading.Event = field(default_factory=threading.Event)

    @property
    def cancelled(self) -> bool:
        return self.cancel.is_set()

    def sleep(self, seconds: float) -> bool:
        """Sleep up to seconds; returns True if the run was cancelled meanwhile."""
        if seconds <= 0:
            return self.cancel.is_set()
        return self.cancel.wait(seconds)


class ScanState:
    """Thread-safe shared scanner state."""

    def __init__(self, dedupe_window: float = 300.0, clock=time.time) -> None:
        self.lock = threading.Lock()
        self._wake = threading.Condition(self.lock)
        self._phase = ScannerPhase.IDLE
        self._current_kingdom: Optional[int] = None
        self._exchanges = ExchangeStore(dedupe_window=dedupe_window, clock=clock)
        self._last_scan: Dict[int, float] = {}
        self._last_screenshot: Optional[bytes] = None
        self._viewport = None
        self._task: Optional[TaskHandle] = None
        self.history: List[Tuple[ScannerPhase, ScannerPhase]] = []

    # ---- internal helpers (lock held) ----
    def _set_phase(self, phase: ScannerPhase) -> None:
        if phase is self._phase:
            return
        self.history.append((self._phase, phase))
        logger.info("phase: %s -> %s", self._phase.value, phase.value)
        self._phase = phase
        self._wake.notify_all()

    def _is_active(self, handle: TaskHandle) -> bool:
        return handle is self._task and not handle.cancelled

    def _abort_task(self) -> None:
        if self._task is not None:
            self._task.cancel.set()
            self._task = None
        self._wake.notify_all()

    # ---- reads ----
    @property
    def phase(self) -> ScannerPhase:
        with self.lock:
            return self._phase

    @property
    def viewport(self):
        with self.lock:
            return self._viewport

    def status(self) -> Dict[str, object]:
        with self.lock:
            return {
                "phase": self._phase.value,
                "running": self._phase is ScannerPhase.SCANNING,
                "paused": self._phase is ScannerPhase.PAUSED,
                "current_kingdom": self._current_kingdom,
                "exchanges_found": len(self._exchanges),
            }

    # ---- control operations ----
    def request_start(self) -> Tuple[str, Optional[TaskHandle]]:
        """Resume a paused run or register a fresh scan task.

        Returns ("resumed", None) or ("started", handle); the caller starts
        the thread for a new handle. With a live viewport the phase moves
        straight to SCANNING, otherwise to PREPARING.
        """
        with self.lock:
            if self._phase is ScannerPhase.PAUSED:
                self._set_phase(ScannerPhase.SCANNING)
                return "resumed", None
            if self._phase in (ScannerPhase.SCANNING, ScannerPhase.PREPARING):
                raise PhaseConflict("start", self._phase)
            self._abort_task()
            self._exchanges.clear()
            self._current_kingdom = None
            self._task = TaskHandle("scan")
            self._set_phase(ScannerPhase.PREPARING if self._viewport is None else ScannerPhase.SCANNING)
            return "started", self._task

    def request_stop(self) -> ScannerPhase:
        with self.lock:
            self._abort_task()
            self._set_phase(ScannerPhase.READY if self._viewport is not None else ScannerPhase.IDLE)
            return self._phase

    def request_pause(self) -> None:
        with self.lock:
            if self._phase is ScannerPhase.PAUSED:
                return
            if self._phase is not ScannerPhase.SCANNING:
                raise PhaseConflict("pause", self._phase)
            self._set_phase(ScannerPhase.PAUSED)

    def request_prepare(self) -> Tuple[str, Optional[TaskHandle]]:
        with self.lock:
            if self._phase is ScannerPhase.IDLE:
                self._abort_task()
                self._task = TaskHandle("prepare")
                self._set_phase(ScannerPhase.PREPARING)
                return "preparing", self._task
            if self._phase in (ScannerPhase.READY, ScannerPhase.PAUSED):
                return "ready", None
            raise PhaseConflict("prepare", self._phase)

    def request_logout(self):
        """Abort any task and detach the viewport; the caller closes it."""
        with self.lock:
            self._abort_task()
            viewport, self._viewport = self._viewport, None
            self._set_phase(ScannerPhase.IDLE)
            return viewport

    # ---- task-side transitions ----
    def task_set_phase(self, handle: TaskHandle, phase: ScannerPhase) -> bool:
        """Apply phase for handle; ignored once the handle was superseded or cancelled."""
        with self.lock:
            if not self._is_active(handle):
                return False
            self._set_phase(phase)
            return True

    def task_attach_viewport(self, handle: TaskHandle, viewport) -> bool:
        with self.lock:
            if not self._is_active(handle):
                return False
            self._viewport = viewport
            return True

    def task_failed(self, handle: TaskHandle, drop_viewport: bool = False):
        """End handle's run after an error; returns a detached viewport to close, if any."""
        with self.lock:
            if not self._is_active(handle):
                return None
            self._task = None
            viewport = None
            if drop_viewport:
                viewport, self._viewport = self._viewport, None
            self._set_phase(ScannerPhase.READY if self._viewport is not None else ScannerPhase.IDLE)
            return viewport

    def release_viewport(self, viewport) -> bool:
        """Detach viewport if it is still the live session and drop back to IDLE.

        Used when a session fails after its run was already stopped or
        superseded. Any task running on that session is aborted.
        """
        with self.lock:
            if viewport is None or self._viewport is not viewport:
                return False
            self._abort_task()
            self._viewport = None
            self._set_phase(ScannerPhase.IDLE)
            return True

    def wait_while_paused(self, handle: TaskHandle) -> bool:
        """Block while paused; True when the run should keep scanning."""
        announced = False
        with self._wake:
            while True:
                if not self._is_active(handle):
                    return False
                if self._phase is ScannerPhase.SCANNING:
                    return True
                if self._phase is not ScannerPhase.PAUSED:
                    return False
                if not announced:
                    logger.info("scanner paused, waiting for resume")
                    announced = True
                self._wake.wait()

    # ---- shared data ----
    def set_current_kingdom(self, kingdom: Optional[int]) -> None:
        with self.lock:
            self._current_kingdom = kingdom

    def last_scan_time(self, kingdom: int) -> Optional[float]:
        with self.lock:
            return self._last_scan.get(kingdom)

    def mark_scanned(self, kingdom: int, when: Optional[float] = None) -> None:
        with self.lock:
            self._last_scan[kingdom] = time.monotonic() if when is None else when

    def exchange_for(self, kingdom: int) -> Optional[Tuple[int, int]]:
        with self.lock:
            return self._exchanges.for_kingdom(kingdom)

    def add_exchange(self, exchange: Exchange) -> bool:
        return self._add_exchange(exchange, None)

    def task_add_exchange(self, handle: TaskHandle, exchange: Exchange) -> bool:
        """Store exchange for handle's run; refused once the run was stopped or superseded."""
        return self._add_exchange(exchange, handle)

    def _add_exchange(self, exchange: Exchange, handle: Optional[TaskHandle]) -> bool:
        with self.lock:
            if handle is not None and not self._is_active(handle):
                logger.info("run stopped, not storing K:%d X:%d Y:%d", exchange.kingdom, exchange.x, exchange.y)
                return False
            stored = self._exchanges.add(exchange)
            total = len(self._exchanges)
        if stored:
            logger.info("added exchange K:%d X:%d Y:%d %s (total: %d)", exchange.kingdom, exchange.x,
                        exchange.y, "confirmed" if exchange.confirmed else "estimate", total)
        else:
            logger.debug("duplicate, skipping K:%d X:%d Y:%d", exchange.kingdom, exchange.x, exchange.y)
        return stored

    def refresh_exchange(self, kingdom: int, x: int, y: int) -> bool:
        with self.lock:
            return self._exchanges.refresh(kingdom, x, y)

    def remove_exchanges(self, kingdom: int) -> int:
        with self.lock:
            return self._exchanges.remove(kingdom)

    def list_exchanges(self) -> List[Exchange]:
        with self.lock:
            return self._exchanges.snapshot()

    def exchange_screenshot(self, index: int) -> Optional[bytes]:
        with self.lock:
            ex = self._exchanges.get(index)
            return ex.screenshot if ex is not None else None

    def set_last_screenshot(self, data: Optional[bytes]) -> None:
        with self.lock:
            self._last_screenshot = data

    @property
    def last_screenshot(self) -> Optional[bytes]:
        with self.lock:
            return self._last_screenshot
