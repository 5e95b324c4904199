"""
Scan orchestrator.

Scanner is the control surface (start/resume, stop, pause, prepare, logout,
status, exchanges, diagnostics) and owns the background scan thread. The
thread walks every configured kingdom in endless passes, re-verifying known
exchanges inside the cooldown window and running a full pattern scan
otherwise. Screenshots are handed to a DetectionWorker so correlation
overlaps with the next navigation.
"""
from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence

from ..core.audit import AuditLog
from ..core.errors import KingscoutError, PhaseConflict
from ..core.state import ScannerPhase, ScanState, TaskHandle
from ..core.worker import DetectionResult, DetectionWorker
from ..vision.matcher import find_best_match
from ..vision.preprocess import PreparedTemplate, decode_image
from .calibration import Calibration
from .confirm import ExchangeConfirmer, save_debug_screenshot
from .patterns import positions_for_settings

logger = logging.getLogger(__name__)


@dataclass
class DetectReport:
    """Result of a one-shot detection on a single screenshot."""

    found: bool
    threshold: float
    pixel_x: Optional[int] = None
    pixel_y: Optional[int] = None
    score: Optional[float] = None
    world_dx: Optional[int] = None
    world_dy: Optional[int] = None


class Scanner:
    """Phase-driven kingdom scanner."""

    def __init__(
        self,
        settings,
        templates: Sequence[PreparedTemplate],
        viewport_factory: Callable[[], object],
        state: Optional[ScanState] = None,
        audit: Optional[AuditLog] = None,
    ) -> None:
        self.settings = settings
        self.templates = list(templates)
        self.viewport_factory = viewport_factory
        self.state = state or ScanState(dedupe_window=settings.dedupe_window_seconds)
        self.audit = audit if audit is not None else AuditLog(settings.exchange_log)
        self.calibration = Calibration.from_settings(settings)
        self._thread: Optional[threading.Thread] = None

    # ---- control surface ----
    def start_or_resume(self) -> str:
        action, handle = self.state.request_start()
        if handle is not None:
            self._spawn(handle, self._run_scan, "kingscout-scan")
        logger.info("start: %s", action)
        return action

    def stop(self) -> str:
        phase = self.state.request_stop()
        logger.info("stop: scanner now %s", phase.value)
        return "stopped"

    def pause(self) -> str:
        self.state.request_pause()
        return "paused"

    def prepare_session(self) -> str:
        action, handle = self.state.request_prepare()
        if handle is not None:
            self._spawn(handle, self._run_prepare, "kingscout-prepare")
        return action

    def logout(self) -> str:
        viewport = self.state.request_logout()
        if viewport is not None:
            self._close_viewport(viewport)
        logger.info("logged out")
        return "logged_out"

    def get_phase(self) -> ScannerPhase:
        return self.state.phase

    def status(self) -> Dict[str, object]:
        return self.state.status()

    def list_exchanges(self) -> List[Dict[str, object]]:
        return [e.to_dict() for e in self.state.list_exchanges()]

    def exchange_screenshot(self, index: int) -> Optional[bytes]:
        return self.state.exchange_screenshot(index)

    def join(self, timeout: Optional[float] = None) -> None:
        """Wait for the most recently started background thread to exit."""
        if self._thread is not None:
            self._thread.join(timeout)

    # ---- diagnostics ----
    def _require_viewport(self, operation: str):
        viewport = self.state.viewport
        if viewport is None:
            raise PhaseConflict(operation, self.state.phase)
        return viewport

    def screenshot(self) -> bytes:
        viewport = self._require_viewport("screenshot")
        data = viewport.take_screenshot()
        self.state.set_last_screenshot(data)
        return data

    def goto(self, kingdom: int, x: int, y: int) -> bytes:
        viewport = self._require_viewport("goto")
        viewport.navigate_to(kingdom, x, y)
        data = viewport.take_screenshot()
        self.state.set_last_screenshot(data)
        if self.settings.debug_screenshots:
            save_debug_screenshot(f"goto_k{kingdom}_{x}_{y}.png", data)
        return data

    def detect_once(self, image: Optional[bytes] = None) -> DetectReport:
        """Best match on image, or on the last goto/screenshot capture."""
        data = image if image is not None else self.state.last_screenshot
        if data is None:
            raise KingscoutError("no screenshot available, use goto or screenshot first")
        s = self.settings
        threshold = s.detect_threshold
        best = find_best_match(decode_image(data), self.templates, s.match_threshold,
                               s.viewport_rect, s.scale_down)
        if best is None:
            return DetectReport(found=False, threshold=threshold)
        dx, dy = self.calibration.pixel_to_world_offset(best.x, best.y)
        return DetectReport(
            found=best.score >= threshold,
            threshold=threshold,
            pixel_x=best.x,
            pixel_y=best.y,
            score=best.score,
            world_dx=dx,
            world_dy=dy,
        )

    # ---- background tasks ----
    def _spawn(self, handle: TaskHandle, target, name: str) -> None:
        thread = threading.Thread(target=target, args=(handle,), name=name, daemon=True)
        self._thread = thread
        thread.start()

    @staticmethod
    def _close_viewport(viewport) -> None:
        try:
            viewport.close()
        except Exception as exc:
            logger.warning("failed to close viewport: %s", exc)

    def _prepare(self, handle: TaskHandle):
        """Return the live viewport, launching and logging in when there is none."""
        existing = self.state.viewport
        if existing is not None:
            return existing
        viewport = None
        attached = False
        try:
            logger.info("launching browser")
            viewport = self.viewport_factory()
            viewport.launch(self.settings)
            attached = self.state.task_attach_viewport(handle, viewport)
            if not attached:
                self._close_viewport(viewport)
                return None
            logger.info("logging in")
            viewport.login(self.settings.email, self.settings.password)
        except Exception as exc:
            logger.error("preparation failed: %s", exc)
            detached = self.state.task_failed(handle, drop_viewport=attached)
            if detached is None and attached and self.state.release_viewport(viewport):
                detached = viewport
            if detached is not None:
                self._close_viewport(detached)
            elif viewport is not None and not attached:
                self._close_viewport(viewport)
            return None
        if not self.state.task_set_phase(handle, ScannerPhase.READY):
            return None
        logger.info("browser ready")
        return viewport

    def _run_prepare(self, handle: TaskHandle) -> None:
        self._prepare(handle)

    def _run_scan(self, handle: TaskHandle) -> None:
        viewport = self._prepare(handle)
        if viewport is None:
            return
        if not self.state.task_set_phase(handle, ScannerPhase.SCANNING):
            return
        logger.info("starting kingdom scan loop")
        confirmer = ExchangeConfirmer(self.settings, self.templates, self.state, self.audit,
                                      handle=handle)
        try:
            while True:
                for kingdom in self.settings.kingdoms:
                    if not self.state.wait_while_paused(handle):
                        logger.info("scanner stopped")
                        return
                    self.state.set_current_kingdom(kingdom)
                    self._process_kingdom(handle, viewport, confirmer, kingdom)
                logger.info("pass complete, starting next pass")
        except Exception:
            logger.exception("scanner error")
            self.state.task_failed(handle)

    def _process_kingdom(self, handle: TaskHandle, viewport, confirmer: ExchangeConfirmer,
                         kingdom: int) -> None:
        cooldown = float(self.settings.cooldown_seconds)
        last = self.state.last_scan_time(kingdom)
        known = self.state.exchange_for(kingdom)
        if last is not None:
            elapsed = time.monotonic() - last
            if elapsed < cooldown:
                remaining = cooldown - elapsed
                if known is not None:
                    ex, ey = known
                    logger.info("kingdom %d: re-verifying exchange at (%d, %d)", kingdom, ex, ey)
                    try:
                        present = confirmer.verify(viewport, kingdom, ex, ey)
                    except Exception as exc:
                        logger.warning("kingdom %d: verify failed, falling back to full scan: %s", kingdom, exc)
                    else:
                        if handle.cancelled:
                            return
                        if present:
                            logger.info("kingdom %d: exchange still present", kingdom)
                            self.state.refresh_exchange(kingdom, ex, ey)
                            handle.sleep(remaining)
                            return
                        logger.info("kingdom %d: exchange gone, removing", kingdom)
                        self.state.remove_exchanges(kingdom)
                else:
                    logger.info("kingdom %d: cooldown, waiting %.0fs before rescan", kingdom, remaining)
                    if handle.sleep(remaining):
                        return

        try:
            self.scan_kingdom(handle, viewport, confirmer, kingdom)
        except Exception as exc:
            logger.error("kingdom %d: scan failed: %s", kingdom, exc)
        if handle.cancelled:
            return
        self.state.mark_scanned(kingdom)

    def scan_kingdom(self, handle: TaskHandle, viewport, confirmer: ExchangeConfirmer, kingdom: int) -> bool:
        """Full pattern scan of one kingdom; True when an exchange was stored."""
        s = self.settings
        positions = positions_for_settings(s)
        logger.info("kingdom %d: scanning %d positions (%s)", kingdom, len(positions), s.scan_pattern)
        started = time.monotonic()
        worker = DetectionWorker.from_settings(self.templates, s)
        try:
            for i, (x, y) in enumerate(positions):
                if handle.cancelled:
                    return False
                result = worker.poll()
                if result is not None:
                    if self._confirm_result(viewport, confirmer, kingdom, result, started):
                        return True
                    worker.drain()

                if not self.state.wait_while_paused(handle):
                    return False

                logger.info("kingdom %d: step %d/%d at (%d, %d)", kingdom, i + 1, len(positions), x, y)
                viewport.navigate_to(kingdom, x, y)
                if handle.sleep(s.navigate_delay_ms / 1000.0):
                    return False
                png = viewport.take_screenshot()
                if handle.cancelled:
                    return False
                if s.debug_screenshots:
                    save_debug_screenshot(f"scan_k{kingdom}_s{i + 1:03d}.png", png)
                worker.submit(i, x, y, png)

            if handle.cancelled:
                return False
            result = worker.wait_next(handle.cancel)
            if result is not None and not handle.cancelled:
                return self._confirm_result(viewport, confirmer, kingdom, result, started)
            logger.info("kingdom %d: no exchange found", kingdom)
            return False
        finally:
            worker.shutdown()

    def _confirm_result(self, viewport, confirmer: ExchangeConfirmer, kingdom: int,
                        result: DetectionResult, started: float) -> bool:
        best = result.best
        if best is None:
            return False
        duration = time.monotonic() - started
        try:
            return confirmer.confirm(viewport, kingdom, best, result.nav_x, result.nav_y, duration)
        except Exception as exc:
            logger.warning("kingdom %d: confirm failed for hit at step %d (%d, %d): %s",
                           kingdom, result.step_index + 1, result.nav_x, result.nav_y, exc)
            return False
