"""Confirm and re-verify detected exchanges against the live viewport.

Confirm turns an approximate pixel hit into coordinates: navigate to the
calibrated estimate, re-detect near the screen center to refine it, click
the building and read the popup. Popup coordinates are authoritative; a
strong near-center calibration match is accepted as an estimate. Every
attempt is appended to the audit log.
"""
from __future__ import annotations

import logging
import time
from typing import Callable, Optional, Sequence

from ..core.audit import AuditLog, make_record
from ..core.exchanges import Exchange, clamp_world
from ..core.logging_setup import get_artifacts_dir
from ..core.state import ScanState, TaskHandle
from ..io.viewport import parse_popup_coords
from ..vision.matcher import TemplateMatch, find_best_match
from ..vision.preprocess import PreparedTemplate, decode_image
from .calibration import Calibration

logger = logging.getLogger(__name__)


def save_debug_screenshot(name: str, data: bytes) -> None:
    """Write a PNG into the session's debug artifacts directory."""
    try:
        path = get_artifacts_dir(None, "debug") / name
        path.write_bytes(data)
        logger.info("saved debug screenshot: %s", path)
    except OSError as exc:
        logger.warning("failed to save debug screenshot %s: %s", name, exc)


class ExchangeConfirmer:
    """Runs the confirm workflow and re-verification for one scan run.

    With a handle, sleeps wake on cancellation and a stopped run neither
    starts new viewport work nor stores what it found.
    """

    def __init__(
        self,
        settings,
        templates: Sequence[PreparedTemplate],
        state: ScanState,
        audit: Optional[AuditLog] = None,
        sleep: Optional[Callable[[float], object]] = None,
        handle: Optional[TaskHandle] = None,
    ) -> None:
        self.settings = settings
        self.templates = list(templates)
        self.state = state
        self.audit = audit
        self.calibration = Calibration.from_settings(settings)
        self.handle = handle
        if sleep is None:
            sleep = handle.sleep if handle is not None else time.sleep
        self._sleep = sleep
        self._clicked = False

    def _stopped(self) -> bool:
        return self.handle is not None and self.handle.cancelled

    def _pause_ms(self, ms: int) -> None:
        if ms > 0:
            self._sleep(ms / 1000.0)

    def _best_match(self, png_bytes: bytes) -> Optional[TemplateMatch]:
        s = self.settings
        return find_best_match(decode_image(png_bytes), self.templates, s.match_threshold,
                               s.viewport_rect, s.scale_down)

    def _is_strong(self, match: Optional[TemplateMatch]) -> bool:
        return (
            match is not None
            and match.score >= self.settings.verify_threshold
            and self.calibration.near_center(match.x, match.y, self.settings.center_tolerance_px)
        )

    def verify(self, viewport, kingdom: int, x: int, y: int) -> bool:
        """True when the known exchange still shows up near the screen center.

        Viewport and decode errors propagate to the caller.
        """
        if self._stopped():
            return False
        viewport.navigate_to(kingdom, x, y)
        self._pause_ms(self.settings.confirm_delay_ms)
        match = self._best_match(viewport.take_screenshot())
        if match is None:
            logger.info("verify K:%d (%d,%d): no match found", kingdom, x, y)
            return False
        err_x, err_y = self.calibration.center_error(match.x, match.y)
        present = self._is_strong(match)
        logger.info("verify K:%d (%d,%d): pixel (%d,%d) score=%.4f err=(%.0f,%.0f) present=%s",
                    kingdom, x, y, match.x, match.y, match.score, err_x, err_y, present)
        return present

    def confirm(self, viewport, kingdom: int, match: TemplateMatch, nav_x: int, nav_y: int,
                scan_duration: Optional[float] = None) -> bool:
        """Resolve a scan hit into a stored exchange; returns True when one was stored."""
        if self._stopped():
            return False
        self._clicked = False
        try:
            return self._confirm(viewport, kingdom, match, nav_x, nav_y, scan_duration)
        finally:
            if self._clicked or not self._stopped():
                self._dismiss(viewport)

    def _dismiss(self, viewport) -> None:
        try:
            viewport.dismiss_popup()
        except Exception as exc:
            logger.warning("failed to dismiss popup: %s", exc)
        self._pause_ms(self.settings.dismiss_delay_ms)

    def _confirm(self, viewport, kingdom: int, match: TemplateMatch, nav_x: int, nav_y: int,
                 scan_duration: Optional[float]) -> bool:
        s = self.settings
        cal = self.calibration
        est_x, est_y = cal.estimate(nav_x, nav_y, match.x, match.y)
        logger.info("match at pixel (%d, %d), offset from center: (%d, %d), estimated K:%d X:%d Y:%d",
                    match.x, match.y, match.x - int(cal.center_x), match.y - int(cal.center_y),
                    kingdom, est_x, est_y)

        viewport.navigate_to(kingdom, est_x, est_y)
        self._pause_ms(s.confirm_delay_ms)
        goto_bytes = viewport.take_screenshot()
        if s.debug_screenshots:
            save_debug_screenshot(f"goto_k{kingdom}_{est_x}_{est_y}.png", goto_bytes)

        calibration = self._best_match(goto_bytes)
        if calibration is not None:
            corr_dx, corr_dy = cal.pixel_to_world_offset(calibration.x, calibration.y)
            refined_x, refined_y = clamp_world(est_x + corr_dx), clamp_world(est_y + corr_dy)
            click_x, click_y = float(calibration.x), float(calibration.y)
            logger.info("calibration: pixel (%d, %d) score=%.4f, refined K:%d X:%d Y:%d (correction %d, %d)",
                        calibration.x, calibration.y, calibration.score, kingdom, refined_x, refined_y,
                        corr_dx, corr_dy)
        else:
            refined_x, refined_y = est_x, est_y
            click_x, click_y = cal.center_x, cal.center_y
            logger.info("calibration: no match in goto screenshot, using estimate")
        cal_score = calibration.score if calibration is not None else None

        if self._stopped():
            logger.info("run stopped, abandoning confirm K:%d X:%d Y:%d", kingdom, refined_x, refined_y)
            return False
        self._clicked = True
        viewport.click_at(click_x, click_y)
        self._pause_ms(s.confirm_delay_ms)
        popup_bytes = viewport.take_screenshot()
        if s.debug_screenshots:
            save_debug_screenshot(f"popup_k{kingdom}_{refined_x}_{refined_y}.png", popup_bytes)

        text = viewport.read_popup_text()
        logger.info("popup text: %r", text)
        coords = parse_popup_coords(text)

        if coords is not None:
            k, x, y = coords
            confirmed, accepted = True, True
        else:
            k, x, y = kingdom, refined_x, refined_y
            confirmed = False
            accepted = self._is_strong(calibration)
            if text:
                logger.info("popup text has no coords: %s", text)
            if accepted:
                logger.info("no popup coords but strong calibration match, storing refined estimate")
            else:
                logger.info("no popup coords and weak or no calibration, not confirmed")

        stored = False
        if accepted:
            exchange = Exchange(
                kingdom=k, x=x, y=y, scan_duration=scan_duration,
                confirmed=confirmed, screenshot=popup_bytes,
            )
            if self.handle is not None:
                stored = self.state.task_add_exchange(self.handle, exchange)
            else:
                stored = self.state.add_exchange(exchange)
        if self.audit is not None:
            self.audit.append(make_record(
                kingdom=k, x=x, y=y, confirmed=confirmed, stored=stored,
                initial_score=match.score, calibration_score=cal_score,
                scan_pattern=s.scan_pattern, scan_duration_secs=scan_duration,
            ))
        return accepted
