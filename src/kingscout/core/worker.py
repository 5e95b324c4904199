"""
Detection Worker Module
Runs decode + template matching for scan steps off the scan thread.

Each submitted screenshot is processed on a small thread pool so the scan
loop can navigate to the next position while correlation runs. Every job
puts exactly one DetectionResult on the result queue, empty or not, so the
consumer can account for outstanding work.
"""
from __future__ import annotations

import logging
import queue
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

from ..config.vision import DEDUPE_DISTANCE_PX, MATCH_THRESHOLD, SCALE_DOWN, VIEWPORT_RECT
from ..vision.matcher import TemplateMatch, find_matches
from ..vision.preprocess import PreparedTemplate, decode_image
from .errors import ImageDecodeFailed

logger = logging.getLogger(__name__)


@dataclass
class DetectionResult:
    """Matches found on one scan step's screenshot."""

    step_index: int
    nav_x: int
    nav_y: int
    matches: List[TemplateMatch] = field(default_factory=list)

    @property
    def best(self) -> Optional[TemplateMatch]:
        return self.matches[0] if self.matches else None


class DetectionWorker:
    """Thread-pool detector with an ordered result queue."""

    def __init__(
        self,
        templates: Sequence[PreparedTemplate],
        max_workers: int = 4,
        threshold: float = MATCH_THRESHOLD,
        rect: Tuple[int, int, int, int] = VIEWPORT_RECT,
        scale_down: int = SCALE_DOWN,
        min_distance: int = DEDUPE_DISTANCE_PX,
    ) -> None:
        self.templates = list(templates)
        self.threshold = threshold
        self.rect = rect
        self.scale_down = scale_down
        self.min_distance = min_distance
        self._executor = ThreadPoolExecutor(max_workers=max(1, int(max_workers)),
                                            thread_name_prefix="kingscout-detect")
        self._results: "queue.Queue[DetectionResult]" = queue.Queue()
        self._lock = threading.Lock()
        self._outstanding = 0

    @classmethod
    def from_settings(cls, templates: Sequence[PreparedTemplate], settings) -> "DetectionWorker":
        return cls(
            templates,
            max_workers=settings.max_detect_tasks,
            threshold=settings.match_threshold,
            rect=settings.viewport_rect,
            scale_down=settings.scale_down,
            min_distance=settings.dedupe_distance_px,
        )

    @property
    def outstanding(self) -> int:
        with self._lock:
            return self._outstanding

    def submit(self, step_index: int, nav_x: int, nav_y: int, png_bytes: bytes) -> None:
        with self._lock:
            self._outstanding += 1
        self._executor.submit(self._run, step_index, nav_x, nav_y, png_bytes)

    def _run(self, step_index: int, nav_x: int, nav_y: int, png_bytes: bytes) -> None:
        result = DetectionResult(step_index=step_index, nav_x=nav_x, nav_y=nav_y)
        try:
            img = decode_image(png_bytes)
            result.matches = find_matches(img, self.templates, self.threshold, self.rect,
                                          self.scale_down, self.min_distance)
            if result.matches:
                best = result.matches[0]
                logger.info("step %d: match at pixel (%d, %d) score=%.4f", step_index + 1,
                            best.x, best.y, best.score)
        except ImageDecodeFailed as exc:
            logger.warning("step %d: %s", step_index + 1, exc)
        except Exception:
            logger.exception("step %d: detection error", step_index + 1)
        finally:
            self._results.put(result)

    def _take(self, block: bool, timeout: Optional[float] = None) -> Optional[DetectionResult]:
        try:
            result = self._results.get(block=block, timeout=timeout)
        except queue.Empty:
            return None
        with self._lock:
            self._outstanding -= 1
        return result

    def poll(self) -> Optional[DetectionResult]:
        """Non-blocking: first queued result with matches, or None."""
        while True:
            result = self._take(block=False)
            if result is None:
                return None
            if result.matches:
                return result

    def wait_next(self, cancel: Optional[threading.Event] = None,
                  interval: float = 0.1) -> Optional[DetectionResult]:
        """Block until a result with matches arrives or no work is outstanding."""
        while self.outstanding > 0:
            if cancel is not None and cancel.is_set():
                return None
            result = self._take(block=True, timeout=interval)
            if result is not None and result.matches:
                return result
        return None

    def drain(self) -> int:
        """Discard results already queued; returns how many were dropped."""
        dropped = 0
        while self._take(block=False) is not None:
            dropped += 1
        if dropped:
            logger.debug("drained %d stale detection result(s)", dropped)
        return dropped

    def shutdown(self) -> None:
        """Stop accepting work; in-flight jobs are abandoned."""
        self._executor.shutdown(wait=False, cancel_futures=True)
