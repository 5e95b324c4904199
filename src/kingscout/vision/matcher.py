"""
Cascading multi-channel template matching.

This module provides pure functions that take numpy arrays and return ranked
matches. Correlation runs one channel at a time (R, G, B, edge); each stage
consumes the surviving candidate set and returns a possibly smaller one, so
the common "nothing here" case stops after a single correlation surface.
A candidate's final score is the minimum across all four channels.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple
import logging

import cv2
import numpy as np

from ..config.vision import DEDUPE_DISTANCE_PX, MATCH_THRESHOLD, SCALE_DOWN, VIEWPORT_RECT
from .preprocess import ChannelSet, PreparedTemplate, compute_channels, crop_viewport, downscale

logger = logging.getLogger(__name__)

CASCADE_ORDER: Tuple[str, ...] = ("r", "g", "b", "edge")
_CHANNEL_LABELS = {"r": "R", "g": "G", "b": "B", "edge": "Edge"}


@dataclass(frozen=True)
class TemplateMatch:
    """Pixel position (template center) and correlation score."""

    x: int
    y: int
    score: float


@dataclass(frozen=True)
class Candidates:
    """Top-left positions in correlation-surface space with running min scores."""

    xs: np.ndarray
    ys: np.ndarray
    scores: np.ndarray

    def __len__(self) -> int:
        return int(self.xs.size)

    @classmethod
    def empty(cls) -> "Candidates":
        z = np.zeros(0, dtype=np.int64)
        return cls(xs=z, ys=z, scores=np.zeros(0, dtype=np.float32))

    def best(self) -> float:
        return float(self.scores.max()) if len(self) else 0.0


def correlate(image: np.ndarray, template: np.ndarray) -> np.ndarray:
    """Normalized cross-correlation surface of template over image."""
    return cv2.matchTemplate(image, template, cv2.TM_CCORR_NORMED)


def seed_candidates(surface: np.ndarray, threshold: float) -> Candidates:
    """All surface positions scoring at or above threshold."""
    ys, xs = np.nonzero(surface >= threshold)
    return Candidates(xs=xs, ys=ys, scores=surface[ys, xs].astype(np.float32))


def narrow_candidates(cands: Candidates, surface: np.ndarray, threshold: float) -> Candidates:
    """Fold one more channel into the running minimum and drop those below threshold."""
    if not len(cands):
        return cands
    scores = np.minimum(cands.scores, surface[cands.ys, cands.xs])
    keep = scores >= threshold
    return Candidates(xs=cands.xs[keep], ys=cands.ys[keep], scores=scores[keep])


def cascade_candidates(screen: ChannelSet, template: PreparedTemplate,
                       threshold: float = MATCH_THRESHOLD) -> Candidates:
    """Run the R -> G -> B -> edge cascade, exiting as soon as nothing survives."""
    tw, th = template.width, template.height
    cands = Candidates.empty()
    for i, name in enumerate(CASCADE_ORDER):
        surface = correlate(screen.channel(name), template.channels.channel(name))
        if i == 0:
            seed_best = float(surface.max()) if surface.size else 0.0
            cands = seed_candidates(surface, threshold)
            best = seed_best
        else:
            cands = narrow_candidates(cands, surface, threshold)
            best = cands.best()
        label = _CHANNEL_LABELS[name]
        if not len(cands):
            logger.info("template %dx%d: early-exit after %s (best=%.4f, 0 candidates)", tw, th, label, best)
            return cands
        logger.info("template %dx%d: %s pass: %d candidates (best=%.4f)", tw, th, label, len(cands), best)
    return cands


def prepare_screen(screenshot: np.ndarray, rect: Tuple[int, int, int, int] = VIEWPORT_RECT,
                   scale_down: int = SCALE_DOWN) -> Tuple[ChannelSet, Tuple[int, int]]:
    """Crop to the game viewport, downscale and split into matching channels."""
    crop, offset = crop_viewport(screenshot, rect)
    return compute_channels(downscale(crop, scale_down)), offset


def _fits(template: PreparedTemplate, screen: ChannelSet) -> bool:
    return template.width < screen.width and template.height < screen.height


def deduplicate_matches(matches: Sequence[TemplateMatch],
                        min_distance: int = DEDUPE_DISTANCE_PX) -> List[TemplateMatch]:
    """Greedy non-maximum suppression on axis-wise pixel distance.

    Keeps the highest-scoring match and discards later ones lying closer
    than min_distance on both axes to an already kept match.
    """
    kept: List[TemplateMatch] = []
    for m in sorted(matches, key=lambda m: m.score, reverse=True):
        if any(abs(m.x - k.x) < min_distance and abs(m.y - k.y) < min_distance for k in kept):
            continue
        kept.append(m)
    return kept


def find_matches(
    screenshot: np.ndarray,
    templates: Sequence[PreparedTemplate],
    threshold: float = MATCH_THRESHOLD,
    rect: Tuple[int, int, int, int] = VIEWPORT_RECT,
    scale_down: int = SCALE_DOWN,
    min_distance: int = DEDUPE_DISTANCE_PX,
) -> List[TemplateMatch]:
    """Find every location where all four channels agree above threshold.

    Returns full-frame template-center positions, best first, deduplicated.
    """
    screen, (ox, oy) = prepare_screen(screenshot, rect, scale_down)
    found: List[TemplateMatch] = []
    for tpl in templates:
        if not _fits(tpl, screen):
            logger.warning("reference image %dx%d is too large for screenshot %dx%d, skipping",
                           tpl.width, tpl.height, screen.width, screen.height)
            continue
        logger.debug("matching %dx%d template against %dx%d screenshot (RGBE 4-channel)",
                     tpl.width, tpl.height, screen.width, screen.height)
        cands = cascade_candidates(screen, tpl, threshold)
        for x, y, s in zip(cands.xs.tolist(), cands.ys.tolist(), cands.scores.tolist()):
            found.append(TemplateMatch(
                x=(x + tpl.width // 2) * scale_down + ox,
                y=(y + tpl.height // 2) * scale_down + oy,
                score=float(s),
            ))
    found.sort(key=lambda m: m.score, reverse=True)
    return deduplicate_matches(found, min_distance)


def find_best_match(
    screenshot: np.ndarray,
    templates: Sequence[PreparedTemplate],
    threshold: float = MATCH_THRESHOLD,
    rect: Tuple[int, int, int, int] = VIEWPORT_RECT,
    scale_down: int = SCALE_DOWN,
) -> Optional[TemplateMatch]:
    """Single highest-scoring position regardless of threshold (calibration, diagnostics).

    When the R channel's best is already below threshold the remaining
    channels are skipped and the R-only score is reported. Otherwise the
    true four-channel minimum surface is searched. A later template only
    replaces the running best with a strictly greater score.
    """
    screen, (ox, oy) = prepare_screen(screenshot, rect, scale_down)
    best: Optional[TemplateMatch] = None
    for tpl in templates:
        if not _fits(tpl, screen):
            continue
        r_surface = correlate(screen.r, tpl.channels.r)
        _, r_best, _, r_loc = cv2.minMaxLoc(r_surface)
        if r_best < threshold:
            logger.info("find_best_match: early-exit after R (best=%.4f)", r_best)
            score, loc = float(r_best), r_loc
        else:
            surfaces = [r_surface] + [correlate(screen.channel(n), tpl.channels.channel(n))
                                      for n in CASCADE_ORDER[1:]]
            combined = np.minimum.reduce(surfaces)
            _, c_best, _, c_loc = cv2.minMaxLoc(combined)
            score, loc = float(c_best), c_loc
        if best is None or score > best.score:
            best = TemplateMatch(
                x=(int(loc[0]) + tpl.width // 2) * scale_down + ox,
                y=(int(loc[1]) + tpl.height // 2) * scale_down + oy,
                score=score,
            )
    return best
