"""
Pure image preprocessing and template preparation utilities.

This module contains only stateless, side-effect-free functions used by the
matcher: decoding, viewport cropping, downscaling, channel splitting and the
normalized edge-magnitude channel.

Logging: functions here avoid heavy logging for performance; callers log at
DEBUG level as needed.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple
import logging

import cv2
import numpy as np

from ..config.vision import MIN_TEMPLATE_DIM, SCALE_DOWN
from ..core.errors import ImageDecodeFailed

logger = logging.getLogger(__name__)


def decode_image(data: bytes) -> np.ndarray:
    """Decode encoded image bytes (PNG/JPEG) into a BGR array.

    Raises ImageDecodeFailed when the bytes are empty or not an image.
    """
    if not data:
        raise ImageDecodeFailed("empty image buffer")
    buf = np.frombuffer(data, dtype=np.uint8)
    img = cv2.imdecode(buf, cv2.IMREAD_COLOR)
    if img is None:
        raise ImageDecodeFailed(f"could not decode image ({len(data)} bytes)")
    return img


def split_channels(bgr: np.ndarray) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Split a BGR image into (R, G, B) single-channel images."""
    b, g, r = cv2.split(bgr)
    return r, g, b


def edge_magnitude(gray: np.ndarray) -> np.ndarray:
    """Sobel gradient magnitude normalized to 0..255 by the image's own maximum.

    Normalization is per image, not global, so a template and a screenshot
    each span the full 8-bit range. A flat image yields all zeros.
    """
    gx = cv2.Sobel(gray, cv2.CV_32F, 1, 0, ksize=3)
    gy = cv2.Sobel(gray, cv2.CV_32F, 0, 1, ksize=3)
    mag = cv2.magnitude(gx, gy)
    peak = float(mag.max()) if mag.size else 0.0
    if peak <= 0.0:
        return np.zeros(gray.shape[:2], dtype=np.uint8)
    return (mag * (255.0 / peak)).astype(np.uint8)


def downscale(img: np.ndarray, factor: int) -> np.ndarray:
    """Integer-factor downscale; factor 1 returns the input unchanged."""
    if factor <= 1:
        return img
    h, w = img.shape[:2]
    nw, nh = max(1, w // factor), max(1, h // factor)
    return cv2.resize(img, (nw, nh), interpolation=cv2.INTER_LINEAR)


def crop_viewport(img: np.ndarray, rect: Tuple[int, int, int, int]) -> Tuple[np.ndarray, Tuple[int, int]]:
    """Crop img to rect=(left, top, right, bottom), clamped to the image.

    Returns (crop, (offset_x, offset_y)) so crop-local coordinates can be
    mapped back to full-frame space.
    """
    h, w = img.shape[:2]
    left, top, right, bottom = map(int, rect)
    left = max(0, min(left, w))
    top = max(0, min(top, h))
    right = max(left, min(right, w))
    bottom = max(top, min(bottom, h))
    return img[top:bottom, left:right], (left, top)


@dataclass(frozen=True)
class ChannelSet:
    """R, G, B and edge channels of one image at matching scale."""

    r: np.ndarray
    g: np.ndarray
    b: np.ndarray
    edge: np.ndarray

    @property
    def width(self) -> int:
        return int(self.r.shape[1])

    @property
    def height(self) -> int:
        return int(self.r.shape[0])

    def channel(self, name: str) -> np.ndarray:
        return getattr(self, name)


def compute_channels(bgr: np.ndarray) -> ChannelSet:
    r, g, b = split_channels(bgr)
    gray = cv2.cvtColor(bgr, cv2.COLOR_BGR2GRAY)
    return ChannelSet(r=r, g=g, b=b, edge=edge_magnitude(gray))


@dataclass(frozen=True)
class PreparedTemplate:
    """Reusable multi-channel representation of a reference icon.

    Built once at startup and shared read-only across all scan steps.
    """

    channels: ChannelSet
    width: int
    height: int


def _freeze(arr: np.ndarray) -> np.ndarray:
    arr = np.ascontiguousarray(arr)
    arr.setflags(write=False)
    return arr


def prepare_template(bgr: np.ndarray, scale_down: int = SCALE_DOWN,
                     min_dim: int = MIN_TEMPLATE_DIM) -> Optional[PreparedTemplate]:
    """Build a PreparedTemplate from a BGR reference image.

    Returns None (and logs) when the image falls below min_dim on either
    side after downscaling.
    """
    if bgr is None or bgr.size == 0:
        logger.warning("reference image is empty, skipping")
        return None
    if bgr.ndim == 2:
        bgr = cv2.cvtColor(bgr, cv2.COLOR_GRAY2BGR)
    elif bgr.shape[2] == 4:
        bgr = cv2.cvtColor(bgr, cv2.COLOR_BGRA2BGR)
    h, w = bgr.shape[:2]
    sw, sh = w // max(1, scale_down), h // max(1, scale_down)
    if sw < min_dim or sh < min_dim:
        logger.warning("reference image %dx%d too small after downscale (%dx%d), skipping", w, h, sw, sh)
        return None
    small = downscale(bgr, scale_down)
    ch = compute_channels(small)
    frozen = ChannelSet(r=_freeze(ch.r), g=_freeze(ch.g), b=_freeze(ch.b), edge=_freeze(ch.edge))
    return PreparedTemplate(channels=frozen, width=frozen.width, height=frozen.height)
