"""
Vision and scan geometry knobs centralization.

All thresholds, crop bounds, calibration constants and step sizes live here.
Detectors and the scanner import from this module instead of hardcoding
values; ScannerSettings copies them as defaults so a deployment with a
different viewport resolution or camera zoom can override them.
"""
from __future__ import annotations

from typing import Tuple

# Correlation thresholds
MATCH_THRESHOLD: float = 0.98
VERIFY_THRESHOLD: float = 0.90
DETECT_THRESHOLD: float = 0.88  # manual one-shot detection only

# Minimum prepared template size after downscale
MIN_TEMPLATE_DIM: int = 10

# Downscale factor for matching (1 = full size). Reference icons are ~48x36,
# further downscaling loses too much detail.
SCALE_DOWN: int = 1

# Dedupe: matches closer than this on both axes collapse into one
DEDUPE_DISTANCE_PX: int = 40

# Game viewport inside the 1920x1080 browser frame, excluding minimap,
# top bar, bottom toolbar and the right side panel: (left, top, right, bottom)
VIEWPORT_RECT: Tuple[int, int, int, int] = (160, 60, 1860, 1000)

# Pixel where the navigated world coordinate lands after a goto
SCREEN_CENTER: Tuple[float, float] = (760.0, 400.0)

# Forward transform at 25% zoom:
#   pixel_dx = PX_PER_WORLD_X * world_dx
#   pixel_dy = TILT_Y * world_dx + PX_PER_WORLD_Y * world_dy
PX_PER_WORLD_X: float = 49.40
PX_PER_WORLD_Y: float = 28.32
TILT_Y: float = -1.50

# Near-center acceptance window for verification and calibration
CENTER_TOLERANCE_PX: float = 80.0

# World bounds (inclusive)
WORLD_MIN: int = 0
WORLD_MAX: int = 1023

# Scan steps in world units. The viewport covers ~34x33 units, so 25 gives
# roughly 25% overlap between neighbouring screenshots.
SCAN_STEP: int = 25
WIDE_STEP: int = 50
GRID_STEP: int = 30
GRID_MIN: int = 30
GRID_MAX: int = 970

# Default ring counts per pattern
DEFAULT_RINGS = {
    "single": 4,
    "multi": 4,
    "wide": 9,
    "known": 1,
}

# Multi-spiral centers, emitted in this order
MULTI_CENTERS: Tuple[Tuple[int, int], ...] = (
    (512, 512),  # center
    (150, 150),  # NW
    (874, 150),  # NE
    (150, 874),  # SW
    (874, 874),  # SE
    (512, 150),  # N
    (150, 512),  # W
    (874, 512),  # E
    (512, 874),  # S
)

__all__ = [
    "MATCH_THRESHOLD",
    "VERIFY_THRESHOLD",
    "DETECT_THRESHOLD",
    "MIN_TEMPLATE_DIM",
    "SCALE_DOWN",
    "DEDUPE_DISTANCE_PX",
    "VIEWPORT_RECT",
    "SCREEN_CENTER",
    "PX_PER_WORLD_X",
    "PX_PER_WORLD_Y",
    "TILT_Y",
    "CENTER_TOLERANCE_PX",
    "WORLD_MIN",
    "WORLD_MAX",
    "SCAN_STEP",
    "WIDE_STEP",
    "GRID_STEP",
    "GRID_MIN",
    "GRID_MAX",
    "DEFAULT_RINGS",
    "MULTI_CENTERS",
]
