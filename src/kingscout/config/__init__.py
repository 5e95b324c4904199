"""Config subpackage.

- vision: central knobs for thresholds, crop bounds, calibration and scan steps
"""
from .vision import (
    MATCH_THRESHOLD,
    VERIFY_THRESHOLD,
    DETECT_THRESHOLD,
    DEDUPE_DISTANCE_PX,
    VIEWPORT_RECT,
    SCREEN_CENTER,
    WORLD_MIN,
    WORLD_MAX,
)

__all__ = [
    "MATCH_THRESHOLD",
    "VERIFY_THRESHOLD",
    "DETECT_THRESHOLD",
    "DEDUPE_DISTANCE_PX",
    "VIEWPORT_RECT",
    "SCREEN_CENTER",
    "WORLD_MIN",
    "WORLD_MAX",
]
