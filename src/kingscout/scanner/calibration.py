"""Pixel <-> world coordinate calibration.

Forward transform (world delta -> pixel offset from screen center):
    pixel_dx = scale_x * world_dx
    pixel_dy = tilt * world_dx + scale_y * world_dy

The constants were measured once against a fixed camera zoom and viewport
size; they are configuration, not derived at runtime.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Tuple

from ..config.vision import CENTER_TOLERANCE_PX, PX_PER_WORLD_X, PX_PER_WORLD_Y, SCREEN_CENTER, TILT_Y
from ..core.exchanges import clamp_world


def round_half_away(value: float) -> int:
    """Round to the nearest integer, ties away from zero (2.5 -> 3, -2.5 -> -3)."""
    return int(math.copysign(math.floor(abs(value) + 0.5), value))


@dataclass(frozen=True)
class Calibration:
    center_x: float = SCREEN_CENTER[0]
    center_y: float = SCREEN_CENTER[1]
    scale_x: float = PX_PER_WORLD_X
    scale_y: float = PX_PER_WORLD_Y
    tilt: float = TILT_Y

    @classmethod
    def from_settings(cls, settings) -> "Calibration":
        return cls(
            center_x=float(settings.screen_center[0]),
            center_y=float(settings.screen_center[1]),
            scale_x=float(settings.px_per_world_x),
            scale_y=float(settings.px_per_world_y),
            tilt=float(settings.tilt_y),
        )

    def pixel_to_world_offset(self, px: float, py: float) -> Tuple[int, int]:
        """World-coordinate offset of pixel (px, py) from the screen center."""
        screen_dx = float(px) - self.center_x
        screen_dy = float(py) - self.center_y
        world_dx = screen_dx / self.scale_x
        world_dy = (screen_dy - self.tilt * world_dx) / self.scale_y
        return round_half_away(world_dx), round_half_away(world_dy)

    def world_to_pixel(self, world_dx: float, world_dy: float) -> Tuple[float, float]:
        """Absolute pixel where a world delta from the navigated origin appears."""
        return (
            self.center_x + self.scale_x * world_dx,
            self.center_y + self.tilt * world_dx + self.scale_y * world_dy,
        )

    def estimate(self, origin_x: int, origin_y: int, px: float, py: float) -> Tuple[int, int]:
        """World position of pixel (px, py) on a screenshot navigated to origin, clamped."""
        dx, dy = self.pixel_to_world_offset(px, py)
        return clamp_world(origin_x + dx), clamp_world(origin_y + dy)

    def center_error(self, px: float, py: float) -> Tuple[float, float]:
        return abs(float(px) - self.center_x), abs(float(py) - self.center_y)

    def near_center(self, px: float, py: float, tolerance: float = CENTER_TOLERANCE_PX) -> bool:
        """True when (px, py) lies within tolerance of the screen center on both axes."""
        err_x, err_y = self.center_error(px, py)
        return err_x < tolerance and err_y < tolerance


DEFAULT_CALIBRATION = Calibration()


def pixel_to_world_offset(px: float, py: float) -> Tuple[int, int]:
    """Convert a pixel position to its world offset from the screen center."""
    return DEFAULT_CALIBRATION.pixel_to_world_offset(px, py)
