"""Scanner subpackage.

- patterns: scan position generators
- calibration: pixel <-> world coordinate conversion
- confirm: confirm workflow and re-verification
- orchestrator: Scanner control surface and scan loop
"""
from .calibration import Calibration, pixel_to_world_offset
from .orchestrator import DetectReport, Scanner

__all__ = [
    "Calibration",
    "pixel_to_world_offset",
    "DetectReport",
    "Scanner",
]
