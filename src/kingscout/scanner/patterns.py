"""Scan pattern generators.

Every generator returns an ordered, duplicate-free list of (x, y) world
positions clamped to the world bounds.

Patterns:
- grid: regular lattice, row-major
- single: clockwise square spiral around the world center
- multi: nine spirals in a 3x3 layout, interleaved ring by ring
- wide: single spiral with a coarser step
- known: interleaved spirals around positions read from a locations file
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Set, Tuple

from ..config.vision import GRID_MAX, GRID_MIN, GRID_STEP, MULTI_CENTERS, SCAN_STEP, WIDE_STEP
from ..core.exchanges import clamp_world

logger = logging.getLogger(__name__)

Position = Tuple[int, int]

WORLD_CENTER: Position = (512, 512)


def _clamped(x: int, y: int) -> Position:
    return clamp_world(x), clamp_world(y)


def _unique(positions: Iterable[Position], seen: Optional[Set[Position]] = None) -> List[Position]:
    seen = set() if seen is None else seen
    out: List[Position] = []
    for pos in positions:
        if pos in seen:
            continue
        seen.add(pos)
        out.append(pos)
    return out


def grid_scan_positions(step: int = GRID_STEP, start: int = GRID_MIN, stop: int = GRID_MAX) -> List[Position]:
    """Row-major lattice from start to stop (inclusive) on both axes."""
    values = list(range(start, stop + 1, step))
    return _unique(_clamped(x, y) for y in values for x in values)


def spiral_ring_positions(cx: int, cy: int, step: int, ring: int) -> List[Position]:
    """Positions on one square ring; ring 0 is the center, ring r has 8r points.

    Order is clockwise: right edge top to bottom, bottom edge right to left,
    left edge bottom to top, top edge left to right. Shared corners are
    emitted once.
    """
    if ring == 0:
        return [_clamped(cx, cy)]
    r = ring
    d = r * step
    pts: List[Position] = []
    for j in range(-r, r + 1):
        pts.append(_clamped(cx + d, cy + j * step))
    for i in range(r - 1, -r - 1, -1):
        pts.append(_clamped(cx + i * step, cy + d))
    for j in range(r - 1, -r - 1, -1):
        pts.append(_clamped(cx - d, cy + j * step))
    for i in range(-r + 1, r):
        pts.append(_clamped(cx + i * step, cy - d))
    return pts


def spiral_scan_positions(cx: int, cy: int, step: int = SCAN_STEP, max_rings: int = 4) -> List[Position]:
    """Square spiral from the center outward through max_rings rings."""
    return _unique(p for ring in range(max_rings + 1) for p in spiral_ring_positions(cx, cy, step, ring))


def interleaved_spiral_positions(centers: Sequence[Position], step: int, max_rings: int) -> List[Position]:
    """Ring 0 of every center, then ring 1 of every center, and so on.

    Positions already emitted by an earlier center or ring are skipped.
    """
    rings = [[spiral_ring_positions(cx, cy, step, r) for r in range(max_rings + 1)] for cx, cy in centers]
    seen: Set[Position] = set()
    out: List[Position] = []
    for level in range(max_rings + 1):
        for center_rings in rings:
            out.extend(_unique(center_rings[level], seen))
    return out


def multi_spiral_positions(step: int = SCAN_STEP, max_rings: int = 4) -> List[Position]:
    return interleaved_spiral_positions(MULTI_CENTERS, step, max_rings)


def wide_spiral_positions(step: int = WIDE_STEP, max_rings: int = 9) -> List[Position]:
    return spiral_scan_positions(WORLD_CENTER[0], WORLD_CENTER[1], step, max_rings)


def parse_known_locations(text: str) -> List[Position]:
    """Parse `kingdom,x,y` or legacy `x,y` lines into unique (x, y) positions.

    Blank lines and `#` comments are ignored; malformed lines are skipped
    with a warning. The kingdom column is not used.
    """
    positions: List[Position] = []
    for lineno, raw in enumerate(text.splitlines(), start=1):
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        parts = [p.strip() for p in line.split(",")]
        if len(parts) == 3:
            xs, ys = parts[1], parts[2]
        elif len(parts) == 2:
            xs, ys = parts[0], parts[1]
        else:
            logger.warning("known locations line %d: expected 2 or 3 columns, skipping: %r", lineno, line)
            continue
        try:
            positions.append((int(xs), int(ys)))
        except ValueError:
            logger.warning("known locations line %d: invalid coordinates, skipping: %r", lineno, line)
    return _unique(positions)


def load_known_locations(path: Optional[str]) -> List[Position]:
    """Read and parse a known locations file; returns [] if missing or unreadable."""
    if not path:
        return []
    p = Path(path)
    try:
        text = p.read_text(encoding="utf-8")
    except OSError as exc:
        logger.warning("could not read known locations file %s: %s", p, exc)
        return []
    return parse_known_locations(text)


def known_spiral_positions(path: Optional[str], step: int = SCAN_STEP, max_rings: int = 1,
                           grid_step: int = GRID_STEP, grid_min: int = GRID_MIN,
                           grid_max: int = GRID_MAX) -> List[Position]:
    """Interleaved spirals around known locations, or the grid when there are none."""
    centers = load_known_locations(path)
    if not centers:
        logger.warning("no known locations available (%s), falling back to grid", path)
        return grid_scan_positions(grid_step, grid_min, grid_max)
    logger.info("known spiral: %d centers, %d rings", len(centers), max_rings)
    return interleaved_spiral_positions(centers, step, max_rings)


def positions_for_settings(settings) -> List[Position]:
    """Generate positions for the pattern configured in ScannerSettings."""
    pattern = settings.scan_pattern
    rings = settings.rings
    if pattern == "single":
        return spiral_scan_positions(WORLD_CENTER[0], WORLD_CENTER[1], settings.scan_step, rings)
    if pattern == "multi":
        return multi_spiral_positions(settings.scan_step, rings)
    if pattern == "wide":
        return wide_spiral_positions(settings.wide_step, rings)
    if pattern == "known":
        return known_spiral_positions(settings.known_locations_file, settings.scan_step, rings,
                                      settings.grid_step, settings.grid_min, settings.grid_max)
    return grid_scan_positions(settings.grid_step, settings.grid_min, settings.grid_max)
