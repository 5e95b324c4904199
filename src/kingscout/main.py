"""Command-line entry point.

Offline helpers that need no remote viewport:
- detect: run the matcher on a saved screenshot
- positions: print the positions a scan pattern would visit
"""
from __future__ import annotations

import argparse
import logging
import sys
from typing import List, Optional

import cv2

from .config.vision import DEFAULT_RINGS
from .core.config import SCAN_PATTERNS, ConfigManager, ScannerSettings
from .core.errors import KingscoutError
from .core.logging_setup import setup_logging
from .scanner.calibration import Calibration
from .scanner.patterns import positions_for_settings
from .vision.matcher import find_best_match, find_matches
from .vision.templates import load_templates

logger = logging.getLogger(__name__)


def cmd_detect(args) -> int:
    img = cv2.imread(args.image, cv2.IMREAD_COLOR)
    if img is None:
        print(f"could not read image: {args.image}", file=sys.stderr)
        return 1
    s = ScannerSettings.from_config(ConfigManager(args.config), require_kingdoms=False)
    templates = load_templates(args.target or s.search_target, args.assets or s.assets_dir, s.scale_down)
    print(f"screenshot: {img.shape[1]}x{img.shape[0]}, {len(templates)} template(s)")

    best = find_best_match(img, templates, s.match_threshold, s.viewport_rect, s.scale_down)
    if best is None:
        print("best match: none")
    else:
        dx, dy = Calibration.from_settings(s).pixel_to_world_offset(best.x, best.y)
        print(f"best match: pixel ({best.x}, {best.y}) score={best.score:.4f} world offset ({dx}, {dy})")

    matches = find_matches(img, templates, s.match_threshold, s.viewport_rect, s.scale_down,
                           s.dedupe_distance_px)
    print(f"matches above threshold: {len(matches)}")
    for i, m in enumerate(matches, start=1):
        print(f"  #{i}: pixel ({m.x}, {m.y}) score={m.score:.4f}")
    return 0


def cmd_positions(args) -> int:
    settings = ScannerSettings(
        kingdoms=[0],
        scan_pattern=args.pattern,
        scan_rings=args.rings,
        known_locations_file=args.known,
    )
    positions = positions_for_settings(settings)
    print(f"{settings.scan_pattern}: {len(positions)} positions")
    for x, y in positions[: args.limit]:
        print(f"  ({x}, {y})")
    return 0


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="kingscout", description="Kingdom exchange scanner tools")
    ap.add_argument("--config", default=None, help="Path to config.ini")
    ap.add_argument("--log-level", default=None, help="Override log level")
    sub = ap.add_subparsers(dest="command", required=True)

    det = sub.add_parser("detect", help="Run detection on a saved screenshot")
    det.add_argument("image", help="Screenshot path (PNG/JPEG)")
    det.add_argument("--assets", default=None, help="Directory holding <target>_ref.png (default: assets_dir)")
    det.add_argument("--target", default=None, help="Search target name (default: search_target)")
    det.set_defaults(func=cmd_detect)

    pos = sub.add_parser("positions", help="Print scan pattern positions")
    pos.add_argument("pattern", choices=SCAN_PATTERNS)
    pos.add_argument("--rings", type=int, default=None,
                     help=f"Ring count (defaults: {', '.join(f'{k} {v}' for k, v in DEFAULT_RINGS.items())})")
    pos.add_argument("--known", default=None, help="Known locations file for the known pattern")
    pos.add_argument("--limit", type=int, default=20, help="How many positions to print (default 20)")
    pos.set_defaults(func=cmd_positions)
    return ap


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(ConfigManager(args.config), args.log_level)
    try:
        return args.func(args)
    except KingscoutError as exc:
        logger.error("%s failed: %s", args.command, exc)
        return 1


if __name__ == "__main__":
    sys.exit(main())
