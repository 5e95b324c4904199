"""Tests for scan pattern generators."""

import pytest

from helpers import make_settings
from kingscout.config.vision import MULTI_CENTERS
from kingscout.scanner.patterns import (
    grid_scan_positions,
    known_spiral_positions,
    load_known_locations,
    multi_spiral_positions,
    parse_known_locations,
    positions_for_settings,
    spiral_ring_positions,
    spiral_scan_positions,
    wide_spiral_positions,
)


def _in_bounds(positions):
    return all(0 <= x <= 1023 and 0 <= y <= 1023 for x, y in positions)


def test_spiral_scenario_one_ring():
    pos = spiral_scan_positions(512, 512, 25, 1)
    assert pos[0] == (512, 512)
    assert len(pos) == 9


@pytest.mark.parametrize("ring", [1, 2, 3, 4, 7])
def test_ring_has_8r_unique_positions(ring):
    pts = spiral_ring_positions(512, 512, 25, ring)
    assert len(pts) == 8 * ring
    assert len(set(pts)) == len(pts)
    assert _in_bounds(pts)
    assert all(max(abs(x - 512), abs(y - 512)) == ring * 25 for x, y in pts)


def test_ring_order_is_clockwise_from_right_edge():
    pts = spiral_ring_positions(100, 100, 10, 1)
    assert pts == [
        (110, 90), (110, 100), (110, 110),  # right edge, top to bottom
        (100, 110), (90, 110),              # bottom edge, right to left
        (90, 100), (90, 90),                # left edge, bottom to top
        (100, 90),                          # top edge, between corners
    ]


def test_ring_zero_is_center():
    assert spiral_ring_positions(300, 400, 25, 0) == [(300, 400)]


def test_spiral_near_edge_is_clamped_and_unique():
    pos = spiral_scan_positions(10, 1015, 25, 3)
    assert _in_bounds(pos)
    assert len(set(pos)) == len(pos)
    assert pos[0] == (10, 1015)


def test_grid_count_and_lattice():
    pos = grid_scan_positions(30, 30, 970)
    assert len(pos) == 32 * 32
    assert len(set(pos)) == len(pos)
    assert pos[:3] == [(30, 30), (60, 30), (90, 30)]
    assert pos[-1] == (960, 960)
    assert all((x - 30) % 30 == 0 and (y - 30) % 30 == 0 for x, y in pos)


def test_multi_spiral_starts_with_centers_in_order():
    pos = multi_spiral_positions(25, 4)
    assert pos[:9] == list(MULTI_CENTERS)
    assert len(set(pos)) == len(pos)
    assert _in_bounds(pos)
    # second wave is ring 1 of the first center
    assert pos[9:17] == spiral_ring_positions(512, 512, 25, 1)


def test_wide_spiral_uses_coarse_step():
    pos = wide_spiral_positions(50, 9)
    assert pos[0] == (512, 512)
    assert pos[1] == (562, 462)
    assert len(set(pos)) == len(pos)
    assert _in_bounds(pos)


def test_parse_known_locations_scenario():
    assert parse_known_locations("111,100,200\n112,800,900\n111,100,200\n") == [(100, 200), (800, 900)]


def test_parse_known_locations_legacy_comments_and_garbage(caplog):
    text = "# header\n\n300,400\n1,2,3,4\n111,abc,5\n 112 , 10 , 20 \n"
    assert parse_known_locations(text) == [(300, 400), (10, 20)]
    assert "expected 2 or 3 columns" in caplog.text
    assert "invalid coordinates" in caplog.text


def test_known_spiral_interleaves_rings(tmp_path):
    path = tmp_path / "known.txt"
    path.write_text("111,100,200\n112,800,900\n", encoding="utf-8")
    pos = known_spiral_positions(str(path), 25, 1)
    assert pos[:2] == [(100, 200), (800, 900)]
    assert len(pos) == 2 + 16
    assert len(set(pos)) == len(pos)


@pytest.mark.parametrize("content", [None, "", "# only comments\n\n"])
def test_known_spiral_falls_back_to_grid(tmp_path, content):
    path = tmp_path / "known.txt"
    if content is not None:
        path.write_text(content, encoding="utf-8")
    assert known_spiral_positions(str(path), 25, 1) == grid_scan_positions()


def test_known_spiral_without_file_setting_is_grid():
    assert known_spiral_positions(None) == grid_scan_positions()
    assert load_known_locations(None) == []


def test_positions_for_settings_dispatch(tmp_path):
    assert len(positions_for_settings(make_settings(tmp_path, scan_pattern="grid"))) == 1024
    assert len(positions_for_settings(make_settings(tmp_path, scan_pattern="single", scan_rings=2))) == 25
    assert positions_for_settings(make_settings(tmp_path, scan_pattern="multi", scan_rings=0)) == list(MULTI_CENTERS)
    wide = positions_for_settings(make_settings(tmp_path, scan_pattern="wide", scan_rings=None))
    assert wide == wide_spiral_positions(50, 9)
