"""Test helpers: synthetic icon/screens and an in-memory remote viewport."""
from __future__ import annotations

import threading
import time
from typing import Dict, List, Optional, Tuple

import cv2
import numpy as np

from kingscout.core.config import ScannerSettings
from kingscout.core.errors import LoginFailed, NavigationFailed
from kingscout.scanner.calibration import Calibration

SCREEN_W, SCREEN_H = 800, 600
BACKGROUND = 128


def make_icon(width: int = 40, height: int = 30, cell: int = 4, margin: int = 3) -> np.ndarray:
    """High-contrast black/white checker with a background-coloured margin."""
    icon = np.full((height, width, 3), BACKGROUND, dtype=np.uint8)
    for y in range(margin, height - margin):
        for x in range(margin, width - margin):
            v = 255 if ((x - margin) // cell + (y - margin) // cell) % 2 == 0 else 0
            icon[y, x] = (v, v, v)
    return icon


def blank_screen(width: int = SCREEN_W, height: int = SCREEN_H) -> np.ndarray:
    return np.full((height, width, 3), BACKGROUND, dtype=np.uint8)


def paste_centered(screen: np.ndarray, icon: np.ndarray, cx: int, cy: int) -> bool:
    """Paste icon so its center (top-left + size // 2) lands on (cx, cy)."""
    h, w = icon.shape[:2]
    x0, y0 = cx - w // 2, cy - h // 2
    if x0 < 0 or y0 < 0 or x0 + w > screen.shape[1] or y0 + h > screen.shape[0]:
        return False
    screen[y0:y0 + h, x0:x0 + w] = icon
    return True


def to_png(img: np.ndarray) -> bytes:
    ok, buf = cv2.imencode(".png", img)
    assert ok
    return buf.tobytes()


def make_settings(tmp_path, **overrides) -> ScannerSettings:
    values = dict(
        kingdoms=[111],
        scan_pattern="single",
        scan_rings=1,
        navigate_delay_ms=0,
        confirm_delay_ms=0,
        dismiss_delay_ms=0,
        max_detect_tasks=2,
        viewport_rect=(0, 0, SCREEN_W, SCREEN_H),
        screen_center=(SCREEN_W / 2.0, SCREEN_H / 2.0),
        exchange_log=str(tmp_path / "exchanges.jsonl"),
    )
    values.update(overrides)
    return ScannerSettings(**values)


def wait_for(predicate, timeout: float = 10.0, interval: float = 0.02) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


class FakeViewport:
    """In-memory world: renders the icon where the forward calibration puts it."""

    def __init__(
        self,
        icon: np.ndarray,
        calibration: Calibration,
        exchanges: Optional[List[Tuple[int, int, int]]] = None,
        popup_mode: str = "coords",
        fail_login: bool = False,
        launch_gate: Optional[threading.Event] = None,
        click_radius: float = 20.0,
    ) -> None:
        self.icon = icon
        self.calibration = calibration
        self.exchanges = list(exchanges or [])
        self.popup_mode = popup_mode
        self.fail_login = fail_login
        self.launch_gate = launch_gate
        self.click_radius = click_radius
        self.position: Optional[Tuple[int, int, int]] = None
        self.popup: Optional[str] = None
        self.fail_navigation = False
        self.closed = False
        self.calls: List[str] = []
        self.navigations: List[Tuple[int, int, int]] = []
        self.clicks: List[Tuple[float, float]] = []
        self._lock = threading.Lock()

    # ---- RemoteViewport ----
    def launch(self, settings) -> None:
        self.calls.append("launch")
        if self.launch_gate is not None:
            self.launch_gate.wait(10)

    def login(self, email: str, password: str) -> None:
        self.calls.append("login")
        if self.fail_login:
            raise LoginFailed("bad credentials")

    def navigate_to(self, kingdom: int, x: int, y: int) -> None:
        if self.fail_navigation:
            raise NavigationFailed(f"cannot reach K:{kingdom} X:{x} Y:{y}")
        with self._lock:
            self.position = (kingdom, x, y)
            self.navigations.append((kingdom, x, y))

    def visible_icons(self) -> Dict[Tuple[int, int, int], Tuple[int, int]]:
        out: Dict[Tuple[int, int, int], Tuple[int, int]] = {}
        if self.position is None:
            return out
        k, nx, ny = self.position
        for ex in self.exchanges:
            if ex[0] != k:
                continue
            px, py = self.calibration.world_to_pixel(ex[1] - nx, ex[2] - ny)
            out[ex] = (int(round(px)), int(round(py)))
        return out

    def take_screenshot(self) -> bytes:
        screen = blank_screen()
        with self._lock:
            for (px, py) in self.visible_icons().values():
                paste_centered(screen, self.icon, px, py)
        return to_png(screen)

    def click_at(self, x: float, y: float) -> None:
        self.clicks.append((x, y))
        with self._lock:
            for (k, ex, ey), (px, py) in self.visible_icons().items():
                if abs(px - x) <= self.click_radius and abs(py - y) <= self.click_radius:
                    if self.popup_mode == "coords":
                        self.popup = f"Mercenary Exchange (K:{k} X:{ex} Y:{ey})"
                    elif self.popup_mode == "text":
                        self.popup = "Mercenary Exchange"
                    return

    def read_popup_text(self) -> Optional[str]:
        return self.popup

    def dismiss_popup(self) -> None:
        self.calls.append("dismiss")
        self.popup = None

    def close(self) -> None:
        self.closed = True
