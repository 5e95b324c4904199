"""core.config
Configuration core: load/save helpers for config.ini and typed scanner settings.

ConfigManager reads and persists simple key/value settings from a single
DEFAULT section. ScannerSettings is the typed view the scanner consumes,
built once from a ConfigManager via ScannerSettings.from_config().
"""
from __future__ import annotations

import logging
import os
from configparser import ConfigParser
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Tuple

from ..config import vision as V
from .errors import ConfigInvalid

logger = logging.getLogger(__name__)

ENV_PREFIX = "KS_"

SCAN_PATTERNS = ("grid", "single", "multi", "wide", "known")


class ConfigManager:
    """Simple configuration manager backed by an INI file.

    Behaviour:
    - Uses a single DEFAULT section for lookups.
    - Creates the file with sensible defaults if it does not exist.
    - Defaults to a per-user config path (%APPDATA% on Windows,
      XDG_CONFIG_HOME or ~/.config on other systems) unless an explicit
      path is provided.
    """

    def __init__(self, config_path: Optional[str] = None) -> None:
        if config_path:
            self.config_path = Path(config_path)
        else:
            if os.name == "nt":
                base = Path(os.getenv("APPDATA", Path.home() / "AppData" / "Roaming"))
            else:
                base = Path(os.getenv("XDG_CONFIG_HOME", Path.home() / ".config"))
            self.config_path = base.joinpath("Kingscout", "config.ini")

        self.config = ConfigParser()
        self.load()

    def load(self) -> None:
        """Load configuration from disk, filling defaults when needed."""
        if self.config_path.exists():
            self.config.read(self.config_path)

        defaults = {
            "log_level": "INFO",
            "kingdoms": "",
            "search_target": "Mercenary Exchange Core",
            "scan_pattern": "grid",
            "exchange_log": "exchanges.jsonl",
            "headless": "False",
            "debug_screenshots": "False",
        }

        missing = [key for key in defaults if key not in self.config["DEFAULT"]]
        for key in missing:
            self.config["DEFAULT"][key] = defaults[key]

        # Persist added defaults to an existing config
        if self.config_path.exists() and missing:
            self.save()

    def get(self, key: str, fallback=None):
        """Get a configuration value.

        Precedence is env > config.ini > fallback. Environment variables are
        looked up as KS_<KEY> and then <KEY>.
        """
        for ek in (f"{ENV_PREFIX}{str(key).upper()}", str(key).upper()):
            val = os.environ.get(ek)
            if val is not None and str(val) != "":
                return val
        return self.config["DEFAULT"].get(key, fallback)

    def save(self) -> None:
        """Persist current configuration to disk (creates parent directories)."""
        self.config_path.parent.mkdir(parents=True, exist_ok=True)
        with self.config_path.open("w", encoding="utf-8") as fh:
            self.config.write(fh)


def _as_bool(value) -> bool:
    return str(value).strip().lower() in ("true", "1", "yes", "on")


def parse_kingdoms(raw: Optional[str]) -> List[int]:
    """Parse a comma separated kingdom list; raises ConfigInvalid on bad input."""
    if raw is None or not str(raw).strip():
        raise ConfigInvalid("kingdoms: at least one kingdom required")
    kingdoms: List[int] = []
    for part in str(raw).split(","):
        token = part.strip()
        try:
            value = int(token)
        except ValueError as exc:
            raise ConfigInvalid(f"kingdoms: invalid entry {token!r}") from exc
        if value < 0:
            raise ConfigInvalid(f"kingdoms: invalid entry {token!r}")
        kingdoms.append(value)
    return kingdoms


@dataclass
class ScannerSettings:
    """Typed settings consumed by the scanner and its collaborators."""

    kingdoms: List[int]
    email: str = ""
    password: str = ""
    headless: bool = False
    browser_path: Optional[str] = None
    search_target: str = "Mercenary Exchange Core"
    assets_dir: Optional[str] = None
    scan_pattern: str = "grid"
    scan_rings: Optional[int] = None
    scan_step: int = V.SCAN_STEP
    wide_step: int = V.WIDE_STEP
    grid_step: int = V.GRID_STEP
    grid_min: int = V.GRID_MIN
    grid_max: int = V.GRID_MAX
    known_locations_file: Optional[str] = None
    exchange_log: str = "exchanges.jsonl"
    debug_screenshots: bool = False
    navigate_delay_ms: int = 750
    confirm_delay_ms: int = 2000
    dismiss_delay_ms: int = 500
    cooldown_seconds: float = 120.0
    dedupe_window_seconds: float = 300.0
    max_detect_tasks: int = 4
    match_threshold: float = V.MATCH_THRESHOLD
    verify_threshold: float = V.VERIFY_THRESHOLD
    detect_threshold: float = V.DETECT_THRESHOLD
    center_tolerance_px: float = V.CENTER_TOLERANCE_PX
    dedupe_distance_px: int = V.DEDUPE_DISTANCE_PX
    scale_down: int = V.SCALE_DOWN
    viewport_rect: Tuple[int, int, int, int] = V.VIEWPORT_RECT
    screen_center: Tuple[float, float] = V.SCREEN_CENTER
    px_per_world_x: float = V.PX_PER_WORLD_X
    px_per_world_y: float = V.PX_PER_WORLD_Y
    tilt_y: float = V.TILT_Y
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        if not self.kingdoms:
            raise ConfigInvalid("kingdoms: at least one kingdom required")
        pattern = str(self.scan_pattern).strip().lower()
        if pattern not in SCAN_PATTERNS:
            logger.warning("unknown scan pattern %r, using grid", self.scan_pattern)
            pattern = "grid"
        self.scan_pattern = pattern
        if self.scan_rings is not None and self.scan_rings < 0:
            raise ConfigInvalid(f"scan_rings must be >= 0, got {self.scan_rings}")
        for name in ("scan_step", "wide_step", "grid_step", "scale_down", "max_detect_tasks"):
            if getattr(self, name) < 1:
                raise ConfigInvalid(f"{name} must be >= 1, got {getattr(self, name)}")
        left, top, right, bottom = self.viewport_rect
        if right <= left or bottom <= top:
            raise ConfigInvalid(f"viewport_rect is empty: {self.viewport_rect}")
        if self.px_per_world_x == 0 or self.px_per_world_y == 0:
            raise ConfigInvalid("px_per_world_x/y must be non-zero")

    @property
    def rings(self) -> int:
        """Ring count for the configured pattern (explicit override or pattern default)."""
        if self.scan_rings is not None:
            return int(self.scan_rings)
        return int(V.DEFAULT_RINGS.get(self.scan_pattern, 0))

    @classmethod
    def from_config(cls, config_manager: ConfigManager, require_kingdoms: bool = True) -> "ScannerSettings":
        """Build settings from a ConfigManager, raising ConfigInvalid on bad values.

        Offline tools pass require_kingdoms=False; an empty kingdom list then
        becomes [0].
        """
        get = config_manager.get

        def _int(key: str, default: int) -> int:
            raw = get(key)
            if raw is None or str(raw).strip() == "":
                return default
            try:
                return int(str(raw).strip())
            except ValueError as exc:
                raise ConfigInvalid(f"{key}: expected integer, got {raw!r}") from exc

        def _float(key: str, default: float) -> float:
            raw = get(key)
            if raw is None or str(raw).strip() == "":
                return default
            try:
                return float(str(raw).strip())
            except ValueError as exc:
                raise ConfigInvalid(f"{key}: expected number, got {raw!r}") from exc

        def _opt_str(key: str) -> Optional[str]:
            raw = get(key)
            return str(raw).strip() if raw is not None and str(raw).strip() else None

        rings_raw = _opt_str("scan_rings")
        try:
            scan_rings = int(rings_raw) if rings_raw is not None else None
        except ValueError as exc:
            raise ConfigInvalid(f"scan_rings: expected integer, got {rings_raw!r}") from exc

        raw_kingdoms = get("kingdoms")
        if not require_kingdoms and not str(raw_kingdoms or "").strip():
            kingdoms = [0]
        else:
            kingdoms = parse_kingdoms(raw_kingdoms)

        viewport_rect = (
            _int("viewport_left", V.VIEWPORT_RECT[0]),
            _int("viewport_top", V.VIEWPORT_RECT[1]),
            _int("viewport_right", V.VIEWPORT_RECT[2]),
            _int("viewport_bottom", V.VIEWPORT_RECT[3]),
        )

        return cls(
            kingdoms=kingdoms,
            email=str(get("email", "") or ""),
            password=str(get("password", "") or ""),
            headless=_as_bool(get("headless", "False")),
            browser_path=_opt_str("browser_path"),
            search_target=str(get("search_target", "Mercenary Exchange Core")),
            assets_dir=_opt_str("assets_dir"),
            scan_pattern=str(get("scan_pattern", "grid")),
            scan_rings=scan_rings,
            scan_step=_int("scan_step", V.SCAN_STEP),
            wide_step=_int("wide_step", V.WIDE_STEP),
            grid_step=_int("grid_step", V.GRID_STEP),
            grid_min=_int("grid_min", V.GRID_MIN),
            grid_max=_int("grid_max", V.GRID_MAX),
            known_locations_file=_opt_str("known_locations_file"),
            exchange_log=str(get("exchange_log", "exchanges.jsonl")),
            debug_screenshots=_as_bool(get("debug_screenshots", "False")),
            navigate_delay_ms=_int("navigate_delay_ms", 750),
            confirm_delay_ms=_int("confirm_delay_ms", 2000),
            dismiss_delay_ms=_int("dismiss_delay_ms", 500),
            cooldown_seconds=_float("cooldown_seconds", 120.0),
            dedupe_window_seconds=_float("dedupe_window_seconds", 300.0),
            max_detect_tasks=_int("max_detect_tasks", 4),
            match_threshold=_float("match_threshold", V.MATCH_THRESHOLD),
            verify_threshold=_float("verify_threshold", V.VERIFY_THRESHOLD),
            detect_threshold=_float("detect_threshold", V.DETECT_THRESHOLD),
            center_tolerance_px=_float("center_tolerance_px", V.CENTER_TOLERANCE_PX),
            dedupe_distance_px=_int("dedupe_distance_px", V.DEDUPE_DISTANCE_PX),
            scale_down=_int("scale_down", V.SCALE_DOWN),
            viewport_rect=viewport_rect,
            screen_center=(
                _float("screen_center_x", V.SCREEN_CENTER[0]),
                _float("screen_center_y", V.SCREEN_CENTER[1]),
            ),
            px_per_world_x=_float("px_per_world_x", V.PX_PER_WORLD_X),
            px_per_world_y=_float("px_per_world_y", V.PX_PER_WORLD_Y),
            tilt_y=_float("tilt_y", V.TILT_Y),
            log_level=str(get("log_level", "INFO")),
        )
