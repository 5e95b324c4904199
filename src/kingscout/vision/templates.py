"""Reference icon loading.

Resolve `<target>_ref.png` from several roots (first decodable hit wins):
1) explicit assets_dir argument
2) KS_ASSETS_DIR environment variable
3) ./assets relative to the working directory
4) <project>/assets next to the installed package
"""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import List, Optional

import cv2
import numpy as np

from ..config.vision import SCALE_DOWN
from ..core.errors import ConfigInvalid
from .preprocess import PreparedTemplate, prepare_template

logger = logging.getLogger(__name__)


def reference_filename(search_target: str) -> str:
    """'Mercenary Exchange Core' -> 'mercenary_exchange_core_ref.png'."""
    base = str(search_target).strip().lower().replace(" ", "_")
    return f"{base}_ref.png"


def candidate_dirs(assets_dir: Optional[str] = None) -> List[Path]:
    dirs: List[Path] = []
    if assets_dir:
        dirs.append(Path(assets_dir))
    env_dir = os.environ.get("KS_ASSETS_DIR", "").strip()
    if env_dir:
        dirs.append(Path(env_dir))
    dirs.append(Path.cwd() / "assets")
    dirs.append(Path(__file__).resolve().parents[3] / "assets")
    return dirs


def load_reference_images(search_target: str, assets_dir: Optional[str] = None) -> List[np.ndarray]:
    """Load BGR reference images for search_target.

    Raises ConfigInvalid when no reference image can be loaded.
    """
    filename = reference_filename(search_target)
    images: List[np.ndarray] = []
    for d in candidate_dirs(assets_dir):
        path = d / filename
        if not path.exists():
            continue
        img = cv2.imread(str(path), cv2.IMREAD_COLOR)
        if img is None:
            logger.warning("failed to decode %s", path)
            continue
        logger.info("loaded reference image: %s", path)
        images.append(img)
        break
    if not images:
        logger.warning("reference image %s not found in any search path", filename)
        raise ConfigInvalid(f"no reference images could be loaded for {search_target!r}")
    return images


def load_templates(search_target: str, assets_dir: Optional[str] = None,
                   scale_down: int = SCALE_DOWN) -> List[PreparedTemplate]:
    """Load and prepare reference templates once at startup."""
    prepared = [t for t in (prepare_template(img, scale_down) for img in
                            load_reference_images(search_target, assets_dir)) if t is not None]
    if not prepared:
        raise ConfigInvalid(f"reference images for {search_target!r} are unusable")
    logger.info("prepared %d reference template(s)", len(prepared))
    return prepared
