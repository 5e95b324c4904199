"""Pytest configuration.

Ensures src/ is on sys.path so tests can import `kingscout.*` without an
install, and provides synthetic screenshots plus a fake remote viewport.
"""

import sys
from pathlib import Path

import pytest

TESTS_DIR = Path(__file__).resolve().parent
PROJECT_ROOT = TESTS_DIR.parent
SRC_DIR = PROJECT_ROOT / "src"
for p in (str(PROJECT_ROOT), str(SRC_DIR), str(TESTS_DIR)):
    if p not in sys.path:
        sys.path.insert(0, p)

from helpers import make_icon, make_settings  # noqa: E402
from kingscout.vision.preprocess import prepare_template  # noqa: E402


@pytest.fixture(autouse=True)
def _artifacts_in_tmp(tmp_path, monkeypatch):
    monkeypatch.setenv("KS_LOG_SESSION_DIR", str(tmp_path / "session"))


@pytest.fixture
def icon():
    return make_icon()


@pytest.fixture
def templates(icon):
    return [prepare_template(icon)]


@pytest.fixture
def settings(tmp_path):
    return make_settings(tmp_path)
