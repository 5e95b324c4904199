"""Tests for the confirm workflow and re-verification."""

import json

import pytest

from helpers import FakeViewport
from kingscout.core.audit import AuditLog
from kingscout.core.errors import NavigationFailed
from kingscout.core.exchanges import Exchange
from kingscout.core.state import ScanState
from kingscout.scanner.calibration import Calibration
from kingscout.scanner.confirm import ExchangeConfirmer
from kingscout.vision.matcher import TemplateMatch

TARGET = (111, 515, 510)


@pytest.fixture
def calibration(settings):
    return Calibration.from_settings(settings)


@pytest.fixture
def state():
    return ScanState()


@pytest.fixture
def audit(settings):
    return AuditLog(settings.exchange_log)


@pytest.fixture
def confirmer(settings, templates, state, audit):
    return ExchangeConfirmer(settings, templates, state, audit)


def _viewport(icon, calibration, **kw):
    vp = FakeViewport(icon, calibration, exchanges=[TARGET], **kw)
    vp.navigate_to(111, 512, 512)
    return vp


def _hit(viewport):
    """Match as the scan step at (512, 512) would report it."""
    px, py = viewport.visible_icons()[TARGET]
    return TemplateMatch(px, py, 0.995)


def _audit_records(settings):
    with open(settings.exchange_log, encoding="utf-8") as fh:
        return [json.loads(line) for line in fh]


def test_popup_coordinates_confirm_exchange(confirmer, state, settings, icon, calibration):
    vp = _viewport(icon, calibration)
    assert confirmer.confirm(vp, 111, _hit(vp), 512, 512, scan_duration=4.0)

    # navigated to the estimate, which recenters the target
    assert vp.navigations[-1] == TARGET
    assert vp.clicks == [(400.0, 300.0)]
    assert "dismiss" in vp.calls

    [ex] = state.list_exchanges()
    assert (ex.kingdom, ex.x, ex.y, ex.confirmed) == (111, 515, 510, True)
    assert ex.screenshot

    [rec] = _audit_records(settings)
    assert rec["confirmed"] is True and rec["stored"] is True
    assert rec["initial_score"] == pytest.approx(0.995)
    assert rec["calibration_score"] >= 0.98
    assert rec["scan_pattern"] == "single"
    assert rec["scan_duration_secs"] == 4.0


def test_no_popup_but_strong_calibration_stores_estimate(confirmer, state, settings, icon, calibration):
    vp = _viewport(icon, calibration, popup_mode="none")
    assert confirmer.confirm(vp, 111, _hit(vp), 512, 512)
    [ex] = state.list_exchanges()
    assert (ex.x, ex.y, ex.confirmed) == (515, 510, False)
    [rec] = _audit_records(settings)
    assert rec["confirmed"] is False and rec["stored"] is True


def test_popup_without_coords_uses_calibration(confirmer, state, icon, calibration):
    vp = _viewport(icon, calibration, popup_mode="text")
    assert confirmer.confirm(vp, 111, _hit(vp), 512, 512)
    [ex] = state.list_exchanges()
    assert ex.confirmed is False


def test_calibration_refines_offset_estimate(confirmer, state, icon, calibration):
    vp = _viewport(icon, calibration, popup_mode="none")
    px, py = vp.visible_icons()[TARGET]
    # a slightly off hit still lands close enough for the re-detect to correct it
    off = TemplateMatch(px + 60, py + 20, 0.99)
    assert confirmer.confirm(vp, 111, off, 512, 512)
    [ex] = state.list_exchanges()
    assert (ex.x, ex.y) == (515, 510)


def test_missing_target_is_rejected_and_audited(confirmer, state, settings, icon, calibration):
    vp = FakeViewport(icon, calibration, exchanges=[])
    assert not confirmer.confirm(vp, 111, TemplateMatch(548, 239, 0.99), 512, 512)
    assert state.list_exchanges() == []
    assert len(vp.clicks) == 1
    [rec] = _audit_records(settings)
    assert rec["stored"] is False and rec["confirmed"] is False
    assert rec["calibration_score"] < 0.90


def test_duplicate_confirm_is_audited_as_not_stored(confirmer, state, settings, icon, calibration):
    vp = _viewport(icon, calibration)
    assert confirmer.confirm(vp, 111, _hit(vp), 512, 512)
    vp.navigate_to(111, 512, 512)
    assert confirmer.confirm(vp, 111, _hit(vp), 512, 512)
    assert len(state.list_exchanges()) == 1
    assert [r["stored"] for r in _audit_records(settings)] == [True, False]


def test_confirm_errors_propagate_after_dismiss(confirmer, icon, calibration):
    vp = _viewport(icon, calibration)
    hit = _hit(vp)
    vp.fail_navigation = True
    with pytest.raises(NavigationFailed):
        confirmer.confirm(vp, 111, hit, 512, 512)
    assert "dismiss" in vp.calls


def test_verify_present_and_absent(confirmer, icon, calibration):
    vp = FakeViewport(icon, calibration, exchanges=[TARGET])
    assert confirmer.verify(vp, 111, 515, 510)
    # 3 world units east is ~150px off center
    assert not confirmer.verify(vp, 111, 512, 510)
    vp.exchanges = []
    assert not confirmer.verify(vp, 111, 515, 510)


def test_debug_screenshots_written(settings, templates, state, icon, calibration, tmp_path):
    settings.debug_screenshots = True
    confirmer = ExchangeConfirmer(settings, templates, state)
    vp = _viewport(icon, calibration)
    assert confirmer.confirm(vp, 111, _hit(vp), 512, 512)
    debug_dir = tmp_path / "session" / "debug"
    names = sorted(p.name for p in debug_dir.iterdir())
    assert names == ["goto_k111_515_510.png", "popup_k111_515_510.png"]


def test_stopped_run_abandons_confirm_without_clicking(settings, templates, state, icon, calibration):
    _, handle = state.request_start()
    confirmer = ExchangeConfirmer(settings, templates, state, handle=handle)
    vp = _viewport(icon, calibration)
    render = vp.take_screenshot

    def stop_during_goto():
        state.request_stop()
        return render()

    vp.take_screenshot = stop_during_goto
    navs = len(vp.navigations)
    assert not confirmer.confirm(vp, 111, _hit(vp), 512, 512)
    assert len(vp.navigations) == navs + 1
    assert vp.clicks == []
    assert "dismiss" not in vp.calls
    assert state.list_exchanges() == []

    # a cancelled run starts no further viewport work
    assert not confirmer.confirm(vp, 111, TemplateMatch(400, 300, 0.99), 512, 512)
    assert not confirmer.verify(vp, 111, 515, 510)
    assert len(vp.navigations) == navs + 1


def test_superseded_run_cannot_store(state):
    _, old = state.request_start()
    state.request_stop()
    _, new = state.request_start()
    assert not state.task_add_exchange(old, Exchange(111, 515, 510))
    assert state.list_exchanges() == []
    assert state.task_add_exchange(new, Exchange(111, 515, 510))
