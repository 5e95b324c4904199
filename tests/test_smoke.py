"""Minimal smoke tests: package imports and the command-line tools run."""

import cv2

import kingscout
from helpers import blank_screen, make_icon, paste_centered
from kingscout import main as cli


def test_package_version():
    assert kingscout.__version__


def test_positions_command(tmp_path, capsys):
    rc = cli.main(["--config", str(tmp_path / "config.ini"), "positions", "single", "--rings", "1"])
    assert rc == 0
    out = capsys.readouterr().out
    assert "single: 9 positions" in out
    assert "(512, 512)" in out


def test_detect_command(tmp_path, capsys):
    assets = tmp_path / "assets"
    assets.mkdir()
    cv2.imwrite(str(assets / "mercenary_exchange_core_ref.png"), make_icon())
    screen = blank_screen(1920, 1080)
    paste_centered(screen, make_icon(), 900, 500)
    shot = tmp_path / "shot.png"
    cv2.imwrite(str(shot), screen)

    rc = cli.main(["--config", str(tmp_path / "config.ini"), "detect", str(shot), "--assets", str(assets)])
    assert rc == 0
    out = capsys.readouterr().out
    assert "best match: pixel (900, 500)" in out
    assert "matches above threshold: 1" in out


def test_detect_command_without_assets_fails(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("KS_ASSETS_DIR", raising=False)
    shot = tmp_path / "shot.png"
    cv2.imwrite(str(shot), blank_screen())
    rc = cli.main(["--config", str(tmp_path / "config.ini"), "detect", str(shot),
                   "--target", "No Such Building"])
    assert rc == 1


def test_detect_command_uses_config_geometry_and_assets(tmp_path, capsys):
    assets = tmp_path / "assets"
    assets.mkdir()
    cv2.imwrite(str(assets / "mercenary_exchange_core_ref.png"), make_icon())
    screen = blank_screen(1920, 1080)
    paste_centered(screen, make_icon(), 900, 500)
    shot = tmp_path / "shot.png"
    cv2.imwrite(str(shot), screen)
    config = tmp_path / "config.ini"
    config.write_text(
        "[DEFAULT]\n"
        f"assets_dir = {assets}\n"
        "screen_center_x = 900\n"
        "screen_center_y = 500\n",
        encoding="utf-8",
    )

    rc = cli.main(["--config", str(config), "detect", str(shot)])
    assert rc == 0
    out = capsys.readouterr().out
    assert "best match: pixel (900, 500)" in out
    assert "world offset (0, 0)" in out
