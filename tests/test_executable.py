import stat
import sys
from pathlib import Path

import pytest

from chromium_launcher.executable import default_executable


def _make_executable(directory: Path, name: str) -> Path:
    path = directory / name
    path.write_text("#!/bin/sh\nexit 0\n")
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


@pytest.fixture
def isolated(monkeypatch, tmp_path):
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir()
    monkeypatch.setattr(sys, "platform", "linux")
    monkeypatch.delenv("CHROME", raising=False)
    monkeypatch.setenv("PATH", str(bin_dir))
    return bin_dir


def test_chrome_env_var_used_when_path_exists(isolated, monkeypatch, tmp_path):
    binary = tmp_path / "my-chrome"
    binary.write_text("")
    monkeypatch.setenv("CHROME", str(binary))
    assert default_executable() == binary


def test_chrome_env_var_takes_precedence_over_path(isolated, monkeypatch, tmp_path):
    _make_executable(isolated, "chromium")
    binary = tmp_path / "preferred"
    binary.write_text("")
    monkeypatch.setenv("CHROME", str(binary))
    assert default_executable() == binary


def test_missing_chrome_env_path_falls_back_to_search(isolated, monkeypatch, tmp_path):
    expected = _make_executable(isolated, "chromium")
    monkeypatch.setenv("CHROME", str(tmp_path / "does-not-exist"))
    assert default_executable() == expected


def test_finds_binary_on_path(isolated):
    expected = _make_executable(isolated, "chromium-browser")
    assert default_executable() == expected


def test_search_order_prefers_earlier_names(isolated):
    _make_executable(isolated, "chromium")
    _make_executable(isolated, "msedge")
    stable = _make_executable(isolated, "google-chrome-stable")
    assert default_executable() == stable


def test_chromium_preferred_over_chrome(isolated):
    _make_executable(isolated, "chrome")
    chromium = _make_executable(isolated, "chromium")
    assert default_executable() == chromium


def test_raises_when_nothing_found(isolated):
    with pytest.raises(FileNotFoundError, match="Could not auto detect a chrome executable"):
        default_executable()


def test_raises_when_chrome_env_points_nowhere(isolated, monkeypatch, tmp_path):
    monkeypatch.setenv("CHROME", str(tmp_path / "missing"))
    with pytest.raises(FileNotFoundError):
        default_executable()