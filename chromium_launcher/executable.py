"""Locate an installed Chrome, Chromium or Edge binary."""

from __future__ import annotations

import os
import shutil
import sys
from pathlib import Path, PureWindowsPath

__all__ = ["default_executable"]


def _binary_names() -> tuple[str, ...]:
    """Executable names searched on PATH, most preferred first."""
    chrome_channels = ("stable", "beta", "dev", "unstable")
    edge_channels = ("stable", "beta", "dev")
    return (
        *(f"google-chrome-{channel}" for channel in chrome_channels),
        "chromium",
        "chromium-browser",
        *(f"microsoft-edge-{channel}" for channel in edge_channels),
        "chrome",
        "chrome-browser",
        "msedge",
        "microsoft-edge",
    )


def _macos_app_paths() -> tuple[Path, ...]:
    """Executables inside the usual application bundles on macOS."""
    chrome_variants = ("", " Beta", " Dev", " Canary")
    apps = (
        *(f"Google Chrome{suffix}" for suffix in chrome_variants),
        "Chromium",
        *(f"Microsoft Edge{suffix}" for suffix in chrome_variants),
    )
    root = Path("/Applications")
    return tuple(root / f"{app}.app" / "Contents" / "MacOS" / app for app in apps)


def _windows_fallback_paths() -> tuple[Path, ...]:
    edge = PureWindowsPath("C:/", "Program Files (x86)", "Microsoft", "Edge", "Application", "msedge.exe")
    return (Path(str(edge)),)


_REGISTRY_KEY = "\\".join(
    ("SOFTWARE", "Microsoft", "Windows", "CurrentVersion", "App Paths", "chrome.exe")
)


def _chrome_path_from_registry() -> Path | None:
    """Read Chrome's install path from the Windows registry, if present."""
    try:
        import winreg
    except ImportError:
        return None
    try:
        with winreg.OpenKey(winreg.HKEY_LOCAL_MACHINE, _REGISTRY_KEY) as key:
            value, _ = winreg.QueryValueEx(key, "")
    except OSError:
        return None
    return Path(value) if value else None


def _platform_candidates():
    """Yield well-known install locations for the running platform."""
    if sys.platform == "darwin":
        yield from _macos_app_paths()
    elif sys.platform == "win32":
        registry_path = _chrome_path_from_registry()
        if registry_path is not None:
            yield registry_path
        yield from _windows_fallback_paths()


def default_executable() -> Path:
    """Return the path to a Chrome executable.

    The ``CHROME`` environment variable wins if it names an existing path;
    otherwise known binary names are looked up on ``PATH``, then
    platform-specific install locations are checked.

    Raises FileNotFoundError if nothing suitable is found.
    """
    env_path = os.environ.get("CHROME")
    if env_path and Path(env_path).exists():
        return Path(env_path)

    for name in _binary_names():
        found = shutil.which(name)
        if found:
            return Path(found)

    for candidate in _platform_candidates():
        if candidate.exists():
            return candidate

    raise FileNotFoundError("Could not auto detect a chrome executable")