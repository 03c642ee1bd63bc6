"""Find or download a Chromium snapshot build matching a given revision."""

from __future__ import annotations

import logging
import os
import platform as _platform
import shutil
import stat
import subprocess
import sys
import urllib.request
import zipfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator

import platformdirs

__all__ = [
    "CUR_REV",
    "Revision",
    "FetcherOptions",
    "Fetcher",
    "current_platform",
    "archive_name",
    "download_url",
    "latest_revision",
    "get_size",
    "extract_archive",
]

log = logging.getLogger(__name__)

CUR_REV = "1095492"

APP_NAME = "headless-chrome"
DEFAULT_HOST = "https://storage.googleapis.com"

_SNAPSHOT_DIRS = {
    "linux": "Linux_x64",
    "mac": "Mac",
    "mac_arm": "Mac_Arm",
    "win": "Win_x64",
}

_EXECUTABLE_PARTS = {
    "linux": ("chrome",),
    "mac": ("Chromium.app", "Contents", "MacOS", "Chromium"),
    "mac_arm": ("Chromium.app", "Contents", "MacOS", "Chromium"),
    "win": ("chrome.exe",),
}

# Windows archive name changed at this revision.
_WIN_ARCHIVE_RENAME_REVISION = 591_479


def current_platform() -> str:
    """Return the snapshot platform name for the running system."""
    if sys.platform.startswith("linux"):
        return "linux"
    if sys.platform == "darwin":
        if _platform.machine().lower() in ("arm64", "aarch64"):
            return "mac_arm"
        return "mac"
    if sys.platform == "win32":
        return "win"
    raise RuntimeError(f"Unsupported platform: {sys.platform}")


def _snapshot_dir(platform: str) -> str:
    try:
        return _SNAPSHOT_DIRS[platform]
    except KeyError:
        raise ValueError(f"Unknown platform: {platform!r}") from None


def archive_name(revision: str, platform: str | None = None) -> str:
    """Return the top-level directory name inside a snapshot archive."""
    platform = platform or current_platform()
    _snapshot_dir(platform)
    if platform == "linux":
        return "chrome-linux"
    if platform in ("mac", "mac_arm"):
        return "chrome-mac"
    try:
        number = int(revision)
    except ValueError:
        return "chrome-win32"
    if 0 <= number and number > _WIN_ARCHIVE_RENAME_REVISION:
        return "chrome-win"
    return "chrome-win32"


def download_url(revision: str, platform: str | None = None) -> str:
    """Return the URL of the snapshot archive for ``revision``."""
    platform = platform or current_platform()
    return (
        f"{DEFAULT_HOST}/chromium-browser-snapshots/{_snapshot_dir(platform)}/"
        f"{revision}/{archive_name(revision, platform)}.zip"
    )


def latest_revision(platform: str | None = None) -> str:
    """Ask the snapshot server for the newest revision of ``platform``."""
    platform = platform or current_platform()
    url = (
        f"{DEFAULT_HOST}/chromium-browser-snapshots/"
        f"{_snapshot_dir(platform)}/LAST_CHANGE"
    )
    with urllib.request.urlopen(url) as response:
        return response.read().decode("utf-8").strip()


def get_size(url: str) -> int:
    """Return the size of the resource at ``url`` in whole MiB."""
    with urllib.request.urlopen(url) as response:
        length = response.headers.get("Content-Length")
    if length is None:
        raise RuntimeError("response doesn't include the content length")
    return int(length) // 2**20


def _standard_data_dir() -> Path:
    return Path(platformdirs.user_data_dir(APP_NAME, appauthor=False))


def _walk(root: Path) -> Iterator[Path]:
    """Yield ``root`` and everything below it; nothing if it is missing."""
    if not root.exists():
        return
    yield root
    for dirpath, dirnames, filenames in os.walk(root):
        for name in (*dirnames, *filenames):
            yield Path(dirpath, name)


def _unzip_with_command(zip_path: Path, extract_path: Path) -> None:
    result = subprocess.run(
        ["unzip", str(zip_path.resolve())],
        cwd=extract_path,
        capture_output=True,
    )
    if result.returncode != 0:
        log.error(
            "Unable to extract zip using unzip command: \n---- stdout:\n%s\n---- stderr:\n%s",
            result.stdout.decode("utf-8", "replace"),
            result.stderr.decode("utf-8", "replace"),
        )


def _unzip_in_process(zip_path: Path, extract_path: Path) -> None:
    with zipfile.ZipFile(zip_path) as archive:
        for index, info in enumerate(archive.infolist()):
            if info.comment:
                log.debug("File %d comment: %s", index, info.comment)
            out_path = Path(archive.extract(info, extract_path))
            log.debug("File %d extracted to %s (%d bytes)", index, out_path, info.file_size)
            mode = info.external_attr >> 16
            if mode and os.name == "posix":
                os.chmod(out_path, stat.S_IMODE(mode))


def extract_archive(zip_path: str | os.PathLike[str]) -> Path:
    """Unpack ``zip_path`` next to itself into a folder named after it.

    The archive is deleted afterwards when possible. Returns the folder.
    """
    zip_path = Path(zip_path)
    if not zip_path.stem:
        raise ValueError("zip_path does not have a file stem")
    extract_path = zip_path.parent / zip_path.stem
    extract_path.mkdir(parents=True, exist_ok=True)

    log.info("Extracting (this can take a while): %s", extract_path)
    if sys.platform == "darwin":
        _unzip_with_command(zip_path, extract_path)
    else:
        _unzip_in_process(zip_path, extract_path)

    log.info("Cleaning up")
    try:
        zip_path.unlink()
    except OSError:
        log.info("Failed to delete zip")
    return extract_path


@dataclass(frozen=True)
class Revision:
    """A Chromium revision: a specific number, or the latest available."""

    number: str | None = None

    @classmethod
    def latest(cls) -> Revision:
        return cls(None)

    @classmethod
    def specific(cls, number: str | int) -> Revision:
        return cls(str(number))

    @property
    def is_latest(self) -> bool:
        return self.number is None


@dataclass
class FetcherOptions:
    """Where to look for a Chromium build and whether to download one."""

    revision: Revision = field(default_factory=lambda: Revision.specific(CUR_REV))
    install_dir: Path | None = None
    allow_download: bool = True
    allow_standard_dirs: bool = True

    def __post_init__(self) -> None:
        if self.install_dir is not None:
            self.install_dir = Path(self.install_dir)


class Fetcher:
    """Looks for an installed snapshot and downloads one when missing."""

    def __init__(self, options: FetcherOptions | None = None) -> None:
        self.options = options if options is not None else FetcherOptions()
        self.platform = current_platform()

    def fetch(self) -> Path:
        """Return the path of a usable Chromium executable."""
        revision = self.options.revision
        rev = latest_revision(self.platform) if revision.is_latest else revision.number
        assert rev is not None

        try:
            return self.find_chrome(rev)
        except FileNotFoundError:
            pass

        if self.options.allow_download:
            zip_path = self.download(rev)
            extract_archive(zip_path)
            return self.find_chrome(rev)

        raise FileNotFoundError("Could not fetch")

    def _search_dirs(self) -> list[Path]:
        dirs = []
        if self.options.install_dir is not None:
            dirs.append(self.options.install_dir)
        if self.options.allow_standard_dirs:
            dirs.append(_standard_data_dir())
        return dirs

    def _base_path(self, revision: str) -> Path:
        for root in self._search_dirs():
            for entry in _walk(root):
                parts = entry.name.split("-")
                if len(parts) == 2 and parts[0] == self.platform and parts[1] == revision:
                    return entry
        raise FileNotFoundError("Could not find an existing revision")

    def find_chrome(self, revision: str) -> Path:
        """Return the executable path inside an installed ``revision``."""
        base = self._base_path(revision)
        return base.joinpath(
            archive_name(revision, self.platform), *_EXECUTABLE_PARTS[self.platform]
        )

    def download(self, revision: str) -> Path:
        """Download the snapshot archive for ``revision``; return the zip path."""
        folder = f"{self.platform}-{revision}"
        if self.options.install_dir is not None:
            path = self.options.install_dir / folder
        elif self.options.allow_standard_dirs:
            path = _standard_data_dir() / folder
        else:
            raise RuntimeError("No allowed installation directory")
        path = path.with_suffix(".zip")

        url = download_url(revision, self.platform)
        log.info("Chrome download url: %s", url)
        log.info("Total size of download: %d MiB", get_size(url))

        try:
            path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as err:
            raise RuntimeError(f"Could not create directory at {path.parent}") from err

        log.info("Creating file for download: %s", path)
        with urllib.request.urlopen(url) as response, path.open("wb") as out:
            shutil.copyfileobj(response, out)
        return path