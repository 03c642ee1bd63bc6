"""Launch options for a Chrome process and the command line built from them."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, Sequence, Union

from chromium_launcher.fetcher import FetcherOptions

__all__ = ["DEFAULT_ARGS", "LaunchOptions", "build_args"]

PathLike = Union[str, "os.PathLike[str]"]


def _switch(name: str, value: str | None = None) -> str:
    return f"--{name}" if value is None else f"--{name}={value}"


def _disabled(*features: str) -> Iterator[str]:
    return (_switch(f"disable-{feature}") for feature in features)


DEFAULT_ARGS: tuple[str, ...] = (
    *_disabled("background-networking"),
    _switch("enable-features", "NetworkService,NetworkServiceInProcess"),
    *_disabled(
        "background-timer-throttling",
        "backgrounding-occluded-windows",
        "breakpad",
        "client-side-phishing-detection",
        "component-extensions-with-background-pages",
        "default-apps",
        "dev-shm-usage",
        "extensions",
    ),
    # BlinkGenPropertyTrees is switched off because of a known rendering bug.
    _switch("disable-features", "TranslateUI,BlinkGenPropertyTrees"),
    *_disabled(
        "hang-monitor",
        "ipc-flooding-protection",
        "popup-blocking",
        "prompt-on-repost",
        "renderer-backgrounding",
        "sync",
    ),
    _switch("force-color-profile", "srgb"),
    _switch("metrics-recording-only"),
    _switch("no-first-run"),
    _switch("enable-automation"),
    _switch("password-store", "basic"),
    _switch("use-mock-keychain"),
)
"""Flags passed to the browser unless disabled or ignored."""


@dataclass
class LaunchOptions:
    """How Chrome is run.

    By default a binary is located or fetched, a free debugging port is
    chosen, and the browser starts headless with a throwaway profile.
    ``idle_browser_timeout`` is in seconds.
    """

    headless: bool = True
    sandbox: bool = True
    devtools: bool = False
    enable_gpu: bool = False
    enable_logging: bool = False
    window_size: tuple[int, int] | None = None
    port: int | None = None
    ignore_certificate_errors: bool = True
    path: Path | None = None
    user_data_dir: Path | None = None
    extensions: list[PathLike] = field(default_factory=list)
    args: list[str] = field(default_factory=list)
    ignore_default_args: list[str] = field(default_factory=list)
    disable_default_args: bool = False
    fetcher_options: FetcherOptions = field(default_factory=FetcherOptions)
    idle_browser_timeout: float = 30.0
    process_envs: dict[str, str] | None = None
    proxy_server: str | None = None

    def __post_init__(self) -> None:
        if self.path is not None:
            self.path = Path(self.path)
        if self.user_data_dir is not None:
            self.user_data_dir = Path(self.user_data_dir)
        if self.window_size is not None:
            width, height = self.window_size
            self.window_size = (int(width), int(height))
        if self.port is not None and not 0 <= self.port <= 0xFFFF:
            raise ValueError(f"port out of range: {self.port}")
        self.extensions = list(self.extensions)
        self.args = [os.fspath(a) for a in self.args]
        self.ignore_default_args = [os.fspath(a) for a in self.ignore_default_args]


def _default_args(ignored: Sequence[str]) -> list[str]:
    ignored_set = set(ignored)
    return [arg for arg in DEFAULT_ARGS if arg not in ignored_set]


def _display_mode(options: LaunchOptions) -> list[str]:
    if options.devtools:
        return [_switch("auto-open-devtools-for-tabs")]
    if options.headless:
        return [_switch("headless")]
    return []


def _toggles(options: LaunchOptions) -> Iterator[str]:
    if options.ignore_certificate_errors:
        yield _switch("ignore-certificate-errors")
    if options.enable_logging:
        yield _switch("enable-logging")
    if not options.enable_gpu:
        yield _switch("disable-gpu")
    if options.proxy_server:
        yield _switch("proxy-server", options.proxy_server)
    if not options.sandbox:
        yield _switch("no-sandbox")
        yield _switch("disable-setuid-sandbox")


def build_args(options: LaunchOptions, port: int, user_data_dir: PathLike) -> list[str]:
    """Return the command-line arguments for launching Chrome with ``options``."""
    args = [
        _switch("remote-debugging-port", str(port)),
        _switch("verbose"),
        _switch("log-level", "0"),
        _switch("no-first-run"),
        _switch("user-data-dir", os.fspath(user_data_dir)),
    ]
    if not options.disable_default_args:
        args += _default_args(options.ignore_default_args)
    args += options.args
    if options.window_size is not None:
        width, height = options.window_size
        args.append(_switch("window-size", f"{width},{height}"))
    args += _display_mode(options)
    args += _toggles(options)
    args += (_switch("load-extension", os.fspath(ext)) for ext in options.extensions)
    return args