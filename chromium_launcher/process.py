"""Start a Chrome process and discover its DevTools WebSocket URL."""

from __future__ import annotations

import dataclasses
import logging
import os
import random
import re
import shutil
import socket
import subprocess
import sys
import tempfile
import threading
from pathlib import Path
from typing import Iterable
from urllib.parse import urlsplit

from chromium_launcher.fetcher import Fetcher
from chromium_launcher.options import LaunchOptions, build_args

__all__ = [
    "ChromeLaunchError",
    "PortOpenTimeout",
    "NoAvailablePorts",
    "DebugPortInUse",
    "RunningAsRootWithoutNoSandbox",
    "Process",
    "ws_url_from_lines",
    "get_available_port",
    "port_is_available",
]

log = logging.getLogger(__name__)

_PORT_RANGE = range(8000, 9000)
_MAX_ATTEMPTS = 10
_WS_URL_TIMEOUT = 30.0
_PROFILE_PREFIX = "headless-chrome-profile"

_PORT_TAKEN_RE = re.compile(r"ERROR.*bind\(\)")
_LISTENING_RE = re.compile(r"listening on (.*/devtools/browser/.*)$")
_ROOT_SANDBOX = "Running as root without --no-sandbox is not supported"


class ChromeLaunchError(Exception):
    """Chrome could not be launched or did not become reachable."""

    default_message = "Chrome could not be launched"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)


class PortOpenTimeout(ChromeLaunchError):
    default_message = (
        "Chrome launched, but didn't give us a WebSocket URL before we timed out"
    )


class NoAvailablePorts(ChromeLaunchError):
    default_message = "There are no available ports between 8000 and 9000 for debugging"


class DebugPortInUse(ChromeLaunchError):
    default_message = "The chosen debugging port is already in use"


class RunningAsRootWithoutNoSandbox(ChromeLaunchError):
    default_message = "You need to set the sandbox(false) option when running as root"


def ws_url_from_lines(lines: Iterable[str]) -> str | None:
    """Scan Chrome's stderr output for the DevTools WebSocket URL.

    Returns the URL, or None if the output ends without one. Raises
    RunningAsRootWithoutNoSandbox or DebugPortInUse on the matching errors.
    """
    for raw_line in lines:
        line = raw_line.rstrip("\r\n")
        log.debug("Chrome output: %s", line)

        if _ROOT_SANDBOX in line:
            raise RunningAsRootWithoutNoSandbox()
        if _PORT_TAKEN_RE.search(line):
            raise DebugPortInUse()

        match = _LISTENING_RE.search(line)
        if match:
            return match.group(1)
    return None


def port_is_available(port: int) -> bool:
    """Return True if a TCP socket can be bound to ``port`` on 127.0.0.1."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        try:
            sock.bind(("127.0.0.1", port))
        except OSError:
            return False
    return True


def get_available_port() -> int | None:
    """Return a random free port between 8000 and 8999, or None if all are taken."""
    ports = list(_PORT_RANGE)
    random.shuffle(ports)
    return next((port for port in ports if port_is_available(port)), None)


@dataclasses.dataclass
class _TemporaryProcess:
    """A running browser plus the throwaway profile directory it may own."""

    popen: subprocess.Popen
    temp_dir: Path | None = None

    def kill(self) -> None:
        log.info("Killing Chrome. PID: %s", self.popen.pid)
        try:
            if self.popen.poll() is None:
                self.popen.kill()
            self.popen.wait()
        except OSError:
            pass
        if self.popen.stderr is not None:
            try:
                self.popen.stderr.close()
            except OSError:
                pass
        if self.temp_dir is not None:
            temp_dir, self.temp_dir = self.temp_dir, None
            try:
                shutil.rmtree(temp_dir)
            except OSError as err:
                log.warning("Failed to close temporary directory: %s", err)


def _validate_url(url: str) -> str:
    parts = urlsplit(url)
    if not parts.scheme or not parts.netloc:
        raise ValueError(f"Invalid WebSocket URL: {url!r}")
    return url


def _ws_url_from_output(popen: subprocess.Popen, timeout: float = _WS_URL_TIMEOUT) -> str:
    if popen.stderr is None:
        raise PortOpenTimeout()

    outcome: dict[str, object] = {}

    def reader() -> None:
        try:
            outcome["url"] = ws_url_from_lines(popen.stderr)
        except Exception as err:  # handed back to the launching thread
            outcome["error"] = err

    thread = threading.Thread(target=reader, daemon=True)
    thread.start()
    thread.join(timeout)

    if thread.is_alive():
        raise PortOpenTimeout()
    error = outcome.get("error")
    if isinstance(error, BaseException):
        raise error
    url = outcome.get("url")
    if not isinstance(url, str):
        raise PortOpenTimeout()
    return _validate_url(url)


def _start_process(options: LaunchOptions) -> _TemporaryProcess:
    port = options.port if options.port is not None else get_available_port()
    if port is None:
        raise NoAvailablePorts()

    temp_dir: Path | None = None
    if options.user_data_dir is not None:
        user_data_dir = options.user_data_dir
    else:
        temp_dir = Path(tempfile.mkdtemp(prefix=_PROFILE_PREFIX))
        user_data_dir = temp_dir
    log.debug("Chrome will have profile: %s", user_data_dir)

    if options.path is None:
        raise ValueError("Chrome path required")

    args = build_args(options, port, user_data_dir)
    log.info("Launching Chrome binary at %s", options.path)
    log.debug("with CLI arguments: %s", args)

    env = None
    if options.process_envs is not None:
        env = {**os.environ, **options.process_envs}

    creationflags = 0
    if sys.platform == "win32":
        creationflags = getattr(subprocess, "CREATE_NO_WINDOW", 0)

    try:
        popen = subprocess.Popen(
            [os.fspath(options.path), *args],
            stderr=subprocess.PIPE,
            env=env,
            text=True,
            errors="replace",
            creationflags=creationflags,
        )
    except BaseException:
        if temp_dir is not None:
            shutil.rmtree(temp_dir, ignore_errors=True)
        raise
    return _TemporaryProcess(popen, temp_dir)


class Process:
    """A Chrome process with an open remote debugging port.

    The process is killed, and any temporary profile removed, on ``close``
    or on leaving a ``with`` block.
    """

    def __init__(self, options: LaunchOptions | None = None) -> None:
        options = options if options is not None else LaunchOptions()
        if options.path is None:
            path = Fetcher(options.fetcher_options).fetch()
            options = dataclasses.replace(options, path=path)

        self._child: _TemporaryProcess | None = None
        child = _start_process(options)
        log.info("Started Chrome. PID: %s", child.popen.pid)

        attempts = 0
        while True:
            if attempts > _MAX_ATTEMPTS:
                child.kill()
                raise NoAvailablePorts()
            try:
                url = _ws_url_from_output(child.popen)
            except RunningAsRootWithoutNoSandbox:
                child.kill()
                raise
            except (ChromeLaunchError, ValueError, OSError) as err:
                log.debug("Problem getting WebSocket URL from Chrome: %s", err)
                child.kill()
                if options.port is not None:
                    raise
                child = _start_process(options)
            else:
                log.debug("Found debugging WS URL: %s", url)
                break
            log.debug("Trying again to find available debugging port. Attempts: %d", attempts)
            attempts += 1

        if child.popen.stderr is not None:
            child.popen.stderr.close()

        self._child = child
        self.debug_ws_url: str = url
        self.pid: int = child.popen.pid
        self.user_data_dir: Path = (
            child.temp_dir if child.temp_dir is not None else Path(options.user_data_dir)
        )

    def close(self) -> None:
        """Kill the browser and remove its temporary profile, if any."""
        child, self._child = self._child, None
        if child is not None:
            child.kill()

    def __enter__(self) -> Process:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def __del__(self) -> None:
        if getattr(self, "_child", None) is not None:
            self.close()