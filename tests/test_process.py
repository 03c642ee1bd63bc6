import json
import os
import socket
import stat
import sys
import time

import pytest

from chromium_launcher.options import LaunchOptions
from chromium_launcher.process import (
    ChromeLaunchError,
    DebugPortInUse,
    NoAvailablePorts,
    PortOpenTimeout,
    Process,
    RunningAsRootWithoutNoSandbox,
    get_available_port,
    port_is_available,
    ws_url_from_lines,
)

WS_URL = "ws://127.0.0.1:9222/devtools/browser/14804b82-0392-43be-b20f-d75678460e43"
LISTENING_LINE = f"DevTools listening on {WS_URL}"

FAKE_CHROME = """\
import json
import os
import sys
import time

record = os.environ.get("FAKE_CHROME_RECORD")
if record:
    with open(record, "w") as fh:
        json.dump({"argv": sys.argv[1:], "marker": os.environ.get("FAKE_CHROME_MARKER")}, fh)
output = os.environ.get("FAKE_CHROME_OUTPUT", "")
if output:
    sys.stderr.write(output + "\\n")
    sys.stderr.flush()
if os.environ.get("FAKE_CHROME_EXIT"):
    sys.exit(0)
time.sleep(60)
"""


@pytest.fixture
def fake_chrome(tmp_path):
    script = tmp_path / "fake-chrome"
    script.write_text(f"#!{sys.executable}\n" + FAKE_CHROME)
    script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return script


def _pid_alive(pid):
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    return True


def test_handle_errors_in_chrome_output():
    lines = [
        "[0228/194641.093619:ERROR:socket_posix.cc(144)] bind() returned an error, "
        "errno=0: Cannot assign requested address (99)"
    ]
    with pytest.raises(DebugPortInUse):
        ws_url_from_lines(lines)


def test_handle_errors_in_chrome_output_gvisor_netlink():
    lines = [
        "[0703/145506.975691:ERROR:address_tracker_linux.cc(214)] "
        "Could not bind NETLINK socket: Permission denied (13)"
    ]
    assert ws_url_from_lines(lines) is None


def test_ws_url_extracted_from_output():
    lines = ["some noise\n", LISTENING_LINE + "\n", "after\n"]
    assert ws_url_from_lines(lines) == WS_URL


def test_root_without_sandbox_is_reported():
    lines = ["Running as root without --no-sandbox is not supported. See ..."]
    with pytest.raises(RunningAsRootWithoutNoSandbox):
        ws_url_from_lines(lines)


def test_empty_output_has_no_url():
    assert ws_url_from_lines([]) is None


def test_error_messages():
    assert str(NoAvailablePorts()) == (
        "There are no available ports between 8000 and 9000 for debugging"
    )
    assert isinstance(PortOpenTimeout(), ChromeLaunchError)


def test_port_in_use_is_not_available():
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        sock.listen(1)
        port = sock.getsockname()[1]
        assert port_is_available(port) is False


def test_get_available_port_in_range():
    port = get_available_port()
    assert port is not None
    assert 8000 <= port < 9000


def test_launch_and_get_ws_url(fake_chrome, tmp_path):
    record = tmp_path / "record.json"
    options = LaunchOptions(
        path=fake_chrome,
        process_envs={
            "FAKE_CHROME_OUTPUT": LISTENING_LINE,
            "FAKE_CHROME_RECORD": str(record),
            "FAKE_CHROME_MARKER": "marker-value",
        },
    )
    with Process(options) as chrome:
        assert chrome.debug_ws_url == WS_URL
        assert _pid_alive(chrome.pid)
        recorded = json.loads(record.read_text())
    argv = recorded["argv"]
    assert recorded["marker"] == "marker-value"
    assert any(a.startswith("--remote-debugging-port=") for a in argv)
    assert f"--user-data-dir={chrome.user_data_dir}" in argv
    assert "--headless" in argv


def test_kills_process_on_close(fake_chrome):
    options = LaunchOptions(path=fake_chrome, process_envs={"FAKE_CHROME_OUTPUT": LISTENING_LINE})
    chrome = Process(options)
    pid = chrome.pid
    user_data_dir = chrome.user_data_dir
    assert chrome.debug_ws_url == WS_URL
    assert _pid_alive(pid) is True
    chrome.close()
    assert _pid_alive(pid) is False
    assert user_data_dir.exists() is False


def test_temporary_user_data_dir_is_removed_automatically(fake_chrome):
    options = LaunchOptions(path=fake_chrome, process_envs={"FAKE_CHROME_OUTPUT": LISTENING_LINE})
    assert options.user_data_dir is None
    with Process(options) as chrome:
        user_data_dir = chrome.user_data_dir
        assert user_data_dir.is_dir()
    assert not user_data_dir.is_dir()


def test_explicit_user_data_dir_is_kept(fake_chrome, tmp_path):
    profile = tmp_path / "profile"
    profile.mkdir()
    options = LaunchOptions(
        path=fake_chrome,
        user_data_dir=profile,
        process_envs={"FAKE_CHROME_OUTPUT": LISTENING_LINE},
    )
    with Process(options) as chrome:
        assert chrome.user_data_dir == profile
    assert profile.is_dir()


def test_no_instance_sharing(fake_chrome):
    options = LaunchOptions(path=fake_chrome, process_envs={"FAKE_CHROME_OUTPUT": LISTENING_LINE})
    chromes = [Process(options) for _ in range(3)]
    try:
        assert len({c.pid for c in chromes}) == 3
        assert len({c.user_data_dir for c in chromes}) == 3
    finally:
        for chrome in chromes:
            chrome.close()


def test_root_without_sandbox_aborts_launch(fake_chrome):
    options = LaunchOptions(
        path=fake_chrome,
        process_envs={
            "FAKE_CHROME_OUTPUT": "Running as root without --no-sandbox is not supported"
        },
    )
    with pytest.raises(RunningAsRootWithoutNoSandbox):
        Process(options)


def test_port_in_use_with_fixed_port(fake_chrome):
    options = LaunchOptions(
        path=fake_chrome,
        port=8123,
        process_envs={"FAKE_CHROME_OUTPUT": "[0228:ERROR:socket_posix.cc(144)] bind() failed"},
    )
    with pytest.raises(DebugPortInUse):
        Process(options)


def test_no_output_with_fixed_port_times_out(fake_chrome):
    options = LaunchOptions(path=fake_chrome, port=8124, process_envs={"FAKE_CHROME_EXIT": "1"})
    with pytest.raises(PortOpenTimeout):
        Process(options)


def test_retries_exhausted_without_fixed_port(fake_chrome):
    options = LaunchOptions(path=fake_chrome, process_envs={"FAKE_CHROME_EXIT": "1"})
    start = time.monotonic()
    with pytest.raises(NoAvailablePorts):
        Process(options)
    assert time.monotonic() - start < 60