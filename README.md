# chromium-launcher

This package finds, fetches and starts a Chrome or Chromium browser with its
DevTools remote-debugging port open. It then gives you the browser's WebSocket
debugger URL.

## Installation

```
pip install chromium-launcher
```

## Finding an installed browser

```python
from chromium_launcher.executable import default_executable

path = default_executable()
```

`default_executable()` looks for a browser in this order:

1. The `CHROME` environment variable, if it names a path that exists.
2. The usual Chrome, Chromium and Edge command names, searched on `PATH`.
3. The standard install locations on each platform:
   - macOS: the `/Applications` bundles.
   - Windows: the registry entry, then the default Edge location.

If none of these finds a browser, it raises `FileNotFoundError`.

## Downloading a Chromium snapshot

```python
from chromium_launcher.fetcher import Fetcher, FetcherOptions, Revision

fetcher = Fetcher(FetcherOptions(revision=Revision.specific("1095492")))
chrome_path = fetcher.fetch()
```

`FetcherOptions` has four fields:

- `revision`: defaults to `Revision.specific(CUR_REV)`. Use
  `Revision.latest()` to ask the snapshot server for the newest revision.
- `install_dir`: an optional directory that is searched first.
- `allow_download`: defaults to `True`.
- `allow_standard_dirs`: defaults to `True`. When it is on, the user data
  directory from `platformdirs` is also searched, and downloads can be stored
  there.

How `Fetcher.fetch()` works:

1. It looks for a folder named `<platform>-<revision>`. The platform is one of
   `linux`, `mac`, `mac_arm` or `win`.
2. If it finds the folder, it returns the path of the executable inside it.
3. If it does not, and downloading is allowed, it calls `Fetcher.download()`
   to download the zip archive, then unpacks it with `extract_archive()`.
4. If it finds nothing and may not download, it raises `FileNotFoundError`.

The module also provides these helpers:

- `current_platform()`
- `archive_name()`
- `download_url()`
- `latest_revision()`
- `get_size()`, which returns the size in MiB.

## Launching

```python
from chromium_launcher.options import LaunchOptions
from chromium_launcher.process import Process

with Process(LaunchOptions(headless=True)) as chrome:
    print(chrome.debug_ws_url, chrome.pid, chrome.user_data_dir)
```

### Options

`LaunchOptions` is a dataclass with these fields:

- `headless`, `sandbox`, `devtools`
- `enable_gpu`, `enable_logging`
- `window_size`, `port`
- `ignore_certificate_errors`
- `path`, `user_data_dir`
- `extensions`, `args`
- `ignore_default_args`, `disable_default_args`
- `fetcher_options`
- `idle_browser_timeout`, in seconds
- `process_envs`
- `proxy_server`

If `path` is not set, the browser is obtained through `Fetcher`. To build the
command line yourself, call `build_args(options, port, user_data_dir)`. The
default flags are in `DEFAULT_ARGS`.

### What happens at startup

- If no `user_data_dir` is given, a temporary profile is created. It is removed
  when the process is closed.
- If no `port` is given, `get_available_port()` picks a random free port from
  8000 to 8999. If the browser fails to report its URL, the launch is retried
  on a new port.
- `Process.close()` kills the browser. Leaving the `with` block does the same.

### Errors

Startup failures raise subclasses of `ChromeLaunchError`:

- `PortOpenTimeout`
- `NoAvailablePorts`
- `DebugPortInUse`
- `RunningAsRootWithoutNoSandbox`

`ws_url_from_lines()` scans the browser's stderr lines for the debugger URL.

## What this package does not do

This package only launches the browser and reports its debugger URL. It does
not speak the DevTools protocol. There are no tabs, navigation, page
evaluation, screenshots or event handling. To drive the browser, connect to
`debug_ws_url` with a DevTools client of your choice. The package has no
command-line program.