"""Preview playback through an mpv process controlled over its JSON IPC channel.

Without a parent window id mpv runs as a floating always-on-top window. With
one (an HWND on Windows, an NSView pointer on macOS, an XID on X11) the video
is embedded in that window.
"""

from __future__ import annotations

import json
import os
import socket
import subprocess
import sys
import threading
import time
from os import PathLike
from pathlib import Path

_IS_WINDOWS = os.name == "nt"
_IPC_READY_ATTEMPTS = 50
_IPC_READY_INTERVAL = 0.1
_IPC_TIMEOUT = 2.0
_DATA_KEY = '"data":'


class MpvError(Exception):
    """Raised when mpv cannot be started or controlled."""


def _format_number(value: float) -> str:
    value = float(value)
    return str(int(value)) if value.is_integer() else repr(value)


def _data_value(resp: str) -> str | None:
    start = resp.find(_DATA_KEY)
    if start < 0:
        return None
    after = resp[start + len(_DATA_KEY) :]
    ends = [i for i in (after.find(","), after.find("}")) if i >= 0]
    end = min(ends) if ends else len(after)
    return after[:end].strip()


def parse_property_float(resp: str) -> float:
    """Read the numeric ``data`` field of an mpv IPC response."""
    value = _data_value(resp)
    if value is None:
        raise MpvError(f"No data in response: {resp}")
    try:
        return float(value)
    except ValueError as exc:
        raise MpvError(f"Parse error: {exc} from '{value}'") from exc


def _extract_data_field(resp: str) -> str:
    value = _data_value(resp)
    return "null" if value is None else value


def _extract_data_field_str(resp: str) -> str:
    value = _data_value(resp)
    if value is None:
        return "null"
    return value if value.startswith('"') else f'"{value}"'


def find_mxf_files(directory: str | PathLike[str]) -> list[Path]:
    """Find MXF files below ``directory``, skipping hidden and ``__MACOSX`` folders."""
    results: list[Path] = []
    try:
        entries = sorted(Path(directory).iterdir())
    except OSError:
        return results
    for path in entries:
        if path.is_dir():
            if path.name == "__MACOSX" or path.name.startswith("."):
                continue
            results.extend(find_mxf_files(path))
        elif path.suffix.lower() == ".mxf":
            results.append(path)
    return results


def _loadfile_command(path: str | PathLike[str]) -> str:
    return json.dumps({"command": ["loadfile", os.fspath(path)]})


def _file_size(path: Path) -> int:
    try:
        return path.stat().st_size
    except OSError:
        return 0


class MpvPlayer:
    """An mpv process with IPC control; ``app_name`` names the socket and window."""

    def __init__(self, app_name: str, executable: str = "mpv") -> None:
        self._lock = threading.Lock()
        self._process: subprocess.Popen | None = None
        self._parent_wid: int | None = None
        self._executable = executable
        self.title = f"{app_name} Preview"
        if _IS_WINDOWS:
            self.ipc_path = rf"\\.\pipe\{app_name.lower()}-mpv-{os.getpid()}"
        else:
            self.ipc_path = f"/tmp/{app_name.lower()}-mpv-{os.getpid()}.sock"

    def __enter__(self) -> "MpvPlayer":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.kill()

    def __del__(self) -> None:
        try:
            self.kill()
        except Exception:
            pass

    def set_parent_wid(self, wid: int) -> None:
        """Embed mpv in the native window ``wid`` when it is next started."""
        with self._lock:
            self._parent_wid = wid

    def _can_connect(self) -> bool:
        if _IS_WINDOWS:
            try:
                with open(self.ipc_path, "r+b"):
                    return True
            except OSError:
                return False
        try:
            with socket.socket(socket.AF_UNIX, socket.SOCK_STREAM) as sock:
                sock.connect(self.ipc_path)
            return True
        except OSError:
            return False

    def _ipc_ready(self) -> bool:
        if _IS_WINDOWS:
            return self._can_connect()
        return os.path.exists(self.ipc_path)

    def _remove_socket(self) -> None:
        if not _IS_WINDOWS:
            try:
                os.remove(self.ipc_path)
            except OSError:
                pass

    def is_alive(self) -> bool:
        """Whether the mpv process is running and accepts IPC connections."""
        with self._lock:
            process = self._process
            if process is None or process.poll() is not None:
                return False
        return self._can_connect()

    def start_mpv(self) -> None:
        """Start mpv, replacing any running instance, and wait for its IPC."""
        with self._lock:
            old, self._process = self._process, None
            if old is not None:
                _terminate(old)
            self._remove_socket()

            args = [
                self._executable,
                "--idle=yes",
                "--no-terminal",
                "--keep-open=yes",
                "--osc=yes",
                f"--input-ipc-server={self.ipc_path}",
                f"--title={self.title}",
            ]
            if self._parent_wid is not None:
                args.append(f"--wid={self._parent_wid}")
            else:
                args += ["--force-window=yes", "--ontop=yes", "--geometry=640x360+0+0"]

            env = dict(os.environ)
            if sys.platform.startswith("linux"):
                # Force XWayland, where --ontop works.
                env.pop("WAYLAND_DISPLAY", None)

            try:
                self._process = subprocess.Popen(args, env=env)
            except OSError as exc:
                raise MpvError(f"Failed to start mpv: {exc}") from exc

        for _ in range(_IPC_READY_ATTEMPTS):
            if self._ipc_ready():
                return
            time.sleep(_IPC_READY_INTERVAL)
        raise MpvError("mpv IPC did not become available")

    def ensure_running(self) -> None:
        """Start mpv unless it is already running."""
        if not self.is_alive():
            self.start_mpv()

    def send_command(self, cmd: str) -> str:
        """Send one JSON IPC command and return the first response line."""
        if not self.is_alive():
            raise MpvError("mpv not running")
        payload = cmd.encode("utf-8") + b"\n"
        if _IS_WINDOWS:
            try:
                pipe = open(self.ipc_path, "r+b", buffering=0)
            except OSError as exc:
                raise MpvError(f"Failed to connect to mpv pipe: {exc}") from exc
            with pipe:
                try:
                    pipe.write(payload)
                except OSError as exc:
                    raise MpvError(f"Failed to send: {exc}") from exc
                return _read_line(pipe)

        sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        with sock:
            try:
                sock.connect(self.ipc_path)
            except OSError as exc:
                raise MpvError(f"Failed to connect to mpv: {exc}") from exc
            sock.settimeout(_IPC_TIMEOUT)
            try:
                sock.sendall(payload)
            except OSError as exc:
                raise MpvError(f"Failed to send: {exc}") from exc
            with sock.makefile("rb") as reader:
                return _read_line(reader)

    def kill(self) -> None:
        """Stop the mpv process and remove its IPC socket."""
        with self._lock:
            process, self._process = self._process, None
        if process is not None:
            _terminate(process)
        self._remove_socket()

    def load_file(self, path: str | PathLike[str]) -> None:
        """Load a media file, starting mpv if needed."""
        if not Path(path).exists():
            raise MpvError(f"File not found: {os.fspath(path)}")
        self.ensure_running()
        self.send_command(_loadfile_command(path))

    def load_package_dir(self, dir_path: str | PathLike[str]) -> None:
        """Load the picture MXF of a DCP/IMP directory.

        A file whose name contains ``pic`` is preferred; otherwise the largest MXF.
        """
        directory = Path(dir_path)
        if not directory.is_dir():
            raise MpvError(f"Not a directory: {os.fspath(dir_path)}")
        mxf_files = find_mxf_files(directory)
        if not mxf_files:
            raise MpvError("No MXF files found in directory")
        video = next((p for p in mxf_files if "pic" in p.name), None)
        if video is None:
            video = max(mxf_files, key=_file_size)
        self.ensure_running()
        self.send_command(_loadfile_command(video))

    def play_pause(self) -> None:
        self.send_command('{"command": ["cycle", "pause"]}')

    def seek(self, seconds: float) -> None:
        """Seek relative to the current position."""
        self.send_command(
            json.dumps({"command": ["seek", _format_number(seconds), "relative"]})
        )

    def seek_absolute(self, seconds: float) -> None:
        """Seek to an absolute position in seconds."""
        self.send_command(
            json.dumps({"command": ["seek", _format_number(seconds), "absolute"]})
        )

    def stop(self) -> None:
        self.send_command('{"command": ["stop"]}')

    def get_position(self) -> float:
        """Current playback position in seconds."""
        return parse_property_float(
            self.send_command('{"command": ["get_property", "time-pos"]}')
        )

    def get_duration(self) -> float:
        """Total duration in seconds."""
        return parse_property_float(
            self.send_command('{"command": ["get_property", "duration"]}')
        )

    def _query(self, prop: str) -> str:
        try:
            return self.send_command(json.dumps({"command": ["get_property", prop]}))
        except MpvError:
            return ""

    def get_metadata(self) -> str:
        """Position, duration, pause state and filename as a JSON object string."""
        pos = self._query("time-pos")
        dur = self._query("duration")
        paused = self._query("pause")
        fname = self._query("filename")
        return (
            f'{{"position": {_extract_data_field(pos)}, '
            f'"duration": {_extract_data_field(dur)}, '
            f'"paused": {_extract_data_field(paused)}, '
            f'"filename": {_extract_data_field_str(fname)}}}'
        )


def _read_line(reader) -> str:
    try:
        line = reader.readline()
    except OSError:
        return ""
    return line.decode("utf-8", errors="replace")


def _terminate(process: subprocess.Popen) -> None:
    try:
        process.kill()
    except OSError:
        pass
    try:
        process.wait()
    except OSError:
        pass