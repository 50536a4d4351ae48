"""JPEG 2000 encoding with parallel grk_compress processes fed from a raw stream."""

from __future__ import annotations

import os
import shutil
import subprocess
import tempfile
import threading
import time
from os import PathLike
from pathlib import Path
from typing import BinaryIO, Callable

from postkit.grok_encoder import (
    BoundedQueue,
    CompressParams,
    EncodeProgress,
    PipelineResult,
)

_TRANSFER_SIZE = 64 * 1024
_THREADS_PER_WORKER = 2
_CINEMA_2K = 0x0003
_CINEMA_4K = 0x0004


def _format_number(value: float) -> str:
    value = float(value)
    return str(int(value)) if value.is_integer() else repr(value)


def build_grk_args(params: CompressParams, threads_per_worker: int) -> list[str]:
    """Encoder options for grk_compress chosen from the profile in ``params``."""
    if params.profile == _CINEMA_2K:
        return ["-w", str(params.frame_rate), "-H", str(threads_per_worker)]
    if params.profile == _CINEMA_4K:
        return ["-x", "-H", str(threads_per_worker)]
    return [
        "-r",
        _format_number(params.compression_ratio),
        "-b",
        f"{params.codeblock_size},{params.codeblock_size}",
        "-p",
        "CPRL",
    ]


def _default_tmp_dir() -> Path:
    shm = Path("/dev/shm")
    base = shm if shm.is_dir() else Path(tempfile.gettempdir())
    return base / "grok_encode_tmp"


def _read_up_to(stream: BinaryIO, size: int) -> bytes:
    """Read ``size`` bytes, fewer only at end of stream."""
    parts: list[bytes] = []
    remaining = size
    while remaining > 0:
        chunk = stream.read(remaining)
        if not chunk:
            break
        parts.append(chunk)
        remaining -= len(chunk)
    return b"".join(parts)


class _State:
    def __init__(self, work_queue: BoundedQueue) -> None:
        self.lock = threading.Lock()
        self.error = threading.Event()
        self.first_error = ""
        self.encoded = 0
        self.work_queue = work_queue

    def fail(self, message: str) -> None:
        with self.lock:
            if not self.first_error:
                self.first_error = message
        self.error.set()
        self.work_queue.close()

    def count(self) -> None:
        with self.lock:
            self.encoded += 1

    @property
    def frames_encoded(self) -> int:
        with self.lock:
            return self.encoded


def encode_pipeline_subprocess(
    output_dir: str | PathLike[str],
    params: CompressParams,
    grk_compress_bin: str | PathLike[str],
    total_frames: int,
    width: int,
    height: int,
    frame_size: int,
    stream: BinaryIO,
    cancel: threading.Event,
    on_progress: Callable[[EncodeProgress], None],
    tmp_dir: str | PathLike[str] | None = None,
) -> PipelineResult:
    """Encode raw rgb48be frames read from ``stream`` with parallel grk_compress runs.

    Each ``frame_size`` bytes of the stream are written to a file in ``tmp_dir``
    (a ramdisk by default) and compressed to ``frame_XXXXXXXX.j2c`` in
    ``output_dir``. A trailing partial frame is ignored.
    """
    output_dir = Path(output_dir)
    try:
        output_dir.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        return PipelineResult(
            False, f"Failed to create output directory: {exc}", 0, output_dir
        )

    tmp = Path(tmp_dir) if tmp_dir is not None else _default_tmp_dir()
    try:
        tmp.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        return PipelineResult(False, f"Failed to create tmp dir: {exc}", 0, output_dir)

    num_workers = max(1, (os.cpu_count() or 16) // 2)
    work_queue: BoundedQueue[tuple[int, Path]] = BoundedQueue(num_workers * 2)
    state = _State(work_queue)
    grk_bin = os.fspath(grk_compress_bin)
    codec_args = build_grk_args(params, _THREADS_PER_WORKER)
    raw_spec = f"{width},{height},3,16,u"
    start = time.monotonic()

    def report() -> None:
        done = state.frames_encoded
        elapsed = time.monotonic() - start
        on_progress(
            EncodeProgress(
                frames_encoded=done,
                total_frames=total_frames,
                fps=done / elapsed if elapsed > 0 else 0.0,
                elapsed_secs=elapsed,
            )
        )

    def worker() -> None:
        while not cancel.is_set() and not state.error.is_set():
            item = work_queue.pop()
            if item is None:
                break
            index, input_path = item
            output_path = output_dir / f"frame_{index:08d}.j2c"
            try:
                completed = subprocess.run(
                    [
                        grk_bin,
                        "-i",
                        str(input_path),
                        "-F",
                        raw_spec,
                        "-o",
                        str(output_path),
                        *codec_args,
                        "-quiet",
                    ],
                    stdout=subprocess.DEVNULL,
                    stderr=subprocess.DEVNULL,
                )
            except OSError as exc:
                state.fail(f"Failed to spawn grk_compress: {exc}")
                break
            if completed.returncode != 0:
                state.fail(
                    f"grk_compress failed frame {index}: exit {completed.returncode}"
                )
                break
            state.count()
            try:
                input_path.unlink()
            except OSError:
                pass

    workers = [
        threading.Thread(target=worker, name=f"grk-worker-{n}", daemon=True)
        for n in range(num_workers)
    ]
    for thread in workers:
        thread.start()

    index = 0
    while not cancel.is_set() and not state.error.is_set():
        input_path = tmp / f"frame_{index:08d}.raw"
        complete = True
        try:
            with open(input_path, "wb") as handle:
                remaining = frame_size
                while remaining > 0:
                    want = min(remaining, _TRANSFER_SIZE)
                    try:
                        chunk = _read_up_to(stream, want)
                    except OSError as exc:
                        state.fail(f"Read error frame {index}: {exc}")
                        complete = False
                        break
                    if len(chunk) < want:
                        complete = False
                        break
                    try:
                        handle.write(chunk)
                    except OSError as exc:
                        state.fail(f"Failed to write frame {index}: {exc}")
                        complete = False
                        break
                    remaining -= want
        except OSError as exc:
            state.fail(f"Failed to create frame file: {exc}")
            break
        if not complete:
            try:
                input_path.unlink()
            except OSError:
                pass
            break
        if not work_queue.push((index, input_path)):
            break
        index += 1
        report()

    work_queue.close()
    for thread in workers:
        thread.join()

    report()
    shutil.rmtree(tmp, ignore_errors=True)

    final_count = state.frames_encoded
    error = state.first_error
    return PipelineResult(
        success=not error and final_count == total_frames,
        error=error,
        frames_encoded=final_count,
        output_dir=output_dir,
    )