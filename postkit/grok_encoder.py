"""JPEG 2000 encoding pipeline: producer, bounded queue, encoder threads, writer."""

from __future__ import annotations

import dataclasses
import os
import queue
import struct
import subprocess
import tempfile
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from os import PathLike
from pathlib import Path
from typing import Callable, Generic, TypeVar, Union

from postkit.grok import find_grk_compress, grok_lib_path

T = TypeVar("T")

_MAX_ENCODER_THREADS = 4
_PROGRESS_INTERVAL = 0.2


@dataclass
class PlanarFrame:
    """Planar component lists (R, G, B), each holding width*height samples."""

    components: tuple[list[int], list[int], list[int]]
    width: int
    height: int
    precision: int
    index: int


@dataclass
class PackedFrame:
    """Interleaved rgb48be bytes, six bytes per pixel."""

    data: bytes
    width: int
    height: int
    precision: int
    index: int

    def to_planar(self) -> PlanarFrame:
        """Deinterleave the big-endian samples into a planar frame."""
        pixels = self.width * self.height
        needed = pixels * 6
        if len(self.data) < needed:
            raise ValueError(
                f"packed frame {self.index} holds {len(self.data)} bytes, "
                f"expected {needed}"
            )
        samples = struct.unpack(f">{pixels * 3}H", bytes(self.data[:needed]))
        components = tuple(list(samples[c::3]) for c in range(3))
        return PlanarFrame(
            components=components,
            width=self.width,
            height=self.height,
            precision=self.precision,
            index=self.index,
        )


RawFrame = Union[PlanarFrame, PackedFrame]


@dataclass(frozen=True)
class EncodedFrame:
    """A compressed J2K codestream and its frame index."""

    data: bytes
    index: int


class ProgressionOrder(Enum):
    LRCP = "LRCP"
    RLCP = "RLCP"
    RPCL = "RPCL"
    PCRL = "PCRL"
    CPRL = "CPRL"


@dataclass
class CompressParams:
    """DCI JPEG 2000 compression parameters."""

    compression_ratio: float = 10.0
    num_resolutions: int = 6
    codeblock_size: int = 32
    progression: ProgressionOrder = ProgressionOrder.CPRL
    num_layers: int = 1
    profile: int = 0x0003
    num_guard_bits: int = 1
    frame_rate: int = 24
    irreversible: bool = True
    mct: bool = True
    apply_xyz_transform: bool = False
    threads_per_codec: int = 1


@dataclass(frozen=True)
class EncodeProgress:
    frames_encoded: int
    total_frames: int
    fps: float
    elapsed_secs: float


@dataclass
class PipelineResult:
    """Outcome of an encoding run."""

    success: bool
    error: str
    frames_encoded: int
    output_dir: Path


class BoundedQueue(Generic[T]):
    """Fixed-capacity work queue with backpressure; pops the newest item first."""

    def __init__(self, capacity: int) -> None:
        self._items: list[T] = []
        self._capacity = capacity
        self._closed = False
        self._cond = threading.Condition()

    def push(self, item: T) -> bool:
        """Add ``item``, waiting while full; returns False once the queue is closed."""
        with self._cond:
            while len(self._items) >= self._capacity:
                if self._closed:
                    return False
                self._cond.wait()
            if self._closed:
                return False
            self._items.append(item)
            self._cond.notify_all()
            return True

    def pop(self) -> T | None:
        """Take an item, waiting while empty; returns None when closed and drained."""
        with self._cond:
            while True:
                if self._items:
                    item = self._items.pop()
                    self._cond.notify_all()
                    return item
                if self._closed:
                    return None
                self._cond.wait()

    def close(self) -> None:
        """Close the queue and wake every waiting thread."""
        with self._cond:
            self._closed = True
            self._cond.notify_all()


Compressor = Callable[[RawFrame, CompressParams], bytes]
ProgressCallback = Callable[[EncodeProgress], None]


def _raw_bytes(frame: RawFrame) -> bytes:
    if isinstance(frame, PackedFrame):
        return bytes(frame.data[: frame.width * frame.height * 6])
    r, g, b = frame.components
    interleaved = [sample for pixel in zip(r, g, b) for sample in pixel]
    if frame.precision <= 8:
        return bytes(interleaved)
    return struct.pack(f">{len(interleaved)}H", *interleaved)


def _grk_compress_frame(frame: RawFrame, params: CompressParams) -> bytes:
    """Compress one frame with a grk_compress process, through temporary files."""
    grk_bin = find_grk_compress()
    if grk_bin is None:
        raise RuntimeError("grk_compress not found")
    precision = 16 if isinstance(frame, PackedFrame) else frame.precision
    env = dict(os.environ)
    lib_path = grok_lib_path()
    if lib_path:
        env["LD_LIBRARY_PATH"] = lib_path
    ratio = float(params.compression_ratio)
    ratio_text = str(int(ratio)) if ratio.is_integer() else repr(ratio)
    with tempfile.TemporaryDirectory(prefix="grok_frame_") as tmp:
        raw_path = Path(tmp) / f"frame_{frame.index:08d}.raw"
        out_path = Path(tmp) / f"frame_{frame.index:08d}.j2c"
        raw_path.write_bytes(_raw_bytes(frame))
        completed = subprocess.run(
            [
                os.fspath(grk_bin),
                "-i",
                str(raw_path),
                "-F",
                f"{frame.width},{frame.height},3,{precision},u",
                "-o",
                str(out_path),
                "-r",
                ratio_text,
                "-n",
                str(params.num_resolutions),
                "-b",
                f"{params.codeblock_size},{params.codeblock_size}",
                "-p",
                params.progression.value,
                "-H",
                str(params.threads_per_codec),
            ],
            env=env,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
        )
        if completed.returncode != 0:
            raise RuntimeError(f"grk_compress exited with status {completed.returncode}")
        data = out_path.read_bytes()
    if not data:
        raise RuntimeError("compression returned 0 bytes")
    return data


class _SharedState:
    def __init__(self, input_queue: BoundedQueue) -> None:
        self.lock = threading.Lock()
        self.error = threading.Event()
        self.first_error = ""
        self.encoded = 0
        self.input_queue = input_queue

    def fail(self, message: str) -> None:
        with self.lock:
            if not self.first_error:
                self.first_error = message
        self.error.set()
        self.input_queue.close()

    def count_written(self) -> None:
        with self.lock:
            self.encoded += 1

    @property
    def frames_encoded(self) -> int:
        with self.lock:
            return self.encoded


def _failure(output_dir: Path, message: str) -> PipelineResult:
    return PipelineResult(False, message, 0, output_dir)


def encode_pipeline(
    output_dir: str | PathLike[str],
    params: CompressParams,
    total_frames: int,
    cancel: threading.Event,
    frame_producer: Callable[[], RawFrame | None],
    on_progress: ProgressCallback,
    compress: Compressor | None = None,
) -> PipelineResult:
    """Encode frames from ``frame_producer`` (None ends the stream) to .j2c files.

    Encoder threads take frames from a bounded queue and hand codestreams to a
    writer thread that stores them as ``frame_XXXXXXXX.j2c`` in ``output_dir``.
    ``compress`` defaults to running grk_compress on each frame.
    """
    output_dir = Path(output_dir)
    try:
        output_dir.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        return _failure(output_dir, f"Failed to create output directory: {exc}")

    compress_fn = compress if compress is not None else _grk_compress_frame
    num_encoders = min(os.cpu_count() or 4, _MAX_ENCODER_THREADS)
    capacity = max(4, min(num_encoders * 2, 32))
    input_queue: BoundedQueue[RawFrame] = BoundedQueue(capacity)
    encoded_queue: queue.Queue[EncodedFrame | None] = queue.Queue()
    state = _SharedState(input_queue)
    codec_params = dataclasses.replace(params, threads_per_codec=1)
    remaining = [num_encoders]
    start = time.monotonic()

    def writer() -> None:
        while (frame := encoded_queue.get()) is not None:
            path = output_dir / f"frame_{frame.index:08d}.j2c"
            try:
                path.write_bytes(frame.data)
            except OSError as exc:
                state.fail(f"Write error frame {frame.index}: {exc}")
                return
            state.count_written()

    def encoder() -> None:
        try:
            while not cancel.is_set() and not state.error.is_set():
                frame = input_queue.pop()
                if frame is None:
                    break
                try:
                    data = compress_fn(frame, codec_params)
                except Exception as exc:
                    state.fail(f"Encode failed frame {frame.index}: {exc}")
                    break
                encoded_queue.put(EncodedFrame(bytes(data), frame.index))
        finally:
            with state.lock:
                remaining[0] -= 1
                last = remaining[0] == 0
            if last:
                input_queue.close()
                encoded_queue.put(None)

    writer_thread = threading.Thread(target=writer, name="j2k-writer", daemon=True)
    writer_thread.start()
    encoders = [
        threading.Thread(target=encoder, name=f"j2k-encoder-{n}", daemon=True)
        for n in range(num_encoders)
    ]
    for thread in encoders:
        thread.start()

    while not cancel.is_set() and not state.error.is_set():
        frame = frame_producer()
        if frame is None or not input_queue.push(frame):
            break
    input_queue.close()

    while True:
        writer_alive = writer_thread.is_alive()
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
        if (
            done >= total_frames
            or state.error.is_set()
            or cancel.is_set()
            or not writer_alive
        ):
            break
        time.sleep(_PROGRESS_INTERVAL)

    for thread in encoders:
        thread.join()
    writer_thread.join()

    frames_encoded = state.frames_encoded
    if cancel.is_set():
        return PipelineResult(False, "Cancelled", frames_encoded, output_dir)
    if state.first_error:
        return PipelineResult(False, state.first_error, frames_encoded, output_dir)
    return PipelineResult(True, "", frames_encoded, output_dir)


def encode_video_pipeline(
    input_video: str | PathLike[str],
    output_dir: str | PathLike[str],
    params: CompressParams,
    total_frames: int,
    width: int,
    height: int,
    cancel: threading.Event,
    on_progress: ProgressCallback,
    compress: Compressor | None = None,
) -> PipelineResult:
    """Decode ``input_video`` with ffmpeg to rgb48be frames and encode them."""
    output_dir = Path(output_dir)
    try:
        output_dir.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        return _failure(output_dir, f"Failed to create output directory: {exc}")

    try:
        child = subprocess.Popen(
            [
                "ffmpeg",
                "-y",
                "-i",
                os.fspath(input_video),
                "-pix_fmt",
                "rgb48be",
                "-f",
                "rawvideo",
                "pipe:1",
            ],
            stdout=subprocess.PIPE,
            stderr=subprocess.DEVNULL,
        )
    except OSError as exc:
        return _failure(output_dir, f"Failed to spawn ffmpeg: {exc}")

    frame_size = width * height * 6
    next_index = [0]

    def produce() -> PackedFrame | None:
        if cancel.is_set():
            return None
        try:
            data = child.stdout.read(frame_size)
        except OSError:
            return None
        if len(data) < frame_size:
            return None
        index = next_index[0]
        next_index[0] += 1
        return PackedFrame(data=data, width=width, height=height, precision=16, index=index)

    try:
        return encode_pipeline(
            output_dir, params, total_frames, cancel, produce, on_progress, compress
        )
    finally:
        try:
            child.kill()
        except OSError:
            pass
        child.wait()