"""TIFF frame loading and the grk_compress command-line encoder."""

from __future__ import annotations

import os
import shutil
import struct
import subprocess
from dataclasses import dataclass
from os import PathLike
from pathlib import Path

_IMAGE_WIDTH = 256
_IMAGE_LENGTH = 257
_BITS_PER_SAMPLE = 258
_COMPRESSION = 259
_STRIP_OFFSETS = 273
_SAMPLES_PER_PIXEL = 277
_STRIP_BYTE_COUNTS = 279
_PLANAR_CONFIGURATION = 284

# TIFF field type -> struct format character
_FIELD_FORMATS = {1: "B", 3: "H", 4: "I", 16: "Q"}


class TiffError(Exception):
    """Raised when a TIFF file cannot be loaded."""


@dataclass
class TiffFrame:
    """A TIFF frame as three planar component lists (R, G, B)."""

    components: tuple[list[int], list[int], list[int]]
    width: int
    height: int
    precision: int
    path: Path


def _read_tags(data: bytes) -> tuple[str, dict[int, tuple[int, ...]]]:
    magic = data[:4]
    if magic == b"II*\x00":
        order = "<"
    elif magic == b"MM\x00*":
        order = ">"
    else:
        raise TiffError("not a TIFF file")
    try:
        (ifd,) = struct.unpack_from(order + "I", data, 4)
        (count,) = struct.unpack_from(order + "H", data, ifd)
        tags: dict[int, tuple[int, ...]] = {}
        for entry in range(ifd + 2, ifd + 2 + 12 * count, 12):
            tag, field_type, n = struct.unpack_from(order + "HHI", data, entry)
            fmt = _FIELD_FORMATS.get(field_type)
            if fmt is None or n == 0:
                continue
            size = struct.calcsize(fmt) * n
            if size <= 4:
                value_at = entry + 8
            else:
                (value_at,) = struct.unpack_from(order + "I", data, entry + 8)
            tags[tag] = struct.unpack_from(f"{order}{n}{fmt}", data, value_at)
    except struct.error as exc:
        raise TiffError(f"malformed TIFF directory: {exc}") from exc
    return order, tags


def _read_strips(data: bytes, tags: dict[int, tuple[int, ...]]) -> bytes:
    offsets = tags.get(_STRIP_OFFSETS)
    if offsets is None:
        raise TiffError("Cannot read StripOffsets")
    counts = tags.get(_STRIP_BYTE_COUNTS)
    if counts is None:
        raise TiffError("Cannot read StripByteCounts")
    chunks = []
    for offset, count in zip(offsets, counts):
        chunk = data[offset : offset + count]
        if len(chunk) < count:
            raise TiffError("Read error: strip extends past end of file")
        chunks.append(chunk)
    return b"".join(chunks)


def _unpack_12bit(raw: bytes, total: int) -> list[int]:
    """Unpack MSB-first 12-bit samples: two samples in every three bytes."""
    samples: list[int] = []
    pos = 0
    while len(samples) < total and pos + 2 < len(raw):
        b0, b1, b2 = raw[pos], raw[pos + 1], raw[pos + 2]
        if len(samples) + 1 < total:
            samples.append((b0 << 4) | (b1 >> 4))
            samples.append(((b1 & 0x0F) << 8) | b2)
            pos += 3
        else:
            samples.append((b0 << 4) | (b1 >> 4))
            pos += 2
    return samples


def _deinterleave(samples, channels: int, num_pixels: int):
    needed = num_pixels * channels
    if len(samples) < needed:
        raise TiffError(
            f"TIFF read error: expected {needed} samples, found {len(samples)}"
        )
    return tuple(list(samples[c:needed:channels]) for c in range(3))


def load_tiff(path: str | PathLike[str]) -> TiffFrame:
    """Load an 8, 12 or 16-bit RGB TIFF into planar component lists."""
    path = Path(path)
    try:
        data = path.read_bytes()
    except OSError as exc:
        raise TiffError(f"Cannot open {path}: {exc}") from exc

    try:
        order, tags = _read_tags(data)
    except TiffError as exc:
        raise TiffError(f"TIFF decode error for {path}: {exc}") from exc

    if _IMAGE_WIDTH not in tags or _IMAGE_LENGTH not in tags:
        raise TiffError("TIFF dimensions error: missing image width or length")
    width = tags[_IMAGE_WIDTH][0]
    height = tags[_IMAGE_LENGTH][0]

    if _BITS_PER_SAMPLE not in tags:
        raise TiffError("Cannot read BitsPerSample")
    bits = tags[_BITS_PER_SAMPLE][0] & 0xFF

    channels = tags.get(_SAMPLES_PER_PIXEL, (3,))[0] & 0xFF
    if channels < 3:
        raise TiffError(f"Need ≥3 samples/pixel, got {channels}")
    if tags.get(_PLANAR_CONFIGURATION, (1,))[0] != 1:
        raise TiffError("Unsupported TIFF planar configuration")

    num_pixels = width * height

    if bits in (8, 16):
        if tags.get(_COMPRESSION, (1,))[0] != 1:
            raise TiffError(f"Unsupported TIFF compression for {path}")
        raw = _read_strips(data, tags)
        if bits == 8:
            samples = raw
        else:
            n = len(raw) // 2
            samples = struct.unpack(f"{order}{n}H", raw[: n * 2])
        components = _deinterleave(samples, channels, num_pixels)
    elif bits == 12:
        raw = _read_strips(data, tags)
        samples = _unpack_12bit(raw, num_pixels * channels)
        components = _deinterleave(samples, channels, num_pixels)
    else:
        raise TiffError(f"Unsupported bits/sample: {bits}")

    return TiffFrame(
        components=components,
        width=width,
        height=height,
        precision=bits,
        path=path,
    )


def find_grk_compress() -> Path | None:
    """Find grk_compress in ``$HOME/bin/grok/bin`` or else on PATH."""
    home = os.environ.get("HOME")
    if home is not None:
        candidate = Path(home) / "bin/grok/bin/grk_compress"
        if candidate.exists():
            return candidate
    found = shutil.which("grk_compress")
    return Path(found) if found else None


def _format_number(value: float) -> str:
    value = float(value)
    if value.is_integer():
        return str(int(value))
    return repr(value)


def compress_file_subprocess(
    grk_bin: str | PathLike[str],
    lib_path: str,
    input_path: str | PathLike[str],
    output_path: str | PathLike[str],
    ratio: float,
    num_resolutions: int,
    codeblock_size: int,
    progression: str,
) -> None:
    """Compress one TIFF to J2C with a single-threaded grk_compress process.

    Raises ``OSError`` if the process cannot be started and
    ``subprocess.CalledProcessError`` if it exits unsuccessfully.
    """
    args = [
        os.fspath(grk_bin),
        "-i",
        os.fspath(input_path),
        "-o",
        os.fspath(output_path),
        "-r",
        _format_number(ratio),
        "--xyz",
        "-n",
        str(num_resolutions),
        "-b",
        f"{codeblock_size},{codeblock_size}",
        "-p",
        progression,
        "-H",
        "1",
    ]
    env = dict(os.environ, LD_LIBRARY_PATH=lib_path)
    subprocess.run(
        args,
        env=env,
        stdout=subprocess.DEVNULL,
        stderr=subprocess.DEVNULL,
        check=True,
    )


def grok_lib_path() -> str:
    """Library directory of a home-installed Grok, or an empty string."""
    home = os.environ.get("HOME")
    if home is not None:
        candidate = f"{home}/bin/grok/lib64"
        if Path(candidate).exists():
            return candidate
    return ""