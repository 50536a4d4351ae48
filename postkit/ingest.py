"""Camera media detection, probing and transcoding through ffprobe/ffmpeg."""

from __future__ import annotations

import json
import logging
import subprocess
from dataclasses import dataclass, field
from enum import Enum
from os import PathLike
from pathlib import Path

logger = logging.getLogger(__name__)


class IngestError(Exception):
    """Raised when camera media cannot be ingested."""


class CameraFormat(Enum):
    """Camera raw and mezzanine formats."""

    ARRIRAW = "arriraw"
    RED_R3D = "red_r3d"
    SONY_RAW = "sony_raw"
    CANON_RAW = "canon_raw"
    BLACKMAGIC_BRAW = "blackmagic_braw"
    PRORES = "prores"
    DNXHR = "dnxhr"
    UNKNOWN = "unknown"


@dataclass
class IngestOptions:
    """Options for ingesting camera media."""

    source: Path = field(default_factory=Path)
    output_dir: Path = field(default_factory=Path)
    output_format: str = "dpx"
    colour_space: str = "ACES"
    debayer_quality: int = 3
    apply_lut: bool = False
    lut_path: Path | None = None
    gpu_device: int = -1


@dataclass
class ClipInfo:
    """Metadata of a detected camera clip."""

    path: Path = field(default_factory=Path)
    format: CameraFormat = CameraFormat.UNKNOWN
    width: int = 0
    height: int = 0
    frame_rate: float = 0.0
    frame_count: int = 0
    codec: str = ""
    colour_space: str = ""
    camera_model: str = ""
    reel_name: str = ""


_EXTENSION_FORMATS = {
    "ari": CameraFormat.ARRIRAW,
    "r3d": CameraFormat.RED_R3D,
    "braw": CameraFormat.BLACKMAGIC_BRAW,
    "mxf": CameraFormat.DNXHR,
}

_DIRECTORY_MARKERS = (
    ("ari", CameraFormat.ARRIRAW),
    ("r3d", CameraFormat.RED_R3D),
    ("braw", CameraFormat.BLACKMAGIC_BRAW),
)

_OUTPUT_EXTENSIONS = {
    "dpx": "dpx",
    "tiff": "tif",
    "tif": "tif",
    "exr": "exr",
    "png": "png",
    "prores": "mov",
}


def _has_files_with_ext(directory: Path, ext: str) -> bool:
    try:
        return any(
            entry.suffix[1:].lower() == ext.lower() for entry in directory.iterdir()
        )
    except OSError:
        return False


def _probe_mov_codec(path: Path) -> CameraFormat:
    try:
        completed = subprocess.run(
            ["ffprobe", "-v", "quiet", "-print_format", "json", "-show_streams", str(path)],
            capture_output=True,
        )
    except OSError:
        return CameraFormat.UNKNOWN
    text = completed.stdout.decode("utf-8", errors="replace")
    if "prores" in text:
        return CameraFormat.PRORES
    if "dnxh" in text:
        return CameraFormat.DNXHR
    return CameraFormat.UNKNOWN


def detect_format(source: str | PathLike[str]) -> CameraFormat:
    """Detect the camera format from an extension or a directory's contents."""
    source = Path(source)
    ext = source.suffix[1:].lower()
    if ext:
        if ext == "mov":
            fmt = _probe_mov_codec(source) if source.is_file() else CameraFormat.PRORES
        else:
            fmt = _EXTENSION_FORMATS.get(ext, CameraFormat.UNKNOWN)
        if fmt is not CameraFormat.UNKNOWN:
            return fmt

    if source.is_dir():
        for marker, fmt in _DIRECTORY_MARKERS:
            if _has_files_with_ext(source, marker):
                return fmt

    return CameraFormat.UNKNOWN


def _parse_float(text: str, default: float) -> float:
    try:
        return float(text)
    except ValueError:
        return default


def parse_fraction(s: str) -> float:
    """Parse ``"num/den"`` or a plain number; bad input gives 0.0."""
    parts = s.split("/")
    if len(parts) == 2:
        num = _parse_float(parts[0], 0.0)
        den = _parse_float(parts[1], 1.0)
        return num / den if den > 0.0 else 0.0
    return _parse_float(s, 0.0)


def _as_uint(value: object) -> int:
    if isinstance(value, int) and not isinstance(value, bool) and value >= 0:
        return value
    return 0


def _clip_from_probe(path: Path, fmt: CameraFormat, stdout: bytes) -> ClipInfo:
    try:
        info = json.loads(stdout)
    except (json.JSONDecodeError, UnicodeDecodeError):
        info = None
    streams = info.get("streams") if isinstance(info, dict) else None
    if not isinstance(streams, list):
        streams = []
    streams = [s for s in streams if isinstance(s, dict)]

    video = next((s for s in streams if s.get("codec_type") == "video"), None)
    width = height = 0
    fps = 0.0
    codec = ""
    if video is not None:
        width = _as_uint(video.get("width"))
        height = _as_uint(video.get("height"))
        rate = video.get("r_frame_rate")
        fps = parse_fraction(rate if isinstance(rate, str) else "24/1")
        name = video.get("codec_name")
        codec = name if isinstance(name, str) else ""

    frame_count = 0
    if streams:
        nb_frames = streams[0].get("nb_frames")
        if isinstance(nb_frames, str) and nb_frames.isascii() and nb_frames.isdigit():
            frame_count = int(nb_frames)

    return ClipInfo(
        path=path,
        format=fmt,
        width=width,
        height=height,
        frame_rate=fps,
        frame_count=frame_count,
        codec=codec,
        reel_name=path.stem,
    )


def scan_media(source: str | PathLike[str]) -> list[ClipInfo]:
    """Probe every recognised clip in ``source`` (a file or a directory)."""
    source = Path(source)
    if source.is_file():
        entries = [source]
    else:
        try:
            entries = sorted(p for p in source.iterdir() if p.is_file())
        except OSError:
            entries = []

    clips = []
    for path in entries:
        fmt = detect_format(path)
        if fmt is CameraFormat.UNKNOWN:
            continue
        try:
            completed = subprocess.run(
                [
                    "ffprobe",
                    "-v",
                    "quiet",
                    "-print_format",
                    "json",
                    "-show_streams",
                    "-show_format",
                    str(path),
                ],
                capture_output=True,
            )
        except OSError:
            clips.append(ClipInfo(path=path, format=fmt))
            continue
        clips.append(_clip_from_probe(path, fmt, completed.stdout))
    return clips


def ingest(opts: IngestOptions) -> list[ClipInfo]:
    """Transcode every clip found in ``opts.source`` with ffmpeg.

    Returns the clips ingested; raises ``IngestError`` on the first failure.
    """
    output_dir = Path(opts.output_dir)
    try:
        output_dir.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise IngestError(f"Failed to create output directory: {exc}") from exc

    clips = scan_media(opts.source)
    if not clips:
        raise IngestError(f"No media clips found in {opts.source}")

    output_ext = _OUTPUT_EXTENSIONS.get(opts.output_format, "dpx")
    use_lut = opts.apply_lut and opts.lut_path is not None and Path(opts.lut_path).exists()

    for clip in clips:
        clip_out_dir = output_dir / clip.reel_name
        try:
            clip_out_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise IngestError(f"Failed to create clip output dir: {exc}") from exc

        cmd = ["ffmpeg", "-y", "-i", str(clip.path)]
        if use_lut:
            cmd += ["-vf", f"lut3d={opts.lut_path}"]
        if output_ext == "mov":
            cmd += ["-c:v", "prores_ks", "-profile:v", "4444"]
            cmd.append(str(clip_out_dir / f"{clip.reel_name}.mov"))
        else:
            cmd.append(str(clip_out_dir / f"%06d.{output_ext}"))

        try:
            completed = subprocess.run(cmd, capture_output=True)
        except OSError as exc:
            raise IngestError(f"Failed to run ffmpeg: {exc}") from exc
        if completed.returncode != 0:
            stderr = completed.stderr.decode("utf-8", errors="replace")
            raise IngestError(f"Failed to ingest {clip.reel_name}: {stderr}")
        logger.info("Ingested %s → %s", clip.reel_name, clip_out_dir)

    return clips