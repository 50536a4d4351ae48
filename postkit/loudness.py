"""EBU R128 loudness measurement through ffmpeg's loudnorm filter."""

from __future__ import annotations

import json
import subprocess
from dataclasses import dataclass
from os import PathLike


class LoudnessError(Exception):
    """Raised when loudness cannot be measured."""


@dataclass(frozen=True)
class LoudnessResult:
    """EBU R128 loudness figures."""

    integrated_lufs: float = 0.0
    range_lu: float = 0.0
    true_peak_dbtp: float = 0.0
    short_term_max_lufs: float = 0.0


def _as_float(value: object) -> float:
    if not isinstance(value, str):
        return 0.0
    try:
        return float(value)
    except ValueError:
        return 0.0


def parse_loudnorm_output(stderr: str) -> LoudnessResult:
    """Extract the loudnorm JSON block printed last on ffmpeg's stderr."""
    start = stderr.rfind("{")
    end = stderr.find("}", start) if start >= 0 else -1
    if start >= 0 and end >= 0:
        try:
            values = json.loads(stderr[start : end + 1])
        except json.JSONDecodeError:
            values = None
        if isinstance(values, dict):
            return LoudnessResult(
                integrated_lufs=_as_float(values.get("input_i")),
                range_lu=_as_float(values.get("input_lra")),
                true_peak_dbtp=_as_float(values.get("input_tp")),
            )
    raise LoudnessError("Failed to parse loudnorm output from ffmpeg")


def measure_loudness(input_path: str | PathLike[str]) -> LoudnessResult:
    """Run ffmpeg's loudnorm analysis on ``input_path``."""
    try:
        completed = subprocess.run(
            [
                "ffmpeg",
                "-i",
                str(input_path),
                "-af",
                "loudnorm=print_format=json",
                "-f",
                "null",
                "-",
            ],
            capture_output=True,
        )
    except OSError as exc:
        raise LoudnessError(f"Failed to run ffmpeg: {exc}") from exc
    return parse_loudnorm_output(completed.stderr.decode("utf-8", errors="replace"))