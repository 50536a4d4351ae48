"""JPEG 2000 codestream header parsing and DCI bitrate analysis."""

from __future__ import annotations

import os
import struct
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable

SOC = 0xFF4F  # Start of codestream
SIZ = 0xFF51  # Image and tile size
COD = 0xFF52  # Coding style default
SOT = 0xFF90  # Start of tile-part
SOD = 0xFF93  # Start of data
EOC = 0xFFD9  # End of codestream

_SIZ_FIXED = struct.Struct(">HIIIIIIIIH")

_DCI_2K_MAX_WIDTH = 2048
_DCI_2K_MAX_MBPS = 250.0
_DCI_4K_MAX_MBPS = 500.0


@dataclass
class J2kHeader:
    """Main header fields of a JPEG 2000 codestream."""

    width: int = 0
    height: int = 0
    num_components: int = 0
    bit_depth: int = 0
    is_signed: bool = False
    profile: int = 0
    tile_width: int = 0
    tile_height: int = 0
    num_decomp_levels: int = 0
    progression_order: int = 0
    num_layers: int = 0


class J2kProfile(Enum):
    """DCI compliance profile, derived from the RSIZ value."""

    NONE = 0
    CINEMA_S2K = 3
    CINEMA_S4K = 4
    BROADCAST = 5
    UNKNOWN = -1

    @classmethod
    def from_rsiz(cls, rsiz: int) -> "J2kProfile":
        """Map an RSIZ value to a profile; unlisted values give UNKNOWN."""
        try:
            member = cls(rsiz)
        except ValueError:
            return cls.UNKNOWN
        return cls.UNKNOWN if member is cls.UNKNOWN else member


@dataclass
class FrameBitrate:
    """Bitrate of a single frame."""

    frame_index: int = 0
    size_bytes: int = 0
    bitrate_mbps: float = 0.0


@dataclass
class BitrateAnalysis:
    """Summary of the bitrate of a frame sequence against the DCI limit."""

    frame_count: int = 0
    avg_bitrate_mbps: float = 0.0
    max_bitrate_mbps: float = 0.0
    min_bitrate_mbps: float = 0.0
    dci_max_mbps: float = 0.0
    dci_compliant: bool = False
    over_limit_frames: list[FrameBitrate] = field(default_factory=list)


def _u16(data: bytes, pos: int) -> int:
    return int.from_bytes(data[pos : pos + 2], "big")


def parse_j2k_header(data: bytes) -> J2kHeader | None:
    """Parse the main header; returns None if ``data`` is not a codestream."""
    data = bytes(data)
    if len(data) < 4 or _u16(data, 0) != SOC:
        return None

    hdr = J2kHeader()
    pos = 2
    while pos + 2 < len(data):
        marker = _u16(data, pos)
        pos += 2
        if marker in (SOD, EOC, SOT):
            break
        if pos + 2 > len(data):
            break
        seg_len = _u16(data, pos)
        pos += 2
        if seg_len < 2 or pos + seg_len - 2 > len(data):
            break
        seg = data[pos : pos + seg_len - 2]

        if marker == SIZ and len(seg) >= 36:
            (
                hdr.profile,
                hdr.width,
                hdr.height,
                _x_offset,
                _y_offset,
                hdr.tile_width,
                hdr.tile_height,
                _tile_x_offset,
                _tile_y_offset,
                hdr.num_components,
            ) = _SIZ_FIXED.unpack_from(seg, 0)
            if len(seg) > 36:
                ssiz = seg[36]
                hdr.is_signed = bool(ssiz & 0x80)
                hdr.bit_depth = (ssiz & 0x7F) + 1
        elif marker == COD and len(seg) >= 6:
            hdr.progression_order = seg[1]
            hdr.num_layers = _u16(seg, 2)
            hdr.num_decomp_levels = seg[5]

        pos += seg_len - 2

    return hdr


def dci_max_bitrate_mbps(width: int) -> float:
    """DCI maximum bitrate: 500 Mbps above 2048 pixels wide, else 250."""
    if width < 0:
        raise ValueError(f"width must not be negative, got {width}")
    if width > _DCI_2K_MAX_WIDTH:
        return _DCI_4K_MAX_MBPS
    return _DCI_2K_MAX_MBPS


def analyse_bitrate(
    j2k_files: Iterable[str | os.PathLike[str]], fps: float, width: int
) -> BitrateAnalysis:
    """Measure per-frame bitrate of J2K files; unreadable files count as empty."""
    max_allowed = dci_max_bitrate_mbps(width)
    total_bits = 0
    count = 0
    rates: list[float] = []
    over_limit: list[FrameBitrate] = []

    for index, path in enumerate(j2k_files):
        try:
            size = os.stat(path).st_size
        except OSError:
            size = 0
        bits = size * 8
        mbps = bits / 1_000_000.0 * fps
        total_bits += bits
        count += 1
        rates.append(mbps)
        if mbps > max_allowed:
            over_limit.append(FrameBitrate(index, size, mbps))

    avg = (total_bits / count) / 1_000_000.0 * fps if count else 0.0
    return BitrateAnalysis(
        frame_count=count,
        avg_bitrate_mbps=avg,
        max_bitrate_mbps=max(rates + [0.0]),
        min_bitrate_mbps=min(rates) if rates else 0.0,
        dci_max_mbps=max_allowed,
        dci_compliant=not over_limit,
        over_limit_frames=over_limit,
    )