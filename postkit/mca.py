"""Multi-channel audio labels and soundfield groups (SMPTE ST 377-4)."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class McaTagSymbol(Enum):
    """SMPTE MCA channel tag symbols; the value is the tag symbol string."""

    L = "chL"
    R = "chR"
    C = "chC"
    LFE = "chLFE"
    LS = "chLs"
    RS = "chRs"
    LSS = "chLss"
    RSS = "chRss"
    LRS = "chLrs"
    RRS = "chRrs"
    LT = "chLt"
    RT = "chRt"
    M1 = "chM1"
    M2 = "chM2"
    LTF = "chLtf"
    RTF = "chRtf"
    LTR = "chLtr"
    RTR = "chRtr"
    VI = "chVIN"
    HI = "chHI"

    def tag_name(self) -> str:
        """Human-readable name of this channel."""
        return _TAG_NAMES[self]

    def symbol_string(self) -> str:
        """MCA tag symbol string, such as ``chL``."""
        return self.value


_TAG_NAMES = {
    McaTagSymbol.L: "Left",
    McaTagSymbol.R: "Right",
    McaTagSymbol.C: "Center",
    McaTagSymbol.LFE: "LFE",
    McaTagSymbol.LS: "Left Surround",
    McaTagSymbol.RS: "Right Surround",
    McaTagSymbol.LSS: "Left Side Surround",
    McaTagSymbol.RSS: "Right Side Surround",
    McaTagSymbol.LRS: "Left Rear Surround",
    McaTagSymbol.RRS: "Right Rear Surround",
    McaTagSymbol.LT: "Left Total",
    McaTagSymbol.RT: "Right Total",
    McaTagSymbol.M1: "Mono One",
    McaTagSymbol.M2: "Mono Two",
    McaTagSymbol.LTF: "Left Top Front",
    McaTagSymbol.RTF: "Right Top Front",
    McaTagSymbol.LTR: "Left Top Rear",
    McaTagSymbol.RTR: "Right Top Rear",
    McaTagSymbol.VI: "Visually Impaired",
    McaTagSymbol.HI: "Hearing Impaired",
}


@dataclass
class McaLabel:
    """A single audio channel label."""

    symbol: McaTagSymbol
    tag_name: str
    tag_symbol: str
    channel_index: int
    spoken_language: str = ""

    @classmethod
    def for_symbol(cls, symbol: McaTagSymbol, index: int) -> "McaLabel":
        return cls(symbol, symbol.tag_name(), symbol.symbol_string(), index)


@dataclass
class McaSoundfield:
    """A soundfield group: a named collection of channels."""

    name: str
    channels: list[McaLabel] = field(default_factory=list)


def _soundfield(name: str, *symbols: McaTagSymbol) -> McaSoundfield:
    return McaSoundfield(
        name, [McaLabel.for_symbol(sym, i) for i, sym in enumerate(symbols)]
    )


def soundfield_stereo() -> McaSoundfield:
    """Standard 2.0 soundfield."""
    return _soundfield("20", McaTagSymbol.L, McaTagSymbol.R)


def soundfield_51() -> McaSoundfield:
    """Standard 5.1 soundfield."""
    return _soundfield(
        "51",
        McaTagSymbol.L,
        McaTagSymbol.R,
        McaTagSymbol.C,
        McaTagSymbol.LFE,
        McaTagSymbol.LS,
        McaTagSymbol.RS,
    )


def soundfield_71() -> McaSoundfield:
    """Standard 7.1 soundfield."""
    return _soundfield(
        "71",
        McaTagSymbol.L,
        McaTagSymbol.R,
        McaTagSymbol.C,
        McaTagSymbol.LFE,
        McaTagSymbol.LS,
        McaTagSymbol.RS,
        McaTagSymbol.LRS,
        McaTagSymbol.RRS,
    )


def soundfield_51_with_hi_vi() -> McaSoundfield:
    """5.1 followed by Hearing Impaired and Visually Impaired tracks."""
    sf = soundfield_51()
    sf.name = "51+HI+VI"
    sf.channels.append(McaLabel.for_symbol(McaTagSymbol.HI, 6))
    sf.channels.append(McaLabel.for_symbol(McaTagSymbol.VI, 7))
    return sf


def detect_soundfield(channel_count: int) -> McaSoundfield:
    """Pick a soundfield from a channel count; unknown counts give 7.1."""
    if channel_count == 1:
        return _soundfield("10", McaTagSymbol.M1)
    if channel_count == 2:
        return soundfield_stereo()
    if channel_count == 6:
        return soundfield_51()
    if channel_count == 8:
        return soundfield_51_with_hi_vi()
    return soundfield_71()


def generate_mca_xml(sf: McaSoundfield) -> str:
    """Render MCA subdescriptor XML for inclusion in a CPL."""
    lines = [
        "  <r0:MCALabelSubDescriptors>",
        "    <r0:SoundfieldGroupLabelSubDescriptor>",
        f"      <r0:MCATagSymbol>sg{sf.name}</r0:MCATagSymbol>",
        f"      <r0:MCATagName>Soundfield {sf.name}</r0:MCATagName>",
        "    </r0:SoundfieldGroupLabelSubDescriptor>",
    ]
    for ch in sf.channels:
        lines.append("    <r0:AudioChannelLabelSubDescriptor>")
        lines.append(f"      <r0:MCAChannelID>{ch.channel_index + 1}</r0:MCAChannelID>")
        lines.append(f"      <r0:MCATagSymbol>{ch.tag_symbol}</r0:MCATagSymbol>")
        lines.append(f"      <r0:MCATagName>{ch.tag_name}</r0:MCATagName>")
        if ch.spoken_language:
            lines.append(
                "      <r0:RFC5646SpokenLanguage>"
                f"{ch.spoken_language}</r0:RFC5646SpokenLanguage>"
            )
        lines.append("    </r0:AudioChannelLabelSubDescriptor>")
    lines.append("  </r0:MCALabelSubDescriptors>")
    return "\n".join(lines) + "\n"