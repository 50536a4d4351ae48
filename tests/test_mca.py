import pytest

from postkit.mca import (
    McaTagSymbol,
    detect_soundfield,
    generate_mca_xml,
    soundfield_51,
    soundfield_51_with_hi_vi,
    soundfield_71,
    soundfield_stereo,
)


def test_tag_names():
    assert McaTagSymbol.L.tag_name() == "Left"
    assert McaTagSymbol.LFE.tag_name() == "LFE"
    assert McaTagSymbol.HI.tag_name() == "Hearing Impaired"
    assert McaTagSymbol.VI.tag_name() == "Visually Impaired"


def test_symbol_strings():
    assert McaTagSymbol.L.symbol_string() == "chL"
    assert McaTagSymbol.LFE.symbol_string() == "chLFE"
    assert McaTagSymbol.HI.symbol_string() == "chHI"
    assert McaTagSymbol.VI.symbol_string() == "chVIN"


def test_soundfield_stereo():
    sf = soundfield_stereo()
    assert sf.name == "20"
    assert len(sf.channels) == 2
    assert sf.channels[0].symbol is McaTagSymbol.L
    assert sf.channels[1].symbol is McaTagSymbol.R


def test_soundfield_51():
    sf = soundfield_51()
    assert sf.name == "51"
    assert len(sf.channels) == 6
    assert sf.channels[3].symbol is McaTagSymbol.LFE


def test_soundfield_71():
    sf = soundfield_71()
    assert sf.name == "71"
    assert len(sf.channels) == 8
    assert sf.channels[6].symbol is McaTagSymbol.LRS
    assert sf.channels[7].symbol is McaTagSymbol.RRS


def test_soundfield_51_with_hi_vi():
    sf = soundfield_51_with_hi_vi()
    assert sf.name == "51+HI+VI"
    assert len(sf.channels) == 8
    assert sf.channels[6].symbol is McaTagSymbol.HI
    assert sf.channels[7].symbol is McaTagSymbol.VI


@pytest.mark.parametrize(
    "count, name",
    [(1, "10"), (2, "20"), (6, "51"), (8, "51+HI+VI"), (4, "71")],
)
def test_detect_soundfield(count, name):
    assert detect_soundfield(count).name == name


def test_detect_mono_has_one_channel():
    sf = detect_soundfield(1)
    assert len(sf.channels) == 1
    assert sf.channels[0].tag_symbol == "chM1"


def test_generate_mca_xml_stereo():
    xml = generate_mca_xml(soundfield_stereo())
    assert "sg20" in xml
    assert "Soundfield 20" in xml
    assert "<r0:MCAChannelID>1</r0:MCAChannelID>" in xml
    assert "<r0:MCAChannelID>2</r0:MCAChannelID>" in xml
    assert "<r0:MCATagSymbol>chL</r0:MCATagSymbol>" in xml
    assert "<r0:MCATagSymbol>chR</r0:MCATagSymbol>" in xml
    assert "RFC5646SpokenLanguage" not in xml


def test_generate_mca_xml_with_language():
    sf = soundfield_stereo()
    sf.channels[0].spoken_language = "en"
    xml = generate_mca_xml(sf)
    assert "<r0:RFC5646SpokenLanguage>en</r0:RFC5646SpokenLanguage>" in xml
    assert xml.count("RFC5646SpokenLanguage>") == 2


def test_generate_mca_xml_structure():
    xml = generate_mca_xml(soundfield_51())
    assert xml.startswith("  <r0:MCALabelSubDescriptors>\n")
    assert xml.endswith("  </r0:MCALabelSubDescriptors>\n")
    assert xml.count("<r0:AudioChannelLabelSubDescriptor>") == 6


def test_channel_indices():
    sf = soundfield_51()
    assert [ch.channel_index for ch in sf.channels] == list(range(6))


def test_labels_are_independent_between_calls():
    first = soundfield_stereo()
    first.channels[0].spoken_language = "fr"
    assert soundfield_stereo().channels[0].spoken_language == ""