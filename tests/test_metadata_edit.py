import pytest

from postkit.metadata_edit import (
    CompositionMetadata,
    batch_update_field,
    list_fields,
    read_metadata,
    write_metadata,
)

SAMPLE_CPL = """<?xml version="1.0"?>
<CompositionPlaylist>
  <Id>urn:uuid:abc-123</Id>
  <ContentTitle>Test Film</ContentTitle>
  <Issuer>Studio</Issuer>
  <Creator>IMF Wizard</Creator>
  <ContentKind>feature</ContentKind>
</CompositionPlaylist>"""


@pytest.fixture
def cpl(tmp_path):
    path = tmp_path / "CPL.xml"
    path.write_text(SAMPLE_CPL, encoding="utf-8")
    return path


def test_read_metadata(cpl):
    meta = read_metadata(cpl)
    assert meta.uuid == "abc-123"
    assert meta.title == "Test Film"
    assert meta.issuer == "Studio"
    assert meta.content_kind == "feature"
    assert meta.annotation == ""


def test_read_metadata_title_falls_back_to_annotation(tmp_path):
    path = tmp_path / "CPL.xml"
    path.write_text(
        "<CompositionPlaylist><AnnotationText>Note</AnnotationText></CompositionPlaylist>",
        encoding="utf-8",
    )
    meta = read_metadata(path)
    assert meta.title == "Note"
    assert meta.annotation == "Note"


def test_read_metadata_missing_file(tmp_path):
    with pytest.raises(OSError):
        read_metadata(tmp_path / "absent.xml")


def test_write_metadata(tmp_path):
    path = tmp_path / "CPL.xml"
    path.write_text(
        "<CompositionPlaylist><ContentTitle>Old</ContentTitle></CompositionPlaylist>",
        encoding="utf-8",
    )
    write_metadata(path, CompositionMetadata(title="New Title"))
    content = path.read_text(encoding="utf-8")
    assert "New Title" in content
    assert "Old" not in content


def test_write_metadata_escapes_and_preserves(cpl):
    write_metadata(cpl, CompositionMetadata(issuer="A & B <x>"))
    content = cpl.read_text(encoding="utf-8")
    assert "<Issuer>A &amp; B &lt;x&gt;</Issuer>" in content
    assert "<ContentTitle>Test Film</ContentTitle>" in content


def test_write_metadata_missing_file(tmp_path):
    with pytest.raises(OSError):
        write_metadata(tmp_path / "absent.xml", CompositionMetadata(title="X"))


def test_list_fields(tmp_path):
    path = tmp_path / "CPL.xml"
    path.write_text(
        "<CompositionPlaylist><ContentTitle>Film</ContentTitle>"
        "<Id>urn:uuid:x</Id></CompositionPlaylist>",
        encoding="utf-8",
    )
    fields = list_fields(path)
    assert len(fields) >= 5
    assert any(f.key == "ContentTitle" and f.value == "Film" for f in fields)
    id_field = next(f for f in fields if f.key == "Id")
    assert id_field.value == "x"
    assert id_field.readonly is True


def test_batch_update_field(tmp_path):
    first = tmp_path / "a.xml"
    second = tmp_path / "b.xml"
    first.write_text(SAMPLE_CPL, encoding="utf-8")
    second.write_text(SAMPLE_CPL, encoding="utf-8")
    batch_update_field([first, second], "Creator", "Editor")
    assert [read_metadata(first).creator, read_metadata(second).creator] == [
        "Editor",
        "Editor",
    ]
    assert read_metadata(first).title == "Test Film"


def test_batch_update_unknown_key_leaves_files(cpl):
    batch_update_field([cpl], "bogus", "value")
    assert cpl.read_text(encoding="utf-8") == SAMPLE_CPL


def test_batch_update_reports_failure(cpl, tmp_path):
    with pytest.raises(OSError):
        batch_update_field([cpl, tmp_path / "absent.xml"], "title", "Renamed")
    assert read_metadata(cpl).title == "Renamed"