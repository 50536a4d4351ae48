"""Reading and editing composition playlist metadata in place."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from os import PathLike
from pathlib import Path
from typing import Iterable

logger = logging.getLogger(__name__)

StrPath = "str | PathLike[str]"

_FIELD_ATTRS = {
    "title": "title",
    "ContentTitle": "title",
    "annotation": "annotation",
    "AnnotationText": "annotation",
    "issuer": "issuer",
    "Issuer": "issuer",
    "creator": "creator",
    "Creator": "creator",
    "content_kind": "content_kind",
    "ContentKind": "content_kind",
}


@dataclass
class MetadataField:
    """An editable metadata field."""

    key: str = ""
    value: str = ""
    field_type: str = ""
    readonly: bool = False


@dataclass
class CompositionMetadata:
    """Metadata of a CPL or OPL."""

    uuid: str = ""
    title: str = ""
    annotation: str = ""
    issuer: str = ""
    creator: str = ""
    issue_date: str = ""
    content_kind: str = ""
    rating: str = ""
    custom_fields: list[MetadataField] = field(default_factory=list)


def _text_span(xml: str, tag: str) -> tuple[int, int] | None:
    start = xml.find(f"<{tag}")
    if start < 0:
        return None
    gt = xml.find(">", start)
    if gt < 0:
        return None
    text_start = gt + 1
    end = xml.find(f"</{tag}>", text_start)
    if end < 0:
        return None
    return text_start, end


def _extract_xml_text(xml: str, tag: str) -> str | None:
    span = _text_span(xml, tag)
    if span is None:
        return None
    text = xml[span[0] : span[1]].strip()
    return text or None


def _replace_xml_text(xml: str, tag: str, new_value: str) -> str:
    span = _text_span(xml, tag)
    if span is None:
        return xml
    escaped = new_value.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")
    return xml[: span[0]] + escaped + xml[span[1] :]


def read_metadata(cpl_path: str | PathLike[str]) -> CompositionMetadata:
    """Read metadata from a CPL/OPL file; raises ``OSError`` if unreadable."""
    content = Path(cpl_path).read_text(encoding="utf-8")

    def text(tag: str) -> str:
        return _extract_xml_text(content, tag) or ""

    uuid = text("Id").removeprefix("urn:uuid:")
    title = _extract_xml_text(content, "ContentTitle") or text("AnnotationText")
    return CompositionMetadata(
        uuid=uuid,
        title=title,
        annotation=text("AnnotationText"),
        issuer=text("Issuer"),
        creator=text("Creator"),
        issue_date=text("IssueDate"),
        content_kind=text("ContentKind"),
        rating=text("Rating"),
    )


def write_metadata(cpl_path: str | PathLike[str], meta: CompositionMetadata) -> None:
    """Replace the text of editable elements, leaving the rest of the XML as is.

    Empty fields in ``meta`` are left unchanged. Raises ``OSError`` on I/O failure.
    """
    path = Path(cpl_path)
    updated = path.read_text(encoding="utf-8")
    for tag, value in (
        ("ContentTitle", meta.title),
        ("AnnotationText", meta.annotation),
        ("Issuer", meta.issuer),
        ("Creator", meta.creator),
        ("ContentKind", meta.content_kind),
    ):
        if value:
            updated = _replace_xml_text(updated, tag, value)
    path.write_text(updated, encoding="utf-8")


def batch_update_field(
    cpls: Iterable[str | PathLike[str]], field_key: str, new_value: str
) -> None:
    """Set one field across several CPLs.

    An unknown ``field_key`` is logged and ignored. Every file is attempted;
    ``OSError`` is raised afterwards if any of them could not be updated.
    """
    attr = _FIELD_ATTRS.get(field_key)
    if attr is None:
        logger.warning("Unknown field key: %s", field_key)
        return
    failures: list[str] = []
    for cpl in cpls:
        try:
            meta = read_metadata(cpl)
            setattr(meta, attr, new_value)
            write_metadata(cpl, meta)
        except OSError as exc:
            logger.error("Failed to update %s: %s", cpl, exc)
            failures.append(str(cpl))
    if failures:
        raise OSError(f"Failed to update {len(failures)} file(s): {', '.join(failures)}")


def list_fields(cpl_path: str | PathLike[str]) -> list[MetadataField]:
    """List the editable and read-only fields of a CPL."""
    meta = read_metadata(cpl_path)
    return [
        MetadataField("ContentTitle", meta.title, "string", False),
        MetadataField("AnnotationText", meta.annotation, "string", False),
        MetadataField("Issuer", meta.issuer, "string", False),
        MetadataField("Creator", meta.creator, "string", False),
        MetadataField("IssueDate", meta.issue_date, "datetime", True),
        MetadataField("ContentKind", meta.content_kind, "string", False),
        MetadataField("Id", meta.uuid, "uuid", True),
    ]