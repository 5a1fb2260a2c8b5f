import json

import pytest

from rmkmount.errors import DecodeError
from rmkmount.filesystem.records import (
    ContentRecord,
    FileKind,
    NodeType,
    decode_content,
    decode_descriptor,
)


def descriptor(**overrides):
    obj = {
        "visibleName": "Notes",
        "type": "DocumentType",
        "parent": "",
        "lastModified": "1600000000000",
    }
    obj.update(overrides)
    return json.dumps(obj)


def test_decode_descriptor():
    record = decode_descriptor(
        descriptor(deleted=False, pinned=True, version=3, createdTime="1500")
    )

    assert record.visible_name == "Notes"
    assert record.node_type == NodeType.DOCUMENT
    assert record.is_document
    assert record.parent == ""
    assert record.last_modified == 1600000000000
    assert record.created_time == 1500
    assert record.deleted is False
    assert record.pinned
    assert record.version == 3


def test_decode_descriptor_defaults():
    record = decode_descriptor(descriptor(type="CollectionType", lastModified=5))

    assert not record.is_document
    assert record.last_modified == 5
    assert record.created_time is None
    assert record.deleted is None
    assert not record.pinned
    assert record.version == 0


@pytest.mark.parametrize(
    "text",
    [
        "",
        "{",
        "[]",
        descriptor(type="FolderType"),
        descriptor(visibleName=42),
        descriptor(lastModified="yesterday"),
        descriptor(pinned="yes"),
        json.dumps({"visibleName": "Notes", "type": "DocumentType", "parent": ""}),
    ],
)
def test_decode_descriptor_invalid(text):
    with pytest.raises(DecodeError):
        decode_descriptor(text)


def test_decode_content():
    record = decode_content(
        json.dumps(
            {
                "fileType": "pdf",
                "pageCount": 12,
                "fontName": "Maison Neue",
                "lineHeight": 150,
                "margins": 100,
                "orientation": "landscape",
                "coverPageNumber": 0,
            }
        )
    )

    assert record.file_kind == FileKind.PDF
    assert record.extension == "pdf"
    assert record.page_count == 12
    assert record.font_name == "Maison Neue"
    assert record.line_height == 150
    assert record.margins == 100
    assert record.orientation == "landscape"
    assert record.format_version == 1
    assert record.cover_page_number == 0


def test_decode_content_kinds():
    assert decode_content('{"fileType": "epub"}').extension == "epub"
    assert decode_content('{"fileType": "notebook"}').extension is None
    assert decode_content('{"fileType": ""}').file_kind == FileKind.LINES
    assert decode_content('{"fileType": ""}').extension is None


def test_decode_content_empty():
    record = decode_content("{}")

    assert record == ContentRecord()
    assert record.extension is None


@pytest.mark.parametrize(
    "text", ["null", '{"pageCount": 1}', '{"fileType": "docx"}', '{"fileType": 1}']
)
def test_decode_content_invalid(text):
    with pytest.raises(DecodeError):
        decode_content(text)
