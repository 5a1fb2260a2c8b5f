"""
Module that decodes the JSON files describing documents and collections.

Every entry on the tablet is described by a <uid>.metadata file. Documents also have a
<uid>.content file that describes how the document is rendered and, for imported
documents, a <uid>.pdf or <uid>.epub target file with the original contents.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
import json
from typing import Any, Callable, Dict, Optional, TypeVar

from rmkmount.errors import DecodeError

T = TypeVar("T")


class NodeType(Enum):
    """Type of an entry as declared by its descriptor."""

    COLLECTION = "CollectionType"
    DOCUMENT = "DocumentType"


class FileKind(Enum):
    """Kind of document as declared by its content record."""

    PDF = "pdf"
    EPUB = "epub"
    NOTEBOOK = "notebook"
    LINES = ""

    @property
    def extension(self) -> Optional[str]:
        """Return the extension of the target file if the kind has one."""
        if self in (FileKind.PDF, FileKind.EPUB):
            return self.value
        else:
            return None


@dataclass
class MetadataRecord:
    """Decoded descriptor (.metadata file) of a collection or document."""

    visible_name: str
    node_type: NodeType
    parent: str
    last_modified: int
    created_time: Optional[int] = None
    deleted: Optional[bool] = None
    pinned: bool = False
    version: int = 0

    @property
    def is_document(self) -> bool:
        return self.node_type == NodeType.DOCUMENT


@dataclass
class ContentRecord:
    """
    Decoded content (.content file) of a document.

    The tablet writes an empty object for documents whose content is not known yet, in
    which case the file kind is None.
    """

    file_kind: Optional[FileKind] = None
    page_count: int = 0
    font_name: str = ""
    line_height: int = -1
    margins: int = 0
    orientation: str = "portrait"
    format_version: int = 1
    cover_page_number: Optional[int] = None

    @property
    def extension(self) -> Optional[str]:
        return self.file_kind.extension if self.file_kind else None


def decode_descriptor(text: str) -> MetadataRecord:
    """Decode the text of a .metadata file."""
    obj = _load_object(text)

    try:
        return MetadataRecord(
            visible_name=_field(obj, "visibleName", str),
            node_type=_field(obj, "type", NodeType),
            parent=_field(obj, "parent", str),
            last_modified=_field(obj, "lastModified", int),
            created_time=_optional_field(obj, "createdTime", int),
            deleted=_optional_field(obj, "deleted", bool),
            pinned=_optional_field(obj, "pinned", bool) or False,
            version=_optional_field(obj, "version", int) or 0,
        )
    except (TypeError, ValueError) as e:
        raise DecodeError(f"invalid descriptor: {e}")


def decode_content(text: str) -> ContentRecord:
    """Decode the text of a .content file."""
    obj = _load_object(text)

    if len(obj) == 0:
        return ContentRecord()

    record = ContentRecord()

    try:
        record.file_kind = _field(obj, "fileType", FileKind)
        record.page_count = _optional_field(obj, "pageCount", int) or 0
        record.font_name = _optional_field(obj, "fontName", str) or ""
        record.line_height = _optional_field(obj, "lineHeight", int, -1)
        record.margins = _optional_field(obj, "margins", int, 0)
        record.orientation = _optional_field(obj, "orientation", str, "portrait")
        record.format_version = _optional_field(obj, "formatVersion", int, 1)
        record.cover_page_number = _optional_field(obj, "coverPageNumber", int)
    except (TypeError, ValueError) as e:
        raise DecodeError(f"invalid content: {e}")

    return record


def _load_object(text: str) -> Dict[str, Any]:
    try:
        obj = json.loads(text)
    except ValueError as e:
        raise DecodeError(f"malformed JSON: {e}")

    if not isinstance(obj, dict):
        raise DecodeError(f"expected JSON object, got {type(obj).__name__}")

    return obj


def _field(obj: Dict[str, Any], name: str, convert: Callable[[Any], T]) -> T:
    """Retrieve a required field and convert it to the expected type."""
    if name not in obj:
        raise ValueError(f"missing field '{name}'")

    return _convert(name, obj[name], convert)


def _optional_field(
    obj: Dict[str, Any],
    name: str,
    convert: Callable[[Any], T],
    default: Optional[T] = None,
) -> Optional[T]:
    """Retrieve an optional field and convert it if it is present."""
    if obj.get(name) is None:
        return default

    return _convert(name, obj[name], convert)


def _convert(name: str, value: Any, convert: Callable[[Any], T]) -> T:
    # Timestamps are stored as decimal strings, so numeric strings are accepted too.
    if convert is int and isinstance(value, bool):
        raise ValueError(f"field '{name}' is not a number")
    elif convert is bool and not isinstance(value, bool):
        raise ValueError(f"field '{name}' is not a boolean")
    elif convert is str and not isinstance(value, str):
        raise ValueError(f"field '{name}' is not a string")

    try:
        return convert(value)
    except (TypeError, ValueError):
        raise ValueError(f"field '{name}' has unexpected value {value!r}")
