"""
Uploaded document models.

A Document is an immutable reference to one user-selected file. Its identity
for deduplication is the FileKey (name + last-modified timestamp), not a
content hash: two different files with the same name and timestamp are
indistinguishable.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import PurePath
from typing import NewType, Optional


FileKey = NewType("FileKey", str)

PDF_MIME_TYPE = "application/pdf"
DOCX_MIME_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"

# Browsers and proxies send these when they don't know the real type
_GENERIC_MIME_TYPES = {"", "application/octet-stream", "binary/octet-stream"}


class DocumentKind(Enum):
    """Declared media kind of an uploaded document."""

    PDF = "pdf"
    DOCX = "docx"
    UNSUPPORTED = "unsupported"

    @classmethod
    def detect(cls, mime_type: Optional[str], filename: str = "") -> "DocumentKind":
        """
        Resolve the kind from the declared MIME type.

        Falls back to the file extension only when the MIME type is missing
        or generic; an explicit, unknown MIME type is UNSUPPORTED.
        """
        mime = (mime_type or "").split(";", 1)[0].strip().lower()

        if mime == PDF_MIME_TYPE:
            return cls.PDF
        if mime == DOCX_MIME_TYPE:
            return cls.DOCX
        if mime not in _GENERIC_MIME_TYPES:
            return cls.UNSUPPORTED

        suffix = PurePath(filename).suffix.lower()
        if suffix == ".pdf":
            return cls.PDF
        if suffix == ".docx":
            return cls.DOCX
        return cls.UNSUPPORTED


@dataclass(frozen=True)
class Document:
    """
    One uploaded file intended for printing.

    This is a FROZEN dataclass - the order owns it for as long as the
    entry exists and nothing may change it underneath a pending count.
    """

    name: str
    """Display name (as uploaded)."""

    content: bytes = field(repr=False)
    """Raw file bytes."""

    last_modified: int = 0
    """Last-modified timestamp in milliseconds since the epoch."""

    mime_type: str = ""
    """Declared MIME type from the upload."""

    kind: DocumentKind = DocumentKind.UNSUPPORTED
    """Media kind resolved from mime_type / extension."""

    @classmethod
    def from_upload(
        cls,
        name: str,
        content: bytes,
        mime_type: Optional[str] = None,
        last_modified: int = 0,
    ) -> "Document":
        """Create a Document and detect its kind."""
        return cls(
            name=name,
            content=content,
            last_modified=int(last_modified),
            mime_type=mime_type or "",
            kind=DocumentKind.detect(mime_type, name),
        )

    @property
    def key(self) -> FileKey:
        """Deduplication identity."""
        return derive_file_key(self)

    @property
    def size_bytes(self) -> int:
        return len(self.content)


def derive_file_key(document: Document) -> FileKey:
    """Derive the FileKey of a document: name followed by last-modified timestamp."""
    return FileKey(f"{document.name}{document.last_modified}")
