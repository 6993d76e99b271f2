"""
Data models for the print order builder.

This module contains immutable dataclasses for:
- Document: One uploaded file and its FileKey identity
- PrintPreferences / OrderEntry: A counted document with its print settings
- OrderCollection: The ordered, deduplicated set of entries in an order
- IngestionResult / OrderConfirmation: Outcomes handed back to callers

Everything here is immutable so a snapshot can be read from a request
thread while the order loop builds the next version.
"""

from .document import (
    Document,
    DocumentKind,
    FileKey,
    derive_file_key,
    PDF_MIME_TYPE,
    DOCX_MIME_TYPE,
)
from .order import (
    PrintMode,
    PrintPreferences,
    OrderEntry,
    OrderCollection,
    partition_new_documents,
)
from .results import FileFailure, IngestionResult, OrderConfirmation, OrderState

__all__ = [
    # Document models
    "Document",
    "DocumentKind",
    "FileKey",
    "derive_file_key",
    "PDF_MIME_TYPE",
    "DOCX_MIME_TYPE",
    # Order models
    "PrintMode",
    "PrintPreferences",
    "OrderEntry",
    "OrderCollection",
    "partition_new_documents",
    # Results
    "FileFailure",
    "IngestionResult",
    "OrderConfirmation",
    "OrderState",
]
