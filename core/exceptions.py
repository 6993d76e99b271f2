"""
Custom exceptions for the print order builder.

Exception Hierarchy:
    PrintOrderError (base)
    ├── DocumentError                    - A single document could not be counted
    │   ├── UnsupportedFormatError       - Neither PDF nor DOCX
    │   ├── MalformedDocumentError       - PDF bytes could not be parsed
    │   └── CountingServiceUnavailableError - Remote counting call failed
    ├── DuplicateFilesError              - Every file in a batch is already in the order
    ├── IndexOutOfRangeError             - No entry at that position / key (caller bug)
    ├── InvalidPreferencesError          - Bad copies / print mode (caller bug)
    ├── EmptyOrderError                  - Submit called with no entries
    └── OrderSubmissionError             - Order service rejected or unreachable

Usage:
    Document errors are caught per file during ingestion and aggregated into
    a single user-facing message. Caller bugs (IndexOutOfRangeError,
    InvalidPreferencesError) propagate. EmptyOrderError and DuplicateFilesError
    are user-correctable and are shown as messages.
"""

from typing import Optional, Dict, Any


class PrintOrderError(Exception):
    """
    Base exception for all order-building errors.

    All custom exceptions inherit from this class, allowing callers to catch
    all application-specific errors with a single except clause if needed.
    """

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        """
        Initialize the exception.

        Args:
            message: Human-readable error message
            details: Optional dictionary with additional context for debugging
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


# =============================================================================
# DOCUMENT ERRORS - raised per file while counting pages
# =============================================================================

class DocumentError(PrintOrderError):
    """
    Base class for failures tied to one uploaded document.

    The ingestion batch catches these per file; sibling files are unaffected.
    """

    def __init__(
        self,
        message: str,
        filename: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        error_details = details or {}
        if filename:
            error_details["filename"] = filename
        super().__init__(message, error_details)
        self.filename = filename


class UnsupportedFormatError(DocumentError):
    """The document's declared kind is neither PDF nor DOCX."""

    def __init__(self, filename: Optional[str] = None, mime_type: Optional[str] = None):
        details = {
            "mime_type": mime_type or "",
            "resolution": "Upload a PDF or DOCX file",
        }
        super().__init__(
            "Unsupported file type. Please upload a PDF or DOCX file.",
            filename,
            details,
        )
        self.mime_type = mime_type


class MalformedDocumentError(DocumentError):
    """
    The PDF container could not be parsed.

    Typical causes:
    - Corrupted or truncated upload
    - A non-PDF file renamed to .pdf
    """

    def __init__(self, filename: Optional[str] = None, reason: str = ""):
        details = {"reason": reason} if reason else {}
        super().__init__("Failed to count PDF pages", filename, details)
        self.reason = reason


class CountingServiceUnavailableError(DocumentError):
    """
    The remote page-counting service failed.

    Raised on a non-success status, a network error, or a response body
    without a usable page count.
    """

    def __init__(
        self,
        filename: Optional[str] = None,
        status_code: Optional[int] = None,
        reason: str = ""
    ):
        details: Dict[str, Any] = {}
        if status_code is not None:
            details["status_code"] = status_code
        if reason:
            details["reason"] = reason
        super().__init__("Failed to count DOCX pages", filename, details)
        self.status_code = status_code
        self.reason = reason


# =============================================================================
# ORDER ERRORS
# =============================================================================

class DuplicateFilesError(PrintOrderError):
    """Every file in the batch is already part of the order."""

    def __init__(self, filenames: Optional[list] = None):
        details = {"filenames": list(filenames)} if filenames else {}
        super().__init__("no new files", details)
        self.filenames = list(filenames or [])


class IndexOutOfRangeError(PrintOrderError, IndexError):
    """
    No entry exists at the given position or for the given file key.

    This indicates a caller/UI bug, not a transient condition - never retried.
    """

    def __init__(self, ref: Any, size: int):
        super().__init__(
            f"No order entry for {ref!r}",
            {"ref": ref, "size": size},
        )
        self.ref = ref
        self.size = size


class InvalidPreferencesError(PrintOrderError, ValueError):
    """A preference update carries an unknown field or an invalid value."""

    def __init__(self, message: str, field: Optional[str] = None, value: Any = None):
        details = {"field": field, "value": value} if field else {}
        super().__init__(message, details)
        self.field = field
        self.value = value


class EmptyOrderError(PrintOrderError):
    """Submission was attempted with zero entries."""

    def __init__(self):
        super().__init__(
            "Cannot submit an empty order",
            {"resolution": "Add at least one file before submitting"},
        )


class OrderSubmissionError(PrintOrderError):
    """The order-creation service rejected the order or could not be reached."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        details = {"status_code": status_code} if status_code is not None else {}
        super().__init__(message, details)
        self.status_code = status_code
