"""
Core module for the print order builder.

Contains fundamental infrastructure components:
- exceptions: Custom exception hierarchy
- api_client: Async HTTP clients for the page-counting and order services
"""

from .exceptions import (
    PrintOrderError,
    DocumentError,
    UnsupportedFormatError,
    MalformedDocumentError,
    CountingServiceUnavailableError,
    DuplicateFilesError,
    IndexOutOfRangeError,
    InvalidPreferencesError,
    EmptyOrderError,
    OrderSubmissionError,
)
from .api_client import PageCountClient, OrderServiceClient

__all__ = [
    "PrintOrderError",
    "DocumentError",
    "UnsupportedFormatError",
    "MalformedDocumentError",
    "CountingServiceUnavailableError",
    "DuplicateFilesError",
    "IndexOutOfRangeError",
    "InvalidPreferencesError",
    "EmptyOrderError",
    "OrderSubmissionError",
    "PageCountClient",
    "OrderServiceClient",
]
