"""Page counting dispatch: local pypdf parse for PDF, remote service for DOCX."""

from __future__ import annotations

import asyncio
import logging
from io import BytesIO
from typing import Optional

from pypdf import PdfReader

from core.api_client import PageCountClient
from core.exceptions import MalformedDocumentError, UnsupportedFormatError
from models.document import Document, DocumentKind


class PageCounter:
    """Resolve a document's page count by its declared kind."""

    def __init__(
        self,
        remote_client: Optional[PageCountClient] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.remote_client = remote_client
        self.logger = logger or logging.getLogger(__name__)

    async def count_pages(self, document: Document) -> int:
        """
        Count pages of one document.

        Raises:
            UnsupportedFormatError: Kind is neither PDF nor DOCX
            MalformedDocumentError: PDF bytes could not be parsed
            CountingServiceUnavailableError: Remote DOCX count failed
        """
        if document.kind is DocumentKind.PDF:
            # pypdf is CPU-bound; keep the event loop free for sibling files
            return await asyncio.to_thread(self.count_pdf_pages, document)

        if document.kind is DocumentKind.DOCX:
            if self.remote_client is None:
                raise RuntimeError("No page-count client configured for DOCX documents")
            return await self.remote_client.count_pages(document)

        self.logger.info(f"Rejecting '{document.name}': unsupported type {document.mime_type!r}")
        raise UnsupportedFormatError(document.name, document.mime_type)

    def count_pdf_pages(self, document: Document) -> int:
        try:
            reader = PdfReader(BytesIO(document.content))
            pages = len(reader.pages)
        except Exception as exc:
            self.logger.warning(f"PDF parse failed for '{document.name}': {exc}")
            raise MalformedDocumentError(document.name, reason=str(exc)) from exc

        self.logger.debug(f"'{document.name}': {pages} pages")
        return pages
