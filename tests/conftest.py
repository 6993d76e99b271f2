"""Shared fixtures for the order builder tests."""

import asyncio
import logging
from io import BytesIO
from typing import Dict

import pytest
from pypdf import PdfWriter

from models.document import DOCX_MIME_TYPE, PDF_MIME_TYPE, Document
from modules.pricing import PriceEngine


def make_pdf_bytes(pages: int) -> bytes:
    """Build a real PDF with the given number of blank pages."""
    writer = PdfWriter()
    for _ in range(pages):
        writer.add_blank_page(width=72, height=72)
    buffer = BytesIO()
    writer.write(buffer)
    return buffer.getvalue()


def pdf_doc(name: str = "a.pdf", pages: int = 1, last_modified: int = 1000) -> Document:
    return Document.from_upload(name, make_pdf_bytes(pages), PDF_MIME_TYPE, last_modified)


def docx_doc(name: str = "b.docx", last_modified: int = 2000) -> Document:
    return Document.from_upload(name, b"PK\x03\x04fake-docx", DOCX_MIME_TYPE, last_modified)


class FakePageCounter:
    """
    Page counter whose answers the test controls.

    counts maps a document name to a page count or an exception. Names in
    `gated` block until release(name) is called, so tests can decide the
    order in which counts complete.
    """

    def __init__(self, counts: Dict[str, object] = None):
        self.counts = dict(counts or {})
        self.calls = []
        self._gates: Dict[str, asyncio.Event] = {}

    def gate(self, *names: str) -> None:
        for name in names:
            self._gates[name] = asyncio.Event()

    def release(self, name: str) -> None:
        self._gates[name].set()

    async def count_pages(self, document: Document) -> int:
        self.calls.append(document.name)
        gate = self._gates.get(document.name)
        if gate is not None:
            await gate.wait()
        else:
            await asyncio.sleep(0)
        outcome = self.counts.get(document.name, 1)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


async def settle(rounds: int = 5) -> None:
    """Let pending tasks on the running loop make progress."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def logger():
    """Create a test logger."""
    return logging.getLogger("test")


@pytest.fixture
def price_engine():
    return PriceEngine(currency="INR")


@pytest.fixture
def fake_counter():
    return FakePageCounter()
