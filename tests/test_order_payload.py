"""Tests for order payload serialization."""

import base64

from models.document import PDF_MIME_TYPE, Document
from models.order import OrderCollection, OrderEntry, PrintPreferences
from models.results import OrderConfirmation
from modules.order_payload import OrderPayloadBuilder


def _collection():
    a = Document.from_upload("a.pdf", b"%PDF-a", PDF_MIME_TYPE, 11)
    b = Document.from_upload("b.pdf", b"%PDF-b", PDF_MIME_TYPE, 22)
    return OrderCollection([
        OrderEntry(a, 4, PrintPreferences(copies=2)),
        OrderEntry(b, 3, PrintPreferences(print_mode="color", duplex=True)),
    ])


def test_payload_entries_and_totals(price_engine):
    payload = OrderPayloadBuilder(price_engine).build(_collection())

    first, second = payload["entries"]
    assert first["file_key"] == "a.pdf11"
    assert first["last_modified"] == 11
    assert first["media_kind"] == "pdf"
    assert first["price"] == 16
    assert second["effective_pages"] == 2
    assert second["price"] == 16
    assert payload["total_pages"] == 7
    assert payload["total_price"] == 32
    assert payload["currency"] == "INR"
    assert "created_at" in payload


def test_content_is_base64(price_engine):
    payload = OrderPayloadBuilder(price_engine).build(_collection())
    assert base64.b64decode(payload["entries"][0]["content_base64"]) == b"%PDF-a"


def test_content_can_be_left_out(price_engine):
    payload = OrderPayloadBuilder(price_engine, include_content=False).build(_collection())
    assert all("content_base64" not in entry for entry in payload["entries"])


def test_empty_collection(price_engine):
    payload = OrderPayloadBuilder(price_engine).build(OrderCollection())
    assert payload["entries"] == []
    assert payload["total_price"] == 0


class TestOrderConfirmation:

    def test_camel_case_fields(self):
        confirmation = OrderConfirmation.from_response({"orderId": 42, "paymentUrl": "/pay"}, 10)
        assert confirmation.order_id == "42"
        assert confirmation.redirect_url == "/pay"
        assert confirmation.to_dict()["total_price"] == 10

    def test_snake_case_fields(self):
        confirmation = OrderConfirmation.from_response({"order_id": "X", "redirect_url": "/r"}, 0)
        assert (confirmation.order_id, confirmation.redirect_url) == ("X", "/r")

    def test_empty_body(self):
        confirmation = OrderConfirmation.from_response({}, 5)
        assert confirmation.order_id is None
        assert confirmation.redirect_url is None
